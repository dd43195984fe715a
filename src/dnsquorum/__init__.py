"""dnsquorum package"""

from .openalias import (
    address_from_txt_record,
    get_account_address_as_str_from_url,
)
from .quorum import QuorumOutcome, load_txt_records_from_dns
from .records import RecordType
from .resolver import QueryResult, ResolverContext, create_context, default_context

__all__ = [
    "QueryResult",
    "QuorumOutcome",
    "RecordType",
    "ResolverContext",
    "address_from_txt_record",
    "create_context",
    "default_context",
    "get_account_address_as_str_from_url",
    "load_txt_records_from_dns",
]
