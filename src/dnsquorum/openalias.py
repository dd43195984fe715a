"""OpenAlias-style address lookups over DNS TXT records.

Brief:
  A TXT record of the form ``oa1:xmr ... recipient_address=<address>; ...``
  embeds a wallet address. These helpers turn a ``name@domain`` identifier
  into a DNS name, pull candidate addresses out of its TXT records and hand
  them to a caller-supplied confirmation callback together with the DNSSEC
  verdict.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Sequence, Tuple

from .resolver import ResolverContext, default_context

logger = logging.getLogger("dnsquorum.dns")

OA_MARKER = "oa1:xmr"
RECIPIENT_KEY = "recipient_address="
ADDRESS_LENGTHS = (95, 106)  # standard, integrated

ConfirmCallback = Callable[[str, Sequence[str], bool], str]


def address_from_txt_record(text: str) -> str:
    """Brief: Extract the recipient address from one TXT record.

    Inputs:
      - text: TXT record text.

    Outputs:
      - The address when the marker, key and terminating ';' are present and
        the address is exactly 95 or 106 characters long; otherwise "".

    Example:
      >>> address_from_txt_record("oa1:xmr recipient_address=" + "4" * 95 + ";")[:3]
      '444'
    """

    pos = text.find(OA_MARKER)
    if pos < 0:
        return ""
    pos = text.find(RECIPIENT_KEY, pos)
    if pos < 0:
        return ""
    start = pos + len(RECIPIENT_KEY)
    end = text.find(";", start)
    if end < 0:
        return ""
    if end - start not in ADDRESS_LENGTHS:
        return ""
    return text[start:end]


def get_dns_format_from_oa_address(oa_addr: str) -> str:
    """Convert ``name@domain.tld`` to ``name.domain.tld``; other input is unchanged."""

    return oa_addr.replace("@", ".", 1)


def addresses_from_url(
    url: str, *, context: Optional[ResolverContext] = None
) -> Tuple[List[str], bool]:
    """Brief: Resolve url's TXT records and extract candidate addresses.

    Inputs:
      - url: Identifier in ``name@domain`` or plain DNS form.
      - context: ResolverContext to use; defaults to the shared instance.

    Outputs:
      - (addresses, dnssec_valid): addresses in record order (duplicates
        kept); dnssec_valid is True only when DNSSEC was available and valid.
    """

    ctx = context if context is not None else default_context()
    result = ctx.get_txt_record(get_dns_format_from_oa_address(url))

    addresses = []
    for record in result.records:
        addr = address_from_txt_record(record)
        if addr:
            addresses.append(addr)
    return addresses, result.trusted


def get_account_address_as_str_from_url(
    url: str,
    dns_confirm: ConfirmCallback,
    *,
    context: Optional[ResolverContext] = None,
) -> str:
    """Brief: Look up url and let dns_confirm choose the address.

    Inputs:
      - url: Identifier in ``name@domain`` or plain DNS form.
      - dns_confirm: Called as dns_confirm(url, addresses, dnssec_valid);
        its return value is passed through unchanged.
      - context: Optional ResolverContext.

    Outputs:
      - Whatever dns_confirm returns, or "" when no address was found (in
        which case dns_confirm is not called).
    """

    addresses, dnssec_valid = addresses_from_url(url, context=context)
    if not addresses:
        logger.error("wrong address: %s", url)
        return ""
    return dns_confirm(url, addresses, dnssec_valid)
