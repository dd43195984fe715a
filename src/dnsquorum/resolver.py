"""ResolverContext: DNSSEC-aware record lookups with fail-closed semantics.

Brief:
  A ResolverContext owns exactly one ValidatingResolver engine, configured
  with the optional DNS_PUBLIC forwarder override, TCP-only transport and the
  built-in root trust anchor. resolve() maps one (name, record type) query to
  a QueryResult of decoded records plus dnssec_available/dnssec_valid flags
  and never raises for network or validation problems.

  default_context() returns a lazily created process-wide instance;
  create_context() builds an independent one (for tests or isolated callers).
"""

from __future__ import annotations

import atexit
import logging
import os
import re
import threading
from dataclasses import dataclass
from typing import Callable, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import dns.inet

from .dnssec.trust_anchors import builtin_anchors
from .engine import ResolutionError, ValidatingResolver
from .records import DECODERS, Decoder, RecordType, record_name

logger = logging.getLogger("dnsquorum.dns")

DEFAULT_DNS_PUBLIC_ADDR: Tuple[str, ...] = (
    "194.150.168.168",  # CCC (Germany)
    "80.67.169.40",  # FDN (France)
    "89.233.43.71",  # censurfridns.dk (Denmark)
    "109.69.8.51",  # puntCAT (Spain)
    "193.58.251.251",  # SkyDNS (Russia)
)

_TCP_FORWARDER_RE = re.compile(r"tcp://([0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3})")


def parse_dns_public(value: str) -> List[str]:
    """Brief: Parse the DNS_PUBLIC forwarder override.

    Inputs:
      - value: "tcp" for the built-in public resolver list, or
        "tcp://A.B.C.D" for a single IPv4 forwarder.

    Outputs:
      - List of forwarder IPs; empty when value is malformed.

    Example:
      >>> parse_dns_public("tcp://9.9.9.9")
      ['9.9.9.9']
    """

    value = (value or "").strip()
    if value == "tcp":
        addrs = list(DEFAULT_DNS_PUBLIC_ADDR)
        logger.info("Using default public DNS server(s): %s (TCP)", ", ".join(addrs))
        return addrs

    m = _TCP_FORWARDER_RE.fullmatch(value)
    if m is None:
        logger.error("Invalid DNS_PUBLIC contents, ignored")
        return []
    addr = m.group(1)
    # Octets above 255 and leading zeros are rejected here, not by the engine.
    if not dns.inet.is_address(addr):
        logger.error("Invalid IP: %s, using default", value)
        return []
    return [addr]


@dataclass(frozen=True)
class QueryResult:
    """Decoded records of one lookup plus its DNSSEC flags.

    dnssec_available is True when the engine reached a secure or bogus
    verdict; dnssec_valid only when the verdict was secure.
    """

    records: Tuple[str, ...] = ()
    dnssec_available: bool = False
    dnssec_valid: bool = False

    def __post_init__(self) -> None:
        if self.dnssec_valid and not self.dnssec_available:
            raise ValueError("dnssec_valid requires dnssec_available")
        object.__setattr__(self, "records", tuple(self.records))

    @classmethod
    def empty(cls) -> "QueryResult":
        return cls()

    @property
    def trusted(self) -> bool:
        return self.dnssec_available and self.dnssec_valid


class ResolverContext:
    """Owns one validating engine and resolves records through it.

    Inputs:
      - dns_public: Forwarder override ("tcp" or "tcp://A.B.C.D"). When None
        the DNS_PUBLIC variable from environ is consulted.
      - environ: Mapping used instead of os.environ.
      - timeout: Per-query lifetime in seconds handed to the engine.
      - trust_anchors: Extra DS/DNSKEY anchors installed after the built-in
        root anchor.
      - engine_factory: Callable building the engine; receives nameservers
        and lifetime keyword arguments.

    The context is a context manager; leaving the block releases the engine.
    """

    def __init__(
        self,
        dns_public: Optional[str] = None,
        *,
        environ: Optional[Mapping[str, str]] = None,
        timeout: float = 5.0,
        trust_anchors: Iterable[str] = (),
        engine_factory: Callable[..., ValidatingResolver] = ValidatingResolver,
    ) -> None:
        if dns_public is None:
            dns_public = (os.environ if environ is None else environ).get("DNS_PUBLIC")

        forwarders: List[str] = []
        if dns_public:
            forwarders = parse_dns_public(dns_public)
            if not forwarders:
                logger.error("Failed to parse DNS_PUBLIC")

        self._engine: Optional[ValidatingResolver] = None
        engine = engine_factory(nameservers=forwarders or None, lifetime=timeout)
        try:
            for anchor in list(builtin_anchors()) + list(trust_anchors):
                logger.info("adding trust anchor: %s", anchor)
                engine.add_trust_anchor(anchor)
        except Exception:
            engine.close()
            raise

        self._engine = engine
        self._forwarders: Tuple[str, ...] = tuple(forwarders)

    def __enter__(self) -> "ResolverContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def forwarders(self) -> Tuple[str, ...]:
        return self._forwarders

    @property
    def closed(self) -> bool:
        return self._engine is None

    def close(self) -> None:
        """Release the engine. Later calls are no-ops."""

        engine, self._engine = self._engine, None
        if engine is not None:
            engine.close()

    @staticmethod
    def check_address_syntax(name: str) -> bool:
        # Anything without a dot is not treated as a domain name.
        return "." in (name or "")

    def get_record(
        self, name: str, record_type: Union[RecordType, int], reader: Decoder
    ) -> QueryResult:
        """Brief: Resolve name/record_type and decode each rdata with reader.

        Inputs:
          - name: Domain name to query.
          - record_type: Record type to request.
          - reader: Decoder applied to every raw rdata payload.

        Outputs:
          - QueryResult; empty with both flags False when name is not
            domain-like, the context is closed, or the engine failed.
        """

        if not self.check_address_syntax(name):
            return QueryResult.empty()

        engine = self._engine
        if engine is None:
            logger.warning("Resolver context is closed; not resolving %s", name)
            return QueryResult.empty()

        try:
            result = engine.resolve(name, int(record_type))
        except ResolutionError as exc:
            logger.warning("DNS lookup for %s failed: %s", name, exc)
            return QueryResult.empty()

        if not result.havedata:
            logger.debug(
                "No %s data for %s (rcode %d)", record_name(record_type), name, result.rcode
            )

        records: List[str] = []
        for raw in result.data:
            value = reader(raw)
            if value is not None:
                logger.info(
                    'Found "%s" in %s record for %s', value, record_name(record_type), name
                )
                records.append(value)

        return QueryResult(
            records=tuple(records),
            dnssec_available=result.secure or result.bogus,
            dnssec_valid=result.secure and not result.bogus,
        )

    def resolve(
        self, name: str, record_type: Union[RecordType, int, str]
    ) -> QueryResult:
        """Resolve name for an A, AAAA or TXT record type."""

        rtype = RecordType.coerce(record_type)
        return self.get_record(name, rtype, DECODERS[rtype])

    def get_ipv4(self, name: str) -> QueryResult:
        return self.resolve(name, RecordType.A)

    def get_ipv6(self, name: str) -> QueryResult:
        return self.resolve(name, RecordType.AAAA)

    def get_txt_record(self, name: str) -> QueryResult:
        return self.resolve(name, RecordType.TXT)


_instance: Optional[ResolverContext] = None
_instance_lock = threading.Lock()


def default_context() -> ResolverContext:
    """Return the process-wide ResolverContext, creating it on first use."""

    global _instance
    with _instance_lock:
        if _instance is None:
            _instance = ResolverContext()
        return _instance


def close_default_context() -> None:
    """Close and forget the process-wide context, if one was created."""

    global _instance
    with _instance_lock:
        ctx, _instance = _instance, None
    if ctx is not None:
        ctx.close()


atexit.register(close_default_context)


def create_context(
    dns_public: Optional[str] = None,
    *,
    trust_anchors: Sequence[str] = (),
    **kwargs,
) -> ResolverContext:
    """Build an independent ResolverContext that shares nothing with the default."""

    return ResolverContext(dns_public, trust_anchors=trust_anchors, **kwargs)
