"""Validating resolver engine used by ResolverContext.

Brief:
  ValidatingResolver wraps a dnspython stub resolver configured for DNSSEC
  (EDNS0 with DO and CD set, TCP only) and the chain-of-trust walk in
  dnsquorum.dnssec. It answers "resolve one name, one type" with the raw
  rdata payloads plus secure/bogus flags, the same shape a libunbound-style
  validating resolver reports.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

try:  # Ensure the crypto backend dnspython needs for DNSSEC is importable.
    import importlib.util as _importlib_util

    if _importlib_util.find_spec("cryptography") is None:
        raise ImportError("No module named 'cryptography'")
except ImportError as exc:  # pragma: no cover - only when dependency is missing
    logging.getLogger("dnsquorum.dnssec").critical(
        "The 'cryptography' package is required for DNSSEC validation but is not installed: %s",
        exc,
    )
    raise

import dns.exception
import dns.flags
import dns.name
import dns.rcode
import dns.rdatatype
import dns.resolver
import dns.rrset
from cachetools import TTLCache, cachedmethod

from .dnssec.trust_anchors import anchors_by_zone
from .dnssec.validator import (
    SignedRRset,
    Verdict,
    ZoneKeys,
    classify_answer,
    collect_answer_chain,
    signed_rrset,
    validate_zone_keys,
)

logger = logging.getLogger("dnsquorum.dns")


class ResolutionError(Exception):
    """Raised when the engine cannot obtain an answer at all."""


@dataclass(frozen=True)
class EngineResult:
    """Raw outcome of one engine query.

    Inputs/fields:
      - rcode: DNS response code.
      - data: Wire-format rdata of each record in the final answer RRset.
      - secure: Answer validated to a trust anchor.
      - bogus: Answer carried DNSSEC material that failed validation.
    """

    rcode: int
    data: Tuple[bytes, ...] = ()
    secure: bool = False
    bogus: bool = False

    @property
    def havedata(self) -> bool:
        return bool(self.data)


def _parse_resolv_conf_nameservers(path: str = "/etc/resolv.conf") -> List[str]:
    """Brief: Best-effort parse of nameserver entries from a resolv.conf file.

    Inputs:
      - path: Filesystem path to a resolv.conf-format file.

    Outputs:
      - List of nameserver IP strings in the order encountered; empty when
        the file cannot be read.
    """

    servers: List[str] = []
    try:
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                raw = line.split("#", 1)[0].strip()
                parts = raw.split()
                if len(parts) >= 2 and parts[0].lower() == "nameserver":
                    servers.append(parts[1])
    except OSError:
        return []
    return servers


def _stub_resolver(
    nameservers: Optional[Sequence[str]], lifetime: float, payload_size: int
) -> dns.resolver.Resolver:
    if nameservers:
        r = dns.resolver.Resolver(configure=False)
        r.nameservers = list(nameservers)
    else:
        try:
            r = dns.resolver.Resolver(configure=True)
        except dns.exception.DNSException as exc:  # pragma: no cover - host specific
            logger.warning(
                "Could not parse system resolv.conf; falling back to nameserver-only config: %s",
                exc,
            )
            r = dns.resolver.Resolver(configure=False)
            r.nameservers = _parse_resolv_conf_nameservers() or ["127.0.0.1"]
    # DO asks for signatures; CD keeps a validating upstream from turning
    # bogus data into SERVFAIL so the verdict is made here.
    r.use_edns(edns=0, ednsflags=dns.flags.DO, payload=payload_size)
    r.flags = dns.flags.RD | dns.flags.CD
    r.lifetime = float(lifetime)
    return r


class ValidatingResolver:
    """Owner of one stub resolver plus its trust anchors and key cache.

    Inputs:
      - nameservers: Optional forwarder IPs. None uses the system resolvers.
      - lifetime: Total seconds allowed per query (dnspython lifetime).
      - payload_size: EDNS0 payload size advertised to upstreams.
      - resolver: Optional pre-built object with dnspython's
        ``resolve(qname, rdtype, tcp=..., raise_on_no_answer=...)`` API;
        used by tests.

    Example:
      >>> engine = ValidatingResolver(["9.9.9.9"])
      >>> engine.add_trust_anchor(". IN DS 20326 8 2 E06D...")
      >>> engine.resolve("example.com.", 16).secure
    """

    def __init__(
        self,
        nameservers: Optional[Sequence[str]] = None,
        *,
        lifetime: float = 5.0,
        payload_size: int = 1232,
        resolver=None,
    ) -> None:
        self._nameservers = tuple(nameservers or ())
        self._resolver = (
            resolver
            if resolver is not None
            else _stub_resolver(self._nameservers, lifetime, payload_size)
        )
        self._anchor_texts: List[str] = []
        self._anchors: Dict[dns.name.Name, dns.rrset.RRset] = {}
        self._key_cache: TTLCache = TTLCache(maxsize=1024, ttl=900)
        self._lock = threading.Lock()

    @property
    def nameservers(self) -> Tuple[str, ...]:
        return self._nameservers

    @property
    def trust_anchors(self) -> Tuple[str, ...]:
        return tuple(self._anchor_texts)

    @property
    def closed(self) -> bool:
        return self._resolver is None

    def add_trust_anchor(self, text: str) -> None:
        """Install a DS or DNSKEY trust anchor given in presentation form."""

        texts = self._anchor_texts + [text.strip()]
        self._anchors = anchors_by_zone(texts)
        self._anchor_texts = texts
        with self._lock:
            self._key_cache.clear()

    def close(self) -> None:
        """Release the stub resolver and cached keys. Safe to call twice."""

        self._resolver = None
        with self._lock:
            self._key_cache.clear()

    def _query(self, qname: dns.name.Name, rdtype: int):
        resolver = self._resolver
        if resolver is None:
            raise ResolutionError("resolver has been closed")
        return resolver.resolve(qname, rdtype, tcp=True, raise_on_no_answer=False)

    def _fetch_signed(self, name: dns.name.Name, rdtype: int) -> SignedRRset:
        try:
            answer = self._query(name, rdtype)
        except dns.resolver.NXDOMAIN:
            return None, None
        return signed_rrset(answer.response, name, rdtype)

    @cachedmethod(lambda self: self._key_cache, lock=lambda self: self._lock)
    def _zone_keys(self, apex: dns.name.Name) -> ZoneKeys:
        return validate_zone_keys(self._fetch_signed, self._anchors, apex)

    def resolve(self, name: str, rdtype: int) -> EngineResult:
        """Brief: Resolve name/rdtype over TCP and validate the answer.

        Inputs:
          - name: Query name (relative names are made absolute).
          - rdtype: Numeric record type.

        Outputs:
          - EngineResult with the final RRset's rdata and the DNSSEC verdict.

        Raises:
          - ResolutionError when no answer could be obtained or validation
            lookups failed at the transport level.
        """

        try:
            qname = dns.name.from_text(name)
        except dns.exception.DNSException as exc:
            raise ResolutionError(f"invalid name {name!r}: {exc}") from exc

        try:
            answer = self._query(qname, rdtype)
        except dns.resolver.NXDOMAIN:
            return EngineResult(rcode=dns.rcode.NXDOMAIN)
        except dns.exception.DNSException as exc:
            raise ResolutionError(
                f"{dns.rdatatype.to_text(rdtype)} lookup for {qname} failed: {exc}"
            ) from exc

        msg = answer.response
        chain = collect_answer_chain(msg, qname, rdtype)
        data: Tuple[bytes, ...] = ()
        if chain:
            data = tuple(rdata.to_wire() for rdata in chain[-1][0])

        try:
            verdict = classify_answer(msg, qname, rdtype, self._zone_keys)
        except dns.exception.DNSException as exc:
            raise ResolutionError(
                f"DNSSEC validation lookups for {qname} failed: {exc}"
            ) from exc

        return EngineResult(
            rcode=msg.rcode(),
            data=data,
            secure=verdict is Verdict.SECURE,
            bogus=verdict is Verdict.BOGUS,
        )
