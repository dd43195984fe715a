from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

import dns.dnssec
import dns.exception
import dns.name
import dns.rdata
import dns.rdataclass
import dns.rdatatype
import dns.rrset

logger = logging.getLogger("dnsquorum.dnssec")

# Root zone KSK-2017 (key tag 20326, RSASHA256) as published by IANA in
# https://data.iana.org/root-anchors/root-anchors.xml. Must be updated if the
# root key rolls over.
ROOT_DS_STR = (
    ". IN DS 20326 8 2 "
    "E06D44B80B8F1D39A95C0B0D7C65D08458E880409BBC683457104237C7F8EC8D"
)


def builtin_anchors() -> List[str]:
    """Return the baked-in trust anchors in presentation form."""

    return [ROOT_DS_STR]


def parse_anchor(text: str) -> dns.rrset.RRset:
    """Brief: Parse a DS or DNSKEY trust anchor from one presentation line.

    Inputs:
      - text: Line such as ". IN DS 20326 8 2 E06D..." or
        "example. 3600 IN DNSKEY 257 3 13 ...". TTL and class are optional.

    Outputs:
      - dns.rrset.RRset holding the single anchor rdata.

    Raises:
      - ValueError when the line is not a DS or DNSKEY record.
    """

    tokens = text.split()
    if len(tokens) < 3:
        raise ValueError(f"Malformed trust anchor: {text!r}")

    owner = dns.name.from_text(tokens[0])
    rest = tokens[1:]
    if rest and rest[0].isdigit():
        rest = rest[1:]
    if rest and rest[0].upper() == "IN":
        rest = rest[1:]
    if not rest or rest[0].upper() not in ("DS", "DNSKEY"):
        raise ValueError(f"Trust anchor must be a DS or DNSKEY record: {text!r}")

    rdtype = dns.rdatatype.from_text(rest[0].upper())
    try:
        rdata = dns.rdata.from_text(dns.rdataclass.IN, rdtype, " ".join(rest[1:]))
    except dns.exception.DNSException as exc:
        raise ValueError(f"Malformed trust anchor: {text!r}: {exc}") from exc
    return dns.rrset.from_rdata(owner, 0, rdata)


def anchors_by_zone(texts: Iterable[str]) -> Dict[dns.name.Name, dns.rrset.RRset]:
    """Group parsed anchors by owner name and rdata type.

    DS and DNSKEY anchors for the same owner are kept apart; the DS set wins
    when both are configured.
    """

    out: Dict[dns.name.Name, dns.rrset.RRset] = {}
    for text in texts:
        anchor = parse_anchor(text)
        existing = out.get(anchor.name)
        if existing is not None and existing.rdtype == anchor.rdtype:
            existing.union_update(anchor)
        elif existing is None or anchor.rdtype == dns.rdatatype.DS:
            out[anchor.name] = anchor
    return out


def closest_anchor(
    anchors: Dict[dns.name.Name, dns.rrset.RRset], qname: dns.name.Name
) -> Optional[dns.name.Name]:
    """Return the deepest anchored zone that encloses qname, if any."""

    best: Optional[dns.name.Name] = None
    for owner in anchors:
        if qname.is_subdomain(owner):
            if best is None or len(owner) > len(best):
                best = owner
    return best


def ds_matched_keys(
    owner: dns.name.Name,
    ds_rrset: dns.rrset.RRset,
    dnskey_rrset: dns.rrset.RRset,
) -> Optional[dns.rrset.RRset]:
    """Brief: Collect the DNSKEYs that hash to one of the DS records.

    Inputs:
      - owner: Zone apex the keys belong to.
      - ds_rrset: DS records from the parent zone (or a trust anchor).
      - dnskey_rrset: The zone's DNSKEY RRset.

    Outputs:
      - RRset holding only the matching keys, or None when no key matches.
        Only these keys may vouch for the rest of the DNSKEY RRset.
    """

    matched = dns.rrset.RRset(owner, dns.rdataclass.IN, dns.rdatatype.DNSKEY)
    for ds in ds_rrset:
        try:
            digest_type = dns.dnssec.DSDigest(ds.digest_type)
        except ValueError:
            continue
        for dnskey in dnskey_rrset:
            if dns.dnssec.key_id(dnskey) != ds.key_tag:
                continue
            try:
                computed = dns.dnssec.make_ds(owner, dnskey, digest_type)
            except Exception as exc:
                logger.debug("DS digest %s unavailable for %s: %s", digest_type, owner, exc)
                continue
            if computed.digest == ds.digest and computed.algorithm == ds.algorithm:
                matched.add(dnskey, dnskey_rrset.ttl)
    return matched if len(matched) else None


def anchor_matched_keys(
    owner: dns.name.Name,
    anchor: dns.rrset.RRset,
    dnskey_rrset: dns.rrset.RRset,
) -> Optional[dns.rrset.RRset]:
    """Return the live DNSKEYs that a configured DS or DNSKEY anchor vouches for."""

    if anchor.rdtype == dns.rdatatype.DS:
        return ds_matched_keys(owner, anchor, dnskey_rrset)
    matched = dns.rrset.RRset(owner, dns.rdataclass.IN, dns.rdatatype.DNSKEY)
    for rdata in anchor:
        if rdata in dnskey_rrset:
            matched.add(rdata, dnskey_rrset.ttl)
    return matched if len(matched) else None
