"""DNSSEC chain-of-trust walk and answer classification.

Brief:
  Given a fetch callable that returns (rrset, covering RRSIG rrset) pairs for
  a name/type, this module walks DS/DNSKEY delegations from a configured
  trust anchor down to the zone that signed an answer, then verifies the
  answer's signatures with the validated zone keys.

  Verdicts follow the usual validating-resolver vocabulary:
    - SECURE: every RRset in the answer chain validates to a trust anchor.
    - BOGUS: DNSSEC material is present but does not validate.
    - INSECURE: the answer is unsigned, or lies below a provably unsigned
      delegation; no verdict either way.
"""

from __future__ import annotations

import enum
import logging
from typing import Callable, Dict, List, Optional, Tuple

import dns.dnssec
import dns.message
import dns.name
import dns.rdataclass
import dns.rdatatype
import dns.rrset

from .trust_anchors import anchor_matched_keys, closest_anchor, ds_matched_keys

logger = logging.getLogger("dnsquorum.dnssec")

SignedRRset = Tuple[Optional[dns.rrset.RRset], Optional[dns.rrset.RRset]]
Fetcher = Callable[[dns.name.Name, int], SignedRRset]

_MAX_CNAME_HOPS = 16

_DNSSEC_TYPES = (
    dns.rdatatype.DNSKEY,
    dns.rdatatype.DS,
    dns.rdatatype.RRSIG,
    dns.rdatatype.NSEC,
    dns.rdatatype.NSEC3,
)


class Verdict(str, enum.Enum):
    SECURE = "secure"
    BOGUS = "bogus"
    INSECURE = "insecure"


ZoneKeys = Tuple[Verdict, Optional[dns.rrset.RRset]]


def signed_rrset(
    msg: dns.message.Message, owner: dns.name.Name, rdtype: int
) -> SignedRRset:
    """Brief: Pick an RRset and its covering RRSIG out of the answer section.

    Inputs:
      - msg: Parsed response.
      - owner: Owner name to look for.
      - rdtype: Covered record type.

    Outputs:
      - (rrset, sig_rrset); either may be None.
    """

    rrset = None
    sig = None
    for candidate in msg.answer:
        if candidate.name != owner or candidate.rdclass != dns.rdataclass.IN:
            continue
        if candidate.rdtype == rdtype:
            rrset = candidate
        elif candidate.rdtype == dns.rdatatype.RRSIG and candidate.covers == rdtype:
            sig = candidate
    return rrset, sig


def message_has_dnssec_rr(msg: dns.message.Message) -> bool:
    """Return True if answer or authority carry any DNSSEC record type."""

    for section in (msg.answer, msg.authority):
        for rrset in section:
            if rrset.rdtype in _DNSSEC_TYPES:
                return True
    return False


def collect_answer_chain(
    msg: dns.message.Message, qname: dns.name.Name, rdtype: int
) -> Optional[List[SignedRRset]]:
    """Brief: Follow CNAMEs from qname to the RRset of the requested type.

    Inputs:
      - msg: Parsed response.
      - qname: Original query name.
      - rdtype: Requested record type.

    Outputs:
      - List of (rrset, sig_rrset) pairs, CNAME links first and the final
        RRset last, or None when the response holds no positive answer.
    """

    chain: List[SignedRRset] = []
    owner = qname
    for _ in range(_MAX_CNAME_HOPS):
        rrset, sig = signed_rrset(msg, owner, rdtype)
        if rrset is not None:
            chain.append((rrset, sig))
            return chain
        cname, cname_sig = signed_rrset(msg, owner, dns.rdatatype.CNAME)
        if cname is None:
            return None
        chain.append((cname, cname_sig))
        owner = cname[0].target
    logger.debug("CNAME chain for %s exceeded %d hops", qname, _MAX_CNAME_HOPS)
    return None


def _trusted_anchor_keys(
    fetch: Fetcher, owner: dns.name.Name, anchor: dns.rrset.RRset
) -> ZoneKeys:
    dnskey, sig = fetch(owner, dns.rdatatype.DNSKEY)
    if dnskey is None or sig is None:
        logger.debug("Missing signed DNSKEY RRset at trust anchor %s", owner)
        return Verdict.BOGUS, None
    trusted = anchor_matched_keys(owner, anchor, dnskey)
    if trusted is None:
        logger.debug("No DNSKEY at %s matches the configured trust anchor", owner)
        return Verdict.BOGUS, None
    # The RRSIG must come from an anchored key, not any key in the set.
    try:
        dns.dnssec.validate(dnskey, sig, {owner: trusted})
    except dns.dnssec.ValidationFailure as exc:
        logger.debug("DNSKEY self-signature at %s failed: %s", owner, exc)
        return Verdict.BOGUS, None
    return Verdict.SECURE, dnskey


def validate_zone_keys(
    fetch: Fetcher,
    anchors: Dict[dns.name.Name, dns.rrset.RRset],
    apex: dns.name.Name,
) -> ZoneKeys:
    """Brief: Establish a validated DNSKEY RRset for apex.

    Inputs:
      - fetch: Callable returning (rrset, sig_rrset) for a name/type.
      - anchors: Trust anchors keyed by owner name (DS or DNSKEY rrsets).
      - apex: Zone whose keys are wanted (normally an RRSIG signer name).

    Outputs:
      - (Verdict.SECURE, dnskey_rrset) when the chain validates.
      - (Verdict.INSECURE, None) when no anchor covers apex or a delegation on
        the way down publishes no DS.
      - (Verdict.BOGUS, None) when any link fails to validate.

    Notes:
      - Names between the anchor and apex that return no DS are assumed to be
        inside their parent zone rather than delegations, so the walk simply
        continues with the parent keys.
    """

    anchor_owner = closest_anchor(anchors, apex)
    if anchor_owner is None:
        logger.debug("No trust anchor encloses %s", apex)
        return Verdict.INSECURE, None

    verdict, parent_keys = _trusted_anchor_keys(
        fetch, anchor_owner, anchors[anchor_owner]
    )
    if verdict is not Verdict.SECURE:
        return verdict, None

    parent = anchor_owner
    labels = []
    cur = apex
    while cur != anchor_owner:
        labels.append(cur)
        cur = cur.parent()

    for child in reversed(labels):
        ds, ds_sig = fetch(child, dns.rdatatype.DS)
        if ds is None:
            if child == apex:
                logger.debug("No DS for %s; delegation is insecure", child)
                return Verdict.INSECURE, None
            continue
        if ds_sig is None:
            logger.debug("Unsigned DS RRset for %s", child)
            return Verdict.BOGUS, None
        try:
            dns.dnssec.validate(ds, ds_sig, {parent: parent_keys})
        except dns.dnssec.ValidationFailure as exc:
            logger.debug("DS(%s) signature from %s failed: %s", child, parent, exc)
            return Verdict.BOGUS, None

        dnskey, dnskey_sig = fetch(child, dns.rdatatype.DNSKEY)
        if dnskey is None or dnskey_sig is None:
            logger.debug("Missing signed DNSKEY RRset for %s", child)
            return Verdict.BOGUS, None
        trusted = ds_matched_keys(child, ds, dnskey)
        if trusted is None:
            logger.debug("No DS/DNSKEY match for %s", child)
            return Verdict.BOGUS, None
        try:
            dns.dnssec.validate(dnskey, dnskey_sig, {child: trusted})
        except dns.dnssec.ValidationFailure as exc:
            logger.debug("DNSKEY self-signature for %s failed: %s", child, exc)
            return Verdict.BOGUS, None

        parent = child
        parent_keys = dnskey

    logger.debug("Validated chain of trust from %s to %s", anchor_owner, apex)
    return Verdict.SECURE, parent_keys


def classify_answer(
    msg: dns.message.Message,
    qname: dns.name.Name,
    rdtype: int,
    zone_keys: Callable[[dns.name.Name], ZoneKeys],
) -> Verdict:
    """Brief: Classify a response as SECURE, BOGUS or INSECURE.

    Inputs:
      - msg: Parsed response for qname/rdtype, fetched with the DO bit set.
      - qname: Query name.
      - rdtype: Query type.
      - zone_keys: Callable mapping a signer name to the result of
        validate_zone_keys (usually cached by the caller).

    Outputs:
      - Verdict.

    Notes:
      - Negative answers (NXDOMAIN/NODATA) carry no data to trust and their
        NSEC/NSEC3 proofs are not checked; they are reported as INSECURE.
    """

    chain = collect_answer_chain(msg, qname, rdtype)
    if chain is None:
        return Verdict.INSECURE

    sigs = [sig for _, sig in chain if sig is not None]
    if not sigs:
        return Verdict.BOGUS if message_has_dnssec_rr(msg) else Verdict.INSECURE
    if len(sigs) != len(chain):
        logger.debug("Answer chain for %s is only partially signed", qname)
        return Verdict.BOGUS

    verdict = Verdict.SECURE
    for rrset, sig in chain:
        signer = sig[0].signer
        if not rrset.name.is_subdomain(signer):
            logger.debug("RRSIG signer %s is not authoritative for %s", signer, rrset.name)
            return Verdict.BOGUS
        key_verdict, keys = zone_keys(signer)
        if key_verdict is Verdict.BOGUS:
            return Verdict.BOGUS
        if key_verdict is Verdict.INSECURE:
            verdict = Verdict.INSECURE
            continue
        try:
            dns.dnssec.validate(rrset, sig, {signer: keys})
        except dns.dnssec.ValidationFailure as exc:
            logger.debug("Signature on %s failed: %s", rrset.name, exc)
            return Verdict.BOGUS
    return verdict
