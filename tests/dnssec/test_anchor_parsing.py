"""Brief: Tests for trust anchor parsing and DS/DNSKEY matching.

Inputs:
  - None

Outputs:
  - None (pytest assertions)
"""

import dns.name
import dns.rdatatype
import dns.rrset
import pytest

from dnsquorum.dnssec.trust_anchors import (
    ROOT_DS_STR,
    anchor_matched_keys,
    anchors_by_zone,
    builtin_anchors,
    closest_anchor,
    ds_matched_keys,
    parse_anchor,
)


def test_root_anchor_parses():
    """Brief: The baked-in root DS is key tag 20326, RSASHA256, SHA-256.

    Outputs:
      - None; asserts parsed DS fields.
    """

    anchor = parse_anchor(ROOT_DS_STR)
    assert anchor.name == dns.name.root
    assert anchor.rdtype == dns.rdatatype.DS
    ds = anchor[0]
    assert (ds.key_tag, ds.algorithm, ds.digest_type) == (20326, 8, 2)
    assert ds.digest.hex().upper().startswith("E06D44B8")
    assert builtin_anchors() == [ROOT_DS_STR]


def test_anchor_with_ttl_and_without_class(hierarchy):
    ds_text = hierarchy.zone.ds.to_text()
    with_ttl = parse_anchor(f"example.test. 3600 IN DS {ds_text}")
    bare = parse_anchor(f"example.test. DS {ds_text}")
    assert with_ttl[0] == bare[0]


def test_dnskey_anchor(hierarchy):
    text = f"example.test. IN DNSKEY {hierarchy.zone.dnskey.to_text()}"
    anchor = parse_anchor(text)
    assert anchor.rdtype == dns.rdatatype.DNSKEY
    matched = anchor_matched_keys(hierarchy.zone.name, anchor, hierarchy.zone.dnskey_rrset)
    assert matched == hierarchy.zone.dnskey_rrset


@pytest.mark.parametrize(
    "text",
    [
        "",
        ". IN",
        ". IN A 192.0.2.1",
        ". IN DS 20326 8 2 nothex",
        "example. 300 IN TXT hello",
    ],
)
def test_parse_anchor_rejects_invalid_lines(text):
    with pytest.raises(ValueError):
        parse_anchor(text)


def test_anchors_by_zone_merges_and_prefers_ds(hierarchy):
    """Brief: Same-type anchors merge; a DS anchor replaces a DNSKEY one.

    Outputs:
      - None; asserts the grouped anchor sets.
    """

    zone = hierarchy.zone
    dnskey_text = f"example.test. IN DNSKEY {zone.dnskey.to_text()}"
    other_ds = f"example.test. IN DS {hierarchy.tld.ds.to_text()}"
    anchors = anchors_by_zone([dnskey_text, zone.ds_anchor(), other_ds, ROOT_DS_STR])
    assert set(anchors) == {dns.name.root, zone.name}
    assert anchors[zone.name].rdtype == dns.rdatatype.DS
    assert len(anchors[zone.name]) == 2


def test_closest_anchor_picks_deepest_enclosing_zone(hierarchy):
    anchors = anchors_by_zone([ROOT_DS_STR, hierarchy.zone.ds_anchor()])
    deep = dns.name.from_text("a.b.example.test.")
    assert closest_anchor(anchors, deep) == hierarchy.zone.name
    assert closest_anchor(anchors, dns.name.from_text("plain.test.")) == dns.name.root
    assert closest_anchor({}, deep) is None


def test_ds_matches_only_the_hashed_key(hierarchy):
    zone = hierarchy.zone
    ds_rrset = parse_anchor(zone.ds_anchor())
    assert ds_matched_keys(zone.name, ds_rrset, zone.dnskey_rrset) == zone.dnskey_rrset
    assert ds_matched_keys(zone.name, ds_rrset, hierarchy.tld.dnskey_rrset) is None
    # Same key under another owner hashes differently.
    assert ds_matched_keys(hierarchy.tld.name, ds_rrset, zone.dnskey_rrset) is None


def test_matched_keys_exclude_unvouched_keys(hierarchy):
    """Brief: Extra keys published beside the DS-matched key are left out.

    Inputs:
      - hierarchy: signed test tree fixture.

    Outputs:
      - None; asserts only the DS-matched key is returned.
    """

    zone = hierarchy.zone
    extra = type(zone)(zone.name.to_text())
    published = dns.rrset.from_rdata(zone.name, 3600, zone.dnskey, extra.dnskey)
    matched = ds_matched_keys(zone.name, parse_anchor(zone.ds_anchor()), published)
    assert list(matched) == [zone.dnskey]

    dnskey_anchor = parse_anchor(f"example.test. IN DNSKEY {zone.dnskey.to_text()}")
    assert list(anchor_matched_keys(zone.name, dnskey_anchor, published)) == [zone.dnskey]
