"""DNSSEC trust anchors and chain-of-trust validation helpers."""

from .trust_anchors import ROOT_DS_STR, builtin_anchors, parse_anchor
from .validator import Verdict, classify_answer, validate_zone_keys

__all__ = [
    "ROOT_DS_STR",
    "Verdict",
    "builtin_anchors",
    "classify_answer",
    "parse_anchor",
    "validate_zone_keys",
]
