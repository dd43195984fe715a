"""
Brief: Shared pytest fixtures: per-test timeout, a signed test DNS hierarchy
and a fake stub resolver that serves it.

Inputs:
  - None

Outputs:
  - None
"""

import datetime
import os
import signal
import sys

import dns.dnssec
import dns.message
import dns.name
import dns.rdataclass
import dns.rdatatype
import dns.resolver
import dns.rrset
import pytest
from cryptography.hazmat.primitives.asymmetric import ec

# Ensure 'src' is on sys.path so 'dnsquorum' package is importable in tests
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC_DIR = os.path.join(ROOT, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from dnsquorum import resolver as resolver_mod  # noqa: E402


def _alarm_handler(signum, frame):
    """
    Brief: Signal handler that raises TimeoutError when alarm triggers.

    Inputs:
      - signum: signal number (int)
      - frame: current frame (ignored)

    Outputs:
      - None: Raises TimeoutError to fail the test
    """
    raise TimeoutError("Test exceeded 10 seconds")


if hasattr(signal, "SIGALRM"):
    signal.signal(signal.SIGALRM, _alarm_handler)


@pytest.fixture(autouse=True)
def enforce_test_timeout():
    """
    Brief: Enforce a hard 10-second timeout for each test.

    Inputs:
      - None

    Outputs:
      - None: Cancels alarm after test
    """
    if hasattr(signal, "SIGALRM"):
        signal.alarm(10)
        try:
            yield
        finally:
            signal.alarm(0)
    else:
        yield


@pytest.fixture(autouse=True)
def reset_default_context():
    """
    Brief: Drop the process-wide ResolverContext between tests.

    Inputs:
      - None

    Outputs:
      - None
    """
    resolver_mod.close_default_context()
    yield
    resolver_mod.close_default_context()


class TestZone:
    """A zone with one ECDSA P-256 key used as both KSK and ZSK."""

    __test__ = False

    def __init__(self, name: str) -> None:
        self.name = dns.name.from_text(name)
        self.key = ec.generate_private_key(ec.SECP256R1())
        self.dnskey = dns.dnssec.make_dnskey(
            self.key.public_key(), dns.dnssec.Algorithm.ECDSAP256SHA256, flags=257
        )
        self.dnskey_rrset = dns.rrset.from_rdata(self.name, 3600, self.dnskey)
        self.ds = dns.dnssec.make_ds(self.name, self.dnskey, "SHA256")

    def sign(self, rrset: dns.rrset.RRset) -> dns.rrset.RRset:
        now = datetime.datetime.now(datetime.timezone.utc)
        rrsig = dns.dnssec.sign(
            rrset,
            self.key,
            signer=self.name,
            dnskey=self.dnskey,
            inception=now - datetime.timedelta(hours=1),
            expiration=now + datetime.timedelta(days=1),
        )
        return dns.rrset.from_rdata(rrset.name, rrset.ttl, rrsig)

    def ds_anchor(self) -> str:
        return f"{self.name.to_text()} IN DS {self.ds.to_text()}"


class FakeStubResolver:
    """Serves canned answers through dnspython's Resolver.resolve() API.

    Answers are registered per (name, rdtype) as lists of RRsets. Names with
    no registration at all produce NXDOMAIN; known names with nothing for the
    requested type produce an empty (NODATA) answer.
    """

    def __init__(self) -> None:
        self.answers = {}
        self.calls = []
        self.fail_names = set()

    def add(self, name, rdtype, *rrsets) -> None:
        key = (dns.name.from_text(name) if isinstance(name, str) else name, rdtype)
        self.answers.setdefault(key, []).extend(rrsets)

    def known(self, name) -> None:
        self.add(name, dns.rdatatype.NONE)

    def resolve(self, qname, rdtype, tcp=False, raise_on_no_answer=True):
        self.calls.append((qname, rdtype, tcp))
        if qname in self.fail_names:
            raise dns.resolver.NoNameservers()
        if not any(name == qname for name, _ in self.answers):
            raise dns.resolver.NXDOMAIN(qnames=[qname])
        query = dns.message.make_query(qname, rdtype, want_dnssec=True)
        response = dns.message.make_response(query)
        for rrset in self.answers.get((qname, rdtype), []):
            response.answer.append(rrset)
        response = dns.message.from_wire(response.to_wire())

        class _Answer:
            pass

        answer = _Answer()
        answer.response = response
        return answer


class SignedHierarchy:
    """Root -> test. -> example.test. chain plus an unsigned plain.test."""

    __test__ = False

    def __init__(self) -> None:
        self.root = TestZone(".")
        self.tld = TestZone("test.")
        self.zone = TestZone("example.test.")
        self.resolver = FakeStubResolver()

        r = self.resolver
        r.add(".", dns.rdatatype.DNSKEY, self.root.dnskey_rrset, self.root.sign(self.root.dnskey_rrset))

        tld_ds = dns.rrset.from_rdata(self.tld.name, 3600, self.tld.ds)
        r.add("test.", dns.rdatatype.DS, tld_ds, self.root.sign(tld_ds))
        r.add("test.", dns.rdatatype.DNSKEY, self.tld.dnskey_rrset, self.tld.sign(self.tld.dnskey_rrset))

        zone_ds = dns.rrset.from_rdata(self.zone.name, 3600, self.zone.ds)
        r.add("example.test.", dns.rdatatype.DS, zone_ds, self.tld.sign(zone_ds))
        r.add(
            "example.test.",
            dns.rdatatype.DNSKEY,
            self.zone.dnskey_rrset,
            self.zone.sign(self.zone.dnskey_rrset),
        )

        # Unsigned delegation: no DS published for plain.test.
        r.known("plain.test.")

    def anchor(self) -> str:
        return self.root.ds_anchor()

    def add_signed_txt(self, name: str, *texts: str, signer=None) -> None:
        rrset = dns.rrset.from_text_list(
            name, 300, "IN", "TXT", [f'"{t}"' for t in texts]
        )
        zone = signer or self.zone
        self.resolver.add(name, dns.rdatatype.TXT, rrset, zone.sign(rrset))

    def add_tampered_txt(self, name: str, signed_text: str, served_text: str) -> None:
        signed = dns.rrset.from_text_list(name, 300, "IN", "TXT", [f'"{signed_text}"'])
        served = dns.rrset.from_text_list(name, 300, "IN", "TXT", [f'"{served_text}"'])
        self.resolver.add(name, dns.rdatatype.TXT, served, self.zone.sign(signed))

    def add_unsigned(self, name: str, rdtype: str, *rdatas: str) -> None:
        rrset = dns.rrset.from_text_list(name, 300, "IN", rdtype, list(rdatas))
        self.resolver.add(name, dns.rdatatype.from_text(rdtype), rrset)


@pytest.fixture
def hierarchy():
    """
    Brief: Fresh signed hierarchy with its own FakeStubResolver.

    Outputs:
      - SignedHierarchy instance.
    """
    return SignedHierarchy()
