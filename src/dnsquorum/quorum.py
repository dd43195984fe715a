"""Cross-source agreement on TXT records published under several hostnames.

Brief:
  load_txt_records_from_dns() resolves the same TXT data under every
  configured hostname in parallel, throws away any answer that is not
  DNSSEC-valid, and accepts a record set only when two sources agree on it
  (or, with a single configured hostname, when that one source validated).
"""

from __future__ import annotations

import concurrent.futures
import logging
import secrets
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .resolver import QueryResult, ResolverContext, default_context

logger = logging.getLogger("dnsquorum.dns")


@dataclass(frozen=True)
class QuorumOutcome:
    """Result of one quorum lookup; truthy when accepted."""

    accepted: bool
    records: Tuple[str, ...] = ()

    def __bool__(self) -> bool:
        return self.accepted


REJECTED = QuorumOutcome(accepted=False)


def dns_records_match(a: Sequence[str], b: Sequence[str]) -> bool:
    """Order-independent comparison of two record sets of equal length."""

    if len(a) != len(b):
        return False
    return all(record in b for record in a)


def _resolve_all(
    ctx: ResolverContext,
    hostnames: Sequence[str],
    executor: Optional[Executor],
    max_workers: Optional[int],
) -> List[QueryResult]:
    results: List[QueryResult] = [QueryResult.empty()] * len(hostnames)

    def _job(n: int) -> None:
        results[n] = ctx.get_txt_record(hostnames[n])

    def _submit_and_wait(pool: Executor) -> None:
        futures = {pool.submit(_job, n): n for n in range(len(hostnames))}
        concurrent.futures.wait(futures)
        for fut, n in futures.items():
            exc = fut.exception()
            if exc is not None:
                logger.warning("TXT lookup for %s raised: %s", hostnames[n], exc)
                results[n] = QueryResult.empty()

    if executor is not None:
        _submit_and_wait(executor)
    else:
        workers = max_workers or len(hostnames)
        with ThreadPoolExecutor(max_workers=min(workers, len(hostnames))) as pool:
            _submit_and_wait(pool)
    return results


def load_txt_records_from_dns(
    dns_urls: Sequence[str],
    *,
    context: Optional[ResolverContext] = None,
    executor: Optional[Executor] = None,
    max_workers: Optional[int] = None,
) -> QuorumOutcome:
    """Brief: Fetch TXT records from every hostname and apply the quorum rule.

    Inputs:
      - dns_urls: Hostnames publishing the same TXT data.
      - context: ResolverContext to query through; defaults to the shared one.
      - executor: Optional pool to run lookups on. When omitted a pool is
        created for this call.
      - max_workers: Size of the per-call pool (defaults to one per hostname).

    Outputs:
      - QuorumOutcome. With one hostname, its DNSSEC-valid records are
        accepted. With several, the first pair (i < j) of non-empty, matching
        record sets is accepted. Everything else is rejected.
    """

    # Nothing configured means nothing to trust.
    if not dns_urls:
        return REJECTED

    ctx = context if context is not None else default_context()
    results = _resolve_all(ctx, dns_urls, executor, max_workers)
    records: List[List[str]] = [list(r.records) for r in results]

    first_index = secrets.randbelow(len(dns_urls))
    for step in range(len(dns_urls)):
        cur = (first_index + step) % len(dns_urls)
        url = dns_urls[cur]
        if not results[cur].dnssec_available:
            records[cur] = []
            logger.debug("DNSSEC not available for hostname: %s, skipping.", url)
        if not results[cur].dnssec_valid:
            records[cur] = []
            logger.debug("DNSSEC validation failed for hostname: %s, skipping.", url)

    if not any(records):
        logger.info("Unable to find valid DNS record")
        return REJECTED

    # Single source: DNSSEC validity alone decides.
    if len(dns_urls) == 1:
        return QuorumOutcome(accepted=True, records=tuple(records[0]))

    for i in range(len(records) - 1):
        if not records[i]:
            continue
        for j in range(i + 1, len(records)):
            if records[j] and dns_records_match(records[i], records[j]):
                logger.debug(
                    "TXT records from %s and %s agree", dns_urls[i], dns_urls[j]
                )
                return QuorumOutcome(accepted=True, records=tuple(records[i]))

    logger.warning("No two DNS TXT record sets matched")
    return REJECTED
