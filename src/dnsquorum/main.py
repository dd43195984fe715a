from __future__ import annotations

import argparse
import logging
import sys
from typing import Callable, List, Optional, Sequence

from .config import ConfigError, init_logging, load_config
from .openalias import get_account_address_as_str_from_url
from .quorum import load_txt_records_from_dns
from .records import RecordType
from .resolver import ResolverContext

logger = logging.getLogger("dnsquorum.main")


def make_interactive_confirm(
    *,
    assume_yes: bool = False,
    input_func: Callable[[str], str] = input,
    out=None,
) -> Callable[[str, Sequence[str], bool], str]:
    """Brief: Build a confirmation callback that asks the user on a terminal.

    Inputs:
      - assume_yes: Accept a single DNSSEC-valid candidate without asking.
      - input_func: Prompt function (input() by default; injectable for tests).
      - out: Stream for messages (sys.stdout by default).

    Outputs:
      - Callable(url, addresses, dnssec_valid) -> chosen address or "".
    """

    def _confirm(url: str, addresses: Sequence[str], dnssec_valid: bool) -> str:
        stream = out if out is not None else sys.stdout
        print(f"For URL: {url}", file=stream)
        if dnssec_valid:
            print("DNSSEC validation passed", file=stream)
        else:
            print(
                "WARNING: DNSSEC validation was unsuccessful, this address may not be correct!",
                file=stream,
            )

        if len(addresses) == 1:
            print(f"Address = {addresses[0]}", file=stream)
            if assume_yes and dnssec_valid:
                return addresses[0]
            answer = input_func("Is this OK? (Y/n) ").strip().lower()
            return addresses[0] if answer in ("", "y", "yes") else ""

        for i, addr in enumerate(addresses, 1):
            print(f"  {i}) {addr}", file=stream)
        choice = input_func(f"Choose an address (1-{len(addresses)}, empty to abort): ")
        try:
            index = int(choice.strip())
        except ValueError:
            return ""
        if 1 <= index <= len(addresses):
            return addresses[index - 1]
        return ""

    return _confirm


def _cmd_resolve(ctx: ResolverContext, args: argparse.Namespace) -> int:
    result = ctx.resolve(args.name, args.type)
    for record in result.records:
        print(record)
    print(
        f"dnssec_available={result.dnssec_available} dnssec_valid={result.dnssec_valid}"
    )
    return 0 if result.records else 1


def _cmd_lookup(ctx: ResolverContext, args: argparse.Namespace) -> int:
    confirm = make_interactive_confirm(assume_yes=args.yes)
    address = get_account_address_as_str_from_url(args.identifier, confirm, context=ctx)
    if not address:
        return 1
    print(address)
    return 0


def _cmd_quorum(
    ctx: ResolverContext, hostnames: Sequence[str], max_workers: Optional[int]
) -> int:
    if not hostnames:
        logger.error("No hostnames given and none configured in update_hostnames")
        return 1
    outcome = load_txt_records_from_dns(hostnames, context=ctx, max_workers=max_workers)
    if not outcome.accepted:
        print("No trusted TXT record set found")
        return 1
    for record in outcome.records:
        print(record)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dnsquorum",
        description="DNSSEC-validated TXT lookups with multi-source quorum",
    )
    parser.add_argument("--config", default=None, help="Path to YAML config")
    parser.add_argument(
        "--log-level", default=None, help="Override logging level (debug, info, warn, ...)"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_resolve = sub.add_parser("resolve", help="Resolve one name and show DNSSEC flags")
    p_resolve.add_argument("name")
    p_resolve.add_argument(
        "--type", default="TXT", choices=[t.name for t in RecordType], type=str.upper
    )

    p_lookup = sub.add_parser("lookup", help="Look up a name@domain wallet address")
    p_lookup.add_argument("identifier")
    p_lookup.add_argument(
        "--yes", action="store_true", help="Accept a single DNSSEC-valid address"
    )

    p_quorum = sub.add_parser(
        "quorum", help="Require two hostnames to agree on their TXT records"
    )
    p_quorum.add_argument("hostnames", nargs="*")
    return parser


def main(argv: List[str] | None = None) -> int:
    """
    Command-line entry point.

    Args:
        argv: Command-line arguments.

    Returns:
        An exit code.

    Example use:
        PYTHONPATH=src python -m dnsquorum.main lookup donate@getmonero.org
        DNS_PUBLIC=tcp dnsquorum quorum updates1.example updates2.example
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        cfg = load_config(args.config)
    except ConfigError as exc:
        print(str(exc), file=sys.stderr)
        return 1

    log_cfg = dict(cfg.logging)
    if args.log_level:
        log_cfg["level"] = args.log_level
    init_logging(log_cfg)

    with ResolverContext(cfg.dns_public, timeout=cfg.timeout) as ctx:
        if args.command == "resolve":
            return _cmd_resolve(ctx, args)
        if args.command == "lookup":
            return _cmd_lookup(ctx, args)
        return _cmd_quorum(
            ctx, args.hostnames or cfg.update_hostnames, cfg.max_workers
        )


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
