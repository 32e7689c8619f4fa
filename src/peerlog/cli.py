"""
Command-line entry point.
Usage:
    python -m peerlog [--config dbconfig.yaml] init-db
    python -m peerlog [--config dbconfig.yaml] write p2pserver type=peer name=node1
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from peerlog.config import load_settings
from peerlog.domain.exceptions import PeerLogException
from peerlog.infrastructure.lifecycle import open_event_log


def parse_fields(pairs: list[str]) -> dict[str, str]:
    """Turn ["col=value", ...] into a record. Later duplicates win."""
    record: dict[str, str] = {}
    for pair in pairs:
        column, sep, value = pair.partition("=")
        if not sep or not column:
            raise argparse.ArgumentTypeError(f"expected COLUMN=VALUE, got {pair!r}")
        record[column] = value
    return record


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="peerlog", description="Append-only p2p event log")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to dbconfig.yaml (default: $PEERLOG_CONFIG, ./dbconfig.yaml, ../dbconfig.yaml)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create tables and triggers if missing")

    write = sub.add_parser("write", help="Append one record to a table")
    write.add_argument("table", help="Target table (e.g. p2pserver, nodedisc)")
    write.add_argument("fields", nargs="+", metavar="COLUMN=VALUE")
    return parser


async def _run(args: argparse.Namespace) -> int:
    record = parse_fields(args.fields) if args.command == "write" else {}
    settings = load_settings(args.config)
    async with open_event_log(settings) as service:
        if args.command == "write":
            row_id = await service.write(args.table, record)
            print(row_id)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        return asyncio.run(_run(args))
    except argparse.ArgumentTypeError as exc:
        parser.error(str(exc))
    except PeerLogException as exc:
        print(f"peerlog: {exc.message}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
