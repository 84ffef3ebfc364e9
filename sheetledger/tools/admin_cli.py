"""
Operator CLI for sheetledger.

This tool runs engine operations against the configured store:
- init: Create missing collection tables
- schema: Show the bound schema of a collection
- list / show: Read records
- add / update / withdraw / deactivate: Mutate records
- history: Read the audit ledger
- pending: Answered comments awaiting a user's confirmation

Usage:
    sheetledger init
    sheetledger --actor alice add Articles product=Widget received=10
    sheetledger withdraw Articles 1 4
    sheetledger history --subject 1 --origin Articles

Invariants:
    - Output is one JSON document on stdout
    - Exit code 0 on success, 1 on a failed result, 2 on usage errors

How to change safely:
    - Add new commands, don't change the output of existing ones
    - Keep output sorted and stable for scripts
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, List, Optional, Sequence

from ..config import AppConfig
from ..identity import Actor
from ..main import Application
from ..storage.base import TableBackend

logger = logging.getLogger(__name__)


def parse_assignments(parser: argparse.ArgumentParser, pairs: Sequence[str]) -> Dict[str, str]:
    """Parse key=value arguments, failing with a usage error otherwise."""
    fields: Dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            parser.error(f"expected key=value, got '{pair}'")
        fields[key.strip()] = value
    return fields


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sheetledger",
        description="Inventory tables with audit history",
    )
    parser.add_argument("--actor", help="Who performs the operation (default: System)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init", help="Create missing collection tables")

    schema_parser = subparsers.add_parser("schema", help="Show the schema of a collection")
    schema_parser.add_argument("collection")

    list_parser = subparsers.add_parser("list", help="List records of a collection")
    list_parser.add_argument("collection")
    list_parser.add_argument("--all", action="store_true", help="Include deactivated records")

    show_parser = subparsers.add_parser("show", help="Show one record")
    show_parser.add_argument("collection")
    show_parser.add_argument("id")

    add_parser = subparsers.add_parser("add", help="Create a record")
    add_parser.add_argument("collection")
    add_parser.add_argument("fields", nargs="+", metavar="key=value")

    update_parser = subparsers.add_parser("update", help="Update a record")
    update_parser.add_argument("collection")
    update_parser.add_argument("id")
    update_parser.add_argument("fields", nargs="+", metavar="key=value")

    withdraw_parser = subparsers.add_parser("withdraw", help="Withdraw units of a record")
    withdraw_parser.add_argument("collection")
    withdraw_parser.add_argument("id")
    withdraw_parser.add_argument("quantity")

    deactivate_parser = subparsers.add_parser("deactivate", help="Deactivate records")
    deactivate_parser.add_argument("collection")
    deactivate_parser.add_argument("ids", nargs="+")

    history_parser = subparsers.add_parser("history", help="Read the audit ledger")
    history_parser.add_argument("--subject", help="Only entries about this record id")
    history_parser.add_argument("--origin", help="Only entries about this collection")

    pending_parser = subparsers.add_parser(
        "pending", help="Answered comments awaiting a user's confirmation"
    )
    pending_parser.add_argument("user")
    pending_parser.add_argument("--origin", help="Only comments on this collection")

    return parser


async def execute(
    args: argparse.Namespace,
    app: Application,
    parser: argparse.ArgumentParser,
) -> Dict[str, Any]:
    """Run one parsed command and return its result."""
    service = await app.start()
    actor = Actor(actor_id=args.actor, label=args.actor) if args.actor else None

    if args.command == "init":
        created = await app.init_tables()
        return {
            "success": True,
            "created": created,
            "fingerprint": app.registry.fingerprint if app.registry else None,
        }
    if args.command == "schema":
        return await service.schema(args.collection)
    if args.command == "list":
        if args.all:
            return await service.list_all(args.collection)
        return await service.list_active(args.collection)
    if args.command == "show":
        return await service.read(args.collection, args.id)
    if args.command == "add":
        fields = parse_assignments(parser, args.fields)
        return await service.create(args.collection, fields, actor=actor)
    if args.command == "update":
        fields = parse_assignments(parser, args.fields)
        return await service.update(args.collection, args.id, fields, actor=actor)
    if args.command == "withdraw":
        return await service.withdraw(args.collection, args.id, args.quantity, actor=actor)
    if args.command == "deactivate":
        return await service.bulk_deactivate(args.collection, args.ids, actor=actor)
    if args.command == "history":
        return await service.history(subject_id=args.subject, origin=args.origin)
    if args.command == "pending":
        return await service.pending_comments(args.user, origin=args.origin)

    parser.error(f"unknown command '{args.command}'")
    return {}


async def _run(
    args: argparse.Namespace,
    parser: argparse.ArgumentParser,
    config: AppConfig,
    backend: Optional[TableBackend],
) -> Dict[str, Any]:
    app = Application(config, backend=backend)
    try:
        return await execute(args, app, parser)
    finally:
        await app.stop()


def run(
    argv: Optional[Sequence[str]] = None,
    config: Optional[AppConfig] = None,
    backend: Optional[TableBackend] = None,
) -> int:
    """Parse argv, run the command, print JSON and return the exit code."""
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    result = asyncio.run(_run(args, parser, config or AppConfig.from_env(), backend))
    print(json.dumps(result, indent=2, sort_keys=True, default=str))
    return 0 if result.get("success") else 1


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point when run as a module."""
    sys.exit(run(argv))


if __name__ == "__main__":
    main()
