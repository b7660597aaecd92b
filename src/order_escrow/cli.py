"""order-escrow CLI: operational commands for cron and local setup.

Usage:
    order-escrow sweep-auto-approvals
    order-escrow sweep-auto-approvals --no-lock --batch-size 50
    order-escrow init-db
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from dataclasses import asdict

from order_escrow.config import get_settings
from order_escrow.infrastructure.database.engine import (
    close_db,
    create_tables,
    get_engine,
    get_session_factory,
)
from order_escrow.infrastructure.redis_client import close_redis, init_redis
from order_escrow.jobs.auto_approval import DEFAULT_BATCH_SIZE, run_auto_approval_sweep
from order_escrow.logging_config import setup_logging


async def _sweep(args: argparse.Namespace) -> int:
    redis = None
    if not args.no_lock:
        redis = await init_redis()
    try:
        report = await run_auto_approval_sweep(
            get_session_factory(),
            use_lock=not args.no_lock,
            redis=redis,
            batch_size=args.batch_size,
        )
    finally:
        await close_db()
        await close_redis()
    print(json.dumps(asdict(report), indent=2))
    return 0 if report.failed == 0 else 2


async def _init_db(args: argparse.Namespace) -> int:
    try:
        await create_tables(get_engine())
    finally:
        await close_db()
    print("tables created")
    return 0


def cmd_sweep_auto_approvals(args: argparse.Namespace) -> int:
    return asyncio.run(_sweep(args))


def cmd_init_db(args: argparse.Namespace) -> int:
    return asyncio.run(_init_db(args))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="order-escrow",
        description="Order & escrow engine operations",
    )
    sub = parser.add_subparsers(dest="command")

    # sweep-auto-approvals
    p_sweep = sub.add_parser(
        "sweep-auto-approvals",
        help="Complete delivered orders whose review window has elapsed",
    )
    p_sweep.add_argument(
        "--no-lock",
        action="store_true",
        help="Skip the Redis sweep lock (single-instance deployments only)",
    )
    p_sweep.add_argument(
        "--batch-size",
        type=int,
        default=DEFAULT_BATCH_SIZE,
        help=f"Maximum orders per run (default: {DEFAULT_BATCH_SIZE})",
    )

    # init-db
    sub.add_parser("init-db", help="Create missing tables")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    settings = get_settings()
    setup_logging(log_level=settings.app_log_level, json_logs=not settings.is_development)

    commands = {
        "sweep-auto-approvals": cmd_sweep_auto_approvals,
        "init-db": cmd_init_db,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    return handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
