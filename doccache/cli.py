#!/usr/bin/env python3
"""doccache CLI - maintenance commands for a document store backed cache.

Run ``doccache gc`` from cron, a systemd timer or a Kubernetes CronJob; the
cache never schedules garbage collection on its own.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from .cache import create_cache
from .commands.maintenance import run_gc, run_inspect
from .config.settings import Settings, setup_logging
from .errors import ConfigurationError

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="doccache", description="doccache maintenance CLI")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "NONE"],
        help="Set log level",
    )
    parser.add_argument("--store-url", default=None, help="Override DOCCACHE_STORE_URL")
    parser.add_argument("--collection", default=None, help="Override DOCCACHE_COLLECTION")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")
    subparsers.add_parser("gc", help="Delete expired entries (one pass)")
    inspect_parser = subparsers.add_parser("inspect", help="Show the state of one entry")
    inspect_parser.add_argument("key", help="Cache key")
    return parser


async def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.log_level)

    if args.command is None:
        parser.print_help()
        return 1

    Settings.refresh_from_env()
    if args.store_url:
        Settings.DOCCACHE_STORE_URL = args.store_url
    if args.collection is not None:
        Settings.DOCCACHE_COLLECTION = args.collection

    try:
        Settings.validate()
        cache = create_cache(Settings)
    except ConfigurationError as e:
        print(f"❌ Configuration error: {e}")
        return 1

    try:
        if args.command == "gc":
            return await run_gc(cache)
        if args.command == "inspect":
            return await run_inspect(cache, args.key)
        return 1
    finally:
        await cache.close_async()


def app() -> None:
    """Entry point for the CLI application."""
    try:
        exit_code = asyncio.run(main())
        sys.exit(exit_code)
    except KeyboardInterrupt:
        print("\nInterrupted")
        sys.exit(130)
    except Exception as e:
        logger.error(f"Unexpected error: {e}")
        print(f"❌ Unexpected error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    app()
