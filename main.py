#!/usr/bin/env python3
"""News fetcher: scheduled RSS/Atom ingestion with per-user notifications.

This CLI tool is the scheduler entry point. Each run fetches every active
source, stores new items, notifies users, and prunes old notifications.

Commands:
    run         Execute the fetch pipeline (once or continuously)
    status      Show configuration, settings and database statistics
    seed        Insert the default feed sources

Examples:
    python main.py run                    # Single run, JSON result on stdout
    python main.py run -c                 # Continuous, paced by fetch_interval_minutes
    python main.py status                 # Show config and counts
    python main.py seed                   # Add default sources

Environment:
    See config.py for all configuration options
"""

import argparse
import asyncio
import json
import logging
import sys

from config import DEFAULT_SOURCES, Config
from database import Database
from observability.logging import setup_logging

logger = logging.getLogger(__name__)


def cmd_run(args: argparse.Namespace, config: Config) -> int:
    """Execute the fetch pipeline.

    Args:
        args: Parsed command line arguments
        config: Application configuration

    Returns:
        Exit code (0 when the run recorded no errors)
    """
    from pipeline import run_continuous, run_once

    if args.interval:
        config.min_poll_seconds = args.interval

    try:
        if args.continuous:
            try:
                asyncio.run(run_continuous(config))
            except KeyboardInterrupt:
                logger.info("Stopped by user (Ctrl+C)")
            return 0

        result = asyncio.run(run_once(config))
        print(json.dumps(result.to_dict(), indent=2))
        return 0 if result.success else 1
    except KeyboardInterrupt:
        logger.info("Stopped by user (Ctrl+C)")
        return 130  # Standard exit code for SIGINT


def cmd_status(args: argparse.Namespace, config: Config) -> int:
    """Display configuration, fetcher settings and database statistics.

    Args:
        args: Parsed command line arguments
        config: Application configuration

    Returns:
        Exit code (0 for success)
    """
    with Database(config.db_path) as db:
        db_stats = db.stats()
        settings = db.load_settings()

    next_fetch_at = settings.next_fetch_at()
    status = {
        "config": {
            "fetch_timeout_seconds": config.fetch_timeout_seconds,
            "max_workers": config.max_workers,
            "user_agent": config.user_agent,
            "notification_batch_size": config.notification_batch_size,
            "min_poll_seconds": config.min_poll_seconds,
        },
        "settings": {
            "fetch_interval_minutes": settings.fetch_interval_minutes,
            "notification_retention_days": settings.notification_retention_days,
            "last_fetch_at": settings.last_fetch_at.isoformat() if settings.last_fetch_at else None,
            "next_fetch_at": next_fetch_at.isoformat() if next_fetch_at else None,
            "due": settings.is_due(),
        },
        "database": {
            "path": str(config.db_path),
            **db_stats,
        },
    }

    print(json.dumps(status, indent=2))
    return 0


def cmd_seed(args: argparse.Namespace, config: Config) -> int:
    """Insert the default feed sources, leaving existing URLs untouched."""
    with Database(config.db_path) as db:
        inserted = db.seed_sources(DEFAULT_SOURCES)

    print(f"Seeded {inserted} source(s) ({len(DEFAULT_SOURCES) - inserted} already present).")
    return 0


def main() -> int:
    """Main entry point.

    Returns:
        Exit code
    """
    parser = argparse.ArgumentParser(
        description="News fetcher: scheduled RSS/Atom ingestion",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # run command
    run_parser = subparsers.add_parser("run", help="Run the fetch pipeline")
    run_parser.add_argument(
        "-c", "--continuous",
        action="store_true",
        help="Run continuously, paced by the stored fetch interval",
    )
    run_parser.add_argument(
        "--interval",
        type=int,
        help="Minimum seconds between wake-ups (continuous mode)",
    )

    # status command
    subparsers.add_parser("status", help="Show configuration and statistics")

    # seed command
    subparsers.add_parser("seed", help="Insert the default feed sources")

    args = parser.parse_args()

    try:
        config = Config.load()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    if error := config.validate():
        print(f"Configuration error: {error}", file=sys.stderr)
        return 1

    setup_logging(config, verbose=args.verbose)

    # Route to command handler
    commands = {
        "run": cmd_run,
        "status": cmd_status,
        "seed": cmd_seed,
    }

    if args.command in commands:
        try:
            return commands[args.command](args, config)
        except Exception as e:
            logger.error("Command failed | cmd=%s error=%s", args.command, e, exc_info=True)
            print(f"Error: {e}", file=sys.stderr)
            return 1
    else:
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())
