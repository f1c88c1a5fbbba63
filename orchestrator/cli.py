"""
Orchestrator - CLI.

============================================================
RESPONSIBILITY
============================================================
Command-line interface for the record tracker.

- Provides argparse-based CLI
- Loads configuration from environment (.env supported)
- Entry point for the application

============================================================
USAGE
============================================================
python app.py init-db
python app.py search SomeMapper --window 1w
python app.py status <job_id>
python app.py daily
python app.py dispatch --date 2026-01-31
python app.py purge

============================================================
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import date
from typing import List, Optional

from core.config import AppConfig
from core.constants import SYSTEM_VERSION, TimeWindow
from core.exceptions import ConfigurationError, TrackerException
from storage.database import Database, DatabasePersistenceError
from storage.repositories.digest import DigestRepository
from storage.repositories.jobs import JobRepository

from .core import Runtime, setup_logging


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="record-tracker",
        description="Leaderboard record tracker: on-demand searches and daily digests",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  init-db   - Create all tables
  search    - Recent records on a mapper's maps (runs in-process)
  status    - Show a job's status payload
  daily     - Schedule checks, run them, dispatch digests
  dispatch  - Dispatch today's (or a given date's) digests only
  purge     - Delete expired jobs and digest records

Examples:
  %(prog)s search SomeMapper --window 1w
  %(prog)s daily --log-format text
        """
    )

    # --------------------------------------------------------
    # Logging Options
    # --------------------------------------------------------
    logging_group = parser.add_argument_group("Logging Options")

    logging_group.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="INFO",
        help="Logging level (default: INFO)",
    )

    logging_group.add_argument(
        "--log-format",
        type=str,
        choices=["json", "text"],
        default="json",
        help="Logging format (default: json)",
    )

    parser.add_argument(
        "--env-file",
        type=str,
        metavar="PATH",
        help="Explicit .env file to load",
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"%(prog)s {SYSTEM_VERSION}",
    )

    # --------------------------------------------------------
    # Commands
    # --------------------------------------------------------
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("init-db", help="Create all tables")

    search = commands.add_parser("search", help="Search recent records on a mapper's maps")
    search.add_argument("username", help="Mapper (author) name on the map index")
    search.add_argument(
        "--window", "-w",
        choices=[w.value for w in TimeWindow],
        default=TimeWindow.DAY.value,
        help="Lookback window (default: 1d)",
    )

    status = commands.add_parser("status", help="Show a job's status")
    status.add_argument("job_id")

    for name, help_text in (
        ("daily", "Run the full daily pipeline"),
        ("dispatch", "Dispatch digests only"),
    ):
        command = commands.add_parser(name, help=help_text)
        command.add_argument(
            "--date",
            type=date.fromisoformat,
            metavar="YYYY-MM-DD",
            help="Digest date (default: today, UTC)",
        )

    commands.add_parser("purge", help="Delete expired jobs and digest records")

    return parser


# ============================================================
# COMMANDS
# ============================================================

def _print(payload) -> None:
    print(json.dumps(payload, indent=2, default=str))


def init_db(config: AppConfig) -> int:
    database = Database(config.database)
    try:
        database.verify_connection()
        database.create_all()
    finally:
        database.dispose()
    return 0


def purge(config: AppConfig) -> int:
    database = Database(config.database)
    try:
        database.verify_connection()
        with database.transaction() as session:
            jobs = JobRepository(session).purge_expired()
            digests = DigestRepository(session).purge_expired()
    finally:
        database.dispose()
    _print({"purged_jobs": jobs, "purged_digests": digests})
    return 0


async def async_main(args: argparse.Namespace, config: AppConfig) -> int:
    """
    Async commands.

    Returns:
        Exit code
    """
    runtime = Runtime(config)
    try:
        runtime.database.verify_connection()

        if args.command == "search":
            job_id = await runtime.search(args.username, args.window)
            payload = runtime.status(job_id)
            _print(payload)
            return 0 if payload and payload["status"] == "completed" else 1

        if args.command == "status":
            payload = runtime.status(args.job_id)
            if payload is None:
                print(f"Job {args.job_id} not found or expired", file=sys.stderr)
                return 1
            _print(payload)
            return 0

        if args.command == "daily":
            result = await runtime.run_daily(args.date)
            _print(result.to_dict())
            return 0 if result.dispatch.failed == 0 else 1

        if args.command == "dispatch":
            report = await runtime.dispatch(args.date)
            _print({"sent": report.sent, "skipped": report.skipped, "failed": report.failed})
            return 0 if report.failed == 0 else 1

        raise ValueError(f"Unknown command: {args.command}")
    finally:
        await runtime.close()


# ============================================================
# MAIN ENTRY POINT
# ============================================================

def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (default: sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    logger = setup_logging(args.log_level, args.log_format)

    try:
        config = AppConfig.from_env(args.env_file)

        if args.command == "init-db":
            return init_db(config)
        if args.command == "purge":
            return purge(config)

        if args.command in ("search", "daily"):
            config.raise_if_invalid()

        return asyncio.run(async_main(args, config))

    except ConfigurationError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 2
    except TrackerException as e:
        logger.error(f"{type(e).__name__}: {e.message}", extra={"context": e.to_dict()})
        return 1
    except DatabasePersistenceError as e:
        logger.error(f"Database unavailable: {e}")
        return 1
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        return 130


# ============================================================
# MODULE EXECUTION
# ============================================================

if __name__ == "__main__":
    sys.exit(main())
