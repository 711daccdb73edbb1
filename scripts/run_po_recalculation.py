#!/usr/bin/env python3
"""
Recalculate the active PO amendment for every owner of every active project.

One-shot mode runs a single batch and exits non-zero when any owner failed.
Daemon mode runs once immediately (for --as-of when given), then nightly at
local midnight (in the configured timezone) until interrupted.

Usage:
  python3 scripts/run_po_recalculation.py [--database-url URL] [--config FILE]
                                          [--as-of YYYY-MM-DD] [--daemon]
                                          [--create-tables] [--verbose]

Configuration:
  Settings come from --config (YAML), then WORKFORCE_* / DATABASE_URL
  environment variables, then command-line flags.
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from datetime import date
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from workforce_kernel.config import SchedulerSettings, load_settings  # noqa: E402
from workforce_kernel.exceptions import ConfigurationError  # noqa: E402
from workforce_kernel.logging_config import configure_logging, get_logger  # noqa: E402

logger = get_logger("scripts.run_po_recalculation")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Recalculate active PO amendments")
    p.add_argument("--database-url", default=None, help="Database URL (overrides config/env)")
    p.add_argument("--config", default=None, help="YAML settings file")
    p.add_argument(
        "--as-of",
        type=date.fromisoformat,
        default=None,
        help=(
            "Calendar day to evaluate (default: today in the configured timezone; "
            "with --daemon, applies to the first run only)"
        ),
    )
    p.add_argument("--daemon", action="store_true", help="Keep running with the nightly timer")
    p.add_argument("--create-tables", action="store_true", help="Create missing tables first")
    p.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return p.parse_args(argv)


def _print_summary(result) -> None:
    print(f"  As of:      {result.as_of.isoformat()}")
    print(f"  Processed:  {result.processed}")
    print(f"  Updated:    {result.updated}")
    print(f"  Errors:     {result.errors}")
    if result.project_query_failed:
        print("  Active projects could not be listed.")
    for owner_result in result.owner_results:
        if not owner_result.success:
            print(
                f"    FAILED {owner_result.owner}: "
                f"{owner_result.error_code} {owner_result.error_message}"
            )


async def _run_daemon(
    orchestrator, settings: SchedulerSettings, as_of: date | None = None,
) -> None:
    scheduler = orchestrator.create_scheduler()
    if settings.nightly_enabled:
        scheduler.start()
    try:
        _print_summary(await scheduler.trigger_now(as_of))
        if not settings.nightly_enabled:
            return
        await asyncio.Event().wait()
    finally:
        await scheduler.stop()


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    configure_logging(level=logging.DEBUG if args.verbose else logging.INFO)

    try:
        settings = load_settings(args.config)
    except ConfigurationError as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 2
    if args.database_url:
        settings = replace(settings, database_url=args.database_url)
    if not settings.database_url:
        print("  ERROR: no database URL (use --database-url or DATABASE_URL)", file=sys.stderr)
        return 2

    from workforce_kernel.db.engine import (
        create_tables,
        get_session_factory,
        init_engine_from_url,
    )
    from workforce_batch.orchestrator import PoOrchestrator

    init_engine_from_url(settings.database_url)
    if args.create_tables:
        create_tables()

    orchestrator = PoOrchestrator.from_session_factory(get_session_factory(), settings=settings)

    if args.daemon:
        try:
            asyncio.run(_run_daemon(orchestrator, settings, args.as_of))
        except KeyboardInterrupt:
            logger.info("po_recalc_daemon_interrupted")
        return 0

    runner = orchestrator.create_runner()
    result = asyncio.run(runner.recalculate_all_active_pos(today=args.as_of))
    _print_summary(result)
    return 0 if result.errors == 0 and not result.project_query_failed else 1


if __name__ == "__main__":
    sys.exit(main())
