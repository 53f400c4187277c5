"""
Daily maintenance entry point.

Meant to be run by an external scheduler (cron, a Kubernetes CronJob) once
a day; the service itself keeps no timer.
"""

import argparse
import asyncio
import logging
from datetime import date
from typing import Optional

from rentflow.config import settings
from rentflow.db.base import close_db, get_session
from rentflow.engine import LeaseEngine
from rentflow.models import MaintenanceReport

logger = logging.getLogger("rentflow.maintenance")


async def run_maintenance(today: Optional[date] = None) -> MaintenanceReport:
    """Run one maintenance pass in its own session."""
    async with get_session() as session:
        engine = LeaseEngine(session)
        return await engine.run_daily_maintenance(today=today)


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date (expected YYYY-MM-DD): {value}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rentflow-maintenance",
        description="Generate upcoming rent, mark overdue obligations and repair stalled leases.",
    )
    parser.add_argument(
        "--date",
        type=_parse_date,
        default=None,
        help="Run as of this date (YYYY-MM-DD) instead of today",
    )
    return parser


async def _main(today: Optional[date]) -> MaintenanceReport:
    try:
        return await run_maintenance(today)
    finally:
        await close_db()


def main(argv: Optional[list[str]] = None) -> int:
    """Console entry point."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    report = asyncio.run(_main(args.date))
    for line in report.details:
        logger.info(line)
    logger.info(
        f"Maintenance complete: rent_created={report.rent_created}, "
        f"rent_errors={report.rent_errors}, marked_late={report.marked_late}, "
        f"leases_expired={report.leases_expired}, leases_repaired={report.leases_repaired}"
    )
    return 1 if report.rent_errors else 0


if __name__ == "__main__":
    raise SystemExit(main())
