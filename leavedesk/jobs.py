"""LeaveDesk batch jobs — monthly accrual, forfeiture sweep, holiday seeding.

Usage:
    python -m leavedesk.jobs accrual                        # as of today (SAST)
    python -m leavedesk.jobs accrual --as-of 2025-04-01
    python -m leavedesk.jobs forfeiture-sweep --as-of 2025-07-01
    python -m leavedesk.jobs seed-holidays --year 2026

Exit codes:
    0 = job completed with no per-employee failures
    1 = job completed but some employees failed (see log)
    2 = job could not run at all
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import date
from typing import Optional

from leavedesk.calendar.seed import build_sa_holidays
from leavedesk.common.exceptions import AppException
from leavedesk.common.log import configure_logging
from leavedesk.database import async_session_factory, engine
from leavedesk.leave.repository import SqlAlchemyLeaveRepository
from leavedesk.leave.service import LeaveService

logger = logging.getLogger("leavedesk.jobs")


async def run_accrual(as_of: Optional[date]) -> int:
    async with async_session_factory() as session:
        result = await LeaveService(SqlAlchemyLeaveRepository(session)).run_monthly_accrual(as_of)
        await session.commit()
    print(result.model_dump_json(indent=2))
    return 1 if result.failures else 0


async def run_forfeiture_sweep(as_of: Optional[date]) -> int:
    async with async_session_factory() as session:
        result = await LeaveService(SqlAlchemyLeaveRepository(session)).run_forfeiture_sweep(as_of)
        await session.commit()
    print(result.model_dump_json(indent=2))
    return 1 if result.failures else 0


async def seed_holidays(year: int) -> int:
    async with async_session_factory() as session:
        repository = SqlAlchemyLeaveRepository(session)
        added = await repository.add_public_holidays(build_sa_holidays(year))
        await session.commit()
    logger.info("Seeded %d public holiday(s) for %d", added, year)
    print(json.dumps({"year": year, "added": added}))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="leavedesk.jobs", description=__doc__.splitlines()[0])
    parser.add_argument("--log-level", default=None, help="Overrides LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    accrual = sub.add_parser(
        "accrual", help="Credit monthly annual leave and open sick and family leave cycles"
    )
    accrual.add_argument("--as-of", type=date.fromisoformat, default=None)

    sweep = sub.add_parser("forfeiture-sweep", help="Flag employees with forfeiture due")
    sweep.add_argument("--as-of", type=date.fromisoformat, default=None)

    seed = sub.add_parser("seed-holidays", help="Load South African public holidays")
    seed.add_argument("--year", type=int, required=True)
    return parser


async def _dispatch(args: argparse.Namespace) -> int:
    try:
        if args.command == "accrual":
            return await run_accrual(args.as_of)
        if args.command == "forfeiture-sweep":
            return await run_forfeiture_sweep(args.as_of)
        return await seed_holidays(args.year)
    finally:
        await engine.dispose()


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    try:
        return asyncio.run(_dispatch(args))
    except AppException as exc:
        logger.error("%s failed: %s", args.command, exc.detail)
        return 2


if __name__ == "__main__":
    sys.exit(main())
