"""Run royalty settlement for a closed period, then distribute payouts.

Usage:
    python -m scripts.run_royalty_period [--period daily|weekly] [--date YYYY-MM-DD] [--no-distribute]

Without --date, settles the previous complete period (yesterday, or last ISO week).
With --date, settles the day (or ISO week) containing that date.
Seals due windows first; re-running is safe (artists already settled are skipped).
Requires Postgres and the shared Redis aggregation backend.
SIGINT/SIGTERM stop the run between artists.
"""

import argparse
import asyncio
import signal
import sys
from datetime import date, datetime, time, timedelta, timezone

from royalty_pipeline.api.v1.dependencies import (
    build_distributor,
    build_engine,
    build_sealing_service,
)
from royalty_pipeline.core.config import get_settings
from royalty_pipeline.domain.exceptions import RoyaltyPipelineException
from royalty_pipeline.domain.value_objects import SettlementPeriod
from royalty_pipeline.infrastructure.aggregation import (
    create_aggregation_store,
    create_redis_client,
)
from royalty_pipeline.infrastructure.payments import create_payout_gateway
from royalty_pipeline.infrastructure.persistence import database
from royalty_pipeline.infrastructure.persistence.unit_of_work import sqlalchemy_uow_factory
from royalty_pipeline.shared.telemetry.logging import get_logger, setup_logging
from royalty_pipeline.shared.utils.datetime import utc_now

logger = get_logger("scripts.run_royalty_period")


def resolve_period(kind: str, on: date | None, now: datetime) -> SettlementPeriod:
    """Period to settle: the one containing `on`, else the last complete one before now."""
    if on is None:
        if kind == "weekly":
            return SettlementPeriod.previous_week(now)
        return SettlementPeriod.previous_day(now)
    start = datetime.combine(on, time.min, tzinfo=timezone.utc)
    if kind == "weekly":
        start -= timedelta(days=start.weekday())
        return SettlementPeriod(start=start, end=start + timedelta(days=7))
    return SettlementPeriod(start=start, end=start + timedelta(days=1))


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--period", choices=("daily", "weekly"), default="daily")
    parser.add_argument("--date", type=date.fromisoformat, default=None)
    parser.add_argument("--no-distribute", action="store_true")
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    setup_logging()
    if not settings.sql_configured:
        print("DATABASE_URL is not set", file=sys.stderr)
        return 1
    if settings.aggregation_backend != "redis":
        print(
            "The scheduler needs AGGREGATION_BACKEND=redis; with the in-process backend "
            "use POST /api/v1/royalty-runs on the service instead.",
            file=sys.stderr,
        )
        return 1

    period = resolve_period(args.period, args.date, utc_now())
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, cancel_event.set)

    redis_client = create_redis_client(settings)
    gateway = create_payout_gateway(settings)
    store = create_aggregation_store(settings, redis_client)
    uow_factory = sqlalchemy_uow_factory()
    try:
        sealed = await build_sealing_service(settings, store, uow_factory).seal_due_windows()
        print(f"Sealed {len(sealed.sealed_windows)} window(s), {sealed.bucket_count} bucket(s)")

        engine = build_engine(settings, store, uow_factory)
        try:
            report = await engine.run_period(period.start, period.end, cancel_event=cancel_event)
        except RoyaltyPipelineException as e:
            print(f"Period {period.start:%Y-%m-%d} not settled: {e.message}", file=sys.stderr)
            return 2
        print(
            f"Period {period.start.isoformat()} - {period.end.isoformat()}: "
            f"approved={report.approved} manual_review={report.manual_review} "
            f"skipped={report.skipped} failed={report.failed} "
            f"net={report.total_net_amount} {settings.currency}"
            + (" (cancelled)" if report.cancelled else "")
        )
        for outcome in report.outcomes:
            if outcome.error:
                print(f"  {outcome.artist_id}: {outcome.status.value}: {outcome.error}")

        if not args.no_distribute and not cancel_event.is_set():
            distribution = await build_distributor(settings, gateway, uow_factory).distribute()
            print(
                f"Payouts: submitted={len(distribution.submitted)} "
                f"failed={len(distribution.failed)} exhausted={len(distribution.exhausted)}"
            )
            for statement_id in distribution.exhausted:
                logger.error("Payout retries exhausted for statement %s", statement_id)
        return 1 if report.failed else 0
    finally:
        if hasattr(gateway, "aclose"):
            await gateway.aclose()
        await redis_client.aclose()
        await database.dispose_engine()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
