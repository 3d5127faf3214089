"""
Unclaimed balance collection background worker.

Runs the collection once a day at the scheduled hour (3 AM by default).
Merchant accounts that failed are retried by the next day's run.
"""
import asyncio
import signal
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import structlog

from config import get_settings
from core.unclaimed_balances import UnclaimedBalanceCollector
from monitoring.logging import setup_logging

logger = structlog.get_logger(__name__)


async def run_unclaimed_balance_collection(
    collector: Optional[UnclaimedBalanceCollector] = None,
) -> Dict[str, Any]:
    """
    Run one collection of unclaimed balances from inactive merchant accounts.

    Args:
        collector: Optional collector (built from settings if not provided)

    Returns:
        Dict[str, Any]: Run summary
    """
    logger.info("unclaimed_balance_job_started")

    try:
        collector = collector or UnclaimedBalanceCollector()
        result = await collector.run()
    except Exception as e:
        logger.error("unclaimed_balance_job_failed", error=str(e))
        raise

    logger.info(
        "unclaimed_balance_job_completed",
        run_id=result["run_id"],
        status=result["status"],
        accounts_collected=result["accounts_collected"],
        collected_cents=result["collected_cents"],
    )

    if result["accounts_failed"] > 0:
        logger.warning(
            "unclaimed_balance_job_account_failures",
            run_id=result["run_id"],
            accounts_failed=result["accounts_failed"],
        )

    return result


def calculate_seconds_until_next_run(
    target_hour: int, now: Optional[datetime] = None
) -> float:
    """
    Calculate seconds until next scheduled run.

    Args:
        target_hour: Hour of day to run (24-hour format)
        now: Current time (defaults to local now)

    Returns:
        float: Seconds until next run
    """
    now = now or datetime.now()
    next_run = now.replace(hour=target_hour, minute=0, second=0, microsecond=0)

    # If we've passed today's run time, schedule for tomorrow
    if now >= next_run:
        next_run += timedelta(days=1)

    seconds_until = (next_run - now).total_seconds()

    logger.info(
        "unclaimed_balance_next_run_scheduled",
        next_run=next_run.isoformat(),
        seconds_until=seconds_until,
    )

    return seconds_until


async def start_unclaimed_balance_worker(target_hour: Optional[int] = None) -> None:
    """
    Start the unclaimed balance collection worker.

    Runs daily at the given hour until SIGINT or SIGTERM.

    Args:
        target_hour: Hour of day to run (defaults to the configured hour)
    """
    setup_logging()
    if target_hour is None:
        target_hour = get_settings().unclaimed_balance_schedule_hour

    logger.info("unclaimed_balance_worker_starting", target_hour=target_hour)

    running = True

    def signal_handler(sig: int, frame: Any) -> None:
        nonlocal running
        logger.info("unclaimed_balance_worker_shutdown_signal_received", signal=sig)
        running = False

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        while running:
            seconds_until = calculate_seconds_until_next_run(target_hour)

            # Sleep in short steps so a shutdown signal is noticed quickly
            while seconds_until > 0 and running:
                sleep_time = min(seconds_until, 60)
                await asyncio.sleep(sleep_time)
                seconds_until -= sleep_time

            if not running:
                break

            try:
                await run_unclaimed_balance_collection()
            except Exception as e:
                # Keep the schedule; tomorrow's run picks up unprocessed accounts
                logger.error("unclaimed_balance_execution_error", error=str(e))

    finally:
        logger.info("unclaimed_balance_worker_stopped")


def main(argv: Optional[list[str]] = None) -> None:
    import argparse

    parser = argparse.ArgumentParser(description="Unclaimed balance collection worker")
    parser.add_argument(
        "--hour", type=int, default=None, help="Hour of day to run the collection (0-23)"
    )
    parser.add_argument(
        "--once", action="store_true", help="Run a single collection now and exit"
    )
    args = parser.parse_args(argv)

    if args.once:
        setup_logging()
        asyncio.run(run_unclaimed_balance_collection())
    else:
        asyncio.run(start_unclaimed_balance_worker(target_hour=args.hour))


if __name__ == "__main__":
    main()
