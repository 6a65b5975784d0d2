"""Run the preference refresh outside the API process.

Usage::

    python -m tasteloop.jobs          # keep refreshing on the configured interval
    python -m tasteloop.jobs --once   # one refresh pass, then exit

Pair the first form with PREF_REFRESH_ENABLED=false on the API so only one
process refreshes.
"""

import argparse
import asyncio
import signal

from tasteloop.config import config
from tasteloop.jobs.preference_refresh import run_preference_refresh
from tasteloop.jobs.scheduler import setup_all_jobs, shutdown_scheduler, start_scheduler
from tasteloop.logging import get_logger, setup_logging
from tasteloop.storage import close_engine, create_tables

setup_logging(config.log_level, config.log_format)
logger = get_logger(__name__)


async def _run_forever() -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop.set)

    start_scheduler()
    if not setup_all_jobs():
        logger.warning("No jobs enabled, exiting")
        return

    logger.info("Refresh worker running, press Ctrl+C to stop")
    await stop.wait()
    logger.info("Stop requested")


async def _main(once: bool) -> None:
    await create_tables()
    try:
        if once:
            summary = await run_preference_refresh()
            logger.info(f"One-off refresh finished: {summary}")
        else:
            await _run_forever()
    finally:
        shutdown_scheduler()
        await close_engine()


def main() -> None:
    parser = argparse.ArgumentParser(prog="python -m tasteloop.jobs")
    parser.add_argument("--once", action="store_true", help="run a single refresh pass and exit")
    args = parser.parse_args()
    asyncio.run(_main(args.once))


if __name__ == "__main__":
    main()
