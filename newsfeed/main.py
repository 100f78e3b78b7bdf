"""
Scheduler entry point for the news pipeline.

Runs the refresh job once at startup and then on a fixed interval:

    python -m newsfeed.main
"""
import asyncio
import signal
from datetime import datetime, timezone
from typing import Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from newsfeed.config import Settings, get_settings
from newsfeed.core.log import configure_logging
from newsfeed.jobs.refresh_news import NewsRefreshJob, build_job
from newsfeed.services.ingestion import AllSourcesFailed

logger = structlog.get_logger()


async def run_refresh(job: NewsRefreshJob):
    """Run one refresh. Failures are logged; the next interval retries."""
    try:
        stats = await job.run()
        logger.info("Refresh completed", stats=stats)
    except AllSourcesFailed as e:
        logger.error("Refresh failed, previous articles kept", error=str(e))
    except Exception as e:
        logger.exception("Refresh crashed", error=str(e))


async def serve(settings: Optional[Settings] = None):
    """Start the scheduler and block until SIGINT/SIGTERM."""
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.json_logs)

    logger.info(
        "Starting news pipeline",
        app=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )
    job, database = await build_job(settings)

    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        run_refresh,
        IntervalTrigger(minutes=settings.refresh_interval_minutes),
        args=[job],
        id="refresh_news",
        name="News Refresh",
        max_instances=1,
        coalesce=True,
        next_run_time=datetime.now(timezone.utc),
        replace_existing=True,
    )
    scheduler.start()
    logger.info("Scheduler started", interval_minutes=settings.refresh_interval_minutes)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Not supported on Windows event loops
            pass

    try:
        await stop.wait()
    finally:
        logger.info("Shutting down")
        scheduler.shutdown(wait=False)
        if database is not None:
            await database.dispose()


def main():
    asyncio.run(serve())


if __name__ == "__main__":
    main()
