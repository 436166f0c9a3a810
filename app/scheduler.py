"""
Scheduler for the channel-fit benchmark warm-up

Uses APScheduler to rebuild the system-wide benchmark cache overnight so the
first analysis request of the day does not pay the aggregation cost.
"""
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
import asyncio
import time

from app.config import get_settings
from app.services.channel_fit import ChannelFitEngine
from app.services.channel_fit.types import DEFAULT_PERIOD
from app.utils.logger import log, safe_error

settings = get_settings()
scheduler = AsyncIOScheduler(timezone="UTC")


async def warm_benchmark_cache(engine: ChannelFitEngine):
    """Rebuild cross-tenant benchmark rows for the default period (daily)"""
    start = time.time()
    try:
        log.info("Starting channel-fit benchmark warm-up...")
        rows = await asyncio.get_running_loop().run_in_executor(
            None, engine.warm_benchmarks, DEFAULT_PERIOD
        )
        log.info(f"Channel-fit benchmark warm-up completed: {rows} rows in {time.time() - start:.1f}s")
    except Exception as e:
        log.error(f"Channel-fit benchmark warm-up failed: {safe_error(e)}")


def setup_scheduler(engine: ChannelFitEngine):
    """
    Configure the scheduler.

    Cron times are UTC. Default: daily at 2:30am, after overnight
    marketplace syncs have landed.
    """
    scheduler.add_job(
        warm_benchmark_cache,
        trigger=CronTrigger.from_crontab(settings.benchmark_warmup_schedule, timezone="UTC"),
        args=[engine],
        id='channel_fit_benchmark_warmup',
        name='Channel-Fit Benchmark Warm-up',
        replace_existing=True,
        max_instances=1
    )

    log.info(f"Scheduler configured with benchmark warm-up ({settings.benchmark_warmup_schedule} UTC)")


def start_scheduler(engine: ChannelFitEngine):
    """Start the scheduler"""
    setup_scheduler(engine)
    scheduler.start()
    log.info("Scheduler started")


def stop_scheduler():
    """Stop the scheduler"""
    if scheduler.running:
        scheduler.shutdown(wait=False)
    log.info("Scheduler stopped")


def get_scheduled_jobs() -> list:
    """
    Get list of all scheduled jobs

    Returns:
        List of job info dicts
    """
    jobs = []

    for job in scheduler.get_jobs():
        # Pending jobs (scheduler not started) have no next run time yet
        next_run = getattr(job, 'next_run_time', None)

        jobs.append({
            'id': job.id,
            'name': job.name,
            'next_run': next_run.isoformat() if next_run else None,
            'trigger': str(job.trigger)
        })

    return jobs
