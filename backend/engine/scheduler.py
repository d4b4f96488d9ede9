"""APScheduler integration for FastAPI.

Registers the periodic portfolio jobs: quote refresh and sell monitoring on
intervals, UVA update and monthly custody on cron schedules.
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from backend.config import settings

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


def _job_id(name: str) -> str:
    return f"job_{name}"


def _get_trigger(name: str):
    if name == "quote_update":
        return IntervalTrigger(minutes=settings.quote_update_minutes)
    if name == "sell_monitor":
        return IntervalTrigger(minutes=settings.sell_monitor_minutes)
    if name == "uva_update":
        return CronTrigger.from_crontab(settings.uva_update_cron, timezone=settings.market_timezone)
    if name == "custody_fee":
        return CronTrigger.from_crontab(settings.custody_fee_cron, timezone=settings.market_timezone)
    raise ValueError(f"Unknown job '{name}'")


def add_job(name: str):
    """Add or replace the scheduler job for one of the portfolio jobs."""
    from backend.engine.jobs import JOBS

    func = JOBS[name]
    job_id = _job_id(name)

    # Remove existing job if present
    if scheduler.get_job(job_id):
        scheduler.remove_job(job_id)

    trigger = _get_trigger(name)
    scheduler.add_job(
        func,
        trigger=trigger,
        id=job_id,
        name=name.replace("_", " ").title(),
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=60,
    )
    logger.info(f"Scheduled {name} with {trigger}")


def remove_job(name: str):
    job_id = _job_id(name)
    if scheduler.get_job(job_id):
        scheduler.remove_job(job_id)
        logger.info(f"Removed job {name}")


def start_scheduler():
    """Register all jobs and start the scheduler."""
    from backend.engine.jobs import JOB_NAMES

    for name in JOB_NAMES:
        add_job(name)

    scheduler.start()
    logger.info(f"Scheduler started with {len(scheduler.get_jobs())} jobs")


def stop_scheduler():
    """Shut down the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
    logger.info("Scheduler stopped")


def get_scheduler_status() -> dict:
    """Return current scheduler state for the API."""
    from backend.engine.jobs import get_job_stats

    jobs = scheduler.get_jobs()
    return {
        "running": scheduler.running,
        "job_count": len(jobs),
        "jobs": [
            {
                "id": j.id,
                "name": j.name,
                "next_run": str(j.next_run_time) if j.next_run_time else None,
                "trigger": str(j.trigger),
            }
            for j in jobs
        ],
        "stats": get_job_stats(),
    }
