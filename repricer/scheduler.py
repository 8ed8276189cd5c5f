"""
Scheduled jobs for the repricer.

Runs the token keepalive on a fixed interval and the daily price update on a
cron schedule, inside the FastAPI process. The same task functions back the
CLI in repricer/cli/run_jobs.py, for hosts that prefer an external cron.
"""

import logging
from datetime import date, datetime
from typing import Any, Dict, Optional, Union

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from repricer.core.config import get_settings
from repricer.core.enums import ExecutionReason
from repricer.database import async_session
from repricer.schemas.pricing import PriceUpdateResult
from repricer.services.erp.client import ErpClient
from repricer.services.keepalive_service import KeepAliveService
from repricer.services.price_update_service import PriceUpdateService

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler: Optional[AsyncIOScheduler] = None


async def keepalive_task() -> Dict[str, Any]:
    """Task to keep the ERP token alive"""
    settings = get_settings()
    async with async_session() as db:
        return await KeepAliveService(db, ErpClient(db, settings=settings)).run()


async def price_update_task(
    reason: Union[ExecutionReason, str] = ExecutionReason.SCHEDULED,
    day: Optional[date] = None,
) -> PriceUpdateResult:
    """Task to run the daily price update"""
    settings = get_settings()
    async with async_session() as db:
        result = await PriceUpdateService(db, settings=settings).run(reason=reason, day=day)

    if result.success:
        logger.info(f"Price update finished with status {result.status.value}: {result.message}")
    else:
        logger.error(f"Price update failed: {result.error}")
    return result


def job_listener(event):
    """Listen to job events for logging"""
    if event.exception:
        logger.error(f"Job {event.job_id} crashed: {event.exception}")
    else:
        logger.info(f"Job {event.job_id} executed successfully at {datetime.now()}")


def create_scheduler() -> AsyncIOScheduler:
    """Create and configure the scheduler"""
    global scheduler

    if scheduler is not None:
        return scheduler

    settings = get_settings()
    scheduler = AsyncIOScheduler(timezone=settings.BUSINESS_TIMEZONE)
    scheduler.add_listener(job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)

    if settings.SCHEDULER_ENABLED:
        scheduler.add_job(
            keepalive_task,
            IntervalTrigger(hours=settings.KEEPALIVE_INTERVAL_HOURS),
            id="erp_keepalive",
            name="ERP Token Keepalive",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=3600,
        )
        logger.info(f"Keepalive job added: every {settings.KEEPALIVE_INTERVAL_HOURS}h")

        scheduler.add_job(
            price_update_task,
            CronTrigger.from_crontab(settings.PRICE_UPDATE_CRON, timezone=settings.BUSINESS_TIMEZONE),
            id="price_update",
            name="Daily Price Update",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=3600,
        )
        logger.info(f"Price update job added with schedule: {settings.PRICE_UPDATE_CRON} ({settings.BUSINESS_TIMEZONE})")
    else:
        logger.info("Scheduled jobs are disabled. Set SCHEDULER_ENABLED=true to enable")

    return scheduler


async def start_scheduler():
    """Start the scheduler"""
    global scheduler

    if scheduler is None:
        scheduler = create_scheduler()

    if not scheduler.running:
        scheduler.start()
        logger.info("Scheduler started successfully")

        jobs = scheduler.get_jobs()
        if jobs:
            logger.info(f"Active scheduled jobs: {len(jobs)}")
            for job in jobs:
                logger.info(f"  - {job.name}: {job.trigger}")
        else:
            logger.info("No scheduled jobs configured")


async def stop_scheduler():
    """Stop the scheduler gracefully"""
    global scheduler

    if scheduler and scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Scheduler stopped successfully")
    scheduler = None


async def get_scheduler_status():
    """Get current scheduler status and job information"""
    if scheduler is None:
        return {"status": "not_initialized", "jobs": []}

    jobs_info = []
    for job in scheduler.get_jobs():
        jobs_info.append({
            "id": job.id,
            "name": job.name,
            "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
            "trigger": str(job.trigger)
        })

    return {
        "status": "running" if scheduler.running else "stopped",
        "jobs": jobs_info
    }
