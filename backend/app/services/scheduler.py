"""
Background Job Scheduler.

WHAT: Configures and manages APScheduler for the SLA escalation scan.

WHY: Escalations are time-based. Nothing in a request triggers them, so a
periodic job wakes up, scans open tickets and goes back to sleep. The
resolution of the engine is bounded by this interval.

HOW: Uses APScheduler with AsyncIOScheduler and an in-memory job store.
The scan is idempotent, so losing the schedule on restart is harmless.

Example:
    # In main.py lifespan:
    from app.services.scheduler import start_scheduler, shutdown_scheduler

    await start_scheduler()
    yield
    await shutdown_scheduler()
"""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.triggers.interval import IntervalTrigger

from app.core.config import settings
from app.services.escalation_dispatcher import get_escalation_dispatcher


logger = logging.getLogger(__name__)


SLA_ESCALATION_JOB_ID = "sla_escalation_check"


# Global scheduler instance
_scheduler: Optional[AsyncIOScheduler] = None


def get_scheduler() -> Optional[AsyncIOScheduler]:
    """Get the global scheduler instance."""
    return _scheduler


async def start_scheduler() -> None:
    """
    Start the background job scheduler.

    WHAT: Initializes APScheduler and registers the escalation scan.

    HOW:
    1. Creates AsyncIOScheduler with memory job store
    2. Registers the SLA escalation job
    3. Starts the scheduler

    Note: Call this from the FastAPI lifespan.
    """
    global _scheduler

    if _scheduler is not None and _scheduler.running:
        logger.warning("Scheduler already running")
        return

    jobstores = {
        "default": MemoryJobStore()
    }

    executors = {
        "default": AsyncIOExecutor()
    }

    job_defaults = {
        "coalesce": True,  # Combine multiple missed runs into one
        "max_instances": 1,  # Never overlap two scans in this process
        "misfire_grace_time": 60,  # Allow 60s late execution
    }

    _scheduler = AsyncIOScheduler(
        jobstores=jobstores,
        executors=executors,
        job_defaults=job_defaults,
        timezone="UTC",
    )

    _register_sla_escalation_job()

    _scheduler.start()
    logger.info(
        f"Scheduler started with SLA escalation check every "
        f"{settings.SLA_CHECK_INTERVAL_MINUTES} minute(s)"
    )


async def run_escalation_job() -> dict:
    """
    Scheduled job body: run one escalation scan.

    WHY: Exceptions (scan timeout, database outage) propagate so that
    APScheduler records the run as failed. The next interval retries.

    Returns:
        Dict with scan counters
    """
    dispatcher = get_escalation_dispatcher()
    result = await dispatcher.run_escalation_scan()
    return result.to_dict()


def _register_sla_escalation_job() -> None:
    """
    Register the SLA escalation scan job.

    HOW: Runs run_escalation_job every SLA_CHECK_INTERVAL_MINUTES.
    """
    global _scheduler

    if _scheduler is None:
        logger.error("Cannot register job: scheduler not initialized")
        return

    interval = max(1, settings.SLA_CHECK_INTERVAL_MINUTES)

    _scheduler.add_job(
        func=run_escalation_job,
        trigger=IntervalTrigger(minutes=interval),
        id=SLA_ESCALATION_JOB_ID,
        name="SLA Escalation Check",
        replace_existing=True,
    )

    logger.info(f"Registered SLA escalation job (interval: {interval}m)")


async def shutdown_scheduler() -> None:
    """
    Shut down the background job scheduler.

    WHAT: Gracefully stops the scheduler.

    Note: Call this from the FastAPI lifespan.
    """
    global _scheduler

    if _scheduler is None:
        logger.info("Scheduler not running")
        return

    if not _scheduler.running:
        logger.info("Scheduler already stopped")
        _scheduler = None
        return

    logger.info("Shutting down scheduler...")
    _scheduler.shutdown(wait=True)
    _scheduler = None
    logger.info("Scheduler shut down successfully")


async def run_sla_check_now() -> dict:
    """
    Run the SLA escalation scan immediately.

    WHY: Useful for manual testing, admin-triggered checks and after bulk
    ticket imports. Safe to call at any time because scans are idempotent.

    Returns:
        Dict with scan counters
    """
    return await run_escalation_job()


def get_scheduler_status() -> dict:
    """
    Get scheduler status information.

    WHY: Reported by the health endpoint.

    Returns:
        Dict with scheduler status and job details
    """
    global _scheduler

    if _scheduler is None:
        return {
            "running": False,
            "jobs": [],
            "message": "Scheduler not initialized",
        }

    jobs = []
    for job in _scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run_time": str(job.next_run_time) if job.next_run_time else None,
            "trigger": str(job.trigger),
        })

    return {
        "running": _scheduler.running,
        "jobs": jobs,
        "message": "Scheduler is running" if _scheduler.running else "Scheduler is paused",
    }
