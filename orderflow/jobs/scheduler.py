"""
APScheduler Configuration

Background job scheduler for the order workflow. The only scheduled job is
the daily auto-completion sweep; it runs in the configured timezone so
"latest delivery has passed" follows the plants' calendar day.
"""

import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.asyncio import AsyncIOExecutor

from orderflow.config import settings

logger = logging.getLogger(__name__)

AUTO_COMPLETE_JOB_ID = 'auto_complete_orders'

# Job stores
jobstores = {
    'default': MemoryJobStore()
}

# Executors
executors = {
    'default': AsyncIOExecutor(),
}

# Job defaults
job_defaults = {
    'coalesce': True,  # Combine multiple pending executions into one
    'max_instances': 1,  # Only one instance of each job at a time
    'misfire_grace_time': 3600,  # A sweep missed by up to an hour still runs
}

# Create scheduler
scheduler = AsyncIOScheduler(
    jobstores=jobstores,
    executors=executors,
    job_defaults=job_defaults,
    timezone=settings.SCHEDULER_TIMEZONE
)


def register_jobs():
    """Add (or replace) the scheduled jobs."""
    from orderflow.jobs.order_jobs import auto_complete_orders

    # Complete approved orders whose latest delivery date has passed (daily)
    scheduler.add_job(
        auto_complete_orders,
        'cron',
        hour=settings.AUTO_COMPLETE_CRON_HOUR,
        minute=settings.AUTO_COMPLETE_CRON_MINUTE,
        id=AUTO_COMPLETE_JOB_ID,
        name='Auto-complete Delivered Orders',
        replace_existing=True,
    )


def start_scheduler():
    """Start the background job scheduler."""
    if not scheduler.running:
        register_jobs()
        scheduler.start()
        logger.info("Background job scheduler started")

        # Log all scheduled jobs
        jobs = scheduler.get_jobs()
        for job in jobs:
            logger.info(f"Scheduled job: {job.name} - Next run: {job.next_run_time}")


def shutdown_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Background job scheduler stopped")


def get_job_status():
    """Get status of all scheduled jobs."""
    status = []
    for job in scheduler.get_jobs():
        # Jobs added before start() have no next_run_time yet
        next_run_time = getattr(job, 'next_run_time', None)
        status.append({
            'id': job.id,
            'name': job.name,
            'next_run_time': str(next_run_time) if next_run_time else None,
            'trigger': str(job.trigger),
        })
    return status
