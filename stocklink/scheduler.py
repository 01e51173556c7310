"""
Interval scheduling of sync runs.

Runs inside an asyncio loop; `max_instances=1` keeps a slow run from
overlapping the next one.
"""

import logging
from datetime import datetime
from typing import Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, EVENT_JOB_MAX_INSTANCES
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import async_sessionmaker

from stocklink.core.config import Settings, get_settings
from stocklink.services.sync_service import run_sync_once

logger = logging.getLogger(__name__)


async def sync_shop_task(shop_domain: str, settings: Settings, session_factory: Optional[async_sessionmaker] = None):
    """Task to run one sync pass"""
    logger.info(f"=== SCHEDULED SYNC STARTING for {shop_domain} ===")
    result = await run_sync_once(shop_domain, settings=settings, session_factory=session_factory)
    if result.success:
        logger.info(f"Scheduled sync {result.run_id} completed: {result.applied}")
    else:
        logger.error(f"Scheduled sync {result.run_id} failed at {result.failed_stage}: {result.error}")
    return result


def job_listener(event):
    """Listen to job events for logging"""
    if event.code == EVENT_JOB_MAX_INSTANCES:
        logger.warning(f"Job {event.job_id} skipped: previous run still in progress")
    elif event.exception:
        logger.error(f"Job {event.job_id} crashed: {event.exception}")
    else:
        logger.info(f"Job {event.job_id} executed successfully at {datetime.now()}")


def create_scheduler(
    shop_domain: str,
    settings: Optional[Settings] = None,
    interval_minutes: Optional[int] = None,
    session_factory: Optional[async_sessionmaker] = None,
) -> AsyncIOScheduler:
    """Create a scheduler with one interval job syncing the shop"""
    settings = settings or get_settings()
    minutes = interval_minutes or settings.SYNC_INTERVAL_MINUTES

    scheduler = AsyncIOScheduler()
    scheduler.add_listener(job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR | EVENT_JOB_MAX_INSTANCES)
    scheduler.add_job(
        sync_shop_task,
        IntervalTrigger(minutes=minutes),
        args=[shop_domain, settings, session_factory],
        id=f"sync_{shop_domain}",
        name=f"Sync {shop_domain}",
        replace_existing=True,
        max_instances=1,  # Only one sync at a time
        coalesce=True,
        next_run_time=datetime.now(),
    )
    logger.info(f"Scheduled sync for {shop_domain} every {minutes} minutes")
    return scheduler
