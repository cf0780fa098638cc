from datetime import datetime, timezone
from typing import Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from services.energy import EnergySimulator

logger = structlog.get_logger(__name__)

ENERGY_JOB_ID = "energy_simulation"


def build_scheduler(
    simulator: EnergySimulator,
    interval_seconds: float,
    scheduler: Optional[AsyncIOScheduler] = None,
) -> AsyncIOScheduler:
    """Register the simulator tick on a fixed interval. The scheduler is returned unstarted."""
    scheduler = scheduler or AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        simulator.run,
        trigger=IntervalTrigger(seconds=interval_seconds),
        id=ENERGY_JOB_ID,
        name="energy_simulation",
        coalesce=True,
        max_instances=1,
        misfire_grace_time=int(max(interval_seconds, 1)),
        replace_existing=True,
        next_run_time=datetime.now(timezone.utc),
    )
    logger.info("job_registered", job=ENERGY_JOB_ID, interval_seconds=interval_seconds)
    return scheduler


def start_scheduler(scheduler: AsyncIOScheduler) -> None:
    scheduler.start()
    for job in scheduler.get_jobs():
        next_run = job.next_run_time.strftime("%Y-%m-%d %H:%M:%S") if job.next_run_time else "-"
        logger.info("scheduler_started", job=job.name, next_run=next_run)


def stop_scheduler(scheduler: AsyncIOScheduler) -> None:
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("scheduler_stopped")
