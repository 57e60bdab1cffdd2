"""Interval scheduling for the webhook publisher."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = structlog.get_logger(__name__)


class JobScheduler:
    """Thin wrapper over APScheduler's AsyncIOScheduler."""

    def __init__(self, scheduler: AsyncIOScheduler | None = None) -> None:
        self.scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)
        self.jobs: dict[str, dict[str, Any]] = {}
        self.running = False

    def start(self) -> None:
        """Start the scheduler. Must be called from inside the running event loop."""
        if self.running:
            logger.warning("Scheduler already running")
            return
        self.scheduler.start()
        self.running = True
        logger.info("Job scheduler started")

    def stop(self) -> None:
        if not self.running:
            return
        self.scheduler.shutdown(wait=False)
        self.running = False
        logger.info("Job scheduler stopped")

    def add_interval_job(
        self,
        job_id: str,
        func: Callable[..., Any],
        seconds: int,
        *,
        run_immediately: bool = True,
        description: str | None = None,
    ) -> None:
        """
        Add a non-overlapping interval job.

        `max_instances=1` + `coalesce=True`: a tick that fires while the previous run is still
        going is skipped rather than stacked.
        """
        if job_id in self.jobs:
            logger.warning("Job already exists, replacing", job_id=job_id)
            self.remove_job(job_id)

        extra: dict[str, Any] = {}
        if run_immediately:
            # Omitting next_run_time waits one interval; passing None would add the job paused.
            extra["next_run_time"] = datetime.now(timezone.utc)

        job = self.scheduler.add_job(
            func,
            trigger=IntervalTrigger(seconds=int(seconds)),
            id=job_id,
            name=description or job_id,
            max_instances=1,
            coalesce=True,
            **extra,
        )
        self.jobs[job_id] = {
            "job": job,
            "seconds": int(seconds),
            "description": description,
            "added_at": datetime.now(timezone.utc),
        }
        logger.info("Added interval job", job_id=job_id, interval_seconds=seconds, description=description)

    def remove_job(self, job_id: str) -> bool:
        if job_id not in self.jobs:
            logger.warning("Job not found", job_id=job_id)
            return False
        self.scheduler.remove_job(job_id)
        del self.jobs[job_id]
        logger.info("Removed job", job_id=job_id)
        return True

    def get_job_status(self, job_id: str) -> dict[str, Any] | None:
        info = self.jobs.get(job_id)
        if info is None:
            return None
        job = info["job"]
        next_run = getattr(job, "next_run_time", None)
        return {
            "id": job_id,
            "description": info["description"],
            "interval_seconds": info["seconds"],
            "next_run_time": next_run.isoformat() if next_run else None,
        }
