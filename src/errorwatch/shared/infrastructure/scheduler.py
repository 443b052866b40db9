"""
Recurring Job Scheduler
========================

Wrapper around APScheduler's AsyncIOScheduler. Jobs run on the caller's
event loop, so a job never interleaves with another coroutine between two
awaits of its own.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from errorwatch.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class JobSpec:
    """A recurring job registered before the scheduler starts."""
    job_id: str
    name: str
    func: Callable[[], Awaitable[Any]]
    interval_seconds: float


class MonitoringScheduler:
    """
    Manages the lifecycle of the engine's background jobs
    (retention sweep, incident timeout sweep, baseline refresh).
    """

    def __init__(self):
        self._jobs: Dict[str, JobSpec] = {}
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    def add_interval_job(
        self,
        job_id: str,
        func: Callable[[], Awaitable[Any]],
        interval_seconds: float,
        name: Optional[str] = None
    ) -> None:
        """Register a job; takes effect on the next start()."""
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._jobs[job_id] = JobSpec(
            job_id=job_id,
            name=name or job_id,
            func=func,
            interval_seconds=interval_seconds
        )
        if self._running and self._scheduler is not None:
            self._schedule(self._jobs[job_id])

    def _schedule(self, spec: JobSpec) -> None:
        self._scheduler.add_job(
            spec.func,
            "interval",
            seconds=spec.interval_seconds,
            id=spec.job_id,
            name=spec.name,
            misfire_grace_time=60,
            coalesce=True,
            max_instances=1,
            replace_existing=True
        )

    async def start(self) -> None:
        """Start the scheduler with every registered job."""
        if self._running:
            logger.warning("Monitoring scheduler already running")
            return

        self._scheduler = AsyncIOScheduler()
        for spec in self._jobs.values():
            self._schedule(spec)

        self._scheduler.start()
        self._running = True

        logger.info(
            "Monitoring scheduler started",
            extra={"jobs": sorted(self._jobs)}
        )

    async def stop(self) -> None:
        """Stop the scheduler; no job fires after this returns."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None

        self._running = False
        logger.info("Monitoring scheduler stopped")

    @property
    def job_ids(self) -> List[str]:
        """Ids of registered jobs."""
        return sorted(self._jobs)

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._running
