"""APScheduler-based automation scheduler.

Runs two periodic jobs in the API process:
- automation: every owner's active auto_run filters
- maintenance: purge expired cache entries and closed rate-limit windows
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import structlog
from apscheduler.job import Job
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leadpilot.config import settings
from leadpilot.services.automation_service import AutomationOrchestrator
from leadpilot.services.cache_service import ContentCache
from leadpilot.services.filter_service import FilterService
from leadpilot.services.rate_limiter import RateLimiter

logger = structlog.get_logger(__name__)

AUTOMATION_JOB_ID = "automation_auto_run"
MAINTENANCE_JOB_ID = "maintenance_purge"


class AutomationScheduler:
    """Manages the periodic automation and maintenance jobs.

    This scheduler:
    - Runs auto_run filters for every owner, one owner after another
    - Purges expired cache entries and rate-limit windows
    - Logs job failures without stopping the scheduler
    """

    def __init__(
        self,
        db_session_factory: async_sessionmaker[AsyncSession],
        orchestrator: AutomationOrchestrator,
        cache: Optional[ContentCache] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        """Initialize the automation scheduler.

        Args:
            db_session_factory: Async session factory for database access
            orchestrator: Orchestrator that runs the filters
            cache: Content cache to purge during maintenance
            rate_limiter: Rate limiter to purge during maintenance
        """
        self.db_session_factory = db_session_factory
        self.orchestrator = orchestrator
        self.cache = cache
        self.rate_limiter = rate_limiter
        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self.logger = logger.bind(service="automation_scheduler")

    def start(self) -> None:
        """Start the scheduler and register both jobs."""
        if self.scheduler.running:
            self.logger.warning("scheduler_already_running")
            return

        self.scheduler.start()
        self.add_automation_job()
        self.add_maintenance_job()
        self.logger.info("scheduler_started")

    def stop(self) -> None:
        """Stop the scheduler, waiting for running jobs to finish."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=True)
            self.logger.info("scheduler_stopped")
        else:
            self.logger.warning("scheduler_not_running")

    def add_automation_job(
        self,
        interval_minutes: int = settings.AUTOMATION_INTERVAL_MINUTES,
        offset_seconds: int = 60,
    ) -> Job:
        """Schedule the auto_run job.

        Args:
            interval_minutes: How often to run every auto_run filter
            offset_seconds: Delay before the first run after startup
        """
        job = self.scheduler.add_job(
            func=self._run_auto_filters_wrapper,
            trigger=IntervalTrigger(minutes=interval_minutes, timezone="UTC"),
            id=AUTOMATION_JOB_ID,
            name="Run auto_run prospecting filters",
            replace_existing=True,
            max_instances=1,  # A slow run must not overlap the next one
            next_run_time=datetime.now(timezone.utc) + timedelta(seconds=offset_seconds),
        )
        self.logger.info("automation_job_added", interval_minutes=interval_minutes)
        return job

    def add_maintenance_job(
        self,
        interval_minutes: int = settings.MAINTENANCE_INTERVAL_MINUTES,
    ) -> Job:
        """Schedule the cache and rate-limit purge job."""
        job = self.scheduler.add_job(
            func=self._run_maintenance_wrapper,
            trigger=IntervalTrigger(minutes=interval_minutes, timezone="UTC"),
            id=MAINTENANCE_JOB_ID,
            name="Purge expired cache and rate-limit state",
            replace_existing=True,
            max_instances=1,
        )
        self.logger.info("maintenance_job_added", interval_minutes=interval_minutes)
        return job

    async def _run_auto_filters_wrapper(self) -> None:
        """Entry point APScheduler calls; never lets an exception escape."""
        try:
            await self.run_auto_filters()
        except Exception as e:
            self.logger.error("automation_job_failed", error=str(e), exc_info=True)

    async def _run_maintenance_wrapper(self) -> None:
        try:
            await self.run_maintenance()
        except Exception as e:
            self.logger.error("maintenance_job_failed", error=str(e), exc_info=True)

    async def run_auto_filters(self) -> Dict[str, int]:
        """Run the auto_run filters of every owner that has some.

        Returns:
            Totals across owners
        """
        async with self.db_session_factory() as db:
            owners = await FilterService(db).get_auto_run_owners()

        totals = {"owners": 0, "filters_processed": 0, "listings_found": 0, "listings_added": 0, "errors": 0}
        for owner_id in owners:
            report = await self.orchestrator.run(owner_id)
            totals["owners"] += 1
            totals["filters_processed"] += report.filters_processed
            totals["listings_found"] += report.listings_found
            totals["listings_added"] += report.listings_added
            totals["errors"] += len(report.errors)

        self.logger.info("automation_job_completed", **totals)
        return totals

    async def run_maintenance(self) -> Dict[str, int]:
        """Purge expired cache entries and closed rate-limit windows."""
        removed = {"cache": 0, "rate_limit": 0}
        if self.cache is not None:
            removed["cache"] = await self.cache.purge_expired()
        if self.rate_limiter is not None:
            removed["rate_limit"] = await self.rate_limiter.purge_expired()
        self.logger.info("maintenance_job_completed", **removed)
        return removed

    def get_jobs_status(self) -> dict:
        """Next run time and trigger of each scheduled job."""
        jobs = {}
        for job in self.scheduler.get_jobs():
            jobs[job.id] = {
                "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
                "trigger": str(job.trigger),
            }
        return jobs

    def is_running(self) -> bool:
        return self.scheduler.running
