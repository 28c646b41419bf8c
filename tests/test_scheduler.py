"""Tests for the automation and maintenance scheduler jobs."""

from unittest.mock import AsyncMock
from uuid import uuid4

from leadpilot.scrapers.scheduler import AUTOMATION_JOB_ID, MAINTENANCE_JOB_ID, AutomationScheduler
from leadpilot.services.automation_service import AutomationReport
from leadpilot.services.filter_service import FilterService


async def seed_filters(session_factory, owner_ids, auto_run=True):
    async with session_factory() as session:
        service = FilterService(session)
        for owner_id in owner_ids:
            await service.create_filter(owner_id, "pro", "Auto", auto_run=auto_run)
        await session.commit()


class TestAutomationScheduler:
    """Tests for AutomationScheduler job bodies."""

    async def test_run_auto_filters_visits_each_owner(self, session_factory):
        owners = [uuid4(), uuid4()]
        await seed_filters(session_factory, owners)
        await seed_filters(session_factory, [uuid4()], auto_run=False)
        orchestrator = AsyncMock()
        orchestrator.run.return_value = AutomationReport(
            filters_processed=1, listings_found=4, listings_added=2, errors=["Filter Auto: boom"]
        )

        totals = await AutomationScheduler(session_factory, orchestrator).run_auto_filters()

        assert totals == {
            "owners": 2,
            "filters_processed": 2,
            "listings_found": 8,
            "listings_added": 4,
            "errors": 2,
        }
        assert {call.args[0] for call in orchestrator.run.await_args_list} == set(owners)

    async def test_job_failure_is_contained(self, session_factory):
        await seed_filters(session_factory, [uuid4()])
        orchestrator = AsyncMock()
        orchestrator.run.side_effect = RuntimeError("database gone")

        # Must not raise
        await AutomationScheduler(session_factory, orchestrator)._run_auto_filters_wrapper()

    async def test_maintenance_purges_cache_and_limiter(self, session_factory):
        cache = AsyncMock()
        cache.purge_expired.return_value = 4
        rate_limiter = AsyncMock()
        rate_limiter.purge_expired.return_value = 7

        removed = await AutomationScheduler(
            session_factory, AsyncMock(), cache=cache, rate_limiter=rate_limiter
        ).run_maintenance()

        assert removed == {"cache": 4, "rate_limit": 7}

    async def test_start_registers_jobs(self, session_factory):
        scheduler = AutomationScheduler(session_factory, AsyncMock())

        scheduler.start()
        try:
            assert scheduler.is_running()
            assert set(scheduler.get_jobs_status()) == {AUTOMATION_JOB_ID, MAINTENANCE_JOB_ID}
        finally:
            scheduler.stop()
