"""Tests for the prospecting automation orchestrator.

Tests cover:
- End-to-end runs against an in-memory portal (search, scrape, dedup, score, persist)
- Per-item failure isolation (unsupported platform, invalid criteria, scrape and scoring failures)
- The per-source safety cap and the run deadline
- Overlapping runs for the same owner
"""

import asyncio
import time
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from html_pages import PortalSite, build_factory, idealista_listing_page, idealista_search_page
from leadpilot.core.context import RunContext
from leadpilot.core.exceptions import UpstreamUnavailableError
from leadpilot.core.retry import ResilientCaller
from leadpilot.scrapers.base import ScrapedListing
from leadpilot.services import AutomationOrchestrator, Deduplicator, FilterService, ListingRepository
from leadpilot.services.scoring import HeuristicScoringAdapter, ScoringService

MILANO = {"location": "Milano", "price_max": 300000, "source_platforms": ["idealista"]}


def fast_caller() -> ResilientCaller:
    return ResilientCaller(timeout=5, max_retries=1, base_delay=0, max_delay=0, jitter=0)


def portal_with_listings(listing_ids) -> PortalSite:
    site = PortalSite()
    site.add("/vendita-case", idealista_search_page(listing_ids))
    for listing_id in listing_ids:
        site.add(f"/immobile/{listing_id}/", idealista_listing_page(listing_id))
    return site


@pytest.fixture
def make_orchestrator(session_factory):
    def _build(site: PortalSite, scoring=None, **kwargs) -> AutomationOrchestrator:
        options = {"max_pages": 1, "max_items_per_source": 20, "run_timeout": None}
        options.update(kwargs)
        return AutomationOrchestrator(
            session_factory,
            scoring=scoring or ScoringService(HeuristicScoringAdapter(), caller=fast_caller()),
            adapter_factory=build_factory(site),
            **options,
        )

    return _build


@pytest.fixture
def create_filter(session_factory):
    async def _create(owner_id, name="Milano trilocali", criteria=None, auto_run=True, is_active=True):
        async with session_factory() as session:
            prospecting_filter = await FilterService(session).create_filter(
                owner_id,
                "pro",
                name,
                MILANO if criteria is None else criteria,
                is_active=is_active,
                auto_run=auto_run,
            )
            await session.commit()
            return prospecting_filter

    return _create


async def load_filter(session_factory, owner_id, filter_id):
    async with session_factory() as session:
        return await FilterService(session).get_filter(owner_id, filter_id)


# ============================================================================
# TESTS: END-TO-END RUNS
# ============================================================================

class TestAutomationRun:
    """Tests for complete automation runs."""

    async def test_adds_only_new_listings(self, session_factory, make_orchestrator, create_filter):
        """Test that listings the owner already has are found but not added."""
        owner_id = uuid4()
        prospecting_filter = await create_filter(owner_id)
        site = portal_with_listings([101, 102, 103, 104, 105])
        dedup = Deduplicator(ListingRepository(session_factory))
        for known in (101, 102):
            await dedup.upsert_if_new(
                owner_id,
                ScrapedListing(url=f"https://www.idealista.it/immobile/{known}/", platform="idealista", title="Known"),
            )

        report = await make_orchestrator(site).run(owner_id)

        assert report.to_dict() == {
            "filters_processed": 1,
            "listings_found": 5,
            "listings_added": 3,
            "errors": None,
        }

        listings, total = await ListingRepository(session_factory).list_for_owner(
            owner_id, filter_id=prospecting_filter.id
        )
        assert total == 3
        assert all(listing.lead_score == 70 for listing in listings)
        assert all(listing.status == "new" for listing in listings)
        assert listings[0].raw_data["metadata"]["lead_analysis"]["source"] == "heuristic"

        refreshed = await load_filter(session_factory, owner_id, prospecting_filter.id)
        assert refreshed.listings_found_count == 3
        assert refreshed.last_run_at is not None

    async def test_second_run_adds_nothing(self, session_factory, make_orchestrator, create_filter):
        owner_id = uuid4()
        prospecting_filter = await create_filter(owner_id)
        orchestrator = make_orchestrator(portal_with_listings([201, 202]))

        first = await orchestrator.run(owner_id)
        second = await orchestrator.run(owner_id)

        assert first.listings_added == 2
        assert second.listings_found == 2
        assert second.listings_added == 0
        refreshed = await load_filter(session_factory, owner_id, prospecting_filter.id)
        assert refreshed.listings_found_count == 2

    async def test_no_filters_is_an_empty_success(self, make_orchestrator):
        report = await make_orchestrator(PortalSite()).run(uuid4())

        assert report.to_dict() == {
            "filters_processed": 0,
            "listings_found": 0,
            "listings_added": 0,
            "errors": None,
        }

    async def test_filter_id_selects_one_filter(self, make_orchestrator, create_filter):
        """Test that an explicit filter_id runs even without auto_run."""
        owner_id = uuid4()
        manual = await create_filter(owner_id, name="Manual", auto_run=False)
        await create_filter(owner_id, name="Auto", criteria={"source_platforms": ["mls"]})

        report = await make_orchestrator(portal_with_listings([301])).run(owner_id, filter_id=manual.id)

        assert report.filters_processed == 1
        assert report.listings_added == 1
        assert not report.errors

    async def test_inactive_filter_is_skipped(self, make_orchestrator, create_filter):
        owner_id = uuid4()
        paused = await create_filter(owner_id, is_active=False)

        report = await make_orchestrator(portal_with_listings([401])).run(owner_id, filter_id=paused.id)

        assert report.filters_processed == 0


# ============================================================================
# TESTS: FAILURE ISOLATION
# ============================================================================

class TestFailureIsolation:
    """Tests that one failing item never aborts the run."""

    async def test_unsupported_platform_is_recorded(self, session_factory, make_orchestrator, create_filter):
        owner_id = uuid4()
        prospecting_filter = await create_filter(owner_id, criteria={"location": "Austin", "source_platforms": ["mls"]})

        report = await make_orchestrator(PortalSite()).run(owner_id)

        assert report.filters_processed == 1
        assert report.listings_found == 0
        assert len(report.errors) == 1
        assert "mls" in report.errors[0]
        refreshed = await load_filter(session_factory, owner_id, prospecting_filter.id)
        assert refreshed.last_run_at is not None

    async def test_search_failure_is_recorded(self, make_orchestrator, create_filter):
        owner_id = uuid4()
        await create_filter(owner_id)
        site = PortalSite()
        site.add("/vendita-case", "<html>blocked</html>", status=403)

        report = await make_orchestrator(site).run(owner_id)

        assert report.filters_processed == 1
        assert len(report.errors) == 1
        assert "(idealista)" in report.errors[0]

    async def test_scrape_failure_skips_one_listing(self, make_orchestrator, create_filter):
        owner_id = uuid4()
        await create_filter(owner_id)
        site = portal_with_listings([501, 502, 503])
        del site.pages["/immobile/502/"]

        report = await make_orchestrator(site).run(owner_id)

        assert report.listings_found == 2
        assert report.listings_added == 2
        assert len(report.errors) == 1
        assert "/immobile/502/" in report.errors[0]

    async def test_scoring_failure_persists_null_score(self, session_factory, make_orchestrator, create_filter):
        owner_id = uuid4()
        await create_filter(owner_id)
        adapter = AsyncMock()
        adapter.name = "broken"
        adapter.score.side_effect = UpstreamUnavailableError("LLM provider quota exhausted (429)", 429)

        report = await make_orchestrator(
            portal_with_listings([601, 602]),
            scoring=ScoringService(adapter, caller=fast_caller()),
        ).run(owner_id)

        assert report.listings_added == 2
        assert len(report.errors) == 2
        assert all("scoring failed" in error for error in report.errors)

        listings, _ = await ListingRepository(session_factory).list_for_owner(owner_id)
        assert [listing.lead_score for listing in listings] == [None, None]

    async def test_unexpected_scorer_error_persists_null_score(self, session_factory, make_orchestrator, create_filter):
        """Test that a scorer raising outside the error taxonomy still stores every listing."""
        owner_id = uuid4()
        await create_filter(owner_id)
        adapter = AsyncMock()
        adapter.name = "broken"
        adapter.score.side_effect = RuntimeError("model crashed")

        report = await make_orchestrator(
            portal_with_listings([611, 612, 613]),
            scoring=ScoringService(adapter, caller=fast_caller()),
        ).run(owner_id)

        assert report.listings_found == 3
        assert report.listings_added == 3
        assert len(report.errors) == 3
        assert all("scoring failed: model crashed" in error for error in report.errors)

        listings, total = await ListingRepository(session_factory).list_for_owner(owner_id)
        assert total == 3
        assert all(listing.lead_score is None for listing in listings)

    async def test_invalid_criteria_for_one_source_does_not_stop_others(self, make_orchestrator, create_filter):
        """Test that a source rejecting the criteria leaves the other sources running."""
        owner_id = uuid4()
        await create_filter(
            owner_id,
            criteria={"source_platforms": ["zillow", "idealista"], "bathrooms_min": "two"},
        )
        site = portal_with_listings([621])

        report = await make_orchestrator(site).run(owner_id)

        assert report.filters_processed == 1
        assert report.listings_found == 1
        assert report.listings_added == 1
        assert len(report.errors) == 1
        assert "(zillow)" in report.errors[0]
        assert all(r.url.host != "www.zillow.com" for r in site.requests)

    async def test_one_filter_failing_does_not_stop_others(self, make_orchestrator, create_filter):
        owner_id = uuid4()
        await create_filter(owner_id, name="Broken", criteria={"source_platforms": ["mls"]})
        await create_filter(owner_id, name="Working")

        report = await make_orchestrator(portal_with_listings([701])).run(owner_id)

        assert report.filters_processed == 2
        assert report.listings_added == 1
        assert len(report.errors) == 1


# ============================================================================
# TESTS: LIMITS
# ============================================================================

class TestRunLimits:
    """Tests for the safety cap and the run deadline."""

    async def test_safety_cap_per_source(self, make_orchestrator, create_filter):
        owner_id = uuid4()
        await create_filter(owner_id)
        site = portal_with_listings(list(range(800, 825)))

        report = await make_orchestrator(site, max_items_per_source=20).run(owner_id)

        assert report.listings_found == 20
        assert report.listings_added == 20
        scraped = [r for r in site.requests if r.url.path.startswith("/immobile/")]
        assert len(scraped) == 20

    async def test_expired_deadline_attempts_nothing(self, session_factory, make_orchestrator, create_filter):
        owner_id = uuid4()
        prospecting_filter = await create_filter(owner_id)
        site = portal_with_listings([901])

        report = await make_orchestrator(site).run(owner_id, ctx=RunContext(deadline=time.monotonic() - 1))

        assert report.filters_processed == 0
        assert len(report.errors) == 1
        assert "deadline" in report.errors[0]
        assert site.requests == []
        refreshed = await load_filter(session_factory, owner_id, prospecting_filter.id)
        assert refreshed.last_run_at is None


# ============================================================================
# TESTS: CONCURRENT RUNS
# ============================================================================

class TestConcurrentRuns:
    """Tests for overlapping runs of the same owner."""

    async def test_overlapping_runs_store_each_listing_once(self, session_factory, make_orchestrator, create_filter):
        owner_id = uuid4()
        await create_filter(owner_id)
        listing_ids = [1001, 1002, 1003, 1004]
        orchestrator = make_orchestrator(portal_with_listings(listing_ids))

        reports = await asyncio.gather(*(orchestrator.run(owner_id) for _ in range(3)))

        assert sum(report.listings_added for report in reports) == len(listing_ids)
        _, total = await ListingRepository(session_factory).list_for_owner(owner_id)
        assert total == len(listing_ids)
