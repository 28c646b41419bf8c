"""Prospecting automation orchestrator.

Runs an owner's saved filters end to end: search each source platform,
scrape candidate listings, skip the ones the owner already has, score the
new ones and persist them. Every failure is recorded against the filter
and processing continues with the next item.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leadpilot.config import settings
from leadpilot.core.context import RunContext
from leadpilot.core.exceptions import AdapterUnsupportedError, LeadPilotError
from leadpilot.models.filter import ProspectingFilter
from leadpilot.scrapers.base import BaseSourceAdapter
from leadpilot.scrapers.factory import AdapterFactory, get_adapter_factory
from leadpilot.services.deduplicator import Deduplicator
from leadpilot.services.filter_service import FilterService
from leadpilot.services.listing_repository import ListingRepository
from leadpilot.services.scoring import ScoringService

logger = structlog.get_logger(__name__)


@dataclass
class FilterOutcome:
    """Counters and errors for one filter run."""

    filter_id: uuid.UUID
    attempted: bool = False
    listings_found: int = 0
    listings_added: int = 0
    errors: List[str] = field(default_factory=list)


@dataclass
class AutomationReport:
    """Aggregated result of one automation run."""

    filters_processed: int = 0
    listings_found: int = 0
    listings_added: int = 0
    errors: List[str] = field(default_factory=list)

    def merge(self, outcome: FilterOutcome) -> None:
        if outcome.attempted:
            self.filters_processed += 1
        self.listings_found += outcome.listings_found
        self.listings_added += outcome.listings_added
        self.errors.extend(outcome.errors)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filters_processed": self.filters_processed,
            "listings_found": self.listings_found,
            "listings_added": self.listings_added,
            "errors": list(self.errors) or None,
        }


class AutomationOrchestrator:
    """Runs prospecting filters on a bounded worker pool.

    Args:
        session_factory: Session factory; every unit of work opens its own session
        scoring: Lead scoring service
        adapter_factory: Source adapter factory (default: global factory)
        deduplicator: Listing dedup (default: built over ``session_factory``)
        max_concurrent_filters: Filters processed at the same time
        max_pages: Search result pages fetched per platform
        max_items_per_source: Safety cap on listings processed per filter and platform
        run_timeout: Run deadline in seconds (None for no deadline)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        scoring: ScoringService,
        adapter_factory: Optional[AdapterFactory] = None,
        deduplicator: Optional[Deduplicator] = None,
        max_concurrent_filters: int = settings.AUTOMATION_MAX_CONCURRENT_FILTERS,
        max_pages: int = settings.AUTOMATION_MAX_PAGES,
        max_items_per_source: int = settings.AUTOMATION_MAX_ITEMS_PER_SOURCE,
        run_timeout: Optional[float] = settings.AUTOMATION_RUN_TIMEOUT_SECONDS,
        default_platforms: Optional[List[str]] = None,
    ):
        self.session_factory = session_factory
        self.scoring = scoring
        self.adapter_factory = adapter_factory or get_adapter_factory()
        self.deduplicator = deduplicator or Deduplicator(ListingRepository(session_factory))
        self.max_concurrent_filters = max(1, max_concurrent_filters)
        self.max_pages = max_pages
        self.max_items_per_source = max_items_per_source
        self.run_timeout = run_timeout
        self.default_platforms = list(default_platforms or settings.AUTOMATION_DEFAULT_PLATFORMS)
        self.logger = logger.bind(service="automation_orchestrator")

    async def run(
        self,
        owner_id: uuid.UUID,
        filter_id: Optional[uuid.UUID] = None,
        ctx: Optional[RunContext] = None,
    ) -> AutomationReport:
        """Run one filter by id, or every active auto_run filter of the owner.

        Args:
            owner_id: Owner whose filters run
            filter_id: Specific filter to run
            ctx: Run context; defaults to AUTOMATION_RUN_TIMEOUT_SECONDS from now

        Returns:
            AutomationReport with counters and recorded errors
        """
        ctx = ctx or RunContext.with_timeout(self.run_timeout, label="automation")

        async with self.session_factory() as session:
            filters = await FilterService(session).get_filters_for_run(owner_id, filter_id)

        report = AutomationReport()
        if not filters:
            self.logger.info("automation_no_filters", owner_id=str(owner_id), filter_id=str(filter_id))
            return report

        self.logger.info("automation_started", owner_id=str(owner_id), filters=len(filters))
        semaphore = asyncio.Semaphore(self.max_concurrent_filters)

        async def _bounded(prospecting_filter: ProspectingFilter) -> FilterOutcome:
            async with semaphore:
                return await self._run_filter_safely(prospecting_filter, ctx)

        outcomes = await asyncio.gather(*(_bounded(f) for f in filters))
        for outcome in outcomes:
            report.merge(outcome)

        attempted = {o.filter_id: o.listings_added for o in outcomes if o.attempted}
        if attempted:
            await self._mark_run(attempted, report)

        self.logger.info(
            "automation_completed",
            owner_id=str(owner_id),
            filters_processed=report.filters_processed,
            listings_found=report.listings_found,
            listings_added=report.listings_added,
            errors=len(report.errors),
        )
        return report

    async def _mark_run(self, added_counts: Dict[uuid.UUID, int], report: AutomationReport) -> None:
        try:
            async with self.session_factory() as session:
                await FilterService(session).mark_run(added_counts)
                await session.commit()
        except SQLAlchemyError as e:
            self.logger.error("filter_mark_run_failed", error=str(e))
            report.errors.append(f"Failed to update filter run times: {e.__class__.__name__}")

    async def _run_filter_safely(self, prospecting_filter: ProspectingFilter, ctx: RunContext) -> FilterOutcome:
        outcome = FilterOutcome(filter_id=prospecting_filter.id)
        if ctx.expired:
            outcome.errors.append(f"Filter {prospecting_filter.name}: run deadline exceeded before start")
            return outcome

        outcome.attempted = True
        try:
            await self._run_filter(prospecting_filter, ctx, outcome)
        except Exception as e:
            self.logger.error(
                "filter_run_failed",
                filter_id=str(prospecting_filter.id),
                filter_name=prospecting_filter.name,
                error=str(e),
                exc_info=True,
            )
            outcome.errors.append(f"Filter {prospecting_filter.name}: {e}")
        return outcome

    async def _run_filter(
        self,
        prospecting_filter: ProspectingFilter,
        ctx: RunContext,
        outcome: FilterOutcome,
    ) -> None:
        criteria = dict(prospecting_filter.criteria or {})
        platforms = criteria.get("source_platforms") or self.default_platforms
        log = self.logger.bind(filter_id=str(prospecting_filter.id), filter_name=prospecting_filter.name)

        for platform in platforms:
            if ctx.expired:
                outcome.errors.append(f"Filter {prospecting_filter.name}: run deadline exceeded")
                return

            adapter = self.adapter_factory.create_adapter(platform)
            if adapter is None:
                error = AdapterUnsupportedError(platform)
                log.warning("platform_unsupported", platform=platform)
                outcome.errors.append(f"Filter {prospecting_filter.name}: {error.message}")
                continue

            try:
                await self._run_platform(prospecting_filter, criteria, platform, adapter, ctx, outcome)
            except Exception as e:
                log.error("platform_run_failed", platform=platform, error=str(e), exc_info=True)
                outcome.errors.append(f"Filter {prospecting_filter.name} ({platform}): {e}")

    async def _run_platform(
        self,
        prospecting_filter: ProspectingFilter,
        criteria: Dict[str, Any],
        platform: str,
        adapter: BaseSourceAdapter,
        ctx: RunContext,
        outcome: FilterOutcome,
    ) -> None:
        """Search one platform and process its candidates up to the safety cap."""
        log = self.logger.bind(filter_id=str(prospecting_filter.id), platform=platform)

        search = await adapter.search(criteria, max_pages=self.max_pages, ctx=ctx)
        if not search.success:
            outcome.errors.append(f"Filter {prospecting_filter.name} ({platform}): {search.error}")
            return
        if not search.urls:
            log.info("no_listings_found")
            return

        urls = search.urls[: self.max_items_per_source]
        log.info("processing_listings", candidates=len(urls), total_found=search.total_found)
        for url in urls:
            if ctx.expired:
                outcome.errors.append(f"Filter {prospecting_filter.name} ({platform}): run deadline exceeded")
                return
            try:
                await self._process_url(prospecting_filter, platform, adapter, url, ctx, outcome)
            except Exception as e:
                log.error("listing_processing_failed", url=url, error=str(e), exc_info=True)
                outcome.errors.append(f"Filter {prospecting_filter.name} ({platform}) {url}: {e}")

    async def _process_url(
        self,
        prospecting_filter: ProspectingFilter,
        platform: str,
        adapter: BaseSourceAdapter,
        url: str,
        ctx: RunContext,
        outcome: FilterOutcome,
    ) -> None:
        """Scrape, classify, score and persist one candidate listing."""
        prefix = f"Filter {prospecting_filter.name} ({platform}) {url}"
        owner_id = prospecting_filter.owner_id

        scraped = await adapter.scrape(url, ctx)
        if not scraped.success or scraped.data is None:
            outcome.errors.append(f"{prefix}: {scraped.error}")
            return
        outcome.listings_found += 1
        listing = scraped.data

        try:
            if await self.deduplicator.exists(owner_id, listing.url):
                self.logger.debug("listing_already_known", url=listing.url)
                return
        except (SQLAlchemyError, ValueError) as e:
            outcome.errors.append(f"{prefix}: duplicate check failed: {e}")
            return

        lead_score = None
        try:
            result = await self.scoring.score(listing.for_scoring(), ctx)
            lead_score = result.score
            listing.metadata["lead_analysis"] = result.to_dict()
        except Exception as e:
            message = e.message if isinstance(e, LeadPilotError) else str(e) or e.__class__.__name__
            self.logger.warning("listing_scoring_failed", url=listing.url, error=message)
            outcome.errors.append(f"{prefix}: scoring failed: {message}")

        try:
            saved = await self.deduplicator.upsert_if_new(
                owner_id,
                listing,
                lead_score=lead_score,
                filter_id=prospecting_filter.id,
            )
        except LeadPilotError as e:
            outcome.errors.append(f"{prefix}: {e.message}")
            return

        if saved.added:
            outcome.listings_added += 1


_orchestrator: Optional[AutomationOrchestrator] = None


def get_automation_orchestrator() -> AutomationOrchestrator:
    """Get or create the global orchestrator over the application database."""
    global _orchestrator

    if _orchestrator is None:
        from leadpilot.db.session import async_session_factory
        from leadpilot.services.cache_service import get_content_cache
        from leadpilot.services.scoring import build_scoring_service

        _orchestrator = AutomationOrchestrator(
            async_session_factory,
            scoring=build_scoring_service(cache=get_content_cache()),
        )

    return _orchestrator
