"""Base source adapter interface.

Every marketplace adapter inherits from BaseSourceAdapter and implements
the three parsing hooks; the shared ``search``/``scrape`` flow (pacing,
ResilientCaller, error reporting) lives here.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urljoin, urlsplit

import httpx
import structlog
from bs4 import BeautifulSoup

from leadpilot.config import settings
from leadpilot.core.context import RunContext
from leadpilot.core.exceptions import LeadPilotError
from leadpilot.core.retry import ResilientCaller, raise_for_upstream_status
from leadpilot.scrapers.utils.normalizer import strip_query
from leadpilot.scrapers.utils.user_agents import browser_headers


@dataclass
class ScrapedListing:
    """Normalized listing data returned by all adapters."""

    url: str
    platform: str
    title: Optional[str] = None
    price: Optional[Decimal] = None
    price_raw: Optional[str] = None
    currency: str = "EUR"
    location: Optional[str] = None
    surface_sqm: Optional[int] = None
    surface_raw: Optional[str] = None
    rooms: Optional[int] = None
    bathrooms: Optional[int] = None
    property_type: Optional[str] = None
    description: Optional[str] = None
    features: List[str] = field(default_factory=list)
    images: List[str] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)  # Platform-specific extras

    def to_raw_data(self) -> Dict[str, Any]:
        """JSON-safe payload stored in ExternalListing.raw_data."""
        return {
            "title": self.title,
            "price": str(self.price) if self.price is not None else None,
            "price_raw": self.price_raw,
            "currency": self.currency,
            "location": self.location,
            "surface_sqm": self.surface_sqm,
            "surface_raw": self.surface_raw,
            "rooms": self.rooms,
            "bathrooms": self.bathrooms,
            "property_type": self.property_type,
            "description": self.description,
            "features": list(self.features),
            "images": list(self.images),
            "metadata": dict(self.metadata),
        }

    def for_scoring(self) -> Dict[str, Any]:
        """Fields the scoring collaborator sees."""
        return {
            "title": self.title,
            "price": float(self.price) if self.price is not None else None,
            "currency": self.currency,
            "location": self.location,
            "surface_sqm": self.surface_sqm,
            "rooms": self.rooms,
            "property_type": self.property_type,
            "description": (self.description or "")[:2000],
            "features": self.features[:30],
        }


@dataclass
class SearchResult:
    """Outcome of a multi-page search."""

    success: bool
    urls: List[str] = field(default_factory=list)
    total_found: Optional[int] = None
    error: Optional[str] = None


@dataclass
class ScrapeResult:
    """Outcome of scraping one listing page."""

    success: bool
    data: Optional[ScrapedListing] = None
    error: Optional[str] = None


class BaseSourceAdapter(ABC):
    """Abstract base class for marketplace adapters.

    Subclasses set the class attributes and implement build_search_url(),
    parse_search_results() and parse_listing().
    """

    platform: str = ""  # Must be overridden (e.g., "idealista")
    display_name: str = ""
    base_url: str = ""
    domains: Tuple[str, ...] = ()  # Hosts without "www."
    price_locale: str = ""  # Locale passed to PriceNormalizer
    currency: str = "EUR"
    scrape_delay: float = 1.0  # Seconds between listing pages
    search_page_delay: float = 2.0  # Seconds between search result pages

    def __init__(self):
        """Initialize the adapter with dependency injection points."""
        self.pacer = None  # PolitenessPacer, injected by factory
        self.caller: Optional[ResilientCaller] = None  # Injected by factory
        self.http_client: Optional[httpx.AsyncClient] = None  # Injected by factory
        self.logger = structlog.get_logger(adapter=self.platform)

    @classmethod
    def matches_url(cls, url: str) -> bool:
        """Check whether a URL belongs to this adapter's marketplace."""
        host = (urlsplit(url).hostname or "").lower()
        if host.startswith("www."):
            host = host[4:]
        return any(host == d or host.endswith("." + d) for d in cls.domains)

    @abstractmethod
    def build_search_url(self, criteria: Dict[str, Any], page: int) -> str:
        """Build the search results URL for a criteria record and page (1-based)."""

    @abstractmethod
    def parse_search_results(self, html: str) -> List[str]:
        """Extract absolute listing URLs from a results page, in page order."""

    @abstractmethod
    def parse_listing(self, html: str, url: str) -> ScrapedListing:
        """Parse a listing detail page."""

    def parse_total_results(self, html: str) -> Optional[int]:
        """Total result count shown on the first page, if the portal exposes it."""
        return None

    async def search(
        self,
        criteria: Dict[str, Any],
        max_pages: int = 3,
        ctx: Optional[RunContext] = None,
    ) -> SearchResult:
        """Collect candidate listing URLs for a filter's criteria.

        Stops at the first page that adds no new URLs. A failure on page 1
        fails the search; a failure on a later page keeps what was collected.

        Args:
            criteria: Open criteria record (location, price_min, ...)
            max_pages: Upper bound on result pages fetched
            ctx: Run context carrying the deadline

        Returns:
            SearchResult with de-duplicated URLs in page order
        """
        ctx = ctx or RunContext()
        urls: List[str] = []
        seen = set()
        total_found: Optional[int] = None

        for page in range(1, max_pages + 1):
            try:
                page_url = self.build_search_url(criteria, page)
            except (ValueError, TypeError, KeyError) as e:
                self.logger.warning("search_criteria_invalid", page=page, error=str(e))
                return SearchResult(success=False, error=f"Invalid search criteria for {self.display_name}: {e}")

            try:
                html = await self._fetch(page_url, ctx, self.search_page_delay)
            except LeadPilotError as e:
                if page == 1:
                    self.logger.warning("search_failed", url=page_url, error=e.message)
                    return SearchResult(success=False, error=f"Search failed: {e.message}")
                self.logger.warning("search_page_failed", page=page, url=page_url, error=e.message)
                break

            try:
                if page == 1:
                    total_found = self.parse_total_results(html)
                page_urls = self.parse_search_results(html)
            except (ValueError, AttributeError, KeyError, TypeError) as e:
                self.logger.warning("search_parse_failed", page=page, url=page_url, error=str(e))
                if page == 1:
                    return SearchResult(success=False, error=f"Unable to parse {self.display_name} results: {e}")
                break

            new_urls = [u for u in page_urls if u not in seen]
            if not new_urls:
                break
            seen.update(new_urls)
            urls.extend(new_urls)

        self.logger.info("search_completed", urls=len(urls), total_found=total_found)
        return SearchResult(success=True, urls=urls, total_found=total_found or len(urls))

    async def scrape(self, url: str, ctx: Optional[RunContext] = None) -> ScrapeResult:
        """Fetch and parse one listing page.

        Args:
            url: Listing detail URL
            ctx: Run context carrying the deadline

        Returns:
            ScrapeResult; ``success`` is False with an error message on failure
        """
        ctx = ctx or RunContext()
        try:
            html = await self._fetch(url, ctx, self.scrape_delay)
        except LeadPilotError as e:
            return ScrapeResult(success=False, error=e.message)

        try:
            listing = self.parse_listing(html, url)
        except (ValueError, AttributeError, KeyError, TypeError) as e:
            self.logger.warning("listing_parse_failed", url=url, error=str(e))
            return ScrapeResult(success=False, error=f"Unable to parse {self.display_name} listing: {e}")

        if not listing.title and listing.price is None:
            return ScrapeResult(
                success=False,
                error=f"Unable to extract required fields from {self.display_name} listing",
            )
        return ScrapeResult(success=True, data=listing)

    async def _fetch(self, url: str, ctx: RunContext, delay: float) -> str:
        """GET a page through the politeness pacer and ResilientCaller.

        Raises:
            LeadPilotError: Classified failure after retries
        """
        ctx.check()
        if self.pacer is not None:
            await self.pacer.acquire(urlsplit(url).hostname or "", delay)

        client = self._get_client()
        caller = self.caller or ResilientCaller()

        async def _get(run_ctx: RunContext) -> str:
            self.logger.debug("fetching_url", url=url)
            response = await client.get(url, headers=browser_headers(self.price_locale))
            raise_for_upstream_status(response, self.display_name or self.platform)
            return response.text

        return await caller.call(
            _get,
            ctx,
            timeout=settings.SCRAPE_TIMEOUT_SECONDS,
            max_retries=settings.SCRAPE_MAX_RETRIES,
            name=f"{self.platform}_fetch",
        )

    def _get_client(self) -> httpx.AsyncClient:
        if self.http_client is None:
            self.http_client = httpx.AsyncClient(follow_redirects=True)
        return self.http_client

    # Helpers shared by the HTML adapters

    @staticmethod
    def _soup(html: str) -> BeautifulSoup:
        return BeautifulSoup(html, "html.parser")

    def _collect_links(self, soup: BeautifulSoup, selector: str) -> List[str]:
        """Absolute, query-free, order-preserving unique links matching a CSS selector."""
        urls: List[str] = []
        for link in soup.select(selector):
            href = link.get("href")
            if not href:
                continue
            absolute = strip_query(urljoin(self.base_url, href))
            if absolute not in urls:
                urls.append(absolute)
        return urls

    @staticmethod
    def _first_text(soup: BeautifulSoup, *selectors: str) -> Optional[str]:
        """Text of the first element matching any selector, whitespace-collapsed."""
        for selector in selectors:
            elem = soup.select_one(selector)
            if elem:
                text = " ".join(elem.get_text(" ").split())
                if text:
                    return text
        return None

    @staticmethod
    def _images(soup: BeautifulSoup, selector: str, limit: int = 10) -> List[str]:
        images: List[str] = []
        for img in soup.select(selector):
            src = img.get("src") or img.get("data-src") or img.get("data-ondemand-img")
            if src and "placeholder" not in src and "logo" not in src and src not in images:
                images.append(src)
            if len(images) >= limit:
                break
        return images
