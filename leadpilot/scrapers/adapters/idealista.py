"""Idealista (idealista.it) adapter.

Search pages list detail links under ``/immobile/``-style paths; detail
pages expose title, price and a feature list with surface and rooms.
"""

from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import structlog

from leadpilot.scrapers.base import BaseSourceAdapter, ScrapedListing
from leadpilot.scrapers.utils.normalizer import PriceNormalizer, clean_text, extract_int

logger = structlog.get_logger()


class IdealistaAdapter(BaseSourceAdapter):
    """Idealista Italy residential sales adapter."""

    platform = "idealista"
    display_name = "Idealista"
    base_url = "https://www.idealista.it"
    domains = ("idealista.it", "idealista.com")
    price_locale = "it_IT"
    currency = "EUR"
    scrape_delay = 1.0
    search_page_delay = 2.0

    SEARCH_PATH = "/vendita-case"
    LINK_SELECTOR = 'a[href*="/immobile/"], a[href*="/inmueble/"], a[href*="/annuncio/"]'

    def __init__(self):
        super().__init__()
        self.logger = logger.bind(adapter=self.platform)

    def build_search_url(self, criteria: Dict[str, Any], page: int) -> str:
        params = {}
        if criteria.get("location"):
            params["localita"] = criteria["location"]
        if criteria.get("price_min"):
            params["precioMin"] = int(criteria["price_min"])
        if criteria.get("price_max"):
            params["precioMax"] = int(criteria["price_max"])
        if criteria.get("rooms_min"):
            params["dormitoriosMin"] = int(criteria["rooms_min"])
        if criteria.get("rooms_max"):
            params["dormitoriosMax"] = int(criteria["rooms_max"])
        if page > 1:
            params["pagina"] = page

        url = f"{self.base_url}{self.SEARCH_PATH}"
        return f"{url}?{urlencode(params)}" if params else url

    def parse_search_results(self, html: str) -> List[str]:
        return self._collect_links(self._soup(html), self.LINK_SELECTOR)

    def parse_total_results(self, html: str) -> Optional[int]:
        text = self._first_text(self._soup(html), ".breadcrumb-list", ".search-results-count", ".total-results")
        return extract_int(text)

    def parse_listing(self, html: str, url: str) -> ScrapedListing:
        soup = self._soup(html)

        feature_items = [clean_text(li.get_text(" ")) for li in soup.select(".info-features li")]
        feature_items = [f for f in feature_items if f]
        surface = next((f for f in feature_items if "m²" in f or "m2" in f), None)
        rooms = next(
            (f for f in feature_items if "camere" in f.lower() or "locali" in f.lower()),
            None,
        )
        bathrooms = next((f for f in feature_items if "bagn" in f.lower()), None)

        details = [clean_text(li.get_text(" ")) for li in soup.select(".details-property_features li")]
        price_raw = self._first_text(soup, ".info-data-price span", ".info-data-price")

        return ScrapedListing(
            url=url,
            platform=self.platform,
            title=self._first_text(soup, "h1.main-info__title-main", "h1"),
            price=PriceNormalizer.parse(price_raw, self.price_locale),
            price_raw=price_raw,
            currency=self.currency,
            location=self._first_text(soup, ".main-info__title-minor"),
            surface_sqm=extract_int(surface),
            surface_raw=surface,
            rooms=extract_int(rooms),
            bathrooms=extract_int(bathrooms),
            property_type=self._first_text(soup, ".typology"),
            description=self._first_text(soup, ".comment"),
            features=feature_items + [d for d in details if d],
            images=self._images(soup, ".detail-gallery-image img, .main-image img"),
        )
