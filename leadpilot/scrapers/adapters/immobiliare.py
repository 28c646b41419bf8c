"""Immobiliare.it adapter."""

import re
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import structlog

from leadpilot.scrapers.base import BaseSourceAdapter, ScrapedListing
from leadpilot.scrapers.utils.normalizer import PriceNormalizer, clean_text, extract_int

logger = structlog.get_logger()


def _slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")


class ImmobiliareAdapter(BaseSourceAdapter):
    """Immobiliare.it residential sales adapter."""

    platform = "immobiliare"
    display_name = "Immobiliare.it"
    base_url = "https://www.immobiliare.it"
    domains = ("immobiliare.it",)
    price_locale = "it_IT"
    currency = "EUR"
    scrape_delay = 1.5
    search_page_delay = 2.0

    LINK_SELECTOR = 'a[href*="/annunci/"]'

    def __init__(self):
        super().__init__()
        self.logger = logger.bind(adapter=self.platform)

    def build_search_url(self, criteria: Dict[str, Any], page: int) -> str:
        location = _slugify(criteria.get("location") or "italia")
        params = {}
        if criteria.get("price_min"):
            params["prezzoMinimo"] = int(criteria["price_min"])
        if criteria.get("price_max"):
            params["prezzoMassimo"] = int(criteria["price_max"])
        if criteria.get("rooms_min"):
            params["localiMinimo"] = int(criteria["rooms_min"])
        if criteria.get("rooms_max"):
            params["localiMassimo"] = int(criteria["rooms_max"])
        if page > 1:
            params["pag"] = page

        url = f"{self.base_url}/vendita-case/{location}/"
        return f"{url}?{urlencode(params)}" if params else url

    def parse_search_results(self, html: str) -> List[str]:
        return self._collect_links(self._soup(html), self.LINK_SELECTOR)

    def parse_total_results(self, html: str) -> Optional[int]:
        return extract_int(self._first_text(self._soup(html), ".in-searchList__title", "h1"))

    def parse_listing(self, html: str, url: str) -> ScrapedListing:
        soup = self._soup(html)

        features = [clean_text(el.get_text(" ")) for el in soup.select(".im-features__list .im-features__item")]
        tags = [clean_text(el.get_text(" ")) for el in soup.select(".im-features__tags .im-tags__tag")]
        surface = self._first_text(soup, ".im-features__item--surface .im-features__value")
        rooms = self._first_text(soup, ".im-features__item--rooms .im-features__value")
        bathrooms = self._first_text(soup, ".im-features__item--bathrooms .im-features__value")
        price_raw = self._first_text(soup, ".im-mainFeatures__price")

        images = [
            src.replace("/thumb/", "/medium/")
            for src in self._images(soup, ".im-gallery__thumbs img, .im-carousel__item img")
        ]

        return ScrapedListing(
            url=url,
            platform=self.platform,
            title=self._first_text(soup, "h1.im-titleBlock__title", "h1"),
            price=PriceNormalizer.parse(price_raw, self.price_locale),
            price_raw=price_raw,
            currency=self.currency,
            location=self._first_text(soup, ".im-breadcrumb__list li:last-child"),
            surface_sqm=extract_int(surface),
            surface_raw=surface,
            rooms=extract_int(rooms),
            bathrooms=extract_int(bathrooms),
            property_type=self._first_text(soup, ".im-mainFeatures__title"),
            description=self._first_text(soup, ".im-description__text"),
            features=[f for f in features + tags if f],
            images=images,
        )
