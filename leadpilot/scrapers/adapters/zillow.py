"""Zillow (zillow.com) adapter.

Zillow is strict about automated traffic: longer politeness delays, and a
403 surfaces as a non-retryable rejection. Detail pages are read from their
JSON-LD block first, with CSS selectors as fallback.
"""

import json
import re
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import structlog

from leadpilot.scrapers.base import BaseSourceAdapter, ScrapedListing
from leadpilot.scrapers.utils.normalizer import PriceNormalizer, clean_text, extract_int

logger = structlog.get_logger()

_LISTING_TYPES = ("SingleFamilyResidence", "Residence", "Product", "RealEstateListing", "House", "Apartment")


class ZillowAdapter(BaseSourceAdapter):
    """Zillow US for-sale adapter."""

    platform = "zillow"
    display_name = "Zillow"
    base_url = "https://www.zillow.com"
    domains = ("zillow.com",)
    price_locale = "en_US"
    currency = "USD"
    scrape_delay = 2.0
    search_page_delay = 3.0

    LINK_SELECTOR = (
        'a[data-test="property-card-link"], a[href*="/homedetails/"], '
        'article[data-test="property-card"] a, a[href*="zpid"]'
    )

    def __init__(self):
        super().__init__()
        self.logger = logger.bind(adapter=self.platform)

    @staticmethod
    def _location_slug(location: str) -> str:
        """Turn "Austin, TX" into "austin-tx"."""
        parts = [p.strip() for p in location.split(",") if p.strip()]
        return "-".join(re.sub(r"[^a-z0-9]+", "-", p.lower()).strip("-") for p in parts)

    def build_search_url(self, criteria: Dict[str, Any], page: int) -> str:
        path = "/homes"
        if criteria.get("location"):
            path = f"{path}/{self._location_slug(criteria['location'])}"

        params = {}
        if criteria.get("price_min"):
            params["priceMin"] = int(criteria["price_min"])
        if criteria.get("price_max"):
            params["priceMax"] = int(criteria["price_max"])
        beds_min = criteria.get("bedrooms_min") or criteria.get("rooms_min")
        if beds_min:
            params["bedsMin"] = int(beds_min)
        if criteria.get("bathrooms_min"):
            params["bathsMin"] = int(criteria["bathrooms_min"])
        if page > 1:
            params["page"] = page

        url = f"{self.base_url}{path}/"
        return f"{url}?{urlencode(params)}" if params else url

    def parse_search_results(self, html: str) -> List[str]:
        urls = self._collect_links(self._soup(html), self.LINK_SELECTOR)
        return [u for u in urls if "/homedetails/" in u or "zpid" in u]

    def parse_total_results(self, html: str) -> Optional[int]:
        return extract_int(
            self._first_text(self._soup(html), '[data-test="total-count"]', ".result-count", ".search-results-count")
        )

    def parse_listing(self, html: str, url: str) -> ScrapedListing:
        soup = self._soup(html)
        listing = self._from_json_ld(soup, url)
        if listing is not None:
            return listing

        price_raw = self._first_text(soup, '[data-testid="price"] span', 'span[data-test="property-card-price"]', ".ds-value")
        page_text = soup.get_text(" ")
        surface_match = re.search(r"[\d,]+\s*(?:sqft|sq ft)", page_text, re.I)
        beds_match = re.search(r"(\d+)\s*(?:bd|beds?|bedrooms?)\b", page_text, re.I)
        baths_match = re.search(r"(\d+)(?:\.\d+)?\s*(?:ba|baths?|bathrooms?)\b", page_text, re.I)

        facts = [clean_text(li.get_text(" ")) for li in soup.select('[data-testid="facts-container"] li, .ds-home-fact-list li')]

        return ScrapedListing(
            url=url,
            platform=self.platform,
            title=self._first_text(soup, 'h1[data-test="bdp-home-details-title"]', "h1"),
            price=PriceNormalizer.parse(price_raw, self.price_locale),
            price_raw=price_raw,
            currency=self.currency,
            location=self._first_text(soup, ".ds-address-container", '[data-testid="fs-chip-container"] h1', "h1"),
            surface_sqm=_sqft_to_sqm(surface_match.group(0)) if surface_match else None,
            surface_raw=surface_match.group(0) if surface_match else None,
            rooms=int(beds_match.group(1)) if beds_match else None,
            bathrooms=int(baths_match.group(1)) if baths_match else None,
            property_type=self._first_text(soup, '[data-testid="home-type"]'),
            description=self._first_text(soup, '[data-testid="description"]', ".ds-overview-section"),
            features=[f for f in facts if f],
            images=self._images(soup, 'picture img, [data-testid="media-stream"] img'),
        )

    def _from_json_ld(self, soup, url: str) -> Optional[ScrapedListing]:
        """Build a listing from the first usable JSON-LD block, if any."""
        for script in soup.find_all("script", type="application/ld+json"):
            try:
                payload = json.loads(script.string or "")
            except ValueError:
                continue
            candidates = payload if isinstance(payload, list) else [payload]
            item = next(
                (c for c in candidates if isinstance(c, dict) and c.get("@type") in _LISTING_TYPES),
                None,
            )
            if item is None:
                continue

            offers = item.get("offers") or {}
            price = offers.get("price") if isinstance(offers, dict) else None
            address = item.get("address") or {}
            location = ", ".join(
                p for p in (
                    address.get("streetAddress"),
                    address.get("addressLocality"),
                    " ".join(x for x in (address.get("addressRegion"), address.get("postalCode")) if x),
                ) if p
            ) or None
            floor = item.get("floorSize") or {}
            sqft = floor.get("value") if isinstance(floor, dict) else None
            image = item.get("image") or []

            price_raw = f"${price}" if price is not None else None
            return ScrapedListing(
                url=url,
                platform=self.platform,
                title=item.get("name"),
                price=PriceNormalizer.parse(str(price), self.price_locale) if price is not None else None,
                price_raw=price_raw,
                currency=offers.get("priceCurrency", self.currency) if isinstance(offers, dict) else self.currency,
                location=location,
                surface_sqm=_sqft_to_sqm(str(sqft)) if sqft else None,
                surface_raw=f"{sqft} sqft" if sqft else None,
                rooms=extract_int(str(item.get("numberOfRooms"))) if item.get("numberOfRooms") else None,
                property_type=item.get("@type"),
                description=clean_text(item.get("description")),
                images=image if isinstance(image, list) else [image],
                metadata={"source": "json_ld"},
            )
        return None


def _sqft_to_sqm(raw: str) -> Optional[int]:
    sqft = extract_int(raw)
    return round(sqft * 0.092903) if sqft else None
