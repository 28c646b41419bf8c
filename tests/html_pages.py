"""HTML pages and an httpx mock transport for adapter and orchestrator tests."""

import json
from typing import Dict, Iterable, Optional

import httpx

from leadpilot.core.retry import ResilientCaller
from leadpilot.scrapers.factory import AdapterFactory
from leadpilot.scrapers.register_adapters import register_all_adapters
from leadpilot.scrapers.utils import PolitenessPacer


def idealista_search_page(listing_ids: Iterable[int]) -> str:
    cards = "\n".join(
        f'<article class="item"><a class="item-link" href="/immobile/{i}/?xtmc=1">Annuncio {i}</a>'
        f'<a href="/immobile/{i}/">foto</a></article>'
        for i in listing_ids
    )
    return f"""
    <html><body>
      <ul class="breadcrumb-list"><li>1.234 case in vendita a Milano</li></ul>
      <section class="items-container">{cards}</section>
      <a href="/agenzie/123/">Agenzia</a>
    </body></html>
    """


def idealista_listing_page(listing_id: int, price: str = "285.000 €", rooms: int = 3) -> str:
    return f"""
    <html><body>
      <h1 class="main-info__title-main">Trilocale in Via Roma {listing_id}</h1>
      <span class="main-info__title-minor">Brera, Milano</span>
      <div class="info-data-price"><span>{price}</span></div>
      <div class="info-features">
        <ul><li>85 m²</li><li>{rooms} locali</li><li>2 bagni</li></ul>
      </div>
      <div class="comment"><p>Luminoso trilocale ristrutturato, vendita urgente.</p></div>
      <div class="details-property_features"><ul><li>Balcone</li><li>Ascensore</li></ul></div>
      <div class="detail-gallery-image"><img src="https://img.idealista.it/{listing_id}/1.jpg"></div>
    </body></html>
    """


def immobiliare_listing_page() -> str:
    return """
    <html><body>
      <h1 class="im-titleBlock__title">Quadrilocale via Garibaldi, Torino</h1>
      <ul class="im-breadcrumb__list"><li>Piemonte</li><li>Torino</li></ul>
      <div class="im-mainFeatures__title">Appartamento</div>
      <div class="im-mainFeatures__price">€ 1.250.000</div>
      <ul class="im-features__list">
        <li class="im-features__item im-features__item--surface"><span class="im-features__value">140 m²</span></li>
        <li class="im-features__item im-features__item--rooms"><span class="im-features__value">4</span></li>
        <li class="im-features__item im-features__item--bathrooms"><span class="im-features__value">2</span></li>
      </ul>
      <div class="im-description__text">Ampio quadrilocale con terrazzo.</div>
      <div class="im-gallery__thumbs"><img src="https://pic.im-cdn.it/thumb/1.jpg"></div>
    </body></html>
    """


def zillow_listing_page() -> str:
    payload = {
        "@context": "https://schema.org",
        "@type": "SingleFamilyResidence",
        "name": "123 Main St, Austin, TX 78701",
        "address": {
            "streetAddress": "123 Main St",
            "addressLocality": "Austin",
            "addressRegion": "TX",
            "postalCode": "78701",
        },
        "floorSize": {"value": "2,000"},
        "numberOfRooms": 4,
        "offers": {"price": 450000, "priceCurrency": "USD"},
        "description": "Must sell, price reduced.",
        "image": ["https://photos.zillowstatic.com/1.jpg"],
    }
    return f"""
    <html><head><script type="application/ld+json">{json.dumps(payload)}</script></head>
    <body><h1>123 Main St</h1></body></html>
    """


class PortalSite:
    """In-memory portal: maps URL paths to (status, body) and records requests."""

    def __init__(self, pages: Optional[Dict[str, tuple]] = None):
        self.pages: Dict[str, tuple] = dict(pages or {})
        self.requests: list = []

    def add(self, path: str, body: str, status: int = 200) -> None:
        self.pages[path] = (status, body)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, body = self.pages.get(request.url.path, (404, "<html>Not found</html>"))
        return httpx.Response(status, text=body)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


def build_factory(site: PortalSite) -> AdapterFactory:
    """Adapter factory wired to the mock site with no pacing and no backoff."""
    factory = AdapterFactory(
        pacer=PolitenessPacer(scale=0),
        caller=ResilientCaller(base_delay=0, max_delay=0, jitter=0),
        http_client=site.client(),
    )
    return register_all_adapters(factory)
