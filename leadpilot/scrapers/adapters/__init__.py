"""Marketplace adapter implementations."""

from leadpilot.scrapers.adapters.idealista import IdealistaAdapter
from leadpilot.scrapers.adapters.immobiliare import ImmobiliareAdapter
from leadpilot.scrapers.adapters.zillow import ZillowAdapter

__all__ = [
    "IdealistaAdapter",
    "ImmobiliareAdapter",
    "ZillowAdapter",
]
