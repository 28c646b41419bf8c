"""Source adapter system for prospecting marketplaces.

This package provides:
- Base adapter class shared by every marketplace adapter
- Utility modules for politeness pacing and data normalization
- Factory for creating and managing adapter instances
- Scheduler for automated prospecting runs
"""

from .base import BaseSourceAdapter, ScrapedListing, ScrapeResult, SearchResult
from .factory import AdapterFactory, adapter_factory, get_adapter_factory

__all__ = [
    # Base classes
    "BaseSourceAdapter",
    "ScrapedListing",
    "ScrapeResult",
    "SearchResult",
    # Factory
    "AdapterFactory",
    "adapter_factory",
    "get_adapter_factory",
]
