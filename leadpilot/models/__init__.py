"""SQLAlchemy models for LeadPilot.

All models are imported here so metadata.create_all sees every table.
"""

from leadpilot.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from leadpilot.models.filter import ProspectingFilter
from leadpilot.models.listing import ExternalListing, LISTING_STATUSES
from leadpilot.models.cache_entry import CacheEntry
from leadpilot.models.rate_limit import RateLimitState

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "ProspectingFilter",
    "ExternalListing",
    "LISTING_STATUSES",
    "CacheEntry",
    "RateLimitState",
]
