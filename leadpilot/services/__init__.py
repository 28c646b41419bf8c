"""Services module for admission control, caching and prospecting.

This module contains the service classes behind the API and the scheduler:
rate limiting, the content cache, LLM-backed generation and scoring, and
the repositories and orchestrator of the prospecting pipeline.
"""

from leadpilot.services.automation_service import AutomationOrchestrator, AutomationReport
from leadpilot.services.cache_service import ContentCache
from leadpilot.services.deduplicator import Deduplicator
from leadpilot.services.filter_service import FilterService
from leadpilot.services.generation_service import GenerationService
from leadpilot.services.listing_repository import ListingRepository
from leadpilot.services.rate_limiter import RateLimiter
from leadpilot.services.scoring import ScoringService

__all__ = [
    "AutomationOrchestrator",
    "AutomationReport",
    "ContentCache",
    "Deduplicator",
    "FilterService",
    "GenerationService",
    "ListingRepository",
    "RateLimiter",
    "ScoringService",
]
