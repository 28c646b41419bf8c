"""Scraper utilities for pacing, user agents and data normalization."""

from .politeness import DomainPacer, PolitenessPacer
from .user_agents import USER_AGENTS, browser_headers, get_random_user_agent
from .normalizer import (
    PriceNormalizer,
    TRACKING_PARAMS,
    canonical_url,
    clean_text,
    extract_int,
    strip_query,
)


__all__ = [
    # Pacing
    "DomainPacer",
    "PolitenessPacer",
    # User agents
    "USER_AGENTS",
    "browser_headers",
    "get_random_user_agent",
    # Normalization
    "PriceNormalizer",
    "TRACKING_PARAMS",
    "canonical_url",
    "clean_text",
    "extract_int",
    "strip_query",
]
