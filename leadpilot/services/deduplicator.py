"""Canonical-URL hashing and atomic per-owner listing dedup."""

import hashlib
import uuid
from dataclasses import dataclass
from typing import Optional

import structlog

from leadpilot.scrapers.base import ScrapedListing
from leadpilot.scrapers.utils.normalizer import canonical_url
from leadpilot.services.listing_repository import ListingRepository

logger = structlog.get_logger(__name__)


def hash_url(url: str) -> str:
    """SHA-256 hex digest of the canonical form of ``url``."""
    return hashlib.sha256(canonical_url(url).encode("utf-8")).hexdigest()


@dataclass
class DedupResult:
    """Outcome of ``upsert_if_new``."""

    added: bool
    id: uuid.UUID
    url_hash: str


class Deduplicator:
    """Idempotent listing persistence scoped to an owner.

    Re-running a filter never re-adds a listing: the (owner, url hash)
    unique constraint decides, not a prior read.
    """

    def __init__(self, repository: ListingRepository):
        self.repository = repository

    async def exists(self, owner_id: uuid.UUID, url: str) -> bool:
        """Whether the owner already has a listing for this URL."""
        return await self.repository.find_by_hash(owner_id, hash_url(url)) is not None

    async def upsert_if_new(
        self,
        owner_id: uuid.UUID,
        listing: ScrapedListing,
        lead_score: Optional[int] = None,
        filter_id: Optional[uuid.UUID] = None,
    ) -> DedupResult:
        """Persist ``listing`` unless the owner already has its URL.

        Raises:
            PersistenceError: If the write fails
        """
        url_hash = hash_url(listing.url)
        added, listing_id = await self.repository.upsert_if_absent(
            owner_id=owner_id,
            url_hash=url_hash,
            source_url=listing.url,
            source_platform=listing.platform,
            title=listing.title,
            price=listing.price,
            location=listing.location,
            raw_data=listing.to_raw_data(),
            lead_score=lead_score,
            filter_id=filter_id,
        )
        logger.debug("listing_upserted", url=listing.url, added=added, listing_id=str(listing_id))
        return DedupResult(added=added, id=listing_id, url_hash=url_hash)
