"""Tests for URL hashing, listing dedup and the listing repository."""

import asyncio
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from leadpilot.core.exceptions import ValidationError
from leadpilot.models import ExternalListing
from leadpilot.scrapers.base import ScrapedListing
from leadpilot.services.deduplicator import Deduplicator, hash_url
from leadpilot.services.listing_repository import ListingRepository

LISTING_URL = "https://www.idealista.it/immobile/31234567/"


def make_listing(url: str = LISTING_URL, title: str = "Trilocale in Via Roma") -> ScrapedListing:
    return ScrapedListing(
        url=url,
        platform="idealista",
        title=title,
        price=Decimal("285000"),
        price_raw="285.000 €",
        location="Milano",
        rooms=3,
    )


class TestUrlHash:
    """Tests for canonical URL hashing."""

    def test_hash_is_deterministic(self):
        assert hash_url(LISTING_URL) == hash_url(LISTING_URL)
        assert len(hash_url(LISTING_URL)) == 64

    def test_one_character_difference_changes_hash(self):
        assert hash_url(LISTING_URL) != hash_url("https://www.idealista.it/immobile/31234568/")

    @pytest.mark.parametrize(
        "variant",
        [
            "https://WWW.Idealista.it/immobile/31234567",
            "https://www.idealista.it:443/immobile/31234567/",
            "https://www.idealista.it/immobile/31234567/#gallery",
            "https://www.idealista.it/immobile/31234567/?utm_source=newsletter&utm_medium=email",
        ],
    )
    def test_canonical_variants_share_hash(self, variant):
        assert hash_url(variant) == hash_url(LISTING_URL)

    def test_meaningful_query_is_kept(self):
        assert hash_url("https://example.com/listing?id=1") != hash_url("https://example.com/listing?id=2")
        assert hash_url("https://example.com/listing?a=1&b=2") == hash_url("https://example.com/listing?b=2&a=1")


class TestDeduplicator:
    """Tests for atomic per-owner dedup."""

    async def test_first_upsert_adds_and_second_skips(self, session_factory):
        dedup = Deduplicator(ListingRepository(session_factory))
        owner_id = uuid4()

        first = await dedup.upsert_if_new(owner_id, make_listing(), lead_score=70)
        second = await dedup.upsert_if_new(owner_id, make_listing(title="Changed title"))

        assert first.added is True
        assert second.added is False
        assert first.id == second.id
        assert await dedup.exists(owner_id, LISTING_URL + "?utm_source=x") is True

    async def test_concurrent_upserts_create_one_row(self, session_factory):
        """Test that N concurrent runs for one owner and URL store exactly one listing."""
        dedup = Deduplicator(ListingRepository(session_factory))
        owner_id = uuid4()

        results = await asyncio.gather(*(dedup.upsert_if_new(owner_id, make_listing()) for _ in range(8)))

        assert sum(r.added for r in results) == 1
        assert len({r.id for r in results}) == 1

        async with session_factory() as session:
            count = await session.scalar(
                select(func.count(ExternalListing.id)).where(ExternalListing.owner_id == owner_id)
            )
        assert count == 1

    async def test_owners_are_isolated(self, session_factory):
        dedup = Deduplicator(ListingRepository(session_factory))

        a = await dedup.upsert_if_new(uuid4(), make_listing())
        b = await dedup.upsert_if_new(uuid4(), make_listing())

        assert a.added and b.added
        assert a.id != b.id


class TestListingRepository:
    """Tests for status/score updates and listing queries."""

    async def test_update_status(self, session_factory):
        repository = ListingRepository(session_factory)
        owner_id = uuid4()
        saved = await Deduplicator(repository).upsert_if_new(owner_id, make_listing())

        listing = await repository.update_status(owner_id, saved.id, "reviewed")

        assert listing is not None
        assert listing.status == "reviewed"
        assert listing.raw_data["price"] == "285000"

    async def test_update_status_rejects_unknown_status(self, session_factory):
        repository = ListingRepository(session_factory)

        with pytest.raises(ValidationError):
            await repository.update_status(uuid4(), uuid4(), "archived")

    async def test_update_is_scoped_to_owner(self, session_factory):
        repository = ListingRepository(session_factory)
        saved = await Deduplicator(repository).upsert_if_new(uuid4(), make_listing())

        assert await repository.update_status(uuid4(), saved.id, "discarded") is None
        assert await repository.update_score(uuid4(), saved.id, 50) is None

    async def test_update_score_bounds(self, session_factory):
        repository = ListingRepository(session_factory)
        owner_id = uuid4()
        saved = await Deduplicator(repository).upsert_if_new(owner_id, make_listing())

        updated = await repository.update_score(owner_id, saved.id, 88)
        assert updated.lead_score == 88

        with pytest.raises(ValidationError):
            await repository.update_score(owner_id, saved.id, 101)

    async def test_list_for_owner_pagination(self, session_factory):
        repository = ListingRepository(session_factory)
        dedup = Deduplicator(repository)
        owner_id = uuid4()
        for i in range(5):
            await dedup.upsert_if_new(owner_id, make_listing(url=f"https://www.idealista.it/immobile/{i}/"))
        await dedup.upsert_if_new(uuid4(), make_listing())

        items, total = await repository.list_for_owner(owner_id, page=2, limit=2)

        assert total == 5
        assert len(items) == 2
        assert all(item.owner_id == owner_id for item in items)

        items, total = await repository.list_for_owner(owner_id, status="reviewed")
        assert (items, total) == ([], 0)
