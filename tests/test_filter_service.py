"""Tests for prospecting filter CRUD and run bookkeeping."""

from uuid import uuid4

import pytest

from leadpilot.core.exceptions import NotFoundError, ValidationError
from leadpilot.schemas.filter import FilterCreateRequest
from leadpilot.services.filter_service import FilterService


class TestFilterService:
    """Tests for FilterService."""

    async def test_create_and_list(self, test_db):
        service = FilterService(test_db)
        owner_id = uuid4()

        created = await service.create_filter(
            owner_id, "pro", "  Milano trilocali  ", {"location": "Milano", "price_max": 300000}
        )
        await service.create_filter(owner_id, "pro", "Torino", is_active=False)
        await service.create_filter(uuid4(), "pro", "Someone else")

        assert created.name == "Milano trilocali"
        assert created.listings_found_count == 0
        assert created.last_run_at is None
        assert len(await service.list_filters(owner_id)) == 2
        assert [f.name for f in await service.list_filters(owner_id, is_active=True)] == ["Milano trilocali"]

    async def test_plan_filter_limit(self, test_db):
        """Test that the pro plan stops at 10 filters."""
        service = FilterService(test_db)
        owner_id = uuid4()
        for i in range(10):
            await service.create_filter(owner_id, "pro", f"Filter {i}")

        with pytest.raises(ValidationError) as exc_info:
            await service.create_filter(owner_id, "pro", "One too many")

        assert exc_info.value.status_code == 400
        assert "Filter limit reached" in exc_info.value.message
        # Agency allows more
        await service.create_filter(owner_id, "agency", "Agency filter")

    async def test_partial_update(self, test_db):
        service = FilterService(test_db)
        owner_id = uuid4()
        created = await service.create_filter(owner_id, "pro", "Milano", {"location": "Milano"})

        updated = await service.update_filter(owner_id, created.id, auto_run=True, name=None)

        assert updated.auto_run is True
        assert updated.name == "Milano"
        assert updated.criteria == {"location": "Milano"}

    async def test_update_and_delete_are_owner_scoped(self, test_db):
        service = FilterService(test_db)
        created = await service.create_filter(uuid4(), "pro", "Milano")

        with pytest.raises(NotFoundError):
            await service.update_filter(uuid4(), created.id, name="Hijacked")
        with pytest.raises(NotFoundError):
            await service.delete_filter(uuid4(), created.id)

    async def test_delete(self, test_db):
        service = FilterService(test_db)
        owner_id = uuid4()
        created = await service.create_filter(owner_id, "pro", "Milano")

        await service.delete_filter(owner_id, created.id)

        assert await service.list_filters(owner_id) == []

    async def test_filters_for_run(self, test_db):
        service = FilterService(test_db)
        owner_id = uuid4()
        auto = await service.create_filter(owner_id, "pro", "Auto", auto_run=True)
        manual = await service.create_filter(owner_id, "pro", "Manual")
        await service.create_filter(owner_id, "pro", "Paused", auto_run=True, is_active=False)

        assert [f.id for f in await service.get_filters_for_run(owner_id)] == [auto.id]
        assert [f.id for f in await service.get_filters_for_run(owner_id, manual.id)] == [manual.id]
        assert await service.get_filters_for_run(uuid4(), manual.id) == []
        assert await service.get_auto_run_owners() == [owner_id]

    async def test_mark_run_accumulates_counts(self, test_db):
        service = FilterService(test_db)
        owner_id = uuid4()
        created = await service.create_filter(owner_id, "pro", "Milano", auto_run=True)

        await service.mark_run({created.id: 3})
        await service.mark_run({created.id: 2})
        await test_db.commit()

        refreshed = await service.get_filter(owner_id, created.id)
        await test_db.refresh(refreshed)
        assert refreshed.listings_found_count == 5
        assert refreshed.last_run_at is not None


class TestFilterSchemas:
    """Tests for filter request validation."""

    def test_criteria_keeps_unknown_keys(self):
        body = FilterCreateRequest(
            name="Milano",
            criteria={"location": "Milano", "source_platforms": ["idealista"], "energy_class": "A"},
        )

        dumped = body.criteria.model_dump(mode="json", exclude_none=True)
        assert dumped == {"location": "Milano", "source_platforms": ["idealista"], "energy_class": "A"}
        assert body.is_active is True
        assert body.auto_run is False

    @pytest.mark.parametrize(
        "criteria",
        [
            {"price_min": -1},
            {"rooms_min": 0},
            {"source_platforms": ["craigslist"]},
            {"price_min": 500000, "price_max": 100000},
        ],
    )
    def test_invalid_criteria(self, criteria):
        with pytest.raises(ValueError):
            FilterCreateRequest(name="Bad", criteria=criteria)

    def test_name_length(self):
        with pytest.raises(ValueError):
            FilterCreateRequest(name="")
        with pytest.raises(ValueError):
            FilterCreateRequest(name="x" * 201)
