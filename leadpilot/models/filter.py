"""Saved prospecting search driving automated runs."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from leadpilot.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class ProspectingFilter(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A saved search specification owned by one user.

    ``criteria`` is an open record: location, price_min/price_max,
    property_type, rooms_min/rooms_max, source_platforms and any extra keys
    the client sent. Every field is optional.
    """

    __tablename__ = "prospecting_filters"

    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    criteria: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        comment="Open criteria record (location, prices, rooms, platforms, ...)"
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    auto_run: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_run_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    listings_found_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Listings added across all runs of this filter"
    )

    def __repr__(self) -> str:
        return f"<ProspectingFilter(id={self.id}, name='{self.name}', owner_id={self.owner_id})>"
