"""External listing discovered by the prospecting pipeline."""

import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy import JSON, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from leadpilot.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

LISTING_STATUSES = ("new", "reviewed", "discarded")


class ExternalListing(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A scraped property record, unique per (owner_id, source_url_hash).

    Created once per canonical URL per owner; only status and lead_score
    change afterwards.
    """

    __tablename__ = "external_listings"
    __table_args__ = (
        UniqueConstraint("owner_id", "source_url_hash", name="uq_external_listings_owner_hash"),
    )

    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    filter_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("prospecting_filters.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    source_url: Mapped[str] = mapped_column(Text, nullable=False)
    source_url_hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="SHA-256 hex of the canonical source_url"
    )
    source_platform: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2), nullable=True)
    location: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    raw_data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    lead_score: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="0-100, null when scoring failed"
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="new",
        index=True,
        comment="Status: 'new', 'reviewed', 'discarded'"
    )

    def __repr__(self) -> str:
        return f"<ExternalListing(id={self.id}, platform='{self.source_platform}', status='{self.status}')>"
