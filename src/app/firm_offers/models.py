"""Firm offer persistence model.

Each intake section is its own nullable JSON column so an admin edit can
replace one section without rewriting the others. The speaker link token
is stored as a SHA-256 hash in a unique column.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, String, Text, func, text
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.app.core.database import Base


class FirmOfferModel(Base):
    """Logistics intake for a booked engagement, confirmed by the speaker."""

    __tablename__ = "firm_offers"
    __table_args__ = (
        Index("idx_firm_offers_status", "status"),
        Index("idx_firm_offers_proposal_id", "proposal_id"),
        Index("idx_firm_offers_deal_id", "deal_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
        default=uuid.uuid4,
    )
    proposal_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    deal_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default="draft", server_default="draft"
    )

    event_overview: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    speaker_program: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    event_schedule: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    technical_requirements: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    travel_accommodation: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    additional_info: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    financial_details: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    confirmation: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    speaker_access_token_hash: Mapped[str] = mapped_column(
        String(64), nullable=False, unique=True
    )

    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    sent_to_speaker_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    speaker_viewed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    speaker_response_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    speaker_confirmed: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    speaker_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )
