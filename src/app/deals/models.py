"""Deal pipeline persistence models.

Two SQLAlchemy models on the shared declarative Base:
- DealModel: Sales-pipeline record from first inquiry through won/lost
- ProposalModel: Priced speaker proposal sent to the client for a deal

No foreign key constraints between lifecycle tables (application-level
referential integrity via the repositories). Deals are never deleted;
the admin "delete" marks them lost.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.app.core.database import Base


class DealModel(Base):
    """Sales-pipeline deal for a speaking engagement.

    ``notes`` doubles as the append-only status history: every status
    change writes a timestamped line. ``external_id`` is the contact id
    from the inbound CRM integration and is the preferred dedup key for
    webhook ingestion.
    """

    __tablename__ = "deals"
    __table_args__ = (
        Index("idx_deals_status", "status"),
        Index("idx_deals_client_email", "client_email"),
        Index("idx_deals_external_id", "external_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
        default=uuid.uuid4,
    )
    client_name: Mapped[str] = mapped_column(String(255), nullable=False)
    client_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    client_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    company: Mapped[str | None] = mapped_column(String(255), nullable=True)
    event_title: Mapped[str] = mapped_column(String(500), nullable=False)
    event_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    event_location: Mapped[str | None] = mapped_column(String(500), nullable=True)
    event_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    attendee_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    speaker_requested: Mapped[str | None] = mapped_column(String(255), nullable=True)
    deal_value: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    commission_percentage: Mapped[float | None] = mapped_column(Float, nullable=True)
    commission_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    budget_range: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default="lead", server_default="lead"
    )
    priority: Mapped[str] = mapped_column(
        String(20), nullable=False, default="medium", server_default="medium"
    )
    source: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_contact: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    external_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    firm_offer_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )


class ProposalModel(Base):
    """Priced proposal for a deal, accepted or rejected by the client via token."""

    __tablename__ = "proposals"
    __table_args__ = (
        Index("idx_proposals_deal_id", "deal_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
        default=uuid.uuid4,
    )
    deal_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    proposal_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    speaker_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    event_title: Mapped[str | None] = mapped_column(String(500), nullable=True)
    event_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    event_location: Mapped[str | None] = mapped_column(String(500), nullable=True)
    total_investment: Mapped[float | None] = mapped_column(Float, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="sent", server_default="sent"
    )
    valid_until: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    access_token_hash: Mapped[str] = mapped_column(
        String(64), nullable=False, unique=True
    )
    accepted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    accepted_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
