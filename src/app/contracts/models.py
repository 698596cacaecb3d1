"""Contract persistence model.

ContractModel stores a denormalized snapshot of the deal at creation time
(event, parties, fee), the rendered agreement text, per-party signature
timestamps, and SHA-256 hashes of its three bearer tokens. The hash
columns are unique so a token resolves to at most one contract in a single
indexed lookup.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, Index, String, Text, func, text
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.app.core.database import Base


class ContractModel(Base):
    """Speaker engagement agreement derived from a won deal."""

    __tablename__ = "contracts"
    __table_args__ = (
        Index("idx_contracts_deal_id", "deal_id"),
        Index("idx_contracts_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
        default=uuid.uuid4,
    )
    deal_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    contract_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default="draft", server_default="draft"
    )

    # Financial snapshot (frozen once sent; later changes go to amendments)
    speaker_fee: Mapped[float] = mapped_column(Float, nullable=False)
    total_amount: Mapped[float] = mapped_column(Float, nullable=False)
    payment_terms: Mapped[str] = mapped_column(Text, nullable=False)
    additional_terms: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Event snapshot
    event_title: Mapped[str] = mapped_column(String(500), nullable=False)
    event_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    event_location: Mapped[str | None] = mapped_column(String(500), nullable=True)
    event_type: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Parties
    client_name: Mapped[str] = mapped_column(String(255), nullable=False)
    client_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    client_company: Mapped[str | None] = mapped_column(String(255), nullable=True)
    client_signer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    client_signer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    speaker_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    speaker_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    content: Mapped[str] = mapped_column(Text, nullable=False)

    # Token hashes (sha256 hex)
    access_token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    client_signing_token_hash: Mapped[str] = mapped_column(
        String(64), nullable=False, unique=True
    )
    speaker_signing_token_hash: Mapped[str] = mapped_column(
        String(64), nullable=False, unique=True
    )

    # Signatures
    client_signed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    client_signer_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)
    speaker_signed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    speaker_signer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    amendments: Mapped[list] = mapped_column(
        JSON, default=list, server_default=text("'[]'::json")
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
    )
