"""Pydantic schemas for contracts.

Defines:
- ContractStatus enum
- Creation inputs: SpeakerInfo, ClientSignerInfo, ContractCreate
- ContractTerms: the snapshot rendered into contract content
- Read models: ContractRead (never carries tokens), ContractPublicView
- Engine results: ContractTokens, ContractCreated, ContractPreview,
  StatusUpdateResult, SignatureResult, ContractStats
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from src.app.notifications.models import NotificationResult


class ContractStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    PARTIALLY_SIGNED = "partially_signed"
    FULLY_EXECUTED = "fully_executed"
    CANCELLED = "cancelled"


class SignerRole(str, Enum):
    CLIENT = "client"
    SPEAKER = "speaker"


# ── Creation Inputs ─────────────────────────────────────────────────────────


class SpeakerInfo(BaseModel):
    name: str | None = None
    email: str | None = None
    fee: float | None = Field(default=None, gt=0)


class ClientSignerInfo(BaseModel):
    name: str | None = None
    email: str | None = None
    title: str | None = None


class ContractCreate(BaseModel):
    """Inputs for deriving a contract from a won deal."""

    deal_id: str | None = None
    speaker_info: SpeakerInfo | None = None
    client_signer_info: ClientSignerInfo | None = None
    additional_terms: str | None = None
    payment_terms: str | None = None
    created_by: str | None = None


class Amendment(BaseModel):
    description: str = Field(..., min_length=1)
    changes: dict[str, Any] = Field(default_factory=dict)
    amended_by: str | None = None
    amended_at: datetime | None = None


# ── Render Input ────────────────────────────────────────────────────────────


class ContractTerms(BaseModel):
    """Snapshot of names, dates and amounts merged into the legal template.

    ``contract_date`` is part of the input (not read from the clock) so
    rendering the same terms twice yields identical text.
    """

    contract_number: str
    contract_date: date
    client_name: str
    client_email: str | None = None
    client_phone: str | None = None
    client_company: str | None = None
    client_signer_name: str | None = None
    event_title: str
    event_date: datetime | None = None
    event_location: str | None = None
    event_type: str | None = None
    attendee_count: int | None = None
    speaker_name: str | None = None
    speaker_email: str | None = None
    speaker_fee: float
    total_amount: float
    payment_terms: str
    additional_terms: str


# ── Read Models ─────────────────────────────────────────────────────────────


class ContractRead(BaseModel):
    """Contract as stored. Token hashes never leave the repository."""

    id: str
    deal_id: str
    contract_number: str
    title: str
    status: ContractStatus = ContractStatus.DRAFT
    speaker_fee: float
    total_amount: float
    payment_terms: str
    additional_terms: str | None = None
    event_title: str
    event_date: datetime | None = None
    event_location: str | None = None
    event_type: str | None = None
    client_name: str
    client_email: str | None = None
    client_company: str | None = None
    client_signer_name: str | None = None
    client_signer_email: str | None = None
    speaker_name: str | None = None
    speaker_email: str | None = None
    content: str
    client_signed_at: datetime | None = None
    client_signer_ip: str | None = None
    speaker_signed_at: datetime | None = None
    speaker_signer_name: str | None = None
    amendments: list[dict[str, Any]] = Field(default_factory=list)
    expires_at: datetime
    sent_at: datetime | None = None
    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ContractPublicView(BaseModel):
    """What a token holder sees on the signing / viewing page."""

    contract_number: str
    title: str
    status: ContractStatus
    event_title: str
    event_date: datetime | None = None
    event_location: str | None = None
    client_name: str
    client_company: str | None = None
    speaker_name: str | None = None
    total_amount: float
    payment_terms: str
    content: str
    client_signed_at: datetime | None = None
    speaker_signed_at: datetime | None = None
    expires_at: datetime
    role: str


# ── Engine Results ──────────────────────────────────────────────────────────


class ContractTokens(BaseModel):
    access_token: str
    client_signing_token: str
    speaker_signing_token: str


class SigningLinks(BaseModel):
    view_url: str | None = None
    client_signing_url: str
    speaker_signing_url: str


class ContractCreated(BaseModel):
    contract: ContractRead
    tokens: ContractTokens
    links: SigningLinks


class ContractPreview(BaseModel):
    contract_number: str
    title: str
    speaker_fee: float
    total_amount: float
    payment_terms: str
    additional_terms: str
    content: str


class StatusUpdateResult(BaseModel):
    contract: ContractRead
    notifications: list[NotificationResult] = Field(default_factory=list)
    links: SigningLinks | None = None


class SignatureResult(BaseModel):
    outcome: str  # "signed" | "already_signed"
    role: SignerRole
    contract: ContractRead
    notifications: list[NotificationResult] = Field(default_factory=list)


class ContractStats(BaseModel):
    total: int = 0
    draft: int = 0
    sent: int = 0
    partially_signed: int = 0
    fully_executed: int = 0
    cancelled: int = 0
    total_value: float = 0.0
