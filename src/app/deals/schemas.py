"""Pydantic schemas for the deal pipeline -- deals, proposals, webhook payloads.

Defines:
- Enums: DealStatus, DealPriority, ProposalStatus
- Deal payloads: DealCreate, DealUpdate, DealRead, DealFilter
- Proposal payloads: ProposalCreate, ProposalRead, ProposalCreated,
  ProposalDecisionRequest, ProposalDecisionOutcome
- Inbound CRM webhook: WebhookEvent, WebhookData, WebhookPayload, WebhookOutcome
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.app.notifications.models import NotificationResult


# ── Enums ───────────────────────────────────────────────────────────────────


class DealStatus(str, Enum):
    """Pipeline position of a deal. LOST is terminal."""

    LEAD = "lead"
    QUALIFIED = "qualified"
    PROPOSAL = "proposal"
    NEGOTIATION = "negotiation"
    WON = "won"
    LOST = "lost"


class DealPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class ProposalStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


# ── Deal Schemas ────────────────────────────────────────────────────────────


class DealCreate(BaseModel):
    """Schema for creating a deal (inbound inquiry, admin entry, or webhook)."""

    client_name: str = Field(..., min_length=1)
    client_email: str | None = None
    client_phone: str | None = None
    company: str | None = None
    event_title: str = Field(..., min_length=1)
    event_date: datetime | None = None
    event_location: str | None = None
    event_type: str | None = None
    attendee_count: int | None = Field(default=None, ge=0)
    speaker_requested: str | None = None
    deal_value: float = Field(default=0.0, ge=0)
    commission_percentage: float | None = Field(default=None, ge=0, le=100)
    commission_amount: float | None = Field(default=None, ge=0)
    budget_range: str | None = None
    status: DealStatus = DealStatus.LEAD
    priority: DealPriority = DealPriority.MEDIUM
    source: str | None = None
    notes: str | None = None
    last_contact: datetime | None = None
    external_id: str | None = None

    @model_validator(mode="after")
    def _fill_commission_amount(self) -> DealCreate:
        if self.commission_amount is None and self.commission_percentage is not None:
            self.commission_amount = round(
                self.deal_value * self.commission_percentage / 100, 2
            )
        return self


class DealUpdate(BaseModel):
    """Admin edit of a deal. Status changes go through the pipeline."""

    client_name: str | None = None
    client_email: str | None = None
    client_phone: str | None = None
    company: str | None = None
    event_title: str | None = None
    event_date: datetime | None = None
    event_location: str | None = None
    event_type: str | None = None
    attendee_count: int | None = Field(default=None, ge=0)
    speaker_requested: str | None = None
    deal_value: float | None = Field(default=None, ge=0)
    commission_percentage: float | None = Field(default=None, ge=0, le=100)
    commission_amount: float | None = Field(default=None, ge=0)
    budget_range: str | None = None
    status: DealStatus | None = None
    priority: DealPriority | None = None
    source: str | None = None
    status_reason: str | None = None


class DealRead(BaseModel):
    """Schema for reading a deal (includes all persisted fields)."""

    id: str
    client_name: str
    client_email: str | None = None
    client_phone: str | None = None
    company: str | None = None
    event_title: str
    event_date: datetime | None = None
    event_location: str | None = None
    event_type: str | None = None
    attendee_count: int | None = None
    speaker_requested: str | None = None
    deal_value: float = 0.0
    commission_percentage: float | None = None
    commission_amount: float | None = None
    budget_range: str | None = None
    status: DealStatus = DealStatus.LEAD
    priority: DealPriority = DealPriority.MEDIUM
    source: str | None = None
    notes: str | None = None
    last_contact: datetime | None = None
    external_id: str | None = None
    firm_offer_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class DealFilter(BaseModel):
    """Optional filters for listing deals."""

    status: DealStatus | None = None
    priority: DealPriority | None = None
    source: str | None = None


# ── Proposal Schemas ────────────────────────────────────────────────────────


class ProposalCreate(BaseModel):
    """Admin request to issue a proposal for a deal.

    Event fields default to the deal's values when omitted.
    """

    speaker_name: str | None = None
    event_title: str | None = None
    event_date: datetime | None = None
    event_location: str | None = None
    total_investment: float | None = Field(default=None, ge=0)
    valid_days: int | None = Field(default=None, ge=1, le=365)


class ProposalRead(BaseModel):
    id: str
    deal_id: str
    proposal_number: str
    speaker_name: str | None = None
    event_title: str | None = None
    event_date: datetime | None = None
    event_location: str | None = None
    total_investment: float | None = None
    status: ProposalStatus = ProposalStatus.SENT
    valid_until: datetime | None = None
    accepted_at: datetime | None = None
    accepted_by: str | None = None
    rejected_at: datetime | None = None
    rejection_reason: str | None = None
    created_at: datetime | None = None


class ProposalCreated(BaseModel):
    proposal: ProposalRead
    access_token: str
    public_url: str


class ProposalDecisionRequest(BaseModel):
    """Body of the public accept / reject call."""

    name: str | None = None
    note: str | None = None


class ProposalDecisionOutcome(BaseModel):
    status: str  # "accepted" | "rejected"
    message: str
    proposal: ProposalRead
    project_id: str | None = None
    notifications: list[NotificationResult] = Field(default_factory=list)


# ── Inbound CRM Webhook ─────────────────────────────────────────────────────


class WebhookEvent(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str | None = None
    email: str | None = None


class WebhookLabel(BaseModel):
    model_config = ConfigDict(extra="allow")

    kondo_label_name: str


class WebhookData(BaseModel):
    """Contact snapshot posted by the LinkedIn messaging integration."""

    model_config = ConfigDict(extra="allow")

    contact_first_name: str | None = None
    contact_last_name: str | None = None
    contact_linkedin_uid: str | None = None
    contact_linkedin_url: str | None = None
    contact_headline: str | None = None
    contact_location: str | None = None
    conversation_latest_content: str | None = None
    conversation_latest_timestamp: datetime | None = None
    kondo_labels: list[WebhookLabel] = Field(default_factory=list)

    @property
    def full_name(self) -> str:
        parts = [self.contact_first_name or "", self.contact_last_name or ""]
        return " ".join(p.strip() for p in parts if p.strip())

    @property
    def label_names(self) -> list[str]:
        return [label.kondo_label_name for label in self.kondo_labels]


class WebhookPayload(BaseModel):
    event: WebhookEvent = Field(default_factory=WebhookEvent)
    data: WebhookData = Field(default_factory=WebhookData)


class WebhookOutcome(BaseModel):
    """Result of ingesting one webhook delivery."""

    action: str  # "created" | "updated" | "ignored"
    deal_id: str | None = None
    matched_by: str | None = None  # "external_id" | "email" | "fuzzy"
    status: DealStatus | None = None
    priority: DealPriority | None = None
    should_create_deal: bool = False
    details: dict[str, Any] = Field(default_factory=dict)
