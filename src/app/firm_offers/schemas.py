"""Pydantic schemas for firm offers.

Defines:
- FirmOfferStatus enum
- The seven intake sections plus Confirmation, each a typed model whose
  fields are all optional (a draft may be saved half filled)
- FirmOfferUpdate (admin PATCH), FirmOfferRead, FirmOfferDetail
- Engine results: FirmOfferCreated, FirmOfferPublicView, IntakeOutcome,
  SpeakerDispatch, SpeakerResponseOutcome
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.app.notifications.models import NotificationResult


class FirmOfferStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    SENT_TO_SPEAKER = "sent_to_speaker"
    SPEAKER_CONFIRMED = "speaker_confirmed"
    DECLINED = "declined"


# ── Sections ────────────────────────────────────────────────────────────────


class Contact(BaseModel):
    name: str | None = None
    title: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None


class EventOverview(BaseModel):
    billing_contact: Contact = Field(default_factory=Contact)
    logistics_contact: Contact = Field(default_factory=Contact)
    company_name: str | None = None
    end_client_name: str | None = None
    event_name: str | None = None
    event_date: str | None = None
    event_website: str | None = None
    event_location: str | None = None
    event_classification: str = "travel"


class SpeakerProgram(BaseModel):
    speaker_name: str | None = None
    program_topic: str | None = None
    program_type: str = "keynote"
    audience_size: int | None = None
    audience_demographics: str | None = None
    speaker_attire: str = "business_casual"


class EventSchedule(BaseModel):
    event_start_time: str | None = None
    event_end_time: str | None = None
    speaker_arrival_time: str | None = None
    program_start_time: str | None = None
    program_length: int | None = None  # minutes
    qa_length: int | None = None  # minutes
    timezone: str = "America/Los_Angeles"
    detailed_timeline: str | None = None


class TechnicalRequirements(BaseModel):
    av_requirements: str | None = None
    recording_allowed: bool | None = None
    recording_purpose: str | None = None
    live_streaming: bool | None = None
    photography_allowed: bool | None = None
    tech_rehearsal_date: str | None = None
    tech_rehearsal_time: str | None = None


class TravelAccommodation(BaseModel):
    travel_required: bool | None = None
    fly_in_date: str | None = None
    fly_out_date: str | None = None
    nearest_airport: str | None = None
    airport_transport_provided: bool | None = None
    hotel_name: str | None = None
    hotel_dates_needed: str | None = None
    hotel_tier_preference: str | None = None
    meals_provided: str | None = None
    dietary_requirements: str | None = None


class AdditionalInfo(BaseModel):
    venue_name: str | None = None
    venue_address: str | None = None
    venue_contact_name: str | None = None
    venue_contact_email: str | None = None
    venue_contact_phone: str | None = None
    green_room_available: bool | None = None
    meet_greet_opportunities: str | None = None
    marketing_use_allowed: bool | None = None
    press_media_present: bool | None = None
    special_requests: str | None = None


class FinancialDetails(BaseModel):
    speaker_fee: float | None = None
    travel_expenses_type: str = "flat_buyout"
    travel_expenses_amount: float | None = None
    payment_terms: str = "net_30"
    invoice_requirements: str | None = None


class Confirmation(BaseModel):
    prep_call_requested: bool | None = None
    prep_call_availability: str | None = None
    additional_notes: str | None = None


SECTION_MODELS: dict[str, type[BaseModel]] = {
    "event_overview": EventOverview,
    "speaker_program": SpeakerProgram,
    "event_schedule": EventSchedule,
    "technical_requirements": TechnicalRequirements,
    "travel_accommodation": TravelAccommodation,
    "additional_info": AdditionalInfo,
    "financial_details": FinancialDetails,
    "confirmation": Confirmation,
}


class FirmOfferSections(BaseModel):
    """All sections of an offer; None means never filled in."""

    event_overview: EventOverview | None = None
    speaker_program: SpeakerProgram | None = None
    event_schedule: EventSchedule | None = None
    technical_requirements: TechnicalRequirements | None = None
    travel_accommodation: TravelAccommodation | None = None
    additional_info: AdditionalInfo | None = None
    financial_details: FinancialDetails | None = None
    confirmation: Confirmation | None = None


# ── Admin Inputs ────────────────────────────────────────────────────────────


class FirmOfferUpdate(FirmOfferSections):
    """Admin partial update.

    Sections that are present replace the stored section wholesale; absent
    ones are left alone. Unrecognized keys are ignored, so a body that only
    carries unknown keys has an empty ``model_fields_set``.
    """

    model_config = ConfigDict(extra="ignore")

    status: FirmOfferStatus | None = None
    speaker_confirmed: bool | None = None
    speaker_notes: str | None = None


class SendToSpeakerRequest(BaseModel):
    speaker_email: str | None = None
    speaker_name: str | None = None


class SpeakerResponseRequest(BaseModel):
    speaker_confirmed: bool
    speaker_notes: str | None = None


# ── Read Models ─────────────────────────────────────────────────────────────


class FirmOfferRead(FirmOfferSections):
    """Firm offer as stored. The speaker token hash is never exposed."""

    id: str
    proposal_id: str | None = None
    deal_id: str | None = None
    status: FirmOfferStatus = FirmOfferStatus.DRAFT
    submitted_at: datetime | None = None
    sent_to_speaker_at: datetime | None = None
    speaker_viewed_at: datetime | None = None
    speaker_response_at: datetime | None = None
    speaker_confirmed: bool | None = None
    speaker_notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ProposalSummary(BaseModel):
    proposal_number: str
    status: str
    speaker_name: str | None = None
    event_title: str | None = None
    event_date: datetime | None = None
    event_location: str | None = None
    total_investment: float | None = None


class ClientSummary(BaseModel):
    client_name: str
    client_email: str | None = None
    company: str | None = None


class FirmOfferDetail(FirmOfferRead):
    proposal: ProposalSummary | None = None
    client: ClientSummary | None = None


# ── Engine Results ──────────────────────────────────────────────────────────


class FirmOfferCreated(BaseModel):
    offer: FirmOfferRead
    speaker_token: str
    share_url: str


class FirmOfferPublicView(BaseModel):
    """Token holder's view: status plus the form flattened to field names."""

    id: str
    status: FirmOfferStatus
    fields: dict[str, Any] = Field(default_factory=dict)
    speaker_confirmed: bool | None = None
    speaker_notes: str | None = None
    submitted_at: datetime | None = None


class IntakeOutcome(BaseModel):
    status: str  # "saved" | "submitted" | "offer_already_submitted"
    message: str
    offer: FirmOfferPublicView
    notifications: list[NotificationResult] = Field(default_factory=list)


class SpeakerDispatch(BaseModel):
    offer: FirmOfferRead
    speaker_review_url: str
    notifications: list[NotificationResult] = Field(default_factory=list)


class SpeakerResponseOutcome(BaseModel):
    status: str  # "speaker_confirmed" | "declined" | "already_responded" | "not_sent_to_speaker"
    message: str
    offer: FirmOfferPublicView
    notifications: list[NotificationResult] = Field(default_factory=list)
