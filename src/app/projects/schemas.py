"""Pydantic schemas for projects."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class ProjectRead(BaseModel):
    id: str
    deal_id: str
    contract_id: str | None = None
    firm_offer_id: str | None = None
    proposal_id: str | None = None
    project_name: str
    client_name: str
    client_email: str | None = None
    company: str | None = None
    event_date: datetime | None = None
    event_location: str | None = None
    speaker_fee: float | None = None
    budget: float | None = None
    status: str = "planning"
    source: str | None = None
    created_at: datetime | None = None
