"""Pydantic models for outbound email and delivery results."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class EmailMessage(BaseModel):
    """Email message to send through the configured provider."""

    to: str
    subject: str
    body_html: str
    body_text: str | None = None
    reply_to: str | None = None
    cc: list[str] = Field(default_factory=list)
    tags: dict[str, str] = Field(default_factory=dict)


class SentEmailResult(BaseModel):
    """Provider acknowledgement for an accepted message."""

    message_id: str
    provider: str


class NotificationStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


class NotificationResult(BaseModel):
    """Outcome of one recipient's notification, surfaced to API callers."""

    recipient: str | None = None
    role: str
    template: str
    status: NotificationStatus
    message_id: str | None = None
    error: str | None = None
