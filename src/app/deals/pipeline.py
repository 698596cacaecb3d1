"""Deal pipeline rules -- status transitions and inbound CRM webhook ingestion.

Status transitions are validated against VALID_TRANSITIONS. Every applied
change appends a timestamped history line to the deal's notes and updates
last_contact, so notes form the append-only record of the pipeline. LOST
is terminal; deals are never deleted, only marked lost.

Webhook ingestion maps labels from the LinkedIn messaging integration to
(status, priority) pairs and upserts a deal. Matching prefers the external
contact id, then exact email, and only then a fuzzy name + company match,
which is logged for manual review because it can merge or split deals
incorrectly on ambiguous input.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import structlog

from src.app.core.errors import InvalidTransitionError, NotFoundError
from src.app.core.monitoring import record_transition
from src.app.deals.schemas import (
    DealCreate,
    DealFilter,
    DealPriority,
    DealRead,
    DealStatus,
    DealUpdate,
    WebhookOutcome,
    WebhookPayload,
)

logger = structlog.get_logger(__name__)

# ── Status Transition Rules ───────────────────────────────────────────────────

# Forward skips are allowed; backward moves only one step (re-opened talks).
VALID_TRANSITIONS: dict[DealStatus, set[DealStatus]] = {
    DealStatus.LEAD: {
        DealStatus.QUALIFIED,
        DealStatus.PROPOSAL,
        DealStatus.NEGOTIATION,
        DealStatus.WON,
        DealStatus.LOST,
    },
    DealStatus.QUALIFIED: {
        DealStatus.PROPOSAL,
        DealStatus.NEGOTIATION,
        DealStatus.WON,
        DealStatus.LOST,
    },
    DealStatus.PROPOSAL: {
        DealStatus.QUALIFIED,
        DealStatus.NEGOTIATION,
        DealStatus.WON,
        DealStatus.LOST,
    },
    DealStatus.NEGOTIATION: {
        DealStatus.PROPOSAL,
        DealStatus.WON,
        DealStatus.LOST,
    },
    DealStatus.WON: {DealStatus.LOST},
    DealStatus.LOST: set(),  # Terminal
}


def validate_status_transition(from_status: DealStatus, to_status: DealStatus) -> None:
    """Validate that a deal status transition is allowed.

    Args:
        from_status: Current deal status.
        to_status: Target deal status.

    Raises:
        InvalidTransitionError: If transition is not allowed.
    """
    if from_status == to_status:
        return  # Same status is a no-op

    allowed = VALID_TRANSITIONS.get(from_status, set())
    if to_status not in allowed:
        raise InvalidTransitionError(
            "deal",
            from_status.value,
            to_status.value,
            allowed=[s.value for s in allowed],
        )


def history_line(
    now: datetime,
    from_status: DealStatus,
    to_status: DealStatus,
    reason: str | None = None,
) -> str:
    line = f"[{now.isoformat()}] Status: {from_status.value} -> {to_status.value}"
    if reason:
        line = f"{line} ({reason})"
    return line


def append_note(existing: str | None, entry: str) -> str:
    if not existing:
        return entry
    return f"{existing}\n\n{entry}"


# ── Webhook Label Mapping ─────────────────────────────────────────────────────

# Checked in order; first label present wins.
LABEL_RULES: list[tuple[str, DealStatus, DealPriority]] = [
    ("SQL", DealStatus.NEGOTIATION, DealPriority.MEDIUM),
    ("MQL - High", DealStatus.QUALIFIED, DealPriority.HIGH),
    ("MQL - Medium", DealStatus.QUALIFIED, DealPriority.MEDIUM),
    ("MQL - Low", DealStatus.QUALIFIED, DealPriority.LOW),
    ("Disqualified", DealStatus.LOST, DealPriority.MEDIUM),
]

# Labels that make a contact worth tracking as a deal at all.
DEAL_LABELS = {name.lower() for name, _, _ in LABEL_RULES} | {"client"}

DEFAULT_STATUS = DealStatus.LEAD
DEFAULT_PRIORITY = DealPriority.MEDIUM

WEBHOOK_SOURCE = "kondo_linkedin"
UNKNOWN_COMPANY = "Unknown Company"


def map_labels(labels: list[str]) -> tuple[DealStatus, DealPriority]:
    """Map integration labels to the (status, priority) pair for the deal."""
    normalized = {label.strip().lower() for label in labels}
    for name, status, priority in LABEL_RULES:
        if name.lower() in normalized:
            return status, priority
    return DEFAULT_STATUS, DEFAULT_PRIORITY


def should_track(labels: list[str]) -> bool:
    return any(label.strip().lower() in DEAL_LABELS for label in labels)


def company_from_headline(headline: str | None) -> str | None:
    """Extract "Acme" from a LinkedIn headline like "VP Events at Acme"."""
    if not headline or " at " not in headline:
        return None
    company = headline.split(" at ", 1)[1].strip()
    return company or None


# ── Pipeline ──────────────────────────────────────────────────────────────────


class DealPipeline:
    """Status-aware operations on deals.

    Args:
        repository: DealRepository (or any object with the same async methods).
    """

    def __init__(self, repository: Any) -> None:
        self._repository = repository

    async def create_deal(self, data: DealCreate) -> DealRead:
        deal = await self._repository.create_deal(data)
        logger.info("deal_pipeline.deal_created", deal_id=deal.id, status=deal.status.value)
        return deal

    async def get_deal(self, deal_id: str) -> DealRead:
        deal = await self._repository.get_deal(deal_id)
        if deal is None:
            raise NotFoundError("Deal", deal_id)
        return deal

    async def list_deals(self, filters: DealFilter | None = None) -> list[DealRead]:
        return await self._repository.list_deals(filters)

    async def update_deal(self, deal_id: str, data: DealUpdate) -> DealRead:
        """Apply an admin edit; a status change is validated and recorded.

        Raises:
            NotFoundError: If the deal does not exist.
            InvalidTransitionError: If the requested status is unreachable.
        """
        deal = await self.get_deal(deal_id)
        changes = data.model_dump(
            exclude_unset=True,
            exclude_none=True,
            exclude={"status", "status_reason"},
        )

        if data.status is not None and data.status != deal.status:
            changes.update(
                self._status_changes(deal, data.status, data.status_reason)
            )

        if (
            "commission_percentage" in changes
            and "commission_amount" not in changes
        ):
            value = changes.get("deal_value", deal.deal_value)
            changes["commission_amount"] = round(
                value * changes["commission_percentage"] / 100, 2
            )

        if not changes:
            return deal

        updated = await self._repository.update_deal(deal_id, changes)
        if updated.status != deal.status:
            self._record(deal, updated.status)
        return updated

    async def change_status(
        self, deal_id: str, new_status: DealStatus, reason: str | None = None
    ) -> DealRead:
        """Move a deal to ``new_status``, appending history to notes.

        Raises:
            NotFoundError: If the deal does not exist.
            InvalidTransitionError: If the transition is not allowed.
        """
        deal = await self.get_deal(deal_id)
        if deal.status == new_status:
            return deal

        changes = self._status_changes(deal, new_status, reason)
        updated = await self._repository.update_deal(deal_id, changes)
        self._record(deal, new_status)
        return updated

    async def mark_lost(self, deal_id: str, reason: str | None = None) -> DealRead:
        """Soft delete: deals are never removed, only marked lost."""
        return await self.change_status(
            deal_id, DealStatus.LOST, reason or "removed by admin"
        )

    def _status_changes(
        self, deal: DealRead, new_status: DealStatus, reason: str | None
    ) -> dict[str, Any]:
        validate_status_transition(deal.status, new_status)
        now = datetime.now(timezone.utc)
        return {
            "status": new_status,
            "notes": append_note(deal.notes, history_line(now, deal.status, new_status, reason)),
            "last_contact": now,
        }

    def _record(self, deal: DealRead, new_status: DealStatus) -> None:
        record_transition("deal", deal.status.value, new_status.value)
        logger.info(
            "deal_pipeline.status_changed",
            deal_id=deal.id,
            from_status=deal.status.value,
            to_status=new_status.value,
        )

    # ── Webhook Ingestion ─────────────────────────────────────────────────

    async def ingest_webhook(self, payload: WebhookPayload) -> WebhookOutcome:
        """Upsert a deal from one integration delivery.

        Returns:
            WebhookOutcome describing whether a deal was created, updated or
            the contact was ignored (no deal-worthy label).
        """
        data = payload.data
        labels = data.label_names
        status, priority = map_labels(labels)

        if not should_track(labels):
            logger.info(
                "deal_pipeline.webhook_ignored",
                event_type=payload.event.type,
                labels=labels,
            )
            return WebhookOutcome(action="ignored", should_create_deal=False)

        existing, matched_by = await self._match(payload)
        if existing is not None:
            return await self._apply_webhook_update(
                existing, matched_by, payload, status, priority
            )

        deal = await self._repository.create_deal(
            self._webhook_deal(payload, status, priority)
        )
        logger.info(
            "deal_pipeline.webhook_deal_created",
            deal_id=deal.id,
            status=status.value,
            priority=priority.value,
            external_id=deal.external_id,
        )
        return WebhookOutcome(
            action="created",
            deal_id=deal.id,
            status=deal.status,
            priority=deal.priority,
            should_create_deal=True,
        )

    async def _match(self, payload: WebhookPayload) -> tuple[DealRead | None, str | None]:
        data = payload.data
        if data.contact_linkedin_uid:
            deal = await self._repository.find_by_external_id(data.contact_linkedin_uid)
            if deal is not None:
                return deal, "external_id"

        if payload.event.email:
            deal = await self._repository.find_by_email(payload.event.email)
            if deal is not None:
                return deal, "email"

        company = company_from_headline(data.contact_headline)
        if data.full_name and company:
            deal = await self._repository.find_by_name_and_company(data.full_name, company)
            if deal is not None:
                logger.warning(
                    "deal_pipeline.fuzzy_match_review",
                    deal_id=deal.id,
                    client_name=data.full_name,
                    company=company,
                    external_id=data.contact_linkedin_uid,
                )
                return deal, "fuzzy"

        return None, None

    async def _apply_webhook_update(
        self,
        deal: DealRead,
        matched_by: str | None,
        payload: WebhookPayload,
        status: DealStatus,
        priority: DealPriority,
    ) -> WebhookOutcome:
        data = payload.data
        now = datetime.now(timezone.utc)
        message = data.conversation_latest_content or payload.event.type or "No message"

        notes = deal.notes
        changes: dict[str, Any] = {"priority": priority}
        skipped_status: str | None = None

        if status != deal.status:
            try:
                validate_status_transition(deal.status, status)
            except InvalidTransitionError as exc:
                skipped_status = status.value
                logger.warning(
                    "deal_pipeline.webhook_transition_skipped",
                    deal_id=deal.id,
                    from_status=deal.status.value,
                    to_status=status.value,
                    reason=str(exc),
                )
            else:
                changes["status"] = status
                notes = append_note(
                    notes, history_line(now, deal.status, status, "webhook label")
                )

        changes["notes"] = append_note(notes, f"Kondo Update: {message}")
        changes["last_contact"] = data.conversation_latest_timestamp or now
        if data.contact_linkedin_uid and not deal.external_id:
            changes["external_id"] = data.contact_linkedin_uid

        updated = await self._repository.update_deal(deal.id, changes)
        if updated.status != deal.status:
            self._record(deal, updated.status)

        logger.info(
            "deal_pipeline.webhook_deal_updated",
            deal_id=deal.id,
            matched_by=matched_by,
            status=updated.status.value,
        )
        details = {"skipped_status": skipped_status} if skipped_status else {}
        return WebhookOutcome(
            action="updated",
            deal_id=updated.id,
            matched_by=matched_by,
            status=updated.status,
            priority=updated.priority,
            should_create_deal=True,
            details=details,
        )

    def _webhook_deal(
        self, payload: WebhookPayload, status: DealStatus, priority: DealPriority
    ) -> DealCreate:
        data = payload.data
        now = datetime.now(timezone.utc)
        company = company_from_headline(data.contact_headline) or UNKNOWN_COMPANY
        return DealCreate(
            client_name=data.full_name or payload.event.email or "Unknown Contact",
            client_email=payload.event.email,
            company=company,
            event_title=f"Potential Event - {company}",
            event_date=now + timedelta(days=30),
            event_location=data.contact_location or "TBD",
            event_type="Conference",
            attendee_count=100,
            deal_value=25000,
            budget_range="$20k-$30k",
            status=status,
            priority=priority,
            source=WEBHOOK_SOURCE,
            notes=data.conversation_latest_content
            or "Contact from Kondo LinkedIn integration",
            last_contact=data.conversation_latest_timestamp or now,
            external_id=data.contact_linkedin_uid,
        )
