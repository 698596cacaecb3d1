"""FirmOfferEngine -- intake, admin review and speaker confirmation.

State machine:

    draft -> submitted -> sent_to_speaker -> speaker_confirmed
                                          -> declined

The client fills in the intake through the offer's token link while the
offer is a draft, then submits it. The admin forwards it to the speaker,
which rotates the token, and the speaker confirms or declines through the
new link. Status only moves forward; re-applying the current status is
accepted and refreshes its timestamp.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from typing import Any

import structlog

from src.app.core.errors import (
    AuthError,
    InvalidStateError,
    InvalidTransitionError,
    NoOpError,
    NotFoundError,
    ValidationError,
)
from src.app.core.monitoring import record_transition
from src.app.core.tokens import TokenRole, hash_token, issue_token, looks_like_token
from src.app.deals.schemas import DealRead, ProposalRead, ProposalStatus
from src.app.firm_offers.intake import build_sections, flatten, missing_required_fields
from src.app.firm_offers.schemas import (
    SECTION_MODELS,
    ClientSummary,
    FirmOfferCreated,
    FirmOfferDetail,
    FirmOfferPublicView,
    FirmOfferRead,
    FirmOfferSections,
    FirmOfferStatus,
    FirmOfferUpdate,
    IntakeOutcome,
    ProposalSummary,
    SpeakerDispatch,
    SpeakerResponseOutcome,
)
from src.app.notifications.models import NotificationResult

logger = structlog.get_logger(__name__)

STATUS_ORDER: dict[FirmOfferStatus, int] = {
    FirmOfferStatus.DRAFT: 0,
    FirmOfferStatus.SUBMITTED: 1,
    FirmOfferStatus.SENT_TO_SPEAKER: 2,
    FirmOfferStatus.SPEAKER_CONFIRMED: 3,
    FirmOfferStatus.DECLINED: 3,
}

TERMINAL_STATUSES = frozenset({FirmOfferStatus.SPEAKER_CONFIRMED, FirmOfferStatus.DECLINED})

# Proposal states a firm offer may be seeded from
SEEDABLE_PROPOSAL_STATUSES = frozenset({ProposalStatus.SENT, ProposalStatus.ACCEPTED})

STATUS_STAMPS = {
    FirmOfferStatus.SUBMITTED: "submitted_at",
    FirmOfferStatus.SENT_TO_SPEAKER: "sent_to_speaker_at",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_offer_transition(
    from_status: FirmOfferStatus, to_status: FirmOfferStatus
) -> None:
    """Allow the next step on the linear path and same-status re-application.

    draft -> submitted -> sent_to_speaker -> speaker_confirmed | declined

    Raises:
        InvalidTransitionError: Backward move, skipped step, or any change
            out of a terminal status.
    """
    if to_status == from_status:
        return
    allowed = [
        s.value
        for s, rank in STATUS_ORDER.items()
        if from_status not in TERMINAL_STATUSES and rank == STATUS_ORDER[from_status] + 1
    ]
    if to_status.value not in allowed:
        raise InvalidTransitionError(
            "firm_offer", from_status.value, to_status.value, allowed=allowed
        )


def _public_view(offer: FirmOfferRead) -> FirmOfferPublicView:
    return FirmOfferPublicView(
        id=offer.id,
        status=offer.status,
        fields=flatten(offer),
        speaker_confirmed=offer.speaker_confirmed,
        speaker_notes=offer.speaker_notes,
        submitted_at=offer.submitted_at,
    )


def _section_dump(sections: FirmOfferSections) -> dict[str, Any]:
    dumped: dict[str, Any] = {}
    for name in SECTION_MODELS:
        section = getattr(sections, name)
        dumped[name] = section.model_dump(mode="json") if section is not None else None
    return dumped


def _prefill(
    flat: dict[str, Any], deal: DealRead | None, proposal: ProposalRead | None
) -> dict[str, Any]:
    """Seed empty intake fields from the deal and proposal."""
    seeded = dict(flat)
    candidates: dict[str, Any] = {}
    if deal is not None:
        candidates.update(
            company_name=deal.company,
            event_name=deal.event_title,
            event_date=deal.event_date.date().isoformat() if deal.event_date else None,
            event_location=deal.event_location,
            billing_contact_name=deal.client_name,
            billing_contact_email=deal.client_email,
            billing_contact_phone=deal.client_phone,
            speaker_name=deal.speaker_requested,
            audience_size=deal.attendee_count,
        )
    if proposal is not None:
        candidates.update(
            {
                k: v
                for k, v in {
                    "speaker_name": proposal.speaker_name,
                    "event_name": proposal.event_title,
                    "event_location": proposal.event_location,
                    "speaker_fee": proposal.total_investment,
                }.items()
                if v is not None
            }
        )
    for key, value in candidates.items():
        if value is not None and seeded.get(key) in (None, ""):
            seeded[key] = value
    return seeded


class FirmOfferEngine:
    """Creates firm offers and drives them through intake and confirmation.

    Args:
        offers: FirmOfferRepository (or an in-memory equivalent).
        deals: DealRepository for deal and proposal lookups.
        dispatcher: NotificationDispatcher, optional.
        materializer: ProjectMaterializer, optional.
        public_base_url: Base for share and speaker review links.
        clock: Returns the current UTC time.
    """

    def __init__(
        self,
        offers: Any,
        deals: Any,
        dispatcher: Any | None = None,
        materializer: Any | None = None,
        public_base_url: str = "http://localhost:3000",
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._offers = offers
        self._deals = deals
        self._dispatcher = dispatcher
        self._materializer = materializer
        self._base_url = public_base_url.rstrip("/")
        self._clock = clock

    def share_url(self, token: str) -> str:
        return f"{self._base_url}/firm-offer/{token}"

    def speaker_review_url(self, token: str) -> str:
        return f"{self._base_url}/speaker-review/{token}"

    # ── Creation ───────────────────────────────────────────────────────────

    async def _resolve_parent(
        self, deal_id: str | None, proposal_id: str | None
    ) -> tuple[DealRead | None, ProposalRead]:
        if bool(deal_id) == bool(proposal_id):
            raise ValidationError(
                "Provide exactly one of deal_id or proposal_id",
                fields=["deal_id", "proposal_id"],
            )

        if proposal_id:
            proposal = await self._deals.get_proposal(proposal_id)
            if proposal is None:
                raise NotFoundError("Proposal", proposal_id)
            if proposal.status not in SEEDABLE_PROPOSAL_STATUSES:
                raise InvalidStateError(
                    f"Firm offers need a sent or accepted proposal (proposal is {proposal.status.value})"
                )
            deal = await self._deals.get_deal(proposal.deal_id)
            return deal, proposal

        deal = await self._deals.get_deal(deal_id)
        if deal is None:
            raise NotFoundError("Deal", deal_id)
        proposal = await self._deals.get_latest_proposal_for_deal(deal.id)
        if proposal is None:
            raise InvalidStateError("A proposal must exist for this deal before a firm offer")
        return deal, proposal

    async def create(
        self,
        deal_id: str | None = None,
        proposal_id: str | None = None,
        intake: Mapping[str, Any] | None = None,
    ) -> FirmOfferCreated:
        """Create a draft firm offer from a deal or a proposal.

        Args:
            deal_id: Deal that already has a proposal.
            proposal_id: Sent or accepted proposal.
            intake: Flat intake fields to pre-fill.

        Returns:
            FirmOfferCreated with the plaintext token and share_url.

        Raises:
            ValidationError: Neither or both ids given, or bad intake values.
            NotFoundError: Deal or proposal does not exist.
            InvalidStateError: No usable proposal, or it already has an offer.
        """
        deal, proposal = await self._resolve_parent(deal_id, proposal_id)

        existing = await self._offers.get_by_proposal(proposal.id)
        if existing is not None:
            raise InvalidStateError(
                f"Proposal {proposal.proposal_number} already has firm offer {existing.id}"
            )

        sections = build_sections(_prefill(dict(intake or {}), deal, proposal))
        token = issue_token(TokenRole.SPEAKER)

        offer = await self._offers.create_offer({
            "proposal_id": proposal.id,
            "deal_id": deal.id if deal else proposal.deal_id,
            "status": FirmOfferStatus.DRAFT,
            "speaker_access_token_hash": token.token_hash,
            **_section_dump(sections),
        })

        if offer.deal_id:
            await self._deals.update_deal(offer.deal_id, {"firm_offer_id": offer.id})

        logger.info(
            "firm_offer_engine.created",
            offer_id=offer.id,
            deal_id=offer.deal_id,
            proposal_id=offer.proposal_id,
        )
        return FirmOfferCreated(
            offer=offer, speaker_token=token.token, share_url=self.share_url(token.token)
        )

    # ── Admin ──────────────────────────────────────────────────────────────

    async def update(self, offer_id: str, update: FirmOfferUpdate) -> FirmOfferRead:
        """Partial admin update.

        A terminal status and ``speaker_confirmed`` always travel together:
        either one implies the other, and a contradicting pair is rejected.
        A null ``status`` or ``speaker_confirmed`` counts as absent.

        Raises:
            NoOpError: No actionable fields in the update.
            ValidationError: ``status`` and ``speaker_confirmed`` disagree.
            NotFoundError: Offer does not exist.
            InvalidTransitionError: Backward move, skipped step, or change
                out of a terminal status.
        """
        provided = {
            name
            for name in update.model_fields_set
            if name not in ("status", "speaker_confirmed") or getattr(update, name) is not None
        }
        if not provided:
            raise NoOpError("No updatable fields provided")

        target = update.status
        confirmed = update.speaker_confirmed
        if confirmed is not None:
            implied = FirmOfferStatus.SPEAKER_CONFIRMED if confirmed else FirmOfferStatus.DECLINED
            if target is not None and target != implied:
                raise ValidationError(
                    f"status {target.value} contradicts speaker_confirmed={confirmed}",
                    fields=["status", "speaker_confirmed"],
                )
            target = implied
        elif target in TERMINAL_STATUSES:
            confirmed = target == FirmOfferStatus.SPEAKER_CONFIRMED

        now = self._clock()
        previous: dict[str, FirmOfferStatus] = {}

        def mutate(offer: FirmOfferRead) -> dict[str, Any]:
            previous["status"] = offer.status
            changes: dict[str, Any] = {}

            for name in SECTION_MODELS:
                if name in provided:
                    section = getattr(update, name)
                    changes[name] = section.model_dump(mode="json") if section else None

            if target is not None:
                validate_offer_transition(offer.status, target)
                changes["status"] = target
                if target in STATUS_STAMPS:
                    changes[STATUS_STAMPS[target]] = now
                elif target != offer.status:
                    changes["speaker_confirmed"] = confirmed
                    changes["speaker_response_at"] = now

            if "speaker_notes" in provided:
                changes["speaker_notes"] = update.speaker_notes
            return changes

        offer = await self._offers.update_locked(offer_id, mutate)
        if offer.status != previous["status"]:
            record_transition("firm_offer", previous["status"].value, offer.status.value)
            logger.info(
                "firm_offer_engine.status_changed",
                offer_id=offer_id,
                from_status=previous["status"].value,
                to_status=offer.status.value,
            )
        if (
            offer.status == FirmOfferStatus.SPEAKER_CONFIRMED
            and previous["status"] != FirmOfferStatus.SPEAKER_CONFIRMED
        ):
            await self._materialize(offer)
        return offer

    async def get(self, offer_id: str) -> FirmOfferDetail:
        """Offer joined with its proposal and the deal's client summary."""
        offer = await self._offers.get_offer(offer_id)
        if offer is None:
            raise NotFoundError("FirmOffer", offer_id)

        detail = FirmOfferDetail(**offer.model_dump())
        if offer.proposal_id:
            proposal = await self._deals.get_proposal(offer.proposal_id)
            if proposal is not None:
                detail.proposal = ProposalSummary(
                    proposal_number=proposal.proposal_number,
                    status=proposal.status.value,
                    speaker_name=proposal.speaker_name,
                    event_title=proposal.event_title,
                    event_date=proposal.event_date,
                    event_location=proposal.event_location,
                    total_investment=proposal.total_investment,
                )
        if offer.deal_id:
            deal = await self._deals.get_deal(offer.deal_id)
            if deal is not None:
                detail.client = ClientSummary(
                    client_name=deal.client_name,
                    client_email=deal.client_email,
                    company=deal.company,
                )
        return detail

    async def list(self, status: FirmOfferStatus | None = None) -> list[FirmOfferRead]:
        return await self._offers.list_offers(status)

    async def send_to_speaker(
        self,
        offer_id: str,
        speaker_email: str | None = None,
        speaker_name: str | None = None,
    ) -> SpeakerDispatch:
        """Forward a submitted offer to the speaker with a fresh token.

        Raises:
            NotFoundError: Offer does not exist.
            InvalidStateError: Offer is not submitted (or already sent).
        """
        now = self._clock()
        token = issue_token(TokenRole.SPEAKER)
        previous: dict[str, FirmOfferStatus] = {}

        def mutate(offer: FirmOfferRead) -> dict[str, Any]:
            if offer.status not in (FirmOfferStatus.SUBMITTED, FirmOfferStatus.SENT_TO_SPEAKER):
                raise InvalidStateError(
                    f"Only submitted offers can be sent to the speaker (offer is {offer.status.value})"
                )
            previous["status"] = offer.status
            return {
                "status": FirmOfferStatus.SENT_TO_SPEAKER,
                "sent_to_speaker_at": now,
                "speaker_access_token_hash": token.token_hash,
            }

        offer = await self._offers.update_locked(offer_id, mutate)
        if previous["status"] != offer.status:
            record_transition("firm_offer", previous["status"].value, offer.status.value)
        review_url = self.speaker_review_url(token.token)
        logger.info("firm_offer_engine.sent_to_speaker", offer_id=offer_id)

        notifications: list[NotificationResult] = []
        if self._dispatcher is not None:
            program = offer.speaker_program
            overview = offer.event_overview
            financial = offer.financial_details
            notifications = await self._dispatcher.firm_offer_to_speaker(
                speaker_email=speaker_email,
                speaker_name=speaker_name or (program.speaker_name if program else None),
                event_name=overview.event_name if overview else None,
                event_date=overview.event_date if overview else None,
                speaker_fee=financial.speaker_fee if financial else None,
                review_url=review_url,
            )
        return SpeakerDispatch(
            offer=offer, speaker_review_url=review_url, notifications=notifications
        )

    # ── Token Holders ──────────────────────────────────────────────────────

    async def get_by_token(self, token: str) -> FirmOfferPublicView:
        """Load the offer for its link holder.

        The first fetch once the offer has reached the speaker stamps
        ``speaker_viewed_at``.

        Raises:
            AuthError: Unknown token.
        """
        token_hash = self._token_hash(token)
        now = self._clock()

        def mutate(offer: FirmOfferRead) -> dict[str, Any]:
            reached_speaker = STATUS_ORDER[offer.status] >= STATUS_ORDER[
                FirmOfferStatus.SENT_TO_SPEAKER
            ]
            if reached_speaker and offer.speaker_viewed_at is None:
                return {"speaker_viewed_at": now}
            return {}

        offer = await self._offers.update_locked_by_token(token_hash, mutate)
        if offer is None:
            raise AuthError("This firm offer link is invalid")
        return _public_view(offer)

    async def submit_intake(
        self, token: str, intake: Mapping[str, Any], submit: bool = False
    ) -> IntakeOutcome:
        """Save (and optionally submit) the client's intake form.

        Edits are accepted only while the offer is a draft; afterwards the
        call returns an ``offer_already_submitted`` outcome and changes
        nothing, which makes repeated submission idempotent.

        Raises:
            AuthError: Unknown token.
            ValidationError: Bad values, or required fields missing on submit.
        """
        token_hash = self._token_hash(token)
        now = self._clock()
        outcome: dict[str, str] = {}

        def mutate(offer: FirmOfferRead) -> dict[str, Any]:
            if offer.status != FirmOfferStatus.DRAFT:
                outcome["status"] = "offer_already_submitted"
                return {}

            sections = build_sections({**flatten(offer), **intake})
            changes = _section_dump(sections)
            if submit:
                missing = missing_required_fields(sections)
                if missing:
                    raise ValidationError(
                        f"Missing required fields: {', '.join(missing)}", fields=missing
                    )
                changes["status"] = FirmOfferStatus.SUBMITTED
                changes["submitted_at"] = now
                outcome["status"] = "submitted"
            else:
                outcome["status"] = "saved"
            return changes

        offer = await self._offers.update_locked_by_token(token_hash, mutate)
        if offer is None:
            raise AuthError("This firm offer link is invalid")

        status = outcome["status"]
        if status == "offer_already_submitted":
            return IntakeOutcome(
                status=status,
                message="This firm offer has already been submitted. Thank you!",
                offer=_public_view(offer),
            )
        if status == "saved":
            return IntakeOutcome(
                status=status, message="Your progress has been saved.", offer=_public_view(offer)
            )

        record_transition("firm_offer", FirmOfferStatus.DRAFT.value, offer.status.value)
        logger.info("firm_offer_engine.submitted", offer_id=offer.id)

        notifications: list[NotificationResult] = []
        if self._dispatcher is not None:
            overview = offer.event_overview
            notifications = await self._dispatcher.firm_offer_submitted(
                offer_id=offer.id,
                company_name=overview.company_name if overview else None,
                event_name=overview.event_name if overview else None,
                event_date=overview.event_date if overview else None,
            )
        return IntakeOutcome(
            status=status,
            message="Thank you! Your firm offer has been submitted.",
            offer=_public_view(offer),
            notifications=notifications,
        )

    async def speaker_response(
        self, token: str, speaker_confirmed: bool, speaker_notes: str | None = None
    ) -> SpeakerResponseOutcome:
        """Record the speaker's confirmation or decline.

        Only ``speaker_confirmed`` and ``speaker_notes`` are writable through
        the speaker link.

        Raises:
            AuthError: Unknown token.
        """
        token_hash = self._token_hash(token)
        now = self._clock()
        outcome: dict[str, str] = {}

        def mutate(offer: FirmOfferRead) -> dict[str, Any]:
            if offer.status in TERMINAL_STATUSES:
                outcome["status"] = "already_responded"
                return {}
            if offer.status != FirmOfferStatus.SENT_TO_SPEAKER:
                outcome["status"] = "not_sent_to_speaker"
                return {}
            target = (
                FirmOfferStatus.SPEAKER_CONFIRMED if speaker_confirmed else FirmOfferStatus.DECLINED
            )
            outcome["status"] = target.value
            return {
                "status": target,
                "speaker_confirmed": speaker_confirmed,
                "speaker_notes": speaker_notes,
                "speaker_response_at": now,
            }

        offer = await self._offers.update_locked_by_token(token_hash, mutate)
        if offer is None:
            raise AuthError("This speaker review link is invalid")

        status = outcome["status"]
        if status == "already_responded":
            return SpeakerResponseOutcome(
                status=status,
                message="You have already responded to this offer.",
                offer=_public_view(offer),
            )
        if status == "not_sent_to_speaker":
            return SpeakerResponseOutcome(
                status=status,
                message="This offer is not ready for speaker review yet.",
                offer=_public_view(offer),
            )

        record_transition("firm_offer", FirmOfferStatus.SENT_TO_SPEAKER.value, status)
        logger.info(
            "firm_offer_engine.speaker_responded",
            offer_id=offer.id,
            confirmed=speaker_confirmed,
        )

        if speaker_confirmed:
            await self._materialize(offer)

        notifications: list[NotificationResult] = []
        if self._dispatcher is not None:
            program = offer.speaker_program
            overview = offer.event_overview
            notifications = await self._dispatcher.firm_offer_speaker_response(
                speaker_name=program.speaker_name if program else None,
                event_name=overview.event_name if overview else None,
                confirmed=speaker_confirmed,
                speaker_notes=speaker_notes,
            )
        return SpeakerResponseOutcome(
            status=status,
            message=(
                "Thank you for confirming this engagement."
                if speaker_confirmed
                else "Thank you, your response has been recorded."
            ),
            offer=_public_view(offer),
            notifications=notifications,
        )

    # ── Helpers ────────────────────────────────────────────────────────────

    @staticmethod
    def _token_hash(token: str) -> str:
        if not looks_like_token(token):
            raise AuthError("This firm offer link is invalid")
        return hash_token(token)

    async def _materialize(self, offer: FirmOfferRead) -> None:
        if self._materializer is None or not offer.deal_id:
            return
        await self._materializer.materialize(
            deal_id=offer.deal_id,
            firm_offer=offer,
            source="speaker_confirmed",
        )
