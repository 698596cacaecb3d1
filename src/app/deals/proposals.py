"""ProposalService -- priced proposals and token-scoped client decisions.

A proposal is issued for a deal with a single access token. The client
accepts or rejects through that token until ``valid_until``; a decided
proposal cannot be decided again. Acceptance notifies the operator and
materializes the deal's project, both best-effort after the decision is
stored.
"""

from __future__ import annotations

import secrets
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog

from src.app.core.errors import AuthError, InvalidStateError, NotFoundError, PersistenceError
from src.app.core.monitoring import record_transition
from src.app.core.tokens import TokenRole, hash_token, issue_token, looks_like_token
from src.app.deals.schemas import (
    DealStatus,
    ProposalCreate,
    ProposalCreated,
    ProposalDecisionOutcome,
    ProposalRead,
    ProposalStatus,
)

logger = structlog.get_logger(__name__)

PROPOSAL_NUMBER_ATTEMPTS = 2


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_proposal_number(now: datetime) -> str:
    return f"PROP-{now:%Y%m%d}-{secrets.randbelow(10000):04d}"


class ProposalService:
    """Issue proposals and record the client's decision.

    Args:
        repository: DealRepository (deals and proposals).
        dispatcher: NotificationDispatcher, optional.
        materializer: ProjectMaterializer, optional.
        public_base_url: Base for the client's proposal link.
        valid_days: Default validity window for new proposals.
        clock: Returns the current UTC time.
    """

    def __init__(
        self,
        repository: Any,
        dispatcher: Any | None = None,
        materializer: Any | None = None,
        public_base_url: str = "http://localhost:3000",
        valid_days: int = 30,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._repository = repository
        self._dispatcher = dispatcher
        self._materializer = materializer
        self._base_url = public_base_url.rstrip("/")
        self._valid_days = valid_days
        self._clock = clock

    def public_url(self, token: str) -> str:
        return f"{self._base_url}/proposal/{token}"

    async def create(self, deal_id: str, data: ProposalCreate) -> ProposalCreated:
        """Issue a proposal for a deal, defaulting event details from it.

        Raises:
            NotFoundError: Deal does not exist.
            InvalidStateError: Deal is lost.
        """
        deal = await self._repository.get_deal(deal_id)
        if deal is None:
            raise NotFoundError("Deal", deal_id)
        if deal.status == DealStatus.LOST:
            raise InvalidStateError("Cannot issue a proposal for a lost deal")

        now = self._clock()
        for _ in range(PROPOSAL_NUMBER_ATTEMPTS):
            number = generate_proposal_number(now)
            if not await self._repository.proposal_number_exists(number):
                break
        else:
            raise PersistenceError(
                "Could not allocate a unique proposal number", detail=f"{now:%Y%m%d}"
            )

        token = issue_token(TokenRole.ACCESS)
        proposal = await self._repository.create_proposal(
            deal.id,
            number,
            token.token_hash,
            {
                "speaker_name": data.speaker_name or deal.speaker_requested,
                "event_title": data.event_title or deal.event_title,
                "event_date": data.event_date or deal.event_date,
                "event_location": data.event_location or deal.event_location,
                "total_investment": (
                    data.total_investment
                    if data.total_investment is not None
                    else deal.deal_value
                ),
                "status": ProposalStatus.SENT,
                "valid_until": now + timedelta(days=data.valid_days or self._valid_days),
            },
        )
        logger.info(
            "proposal_service.created",
            proposal_id=proposal.id,
            proposal_number=number,
            deal_id=deal.id,
        )
        return ProposalCreated(
            proposal=proposal, access_token=token.token, public_url=self.public_url(token.token)
        )

    async def get(self, proposal_id: str) -> ProposalRead:
        proposal = await self._repository.get_proposal(proposal_id)
        if proposal is None:
            raise NotFoundError("Proposal", proposal_id)
        return proposal

    async def list(self, deal_id: str | None = None) -> list[ProposalRead]:
        return await self._repository.list_proposals(deal_id=deal_id)

    async def _decidable(self, token: str) -> ProposalRead:
        if not looks_like_token(token):
            raise AuthError("This proposal link is invalid")
        proposal = await self._repository.get_proposal_by_token_hash(hash_token(token))
        if proposal is None:
            raise AuthError("This proposal link is invalid")

        if proposal.status == ProposalStatus.ACCEPTED:
            raise InvalidStateError("Proposal has already been accepted")
        if proposal.status == ProposalStatus.REJECTED:
            raise InvalidStateError("Proposal has been rejected")
        if proposal.valid_until is not None and proposal.valid_until < self._clock():
            raise InvalidStateError("Proposal has expired")
        return proposal

    async def accept(
        self, token: str, accepted_by: str | None = None, note: str | None = None
    ) -> ProposalDecisionOutcome:
        """Accept through the client's token.

        Raises:
            AuthError: Unknown token.
            InvalidStateError: Already decided or past valid_until.
        """
        proposal = await self._decidable(token)
        proposal = await self._repository.update_proposal(
            proposal.id,
            {
                "status": ProposalStatus.ACCEPTED,
                "accepted_at": self._clock(),
                "accepted_by": accepted_by,
            },
        )
        record_transition("proposal", ProposalStatus.SENT.value, ProposalStatus.ACCEPTED.value)
        logger.info("proposal_service.accepted", proposal_id=proposal.id, deal_id=proposal.deal_id)

        project_id = None
        if self._materializer is not None:
            project = await self._materializer.materialize(
                deal_id=proposal.deal_id, proposal=proposal, source="proposal_accepted"
            )
            project_id = project.id if project else None

        return ProposalDecisionOutcome(
            status="accepted",
            message="Proposal accepted successfully",
            proposal=proposal,
            project_id=project_id,
            notifications=await self._notify(proposal, True, accepted_by, note),
        )

    async def reject(
        self, token: str, rejected_by: str | None = None, reason: str | None = None
    ) -> ProposalDecisionOutcome:
        """Reject through the client's token.

        Raises:
            AuthError: Unknown token.
            InvalidStateError: Already decided or past valid_until.
        """
        proposal = await self._decidable(token)
        proposal = await self._repository.update_proposal(
            proposal.id,
            {
                "status": ProposalStatus.REJECTED,
                "rejected_at": self._clock(),
                "rejection_reason": reason,
            },
        )
        record_transition("proposal", ProposalStatus.SENT.value, ProposalStatus.REJECTED.value)
        logger.info("proposal_service.rejected", proposal_id=proposal.id, deal_id=proposal.deal_id)

        return ProposalDecisionOutcome(
            status="rejected",
            message="Proposal declined. Thank you for letting us know.",
            proposal=proposal,
            notifications=await self._notify(proposal, False, rejected_by, reason),
        )

    async def _notify(
        self, proposal: ProposalRead, accepted: bool, decided_by: str | None, note: str | None
    ) -> list:
        if self._dispatcher is None:
            return []
        return await self._dispatcher.proposal_decision(
            proposal_number=proposal.proposal_number,
            event_title=proposal.event_title,
            accepted=accepted,
            decided_by=decided_by,
            note=note,
        )
