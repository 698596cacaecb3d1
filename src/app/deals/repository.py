"""Deal pipeline repository -- async CRUD for deals and proposals.

Provides DealRepository with the session_factory callable pattern used by
every lifecycle repository. Handles serialization between Pydantic schemas
and SQLAlchemy models. Status rules live in src/app/deals/pipeline.py;
this layer only persists what it is given.

All SQLAlchemy failures surface as PersistenceError via persistence_guard.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.app.core.database import parse_uuid, persistence_guard
from src.app.core.errors import NotFoundError
from src.app.deals.models import DealModel, ProposalModel
from src.app.deals.schemas import (
    DealCreate,
    DealFilter,
    DealPriority,
    DealRead,
    DealStatus,
    ProposalRead,
    ProposalStatus,
)

logger = structlog.get_logger(__name__)


# ── Serialization Helpers ───────────────────────────────────────────────────


def _model_to_deal(model: DealModel) -> DealRead:
    """Convert DealModel to DealRead schema."""
    return DealRead(
        id=str(model.id),
        client_name=model.client_name,
        client_email=model.client_email,
        client_phone=model.client_phone,
        company=model.company,
        event_title=model.event_title,
        event_date=model.event_date,
        event_location=model.event_location,
        event_type=model.event_type,
        attendee_count=model.attendee_count,
        speaker_requested=model.speaker_requested,
        deal_value=model.deal_value or 0.0,
        commission_percentage=model.commission_percentage,
        commission_amount=model.commission_amount,
        budget_range=model.budget_range,
        status=DealStatus(model.status),
        priority=DealPriority(model.priority),
        source=model.source,
        notes=model.notes,
        last_contact=model.last_contact,
        external_id=model.external_id,
        firm_offer_id=str(model.firm_offer_id) if model.firm_offer_id else None,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _model_to_proposal(model: ProposalModel) -> ProposalRead:
    """Convert ProposalModel to ProposalRead schema."""
    return ProposalRead(
        id=str(model.id),
        deal_id=str(model.deal_id),
        proposal_number=model.proposal_number,
        speaker_name=model.speaker_name,
        event_title=model.event_title,
        event_date=model.event_date,
        event_location=model.event_location,
        total_investment=model.total_investment,
        status=ProposalStatus(model.status),
        valid_until=model.valid_until,
        accepted_at=model.accepted_at,
        accepted_by=model.accepted_by,
        rejected_at=model.rejected_at,
        rejection_reason=model.rejection_reason,
        created_at=model.created_at,
    )


def _to_column(key: str, value: Any) -> Any:
    if isinstance(value, (DealStatus, DealPriority, ProposalStatus)):
        return value.value
    if key in ("firm_offer_id", "deal_id") and isinstance(value, str):
        return uuid.UUID(value)
    return value


# ── Repository ──────────────────────────────────────────────────────────────


class DealRepository:
    """Async CRUD operations for deals and proposals.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    # ── Deals ───────────────────────────────────────────────────────────────

    async def create_deal(self, data: DealCreate) -> DealRead:
        """Insert a new deal.

        Args:
            data: DealCreate schema with deal details.

        Returns:
            DealRead with all persisted fields.
        """
        with persistence_guard("create_deal"):
            async for session in self._session_factory():
                values = {k: _to_column(k, v) for k, v in data.model_dump().items()}
                model = DealModel(**values)
                session.add(model)
                await session.commit()
                await session.refresh(model)
                logger.info(
                    "deal_repository.deal_created",
                    deal_id=str(model.id),
                    status=model.status,
                    source=model.source,
                )
                return _model_to_deal(model)

    async def get_deal(self, deal_id: str) -> DealRead | None:
        """Get a deal by ID.

        Returns:
            DealRead if found, None otherwise.
        """
        deal_uuid = parse_uuid(deal_id, "Deal")
        with persistence_guard("get_deal"):
            async for session in self._session_factory():
                result = await session.execute(
                    select(DealModel).where(DealModel.id == deal_uuid)
                )
                model = result.scalar_one_or_none()
                return _model_to_deal(model) if model else None

    async def list_deals(self, filters: DealFilter | None = None) -> list[DealRead]:
        """List deals, newest first, with optional filters."""
        with persistence_guard("list_deals"):
            async for session in self._session_factory():
                stmt = select(DealModel).order_by(DealModel.created_at.desc())
                if filters is not None:
                    if filters.status is not None:
                        stmt = stmt.where(DealModel.status == filters.status.value)
                    if filters.priority is not None:
                        stmt = stmt.where(DealModel.priority == filters.priority.value)
                    if filters.source is not None:
                        stmt = stmt.where(DealModel.source == filters.source)
                result = await session.execute(stmt)
                return [_model_to_deal(m) for m in result.scalars().all()]

    async def update_deal(self, deal_id: str, changes: dict[str, Any]) -> DealRead:
        """Apply column changes to a deal.

        Args:
            deal_id: Deal UUID string.
            changes: Mapping of column name to new value.

        Returns:
            Updated DealRead.

        Raises:
            NotFoundError: If the deal does not exist.
        """
        deal_uuid = parse_uuid(deal_id, "Deal")
        with persistence_guard("update_deal"):
            async for session in self._session_factory():
                result = await session.execute(
                    select(DealModel).where(DealModel.id == deal_uuid)
                )
                model = result.scalar_one_or_none()
                if model is None:
                    raise NotFoundError("Deal", deal_id)

                for key, value in changes.items():
                    setattr(model, key, _to_column(key, value))
                model.updated_at = datetime.now(timezone.utc)

                await session.commit()
                await session.refresh(model)
                return _model_to_deal(model)

    async def find_by_external_id(self, external_id: str) -> DealRead | None:
        with persistence_guard("find_by_external_id"):
            async for session in self._session_factory():
                result = await session.execute(
                    select(DealModel)
                    .where(DealModel.external_id == external_id)
                    .order_by(DealModel.created_at.asc())
                    .limit(1)
                )
                model = result.scalar_one_or_none()
                return _model_to_deal(model) if model else None

    async def find_by_email(self, email: str) -> DealRead | None:
        """Exact (case-insensitive) email match, oldest deal first."""
        with persistence_guard("find_by_email"):
            async for session in self._session_factory():
                result = await session.execute(
                    select(DealModel)
                    .where(func.lower(DealModel.client_email) == email.strip().lower())
                    .order_by(DealModel.created_at.asc())
                    .limit(1)
                )
                model = result.scalar_one_or_none()
                return _model_to_deal(model) if model else None

    async def find_by_name_and_company(
        self, client_name: str, company: str
    ) -> DealRead | None:
        """Heuristic match on client name plus company (both case-insensitive)."""
        with persistence_guard("find_by_name_and_company"):
            async for session in self._session_factory():
                result = await session.execute(
                    select(DealModel)
                    .where(
                        func.lower(DealModel.client_name) == client_name.strip().lower(),
                        func.lower(DealModel.company) == company.strip().lower(),
                    )
                    .order_by(DealModel.created_at.asc())
                    .limit(1)
                )
                model = result.scalar_one_or_none()
                return _model_to_deal(model) if model else None

    # ── Proposals ───────────────────────────────────────────────────────────

    async def proposal_number_exists(self, proposal_number: str) -> bool:
        with persistence_guard("proposal_number_exists"):
            async for session in self._session_factory():
                result = await session.execute(
                    select(ProposalModel.id).where(
                        ProposalModel.proposal_number == proposal_number
                    )
                )
                return result.first() is not None

    async def create_proposal(
        self,
        deal_id: str,
        proposal_number: str,
        access_token_hash: str,
        values: dict[str, Any],
    ) -> ProposalRead:
        """Insert a proposal for a deal.

        Args:
            deal_id: Deal UUID string.
            proposal_number: Human-readable PROP-YYYYMMDD-NNNN number.
            access_token_hash: SHA-256 of the client's acceptance token.
            values: Remaining proposal columns (speaker, event, pricing, validity).

        Returns:
            ProposalRead with all persisted fields.
        """
        with persistence_guard("create_proposal"):
            async for session in self._session_factory():
                model = ProposalModel(
                    deal_id=parse_uuid(deal_id, "Deal"),
                    proposal_number=proposal_number,
                    access_token_hash=access_token_hash,
                    **{k: _to_column(k, v) for k, v in values.items()},
                )
                session.add(model)
                await session.commit()
                await session.refresh(model)
                return _model_to_proposal(model)

    async def get_proposal(self, proposal_id: str) -> ProposalRead | None:
        proposal_uuid = parse_uuid(proposal_id, "Proposal")
        with persistence_guard("get_proposal"):
            async for session in self._session_factory():
                result = await session.execute(
                    select(ProposalModel).where(ProposalModel.id == proposal_uuid)
                )
                model = result.scalar_one_or_none()
                return _model_to_proposal(model) if model else None

    async def get_proposal_by_token_hash(self, token_hash: str) -> ProposalRead | None:
        with persistence_guard("get_proposal_by_token_hash"):
            async for session in self._session_factory():
                result = await session.execute(
                    select(ProposalModel).where(
                        ProposalModel.access_token_hash == token_hash
                    )
                )
                model = result.scalar_one_or_none()
                return _model_to_proposal(model) if model else None

    async def list_proposals(self, deal_id: str | None = None) -> list[ProposalRead]:
        """List proposals, newest first, optionally for a single deal."""
        with persistence_guard("list_proposals"):
            async for session in self._session_factory():
                stmt = select(ProposalModel).order_by(ProposalModel.created_at.desc())
                if deal_id is not None:
                    stmt = stmt.where(ProposalModel.deal_id == parse_uuid(deal_id, "Deal"))
                result = await session.execute(stmt)
                return [_model_to_proposal(m) for m in result.scalars().all()]

    async def get_latest_proposal_for_deal(self, deal_id: str) -> ProposalRead | None:
        proposals = await self.list_proposals(deal_id=deal_id)
        return proposals[0] if proposals else None

    async def update_proposal(
        self, proposal_id: str, changes: dict[str, Any]
    ) -> ProposalRead:
        """Apply column changes to a proposal.

        Raises:
            NotFoundError: If the proposal does not exist.
        """
        proposal_uuid = parse_uuid(proposal_id, "Proposal")
        with persistence_guard("update_proposal"):
            async for session in self._session_factory():
                result = await session.execute(
                    select(ProposalModel).where(ProposalModel.id == proposal_uuid)
                )
                model = result.scalar_one_or_none()
                if model is None:
                    raise NotFoundError("Proposal", proposal_id)
                for key, value in changes.items():
                    setattr(model, key, _to_column(key, value))
                await session.commit()
                await session.refresh(model)
                return _model_to_proposal(model)
