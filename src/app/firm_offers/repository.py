"""Firm offer repository -- async persistence for firm offers.

Sections are stored as JSON dicts and rebuilt into their typed models on
read. State-changing operations use the same locked read-mutate-commit
shape as the contract repository.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import structlog
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.app.core.database import parse_uuid, persistence_guard
from src.app.core.errors import NotFoundError
from src.app.firm_offers.models import FirmOfferModel
from src.app.firm_offers.schemas import SECTION_MODELS, FirmOfferRead, FirmOfferStatus

logger = structlog.get_logger(__name__)

MutateFn = Callable[[FirmOfferRead], dict[str, Any]]


def _model_to_offer(model: FirmOfferModel) -> FirmOfferRead:
    sections = {
        name: section.model_validate(getattr(model, name))
        for name, section in SECTION_MODELS.items()
        if getattr(model, name) is not None
    }
    return FirmOfferRead(
        id=str(model.id),
        proposal_id=str(model.proposal_id) if model.proposal_id else None,
        deal_id=str(model.deal_id) if model.deal_id else None,
        status=FirmOfferStatus(model.status),
        submitted_at=model.submitted_at,
        sent_to_speaker_at=model.sent_to_speaker_at,
        speaker_viewed_at=model.speaker_viewed_at,
        speaker_response_at=model.speaker_response_at,
        speaker_confirmed=model.speaker_confirmed,
        speaker_notes=model.speaker_notes,
        created_at=model.created_at,
        updated_at=model.updated_at,
        **sections,
    )


def _apply(model: FirmOfferModel, changes: dict[str, Any]) -> None:
    for key, value in changes.items():
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, BaseModel):
            value = value.model_dump(mode="json")
        if key in ("deal_id", "proposal_id") and isinstance(value, str):
            value = parse_uuid(value, "Deal" if key == "deal_id" else "Proposal")
        setattr(model, key, value)
    model.updated_at = datetime.now(timezone.utc)


class FirmOfferRepository:
    """Async CRUD and locked updates for firm offers.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    async def create_offer(self, values: dict[str, Any]) -> FirmOfferRead:
        with persistence_guard("create_firm_offer"):
            async for session in self._session_factory():
                model = FirmOfferModel()
                _apply(model, values)
                session.add(model)
                await session.commit()
                await session.refresh(model)
                return _model_to_offer(model)

    async def get_offer(self, offer_id: str) -> FirmOfferRead | None:
        offer_uuid = parse_uuid(offer_id, "FirmOffer")
        with persistence_guard("get_firm_offer"):
            async for session in self._session_factory():
                result = await session.execute(
                    select(FirmOfferModel).where(FirmOfferModel.id == offer_uuid)
                )
                model = result.scalar_one_or_none()
                return _model_to_offer(model) if model else None

    async def get_by_token_hash(self, token_hash: str) -> FirmOfferRead | None:
        with persistence_guard("get_firm_offer_by_token"):
            async for session in self._session_factory():
                result = await session.execute(
                    select(FirmOfferModel).where(
                        FirmOfferModel.speaker_access_token_hash == token_hash
                    )
                )
                model = result.scalar_one_or_none()
                return _model_to_offer(model) if model else None

    async def get_by_proposal(self, proposal_id: str) -> FirmOfferRead | None:
        proposal_uuid = parse_uuid(proposal_id, "Proposal")
        with persistence_guard("get_firm_offer_by_proposal"):
            async for session in self._session_factory():
                result = await session.execute(
                    select(FirmOfferModel)
                    .where(FirmOfferModel.proposal_id == proposal_uuid)
                    .limit(1)
                )
                model = result.scalar_one_or_none()
                return _model_to_offer(model) if model else None

    async def list_offers(
        self, status: FirmOfferStatus | None = None
    ) -> list[FirmOfferRead]:
        """List offers, newest first, optionally filtered by status."""
        with persistence_guard("list_firm_offers"):
            async for session in self._session_factory():
                stmt = select(FirmOfferModel).order_by(FirmOfferModel.created_at.desc())
                if status is not None:
                    stmt = stmt.where(FirmOfferModel.status == status.value)
                result = await session.execute(stmt)
                return [_model_to_offer(m) for m in result.scalars().all()]

    async def _locked_update(
        self, session: AsyncSession, model: FirmOfferModel, mutate: MutateFn
    ) -> FirmOfferRead:
        try:
            changes = mutate(_model_to_offer(model))
        except Exception:
            await session.rollback()
            raise
        if changes:
            _apply(model, changes)
            await session.commit()
            await session.refresh(model)
        else:
            await session.rollback()
        return _model_to_offer(model)

    async def update_locked(self, offer_id: str, mutate: MutateFn) -> FirmOfferRead:
        """Lock the offer row, apply ``mutate``'s changes, commit.

        Raises:
            NotFoundError: If the offer does not exist.
        """
        offer_uuid = parse_uuid(offer_id, "FirmOffer")
        with persistence_guard("update_firm_offer"):
            async for session in self._session_factory():
                result = await session.execute(
                    select(FirmOfferModel)
                    .where(FirmOfferModel.id == offer_uuid)
                    .with_for_update()
                )
                model = result.scalar_one_or_none()
                if model is None:
                    raise NotFoundError("FirmOffer", offer_id)
                return await self._locked_update(session, model, mutate)

    async def update_locked_by_token(
        self, token_hash: str, mutate: MutateFn
    ) -> FirmOfferRead | None:
        """Same as update_locked, addressed by the speaker token hash."""
        with persistence_guard("update_firm_offer_by_token"):
            async for session in self._session_factory():
                result = await session.execute(
                    select(FirmOfferModel)
                    .where(FirmOfferModel.speaker_access_token_hash == token_hash)
                    .with_for_update()
                )
                model = result.scalar_one_or_none()
                if model is None:
                    return None
                return await self._locked_update(session, model, mutate)
