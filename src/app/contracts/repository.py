"""Contract repository -- async persistence with row-locked updates.

Status changes and signatures go through update_locked /
update_locked_by_token: the row is read with SELECT ... FOR UPDATE, the
caller's mutate callback decides the changes against that locked snapshot,
and the result is committed in the same transaction. Two parties signing
at the same moment therefore serialize on the row and the second one sees
the first one's timestamp.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import structlog
from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.app.contracts.models import ContractModel
from src.app.contracts.schemas import ContractRead, ContractStats, ContractStatus
from src.app.core.database import parse_uuid, persistence_guard
from src.app.core.errors import NotFoundError
from src.app.core.tokens import TokenRole

logger = structlog.get_logger(__name__)

MutateFn = Callable[[ContractRead], dict[str, Any]]
TokenMutateFn = Callable[[ContractRead, TokenRole], dict[str, Any]]


# ── Serialization Helpers ───────────────────────────────────────────────────


def _model_to_contract(model: ContractModel) -> ContractRead:
    """Convert ContractModel to ContractRead (token hashes are dropped)."""
    return ContractRead(
        id=str(model.id),
        deal_id=str(model.deal_id),
        contract_number=model.contract_number,
        title=model.title,
        status=ContractStatus(model.status),
        speaker_fee=model.speaker_fee,
        total_amount=model.total_amount,
        payment_terms=model.payment_terms,
        additional_terms=model.additional_terms,
        event_title=model.event_title,
        event_date=model.event_date,
        event_location=model.event_location,
        event_type=model.event_type,
        client_name=model.client_name,
        client_email=model.client_email,
        client_company=model.client_company,
        client_signer_name=model.client_signer_name,
        client_signer_email=model.client_signer_email,
        speaker_name=model.speaker_name,
        speaker_email=model.speaker_email,
        content=model.content,
        client_signed_at=model.client_signed_at,
        client_signer_ip=model.client_signer_ip,
        speaker_signed_at=model.speaker_signed_at,
        speaker_signer_name=model.speaker_signer_name,
        amendments=list(model.amendments or []),
        expires_at=model.expires_at,
        sent_at=model.sent_at,
        created_by=model.created_by,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _token_role(model: ContractModel, token_hash: str) -> TokenRole:
    if model.client_signing_token_hash == token_hash:
        return TokenRole.CLIENT
    if model.speaker_signing_token_hash == token_hash:
        return TokenRole.SPEAKER
    return TokenRole.ACCESS


def _apply(model: ContractModel, changes: dict[str, Any]) -> None:
    for key, value in changes.items():
        if isinstance(value, Enum):
            value = value.value
        if key == "deal_id" and isinstance(value, str):
            value = parse_uuid(value, "Deal")
        setattr(model, key, value)
    model.updated_at = datetime.now(timezone.utc)


# ── Repository ──────────────────────────────────────────────────────────────


class ContractRepository:
    """Async CRUD and locked updates for contracts.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    async def contract_number_exists(self, contract_number: str) -> bool:
        with persistence_guard("contract_number_exists"):
            async for session in self._session_factory():
                result = await session.execute(
                    select(ContractModel.id).where(
                        ContractModel.contract_number == contract_number
                    )
                )
                return result.first() is not None

    async def create_contract(self, values: dict[str, Any]) -> ContractRead:
        """Insert a contract.

        Args:
            values: Column values, including the three token hashes.

        Returns:
            ContractRead with all persisted fields.
        """
        with persistence_guard("create_contract"):
            async for session in self._session_factory():
                model = ContractModel()
                _apply(model, values)
                session.add(model)
                await session.commit()
                await session.refresh(model)
                return _model_to_contract(model)

    async def get_contract(self, contract_id: str) -> ContractRead | None:
        contract_uuid = parse_uuid(contract_id, "Contract")
        with persistence_guard("get_contract"):
            async for session in self._session_factory():
                result = await session.execute(
                    select(ContractModel).where(ContractModel.id == contract_uuid)
                )
                model = result.scalar_one_or_none()
                return _model_to_contract(model) if model else None

    async def list_contracts(
        self, status: ContractStatus | None = None
    ) -> list[ContractRead]:
        """List contracts, newest first, optionally filtered by status."""
        with persistence_guard("list_contracts"):
            async for session in self._session_factory():
                stmt = select(ContractModel).order_by(ContractModel.created_at.desc())
                if status is not None:
                    stmt = stmt.where(ContractModel.status == status.value)
                result = await session.execute(stmt)
                return [_model_to_contract(m) for m in result.scalars().all()]

    async def resolve_token(
        self, token_hash: str
    ) -> tuple[ContractRead, TokenRole] | None:
        """Resolve any of a contract's token hashes in one query."""
        with persistence_guard("resolve_token"):
            async for session in self._session_factory():
                result = await session.execute(
                    select(ContractModel).where(
                        or_(
                            ContractModel.access_token_hash == token_hash,
                            ContractModel.client_signing_token_hash == token_hash,
                            ContractModel.speaker_signing_token_hash == token_hash,
                        )
                    )
                )
                model = result.scalar_one_or_none()
                if model is None:
                    return None
                return _model_to_contract(model), _token_role(model, token_hash)

    async def update_locked(self, contract_id: str, mutate: MutateFn) -> ContractRead:
        """Lock the row, let ``mutate`` compute changes, and commit them.

        Args:
            contract_id: Contract UUID string.
            mutate: Receives the locked snapshot; returns column changes or
                raises to abort without writing.

        Raises:
            NotFoundError: If the contract does not exist.
        """
        contract_uuid = parse_uuid(contract_id, "Contract")
        with persistence_guard("update_locked"):
            async for session in self._session_factory():
                result = await session.execute(
                    select(ContractModel)
                    .where(ContractModel.id == contract_uuid)
                    .with_for_update()
                )
                model = result.scalar_one_or_none()
                if model is None:
                    raise NotFoundError("Contract", contract_id)

                try:
                    changes = mutate(_model_to_contract(model))
                except Exception:
                    await session.rollback()
                    raise
                if changes:
                    _apply(model, changes)
                    await session.commit()
                    await session.refresh(model)
                else:
                    await session.rollback()
                return _model_to_contract(model)

    async def update_locked_by_token(
        self, token_hash: str, mutate: TokenMutateFn
    ) -> tuple[ContractRead, TokenRole] | None:
        """Same as update_locked, addressed by a token hash.

        Returns:
            The contract after the update and the role the token is bound
            to, or None if no contract carries this token.
        """
        with persistence_guard("update_locked_by_token"):
            async for session in self._session_factory():
                result = await session.execute(
                    select(ContractModel)
                    .where(
                        or_(
                            ContractModel.access_token_hash == token_hash,
                            ContractModel.client_signing_token_hash == token_hash,
                            ContractModel.speaker_signing_token_hash == token_hash,
                        )
                    )
                    .with_for_update()
                )
                model = result.scalar_one_or_none()
                if model is None:
                    return None

                role = _token_role(model, token_hash)
                try:
                    changes = mutate(_model_to_contract(model), role)
                except Exception:
                    await session.rollback()
                    raise
                if changes:
                    _apply(model, changes)
                    await session.commit()
                    await session.refresh(model)
                else:
                    await session.rollback()
                return _model_to_contract(model), role

    async def delete_contract(self, contract_id: str) -> bool:
        """Hard delete. Returns False if nothing was deleted."""
        contract_uuid = parse_uuid(contract_id, "Contract")
        with persistence_guard("delete_contract"):
            async for session in self._session_factory():
                result = await session.execute(
                    delete(ContractModel).where(ContractModel.id == contract_uuid)
                )
                await session.commit()
                return result.rowcount > 0

    async def stats(self) -> ContractStats:
        """Counts per status plus the summed value of all contracts."""
        with persistence_guard("contract_stats"):
            async for session in self._session_factory():
                result = await session.execute(
                    select(
                        ContractModel.status,
                        func.count(ContractModel.id),
                        func.coalesce(func.sum(ContractModel.total_amount), 0.0),
                    ).group_by(ContractModel.status)
                )
                stats = ContractStats()
                for status, count, value in result.all():
                    stats.total += count
                    stats.total_value += float(value or 0.0)
                    if status in ContractStats.model_fields:
                        setattr(stats, status, count)
                return stats
