"""Project repository -- async persistence with per-deal idempotent insert."""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Callable
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from src.app.core.database import parse_uuid, persistence_guard
from src.app.core.errors import NotFoundError
from src.app.projects.models import ProjectModel
from src.app.projects.schemas import ProjectRead

logger = structlog.get_logger(__name__)

_UUID_COLUMNS = ("deal_id", "contract_id", "firm_offer_id", "proposal_id")


def _model_to_project(model: ProjectModel) -> ProjectRead:
    return ProjectRead(
        id=str(model.id),
        deal_id=str(model.deal_id),
        contract_id=str(model.contract_id) if model.contract_id else None,
        firm_offer_id=str(model.firm_offer_id) if model.firm_offer_id else None,
        proposal_id=str(model.proposal_id) if model.proposal_id else None,
        project_name=model.project_name,
        client_name=model.client_name,
        client_email=model.client_email,
        company=model.company,
        event_date=model.event_date,
        event_location=model.event_location,
        speaker_fee=model.speaker_fee,
        budget=model.budget,
        status=model.status,
        source=model.source,
        created_at=model.created_at,
    )


def _to_columns(values: dict[str, Any]) -> dict[str, Any]:
    columns = dict(values)
    for key in _UUID_COLUMNS:
        if isinstance(columns.get(key), str):
            columns[key] = uuid.UUID(columns[key])
    return columns


class ProjectRepository:
    """Async persistence for projects.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    async def get_or_create(
        self, deal_id: str, values: dict[str, Any]
    ) -> tuple[ProjectRead, bool]:
        """Insert the deal's project unless one exists.

        Uses INSERT ... ON CONFLICT (deal_id) DO NOTHING so two concurrent
        triggers for the same deal end with a single row.

        Returns:
            (project, created) where ``created`` is False if it already existed.
        """
        deal_uuid = parse_uuid(deal_id, "Deal")
        with persistence_guard("get_or_create_project"):
            async for session in self._session_factory():
                stmt = (
                    insert(ProjectModel)
                    .values(**_to_columns({**values, "deal_id": deal_uuid}))
                    .on_conflict_do_nothing(index_elements=["deal_id"])
                    .returning(ProjectModel.id)
                )
                inserted = (await session.execute(stmt)).scalar_one_or_none()
                await session.commit()

                result = await session.execute(
                    select(ProjectModel).where(ProjectModel.deal_id == deal_uuid)
                )
                return _model_to_project(result.scalar_one()), inserted is not None

    async def link(self, project_id: str, links: dict[str, Any]) -> ProjectRead:
        """Fill contract/firm offer/proposal links that are still empty.

        Raises:
            NotFoundError: If the project does not exist.
        """
        project_uuid = parse_uuid(project_id, "Project")
        with persistence_guard("link_project"):
            async for session in self._session_factory():
                result = await session.execute(
                    select(ProjectModel).where(ProjectModel.id == project_uuid)
                )
                model = result.scalar_one_or_none()
                if model is None:
                    raise NotFoundError("Project", project_id)
                for key, value in _to_columns(links).items():
                    if value is not None and getattr(model, key) is None:
                        setattr(model, key, value)
                await session.commit()
                await session.refresh(model)
                return _model_to_project(model)

    async def get_project(self, project_id: str) -> ProjectRead | None:
        project_uuid = parse_uuid(project_id, "Project")
        with persistence_guard("get_project"):
            async for session in self._session_factory():
                result = await session.execute(
                    select(ProjectModel).where(ProjectModel.id == project_uuid)
                )
                model = result.scalar_one_or_none()
                return _model_to_project(model) if model else None

    async def get_by_deal(self, deal_id: str) -> ProjectRead | None:
        deal_uuid = parse_uuid(deal_id, "Deal")
        with persistence_guard("get_project_by_deal"):
            async for session in self._session_factory():
                result = await session.execute(
                    select(ProjectModel).where(ProjectModel.deal_id == deal_uuid)
                )
                model = result.scalar_one_or_none()
                return _model_to_project(model) if model else None

    async def list_projects(self, status: str | None = None) -> list[ProjectRead]:
        """List projects, newest first."""
        with persistence_guard("list_projects"):
            async for session in self._session_factory():
                stmt = select(ProjectModel).order_by(ProjectModel.created_at.desc())
                if status is not None:
                    stmt = stmt.where(ProjectModel.status == status)
                result = await session.execute(stmt)
                return [_model_to_project(m) for m in result.scalars().all()]
