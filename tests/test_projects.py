"""ProjectMaterializer, projects API and health endpoint tests."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from fastapi import APIRouter, FastAPI

from src.app.api.deps import get_current_admin
from src.app.api.errors import register_exception_handlers
from src.app.api.v1 import health, projects
from src.app.contracts.schemas import ContractRead
from src.app.deals.schemas import ProposalRead
from src.app.projects.materializer import ProjectMaterializer, project_values
from src.app.schemas.auth import AdminPrincipal
from tests.conftest import ADMIN_EMAIL


def _contract(deal_id: str, **overrides) -> ContractRead:
    values = {
        "id": "7f0c0000-0000-4000-8000-000000000001",
        "deal_id": deal_id,
        "contract_number": "CTR-20260302-0001",
        "title": "Speaking Agreement - Northwind Leadership Summit",
        "speaker_fee": 30000.0,
        "total_amount": 30000.0,
        "payment_terms": "50% deposit",
        "event_title": "Northwind Leadership Summit",
        "event_location": "Moscone West",
        "client_name": "Dana Whitfield",
        "content": "...",
        "expires_at": "2026-06-01T00:00:00Z",
    }
    values.update(overrides)
    return ContractRead.model_validate(values)


def _proposal(deal_id: str) -> ProposalRead:
    return ProposalRead(
        id="7f0c0000-0000-4000-8000-000000000002",
        deal_id=deal_id,
        proposal_number="PROP-20260302-0001",
        total_investment=27500.0,
    )


class TestProjectValues:
    async def test_contract_is_most_binding(self, won_deal):
        values = project_values(won_deal, contract=_contract(won_deal.id), proposal=_proposal(won_deal.id))
        assert values["speaker_fee"] == 30000.0
        assert values["event_location"] == "Moscone West"
        assert values["project_name"] == "Northwind Leadership Summit - Northwind Events"
        assert values["budget"] == 25000.0

    async def test_proposal_fallback(self, won_deal):
        values = project_values(won_deal, proposal=_proposal(won_deal.id))
        assert values["speaker_fee"] == 27500.0
        assert values["event_location"] == "San Francisco, CA"
        assert values["contract_id"] is None


class TestMaterializer:
    async def test_first_trigger_creates_later_ones_link(self, materializer, won_deal, project_repo):
        first = await materializer.materialize(
            won_deal.id, proposal=_proposal(won_deal.id), source="proposal_accepted"
        )
        second = await materializer.materialize(
            won_deal.id, contract=_contract(won_deal.id), source="contract_executed"
        )

        assert first.id == second.id
        assert second.source == "proposal_accepted"
        assert second.proposal_id == "7f0c0000-0000-4000-8000-000000000002"
        assert second.contract_id == "7f0c0000-0000-4000-8000-000000000001"
        assert len(await project_repo.list_projects()) == 1

    async def test_concurrent_triggers_make_one_project(self, materializer, won_deal, project_repo):
        await asyncio.gather(
            materializer.materialize(won_deal.id, contract=_contract(won_deal.id)),
            materializer.materialize(won_deal.id, proposal=_proposal(won_deal.id)),
        )
        assert len(await project_repo.list_projects()) == 1

    async def test_missing_deal(self, materializer):
        assert await materializer.materialize("ffff0000-0000-4000-8000-000000000000") is None

    async def test_repository_failure_is_swallowed_into_none(self, deal_repo, won_deal):
        broken = MagicMock()
        broken.get_or_create = AsyncMock(side_effect=RuntimeError("connection reset"))
        materializer = ProjectMaterializer(broken, deal_repo)
        assert await materializer.materialize(won_deal.id) is None


def _app(**state) -> FastAPI:
    app = FastAPI()
    api = APIRouter(prefix="/api/v1")
    api.include_router(health.router)
    api.include_router(projects.router)
    app.include_router(api)
    register_exception_handlers(app)
    for key, value in state.items():
        setattr(app.state, key, value)
    app.dependency_overrides[get_current_admin] = lambda: AdminPrincipal(
        email=ADMIN_EMAIL, auth_method="api_key"
    )
    return app


def _client(app: FastAPI) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


class TestProjectsApi:
    async def test_list_and_get(self, materializer, project_repo, won_deal):
        project = await materializer.materialize(won_deal.id, source="speaker_confirmed")
        async with _client(_app(project_repository=project_repo)) as client:
            listed = await client.get("/api/v1/projects", params={"status": "planning"})
            fetched = await client.get(f"/api/v1/projects/{project.id}")
            missing = await client.get("/api/v1/projects/0000aaaa-0000-4000-8000-000000000000")

        assert [p["id"] for p in listed.json()] == [project.id]
        assert fetched.json()["deal_id"] == won_deal.id
        assert missing.status_code == 404

    async def test_repository_unavailable(self):
        async with _client(_app(project_repository=None)) as client:
            resp = await client.get("/api/v1/projects")
        assert resp.status_code == 503


class TestHealth:
    async def test_liveness(self):
        async with _client(_app()) as client:
            resp = await client.get("/api/v1/health")
        assert resp.json() == {"status": "ok", "environment": "development"}

    @pytest.mark.parametrize("database,status_code", [("ok", 200), ("error", 503)])
    async def test_readiness(self, database, status_code):
        checks = {"database": database, "email": "not_configured"}
        with patch.object(health, "_check_dependencies", AsyncMock(return_value=checks)):
            async with _client(_app()) as client:
                resp = await client.get("/api/v1/health/ready")
        assert resp.status_code == status_code
        assert resp.json()["checks"]["email"] == "not_configured"
