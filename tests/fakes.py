"""In-memory test doubles for the lifecycle repositories and email sender.

Each double mirrors the async method surface of its SQLAlchemy repository
so engines and routers can be exercised without a database. The locked
update methods run ``mutate`` and apply its changes with no await in
between, which gives the same serialization a row lock gives in Postgres.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel

from src.app.contracts.schemas import ContractRead, ContractStats, ContractStatus
from src.app.core.errors import NotFoundError
from src.app.core.tokens import TokenRole
from src.app.deals.schemas import DealCreate, DealFilter, DealRead, ProposalRead
from src.app.firm_offers.schemas import FirmOfferRead, FirmOfferStatus
from src.app.notifications.email import EmailDeliveryError
from src.app.notifications.models import EmailMessage, SentEmailResult
from src.app.projects.schemas import ProjectRead


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return value


# ── Deals & Proposals ────────────────────────────────────────────────────────


class InMemoryDealRepository:
    """In-memory DealRepository for testing without database."""

    def __init__(self) -> None:
        self._deals: dict[str, DealRead] = {}
        self._proposals: dict[str, ProposalRead] = {}
        self._proposal_hashes: dict[str, str] = {}

    async def create_deal(self, data: DealCreate) -> DealRead:
        now = _now()
        deal = DealRead(
            id=str(uuid.uuid4()), created_at=now, updated_at=now, **data.model_dump()
        )
        self._deals[deal.id] = deal
        return deal

    async def get_deal(self, deal_id: str) -> DealRead | None:
        return self._deals.get(str(deal_id))

    async def list_deals(self, filters: DealFilter | None = None) -> list[DealRead]:
        deals = list(reversed(self._deals.values()))
        if filters is not None:
            if filters.status is not None:
                deals = [d for d in deals if d.status == filters.status]
            if filters.priority is not None:
                deals = [d for d in deals if d.priority == filters.priority]
            if filters.source is not None:
                deals = [d for d in deals if d.source == filters.source]
        return deals

    async def update_deal(self, deal_id: str, changes: dict[str, Any]) -> DealRead:
        deal = self._deals.get(str(deal_id))
        if deal is None:
            raise NotFoundError("Deal", deal_id)
        updated = DealRead.model_validate(
            {**deal.model_dump(), **changes, "updated_at": _now()}
        )
        self._deals[updated.id] = updated
        return updated

    async def find_by_external_id(self, external_id: str) -> DealRead | None:
        for deal in self._deals.values():
            if deal.external_id == external_id:
                return deal
        return None

    async def find_by_email(self, email: str) -> DealRead | None:
        wanted = email.strip().lower()
        for deal in self._deals.values():
            if deal.client_email and deal.client_email.lower() == wanted:
                return deal
        return None

    async def find_by_name_and_company(
        self, client_name: str, company: str
    ) -> DealRead | None:
        for deal in self._deals.values():
            if (
                deal.client_name.lower() == client_name.strip().lower()
                and (deal.company or "").lower() == company.strip().lower()
            ):
                return deal
        return None

    async def proposal_number_exists(self, proposal_number: str) -> bool:
        return any(p.proposal_number == proposal_number for p in self._proposals.values())

    async def create_proposal(
        self,
        deal_id: str,
        proposal_number: str,
        access_token_hash: str,
        values: dict[str, Any],
    ) -> ProposalRead:
        proposal = ProposalRead.model_validate({
            "id": str(uuid.uuid4()),
            "deal_id": str(deal_id),
            "proposal_number": proposal_number,
            "created_at": _now(),
            **values,
        })
        self._proposals[proposal.id] = proposal
        self._proposal_hashes[proposal.id] = access_token_hash
        return proposal

    async def get_proposal(self, proposal_id: str) -> ProposalRead | None:
        return self._proposals.get(str(proposal_id))

    async def get_proposal_by_token_hash(self, token_hash: str) -> ProposalRead | None:
        for proposal_id, stored in self._proposal_hashes.items():
            if stored == token_hash:
                return self._proposals[proposal_id]
        return None

    async def list_proposals(self, deal_id: str | None = None) -> list[ProposalRead]:
        proposals = list(reversed(self._proposals.values()))
        if deal_id is not None:
            proposals = [p for p in proposals if p.deal_id == str(deal_id)]
        return proposals

    async def get_latest_proposal_for_deal(self, deal_id: str) -> ProposalRead | None:
        proposals = await self.list_proposals(deal_id=deal_id)
        return proposals[0] if proposals else None

    async def update_proposal(
        self, proposal_id: str, changes: dict[str, Any]
    ) -> ProposalRead:
        proposal = self._proposals.get(str(proposal_id))
        if proposal is None:
            raise NotFoundError("Proposal", proposal_id)
        updated = ProposalRead.model_validate({**proposal.model_dump(), **changes})
        self._proposals[updated.id] = updated
        return updated


# ── Contracts ────────────────────────────────────────────────────────────────

_CONTRACT_HASH_COLUMNS = {
    "access_token_hash": TokenRole.ACCESS,
    "client_signing_token_hash": TokenRole.CLIENT,
    "speaker_signing_token_hash": TokenRole.SPEAKER,
}


class InMemoryContractRepository:
    """In-memory ContractRepository. Token hashes are kept beside the rows."""

    def __init__(self) -> None:
        self._contracts: dict[str, ContractRead] = {}
        self._hashes: dict[str, dict[TokenRole, str]] = {}
        self.existing_numbers: set[str] = set()

    def _split(self, changes: dict[str, Any]) -> tuple[dict[str, Any], dict[TokenRole, str]]:
        columns: dict[str, Any] = {}
        hashes: dict[TokenRole, str] = {}
        for key, value in changes.items():
            if key in _CONTRACT_HASH_COLUMNS:
                hashes[_CONTRACT_HASH_COLUMNS[key]] = value
            else:
                columns[key] = _plain(value)
        return columns, hashes

    def _apply(self, contract: ContractRead, changes: dict[str, Any]) -> ContractRead:
        columns, hashes = self._split(changes)
        self._hashes[contract.id].update(hashes)
        updated = ContractRead.model_validate(
            {**contract.model_dump(), **columns, "updated_at": _now()}
        )
        self._contracts[contract.id] = updated
        return updated

    def _find_by_hash(self, token_hash: str) -> tuple[str, TokenRole] | None:
        for contract_id, hashes in self._hashes.items():
            for role, stored in hashes.items():
                if stored == token_hash:
                    return contract_id, role
        return None

    async def contract_number_exists(self, contract_number: str) -> bool:
        if contract_number in self.existing_numbers:
            return True
        return any(c.contract_number == contract_number for c in self._contracts.values())

    async def create_contract(self, values: dict[str, Any]) -> ContractRead:
        columns, hashes = self._split(values)
        contract = ContractRead.model_validate({"id": str(uuid.uuid4()), **columns})
        self._contracts[contract.id] = contract
        self._hashes[contract.id] = hashes
        return contract

    async def get_contract(self, contract_id: str) -> ContractRead | None:
        return self._contracts.get(str(contract_id))

    async def list_contracts(
        self, status: ContractStatus | None = None
    ) -> list[ContractRead]:
        contracts = list(reversed(self._contracts.values()))
        if status is not None:
            contracts = [c for c in contracts if c.status == status]
        return contracts

    async def resolve_token(self, token_hash: str) -> tuple[ContractRead, TokenRole] | None:
        found = self._find_by_hash(token_hash)
        if found is None:
            return None
        contract_id, role = found
        return self._contracts[contract_id], role

    async def update_locked(self, contract_id: str, mutate) -> ContractRead:
        contract = self._contracts.get(str(contract_id))
        if contract is None:
            raise NotFoundError("Contract", contract_id)
        changes = mutate(contract)
        return self._apply(contract, changes) if changes else contract

    async def update_locked_by_token(
        self, token_hash: str, mutate
    ) -> tuple[ContractRead, TokenRole] | None:
        found = self._find_by_hash(token_hash)
        if found is None:
            return None
        contract_id, role = found
        contract = self._contracts[contract_id]
        changes = mutate(contract, role)
        if changes:
            contract = self._apply(contract, changes)
        return contract, role

    async def delete_contract(self, contract_id: str) -> bool:
        self._hashes.pop(str(contract_id), None)
        return self._contracts.pop(str(contract_id), None) is not None

    async def stats(self) -> ContractStats:
        stats = ContractStats()
        for contract in self._contracts.values():
            stats.total += 1
            stats.total_value += contract.total_amount
            key = contract.status.value
            setattr(stats, key, getattr(stats, key) + 1)
        return stats

    # Test helpers

    def hashes_for(self, contract_id: str) -> dict[TokenRole, str]:
        return dict(self._hashes[contract_id])

    def force(self, contract_id: str, **changes: Any) -> ContractRead:
        """Overwrite fields directly, bypassing the engine's rules."""
        return self._apply(self._contracts[contract_id], changes)


# ── Firm Offers ──────────────────────────────────────────────────────────────


class InMemoryFirmOfferRepository:
    """In-memory FirmOfferRepository."""

    def __init__(self) -> None:
        self._offers: dict[str, FirmOfferRead] = {}
        self._hashes: dict[str, str] = {}

    def _apply(self, offer: FirmOfferRead, changes: dict[str, Any]) -> FirmOfferRead:
        columns = {k: _plain(v) for k, v in changes.items()}
        token_hash = columns.pop("speaker_access_token_hash", None)
        if token_hash is not None:
            self._hashes[offer.id] = token_hash
        updated = FirmOfferRead.model_validate(
            {**offer.model_dump(), **columns, "updated_at": _now()}
        )
        self._offers[offer.id] = updated
        return updated

    def _find_by_hash(self, token_hash: str) -> FirmOfferRead | None:
        for offer_id, stored in self._hashes.items():
            if stored == token_hash:
                return self._offers[offer_id]
        return None

    async def create_offer(self, values: dict[str, Any]) -> FirmOfferRead:
        columns = {k: _plain(v) for k, v in values.items()}
        token_hash = columns.pop("speaker_access_token_hash")
        now = _now()
        offer = FirmOfferRead.model_validate(
            {"id": str(uuid.uuid4()), "created_at": now, "updated_at": now, **columns}
        )
        self._offers[offer.id] = offer
        self._hashes[offer.id] = token_hash
        return offer

    async def get_offer(self, offer_id: str) -> FirmOfferRead | None:
        return self._offers.get(str(offer_id))

    async def get_by_token_hash(self, token_hash: str) -> FirmOfferRead | None:
        return self._find_by_hash(token_hash)

    async def get_by_proposal(self, proposal_id: str) -> FirmOfferRead | None:
        for offer in self._offers.values():
            if offer.proposal_id == str(proposal_id):
                return offer
        return None

    async def list_offers(
        self, status: FirmOfferStatus | None = None
    ) -> list[FirmOfferRead]:
        offers = list(reversed(self._offers.values()))
        if status is not None:
            offers = [o for o in offers if o.status == status]
        return offers

    async def update_locked(self, offer_id: str, mutate) -> FirmOfferRead:
        offer = self._offers.get(str(offer_id))
        if offer is None:
            raise NotFoundError("FirmOffer", offer_id)
        changes = mutate(offer)
        return self._apply(offer, changes) if changes else offer

    async def update_locked_by_token(self, token_hash: str, mutate) -> FirmOfferRead | None:
        offer = self._find_by_hash(token_hash)
        if offer is None:
            return None
        changes = mutate(offer)
        return self._apply(offer, changes) if changes else offer


# ── Projects ─────────────────────────────────────────────────────────────────


class InMemoryProjectRepository:
    """In-memory ProjectRepository keyed by deal (one project per deal)."""

    def __init__(self) -> None:
        self._projects: dict[str, ProjectRead] = {}

    async def get_or_create(
        self, deal_id: str, values: dict[str, Any]
    ) -> tuple[ProjectRead, bool]:
        for project in self._projects.values():
            if project.deal_id == str(deal_id):
                return project, False
        project = ProjectRead.model_validate({
            **values,
            "id": str(uuid.uuid4()),
            "deal_id": str(deal_id),
            "created_at": _now(),
        })
        self._projects[project.id] = project
        return project, True

    async def link(self, project_id: str, links: dict[str, Any]) -> ProjectRead:
        project = self._projects.get(str(project_id))
        if project is None:
            raise NotFoundError("Project", project_id)
        fill = {
            k: str(v) for k, v in links.items() if v is not None and getattr(project, k) is None
        }
        updated = project.model_copy(update=fill)
        self._projects[updated.id] = updated
        return updated

    async def get_project(self, project_id: str) -> ProjectRead | None:
        return self._projects.get(str(project_id))

    async def get_by_deal(self, deal_id: str) -> ProjectRead | None:
        for project in self._projects.values():
            if project.deal_id == str(deal_id):
                return project
        return None

    async def list_projects(self, status: str | None = None) -> list[ProjectRead]:
        projects = list(reversed(self._projects.values()))
        if status is not None:
            projects = [p for p in projects if p.status == status]
        return projects


# ── Email ────────────────────────────────────────────────────────────────────


class RecordingEmailSender:
    """Accepts every message and keeps it for assertions."""

    def __init__(self) -> None:
        self.sent: list[EmailMessage] = []

    async def send(self, message: EmailMessage) -> SentEmailResult:
        self.sent.append(message)
        return SentEmailResult(message_id=f"msg-{len(self.sent)}", provider="memory")

    def recipients(self) -> list[str]:
        return [m.to for m in self.sent]


class FailingEmailSender:
    """Rejects every message the way an unreachable provider would."""

    def __init__(self) -> None:
        self.attempts = 0

    async def send(self, message: EmailMessage) -> SentEmailResult:
        self.attempts += 1
        raise EmailDeliveryError("Email provider timed out after 5.0s")
