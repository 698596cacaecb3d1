"""REST API endpoints for proposals.

Admins issue proposals against a deal; the client accepts or rejects
through the public token link.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from src.app.api.deps import get_current_admin
from src.app.deals.proposals import ProposalService
from src.app.deals.schemas import (
    ProposalCreate,
    ProposalCreated,
    ProposalDecisionOutcome,
    ProposalDecisionRequest,
    ProposalRead,
)
from src.app.schemas.auth import AdminPrincipal

router = APIRouter(tags=["proposals"])


def _get_proposal_service(request: Request) -> ProposalService:
    """Get ProposalService from app.state or raise 503."""
    service = getattr(request.app.state, "proposal_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Proposal service not available",
        )
    return service


@router.post(
    "/deals/{deal_id}/proposals",
    response_model=ProposalCreated,
    status_code=status.HTTP_201_CREATED,
)
async def create_proposal(
    deal_id: str,
    body: ProposalCreate,
    request: Request,
    admin: AdminPrincipal = Depends(get_current_admin),
):
    """Issue a proposal for a deal. The access token is only returned here."""
    service = _get_proposal_service(request)
    return await service.create(deal_id, body)


@router.get("/proposals", response_model=list[ProposalRead])
async def list_proposals(
    request: Request,
    deal_id: str | None = Query(default=None),
    admin: AdminPrincipal = Depends(get_current_admin),
):
    service = _get_proposal_service(request)
    return await service.list(deal_id=deal_id)


@router.get("/proposals/{proposal_id}", response_model=ProposalRead)
async def get_proposal(
    proposal_id: str,
    request: Request,
    admin: AdminPrincipal = Depends(get_current_admin),
):
    service = _get_proposal_service(request)
    return await service.get(proposal_id)


# ── Public Decision Routes ───────────────────────────────────────────────────


@router.post("/proposals/public/{token}/accept", response_model=ProposalDecisionOutcome)
async def accept_proposal(token: str, body: ProposalDecisionRequest, request: Request):
    """Client acceptance through the proposal link."""
    service = _get_proposal_service(request)
    return await service.accept(token, accepted_by=body.name, note=body.note)


@router.post("/proposals/public/{token}/reject", response_model=ProposalDecisionOutcome)
async def reject_proposal(token: str, body: ProposalDecisionRequest, request: Request):
    """Client rejection; ``note`` is stored as the rejection reason."""
    service = _get_proposal_service(request)
    return await service.reject(token, rejected_by=body.name, reason=body.note)
