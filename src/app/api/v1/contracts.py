"""REST API endpoints for contracts.

Admin endpoints create contracts from won deals, move them through the
signing lifecycle and record amendments. Public endpoints under
/contracts/view/{token} and /contracts/sign/{token} are authorized by the
token alone and return friendly status payloads for repeat visits.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from src.app.api.deps import get_current_admin
from src.app.contracts.engine import ContractEngine, public_view
from src.app.contracts.schemas import (
    Amendment,
    ContractCreate,
    ContractCreated,
    ContractPreview,
    ContractPublicView,
    ContractRead,
    ContractStats,
    ContractStatus,
    SignatureResult,
    StatusUpdateResult,
)
from src.app.schemas.auth import AdminPrincipal

router = APIRouter(prefix="/contracts", tags=["contracts"])


# ── Request Schemas ──────────────────────────────────────────────────────────


class ContractStatusRequest(BaseModel):
    """Request body for PUT /contracts/{id}; only status may change."""

    status: ContractStatus


class SignRequest(BaseModel):
    signer_name: str | None = Field(default=None, max_length=255)
    agree: bool = True


class SignOutcome(BaseModel):
    """Public signing response; omits the admin-only contract fields."""

    status: str
    message: str
    role: str
    contract: ContractPublicView | None = None


def _get_contract_engine(request: Request) -> ContractEngine:
    """Get ContractEngine from app.state or raise 503."""
    engine = getattr(request.app.state, "contract_engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Contract engine not available",
        )
    return engine


def _client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


# ── Public Token Routes ──────────────────────────────────────────────────────


@router.get("/view/{token}", response_model=ContractPublicView)
async def view_contract(token: str, request: Request):
    """Read-only contract view for any of the contract's tokens."""
    engine = _get_contract_engine(request)
    return await engine.view(token)


@router.get("/sign/{token}", response_model=ContractPublicView)
async def get_signing_page(token: str, request: Request):
    """Contract data for the signing page."""
    engine = _get_contract_engine(request)
    return await engine.view(token)


@router.post("/sign/{token}", response_model=SignOutcome)
async def sign_contract(token: str, body: SignRequest, request: Request):
    """Record the signature of the party this token belongs to."""
    engine = _get_contract_engine(request)
    if not body.agree:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="The agreement must be accepted to sign",
        )

    result: SignatureResult = await engine.sign(
        token, signer_name=body.signer_name, signer_ip=_client_ip(request)
    )
    if result.outcome == "already_signed":
        message = "You have already signed this contract."
    elif result.contract.status == ContractStatus.FULLY_EXECUTED:
        message = "Thank you! The contract is now fully executed."
    else:
        message = "Thank you! Your signature has been recorded."

    return SignOutcome(
        status=result.outcome,
        message=message,
        role=result.role.value,
        contract=public_view(result.contract, result.role.value),
    )


# ── Admin Routes ─────────────────────────────────────────────────────────────


@router.post("", status_code=status.HTTP_201_CREATED, response_model=None)
async def create_contract(
    body: ContractCreate,
    request: Request,
    preview: bool = Query(default=False),
    admin: AdminPrincipal = Depends(get_current_admin),
) -> ContractCreated | ContractPreview:
    """Create a draft contract from a won deal, or preview it with ?preview=true.

    The created response is the only place the plaintext tokens appear.
    """
    engine = _get_contract_engine(request)
    if preview:
        return await engine.preview(body)
    if body.created_by is None:
        body = body.model_copy(update={"created_by": admin.email})
    return await engine.create_from_deal(body)


@router.get("", response_model=list[ContractRead])
async def list_contracts(
    request: Request,
    contract_status: ContractStatus | None = Query(default=None, alias="status"),
    admin: AdminPrincipal = Depends(get_current_admin),
):
    """List contracts, newest first."""
    engine = _get_contract_engine(request)
    return await engine.list(contract_status)


@router.get("/stats", response_model=ContractStats)
async def contract_stats(
    request: Request,
    admin: AdminPrincipal = Depends(get_current_admin),
):
    """Counts per status and total contract value."""
    engine = _get_contract_engine(request)
    return await engine.stats()


@router.get("/{contract_id}", response_model=ContractRead)
async def get_contract(
    contract_id: str,
    request: Request,
    admin: AdminPrincipal = Depends(get_current_admin),
):
    engine = _get_contract_engine(request)
    return await engine.get(contract_id)


@router.put("/{contract_id}", response_model=StatusUpdateResult)
async def update_contract_status(
    contract_id: str,
    body: ContractStatusRequest,
    request: Request,
    admin: AdminPrincipal = Depends(get_current_admin),
):
    """Change a contract's status. Moving to sent emails both parties."""
    engine = _get_contract_engine(request)
    return await engine.update_status(contract_id, body.status, updated_by=admin.email)


@router.post("/{contract_id}/send", response_model=StatusUpdateResult)
async def send_contract(
    contract_id: str,
    request: Request,
    admin: AdminPrincipal = Depends(get_current_admin),
):
    """Send a draft contract for signature."""
    engine = _get_contract_engine(request)
    return await engine.send(contract_id, updated_by=admin.email)


@router.post("/{contract_id}/amendments", response_model=ContractRead)
async def amend_contract(
    contract_id: str,
    body: Amendment,
    request: Request,
    admin: AdminPrincipal = Depends(get_current_admin),
):
    """Append an amendment to a non-terminal contract."""
    engine = _get_contract_engine(request)
    return await engine.amend(contract_id, body, amended_by=admin.email)


@router.delete("/{contract_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_contract(
    contract_id: str,
    request: Request,
    admin: AdminPrincipal = Depends(get_current_admin),
) -> None:
    engine = _get_contract_engine(request)
    await engine.delete(contract_id)
