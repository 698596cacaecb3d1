"""REST API endpoints for firm offers.

Admin endpoints create, review and forward offers. The client's intake form
lives under /firm-offers/public/{token} and the speaker's review under
/firm-offers/speaker/{token}; both are authorized by the token alone.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, ConfigDict

from src.app.api.deps import get_current_admin
from src.app.firm_offers.engine import FirmOfferEngine
from src.app.firm_offers.schemas import (
    FirmOfferCreated,
    FirmOfferDetail,
    FirmOfferPublicView,
    FirmOfferRead,
    FirmOfferStatus,
    FirmOfferUpdate,
    IntakeOutcome,
    SendToSpeakerRequest,
    SpeakerDispatch,
    SpeakerResponseOutcome,
    SpeakerResponseRequest,
)
from src.app.schemas.auth import AdminPrincipal

router = APIRouter(prefix="/firm-offers", tags=["firm-offers"])


class FirmOfferCreateRequest(BaseModel):
    """Parent id plus any flat intake fields to pre-fill."""

    model_config = ConfigDict(extra="allow")

    deal_id: str | None = None
    proposal_id: str | None = None


def _get_firm_offer_engine(request: Request) -> FirmOfferEngine:
    """Get FirmOfferEngine from app.state or raise 503."""
    engine = getattr(request.app.state, "firm_offer_engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Firm offer engine not available",
        )
    return engine


# ── Client Intake ────────────────────────────────────────────────────────────


@router.get("/public/{token}", response_model=FirmOfferPublicView)
async def get_public_offer(token: str, request: Request):
    engine = _get_firm_offer_engine(request)
    return await engine.get_by_token(token)


@router.put("/public/{token}", response_model=IntakeOutcome)
async def save_public_offer(
    token: str,
    request: Request,
    body: dict[str, Any] = Body(...),
):
    """Save the intake form; ``"submit": true`` also submits it."""
    engine = _get_firm_offer_engine(request)
    fields = dict(body)
    submit = bool(fields.pop("submit", False))
    return await engine.submit_intake(token, fields, submit=submit)


# ── Speaker Review ───────────────────────────────────────────────────────────


@router.get("/speaker/{token}", response_model=FirmOfferPublicView)
async def get_speaker_offer(token: str, request: Request):
    """Offer as shown to the speaker; the first view is timestamped."""
    engine = _get_firm_offer_engine(request)
    return await engine.get_by_token(token)


@router.post("/speaker/{token}/respond", response_model=SpeakerResponseOutcome)
async def speaker_respond(token: str, body: SpeakerResponseRequest, request: Request):
    engine = _get_firm_offer_engine(request)
    return await engine.speaker_response(
        token, speaker_confirmed=body.speaker_confirmed, speaker_notes=body.speaker_notes
    )


# ── Admin Routes ─────────────────────────────────────────────────────────────


@router.post("", response_model=FirmOfferCreated, status_code=status.HTTP_201_CREATED)
async def create_firm_offer(
    body: FirmOfferCreateRequest,
    request: Request,
    admin: AdminPrincipal = Depends(get_current_admin),
):
    """Create a draft offer for a deal or proposal. Returns the share link once."""
    engine = _get_firm_offer_engine(request)
    return await engine.create(
        deal_id=body.deal_id,
        proposal_id=body.proposal_id,
        intake=body.model_extra or {},
    )


@router.get("", response_model=list[FirmOfferRead])
async def list_firm_offers(
    request: Request,
    offer_status: FirmOfferStatus | None = Query(default=None, alias="status"),
    admin: AdminPrincipal = Depends(get_current_admin),
):
    engine = _get_firm_offer_engine(request)
    return await engine.list(offer_status)


@router.get("/{offer_id}", response_model=FirmOfferDetail)
async def get_firm_offer(
    offer_id: str,
    request: Request,
    admin: AdminPrincipal = Depends(get_current_admin),
):
    engine = _get_firm_offer_engine(request)
    return await engine.get(offer_id)


@router.patch("/{offer_id}", response_model=FirmOfferRead)
async def update_firm_offer(
    offer_id: str,
    body: FirmOfferUpdate,
    request: Request,
    admin: AdminPrincipal = Depends(get_current_admin),
):
    """Partial update. Only the sections present in the body are replaced."""
    engine = _get_firm_offer_engine(request)
    return await engine.update(offer_id, body)


@router.post("/{offer_id}/send-to-speaker", response_model=SpeakerDispatch)
async def send_to_speaker(
    offer_id: str,
    body: SendToSpeakerRequest,
    request: Request,
    admin: AdminPrincipal = Depends(get_current_admin),
):
    engine = _get_firm_offer_engine(request)
    return await engine.send_to_speaker(
        offer_id, speaker_email=body.speaker_email, speaker_name=body.speaker_name
    )
