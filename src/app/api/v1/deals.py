"""REST API endpoints for the deal pipeline.

Admin CRUD over deals (delete marks the deal lost) plus the inbound CRM
webhook. The webhook is authenticated by a shared ``x-api-key`` secret
instead of admin credentials and answers every response, errors included,
with permissive CORS headers so browser-based integrations can call it.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from src.app.api.deps import get_current_admin
from src.app.api.errors import error_body
from src.app.config import Settings, get_settings
from src.app.core.security import secrets_match
from src.app.deals.pipeline import DealPipeline
from src.app.deals.schemas import (
    DealCreate,
    DealFilter,
    DealPriority,
    DealRead,
    DealStatus,
    DealUpdate,
    WebhookPayload,
)
from src.app.schemas.auth import AdminPrincipal

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/deals", tags=["deals"])

WEBHOOK_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, x-api-key",
}


def _get_deal_pipeline(request: Request) -> DealPipeline:
    """Get DealPipeline from app.state or raise 503."""
    pipeline = getattr(request.app.state, "deal_pipeline", None)
    if pipeline is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Deal pipeline not available",
        )
    return pipeline


# ── Inbound Webhook ──────────────────────────────────────────────────────────


def _webhook_response(status_code: int, content: dict) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=content, headers=WEBHOOK_CORS_HEADERS)


@router.options("/webhook", include_in_schema=False)
async def webhook_preflight() -> Response:
    return Response(status_code=status.HTTP_200_OK, headers=WEBHOOK_CORS_HEADERS)


@router.post("/webhook")
async def receive_webhook(
    request: Request,
    settings: Settings = Depends(get_settings),
):
    """Upsert a deal from a LinkedIn messaging integration delivery.

    Returns 200 with the ingestion outcome, 401 on a bad secret, 422 on a
    malformed payload and 500 on internal failure.
    """
    if not secrets_match(request.headers.get("x-api-key"), settings.DEAL_WEBHOOK_API_KEY):
        logger.warning(
            "deals_webhook.unauthorized",
            client=request.client.host if request.client else None,
        )
        return _webhook_response(
            status.HTTP_401_UNAUTHORIZED, error_body("auth_error", "Invalid API key")
        )

    pipeline = getattr(request.app.state, "deal_pipeline", None)
    if pipeline is None:
        return _webhook_response(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            error_body("unavailable", "Deal pipeline not available"),
        )

    try:
        payload = WebhookPayload.model_validate(await request.json())
    except (ValueError, PydanticValidationError) as exc:
        logger.info("deals_webhook.invalid_payload", error=str(exc))
        return _webhook_response(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_body("validation_error", "Invalid webhook payload"),
        )

    try:
        outcome = await pipeline.ingest_webhook(payload)
    except Exception:
        logger.error("deals_webhook.ingest_failed", exc_info=True)
        return _webhook_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            error_body("internal_error", "Failed to process webhook"),
        )

    return _webhook_response(
        status.HTTP_200_OK,
        {"success": True, **outcome.model_dump(mode="json")},
    )


# ── Admin CRUD ───────────────────────────────────────────────────────────────


@router.post("", response_model=DealRead, status_code=status.HTTP_201_CREATED)
async def create_deal(
    body: DealCreate,
    request: Request,
    admin: AdminPrincipal = Depends(get_current_admin),
):
    """Create a deal."""
    pipeline = _get_deal_pipeline(request)
    return await pipeline.create_deal(body)


@router.get("", response_model=list[DealRead])
async def list_deals(
    request: Request,
    deal_status: DealStatus | None = Query(default=None, alias="status"),
    priority: DealPriority | None = Query(default=None),
    source: str | None = Query(default=None),
    admin: AdminPrincipal = Depends(get_current_admin),
):
    """List deals, newest first, with optional filters."""
    pipeline = _get_deal_pipeline(request)
    return await pipeline.list_deals(
        DealFilter(status=deal_status, priority=priority, source=source)
    )


@router.get("/{deal_id}", response_model=DealRead)
async def get_deal(
    deal_id: str,
    request: Request,
    admin: AdminPrincipal = Depends(get_current_admin),
):
    """Get a single deal."""
    pipeline = _get_deal_pipeline(request)
    return await pipeline.get_deal(deal_id)


@router.patch("/{deal_id}", response_model=DealRead)
async def update_deal(
    deal_id: str,
    body: DealUpdate,
    request: Request,
    admin: AdminPrincipal = Depends(get_current_admin),
):
    """Edit a deal. A status change is validated and appended to notes."""
    pipeline = _get_deal_pipeline(request)
    return await pipeline.update_deal(deal_id, body)


@router.delete("/{deal_id}", response_model=DealRead)
async def delete_deal(
    deal_id: str,
    request: Request,
    reason: str | None = Query(default=None),
    admin: AdminPrincipal = Depends(get_current_admin),
):
    """Mark a deal lost. Deals are never hard-deleted."""
    pipeline = _get_deal_pipeline(request)
    return await pipeline.mark_lost(deal_id, reason)
