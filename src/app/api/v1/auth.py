"""Authentication API endpoints.

Provides login, token refresh and current admin info for the single
operator account. Login and refresh are open; /me requires a valid JWT or
the admin API key.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends

from src.app.api.deps import get_current_admin
from src.app.config import get_settings
from src.app.core.errors import AuthError
from src.app.core.security import (
    authenticate_admin,
    create_access_token,
    create_refresh_token,
    verify_token,
)
from src.app.schemas.auth import (
    AdminPrincipal,
    LoginRequest,
    TokenRefreshRequest,
    TokenResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _issue_tokens(email: str) -> TokenResponse:
    token_data = {"sub": email, "role": "admin"}
    return TokenResponse(
        access_token=create_access_token(token_data),
        refresh_token=create_refresh_token(token_data),
    )


@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest):
    """Authenticate the operator and return JWT tokens."""
    if not authenticate_admin(body.email, body.password):
        logger.info("auth.login_failed", email=body.email)
        raise AuthError("Invalid email or password")

    logger.info("auth.login_succeeded", email=body.email)
    return _issue_tokens(get_settings().ADMIN_EMAIL)


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(body: TokenRefreshRequest):
    """Exchange a valid refresh token for a new token pair."""
    payload = verify_token(body.refresh_token, token_type="refresh")

    # Refresh tokens outlive a change of ADMIN_EMAIL; reject stale subjects
    if payload["sub"].lower() != get_settings().ADMIN_EMAIL.lower():
        raise AuthError("Admin account no longer exists")

    return _issue_tokens(payload["sub"])


@router.get("/me", response_model=AdminPrincipal)
async def get_me(admin: AdminPrincipal = Depends(get_current_admin)):
    """Return the authenticated admin."""
    return admin
