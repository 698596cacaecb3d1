"""FastAPI dependencies for admin authentication.

Admin endpoints accept either a Bearer JWT issued by /api/v1/auth/login or
the static X-API-Key configured as ADMIN_API_KEY. Public token routes do
not use these; the token in the path is their only credential.
"""

from __future__ import annotations

from fastapi import Request

from src.app.config import get_settings
from src.app.core.errors import AuthError
from src.app.core.security import validate_api_key, verify_token
from src.app.schemas.auth import AdminPrincipal


async def get_current_admin(request: Request) -> AdminPrincipal:
    """Extract and validate the admin from JWT or API key.

    Checks the Authorization header for a Bearer JWT first, then X-API-Key.

    Raises:
        AuthError: If no valid credential is presented (401).
    """
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        payload = verify_token(auth_header[7:], token_type="access")
        if payload.get("role") != "admin":
            raise AuthError("Admin access required")
        return AdminPrincipal(email=payload["sub"], auth_method="jwt")

    api_key = request.headers.get("X-API-Key")
    if api_key:
        if not validate_api_key(api_key):
            raise AuthError("Invalid API key")
        return AdminPrincipal(email=get_settings().ADMIN_EMAIL, auth_method="api_key")

    raise AuthError("Not authenticated")

