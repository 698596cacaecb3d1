"""JWT authentication, password hashing, and API key validation.

Provides the core security primitives used by the auth endpoints and the
admin dependency in src/app/api/deps.py. The service has a single operator
account configured through ADMIN_EMAIL / ADMIN_PASSWORD_HASH, plus an
optional static ADMIN_API_KEY for scripted access.

Uses bcrypt directly (not passlib) for Python 3.13 compatibility.
"""

from __future__ import annotations

import hmac
from datetime import datetime, timedelta, timezone

import bcrypt
import structlog
from jose import JWTError, jwt

from src.app.config import get_settings
from src.app.core.errors import AuthError

logger = structlog.get_logger(__name__)

# ── Password Hashing ──────────────────────────────────────────────────────────


def hash_password(password: str) -> str:
    """Hash a plaintext password using bcrypt."""
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Verify a plaintext password against its bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash in configuration
        logger.warning("security.invalid_password_hash")
        return False


def authenticate_admin(email: str, password: str) -> bool:
    """Check login credentials against the configured operator account."""
    settings = get_settings()
    if not settings.ADMIN_PASSWORD_HASH:
        return False
    if email.strip().lower() != settings.ADMIN_EMAIL.strip().lower():
        return False
    return verify_password(password, settings.ADMIN_PASSWORD_HASH)


# ── JWT Token Creation ────────────────────────────────────────────────────────


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Create a JWT access token.

    The data dict should contain at minimum:
    - sub: admin email (str)
    - role: "admin"
    """
    settings = get_settings()
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({
        "exp": expire,
        "iat": now,
        "type": "access",
    })
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def create_refresh_token(data: dict) -> str:
    """Create a JWT refresh token with longer expiry."""
    settings = get_settings()
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    expire = now + timedelta(days=settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS)
    to_encode.update({
        "exp": expire,
        "iat": now,
        "type": "refresh",
    })
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


# ── JWT Token Verification ────────────────────────────────────────────────────


def verify_token(token: str, token_type: str = "access") -> dict:
    """Decode and validate a JWT token.

    Args:
        token: The JWT string.
        token_type: Expected token type ("access" or "refresh").

    Returns:
        The decoded payload dict.

    Raises:
        AuthError: If the token is invalid, expired, or wrong type.
    """
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except JWTError as exc:
        raise AuthError("Could not validate credentials") from exc

    if payload.get("type") != token_type or not payload.get("sub"):
        raise AuthError("Could not validate credentials")
    return payload


# ── Shared Secret Validation ──────────────────────────────────────────────────


def secrets_match(provided: str | None, expected: str) -> bool:
    """Constant-time comparison of a presented secret against configuration.

    An empty ``expected`` value means the secret is not configured, which
    never matches.
    """
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def validate_api_key(api_key: str) -> bool:
    """Return True when the header value matches ADMIN_API_KEY."""
    return secrets_match(api_key, get_settings().ADMIN_API_KEY)
