"""Structured request logging middleware.

Every request is logged once on completion with method, redacted path,
status_code, duration_ms, request_id and the kind of caller:

- ``admin``: Bearer JWT or X-API-Key (the JWT subject is logged when valid)
- ``token``: a public contract, firm-offer or proposal link
- ``webhook``: the inbound CRM webhook
- ``anonymous``: anything else (health, docs, metrics)

Public links carry bearer tokens in the path, so paths are redacted before
they reach a log line. An upstream X-Request-ID is reused when it is a UUID.
"""

from __future__ import annotations

import logging
import re
import time
import uuid

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.app.config import Environment, get_settings
from src.app.core.errors import AuthError
from src.app.core.security import verify_token

logger = structlog.get_logger(__name__)

_TOKEN_PATH = re.compile(r"/(sign|view|public|speaker)/[A-Za-z0-9]+")


def configure_structlog() -> None:
    """Route structlog through stdlib logging at LOG_LEVEL.

    JSON lines in production, coloured console output everywhere else.
    """
    settings = get_settings()
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.ENVIRONMENT == Environment.production
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def redact_path(path: str) -> str:
    """Replace bearer tokens embedded in public URLs with a placeholder."""
    return _TOKEN_PATH.sub(lambda m: f"/{m.group(1)}/[token]", path)


def _request_id(request: Request) -> str:
    incoming = request.headers.get("X-Request-ID", "")
    try:
        return str(uuid.UUID(incoming))
    except ValueError:
        return str(uuid.uuid4())


def _caller(request: Request, redacted: str) -> tuple[str, str | None]:
    """Classify the caller. Returns (kind, admin subject or None)."""
    if redacted != request.url.path:
        return "token", None
    if request.url.path.endswith("/deals/webhook"):
        return "webhook", None

    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        try:
            return "admin", verify_token(auth_header[7:]).get("sub")
        except AuthError:
            return "anonymous", None
    if request.headers.get("X-API-Key"):
        return "admin", None
    return "anonymous", None


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logs each request and stamps X-Request-ID on the response.

    The request id is bound into structlog contextvars for the duration of
    the request, so engine and repository log lines carry it too.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = _request_id(request)
        path = redact_path(request.url.path)
        caller, admin = _caller(request, path)
        fields = {
            "method": request.method,
            "path": path,
            "caller": caller,
            "admin": admin,
            "request_id": request_id,
        }
        start_time = time.monotonic()

        structlog.contextvars.bind_contextvars(request_id=request_id)
        try:
            response = await call_next(request)
        except Exception:
            logger.error(
                "http.request_error",
                status_code=500,
                duration_ms=round((time.monotonic() - start_time) * 1000, 2),
                **fields,
            )
            raise
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

        response.headers["X-Request-ID"] = request_id

        if response.status_code >= 500:
            log_method = logger.error
        elif response.status_code >= 400:
            log_method = logger.warning
        else:
            log_method = logger.info
        log_method(
            "http.request_completed",
            status_code=response.status_code,
            duration_ms=round((time.monotonic() - start_time) * 1000, 2),
            **fields,
        )
        return response
