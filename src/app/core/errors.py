"""Lifecycle error taxonomy.

Every failure the deal, contract, firm offer and proposal engines can raise
derives from LifecycleError, which carries a stable machine-readable
``code`` and the HTTP status the API boundary maps it to. The exception
handler in src/app/api/errors.py turns these into
``{"error": {"code": ..., "message": ...}}`` responses.
"""

from __future__ import annotations

from collections.abc import Iterable


class LifecycleError(Exception):
    """Base class for all lifecycle failures surfaced to API callers."""

    code: str = "lifecycle_error"
    status_code: int = 400

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(LifecycleError):
    """A required field is missing or malformed (e.g. no deal_id)."""

    code = "validation_error"
    status_code = 422

    def __init__(self, message: str, fields: Iterable[str] | None = None) -> None:
        self.fields = list(fields or [])
        super().__init__(message)


class NotFoundError(LifecycleError):
    """An entity id or token does not resolve."""

    code = "not_found"
    status_code = 404

    def __init__(self, entity: str, identifier: str) -> None:
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity} not found: {identifier}")


class InvalidStateError(LifecycleError):
    """A precondition on the source entity's status is not met."""

    code = "invalid_state"
    status_code = 409


class InvalidTransitionError(LifecycleError, ValueError):
    """The requested status is not reachable from the current status."""

    code = "invalid_transition"
    status_code = 409

    def __init__(
        self,
        entity: str,
        from_status: str,
        to_status: str,
        allowed: Iterable[str] = (),
    ) -> None:
        self.entity = entity
        self.from_status = from_status
        self.to_status = to_status
        allowed_list = sorted(allowed)
        super().__init__(
            f"Invalid {entity} transition: {from_status} -> {to_status}. "
            f"Allowed transitions from {from_status}: "
            f"{', '.join(allowed_list) if allowed_list else 'none'}"
        )


class AuthError(LifecycleError):
    """Missing, invalid or expired token or admin credential."""

    code = "auth_error"
    status_code = 401


class PersistenceError(LifecycleError):
    """A database operation failed.

    ``detail`` keeps the driver's message for operators; the API boundary
    logs it but never echoes it to callers.
    """

    code = "persistence_error"
    status_code = 500

    def __init__(self, message: str, detail: str | None = None) -> None:
        self.detail = detail
        super().__init__(message)


class NoOpError(LifecycleError):
    """An update request carried no actionable fields."""

    code = "no_op"
    status_code = 400
