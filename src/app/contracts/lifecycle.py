"""Contract status rules.

The admin-facing transition table and the signature-derived status live
here as pure functions so both the engine and the repository's locked
update path apply the same rules.
"""

from __future__ import annotations

from datetime import datetime

from src.app.contracts.schemas import ContractStatus, SignerRole
from src.app.core.errors import InvalidTransitionError

VALID_TRANSITIONS: dict[ContractStatus, set[ContractStatus]] = {
    ContractStatus.DRAFT: {ContractStatus.SENT, ContractStatus.CANCELLED},
    ContractStatus.SENT: {ContractStatus.PARTIALLY_SIGNED, ContractStatus.CANCELLED},
    ContractStatus.PARTIALLY_SIGNED: {
        ContractStatus.FULLY_EXECUTED,
        ContractStatus.CANCELLED,
    },
    ContractStatus.FULLY_EXECUTED: set(),  # Terminal
    ContractStatus.CANCELLED: set(),  # Terminal
}

TERMINAL_STATUSES = frozenset({ContractStatus.FULLY_EXECUTED, ContractStatus.CANCELLED})

# Statuses in which a signing token may record consent
SIGNABLE_STATUSES = frozenset({ContractStatus.SENT, ContractStatus.PARTIALLY_SIGNED})

# Targets that must agree with persisted signature timestamps
SIGNATURE_DERIVED = frozenset({ContractStatus.PARTIALLY_SIGNED, ContractStatus.FULLY_EXECUTED})


def validate_contract_transition(
    from_status: ContractStatus, to_status: ContractStatus
) -> None:
    """Raise InvalidTransitionError unless ``to_status`` is reachable.

    Unlike deals, re-requesting the current status is rejected too: every
    contract transition has side effects (emails, token rotation).
    """
    allowed = VALID_TRANSITIONS.get(from_status, set())
    if to_status not in allowed:
        raise InvalidTransitionError(
            "contract",
            from_status.value,
            to_status.value,
            allowed=[s.value for s in allowed],
        )


def derive_status(
    current: ContractStatus,
    client_signed_at: datetime | None,
    speaker_signed_at: datetime | None,
) -> ContractStatus:
    """Status implied by which parties have signed.

    Terminal and draft contracts keep their status; signatures only move a
    sent contract forward.
    """
    if current in TERMINAL_STATUSES or current == ContractStatus.DRAFT:
        return current
    if client_signed_at and speaker_signed_at:
        return ContractStatus.FULLY_EXECUTED
    if client_signed_at or speaker_signed_at:
        return ContractStatus.PARTIALLY_SIGNED
    return ContractStatus.SENT


def signed_at_field(role: SignerRole) -> str:
    return f"{role.value}_signed_at"
