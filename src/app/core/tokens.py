"""Bearer token issuing and hashing.

Tokens authorize a single role on a single entity (a contract signer, the
speaker on a firm offer, a proposal recipient) without a login. Only the
SHA-256 digest is persisted; the plaintext is handed back to the caller
once, when the token is issued or rotated, so it can be embedded in an
emailed link.
"""

from __future__ import annotations

import hashlib
import secrets
import string
from dataclasses import dataclass
from enum import Enum

TOKEN_ALPHABET = string.ascii_letters + string.digits
TOKEN_LENGTH = 48
MIN_TOKEN_LENGTH = 32


class TokenRole(str, Enum):
    """Role a token is bound to."""

    ACCESS = "access"
    CLIENT = "client"
    SPEAKER = "speaker"


@dataclass(frozen=True)
class IssuedToken:
    """A freshly generated token and the digest to store for it."""

    role: TokenRole
    token: str
    token_hash: str


def generate_token(length: int = TOKEN_LENGTH) -> str:
    """Return a random alphanumeric token of ``length`` characters."""
    if length < MIN_TOKEN_LENGTH:
        raise ValueError(f"Token length must be at least {MIN_TOKEN_LENGTH}")
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))


def hash_token(token: str) -> str:
    """Hex SHA-256 digest used as the stored lookup key for a token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def issue_token(role: TokenRole) -> IssuedToken:
    token = generate_token()
    return IssuedToken(role=role, token=token, token_hash=hash_token(token))


def issue_tokens(*roles: TokenRole) -> dict[TokenRole, IssuedToken]:
    """Issue one token per role. Returned values are pairwise distinct."""
    issued: dict[TokenRole, IssuedToken] = {}
    seen: set[str] = set()
    for role in roles:
        candidate = issue_token(role)
        while candidate.token in seen:
            candidate = issue_token(role)
        seen.add(candidate.token)
        issued[role] = candidate
    return issued


def looks_like_token(value: str) -> bool:
    """Cheap shape check before hitting the database with a lookup."""
    return (
        MIN_TOKEN_LENGTH <= len(value) <= 128
        and all(ch in TOKEN_ALPHABET for ch in value)
    )
