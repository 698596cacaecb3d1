"""Token issuing, password hashing, JWT and shared-secret tests."""

from __future__ import annotations

from datetime import timedelta

import pytest
from jose import jwt

from src.app.config import get_settings
from src.app.core.errors import AuthError
from src.app.core.security import (
    create_access_token,
    create_refresh_token,
    hash_password,
    secrets_match,
    verify_password,
    verify_token,
)
from src.app.core.tokens import (
    MIN_TOKEN_LENGTH,
    TOKEN_LENGTH,
    TokenRole,
    generate_token,
    hash_token,
    issue_token,
    issue_tokens,
    looks_like_token,
)


# ── Bearer Tokens ─────────────────────────────────────────────────────────────


def test_generated_tokens_are_alphanumeric_and_long():
    token = generate_token()
    assert len(token) == TOKEN_LENGTH
    assert token.isalnum()
    assert looks_like_token(token)


def test_short_tokens_are_refused():
    with pytest.raises(ValueError):
        generate_token(MIN_TOKEN_LENGTH - 1)


def test_issue_token_stores_only_the_digest():
    issued = issue_token(TokenRole.CLIENT)
    assert issued.role == TokenRole.CLIENT
    assert issued.token_hash == hash_token(issued.token)
    assert issued.token not in issued.token_hash
    assert len(issued.token_hash) == 64


def test_issue_tokens_are_pairwise_distinct():
    issued = issue_tokens(TokenRole.ACCESS, TokenRole.CLIENT, TokenRole.SPEAKER)
    assert set(issued) == {TokenRole.ACCESS, TokenRole.CLIENT, TokenRole.SPEAKER}
    assert len({t.token for t in issued.values()}) == 3
    assert len({t.token_hash for t in issued.values()}) == 3


def test_looks_like_token_rejects_garbage():
    assert not looks_like_token("short")
    assert not looks_like_token("x" * 40 + "/../")
    assert not looks_like_token("a" * 200)


# ── Password Hashing ──────────────────────────────────────────────────────────


def test_password_round_trip():
    hashed = hash_password("correct horse battery")
    assert hashed != "correct horse battery"
    assert verify_password("correct horse battery", hashed)
    assert not verify_password("wrong", hashed)


def test_malformed_hash_does_not_raise():
    assert verify_password("anything", "not-a-bcrypt-hash") is False


# ── JWT ───────────────────────────────────────────────────────────────────────


def test_access_token_claims():
    token = create_access_token({"sub": "admin@example.com", "role": "admin"})
    settings = get_settings()
    payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    assert payload["sub"] == "admin@example.com"
    assert payload["role"] == "admin"
    assert payload["type"] == "access"


def test_verify_token_rejects_wrong_type():
    refresh = create_refresh_token({"sub": "admin@example.com", "role": "admin"})
    assert verify_token(refresh, token_type="refresh")["sub"] == "admin@example.com"
    with pytest.raises(AuthError):
        verify_token(refresh, token_type="access")


def test_verify_token_rejects_expired():
    token = create_access_token(
        {"sub": "admin@example.com", "role": "admin"}, expires_delta=timedelta(seconds=-5)
    )
    with pytest.raises(AuthError):
        verify_token(token)


def test_verify_token_rejects_tampered():
    token = create_access_token({"sub": "admin@example.com", "role": "admin"})
    with pytest.raises(AuthError):
        header, body, _signature = token.split(".")
        verify_token(f"{header}.{body}.not-the-signature")


# ── Shared Secrets ────────────────────────────────────────────────────────────


def test_secrets_match():
    assert secrets_match("s3cret", "s3cret")
    assert not secrets_match("s3cret", "other")
    assert not secrets_match(None, "s3cret")


def test_unconfigured_secret_never_matches():
    assert not secrets_match("", "")
    assert not secrets_match("anything", "")
