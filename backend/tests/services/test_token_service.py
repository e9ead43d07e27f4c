# tests/services/test_token_service.py
import time
from datetime import datetime, timedelta, timezone

import jwt
import pytest

from docbin.services.tokens import (
    InsufficientPermissionError,
    InvalidTokenError,
    Permission,
    PermissionDeniedError,
    TokenExpiredError,
    TokenService,
    WrongDocumentError,
)


def test_issue_and_validate(tokens):
    token = tokens.issue("abcd1234", Permission.ALL)

    claims = tokens.validate(token, "abcd1234", Permission.WRITE | Permission.DELETE)

    assert claims.document_key == "abcd1234"
    assert claims.permissions == Permission.ALL
    assert claims.expires_at is None


def test_wrong_document(tokens):
    token = tokens.issue("abcd1234", Permission.ALL)
    with pytest.raises(WrongDocumentError):
        tokens.validate(token, "zzzz9999", Permission.WRITE)


def test_insufficient_permission(tokens):
    token = tokens.issue("abcd1234", Permission.WRITE)

    assert tokens.validate(token, "abcd1234", Permission.WRITE)
    with pytest.raises(InsufficientPermissionError):
        tokens.validate(token, "abcd1234", Permission.DELETE)


@pytest.mark.parametrize("token", ["", "garbage", "a.b.c"])
def test_malformed_token(tokens, token):
    with pytest.raises(InvalidTokenError):
        tokens.decode(token)


def test_token_signed_with_another_secret(tokens):
    other = TokenService("another-secret")
    with pytest.raises(InvalidTokenError):
        tokens.decode(other.issue("abcd1234", Permission.ALL))


def test_token_with_unknown_permission_bits(tokens):
    payload = {"iss": "docbin", "sub": "abcd1234", "iat": int(time.time()), "permissions": 64}
    token = jwt.encode(payload, "test-secret", algorithm="HS256")

    with pytest.raises(InvalidTokenError):
        tokens.decode(token)


def test_expired_token(tokens):
    token = tokens.issue("abcd1234", Permission.ALL, ttl=-10)
    with pytest.raises(TokenExpiredError):
        tokens.decode(token)


def test_earliest_deadline_wins(tokens):
    expires_at = datetime.now(timezone.utc) + timedelta(hours=1)

    token = tokens.issue("abcd1234", Permission.ALL, ttl=60, expires_at=expires_at)

    claims = tokens.decode(token)
    assert claims.expires_at < expires_at - timedelta(minutes=50)


def test_derive_subset(tokens):
    """Test that a derived token carries exactly the requested permissions"""
    parent = tokens.issue("abcd1234", Permission.ALL)

    derived = tokens.derive(parent, Permission.WRITE | Permission.SHARE)

    claims = tokens.decode(derived)
    assert claims.document_key == "abcd1234"
    assert claims.permissions == Permission.WRITE | Permission.SHARE
    with pytest.raises(InsufficientPermissionError):
        tokens.validate(derived, "abcd1234", Permission.DELETE)


def test_derive_cannot_escalate(tokens):
    parent = tokens.issue("abcd1234", Permission.SHARE | Permission.WRITE)
    with pytest.raises(PermissionDeniedError):
        tokens.derive(parent, Permission.DELETE)


def test_derive_without_permissions(tokens):
    parent = tokens.issue("abcd1234", Permission.ALL)
    with pytest.raises(PermissionDeniedError):
        tokens.derive(parent, Permission.NONE)


def test_derived_token_keeps_parent_expiry(tokens):
    expires_at = datetime.now(timezone.utc) + timedelta(hours=1)
    parent = tokens.issue("abcd1234", Permission.ALL, expires_at=expires_at)

    derived = tokens.derive(parent, Permission.WRITE)

    assert tokens.decode(derived).expires_at == tokens.decode(parent).expires_at


def test_permission_names():
    assert Permission.parse(["write", "Share"]) == Permission.WRITE | Permission.SHARE
    assert Permission.ALL.names() == ["write", "delete", "share", "webhook"]
    with pytest.raises(ValueError):
        Permission.parse(["admin"])


def test_empty_secret_rejected():
    with pytest.raises(ValueError):
        TokenService("")
