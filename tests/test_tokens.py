"""Tests for session tokens."""

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from auth import TokenIssuer, TokenExpired, TokenInvalid

USER = {"id": "user-1", "email": "a@x.com", "wallet_address": None}

@pytest.fixture
def issuer():
    return TokenIssuer("secret", lifetime=timedelta(hours=24))

def test_issue_validate_roundtrip(issuer):
    """Test that a fresh token resolves to its user id."""
    assert issuer.validate(issuer.issue(USER)) == "user-1"

def test_claims(issuer):
    """Test the claims carried by a token."""
    now = datetime.now(timezone.utc)
    claims = issuer.decode(issuer.issue(USER, now=now))

    assert claims["sub"] == "user-1"
    assert claims["email"] == "a@x.com"
    assert "wallet" not in claims
    assert claims["exp"] - claims["iat"] == 24 * 3600

def test_expired_token(issuer):
    """Test that a token past its lifetime is rejected."""
    issued_at = datetime.now(timezone.utc) - timedelta(hours=25)
    token = issuer.issue(USER, now=issued_at)

    with pytest.raises(TokenExpired):
        issuer.validate(token)

def test_wrong_secret(issuer):
    """Test that a token signed with another secret is rejected."""
    token = TokenIssuer("other-secret").issue(USER)

    with pytest.raises(TokenInvalid):
        issuer.validate(token)

@pytest.mark.parametrize("token", ["", "garbage", "a.b.c"])
def test_malformed_token(issuer, token):
    """Test that malformed tokens are rejected."""
    with pytest.raises(TokenInvalid):
        issuer.validate(token)

def test_token_without_subject(issuer):
    """Test that a validly signed token without a subject is rejected."""
    exp = datetime.now(timezone.utc) + timedelta(hours=1)
    token = jwt.encode({"exp": int(exp.timestamp())}, "secret", algorithm="HS256")

    with pytest.raises(TokenInvalid):
        issuer.validate(token)

def test_missing_secret_generates_one():
    """Test that an unset secret still yields working tokens."""
    issuer = TokenIssuer("")
    assert issuer.validate(issuer.issue(USER)) == "user-1"

    # Each process-local secret is independent
    with pytest.raises(TokenInvalid):
        TokenIssuer("").validate(issuer.issue(USER))
