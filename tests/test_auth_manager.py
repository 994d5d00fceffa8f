"""Tests for the composed authentication flows."""

import pytest

from auth import (
    DuplicateAccount,
    NonceMismatch,
    NonceState,
    SignatureInvalid,
    TokenInvalid
)
from conftest import sign

async def signed_challenge(auth_manager, account, signer=None):
    """Request a nonce for ``account`` and sign it with ``signer``."""
    challenge = await auth_manager.generate_nonce(account.address)
    signature = sign(signer or account, challenge["message"])
    return challenge["nonce"], signature

@pytest.mark.asyncio
async def test_signup_returns_session(auth_manager):
    """Test that signup opens a session without leaking the hash."""
    session = await auth_manager.signup("a@x.com", "longenough1")

    assert "password_hash" not in session["user"]
    assert auth_manager.tokens.validate(session["token"]) == session["user"]["id"]

@pytest.mark.asyncio
async def test_login_returns_session(auth_manager):
    """Test password login."""
    created = await auth_manager.signup("a@x.com", "longenough1")
    session = await auth_manager.login("a@x.com", "longenough1")

    assert session["user"]["id"] == created["user"]["id"]
    assert "password_hash" not in session["user"]

@pytest.mark.asyncio
async def test_generate_nonce_includes_message(auth_manager, wallet):
    """Test the challenge returned to the client."""
    challenge = await auth_manager.generate_nonce(wallet.address)

    assert challenge["wallet_address"] == wallet.address.lower()
    assert f"Nonce: {challenge['nonce']}" in challenge["message"]
    assert challenge["message"] == auth_manager.verifier.challenge_message(
        wallet.address, challenge["nonce"]
    )

@pytest.mark.asyncio
async def test_wallet_login_creates_user_once(auth_manager, wallet):
    """Test that the first wallet login creates the account and later ones reuse it."""
    nonce, signature = await signed_challenge(auth_manager, wallet)
    first = await auth_manager.wallet_login(wallet.address, signature, nonce)

    assert first["user"]["wallet_address"] == wallet.address.lower()
    assert first["user"]["email"] is None

    nonce, signature = await signed_challenge(auth_manager, wallet)
    second = await auth_manager.wallet_login(wallet.address, signature, nonce)

    assert second["user"]["id"] == first["user"]["id"]

@pytest.mark.asyncio
async def test_wallet_login_wrong_key_burns_nonce(auth_manager, wallet, other_wallet):
    """Test that a bad signature fails and the nonce cannot be retried."""
    challenge = await auth_manager.generate_nonce(wallet.address)
    bad = sign(other_wallet, challenge["message"])
    good = sign(wallet, challenge["message"])

    with pytest.raises(SignatureInvalid):
        await auth_manager.wallet_login(wallet.address, bad, challenge["nonce"])
    assert await auth_manager.nonces.state(wallet.address) == NonceState.CONSUMED_INVALID

    with pytest.raises(NonceMismatch):
        await auth_manager.wallet_login(wallet.address, good, challenge["nonce"])

@pytest.mark.asyncio
async def test_wallet_login_replay_rejected(auth_manager, wallet):
    """Test that a successful signature cannot be replayed."""
    nonce, signature = await signed_challenge(auth_manager, wallet)
    await auth_manager.wallet_login(wallet.address, signature, nonce)
    assert await auth_manager.nonces.state(wallet.address) == NonceState.CONSUMED_VALID

    with pytest.raises(NonceMismatch):
        await auth_manager.wallet_login(wallet.address, signature, nonce)

@pytest.mark.asyncio
async def test_wallet_login_without_nonce(auth_manager, wallet):
    """Test signing in without requesting a challenge first."""
    message = auth_manager.verifier.challenge_message(wallet.address, "made-up")

    with pytest.raises(NonceMismatch):
        await auth_manager.wallet_login(wallet.address, sign(wallet, message), "made-up")

@pytest.mark.asyncio
async def test_malformed_signature_is_signature_invalid(auth_manager, wallet):
    """Test that garbage signatures surface as SignatureInvalid."""
    challenge = await auth_manager.generate_nonce(wallet.address)

    with pytest.raises(SignatureInvalid):
        await auth_manager.wallet_login(wallet.address, "0xdeadbeef", challenge["nonce"])

@pytest.mark.asyncio
async def test_link_wallet(auth_manager, wallet):
    """Test attaching a wallet to a password account."""
    session = await auth_manager.signup("a@x.com", "longenough1")
    nonce, signature = await signed_challenge(auth_manager, wallet)

    linked = await auth_manager.link_wallet(session["token"], wallet.address, signature, nonce)
    assert linked["user"]["wallet_address"] == wallet.address.lower()
    assert linked["user"]["email"] == "a@x.com"

    # Wallet login now lands in the same account
    nonce, signature = await signed_challenge(auth_manager, wallet)
    login = await auth_manager.wallet_login(wallet.address, signature, nonce)
    assert login["user"]["id"] == session["user"]["id"]

@pytest.mark.asyncio
async def test_relink_releases_previous_wallet(auth_manager, wallet, other_wallet):
    """Test that linking a new wallet detaches the old one."""
    session = await auth_manager.signup("a@x.com", "longenough1")
    nonce, signature = await signed_challenge(auth_manager, wallet)
    await auth_manager.link_wallet(session["token"], wallet.address, signature, nonce)

    nonce, signature = await signed_challenge(auth_manager, other_wallet)
    linked = await auth_manager.link_wallet(session["token"], other_wallet.address, signature, nonce)
    assert linked["user"]["wallet_address"] == other_wallet.address.lower()

    assert await auth_manager.users.get_by_wallet(wallet.address) is None
    owner = await auth_manager.users.get_by_wallet(other_wallet.address)
    assert owner["id"] == session["user"]["id"]

    # The old wallet now signs in to a fresh account of its own
    nonce, signature = await signed_challenge(auth_manager, wallet)
    login = await auth_manager.wallet_login(wallet.address, signature, nonce)
    assert login["user"]["id"] != session["user"]["id"]
    assert login["user"]["wallet_address"] == wallet.address.lower()

@pytest.mark.asyncio
async def test_link_same_wallet_twice(auth_manager, wallet):
    """Test that relinking the current wallet keeps it attached."""
    session = await auth_manager.signup("a@x.com", "longenough1")
    for _ in range(2):
        nonce, signature = await signed_challenge(auth_manager, wallet)
        await auth_manager.link_wallet(session["token"], wallet.address, signature, nonce)

    owner = await auth_manager.users.get_by_wallet(wallet.address)
    assert owner["id"] == session["user"]["id"]

@pytest.mark.asyncio
async def test_link_wallet_owned_by_other_account(auth_manager, wallet):
    """Test that a wallet cannot be linked to two accounts."""
    nonce, signature = await signed_challenge(auth_manager, wallet)
    await auth_manager.wallet_login(wallet.address, signature, nonce)

    session = await auth_manager.signup("a@x.com", "longenough1")
    nonce, signature = await signed_challenge(auth_manager, wallet)
    with pytest.raises(DuplicateAccount):
        await auth_manager.link_wallet(session["token"], wallet.address, signature, nonce)

@pytest.mark.asyncio
async def test_verify_session(auth_manager):
    """Test token verification against stored accounts."""
    session = await auth_manager.signup("a@x.com", "longenough1")

    result = await auth_manager.verify_session(session["token"])
    assert result == {"valid": True, "user_id": session["user"]["id"]}

@pytest.mark.asyncio
async def test_token_for_unknown_user(auth_manager):
    """Test that a well-signed token for a missing account is rejected."""
    token = auth_manager.tokens.issue({"id": "ghost"})

    with pytest.raises(TokenInvalid):
        await auth_manager.authenticate(token)
