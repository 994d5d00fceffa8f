"""Authentication module for password and wallet accounts.

This module provides:
1. Email/password signup and login
2. Wallet challenge-response login (nonce, EIP-191 signature)
3. Stateless bearer session tokens
4. FastAPI dependency for extracting the bearer token
"""

import logging
from datetime import timedelta
from typing import Optional, Dict, Any

from fastapi import HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from database import Store
from .exceptions import (
    AuthError,
    InvalidCredential,
    DuplicateAccount,
    WeakCredential,
    NonceExpired,
    NonceMismatch,
    SignatureInvalid,
    TokenExpired,
    TokenInvalid
)
from .nonces import NonceRegistry, NonceState
from .signatures import SignatureVerifier
from .credentials import CredentialAuthenticator
from .tokens import TokenIssuer
from .users import UserRepository, public_user

logger = logging.getLogger(__name__)

class AuthManager:
    """Manages accounts, wallet challenges and sessions."""

    def __init__(self, store: Store, settings: Optional[Dict[str, Any]] = None):
        """Initialize auth manager.

        Args:
            store: Backing store for users and nonces
            settings: Optional validated settings. If not provided, defaults are used.
        """
        if settings is None:
            # Import here to avoid circular imports
            from config import default_settings
            settings = default_settings()

        self.users = UserRepository(store)
        self.nonces = NonceRegistry(
            store, ttl=timedelta(minutes=settings['nonce_ttl_minutes'])
        )
        self.verifier = SignatureVerifier(settings['auth_domain'])
        self.credentials = CredentialAuthenticator(
            self.users, min_password_length=settings['min_password_length']
        )
        self.tokens = TokenIssuer(
            settings['jwt_secret'],
            lifetime=timedelta(hours=settings['token_lifetime_hours']),
            algorithm=settings['jwt_algorithm']
        )

    def _session(self, user: Dict[str, Any]) -> Dict[str, Any]:
        return {
            'user': public_user(user),
            'token': self.tokens.issue(user)
        }

    async def signup(self, email: str, password: str) -> Dict[str, Any]:
        """Create a password account and open a session.

        Returns:
            Dict containing:
                - user: The new user (no credential material)
                - token: Bearer session token

        Raises:
            WeakCredential: If the password is too short
            DuplicateAccount: If the email is taken
        """
        user = await self.credentials.signup(email, password)
        logger.info(f"Signed up account {user['id']}")
        return self._session(user)

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        """Log in with email and password.

        Raises:
            InvalidCredential: On unknown email or wrong password
        """
        user = await self.credentials.login(email, password)
        logger.info(f"Password login for account {user['id']}")
        return self._session(user)

    async def generate_nonce(self, wallet_address: str) -> Dict[str, Any]:
        """Issue a login challenge for a wallet.

        Returns:
            Dict containing:
                - nonce: Challenge value
                - message: Exact text the wallet must sign
                - wallet_address: Normalized address
                - expires_at: ISO expiry timestamp
        """
        issued = await self.nonces.generate(wallet_address)
        return {
            'nonce': issued['nonce'],
            'message': self.verifier.challenge_message(
                issued['wallet_address'], issued['nonce']
            ),
            'wallet_address': issued['wallet_address'],
            'expires_at': issued['expires_at']
        }

    async def _redeem_signature(
        self,
        wallet_address: str,
        signature: str,
        nonce: str
    ) -> None:
        valid = self.verifier.verify(wallet_address, nonce, signature)

        # The nonce is burned whether or not the signature verified
        await self.nonces.redeem(wallet_address, nonce, valid=valid)

        if not valid:
            logger.warning(f"Rejected wallet signature for {wallet_address}")
            raise SignatureInvalid("Signature was not produced by this wallet")

    async def wallet_login(
        self,
        wallet_address: str,
        signature: str,
        nonce: str
    ) -> Dict[str, Any]:
        """Log in with a signed wallet challenge.

        Creates the wallet account on first successful login.

        Raises:
            NonceMismatch: No live nonce matches
            NonceExpired: The nonce is past its TTL
            SignatureInvalid: The signature did not come from the wallet
        """
        await self._redeem_signature(wallet_address, signature, nonce)
        user = await self.users.get_or_create_wallet_user(wallet_address)
        logger.info(f"Wallet login for account {user['id']}")
        return self._session(user)

    async def authenticate(self, token: str) -> Dict[str, Any]:
        """Resolve a bearer token to its user record.

        Raises:
            TokenExpired: If the token has expired
            TokenInvalid: If the token is malformed or names no user
        """
        user_id = self.tokens.validate(token)
        user = await self.users.get_by_id(user_id)
        if user is None:
            raise TokenInvalid("Token does not belong to a known account")
        return user

    async def link_wallet(
        self,
        token: str,
        wallet_address: str,
        signature: str,
        nonce: str
    ) -> Dict[str, Any]:
        """Attach a wallet to the authenticated account.

        Raises:
            DuplicateAccount: If the wallet belongs to another account
            plus every error of :meth:`authenticate` and :meth:`wallet_login`
        """
        user = await self.authenticate(token)
        await self._redeem_signature(wallet_address, signature, nonce)
        updated = await self.users.attach_wallet(user['id'], wallet_address)
        return {'user': public_user(updated)}

    async def verify_session(self, token: str) -> Dict[str, Any]:
        """Check a token and report its principal."""
        user = await self.authenticate(token)
        return {'valid': True, 'user_id': user['id']}

# FastAPI security scheme
auth_scheme = HTTPBearer(
    auto_error=False,
    description="JWT Bearer token required"
)

async def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(auth_scheme)
) -> str:
    """FastAPI dependency returning the raw bearer token.

    Raises:
        HTTPException: 401 if no bearer credential was sent
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"}
        )
    return credentials.credentials

# Export public interface
__all__ = [
    'AuthManager',
    'NonceRegistry',
    'NonceState',
    'SignatureVerifier',
    'CredentialAuthenticator',
    'TokenIssuer',
    'UserRepository',
    'public_user',
    'auth_scheme',
    'get_bearer_token',
    'AuthError',
    'InvalidCredential',
    'DuplicateAccount',
    'WeakCredential',
    'NonceExpired',
    'NonceMismatch',
    'SignatureInvalid',
    'TokenExpired',
    'TokenInvalid'
]
