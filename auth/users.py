"""User records and their lookup indexes.

Users live under ``users/<id>``. Two index namespaces map a normalized
email or wallet address to the owning user id; index entries are claimed
with insert-if-absent so two concurrent signups cannot share an email.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from database import Store, StoreUnavailable
from .exceptions import DuplicateAccount

logger = logging.getLogger(__name__)

USERS = 'users'
EMAIL_INDEX = 'user_emails'
WALLET_INDEX = 'user_wallets'

# Never leaves the auth package
PRIVATE_FIELDS = {'password_hash'}

def normalize_email(email: str) -> str:
    return (email or '').strip().lower()

def normalize_wallet(wallet_address: str) -> str:
    return (wallet_address or '').strip().lower()

def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    """Return the user without credential material."""
    return {k: v for k, v in user.items() if k not in PRIVATE_FIELDS}

class UserRepository:
    """Reads and writes user records."""

    def __init__(self, store: Store):
        self.store = store

    def _new_user(
        self,
        email: Optional[str] = None,
        password_hash: Optional[str] = None,
        wallet_address: Optional[str] = None
    ) -> Dict[str, Any]:
        now = datetime.now(timezone.utc).isoformat()
        return {
            'id': str(uuid.uuid4()),
            'email': email,
            'password_hash': password_hash,
            'wallet_address': wallet_address,
            'created_at': now,
            'updated_at': now
        }

    async def get_by_id(self, user_id: str) -> Optional[Dict[str, Any]]:
        return await self.store.get(USERS, user_id)

    async def _get_indexed(self, namespace: str, key: str) -> Optional[Dict[str, Any]]:
        entry = await self.store.get(namespace, key)
        if entry is None:
            return None
        return await self.get_by_id(entry['user_id'])

    async def get_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        return await self._get_indexed(EMAIL_INDEX, normalize_email(email))

    async def get_by_wallet(self, wallet_address: str) -> Optional[Dict[str, Any]]:
        return await self._get_indexed(WALLET_INDEX, normalize_wallet(wallet_address))

    async def _claim(self, namespace: str, key: str, user_id: str) -> bool:
        """Point an index entry at ``user_id`` if it is free or already ours."""
        if await self.store.compare_and_swap(namespace, key, None, {'user_id': user_id}):
            return True
        entry = await self.store.get(namespace, key)
        return entry is not None and entry['user_id'] == user_id

    async def _discard(self, user: Dict[str, Any]) -> None:
        """Remove a user record that lost its index claim."""
        try:
            await self.store.delete(USERS, user['id'], expected=user)
        except StoreUnavailable as e:
            # Unreferenced by any index, so never reachable
            logger.warning(f"Could not remove unclaimed account {user['id']}: {e}")

    async def create_password_user(self, email: str, password_hash: str) -> Dict[str, Any]:
        """Create a password account.

        The record is written before the email index is claimed, so a
        failed write never leaves the email pointing at a missing user.

        Raises:
            DuplicateAccount: If the email is already registered
        """
        user = self._new_user(email=normalize_email(email), password_hash=password_hash)
        await self.store.put(USERS, user['id'], user)

        claimed = await self.store.compare_and_swap(
            EMAIL_INDEX, user['email'], None, {'user_id': user['id']}
        )
        if not claimed:
            await self._discard(user)
            raise DuplicateAccount("An account with this email already exists")

        logger.info(f"Created password account {user['id']}")
        return user

    async def get_or_create_wallet_user(self, wallet_address: str) -> Dict[str, Any]:
        """Return the user owning ``wallet_address``, creating one on first login."""
        wallet = normalize_wallet(wallet_address)
        existing = await self.get_by_wallet(wallet)
        if existing is not None:
            return existing

        user = self._new_user(wallet_address=wallet)
        # Record before index: a claimed index always resolves to a user
        await self.store.put(USERS, user['id'], user)

        claimed = await self.store.compare_and_swap(
            WALLET_INDEX, wallet, None, {'user_id': user['id']}
        )
        if not claimed:
            # A concurrent login for the same wallet won; use its account
            await self._discard(user)
            winner = await self.get_by_wallet(wallet)
            if winner is None:
                raise DuplicateAccount("Wallet account is being created concurrently")
            return winner

        logger.info(f"Created wallet account {user['id']} for {wallet}")
        return user

    async def attach_wallet(self, user_id: str, wallet_address: str) -> Dict[str, Any]:
        """Link a wallet to an existing account, replacing any previous wallet.

        The previous wallet's index entry is released, so it no longer
        logs in to this account and can be linked elsewhere.

        Raises:
            DuplicateAccount: If the wallet already belongs to another account
        """
        wallet = normalize_wallet(wallet_address)
        if not await self._claim(WALLET_INDEX, wallet, user_id):
            raise DuplicateAccount("This wallet is linked to another account")

        while True:
            current = await self.get_by_id(user_id)
            previous = current.get('wallet_address')
            if previous and previous != wallet:
                await self.store.delete(WALLET_INDEX, previous, expected={'user_id': user_id})

            updated = dict(current)
            updated['wallet_address'] = wallet
            updated['updated_at'] = datetime.now(timezone.utc).isoformat()
            if await self.store.compare_and_swap(USERS, user_id, current, updated):
                logger.info(f"Linked wallet {wallet} to account {user_id}")
                return updated
