"""Single-use wallet login challenges.

Each wallet has at most one live nonce. Issuing a new one replaces the
previous nonce; consuming it is a compare-and-swap on the stored record so
only one of several concurrent submissions can win.
"""

import asyncio
import logging
import secrets
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict

from database import Store
from .exceptions import NonceExpired, NonceMismatch

logger = logging.getLogger(__name__)

NAMESPACE = 'nonces'
NONCE_BYTES = 32
DEFAULT_TTL = timedelta(minutes=5)

class NonceState(str, Enum):
    """Lifecycle of the challenge stored for a wallet."""
    NO_NONCE = 'no_nonce'
    NONCE_ISSUED = 'nonce_issued'
    CONSUMED_VALID = 'consumed_valid'
    CONSUMED_INVALID = 'consumed_invalid'
    EXPIRED = 'expired'

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def _wallet_key(wallet_address: str) -> str:
    return wallet_address.strip().lower()

class NonceRegistry:
    """Issues and consumes wallet login nonces."""

    def __init__(
        self,
        store: Store,
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], datetime] = utcnow
    ):
        """Initialize the registry.

        Args:
            store: Backing store
            ttl: How long an issued nonce stays valid
            clock: Returns the current aware UTC time
        """
        self.store = store
        self.ttl = ttl
        self.clock = clock

    async def generate(self, wallet_address: str) -> Dict[str, Any]:
        """Issue a fresh nonce for a wallet, replacing any previous one.

        Args:
            wallet_address: The wallet that will sign the challenge

        Returns:
            Dict containing:
                - nonce: URL-safe random string
                - wallet_address: Normalized wallet address
                - issued_at: ISO timestamp
                - expires_at: ISO timestamp
        """
        issued_at = self.clock()
        record = {
            'nonce': secrets.token_urlsafe(NONCE_BYTES),
            'wallet_address': _wallet_key(wallet_address),
            'issued_at': issued_at.isoformat(),
            'expires_at': (issued_at + self.ttl).isoformat(),
            'state': NonceState.NONCE_ISSUED.value
        }
        await self.store.put(NAMESPACE, record['wallet_address'], record)
        logger.info(f"Issued nonce for {record['wallet_address']}, expires {record['expires_at']}")

        return {
            'nonce': record['nonce'],
            'wallet_address': record['wallet_address'],
            'issued_at': record['issued_at'],
            'expires_at': record['expires_at']
        }

    async def consume(self, wallet_address: str, nonce: str, valid: bool = True) -> bool:
        """Consume a nonce if it is live and matches.

        Args:
            wallet_address: Wallet the nonce was issued to
            nonce: Submitted nonce value
            valid: Whether the accompanying signature verified; recorded
                as the terminal state

        Returns:
            True for exactly one caller per issued nonce; False otherwise,
            with the stored record left untouched
        """
        try:
            await self.redeem(wallet_address, nonce, valid)
        except (NonceExpired, NonceMismatch):
            return False
        return True

    async def redeem(self, wallet_address: str, nonce: str, valid: bool = True) -> None:
        """Consume a nonce or raise why it could not be consumed.

        Raises:
            NonceMismatch: No nonce, a different nonce, or already consumed
            NonceExpired: The nonce matched but is past its TTL
        """
        key = _wallet_key(wallet_address)
        record = await self.store.get(NAMESPACE, key)

        if (
            record is None
            or record['state'] != NonceState.NONCE_ISSUED.value
            or not secrets.compare_digest(record['nonce'].encode(), (nonce or '').encode())
        ):
            raise NonceMismatch("No matching nonce for this wallet")

        if datetime.fromisoformat(record['expires_at']) <= self.clock():
            raise NonceExpired("Nonce has expired")

        consumed = dict(record)
        consumed['state'] = (
            NonceState.CONSUMED_VALID.value if valid else NonceState.CONSUMED_INVALID.value
        )
        consumed['consumed_at'] = self.clock().isoformat()

        # Completes even if the calling request is cancelled
        swapped = await asyncio.shield(
            self.store.compare_and_swap(NAMESPACE, key, record, consumed)
        )
        if not swapped:
            raise NonceMismatch("Nonce was already consumed")

    async def state(self, wallet_address: str) -> NonceState:
        """Return the lifecycle state of the wallet's current nonce."""
        record = await self.store.get(NAMESPACE, _wallet_key(wallet_address))
        if record is None:
            return NonceState.NO_NONCE

        state = NonceState(record['state'])
        if (
            state is NonceState.NONCE_ISSUED
            and datetime.fromisoformat(record['expires_at']) <= self.clock()
        ):
            return NonceState.EXPIRED
        return state
