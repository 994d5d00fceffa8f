"""Wallet signature verification.

Wallets sign the challenge message with EIP-191 ``personal_sign``; the
signer address is recovered from the signature and compared with the
claimed wallet.
"""

import logging

from eth_account import Account
from eth_account.messages import encode_defunct

logger = logging.getLogger(__name__)

DEFAULT_DOMAIN = 'localhost:8000'

class SignatureVerifier:
    """Builds challenge messages and checks wallet signatures over them."""

    def __init__(self, domain: str = DEFAULT_DOMAIN):
        self.domain = domain

    def challenge_message(self, wallet_address: str, nonce: str) -> str:
        """Return the exact text a wallet must sign for ``nonce``."""
        return (
            f"Sign in to {self.domain}\n"
            "\n"
            f"Wallet Address: {wallet_address.strip().lower()}\n"
            f"Nonce: {nonce}\n"
            "\n"
            "This request will not trigger a blockchain transaction or cost any gas fees."
        )

    def recover_signer(self, wallet_address: str, nonce: str, signature: str) -> str:
        """Recover the address that signed the challenge for ``nonce``.

        Raises:
            ValueError: or any eth_account decoding error for malformed input
        """
        message = encode_defunct(text=self.challenge_message(wallet_address, nonce))
        return Account.recover_message(message, signature=signature)

    def verify(self, wallet_address: str, nonce: str, signature: str) -> bool:
        """Check that ``signature`` over the challenge came from ``wallet_address``.

        Never raises: malformed signatures verify as False.
        """
        if not wallet_address or not nonce or not signature:
            return False

        try:
            signer = self.recover_signer(wallet_address, nonce, signature)
        except Exception as e:
            logger.warning(f"Rejected malformed signature for {wallet_address}: {e}")
            return False

        return signer.lower() == wallet_address.strip().lower()
