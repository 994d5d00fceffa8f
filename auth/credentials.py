"""Email/password authentication."""

import logging
from typing import Any, Dict, Optional

from passlib.context import CryptContext

from .exceptions import InvalidCredential, WeakCredential
from .users import UserRepository, normalize_email

logger = logging.getLogger(__name__)

DEFAULT_MIN_PASSWORD_LENGTH = 8

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

class CredentialAuthenticator:
    """Signs up and logs in password accounts."""

    def __init__(
        self,
        users: UserRepository,
        min_password_length: int = DEFAULT_MIN_PASSWORD_LENGTH,
        context: Optional[CryptContext] = None
    ):
        self.users = users
        self.min_password_length = min_password_length
        self.context = context or pwd_context

    async def signup(self, email: str, password: str) -> Dict[str, Any]:
        """Register a new password account.

        Args:
            email: Account email, stored lower-cased
            password: Plain-text password

        Returns:
            The created user record

        Raises:
            WeakCredential: If the password is shorter than the policy allows
                or the email is malformed
            DuplicateAccount: If the email is already registered
        """
        email = normalize_email(email)
        if '@' not in email or email.startswith('@') or email.endswith('@'):
            raise WeakCredential("A valid email address is required")
        if len(password or '') < self.min_password_length:
            raise WeakCredential(
                f"Password must be at least {self.min_password_length} characters"
            )

        return await self.users.create_password_user(email, self.context.hash(password))

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        """Check an email/password pair.

        Raises:
            InvalidCredential: Unknown email, wallet-only account or wrong
                password, indistinguishable to the caller
        """
        user = await self.users.get_by_email(email)

        if user is None or not user.get('password_hash'):
            # Same hashing cost as a real check
            self.context.dummy_verify()
            logger.warning("Rejected login for unknown or password-less account")
            raise InvalidCredential("Invalid email or password")

        if not self.context.verify(password or '', user['password_hash']):
            logger.warning(f"Rejected login for account {user['id']}: wrong password")
            raise InvalidCredential("Invalid email or password")

        return user
