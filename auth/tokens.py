"""Bearer session tokens.

Tokens are HS256 JWTs carrying the user id as ``sub``. Validation is
stateless: there is no revocation list, a token simply expires.
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import jwt, JWTError, ExpiredSignatureError

from .exceptions import TokenExpired, TokenInvalid

logger = logging.getLogger(__name__)

DEFAULT_LIFETIME = timedelta(hours=24)
JWT_ALGORITHM = "HS256"

class TokenIssuer:
    """Mints and validates session tokens."""

    def __init__(
        self,
        secret: Optional[str] = None,
        lifetime: timedelta = DEFAULT_LIFETIME,
        algorithm: str = JWT_ALGORITHM
    ):
        """Initialize the issuer.

        Args:
            secret: Signing secret. If empty, a random secret is generated,
                so tokens do not survive a restart.
            lifetime: How long an issued token stays valid
            algorithm: JWT signing algorithm
        """
        if not secret:
            logger.warning("No jwt_secret configured, generating a random secret for this process")
            secret = secrets.token_urlsafe(32)
        self._secret = secret
        self.lifetime = lifetime
        self.algorithm = algorithm

    def issue(self, user: Dict[str, Any], now: Optional[datetime] = None) -> str:
        """Issue a token for ``user``.

        Args:
            user: User dict with at least an ``id``
            now: Issue time, defaults to the current UTC time

        Returns:
            Encoded JWT
        """
        issued_at = now or datetime.now(timezone.utc)
        claims = {
            'sub': user['id'],
            'iat': int(issued_at.timestamp()),
            'exp': int((issued_at + self.lifetime).timestamp())
        }
        if user.get('email'):
            claims['email'] = user['email']
        if user.get('wallet_address'):
            claims['wallet'] = user['wallet_address']

        return jwt.encode(claims, self._secret, algorithm=self.algorithm)

    def decode(self, token: str) -> Dict[str, Any]:
        """Return the verified claims of ``token``.

        Raises:
            TokenExpired: If the token is past its expiry
            TokenInvalid: If the token is malformed or badly signed
        """
        try:
            claims = jwt.decode(token, self._secret, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            raise TokenExpired("Session has expired")
        except JWTError as e:
            raise TokenInvalid(f"Invalid token: {str(e)}")

        if not claims.get('sub'):
            raise TokenInvalid("Invalid token: missing subject")
        return claims

    def validate(self, token: str) -> str:
        """Return the principal id carried by ``token``."""
        return self.decode(token)['sub']
