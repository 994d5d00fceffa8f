"""Authentication error kinds."""

class AuthError(Exception):
    """Base exception for authentication errors."""
    pass

class InvalidCredential(AuthError):
    """Raised on unknown email or wrong password (never says which)."""
    pass

class DuplicateAccount(AuthError):
    """Raised when signing up with an email that is already registered."""
    pass

class WeakCredential(AuthError):
    """Raised when a password does not meet the length policy."""
    pass

class NonceExpired(AuthError):
    """Raised when a challenge nonce is older than its TTL."""
    pass

class NonceMismatch(AuthError):
    """Raised when no live nonce matches the submitted one."""
    pass

class SignatureInvalid(AuthError):
    """Raised when a signature was not produced by the claimed wallet."""
    pass

class TokenExpired(AuthError):
    """Raised when a session token is past its expiry."""
    pass

class TokenInvalid(AuthError):
    """Raised when a session token is malformed or badly signed."""
    pass
