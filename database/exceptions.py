"""Database exceptions."""

class DatabaseError(Exception):
    """Base exception for store operations."""
    pass

class StoreUnavailable(DatabaseError):
    """Raised when the backing store times out or cannot be reached.

    This is the only error kind a caller may retry, and only for
    idempotent reads.
    """

    def __init__(self, message: str, operation: str = None):
        self.operation = operation
        super().__init__(message)

class DatabaseSchemaError(DatabaseError):
    """Raised when schema initialization or migration fails."""
    pass
