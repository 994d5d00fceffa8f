"""Dataset catalog error kinds."""

class DatasetError(Exception):
    """Base exception for dataset operations."""
    pass

class NotFound(DatasetError):
    """Raised when a listing does not exist or is not visible to the caller."""
    pass

class Forbidden(DatasetError):
    """Raised when a listing exists but belongs to another principal."""
    pass

class ValidationError(DatasetError):
    """Raised when a request has the wrong shape or out-of-range values."""
    pass
