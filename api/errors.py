"""Translation of core error kinds into HTTP responses."""

import logging

from fastapi import HTTPException, status

from auth import AuthError, DuplicateAccount, WeakCredential
from database import StoreUnavailable
from datasets import NotFound, Forbidden, ValidationError

logger = logging.getLogger(__name__)

# Seconds a client should wait before retrying after a store outage
RETRY_AFTER_SECONDS = 1

# Checked in order, subclasses before their bases
ERROR_STATUS = (
    (DuplicateAccount, status.HTTP_409_CONFLICT),
    (WeakCredential, status.HTTP_400_BAD_REQUEST),
    (AuthError, status.HTTP_401_UNAUTHORIZED),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (Forbidden, status.HTTP_404_NOT_FOUND),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (StoreUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE)
)

def http_error(error: Exception) -> HTTPException:
    """Build the HTTPException for an error raised by the core.

    Must be called from inside the ``except`` block handling ``error`` so
    unexpected errors are logged with their traceback.
    """
    for error_type, status_code in ERROR_STATUS:
        if isinstance(error, error_type):
            break
    else:
        logger.exception(f"Unhandled error: {error}")
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error"
        )

    detail = str(error)
    headers = None
    if status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}
    elif status_code == status.HTTP_503_SERVICE_UNAVAILABLE:
        detail = "Store temporarily unavailable"
        headers = {"Retry-After": str(RETRY_AFTER_SECONDS)}
    elif isinstance(error, Forbidden):
        detail = "Listing not found"

    return HTTPException(status_code=status_code, detail=detail, headers=headers)
