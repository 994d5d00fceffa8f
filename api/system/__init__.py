"""System health endpoints."""

import logging
from datetime import datetime, timezone
from typing import Dict, Any

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel

from database import StoreUnavailable
from gateway import QueryGateway
from ..dependencies import get_gateway

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["System"]
)

class SystemHealth(BaseModel):
    """Model for system health data."""
    status: str
    store_status: str
    timestamp: datetime

@router.get("/health", response_model=SystemHealth)
async def health(
    response: Response,
    gateway: QueryGateway = Depends(get_gateway)
) -> Dict[str, Any]:
    """Report whether the backing store answers."""
    store_status = "ok"
    try:
        await gateway.catalog.store.get('health', 'ping')
    except StoreUnavailable as e:
        logger.error(f"Health check failed: {e}")
        store_status = "unavailable"
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return {
        "status": "ok" if store_status == "ok" else "degraded",
        "store_status": store_status,
        "timestamp": datetime.now(timezone.utc)
    }

# Export the router
__all__ = ['router']
