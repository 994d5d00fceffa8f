"""Shared FastAPI dependencies."""

from typing import Any, Dict

from fastapi import HTTPException, Request, status

from gateway import QueryGateway

def get_gateway(request: Request) -> QueryGateway:
    """Return the gateway the application was started with."""
    gateway = getattr(request.app.state, 'gateway', None)
    if gateway is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is starting"
        )
    return gateway

def get_settings(request: Request) -> Dict[str, Any]:
    return request.app.state.settings
