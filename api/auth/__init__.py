"""Authentication API endpoints."""

from typing import Any, Dict

from fastapi import APIRouter, status, Depends, Security
from pydantic import BaseModel, Field

from auth import get_bearer_token
from gateway import QueryGateway
from ..dependencies import get_gateway
from ..errors import http_error

router = APIRouter(
    prefix="/auth",
    tags=["Authentication"]
)

WALLET_PATTERN = r'^0x[0-9a-fA-F]{40}$'

class CredentialRequest(BaseModel):
    """Request model for signup and login."""
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., max_length=1024)

class NonceRequest(BaseModel):
    """Request model for a wallet challenge."""
    wallet_address: str = Field(..., pattern=WALLET_PATTERN)

class NonceResponse(BaseModel):
    """Response model for a wallet challenge."""
    nonce: str
    message: str
    wallet_address: str
    expires_at: str

class WalletLoginRequest(BaseModel):
    """Request model for a signed wallet challenge."""
    wallet_address: str = Field(..., pattern=WALLET_PATTERN)
    signature: str = Field(..., min_length=1)
    nonce: str = Field(..., min_length=1)

@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(
    request: CredentialRequest,
    gateway: QueryGateway = Depends(get_gateway)
) -> Dict[str, Any]:
    """Create a password account."""
    try:
        return await gateway.auth.signup(request.email, request.password)
    except Exception as e:
        raise http_error(e)

@router.post("/login")
async def login(
    request: CredentialRequest,
    gateway: QueryGateway = Depends(get_gateway)
) -> Dict[str, Any]:
    """Log in with email and password."""
    try:
        return await gateway.auth.login(request.email, request.password)
    except Exception as e:
        raise http_error(e)

@router.post("/wallet/nonce", response_model=NonceResponse)
async def wallet_nonce(
    request: NonceRequest,
    gateway: QueryGateway = Depends(get_gateway)
):
    """Issue a challenge for a wallet to sign."""
    try:
        return await gateway.auth.generate_nonce(request.wallet_address)
    except Exception as e:
        raise http_error(e)

@router.post("/wallet/login")
async def wallet_login(
    request: WalletLoginRequest,
    gateway: QueryGateway = Depends(get_gateway)
) -> Dict[str, Any]:
    """Verify a signed challenge and open a session."""
    try:
        return await gateway.auth.wallet_login(
            request.wallet_address,
            request.signature,
            request.nonce
        )
    except Exception as e:
        raise http_error(e)

@router.post("/wallet/link")
async def wallet_link(
    request: WalletLoginRequest,
    token: str = Security(get_bearer_token),
    gateway: QueryGateway = Depends(get_gateway)
) -> Dict[str, Any]:
    """Link a wallet to the current account."""
    try:
        return await gateway.auth.link_wallet(
            token,
            request.wallet_address,
            request.signature,
            request.nonce
        )
    except Exception as e:
        raise http_error(e)

@router.get("/verify")
async def verify_token(
    token: str = Security(get_bearer_token),
    gateway: QueryGateway = Depends(get_gateway)
) -> Dict[str, Any]:
    """Verify the current session token."""
    try:
        return await gateway.auth.verify_session(token)
    except Exception as e:
        raise http_error(e)

# Export the router
__all__ = ['router']
