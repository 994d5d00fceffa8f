"""Dataset listing API endpoints."""

from decimal import Decimal
from typing import Optional, List, Dict, Any

from fastapi import APIRouter, Query, status, Security, Depends
from pydantic import BaseModel, ConfigDict, Field

from auth import get_bearer_token
from gateway import QueryGateway
from ..dependencies import get_gateway
from ..errors import http_error

router = APIRouter(
    prefix="/datasets",
    tags=["Datasets"]
)

# Model definitions
class CreateDatasetRequest(BaseModel):
    """Request model for creating a listing."""
    model_config = ConfigDict(extra='forbid', populate_by_name=True)

    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    category: Optional[str] = Field(None, max_length=100)
    type: Optional[str] = Field(None, pattern=r'^(api|agent)$')
    price_per_record: Optional[Decimal] = Field(None, ge=0)
    metadata: Optional[Dict[str, Any]] = None
    dataset_schema: Optional[Dict[str, Any]] = Field(None, alias='schema')
    total_rows: Optional[int] = Field(None, gt=0)
    quality_score: Optional[float] = Field(None, ge=0, le=1)
    content_summary: Optional[str] = Field(None, max_length=2000)

class UpdateDatasetRequest(BaseModel):
    """Request model for updating a listing."""
    model_config = ConfigDict(extra='forbid', populate_by_name=True)

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    category: Optional[str] = Field(None, max_length=100)
    price_per_record: Optional[Decimal] = Field(None, ge=0)
    metadata: Optional[Dict[str, Any]] = None
    dataset_schema: Optional[Dict[str, Any]] = Field(None, alias='schema')
    total_rows: Optional[int] = Field(None, gt=0)
    quality_score: Optional[float] = Field(None, ge=0, le=1)
    content_summary: Optional[str] = Field(None, max_length=2000)
    is_active: Optional[bool] = None

def listing_filters(
    category: Optional[str] = Query(None),
    type: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    min_price: Optional[Decimal] = Query(None),
    max_price: Optional[Decimal] = Query(None)
) -> Dict[str, Any]:
    """Query parameters shared by every listing search."""
    return {
        'category': category,
        'type': type,
        'search': search,
        'min_price': min_price,
        'max_price': max_price
    }

""" Public Endpoints - No Authentication Required """
@router.get("")
async def discover_datasets(
    filters: Dict[str, Any] = Depends(listing_filters),
    limit: Optional[int] = Query(None),
    cursor: Optional[str] = Query(None),
    gateway: QueryGateway = Depends(get_gateway)
) -> Dict[str, Any]:
    """Search active listings across all sellers."""
    try:
        return await gateway.discover(filters, limit, cursor)
    except Exception as e:
        raise http_error(e)

@router.get("/my")
async def my_datasets(
    token: str = Security(get_bearer_token),
    gateway: QueryGateway = Depends(get_gateway)
) -> Dict[str, List[Dict[str, Any]]]:
    """Get every listing of the current seller, newest first."""
    try:
        return {"datasets": await gateway.my_datasets(token)}
    except Exception as e:
        raise http_error(e)

@router.get("/{listing_id}/probe")
async def probe_dataset(
    listing_id: str,
    gateway: QueryGateway = Depends(get_gateway)
) -> Dict[str, Any]:
    """Get the public description of an active listing."""
    try:
        return await gateway.probe(listing_id)
    except Exception as e:
        raise http_error(e)

@router.get("/{listing_id}")
async def get_dataset(
    listing_id: str,
    gateway: QueryGateway = Depends(get_gateway)
) -> Dict[str, Any]:
    """Get a single active listing by ID."""
    try:
        return await gateway.probe(listing_id)
    except Exception as e:
        raise http_error(e)

""" Protected Endpoints - Authentication Required """
@router.get("/{listing_id}/sample")
async def preview_dataset(
    listing_id: str,
    limit: Optional[int] = Query(None),
    token: str = Security(get_bearer_token),
    gateway: QueryGateway = Depends(get_gateway)
) -> Dict[str, Any]:
    """Preview stored rows of a listing owned by the current seller.

    Works on inactive listings too, so sellers can check an upload before
    publishing it.
    """
    try:
        return await gateway.preview(token, listing_id, limit)
    except Exception as e:
        raise http_error(e)

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_dataset(
    request: CreateDatasetRequest,
    token: str = Security(get_bearer_token),
    gateway: QueryGateway = Depends(get_gateway)
) -> Dict[str, Any]:
    """Create a new listing for the current seller."""
    try:
        return await gateway.create_dataset(
            token,
            request.model_dump(by_alias=True, exclude_none=True)
        )
    except Exception as e:
        raise http_error(e)

@router.put("/{listing_id}")
async def update_dataset(
    listing_id: str,
    request: UpdateDatasetRequest,
    token: str = Security(get_bearer_token),
    gateway: QueryGateway = Depends(get_gateway)
) -> Dict[str, Any]:
    """Update a listing owned by the current seller."""
    try:
        return await gateway.update_dataset(
            token,
            listing_id,
            request.model_dump(by_alias=True, exclude_unset=True)
        )
    except Exception as e:
        raise http_error(e)

@router.delete("/{listing_id}")
async def deactivate_dataset(
    listing_id: str,
    token: str = Security(get_bearer_token),
    gateway: QueryGateway = Depends(get_gateway)
) -> Dict[str, Any]:
    """Deactivate a listing owned by the current seller."""
    try:
        return await gateway.deactivate_dataset(token, listing_id)
    except Exception as e:
        raise http_error(e)

# Export the router
__all__ = ['router']
