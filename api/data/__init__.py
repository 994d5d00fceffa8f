"""Row upload and seller data endpoints.

The public seller routes are also served under ``/data/producer``; both
nouns address the same catalog.
"""

import json
import logging
from typing import Optional, List, Dict, Any

from fastapi import (
    APIRouter, HTTPException, Query, Request, status, Security, Depends,
    File, Form, UploadFile
)
from pydantic import BaseModel, Field

from auth import get_bearer_token
from gateway import QueryGateway
from ..datasets import listing_filters
from ..dependencies import get_gateway, get_settings
from ..errors import http_error

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/data",
    tags=["Data"]
)

SELLER_NOUNS = ('seller', 'producer')
MAX_FILES = 10

class UploadRecordsRequest(BaseModel):
    """Request model for uploading rows."""
    dataset_listing_id: str = Field(..., min_length=1)
    records: List[Dict[str, Any]] = Field(..., min_length=1)
    metadata: Optional[Dict[str, Any]] = None

def _too_large(limit: int) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
        detail=f"Upload exceeds {limit} bytes"
    )

""" Protected Endpoints - Authentication Required """
@router.post("/upload", status_code=status.HTTP_201_CREATED)
async def upload_records(
    request: UploadRecordsRequest,
    http_request: Request,
    token: str = Security(get_bearer_token),
    gateway: QueryGateway = Depends(get_gateway),
    settings: Dict[str, Any] = Depends(get_settings)
) -> Dict[str, Any]:
    """Append rows to a listing owned by the current seller."""
    content_length = http_request.headers.get('content-length')
    if content_length and content_length.isdigit() and int(content_length) > settings['max_upload_bytes']:
        raise _too_large(settings['max_upload_bytes'])

    try:
        return await gateway.upload_records(
            token,
            request.dataset_listing_id,
            request.records,
            request.metadata
        )
    except Exception as e:
        raise http_error(e)

@router.post("/files", status_code=status.HTTP_201_CREATED)
async def upload_files(
    dataset_listing_id: str = Form(...),
    files: Optional[List[UploadFile]] = File(None),
    file: Optional[UploadFile] = File(None),
    token: str = Security(get_bearer_token),
    gateway: QueryGateway = Depends(get_gateway),
    settings: Dict[str, Any] = Depends(get_settings)
) -> Dict[str, Any]:
    """Store the rows of up to ten uploaded files behind a listing.

    Files are sent as repeated ``files`` parts; a single ``file`` part is
    also accepted.
    """
    uploads = list(files or []) + ([file] if file is not None else [])
    if not uploads:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No files uploaded"
        )
    if len(uploads) > MAX_FILES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"At most {MAX_FILES} files per upload"
        )

    limit = settings['max_upload_bytes']
    contents = []
    received = 0
    for upload in uploads:
        content = await upload.read(limit - received + 1)
        received += len(content)
        if received > limit:
            raise _too_large(limit)
        contents.append((content, upload.content_type, upload.filename))
    logger.info(f"Received {len(contents)} files ({received} bytes) for listing {dataset_listing_id}")

    try:
        return await gateway.upload_files(token, dataset_listing_id, contents)
    except Exception as e:
        raise http_error(e)

@router.get("/count")
async def count(
    token: str = Security(get_bearer_token),
    gateway: QueryGateway = Depends(get_gateway)
) -> Dict[str, int]:
    """Dashboard counts for the current seller."""
    try:
        return await gateway.count(token)
    except Exception as e:
        raise http_error(e)

""" Public Endpoints - No Authentication Required """
async def query_seller(
    seller_id: str,
    filters: Dict[str, Any] = Depends(listing_filters),
    limit: Optional[int] = Query(None),
    cursor: Optional[str] = Query(None),
    gateway: QueryGateway = Depends(get_gateway)
) -> Dict[str, Any]:
    """Page through a seller's active listings."""
    try:
        return await gateway.query(seller_id, filters, limit, cursor)
    except Exception as e:
        raise http_error(e)

async def sample_seller(
    seller_id: str,
    dataset_listing_id: Optional[str] = Query(None),
    limit: Optional[int] = Query(None),
    gateway: QueryGateway = Depends(get_gateway)
) -> Dict[str, Any]:
    """Preview rows of a seller's listing, or of all their active listings."""
    try:
        return await gateway.sample(seller_id, dataset_listing_id, limit)
    except Exception as e:
        raise http_error(e)

def _parse_filters(filters: Optional[str]) -> Dict[str, Any]:
    if not filters:
        return {}
    try:
        parsed = json.loads(filters)
    except json.JSONDecodeError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="filters must be a JSON object"
        )
    if not isinstance(parsed, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="filters must be a JSON object"
        )
    return parsed

async def match_seller(
    seller_id: str,
    required_fields: Optional[List[str]] = Query(None),
    filters: Optional[str] = Query(None),
    sample_size: Optional[int] = Query(None),
    gateway: QueryGateway = Depends(get_gateway)
) -> Dict[str, Any]:
    """Ask whether a seller holds rows with the given fields and values.

    ``required_fields`` may repeat or be comma-separated.
    """
    fields = [
        field.strip()
        for value in (required_fields or [])
        for field in value.split(',')
        if field.strip()
    ]
    parsed_filters = _parse_filters(filters)

    try:
        return await gateway.match(seller_id, fields, parsed_filters, sample_size)
    except Exception as e:
        raise http_error(e)

for noun in SELLER_NOUNS:
    router.add_api_route(f"/{noun}/{{seller_id}}/query", query_seller, methods=["GET"])
    router.add_api_route(f"/{noun}/{{seller_id}}/sample", sample_seller, methods=["GET"])
    router.add_api_route(f"/{noun}/{{seller_id}}/match", match_seller, methods=["GET"])

# Export the router
__all__ = ['router']
