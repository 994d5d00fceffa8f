"""Datasets module for managing marketplace dataset listings.

This module provides functionality for:
- Creating and updating listings scoped to their seller
- Keyset-paginated listing queries
- Size-bounded row samples for pre-purchase previews
- Uploading rows and files behind a listing
"""

import asyncio
import logging
import uuid
import weakref
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from itertools import count as counter
from typing import Dict, List, Optional, Any, Tuple

from database import Store, StoreUnavailable
from .exceptions import DatasetError, NotFound, Forbidden, ValidationError
from .files import FileType, classify_file_type, parse_rows
from .metadata import auto_detect_metadata, endpoint_path
from .pagination import encode_cursor, decode_cursor
from .records import DataWarehouse

logger = logging.getLogger(__name__)

LISTINGS = 'listings'
ENDPOINTS = 'endpoints'

LISTING_TYPES = ('api', 'agent')

# User-mutable fields for listings
MUTABLE_FIELDS = {
    'name',
    'description',
    'category',
    'price_per_record',
    'metadata',
    'schema',
    'total_rows',
    'quality_score',
    'content_summary',
    'is_active'
}

# Fields accepted when creating a listing
CREATE_FIELDS = (MUTABLE_FIELDS - {'is_active'}) | {'type'}

QUERY_FILTERS = {'category', 'type', 'search', 'min_price', 'max_price'}

TEXT_LIMITS = {
    'name': 255,
    'description': 2000,
    'category': 100,
    'content_summary': 2000
}

def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec='microseconds')

def _decimal(field: str, value: Any) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number")
    try:
        number = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number")
    if not number.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return number

def _clean_field(field: str, value: Any) -> Any:
    """Validate and normalize one listing field."""
    if field in TEXT_LIMITS:
        if value is None and field != 'name':
            return None
        if not isinstance(value, str):
            raise ValidationError(f"{field} must be a string")
        value = value.strip()
        if field == 'name' and not value:
            raise ValidationError("name must not be empty")
        if len(value) > TEXT_LIMITS[field]:
            raise ValidationError(f"{field} must be at most {TEXT_LIMITS[field]} characters")
        return value

    if field == 'type':
        if value not in LISTING_TYPES:
            raise ValidationError(f"type must be one of {', '.join(LISTING_TYPES)}")
        return value

    if field == 'price_per_record':
        price = _decimal(field, value)
        if price < 0:
            raise ValidationError("price_per_record must not be negative")
        return str(price)

    if field == 'total_rows':
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise ValidationError("total_rows must be a positive integer")
        return value

    if field == 'quality_score':
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError("quality_score must be a number")
        if not 0 <= value <= 1:
            raise ValidationError("quality_score must be between 0 and 1")
        return float(value)

    if field == 'metadata':
        if not isinstance(value, dict):
            raise ValidationError("metadata must be an object")
        return value

    if field == 'schema':
        if value is not None and not isinstance(value, dict):
            raise ValidationError("schema must be an object")
        return value

    if field == 'is_active':
        if not isinstance(value, bool):
            raise ValidationError("is_active must be a boolean")
        return value

    raise ValidationError(f"Unknown field: {field}")

def _clamp(value: Optional[int], default: int, maximum: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("limit must be an integer")
    return max(1, min(value, maximum))

def _sort_key(listing: Dict[str, Any]):
    return (listing['created_at'], listing['id'])

class DatasetCatalog:
    """Manager class for dataset listings and the rows behind them."""

    def __init__(self, store: Store, settings: Optional[Dict[str, Any]] = None):
        """Initialize the catalog.

        Args:
            store: Backing store
            settings: Optional validated settings. If not provided, defaults are used.
        """
        if settings is None:
            # Import here to avoid circular imports
            from config import default_settings
            settings = default_settings()

        self.store = store
        self.warehouse = DataWarehouse(store)
        self.default_price = settings['default_price_per_record']
        self.default_page_size = settings['default_page_size']
        self.max_page_size = settings['max_page_size']
        self.default_sample_size = settings['default_sample_size']
        self.max_sample_size = settings['max_sample_size']
        self._locks = weakref.WeakValueDictionary()

    def _lock_for(self, listing_id: str) -> asyncio.Lock:
        lock = self._locks.get(listing_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[listing_id] = lock
        return lock

    async def _claim_endpoint(self, owner_id: str, name: str, listing_id: str) -> str:
        for attempt in counter(1):
            path = endpoint_path(name, attempt)
            claimed = await self.store.compare_and_swap(
                ENDPOINTS, f"{owner_id}:{path}", None, {'listing_id': listing_id}
            )
            if claimed:
                return path

    async def _release_endpoint(self, owner_id: str, path: str, listing_id: str) -> None:
        try:
            await self.store.delete(
                ENDPOINTS, f"{owner_id}:{path}", expected={'listing_id': listing_id}
            )
        except StoreUnavailable as e:
            logger.warning(f"Could not release endpoint {path} for seller {owner_id}: {e}")

    async def create(self, owner_id: str, request: Dict[str, Any]) -> Dict[str, Any]:
        """Create a new listing.

        Args:
            owner_id: The seller's user id
            request: Listing fields. ``name`` is required. If
                ``metadata.sampleData`` is a list of records, schema, row
                count, summary and quality score are detected from it and
                the sample itself is not stored.

        Returns:
            Dict containing the created listing

        Raises:
            ValidationError: If a field is missing, unknown or out of range
        """
        unknown = set(request) - CREATE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")
        if 'name' not in request:
            raise ValidationError("name is required")

        metadata = request.get('metadata')
        metadata = dict(_clean_field('metadata', metadata if metadata is not None else {}))
        detected = {}
        if 'sampleData' in metadata:
            detected = auto_detect_metadata(metadata.pop('sampleData'))

        fields = {
            'name': request['name'],
            'description': request.get('description'),
            'category': request.get('category'),
            'type': request.get('type') or 'api',
            'price_per_record': (
                request['price_per_record'] if request.get('price_per_record') is not None
                else self.default_price
            ),
            'metadata': metadata,
            'schema': request.get('schema') or detected.get('schema'),
            'total_rows': (
                request['total_rows'] if request.get('total_rows') is not None
                else detected.get('total_rows')
            ),
            'quality_score': (
                request['quality_score'] if request.get('quality_score') is not None
                else detected.get('quality_score')
            ),
            'content_summary': request.get('content_summary') or detected.get('content_summary')
        }
        clean = {field: _clean_field(field, value) for field, value in fields.items()}

        listing_id = str(uuid.uuid4())
        path = await self._claim_endpoint(owner_id, clean['name'], listing_id)
        now = _now()
        listing = {
            'id': listing_id,
            'seller_id': owner_id,
            **clean,
            'endpoint_path': path,
            'probe_endpoint': f"{path}/probe",
            'is_active': True,
            'created_at': now,
            'updated_at': now
        }

        try:
            async with self._lock_for(listing_id):
                await self.store.put(LISTINGS, listing_id, listing)
        except StoreUnavailable:
            await self._release_endpoint(owner_id, path, listing_id)
            raise

        logger.info(f"Created listing {listing_id} at {path} for seller {owner_id}")
        return listing

    async def get(self, listing_id: str) -> Dict[str, Any]:
        """Get a listing by id, active or not.

        Raises:
            NotFound: If no listing has this id
        """
        listing = await self.store.get(LISTINGS, listing_id)
        if listing is None:
            raise NotFound(f"Listing not found: {listing_id}")
        return listing

    async def get_public(self, listing_id: str) -> Dict[str, Any]:
        """Get a listing as public callers see it.

        Raises:
            NotFound: If the listing does not exist or is inactive
        """
        listing = await self.get(listing_id)
        if not listing['is_active']:
            raise NotFound(f"Listing not found: {listing_id}")
        return listing

    async def get_owned(self, owner_id: str, listing_id: str) -> Dict[str, Any]:
        """Get a listing the caller owns.

        Raises:
            NotFound: If no listing has this id
            Forbidden: If the listing belongs to another seller
        """
        listing = await self.get(listing_id)
        if listing['seller_id'] != owner_id:
            raise Forbidden(f"Listing {listing_id} belongs to another seller")
        return listing

    async def _commit(
        self,
        owner_id: str,
        listing_id: str,
        changes: Dict[str, Any]
    ) -> Dict[str, Any]:
        # Callers hold the listing's lock
        while True:
            current = await self.get_owned(owner_id, listing_id)
            updated = {**current, **changes, 'updated_at': _now()}
            if await self.store.compare_and_swap(LISTINGS, listing_id, current, updated):
                return updated

    async def update(
        self,
        owner_id: str,
        listing_id: str,
        patch: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Update mutable fields of a listing.

        Args:
            owner_id: The caller's user id
            listing_id: Listing to update
            patch: Field values to change

        Returns:
            The updated listing

        Raises:
            ValidationError: If the patch names a system field or bad value
            NotFound: If no listing has this id
            Forbidden: If the listing belongs to another seller
        """
        invalid = set(patch) - MUTABLE_FIELDS
        if invalid:
            raise ValidationError(f"Fields are not mutable: {', '.join(sorted(invalid))}")
        changes = {field: _clean_field(field, value) for field, value in patch.items()}

        async with self._lock_for(listing_id):
            listing = await self._commit(owner_id, listing_id, changes)

        logger.info(f"Updated listing {listing_id}: {', '.join(sorted(changes)) or 'no changes'}")
        return listing

    async def deactivate(self, owner_id: str, listing_id: str) -> Dict[str, Any]:
        """Soft-delete a listing."""
        return await self.update(owner_id, listing_id, {'is_active': False})

    async def list_owned(self, owner_id: str) -> List[Dict[str, Any]]:
        """Return every listing of a seller, active or not, newest first."""
        listings = [
            listing for listing in await self.store.scan(LISTINGS)
            if listing['seller_id'] == owner_id
        ]
        return sorted(listings, key=_sort_key, reverse=True)

    def _matches(self, listing: Dict[str, Any], filters: Dict[str, Any]) -> bool:
        if filters.get('category') is not None and listing['category'] != filters['category']:
            return False
        if filters.get('type') is not None and listing['type'] != filters['type']:
            return False

        search = filters.get('search')
        if search:
            needle = search.lower()
            haystack = f"{listing['name']}\n{listing['description'] or ''}".lower()
            if needle not in haystack:
                return False

        price = Decimal(listing['price_per_record'])
        if filters.get('min_price') is not None and price < filters['min_price']:
            return False
        if filters.get('max_price') is not None and price > filters['max_price']:
            return False
        return True

    async def query(
        self,
        owner_id: Optional[str] = None,
        filters: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None
    ) -> Dict[str, Any]:
        """Page through active listings.

        Args:
            owner_id: Restrict to one seller; None searches the whole marketplace
            filters: Any of category, type, search, min_price, max_price
            limit: Page size, clamped to the configured maximum
            cursor: ``next_cursor`` of the previous page

        Returns:
            Dict containing:
                - rows: Listings on this page, oldest first
                - total: Number of listings matching the filters
                - has_more: Whether another page follows
                - next_cursor: Cursor for the next page or None

        Raises:
            ValidationError: On unknown filters, bad prices or a malformed cursor
        """
        filters = {key: value for key, value in (filters or {}).items() if value is not None}
        unknown = set(filters) - QUERY_FILTERS
        if unknown:
            raise ValidationError(f"Unknown filters: {', '.join(sorted(unknown))}")
        for bound in ('min_price', 'max_price'):
            if bound in filters:
                filters[bound] = _decimal(bound, filters[bound])

        limit = _clamp(limit, self.default_page_size, self.max_page_size)
        position = decode_cursor(cursor)

        matching = sorted(
            (
                listing for listing in await self.store.scan(LISTINGS)
                if listing['is_active']
                and (owner_id is None or listing['seller_id'] == owner_id)
                and self._matches(listing, filters)
            ),
            key=_sort_key
        )

        remaining = [
            listing for listing in matching
            if position is None or _sort_key(listing) > position
        ]
        page = remaining[:limit]
        has_more = len(remaining) > limit

        return {
            'rows': page,
            'total': len(matching),
            'has_more': has_more,
            'next_cursor': encode_cursor(*_sort_key(page[-1])) if has_more else None
        }

    def clamp_sample_size(self, limit: Optional[int]) -> int:
        return _clamp(limit, self.default_sample_size, self.max_sample_size)

    async def _sample_rows(self, listing: Dict[str, Any], limit: Optional[int]) -> Dict[str, Any]:
        limit = self.clamp_sample_size(limit)

        available = await self.warehouse.count(listing['id'])
        if listing['total_rows'] is not None:
            available = min(available, listing['total_rows'])

        page = await self.warehouse.rows(listing['id'], limit=min(limit, available))
        return {
            'rows': page,
            'total': available,
            'has_more': available > len(page)
        }

    async def sample(self, listing_id: str, limit: Optional[int] = None) -> Dict[str, Any]:
        """Return a preview of a listing's rows.

        Never returns more than ``limit`` (clamped to the configured maximum)
        or ``total_rows`` rows.

        Raises:
            NotFound: If the listing does not exist or is inactive
        """
        return await self._sample_rows(await self.get_public(listing_id), limit)

    async def preview(
        self,
        owner_id: str,
        listing_id: str,
        limit: Optional[int] = None
    ) -> Dict[str, Any]:
        """Sample a listing the caller owns, active or not.

        Raises:
            NotFound: If no listing has this id
            Forbidden: If the listing belongs to another seller
        """
        return await self._sample_rows(await self.get_owned(owner_id, listing_id), limit)

    async def count(self, owner_id: str) -> int:
        """Number of active listings owned by a seller."""
        return sum(
            1 for listing in await self.store.scan(LISTINGS)
            if listing['seller_id'] == owner_id and listing['is_active']
        )

    async def record_count(self, owner_id: str) -> int:
        """Number of rows stored across a seller's listings."""
        total = 0
        for listing in await self.list_owned(owner_id):
            total += await self.warehouse.count(listing['id'])
        return total

    async def upload_records(
        self,
        owner_id: str,
        listing_id: str,
        records: List[Dict[str, Any]],
        metadata: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Append rows to a listing the caller owns.

        ``total_rows`` is set to the number of rows stored afterwards.

        Returns:
            Dict containing:
                - uploaded: Number of rows appended
                - total_rows: Rows now stored behind the listing

        Raises:
            ValidationError: If records is not a non-empty list of objects
            NotFound: If no listing has this id
            Forbidden: If the listing belongs to another seller
        """
        if not isinstance(records, list) or not records:
            raise ValidationError("records must be a non-empty list")
        if not all(isinstance(record, dict) for record in records):
            raise ValidationError("every record must be an object")
        if metadata is not None and not isinstance(metadata, dict):
            raise ValidationError("metadata must be an object")

        async with self._lock_for(listing_id):
            listing = await self.get_owned(owner_id, listing_id)
            await self.warehouse.append(listing, records, metadata)
            total_rows = await self.warehouse.count(listing_id)
            await self._commit(owner_id, listing_id, {'total_rows': total_rows})

        logger.info(f"Uploaded {len(records)} records to listing {listing_id}")
        return {'uploaded': len(records), 'total_rows': total_rows}

    async def ingest_file(
        self,
        owner_id: str,
        listing_id: str,
        content: bytes,
        mime_type: Optional[str],
        filename: Optional[str] = None
    ) -> Dict[str, Any]:
        """Classify an uploaded file and store its rows behind a listing.

        Returns:
            Dict containing file_type, uploaded and total_rows

        Raises:
            ValidationError: If the file cannot be parsed or has no rows
            plus the ownership errors of :meth:`upload_records`
        """
        result = await self.ingest_files(owner_id, listing_id, [(content, mime_type, filename)])
        return result['files'][0]

    async def ingest_files(
        self,
        owner_id: str,
        listing_id: str,
        files: List[Tuple[bytes, Optional[str], Optional[str]]]
    ) -> Dict[str, Any]:
        """Store the rows of several uploaded files behind one listing.

        Every file is parsed before any row is stored, so one bad file
        rejects the whole upload.

        Args:
            owner_id: The caller's user id
            listing_id: Listing receiving the rows
            files: ``(content, mime_type, filename)`` for each file

        Returns:
            Dict containing:
                - files: Per file filename, file_type, uploaded and total_rows
                - uploaded: Rows appended across all files
                - total_rows: Rows now stored behind the listing

        Raises:
            ValidationError: If there are no files, or one cannot be parsed or has no rows
            plus the ownership errors of :meth:`upload_records`
        """
        if not files:
            raise ValidationError("No files uploaded")

        parsed = []
        for content, mime_type, filename in files:
            file_type = classify_file_type(mime_type)
            records = parse_rows(content, file_type, filename)
            if not records:
                raise ValidationError(f"Uploaded file {filename or '(unnamed)'} contains no rows")
            parsed.append((records, {
                'filename': filename,
                'mime_type': mime_type,
                'file_type': file_type.value,
                'size_bytes': len(content)
            }))

        results = []
        for records, metadata in parsed:
            result = await self.upload_records(owner_id, listing_id, records, metadata)
            results.append({
                'filename': metadata['filename'],
                'file_type': metadata['file_type'],
                **result
            })

        return {
            'files': results,
            'uploaded': sum(result['uploaded'] for result in results),
            'total_rows': results[-1]['total_rows']
        }

# Export public interface
__all__ = [
    'DatasetCatalog',
    'DataWarehouse',
    'FileType',
    'classify_file_type',
    'parse_rows',
    'auto_detect_metadata',
    'MUTABLE_FIELDS',
    'DatasetError',
    'NotFound',
    'Forbidden',
    'ValidationError'
]
