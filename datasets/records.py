"""Row storage behind dataset listings.

Each row is its own entry under ``records/<listing_id>:<seq>``. Sequence
numbers are reserved per listing with compare-and-swap, so concurrent
uploads never collide and rows read back in upload order. Samples and
counts are bounded reads over the listing's key range.
"""

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from database import Store
from .metadata import is_present

logger = logging.getLogger(__name__)

NAMESPACE = 'records'
SEQUENCES = 'record_sequences'
DEFAULT_MATCH_SAMPLE_SIZE = 10

# Rows written per store call
BATCH_SIZE = 1000

def _prefix(listing_id: str) -> str:
    return f"{listing_id}:"

def _row_key(listing_id: str, seq: int) -> str:
    return f"{listing_id}:{seq:012d}"

class DataWarehouse:
    """Stores and searches the rows uploaded for listings."""

    def __init__(self, store: Store):
        self.store = store

    async def _reserve(self, listing_id: str, size: int) -> int:
        """Reserve ``size`` sequence numbers and return the first."""
        while True:
            current = await self.store.get(SEQUENCES, listing_id)
            start = current['next'] if current else 0
            if await self.store.compare_and_swap(
                SEQUENCES, listing_id, current, {'next': start + size}
            ):
                return start

    async def append(
        self,
        listing: Dict[str, Any],
        records: List[Dict[str, Any]],
        metadata: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """Append rows to a listing.

        Rows are written in batches; each batch is stored whole or not at
        all. A failed batch leaves a gap in the sequence, never a partial row.

        Args:
            listing: The owning listing
            records: Row payloads
            metadata: Metadata attached to every row of this upload

        Returns:
            The stored rows
        """
        now = datetime.now(timezone.utc).isoformat()
        start = await self._reserve(listing['id'], len(records))
        rows = [
            {
                'id': str(uuid.uuid4()),
                'listing_id': listing['id'],
                'seller_id': listing['seller_id'],
                'data': record,
                'metadata': metadata or {},
                'created_at': now
            }
            for record in records
        ]

        for offset in range(0, len(rows), BATCH_SIZE):
            batch = rows[offset:offset + BATCH_SIZE]
            await self.store.put_many(NAMESPACE, [
                (_row_key(listing['id'], start + offset + index), row)
                for index, row in enumerate(batch)
            ])

        logger.info(f"Stored {len(rows)} rows for listing {listing['id']}")
        return rows

    async def rows(self, listing_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Return rows of a listing in upload order, at most ``limit``."""
        return await self.store.scan(NAMESPACE, prefix=_prefix(listing_id), limit=limit)

    async def count(self, listing_id: str) -> int:
        return await self.store.count(NAMESPACE, prefix=_prefix(listing_id))

    async def match(
        self,
        listings: List[Dict[str, Any]],
        required_fields: Optional[List[str]] = None,
        filters: Optional[Dict[str, Any]] = None,
        sample_size: int = DEFAULT_MATCH_SAMPLE_SIZE
    ) -> Dict[str, Any]:
        """Answer "do you have rows like this?" across the given listings.

        Args:
            listings: Listings whose rows are searched, in order
            required_fields: Fields every matching row must carry a value for
            filters: Field equality filters compared as text. The key
                ``dataset_listing_id`` restricts the search to one listing.
            sample_size: Maximum number of sample records returned

        Returns:
            Dict containing:
                - has_data: Whether any row matched
                - match_count: Number of matching rows
                - sample_records: Up to ``sample_size`` matching payloads
                - quality_score: Average share of required fields present
                - estimated_price: Sum of matched rows' listing prices
        """
        required_fields = required_fields or []
        filters = dict(filters or {})
        listing_filter = filters.pop('dataset_listing_id', None)

        matched = []
        for listing in listings:
            if listing_filter is not None and listing['id'] != str(listing_filter):
                continue
            price = Decimal(listing['price_per_record'])
            for row in await self.rows(listing['id']):
                data = row['data']
                if any(str(data.get(key)) != str(value) for key, value in filters.items()):
                    continue
                if not all(is_present(data.get(field)) for field in required_fields):
                    continue
                matched.append((data, price))

        if not matched:
            return {
                'has_data': False,
                'match_count': 0,
                'sample_records': [],
                'quality_score': None,
                'estimated_price': None
            }

        sample = [data for data, _ in matched[:sample_size]]
        total_price = sum((price for _, price in matched), Decimal('0'))

        return {
            'has_data': True,
            'match_count': len(matched),
            'sample_records': sample,
            'quality_score': self._quality_score(sample, required_fields),
            'estimated_price': str(total_price.quantize(Decimal('0.000001')))
        }

    @staticmethod
    def _quality_score(records: List[Dict[str, Any]], required_fields: List[str]) -> float:
        if not records:
            return 0.0
        if not required_fields:
            return 1.0

        total = 0.0
        for record in records:
            present = sum(1 for field in required_fields if is_present(record.get(field)))
            total += present / len(required_fields)
        return total / len(records)
