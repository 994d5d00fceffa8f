"""Query gateway composing authentication and the dataset catalog.

Two trust boundaries:
- Authenticated calls take a bearer token and act on the caller's own
  listings (create, update, upload, counts).
- Public calls are scoped by a seller id taken from the request path and
  only ever see active listings.

Listings belonging to someone else are reported as missing on both
surfaces, so callers cannot probe for their existence.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Tuple

from auth import AuthManager
from database import Store
from datasets import DatasetCatalog, Forbidden, NotFound

logger = logging.getLogger(__name__)

@contextmanager
def _hide_foreign(listing_id: str):
    try:
        yield
    except Forbidden:
        raise NotFound(f"Listing not found: {listing_id}")

class QueryGateway:
    """Externally reachable surface of the marketplace."""

    def __init__(self, auth: AuthManager, catalog: DatasetCatalog):
        self.auth = auth
        self.catalog = catalog

    @classmethod
    def from_store(cls, store: Store, settings: Optional[Dict[str, Any]] = None) -> 'QueryGateway':
        """Build a gateway and its collaborators over one store."""
        return cls(AuthManager(store, settings), DatasetCatalog(store, settings))

    async def principal(self, token: str) -> str:
        """Return the user id behind a bearer token.

        Raises:
            TokenExpired: If the token has expired
            TokenInvalid: If the token is malformed or names no user
        """
        user = await self.auth.authenticate(token)
        return user['id']

    # Authenticated surface

    async def create_dataset(self, token: str, request: Dict[str, Any]) -> Dict[str, Any]:
        owner_id = await self.principal(token)
        return await self.catalog.create(owner_id, request)

    async def update_dataset(
        self,
        token: str,
        listing_id: str,
        patch: Dict[str, Any]
    ) -> Dict[str, Any]:
        owner_id = await self.principal(token)
        with _hide_foreign(listing_id):
            return await self.catalog.update(owner_id, listing_id, patch)

    async def deactivate_dataset(self, token: str, listing_id: str) -> Dict[str, Any]:
        owner_id = await self.principal(token)
        with _hide_foreign(listing_id):
            return await self.catalog.deactivate(owner_id, listing_id)

    async def my_datasets(self, token: str) -> List[Dict[str, Any]]:
        owner_id = await self.principal(token)
        return await self.catalog.list_owned(owner_id)

    async def upload_records(
        self,
        token: str,
        listing_id: str,
        records: List[Dict[str, Any]],
        metadata: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        owner_id = await self.principal(token)
        with _hide_foreign(listing_id):
            return await self.catalog.upload_records(owner_id, listing_id, records, metadata)

    async def upload_files(
        self,
        token: str,
        listing_id: str,
        files: List[Tuple[bytes, Optional[str], Optional[str]]]
    ) -> Dict[str, Any]:
        """Store the rows of several files; ``files`` holds ``(content, mime_type, filename)``."""
        owner_id = await self.principal(token)
        with _hide_foreign(listing_id):
            return await self.catalog.ingest_files(owner_id, listing_id, files)

    async def preview(
        self,
        token: str,
        listing_id: str,
        limit: Optional[int] = None
    ) -> Dict[str, Any]:
        """Sample one of the caller's own listings, including inactive ones."""
        owner_id = await self.principal(token)
        with _hide_foreign(listing_id):
            return await self.catalog.preview(owner_id, listing_id, limit)

    async def count(self, token: str) -> Dict[str, int]:
        """Dashboard counts for the caller.

        Returns:
            Dict containing:
                - active_listings: Active listings owned by the caller
                - records: Rows stored across all of the caller's listings
        """
        owner_id = await self.principal(token)
        return {
            'active_listings': await self.catalog.count(owner_id),
            'records': await self.catalog.record_count(owner_id)
        }

    # Public surface

    async def _seller_listing(self, seller_id: str, listing_id: str) -> Dict[str, Any]:
        listing = await self.catalog.get_public(listing_id)
        if listing['seller_id'] != seller_id:
            raise NotFound(f"Listing not found: {listing_id}")
        return listing

    async def _seller_listings(self, seller_id: str) -> List[Dict[str, Any]]:
        # Oldest first, matching query order
        return [
            listing for listing in reversed(await self.catalog.list_owned(seller_id))
            if listing['is_active']
        ]

    async def query(
        self,
        seller_id: str,
        filters: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None
    ) -> Dict[str, Any]:
        """Page through one seller's active listings."""
        return await self.catalog.query(seller_id, filters, limit, cursor)

    async def discover(
        self,
        filters: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
        cursor: Optional[str] = None
    ) -> Dict[str, Any]:
        """Page through active listings of every seller."""
        return await self.catalog.query(None, filters, limit, cursor)

    async def probe(self, listing_id: str) -> Dict[str, Any]:
        """Return the public view of an active listing."""
        return await self.catalog.get_public(listing_id)

    async def sample(
        self,
        seller_id: str,
        listing_id: Optional[str] = None,
        limit: Optional[int] = None
    ) -> Dict[str, Any]:
        """Preview rows of one listing, or of all the seller's active listings.

        Raises:
            NotFound: If the listing is missing, inactive or not the seller's
        """
        if listing_id is not None:
            await self._seller_listing(seller_id, listing_id)
            return await self.catalog.sample(listing_id, limit)

        limit = self.catalog.clamp_sample_size(limit)
        rows = []
        total = 0
        for listing in await self._seller_listings(seller_id):
            remaining = limit - len(rows)
            result = await self.catalog.sample(listing['id'], max(remaining, 1))
            total += result['total']
            if remaining > 0:
                rows.extend(result['rows'][:remaining])

        return {'rows': rows, 'total': total, 'has_more': total > len(rows)}

    async def match(
        self,
        seller_id: str,
        required_fields: Optional[List[str]] = None,
        filters: Optional[Dict[str, Any]] = None,
        sample_size: Optional[int] = None
    ) -> Dict[str, Any]:
        """Report whether a seller holds rows with the requested fields."""
        listings = await self._seller_listings(seller_id)
        return await self.catalog.warehouse.match(
            listings,
            required_fields,
            filters,
            self.catalog.clamp_sample_size(sample_size)
        )

__all__ = ['QueryGateway']
