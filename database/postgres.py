"""PostgreSQL store backed by an asyncpg connection pool.

All entries live in a single ``kv_entries`` table keyed by
``(namespace, key)`` with a JSONB value. Compare-and-swap is a single
conditional statement, so it stays atomic across gateway processes.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

import asyncpg
import backoff

from .exceptions import DatabaseError
from .lib.schema_manager import SchemaManager
from .store import Store, DEFAULT_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

UPSERT_SQL = '''
    INSERT INTO kv_entries (namespace, key, value)
    VALUES ($1, $2, $3)
    ON CONFLICT (namespace, key) DO UPDATE
    SET value = EXCLUDED.value,
        version = kv_entries.version + 1,
        updated_at = now()
'''

CONNECTION_ERRORS = (
    asyncpg.exceptions.PostgresConnectionError,
    asyncpg.exceptions.CannotConnectNowError,
    asyncpg.exceptions.InterfaceError,
    ConnectionError,
    OSError
)

async def _init_connection(conn) -> None:
    """Decode JSONB columns to Python objects."""
    await conn.set_type_codec(
        'jsonb',
        encoder=json.dumps,
        decoder=json.loads,
        schema='pg_catalog'
    )

def _like_prefix(prefix: Optional[str]) -> Optional[str]:
    """LIKE pattern matching keys that start with ``prefix``."""
    if prefix is None:
        return None
    escaped = prefix.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')
    return escaped + '%'

class PostgresStore(Store):
    """Store backend for PostgreSQL-compatible databases."""

    unavailable_errors = CONNECTION_ERRORS

    def __init__(self, db_url: str, timeout: float = DEFAULT_TIMEOUT_SECONDS, pool=None):
        """Initialize the store.

        Args:
            db_url: Database connection URL
            timeout: Bound on every store call in seconds
            pool: Optional pre-built asyncpg pool
        """
        super().__init__(timeout)
        self.db_url = db_url
        self.pool = pool

    @backoff.on_exception(
        backoff.expo,
        (asyncpg.exceptions.PostgresConnectionError, asyncpg.exceptions.CannotConnectNowError, OSError),
        max_tries=5
    )
    async def initialize(self) -> None:
        """Create the connection pool and apply the schema.

        Raises:
            DatabaseError: If the URL is not a PostgreSQL URL
        """
        if self.pool is not None:
            return

        parsed = urlparse(self.db_url)
        if parsed.scheme not in ('postgres', 'postgresql'):
            raise DatabaseError(f"Unsupported database URL scheme: {parsed.scheme!r}")

        logger.info(f"Connecting to database {parsed.hostname}:{parsed.port}{parsed.path}")
        self.pool = await asyncpg.create_pool(
            self.db_url,
            min_size=2,
            max_size=20,
            max_inactive_connection_lifetime=300.0,
            command_timeout=self.timeout,
            init=_init_connection
        )

        await SchemaManager(self.pool).initialize()

    async def close(self) -> None:
        """Close the connection pool."""
        if self.pool is not None:
            await self.pool.close()
            self.pool = None

    async def _get(self, namespace: str, key: str) -> Optional[Dict[str, Any]]:
        async with self.pool.acquire() as conn:
            return await conn.fetchval(
                'SELECT value FROM kv_entries WHERE namespace = $1 AND key = $2',
                namespace,
                key
            )

    async def _put(self, namespace: str, key: str, value: Dict[str, Any]) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(UPSERT_SQL, namespace, key, value)

    async def _put_many(self, namespace: str, entries: List[Tuple[str, Dict[str, Any]]]) -> None:
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.executemany(
                    UPSERT_SQL,
                    [(namespace, key, value) for key, value in entries]
                )

    async def _compare_and_swap(self, namespace, key, expected, new) -> bool:
        async with self.pool.acquire() as conn:
            if expected is None:
                inserted = await conn.fetchval(
                    '''
                    INSERT INTO kv_entries (namespace, key, value)
                    VALUES ($1, $2, $3)
                    ON CONFLICT (namespace, key) DO NOTHING
                    RETURNING key
                    ''',
                    namespace,
                    key,
                    new
                )
                return inserted is not None

            updated = await conn.fetchval(
                '''
                UPDATE kv_entries
                SET value = $4,
                    version = version + 1,
                    updated_at = now()
                WHERE namespace = $1 AND key = $2 AND value = $3::jsonb
                RETURNING key
                ''',
                namespace,
                key,
                expected,
                new
            )
            return updated is not None

    async def _delete(self, namespace, key, expected) -> bool:
        async with self.pool.acquire() as conn:
            deleted = await conn.fetchval(
                '''
                DELETE FROM kv_entries
                WHERE namespace = $1 AND key = $2
                  AND ($3::jsonb IS NULL OR value = $3::jsonb)
                RETURNING key
                ''',
                namespace,
                key,
                expected
            )
            return deleted is not None

    async def _scan(self, namespace: str, prefix: Optional[str], limit: Optional[int]) -> List[Dict[str, Any]]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                '''
                SELECT value FROM kv_entries
                WHERE namespace = $1 AND ($2::text IS NULL OR key LIKE $2)
                ORDER BY key
                LIMIT $3
                ''',
                namespace,
                _like_prefix(prefix),
                limit
            )
            return [row['value'] for row in rows]

    async def _count(self, namespace: str, prefix: Optional[str]) -> int:
        async with self.pool.acquire() as conn:
            return await conn.fetchval(
                '''
                SELECT count(*) FROM kv_entries
                WHERE namespace = $1 AND ($2::text IS NULL OR key LIKE $2)
                ''',
                namespace,
                _like_prefix(prefix)
            )
