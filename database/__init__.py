"""Database module for the gateway's backing store.

This module handles:
- Store backend selection (memory or PostgreSQL)
- Store lifecycle (initialize / close)
- The process-wide default store used by the API entry point
"""

import logging
from typing import Optional, Dict, Any

from .exceptions import DatabaseError, StoreUnavailable, DatabaseSchemaError
from .store import Store, MemoryStore

logger = logging.getLogger(__name__)

_store: Optional[Store] = None

def create_store(settings: Dict[str, Any]) -> Store:
    """Build a store from settings without initializing it.

    Args:
        settings: Validated settings dict

    Returns:
        An uninitialized store backend

    Raises:
        DatabaseError: If the configured backend is unknown
    """
    backend = settings.get('store_backend', 'memory')
    timeout = settings.get('store_timeout_seconds', 5.0)

    if backend == 'memory':
        return MemoryStore(timeout=timeout)
    if backend == 'postgres':
        # Import here so the memory backend works without asyncpg installed
        from .postgres import PostgresStore
        return PostgresStore(settings['db_url'], timeout=timeout)
    raise DatabaseError(f"Unknown store backend: {backend}")

async def init_db(settings: Optional[Dict[str, Any]] = None) -> Store:
    """Initialize the default store.

    Args:
        settings: Optional settings. If not provided, will use settings.conf.

    Returns:
        The initialized store
    """
    global _store

    if _store is not None:
        return _store

    if settings is None:
        # Import here to avoid circular imports
        from config import settings_conf
        settings = settings_conf

    store = create_store(settings)
    try:
        await store.initialize()
    except Exception as e:
        logger.error(f"Store initialization failed: {e}")
        raise
    logger.info(f"Initialized {settings.get('store_backend', 'memory')} store")
    _store = store
    return _store

async def get_store() -> Store:
    """Get the default store, initializing it on first use."""
    if _store is None:
        await init_db()
    return _store

async def close() -> None:
    """Close the default store."""
    global _store

    if _store is not None:
        await _store.close()
        _store = None

# Export public interface
__all__ = [
    'Store',
    'MemoryStore',
    'DatabaseError',
    'StoreUnavailable',
    'DatabaseSchemaError',
    'create_store',
    'init_db',
    'get_store',
    'close'
]
