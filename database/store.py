"""Key/value store abstraction shared by the auth and dataset managers.

Values are JSON-compatible dicts addressed by ``(namespace, key)``. Every
operation is bounded by a timeout; a timeout or connection failure surfaces
as :class:`StoreUnavailable` instead of hanging the request.
"""

import asyncio
import copy
import logging
from typing import Any, Awaitable, Dict, List, Optional, Sequence, Tuple

from .exceptions import StoreUnavailable

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 5.0

class Store:
    """Base class for store backends.

    Subclasses implement the underscored coroutines; the public methods add
    the timeout and error translation.
    """

    # Backend errors that mean the store cannot be reached
    unavailable_errors: Tuple[type, ...] = (ConnectionError, OSError)

    def __init__(self, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        self.timeout = timeout

    async def initialize(self) -> None:
        """Prepare the backend (open pools, create tables)."""
        pass

    async def close(self) -> None:
        """Release backend resources."""
        pass

    async def get(self, namespace: str, key: str) -> Optional[Dict[str, Any]]:
        """Return the value stored under ``key`` or None."""
        return await self._guard(self._get(namespace, key), 'get', namespace)

    async def put(self, namespace: str, key: str, value: Dict[str, Any]) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        await self._guard(self._put(namespace, key, value), 'put', namespace)

    async def put_many(
        self,
        namespace: str,
        entries: Sequence[Tuple[str, Dict[str, Any]]]
    ) -> None:
        """Store several ``(key, value)`` pairs; all are written or none are."""
        if not entries:
            return
        await self._guard(self._put_many(namespace, list(entries)), 'put_many', namespace)

    async def compare_and_swap(
        self,
        namespace: str,
        key: str,
        expected: Optional[Dict[str, Any]],
        new: Dict[str, Any]
    ) -> bool:
        """Atomically replace the value under ``key`` if it equals ``expected``.

        ``expected=None`` inserts only when the key is absent.

        Returns:
            True if the swap happened
        """
        return await self._guard(
            self._compare_and_swap(namespace, key, expected, new),
            'compare_and_swap',
            namespace
        )

    async def delete(
        self,
        namespace: str,
        key: str,
        expected: Optional[Dict[str, Any]] = None
    ) -> bool:
        """Remove ``key``. With ``expected``, only if the stored value equals it.

        Returns:
            True if an entry was removed
        """
        return await self._guard(self._delete(namespace, key, expected), 'delete', namespace)

    async def scan(
        self,
        namespace: str,
        prefix: Optional[str] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Return values in ``namespace`` ordered by key.

        Args:
            namespace: Namespace to read
            prefix: Only keys starting with this string
            limit: Maximum number of values returned
        """
        return await self._guard(self._scan(namespace, prefix, limit), 'scan', namespace)

    async def count(self, namespace: str, prefix: Optional[str] = None) -> int:
        """Number of keys in ``namespace``, optionally starting with ``prefix``."""
        return await self._guard(self._count(namespace, prefix), 'count', namespace)

    async def _guard(self, operation: Awaitable, name: str, namespace: str):
        try:
            return await asyncio.wait_for(operation, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"Store {name} on {namespace} timed out after {self.timeout}s")
            raise StoreUnavailable(
                f"Store {name} timed out after {self.timeout}s",
                operation=name
            )
        except self.unavailable_errors as e:
            logger.error(f"Store {name} on {namespace} failed: {e}")
            raise StoreUnavailable(f"Store {name} failed: {e}", operation=name)

    async def _get(self, namespace: str, key: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    async def _put(self, namespace: str, key: str, value: Dict[str, Any]) -> None:
        raise NotImplementedError

    async def _put_many(self, namespace: str, entries: List[Tuple[str, Dict[str, Any]]]) -> None:
        raise NotImplementedError

    async def _compare_and_swap(self, namespace, key, expected, new) -> bool:
        raise NotImplementedError

    async def _delete(self, namespace, key, expected) -> bool:
        raise NotImplementedError

    async def _scan(self, namespace: str, prefix: Optional[str], limit: Optional[int]) -> List[Dict[str, Any]]:
        raise NotImplementedError

    async def _count(self, namespace: str, prefix: Optional[str]) -> int:
        raise NotImplementedError

class MemoryStore(Store):
    """In-process store for tests and single-node deployments.

    Values are deep-copied in and out so callers never share mutable state
    with the store.
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        super().__init__(timeout)
        self._data: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    def _keys(self, namespace: str, prefix: Optional[str]) -> List[str]:
        return sorted(
            key for ns, key in self._data
            if ns == namespace and (prefix is None or key.startswith(prefix))
        )

    async def _get(self, namespace: str, key: str) -> Optional[Dict[str, Any]]:
        value = self._data.get((namespace, key))
        return copy.deepcopy(value) if value is not None else None

    async def _put(self, namespace: str, key: str, value: Dict[str, Any]) -> None:
        async with self._lock:
            self._data[(namespace, key)] = copy.deepcopy(value)

    async def _put_many(self, namespace: str, entries: List[Tuple[str, Dict[str, Any]]]) -> None:
        copied = [(key, copy.deepcopy(value)) for key, value in entries]
        async with self._lock:
            for key, value in copied:
                self._data[(namespace, key)] = value

    async def _compare_and_swap(self, namespace, key, expected, new) -> bool:
        async with self._lock:
            current = self._data.get((namespace, key))
            if current != expected:
                return False
            self._data[(namespace, key)] = copy.deepcopy(new)
            return True

    async def _delete(self, namespace, key, expected) -> bool:
        async with self._lock:
            current = self._data.get((namespace, key))
            if current is None or (expected is not None and current != expected):
                return False
            del self._data[(namespace, key)]
            return True

    async def _scan(self, namespace: str, prefix: Optional[str], limit: Optional[int]) -> List[Dict[str, Any]]:
        keys = self._keys(namespace, prefix)
        if limit is not None:
            keys = keys[:limit]
        return [copy.deepcopy(self._data[(namespace, key)]) for key in keys]

    async def _count(self, namespace: str, prefix: Optional[str]) -> int:
        return len(self._keys(namespace, prefix))
