"""Tests for the store abstraction."""

import asyncio
import pytest

from database import MemoryStore, StoreUnavailable, create_store, DatabaseError
from config import default_settings

class SlowStore(MemoryStore):
    """Memory store whose reads never finish in time."""

    async def _get(self, namespace, key):
        await asyncio.sleep(10)

class BrokenStore(MemoryStore):
    """Memory store whose backend connection is gone."""

    async def _put(self, namespace, key, value):
        raise ConnectionError("connection refused")

@pytest.mark.asyncio
async def test_get_put_roundtrip(store):
    """Test that stored values come back as independent copies."""
    value = {"a": 1, "nested": {"b": [1, 2]}}
    await store.put("ns", "key", value)

    loaded = await store.get("ns", "key")
    assert loaded == value

    loaded["nested"]["b"].append(3)
    assert (await store.get("ns", "key"))["nested"]["b"] == [1, 2]

@pytest.mark.asyncio
async def test_get_missing_returns_none(store):
    """Test reading an absent key."""
    assert await store.get("ns", "missing") is None

@pytest.mark.asyncio
async def test_compare_and_swap_insert_if_absent(store):
    """Test that expected=None only inserts new keys."""
    assert await store.compare_and_swap("ns", "key", None, {"v": 1})
    assert not await store.compare_and_swap("ns", "key", None, {"v": 2})
    assert await store.get("ns", "key") == {"v": 1}

@pytest.mark.asyncio
async def test_compare_and_swap_requires_expected_value(store):
    """Test that a stale expected value loses."""
    await store.put("ns", "key", {"v": 1})

    assert not await store.compare_and_swap("ns", "key", {"v": 0}, {"v": 2})
    assert await store.compare_and_swap("ns", "key", {"v": 1}, {"v": 2})
    assert await store.get("ns", "key") == {"v": 2}

@pytest.mark.asyncio
async def test_concurrent_compare_and_swap_single_winner(store):
    """Test that only one of many concurrent swaps from the same value wins."""
    await store.put("ns", "key", {"v": 0})

    results = await asyncio.gather(*[
        store.compare_and_swap("ns", "key", {"v": 0}, {"v": i})
        for i in range(1, 11)
    ])
    assert results.count(True) == 1

@pytest.mark.asyncio
async def test_scan_is_namespaced_and_ordered(store):
    """Test scan ordering and isolation."""
    await store.put("ns", "b", {"k": "b"})
    await store.put("ns", "a", {"k": "a"})
    await store.put("other", "c", {"k": "c"})

    assert await store.scan("ns") == [{"k": "a"}, {"k": "b"}]

@pytest.mark.asyncio
async def test_scan_prefix_and_limit(store):
    """Test bounded reads of one key range."""
    await store.put_many("rows", [
        ("l1:000002", {"n": 2}),
        ("l1:000001", {"n": 1}),
        ("l1:000003", {"n": 3}),
        ("l10:000001", {"n": 99}),
    ])

    assert await store.scan("rows", prefix="l1:") == [{"n": 1}, {"n": 2}, {"n": 3}]
    assert await store.scan("rows", prefix="l1:", limit=2) == [{"n": 1}, {"n": 2}]
    assert await store.scan("rows", prefix="l1:", limit=0) == []
    assert await store.count("rows", prefix="l1:") == 3
    assert await store.count("rows") == 4
    assert await store.count("empty") == 0

@pytest.mark.asyncio
async def test_delete(store):
    """Test unconditional and conditional deletes."""
    await store.put("ns", "a", {"v": 1})
    await store.put("ns", "b", {"v": 1})

    assert await store.delete("ns", "a")
    assert await store.get("ns", "a") is None
    assert not await store.delete("ns", "a")

    assert not await store.delete("ns", "b", expected={"v": 2})
    assert await store.get("ns", "b") == {"v": 1}
    assert await store.delete("ns", "b", expected={"v": 1})
    assert await store.get("ns", "b") is None

@pytest.mark.asyncio
async def test_timeout_raises_store_unavailable():
    """Test that a slow backend surfaces StoreUnavailable."""
    store = SlowStore(timeout=0.01)

    with pytest.raises(StoreUnavailable) as exc_info:
        await store.get("ns", "key")
    assert exc_info.value.operation == "get"

@pytest.mark.asyncio
async def test_connection_error_raises_store_unavailable():
    """Test that connection failures surface StoreUnavailable."""
    store = BrokenStore()

    with pytest.raises(StoreUnavailable):
        await store.put("ns", "key", {"v": 1})

def test_create_store_memory_backend():
    """Test backend selection from settings."""
    store = create_store(default_settings(store_timeout_seconds=2))
    assert isinstance(store, MemoryStore)
    assert store.timeout == 2.0

def test_create_store_unknown_backend():
    """Test that an unknown backend is rejected."""
    with pytest.raises(DatabaseError):
        create_store({"store_backend": "redis"})
