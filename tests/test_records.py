"""Tests for row storage and data matching."""

import asyncio

import pytest

from datasets import DataWarehouse, records

def make_listing(listing_id, price="0.001", seller_id="seller-1"):
    return {"id": listing_id, "seller_id": seller_id, "price_per_record": price}

@pytest.fixture
def warehouse(store):
    return DataWarehouse(store)

@pytest.mark.asyncio
async def test_append_and_read(warehouse):
    """Test that rows come back in upload order with their metadata."""
    listing = make_listing("l1")
    stored = await warehouse.append(listing, [{"n": 1}, {"n": 2}], {"source": "api"})
    await warehouse.append(listing, [{"n": 3}])

    rows = await warehouse.rows("l1")
    assert [row["data"]["n"] for row in rows] == [1, 2, 3]
    assert rows[0]["id"] == stored[0]["id"]
    assert rows[0]["listing_id"] == "l1"
    assert rows[0]["seller_id"] == "seller-1"
    assert rows[0]["metadata"] == {"source": "api"}
    assert rows[2]["metadata"] == {}
    assert await warehouse.count("l1") == 3
    assert await warehouse.count("other") == 0

@pytest.mark.asyncio
async def test_rows_stored_one_per_key(warehouse, store):
    """Test that each row is its own entry in the listing's key range."""
    await warehouse.append(make_listing("l1"), [{"n": 1}, {"n": 2}, {"n": 3}])
    await warehouse.append(make_listing("l10"), [{"n": 9}])

    assert await store.count("records") == 4
    assert (await store.get("records", "l1:000000000002"))["data"] == {"n": 3}
    assert await store.get("record_sequences", "l1") == {"next": 3}

    assert await warehouse.count("l1") == 3
    assert [row["data"]["n"] for row in await warehouse.rows("l1", limit=2)] == [1, 2]
    assert [row["data"]["n"] for row in await warehouse.rows("l10")] == [9]

@pytest.mark.asyncio
async def test_append_writes_in_batches(warehouse, store, monkeypatch):
    """Test that large uploads are split across several writes."""
    monkeypatch.setattr(records, "BATCH_SIZE", 2)
    writes = []
    put_many = store.put_many

    async def recording_put_many(namespace, entries):
        writes.append(len(entries))
        await put_many(namespace, entries)

    monkeypatch.setattr(store, "put_many", recording_put_many)
    await warehouse.append(make_listing("l1"), [{"n": i} for i in range(5)])

    assert writes == [2, 2, 1]
    assert [row["data"]["n"] for row in await warehouse.rows("l1")] == [0, 1, 2, 3, 4]

@pytest.mark.asyncio
async def test_concurrent_appends_keep_uploads_together(warehouse):
    """Test that concurrent uploads never interleave or lose rows."""
    listing = make_listing("l1")
    await asyncio.gather(*[
        warehouse.append(listing, [{"n": n} for n in range(5)], {"upload": upload})
        for upload in range(10)
    ])

    rows = await warehouse.rows("l1")
    assert len(rows) == 50
    uploads = []
    for offset in range(0, 50, 5):
        chunk = rows[offset:offset + 5]
        assert len({row["metadata"]["upload"] for row in chunk}) == 1
        assert [row["data"]["n"] for row in chunk] == [0, 1, 2, 3, 4]
        uploads.append(chunk[0]["metadata"]["upload"])
    assert sorted(uploads) == list(range(10))

@pytest.mark.asyncio
async def test_match_required_fields(warehouse):
    """Test matching on required fields across listings."""
    first = make_listing("l1", price="0.001")
    second = make_listing("l2", price="0.01")
    await warehouse.append(first, [
        {"email": "a@x.com", "age": 30},
        {"email": "", "age": 40},
        {"email": "b@x.com"},
    ])
    await warehouse.append(second, [{"email": "c@x.com", "age": 50}])

    result = await warehouse.match([first, second], required_fields=["email", "age"])

    assert result["has_data"] is True
    assert result["match_count"] == 2
    assert result["sample_records"] == [
        {"email": "a@x.com", "age": 30},
        {"email": "c@x.com", "age": 50},
    ]
    assert result["quality_score"] == 1.0
    assert result["estimated_price"] == "0.011000"

@pytest.mark.asyncio
async def test_match_filters(warehouse):
    """Test equality filters compared as text."""
    listing = make_listing("l1")
    await warehouse.append(listing, [
        {"country": "NO", "year": 2024},
        {"country": "PE", "year": 2024},
        {"country": "NO", "year": 2023},
    ])

    result = await warehouse.match([listing], filters={"country": "NO", "year": "2024"})

    assert result["match_count"] == 1
    assert result["sample_records"] == [{"country": "NO", "year": 2024}]

@pytest.mark.asyncio
async def test_match_listing_filter(warehouse):
    """Test restricting the match to one listing."""
    first = make_listing("l1")
    second = make_listing("l2")
    await warehouse.append(first, [{"a": 1}])
    await warehouse.append(second, [{"a": 2}])

    result = await warehouse.match([first, second], filters={"dataset_listing_id": "l2"})

    assert result["sample_records"] == [{"a": 2}]

@pytest.mark.asyncio
async def test_match_sample_size(warehouse):
    """Test that the sample is bounded while the count is not."""
    listing = make_listing("l1")
    await warehouse.append(listing, [{"n": i} for i in range(30)])

    result = await warehouse.match([listing], sample_size=5)

    assert result["match_count"] == 30
    assert len(result["sample_records"]) == 5
    assert result["estimated_price"] == "0.030000"

@pytest.mark.asyncio
async def test_match_without_required_fields(warehouse):
    """Test the quality score when no fields are required."""
    listing = make_listing("l1")
    await warehouse.append(listing, [{"a": 1}])

    result = await warehouse.match([listing])
    assert result["quality_score"] == 1.0

@pytest.mark.asyncio
async def test_match_nothing(warehouse):
    """Test the answer when no row matches."""
    listing = make_listing("l1")
    await warehouse.append(listing, [{"a": 1}])

    result = await warehouse.match([listing], required_fields=["missing"])

    assert result == {
        "has_data": False,
        "match_count": 0,
        "sample_records": [],
        "quality_score": None,
        "estimated_price": None,
    }
