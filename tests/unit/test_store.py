"""
Unit tests for the KeyValueStore primitives.
"""

import pytest

from session_tracking.core.errors import NotFoundError


def item(pk, sk, **attributes):
    return {"PK": pk, "SK": sk, **attributes}


async def test_put_then_get(store):
    await store.put(item("SESSION#a", "#METADATA", itemType="SESSION_METADATA", metadata={"k": 1}))

    stored = await store.get_item("SESSION#a", "#METADATA")

    assert stored == {
        "PK": "SESSION#a",
        "SK": "#METADATA",
        "itemType": "SESSION_METADATA",
        "metadata": {"k": 1},
    }


async def test_get_missing_returns_none(store):
    assert await store.get_item("SESSION#missing", "#METADATA") is None


async def test_put_overwrites(store):
    await store.put(item("SESSION#a", "#METADATA", status="active", stepsTaken=1))
    await store.put(item("SESSION#a", "#METADATA", status="completed"))

    stored = await store.get_item("SESSION#a", "#METADATA")

    assert stored["status"] == "completed"
    assert "stepsTaken" not in stored


async def test_put_requires_keys(store):
    with pytest.raises(ValueError):
        await store.put({"PK": "SESSION#a"})


async def test_query_prefix_in_sort_key_order(store):
    await store.put(item("SESSION#a", "EVENT#2024-01-01T00:00:02.000Z#x"))
    await store.put(item("SESSION#a", "#METADATA"))
    await store.put(item("SESSION#a", "EVENT#2024-01-01T00:00:01.000Z#y"))
    await store.put(item("SESSION#b", "EVENT#2024-01-01T00:00:00.000Z#z"))

    events = await store.query("SESSION#a", sk_prefix="EVENT#")

    assert [e["SK"] for e in events] == [
        "EVENT#2024-01-01T00:00:01.000Z#y",
        "EVENT#2024-01-01T00:00:02.000Z#x",
    ]

    everything = await store.query("SESSION#a")
    assert [e["SK"] for e in everything][0] == "#METADATA"
    assert len(everything) == 3


async def test_query_prefix_is_literal(store):
    await store.put(item("SESSION#a", "EVENT_X"))
    await store.put(item("SESSION#a", "EVENT%Y"))

    assert [e["SK"] for e in await store.query("SESSION#a", sk_prefix="EVENT%")] == ["EVENT%Y"]


async def test_query_index(store):
    await store.put(item("SESSION#b", "#METADATA", GSI1PK="USER#u", GSI1SK="SESSION#2024-01-02"))
    await store.put(item("SESSION#a", "#METADATA", GSI1PK="USER#u", GSI1SK="SESSION#2024-01-01"))
    await store.put(item("SESSION#c", "#METADATA", GSI1PK="USER#other", GSI1SK="SESSION#2024-01-01"))
    await store.put(item("SESSION#d", "#METADATA"))

    results = await store.query("USER#u", sk_prefix="SESSION#", index_name="GSI1")
    assert [r["PK"] for r in results] == ["SESSION#a", "SESSION#b"]

    limited = await store.query("USER#u", index_name="GSI1", limit=1)
    assert [r["PK"] for r in limited] == ["SESSION#a"]


async def test_query_unknown_index(store):
    with pytest.raises(ValueError):
        await store.query("USER#u", index_name="GSI9")


async def test_update_sets_and_removes_attributes(store):
    await store.put(item("SESSION#a", "EVENT#1", eventType="click", eventData={"a": 1}))

    updated = await store.update("SESSION#a", "EVENT#1", {"eventType": "landing", "eventData": None})

    assert updated["eventType"] == "landing"
    assert "eventData" not in updated
    assert await store.get_item("SESSION#a", "EVENT#1") == updated


async def test_update_missing_item(store):
    with pytest.raises(NotFoundError):
        await store.update("SESSION#a", "EVENT#1", {"eventType": "click"})


async def test_update_rejects_key_change(store):
    await store.put(item("SESSION#a", "EVENT#1"))

    with pytest.raises(ValueError):
        await store.update("SESSION#a", "EVENT#1", {"SK": "EVENT#2"})


async def test_delete(store):
    await store.put(item("SESSION#a", "#METADATA"))

    assert await store.delete("SESSION#a", "#METADATA") is True
    assert await store.delete("SESSION#a", "#METADATA") is False
    assert await store.get_item("SESSION#a", "#METADATA") is None


async def test_batch_put_and_scan(store):
    items = [item(f"SESSION#{i:03d}", "#METADATA", n=i) for i in range(60)]

    assert await store.batch_put(items, max_batch_size=25) == 60

    scanned = [entry async for entry in store.scan(page_size=7)]
    assert [entry["n"] for entry in scanned] == list(range(60))


async def test_query_limit_zero_returns_nothing(store):
    await store.put(item("SESSION#a", "#METADATA"))

    assert await store.query("SESSION#a", limit=0) == []


async def test_batch_put_overwrites_existing_items(store):
    await store.put(item("SESSION#a", "#METADATA", status="active", stepsTaken=2))

    await store.batch_put([
        item("SESSION#a", "#METADATA", status="completed", GSI1PK="USER#u", GSI1SK="SESSION#1"),
        item("SESSION#b", "#METADATA"),
    ])

    assert await store.get_item("SESSION#a", "#METADATA") == {
        "PK": "SESSION#a",
        "SK": "#METADATA",
        "GSI1PK": "USER#u",
        "GSI1SK": "SESSION#1",
        "status": "completed",
    }
    assert [r["PK"] for r in await store.query("USER#u", index_name="GSI1")] == ["SESSION#a"]
