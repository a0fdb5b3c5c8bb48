# backend/tests/unit/test_mongo_memory_store.py
import pytest
from unittest.mock import AsyncMock, MagicMock

from flowbot.errors import PersistenceError
from flowbot.services.mongo_memory_store import MongoMemoryStore


@pytest.fixture
def collection():
    coll = MagicMock()
    coll.find_one = AsyncMock(return_value=None)
    coll.update_one = AsyncMock()
    coll.delete_one = AsyncMock()
    coll.database.command = AsyncMock(return_value={"ok": 1})
    return coll


@pytest.mark.asyncio
async def test_load_missing_document_is_empty(collection, conversation):
    store = MongoMemoryStore(collection)
    assert await store.load(conversation) == {}
    collection.find_one.assert_awaited_once_with({"_id": "settings:user-1"}, {"memory": 1})


@pytest.mark.asyncio
async def test_load_returns_memory_subdocument(collection, conversation):
    collection.find_one.return_value = {"_id": "settings:user-1", "memory": {"__step": 1, "name": "Ada"}}
    store = MongoMemoryStore(collection)
    assert await store.load(conversation) == {"__step": 1, "name": "Ada"}
    assert await store.get(conversation, "missing", "x") == "x"


@pytest.mark.asyncio
async def test_apply_is_a_single_upsert(collection, conversation):
    store = MongoMemoryStore(collection)

    await store.apply(conversation, {"__step": 2, "__flow": "stateAddCard"}, ["scratch"])

    collection.update_one.assert_awaited_once()
    args, kwargs = collection.update_one.call_args
    query, update = args
    assert query == {"_id": "settings:user-1"}
    assert kwargs == {"upsert": True}
    assert update["$set"]["memory.__step"] == 2
    assert update["$set"]["memory.__flow"] == "stateAddCard"
    assert "updated_at" in update["$set"]
    assert update["$setOnInsert"] == {"plugin": "settings", "user_id": "user-1"}
    assert update["$unset"] == {"memory.scratch": ""}


@pytest.mark.asyncio
async def test_apply_without_deletions_has_no_unset(collection, conversation):
    store = MongoMemoryStore(collection)
    await store.apply(conversation, {"a": 1})
    _, update = collection.update_one.call_args.args
    assert "$unset" not in update


@pytest.mark.asyncio
async def test_keys_mongo_cannot_store_are_rejected(collection, conversation):
    store = MongoMemoryStore(collection)
    for key in ("a.b", "$where"):
        with pytest.raises(PersistenceError):
            await store.apply(conversation, {key: 1})
    collection.update_one.assert_not_awaited()


@pytest.mark.asyncio
async def test_driver_failure_becomes_persistence_error(collection, conversation):
    collection.update_one.side_effect = RuntimeError("not primary")
    store = MongoMemoryStore(collection)

    with pytest.raises(PersistenceError) as exc_info:
        await store.apply(conversation, {"a": 1})
    assert isinstance(exc_info.value.__cause__, RuntimeError)


@pytest.mark.asyncio
async def test_clear_and_ping(collection, conversation):
    store = MongoMemoryStore(collection)

    await store.clear(conversation)
    assert await store.ping() is True

    collection.delete_one.assert_awaited_once_with({"_id": "settings:user-1"})
    collection.database.command.assert_awaited_once_with("ping")
