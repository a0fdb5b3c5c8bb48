# backend/tests/unit/test_memory_store.py
import pytest
from pydantic import ValidationError

from flowbot.models.message import ConversationKey
from flowbot.services.memory_store import InMemoryMemoryStore, check_value, decode_value, encode_value


@pytest.mark.asyncio
async def test_unset_key_returns_default(store, conversation):
    assert await store.get(conversation, "state") is None
    assert await store.get(conversation, "state", 0) == 0
    assert await store.load(conversation) == {}


@pytest.mark.asyncio
async def test_values_keep_their_types(store, conversation):
    await store.set(conversation, "count", 3)
    await store.set(conversation, "name", "Ada")
    await store.set(conversation, "flag", True)

    memory = await store.load(conversation)
    assert memory == {"count": 3, "name": "Ada", "flag": True}
    assert memory["flag"] is True


@pytest.mark.asyncio
async def test_writes_are_last_write_wins(store, conversation):
    await store.set(conversation, "state", 1)
    await store.set(conversation, "state", 2)
    await store.set(conversation, "state", 2)
    assert await store.get(conversation, "state") == 2


@pytest.mark.asyncio
async def test_apply_updates_and_deletes_together(store, conversation):
    await store.apply(conversation, {"a": 1, "b": 2})
    await store.apply(conversation, {"c": 3}, deletions=["a", "missing"])
    assert await store.load(conversation) == {"b": 2, "c": 3}


@pytest.mark.asyncio
async def test_rejects_non_scalar_values(store, conversation):
    for bad in ([1], {"a": 1}, None, 1.5):
        with pytest.raises(TypeError):
            await store.set(conversation, "x", bad)
    assert await store.load(conversation) == {}


@pytest.mark.asyncio
async def test_rejected_batch_writes_nothing(store, conversation):
    with pytest.raises(TypeError):
        await store.apply(conversation, {"ok": 1, "bad": 2.5})
    assert await store.load(conversation) == {}


@pytest.mark.asyncio
async def test_conversations_are_isolated(store, conversation):
    other_user = ConversationKey(plugin="settings", user_id="user-2")
    other_plugin = ConversationKey(plugin="travel", user_id="user-1")

    await store.set(conversation, "state", 3)

    assert await store.get(other_user, "state") is None
    assert await store.get(other_plugin, "state") is None


@pytest.mark.asyncio
async def test_clear_removes_conversation(store, conversation):
    await store.apply(conversation, {"a": 1, "b": "x"})
    await store.clear(conversation)
    assert await store.load(conversation) == {}


@pytest.mark.asyncio
async def test_loaded_dict_is_a_copy(store, conversation):
    await store.set(conversation, "a", 1)
    memory = await store.load(conversation)
    memory["a"] = 99
    assert await store.get(conversation, "a") == 1


@pytest.mark.asyncio
async def test_in_memory_store_is_always_ready():
    store = InMemoryMemoryStore()
    assert await store.ping() is True
    await store.close()


def test_check_value_rejects_empty_key():
    with pytest.raises(TypeError):
        check_value("", 1)
    check_value("ok", False)


def test_encoding_keeps_scalar_types():
    assert encode_value(3) == "3"
    assert decode_value(encode_value(True)) is True
    assert decode_value(b'"stateAddCard"') == "stateAddCard"
    assert decode_value(b"3") == 3


def test_decode_falls_back_to_text():
    assert decode_value(b"hello") == "hello"
    assert decode_value("[1, 2]") == "[1, 2]"
    assert decode_value("null") == "null"


def test_plugin_names_cannot_contain_colons():
    with pytest.raises(ValidationError):
        ConversationKey(plugin="a:b", user_id="c")


@pytest.mark.asyncio
async def test_colons_in_user_ids_do_not_collide(store):
    first = ConversationKey(plugin="a", user_id="b:c")
    second = ConversationKey(plugin="a", user_id="b")

    await store.set(first, "secret", "alice")

    assert first.storage_id != second.storage_id
    assert await store.get(second, "secret") is None
