# backend/tests/conftest.py

import pytest

from flowbot.models.flow import SELECTOR_KEY
from flowbot.models.message import ConversationKey, Message
from flowbot.services.memory_store import InMemoryMemoryStore
from flowbot.workflows.engine import StateMachine


@pytest.fixture
def store():
    """A fresh dict-backed memory store."""
    return InMemoryMemoryStore()


@pytest.fixture
def conversation():
    return ConversationKey(plugin="settings", user_id="user-1")


@pytest.fixture
def make_message(conversation):
    """
    Builds messages for the default conversation (or another one).

    Usage:
        make_message("hello")
        make_message(pairs=[("add", "Command"), ("card", "Object")])
    """
    def _make(text: str = "", pairs=None, conv: ConversationKey = None) -> Message:
        conv = conv or conversation
        if pairs is not None:
            return Message.from_pairs(conv, pairs, text=text)
        return Message(conversation=conv, text=text)

    return _make


@pytest.fixture
def arm(store, conversation):
    """Persists a flow selector, as a vocabulary handler would on an earlier turn."""
    async def _arm(flow, conv: ConversationKey = None):
        await store.set(conv or conversation, SELECTOR_KEY, flow.name)

    return _arm


@pytest.fixture
def run_turn(store, conversation):
    """Boots a machine, binds `flow` if it is the armed one, advances and commits."""
    async def _run(flow, text: str = "", conv: ConversationKey = None) -> str:
        conv = conv or conversation
        machine = await StateMachine.boot(store, conv)
        if machine.selector == flow.name:
            machine.set_flow(flow)
        response = await machine.advance(Message(conversation=conv, text=text))
        await machine.commit()
        return response

    return _run


@pytest.fixture
def flow_state(store, conversation):
    """Reads the persisted flow state straight from the store."""
    async def _state(conv: ConversationKey = None):
        machine = await StateMachine.boot(store, conv or conversation)
        return machine.state

    return _state
