# backend/tests/unit/test_tasks.py
import pytest

from flowbot.config import strings
from flowbot.errors import ConfigurationError
from flowbot.workflows.tasks import (
    TaskKind, build_flow, looks_like_address, notify, parse_yes_no, request_address,
    request_confirmation, request_text, scratch_key,
)

SAVED = strings.ADDRESS_SAVED.format(noun="shipping address")
PROMPT = strings.ADDRESS_PROMPT.format(noun="shipping address")


def test_build_flow_is_deterministic():
    first = build_flow(None, TaskKind.REQUEST_ADDRESS, "shipping_address")
    second = build_flow(None, "request_address", "shipping_address")
    assert first == second
    assert first.name == "request_address:shipping_address"
    assert build_flow(None, TaskKind.REQUEST_ADDRESS, "billing_address") != first


def test_build_flow_rejects_bad_requests():
    with pytest.raises(ConfigurationError):
        build_flow(None, "request_payment", "card")
    with pytest.raises(ConfigurationError):
        build_flow(None, TaskKind.REQUEST_ADDRESS)


@pytest.mark.parametrize("text, expected", [
    ("yes", True),
    ("Yes please", True),
    ("ok!", True),
    ("no", False),
    ("Nope, wrong one", False),
    ("maybe", None),
    ("", None),
])
def test_parse_yes_no(text, expected):
    assert parse_yes_no(text) is expected


@pytest.mark.parametrize("text, expected", [
    ("12 Main Street Springfield", True),
    ("Flat 4, 221B Baker Street, London", True),
    ("Main Street Springfield", False),
    ("12 Main", False),
])
def test_looks_like_address(text, expected):
    assert looks_like_address(text) is expected


@pytest.mark.asyncio
async def test_address_conversation(arm, run_turn, flow_state, store, conversation):
    flow = request_address("shipping_address")
    await arm(flow)

    assert await run_turn(flow, "add an address") == PROMPT
    assert await run_turn(flow, "somewhere") == strings.ADDRESS_INVALID
    assert await run_turn(flow, "12  Main Street Springfield") == strings.ADDRESS_CONFIRM.format(
        address="12 Main Street Springfield"
    )
    assert await run_turn(flow, "hmm") == strings.CONFIRMATION_RETRY
    assert await run_turn(flow, "no") == f"{strings.ADDRESS_RETRY}\n{PROMPT}"
    assert await run_turn(flow, "34 Oak Avenue Boston") == strings.ADDRESS_CONFIRM.format(
        address="34 Oak Avenue Boston"
    )
    assert await run_turn(flow, "yes") == SAVED

    assert (await flow_state()).idle
    memory = await store.load(conversation)
    assert memory["shipping_address"] == "34 Oak Avenue Boston"
    assert scratch_key("shipping_address", "pending") not in memory
    assert scratch_key("shipping_address", "done") not in memory


@pytest.mark.asyncio
async def test_confirmation_task(arm, run_turn, flow_state, store, conversation):
    flow = request_confirmation("wants_receipts", "Email you receipts?")
    await arm(flow)

    assert await run_turn(flow) == "Email you receipts?"
    assert await run_turn(flow, "maybe") == strings.CONFIRMATION_RETRY
    assert await run_turn(flow, "Nah") == ""

    assert (await flow_state()).idle
    assert await store.load(conversation) == {
        "__flow": "", "__step": 0, "__step_entered": False, "wants_receipts": False,
    }


@pytest.mark.asyncio
async def test_text_task(arm, run_turn, store, conversation):
    flow = request_text("nickname", "What should I call you?")
    await arm(flow)

    assert await run_turn(flow) == "What should I call you?"
    assert await run_turn(flow, "   ") == "What should I call you?"
    assert await run_turn(flow, "  Ada   L. ") == ""
    assert await store.get(conversation, "nickname") == "Ada L."


@pytest.mark.asyncio
async def test_notify_task(arm, run_turn, flow_state):
    flow = notify("Here is your link", name="link")
    await arm(flow)

    assert await run_turn(flow) == "Here is your link"
    assert (await flow_state()).entered
    assert await run_turn(flow, "thanks") == ""
    assert (await flow_state()).idle


@pytest.mark.asyncio
async def test_address_question_ignores_stale_scratch(arm, run_turn, store, conversation):
    flow = request_address("shipping_address")
    await store.apply(conversation, {
        scratch_key("shipping_address", "pending"): "99 Old Road Leftover",
        scratch_key("shipping_address", "done"): True,
    })
    await arm(flow)

    assert await run_turn(flow) == PROMPT
    assert await run_turn(flow, "hmm") == strings.ADDRESS_INVALID
    assert await store.get(conversation, scratch_key("shipping_address", "pending")) is None
