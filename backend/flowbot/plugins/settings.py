# /flowbot/plugins/settings.py

"""
The "settings" plugin: lets a user add or change a payment card, connect a
calendar, or add a shipping address.

Keyword handlers only arm a flow by setting the selector; the flow itself
prompts the user. "change my card" matches both the card and the change
handlers; handlers run in registration order, so the change handler runs
last and its selector is the one that sticks.
"""

from typing import Optional

from flowbot.config import rules, strings
from flowbot.config.settings import Settings, settings as default_settings
from flowbot.models.message import Message, StructuredInput
from flowbot.services.memory_store import MemoryStore
from flowbot.services.plugin import Plugin
from flowbot.utils.locks import ConversationLocks
from flowbot.workflows.definitions import FlowRegistry
from flowbot.workflows.engine import StateMachine
from flowbot.workflows.tasks import TaskKind, build_flow, notify
from flowbot.workflows.vocab import Vocab, VocabHandler

PLUGIN_NAME = "settings"

STATE_ADD_CARD = "stateAddCard"
STATE_CHANGE_CARD = "stateChangeCard"
STATE_CHANGE_CALENDAR = "stateChangeCalendar"
STATE_ADD_ADDRESS = "stateAddAddress"

TRIGGER = StructuredInput(commands=rules.SETTINGS_COMMANDS, objects=rules.SETTINGS_OBJECTS)


def kw_add_card(machine: StateMachine, message: Message, position: int) -> str:
    machine.set_selector(STATE_ADD_CARD)
    return ""


def kw_change_card(machine: StateMachine, message: Message, position: int) -> str:
    machine.set_selector(STATE_CHANGE_CARD)
    return ""


def kw_change_calendar(machine: StateMachine, message: Message, position: int) -> str:
    machine.set_selector(STATE_CHANGE_CALENDAR)
    return ""


def kw_add_address(machine: StateMachine, message: Message, position: int) -> str:
    machine.set_selector(STATE_ADD_ADDRESS)
    return ""


def build_vocab() -> Vocab:
    return Vocab(
        VocabHandler(kw_add_card, "Object", rules.CARD_OBJECTS),
        VocabHandler(kw_change_card, "Command", rules.CHANGE_COMMANDS),
        VocabHandler(kw_change_calendar, "Object", rules.CALENDAR_OBJECTS),
        VocabHandler(kw_add_address, "Object", rules.ADDRESS_OBJECTS),
    )


def link(base_url: str, *parts: str) -> str:
    return "/".join([base_url.rstrip("/"), *parts])


def add_shipping_address(machine: StateMachine, message: Message):
    return build_flow(machine, TaskKind.REQUEST_ADDRESS, "shipping_address")


def build_flows(base_url: str) -> FlowRegistry:
    return FlowRegistry({
        STATE_ADD_CARD: notify(strings.ADD_CARD.format(url=link(base_url, "cards", "new")), name="add_card"),
        STATE_CHANGE_CARD: notify(strings.CHANGE_CARD.format(url=link(base_url, "profile")), name="change_card"),
        STATE_CHANGE_CALENDAR: notify(strings.CHANGE_CALENDAR.format(url=link(base_url, "profile")), name="change_calendar"),
        STATE_ADD_ADDRESS: add_shipping_address,
    })


def create_plugin(
    store: MemoryStore,
    locks: Optional[ConversationLocks] = None,
    settings_obj: Settings = default_settings,
) -> Plugin:
    return Plugin(
        PLUGIN_NAME,
        store,
        build_vocab(),
        build_flows(settings_obj.abot_url),
        locks=locks,
        failure_response=settings_obj.failure_response,
        trigger=TRIGGER,
    )
