# /flowbot/services/plugin.py

import structlog
from typing import List, Optional

from flowbot.config import strings
from flowbot.errors import ConfigurationError, DialogError
from flowbot.models.flow import FlowState
from flowbot.models.message import ConversationKey, Message, StructuredInput, Token
from flowbot.services.memory_store import MemoryStore
from flowbot.utils.locks import ConversationLocks, LocalConversationLocks
from flowbot.utils.metrics import turn_counter, turn_duration_histogram
from flowbot.workflows.definitions import FlowRegistry
from flowbot.workflows.engine import ResetHook, StateMachine
from flowbot.workflows.vocab import Vocab

# A plugin is the turn driver for one conversational package: it owns a
# vocabulary, a flow registry and the dependencies they run against, and it
# turns each inbound message into exactly one locked, all-or-nothing turn.

log = structlog.get_logger(__name__)


class Plugin:
    def __init__(
        self,
        name: str,
        store: MemoryStore,
        vocab: Vocab,
        flows: FlowRegistry,
        locks: Optional[ConversationLocks] = None,
        failure_response: str = strings.GENERIC_FAILURE,
        on_reset: Optional[ResetHook] = None,
        trigger: Optional[StructuredInput] = None,
    ):
        if not name or ":" in name:
            raise ConfigurationError(f"Invalid plugin name '{name}': must be non-empty and contain no ':'")
        self.name = name
        self.store = store
        self.vocab = vocab
        self.flows = flows
        self.locks = locks if locks is not None else LocalConversationLocks()
        self.failure_response = failure_response
        self.on_reset = on_reset
        self.trigger = trigger

    def conversation(self, user_id: str) -> ConversationKey:
        return ConversationKey(plugin=self.name, user_id=user_id)

    def tag(self, text: str) -> List[Token]:
        """Tags raw text with the plugin's trigger words when the caller sent no tokens."""
        if self.trigger is None:
            return []
        return self.trigger.tag(text)

    async def run(self, message: Message) -> str:
        """Handles a message newly routed to this plugin: the current step prompts again."""
        return await self.handle(message, rearm=True)

    async def follow_up(self, message: Message) -> str:
        """Handles a message continuing this plugin's conversation."""
        return await self.handle(message)

    async def handle(self, message: Message, rearm: bool = False) -> str:
        conversation = message.conversation
        if conversation.plugin != self.name:
            raise ValueError(f"Message for plugin '{conversation.plugin}' sent to '{self.name}'")

        bound_log = log.bind(plugin=self.name, user_id=conversation.user_id)
        with turn_duration_histogram.labels(plugin=self.name).time():
            try:
                async with self.locks.hold(conversation):
                    response = await self._turn(message, rearm)
            except DialogError as e:
                turn_counter.labels(plugin=self.name, outcome="failed").inc()
                bound_log.error("Turn failed.", error=e.message, error_type=type(e).__name__, exc_info=True)
                return self.failure_response

        turn_counter.labels(plugin=self.name, outcome="responded" if response else "silent").inc()
        return response

    async def _turn(self, message: Message, rearm: bool) -> str:
        machine = await StateMachine.boot(self.store, message.conversation, on_reset=self.on_reset)
        if rearm:
            machine.rearm()

        previous = machine.selector
        response = await self.vocab.handle_keywords(machine, message)
        if previous and machine.selector != previous:
            self._drop_flow(previous, machine, message)

        if not response:
            selector = machine.selector
            flow = self.flows.resolve(selector, machine, message)
            if flow is not None:
                machine.set_flow(flow)
            elif selector:
                machine.reset()
            response = await machine.advance(message)

        await machine.commit()
        return response

    def _drop_flow(self, selector: str, machine: StateMachine, message: Message) -> None:
        """Clears the working keys of a flow that a new trigger replaced."""
        flow = self.flows.resolve(selector, machine, message)
        if flow is not None:
            machine.clear_working_keys(flow)
            log.debug("Replaced active flow.", plugin=self.name, replaced=flow.name, selector=machine.selector)

    async def state(self, conversation: ConversationKey) -> FlowState:
        machine = await StateMachine.boot(self.store, conversation)
        return machine.state

    async def reset(self, conversation: ConversationKey) -> None:
        """Explicit reset to idle, including the active flow's working keys."""
        async with self.locks.hold(conversation):
            machine = await StateMachine.boot(self.store, conversation, on_reset=self.on_reset)
            flow = self.flows.resolve(machine.selector, machine, Message(conversation=conversation))
            if flow is not None:
                machine.set_flow(flow)
            machine.reset()
            await machine.commit()
        log.info("Conversation reset.", plugin=self.name, user_id=conversation.user_id)
