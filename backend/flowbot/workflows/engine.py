# /flowbot/workflows/engine.py

"""
Conversational state machine.

One StateMachine drives one Flow for one conversation during one turn:

1. `boot` loads the conversation's memory (selector, step cursor, entered flag
   and any flow-owned keys).
2. Vocabulary handlers may arm a flow with `set_selector`; the caller then
   binds the matching Flow with `set_flow`.
3. `advance` runs the current step. The first visit to a step fires its
   entry action and nothing else. Later turns run the input action and the
   completion predicate; completion moves the cursor and, when another step
   follows, fires that step's entry within the same turn. Completing the
   last step resets the conversation to idle.
4. `commit` persists every change made during the turn in one store call.

States: Idle (no selector) -> StepEntering (entry fired, awaiting input)
-> StepAdvancing (input processed) -> StepEntering | Idle.

Any failure inside a step action raises StepActionError and nothing is
committed, so the next turn retries the same step from the same place.
"""

import structlog
from typing import Any, Callable, List, Optional

from flowbot.errors import ConfigurationError, DialogError, StepActionError
from flowbot.models.flow import CURSOR_KEY, ENTERED_KEY, NO_FLOW, SELECTOR_KEY, FlowState
from flowbot.models.message import ConversationKey, Message
from flowbot.services.memory_store import MemoryStore
from flowbot.utils.metrics import flow_transitions_counter
from flowbot.workflows.memory import TurnMemory
from flowbot.workflows.steps import Flow, StepContext, as_completion, resolve

log = structlog.get_logger(__name__)

ResetHook = Callable[["StateMachine"], Any]


class StateMachine:
    def __init__(self, memory: TurnMemory, on_reset: Optional[ResetHook] = None):
        self.memory = memory
        self._flow: Optional[Flow] = None
        self._reset_hooks: List[ResetHook] = [on_reset] if on_reset else []

    @classmethod
    async def boot(cls, store: MemoryStore, conversation: ConversationKey,
                   on_reset: Optional[ResetHook] = None) -> "StateMachine":
        """Loads persisted progress for a conversation. Raises PersistenceError."""
        memory = await TurnMemory(store, conversation).load()
        return cls(memory, on_reset=on_reset)

    # ---------------- State ---------------- #

    @property
    def conversation(self) -> ConversationKey:
        return self.memory.conversation

    @property
    def plugin(self) -> str:
        return self.memory.conversation.plugin

    @property
    def selector(self) -> str:
        return self.memory.get_str(SELECTOR_KEY)

    @property
    def cursor(self) -> int:
        return self.memory.get_int(CURSOR_KEY)

    @property
    def entered(self) -> bool:
        return self.memory.get_bool(ENTERED_KEY)

    @property
    def state(self) -> FlowState:
        return FlowState(selector=self.selector, cursor=self.cursor, entered=self.entered)

    @property
    def flow(self) -> Optional[Flow]:
        return self._flow

    def set_selector(self, selector: str) -> None:
        """
        Arms a flow. Re-arming the active flow keeps its progress; arming a
        different one starts it from its first step.
        """
        if selector == self.selector:
            return
        self.memory.set(SELECTOR_KEY, selector)
        self.memory.set(CURSOR_KEY, 0)
        self.memory.set(ENTERED_KEY, False)

    def set_flow(self, flow: Flow) -> bool:
        """Binds the flow to run this turn unless one is already bound."""
        if self._flow is not None:
            log.debug("Flow already bound, ignoring.", bound=self._flow.name, offered=flow.name)
            return False
        self._flow = flow
        return True

    def rearm(self) -> None:
        """Makes the current step prompt again on the next advance."""
        self.memory.set(ENTERED_KEY, False)

    def add_reset_hook(self, hook: ResetHook) -> None:
        self._reset_hooks.append(hook)

    def jump_to(self, label: str) -> None:
        """Moves the cursor to a labeled step of the bound flow; its entry fires next."""
        if self._flow is None:
            raise ConfigurationError(f"Cannot jump to '{label}' without a bound flow")
        try:
            index = self._flow.index_of(label)
        except KeyError as e:
            raise ConfigurationError(str(e)) from e
        self._move(index)

    def reset(self) -> None:
        """Returns the conversation to idle and drops the bound flow's working keys."""
        flow = self._flow
        self.memory.set(SELECTOR_KEY, NO_FLOW)
        self.memory.set(CURSOR_KEY, 0)
        self.memory.set(ENTERED_KEY, False)
        if flow is not None:
            self.clear_working_keys(flow)
        self._flow = None
        for hook in self._reset_hooks:
            hook(self)

    def clear_working_keys(self, flow: Flow) -> None:
        for key in flow.working_keys:
            self.memory.delete(key)

    async def commit(self) -> None:
        await self.memory.commit()

    # ---------------- Turn ---------------- #

    async def advance(self, message: Message) -> str:
        flow = self._flow
        if flow is None:
            return ""

        cursor = self.cursor
        if not 0 <= cursor < len(flow):
            log.warning("Step cursor out of range, resetting.", flow=flow.name, cursor=cursor, steps=len(flow))
            self.reset()
            return ""

        ctx = StepContext(message, self.memory)

        # Each pass either returns or moves the cursor, so a flow can never
        # need more than one pass per step plus the pass that handled input.
        for _ in range(len(flow) + 1):
            step = flow[cursor]

            if not self.entered:
                if step.skip_if_complete:
                    done, _ = as_completion(await self._run(flow, cursor, "is_complete", step.is_complete, ctx))
                    if done:
                        log.debug("Skipping completed step.", flow=flow.name, step=flow.step_name(cursor))
                        cursor = self._move(cursor + 1)
                        if cursor >= len(flow):
                            return self._finish(flow, ctx)
                        continue

                prompt = await self._run(flow, cursor, "on_entry", step.on_entry, ctx)
                self.memory.set(ENTERED_KEY, True)
                flow_transitions_counter.labels(flow=flow.name, event="entered").inc()
                return ctx.compose(prompt or "")

            await self._run(flow, cursor, "on_input", step.on_input, ctx)

            target = ctx.take_jump()
            if target is not None:
                try:
                    cursor = self._move(flow.index_of(target))
                except KeyError as e:
                    raise StepActionError(flow.name, flow.step_name(cursor), "jump") from e
                flow_transitions_counter.labels(flow=flow.name, event="jumped").inc()
                continue

            done, override = as_completion(await self._run(flow, cursor, "is_complete", step.is_complete, ctx))
            if not done:
                return ctx.compose()

            ctx.reply(override)
            cursor = self._move(cursor + 1)
            if cursor >= len(flow):
                return self._finish(flow, ctx)

        log.error("Flow did not settle within its step bound, resetting.", flow=flow.name)
        self.reset()
        return ""

    def _move(self, index: int) -> int:
        self.memory.set(CURSOR_KEY, index)
        self.memory.set(ENTERED_KEY, False)
        return index

    def _finish(self, flow: Flow, ctx: StepContext) -> str:
        log.info("Flow complete.", flow=flow.name, plugin=self.plugin)
        flow_transitions_counter.labels(flow=flow.name, event="completed").inc()
        self.reset()
        return ctx.compose()

    async def _run(self, flow: Flow, cursor: int, phase: str, action: Callable, ctx: StepContext) -> Any:
        try:
            return await resolve(action(ctx))
        except DialogError:
            raise
        except Exception as e:
            log.error(
                "Step action failed.",
                flow=flow.name, step=flow.step_name(cursor), phase=phase, exc_info=True
            )
            raise StepActionError(flow.name, flow.step_name(cursor), phase) from e
