# /flowbot/workflows/steps.py

"""
Steps and flows.

A Step has three capabilities: an entry action that produces the prompt on
first visit, an input action that runs on each later turn, and a completion
predicate that decides when the flow moves on. A Flow is an immutable,
ordered tuple of steps. Neither holds state between turns; everything a
step needs to remember goes into the conversation's memory.
"""

import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Tuple, Union

from flowbot.errors import ConfigurationError
from flowbot.models.message import Message
from flowbot.workflows.memory import TurnMemory
from flowbot.workflows.validator import validate_flow

Completion = Tuple[bool, str]


async def resolve(result: Any) -> Any:
    """Awaits `result` when an action returned a coroutine, so actions may be sync or async."""
    if inspect.isawaitable(result):
        return await result
    return result


def as_completion(result: Any) -> Completion:
    """Normalizes a predicate result: `bool` or `(bool, override_text)`."""
    if isinstance(result, tuple):
        done = bool(result[0]) if result else False
        override = result[1] if len(result) > 1 and result[1] else ""
        return done, override
    return bool(result), ""


class StepContext:
    """What a step action sees during one turn."""

    def __init__(self, message: Message, memory: TurnMemory):
        self.message = message
        self.memory = memory
        self.replies: List[str] = []
        self.jump_target: Optional[str] = None

    @property
    def text(self) -> str:
        return self.message.text

    def reply(self, text: str) -> None:
        """Adds feedback to this turn's response."""
        if text:
            self.replies.append(text)

    def jump_to(self, label: str) -> None:
        """Moves to the labeled step once the current input action returns."""
        self.jump_target = label

    def take_jump(self) -> Optional[str]:
        target, self.jump_target = self.jump_target, None
        return target

    def compose(self, final: str = "") -> str:
        return "\n".join(part for part in [*self.replies, final] if part)


class Step(ABC):
    """Capability interface every step implements."""

    label: str = ""
    skip_if_complete: bool = False

    @abstractmethod
    async def on_entry(self, ctx: StepContext) -> str:
        """Prompt shown the first time the step is reached."""

    async def on_input(self, ctx: StepContext) -> None:
        return None

    @abstractmethod
    async def is_complete(self, ctx: StepContext) -> Completion:
        """Returns (done, override_text)."""


EntryFn = Callable[[StepContext], Union[str, Awaitable[str]]]
InputFn = Callable[[StepContext], Any]
CompleteFn = Callable[[StepContext], Any]


@dataclass(frozen=True)
class CallbackStep(Step):
    """A step assembled from plain (or async) callables."""

    entry_fn: EntryFn
    input_fn: Optional[InputFn] = None
    complete_fn: Optional[CompleteFn] = None
    label: str = ""
    skip_if_complete: bool = False

    async def on_entry(self, ctx: StepContext) -> str:
        return await resolve(self.entry_fn(ctx)) or ""

    async def on_input(self, ctx: StepContext) -> None:
        if self.input_fn is not None:
            await resolve(self.input_fn(ctx))

    async def is_complete(self, ctx: StepContext) -> Completion:
        if self.complete_fn is None:
            return True, ""
        return as_completion(await resolve(self.complete_fn(ctx)))


@dataclass(frozen=True)
class Flow:
    """
    A named, immutable sequence of steps.

    `working_keys` lists memory keys the flow owns; they are deleted when the
    flow completes or the conversation is reset.
    """

    name: str
    steps: Tuple[Step, ...]
    working_keys: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "steps", tuple(self.steps))
        object.__setattr__(self, "working_keys", tuple(self.working_keys))
        result = validate_flow(self.name, self.steps, self.working_keys)
        if not result["is_valid"]:
            raise ConfigurationError(result["message"])

    def __len__(self) -> int:
        return len(self.steps)

    def __getitem__(self, index: int) -> Step:
        return self.steps[index]

    def index_of(self, label: str) -> int:
        for index, step in enumerate(self.steps):
            if step.label == label:
                return index
        raise KeyError(f"Flow '{self.name}' has no step labeled '{label}'")

    def step_name(self, index: int) -> str:
        return self.steps[index].label or f"step-{index}"
