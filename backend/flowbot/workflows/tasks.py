# /flowbot/workflows/tasks.py

"""
Task library: reusable multi-step sub-conversations.

Each task kind is a frozen config dataclass bound to one or more Step
classes. Factories are pure: the same parameters always build an equal
Flow, so a flow re-resolved from its persisted selector after a restart is
the flow that was running before it. Scratch keys live under
`__task:<key>:...` and are listed as the flow's working keys.
"""

import re
import structlog
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, Dict, Optional

from flowbot.config import rules, strings
from flowbot.errors import ConfigurationError
from flowbot.models.message import WORD_RE
from flowbot.workflows.steps import Completion, Flow, Step, StepContext

if TYPE_CHECKING:
    from flowbot.workflows.engine import StateMachine

log = structlog.get_logger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


class TaskKind(str, Enum):
    NOTIFY = "notify"
    REQUEST_TEXT = "request_text"
    REQUEST_CONFIRMATION = "request_confirmation"
    REQUEST_ADDRESS = "request_address"


def scratch_key(key: str, name: str) -> str:
    return f"__task:{key}:{name}"


def parse_yes_no(text: str) -> Optional[bool]:
    """True for an affirmative reply, False for a negative one, None otherwise."""
    words = set(WORD_RE.findall(text.lower()))
    if words & rules.AFFIRMATIVE_RESPONSES:
        return True
    if words & rules.NEGATIVE_RESPONSES:
        return False
    return None


def looks_like_address(text: str) -> bool:
    """A street address needs a number and at least three words."""
    return any(c.isdigit() for c in text) and len(WORD_RE.findall(text)) >= 3


# ---------------- Notify ---------------- #

@dataclass(frozen=True)
class NotifyConfig:
    text: str


@dataclass(frozen=True)
class NotifyStep(Step):
    config: NotifyConfig
    label: str = "notify"

    async def on_entry(self, ctx: StepContext) -> str:
        return self.config.text

    async def is_complete(self, ctx: StepContext) -> Completion:
        return True, ""


def notify(text: str, name: str = "notify") -> Flow:
    """One step that sends `text` and finishes on the next turn."""
    return Flow(name=name, steps=(NotifyStep(NotifyConfig(text)),))


# ---------------- Free text ---------------- #

@dataclass(frozen=True)
class TextConfig:
    key: str
    prompt: str

    @property
    def done_key(self) -> str:
        return scratch_key(self.key, "done")


@dataclass(frozen=True)
class RequestTextStep(Step):
    config: TextConfig
    label: str = "ask"

    async def on_entry(self, ctx: StepContext) -> str:
        return self.config.prompt

    async def on_input(self, ctx: StepContext) -> None:
        text = _WHITESPACE_RE.sub(" ", ctx.text).strip()
        if not text:
            ctx.reply(self.config.prompt)
            return
        ctx.memory.set(self.config.key, text)
        ctx.memory.set(self.config.done_key, True)

    async def is_complete(self, ctx: StepContext) -> Completion:
        return ctx.memory.get_bool(self.config.done_key), ""


def request_text(key: str, prompt: str) -> Flow:
    config = TextConfig(key, prompt)
    return Flow(
        name=f"{TaskKind.REQUEST_TEXT.value}:{key}",
        steps=(RequestTextStep(config),),
        working_keys=(config.done_key,),
    )


# ---------------- Yes / no ---------------- #

@dataclass(frozen=True)
class ConfirmationConfig:
    key: str
    question: str

    @property
    def done_key(self) -> str:
        return scratch_key(self.key, "done")


@dataclass(frozen=True)
class RequestConfirmationStep(Step):
    config: ConfirmationConfig
    label: str = "confirm"

    async def on_entry(self, ctx: StepContext) -> str:
        return self.config.question

    async def on_input(self, ctx: StepContext) -> None:
        answer = parse_yes_no(ctx.text)
        if answer is None:
            ctx.reply(strings.CONFIRMATION_RETRY)
            return
        ctx.memory.set(self.config.key, answer)
        ctx.memory.set(self.config.done_key, True)

    async def is_complete(self, ctx: StepContext) -> Completion:
        return ctx.memory.get_bool(self.config.done_key), ""


def request_confirmation(key: str, question: str) -> Flow:
    config = ConfirmationConfig(key, question)
    return Flow(
        name=f"{TaskKind.REQUEST_CONFIRMATION.value}:{key}",
        steps=(RequestConfirmationStep(config),),
        working_keys=(config.done_key,),
    )


# ---------------- Address ---------------- #

@dataclass(frozen=True)
class AddressConfig:
    label: str

    @property
    def noun(self) -> str:
        return self.label.replace("_", " ")

    @property
    def pending_key(self) -> str:
        return scratch_key(self.label, "pending")

    @property
    def done_key(self) -> str:
        return scratch_key(self.label, "done")

    @property
    def ask_label(self) -> str:
        return f"{self.label}:ask"

    @property
    def confirm_label(self) -> str:
        return f"{self.label}:confirm"


@dataclass(frozen=True)
class AskAddressStep(Step):
    config: AddressConfig
    label: str = ""

    def __post_init__(self):
        object.__setattr__(self, "label", self.config.ask_label)

    async def on_entry(self, ctx: StepContext) -> str:
        ctx.memory.delete(self.config.pending_key)
        ctx.memory.delete(self.config.done_key)
        return strings.ADDRESS_PROMPT.format(noun=self.config.noun)

    async def on_input(self, ctx: StepContext) -> None:
        text = _WHITESPACE_RE.sub(" ", ctx.text).strip()
        if not looks_like_address(text):
            ctx.reply(strings.ADDRESS_INVALID)
            return
        ctx.memory.set(self.config.pending_key, text)

    async def is_complete(self, ctx: StepContext) -> Completion:
        return bool(ctx.memory.get_str(self.config.pending_key)), ""


@dataclass(frozen=True)
class ConfirmAddressStep(Step):
    config: AddressConfig
    label: str = ""

    def __post_init__(self):
        object.__setattr__(self, "label", self.config.confirm_label)

    async def on_entry(self, ctx: StepContext) -> str:
        return strings.ADDRESS_CONFIRM.format(address=ctx.memory.get_str(self.config.pending_key))

    async def on_input(self, ctx: StepContext) -> None:
        answer = parse_yes_no(ctx.text)
        if answer is None:
            ctx.reply(strings.CONFIRMATION_RETRY)
        elif answer:
            ctx.memory.set(self.config.label, ctx.memory.get_str(self.config.pending_key))
            ctx.memory.set(self.config.done_key, True)
        else:
            ctx.memory.delete(self.config.pending_key)
            ctx.reply(strings.ADDRESS_RETRY)
            ctx.jump_to(self.config.ask_label)

    async def is_complete(self, ctx: StepContext) -> Completion:
        if ctx.memory.get_bool(self.config.done_key):
            return True, strings.ADDRESS_SAVED.format(noun=self.config.noun)
        return False, ""


def request_address(label: str) -> Flow:
    """
    Asks for an address, checks it has the shape of a street address, reads
    it back for confirmation and saves it under `label` once confirmed. A
    "no" goes back to the question.
    """
    config = AddressConfig(label)
    return Flow(
        name=f"{TaskKind.REQUEST_ADDRESS.value}:{label}",
        steps=(AskAddressStep(config), ConfirmAddressStep(config)),
        working_keys=(config.pending_key, config.done_key),
    )


_BUILDERS: Dict[TaskKind, Callable[..., Flow]] = {
    TaskKind.NOTIFY: notify,
    TaskKind.REQUEST_TEXT: request_text,
    TaskKind.REQUEST_CONFIRMATION: request_confirmation,
    TaskKind.REQUEST_ADDRESS: request_address,
}


def build_flow(machine: Optional["StateMachine"], kind, *params) -> Flow:
    """
    Builds a task flow, e.g. `build_flow(machine, TaskKind.REQUEST_ADDRESS, "shipping_address")`.
    Raises ConfigurationError for an unknown kind or missing parameters.
    """
    try:
        kind = TaskKind(kind)
    except ValueError as e:
        raise ConfigurationError(f"Unknown task kind '{kind}'") from e

    builder = _BUILDERS[kind]
    try:
        flow = builder(*params)
    except TypeError as e:
        raise ConfigurationError(f"Bad parameters for task '{kind.value}': {e}") from e

    if machine is not None:
        log.debug("Built task flow.", plugin=machine.plugin, kind=kind.value, flow=flow.name)
    return flow
