# /flowbot/workflows/definitions.py

"""
Flow registry: which flow a persisted selector stands for.

Each selector maps either to a ready-made Flow or to a factory
`fn(machine, message) -> Flow` for flows that are built per turn. Both are
resolved again on every turn, so no flow object outlives the turn.
"""

import structlog
from types import MappingProxyType
from typing import TYPE_CHECKING, Callable, Mapping, Optional, Tuple, Union

from flowbot.errors import ConfigurationError, DialogError, StepActionError
from flowbot.models.message import Message
from flowbot.workflows.steps import Flow

if TYPE_CHECKING:
    from flowbot.workflows.engine import StateMachine

log = structlog.get_logger(__name__)

FlowFactory = Callable[["StateMachine", Message], Flow]
FlowEntry = Union[Flow, FlowFactory]


class FlowRegistry:
    def __init__(self, flows: Mapping[str, FlowEntry]):
        for selector, entry in flows.items():
            if not selector or not isinstance(selector, str):
                raise ConfigurationError("Flow selectors must be non-empty strings")
            if not isinstance(entry, Flow) and not callable(entry):
                raise ConfigurationError(f"Selector '{selector}' must map to a Flow or a flow factory")
        self._flows = MappingProxyType(dict(flows))

    def __contains__(self, selector: str) -> bool:
        return selector in self._flows

    @property
    def selectors(self) -> Tuple[str, ...]:
        return tuple(self._flows)

    def resolve(self, selector: str, machine: "StateMachine", message: Message) -> Optional[Flow]:
        """Returns the flow for `selector`, or None when idle or the selector is unknown."""
        if not selector:
            return None

        entry = self._flows.get(selector)
        if entry is None:
            log.warning("Unrecognized flow selector.", selector=selector, plugin=machine.plugin)
            return None
        if isinstance(entry, Flow):
            return entry

        try:
            flow = entry(machine, message)
        except DialogError:
            raise
        except Exception as e:
            log.error("Flow factory failed.", selector=selector, exc_info=True)
            raise StepActionError(selector, "factory", "build") from e
        if not isinstance(flow, Flow):
            raise ConfigurationError(f"Factory for selector '{selector}' did not return a Flow")
        return flow
