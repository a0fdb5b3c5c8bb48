# /flowbot/workflows/vocab.py

import structlog
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, FrozenSet, Iterable, List, Optional, Tuple

from flowbot.errors import ConfigurationError, DialogError, HandlerError
from flowbot.models.message import Message, Token
from flowbot.utils.metrics import vocab_hits_counter
from flowbot.workflows.steps import resolve
from flowbot.workflows.validator import validate_handler, validate_vocabulary

if TYPE_CHECKING:
    from flowbot.workflows.engine import StateMachine

# Keyword dispatch. A handler is bound to a word type and a set of trigger
# words; when a message contains a matching token the handler runs with the
# state machine, the message and the token's position. Returning text answers
# the turn immediately. Returning "" means the handler only changed memory
# (usually arming a flow) and dispatch carries on.

log = structlog.get_logger(__name__)

HandlerFn = Callable[["StateMachine", Message, int], Any]


@dataclass(frozen=True)
class VocabHandler:
    fn: HandlerFn
    word_type: str
    words: FrozenSet[str]

    def __post_init__(self):
        result = validate_handler(self.name, self.word_type, self.words)
        if not result["is_valid"]:
            raise ConfigurationError(result["message"])
        object.__setattr__(self, "words", frozenset(w.strip().lower() for w in self.words))

    @property
    def name(self) -> str:
        return getattr(self.fn, "__name__", repr(self.fn))

    def match(self, tokens: List[Token]) -> Optional[int]:
        """Position of the first token this handler triggers on, if any."""
        word_type = self.word_type.lower()
        for position, token in enumerate(tokens):
            if token.word_type.lower() == word_type and token.word.lower() in self.words:
                return position
        return None


class Vocab:
    """
    Ordered, immutable table of keyword handlers.

    Handlers run in registration order, each at most once per turn. The first
    non-empty response wins and no later handler is invoked.
    """

    def __init__(self, *handlers: VocabHandler, allow_overlap: bool = True):
        result = validate_vocabulary(handlers, allow_overlap=allow_overlap)
        if not result["is_valid"]:
            raise ConfigurationError(result["message"])
        self._handlers: Tuple[VocabHandler, ...] = tuple(handlers)

    @classmethod
    def from_table(cls, table: Iterable[Tuple[HandlerFn, str, Iterable[str]]], allow_overlap: bool = True) -> "Vocab":
        """Builds a vocabulary from (fn, word_type, words) tuples."""
        return cls(*(VocabHandler(fn, word_type, words) for fn, word_type, words in table), allow_overlap=allow_overlap)

    @property
    def handlers(self) -> Tuple[VocabHandler, ...]:
        return self._handlers

    async def handle_keywords(self, machine: "StateMachine", message: Message) -> str:
        for handler in self._handlers:
            position = handler.match(message.tokens)
            if position is None:
                continue

            word = message.tokens[position].word
            try:
                response = await resolve(handler.fn(machine, message, position))
            except DialogError:
                raise
            except Exception as e:
                vocab_hits_counter.labels(handler=handler.name, result="error").inc()
                log.error("Vocabulary handler failed.", handler=handler.name, word=word, exc_info=True)
                raise HandlerError(handler.name, word) from e

            if response:
                vocab_hits_counter.labels(handler=handler.name, result="response").inc()
                log.debug("Vocabulary handler answered the turn.", handler=handler.name, word=word)
                return response
            vocab_hits_counter.labels(handler=handler.name, result="side_effect").inc()
        return ""
