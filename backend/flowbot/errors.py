# /flowbot/errors.py

"""Exception hierarchy for the dialog engine.

Every turn-fatal failure derives from DialogError. The plugin layer catches
DialogError, logs it and answers with the host's generic apology, so none of
these messages ever reach the user.
"""


class DialogError(Exception):
    """Base exception for all engine errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConfigurationError(DialogError):
    """Raised at startup for invalid flows, vocabularies or settings."""


class PersistenceError(DialogError):
    """Raised when the memory store cannot be read or written."""


class StepActionError(DialogError):
    """Raised when a step's entry, input or completion action fails."""

    def __init__(self, flow: str, step: str, phase: str) -> None:
        self.flow = flow
        self.step = step
        self.phase = phase
        super().__init__(f"Step '{step}' of flow '{flow}' failed during {phase}")


class HandlerError(DialogError):
    """Raised when a vocabulary handler fails."""

    def __init__(self, handler: str, word: str) -> None:
        self.handler = handler
        self.word = word
        super().__init__(f"Vocabulary handler '{handler}' failed on '{word}'")


class ConversationBusyError(DialogError):
    """Raised when a conversation's lock cannot be acquired in time."""
