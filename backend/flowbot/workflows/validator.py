# /flowbot/workflows/validator.py

"""
Pure validation functions for flow and vocabulary configuration.

These run once, when flows and vocabularies are built at startup, and
report problems as ValidationResult dictionaries. The constructors in
`steps` and `vocab` turn an invalid result into a ConfigurationError.

All functions are:
- Pure (no side effects)
- Deterministic (same input = same output)
- No storage access
- No logging
"""

from typing import Any, Iterable, Optional, Sequence, TypedDict
from flowbot.models.flow import CURSOR_KEY, ENTERED_KEY, SELECTOR_KEY


class ValidationResult(TypedDict):
    """Result of a validation check."""
    is_valid: bool
    error_code: Optional[str]
    message: Optional[str]


def _ok() -> ValidationResult:
    return {"is_valid": True, "error_code": None, "message": None}


def _fail(error_code: str, message: str) -> ValidationResult:
    return {"is_valid": False, "error_code": error_code, "message": message}


def _is_step(step: Any) -> bool:
    return all(callable(getattr(step, attr, None)) for attr in ("on_entry", "on_input", "is_complete"))


def validate_flow(name: str, steps: Sequence[Any], working_keys: Iterable[str] = ()) -> ValidationResult:
    """
    Validate a flow definition: a non-empty name, at least one step, every
    step implementing the step interface, unique labels, and working keys
    that do not shadow the engine's reserved keys.
    """
    if not name or not isinstance(name, str):
        return _fail("EMPTY_FLOW_NAME", "Flow name cannot be empty")

    if not steps:
        return _fail("EMPTY_FLOW", f"Flow '{name}' has no steps")

    labels = set()
    for index, step in enumerate(steps):
        if not _is_step(step):
            return _fail("INVALID_STEP", f"Step {index} of flow '{name}' does not implement on_entry/on_input/is_complete")
        label = getattr(step, "label", "")
        if label:
            if label in labels:
                return _fail("DUPLICATE_LABEL", f"Label '{label}' is used more than once in flow '{name}'")
            labels.add(label)

    for key in working_keys:
        if not key or not isinstance(key, str):
            return _fail("INVALID_WORKING_KEY", f"Flow '{name}' declares an empty working key")
        if key in (SELECTOR_KEY, CURSOR_KEY, ENTERED_KEY):
            return _fail("RESERVED_WORKING_KEY", f"Flow '{name}' cannot own reserved key '{key}'")

    return _ok()


def validate_handler(name: str, word_type: str, words: Any) -> ValidationResult:
    """Validate one vocabulary handler's trigger."""
    if not word_type or not isinstance(word_type, str) or not word_type.strip():
        return _fail("EMPTY_WORD_TYPE", f"Handler '{name}' has no word type")

    if isinstance(words, str):
        return _fail("INVALID_WORDS", f"Handler '{name}' words must be a collection, not a string")

    if not words:
        return _fail("EMPTY_WORDS", f"Handler '{name}' has no trigger words")

    if any(not isinstance(w, str) or not w.strip() for w in words):
        return _fail("INVALID_WORDS", f"Handler '{name}' has an empty or non-string trigger word")

    return _ok()


def validate_vocabulary(handlers: Sequence[Any], allow_overlap: bool = True) -> ValidationResult:
    """
    Validate a vocabulary table. The same callable may not be registered
    twice for the same word type. Different handlers may share trigger
    words (registration order decides) unless `allow_overlap` is False.
    """
    if not handlers:
        return _fail("EMPTY_VOCABULARY", "Vocabulary has no handlers")

    seen_fns = set()
    claimed = {}
    for handler in handlers:
        word_type = handler.word_type.lower()
        fn_key = (id(handler.fn), word_type)
        if fn_key in seen_fns:
            return _fail("DUPLICATE_HANDLER", f"Handler '{handler.name}' is registered twice for word type '{handler.word_type}'")
        seen_fns.add(fn_key)

        for word in handler.words:
            owner = claimed.get((word_type, word))
            if owner is not None and not allow_overlap:
                return _fail(
                    "AMBIGUOUS_TRIGGER",
                    f"'{word}' ({handler.word_type}) is claimed by both '{owner}' and '{handler.name}'"
                )
            claimed.setdefault((word_type, word), handler.name)

    return _ok()
