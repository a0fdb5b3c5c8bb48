# /flowbot/services/memory_store.py

"""
Durable per-conversation key/value memory.

A conversation's memory is a flat mapping of string keys to scalar values
(int, str or bool). Every backend implements the same contract:

- reads of unknown keys return the caller's default, never an error;
- `apply` commits a batch of updates and deletions atomically, so a turn's
  progress is persisted completely or not at all;
- writes are last-write-wins, so replaying the same batch is harmless;
- backend failures are raised as PersistenceError.
"""

import json
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Optional, Union

from flowbot.models.message import ConversationKey
from flowbot.utils.metrics import memory_operations_counter

logger = logging.getLogger(__name__)

MemoryValue = Union[int, str, bool]


def check_value(key: str, value: Any) -> None:
    """Rejects anything that is not a memory scalar."""
    if not isinstance(key, str) or not key:
        raise TypeError(f"Memory keys must be non-empty strings, got {key!r}")
    if not isinstance(value, (bool, int, str)):
        raise TypeError(f"Memory value for '{key}' must be int, str or bool, got {type(value).__name__}")


def encode_value(value: MemoryValue) -> str:
    return json.dumps(value)


def decode_value(raw: Union[bytes, str]) -> MemoryValue:
    """Decodes a stored value. Anything that is not a JSON scalar is returned as text."""
    text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        return text
    if isinstance(value, (bool, int, str)):
        return value
    return text


class MemoryStore(ABC):
    """Abstract interface for conversation memory storage."""

    backend: str = "abstract"

    @abstractmethod
    async def load(self, conversation: ConversationKey) -> Dict[str, MemoryValue]:
        """Returns every key stored for a conversation (empty if none)."""

    @abstractmethod
    async def apply(
        self,
        conversation: ConversationKey,
        updates: Dict[str, MemoryValue],
        deletions: Iterable[str] = (),
    ) -> None:
        """Atomically writes `updates` and removes `deletions`."""

    @abstractmethod
    async def clear(self, conversation: ConversationKey) -> None:
        """Removes all memory for a conversation."""

    async def get(self, conversation: ConversationKey, key: str, default: Optional[MemoryValue] = None) -> Optional[MemoryValue]:
        memory = await self.load(conversation)
        return memory.get(key, default)

    async def set(self, conversation: ConversationKey, key: str, value: MemoryValue) -> None:
        await self.apply(conversation, {key: value})

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class InMemoryMemoryStore(MemoryStore):
    """
    Dict-backed store for tests and development. Survives for the lifetime
    of the object, which makes it a stand-in for "across restarts" as long
    as the same instance is reused.
    """

    backend = "memory"

    def __init__(self) -> None:
        self._data: Dict[str, Dict[str, MemoryValue]] = {}
        self._lock = asyncio.Lock()

    async def load(self, conversation: ConversationKey) -> Dict[str, MemoryValue]:
        memory_operations_counter.labels(backend=self.backend, operation="load", status="success").inc()
        return dict(self._data.get(conversation.storage_id, {}))

    async def apply(
        self,
        conversation: ConversationKey,
        updates: Dict[str, MemoryValue],
        deletions: Iterable[str] = (),
    ) -> None:
        for key, value in updates.items():
            check_value(key, value)
        deletions = list(deletions)
        async with self._lock:
            memory = self._data.setdefault(conversation.storage_id, {})
            memory.update(updates)
            for key in deletions:
                memory.pop(key, None)
        memory_operations_counter.labels(backend=self.backend, operation="apply", status="success").inc()

    async def clear(self, conversation: ConversationKey) -> None:
        async with self._lock:
            self._data.pop(conversation.storage_id, None)
        memory_operations_counter.labels(backend=self.backend, operation="clear", status="success").inc()
