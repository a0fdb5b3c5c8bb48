# /flowbot/workflows/memory.py

"""
Per-turn view of a conversation's memory.

A turn loads the conversation's keys once, reads and writes them
synchronously while steps run, and commits every staged change in a single
store call at the end. Until `commit` nothing reaches the store, so a turn
that fails part-way leaves persisted progress exactly as it was loaded.

Typed reads (`get_int`, `get_str`, `get_bool`) return the zero value for
unset keys, which makes "never set" and "set to zero" look the same. Use
`has` when the difference matters.
"""

from typing import Dict, Optional, Set, Tuple

from flowbot.models.message import ConversationKey
from flowbot.services.memory_store import MemoryStore, MemoryValue, check_value

_TRUE_STRINGS = {"true", "1", "yes"}


class TurnMemory:
    def __init__(self, store: MemoryStore, conversation: ConversationKey):
        self.store = store
        self.conversation = conversation
        self._snapshot: Dict[str, MemoryValue] = {}
        self._updates: Dict[str, MemoryValue] = {}
        self._deletions: Set[str] = set()

    async def load(self) -> "TurnMemory":
        self._snapshot = await self.store.load(self.conversation)
        self.discard()
        return self

    # ---------------- Reads ---------------- #

    def has(self, key: str) -> bool:
        if key in self._updates:
            return True
        if key in self._deletions:
            return False
        return key in self._snapshot

    def get(self, key: str, default: Optional[MemoryValue] = None) -> Optional[MemoryValue]:
        if key in self._updates:
            return self._updates[key]
        if key in self._deletions:
            return default
        return self._snapshot.get(key, default)

    def get_int(self, key: str) -> int:
        value = self.get(key)
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, int):
            return value
        if isinstance(value, str):
            try:
                return int(value)
            except ValueError:
                return 0
        return 0

    def get_str(self, key: str) -> str:
        value = self.get(key)
        if value is None:
            return ""
        return value if isinstance(value, str) else str(value)

    def get_bool(self, key: str) -> bool:
        value = self.get(key)
        if isinstance(value, str):
            return value.strip().lower() in _TRUE_STRINGS
        return bool(value)

    def as_dict(self) -> Dict[str, MemoryValue]:
        merged = {k: v for k, v in self._snapshot.items() if k not in self._deletions}
        merged.update(self._updates)
        return merged

    # ---------------- Writes ---------------- #

    def set(self, key: str, value: MemoryValue) -> None:
        check_value(key, value)
        self._updates[key] = value
        self._deletions.discard(key)

    def delete(self, key: str) -> None:
        self._updates.pop(key, None)
        if key in self._snapshot:
            self._deletions.add(key)

    @property
    def dirty(self) -> bool:
        return bool(self._updates or self._deletions)

    @property
    def staged(self) -> Tuple[Dict[str, MemoryValue], Set[str]]:
        return dict(self._updates), set(self._deletions)

    async def commit(self) -> None:
        """Persists staged changes in one atomic store call. Raises PersistenceError."""
        if not self.dirty:
            return
        await self.store.apply(self.conversation, dict(self._updates), sorted(self._deletions))
        self._snapshot.update(self._updates)
        for key in self._deletions:
            self._snapshot.pop(key, None)
        self.discard()

    def discard(self) -> None:
        self._updates.clear()
        self._deletions.clear()
