# /flowbot/utils/locks.py

import asyncio
import time
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

from redis.exceptions import LockError, RedisError

from flowbot.errors import ConversationBusyError, PersistenceError
from flowbot.models.message import ConversationKey
from flowbot.utils.metrics import lock_wait_histogram

# Turns for one conversation must never overlap: boot, advance and commit
# read and write the same memory keys. These lock registries give each
# conversation a mutual-exclusion scope held for the whole turn.

logger = logging.getLogger(__name__)


class ConversationLocks(ABC):
    """Per-conversation mutual exclusion."""

    backend: str = "abstract"

    @abstractmethod
    def hold(self, conversation: ConversationKey) -> "AsyncIterator[None]":
        """Async context manager held for the duration of one turn."""

    async def close(self) -> None:
        return None


class LocalConversationLocks(ConversationLocks):
    """
    One asyncio.Lock per conversation, for single-process hosts. A lock is
    dropped as soon as no turn holds or waits on it, so idle conversations
    cost nothing.
    """

    backend = "local"

    def __init__(self, blocking_timeout: Optional[float] = None):
        self.blocking_timeout = blocking_timeout
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, conversation: ConversationKey):
        key = conversation.storage_id
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            started = time.monotonic()
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self.blocking_timeout)
            except asyncio.TimeoutError:
                raise ConversationBusyError(f"Timed out waiting for conversation {key}")
            lock_wait_histogram.labels(backend=self.backend).observe(time.monotonic() - started)
            try:
                yield
            finally:
                lock.release()
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]


class RedisConversationLocks(ConversationLocks):
    """Distributed locks for hosts running several worker processes."""

    backend = "redis"

    def __init__(self, redis_client, prefix: str = "flowbot", timeout: float = 30.0, blocking_timeout: float = 5.0,
                 owns_client: bool = False):
        self.redis = redis_client
        self.owns_client = owns_client
        self.prefix = prefix
        self.timeout = timeout
        self.blocking_timeout = blocking_timeout

    def lock_name(self, conversation: ConversationKey) -> str:
        return f"{self.prefix}:lock:{conversation.storage_id}"

    async def close(self) -> None:
        """Closes the Redis client if this registry created it."""
        if self.owns_client:
            await self.redis.aclose()

    @asynccontextmanager
    async def hold(self, conversation: ConversationKey):
        name = self.lock_name(conversation)
        lock = self.redis.lock(name, timeout=self.timeout, blocking_timeout=self.blocking_timeout)
        started = time.monotonic()
        try:
            acquired = await lock.acquire()
        except LockError:
            acquired = False
        except RedisError as e:
            raise PersistenceError(f"Could not acquire lock {name}: {e}") from e
        if not acquired:
            raise ConversationBusyError(f"Timed out waiting for conversation {conversation.storage_id}")
        lock_wait_histogram.labels(backend=self.backend).observe(time.monotonic() - started)
        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError:
                # The lease ran out mid-turn; another worker may already hold it.
                logger.warning(f"Lock {name} expired before release")
