# /flowbot/services/redis_memory_store.py

import logging
from typing import Any, Callable, Dict, Iterable, Optional
import redis.asyncio as redis

from flowbot.errors import PersistenceError
from flowbot.models.message import ConversationKey
from flowbot.services.memory_store import MemoryStore, MemoryValue, check_value, decode_value, encode_value
from flowbot.utils.circuit_breaker import CircuitBreaker
from flowbot.utils.metrics import memory_operations_counter

# Conversation memory in Redis: one hash per conversation, one field per
# memory key, values JSON-encoded so ints and bools come back typed.

logger = logging.getLogger(__name__)


class RedisMemoryStore(MemoryStore):
    backend = "redis"

    def __init__(self, redis_client, prefix: str = "flowbot", circuit_breaker: Optional[CircuitBreaker] = None):
        self.redis = redis_client
        self.prefix = prefix
        self.circuit_breaker = circuit_breaker or CircuitBreaker("redis-memory")

    @classmethod
    def from_url(cls, redis_url: str, prefix: str = "flowbot", max_connections: int = 20,
                 circuit_breaker: Optional[CircuitBreaker] = None) -> "RedisMemoryStore":
        pool = redis.ConnectionPool.from_url(redis_url, max_connections=max_connections)
        return cls(redis.Redis(connection_pool=pool), prefix, circuit_breaker)

    def key_for(self, conversation: ConversationKey) -> str:
        return f"{self.prefix}:memory:{conversation.storage_id}"

    async def _call(self, operation: str, name: str, func: Callable, *args: Any, **kwargs: Any) -> Any:
        try:
            result = await self.circuit_breaker.call(func, *args, **kwargs)
        except Exception as e:
            memory_operations_counter.labels(backend=self.backend, operation=operation, status="error").inc()
            logger.error(f"Redis {operation} failed for {name}: {e}")
            raise PersistenceError(f"Redis {operation} failed for {name}") from e
        memory_operations_counter.labels(backend=self.backend, operation=operation, status="success").inc()
        return result

    async def load(self, conversation: ConversationKey) -> Dict[str, MemoryValue]:
        name = self.key_for(conversation)
        raw = await self._call("load", name, self.redis.hgetall, name)
        memory = {}
        for field, value in (raw or {}).items():
            key = field.decode("utf-8") if isinstance(field, bytes) else field
            memory[key] = decode_value(value)
        return memory

    async def get(self, conversation: ConversationKey, key: str, default: Optional[MemoryValue] = None) -> Optional[MemoryValue]:
        name = self.key_for(conversation)
        raw = await self._call("get", name, self.redis.hget, name, key)
        return default if raw is None else decode_value(raw)

    async def apply(
        self,
        conversation: ConversationKey,
        updates: Dict[str, MemoryValue],
        deletions: Iterable[str] = (),
    ) -> None:
        for key, value in updates.items():
            check_value(key, value)
        deletions = list(deletions)
        if not updates and not deletions:
            return
        name = self.key_for(conversation)
        await self._call("apply", name, self._apply, name, updates, deletions)

    async def _apply(self, name: str, updates: Dict[str, MemoryValue], deletions: list) -> None:
        # MULTI/EXEC so the whole batch lands or none of it does
        async with self.redis.pipeline(transaction=True) as pipe:
            if updates:
                pipe.hset(name, mapping={key: encode_value(value) for key, value in updates.items()})
            if deletions:
                pipe.hdel(name, *deletions)
            await pipe.execute()

    async def clear(self, conversation: ConversationKey) -> None:
        name = self.key_for(conversation)
        await self._call("clear", name, self.redis.delete, name)

    async def ping(self) -> bool:
        await self._call("ping", "server", self.redis.ping)
        return True

    async def close(self) -> None:
        await self.redis.aclose()
