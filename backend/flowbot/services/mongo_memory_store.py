# /flowbot/services/mongo_memory_store.py

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Optional
from motor.motor_asyncio import AsyncIOMotorClient

from flowbot.errors import PersistenceError
from flowbot.models.message import ConversationKey
from flowbot.services.memory_store import MemoryStore, MemoryValue, check_value
from flowbot.utils.circuit_breaker import CircuitBreaker
from flowbot.utils.metrics import memory_operations_counter

logger = logging.getLogger(__name__)


def _field(key: str) -> str:
    """Dotted path of a memory key inside the conversation document."""
    if "." in key or key.startswith("$"):
        raise PersistenceError(f"Memory key '{key}' cannot be stored in MongoDB")
    return f"memory.{key}"


class MongoMemoryStore(MemoryStore):
    """
    Conversation memory in MongoDB. One document per conversation:

        {_id: "<plugin>:<user_id>", plugin, user_id, memory: {...}, updated_at}

    A batch is a single update_one, which MongoDB applies atomically to one
    document, so no multi-document transaction is needed.
    """

    backend = "mongo"

    def __init__(self, collection, circuit_breaker: Optional[CircuitBreaker] = None):
        self.collection = collection
        self.client: Optional[AsyncIOMotorClient] = None
        self.circuit_breaker = circuit_breaker or CircuitBreaker("mongo-memory")

    @classmethod
    def from_uri(cls, mongo_uri: str, database: str, collection: str, max_pool_size: int = 10,
                 min_pool_size: int = 1, circuit_breaker: Optional[CircuitBreaker] = None) -> "MongoMemoryStore":
        try:
            client = AsyncIOMotorClient(
                mongo_uri,
                maxPoolSize=max_pool_size,
                minPoolSize=min_pool_size,
                serverSelectionTimeoutMS=5000,
                connectTimeoutMS=10000,
            )
        except Exception as e:
            logger.error(f"Error initializing MongoDB client: {e}")
            raise PersistenceError("Could not initialize MongoDB client") from e
        store = cls(client[database][collection], circuit_breaker)
        store.client = client
        logger.info("MongoDB memory store initialized.")
        return store

    async def _call(self, operation: str, func: Callable, *args: Any, **kwargs: Any) -> Any:
        try:
            result = await self.circuit_breaker.call(func, *args, **kwargs)
        except Exception as e:
            memory_operations_counter.labels(backend=self.backend, operation=operation, status="error").inc()
            logger.error(f"MongoDB {operation} failed: {e}")
            raise PersistenceError(f"MongoDB {operation} failed") from e
        memory_operations_counter.labels(backend=self.backend, operation=operation, status="success").inc()
        return result

    async def load(self, conversation: ConversationKey) -> Dict[str, MemoryValue]:
        document = await self._call("load", self.collection.find_one, {"_id": conversation.storage_id}, {"memory": 1})
        if not document:
            return {}
        return dict(document.get("memory") or {})

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

        update: Dict[str, Any] = {
            "$set": {_field(key): value for key, value in updates.items()},
            "$setOnInsert": {"plugin": conversation.plugin, "user_id": conversation.user_id},
        }
        update["$set"]["updated_at"] = datetime.now(timezone.utc)
        if deletions:
            update["$unset"] = {_field(key): "" for key in deletions}

        await self._call("apply", self.collection.update_one, {"_id": conversation.storage_id}, update, upsert=True)

    async def clear(self, conversation: ConversationKey) -> None:
        await self._call("clear", self.collection.delete_one, {"_id": conversation.storage_id})

    async def ping(self) -> bool:
        await self._call("ping", self.collection.database.command, "ping")
        return True

    async def close(self) -> None:
        if self.client:
            self.client.close()
