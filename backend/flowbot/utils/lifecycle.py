# /flowbot/utils/lifecycle.py

import logging
from contextlib import asynccontextmanager
from typing import Dict
from fastapi import FastAPI
import redis.asyncio as redis

from flowbot.config.settings import Settings, validate_environment
from flowbot.plugins import settings as settings_plugin
from flowbot.services.memory_store import InMemoryMemoryStore, MemoryStore
from flowbot.services.mongo_memory_store import MongoMemoryStore
from flowbot.services.plugin import Plugin
from flowbot.services.redis_memory_store import RedisMemoryStore
from flowbot.utils.circuit_breaker import CircuitBreaker
from flowbot.utils.locks import ConversationLocks, LocalConversationLocks, RedisConversationLocks
from flowbot.utils.logging import setup_logging

# Builds the host's dependencies from settings at startup and releases them
# at shutdown. Nothing here is a module-level singleton: everything hangs off
# app.state for the lifetime of the application.

logger = logging.getLogger(__name__)


def build_memory_store(settings_obj: Settings) -> MemoryStore:
    breaker = CircuitBreaker(
        f"{settings_obj.memory_backend}-memory",
        failure_threshold=settings_obj.breaker_failure_threshold,
        timeout=settings_obj.breaker_timeout_seconds,
    )
    if settings_obj.memory_backend == "redis":
        return RedisMemoryStore.from_url(
            settings_obj.redis_url,
            prefix=settings_obj.memory_key_prefix,
            max_connections=settings_obj.redis_max_connections,
            circuit_breaker=breaker,
        )
    if settings_obj.memory_backend == "mongo":
        return MongoMemoryStore.from_uri(
            settings_obj.mongo_uri,
            settings_obj.mongo_database,
            settings_obj.mongo_collection,
            max_pool_size=settings_obj.max_pool_size,
            min_pool_size=settings_obj.min_pool_size,
            circuit_breaker=breaker,
        )
    return InMemoryMemoryStore()


def build_locks(settings_obj: Settings, store: MemoryStore) -> ConversationLocks:
    if settings_obj.lock_backend == "redis":
        shared = isinstance(store, RedisMemoryStore)
        client = store.redis if shared else redis.Redis.from_url(settings_obj.redis_url)
        return RedisConversationLocks(
            client,
            owns_client=not shared,
            prefix=settings_obj.memory_key_prefix,
            timeout=settings_obj.lock_timeout_seconds,
            blocking_timeout=settings_obj.lock_blocking_timeout_seconds,
        )
    return LocalConversationLocks(blocking_timeout=settings_obj.lock_blocking_timeout_seconds)


def build_plugins(settings_obj: Settings, store: MemoryStore, locks: ConversationLocks) -> Dict[str, Plugin]:
    plugin = settings_plugin.create_plugin(store, locks=locks, settings_obj=settings_obj)
    return {plugin.name: plugin}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    settings_obj: Settings = app.state.settings
    setup_logging(settings_obj)
    validate_environment(settings_obj)

    logger.info("Application starting up...")

    store = getattr(app.state, "store", None) or build_memory_store(settings_obj)
    locks = build_locks(settings_obj, store)
    app.state.store = store
    app.state.locks = locks
    app.state.plugins = build_plugins(settings_obj, store, locks)

    logger.info(f"Application startup complete. Plugins: {', '.join(app.state.plugins)}; memory backend: {store.backend}")

    yield

    logger.info("Application shutting down...")
    await locks.close()
    await store.close()
