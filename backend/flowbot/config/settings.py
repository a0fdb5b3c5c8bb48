# /flowbot/config/settings.py

from typing import Optional
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from flowbot.config import strings
from flowbot.errors import ConfigurationError

MEMORY_BACKENDS = ("memory", "redis", "mongo")


class Settings(BaseSettings):
    # Memory store
    memory_backend: str = "memory"
    memory_key_prefix: str = "flowbot"

    # Redis
    redis_url: str = "redis://localhost:6379"
    redis_max_connections: int = 20

    # MongoDB
    mongo_uri: Optional[str] = None
    mongo_database: str = "flowbot"
    mongo_collection: str = "conversation_memory"
    max_pool_size: int = 10
    min_pool_size: int = 1

    # Conversation locking
    lock_backend: str = "local"
    lock_timeout_seconds: float = 30.0
    lock_blocking_timeout_seconds: float = 5.0

    # Circuit breaker around store calls
    breaker_failure_threshold: int = 5
    breaker_timeout_seconds: int = 60

    # App behavior
    failure_response: str = strings.GENERIC_FAILURE
    abot_url: str = "http://localhost:4200"

    # Deployment
    environment: str = "development"
    log_level: str = "INFO"
    api_version: str = "v1"
    metrics_api_key: Optional[str] = None

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # ---------------- Validators ---------------- #

    @field_validator("memory_backend", "lock_backend", mode="before")
    @classmethod
    def normalize_backend_name(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("lock_timeout_seconds", "lock_blocking_timeout_seconds")
    @classmethod
    def timeout_must_be_positive(cls, v):
        if v <= 0:
            raise ValueError("Lock timeouts must be positive")
        return v

    @model_validator(mode="after")
    def check_backends(self):
        if self.memory_backend not in MEMORY_BACKENDS:
            raise ValueError(f"MEMORY_BACKEND must be one of {', '.join(MEMORY_BACKENDS)}")
        if self.lock_backend not in ("local", "redis"):
            raise ValueError("LOCK_BACKEND must be 'local' or 'redis'")
        return self


def validate_environment(settings_obj: Settings) -> Settings:
    """Startup checks that depend on more than one field. Raises ConfigurationError."""
    if settings_obj.memory_backend == "mongo" and not settings_obj.mongo_uri:
        raise ConfigurationError("MONGO_URI is required when MEMORY_BACKEND is 'mongo'")

    if settings_obj.environment == "production" and settings_obj.memory_backend == "memory":
        raise ConfigurationError("MEMORY_BACKEND 'memory' is not durable and cannot be used in production")

    if settings_obj.lock_blocking_timeout_seconds > settings_obj.lock_timeout_seconds:
        raise ConfigurationError("LOCK_BLOCKING_TIMEOUT_SECONDS cannot exceed LOCK_TIMEOUT_SECONDS")

    return settings_obj


settings = Settings()
