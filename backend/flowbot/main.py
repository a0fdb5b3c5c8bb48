# /flowbot/main.py

import os
import uvicorn
from typing import Optional
from fastapi import FastAPI

from flowbot.config.settings import Settings, settings
from flowbot.routes import messages, public
from flowbot.services.memory_store import MemoryStore
from flowbot.utils.lifecycle import lifespan


def create_app(settings_obj: Settings = settings, store: Optional[MemoryStore] = None) -> FastAPI:
    """Builds the HTTP host. Passing `store` skips building one from settings."""
    app = FastAPI(
        title="flowbot",
        version="1.0.0",
        description="Multi-turn conversational flows over a stateless transport",
        lifespan=lifespan,
        openapi_url=f"/api/{settings_obj.api_version}/openapi.json" if settings_obj.environment != "production" else None,
        docs_url=f"/api/{settings_obj.api_version}/docs" if settings_obj.environment != "production" else None,
    )
    app.state.settings = settings_obj
    app.state.store = store

    app.include_router(public.router)
    app.include_router(messages.router, prefix=f"/api/{settings_obj.api_version}")
    return app


app = create_app()

# --- Main Entry Point for Uvicorn (for local development) ---
if __name__ == "__main__":
    port = int(os.getenv("PORT", "8000"))
    host = os.getenv("HOST", "127.0.0.1")

    uvicorn.run(
        "flowbot.main:app",
        host=host,
        port=port,
        reload=settings.environment == "development",
    )
