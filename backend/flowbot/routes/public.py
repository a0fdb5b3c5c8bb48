# /flowbot/routes/public.py

from datetime import datetime, timezone
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from flowbot.errors import PersistenceError
from flowbot.utils.dependencies import verify_metrics_access

# Health checks and the Prometheus endpoint. None of these touch a
# conversation.

router = APIRouter()


@router.get("/")
async def root(request: Request):
    """Root endpoint."""
    return {
        "service": "flowbot",
        "status": "operational",
        "environment": request.app.state.settings.environment,
        "plugins": sorted(request.app.state.plugins),
    }


@router.get("/health", summary="Basic Health Check")
async def health_check():
    """Basic health check for load balancers."""
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc)}


@router.get("/health/ready", summary="Readiness Probe")
async def readiness_check(request: Request):
    """Readiness probe: the memory store must answer."""
    store = request.app.state.store
    try:
        await store.ping()
    except PersistenceError:
        raise HTTPException(status_code=503, detail=f"Memory store ({store.backend}) not ready")
    return {"status": "ready", "memory_backend": store.backend}


@router.get("/metrics", tags=["Monitoring"])
async def metrics(_: None = Depends(verify_metrics_access)):
    """Prometheus metrics endpoint, optionally protected by an API key."""
    return PlainTextResponse(generate_latest(), media_type=CONTENT_TYPE_LATEST)
