# /flowbot/utils/dependencies.py

import secrets
from fastapi import HTTPException, Request

from flowbot.services.plugin import Plugin


def get_plugin(plugin_name: str, request: Request) -> Plugin:
    plugin = request.app.state.plugins.get(plugin_name)
    if plugin is None:
        raise HTTPException(status_code=404, detail=f"Unknown plugin '{plugin_name}'")
    return plugin


async def verify_metrics_access(request: Request):
    api_key = request.app.state.settings.metrics_api_key
    if api_key:
        provided_key = request.headers.get("X-API-KEY")
        if not (provided_key and secrets.compare_digest(provided_key, api_key)):
            raise HTTPException(status_code=403, detail="Invalid or missing API key")
