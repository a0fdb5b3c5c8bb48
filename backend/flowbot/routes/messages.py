# /flowbot/routes/messages.py

import structlog
from fastapi import APIRouter, Depends, HTTPException, Response

from flowbot.errors import DialogError
from flowbot.models.api import InboundMessage, OutboundResponse
from flowbot.models.message import Message
from flowbot.services.plugin import Plugin
from flowbot.utils.dependencies import get_plugin

# The transport seam: one POST is one turn. Turn failures are already turned
# into the plugin's apology text, so this layer only maps unknown plugins
# and failed resets to HTTP errors.

router = APIRouter(tags=["Conversations"])

log = structlog.get_logger(__name__)


@router.post("/plugins/{plugin_name}/messages", response_model=OutboundResponse)
async def post_message(payload: InboundMessage, plugin: Plugin = Depends(get_plugin)):
    """Runs one conversational turn and returns the reply text."""
    tokens = payload.tokens if payload.tokens is not None else plugin.tag(payload.text)
    message = Message(
        conversation=plugin.conversation(payload.user_id),
        text=payload.text,
        tokens=tokens,
        metadata=payload.metadata,
    )
    if payload.follow_up:
        response = await plugin.follow_up(message)
    else:
        response = await plugin.run(message)
    return OutboundResponse(response=response)


@router.post("/plugins/{plugin_name}/conversations/{user_id}/reset", status_code=204)
async def reset_conversation(user_id: str, plugin: Plugin = Depends(get_plugin)):
    """Returns a conversation to idle."""
    try:
        await plugin.reset(plugin.conversation(user_id))
    except DialogError as e:
        log.error("Conversation reset failed.", plugin=plugin.name, user_id=user_id, error=e.message)
        raise HTTPException(status_code=503, detail="Conversation could not be reset")
    return Response(status_code=204)
