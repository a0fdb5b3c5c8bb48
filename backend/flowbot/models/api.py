# /flowbot/models/api.py

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from flowbot.models.message import Token

# Request and response bodies for the HTTP host.


class InboundMessage(BaseModel):
    user_id: str = Field(..., min_length=1, description="User or session identifier")
    text: str = Field(default="", max_length=4096)
    tokens: Optional[List[Token]] = Field(default=None, description="Pre-tagged words; tagged by the plugin's trigger when omitted")
    follow_up: bool = Field(default=True, description="False when the message is newly routed to this plugin")
    metadata: Dict[str, Any] = Field(default_factory=dict)


class OutboundResponse(BaseModel):
    response: str = Field(..., description="Reply text; empty means nothing to say")
