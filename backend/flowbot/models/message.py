# /flowbot/models/message.py

import re
from typing import Any, Dict, List, Tuple
from pydantic import BaseModel, ConfigDict, Field

# Precompiled regex for splitting raw text into words
WORD_RE = re.compile(r"\w+")


class ConversationKey(BaseModel):
    """Identity of one conversation: the plugin it belongs to and the user talking to it."""
    plugin: str = Field(..., min_length=1, pattern=r"^[^:]+$", description="Plugin name, without ':'")
    user_id: str = Field(..., min_length=1, description="User or session identifier")

    model_config = ConfigDict(frozen=True)

    @property
    def storage_id(self) -> str:
        """`<plugin>:<user_id>`. Plugin names never contain ':', so the first colon splits the two."""
        return f"{self.plugin}:{self.user_id}"


class Token(BaseModel):
    """A single word tagged with its word type (e.g. Command, Object)."""
    word: str
    word_type: str

    model_config = ConfigDict(frozen=True)


class Message(BaseModel):
    """Represents one inbound turn of a conversation."""
    conversation: ConversationKey
    text: str = Field(default="", description="Raw message text")
    tokens: List[Token] = Field(default_factory=list, description="Tagged words, in message order")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Opaque host metadata")

    @classmethod
    def from_pairs(cls, conversation: ConversationKey, pairs: List[Tuple[str, str]], text: str = "") -> "Message":
        """Builds a message from (word, word_type) pairs, deriving the text when it is not given."""
        tokens = [Token(word=word, word_type=word_type) for word, word_type in pairs]
        return cls(
            conversation=conversation,
            text=text or " ".join(word for word, _ in pairs),
            tokens=tokens,
        )


class StructuredInput(BaseModel):
    """
    A plugin's trigger vocabulary, used by the host to tag raw text when the
    caller does not supply tokens. This is a lookup, not language understanding.
    """
    commands: List[str] = Field(default_factory=list)
    objects: List[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    def tag(self, text: str) -> List[Token]:
        commands = {w.lower() for w in self.commands}
        objects = {w.lower() for w in self.objects}
        tokens = []
        for word in WORD_RE.findall(text.lower()):
            if word in commands:
                tokens.append(Token(word=word, word_type="Command"))
            elif word in objects:
                tokens.append(Token(word=word, word_type="Object"))
            else:
                tokens.append(Token(word=word, word_type="None"))
        return tokens
