"""
Conversation data model shared by the server, the client and the renderer.

A message is an ordered list of parts. Parts form a closed union discriminated
by ``type``; anything else fails validation instead of being dropped.
"""

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class GenerationStatus(str, Enum):
    IDLE = "idle"
    SUBMITTED = "submitted"
    STREAMING = "streaming"
    ERROR = "error"


class _Part(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class TextPart(_Part):
    type: Literal["text"] = "text"
    content: str


class ToolInvocationPart(_Part):
    type: Literal["tool-invocation"] = "tool-invocation"
    tool_call_id: str = Field(alias="toolCallId")
    tool_name: str = Field(alias="toolName")
    arguments: Dict[str, Any] = Field(default_factory=dict)


class ToolResultPart(_Part):
    type: Literal["tool-result"] = "tool-result"
    tool_call_id: str = Field(alias="toolCallId")
    tool_name: str = Field(alias="toolName")
    result: Any = None


Part = Annotated[
    Union[TextPart, ToolInvocationPart, ToolResultPart], Field(discriminator="type")
]


class Message(BaseModel):
    id: str = Field(min_length=1)
    role: Literal["user", "assistant", "system"]
    parts: List[Part] = Field(min_length=1)

    def text(self) -> str:
        """Concatenated content of the text parts."""
        return "".join(p.content for p in self.parts if isinstance(p, TextPart))

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class ChatRequest(BaseModel):
    messages: List[Message]

    @field_validator("messages")
    @classmethod
    def _unique_ids(cls, messages: List[Message]) -> List[Message]:
        seen = set()
        for message in messages:
            if message.id in seen:
                raise ValueError(f"duplicate message id: {message.id}")
            seen.add(message.id)
        return messages
