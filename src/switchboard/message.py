from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field, field_serializer

from switchboard.streaming import ToolCall


class MessageRole(Enum):
    SYSTEM = "system"
    ASSISTANT = "assistant"
    USER = "user"
    TOOL = "tool"
    # Shown to the user but never sent to a provider.
    ERROR = "error"


class ImageAttachment(BaseModel):
    """An image sent alongside a user message.

    ``data`` is base64 when ``type`` is ``"base64"``, otherwise a URL.
    """

    type: Literal["base64", "url"] = "base64"
    data: str
    mime_type: str = "image/png"

    def as_url(self) -> str:
        if self.type == "base64":
            return f"data:{self.mime_type};base64,{self.data}"
        return self.data


class Message(BaseModel):
    role: MessageRole
    content: str = ""
    images: list[ImageAttachment] = Field(default_factory=list)
    tool_calls: list[ToolCall] = Field(default_factory=list)
    tool_call_id: str | None = None

    @field_serializer('role')
    def serialize_role(self, role: MessageRole, _info) -> str:
        return role.value


def system(content: str) -> Message:
    return Message(role=MessageRole.SYSTEM, content=content)


def user(content: str, images: list[ImageAttachment] | None = None) -> Message:
    return Message(role=MessageRole.USER, content=content, images=images or [])


def assistant(content: str, tool_calls: list[ToolCall] | None = None) -> Message:
    return Message(
        role=MessageRole.ASSISTANT, content=content, tool_calls=tool_calls or [],
    )


def tool_result(tool_call_id: str, content: str) -> Message:
    return Message(role=MessageRole.TOOL, content=content, tool_call_id=tool_call_id)
