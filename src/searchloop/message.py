from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, Field, field_serializer, model_serializer


class MessageRole(Enum):
    SYSTEM = "system"
    ASSISTANT = "assistant"
    USER = "user"
    TOOL = "tool"


@dataclass(frozen=True)
class ToolCall:
    """A resolved tool call ready for the transcript."""

    id: str
    name: str
    arguments: str = ""


class Message(BaseModel):
    role: MessageRole
    content: str

    @field_serializer('role')
    def serialize_role(self, role: MessageRole, _info) -> str:
        return role.value


class AssistantMessage(Message):
    """An assistant turn: text, tool calls, or both.

    ``reasoning`` holds reasoning text some providers stream alongside the
    answer. It is kept for the caller and never sent back to the model.
    """

    content: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    reasoning: str | None = Field(default=None, exclude=True)

    @field_serializer("tool_calls")
    def serialize_tool_calls(self, tool_calls: list[ToolCall]) -> list[dict]:
        return [
            {
                "id": t.id,
                "type": "function",
                "function": {
                    "arguments": t.arguments,
                    "name": t.name
                }
            }
            for t in tool_calls
        ]

    @model_serializer(mode="wrap")
    def _drop_empty_tool_calls(self, handler):
        data = handler(self)
        if not data.get("tool_calls"):
            data.pop("tool_calls", None)
        return data


class ToolCallResultMessage(Message):
    tool_call_id: str


def system(content: str) -> Message:
    return Message(role=MessageRole.SYSTEM, content=content)


def user(content: str) -> Message:
    return Message(role=MessageRole.USER, content=content)
