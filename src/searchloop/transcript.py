from pydantic import BaseModel, Field

from searchloop.errors import TranscriptError
from searchloop.message import (
    AssistantMessage,
    Message,
    MessageRole,
    ToolCallResultMessage,
)


class Transcript(BaseModel):
    """Append-only conversation owned by a single run.

    A tool result may only follow the assistant turn that requested it,
    optionally after other tool results for that same turn, and each
    requested id is answered at most once.
    """

    messages: list[Message] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.messages)

    def append(self, message: Message) -> None:
        if isinstance(message, ToolCallResultMessage):
            self._check_tool_result(message)
        self.messages.append(message)

    def extend(self, messages: list[Message]) -> None:
        for m in messages:
            self.append(m)

    def _check_tool_result(self, message: ToolCallResultMessage) -> None:
        answered: set[str] = set()
        for prior in reversed(self.messages):
            if isinstance(prior, ToolCallResultMessage):
                answered.add(prior.tool_call_id)
                continue
            if isinstance(prior, AssistantMessage):
                requested = {tc.id for tc in prior.tool_calls}
                if message.tool_call_id not in requested:
                    raise TranscriptError(
                        f"Tool result {message.tool_call_id!r} does not match "
                        f"any call of the preceding assistant turn"
                    )
                if message.tool_call_id in answered:
                    raise TranscriptError(
                        f"Tool call {message.tool_call_id!r} already answered"
                    )
                return
            break
        raise TranscriptError(
            f"Tool result {message.tool_call_id!r} has no preceding "
            f"assistant turn"
        )

    @property
    def has_system_turn(self) -> bool:
        return any(m.role == MessageRole.SYSTEM for m in self.messages)

    def model_dump_messages(self) -> list[dict]:
        """Provider wire form of every turn."""
        return [m.model_dump() for m in self.messages]
