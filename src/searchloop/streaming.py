"""Streaming primitives for provider responses.

Providers yield :class:`StreamChunk` objects. The
:class:`ToolCallAccumulator` reassembles tool calls whose name and
arguments arrive in fragments across multiple chunks, and the
:class:`TurnAccumulator` folds a whole stream into one assistant turn.

Argument text is only ever handed out through ``finalize()``, after the
stream has ended. Nothing here parses it.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from searchloop.errors import StreamProtocolError
from searchloop.message import AssistantMessage, MessageRole, ToolCall
from searchloop.usage import Usage


@dataclass
class ToolCallFragment:
    """A fragment of a tool call from a streaming chunk."""

    index: int
    call_id: str | None = None
    name: str | None = None
    arguments_delta: str | None = None


@dataclass
class StreamChunk:
    """Normalised streaming chunk from any provider."""

    content_delta: str | None = None
    reasoning_delta: str | None = None
    tool_call_fragments: list[ToolCallFragment] | None = None
    finish_reason: str | None = None
    usage: Usage | None = None


@dataclass
class _PartialToolCall:
    id: str = ""
    name: str = ""
    arguments: str = ""


class ToolCallAccumulator:
    """Assembles complete tool calls from streaming fragments."""

    def __init__(self) -> None:
        self._pending: dict[int, _PartialToolCall] = {}

    def feed(self, fragment: ToolCallFragment) -> None:
        tc = self._pending.setdefault(fragment.index, _PartialToolCall())
        if fragment.call_id:
            if tc.id and tc.id != fragment.call_id:
                raise StreamProtocolError(
                    f"Tool call at index {fragment.index} changed id "
                    f"from {tc.id!r} to {fragment.call_id!r}"
                )
            tc.id = fragment.call_id
        if fragment.name:
            tc.name += fragment.name
        if fragment.arguments_delta:
            tc.arguments += fragment.arguments_delta

    def finalize(self) -> list[ToolCall]:
        """Return completed tool calls in index order.

        Entries that never received an id are stream artifacts and are
        dropped.
        """
        return [
            ToolCall(id=tc.id, name=tc.name, arguments=tc.arguments)
            for _, tc in sorted(self._pending.items())
            if tc.id
        ]


@dataclass
class TurnAccumulator:
    """Folds the chunks of one streamed response into an assistant turn."""

    tool_calls: ToolCallAccumulator = field(default_factory=ToolCallAccumulator)
    content_parts: list[str] = field(default_factory=list)
    reasoning_parts: list[str] = field(default_factory=list)
    usage: Usage | None = None
    finish_reason: str | None = None

    def feed(self, chunk: StreamChunk) -> None:
        if chunk.content_delta:
            self.content_parts.append(chunk.content_delta)
        if chunk.reasoning_delta:
            self.reasoning_parts.append(chunk.reasoning_delta)
        for frag in chunk.tool_call_fragments or ():
            self.tool_calls.feed(frag)
        if chunk.usage is not None:
            self.usage = chunk.usage
        if chunk.finish_reason:
            self.finish_reason = chunk.finish_reason

    def finalize(self) -> AssistantMessage:
        return AssistantMessage(
            role=MessageRole.ASSISTANT,
            content="".join(self.content_parts),
            tool_calls=self.tool_calls.finalize(),
            reasoning="".join(self.reasoning_parts) or None,
        )
