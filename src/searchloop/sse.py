"""Server-Sent Events framing.

Decoding turns the raw bytes of a streaming chat-completion response into
:class:`~searchloop.streaming.StreamChunk` records. Encoding turns the
runner's events into SSE text for a browser.
"""

from __future__ import annotations

import codecs
import json
import logging
import re
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import asdict

from searchloop.errors import TransportError
from searchloop.events import RunCompleteEvent, StreamEvent
from searchloop.streaming import StreamChunk, ToolCallFragment
from searchloop.usage import Usage

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"

_LINE_BREAK = re.compile(r"\r\n|\r|\n")


# ----------------------------------------------------------------------
# Decoding
# ----------------------------------------------------------------------

async def iter_sse_data(chunks: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """Yield the ``data`` payload of each SSE event in *chunks*.

    Lines may be split anywhere across chunks, including inside a
    multi-byte character or between ``\\r`` and ``\\n``. Comments,
    keep-alives and non-data fields are dropped.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    pending = ""
    data_lines: list[str] = []

    async for raw in chunks:
        text = pending + decoder.decode(raw)
        carry = ""
        if text.endswith("\r"):
            # could be the first half of \r\n
            text, carry = text[:-1], "\r"
        *lines, pending = _LINE_BREAK.split(text)
        pending += carry
        for line in lines:
            data = _consume_line(line, data_lines)
            if data is not None:
                yield data

    tail = pending + decoder.decode(b"", final=True)
    for line in _LINE_BREAK.split(tail):
        data = _consume_line(line, data_lines)
        if data is not None:
            yield data
    if data_lines:
        yield "\n".join(data_lines)


def _consume_line(line: str, data_lines: list[str]) -> str | None:
    """Apply one line to the event being built; return data on dispatch."""
    if not line:
        if not data_lines:
            return None
        data = "\n".join(data_lines)
        data_lines.clear()
        return data
    if line.startswith(":"):
        return None
    name, sep, value = line.partition(":")
    if sep and value.startswith(" "):
        value = value[1:]
    if name == "data":
        data_lines.append(value)
    return None


async def decode_stream(chunks: AsyncIterable[bytes]) -> AsyncIterator[StreamChunk]:
    """Decode an OpenAI-style completion stream into StreamChunks.

    Stops at the ``[DONE]`` sentinel. Events that are not valid JSON, or
    whose structure is not a completion chunk, are logged and skipped.

    Raises:
        TransportError: If the provider reports an error inside the stream.
    """
    async for data in iter_sse_data(chunks):
        for payload in _split_payloads(data):
            if payload.strip() == DONE_SENTINEL:
                logger.debug("Stream finished with [DONE]")
                return
            try:
                obj = json.loads(payload)
            except json.JSONDecodeError:
                logger.warning(f"Skipping malformed stream event: {payload[:200]!r}")
                continue
            if not isinstance(obj, dict):
                logger.warning(f"Skipping non-object stream event: {payload[:200]!r}")
                continue
            if obj.get("error"):
                raise TransportError(_describe_error(obj["error"]))
            try:
                chunk = parse_chunk(obj)
            except (TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed stream event: {e}")
                continue
            yield chunk
    logger.debug("Stream ended without [DONE] sentinel")


def _split_payloads(data: str) -> list[str]:
    # Some servers omit the blank line between events, which glues several
    # JSON documents together as one multi-line event.
    if "\n" not in data:
        return [data]
    try:
        json.loads(data)
    except json.JSONDecodeError:
        return [line for line in data.split("\n") if line.strip()]
    return [data]


def _describe_error(error) -> str:
    if isinstance(error, dict):
        return str(error.get("message") or error)
    return str(error)


def parse_chunk(payload: dict) -> StreamChunk:
    """Map one decoded completion chunk onto a :class:`StreamChunk`.

    Raises:
        ValueError: If a field has the wrong shape.
    """
    raw_usage = payload.get("usage")
    usage = Usage.from_payload(raw_usage) if isinstance(raw_usage, dict) else None

    choices = payload.get("choices") or []
    if not isinstance(choices, list):
        raise ValueError("'choices' is not a list")
    if not choices:
        return StreamChunk(usage=usage)

    choice = choices[0]
    if not isinstance(choice, dict):
        raise ValueError("choice is not an object")
    delta = choice.get("delta") or {}
    if not isinstance(delta, dict):
        raise ValueError("'delta' is not an object")

    raw_calls = delta.get("tool_calls") or []
    if not isinstance(raw_calls, list):
        raise ValueError("'tool_calls' is not a list")
    fragments = [_parse_fragment(tc) for tc in raw_calls]

    return StreamChunk(
        content_delta=_optional_str(delta.get("content"), "content"),
        reasoning_delta=_optional_str(
            delta.get("reasoning_content") or delta.get("reasoning"),
            "reasoning",
        ),
        tool_call_fragments=fragments or None,
        finish_reason=choice.get("finish_reason"),
        usage=usage,
    )


def _parse_fragment(raw) -> ToolCallFragment:
    if not isinstance(raw, dict):
        raise ValueError("tool call delta is not an object")
    index = raw.get("index")
    if not isinstance(index, int) or isinstance(index, bool):
        raise ValueError(f"tool call delta has invalid index {index!r}")
    function = raw.get("function") or {}
    if not isinstance(function, dict):
        raise ValueError("tool call 'function' is not an object")
    return ToolCallFragment(
        index=index,
        call_id=_optional_str(raw.get("id"), "id"),
        name=_optional_str(function.get("name"), "name"),
        arguments_delta=_optional_str(function.get("arguments"), "arguments"),
    )


def _optional_str(value, field_name: str) -> str | None:
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValueError(f"'{field_name}' is not a string")
    return value


# ----------------------------------------------------------------------
# Encoding
# ----------------------------------------------------------------------

async def sse_generator(
    event_stream: AsyncIterator[StreamEvent],
) -> AsyncIterator[str]:
    """Convert a StreamEvent async iterator into SSE-formatted strings."""
    async for event in event_stream:
        event_type = type(event).__name__
        if isinstance(event, RunCompleteEvent):
            data = json.dumps(event.result.to_dict() if event.result else {})
        else:
            data = json.dumps(asdict(event))
        yield f"event: {event_type}\ndata: {data}\n\n"
    yield "event: done\ndata: {}\n\n"
