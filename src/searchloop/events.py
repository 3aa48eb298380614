"""Events yielded by :meth:`searchloop.runner.Runner.iter`.

A web front end can forward them to the browser as they arrive with
:func:`searchloop.sse.sse_generator`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class StreamEvent:
    """Base for all streaming events."""


@dataclass
class RawResponseEvent(StreamEvent):
    """Answer text delta, forwarded as soon as the provider sends it."""

    content: str = ""
    iteration: int = 0


@dataclass
class ReasoningEvent(StreamEvent):
    """Reasoning text delta from providers that expose it."""

    content: str = ""
    iteration: int = 0


@dataclass
class RunItemEvent(StreamEvent):
    """A discrete step in the agent loop.

    ``name`` values: ``"tool_call"`` (one executed tool with its output),
    ``"notice"`` (a corrective system turn was added) and ``"message"``
    (the final answer).
    """

    name: str = ""
    iteration: int = 0
    data: dict = field(default_factory=dict)


@dataclass
class RunCompleteEvent(StreamEvent):
    """Final event; always the last one yielded. Carries the RunResult."""

    result: Any = None
