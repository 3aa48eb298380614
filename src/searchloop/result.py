"""Terminal outcome of one :meth:`searchloop.runner.Runner.run` call."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Union

from searchloop.errors import SearchLoopError
from searchloop.usage import Usage


@dataclass(frozen=True)
class SearchSource:
    title: str
    url: str
    snippet: str = ""


@dataclass(frozen=True)
class SearchMetadata:
    """Queries the model ran and every source they returned."""

    query: str
    sources: tuple[SearchSource, ...] = ()


@dataclass(frozen=True)
class CompletedRun:
    """The model produced a final answer."""

    text: str
    tool_calls_used: int
    iterations_used: int
    reasoning: str | None = None
    usage: Usage = field(default_factory=Usage)
    search_metadata: SearchMetadata | None = None

    @property
    def ok(self) -> bool:
        return True

    def to_dict(self) -> dict:
        return {"status": "completed", **asdict(self)}


@dataclass(frozen=True)
class FailedRun:
    """The run ended without an answer. ``error`` says why."""

    error: SearchLoopError
    tool_calls_used: int
    iterations_used: int
    usage: Usage = field(default_factory=Usage)

    @property
    def ok(self) -> bool:
        return False

    def to_dict(self) -> dict:
        return {
            "status": "failed",
            "error_type": type(self.error).__name__,
            "error": str(self.error),
            "tool_calls_used": self.tool_calls_used,
            "iterations_used": self.iterations_used,
            "usage": asdict(self.usage),
        }


RunResult = Union[CompletedRun, FailedRun]
