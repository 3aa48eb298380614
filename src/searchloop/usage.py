"""Token usage bookkeeping.

The runner sums the usage each provider call reports and writes one
:class:`UsageRecord` per call to an optional :class:`UsageSink`. Pricing
and persistence belong to the sink.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: Usage) -> Usage:
        return Usage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )

    @classmethod
    def from_payload(cls, payload: dict | None) -> Usage | None:
        """Build from an OpenAI-style ``usage`` object, tolerating nulls."""
        if not payload:
            return None
        prompt = payload.get("prompt_tokens") or 0
        completion = payload.get("completion_tokens") or 0
        total = payload.get("total_tokens") or prompt + completion
        return cls(
            prompt_tokens=int(prompt),
            completion_tokens=int(completion),
            total_tokens=int(total),
        )


@dataclass(frozen=True)
class UsageRecord:
    """Usage of a single provider round-trip."""

    agent_name: str
    provider: str
    model: str
    iteration: int
    usage: Usage
    latency_ms: int
    tool_calls_offered: bool


class UsageSink(Protocol):
    async def record(self, record: UsageRecord) -> None: ...


@dataclass
class InMemoryUsageSink:
    """Collects records in a list. Handy for tests and scripts."""

    records: list[UsageRecord] = field(default_factory=list)

    async def record(self, record: UsageRecord) -> None:
        self.records.append(record)

    @property
    def total(self) -> Usage:
        total = Usage()
        for r in self.records:
            total = total + r.usage
        return total


class LoggingUsageSink:
    """Writes each record to the log at INFO level."""

    async def record(self, record: UsageRecord) -> None:
        logger.info(
            f"{record.agent_name} iteration {record.iteration} "
            f"[{record.provider}/{record.model}]: "
            f"{record.usage.total_tokens} tokens "
            f"({record.usage.prompt_tokens} prompt + "
            f"{record.usage.completion_tokens} completion) "
            f"in {record.latency_ms}ms"
        )
