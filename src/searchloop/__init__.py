"""Bounded tool-calling agent loop with streamed responses and web search."""

from searchloop.agent import Agent
from searchloop.config import RunConfig, SearchConfig
from searchloop.errors import (
    ArgumentParseError,
    BudgetExhaustedError,
    Cancelled,
    EmptyResponseError,
    SearchLoopError,
    StreamProtocolError,
    TransportError,
)
from searchloop.instrumentation import instrument, uninstrument
from searchloop.logs import configure_logging
from searchloop.provider import (
    CerebrasProvider,
    GMIProvider,
    HTTPStreamProvider,
    ModelProvider,
    OpenAICompatibleProvider,
    OpenAIProvider,
)
from searchloop.result import CompletedRun, FailedRun, RunResult
from searchloop.runner import Runner
from searchloop.web_search import SerperClient, WebSearchTool

__all__ = [
    "Agent",
    "ArgumentParseError",
    "BudgetExhaustedError",
    "Cancelled",
    "CerebrasProvider",
    "CompletedRun",
    "EmptyResponseError",
    "FailedRun",
    "GMIProvider",
    "HTTPStreamProvider",
    "ModelProvider",
    "OpenAICompatibleProvider",
    "OpenAIProvider",
    "RunConfig",
    "RunResult",
    "Runner",
    "SearchConfig",
    "SearchLoopError",
    "SerperClient",
    "StreamProtocolError",
    "TransportError",
    "WebSearchTool",
    "configure_logging",
    "instrument",
    "uninstrument",
]
