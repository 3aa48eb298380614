import json

import pytest

from searchloop.agent import Agent
from searchloop.config import RunConfig, SearchConfig
from searchloop.provider import ModelProvider
from searchloop.streaming import StreamChunk, ToolCallFragment
from searchloop.usage import Usage
from searchloop.web_search import WebSearchTool


# ---------------------------------------------------------------------------
# Mock provider
# ---------------------------------------------------------------------------

class MockProvider(ModelProvider):
    """Provider that streams pre-queued chunk lists. No network calls.

    A queued item may also be an exception, raised when its turn comes.
    """

    name = "mock"

    def __init__(self):
        self.responses: list = []
        self.call_log: list[dict] = []

    async def stream_complete(
        self, model, messages, tools=None, temperature=None, max_tokens=None,
    ):
        self.call_log.append({
            "model": model,
            "messages": messages,
            "tools": tools,
            "temperature": temperature,
            "max_tokens": max_tokens,
        })
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        for chunk in response:
            yield chunk


# ---------------------------------------------------------------------------
# Response builder helpers
# ---------------------------------------------------------------------------

def make_text_response(
    content: str, pieces: int = 1, usage: Usage | None = None,
) -> list[StreamChunk]:
    """Chunks streaming *content* in roughly *pieces* parts."""
    size = max(1, -(-len(content) // pieces))
    chunks = [
        StreamChunk(content_delta=content[i:i + size])
        for i in range(0, len(content), size)
    ]
    chunks.append(StreamChunk(finish_reason="stop", usage=usage))
    return chunks


def _split(text: str) -> list[str]:
    mid = len(text) // 2
    return [part for part in (text[:mid], text[mid:]) if part]


def make_tool_call_response(
    name: str,
    args: dict | str,
    call_id: str = "call_1",
    content: str | None = None,
) -> list[StreamChunk]:
    """Chunks for a single tool call whose arguments arrive in two parts."""
    return make_multi_tool_call_response([(name, args, call_id)], content=content)


def make_multi_tool_call_response(
    calls: list[tuple[str, dict | str, str]],
    content: str | None = None,
) -> list[StreamChunk]:
    """Chunks for several tool calls, with their argument fragments
    interleaved across indices.

    Each item in *calls* is ``(func_name, args, call_id)``; ``args`` may be
    raw text to simulate malformed arguments.
    """
    chunks = []
    if content:
        chunks.append(StreamChunk(content_delta=content))
    raw_args = [a if isinstance(a, str) else json.dumps(a) for _, a, _ in calls]
    chunks.append(StreamChunk(tool_call_fragments=[
        ToolCallFragment(index=i, call_id=call_id, name=name)
        for i, (name, _, call_id) in enumerate(calls)
    ]))
    parts = [_split(raw) for raw in raw_args]
    for step in range(2):
        fragments = [
            ToolCallFragment(index=i, arguments_delta=p[step])
            for i, p in enumerate(parts)
            if step < len(p)
        ]
        if fragments:
            chunks.append(StreamChunk(tool_call_fragments=fragments))
    chunks.append(StreamChunk(finish_reason="tool_calls"))
    return chunks


def make_empty_response() -> list[StreamChunk]:
    return [StreamChunk(finish_reason="stop")]


# ---------------------------------------------------------------------------
# Fake search backend
# ---------------------------------------------------------------------------

def make_search_payload(query: str, count: int = 3) -> dict:
    return {
        "organic": [
            {
                "title": f"{query} result {i}",
                "snippet": f"snippet {i}",
                "link": f"https://example.com/{i}",
                "position": i,
            }
            for i in range(count)
        ],
    }


class FakeSearchClient:
    """Search client that records queries and returns canned payloads."""

    def __init__(self, payload: dict | None = None, error: Exception | None = None):
        self.payload = payload
        self.error = error
        self.calls: list[tuple[str, int]] = []

    async def search(self, query: str, num_results: int) -> dict:
        self.calls.append((query, num_results))
        if self.error is not None:
            raise self.error
        if self.payload is not None:
            return self.payload
        return make_search_payload(query)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_provider():
    return MockProvider()


@pytest.fixture
def search_client():
    return FakeSearchClient()


@pytest.fixture
def search_tool(search_client):
    return WebSearchTool(client=search_client, config=SearchConfig())


@pytest.fixture
def make_agent(mock_provider, search_tool):
    """Factory fixture for agents on the mock provider with webSearch."""
    def _make(
        tools=None,
        system_prompt="You can search the web.",
        provider=None,
        name="test_agent",
    ):
        return Agent(
            model="mock-model",
            provider=provider or mock_provider,
            system_prompt=system_prompt,
            tools=[search_tool] if tools is None else tools,
            name=name,
        )
    return _make


@pytest.fixture
def config():
    return RunConfig(max_iterations=4, max_tool_calls=2)
