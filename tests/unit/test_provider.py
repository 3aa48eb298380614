import json
from unittest.mock import AsyncMock

import httpx
import pytest
from openai.types.chat import ChatCompletionChunk

from searchloop.errors import TransportError
from searchloop.provider import (
    CerebrasProvider,
    GMIProvider,
    HTTPStreamProvider,
    OpenAIProvider,
    build_request,
)
from searchloop.usage import Usage


async def _collect(agen):
    return [x async for x in agen]


MESSAGES = [{"role": "user", "content": "hi"}]
TOOLS = [{"type": "function", "function": {"name": "webSearch"}}]


# ---------------------------------------------------------------------------
# build_request
# ---------------------------------------------------------------------------

class TestBuildRequest:
    def test_with_tools(self):
        request = build_request("m", MESSAGES, TOOLS, temperature=0.2, max_tokens=100)
        assert request == {
            "model": "m",
            "messages": MESSAGES,
            "stream": True,
            "max_tokens": 100,
            "temperature": 0.2,
            "tools": TOOLS,
            "tool_choice": "auto",
        }

    def test_without_tools_omits_tool_choice(self):
        request = build_request("m", MESSAGES, None)
        assert "tools" not in request
        assert "tool_choice" not in request

    def test_empty_tool_list_omitted(self):
        assert "tools" not in build_request("m", MESSAGES, [])

    def test_max_tokens_field_and_usage(self):
        request = build_request(
            "m", MESSAGES, max_tokens=5,
            max_tokens_field="max_completion_tokens", include_usage=True,
        )
        assert request["max_completion_tokens"] == 5
        assert "max_tokens" not in request
        assert request["stream_options"] == {"include_usage": True}


# ---------------------------------------------------------------------------
# HTTPStreamProvider (raw SSE via httpx)
# ---------------------------------------------------------------------------

def _sse_body(*payloads) -> bytes:
    events = [f"data: {json.dumps(p)}\n\n" for p in payloads]
    return ("".join(events) + "data: [DONE]\n\n").encode()


def _http_provider(handler, cls=HTTPStreamProvider, **kwargs):
    return cls(
        base_url=kwargs.pop("base_url", "https://llm.test/v1/"),
        api_key="secret",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        **kwargs,
    )


class TestHTTPStreamProvider:
    @pytest.mark.asyncio
    async def test_streams_and_decodes(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            body = _sse_body(
                {"choices": [{"delta": {"content": "Hel"}}]},
                {"choices": [{"delta": {"content": "lo"}, "finish_reason": "stop"}]},
            )
            return httpx.Response(
                200, content=body, headers={"content-type": "text/event-stream"},
            )

        provider = _http_provider(handler)
        chunks = await _collect(provider.stream_complete(
            "model-x", MESSAGES, TOOLS, temperature=0.2, max_tokens=50,
        ))

        assert [c.content_delta for c in chunks] == ["Hel", "lo"]
        assert seen["url"] == "https://llm.test/v1/chat/completions"
        assert seen["auth"] == "Bearer secret"
        assert seen["body"]["stream"] is True
        assert seen["body"]["tools"] == TOOLS
        assert seen["body"]["tool_choice"] == "auto"

    @pytest.mark.asyncio
    async def test_tool_call_fragments(self):
        body = _sse_body(
            {"choices": [{"delta": {"tool_calls": [
                {"index": 0, "id": "c1", "function": {"name": "webSearch", "arguments": ""}},
            ]}}]},
            {"choices": [{"delta": {"tool_calls": [
                {"index": 0, "function": {"arguments": '{"query": "x"}'}},
            ]}}]},
        )
        provider = _http_provider(lambda request: httpx.Response(200, content=body))
        chunks = await _collect(provider.stream_complete("m", MESSAGES))

        frags = [f for c in chunks for f in c.tool_call_fragments or []]
        assert frags[0].call_id == "c1"
        assert frags[1].arguments_delta == '{"query": "x"}'

    @pytest.mark.asyncio
    async def test_error_status_is_transport_error(self):
        provider = _http_provider(lambda request: httpx.Response(429, text="slow down"))
        with pytest.raises(TransportError, match="429 - slow down") as exc_info:
            await _collect(provider.stream_complete("m", MESSAGES))
        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_connection_error_is_transport_error(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        provider = _http_provider(handler)
        with pytest.raises(TransportError, match="timed out"):
            await _collect(provider.stream_complete("m", MESSAGES))

    def test_requires_base_url(self):
        with pytest.raises(ValueError):
            HTTPStreamProvider()

    def test_gmi_defaults(self, monkeypatch):
        monkeypatch.setenv("GMI_API_KEY", "gmi-env")
        provider = GMIProvider()
        assert provider.base_url == "https://api.gmi-serving.com/v1"
        assert provider.api_key == "gmi-env"


# ---------------------------------------------------------------------------
# OpenAICompatibleProvider (openai SDK)
# ---------------------------------------------------------------------------

def _sdk_chunk(delta: dict, finish_reason=None, usage=None) -> ChatCompletionChunk:
    return ChatCompletionChunk.model_validate({
        "id": "chunk",
        "object": "chat.completion.chunk",
        "created": 0,
        "model": "m",
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}] if delta is not None else [],
        "usage": usage,
    })


class _FakeStream:
    def __init__(self, chunks):
        self._chunks = chunks

    def __aiter__(self):
        return self._gen()

    async def _gen(self):
        for c in self._chunks:
            yield c


class TestOpenAICompatibleProvider:
    def test_reads_env(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-from-env")
        assert OpenAIProvider().client.api_key == "sk-from-env"

    def test_cerebras_defaults(self, monkeypatch):
        monkeypatch.setenv("CEREBRAS_API_KEY", "csk")
        provider = CerebrasProvider()
        assert provider.base_url == "https://api.cerebras.ai/v1"
        assert provider.client.api_key == "csk"

    def test_sdk_retries_disabled(self):
        assert OpenAIProvider(api_key="k").client.max_retries == 0

    @pytest.mark.asyncio
    async def test_streams_chunks(self, monkeypatch):
        provider = OpenAIProvider(api_key="test-key")
        stream = _FakeStream([
            _sdk_chunk({"content": "Hel"}),
            _sdk_chunk({"tool_calls": [
                {"index": 0, "id": "c1", "type": "function",
                 "function": {"name": "webSearch", "arguments": "{}"}},
            ]}),
            _sdk_chunk({"content": "lo"}, finish_reason="stop"),
            _sdk_chunk(None, usage={"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5}),
        ])
        mock_create = AsyncMock(return_value=stream)
        monkeypatch.setattr(provider.client.chat.completions, "create", mock_create)

        chunks = await _collect(provider.stream_complete(
            "gpt-4o", MESSAGES, TOOLS, temperature=0.7, max_tokens=10,
        ))

        mock_create.assert_called_once_with(
            model="gpt-4o", messages=MESSAGES, stream=True,
            max_tokens=10, temperature=0.7,
            tools=TOOLS, tool_choice="auto",
            stream_options={"include_usage": True},
        )
        assert [c.content_delta for c in chunks] == ["Hel", None, "lo", None]
        assert chunks[1].tool_call_fragments[0].name == "webSearch"
        assert chunks[3].usage == Usage(3, 2, 5)

    @pytest.mark.asyncio
    async def test_cerebras_uses_max_completion_tokens(self, monkeypatch):
        provider = CerebrasProvider(api_key="k")
        mock_create = AsyncMock(return_value=_FakeStream([]))
        monkeypatch.setattr(provider.client.chat.completions, "create", mock_create)

        await _collect(provider.stream_complete("gpt-oss-120b", MESSAGES, max_tokens=7))

        assert mock_create.call_args.kwargs["max_completion_tokens"] == 7

    @pytest.mark.asyncio
    async def test_api_error_is_transport_error(self, monkeypatch):
        import openai

        provider = OpenAIProvider(api_key="test-key")
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        mock_create = AsyncMock(side_effect=openai.APIConnectionError(request=request))
        monkeypatch.setattr(provider.client.chat.completions, "create", mock_create)

        with pytest.raises(TransportError, match="openai request failed"):
            await _collect(provider.stream_complete("gpt-4o", MESSAGES))
