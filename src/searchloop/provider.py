"""Chat-completion provider adapters.

Every adapter exposes one capability, :meth:`ModelProvider.stream_complete`,
which sends the transcript and yields normalized
:class:`~searchloop.streaming.StreamChunk` objects. The agent loop is
written once against that capability.
"""

import logging
import os
from collections.abc import AsyncIterator

import httpx
from openai import APIError, AsyncOpenAI

from searchloop.errors import TransportError
from searchloop.sse import decode_stream, parse_chunk
from searchloop.streaming import StreamChunk

logger = logging.getLogger(__name__)


def build_request(
        model: str,
        messages: list[dict],
        tools: list[dict] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        max_tokens_field: str = "max_tokens",
        include_usage: bool = False,
) -> dict:
    """Body of a streaming ``/chat/completions`` request.

    ``tools`` and ``tool_choice`` are sent together or not at all.
    """
    request = {"model": model, "messages": messages, "stream": True}
    if max_tokens is not None:
        request[max_tokens_field] = max_tokens
    if temperature is not None:
        request["temperature"] = temperature
    if tools:
        request["tools"] = tools
        request["tool_choice"] = "auto"
    if include_usage:
        request["stream_options"] = {"include_usage": True}
    return request


class ModelProvider:
    """Base adapter. Subclasses implement ``stream_complete``."""

    name = "base"
    max_tokens_field = "max_tokens"

    def stream_complete(
            self,
            model: str,
            messages: list[dict],
            tools: list[dict] | None = None,
            temperature: float | None = None,
            max_tokens: int | None = None,
    ) -> AsyncIterator[StreamChunk]:
        raise NotImplementedError


class OpenAICompatibleProvider(ModelProvider):
    """Streams through the ``openai`` SDK against any compatible endpoint.

    SDK retries are disabled by default: a failed call ends the run and
    retrying is left to the caller.
    """

    name = "openai-compatible"
    api_key_env: str | None = None
    default_base_url: str | None = None

    def __init__(
            self,
            base_url: str | None = None,
            api_key: str | None = None,
            max_retries: int = 0,
            timeout: float = 180.0,
            include_usage: bool = True,
    ):
        if not api_key and self.api_key_env:
            api_key = os.getenv(self.api_key_env)
        self.base_url = base_url or self.default_base_url
        self.include_usage = include_usage
        self.client = AsyncOpenAI(
            base_url=self.base_url,
            api_key=api_key,
            max_retries=max_retries,
            timeout=timeout,
        )

    async def stream_complete(
            self,
            model: str,
            messages: list[dict],
            tools: list[dict] | None = None,
            temperature: float | None = None,
            max_tokens: int | None = None,
    ) -> AsyncIterator[StreamChunk]:
        request = build_request(
            model, messages, tools, temperature, max_tokens,
            max_tokens_field=self.max_tokens_field,
            include_usage=self.include_usage,
        )
        try:
            stream = await self.client.chat.completions.create(**request)
            async for event in stream:
                try:
                    chunk = parse_chunk(event.model_dump())
                except ValueError as e:
                    logger.warning(f"Skipping malformed chunk from {self.name}: {e}")
                    continue
                yield chunk
        except APIError as e:
            raise TransportError(
                f"{self.name} request failed: {e}",
                status_code=getattr(e, "status_code", None),
            ) from e


class OpenAIProvider(OpenAICompatibleProvider):
    name = "openai"
    api_key_env = "OPENAI_API_KEY"


class CerebrasProvider(OpenAICompatibleProvider):
    name = "cerebras"
    api_key_env = "CEREBRAS_API_KEY"
    default_base_url = "https://api.cerebras.ai/v1"
    max_tokens_field = "max_completion_tokens"


class HTTPStreamProvider(ModelProvider):
    """Posts the request with ``httpx`` and decodes the raw SSE body.

    For OpenAI-style servers the SDK does not handle well, or where the
    byte stream itself must be inspected.
    """

    name = "http"
    api_key_env: str | None = None
    default_base_url: str | None = None

    def __init__(
            self,
            base_url: str | None = None,
            api_key: str | None = None,
            timeout: float = 180.0,
            http_client: httpx.AsyncClient | None = None,
            include_usage: bool = False,
    ):
        if not api_key and self.api_key_env:
            api_key = os.getenv(self.api_key_env)
        base_url = base_url or self.default_base_url
        if not base_url:
            raise ValueError(f"{type(self).__name__} needs a base_url")
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.include_usage = include_usage
        self.client = http_client or httpx.AsyncClient(timeout=timeout)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "text/event-stream"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def stream_complete(
            self,
            model: str,
            messages: list[dict],
            tools: list[dict] | None = None,
            temperature: float | None = None,
            max_tokens: int | None = None,
    ) -> AsyncIterator[StreamChunk]:
        request = build_request(
            model, messages, tools, temperature, max_tokens,
            max_tokens_field=self.max_tokens_field,
            include_usage=self.include_usage,
        )
        url = f"{self.base_url}/chat/completions"
        try:
            async with self.client.stream(
                "POST", url, json=request, headers=self._headers(),
            ) as response:
                if response.status_code != 200:
                    body = (await response.aread()).decode(errors="replace")
                    raise TransportError(
                        f"{self.name} API error: {response.status_code} - {body[:500]}",
                        status_code=response.status_code,
                    )
                async for chunk in decode_stream(response.aiter_bytes()):
                    yield chunk
        except httpx.HTTPError as e:
            raise TransportError(f"{self.name} request failed: {e}") from e

    async def aclose(self) -> None:
        await self.client.aclose()


class GMIProvider(HTTPStreamProvider):
    name = "gmi"
    api_key_env = "GMI_API_KEY"
    default_base_url = "https://api.gmi-serving.com/v1"
