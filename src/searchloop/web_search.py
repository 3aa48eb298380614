"""The ``webSearch`` tool and its Serper backend."""

import logging
import math
import os
from typing import Any, Protocol

import httpx
from pydantic import BaseModel, ConfigDict, Field

from searchloop.config import SearchConfig
from searchloop.errors import ArgumentParseError, TransportError
from searchloop.tools import Tool

logger = logging.getLogger(__name__)

WEB_SEARCH_DESCRIPTION = (
    "Search the web for current information using Google Search. Use this "
    "when you need up-to-date information, facts, news, or answers that "
    "require recent data."
)


class SearchHit(BaseModel):
    title: str = ""
    snippet: str = ""
    link: str = ""


class SearchResponse(BaseModel):
    """Compact search result handed back to the model as JSON."""

    model_config = ConfigDict(populate_by_name=True)

    organic: list[SearchHit] = Field(default_factory=list)
    answer_box: dict | None = Field(default=None, alias="answerBox")
    query: str = Field(default="", exclude=True)


class SearchClient(Protocol):
    async def search(self, query: str, num_results: int) -> dict: ...


class SerperClient:
    """Minimal async client for ``google.serper.dev``.

    Args:
        api_key: Serper key. Falls back to ``SERPER_API_KEY``.
        config: Endpoint and timeout settings.
        http_client: Optional pre-built ``httpx.AsyncClient``.
    """

    def __init__(
            self,
            api_key: str | None = None,
            config: SearchConfig | None = None,
            http_client: httpx.AsyncClient | None = None,
    ):
        if not api_key:
            api_key = os.getenv("SERPER_API_KEY")
        if not api_key:
            raise ValueError("Serper API key missing: set SERPER_API_KEY")
        self.api_key = api_key
        self.config = config or SearchConfig()
        self.client = http_client or httpx.AsyncClient(timeout=self.config.timeout)

    async def search(self, query: str, num_results: int) -> dict:
        logger.info(f"Searching for {query!r} ({num_results} results)")
        try:
            response = await self.client.post(
                self.config.endpoint,
                headers={
                    "X-API-KEY": self.api_key,
                    "Content-Type": "application/json",
                },
                json={"q": query, "num": num_results},
            )
        except httpx.HTTPError as e:
            raise TransportError(f"search request failed: {e}") from e

        if not response.is_success:
            raise TransportError(
                f"Serper API error: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as e:
            raise TransportError("Serper returned a non-JSON body") from e
        if not isinstance(data, dict):
            raise TransportError("Serper returned an unexpected body")
        return data

    async def aclose(self) -> None:
        await self.client.aclose()


class WebSearchTool(Tool):
    """``webSearch(query, numResults?)`` backed by a :class:`SearchClient`."""

    client: Any = Field(exclude=True)
    config: SearchConfig = Field(default_factory=SearchConfig, exclude=True)

    def __init__(
            self,
            client: SearchClient | None = None,
            config: SearchConfig | None = None,
    ):
        config = config or SearchConfig()
        super().__init__(
            name="webSearch",
            description=WEB_SEARCH_DESCRIPTION,
            properties={
                "query": {
                    "type": "string",
                    "description": "The search query to look up on Google",
                },
                "numResults": {
                    "type": "integer",
                    "description": (
                        f"Number of search results to retrieve "
                        f"({config.min_results}-{config.max_results}). "
                        f"Use fewer for simple facts, more for deep research."
                    ),
                    "minimum": config.min_results,
                    "maximum": config.max_results,
                },
            },
            required=["query"],
            client=client or SerperClient(config=config),
            config=config,
        )

    def validate_arguments(self, params: dict[str, Any]) -> tuple[str, int]:
        query = params.get("query")
        if not isinstance(query, str) or not query.strip():
            raise ArgumentParseError(self.name, "'query' must be a non-empty string")
        return query.strip(), self._result_count(params.get("numResults"))

    def _result_count(self, value: Any) -> int:
        if value is None:
            return self.config.result_count_default
        if isinstance(value, str):
            try:
                value = int(value.strip())
            except ValueError:
                raise ArgumentParseError(
                    self.name, f"'numResults' must be a number, got {value!r}"
                ) from None
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ArgumentParseError(
                self.name, f"'numResults' must be a number, got {value!r}"
            )
        if isinstance(value, float) and not math.isfinite(value):
            raise ArgumentParseError(self.name, "'numResults' must be finite")
        if isinstance(value, float) and not value.is_integer():
            raise ArgumentParseError(
                self.name, f"'numResults' must be a whole number, got {value!r}"
            )
        return self.config.clamp(int(value))

    async def execute(self, arguments: dict[str, Any]) -> SearchResponse:
        query, num_results = self.validate_arguments(arguments)
        raw = await self.client.search(query, num_results)
        return normalize_response(raw, num_results, query=query)


def normalize_response(raw: dict, num_results: int, query: str = "") -> SearchResponse:
    """Keep at most *num_results* organic hits as ``{title, snippet, link}``."""
    organic = raw.get("organic")
    if not isinstance(organic, list):
        organic = []
    hits = []
    for item in organic[:num_results]:
        if not isinstance(item, dict):
            continue
        hits.append(SearchHit(
            title=str(item.get("title") or ""),
            snippet=str(item.get("snippet") or ""),
            link=str(item.get("link") or ""),
        ))
    answer_box = raw.get("answerBox")
    return SearchResponse(
        organic=hits,
        answer_box=answer_box if isinstance(answer_box, dict) and answer_box else None,
        query=query,
    )
