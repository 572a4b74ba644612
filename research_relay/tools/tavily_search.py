from __future__ import annotations

import asyncio
from typing import Any

from tavily import AsyncTavilyClient

from research_relay.config import settings
from research_relay.errors import SourceError
from research_relay.models.search import SearchOptions, SearchResponse, SearchResult
from research_relay.tools.base import clamp_results, nested_list, text_or_none

MAX_RESULTS = 20


def parse_response(payload: Any, max_results: int) -> list[SearchResult]:
    if not isinstance(payload, dict):
        raise SourceError("tavily", "unexpected response shape")
    results: list[SearchResult] = []
    for item in nested_list("tavily", payload, "results"):
        if not isinstance(item, dict):
            continue
        url = text_or_none(item.get("url"))
        if not url:
            continue
        score = item.get("score")
        results.append(
            SearchResult(
                title=text_or_none(item.get("title")) or url,
                url=url,
                content=text_or_none(item.get("content"), item.get("snippet")),
                score=float(score) if isinstance(score, (int, float)) else None,
            )
        )
    return results[:max_results]


class TavilySource:
    name = "tavily"

    def __init__(self, api_key: str | None = None, search_depth: str = "advanced"):
        self._api_key = api_key
        self.search_depth = search_depth

    @property
    def api_key(self) -> str:
        return self._api_key if self._api_key is not None else settings.tavily_api_key

    async def search(self, query: str, options: SearchOptions) -> SearchResponse:
        """Execute a Tavily web search and return structured results."""
        if not self.api_key:
            raise SourceError(self.name, "TAVILY_API_KEY is not configured")

        max_results = clamp_results(options.max_results, MAX_RESULTS)
        client = AsyncTavilyClient(api_key=self.api_key)
        try:
            payload = await asyncio.wait_for(
                client.search(
                    query=query,
                    search_depth=self.search_depth,
                    max_results=max_results,
                    include_answer=True,
                ),
                timeout=options.timeout_s,
            )
        except asyncio.TimeoutError as exc:
            raise SourceError(self.name, f"timed out after {options.timeout_s:.1f}s") from exc
        except Exception as exc:
            # The SDK raises its own error types as well as httpx/requests ones.
            raise SourceError(self.name, str(exc) or type(exc).__name__) from exc

        return SearchResponse(provider=self.name, query=query, results=parse_response(payload, max_results))
