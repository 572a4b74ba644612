from __future__ import annotations

from typing import Any

from research_relay.config import settings
from research_relay.errors import SourceError
from research_relay.models.search import SearchOptions, SearchResponse, SearchResult
from research_relay.tools.base import clamp_results, fetch_json, nested_list, text_or_none

# Bing Web Search API v7
BING_SEARCH_URL = "https://api.bing.microsoft.com/v7.0/search"
MAX_RESULTS = 10


def parse_response(payload: Any, max_results: int) -> list[SearchResult]:
    if not isinstance(payload, dict):
        raise SourceError("bing", "unexpected response shape")
    pages = nested_list("bing", payload, "webPages", "value")
    results: list[SearchResult] = []
    for item in pages:
        if not isinstance(item, dict):
            continue
        url = text_or_none(item.get("url"))
        if not url:
            continue
        results.append(
            SearchResult(
                title=text_or_none(item.get("name")) or url,
                url=url,
                content=text_or_none(item.get("snippet")),
            )
        )
    return results[:max_results]


class BingSource:
    name = "bing"

    def __init__(self, api_key: str | None = None):
        self._api_key = api_key

    @property
    def api_key(self) -> str:
        return self._api_key if self._api_key is not None else settings.bing_api_key

    async def search(self, query: str, options: SearchOptions) -> SearchResponse:
        if not self.api_key:
            raise SourceError(self.name, "BING_API_KEY is not configured")

        count = clamp_results(options.max_results, MAX_RESULTS)
        payload = await fetch_json(
            self.name,
            "GET",
            BING_SEARCH_URL,
            timeout_s=options.timeout_s,
            params={
                "q": query,
                "count": count,
                "textDecorations": "false",
                "safeSearch": "Moderate",
            },
            headers={"Ocp-Apim-Subscription-Key": self.api_key},
        )
        return SearchResponse(provider=self.name, query=query, results=parse_response(payload, count))
