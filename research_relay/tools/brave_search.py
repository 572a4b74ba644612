from __future__ import annotations

from typing import Any

from research_relay.config import settings
from research_relay.errors import SourceError
from research_relay.models.search import SearchOptions, SearchResponse, SearchResult
from research_relay.tools.base import clamp_results, fetch_json, nested_list, text_or_none

BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"
MAX_RESULTS = 20


def parse_response(payload: Any, max_results: int) -> list[SearchResult]:
    if not isinstance(payload, dict):
        raise SourceError("brave", "unexpected response shape")
    raw_results = nested_list("brave", payload, "web", "results")
    total = max(len(raw_results), 1)
    mapped: list[SearchResult] = []
    for idx, item in enumerate(raw_results):
        if not isinstance(item, dict):
            continue
        url = text_or_none(item.get("url"))
        if not url:
            continue
        extra = item.get("extra_snippets")
        snippets = [s for s in extra if isinstance(s, str)] if isinstance(extra, list) else []
        content = text_or_none(item.get("description"), " ".join(snippets))
        # Brave does not expose a relevance score; rank order stands in for it.
        mapped.append(
            SearchResult(
                title=text_or_none(item.get("title")) or url,
                url=url,
                content=content,
                score=max(0.0, 1.0 - (idx / total)),
            )
        )
    return mapped[:max_results]


class BraveSource:
    name = "brave"

    def __init__(self, api_key: str | None = None):
        self._api_key = api_key

    @property
    def api_key(self) -> str:
        return self._api_key if self._api_key is not None else settings.brave_api_key

    async def search(self, query: str, options: SearchOptions) -> SearchResponse:
        """Execute a Brave web search and normalize results."""
        if not self.api_key:
            raise SourceError(self.name, "BRAVE_API_KEY is not configured")

        count = clamp_results(options.max_results, MAX_RESULTS)
        payload = await fetch_json(
            self.name,
            "GET",
            BRAVE_SEARCH_URL,
            timeout_s=options.timeout_s,
            params={"q": query, "count": count},
            headers={
                "Accept": "application/json",
                "X-Subscription-Token": self.api_key,
            },
        )
        return SearchResponse(provider=self.name, query=query, results=parse_response(payload, count))
