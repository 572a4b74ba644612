from __future__ import annotations

from typing import Any

from research_relay.config import settings
from research_relay.errors import SourceError
from research_relay.models.search import SearchOptions, SearchResponse, SearchResult
from research_relay.tools.base import clamp_results, fetch_json, nested_list, text_or_none

LANGSEARCH_URL = "https://api.langsearch.com/v1/web-search"
MAX_RESULTS = 10


def parse_response(payload: Any, max_results: int) -> list[SearchResult]:
    """Map ``webPages.value`` entries to search results, dropping url-less items."""
    if not isinstance(payload, dict):
        raise SourceError("langsearch", "unexpected response shape")
    data = payload.get("data") if isinstance(payload.get("data"), dict) else payload
    pages = nested_list("langsearch", data, "webPages", "value")
    results: list[SearchResult] = []
    for item in pages:
        if not isinstance(item, dict):
            continue
        url = text_or_none(item.get("url"), item.get("webSearchUrl"))
        if not url:
            continue
        results.append(
            SearchResult(
                title=text_or_none(item.get("name"), item.get("title"), item.get("displayUrl")) or "Untitled",
                url=url,
                content=text_or_none(item.get("summary"), item.get("snippet")),
            )
        )
    return results[:max_results]


class LangSearchSource:
    name = "langsearch"

    def __init__(self, api_key: str | None = None):
        self._api_key = api_key

    @property
    def api_key(self) -> str:
        return self._api_key if self._api_key is not None else settings.langsearch_api_key

    async def search(self, query: str, options: SearchOptions) -> SearchResponse:
        """POST a web search; LangSearch wraps results in ``data.webPages``."""
        if not self.api_key:
            raise SourceError(self.name, "LANGSEARCH_API_KEY is not configured")

        count = clamp_results(options.max_results, MAX_RESULTS)
        payload = await fetch_json(
            self.name,
            "POST",
            LANGSEARCH_URL,
            timeout_s=options.timeout_s,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            json={"query": query, "freshness": "noLimit", "summary": True, "count": count},
        )
        return SearchResponse(provider=self.name, query=query, results=parse_response(payload, count))
