from __future__ import annotations

from typing import Any

from research_relay.config import settings
from research_relay.errors import SourceError
from research_relay.models.search import SearchOptions, SearchResponse, SearchResult
from research_relay.tools.base import clamp_results, fetch_json, nested_list, text_or_none

GOOGLE_CSE_URL = "https://www.googleapis.com/customsearch/v1"
MAX_RESULTS = 10


def parse_response(payload: Any, max_results: int) -> list[SearchResult]:
    if not isinstance(payload, dict):
        raise SourceError("google_cse", "unexpected response shape")
    results: list[SearchResult] = []
    for item in nested_list("google_cse", payload, "items"):
        if not isinstance(item, dict):
            continue
        url = text_or_none(item.get("link"))
        if not url:
            continue
        results.append(
            SearchResult(
                title=text_or_none(item.get("title")) or url,
                url=url,
                content=text_or_none(item.get("snippet")),
            )
        )
    return results[:max_results]


class GoogleCSESource:
    name = "google_cse"

    def __init__(self, api_key: str | None = None, cx: str | None = None):
        self._api_key = api_key
        self._cx = cx

    @property
    def api_key(self) -> str:
        return self._api_key if self._api_key is not None else settings.google_api_key

    @property
    def cx(self) -> str:
        return self._cx if self._cx is not None else settings.google_cx_key

    async def search(self, query: str, options: SearchOptions) -> SearchResponse:
        if not self.api_key or not self.cx:
            raise SourceError(self.name, "GOOGLE_API_KEY or GOOGLE_CX_KEY is not configured")

        num = clamp_results(options.max_results, MAX_RESULTS)
        payload = await fetch_json(
            self.name,
            "GET",
            GOOGLE_CSE_URL,
            timeout_s=options.timeout_s,
            params={"key": self.api_key, "cx": self.cx, "q": query, "num": num},
        )
        return SearchResponse(provider=self.name, query=query, results=parse_response(payload, num))
