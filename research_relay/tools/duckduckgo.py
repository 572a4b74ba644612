from __future__ import annotations

from typing import Any

from research_relay.errors import SourceError
from research_relay.models.search import SearchOptions, SearchResponse, SearchResult
from research_relay.tools.base import clamp_results, fetch_json, nested_list, text_or_none

# Instant Answer API: returns related topics rather than a ranked web index.
DDG_URL = "https://api.duckduckgo.com/"
MAX_RESULTS = 20


def _topic_result(topic: Any) -> SearchResult | None:
    if not isinstance(topic, dict):
        return None
    url = text_or_none(topic.get("FirstURL"))
    text = text_or_none(topic.get("Text"))
    if not url or not text:
        return None
    return SearchResult(title=text, url=url)


def parse_response(payload: Any, max_results: int) -> list[SearchResult]:
    if not isinstance(payload, dict):
        raise SourceError("duckduckgo", "unexpected response shape")
    results: list[SearchResult] = []
    for topic in nested_list("duckduckgo", payload, "RelatedTopics"):
        result = _topic_result(topic)
        if result is not None:
            results.append(result)
            continue
        if isinstance(topic, dict) and isinstance(topic.get("Topics"), list):
            for nested in topic["Topics"]:
                nested_result = _topic_result(nested)
                if nested_result is not None:
                    results.append(nested_result)
    return results[:max_results]


class DuckDuckGoSource:
    name = "duckduckgo"

    async def search(self, query: str, options: SearchOptions) -> SearchResponse:
        max_results = clamp_results(options.max_results, MAX_RESULTS)
        payload = await fetch_json(
            self.name,
            "GET",
            DDG_URL,
            timeout_s=options.timeout_s,
            params={"q": query, "format": "json", "no_redirect": "1", "no_html": "1"},
        )
        return SearchResponse(provider=self.name, query=query, results=parse_response(payload, max_results))
