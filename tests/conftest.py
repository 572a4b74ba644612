from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest

from research_relay.errors import SourceError
from research_relay.models.search import SearchOptions, SearchResponse, SearchResult
from research_relay.services.rate_limiter import RateLimiter
from research_relay.tools.search_provider import SourceSpec


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSource:
    """Adapter double that records calls and replays a fixed behaviour."""

    def __init__(
        self,
        name: str,
        results: list[SearchResult] | Callable[[str], list[SearchResult]] | None = None,
        error: str | None = None,
        delay: float = 0.0,
    ):
        self.name = name
        self._results = results or []
        self._error = error
        self._delay = delay
        self.calls: list[str] = []

    async def search(self, query: str, options: SearchOptions) -> SearchResponse:
        self.calls.append(query)
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error:
            raise SourceError(self.name, self._error)
        results = self._results(query) if callable(self._results) else self._results
        return SearchResponse(provider=self.name, query=query, results=list(results))


class FakeGenerator:
    """TextGenerator double returning queued responses in order."""

    def __init__(self, *responses: str | Exception):
        self.responses = list(responses)
        self.prompts: list[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakeEmbedder:
    """Deterministic 3-d embeddings keyed by keyword presence."""

    def __init__(self) -> None:
        self.calls: list[list[str]] = []

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        vectors = []
        for text in texts:
            lowered = text.lower()
            vectors.append(
                [
                    1.0 if "solar" in lowered else 0.0,
                    1.0 if "wind" in lowered else 0.0,
                    1.0 if "hydro" in lowered else 0.0,
                ]
            )
        return vectors


def results_for(prefix: str, count: int) -> list[SearchResult]:
    return [
        SearchResult(title=f"{prefix} {i}", url=f"https://{prefix}.example.com/{i}", content=f"snippet {i}")
        for i in range(count)
    ]


def spec(source: FakeSource, rate: float = 100.0, burst: float = 100.0) -> SourceSpec:
    return SourceSpec(name=source.name, adapter=source, rate=rate, burst=burst)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def limiter(clock: FakeClock) -> RateLimiter:
    return RateLimiter(clock=clock)
