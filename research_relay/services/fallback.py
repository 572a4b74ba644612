from __future__ import annotations

from collections.abc import Sequence

from loguru import logger

from research_relay.errors import SourceError
from research_relay.models.search import (
    AggregatedResponse,
    SearchOptions,
    SourceAttempt,
)
from research_relay.services.rate_limiter import RateLimiter
from research_relay.tools.search_provider import SourceSpec


class FallbackResolver:
    """Try sources in priority order until one yields results.

    A source denied by the rate limiter is skipped without being called; a
    source raising ``SourceError`` is recorded and the next one is tried.
    The first non-empty response wins and later sources are never called.
    """

    def __init__(self, rate_limiter: RateLimiter):
        self.rate_limiter = rate_limiter

    async def resolve(
        self,
        query: str,
        sources: Sequence[SourceSpec],
        options: SearchOptions,
    ) -> AggregatedResponse | None:
        attempts: list[SourceAttempt] = []
        for spec in sources:
            if not self.rate_limiter.allow(spec.name, spec.rate, spec.burst):
                logger.debug(f"Rate limit skip: {spec.name} for query={query!r}")
                attempts.append(SourceAttempt(source=spec.name, outcome="skipped"))
                continue

            try:
                response = await spec.adapter.search(query, options)
            except SourceError as exc:
                logger.warning(f"Source {spec.name} failed for query={query!r}: {exc.message}")
                attempts.append(SourceAttempt(source=spec.name, outcome="failed", error=exc.message))
                continue

            if response.results:
                attempts.append(SourceAttempt(source=spec.name, outcome="succeeded"))
                return AggregatedResponse(
                    provider=spec.name,
                    query=query,
                    results=list(response.results),
                    attempts=attempts,
                )
            attempts.append(SourceAttempt(source=spec.name, outcome="empty"))

        logger.info(
            f"No source produced results for query={query!r}: "
            f"{[(a.source, a.outcome) for a in attempts]}"
        )
        return None
