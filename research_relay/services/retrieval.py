from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence

from loguru import logger

from research_relay.config import settings
from research_relay.models.search import AggregatedSource, SearchOptions
from research_relay.services.citations import normalize_url
from research_relay.services.fallback import FallbackResolver
from research_relay.services.rate_limiter import RateLimiter, get_rate_limiter
from research_relay.tools.search_provider import SourceSpec, build_source_chain

ProgressCallback = Callable[[int, int], None]


class RetrievalSession:
    """Dedup state for one ``retrieve`` call, keyed by canonical URL."""

    def __init__(self) -> None:
        self.sources: list[AggregatedSource] = []
        self._seen: set[str] = set()
        self.completed = 0

    def merge(self, sources: Sequence[AggregatedSource]) -> int:
        # No await in here, so a merge is never interleaved with another worker's.
        added = 0
        for source in sources:
            if not source.url:
                continue
            key = normalize_url(source.url)
            if key in self._seen:
                continue
            self._seen.add(key)
            self.sources.append(source)
            added += 1
        return added


class RetrievalCoordinator:
    """Fan sub-questions out over a bounded pool of fallback-resolving workers."""

    def __init__(
        self,
        sources: Sequence[SourceSpec] | None = None,
        rate_limiter: RateLimiter | None = None,
        concurrency: int | None = None,
    ):
        self.sources = list(sources) if sources is not None else build_source_chain()
        self.resolver = FallbackResolver(rate_limiter or get_rate_limiter())
        self.concurrency = max(int(concurrency or settings.research_concurrency), 1)

    async def retrieve(
        self,
        sub_questions: Sequence[str],
        max_results_per_query: int,
        timeout_ms: int,
        on_progress: ProgressCallback | None = None,
    ) -> list[AggregatedSource]:
        if not sub_questions:
            raise ValueError("retrieve() needs at least one sub-question")

        queue: asyncio.Queue[str] = asyncio.Queue()
        for question in sub_questions:
            queue.put_nowait(question)

        total = len(sub_questions)
        options = SearchOptions(max_results=max_results_per_query, timeout_ms=timeout_ms)
        session = RetrievalSession()

        async def worker(worker_id: int) -> None:
            while True:
                try:
                    question = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                response = await self.resolver.resolve(question, self.sources, options)
                if response is None:
                    logger.info(f"worker={worker_id} no evidence for sub-question={question!r}")
                else:
                    added = session.merge(
                        [AggregatedSource.from_result(r) for r in response.results]
                    )
                    logger.debug(
                        f"worker={worker_id} provider={response.provider} "
                        f"results={len(response.results)} new={added} query={question!r}"
                    )
                session.completed += 1
                if on_progress is not None:
                    on_progress(session.completed, total)

        workers = min(self.concurrency, total)
        await asyncio.gather(*(worker(i) for i in range(workers)))

        limit = max(int(max_results_per_query), 1) * max(1, total)
        return session.sources[:limit]
