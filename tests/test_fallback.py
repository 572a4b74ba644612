from __future__ import annotations

import pytest

from conftest import FakeSource, results_for, spec
from research_relay.models.search import SearchOptions
from research_relay.services.fallback import FallbackResolver


@pytest.mark.asyncio
async def test_first_non_empty_source_wins_and_later_sources_untouched(limiter):
    first = FakeSource("first", results=results_for("first", 2))
    second = FakeSource("second", results=results_for("second", 9))

    response = await FallbackResolver(limiter).resolve("q", [spec(first), spec(second)], SearchOptions())

    assert response is not None
    assert response.provider == "first"
    assert len(response.results) == 2
    assert second.calls == []


@pytest.mark.asyncio
async def test_failing_source_is_recorded_and_next_is_tried(limiter):
    broken = FakeSource("broken", error="http 500")
    empty = FakeSource("empty")
    good = FakeSource("good", results=results_for("good", 3))
    after = FakeSource("after", results=results_for("after", 3))

    response = await FallbackResolver(limiter).resolve(
        "q", [spec(broken), spec(empty), spec(good), spec(after)], SearchOptions()
    )

    assert response.provider == "good"
    assert [(a.source, a.outcome) for a in response.attempts] == [
        ("broken", "failed"),
        ("empty", "empty"),
        ("good", "succeeded"),
    ]
    assert response.errors[0].error == "http 500"
    assert after.calls == []


@pytest.mark.asyncio
async def test_rate_limited_source_is_skipped_without_call(limiter):
    limited = FakeSource("limited", results=results_for("limited", 1))
    backup = FakeSource("backup", results=results_for("backup", 1))
    resolver = FallbackResolver(limiter)
    chain = [spec(limited, rate=0.0, burst=1), spec(backup)]

    first = await resolver.resolve("q1", chain, SearchOptions())
    second = await resolver.resolve("q2", chain, SearchOptions())

    assert first.provider == "limited"
    assert second.provider == "backup"
    assert limited.calls == ["q1"]
    assert second.attempts[0].outcome == "skipped"


@pytest.mark.asyncio
async def test_returns_none_when_every_source_fails_or_is_limited(limiter):
    broken = FakeSource("broken", error="boom")
    limited = FakeSource("limited", results=results_for("limited", 1))
    limiter.allow("limited", 0.0, 1)

    response = await FallbackResolver(limiter).resolve(
        "q", [spec(broken), spec(limited, rate=0.0, burst=1)], SearchOptions()
    )

    assert response is None
    assert limited.calls == []


@pytest.mark.asyncio
async def test_priority_order_is_respected(limiter):
    order: list[str] = []

    class Recording(FakeSource):
        async def search(self, query, options):
            order.append(self.name)
            return await super().search(query, options)

    chain = [spec(Recording(n, error="down")) for n in ("a", "b", "c")]
    chain.append(spec(Recording("d", results=results_for("d", 1))))

    response = await FallbackResolver(limiter).resolve("q", chain, SearchOptions())

    assert order == ["a", "b", "c", "d"]
    assert response.provider == "d"
