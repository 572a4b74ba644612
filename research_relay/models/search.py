from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class SearchResult:
    """Normalized search hit produced by one provider."""
    title: str
    url: str
    content: str | None = None
    score: float | None = None


@dataclass(frozen=True, slots=True)
class SearchOptions:
    max_results: int = 5
    timeout_ms: int = 8000

    @property
    def timeout_s(self) -> float:
        return max(int(self.timeout_ms), 1) / 1000.0


@dataclass(slots=True)
class SearchResponse:
    provider: str
    query: str
    results: list[SearchResult] = field(default_factory=list)


@dataclass(slots=True)
class SourceAttempt:
    source: str
    outcome: str  # skipped | empty | failed | succeeded
    error: str | None = None


@dataclass(slots=True)
class AggregatedResponse:
    """Response of the first source in a fallback chain that produced results."""
    provider: str
    query: str
    results: list[SearchResult]
    attempts: list[SourceAttempt] = field(default_factory=list)

    @property
    def errors(self) -> list[SourceAttempt]:
        return [a for a in self.attempts if a.outcome == "failed"]


@dataclass(frozen=True, slots=True)
class AggregatedSource:
    title: str
    url: str
    content: str | None = None

    @classmethod
    def from_result(cls, result: SearchResult) -> "AggregatedSource":
        return cls(title=result.title, url=result.url, content=result.content)

    def to_dict(self) -> dict[str, Any]:
        return {"title": self.title, "url": self.url, "content": self.content}
