from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class CitationRecord:
    title: str
    url: str
    author: str | None = None
    year: str | None = None
    site: str | None = None
