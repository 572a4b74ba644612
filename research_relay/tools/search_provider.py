"""Registry that turns configured provider names into an ordered fallback chain."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from research_relay.config import settings
from research_relay.tools.base import SourceAdapter
from research_relay.tools.bing_search import BingSource
from research_relay.tools.brave_search import BraveSource
from research_relay.tools.duckduckgo import DuckDuckGoSource
from research_relay.tools.google_cse import GoogleCSESource
from research_relay.tools.langsearch import LangSearchSource
from research_relay.tools.tavily_search import TavilySource


@dataclass(frozen=True)
class SourceSpec:
    """One entry of a fallback chain: adapter plus its rate limit."""
    name: str
    adapter: SourceAdapter
    rate: float = 2.0
    burst: float = 5.0


# name -> (factory, requests per second, burst)
PROVIDERS: dict[str, tuple[Callable[[], SourceAdapter], float, float]] = {
    "langsearch": (LangSearchSource, 3.0, 6.0),
    "tavily": (TavilySource, 3.0, 6.0),
    "brave": (BraveSource, 1.0, 2.0),
    "google_cse": (GoogleCSESource, 1.0, 2.0),
    "bing": (BingSource, 1.0, 2.0),
    "duckduckgo": (DuckDuckGoSource, 2.0, 4.0),
}


def build_source_chain(names: list[str] | None = None) -> list[SourceSpec]:
    """Build the priority-ordered chain; order of ``names`` is the fallback order."""
    chain_names = names if names is not None else settings.search_chain_list
    chain: list[SourceSpec] = []
    seen: set[str] = set()
    for raw in chain_names:
        name = raw.strip().lower()
        if not name or name in seen:
            continue
        if name not in PROVIDERS:
            raise ValueError(f"Unsupported search provider: {raw}")
        factory, rate, burst = PROVIDERS[name]
        chain.append(SourceSpec(name=name, adapter=factory(), rate=rate, burst=burst))
        seen.add(name)
    return chain
