from __future__ import annotations

import asyncio
from typing import Any, Protocol

import httpx

from research_relay.errors import SourceError
from research_relay.models.search import SearchOptions, SearchResponse


class SourceAdapter(Protocol):
    name: str

    async def search(self, query: str, options: SearchOptions) -> SearchResponse: ...


def clamp_results(requested: int, upper: int) -> int:
    """Keep a requested result count inside ``1..upper``."""
    return max(1, min(int(upper), int(requested)))


def text_or_none(*values: Any) -> str | None:
    """First non-blank string among ``values``, stripped."""
    for value in values:
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


async def fetch_json(
    source: str,
    method: str,
    url: str,
    *,
    timeout_s: float,
    **kwargs: Any,
) -> Any:
    """Issue one HTTP request and decode JSON, bounded by ``timeout_s`` overall.

    Every transport, status and decoding failure is raised as ``SourceError``.
    """

    async def _call() -> Any:
        async with httpx.AsyncClient(timeout=timeout_s) as client:
            response = await client.request(method, url, **kwargs)
            response.raise_for_status()
            return response.json()

    try:
        return await asyncio.wait_for(_call(), timeout=timeout_s)
    except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
        raise SourceError(source, f"timed out after {timeout_s:.1f}s") from exc
    except httpx.HTTPStatusError as exc:
        raise SourceError(source, f"http {exc.response.status_code}") from exc
    except httpx.HTTPError as exc:
        raise SourceError(source, f"request failed: {exc}") from exc
    except ValueError as exc:
        raise SourceError(source, f"invalid JSON response: {exc}") from exc


def nested_list(source: str, payload: Any, *keys: str) -> list[Any]:
    """Walk ``keys`` through nested objects and return the list at the end.

    A missing or null step yields ``[]``; a step of the wrong type means the
    provider changed its response shape and raises ``SourceError``.
    """
    node = payload
    for key in keys:
        if node is None:
            return []
        if not isinstance(node, dict):
            raise SourceError(source, f"unexpected response shape at '{key}'")
        node = node.get(key)
    if node is None:
        return []
    if not isinstance(node, list):
        raise SourceError(source, f"unexpected response shape at '{keys[-1]}'")
    return node
