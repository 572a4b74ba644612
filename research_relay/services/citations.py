"""URL canonicalization, citation dedupe and reference list formatting."""
from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any
from urllib.parse import urlsplit, urlunsplit

from research_relay.models.citations import CitationRecord

DEFAULT_PORTS = {"http": 80, "https": 443, "ws": 80, "wss": 443, "ftp": 21}
CITATION_STYLES = ("APA", "MLA")


def normalize_url(raw: str) -> str:
    """Re-serialize ``raw`` into a canonical form.

    Lowercases scheme and host, drops default ports and gives web URLs an
    explicit root path. Anything that does not parse as an absolute URL is
    returned unchanged.
    """
    if not isinstance(raw, str):
        return raw
    candidate = raw.strip()
    try:
        parts = urlsplit(candidate)
        port = parts.port
    except ValueError:
        return raw
    if not parts.scheme or not (parts.netloc or parts.path):
        return raw

    scheme = parts.scheme.lower()
    netloc = parts.netloc
    if parts.hostname:
        host = parts.hostname.lower()
        if ":" in host:
            host = f"[{host}]"
        userinfo = parts.netloc.rpartition("@")[0] if "@" in parts.netloc else ""
        netloc = f"{userinfo}@{host}" if userinfo else host
        if port is not None and DEFAULT_PORTS.get(scheme) != port:
            netloc = f"{netloc}:{port}"

    path = parts.path
    if scheme in ("http", "https") and not path:
        path = "/"
    return urlunsplit((scheme, netloc, path, parts.query, parts.fragment))


def host_from_url(url: str) -> str | None:
    """Display host (with non-default port) of ``url``, or None."""
    try:
        parts = urlsplit(normalize_url(url))
    except ValueError:
        return None
    host = parts.netloc.rpartition("@")[2]
    return host or None


def _field(source: Any, name: str) -> Any:
    if isinstance(source, Mapping):
        return source.get(name)
    return getattr(source, name, None)


def dedupe_and_enrich(sources: Iterable[Any]) -> list[CitationRecord]:
    """Collapse sources to one citation per canonical URL, first occurrence wins.

    Accepts mappings or objects exposing ``title``/``url`` and optionally
    ``author``/``year``/``site``. Entries without a URL are dropped.
    """
    out: list[CitationRecord] = []
    seen: set[str] = set()
    for source in sources:
        if source is None:
            continue
        url = _field(source, "url")
        if not isinstance(url, str) or not url.strip():
            continue
        canonical = normalize_url(url)
        if canonical in seen:
            continue
        seen.add(canonical)

        title = _field(source, "title")
        author = _field(source, "author") or None
        site = _field(source, "site") or None
        year = _field(source, "year")
        if site is None and author is None:
            site = host_from_url(canonical)
        out.append(
            CitationRecord(
                title=(title.strip() if isinstance(title, str) else "") or canonical,
                url=canonical,
                author=author,
                year=str(year) if year not in (None, "") else None,
                site=site,
            )
        )
    return out


def format_citation(record: CitationRecord, style: str = "APA") -> str:
    title = record.title.strip() or record.url
    year = record.year or "n.d."
    author = record.author or record.site or ""
    author_part = f"{author}. " if author else ""
    if style.upper() == "MLA":
        return f'{author_part}"{title}." {year}, {record.url}'.strip()
    return f"{author_part}({year}). {title}. {record.url}".strip()


def format_citations(records: Iterable[CitationRecord], style: str = "APA") -> str:
    return "\n".join(format_citation(record, style) for record in records)
