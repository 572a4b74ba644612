"""Filesystem storage for finished reports and their optional exports."""
from __future__ import annotations

import asyncio
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from loguru import logger

from research_relay.config import settings
from research_relay.errors import ReportNotFound

Exporter = Callable[[str, Path], None]


@dataclass(slots=True)
class StoredReport:
    name: str
    path: Path


@dataclass(slots=True)
class ReportInfo:
    name: str
    size: int
    modified_at: datetime


@dataclass(slots=True)
class ExportOutcome:
    format: str
    name: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def slugify(text: str, max_length: int = 80) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug[:max_length]


def report_basename(task: str, now: datetime | None = None) -> str:
    stamp = (now or datetime.now(UTC)).isoformat(timespec="milliseconds")
    stamp = stamp.replace("+00:00", "Z")
    stamp = re.sub(r"[:.]", "-", stamp)
    return f"{stamp}-{slugify(task) or 'report'}"


class ReportStore:
    def __init__(self, directory: str | Path | None = None):
        self.directory = Path(directory or settings.reports_dir)

    def _resolve(self, name: str) -> Path:
        candidate = (self.directory / name).resolve()
        if not name or candidate.parent != self.directory.resolve():
            raise ReportNotFound(f"Invalid report name: {name!r}")
        return candidate

    def save(self, task: str, text: str, now: datetime | None = None) -> StoredReport:
        self.directory.mkdir(parents=True, exist_ok=True)
        name = f"{report_basename(task, now)}.md"
        path = self.directory / name
        path.write_text(text, encoding="utf-8")
        logger.info(f"Saved report {name}")
        return StoredReport(name=name, path=path)

    def read(self, name: str) -> str:
        path = self._resolve(name)
        if not path.is_file():
            raise ReportNotFound(f"Report not found: {name}")
        return path.read_text(encoding="utf-8")

    def read_bytes(self, name: str) -> bytes:
        path = self._resolve(name)
        if not path.is_file():
            raise ReportNotFound(f"Report not found: {name}")
        return path.read_bytes()

    def list_reports(self) -> list[ReportInfo]:
        """Stored files, newest first."""
        if not self.directory.exists():
            return []
        entries: list[ReportInfo] = []
        for path in self.directory.iterdir():
            if not path.is_file():
                continue
            stat = path.stat()
            entries.append(
                ReportInfo(
                    name=path.name,
                    size=stat.st_size,
                    modified_at=datetime.fromtimestamp(stat.st_mtime, UTC),
                )
            )
        entries.sort(key=lambda entry: entry.modified_at, reverse=True)
        return entries

    async def export(
        self,
        report: StoredReport,
        markdown: str,
        formats: Iterable[str],
        exporters: Mapping[str, Exporter],
    ) -> dict[str, ExportOutcome]:
        """Run each requested secondary format on its own; failures are captured, not raised."""
        outcomes: dict[str, ExportOutcome] = {}
        stem = report.path.with_suffix("")
        for fmt in formats:
            fmt = fmt.lower().strip()
            if not fmt or fmt == "md" or fmt in outcomes:
                continue
            exporter = exporters.get(fmt)
            if exporter is None:
                outcomes[fmt] = ExportOutcome(format=fmt, error=f"no exporter registered for '{fmt}'")
                continue
            target = stem.with_suffix(f".{fmt}")
            try:
                await asyncio.to_thread(exporter, markdown, target)
            except Exception as exc:
                logger.warning(f"Export {fmt} failed for {report.name}: {exc}")
                outcomes[fmt] = ExportOutcome(format=fmt, error=str(exc) or type(exc).__name__)
                continue
            outcomes[fmt] = ExportOutcome(format=fmt, name=target.name)
        return outcomes
