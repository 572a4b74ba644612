"""Plain-text document ingestion into the local vector index."""
from __future__ import annotations

import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from loguru import logger

from research_relay.services import logger as log_service
from research_relay.services.vector_index import VectorIndex

TEXT_EXTENSIONS = {".md", ".txt", ".csv"}
CHUNK_CHARS = 1200


@dataclass(slots=True)
class IngestResult:
    files: int = 0
    chunks: int = 0


def chunk_text(text: str, max_len: int = CHUNK_CHARS) -> list[str]:
    """Greedy line packing into chunks of at most ``max_len`` characters.

    A single line longer than ``max_len`` becomes its own chunk.
    """
    chunks: list[str] = []
    buf: list[str] = []
    size = 0
    for line in text.split("\n"):
        length = len(line) + 1
        if buf and size + length > max_len:
            chunks.append("\n".join(buf))
            buf = []
            size = 0
        buf.append(line)
        size += length
    if buf:
        chunks.append("\n".join(buf))
    return [chunk for chunk in chunks if chunk.strip()]


def chunk_id(path: str, text: str) -> str:
    digest = hashlib.sha1(f"{path}\0{text}".encode("utf-8")).hexdigest()
    return digest[:16]


def collect_documents(root: str | Path) -> tuple[list[dict[str, Any]], IngestResult]:
    result = IngestResult()
    docs: list[dict[str, Any]] = []
    for path in sorted(Path(root).rglob("*")):
        if not path.is_file() or path.suffix.lower() not in TEXT_EXTENSIONS:
            continue
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning(f"Skipping unreadable file {path}: {exc}")
            continue
        chunks = chunk_text(text)
        if not chunks:
            continue
        for index, chunk in enumerate(chunks):
            docs.append(
                {
                    "id": chunk_id(str(path), chunk),
                    "text": chunk,
                    "meta": {"path": str(path), "chunk": index},
                }
            )
        result.files += 1
        result.chunks += len(chunks)
    return docs, result


async def ingest_directory(root: str | Path, index: VectorIndex) -> IngestResult:
    """Chunk every text file under ``root`` and append it to ``index`` in one write."""
    root_path = Path(root)
    if not root_path.is_dir():
        raise FileNotFoundError(f"Ingest root is not a directory: {root_path}")
    docs, result = collect_documents(root_path)
    if docs:
        await index.add_documents(docs)
    log_service.log_ingest(str(root_path), result.files, result.chunks)
    return result
