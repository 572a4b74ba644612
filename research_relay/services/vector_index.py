from __future__ import annotations

import asyncio
import math
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import ValidationError

from research_relay.config import settings
from research_relay.errors import IndexCorruption
from research_relay.models.vector import (
    IndexStats,
    VectorHit,
    VectorIndexDocument,
    VectorItem,
)
from research_relay.services.embeddings import EmbeddingProvider, get_embedding_provider


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    if len(a) != len(b) or not a:
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


class VectorIndex:
    """Flat JSON file of embedded chunks searched by full cosine scan.

    Every ``add_documents`` call loads the whole file, appends and rewrites
    it. There is no write lock: concurrent writers can lose each other's
    items, so ingestion must be serialized by the caller.
    """

    def __init__(
        self,
        path: str | Path | None = None,
        embedder: EmbeddingProvider | None = None,
    ):
        self.path = Path(path or settings.index_path)
        self._embedder = embedder

    @property
    def embedder(self) -> EmbeddingProvider:
        if self._embedder is None:
            self._embedder = get_embedding_provider()
        return self._embedder

    def load(self) -> VectorIndexDocument:
        """Read the index; a missing or unreadable file is an empty index."""
        if not self.path.exists():
            return VectorIndexDocument()
        try:
            return self._parse(self.path.read_bytes())
        except (IndexCorruption, OSError) as exc:
            logger.warning(f"Vector index at {self.path} unreadable, treating as empty: {exc}")
            return VectorIndexDocument()

    def _parse(self, raw: bytes) -> VectorIndexDocument:
        # Invalid UTF-8 surfaces here as a ValidationError, not while reading.
        try:
            document = VectorIndexDocument.model_validate_json(raw)
        except (ValidationError, ValueError) as exc:
            raise IndexCorruption(str(exc)) from exc
        return document

    def save(self, document: VectorIndexDocument) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        document.updated_at = datetime.now(UTC)
        self.path.write_text(
            document.model_dump_json(by_alias=True, indent=2),
            encoding="utf-8",
        )

    async def add_documents(self, docs: Sequence[Mapping[str, Any]]) -> int:
        """Embed ``docs`` ({id, text, meta}) and append them to the index."""
        if not docs:
            return 0
        texts = [str(doc["text"]) for doc in docs]
        vectors = await self.embedder.embed(texts)

        document = await asyncio.to_thread(self.load)
        for doc, text, vector in zip(docs, texts, vectors):
            document.items.append(
                VectorItem(
                    id=str(doc["id"]),
                    text=text,
                    embedding=vector,
                    meta=dict(doc.get("meta") or {}),
                )
            )
        await asyncio.to_thread(self.save, document)
        logger.info(f"Indexed {len(docs)} chunks into {self.path} ({len(document.items)} total)")
        return len(docs)

    async def search(self, query: str, top_k: int = 10) -> list[VectorHit]:
        document = await asyncio.to_thread(self.load)
        if not document.items or top_k <= 0:
            return []
        query_vectors = await self.embedder.embed([query])
        query_vector = query_vectors[0]
        hits = [
            VectorHit(item=item, score=cosine_similarity(query_vector, item.embedding))
            for item in document.items
        ]
        hits.sort(key=lambda hit: -hit.score)
        return hits[:top_k]

    def stats(self) -> IndexStats:
        exists = self.path.exists()
        document = self.load()
        return IndexStats(
            exists=exists,
            item_count=len(document.items),
            last_updated=document.updated_at,
        )
