from __future__ import annotations

import asyncio
from typing import Any, Protocol

from loguru import logger

from research_relay.config import settings
from research_relay.errors import EmbeddingError

DEFAULT_BATCH_SIZE = 64


class EmbeddingProvider(Protocol):
    async def embed(self, texts: list[str]) -> list[list[float]]: ...


def _batches(texts: list[str], size: int) -> list[list[str]]:
    size = max(int(size), 1)
    return [texts[i : i + size] for i in range(0, len(texts), size)]


class OpenAIEmbeddingProvider:
    """Embeddings from the OpenAI API, requested in fixed-size batches."""

    def __init__(
        self,
        model: str | None = None,
        api_key: str | None = None,
        batch_size: int | None = None,
        timeout_s: float = 60.0,
    ):
        self.model = model or settings.embedding_model
        self._api_key = api_key
        self.batch_size = batch_size or int(settings.embedding_batch_size) or DEFAULT_BATCH_SIZE
        self.timeout_s = timeout_s
        self._client: Any | None = None

    @property
    def api_key(self) -> str:
        return self._api_key if self._api_key is not None else settings.openai_api_key

    def _get_client(self) -> Any:
        if self._client is None:
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(api_key=self.api_key, timeout=self.timeout_s)
        return self._client

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if not self.api_key:
            raise EmbeddingError("OPENAI_API_KEY is not configured for embeddings")
        if not texts:
            return []

        from openai import OpenAIError

        client = self._get_client()
        vectors: list[list[float]] = []
        for batch in _batches(texts, self.batch_size):
            try:
                response = await client.embeddings.create(model=self.model, input=batch)
            except OpenAIError as exc:
                raise EmbeddingError(f"embedding request failed: {exc}") from exc
            rows = sorted(response.data, key=lambda row: row.index)
            vectors.extend([list(map(float, row.embedding)) for row in rows])
        if len(vectors) != len(texts):
            raise EmbeddingError(
                f"embedding count mismatch: expected {len(texts)}, got {len(vectors)}"
            )
        return vectors


class LocalEmbeddingProvider:
    """sentence-transformers model run in a worker thread."""

    def __init__(self, model_name: str | None = None, batch_size: int | None = None):
        self.model_name = model_name or settings.local_embed_model
        self.batch_size = batch_size or int(settings.embedding_batch_size) or DEFAULT_BATCH_SIZE
        self._model: Any | None = None
        self._lock = asyncio.Lock()

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        async with self._lock:
            if self._model is None:
                self._model = await asyncio.to_thread(self._load_model)
        return await asyncio.to_thread(self._embed_sync, texts)

    def _load_model(self) -> Any:
        try:
            from sentence_transformers import SentenceTransformer
        except ImportError as exc:
            raise EmbeddingError(
                "embedding_backend=local requires the 'local' extra (sentence-transformers)"
            ) from exc
        logger.info(f"Loading local embedding model {self.model_name}")
        return SentenceTransformer(self.model_name)

    def _embed_sync(self, texts: list[str]) -> list[list[float]]:
        vectors = self._model.encode(
            texts,
            batch_size=self.batch_size,
            normalize_embeddings=True,
            show_progress_bar=False,
        )
        return [list(map(float, row)) for row in vectors]


def get_embedding_provider(backend: str | None = None) -> EmbeddingProvider:
    choice = (backend or settings.embedding_backend).lower().strip()
    if choice == "openai":
        return OpenAIEmbeddingProvider()
    if choice == "local":
        return LocalEmbeddingProvider()
    raise ValueError(f"Unsupported EMBEDDING_BACKEND: {choice}")
