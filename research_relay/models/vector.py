from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

INDEX_VERSION = 1


class VectorItem(BaseModel):
    """A single embedded chunk stored in the local index."""

    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    embedding: list[float]
    meta: dict[str, Any] = Field(default_factory=dict)


class VectorIndexDocument(BaseModel):
    """Whole-file representation of the persisted index."""

    model_config = ConfigDict(populate_by_name=True)

    version: int = INDEX_VERSION
    items: list[VectorItem] = Field(default_factory=list)
    updated_at: datetime | None = Field(default=None, alias="updatedAt")


class VectorHit(BaseModel):
    item: VectorItem
    score: float


class IndexStats(BaseModel):
    exists: bool
    item_count: int
    last_updated: datetime | None = None
