from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator

from research_relay.config import settings


class ResearchRequest(BaseModel):
    task: str
    language: str = Field(default_factory=lambda: settings.report_language)
    report_type: str = Field(default_factory=lambda: settings.report_type)
    total_words: int = Field(default_factory=lambda: settings.total_words_clamped)
    max_results: int = Field(default_factory=lambda: settings.max_results_clamped)
    timeout_ms: int = Field(default_factory=lambda: settings.request_timeout_clamped_ms)
    citation_style: str = Field(default_factory=lambda: settings.citation_style)
    include_local: bool = Field(default_factory=lambda: settings.include_local)
    rag_top_k: int = Field(default_factory=lambda: settings.rag_top_k)
    formats: list[str] = Field(default_factory=lambda: ["md"])

    @field_validator("task")
    @classmethod
    def _task_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("task must not be empty")
        return value

    @field_validator("total_words")
    @classmethod
    def _min_words(cls, value: int) -> int:
        return max(300, value)

    @field_validator("max_results")
    @classmethod
    def _clamp_results(cls, value: int) -> int:
        return max(1, min(20, value))

    @field_validator("timeout_ms")
    @classmethod
    def _min_timeout(cls, value: int) -> int:
        return max(3000, value)

    @field_validator("citation_style")
    @classmethod
    def _style(cls, value: str) -> str:
        return "MLA" if value.strip().upper() == "MLA" else "APA"

    @field_validator("rag_top_k")
    @classmethod
    def _min_top_k(cls, value: int) -> int:
        return max(1, value)


class RunSummary(BaseModel):
    """Outcome of a blocking pipeline run."""

    task: str
    state: str
    sub_questions: list[str] = []
    sources_used: int = 0
    local_used: int = 0
    words_target: int = 0
    report_name: str | None = None
    report_path: str | None = None
    report_text: str | None = None
    outputs: dict[str, str] = {}
    export_errors: dict[str, str] = {}
    error: str | None = None
    events: list[dict[str, Any]] = []
