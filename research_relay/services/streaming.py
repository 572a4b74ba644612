from __future__ import annotations

from typing import Any

from research_relay.models.events import EventType, Phase, PipelineEvent


def status(phase: Phase, message: str) -> PipelineEvent:
    return PipelineEvent(event=EventType.STATUS, data={"phase": phase.value, "message": message})


def phase_done(phase: Phase, **payload: Any) -> PipelineEvent:
    """Phase-completion marker; payload carries the phase's output summary."""
    return PipelineEvent(
        event=EventType.PHASE,
        data={"phase": phase.value, "done": True, **payload},
    )


def progress(phase: Phase, completed: int, total: int) -> PipelineEvent:
    return PipelineEvent(
        event=EventType.PROGRESS,
        data={"phase": phase.value, "completed": completed, "total": total},
    )


def completed(
    message: str,
    *,
    words_target: int,
    sources: int,
    preview: str,
    **extra: Any,
) -> PipelineEvent:
    return PipelineEvent(
        event=EventType.COMPLETED,
        data={
            "message": message,
            "wordsTarget": words_target,
            "sources": sources,
            "preview": preview,
            **extra,
        },
    )


def error(message: str, phase: Phase | None = None) -> PipelineEvent:
    data: dict[str, Any] = {"message": message}
    if phase is not None:
        data["phase"] = phase.value
    return PipelineEvent(event=EventType.ERROR, data=data)
