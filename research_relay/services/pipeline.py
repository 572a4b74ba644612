from __future__ import annotations

import asyncio
import json
import re
import uuid
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass, field

from loguru import logger

from research_relay.config import settings
from research_relay.llm_client import TextGenerator
from research_relay.models.events import Phase, PipelineEvent
from research_relay.models.schemas import ResearchRequest, RunSummary
from research_relay.models.search import AggregatedSource
from research_relay.services import logger as log_service
from research_relay.services import streaming
from research_relay.services.citations import dedupe_and_enrich, format_citations
from research_relay.services.prompt_store import render_prompt
from research_relay.services.reports import Exporter, ExportOutcome, ReportStore, StoredReport
from research_relay.services.retrieval import RetrievalCoordinator
from research_relay.services.vector_index import VectorIndex

MAX_PLAN_QUESTIONS = 6
MAX_FALLBACK_QUESTIONS = 5

TRANSITIONS: dict[Phase | None, set[Phase]] = {
    None: {Phase.PLANNING},
    Phase.PLANNING: {Phase.RETRIEVING, Phase.ERROR},
    Phase.RETRIEVING: {Phase.WRITING, Phase.ERROR},
    Phase.WRITING: {Phase.COMPLETED, Phase.ERROR},
    Phase.COMPLETED: set(),
    Phase.ERROR: set(),
}

_FENCE_RE = re.compile(r"^```[a-zA-Z0-9_-]*\s*|\s*```$")
_LIST_MARKER_RE = re.compile(r"^\s*(?:[-*]|\d+[.)])(?:\s+|$)")


def parse_plan(text: str, task: str) -> list[str]:
    """Turn a planner response into sub-questions; never returns an empty list.

    Compact JSON ``{"subQuestions": [...]}`` is preferred. Anything that is not
    JSON is split into lines with list markers stripped. If nothing usable
    remains the task itself is the only sub-question.
    """
    raw = (text or "").strip()
    candidate = _FENCE_RE.sub("", raw).strip()
    try:
        payload = json.loads(candidate)
    except ValueError:
        lines = [_LIST_MARKER_RE.sub("", line).strip() for line in candidate.splitlines()]
        questions = [line for line in lines if line][:MAX_FALLBACK_QUESTIONS]
    else:
        items = payload.get("subQuestions") if isinstance(payload, dict) else payload
        if not isinstance(items, list):
            items = []
        questions = [str(item).strip() for item in items if str(item).strip()][:MAX_PLAN_QUESTIONS]
    return questions or [task]


def render_source_list(sources: list[AggregatedSource]) -> str:
    lines = [f"[{i}] {source.title} - {source.url}" for i, source in enumerate(sources, start=1)]
    return "\n".join(lines) or "(no sources)"


def local_hit_source(position: int, item_id: str, text: str, meta: Mapping[str, object]) -> AggregatedSource:
    path = meta.get("path")
    if path:
        return AggregatedSource(title=str(path), url=f"file://{path}", content=text)
    return AggregatedSource(title=f"Local chunk {position}", url=f"local://chunk-{item_id}", content=text)


@dataclass
class PipelineRun:
    """Mutable state of one pipeline execution."""

    request: ResearchRequest
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    state: Phase | None = None
    sub_questions: list[str] = field(default_factory=list)
    web_sources: list[AggregatedSource] = field(default_factory=list)
    local_sources: list[AggregatedSource] = field(default_factory=list)
    report_body: str = ""
    report_text: str = ""
    report: StoredReport | None = None
    exports: dict[str, ExportOutcome] = field(default_factory=dict)
    error: str | None = None
    events: list[PipelineEvent] = field(default_factory=list)

    @property
    def evidence(self) -> list[AggregatedSource]:
        return [*self.web_sources, *self.local_sources]

    def transition(self, target: Phase) -> None:
        if target not in TRANSITIONS[self.state]:
            current = self.state.value if self.state else "start"
            raise RuntimeError(f"Illegal pipeline transition {current} -> {target.value}")
        log_service.log_phase(
            self.run_id,
            target.value,
            previous=self.state.value if self.state else None,
        )
        self.state = target

    def summary(self) -> RunSummary:
        outputs = {fmt: outcome.name for fmt, outcome in self.exports.items() if outcome.ok and outcome.name}
        if self.report is not None:
            outputs = {"md": self.report.name, **outputs}
        return RunSummary(
            task=self.request.task,
            state=self.state.value if self.state else "pending",
            sub_questions=self.sub_questions,
            sources_used=len(self.web_sources),
            local_used=len(self.local_sources),
            words_target=self.request.total_words,
            report_name=self.report.name if self.report else None,
            report_path=str(self.report.path) if self.report else None,
            report_text=self.report_text or None,
            outputs=outputs,
            export_errors={fmt: o.error for fmt, o in self.exports.items() if o.error},
            error=self.error,
            events=[event.to_dict() for event in self.events],
        )


class ResearchPipeline:
    """Plan -> Retrieve -> Write -> Completed, as a stream of events.

    ``stream`` yields events as each phase progresses; ``run`` drains the same
    generator and returns a summary, so both modes see identical events.
    """

    def __init__(
        self,
        generator: TextGenerator,
        coordinator: RetrievalCoordinator | None = None,
        index: VectorIndex | None = None,
        report_store: ReportStore | None = None,
        exporters: Mapping[str, Exporter] | None = None,
        preview_chars: int | None = None,
    ):
        self.generator = generator
        self.coordinator = coordinator or RetrievalCoordinator()
        self.index = index or VectorIndex()
        self.report_store = report_store or ReportStore()
        self.exporters = dict(exporters or {})
        self.preview_chars = preview_chars or settings.preview_chars

    async def plan(self, task: str) -> list[str]:
        prompt = render_prompt("planner.sub_questions", task=task)
        text = await self.generator.generate(prompt)
        return parse_plan(text, task)

    async def stream(self, request: ResearchRequest) -> AsyncIterator[PipelineEvent]:
        async for event in self._execute(PipelineRun(request=request)):
            yield event

    async def run(self, request: ResearchRequest) -> RunSummary:
        run = PipelineRun(request=request)
        async for _ in self._execute(run):
            pass
        return run.summary()

    async def _execute(self, run: PipelineRun) -> AsyncIterator[PipelineEvent]:
        def emit(event: PipelineEvent) -> PipelineEvent:
            run.events.append(event)
            return event

        request = run.request
        try:
            run.transition(Phase.PLANNING)
            yield emit(streaming.status(Phase.PLANNING, "Planning sub-questions"))
            run.sub_questions = await self.plan(request.task)
            yield emit(streaming.phase_done(Phase.PLANNING, subQuestions=run.sub_questions))

            run.transition(Phase.RETRIEVING)
            yield emit(streaming.status(Phase.RETRIEVING, "Retrieving sources"))
            async for event in self._retrieve(run):
                yield emit(event)
            yield emit(
                streaming.phase_done(
                    Phase.RETRIEVING,
                    sources=len(run.web_sources),
                    localSources=len(run.local_sources),
                )
            )

            run.transition(Phase.WRITING)
            yield emit(streaming.status(Phase.WRITING, "Composing report"))
            run.report_body = await self._write(run)
            yield emit(streaming.phase_done(Phase.WRITING))

            await self._finalize(run)
            run.transition(Phase.COMPLETED)
            yield emit(
                streaming.completed(
                    "Report composed",
                    words_target=request.total_words,
                    sources=len(run.web_sources),
                    preview=run.report_body[: self.preview_chars],
                    localSources=len(run.local_sources),
                    report=run.report.name if run.report else None,
                )
            )
        except Exception as exc:
            failed_in = run.state
            logger.exception(f"Research run {run.run_id} failed during {failed_in}: {exc}")
            run.error = str(exc) or type(exc).__name__
            if run.state not in (Phase.COMPLETED, Phase.ERROR):
                run.transition(Phase.ERROR)
            yield emit(streaming.error(run.error, phase=failed_in))

    async def _retrieve(self, run: PipelineRun) -> AsyncIterator[PipelineEvent]:
        request = run.request
        progress: asyncio.Queue[PipelineEvent | None] = asyncio.Queue()

        def on_progress(completed: int, total: int) -> None:
            progress.put_nowait(streaming.progress(Phase.RETRIEVING, completed, total))

        task = asyncio.create_task(
            self.coordinator.retrieve(
                run.sub_questions,
                request.max_results,
                request.timeout_ms,
                on_progress=on_progress,
            )
        )
        task.add_done_callback(lambda _: progress.put_nowait(None))
        try:
            while (event := await progress.get()) is not None:
                yield event
            run.web_sources = task.result()
        finally:
            if not task.done():
                task.cancel()

        if request.include_local:
            hits = await self.index.search(request.task, request.rag_top_k)
            run.local_sources = [
                local_hit_source(position, hit.item.id, hit.item.text, hit.item.meta)
                for position, hit in enumerate(hits, start=1)
            ]

    async def _write(self, run: PipelineRun) -> str:
        request = run.request
        prompt = render_prompt(
            "writer.report",
            report_type=request.report_type.replace("_", " "),
            language=request.language,
            total_words=request.total_words,
            task=request.task,
            sources=render_source_list(run.evidence),
        )
        return await self.generator.generate(prompt)

    async def _finalize(self, run: PipelineRun) -> None:
        request = run.request
        citations = dedupe_and_enrich(run.evidence)
        references = format_citations(citations, request.citation_style)
        run.report_text = f"{run.report_body}\n\nReferences\n{references or '(No references)'}"

        try:
            run.report = await asyncio.to_thread(self.report_store.save, request.task, run.report_text)
        except OSError as exc:
            logger.warning(f"Could not persist report for run {run.run_id}: {exc}")
            return
        run.exports = await self.report_store.export(
            run.report, run.report_text, request.formats, self.exporters
        )
