from __future__ import annotations

import json
from datetime import UTC, datetime

import pytest

from conftest import FakeEmbedder, FakeGenerator, FakeSource, results_for, spec
from research_relay.errors import EmbeddingError, GenerationError
from research_relay.models.events import EventType, Phase
from research_relay.models.schemas import ResearchRequest
from research_relay.services.pipeline import (
    ResearchPipeline,
    local_hit_source,
    parse_plan,
    render_source_list,
)
from research_relay.services.rate_limiter import RateLimiter
from research_relay.services.reports import ReportStore
from research_relay.services.retrieval import RetrievalCoordinator
from research_relay.services.vector_index import VectorIndex

PLAN = json.dumps({"subQuestions": ["Solar growth?", "Wind growth?"], "notes": ""})
REPORT = "Renewables grew quickly [1]."


class FixedTimeStore(ReportStore):
    def save(self, task, text, now=None):
        return super().save(task, text, now=datetime(2025, 3, 1, 12, 0, tzinfo=UTC))


def _request(**overrides) -> ResearchRequest:
    values = {
        "task": "State of renewable energy in 2025",
        "max_results": 3,
        "timeout_ms": 5000,
        "include_local": False,
        "citation_style": "APA",
    }
    values.update(overrides)
    return ResearchRequest(**values)


def _pipeline(tmp_path, generator, sources, *, index=None, exporters=None) -> ResearchPipeline:
    coordinator = RetrievalCoordinator(
        sources=[spec(source) for source in sources],
        rate_limiter=RateLimiter(),
        concurrency=2,
    )
    return ResearchPipeline(
        generator=generator,
        coordinator=coordinator,
        index=index or VectorIndex(tmp_path / "index.json", embedder=FakeEmbedder()),
        report_store=FixedTimeStore(tmp_path / "reports"),
        exporters=exporters,
        preview_chars=10,
    )


def _types(events):
    return [event.event for event in events]


def test_parse_plan_prefers_json_and_caps_at_six():
    text = json.dumps({"subQuestions": [f"q{i}" for i in range(9)]})

    assert parse_plan(text, "task") == [f"q{i}" for i in range(6)]


def test_parse_plan_strips_code_fence():
    text = '```json\n{"subQuestions": [" a ", "", "b"]}\n```'

    assert parse_plan(text, "task") == ["a", "b"]


def test_parse_plan_falls_back_to_trimmed_lines():
    text = "1. What is solar capacity?\n\n- How fast is wind growing?  \n*   Is storage keeping up?\n"

    assert parse_plan(text, "task") == [
        "What is solar capacity?",
        "How fast is wind growing?",
        "Is storage keeping up?",
    ]


def test_parse_plan_strips_fence_around_plain_lines():
    text = "```\nWhat is solar capacity?\nWhat is wind capacity?\n```"

    assert parse_plan(text, "task") == ["What is solar capacity?", "What is wind capacity?"]


def test_parse_plan_keeps_leading_numbers_that_are_not_list_markers():
    text = "1) 2025 solar outlook?\n2. 3.5 GW storage pipeline?\n-5 degree winter wind output?"

    assert parse_plan(text, "task") == [
        "2025 solar outlook?",
        "3.5 GW storage pipeline?",
        "-5 degree winter wind output?",
    ]


def test_parse_plan_line_fallback_caps_at_five():
    text = "\n".join(f"- question {chr(97 + i)}" for i in range(8))

    assert len(parse_plan(text, "task")) == 5


def test_parse_plan_uses_task_when_nothing_usable():
    assert parse_plan("", "the task") == ["the task"]
    assert parse_plan('{"subQuestions": []}', "the task") == ["the task"]
    assert parse_plan("- \n*\n1.", "the task") == ["the task"]


def test_render_source_list_numbers_sources():
    sources = [local_hit_source(1, "abc", "text", {"path": "notes/a.md"})]

    assert render_source_list(sources) == "[1] notes/a.md - file://notes/a.md"
    assert render_source_list([]) == "(no sources)"
    assert local_hit_source(2, "xyz", "t", {}).url == "local://chunk-xyz"


@pytest.mark.asyncio
async def test_stream_emits_phases_in_order_and_saves_report(tmp_path):
    generator = FakeGenerator(PLAN, REPORT)
    source = FakeSource("web", results=lambda q: results_for(q.split()[0].lower(), 2))
    pipeline = _pipeline(tmp_path, generator, [source])

    events = [event async for event in pipeline.stream(_request(total_words=1200))]

    phases = [e.data["phase"] for e in events if e.event == EventType.PHASE]
    assert phases == ["planning", "retrieving", "writing"]
    assert _types(events)[-1] == EventType.COMPLETED
    progress = [(e.data["completed"], e.data["total"]) for e in events if e.event == EventType.PROGRESS]
    assert sorted(progress) == [(1, 2), (2, 2)]

    done = events[-1].data
    assert done["sources"] == 4
    assert done["wordsTarget"] == 1200
    assert done["preview"] == REPORT[:10]
    assert done["report"] == "2025-03-01T12-00-00-000Z-state-of-renewable-energy-in-2025.md"

    saved = (tmp_path / "reports" / done["report"]).read_text(encoding="utf-8")
    assert saved.startswith(REPORT)
    assert "\n\nReferences\n" in saved
    assert "https://solar.example.com/0" in saved


@pytest.mark.asyncio
async def test_writer_prompt_carries_numbered_sources(tmp_path):
    generator = FakeGenerator(PLAN, REPORT)
    source = FakeSource("web", results=results_for("iea", 1))
    pipeline = _pipeline(tmp_path, generator, [source])

    await pipeline.run(_request(language="German", total_words=800))

    writer_prompt = generator.prompts[1]
    assert "[1] iea 0 - https://iea.example.com/0" in writer_prompt
    assert "German" in writer_prompt and "800" in writer_prompt


@pytest.mark.asyncio
async def test_all_sources_failing_still_completes_with_zero_sources(tmp_path):
    generator = FakeGenerator(PLAN, "Nothing to cite.")
    pipeline = _pipeline(tmp_path, generator, [FakeSource("a", error="down"), FakeSource("b", error="down")])

    summary = await pipeline.run(_request())

    assert summary.state == "completed"
    assert summary.error is None
    assert summary.sources_used == 0
    assert summary.events[-1]["type"] == "completed"
    assert summary.events[-1]["sources"] == 0
    assert summary.report_text.endswith("References\n(No references)")
    assert "(no sources)" in generator.prompts[1]


@pytest.mark.asyncio
async def test_malformed_plan_yields_three_sub_questions(tmp_path):
    generator = FakeGenerator(
        "  What drives solar adoption?  \nHow cheap is onshore wind?\n\tWhere is storage deployed?\n",
        REPORT,
    )
    pipeline = _pipeline(tmp_path, generator, [FakeSource("web")])

    summary = await pipeline.run(_request())

    assert summary.sub_questions == [
        "What drives solar adoption?",
        "How cheap is onshore wind?",
        "Where is storage deployed?",
    ]
    assert summary.events[1]["subQuestions"] == summary.sub_questions


@pytest.mark.asyncio
async def test_generation_failure_while_writing_ends_in_error(tmp_path):
    generator = FakeGenerator(PLAN, GenerationError("openai generation timed out after 120s"))
    pipeline = _pipeline(tmp_path, generator, [FakeSource("web", results=results_for("x", 1))])

    events = [event async for event in pipeline.stream(_request())]

    assert _types(events)[-1] == EventType.ERROR
    assert events[-1].data == {"message": "openai generation timed out after 120s", "phase": "writing"}
    assert EventType.COMPLETED not in _types(events)
    assert not (tmp_path / "reports").exists()


@pytest.mark.asyncio
async def test_generation_failure_while_planning_ends_in_error(tmp_path):
    source = FakeSource("web")
    pipeline = _pipeline(tmp_path, FakeGenerator(GenerationError("Missing OPENAI_API_KEY")), [source])

    summary = await pipeline.run(_request())

    assert summary.state == Phase.ERROR.value
    assert summary.error == "Missing OPENAI_API_KEY"
    assert summary.events[-1] == {"type": "error", "message": "Missing OPENAI_API_KEY", "phase": "planning"}
    assert source.calls == []


@pytest.mark.asyncio
async def test_run_and_stream_produce_identical_events(tmp_path):
    def build():
        return _pipeline(
            tmp_path,
            FakeGenerator(PLAN, REPORT),
            [FakeSource("web", results=lambda q: results_for(q.split()[0].lower(), 1))],
        )

    streamed = [event.to_dict() async for event in build().stream(_request())]
    summary = await build().run(_request())

    assert summary.events == streamed


@pytest.mark.asyncio
async def test_local_evidence_is_merged_after_web_sources(tmp_path):
    index = VectorIndex(tmp_path / "index.json", embedder=FakeEmbedder())
    await index.add_documents(
        [
            {"id": "n1", "text": "Solar notes from the field", "meta": {"path": "notes/solar.md"}},
            {"id": "n2", "text": "Hydro dam survey", "meta": {}},
        ]
    )
    generator = FakeGenerator(PLAN, REPORT)
    pipeline = _pipeline(tmp_path, generator, [FakeSource("web", results=results_for("web", 1))], index=index)

    summary = await pipeline.run(_request(task="Solar energy outlook", include_local=True, rag_top_k=1))

    assert (summary.sources_used, summary.local_used) == (1, 1)
    assert "[2] notes/solar.md - file://notes/solar.md" in generator.prompts[1]
    assert "file://notes/solar.md" in summary.report_text


@pytest.mark.asyncio
async def test_export_failures_do_not_abort_the_run(tmp_path):
    def broken_pdf(markdown, target):
        raise RuntimeError("renderer unavailable")

    def docx(markdown, target):
        target.write_text(markdown, encoding="utf-8")

    pipeline = _pipeline(
        tmp_path,
        FakeGenerator(PLAN, REPORT),
        [FakeSource("web", results=results_for("w", 1))],
        exporters={"pdf": broken_pdf, "docx": docx},
    )

    summary = await pipeline.run(_request(formats=["md", "pdf", "docx", "html"]))

    assert summary.state == "completed"
    assert summary.outputs["md"].endswith(".md")
    assert summary.outputs["docx"].endswith(".docx")
    assert summary.export_errors["pdf"] == "renderer unavailable"
    assert "html" in summary.export_errors
    assert "pdf" not in summary.outputs


@pytest.mark.asyncio
async def test_embedding_failure_during_local_search_is_fatal(tmp_path):
    class BrokenEmbedder:
        async def embed(self, texts):
            raise EmbeddingError("OPENAI_API_KEY is not configured for embeddings")

    path = tmp_path / "index.json"
    await VectorIndex(path, embedder=FakeEmbedder()).add_documents([{"id": "n", "text": "solar", "meta": {}}])
    pipeline = _pipeline(
        tmp_path,
        FakeGenerator(PLAN, REPORT),
        [FakeSource("web", results=results_for("w", 1))],
        index=VectorIndex(path, embedder=BrokenEmbedder()),
    )

    summary = await pipeline.run(_request(include_local=True))

    assert summary.state == "error"
    assert summary.events[-1]["phase"] == "retrieving"
    assert summary.report_path is None
