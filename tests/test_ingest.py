from __future__ import annotations

import pytest

from conftest import FakeEmbedder
from research_relay.services.ingest import chunk_id, chunk_text, collect_documents, ingest_directory
from research_relay.services.vector_index import VectorIndex


def test_chunk_text_packs_lines_up_to_limit():
    text = "\n".join(["aaaa", "bbbb", "cccc", "", "dddd"])

    chunks = chunk_text(text, max_len=10)

    assert chunks == ["aaaa\nbbbb", "cccc\n", "dddd"]
    assert all(len(chunk) <= 10 for chunk in chunks)


def test_chunk_text_keeps_long_line_whole_and_drops_blank_chunks():
    assert chunk_text("x" * 25, max_len=10) == ["x" * 25]
    assert chunk_text("\n\n\n") == []


def test_chunk_id_is_stable_and_path_sensitive():
    assert chunk_id("a.md", "text") == chunk_id("a.md", "text")
    assert chunk_id("a.md", "text") != chunk_id("b.md", "text")
    assert len(chunk_id("a.md", "text")) == 16


def test_collect_documents_filters_extensions(tmp_path):
    (tmp_path / "notes.md").write_text("# Solar\nPanels", encoding="utf-8")
    (tmp_path / "data.csv").write_text("year,gw\n2025,600", encoding="utf-8")
    (tmp_path / "image.png").write_bytes(b"\x89PNG")
    (tmp_path / "empty.txt").write_text("", encoding="utf-8")
    (tmp_path / "sub").mkdir()
    (tmp_path / "sub" / "wind.TXT").write_text("Wind", encoding="utf-8")

    docs, result = collect_documents(tmp_path)

    assert (result.files, result.chunks) == (3, 3)
    paths = sorted(doc["meta"]["path"] for doc in docs)
    assert [p.rsplit("/", 1)[-1] for p in paths] == ["data.csv", "notes.md", "wind.TXT"]
    assert all(doc["meta"]["chunk"] == 0 for doc in docs)


@pytest.mark.asyncio
async def test_ingest_directory_writes_index(tmp_path):
    root = tmp_path / "docs"
    root.mkdir()
    (root / "solar.md").write_text("Solar capacity grew", encoding="utf-8")
    index = VectorIndex(tmp_path / "index.json", embedder=FakeEmbedder())

    result = await ingest_directory(root, index)
    hits = await index.search("solar", top_k=1)

    assert result.chunks == 1
    assert hits[0].item.text == "Solar capacity grew"


@pytest.mark.asyncio
async def test_ingest_directory_rejects_missing_root(tmp_path):
    with pytest.raises(FileNotFoundError):
        await ingest_directory(tmp_path / "missing", VectorIndex(tmp_path / "i.json", embedder=FakeEmbedder()))
