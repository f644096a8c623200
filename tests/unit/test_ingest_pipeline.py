import json
from pathlib import Path

import pytest

from analytics_agent.ingest.parser import ParserRegistry
from analytics_agent.ingest.pipeline import IngestPipeline
from analytics_agent.retrieval.embedder import HashingEmbedder
from analytics_agent.retrieval.vector_store import InMemoryVectorStore


def _pipeline() -> tuple[IngestPipeline, InMemoryVectorStore]:
    store = InMemoryVectorStore()
    return IngestPipeline(ParserRegistry(), HashingEmbedder(), store), store


def test_markdown_paragraphs_become_snippets(tmp_path: Path) -> None:
    notes = tmp_path / "schema.md"
    notes.write_text(
        "---\ntitle: Schema notes\n---\n"
        "# Orders\nRevenue is stored in cents.\n\n\n"
        "Refunds are negative amounts.\n\n   \n"
        "Sessions expire after 30 minutes.\n",
        encoding="utf-8",
    )
    pipeline, store = _pipeline()

    snippets = pipeline.ingest_path(notes, extra_metadata={"team": "data"})

    assert [s.snippet_id for s in snippets] == [
        "schema-snippet-0000",
        "schema-snippet-0001",
        "schema-snippet-0002",
    ]
    assert snippets[0].text == "# Orders\nRevenue is stored in cents."
    assert "title" not in snippets[0].text
    assert snippets[1].metadata["format"] == "markdown"
    assert snippets[1].metadata["team"] == "data"
    assert len(store) == 3


def test_json_entries_are_separate_snippets(tmp_path: Path) -> None:
    examples = tmp_path / "examples.json"
    examples.write_text(
        json.dumps(
            [
                {"question": "Revenue last week?", "query": "SELECT sum(amount)\n\nFROM analytics.orders"},
                {"question": "Active users?", "tags": ["users", "daily"], "notes": ""},
            ]
        ),
        encoding="utf-8",
    )
    pipeline, store = _pipeline()

    snippets = pipeline.ingest_path(examples, doc_id="examples")

    assert len(snippets) == 2
    assert snippets[0].text == (
        "question: Revenue last week?\nquery: SELECT sum(amount)\nFROM analytics.orders"
    )
    assert snippets[1].text == 'question: Active users?\ntags: ["users", "daily"]'
    assert snippets[0].doc_id == "examples"


def test_ingest_many_walks_directories(tmp_path: Path) -> None:
    (tmp_path / "a.txt").write_text("first\n\nsecond", encoding="utf-8")
    (tmp_path / "nested").mkdir()
    (tmp_path / "nested" / "b.md").write_text("third", encoding="utf-8")
    (tmp_path / "ignored.csv").write_text("x,y", encoding="utf-8")
    (tmp_path / "empty.txt").write_text("  \n", encoding="utf-8")
    pipeline, store = _pipeline()

    snippets = pipeline.ingest_many([tmp_path])

    assert sorted(s.text for s in snippets) == ["first", "second", "third"]
    assert len(store) == 3


def test_unsupported_extension_rejected(tmp_path: Path) -> None:
    path = tmp_path / "data.csv"
    path.write_text("a,b", encoding="utf-8")
    pipeline, _ = _pipeline()

    with pytest.raises(ValueError, match="No parser registered"):
        pipeline.ingest_path(path)
