"""Reference corpus ingest: parse -> split -> embed -> upsert."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any

from analytics_agent.ingest.parser import ParserRegistry
from analytics_agent.retrieval.embedder import Embedder
from analytics_agent.retrieval.vector_store import VectorStore
from analytics_agent.types import ParsedDocument, ReferenceSnippet

logger = logging.getLogger(__name__)

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")


def split_paragraphs(document: ParsedDocument) -> list[ReferenceSnippet]:
    """One snippet per non-empty paragraph, numbered in document order."""

    paragraphs = [part.strip() for part in _PARAGRAPH_BREAK.split(document.text)]
    return [
        ReferenceSnippet(
            snippet_id=f"{document.doc_id}-snippet-{index:04d}",
            doc_id=document.doc_id,
            text=text,
            metadata={**document.metadata, "snippet_index": index},
        )
        for index, text in enumerate(part for part in paragraphs if part)
    ]


class IngestPipeline:
    """Loads reference files into the vector store used by the augmenter.

    Runs ahead of time (service start-up or a batch job); nothing here is
    touched while questions are being answered.
    """

    def __init__(
        self,
        parser_registry: ParserRegistry,
        embedder: Embedder,
        vector_store: VectorStore,
    ) -> None:
        self._parser_registry = parser_registry
        self._embedder = embedder
        self._vector_store = vector_store

    def ingest_path(
        self,
        path: str | Path,
        *,
        doc_id: str | None = None,
        extra_metadata: dict[str, Any] | None = None,
    ) -> list[ReferenceSnippet]:
        parsed = self._parser_registry.parse_path(path, doc_id=doc_id)
        if extra_metadata:
            parsed.metadata.update(extra_metadata)

        snippets = split_paragraphs(parsed)
        if not snippets:
            logger.info("Skipping %s: no text", path)
            return []
        embeddings = self._embedder.embed_documents([snippet.text for snippet in snippets])
        self._vector_store.upsert(snippets, embeddings)
        logger.info("Ingested %d snippets from %s", len(snippets), path)
        return snippets

    def ingest_many(self, paths: list[str | Path]) -> list[ReferenceSnippet]:
        """Ingest files and directories; directories contribute every supported file."""

        snippets: list[ReferenceSnippet] = []
        for path in paths:
            root = Path(path)
            files = (
                sorted(p for p in root.rglob("*") if p.is_file() and self._parser_registry.supports(p))
                if root.is_dir()
                else [root]
            )
            for file_path in files:
                snippets.extend(self.ingest_path(file_path))
        return snippets
