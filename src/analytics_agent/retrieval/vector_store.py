"""Vector store interfaces and concrete adapters."""

from __future__ import annotations

from dataclasses import dataclass
from math import sqrt
from typing import Any, Protocol

from analytics_agent.types import ReferenceSnippet, RetrievedDocument


class VectorStore(Protocol):
    """Minimal vector store contract for retrieval."""

    def upsert(self, snippets: list[ReferenceSnippet], embeddings: list[list[float]]) -> None:
        """Insert or update snippet vectors."""

    def similarity_search(self, query_embedding: list[float], k: int) -> list[RetrievedDocument]:
        """Return up to `k` hits ordered by similarity, best first."""


@dataclass(slots=True)
class _StoredVector:
    snippet: ReferenceSnippet
    embedding: list[float]


class InMemoryVectorStore:
    """Deterministic vector store used for tests and local prototyping."""

    def __init__(self) -> None:
        self._store: dict[str, _StoredVector] = {}

    def upsert(self, snippets: list[ReferenceSnippet], embeddings: list[list[float]]) -> None:
        if len(snippets) != len(embeddings):
            raise ValueError("snippets and embeddings must have the same length")
        for snippet, embedding in zip(snippets, embeddings, strict=True):
            self._store[snippet.snippet_id] = _StoredVector(snippet=snippet, embedding=embedding)

    def similarity_search(self, query_embedding: list[float], k: int) -> list[RetrievedDocument]:
        ranked = sorted(
            (
                RetrievedDocument(
                    content=record.snippet.text,
                    score=_cosine_similarity(query_embedding, record.embedding),
                    metadata={
                        **record.snippet.metadata,
                        "snippet_id": record.snippet.snippet_id,
                        "doc_id": record.snippet.doc_id,
                    },
                )
                for record in self._store.values()
            ),
            key=lambda item: item.score,
            reverse=True,
        )
        return ranked[:k]

    def __len__(self) -> int:
        return len(self._store)


class LangChainVectorStoreAdapter:
    """Wraps a LangChain vector store (Pinecone, FAISS, in-memory, ...).

    Searches go through `similarity_search_with_score_by_vector`, so the
    query is embedded once by our own `Embedder`. Upserts use `add_texts`,
    which means the wrapped store embeds snippets with its own embedding
    function and the vectors passed in are not used.

    Scores are passed through untouched. For some stores (FAISS) they are
    distances where lower is better; hits keep the order the store returned.
    """

    def __init__(self, store: Any) -> None:
        self._store = store

    def upsert(self, snippets: list[ReferenceSnippet], embeddings: list[list[float]]) -> None:
        if len(snippets) != len(embeddings):
            raise ValueError("snippets and embeddings must have the same length")
        if not snippets:
            return
        self._store.add_texts(
            texts=[snippet.text for snippet in snippets],
            metadatas=[
                {**snippet.metadata, "snippet_id": snippet.snippet_id, "doc_id": snippet.doc_id}
                for snippet in snippets
            ],
            ids=[snippet.snippet_id for snippet in snippets],
        )

    def similarity_search(self, query_embedding: list[float], k: int) -> list[RetrievedDocument]:
        hits = self._store.similarity_search_with_score_by_vector(query_embedding, k=k)
        return [
            RetrievedDocument(
                content=doc.page_content,
                score=float(score),
                metadata=dict(doc.metadata),
            )
            for doc, score in hits
        ]


def _cosine_similarity(a: list[float], b: list[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    numerator = sum(x * y for x, y in zip(a, b, strict=True))
    norm_a = sqrt(sum(x * x for x in a))
    norm_b = sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return numerator / (norm_a * norm_b)
