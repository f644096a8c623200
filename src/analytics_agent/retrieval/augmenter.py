"""Retrieval augmentation of the agent's system instructions."""

from __future__ import annotations

import logging

from analytics_agent.config import RetrievalConfig
from analytics_agent.retrieval.embedder import Embedder
from analytics_agent.retrieval.vector_store import VectorStore
from analytics_agent.shaping.shaper import estimate_token_count
from analytics_agent.types import RetrievedDocument

logger = logging.getLogger(__name__)

CONTEXT_OPEN = "<EXTRA-CONTEXT>"
CONTEXT_CLOSE = "</EXTRA-CONTEXT>"
_SEPARATOR = "\n---\n"


class RetrievalAugmenter:
    """Finds reference snippets similar to the question and adds them to the
    instructions of a single invocation.

    Instructions are returned as a new string; nothing shared is modified,
    so concurrent invocations each see only their own retrieved context.
    """

    def __init__(
        self,
        embedder: Embedder,
        vector_store: VectorStore,
        config: RetrievalConfig | None = None,
    ) -> None:
        self.embedder = embedder
        self.vector_store = vector_store
        self.config = config or RetrievalConfig()

    def retrieve(self, question: str, k: int | None = None) -> list[RetrievedDocument]:
        limit = k or self.config.top_k
        embedding = self.embedder.embed_query(question)
        hits = self.vector_store.similarity_search(embedding, limit)

        # Stores return hits best first but disagree on what a score means
        # (cosine similarity vs. L2 distance), so their order is kept as is
        # and the first copy of each content hash wins.
        unique: dict[str, RetrievedDocument] = {}
        for doc in hits:
            unique.setdefault(doc.key, doc)
        return list(unique.values())

    def prime(self, question: str, instructions: str, k: int | None = None) -> str:
        """Return `instructions` extended with retrieved context.

        Embedding or vector-store failures leave the instructions unchanged.
        """

        try:
            documents = self.retrieve(question, k)
        except Exception:
            logger.warning("Retrieval failed; continuing without augmentation", exc_info=True)
            return instructions

        selected = self._select(documents)
        if not selected:
            logger.info("Retrieval returned no usable documents")
            return instructions
        logger.info("Augmented instructions with %d of %d documents", len(selected), len(documents))
        return f"{instructions}\n\n{_render_block(selected)}"

    def render(self, documents: list[RetrievedDocument]) -> str:
        """Render documents into a context block within `max_context_tokens`."""

        selected = self._select(documents)
        return _render_block(selected) if selected else ""

    def _select(self, documents: list[RetrievedDocument]) -> list[str]:
        overhead = estimate_token_count(f"{CONTEXT_OPEN}\n\n{CONTEXT_CLOSE}")
        budget = self.config.max_context_tokens - overhead
        selected: list[str] = []
        for doc in documents:
            content = doc.content.strip()
            if not content:
                continue
            cost = estimate_token_count(content) + (
                estimate_token_count(_SEPARATOR) if selected else 0
            )
            if cost > budget:
                break
            selected.append(content)
            budget -= cost
        return selected


def _render_block(contents: list[str]) -> str:
    return f"{CONTEXT_OPEN}\n{_SEPARATOR.join(contents)}\n{CONTEXT_CLOSE}"
