"""Embedders for reference snippets and questions."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from hashlib import blake2b
from math import sqrt
from typing import Any

_WORD = re.compile(r"[a-z0-9_]+(?:\.[a-z0-9_]+)*")


class Embedder(ABC):
    """Turns text into vectors for the vector store."""

    @abstractmethod
    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        """Embed many documents."""

    @abstractmethod
    def embed_query(self, text: str) -> list[float]:
        """Embed one query."""


class HashingEmbedder(Embedder):
    """Feature-hashing bag of words; needs no model and is fully deterministic.

    Dotted names such as `analytics.orders.amount` count both as a whole
    and as their parts, so a question mentioning `orders` still lands near
    a note that spells the qualified column.
    """

    def __init__(self, dimension: int = 256) -> None:
        self.dimension = dimension

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self._embed(text) for text in texts]

    def embed_query(self, text: str) -> list[float]:
        return self._embed(text)

    def _embed(self, text: str) -> list[float]:
        vector = [0.0] * self.dimension
        for term in _terms(text):
            digest = blake2b(term.encode("utf-8"), digest_size=8).digest()
            bucket = int.from_bytes(digest[:4], "little") % self.dimension
            vector[bucket] += -1.0 if digest[4] & 1 else 1.0

        norm = sqrt(sum(value * value for value in vector))
        return [value / norm for value in vector] if norm else vector


class LangChainEmbedder(Embedder):
    """Adapts any `langchain_core.embeddings.Embeddings` implementation."""

    def __init__(self, embeddings: Any) -> None:
        self._embeddings = embeddings

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [list(vector) for vector in self._embeddings.embed_documents(texts)]

    def embed_query(self, text: str) -> list[float]:
        return list(self._embeddings.embed_query(text))


def _terms(text: str) -> list[str]:
    terms: list[str] = []
    for word in _WORD.findall(text.lower()):
        terms.append(word)
        if "." in word:
            terms.extend(word.split("."))
    return terms
