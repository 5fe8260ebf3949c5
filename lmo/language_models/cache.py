"""
Semantic cache of the answers of a chat model.

When a chat model is configured with a cache, the text of the user
messages of the thread is looked up before the provider is called. If
a previous query with the same or a very similar embedding was
answered, the cached answer is appended to the thread and the
provider is not called. On a miss, the answer produced by the
provider is stored under the embedding of the query, provided it is
plain text.

A cache implements `BaseCache`: `get` returns a `CacheResult` or
raises `CacheMissError`, which carries the embedding of the query;
`set` stores an answer under an embedding. Any other exception raised
by `get` aborts the generation call.

Example:
    ```python
    from langchain_core.embeddings import DeterministicFakeEmbedding
    from lmo.language_models.cache import SemanticCache

    cache = SemanticCache(DeterministicFakeEmbedding(size=64))
    model = OpenAIChatModel(settings, cache=cache)
    ```
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence

import numpy as np
from langchain_core.embeddings import Embeddings
from pydantic import BaseModel, ConfigDict, Field

from lmo.config.config import CacheSettings

from .errors import CacheMissError


class CacheResult(BaseModel):
    answer: list[str]
    embedding: list[float]


class CacheEntry(BaseModel):
    embedding: tuple[float, ...]
    answer: str

    model_config = ConfigDict(frozen=True)


class ScoredEntry(BaseModel):
    entry: CacheEntry
    score: float = Field(ge=-1.0, le=1.0)


def normalize_query(query: str) -> str:
    """Collapse whitespace, so that formatting differences do not
    produce different embeddings."""
    return " ".join(query.split())


def unit_vector(embedding: Sequence[float]) -> np.ndarray:
    """The L2-normalized embedding. A zero vector is returned as is."""
    vector = np.asarray(embedding, dtype=np.float64)
    norm = np.linalg.norm(vector)
    if norm == 0.0:
        return vector
    return vector / norm


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    if len(a) != len(b):
        raise ValueError(
            f"Embeddings of different size: {len(a)} and {len(b)}"
        )
    score = np.dot(unit_vector(a), unit_vector(b))
    return float(np.clip(score, -1.0, 1.0))


class BaseCache(ABC):
    """Abstract interface of the cache used by chat models."""

    @abstractmethod
    def get(self, query: str) -> CacheResult:
        """
        Look up the answer to a query.

        Raises:
            CacheMissError: if no answer is cached. The exception
                carries the embedding of the query.
        """
        pass

    @abstractmethod
    def set(self, embedding: list[float], answer: str) -> None:
        """Store an answer under the embedding of its query."""
        pass


class SemanticCache(BaseCache):
    """
    An in-memory cache keyed by the embedding of the query.

    A query hits the cache when its embedding is identical to a stored
    one, or when the cosine similarity with the closest stored
    embeddings reaches score_threshold. The answers of the top_k
    entries above the threshold are returned, best first.

    The stored embeddings are kept normalized in a matrix, one row per
    entry in insertion order, so that a lookup scores all entries with
    one matrix-vector product.

    The cache does not serialize concurrent access; callers sharing
    one instance across threads must do so.
    """

    def __init__(
        self,
        embedder: Embeddings,
        *,
        score_threshold: float = 0.9,
        top_k: int = 1,
    ) -> None:
        if not 0.0 <= score_threshold <= 1.0:
            raise ValueError("score_threshold must be between 0 and 1")
        if top_k < 1:
            raise ValueError("top_k must be at least 1")
        self.embedder = embedder
        self.score_threshold = score_threshold
        self.top_k = top_k
        self._entries: dict[tuple[float, ...], CacheEntry] = {}
        self._matrix: np.ndarray | None = None

    @classmethod
    def from_settings(cls, settings: CacheSettings) -> 'SemanticCache':
        from .langchain.models import create_embedding_model_from_settings

        return cls(
            create_embedding_model_from_settings(settings.embeddings),
            score_threshold=settings.score_threshold,
            top_k=settings.top_k,
        )

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()
        self._matrix = None

    def search(self, embedding: list[float]) -> list[ScoredEntry]:
        """The top_k entries most similar to the embedding, best
        first."""
        if self._matrix is None:
            return []
        if len(embedding) != self._matrix.shape[1]:
            raise ValueError(
                f"Embeddings of different size: {self._matrix.shape[1]} "
                f"and {len(embedding)}"
            )

        scores = np.clip(self._matrix @ unit_vector(embedding), -1.0, 1.0)
        if self.top_k >= len(scores):
            top = np.argsort(scores)[::-1]
        else:
            top = np.argpartition(scores, -self.top_k)[-self.top_k:]
            top = top[np.argsort(scores[top])[::-1]]

        entries = list(self._entries.values())
        return [
            ScoredEntry(entry=entries[i], score=float(scores[i]))
            for i in top
        ]

    def get(self, query: str) -> CacheResult:
        embedding = list(
            self.embedder.embed_query(normalize_query(query))
        )

        exact = self._entries.get(tuple(embedding))
        if exact is not None:
            return CacheResult(answer=[exact.answer], embedding=embedding)

        answers = [
            s.entry.answer
            for s in self.search(embedding)
            if s.score >= self.score_threshold
        ]
        if not answers:
            raise CacheMissError(embedding)
        return CacheResult(answer=answers, embedding=embedding)

    def set(self, embedding: list[float], answer: str) -> None:
        key = tuple(embedding)
        if key not in self._entries:
            row = unit_vector(embedding)[np.newaxis, :]
            if self._matrix is None:
                self._matrix = row
            elif row.shape[1] != self._matrix.shape[1]:
                raise ValueError(
                    "Embeddings of different size: "
                    f"{self._matrix.shape[1]} and {row.shape[1]}"
                )
            else:
                self._matrix = np.vstack([self._matrix, row])
        # a replaced answer keeps the position of its row
        self._entries[key] = CacheEntry(embedding=key, answer=answer)
