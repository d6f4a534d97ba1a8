"""Keyword, semantic and hybrid retrieval over an index snapshot.

The engine is stateless: every call receives the snapshot it should read, so
a concurrent rebuild can never mix two generations into one result list.
Query embedding happens in the caller, which owns the provider that built
the snapshot.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np
from loguru import logger
from pydantic import BaseModel, Field

from content_index.errors import IndexNotReady
from content_index.index import IndexSnapshot
from content_index.keywords import tokenize
from content_index.models import (
    BoostFields,
    ContentChunk,
    SearchMode,
    SearchRequest,
    SearchResult,
)


class RetrievalConfig(BaseModel):
    """Default score thresholds per search mode.

    Attributes:
        keyword_threshold: Minimum keyword score when the request sets none
        semantic_threshold: Minimum cosine similarity when the request sets none
        hybrid_threshold: Minimum hybrid score when the request sets none
        related_limit: Default number of related chunks returned
    """

    keyword_threshold: float = Field(default=0.3, ge=-1.0, le=2.0)
    semantic_threshold: float = Field(default=0.2, ge=-1.0, le=1.0)
    hybrid_threshold: float = Field(default=0.3, ge=-1.0, le=2.0)
    related_limit: int = Field(default=3, ge=1, le=100)

    def threshold_for(self, mode: SearchMode) -> float:
        if mode is SearchMode.KEYWORD:
            return self.keyword_threshold
        if mode is SearchMode.SEMANTIC:
            return self.semantic_threshold
        return self.hybrid_threshold


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity in [-1, 1]; 0.0 when either vector has zero magnitude.

    Raises:
        ValueError: If the vectors have different lengths

    Example:
        >>> cosine_similarity([1.0, 0.0], [1.0, 0.0])
        1.0
        >>> cosine_similarity([1.0, 0.0], [0.0, 0.0])
        0.0
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise ValueError(f"Vector length mismatch: {va.shape[0]} != {vb.shape[0]}")
    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    similarity = float(np.dot(va, vb) / (norm_a * norm_b))
    # Rounding can push identical vectors a hair past 1
    return max(-1.0, min(1.0, similarity))


def filter_by_section(chunks: Sequence[ContentChunk], section: str | None) -> list[ContentChunk]:
    """Keep chunks in a section; a filter starting with "/" matches path prefixes."""
    if not section:
        return list(chunks)
    if section.startswith("/"):
        prefix = section.rstrip("/")
        return [
            chunk
            for chunk in chunks
            if chunk.path == prefix or chunk.path.startswith(prefix + "/") or prefix == ""
        ]
    return [chunk for chunk in chunks if chunk.section == section]


def keyword_overlap(query_tokens: Sequence[str], chunk: ContentChunk) -> float:
    """Fraction of query tokens found in the chunk's keywords."""
    if not query_tokens:
        return 0.0
    keywords = set(chunk.keywords)
    matched = sum(1 for token in query_tokens if token in keywords)
    return matched / len(query_tokens)


def title_matches(query: str, chunk: ContentChunk) -> bool:
    normalized = query.strip().lower()
    return bool(normalized) and normalized in chunk.title.lower()


def rank_results(
    scored: list[tuple[ContentChunk, float]],
    threshold: float,
    limit: int,
) -> list[SearchResult]:
    """Apply threshold, sort descending (stable), truncate and assign ranks."""
    kept = [(chunk, score) for chunk, score in scored if score >= threshold]
    # sorted() is stable, so equal scores keep snapshot order
    kept = sorted(kept, key=lambda pair: pair[1], reverse=True)[:limit]
    return [
        SearchResult(chunk=chunk, score=score, rank=rank)
        for rank, (chunk, score) in enumerate(kept, start=1)
    ]


class RetrievalEngine:
    """Scores snapshot chunks against a query in one of three modes."""

    def __init__(self, config: RetrievalConfig | None = None):
        self.config = config or RetrievalConfig()

    def _threshold(self, request: SearchRequest) -> float:
        if request.threshold is not None:
            return request.threshold
        return self.config.threshold_for(request.mode)

    def search(
        self,
        request: SearchRequest,
        snapshot: IndexSnapshot,
        query_vector: Sequence[float] | None = None,
    ) -> list[SearchResult]:
        """Dispatch a request to the mode it names.

        Args:
            request: Validated search request
            snapshot: Index generation to read
            query_vector: Query embedding from the snapshot's provider; required
                for semantic mode, optional for hybrid

        Returns:
            Ranked results, possibly empty

        Raises:
            IndexNotReady: If the snapshot was never built
            ValueError: If semantic mode is requested without a query vector
        """
        if not snapshot.is_ready:
            raise IndexNotReady("Index has not been built yet")

        if request.mode is SearchMode.KEYWORD:
            results = self.keyword_search(request, snapshot)
        elif request.mode is SearchMode.SEMANTIC:
            if query_vector is None:
                raise ValueError("Semantic search requires a query vector")
            results = self.semantic_search(request, snapshot, query_vector)
        else:
            results = self.hybrid_search(request, snapshot, query_vector)

        logger.debug(
            f"{request.mode.value} search for {request.query!r} returned {len(results)} results"
        )
        return results

    def keyword_search(self, request: SearchRequest, snapshot: IndexSnapshot) -> list[SearchResult]:
        """Lexical overlap plus title and priority boosts, capped at 1.0."""
        query_tokens = tokenize(request.query)
        boosts = request.boost_fields
        scored: list[tuple[ContentChunk, float]] = []

        for chunk in filter_by_section(snapshot.chunks, request.section):
            overlap = keyword_overlap(query_tokens, chunk)
            if overlap == 0.0:
                continue
            score = overlap + chunk.priority * boosts.priority
            if title_matches(request.query, chunk):
                score += boosts.title
            scored.append((chunk, min(score, 1.0)))

        return rank_results(scored, self._threshold(request), request.limit)

    def semantic_search(
        self,
        request: SearchRequest,
        snapshot: IndexSnapshot,
        query_vector: Sequence[float],
    ) -> list[SearchResult]:
        """Cosine similarity against every embedded chunk."""
        scored: list[tuple[ContentChunk, float]] = []
        for chunk in filter_by_section(snapshot.chunks, request.section):
            if chunk.embedding is None:
                continue
            scored.append((chunk, cosine_similarity(query_vector, chunk.embedding)))
        return rank_results(scored, self._threshold(request), request.limit)

    def hybrid_search(
        self,
        request: SearchRequest,
        snapshot: IndexSnapshot,
        query_vector: Sequence[float] | None = None,
    ) -> list[SearchResult]:
        """Weighted semantic and keyword scores plus additive field boosts.

        Chunks without an embedding, or a missing query vector, contribute a
        semantic score of 0 so those chunks stay reachable lexically.
        """
        query_tokens = tokenize(request.query)
        scored: list[tuple[ContentChunk, float]] = []

        for chunk in filter_by_section(snapshot.chunks, request.section):
            semantic = 0.0
            if query_vector is not None and chunk.embedding is not None:
                semantic = cosine_similarity(query_vector, chunk.embedding)
            overlap = keyword_overlap(query_tokens, chunk)
            score = request.weight_vector * semantic + request.weight_keyword * overlap
            score += self._boost(request.query, overlap, chunk, request.boost_fields)
            scored.append((chunk, score))

        return rank_results(scored, self._threshold(request), request.limit)

    @staticmethod
    def _boost(query: str, overlap: float, chunk: ContentChunk, boosts: BoostFields) -> float:
        bonus = chunk.priority * boosts.priority
        if title_matches(query, chunk):
            bonus += boosts.title
        if overlap > 0.0:
            bonus += boosts.keywords
        return bonus

    def related(
        self,
        chunk_id: str,
        snapshot: IndexSnapshot,
        limit: int | None = None,
    ) -> list[SearchResult]:
        """Chunks most similar to a reference chunk, the reference excluded.

        Unknown ids and unembedded reference chunks yield an empty list.
        """
        reference = snapshot.by_id.get(chunk_id)
        if reference is None or reference.embedding is None:
            return []

        scored = [
            (chunk, cosine_similarity(reference.embedding, chunk.embedding))
            for chunk in snapshot.chunks
            if chunk.id != chunk_id and chunk.embedding is not None
        ]
        return rank_results(scored, float("-inf"), limit or self.config.related_limit)
