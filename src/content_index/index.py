"""In-memory index store with atomic snapshot swaps.

A rebuild assembles a complete IndexSnapshot off to the side and then
replaces a single reference. Readers grab the current snapshot once per
operation and never observe a half-built generation.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType

from loguru import logger

from content_index.models import ContentChunk, IndexStats


@dataclass(frozen=True)
class IndexSnapshot:
    """One immutable generation of the index.

    Attributes:
        chunks: All chunks in build order
        by_id: Read-only chunk lookup by id
        stats: Statistics for this generation
        provider: Name of the embedding provider that produced the vectors
    """

    chunks: tuple[ContentChunk, ...] = ()
    by_id: Mapping[str, ContentChunk] = field(default_factory=lambda: MappingProxyType({}))
    stats: IndexStats = field(default_factory=IndexStats)
    provider: str | None = None

    @property
    def is_ready(self) -> bool:
        """True once a rebuild has completed, even if it produced no chunks."""
        return self.stats.last_indexed is not None

    @property
    def dimensions(self) -> int | None:
        return self.stats.embedding_dimensions


EMPTY_SNAPSHOT = IndexSnapshot()


def build_snapshot(
    chunks: Iterable[ContentChunk],
    failed_documents: int = 0,
    provider: str | None = None,
    indexed_at: datetime | None = None,
) -> IndexSnapshot:
    """Validate chunks and assemble a snapshot.

    Raises:
        ValueError: On duplicate chunk ids or embeddings of different lengths
    """
    ordered = tuple(chunks)
    by_id: dict[str, ContentChunk] = {}
    dimensions: int | None = None
    vectors_stored = 0

    for chunk in ordered:
        if chunk.id in by_id:
            raise ValueError(f"Duplicate chunk id: {chunk.id}")
        by_id[chunk.id] = chunk

        if chunk.embedding is None:
            continue
        if dimensions is None:
            dimensions = len(chunk.embedding)
        elif len(chunk.embedding) != dimensions:
            raise ValueError(
                f"Mixed embedding lengths: chunk {chunk.id} has {len(chunk.embedding)}, "
                f"expected {dimensions}"
            )
        vectors_stored += 1

    stats = IndexStats(
        pages_indexed=len({chunk.path for chunk in ordered}),
        chunks_created=len(ordered),
        vectors_stored=vectors_stored,
        last_indexed=indexed_at or datetime.now(UTC),
        provider=provider,
        embedding_dimensions=dimensions,
        failed_documents=failed_documents,
    )
    return IndexSnapshot(
        chunks=ordered,
        by_id=MappingProxyType(by_id),
        stats=stats,
        provider=provider,
    )


class IndexStore:
    """Holds the current index generation.

    Example:
        >>> store = IndexStore()
        >>> store.is_ready
        False
        >>> store.rebuild([]).chunks_created
        0
        >>> store.is_ready
        True
    """

    def __init__(self, snapshot: IndexSnapshot | None = None):
        self._snapshot = snapshot or EMPTY_SNAPSHOT

    @property
    def is_ready(self) -> bool:
        return self._snapshot.is_ready

    def snapshot(self) -> IndexSnapshot:
        """Current generation; callers should hold on to it for one operation."""
        return self._snapshot

    def rebuild(
        self,
        chunks: Iterable[ContentChunk],
        failed_documents: int = 0,
        provider: str | None = None,
    ) -> IndexStats:
        """Replace the whole index with a new generation.

        Args:
            chunks: Complete chunk set for the new generation
            failed_documents: Documents skipped while producing the chunks
            provider: Embedding provider name for the new generation

        Returns:
            Stats of the new generation

        Raises:
            ValueError: If validation fails; the previous generation stays live
        """
        snapshot = build_snapshot(chunks, failed_documents=failed_documents, provider=provider)
        self._snapshot = snapshot
        logger.info(
            f"Index rebuilt: {snapshot.stats.chunks_created} chunks from "
            f"{snapshot.stats.pages_indexed} pages, {snapshot.stats.vectors_stored} vectors "
            f"(provider={provider})"
        )
        return snapshot.stats

    def get_stats(self) -> IndexStats:
        return self._snapshot.stats

    def get_all_chunks(self) -> list[ContentChunk]:
        return list(self._snapshot.chunks)

    def get_chunk_by_id(self, chunk_id: str) -> ContentChunk | None:
        return self._snapshot.by_id.get(chunk_id)
