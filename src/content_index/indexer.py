"""End-to-end content indexing workflow.

Combines content enumeration, chunking, embedding and the index swap:
1. Enumerate documents from the content source
2. Chunk each document
3. Embed chunks in bounded concurrent batches
4. Rebuild the index store in one step and export stats
"""

from __future__ import annotations

import asyncio
import time

from loguru import logger

from content_index.chunking import Chunker, ContentChunker
from content_index.content_source import ContentSource
from content_index.embedding import (
    EmbeddingConfig,
    EmbeddingProvider,
    HashingEmbedding,
    create_embedding_provider,
)
from content_index.errors import CatastrophicIndexingFailure, ProviderUnavailable
from content_index.index import IndexStore
from content_index.models import ContentChunk, IndexingResult
from content_index.persistence import LocalPersistence


def embedding_text(chunk: ContentChunk) -> str:
    """Text sent to the embedding provider for a chunk."""
    return chunk.text


class ContentIndexer:
    """Rebuilds the index from a content source.

    Example:
        >>> indexer = ContentIndexer(source, IndexStore(), EmbeddingConfig())  # doctest: +SKIP
        >>> result = await indexer.index_all_content(use_api=False)  # doctest: +SKIP
        >>> result.vectors_stored == result.chunks_created  # doctest: +SKIP
        True
    """

    def __init__(
        self,
        source: ContentSource,
        store: IndexStore,
        embedding_config: EmbeddingConfig,
        chunker: Chunker | None = None,
        persistence: LocalPersistence | None = None,
        provider: EmbeddingProvider | None = None,
        export_snapshot: bool = False,
    ):
        """Initialize the indexer.

        Args:
            source: Where documents come from
            store: Index store to rebuild
            embedding_config: Settings for provider selection, batching and fan-out
            chunker: Chunker to use (ContentChunker with defaults if None)
            persistence: Optional export target for stats and snapshots
            provider: Fixed provider, bypassing selection from embedding_config
            export_snapshot: Also export every chunk to Parquet after a rebuild
        """
        self.source = source
        self.store = store
        self.embedding_config = embedding_config
        self.chunker = chunker or ContentChunker()
        self.persistence = persistence
        self._provider_override = provider
        self.export_snapshot = export_snapshot
        self.last_provider: EmbeddingProvider | None = None

    def select_provider(self, use_api: bool) -> EmbeddingProvider:
        if self._provider_override is not None:
            return self._provider_override
        return create_embedding_provider(self.embedding_config, use_api=use_api)

    def local_provider(self) -> HashingEmbedding:
        return HashingEmbedding(self.embedding_config.local_dimensions)

    async def index_all_content(
        self,
        use_api: bool = True,
        deadline_seconds: float | None = None,
    ) -> IndexingResult:
        """Rebuild the whole index from the content source.

        Args:
            use_api: Prefer the remote embedding provider when configured
            deadline_seconds: Give up on embedding batches still running after this
                long; their chunks stay unembedded (keyword-only)

        Returns:
            Aggregate counts for the new generation

        Raises:
            CatastrophicIndexingFailure: If the content source cannot be enumerated
        """
        started = time.perf_counter()

        try:
            documents = await self.source.documents()
        except Exception as e:
            logger.error(f"Content enumeration failed: {e}")
            raise CatastrophicIndexingFailure(f"Could not enumerate content: {e}") from e

        logger.info(f"Indexing {len(documents)} documents (use_api={use_api})")

        chunks: list[ContentChunk] = []
        failed_documents = 0
        for document in documents:
            try:
                chunks.extend(self.chunker.chunk(document))
            except ValueError as e:
                failed_documents += 1
                logger.warning(f"Skipping {document.path} ({document.anchor or 'page'}): {e}")

        provider = self.select_provider(use_api)
        embedded = await self.embed_chunks(chunks, provider, deadline_seconds)

        if chunks and provider.name != "local" and not any(c.has_embedding for c in embedded):
            logger.warning(
                f"All {provider.name} embedding batches failed. "
                f"Re-embedding {len(chunks)} chunks with local fallback."
            )
            provider = self.local_provider()
            embedded = await self.embed_chunks(chunks, provider, deadline_seconds)

        stats = self.store.rebuild(embedded, failed_documents=failed_documents, provider=provider.name)
        self.last_provider = provider

        if stats.vectors_stored < stats.chunks_created:
            logger.warning(
                f"Partial indexing: {stats.chunks_created - stats.vectors_stored} of "
                f"{stats.chunks_created} chunks have no embedding"
            )

        if self.persistence is not None:
            self.persistence.save_stats(stats)
            if self.export_snapshot:
                self.persistence.save_snapshot(self.store.snapshot())

        result = IndexingResult(
            pages_indexed=stats.pages_indexed,
            chunks_created=stats.chunks_created,
            vectors_stored=stats.vectors_stored,
            useAPI=use_api,
            provider=provider.name,
            failed_documents=failed_documents,
            duration_seconds=round(time.perf_counter() - started, 3),
        )
        logger.success(
            f"Indexed {result.pages_indexed} pages: {result.chunks_created} chunks, "
            f"{result.vectors_stored} vectors in {result.duration_seconds}s"
        )
        return result

    async def embed_chunks(
        self,
        chunks: list[ContentChunk],
        provider: EmbeddingProvider,
        deadline_seconds: float | None = None,
    ) -> list[ContentChunk]:
        """Attach embeddings to chunks, keeping input order.

        Batches run concurrently up to max_concurrency. A batch that fails
        with ProviderUnavailable, or misses the deadline, leaves its chunks
        without an embedding.
        """
        if not chunks:
            return []

        batch_size = self.embedding_config.batch_size
        batches = [chunks[i : i + batch_size] for i in range(0, len(chunks), batch_size)]
        semaphore = asyncio.Semaphore(self.embedding_config.max_concurrency)
        loop = asyncio.get_running_loop()
        deadline = None if deadline_seconds is None else loop.time() + deadline_seconds

        async def run_batch(batch_num: int, batch: list[ContentChunk]) -> list[ContentChunk]:
            async with semaphore:
                timeout = None if deadline is None else max(0.0, deadline - loop.time())
                try:
                    vectors = await asyncio.wait_for(
                        provider.embed_batch([embedding_text(c) for c in batch]), timeout=timeout
                    )
                except ProviderUnavailable as e:
                    logger.warning(f"Embedding batch {batch_num} failed, left unembedded: {e}")
                    return batch
                except TimeoutError:
                    logger.warning(f"Embedding batch {batch_num} missed the deadline, left unembedded")
                    return batch

            return [
                chunk.model_copy(update={"embedding": vector})
                for chunk, vector in zip(batch, vectors, strict=True)
            ]

        # gather returns results in argument order, whatever the completion order
        results = await asyncio.gather(*(run_batch(i, b) for i, b in enumerate(batches)))
        return [chunk for batch in results for chunk in batch]
