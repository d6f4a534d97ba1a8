"""Search service shared by the HTTP, MCP and CLI surfaces.

One ContentSearchService owns one IndexStore. It is constructed explicitly
and handed to each surface, so there is no module-level index state.
"""

from __future__ import annotations

import asyncio
import secrets
from pathlib import Path

from loguru import logger

from content_index.chunking import ContentChunker
from content_index.config import ContentSearchConfig
from content_index.content_source import ContentSource, create_content_source
from content_index.embedding import EmbeddingProvider, HashingEmbedding, OpenAIEmbedding
from content_index.errors import AdminUnauthorized, InvalidQuery, ProviderUnavailable
from content_index.index import IndexSnapshot, IndexStore
from content_index.indexer import ContentIndexer
from content_index.models import (
    IndexingResult,
    IndexStats,
    SearchMode,
    SearchRequest,
    SearchResult,
)
from content_index.persistence import LocalPersistence
from content_index.retrieval import RetrievalEngine


class ContentSearchService:
    """Wires content source, indexer, store and engine behind one API.

    Example:
        >>> service = ContentSearchService.from_config(load_config())  # doctest: +SKIP
        >>> results = await service.search(SearchRequest(query="context protocol"))  # doctest: +SKIP
    """

    def __init__(
        self,
        config: ContentSearchConfig,
        source: ContentSource,
        store: IndexStore | None = None,
        persistence: LocalPersistence | None = None,
        provider: EmbeddingProvider | None = None,
    ):
        """Initialize the service.

        Args:
            config: Validated configuration
            source: Content to index
            store: Index store (a fresh empty one if None)
            persistence: Optional stats/snapshot export
            provider: Fixed embedding provider, mostly for tests
        """
        self.config = config
        self.store = store or IndexStore()
        self.persistence = persistence
        self.engine = RetrievalEngine(config.retrieval)
        self.indexer = ContentIndexer(
            source=source,
            store=self.store,
            embedding_config=config.embedding,
            chunker=ContentChunker(config.chunking),
            persistence=persistence,
            provider=provider,
            export_snapshot=config.persistence.export_snapshot,
        )
        # Query vectors must come from the provider that built the snapshot
        self._providers: dict[str, EmbeddingProvider] = {}
        self._index_lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config: ContentSearchConfig) -> ContentSearchService:
        """Build a service with the configured content source and persistence."""
        source = create_content_source(
            config.indexing.source, config.indexing.resolved_source_path()
        )
        persistence = None
        if config.persistence.enabled:
            persistence = LocalPersistence(
                Path(config.persistence.base_path), version=config.embedding.version
            )
        return cls(config, source, persistence=persistence)

    @property
    def is_indexed(self) -> bool:
        return self.store.is_ready

    async def index_all_content(
        self,
        use_api: bool | None = None,
        deadline_seconds: float | None = None,
    ) -> IndexingResult:
        """Run a full rebuild; concurrent calls are serialized."""
        async with self._index_lock:
            return await self._index_locked(use_api, deadline_seconds)

    async def _index_locked(
        self, use_api: bool | None, deadline_seconds: float | None
    ) -> IndexingResult:
        result = await self.indexer.index_all_content(
            use_api=self.config.indexing.use_api if use_api is None else use_api,
            deadline_seconds=(
                self.config.indexing.deadline_seconds
                if deadline_seconds is None
                else deadline_seconds
            ),
        )
        if self.indexer.last_provider is not None:
            self._providers[self.indexer.last_provider.name] = self.indexer.last_provider
        return result

    async def ensure_indexed(self) -> IndexSnapshot:
        """Return a ready snapshot, building the index first if it never was."""
        snapshot = self.store.snapshot()
        if snapshot.is_ready:
            return snapshot

        async with self._index_lock:
            # Another request may have finished indexing while we waited
            if not self.store.is_ready:
                logger.info("Index not built yet. Indexing content before first search.")
                await self._index_locked(None, None)
        return self.store.snapshot()

    def _query_provider(self, snapshot: IndexSnapshot) -> EmbeddingProvider:
        provider = self._providers.get(snapshot.provider or "")
        if provider is not None:
            return provider
        if snapshot.provider == "remote":
            return OpenAIEmbedding(self.config.embedding)
        return HashingEmbedding(snapshot.dimensions or self.config.embedding.local_dimensions)

    async def embed_query(self, query: str, snapshot: IndexSnapshot) -> list[float]:
        """Embed a query with the provider that built the snapshot.

        Raises:
            ProviderUnavailable: If the provider cannot embed the query
        """
        return await self._query_provider(snapshot).embed(query)

    async def search(self, request: SearchRequest) -> list[SearchResult]:
        """Run a search, indexing lazily on first use.

        Raises:
            InvalidQuery: If the query is blank
            ProviderUnavailable: If semantic mode cannot embed the query
        """
        if not request.query:
            raise InvalidQuery("Query parameter is required")

        snapshot = (
            await self.ensure_indexed() if self.config.indexing.lazy else self.store.snapshot()
        )

        query_vector: list[float] | None = None
        if request.mode is SearchMode.SEMANTIC:
            query_vector = await self.embed_query(request.query, snapshot)
        elif request.mode is SearchMode.HYBRID:
            try:
                query_vector = await self.embed_query(request.query, snapshot)
            except ProviderUnavailable as e:
                logger.warning(f"Query embedding unavailable, hybrid falls back to keywords: {e}")

        return self.engine.search(request, snapshot, query_vector)

    async def related(self, chunk_id: str, limit: int | None = None) -> list[SearchResult]:
        """Chunks most similar to `chunk_id`; empty for unknown ids.

        Raises:
            InvalidQuery: If chunk_id is blank
        """
        if not chunk_id or not chunk_id.strip():
            raise InvalidQuery("Chunk ID is required")
        snapshot = await self.ensure_indexed()
        return self.engine.related(chunk_id, snapshot, limit)

    def get_stats(self) -> IndexStats:
        """Stats of the live index, or the last exported stats before the first rebuild."""
        if not self.store.is_ready and self.persistence is not None:
            saved = self.persistence.load_stats()
            if saved is not None:
                return saved
        return self.store.get_stats()

    def authorize_admin(self, authorization: str | None) -> None:
        """Check an Authorization header for admin operations.

        Development environments are open. Elsewhere a matching
        ``Bearer <admin_api_key>`` is required.

        Raises:
            AdminUnauthorized: If credentials are missing, wrong, or no key is configured
        """
        server = self.config.server
        if server.is_development:
            return
        if not server.admin_api_key:
            raise AdminUnauthorized("Admin API key is not configured")

        scheme, _, token = (authorization or "").partition(" ")
        if scheme.lower() != "bearer" or not secrets.compare_digest(
            token.strip(), server.admin_api_key
        ):
            raise AdminUnauthorized("Invalid or missing admin credentials")
