"""Content indexing and hybrid retrieval.

Chunking, embedding, an atomically swapped in-memory index, and keyword,
semantic and hybrid search over site content.
"""

__version__ = "0.1.0"

from content_index.chunking import ChunkingConfig, ContentChunker, chunk_document
from content_index.embedding import (
    EmbeddingConfig,
    EmbeddingProvider,
    HashingEmbedding,
    OpenAIEmbedding,
    create_embedding_provider,
)
from content_index.errors import (
    AdminUnauthorized,
    CatastrophicIndexingFailure,
    ContentSearchError,
    IndexNotReady,
    InvalidQuery,
    ProviderUnavailable,
)
from content_index.index import IndexSnapshot, IndexStore
from content_index.indexer import ContentIndexer
from content_index.models import (
    ContentChunk,
    ContentDocument,
    IndexingResult,
    IndexStats,
    SearchMode,
    SearchRequest,
    SearchResult,
)
from content_index.retrieval import RetrievalConfig, RetrievalEngine

__all__ = [
    "AdminUnauthorized",
    "CatastrophicIndexingFailure",
    "ChunkingConfig",
    "ContentChunk",
    "ContentChunker",
    "ContentDocument",
    "ContentIndexer",
    "ContentSearchError",
    "EmbeddingConfig",
    "EmbeddingProvider",
    "HashingEmbedding",
    "IndexNotReady",
    "IndexSnapshot",
    "IndexStats",
    "IndexStore",
    "IndexingResult",
    "InvalidQuery",
    "OpenAIEmbedding",
    "ProviderUnavailable",
    "RetrievalConfig",
    "RetrievalEngine",
    "SearchMode",
    "SearchRequest",
    "SearchResult",
    "chunk_document",
    "create_embedding_provider",
]
