"""Pydantic models for content indexing and retrieval.

All data flowing through the pipeline is validated against these schemas.
Models serialize with camelCase aliases for the HTTP surface and accept either
spelling on input.
"""

from __future__ import annotations

import math
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SearchMode(str, Enum):
    """Retrieval strategies supported by the engine."""

    HYBRID = "hybrid"
    SEMANTIC = "semantic"
    KEYWORD = "keyword"


class ContentDocument(CamelModel):
    """A unit of site content handed to the chunker.

    Attributes:
        path: Site route the content lives at (e.g., "/mcp/basics")
        title: Human-readable title
        section: Top-level classification (e.g., "Core Concepts")
        raw_text: Plain text body
        anchor: Optional in-page section id for deep linking
        priority: Optional author-assigned importance in [0, 1]
    """

    path: str = Field(min_length=1)
    title: str
    section: str
    raw_text: str
    anchor: str | None = None
    priority: float | None = Field(default=None, ge=0.0, le=1.0)

    @field_validator("raw_text")
    @classmethod
    def validate_raw_text(cls, v: str) -> str:
        """Reject documents with no searchable text."""
        if not v or not v.strip():
            raise ValueError("raw_text cannot be blank")
        return v


class ContentChunk(CamelModel):
    """A bounded fragment of a document, the unit of indexing and retrieval.

    Attributes:
        id: Stable identifier derived from path, anchor and chunk index
        path: Originating document path
        title: Document (or sub-section) title
        section: Document section label
        anchor: Optional in-page section id
        text: Chunk body, never empty
        keywords: Normalized, de-duplicated tokens from title and text
        embedding: Vector, or None until computed
        priority: Boost weight in [0, 1]
        chunk_index: 0-indexed position within the document
        start_char: Start offset in the document text
        end_char: End offset in the document text
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str = Field(min_length=1)
    path: str
    title: str
    section: str
    anchor: str | None = None
    text: str = Field(min_length=1)
    keywords: list[str] = Field(default_factory=list)
    embedding: list[float] | None = None
    priority: float = Field(default=0.5, ge=0.0, le=1.0)
    chunk_index: int = Field(default=0, ge=0)
    start_char: int = Field(default=0, ge=0)
    end_char: int = Field(default=0, ge=0)

    @field_validator("text")
    @classmethod
    def validate_text(cls, v: str) -> str:
        """Ensure chunk text is not whitespace only."""
        if not v.strip():
            raise ValueError("Chunk text cannot be empty")
        return v

    @field_validator("embedding")
    @classmethod
    def validate_embedding(cls, v: list[float] | None) -> list[float] | None:
        """Ensure the vector is non-empty and contains finite floats."""
        if v is None:
            return v
        if not v:
            raise ValueError("embedding cannot be an empty vector")
        for i, val in enumerate(v):
            if not math.isfinite(val):
                raise ValueError(f"Vector contains non-finite value at index {i}: {val}")
        return v

    @property
    def has_embedding(self) -> bool:
        return self.embedding is not None

    def to_payload(self) -> dict[str, Any]:
        """Serialize for transport with the embedding stripped."""
        return self.model_dump(by_alias=True, exclude={"embedding"})


class BoostFields(CamelModel):
    """Additive boosts applied on top of the base relevance score."""

    title: float = Field(default=0.2, ge=0.0, le=1.0)
    keywords: float = Field(default=0.1, ge=0.0, le=1.0)
    priority: float = Field(default=0.05, ge=0.0, le=1.0)


class SearchRequest(CamelModel):
    """A search query with tuning knobs.

    Attributes:
        query: Free-text query; blank queries are rejected by the service
        limit: Maximum number of results
        threshold: Minimum score, or None for the per-mode default
        section: Optional section name or path prefix filter
        mode: Retrieval strategy
        weight_vector: Hybrid weight of the semantic score
        weight_keyword: Hybrid weight of the keyword score
        boost_fields: Additive boosts for hybrid scoring
    """

    query: str = Field(default="", max_length=1000)
    limit: int = Field(default=5, ge=1, le=100)
    threshold: float | None = Field(default=None, ge=-1.0, le=2.0)
    section: str | None = None
    mode: SearchMode = SearchMode.HYBRID
    weight_vector: float = Field(default=0.7, ge=0.0, le=1.0)
    weight_keyword: float = Field(default=0.3, ge=0.0, le=1.0)
    boost_fields: BoostFields = Field(default_factory=BoostFields)

    @field_validator("query")
    @classmethod
    def strip_query(cls, v: str) -> str:
        return v.strip()

    @field_validator("section")
    @classmethod
    def blank_section_is_none(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            return None
        return v


class SearchResult(BaseModel):
    """A single ranked search hit.

    Attributes:
        chunk: The matched chunk
        score: Relevance score, semantics depend on the search mode
        rank: 1-indexed position in the returned list
    """

    chunk: ContentChunk
    score: float
    rank: int = Field(ge=1)

    def to_payload(self) -> dict[str, Any]:
        """Flatten into the chunk payload plus score and rank."""
        return {**self.chunk.to_payload(), "score": self.score, "rank": self.rank}


class IndexStats(CamelModel):
    """Statistics about the current index generation.

    Attributes:
        pages_indexed: Number of distinct document paths
        chunks_created: Number of chunks in the index
        vectors_stored: Number of chunks carrying an embedding
        last_indexed: Time of the last successful rebuild, None before the first
        provider: Embedding provider used for this generation
        embedding_dimensions: Shared vector length, None when nothing is embedded
        failed_documents: Documents skipped during the last rebuild
    """

    pages_indexed: int = Field(default=0, ge=0)
    chunks_created: int = Field(default=0, ge=0)
    vectors_stored: int = Field(default=0, ge=0)
    last_indexed: datetime | None = None
    provider: str | None = None
    embedding_dimensions: int | None = None
    failed_documents: int = Field(default=0, ge=0)


class IndexingResult(CamelModel):
    """Outcome of a full `index_all_content` run."""

    pages_indexed: int = Field(ge=0)
    chunks_created: int = Field(ge=0)
    vectors_stored: int = Field(ge=0)
    use_api: bool = Field(serialization_alias="useAPI", validation_alias="useAPI")
    provider: str
    failed_documents: int = Field(default=0, ge=0)
    duration_seconds: float = Field(default=0.0, ge=0.0)
