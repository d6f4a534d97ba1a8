"""Embedding providers for content chunks and queries.

Two interchangeable variants share the EmbeddingProvider protocol:
- OpenAIEmbedding: any OpenAI-compatible embeddings endpoint (OpenRouter by default)
  with batching and bounded retries.
- HashingEmbedding: deterministic hashed bag-of-words vectors, no network.

Vectors from different providers are never comparable; an index generation
uses exactly one of them.
"""

import asyncio
import hashlib
from typing import Protocol

import numpy as np
from loguru import logger
from openai import (
    APIConnectionError,
    APIError,
    APIStatusError,
    AsyncOpenAI,
    InternalServerError,
    RateLimitError,
)
from pydantic import BaseModel, Field

from content_index.errors import ProviderUnavailable
from content_index.keywords import iter_terms

# Inputs beyond this are truncated before being sent to the remote API
MAX_INPUT_CHARS = 8000


class EmbeddingConfig(BaseModel):
    """Configuration for embedding generation.

    Attributes:
        model: Model identifier (e.g., "openai/text-embedding-3-small")
        version: Version tag for reindexing triggers (e.g., "v1")
        dimensions: Expected dimensionality of the remote model
        local_dimensions: Dimensionality of the hashing fallback
        batch_size: Number of texts to embed per API call
        max_retries: Maximum attempts for transient failures
        retry_backoff_seconds: Base delay for exponential backoff
        timeout_seconds: API request timeout
        max_concurrency: Embedding batches in flight during indexing
        base_url: OpenAI-compatible endpoint; None means api.openai.com
        api_key: API key for the remote service (set via env var)
    """

    model: str = "openai/text-embedding-3-small"
    version: str = "v1"
    dimensions: int = Field(default=1536, ge=8, le=4096)
    local_dimensions: int = Field(default=512, ge=8, le=4096)
    batch_size: int = Field(default=100, ge=1, le=500)
    max_retries: int = Field(default=3, ge=1, le=10)
    retry_backoff_seconds: float = Field(default=1.0, ge=0.0, le=60.0)
    timeout_seconds: float = Field(default=30.0, ge=1.0, le=300.0)
    max_concurrency: int = Field(default=5, ge=1, le=32)
    base_url: str | None = "https://openrouter.ai/api/v1"
    api_key: str | None = None


class EmbeddingProvider(Protocol):
    """Protocol for embedding provider implementations."""

    name: str
    dimensions: int

    async def embed(self, text: str) -> list[float]:
        """Generate the embedding for a single text.

        Raises:
            ProviderUnavailable: If the provider cannot produce a vector
        """
        ...

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for a batch of texts, in input order.

        Raises:
            ValueError: If the batch exceeds the provider's limit
            ProviderUnavailable: If the provider cannot produce vectors
        """
        ...


class OpenAIEmbedding:
    """Remote embedding provider with retry logic and batching."""

    name = "remote"

    def __init__(self, config: EmbeddingConfig):
        """Initialize the OpenAI-compatible client.

        Args:
            config: Embedding configuration with API key
        """
        self.config = config
        self.dimensions = config.dimensions
        # Retries are handled here, not inside the SDK
        self.client = AsyncOpenAI(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=config.timeout_seconds,
            max_retries=0,
            default_headers={"X-Title": "Content Search"},
        )

        # Direct OpenAI takes bare model names; OpenRouter wants the vendor prefix
        if config.base_url is None and config.model.startswith("openai/"):
            self.model_name = config.model.removeprefix("openai/")
        else:
            self.model_name = config.model

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for a batch of texts with retry logic.

        Args:
            texts: Input texts (max batch_size)

        Returns:
            Embedding vectors in input order

        Raises:
            ValueError: If batch size exceeds config limit
            ProviderUnavailable: For auth errors, bad responses, or exhausted retries
        """
        if len(texts) > self.config.batch_size:
            raise ValueError(f"Batch size {len(texts)} exceeds limit {self.config.batch_size}")

        if not texts:
            return []

        inputs = [text[:MAX_INPUT_CHARS] for text in texts]
        max_retries = self.config.max_retries

        for attempt in range(max_retries):
            try:
                response = await self.client.embeddings.create(
                    model=self.model_name, input=inputs, encoding_format="float"
                )
            except (APIConnectionError, RateLimitError, InternalServerError) as e:
                # Timeouts are a subclass of APIConnectionError
                logger.warning(
                    f"Transient embedding failure "
                    f"(attempt {attempt + 1}/{max_retries}): {e}"
                )
                if attempt < max_retries - 1:
                    delay = self.config.retry_backoff_seconds * 2**attempt
                    if isinstance(e, RateLimitError):
                        delay *= 2
                    await asyncio.sleep(delay)
                    continue
                raise ProviderUnavailable(
                    self.name, f"exhausted {max_retries} attempts: {e}"
                ) from e
            except APIStatusError as e:
                # Auth and request errors do not get better on retry
                logger.error(f"HTTP error embedding batch: {e}")
                raise ProviderUnavailable(self.name, f"HTTP {e.status_code}: {e}") from e
            except APIError as e:
                # Unparseable bodies, e.g. an HTML page from a gateway
                logger.error(f"Invalid embedding response: {e}")
                raise ProviderUnavailable(self.name, f"invalid response: {e}") from e

            try:
                ordered = sorted(response.data, key=lambda item: item.index)
                embeddings = [[float(v) for v in item.embedding] for item in ordered]
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                raise ProviderUnavailable(self.name, f"malformed embeddings payload: {e}") from e

            if len(embeddings) != len(texts):
                raise ProviderUnavailable(
                    self.name, f"Expected {len(texts)} embeddings, got {len(embeddings)}"
                )
            for i, emb in enumerate(embeddings):
                if len(emb) != self.dimensions:
                    raise ProviderUnavailable(
                        self.name,
                        f"Expected {self.dimensions} dimensions, got {len(emb)} for text {i}",
                    )

            logger.debug(
                f"Embedded {len(texts)} texts with {self.model_name} "
                f"(attempt {attempt + 1}/{max_retries})"
            )
            return embeddings

        raise ProviderUnavailable(self.name, "Exhausted all retry attempts")

    async def embed(self, text: str) -> list[float]:
        """Generate embedding for a single text."""
        embeddings = await self.embed_batch([text])
        return embeddings[0]


class HashingEmbedding:
    """Deterministic pseudo-embedding used when no remote provider is configured.

    Each term is hashed (blake2b, stable across processes) into one of
    `dimensions` buckets; bucket counts are L2-normalized. Texts sharing terms
    get positive cosine similarity, which keeps semantic search working as a
    weaker lexical signal.
    """

    name = "local"

    def __init__(self, dimensions: int = 512):
        if dimensions <= 0:
            raise ValueError(f"dimensions must be positive, got {dimensions}")
        self.dimensions = dimensions

    def _bucket(self, term: str) -> int:
        digest = hashlib.blake2b(term.encode("utf-8"), digest_size=8).digest()
        return int.from_bytes(digest, "big") % self.dimensions

    def embed_sync(self, text: str) -> list[float]:
        """Compute the vector without awaiting; pure function of the text."""
        vector = np.zeros(self.dimensions, dtype=np.float64)
        for term in iter_terms(text):
            vector[self._bucket(term)] += 1.0
        norm = float(np.linalg.norm(vector))
        if norm > 0:
            vector /= norm
        return vector.tolist()

    async def embed(self, text: str) -> list[float]:
        return self.embed_sync(text)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [self.embed_sync(text) for text in texts]


def create_embedding_provider(config: EmbeddingConfig, use_api: bool = True) -> EmbeddingProvider:
    """Pick the remote provider when requested and configured, else the local fallback.

    Example:
        >>> provider = create_embedding_provider(EmbeddingConfig(api_key=None))
        >>> provider.name
        'local'
    """
    if use_api and config.api_key:
        return OpenAIEmbedding(config)
    if use_api:
        logger.warning("Embedding API key not configured. Using local hashing embeddings.")
    return HashingEmbedding(config.local_dimensions)
