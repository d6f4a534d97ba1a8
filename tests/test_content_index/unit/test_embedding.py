"""Unit tests for embedding providers."""

import math
from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import pytest
from openai import (
    APIConnectionError,
    APIResponseValidationError,
    AuthenticationError,
    InternalServerError,
    RateLimitError,
)
from openai.types import CreateEmbeddingResponse

from content_index.embedding import (
    EmbeddingConfig,
    HashingEmbedding,
    OpenAIEmbedding,
    create_embedding_provider,
)
from content_index.errors import ProviderUnavailable
from content_index.retrieval import cosine_similarity

EMBEDDINGS_URL = "https://openrouter.ai/api/v1/embeddings"
REQUEST = httpx.Request("POST", EMBEDDINGS_URL)


def embeddings_response(
    *vectors: list[float], order: list[int] | None = None
) -> CreateEmbeddingResponse:
    indices = order if order is not None else list(range(len(vectors)))
    return CreateEmbeddingResponse.model_validate(
        {
            "object": "list",
            "data": [
                {"object": "embedding", "embedding": vector, "index": i}
                for i, vector in zip(indices, vectors, strict=True)
            ],
            "model": "openai/text-embedding-3-small",
            "usage": {"prompt_tokens": 5, "total_tokens": 5},
        }
    )


def status_error(error_cls: type, status: int, message: str) -> Exception:
    response = httpx.Response(status, request=REQUEST, json={"error": {"message": message}})
    return error_cls(message, response=response, body=None)


def mock_create(
    provider: OpenAIEmbedding, monkeypatch: pytest.MonkeyPatch, **kwargs: object
) -> AsyncMock:
    """Replace the SDK's embeddings.create with an AsyncMock."""
    create = AsyncMock(**kwargs)
    monkeypatch.setattr(provider.client.embeddings, "create", create)
    return create


@pytest.fixture
def embedding_config() -> EmbeddingConfig:
    """Remote embedding configuration with fast retries for tests."""
    return EmbeddingConfig(
        model="openai/text-embedding-3-small",
        version="v1",
        dimensions=8,
        batch_size=4,
        max_retries=3,
        retry_backoff_seconds=0.0,
        timeout_seconds=5.0,
        api_key="sk-test-key",
    )


class TestEmbeddingConfig:
    """Tests for EmbeddingConfig validation."""

    def test_defaults(self) -> None:
        config = EmbeddingConfig()
        assert config.base_url == "https://openrouter.ai/api/v1"
        assert config.dimensions == 1536
        assert config.max_concurrency == 5
        assert config.api_key is None

    def test_invalid_dimensions(self) -> None:
        with pytest.raises(ValueError):
            EmbeddingConfig(dimensions=4)
        with pytest.raises(ValueError):
            EmbeddingConfig(dimensions=5000)

    def test_invalid_batch_size(self) -> None:
        with pytest.raises(ValueError):
            EmbeddingConfig(batch_size=0)
        with pytest.raises(ValueError):
            EmbeddingConfig(batch_size=1000)


class TestOpenAIEmbedding:
    """Tests for the remote provider."""

    @pytest.mark.asyncio
    async def test_embed_single_success(
        self, embedding_config: EmbeddingConfig, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        provider = OpenAIEmbedding(embedding_config)
        create = mock_create(provider, monkeypatch, return_value=embeddings_response([0.1] * 8))

        vector = await provider.embed("Test text")

        assert len(vector) == 8
        assert all(isinstance(v, float) for v in vector)
        create.assert_awaited_once_with(
            model="openai/text-embedding-3-small", input=["Test text"], encoding_format="float"
        )

    def test_client_identifies_application(self, embedding_config: EmbeddingConfig) -> None:
        client = OpenAIEmbedding(embedding_config).client

        assert client.api_key == "sk-test-key"
        assert client.default_headers["X-Title"] == "Content Search"
        assert str(client.base_url).rstrip("/") == "https://openrouter.ai/api/v1"
        assert client.max_retries == 0

    @pytest.mark.asyncio
    async def test_embed_batch_keeps_input_order(
        self, embedding_config: EmbeddingConfig, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Results are ordered by index even when the API returns them shuffled."""
        provider = OpenAIEmbedding(embedding_config)
        mock_create(
            provider,
            monkeypatch,
            return_value=embeddings_response([0.3] * 8, [0.1] * 8, [0.2] * 8, order=[2, 0, 1]),
        )

        vectors = await provider.embed_batch(["one", "two", "three"])

        assert [v[0] for v in vectors] == [0.1, 0.2, 0.3]

    @pytest.mark.asyncio
    async def test_batch_size_exceeded(self, embedding_config: EmbeddingConfig) -> None:
        provider = OpenAIEmbedding(embedding_config)

        with pytest.raises(ValueError, match="Batch size .* exceeds limit"):
            await provider.embed_batch(["text"] * 5)

    @pytest.mark.asyncio
    async def test_empty_batch(self, embedding_config: EmbeddingConfig) -> None:
        assert await OpenAIEmbedding(embedding_config).embed_batch([]) == []

    @pytest.mark.asyncio
    async def test_retry_on_rate_limit(
        self, embedding_config: EmbeddingConfig, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Rate limit (429) should trigger a retry."""
        provider = OpenAIEmbedding(embedding_config)
        create = mock_create(
            provider,
            monkeypatch,
            side_effect=[
                status_error(RateLimitError, 429, "Rate limit exceeded"),
                embeddings_response([0.1] * 8),
            ],
        )

        vector = await provider.embed("Test")

        assert len(vector) == 8
        assert create.await_count == 2

    @pytest.mark.asyncio
    async def test_retry_on_server_error(
        self, embedding_config: EmbeddingConfig, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        provider = OpenAIEmbedding(embedding_config)
        create = mock_create(
            provider,
            monkeypatch,
            side_effect=[
                status_error(InternalServerError, 503, "Unavailable"),
                status_error(InternalServerError, 500, "Oops"),
                embeddings_response([0.1] * 8),
            ],
        )

        vector = await provider.embed("Test")

        assert len(vector) == 8
        assert create.await_count == 3

    @pytest.mark.asyncio
    async def test_retries_exhausted(
        self, embedding_config: EmbeddingConfig, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        provider = OpenAIEmbedding(embedding_config)
        create = mock_create(
            provider, monkeypatch, side_effect=status_error(InternalServerError, 500, "down")
        )

        with pytest.raises(ProviderUnavailable, match="exhausted 3 attempts"):
            await provider.embed("Test")
        assert create.await_count == 3

    @pytest.mark.asyncio
    async def test_connection_error_becomes_provider_unavailable(
        self, embedding_config: EmbeddingConfig, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        provider = OpenAIEmbedding(embedding_config)
        mock_create(provider, monkeypatch, side_effect=APIConnectionError(request=REQUEST))

        with pytest.raises(ProviderUnavailable) as exc_info:
            await provider.embed("Test")
        assert exc_info.value.provider == "remote"

    @pytest.mark.asyncio
    async def test_auth_error_is_not_retried(
        self, embedding_config: EmbeddingConfig, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        provider = OpenAIEmbedding(embedding_config)
        create = mock_create(
            provider,
            monkeypatch,
            side_effect=status_error(AuthenticationError, 401, "Invalid API key"),
        )

        with pytest.raises(ProviderUnavailable, match="HTTP 401"):
            await provider.embed("Test")
        assert create.await_count == 1

    @pytest.mark.asyncio
    async def test_unparseable_response_becomes_provider_unavailable(
        self, embedding_config: EmbeddingConfig, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A gateway answering with an HTML page is reported, not raised raw."""
        provider = OpenAIEmbedding(embedding_config)
        html = httpx.Response(200, request=REQUEST, text="<html>Bad Gateway</html>")
        create = mock_create(
            provider, monkeypatch, side_effect=APIResponseValidationError(response=html, body=None)
        )

        with pytest.raises(ProviderUnavailable, match="invalid response"):
            await provider.embed("Test")
        assert create.await_count == 1

    @pytest.mark.asyncio
    async def test_malformed_payload_becomes_provider_unavailable(
        self, embedding_config: EmbeddingConfig, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        provider = OpenAIEmbedding(embedding_config)
        payload = SimpleNamespace(data=[SimpleNamespace(index=0, embedding=None)])
        mock_create(provider, monkeypatch, return_value=payload)

        with pytest.raises(ProviderUnavailable, match="malformed embeddings payload"):
            await provider.embed("Test")

    @pytest.mark.asyncio
    async def test_dimension_mismatch(
        self, embedding_config: EmbeddingConfig, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        provider = OpenAIEmbedding(embedding_config)
        mock_create(provider, monkeypatch, return_value=embeddings_response([0.1] * 4))

        with pytest.raises(ProviderUnavailable, match="Expected 8 dimensions, got 4"):
            await provider.embed("Test")

    def test_model_prefix_kept_for_openrouter(self, embedding_config: EmbeddingConfig) -> None:
        assert OpenAIEmbedding(embedding_config).model_name == "openai/text-embedding-3-small"

    def test_model_prefix_stripped_for_openai(self, embedding_config: EmbeddingConfig) -> None:
        config = embedding_config.model_copy(update={"base_url": None})
        assert OpenAIEmbedding(config).model_name == "text-embedding-3-small"


class TestHashingEmbedding:
    """Tests for the local fallback provider."""

    @pytest.mark.asyncio
    async def test_deterministic(self) -> None:
        provider = HashingEmbedding(64)
        assert await provider.embed("Model Context Protocol") == await provider.embed(
            "Model Context Protocol"
        )

    @pytest.mark.asyncio
    async def test_dimensions_and_norm(self) -> None:
        vector = await HashingEmbedding(64).embed("Large language models generate code.")

        assert len(vector) == 64
        assert math.isclose(math.sqrt(sum(v * v for v in vector)), 1.0)

    @pytest.mark.asyncio
    async def test_stop_words_only_gives_zero_vector(self) -> None:
        vector = await HashingEmbedding(16).embed("the and of")
        assert vector == [0.0] * 16

    @pytest.mark.asyncio
    async def test_identical_text_has_similarity_one(self) -> None:
        provider = HashingEmbedding(256)
        a = await provider.embed("context sharing between tools")
        b = await provider.embed("context sharing between tools")
        assert cosine_similarity(a, b) == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_shared_terms_are_similar(self) -> None:
        provider = HashingEmbedding(1024)
        query = await provider.embed("keyboard shortcuts")
        related = await provider.embed("Cursor keyboard shortcuts for completion")
        unrelated = await provider.embed("Securing servers with audit logs")

        assert cosine_similarity(query, related) > cosine_similarity(query, unrelated)

    @pytest.mark.asyncio
    async def test_batch_matches_single(self) -> None:
        provider = HashingEmbedding(32)
        texts = ["alpha beta", "gamma delta"]
        assert await provider.embed_batch(texts) == [await provider.embed(t) for t in texts]

    def test_invalid_dimensions(self) -> None:
        with pytest.raises(ValueError, match="dimensions must be positive"):
            HashingEmbedding(0)


class TestCreateEmbeddingProvider:
    def test_remote_when_key_configured(self, embedding_config: EmbeddingConfig) -> None:
        provider = create_embedding_provider(embedding_config, use_api=True)
        assert isinstance(provider, OpenAIEmbedding)
        assert provider.name == "remote"

    def test_local_when_api_disabled(self, embedding_config: EmbeddingConfig) -> None:
        provider = create_embedding_provider(embedding_config, use_api=False)
        assert isinstance(provider, HashingEmbedding)
        assert provider.dimensions == embedding_config.local_dimensions

    def test_local_when_key_missing(self) -> None:
        provider = create_embedding_provider(EmbeddingConfig(api_key=None), use_api=True)
        assert provider.name == "local"
