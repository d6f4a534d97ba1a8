"""Pytest configuration for test discovery, env, and fixtures.

This file ensures that:
- `src/` is importable
- Tests never pick up real API keys or deployment settings from the shell
- Service tests share a small in-memory corpus
"""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path

import pytest

# Ensure src directory is in path for imports
repo_root = Path(__file__).parent.parent
src_path = repo_root / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from content_index.config import (  # noqa: E402
    ContentSearchConfig,
    IndexingConfig,
    PersistenceConfig,
    ServerConfig,
)
from content_index.content_source import StaticContentSource  # noqa: E402
from content_index.embedding import EmbeddingProvider  # noqa: E402
from content_index.models import ContentDocument  # noqa: E402
from content_index.persistence import LocalPersistence  # noqa: E402
from content_search_server.service import ContentSearchService  # noqa: E402

ENV_VARS = ("OPENROUTER_API_KEY", "APP_ENV", "ADMIN_API_KEY", "LOG_LEVEL")


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Unset variables the Hydra config reads so defaults apply."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def sample_documents() -> list[ContentDocument]:
    return [
        ContentDocument(
            path="/mcp",
            title="Understanding MCP",
            section="Core Concepts",
            raw_text="The Model Context Protocol lets tools share context with AI assistants.",
            priority=0.8,
        ),
        ContentDocument(
            path="/cursor",
            title="Cursor",
            section="Tools",
            raw_text="Cursor keyboard shortcuts speed up code editing.",
            priority=0.8,
        ),
        ContentDocument(
            path="/servers/security",
            title="Server Security",
            section="Servers",
            raw_text="Run MCP servers in a sandbox and audit every tool call.",
            priority=0.6,
        ),
    ]


@pytest.fixture
def make_service(
    sample_documents: list[ContentDocument],
) -> Callable[..., ContentSearchService]:
    """Factory for services over the sample corpus using local embeddings."""

    def factory(
        environment: str = "development",
        admin_api_key: str | None = None,
        lazy: bool = True,
        persistence: LocalPersistence | None = None,
        provider: EmbeddingProvider | None = None,
    ) -> ContentSearchService:
        config = ContentSearchConfig(
            indexing=IndexingConfig(use_api=False, lazy=lazy),
            server=ServerConfig(environment=environment, admin_api_key=admin_api_key),
            persistence=PersistenceConfig(enabled=persistence is not None),
        )
        return ContentSearchService(
            config,
            StaticContentSource(sample_documents),
            persistence=persistence,
            provider=provider,
        )

    return factory
