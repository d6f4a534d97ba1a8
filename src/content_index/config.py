"""Configuration management for content search using Hydra.

All configuration is loaded from YAML files in conf/content_search/.
This module provides typed config objects and validation.
"""

from pathlib import Path

from hydra import compose, initialize_config_dir
from omegaconf import DictConfig, OmegaConf
from pydantic import BaseModel, Field

from content_index.chunking import ChunkingConfig
from content_index.embedding import EmbeddingConfig
from content_index.retrieval import RetrievalConfig

REPO_ROOT = Path(__file__).parent.parent.parent
DEFAULT_CONFIG_DIR = REPO_ROOT / "conf" / "content_search"
DEFAULT_CORPUS_PATH = DEFAULT_CONFIG_DIR / "corpus.yaml"


class IndexingConfig(BaseModel):
    """Indexing run configuration.

    Attributes:
        use_api: Prefer the remote embedding provider when a key is configured
        deadline_seconds: Abandon embedding batches still running after this long
        source: Content source kind ("yaml" corpus file or "pages" directory)
        source_path: Corpus file or content root; None means the bundled corpus
        lazy: Build the index on the first search when it was never built
    """

    use_api: bool = True
    deadline_seconds: float | None = Field(default=None, gt=0)
    source: str = Field(default="yaml", pattern="^(yaml|pages)$")
    source_path: str | None = None
    lazy: bool = True

    def resolved_source_path(self) -> Path:
        return Path(self.source_path) if self.source_path else DEFAULT_CORPUS_PATH


class ServerConfig(BaseModel):
    """HTTP server configuration.

    Attributes:
        host: Bind address
        port: Bind port
        environment: "development" opens the admin routes
        admin_api_key: Bearer token for admin routes outside development
    """

    host: str = "127.0.0.1"
    port: int = Field(default=8000, ge=1, le=65535)
    environment: str = "development"
    admin_api_key: str | None = None

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


class PersistenceConfig(BaseModel):
    """Export configuration.

    Attributes:
        enabled: Write indexing stats after each rebuild
        base_path: Export directory
        export_snapshot: Also write every chunk to Parquet after each rebuild
    """

    enabled: bool = True
    base_path: str = ".data"
    export_snapshot: bool = False


class LoggingConfig(BaseModel):
    """Log sink configuration."""

    level: str = "INFO"
    file: str | None = None


class ContentSearchConfig(BaseModel):
    """Top-level configuration for content search.

    Attributes:
        chunking: Text chunking configuration
        embedding: Embedding provider configuration
        retrieval: Default search thresholds
        indexing: Indexing run configuration
        server: HTTP server configuration
        persistence: Stats and snapshot export
        logging: Log sinks
    """

    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    indexing: IndexingConfig = Field(default_factory=IndexingConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(
    config_name: str = "default",
    config_path: str | Path | None = None,
    overrides: list[str] | None = None,
) -> ContentSearchConfig:
    """Load content search configuration from Hydra YAML files.

    Args:
        config_name: Name of config file (without .yaml extension)
        config_path: Path to config directory (defaults to conf/content_search/)
        overrides: List of config overrides (e.g., ["retrieval.hybrid_threshold=0.2"])

    Returns:
        Validated configuration object

    Raises:
        FileNotFoundError: If the config directory does not exist

    Example:
        >>> config = load_config("default")
        >>> config.embedding.base_url
        'https://openrouter.ai/api/v1'

        >>> config = load_config("default", overrides=["server.port=9000"])
        >>> config.server.port
        9000
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_DIR

    config_path = Path(config_path).resolve()

    if not config_path.exists():
        raise FileNotFoundError(
            f"Config directory not found: {config_path}\n" f"Create it with: mkdir -p {config_path}"
        )

    with initialize_config_dir(
        config_dir=str(config_path), version_base=None, job_name="content_search"
    ):
        cfg: DictConfig = compose(config_name=config_name, overrides=overrides or [])

    # Convert OmegaConf to dict and validate with Pydantic
    config_dict = OmegaConf.to_container(cfg, resolve=True)
    return ContentSearchConfig(**config_dict)  # type: ignore


def create_default_config() -> dict[str, dict[str, object]]:
    """Create a default configuration dictionary for bootstrapping.

    Returns:
        Dictionary suitable for writing to YAML

    Example:
        >>> import yaml
        >>> config = create_default_config()
        >>> with open("conf/content_search/default.yaml", "w") as f:
        ...     yaml.dump(config, f)
    """
    return {
        "chunking": {
            "max_chunk_size": 1000,
            "overlap": 200,
            "preserve_boundaries": True,
        },
        "embedding": {
            "model": "openai/text-embedding-3-small",
            "version": "v1",
            "dimensions": 1536,
            "local_dimensions": 512,
            "batch_size": 100,
            "max_retries": 3,
            "retry_backoff_seconds": 1.0,
            "timeout_seconds": 30.0,
            "max_concurrency": 5,
            "base_url": "https://openrouter.ai/api/v1",
            "api_key": "${oc.env:OPENROUTER_API_KEY,null}",
        },
        "retrieval": {
            "keyword_threshold": 0.3,
            "semantic_threshold": 0.2,
            "hybrid_threshold": 0.3,
            "related_limit": 3,
        },
        "indexing": {
            "use_api": True,
            "deadline_seconds": None,
            "source": "yaml",
            "source_path": None,
            "lazy": True,
        },
        "server": {
            "host": "127.0.0.1",
            "port": 8000,
            "environment": "${oc.env:APP_ENV,development}",
            "admin_api_key": "${oc.env:ADMIN_API_KEY,null}",
        },
        "persistence": {
            "enabled": True,
            "base_path": ".data",
            "export_snapshot": False,
        },
        "logging": {
            "level": "${oc.env:LOG_LEVEL,INFO}",
            "file": None,
        },
    }
