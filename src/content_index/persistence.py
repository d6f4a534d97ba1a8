"""Local export of index generations and indexing statistics.

The in-memory index is always rebuilt from source content, so this layer is
an export, not a store of record. Chunks go to Parquet for portability;
stats go to a small JSON file the admin surface can read after a restart.
"""

from __future__ import annotations

import json
from pathlib import Path

import pandas as pd
from filelock import FileLock
from loguru import logger

from content_index.index import IndexSnapshot
from content_index.models import ContentChunk, IndexStats

STATS_FILENAME = "indexing-stats.json"
SNAPSHOT_FILENAME = "chunks.parquet"

CHUNK_COLUMNS = [
    "id",
    "path",
    "title",
    "section",
    "anchor",
    "text",
    "keywords",
    "embedding",
    "priority",
    "chunk_index",
    "start_char",
    "end_char",
]


class LocalPersistence:
    """Parquet snapshot and JSON stats under one directory, with file locking.

    Layout::

        <base_path>/indexing-stats.json
        <base_path>/<version>/chunks.parquet

    Writers take a per-file lock (30s timeout) so two processes exporting at
    once cannot interleave partial files. Reads are lock-free.
    """

    def __init__(self, base_path: str | Path, version: str = "v1"):
        """Initialize local persistence layer.

        Args:
            base_path: Directory for exports (e.g., .data/)
            version: Embedding version; each version gets its own subdirectory
        """
        self.base_path = Path(base_path)
        self.version = version
        self.version_path = self.base_path / version
        self.version_path.mkdir(parents=True, exist_ok=True)

    @property
    def stats_path(self) -> Path:
        return self.base_path / STATS_FILENAME

    @property
    def snapshot_path(self) -> Path:
        return self.version_path / SNAPSHOT_FILENAME

    def save_stats(self, stats: IndexStats) -> Path:
        """Write stats as camelCase JSON."""
        lock_path = self.base_path / f".{STATS_FILENAME}.lock"
        with FileLock(lock_path, timeout=30):
            self.stats_path.write_text(
                json.dumps(stats.model_dump(mode="json", by_alias=True), indent=2),
                encoding="utf-8",
            )
        logger.debug(f"Saved indexing stats to {self.stats_path}")
        return self.stats_path

    def load_stats(self) -> IndexStats | None:
        """Read saved stats, or None when nothing was saved yet."""
        if not self.stats_path.exists():
            return None
        try:
            data = json.loads(self.stats_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring unreadable stats file {self.stats_path}: {e}")
            return None
        return IndexStats.model_validate(data)

    def save_snapshot(self, snapshot: IndexSnapshot) -> Path:
        """Write every chunk of a snapshot to Parquet.

        Returns:
            Path to the Parquet file
        """
        lock_path = self.version_path / f".{SNAPSHOT_FILENAME}.lock"

        with FileLock(lock_path, timeout=30):
            if not snapshot.chunks:
                df = pd.DataFrame(columns=CHUNK_COLUMNS)
            else:
                df = pd.DataFrame(
                    [chunk.model_dump(include=set(CHUNK_COLUMNS)) for chunk in snapshot.chunks],
                    columns=CHUNK_COLUMNS,
                )
            df.to_parquet(
                self.snapshot_path, engine="pyarrow", compression="snappy", index=False
            )

        logger.info(f"Exported {len(snapshot.chunks)} chunks to {self.snapshot_path}")
        return self.snapshot_path

    def load_chunks(self) -> list[ContentChunk]:
        """Read chunks back from the Parquet export.

        Raises:
            FileNotFoundError: If no snapshot was exported for this version
        """
        if not self.snapshot_path.exists():
            raise FileNotFoundError(f"No snapshot found in {self.version_path}")

        df = pd.read_parquet(self.snapshot_path, engine="pyarrow")
        if df.empty:
            return []

        chunks: list[ContentChunk] = []
        for record in df.to_dict(orient="records"):
            # Parquet hands lists back as numpy arrays and missing values as None/NaN
            embedding = record["embedding"]
            anchor = record["anchor"]
            chunks.append(
                ContentChunk(
                    id=record["id"],
                    path=record["path"],
                    title=record["title"],
                    section=record["section"],
                    anchor=anchor if isinstance(anchor, str) else None,
                    text=record["text"],
                    keywords=[str(k) for k in record["keywords"]],
                    embedding=None if embedding is None else [float(v) for v in embedding],
                    priority=float(record["priority"]),
                    chunk_index=int(record["chunk_index"]),
                    start_char=int(record["start_char"]),
                    end_char=int(record["end_char"]),
                )
            )
        return chunks
