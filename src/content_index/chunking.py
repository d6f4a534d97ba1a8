"""Text chunking for content indexing.

Splits documents into bounded, overlapping character windows that prefer
paragraph and sentence boundaries. All chunking is deterministic: same
document + config → same chunk ids, boundaries and keywords.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Protocol

from langchain_text_splitters import RecursiveCharacterTextSplitter

from content_index.keywords import extract_keywords
from content_index.models import ContentChunk, ContentDocument

BOUNDARY_SEPARATORS = ["\n\n", "\n", ". ", " ", ""]


@dataclass(frozen=True)
class ChunkingConfig:
    """Configuration for text chunking.

    Attributes:
        max_chunk_size: Maximum chunk length in characters
        overlap: Characters shared between neighbouring chunks
        preserve_boundaries: If True, split on paragraph/sentence/word boundaries first
    """

    max_chunk_size: int = 1000
    overlap: int = 200
    preserve_boundaries: bool = True

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if self.max_chunk_size <= 0:
            raise ValueError(f"max_chunk_size must be positive, got {self.max_chunk_size}")
        if self.overlap < 0:
            raise ValueError(f"overlap must be non-negative, got {self.overlap}")
        if self.overlap >= self.max_chunk_size:
            raise ValueError(
                f"overlap ({self.overlap}) must be less than max_chunk_size "
                f"({self.max_chunk_size})"
            )


def make_chunk_id(path: str, chunk_index: int, anchor: str | None = None) -> str:
    """Stable chunk id from document path, anchor and chunk position."""
    key = f"{path}\x1f{anchor or ''}\x1f{chunk_index}"
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:16]


def route_priority(path: str) -> float:
    """Importance of a route by depth: 1.0 at the root, 0.2 floor for deep pages.

    Example:
        >>> route_priority("/mcp")
        0.8
    """
    depth = len([part for part in path.split("/") if part])
    return max(1, 5 - depth) / 5


class Chunker(Protocol):
    """Protocol for chunking implementations."""

    def chunk(self, document: ContentDocument) -> list[ContentChunk]:
        """Split a document into ordered chunks."""
        ...


class ContentChunker:
    """Boundary-aware character chunker.

    Uses langchain's RecursiveCharacterTextSplitter measured in characters.
    Sentence separators stay attached to the end of the sentence they close.
    """

    def __init__(self, config: ChunkingConfig | None = None):
        self.config = config or ChunkingConfig()
        self.splitter = RecursiveCharacterTextSplitter(
            chunk_size=self.config.max_chunk_size,
            chunk_overlap=self.config.overlap,
            length_function=len,
            separators=BOUNDARY_SEPARATORS if self.config.preserve_boundaries else [""],
            keep_separator="end",
            strip_whitespace=True,
        )

    def split_text(self, text: str) -> list[tuple[str, int, int]]:
        """Split raw text into (text, start_char, end_char) windows.

        Neighbouring windows share at least ``overlap`` characters: when the
        splitter leaves a gap (a sentence longer than ``max_chunk_size -
        overlap``), the next window is pulled back to the start of a word
        inside the previous one and re-cut to ``max_chunk_size``.

        Raises:
            ValueError: If text is empty or whitespace only
        """
        if not text or not text.strip():
            raise ValueError("Input text cannot be empty")

        stripped = text.strip()
        if len(stripped) <= self.config.max_chunk_size:
            start = text.find(stripped)
            return [(stripped, start, start + len(stripped))]

        spans: list[tuple[int, int]] = []
        current_pos = 0
        for piece in self.splitter.split_text(text):
            if not piece.strip():
                continue
            start = text.find(piece, current_pos)
            if start == -1:
                # Splitter normalized the piece; anchor at the running position
                start = min(current_pos, max(0, len(text) - len(piece)))
            end = min(len(text), start + len(piece))
            spans.append((start, end))
            current_pos = max(start + 1, end - self.config.overlap)

        tail_end = len(text.rstrip())
        if spans and spans[-1][1] < tail_end:
            spans.append((spans[-1][1], tail_end))

        windows: list[tuple[str, int, int]] = []
        for start, end in self._enforce_overlap(text, spans):
            piece = text[start:end]
            if piece.strip():
                start += len(piece) - len(piece.lstrip())
                end -= len(piece) - len(piece.rstrip())
                windows.append((text[start:end], start, end))
        return windows

    def _enforce_overlap(self, text: str, spans: list[tuple[int, int]]) -> list[tuple[int, int]]:
        size, overlap = self.config.max_chunk_size, self.config.overlap
        result: list[tuple[int, int]] = []
        for start, end in spans:
            if result:
                prev_start, prev_end = result[-1]
                if end <= prev_end:
                    continue
                if start <= prev_start or (overlap and start > prev_end - overlap):
                    start = self._overlap_start(text, prev_start, prev_end)
            while end - start > size:
                cut = self._word_end(text, start, start + size)
                result.append((start, cut))
                start = self._overlap_start(text, start, cut)
            result.append((start, end))
        return result

    def _overlap_start(self, text: str, prev_start: int, prev_end: int) -> int:
        """Start of the window that follows [prev_start, prev_end)."""
        pos = max(prev_start + 1, prev_end - self.config.overlap)
        if not self.config.preserve_boundaries:
            return pos
        floor = max(prev_start + 1, pos - self.config.overlap)
        i = pos
        while i > floor and (text[i].isspace() or not text[i - 1].isspace()):
            i -= 1
        return i

    def _word_end(self, text: str, start: int, limit: int) -> int:
        """Last word end in the back half of [start, limit], else ``limit``."""
        if not self.config.preserve_boundaries:
            return limit
        floor = start + self.config.max_chunk_size // 2
        i = limit
        while i > floor and (text[i - 1].isspace() or not text[i].isspace()):
            i -= 1
        if i > floor:
            return i
        # No word boundary; hard cut without trailing whitespace
        i = limit
        while i > start + 1 and text[i - 1].isspace():
            i -= 1
        return i

    def chunk(self, document: ContentDocument) -> list[ContentChunk]:
        """Split a document into chunks with ids, keywords and priority.

        Args:
            document: Document to chunk

        Returns:
            Chunks in document order, never empty

        Raises:
            ValueError: If the document text is blank
        """
        priority = (
            document.priority if document.priority is not None else route_priority(document.path)
        )
        chunks: list[ContentChunk] = []
        for idx, (piece, start, end) in enumerate(self.split_text(document.raw_text)):
            chunks.append(
                ContentChunk(
                    id=make_chunk_id(document.path, idx, document.anchor),
                    path=document.path,
                    title=document.title,
                    section=document.section,
                    anchor=document.anchor,
                    text=piece,
                    keywords=extract_keywords(piece, document.title),
                    priority=priority,
                    chunk_index=idx,
                    start_char=start,
                    end_char=end,
                )
            )
        return chunks


def chunk_document(
    document: ContentDocument,
    max_chunk_size: int = 1000,
    overlap: int = 200,
    preserve_boundaries: bool = True,
) -> list[ContentChunk]:
    """Convenience function to chunk one document.

    Example:
        >>> doc = ContentDocument(path="/a", title="A", section="S", raw_text="Hello.")
        >>> len(chunk_document(doc))
        1
    """
    config = ChunkingConfig(
        max_chunk_size=max_chunk_size,
        overlap=overlap,
        preserve_boundaries=preserve_boundaries,
    )
    return ContentChunker(config).chunk(document)
