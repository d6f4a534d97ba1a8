"""Content sources that enumerate the documents to index.

A source turns site content into ContentDocument records:
- StaticContentSource: an in-memory list (tests, embedding callers)
- YamlContentSource: a corpus file of pages with optional sub-sections
- PageDirectoryContentSource: a tree of page files (page.md, page.mdx,
  page.html, page.tsx), one route per directory

Pages with sub-sections expand into one page document plus one anchored
document per sub-section, so deep links land on the right heading.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any, Protocol

import yaml
from bs4 import BeautifulSoup
from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from content_index.chunking import route_priority
from content_index.models import ContentDocument

# Sub-sections rank just below the page that holds them
SUBSECTION_PRIORITY_FACTOR = 0.9

PAGE_FILENAMES = ("page.md", "page.mdx", "page.html", "page.tsx")
SKIP_DIRECTORIES = frozenset({"api", "auth", "admin", "node_modules"})

_HEADING = re.compile(r"^(#{1,2})\s+(.+?)\s*#*\s*$")
_SLUG_STRIP = re.compile(r"[^a-z0-9]+")
_JSX_EXPRESSION = re.compile(r"\{[^{}]*\}")


class ContentSource(Protocol):
    """Anything that can list the documents of the site."""

    async def documents(self) -> list[ContentDocument]:
        """Enumerate all documents.

        Raises:
            OSError, ValueError: If content cannot be enumerated at all
        """
        ...


class SubSection(BaseModel):
    """A heading-delimited part of a page."""

    id: str = Field(min_length=1)
    title: str
    content: str


class PageEntry(BaseModel):
    """One page of a corpus file."""

    path: str = Field(min_length=1)
    title: str
    section: str
    content: str = ""
    priority: float | None = Field(default=None, ge=0.0, le=1.0)
    sections: list[SubSection] = Field(default_factory=list)


def slugify(text: str) -> str:
    """Anchor id for a heading.

    Example:
        >>> slugify("Getting Started!")
        'getting-started'
    """
    return _SLUG_STRIP.sub("-", text.lower()).strip("-")


def humanize(segment: str) -> str:
    return segment.replace("-", " ").replace("_", " ").strip().title()


def expand_page(page: PageEntry) -> list[ContentDocument]:
    """Turn a page into its page document and anchored sub-section documents.

    Blank parts are dropped. Sub-section priority is the page priority
    scaled by SUBSECTION_PRIORITY_FACTOR.
    """
    base_priority = page.priority if page.priority is not None else route_priority(page.path)
    documents: list[ContentDocument] = []

    if page.content.strip():
        documents.append(
            ContentDocument(
                path=page.path,
                title=page.title,
                section=page.section,
                raw_text=page.content,
                priority=base_priority,
            )
        )

    for sub in page.sections:
        if not sub.content.strip():
            continue
        documents.append(
            ContentDocument(
                path=page.path,
                title=f"{page.title} - {sub.title}",
                section=page.section,
                raw_text=sub.content,
                anchor=sub.id,
                priority=round(base_priority * SUBSECTION_PRIORITY_FACTOR, 6),
            )
        )
    return documents


class StaticContentSource:
    """Serves a fixed list of documents."""

    def __init__(self, documents: Iterable[ContentDocument]):
        self._documents = list(documents)

    async def documents(self) -> list[ContentDocument]:
        return list(self._documents)


class YamlContentSource:
    """Reads pages from a YAML corpus file.

    The file holds a top-level ``pages`` list; each page has ``path``,
    ``title``, ``section``, ``content`` and optional ``priority`` and
    ``sections`` (each with ``id``, ``title``, ``content``).

    Example:
        >>> source = YamlContentSource("conf/content_search/corpus.yaml")
        >>> docs = asyncio.run(source.documents())  # doctest: +SKIP
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _load(self) -> list[ContentDocument]:
        with open(self.path, encoding="utf-8") as f:
            data: Any = yaml.safe_load(f)

        if not isinstance(data, dict) or not isinstance(data.get("pages"), list):
            raise ValueError(f"Corpus file {self.path} must contain a 'pages' list")

        documents: list[ContentDocument] = []
        for raw in data["pages"]:
            try:
                page = PageEntry.model_validate(raw)
            except ValidationError as e:
                raise ValueError(f"Invalid page entry in {self.path}: {e}") from e
            documents.extend(expand_page(page))

        logger.debug(f"Loaded {len(documents)} documents from {self.path}")
        return documents

    async def documents(self) -> list[ContentDocument]:
        return await asyncio.to_thread(self._load)


def split_markdown(text: str) -> tuple[str | None, str, list[SubSection]]:
    """Split markdown into (h1 title, intro text, h2 sub-sections)."""
    title: str | None = None
    intro: list[str] = []
    sections: list[SubSection] = []
    current: tuple[str, list[str]] | None = None

    def close() -> None:
        if current is not None:
            heading, lines = current
            sections.append(
                SubSection(
                    id=slugify(heading) or "section",
                    title=heading,
                    content="\n".join(lines).strip(),
                )
            )

    for line in text.splitlines():
        match = _HEADING.match(line)
        if match and len(match.group(1)) == 1 and title is None:
            title = match.group(2)
            continue
        if match and len(match.group(1)) == 2:
            close()
            current = (match.group(2), [])
            continue
        if current is None:
            intro.append(line)
        else:
            current[1].append(line)
    close()

    return title, "\n".join(intro).strip(), sections


def markup_to_markdown(markup: str) -> str:
    """Flatten HTML/JSX markup to text, keeping h1/h2 as markdown headings."""
    soup = BeautifulSoup(markup, "html.parser")
    for element in soup(["script", "style"]):
        element.decompose()
    for level in ("h1", "h2"):
        marker = "#" if level == "h1" else "##"
        for heading in soup.find_all(level):
            heading_text = " ".join(heading.get_text(" ", strip=True).split())
            heading.replace_with(f"\n{marker} {heading_text}\n")

    lines = (" ".join(line.split()) for line in soup.get_text("\n").splitlines())
    return "\n".join(line for line in lines if line)


def jsx_markup(source: str) -> str:
    """Best-effort extraction of the rendered markup from a page component."""
    start = source.find("return (")
    body = source[start + len("return (") :] if start != -1 else source
    end = body.rfind(")")
    if start != -1 and end != -1:
        body = body[:end]
    # Inline expressions carry no indexable prose
    previous = None
    while previous != body:
        previous = body
        body = _JSX_EXPRESSION.sub(" ", body)
    return body


class PageDirectoryContentSource:
    """Walks a directory of page files, one route per directory.

    ``app/mcp/basics/page.mdx`` becomes route ``/mcp/basics`` in section
    "Mcp". Route groups like ``(main)`` do not contribute to the route, and
    dynamic segments like ``[slug]`` are skipped.
    """

    def __init__(self, root: str | Path, skip_directories: Sequence[str] = tuple(SKIP_DIRECTORIES)):
        self.root = Path(root)
        self.skip_directories = frozenset(skip_directories)

    def _route_for(self, page_dir: Path) -> list[str] | None:
        parts = page_dir.relative_to(self.root).parts
        segments: list[str] = []
        for part in parts:
            if part.startswith("(") and part.endswith(")"):
                continue
            if part.startswith("[") or part in self.skip_directories:
                return None
            segments.append(part)
        return segments

    def _page_files(self) -> list[Path]:
        found: list[Path] = []
        for name in PAGE_FILENAMES:
            found.extend(self.root.rglob(name))
        # One file per directory, earlier extensions win
        by_dir: dict[Path, Path] = {}
        for path in found:
            by_dir.setdefault(path.parent, path)
        return [by_dir[key] for key in sorted(by_dir)]

    def _parse(self, page_file: Path, segments: list[str]) -> PageEntry:
        source = page_file.read_text(encoding="utf-8")
        if page_file.suffix in {".md", ".mdx"}:
            text = source
        elif page_file.suffix == ".tsx":
            text = markup_to_markdown(jsx_markup(source))
        else:
            text = markup_to_markdown(source)

        h1, intro, sections = split_markdown(text)
        route = "/" + "/".join(segments)
        return PageEntry(
            path=route,
            title=h1 or (humanize(segments[-1]) if segments else "Home"),
            section=humanize(segments[0]) if segments else "Home",
            content=intro,
            sections=sections,
        )

    def _load(self) -> list[ContentDocument]:
        if not self.root.is_dir():
            raise FileNotFoundError(f"Content directory not found: {self.root}")

        documents: list[ContentDocument] = []
        for page_file in self._page_files():
            segments = self._route_for(page_file.parent)
            if segments is None:
                continue
            documents.extend(expand_page(self._parse(page_file, segments)))

        logger.debug(f"Found {len(documents)} documents under {self.root}")
        return documents

    async def documents(self) -> list[ContentDocument]:
        return await asyncio.to_thread(self._load)


def create_content_source(kind: str, path: str | Path | None = None) -> ContentSource:
    """Build a content source from configuration.

    Args:
        kind: "yaml" or "pages"
        path: Corpus file (yaml) or content root directory (pages)

    Raises:
        ValueError: For unknown kinds or a missing path
    """
    if path is None:
        raise ValueError(f"Content source {kind!r} requires a path")
    if kind == "yaml":
        return YamlContentSource(path)
    if kind == "pages":
        return PageDirectoryContentSource(path)
    raise ValueError(f"Unknown content source kind: {kind!r}")
