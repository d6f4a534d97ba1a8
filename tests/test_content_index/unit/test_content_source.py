"""Unit tests for content sources."""

from pathlib import Path

import pytest

from content_index.config import DEFAULT_CORPUS_PATH
from content_index.content_source import (
    PageDirectoryContentSource,
    PageEntry,
    StaticContentSource,
    SubSection,
    YamlContentSource,
    create_content_source,
    expand_page,
    markup_to_markdown,
    slugify,
    split_markdown,
)
from content_index.models import ContentDocument

CORPUS = """
pages:
  - path: /mcp
    title: Understanding MCP
    section: Core Concepts
    priority: 0.8
    content: The Model Context Protocol standardizes context exchange.
    sections:
      - id: basics
        title: Basics
        content: Servers expose tools and resources.
      - id: empty
        title: Empty
        content: "   "
  - path: /cursor
    title: Cursor
    section: Tools
    content: Cursor is an AI editor.
"""


def write_page(root: Path, relative: str, content: str) -> None:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


class TestExpandPage:
    """Tests for page to document expansion."""

    def test_page_and_sub_sections(self) -> None:
        page = PageEntry(
            path="/mcp",
            title="MCP",
            section="Core",
            content="Intro text.",
            priority=0.8,
            sections=[SubSection(id="basics", title="Basics", content="Basic text.")],
        )
        docs = expand_page(page)

        assert [(d.anchor, d.title) for d in docs] == [(None, "MCP"), ("basics", "MCP - Basics")]
        assert docs[0].priority == 0.8
        assert docs[1].priority == pytest.approx(0.72)

    def test_priority_defaults_to_route_depth(self) -> None:
        docs = expand_page(PageEntry(path="/a/b", title="B", section="A", content="Text."))
        assert docs[0].priority == pytest.approx(0.6)

    def test_blank_intro_skipped(self) -> None:
        page = PageEntry(
            path="/x",
            title="X",
            section="X",
            sections=[SubSection(id="one", title="One", content="Only part.")],
        )
        assert [d.anchor for d in expand_page(page)] == ["one"]


class TestYamlContentSource:
    @pytest.mark.asyncio
    async def test_loads_pages(self, tmp_path: Path) -> None:
        corpus = tmp_path / "corpus.yaml"
        corpus.write_text(CORPUS, encoding="utf-8")

        docs = await YamlContentSource(corpus).documents()

        assert [(d.path, d.anchor) for d in docs] == [
            ("/mcp", None),
            ("/mcp", "basics"),
            ("/cursor", None),
        ]
        assert docs[1].section == "Core Concepts"

    @pytest.mark.asyncio
    async def test_missing_pages_list(self, tmp_path: Path) -> None:
        corpus = tmp_path / "corpus.yaml"
        corpus.write_text("title: nothing here\n", encoding="utf-8")

        with pytest.raises(ValueError, match="'pages' list"):
            await YamlContentSource(corpus).documents()

    @pytest.mark.asyncio
    async def test_invalid_page_entry(self, tmp_path: Path) -> None:
        corpus = tmp_path / "corpus.yaml"
        corpus.write_text("pages:\n  - title: no path\n", encoding="utf-8")

        with pytest.raises(ValueError, match="Invalid page entry"):
            await YamlContentSource(corpus).documents()

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(OSError):
            await YamlContentSource(tmp_path / "absent.yaml").documents()

    @pytest.mark.asyncio
    async def test_bundled_corpus(self) -> None:
        docs = await YamlContentSource(DEFAULT_CORPUS_PATH).documents()

        paths = {d.path for d in docs}
        assert "/mcp" in paths
        assert "/cursor" in paths
        assert any(d.anchor == "getting-started" for d in docs)


class TestMarkdownParsing:
    def test_split_markdown(self) -> None:
        title, intro, sections = split_markdown(
            "# Code Review\n\nIntro line.\n\n## Checklist\nCheck things.\n## Tools\nUse linters.\n"
        )

        assert title == "Code Review"
        assert intro == "Intro line."
        assert [(s.id, s.content) for s in sections] == [
            ("checklist", "Check things."),
            ("tools", "Use linters."),
        ]

    def test_markup_headings_become_markdown(self) -> None:
        text = markup_to_markdown(
            "<main><h1>Security</h1><p>Protect   servers.</p>"
            "<script>ignored()</script><h2>Audit Logs</h2><p>Keep logs.</p></main>"
        )

        title, intro, sections = split_markdown(text)
        assert title == "Security"
        assert intro == "Protect servers."
        assert sections[0].title == "Audit Logs"
        assert "ignored" not in text

    def test_slugify(self) -> None:
        assert slugify("Getting Started!") == "getting-started"
        assert slugify("  MCP & You  ") == "mcp-you"


class TestPageDirectoryContentSource:
    """Tests for directory-based page discovery."""

    @pytest.mark.asyncio
    async def test_routes_and_sections(self, tmp_path: Path) -> None:
        write_page(tmp_path, "page.md", "# Welcome\nStart here.")
        write_page(tmp_path, "mcp/page.md", "# MCP\nProtocol overview.\n## Basics\nServers.")
        write_page(tmp_path, "(main)/cursor/page.html", "<h1>Cursor</h1><p>Editor tips.</p>")
        write_page(
            tmp_path,
            "servers/security/page.tsx",
            "export default function Page() {\n  return (\n"
            "    <div><h1>Security</h1><p>Sandbox {tools.length} servers.</p></div>\n  );\n}\n",
        )

        docs = await PageDirectoryContentSource(tmp_path).documents()
        by_route = {(d.path, d.anchor): d for d in docs}

        assert by_route[("/", None)].section == "Home"
        assert by_route[("/mcp", None)].title == "MCP"
        assert by_route[("/mcp", "basics")].title == "MCP - Basics"
        assert by_route[("/cursor", None)].section == "Cursor"
        assert by_route[("/cursor", None)].raw_text == "Editor tips."
        security = by_route[("/servers/security", None)]
        assert security.section == "Servers"
        assert "Sandbox" in security.raw_text
        assert "tools.length" not in security.raw_text

    @pytest.mark.asyncio
    async def test_skips_excluded_and_dynamic_directories(self, tmp_path: Path) -> None:
        write_page(tmp_path, "docs/page.md", "Docs body.")
        write_page(tmp_path, "api/search/page.md", "Not content.")
        write_page(tmp_path, "admin/page.md", "Not content.")
        write_page(tmp_path, "blog/[slug]/page.md", "Not content.")

        docs = await PageDirectoryContentSource(tmp_path).documents()

        assert [d.path for d in docs] == ["/docs"]
        assert docs[0].title == "Docs"

    @pytest.mark.asyncio
    async def test_missing_root(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            await PageDirectoryContentSource(tmp_path / "nope").documents()


class TestSourceFactory:
    @pytest.mark.asyncio
    async def test_static_source_returns_copy(self) -> None:
        doc = ContentDocument(path="/a", title="A", section="S", raw_text="Body.")
        source = StaticContentSource([doc])

        docs = await source.documents()
        docs.clear()

        assert await source.documents() == [doc]

    def test_factory_kinds(self, tmp_path: Path) -> None:
        assert isinstance(create_content_source("yaml", tmp_path / "c.yaml"), YamlContentSource)
        assert isinstance(create_content_source("pages", tmp_path), PageDirectoryContentSource)

    def test_factory_rejects_unknown_kind(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="Unknown content source kind"):
            create_content_source("sqlite", tmp_path)
