"""MCP server exposing content search as tools."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable, Coroutine
from typing import Any, cast

from loguru import logger

from content_index import __version__
from content_index.config import ContentSearchConfig, load_config
from content_index.errors import ContentSearchError
from content_index.models import SearchMode, SearchRequest
from content_search_server.service import ContentSearchService

FastMCP: type[Any] | None = None

__all__ = ["build_server", "run_server", "run", "FastMCP"]


def _import_fastmcp() -> type[Any]:
    """Import FastMCP lazily so tests can stub the implementation."""

    global FastMCP
    if FastMCP is not None:
        return FastMCP

    try:
        import fastmcp
        from fastmcp import FastMCP as FastMCPClass

        # Disable banner for stdio transport compatibility
        fastmcp.settings.show_cli_banner = False
    except ModuleNotFoundError as exc:  # pragma: no cover - exercised in tests
        raise ImportError(
            "FastMCP is required to run the content search MCP server. "
            "Install `fastmcp` to proceed."
        ) from exc

    FastMCP = cast(type[Any], FastMCPClass)
    return FastMCP


def _instantiate_fastmcp(class_: type[Any], **metadata: Any) -> Any:
    signature = inspect.signature(class_.__init__)
    parameters = signature.parameters

    filtered: dict[str, Any] = {key: value for key, value in metadata.items() if key in parameters}

    if not filtered and any(
        param.kind == inspect.Parameter.VAR_KEYWORD for param in parameters.values()
    ):
        filtered = metadata

    return class_(**filtered)


def build_server(service: ContentSearchService) -> Any:
    """Create the FastMCP server and register the content search tools."""

    fastmcp_class = _import_fastmcp()
    server = _instantiate_fastmcp(
        fastmcp_class,
        name="Content Search",
        version=__version__,
        instructions=(
            "Search site documentation with search_content, then follow up with "
            "get_related_content on a result id to explore nearby material."
        ),
    )

    @server.tool()  # type: ignore[misc]
    async def search_content(
        query: str,
        limit: int = 5,
        mode: str = "hybrid",
        section: str | None = None,
    ) -> dict[str, Any]:
        """Search indexed site content.

        Args:
            query: Natural language or keyword query
            limit: Maximum number of results (1-100)
            mode: "hybrid" (default), "semantic" or "keyword"
            section: Optional section name, or a path prefix starting with "/"

        Returns:
            Query echo plus ranked results (chunk fields, score, rank)
        """
        logger.info(f"search_content called: query='{query}', mode={mode}, limit={limit}")
        try:
            request = SearchRequest(
                query=query, limit=limit, mode=SearchMode(mode), section=section
            )
            results = await service.search(request)
        except (ContentSearchError, ValueError) as exc:
            logger.error(f"search_content failed: {exc}")
            return {"error": type(exc).__name__, "message": str(exc)}

        logger.success(f"Returned {len(results)} results")
        return {
            "query": request.query,
            "mode": request.mode.value,
            "section": request.section,
            "results": [result.to_payload() for result in results],
        }

    @server.tool()  # type: ignore[misc]
    async def get_related_content(chunk_id: str, limit: int = 3) -> dict[str, Any]:
        """Find chunks similar to a previously returned chunk.

        Args:
            chunk_id: The `id` of a search result
            limit: Maximum number of related chunks
        """
        try:
            results = await service.related(chunk_id, limit)
        except ContentSearchError as exc:
            logger.error(f"get_related_content failed: {exc}")
            return {"error": type(exc).__name__, "message": str(exc)}
        return {"chunkId": chunk_id, "results": [result.to_payload() for result in results]}

    @server.tool()  # type: ignore[misc]
    async def index_content(use_api: bool = True) -> dict[str, Any]:
        """Rebuild the content index.

        Args:
            use_api: Use the remote embedding API when configured, else local hashing
        """
        try:
            result = await service.index_all_content(use_api=use_api)
        except ContentSearchError as exc:
            logger.error(f"index_content failed: {exc}")
            return {"error": type(exc).__name__, "message": str(exc)}
        return result.model_dump(by_alias=True)

    @server.tool()  # type: ignore[misc]
    async def get_indexing_stats() -> dict[str, Any]:
        """Statistics about the current index generation."""
        return service.get_stats().model_dump(mode="json", by_alias=True)

    return server


async def run_server(config: ContentSearchConfig | None = None) -> None:
    """Run the MCP server event loop over stdio."""

    service = ContentSearchService.from_config(config or load_config())
    server = build_server(service)
    await server.run_async()


def run(main: Callable[[], Coroutine[Any, Any, None]] | None = None) -> None:
    """Synchronous helper for CLI entry points."""
    entry = main or run_server
    try:
        asyncio.run(entry())
    except KeyboardInterrupt:
        logger.warning("MCP server interrupted by user.")
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unhandled MCP server failure: {}", exc)
        raise
