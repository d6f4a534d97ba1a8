"""HTTP, MCP and command line surfaces for content search."""

from content_search_server.service import ContentSearchService

__all__ = ["ContentSearchService"]
