"""Error taxonomy for the content indexing and retrieval pipeline.

Local failures (one chunk, one batch) are absorbed and reported in stats.
Only failures of a required step reach the caller as exceptions.
"""

from __future__ import annotations


class ContentSearchError(Exception):
    """Base class for all content search errors."""


class ProviderUnavailable(ContentSearchError):
    """Embedding API unreachable, unauthorized, or out of retries."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message


class InvalidQuery(ContentSearchError):
    """Empty or malformed search request."""


class IndexNotReady(ContentSearchError):
    """Search attempted against an index that was never built."""


class CatastrophicIndexingFailure(ContentSearchError):
    """Content enumeration failed, so no rebuild could happen."""


class AdminUnauthorized(ContentSearchError):
    """Admin operation requested without valid credentials."""
