"""FastAPI application exposing content search over HTTP.

Routes (all JSON, camelCase):
    GET  /api/health
    GET  /api/content-search          query, limit, section, mode
    POST /api/content-search          full SearchRequest body
    GET  /api/semantic-search         query, limit (semantic mode)
    POST /api/semantic-search         {chunkId, limit} related content
    POST /api/admin/index-content     {useAPI} full rebuild
    GET  /api/admin/indexing-stats

The ContentSearchService is created by the caller and stored on app.state;
handlers receive it through the get_service dependency.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from content_index import __version__
from content_index.errors import (
    AdminUnauthorized,
    CatastrophicIndexingFailure,
    ContentSearchError,
    IndexNotReady,
    InvalidQuery,
    ProviderUnavailable,
)
from content_index.models import CamelModel, SearchMode, SearchRequest, SearchResult
from content_search_server.service import ContentSearchService

# Exception type -> (HTTP status, error code); first match wins
ERROR_STATUS: list[tuple[type[Exception], int, str]] = [
    (InvalidQuery, 400, "invalid_query"),
    (AdminUnauthorized, 401, "unauthorized"),
    (ProviderUnavailable, 503, "provider_unavailable"),
    (IndexNotReady, 503, "index_not_ready"),
    (CatastrophicIndexingFailure, 500, "indexing_failed"),
    (ContentSearchError, 500, "internal_error"),
]


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    indexed: bool
    version: str


class IndexContentBody(CamelModel):
    """Body of the index-content admin route."""

    use_api: bool | None = Field(default=None, validation_alias="useAPI")


class RelatedContentBody(CamelModel):
    """Body of the related-content route."""

    chunk_id: str = Field(default="", max_length=200)
    limit: int | None = Field(default=None, ge=1, le=100)


def get_service(request: Request) -> ContentSearchService:
    """Dependency returning the service stored on the application."""
    return request.app.state.service


def status_for(exc: Exception) -> tuple[int, str]:
    for exc_type, status_code, code in ERROR_STATUS:
        if isinstance(exc, exc_type):
            return status_code, code
    return 500, "internal_error"


def error_response(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "message": message})


def _results_payload(results: list[SearchResult]) -> list[dict[str, Any]]:
    return [result.to_payload() for result in results]


router = APIRouter(prefix="/api")


@router.get("/health", response_model=HealthResponse)
async def health(service: ContentSearchService = Depends(get_service)) -> HealthResponse:
    """Liveness plus whether an index generation exists."""
    return HealthResponse(status="ok", indexed=service.is_indexed, version=__version__)


@router.get("/content-search")
async def content_search_get(
    query: str = "",
    limit: int = 5,
    section: str | None = None,
    mode: SearchMode = SearchMode.HYBRID,
    service: ContentSearchService = Depends(get_service),
) -> dict[str, Any]:
    """Search with query-string parameters and default tuning."""
    request = SearchRequest(query=query, limit=limit, section=section, mode=mode)
    results = await service.search(request)
    return {
        "query": request.query,
        "mode": request.mode.value,
        "section": request.section,
        "results": _results_payload(results),
    }


@router.post("/content-search")
async def content_search_post(
    body: dict[str, Any] | None = Body(default=None),
    service: ContentSearchService = Depends(get_service),
) -> dict[str, Any]:
    """Search with the full set of hybrid tuning knobs."""
    request = SearchRequest.model_validate(body or {})
    results = await service.search(request)
    return {
        "query": request.query,
        "mode": request.mode.value,
        "section": request.section,
        "results": _results_payload(results),
    }


@router.get("/semantic-search")
async def semantic_search(
    query: str = "",
    limit: int = 5,
    service: ContentSearchService = Depends(get_service),
) -> dict[str, Any]:
    """Semantic-only search through the unified engine."""
    request = SearchRequest(query=query, limit=limit, mode=SearchMode.SEMANTIC)
    results = await service.search(request)
    return {"query": request.query, "results": _results_payload(results)}


@router.post("/semantic-search")
async def related_content(
    body: dict[str, Any] | None = Body(default=None),
    service: ContentSearchService = Depends(get_service),
) -> dict[str, Any]:
    """Chunks most similar to a given chunk."""
    parsed = RelatedContentBody.model_validate(body or {})
    results = await service.related(parsed.chunk_id, parsed.limit)
    return {"chunkId": parsed.chunk_id, "results": _results_payload(results)}


@router.post("/admin/index-content")
async def index_content(
    body: dict[str, Any] | None = Body(default=None),
    authorization: str | None = Header(default=None),
    service: ContentSearchService = Depends(get_service),
) -> dict[str, Any]:
    """Rebuild the index from the content source."""
    service.authorize_admin(authorization)
    parsed = IndexContentBody.model_validate(body or {})
    result = await service.index_all_content(use_api=parsed.use_api)
    return {
        "success": True,
        "message": "Content indexed successfully",
        **result.model_dump(by_alias=True),
    }


@router.get("/admin/indexing-stats")
async def indexing_stats(
    authorization: str | None = Header(default=None),
    service: ContentSearchService = Depends(get_service),
) -> dict[str, Any]:
    """Statistics of the current index generation."""
    service.authorize_admin(authorization)
    return service.get_stats().model_dump(mode="json", by_alias=True)


def register_exception_handlers(app: FastAPI) -> None:
    """Map domain and validation errors to `{error, message}` responses."""

    @app.exception_handler(ContentSearchError)
    async def handle_domain_error(request: Request, exc: ContentSearchError) -> JSONResponse:
        status_code, code = status_for(exc)
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        else:
            logger.info(f"{request.method} {request.url.path} rejected ({status_code}): {exc}")
        return error_response(status_code, code, str(exc))

    @app.exception_handler(ValidationError)
    async def handle_model_error(request: Request, exc: ValidationError) -> JSONResponse:
        first = exc.errors()[0] if exc.errors() else {"loc": (), "msg": str(exc)}
        field = ".".join(str(part) for part in first["loc"])
        message = f"{field}: {first['msg']}" if field else first["msg"]
        return error_response(400, "invalid_request", message)

    @app.exception_handler(RequestValidationError)
    async def handle_request_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        message = errors[0]["msg"] if errors else "Invalid request"
        if errors and errors[0].get("loc"):
            message = f"{'.'.join(str(p) for p in errors[0]['loc'])}: {message}"
        return error_response(400, "invalid_request", message)


def create_app(service: ContentSearchService) -> FastAPI:
    """Create the FastAPI application around an existing service.

    Example:
        >>> app = create_app(ContentSearchService.from_config(load_config()))  # doctest: +SKIP
    """
    app = FastAPI(
        title="Content Search",
        version=__version__,
        description="Keyword, semantic and hybrid search over site content.",
    )
    app.state.service = service
    app.include_router(router)
    register_exception_handlers(app)
    return app
