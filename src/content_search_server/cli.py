"""Command line entry point: `content-search`.

Commands:
    serve   Run the HTTP API with uvicorn
    mcp     Run the MCP tool server over stdio
    index   Rebuild the index once and print the counts
    search  Run one query and print the ranked results
    stats   Print the last exported indexing stats

Every command accepts trailing Hydra overrides, e.g.
`content-search serve server.port=9000 retrieval.hybrid_threshold=0.2`.
"""

from __future__ import annotations

import asyncio
import json

import click
from loguru import logger

from content_index import __version__
from content_index.config import ContentSearchConfig, load_config
from content_index.errors import ContentSearchError
from content_index.models import SearchMode, SearchRequest
from content_search_server.logging_setup import configure_logging
from content_search_server.service import ContentSearchService


def _load(overrides: tuple[str, ...], config_dir: str | None) -> ContentSearchConfig:
    config = load_config(config_path=config_dir, overrides=list(overrides))
    configure_logging(config.logging.level, config.logging.file)
    return config


@click.group()
@click.version_option(__version__, prog_name="content-search")
@click.option(
    "--config-dir",
    type=click.Path(exists=True, file_okay=False),
    default=None,
    help="Directory holding default.yaml (defaults to conf/content_search/)",
)
@click.pass_context
def cli(ctx: click.Context, config_dir: str | None) -> None:
    """Index site content and search it by keyword, meaning, or both."""
    ctx.ensure_object(dict)
    ctx.obj["config_dir"] = config_dir


@cli.command()
@click.argument("overrides", nargs=-1)
@click.pass_context
def serve(ctx: click.Context, overrides: tuple[str, ...]) -> None:
    """Run the HTTP API."""
    import uvicorn

    from content_search_server.app import create_app

    config = _load(overrides, ctx.obj["config_dir"])
    app = create_app(ContentSearchService.from_config(config))
    logger.info(f"Serving on http://{config.server.host}:{config.server.port}")
    uvicorn.run(app, host=config.server.host, port=config.server.port, log_config=None)


@cli.command()
@click.argument("overrides", nargs=-1)
@click.pass_context
def mcp(ctx: click.Context, overrides: tuple[str, ...]) -> None:
    """Run the MCP tool server over stdio."""
    from content_search_server import mcp_server

    config = _load(overrides, ctx.obj["config_dir"])
    mcp_server.run(lambda: mcp_server.run_server(config))


@cli.command()
@click.option("--no-api", is_flag=True, help="Use local hashing embeddings only")
@click.option("--deadline", type=float, default=None, help="Embedding deadline in seconds")
@click.argument("overrides", nargs=-1)
@click.pass_context
def index(
    ctx: click.Context, no_api: bool, deadline: float | None, overrides: tuple[str, ...]
) -> None:
    """Rebuild the index and print the counts as JSON."""
    config = _load(overrides, ctx.obj["config_dir"])
    service = ContentSearchService.from_config(config)
    try:
        result = asyncio.run(
            service.index_all_content(use_api=not no_api, deadline_seconds=deadline)
        )
    except ContentSearchError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(json.dumps(result.model_dump(by_alias=True), indent=2))


@cli.command()
@click.argument("query", type=str)
@click.option(
    "--mode",
    type=click.Choice([mode.value for mode in SearchMode]),
    default=SearchMode.HYBRID.value,
    show_default=True,
)
@click.option("--limit", default=5, show_default=True, help="Number of results to return")
@click.option("--section", default=None, help="Section name or path prefix")
@click.option("--no-api", is_flag=True, help="Use local hashing embeddings only")
@click.argument("overrides", nargs=-1)
@click.pass_context
def search(
    ctx: click.Context,
    query: str,
    mode: str,
    limit: int,
    section: str | None,
    no_api: bool,
    overrides: tuple[str, ...],
) -> None:
    """Index the content, run QUERY and print the ranked results."""
    config = _load(overrides, ctx.obj["config_dir"])
    service = ContentSearchService.from_config(config)

    async def _run() -> list[dict[str, object]]:
        await service.index_all_content(use_api=not no_api)
        request = SearchRequest(query=query, limit=limit, mode=SearchMode(mode), section=section)
        return [result.to_payload() for result in await service.search(request)]

    try:
        results = asyncio.run(_run())
    except (ContentSearchError, ValueError) as exc:
        raise click.ClickException(str(exc)) from exc

    if not results:
        click.echo("No results found.")
        return
    for result in results:
        anchor = f"#{result['anchor']}" if result.get("anchor") else ""
        click.echo(f"{result['rank']}. [{result['score']:.3f}] {result['title']}")
        click.echo(f"   {result['path']}{anchor}")
        click.echo(f"   {str(result['text'])[:200]}")


@cli.command()
@click.argument("overrides", nargs=-1)
@click.pass_context
def stats(ctx: click.Context, overrides: tuple[str, ...]) -> None:
    """Print the last exported indexing stats."""
    config = _load(overrides, ctx.obj["config_dir"])
    service = ContentSearchService.from_config(config)
    click.echo(json.dumps(service.get_stats().model_dump(mode="json", by_alias=True), indent=2))


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
