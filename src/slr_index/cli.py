"""``slr-index`` command line.

Usage:
    slr-index reindex <project-id>
    slr-index search <project-id> "graph-based retrieval" --limit 5
    slr-index process <document-id> <project-id>
    slr-index status <study-id>
    slr-index tables
"""

import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import click
from loguru import logger

from slr_index.config import load_config
from slr_index.exceptions import SlrIndexError
from slr_index.models import ProcessResult
from slr_index.services import Services, build_services

T = TypeVar("T")


def _configure_logging(verbose: bool) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO", format="<level>{message}</level>")


def _run(ctx: click.Context, action: Callable[[Services], Awaitable[T]]) -> T:
    """Build the services, run ``action`` and always close them."""

    async def runner() -> T:
        services = build_services(ctx.obj["config"])
        try:
            return await action(services)
        finally:
            await services.close()

    try:
        return asyncio.run(runner())
    except SlrIndexError as e:
        raise click.ClickException(str(e)) from e


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def _report(result: ProcessResult) -> None:
    _echo_json(result.model_dump())
    if not result.success:
        raise click.ClickException(f"{result.error_code}: {result.error}")


@click.group()
@click.option(
    "--config-dir",
    type=click.Path(file_okay=False),
    default=None,
    help="Directory holding the Hydra config (defaults to conf/slr_index/)",
)
@click.option("--config-name", default="default", help="Config file name without .yaml")
@click.option("--override", "overrides", multiple=True, help="Hydra override, e.g. a.b=1")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(
    ctx: click.Context,
    config_dir: str | None,
    config_name: str,
    overrides: tuple[str, ...],
    verbose: bool,
) -> None:
    """Semantic indexing of systematic-literature-review studies and documents."""
    _configure_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["config"] = load_config(config_name, config_dir, list(overrides))


@cli.command()
@click.argument("project_id")
@click.pass_context
def reindex(ctx: click.Context, project_id: str) -> None:
    """Re-embed every INCLUDED study of a project."""
    result = _run(ctx, lambda s: s.indexer.reindex_all(project_id))
    _echo_json(result.model_dump())


@cli.command()
@click.argument("project_id")
@click.argument("query")
@click.option("--limit", default=10, show_default=True, help="Number of results to return")
@click.option("--chunks", is_flag=True, help="Search document chunks instead of studies")
@click.pass_context
def search(ctx: click.Context, project_id: str, query: str, limit: int, chunks: bool) -> None:
    """Semantic search over a project's studies (or document chunks)."""

    async def action(services: Services) -> list[Any]:
        if chunks:
            return await services.search.search_chunks(project_id, query, limit)
        return await services.search.search(project_id, query, limit)

    results = _run(ctx, action)
    if not results:
        logger.warning("No results found")
    _echo_json([result.model_dump() for result in results])


@cli.command()
@click.argument("document_id")
@click.argument("project_id")
@click.pass_context
def process(ctx: click.Context, document_id: str, project_id: str) -> None:
    """Extract, chunk and embed an uploaded document."""
    _report(_run(ctx, lambda s: s.documents.process(document_id, project_id)))


@cli.command()
@click.argument("document_id")
@click.argument("project_id")
@click.pass_context
def reprocess(ctx: click.Context, document_id: str, project_id: str) -> None:
    """Reset then process a document."""
    _report(_run(ctx, lambda s: s.documents.reprocess(document_id, project_id)))


@cli.command()
@click.argument("document_id")
@click.argument("project_id")
@click.pass_context
def reset(ctx: click.Context, document_id: str, project_id: str) -> None:
    """Delete a document's chunks and chunk vectors, keeping the file."""
    _report(_run(ctx, lambda s: s.documents.reset(document_id, project_id)))


@cli.command()
@click.argument("study_id")
@click.pass_context
def status(ctx: click.Context, study_id: str) -> None:
    """Show chunk and embedding progress of a study's latest document."""

    async def action(services: Services) -> Any:
        return services.documents.get_document_status(study_id)

    _echo_json(_run(ctx, action).model_dump())


@cli.command()
@click.argument("name", required=False)
@click.option("--page", default=1, show_default=True)
@click.option("--limit", default=20, show_default=True)
@click.pass_context
def tables(ctx: click.Context, name: str | None, page: int, limit: int) -> None:
    """List vector tables, or show rows of table NAME."""

    async def action(services: Services) -> Any:
        if name is None:
            return {
                "stats": services.viewer.stats().model_dump(),
                "tables": [table.model_dump() for table in services.viewer.list_tables()],
            }
        return services.viewer.table_rows(name, page, limit).model_dump()

    _echo_json(_run(ctx, action))


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
