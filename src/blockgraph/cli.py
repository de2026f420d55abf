"""CLI for the block graph archive (import, hierarchy search, MCP server)."""

import asyncio
import json
import sqlite3
from pathlib import Path
from typing import Annotated

import typer
from loguru import logger

from blockgraph.config import resolve_archive_directory, resolve_data_directory
from blockgraph.core.database.schema import migrate_schema
from blockgraph.core.datalog.store import LocalExecutor
from blockgraph.core.importer.loader import import_source
from blockgraph.core.search.context import SearchState
from blockgraph.logging_config import configure_logging
from blockgraph.tool import find_blocks_with_hierarchy_tool

app = typer.Typer(help="Block graph archive: hierarchical search over your outliner notes.")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    configure_logging(verbose=verbose)


@app.command(name="import")
def import_cmd(
    source: Annotated[
        Path | None,
        typer.Option("--source", "-s", help="Export file or directory of .json exports"),
    ] = None,
    data_dir: Annotated[
        Path | None,
        typer.Option("--data-dir", "-d", help="Archive database directory"),
    ] = None,
    force: bool = typer.Option(False, "--force", "-f", help="Re-import all files"),
) -> None:
    """Import graph export files into the archive database."""
    src = source or resolve_data_directory()
    dst = data_dir or resolve_archive_directory()

    if not src.exists():
        logger.error("Source not found: {}", src)
        raise typer.Exit(1)

    dst.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(dst / "archive.db"))
    try:
        migrate_schema(conn)
        stats = import_source(conn, src, force=force)
        typer.echo(
            f"Imported {stats.files_imported} files "
            f"({stats.pages_imported} pages, {stats.blocks_imported} blocks), "
            f"skipped {stats.files_skipped}"
        )
    finally:
        conn.close()


def _open_db(data_dir: Path | None) -> sqlite3.Connection:
    """Open the archive database, raising if it doesn't exist."""
    db_path = (data_dir or resolve_archive_directory()) / "archive.db"
    if not db_path.exists():
        logger.error("Archive database not found: {}. Run 'import' first.", db_path)
        raise typer.Exit(1)
    return sqlite3.connect(str(db_path))


@app.command()
def search(
    expression: str = typer.Argument(..., help='Hierarchical expression, e.g. "Project > due"'),
    limit: int = typer.Option(20, "--limit", "-n", help="Max results"),
    sort_by: str = typer.Option("relevance", "--sort", help="relevance|recent|page_title|..."),
    max_depth: Annotated[
        int | None,
        typer.Option("--max-depth", "-m", help="Depth bound for deep operators"),
    ] = None,
    include_children: bool = typer.Option(
        False, "--children", "-c", help="Show children of each result"
    ),
    data_dir: Annotated[
        Path | None,
        typer.Option("--data-dir", "-d", help="Archive database directory"),
    ] = None,
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Find blocks by hierarchical relationship."""
    conn = _open_db(data_dir)
    try:
        executor = LocalExecutor.from_connection(conn)
    finally:
        conn.close()

    payload = {
        "hierarchicalExpression": expression,
        "limit": limit,
        "sortBy": sort_by,
        "maxDepth": max_depth,
        "includeChildren": include_children,
    }
    response = asyncio.run(
        find_blocks_with_hierarchy_tool(
            payload, executor=executor, state=SearchState(user_query=expression)
        )
    )

    if not response["success"]:
        typer.echo(f"Search failed: {response['error']}", err=True)
        raise typer.Exit(1)

    if output_json:
        typer.echo(json.dumps(response, indent=2))
        return

    results = response["data"]
    typer.echo(f"Found {len(results)} results:\n")
    for r in results:
        typer.echo(f"  [{r['pageTitle']}] {r['content'][:80]}")
        if r.get("childUid"):
            typer.echo(f"    └ {(r.get('childContent') or '')[:76]}")
        for child in r.get("children", []):
            typer.echo(f"      - {child['content'][:72]}")
        typer.echo(f"    uid={r['uid']}  depth={r['hierarchyDepth']}  match={r['matchType']}")
        typer.echo()


@app.command()
def pages(
    query: Annotated[
        str | None,
        typer.Option("--query", "-q", help="Only titles containing this text"),
    ] = None,
    limit: int = typer.Option(50, "--limit", "-n", help="Max pages"),
    data_dir: Annotated[
        Path | None,
        typer.Option("--data-dir", "-d", help="Archive database directory"),
    ] = None,
) -> None:
    """List archived pages."""
    from blockgraph.mcp.server import blockgraph_list_pages

    conn = _open_db(data_dir)
    try:
        result = blockgraph_list_pages(conn, query=query, limit=limit)
    finally:
        conn.close()

    typer.echo(f"{result['total']} pages:\n")
    for page in result["pages"]:
        typer.echo(f"  {page['title']} - {page['block_count']} blocks  [uid={page['uid']}]")


@app.command()
def serve() -> None:
    """Start the MCP server (stdio transport)."""
    from blockgraph.mcp.server import run_mcp_server

    run_mcp_server()
