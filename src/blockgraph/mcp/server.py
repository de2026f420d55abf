"""MCP server exposing hierarchical block search over the local archive."""

import sqlite3
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from loguru import logger
from mcp.server.fastmcp import Context, FastMCP

from blockgraph.config import resolve_archive_directory, resolve_data_directory
from blockgraph.core.database.schema import migrate_schema
from blockgraph.core.datalog.store import LocalExecutor
from blockgraph.protocols import QueryExecutor
from blockgraph.tool import find_blocks_with_hierarchy_tool

# --- Core functions (testable without MCP context) ---


async def blockgraph_find_blocks(
    executor: QueryExecutor,
    *,
    hierarchy_condition: dict[str, Any] | None = None,
    hierarchical_expression: str | None = None,
    limit: int = 50,
    sort_by: str = "relevance",
    max_depth: int | None = None,
    date_range: dict[str, Any] | None = None,
    include_daily: bool = True,
    include_children: bool = False,
    include_parents: bool = False,
    secure_mode: bool = False,
) -> dict[str, Any]:
    """Search blocks by hierarchical relationship.

    Args:
        hierarchy_condition: Structured condition (operator plus left/right
            condition lists).
        hierarchical_expression: Compact form such as ``"Project > deadline"``.
        limit: Max results (1-500, default 50).
        sort_by: relevance, recent, page_title or hierarchy_depth.
        max_depth: Depth bound for deep operators.
        date_range: ``{"start", "end", "filterMode"}``.
        include_daily: Include daily note pages.
        include_children: Attach each result's children.
        include_parents: Attach each result's parents.
        secure_mode: Leave block content out of the response.
    """
    payload: dict[str, Any] = {
        "hierarchyCondition": hierarchy_condition,
        "hierarchicalExpression": hierarchical_expression,
        "limit": limit,
        "sortBy": sort_by,
        "maxDepth": max_depth,
        "dateRange": date_range,
        "includeDaily": include_daily,
        "includeChildren": include_children,
        "includeParents": include_parents,
        "secureMode": secure_mode,
    }
    return await find_blocks_with_hierarchy_tool(payload, executor=executor)


def blockgraph_list_pages(
    conn: sqlite3.Connection, *, query: str | None = None, limit: int = 50
) -> dict[str, Any]:
    """List archived pages, optionally filtered by a title substring."""
    limit = max(1, min(limit, 500))
    sql = "SELECT uid, title, block_count, modified FROM pages"
    params: list[str | int] = []
    if query:
        sql += " WHERE title LIKE ?"
        params.append(f"%{query}%")
    total = conn.execute(f"SELECT COUNT(*) FROM ({sql})", params).fetchone()[0]
    rows = conn.execute(sql + " ORDER BY title LIMIT ?", [*params, limit]).fetchall()
    return {
        "pages": [
            {"uid": r[0], "title": r[1], "block_count": r[2], "modified": r[3]} for r in rows
        ],
        "count": len(rows),
        "total": total,
    }


# --- MCP Server Setup ---


@dataclass
class ServerContext:
    """Shared resources for the MCP server lifetime."""

    conn: sqlite3.Connection
    executor: LocalExecutor
    archive_dir: Path


def _maybe_auto_import(conn: sqlite3.Connection, source: Path) -> None:
    """Import changed export files before serving."""
    if not source.exists():
        return

    from blockgraph.core.importer.loader import import_source

    stats = import_source(conn, source)
    if stats.files_imported > 0:
        logger.info("Auto-imported {} export files", stats.files_imported)


@asynccontextmanager
async def server_lifespan(_server: FastMCP) -> AsyncIterator[ServerContext]:
    """Open the archive and build the fact index on startup."""
    archive_dir = resolve_archive_directory()
    archive_dir.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(archive_dir / "archive.db"))
    try:
        migrate_schema(conn)
        _maybe_auto_import(conn, resolve_data_directory())
        executor = LocalExecutor.from_connection(conn)
        yield ServerContext(conn=conn, executor=executor, archive_dir=archive_dir)
    finally:
        conn.close()


mcp_server = FastMCP(
    "blockgraph",
    instructions="""\
The graph is an outliner: pages hold trees of blocks. Use
find_blocks_with_hierarchy_tool to find blocks by how their contents relate
in the tree, not just by text.

## Operators
- `A > B`: blocks matching A with a direct child matching B (returns A).
- `A >> B`: same, with B anywhere up to maxDepth levels below.
- `A < B`: blocks matching A whose parent matches B (returns A).
- `A => B`: A and B in the same block, or A with a child matching B.
- `A <=> B`: A and B related in either direction; the ancestor is reported.

## Tips
- Use list_pages_tool to discover page titles for page_ref conditions.
- Set includeChildren to see the context underneath each match.
""",
    lifespan=server_lifespan,
)


def _ctx(mcp_ctx: Context) -> ServerContext:
    return mcp_ctx.request_context.lifespan_context  # type: ignore[return-value]


# --- MCP Tool Wrappers ---


@mcp_server.tool()
async def find_blocks_with_hierarchy_tool_mcp(
    ctx: Context,
    hierarchy_condition: dict[str, Any] | None = None,
    hierarchical_expression: str | None = None,
    limit: int = 50,
    sort_by: str = "relevance",
    max_depth: int | None = None,
    date_range: dict[str, Any] | None = None,
    include_daily: bool = True,
    include_children: bool = False,
    include_parents: bool = False,
    secure_mode: bool = False,
) -> dict[str, Any]:
    """Find blocks by hierarchical relationships between two condition sets.

    Give either hierarchical_expression (e.g. "Project + Alpha > deadline |
    due") or hierarchy_condition:
    {"operator": ">", "leftConditions": [{"type": "text", "text": "Alpha"}],
     "rightConditions": [{"type": "page_ref", "text": "TODO"}]}.

    Operators: > >> < << => <= =>> <<= <=> <<=>>. Condition types: text,
    page_ref, block_ref, regex. Prefix a term with "-" (or set
    "negate": true) to exclude it.

    Args:
        hierarchy_condition: Structured condition.
        hierarchical_expression: Compact expression string.
        limit: Max results (1-500, default 50).
        sort_by: relevance, recent, page_title or hierarchy_depth.
        max_depth: Depth bound for deep operators (default 2, max 10).
        date_range: {"start": "YYYY-MM-DD", "end": "YYYY-MM-DD", "filterMode": "modified"}.
        include_daily: Include daily note pages.
        include_children: Attach children of each result.
        include_parents: Attach parents of each result.
        secure_mode: Return uids and titles only.
    """
    return await blockgraph_find_blocks(
        _ctx(ctx).executor,
        hierarchy_condition=hierarchy_condition,
        hierarchical_expression=hierarchical_expression,
        limit=limit,
        sort_by=sort_by,
        max_depth=max_depth,
        date_range=date_range,
        include_daily=include_daily,
        include_children=include_children,
        include_parents=include_parents,
        secure_mode=secure_mode,
    )


@mcp_server.tool()
async def list_pages_tool(
    ctx: Context, query: str | None = None, limit: int = 50
) -> dict[str, Any]:
    """List pages in the archive.

    Args:
        query: Only pages whose title contains this text.
        limit: Max pages (1-500, default 50).
    """
    return blockgraph_list_pages(_ctx(ctx).conn, query=query, limit=limit)


def run_mcp_server() -> None:
    """Run the MCP server with stdio transport."""
    from blockgraph.logging_config import configure_logging

    configure_logging(quiet=True)
    mcp_server.run(transport="stdio")
