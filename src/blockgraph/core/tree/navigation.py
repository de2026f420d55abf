"""Tree navigation: fetch descendants and ancestors to enrich search results."""

import asyncio
from dataclasses import replace

from blockgraph.core.query.builder import Clause, DataPattern, Query, Var, VariableNamer
from blockgraph.core.search.context import SearchContext
from blockgraph.core.search.queries import BLOCK_COLUMNS, BlockVars, row_to_result, run_query
from blockgraph.models.node import SearchResult


def _hop_chain(namer: VariableNamer, top: Var, bottom: Var, level: int) -> list[Clause]:
    """``level`` parent/child links from ``top`` down to ``bottom``."""
    clauses: list[Clause] = []
    current = top
    for _ in range(level - 1):
        hop = namer.fresh("hop")
        clauses.append(DataPattern(current, ":block/children", hop))
        current = hop
    clauses.append(DataPattern(current, ":block/children", bottom))
    return clauses


def build_descendants_query(uid: str, level: int) -> Query:
    """Blocks exactly ``level`` hops below block ``uid``, with their order."""
    namer = VariableNamer()
    root = namer.fresh("root")
    target = BlockVars.fresh(namer, "b")
    order = namer.fresh("order")
    return Query(
        find=(*target.projection(), order),
        where=(
            DataPattern(root, ":block/uid", uid),
            *_hop_chain(namer, root, target.block, level),
            target.content_clause(),
            DataPattern(target.block, ":block/order", order),
            *target.structure_clauses(),
        ),
    )


def build_ancestor_query(uid: str, level: int) -> Query:
    """The block ``level`` hops above block ``uid`` (pages excluded)."""
    namer = VariableNamer()
    start = namer.fresh("start")
    target = BlockVars.fresh(namer, "b")
    chain = _hop_chain(namer, target.block, start, level)
    return Query(
        find=target.projection(),
        where=(
            DataPattern(start, ":block/uid", uid),
            # Walk upwards: resolve links from the bottom of the chain.
            *reversed(chain),
            target.content_clause(),
            *target.structure_clauses(),
        ),
    )


async def get_descendants(ctx: SearchContext, uid: str, depth: int) -> tuple[SearchResult, ...]:
    """Descendants of ``uid`` down to ``depth`` levels, ordered level by level."""
    if depth < 1:
        return ()
    queries = [build_descendants_query(uid, level) for level in range(1, depth + 1)]
    level_rows = await asyncio.gather(*(run_query(ctx.executor, q) for q in queries))
    descendants = []
    for level, rows in enumerate(level_rows, start=1):
        for row in sorted(rows, key=lambda r: r[BLOCK_COLUMNS]):
            descendants.append(row_to_result(row, match_type="child", hierarchy_depth=level))
    return tuple(descendants)


async def get_ancestors(ctx: SearchContext, uid: str, depth: int) -> tuple[SearchResult, ...]:
    """Ancestor blocks of ``uid`` up to ``depth`` levels, nearest first."""
    if depth < 1:
        return ()
    queries = [build_ancestor_query(uid, level) for level in range(1, depth + 1)]
    level_rows = await asyncio.gather(*(run_query(ctx.executor, q) for q in queries))
    return tuple(
        row_to_result(rows[0], match_type="ancestor", hierarchy_depth=level)
        for level, rows in enumerate(level_rows, start=1)
        if rows
    )


async def enrich_result(result: SearchResult, ctx: SearchContext) -> SearchResult:
    options = ctx.options
    children = result.children
    parents = result.parents
    if options.include_children:
        children = await get_descendants(ctx, result.uid, options.child_depth)
    if options.include_parents:
        parents = await get_ancestors(ctx, result.uid, options.parent_depth)
    return replace(result, children=children, parents=parents)


async def enrich_results(results: list[SearchResult], ctx: SearchContext) -> list[SearchResult]:
    """Attach descendants/ancestors to each result as the options request."""
    if not (ctx.options.include_children or ctx.options.include_parents):
        return results
    return list(await asyncio.gather(*(enrich_result(r, ctx) for r in results)))
