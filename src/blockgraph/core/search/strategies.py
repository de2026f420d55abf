"""Hierarchy search strategies, one per operator family.

Every strategy has the signature ``(left, right, ctx, max_depth)`` and
returns freshly built SearchResults. Inverse operators reuse the forward
strategies with the sides swapped.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from blockgraph.core.search.context import SearchContext
from blockgraph.core.search.queries import (
    BLOCK_COLUMNS,
    build_content_query,
    build_deep_query,
    build_direct_query,
    row_to_result,
    run_query,
    split_child_side,
)
from blockgraph.models.condition import ConditionSet
from blockgraph.models.node import SearchResult

Strategy = Callable[[ConditionSet, ConditionSet, SearchContext, int], Awaitable[list[SearchResult]]]

_PARENT = slice(0, BLOCK_COLUMNS)
_CHILD = slice(BLOCK_COLUMNS, 2 * BLOCK_COLUMNS)


# --- Single searches ---


async def count_matches(side: ConditionSet, ctx: SearchContext) -> int:
    """Number of blocks matching one side on its own."""
    rows = await run_query(ctx.executor, build_content_query(side))
    return len(rows)


async def search_same_block(
    left: ConditionSet, right: ConditionSet, ctx: SearchContext
) -> list[SearchResult]:
    """Blocks matching both sides on the same block."""
    rows = await run_query(ctx.executor, build_content_query(left, right))
    results = [row_to_result(row, match_type="same_block") for row in rows]
    ctx.counts.same_block = len(results)
    return results


async def search_direct(
    left: ConditionSet,
    right: ConditionSet,
    ctx: SearchContext,
    *,
    match_type: str = "hierarchy",
) -> list[SearchResult]:
    """Parents matching ``left`` with direct children matching ``right``.

    Each parent is reported once, annotated with its first matching child
    and with every matched child uid.
    """
    query = build_direct_query(left, right)
    rows = await run_query(ctx.executor, query)

    first_rows: dict[str, tuple[Any, ...]] = {}
    matched: dict[str, list[str]] = {}
    for row in rows:
        uid = row[0]
        first_rows.setdefault(uid, row)
        # Representative child uid, then the extra child variables.
        matched.setdefault(uid, []).extend([row[BLOCK_COLUMNS], *row[2 * BLOCK_COLUMNS :]])

    results = []
    for uid, row in first_rows.items():
        child = row[_CHILD]
        results.append(
            row_to_result(
                row[_PARENT],
                match_type=match_type,
                hierarchy_depth=1,
                child_uid=child[0],
                child_content=child[1],
                child_page_title=child[2],
                matched_child_uids=tuple(dict.fromkeys(matched[uid])),
            )
        )
    return results


async def search_direct_children(
    parents: ConditionSet, children: ConditionSet, ctx: SearchContext
) -> list[SearchResult]:
    """Children matching ``children`` whose parent matches ``parents``.

    Runs the direct query with one shared child variable and re-maps its
    columns so the child is the result and the parent its annotation.
    """
    query = build_direct_query(parents, children, shared_child=True)
    rows = await run_query(ctx.executor, query)

    results: dict[str, SearchResult] = {}
    for row in rows:
        child = row[_CHILD]
        if child[0] in results:
            continue
        results[child[0]] = row_to_result(
            child,
            match_type="child",
            hierarchy_depth=1,
            parent_uid=row[0],
            parent_content=row[1],
            matched_child_uids=(child[0],),
        )
    return list(results.values())


@dataclass
class _DeepMatch:
    ancestor: tuple[Any, ...]
    descendant: tuple[Any, ...]
    depth: int
    matched: list[str] = field(default_factory=list)


async def _deep_matches(
    left: ConditionSet, right: ConditionSet, ctx: SearchContext, max_depth: int
) -> dict[str, _DeepMatch]:
    """Ancestors with a matching descendant at any depth up to ``max_depth``.

    Levels are queried concurrently; each ancestor keeps its shallowest
    descendant as representative.
    """
    queries = [build_deep_query(left, right, level) for level in range(1, max_depth + 1)]
    level_rows = await asyncio.gather(*(run_query(ctx.executor, q) for q in queries))

    matches: dict[str, _DeepMatch] = {}
    for depth, rows in enumerate(level_rows, start=1):
        for row in rows:
            ancestor, descendant = row[_PARENT], row[_CHILD]
            match = matches.get(ancestor[0])
            if match is None:
                match = _DeepMatch(ancestor=ancestor, descendant=descendant, depth=depth)
                matches[ancestor[0]] = match
            match.matched.append(descendant[0])
    return matches


async def search_deep(
    left: ConditionSet,
    right: ConditionSet,
    ctx: SearchContext,
    max_depth: int,
    *,
    match_type: str = "hierarchy",
) -> list[SearchResult]:
    """Ancestors matching ``left`` with descendants matching ``right``.

    AND-combined descendant conditions may be satisfied by different
    descendants: each gets its own query set and the ancestors are
    intersected. The reported depth is the deepest of the per-condition
    shallowest matches.
    """
    per_condition = [
        await _deep_matches(left, side, ctx, max_depth)
        for side in split_child_side(right, shared_child=False)
    ]
    first, rest = per_condition[0], per_condition[1:]

    results = []
    for uid, match in first.items():
        if not all(uid in other for other in rest):
            continue
        all_matches = [match, *(other[uid] for other in rest)]
        matched = [child for m in all_matches for child in m.matched]
        results.append(
            row_to_result(
                match.ancestor,
                match_type=match_type,
                hierarchy_depth=max(m.depth for m in all_matches),
                child_uid=match.descendant[0],
                child_content=match.descendant[1],
                child_page_title=match.descendant[2],
                matched_child_uids=tuple(dict.fromkeys(matched)),
            )
        )
    return results


# --- Merge policies ---


def union_same_block_first(
    same_block: Iterable[SearchResult], hierarchy: Iterable[SearchResult]
) -> list[SearchResult]:
    """Union of two result lists; a same-block result wins over a hierarchy one."""
    merged: dict[str, SearchResult] = {}
    for result in [*same_block, *hierarchy]:
        merged.setdefault(result.uid, result)
    return list(merged.values())


def merge_bidirectional(
    same_block: Sequence[SearchResult],
    forward: Sequence[SearchResult],
    reverse: Sequence[SearchResult],
) -> list[SearchResult]:
    """Merge the three bidirectional passes.

    A reverse result whose uid is already a counted forward child is
    skipped. A reverse result that has a forward parent among its own
    matched children replaces that forward result. Finally any retained
    result that is a matched child of another retained result is dropped,
    so only the ancestor of a qualifying pair survives.
    """
    merged: dict[str, SearchResult] = {}
    for result in same_block:
        merged.setdefault(result.uid, result)

    forward_parents: set[str] = set()
    counted_children: set[str] = set()
    for result in forward:
        forward_parents.add(result.uid)
        counted_children.update(result.matched_child_uids)
        merged.setdefault(result.uid, result)

    for result in reverse:
        if result.uid in counted_children:
            continue
        replaced = False
        for child_uid in result.matched_child_uids:
            if child_uid in forward_parents and child_uid in merged:
                del merged[child_uid]
                replaced = True
        if replaced or result.uid not in merged:
            merged[result.uid] = result

    children_of: dict[str, set[str]] = {}
    for result in [*forward, *reverse]:
        children_of.setdefault(result.uid, set()).update(result.matched_child_uids)
    covered = {
        child
        for uid in merged
        for child in children_of.get(uid, ())
        if child != uid
    }
    return [result for uid, result in merged.items() if uid not in covered]


# --- Operator strategies ---


async def direct_strategy(
    left: ConditionSet, right: ConditionSet, ctx: SearchContext, max_depth: int = 1
) -> list[SearchResult]:
    results = await search_direct(left, right, ctx)
    ctx.counts.forward = len(results)
    ctx.progress(f"{len(results)} parent blocks with matching children found")
    return results


async def inverse_direct_strategy(
    left: ConditionSet, right: ConditionSet, ctx: SearchContext, max_depth: int = 1
) -> list[SearchResult]:
    """``left < right``: blocks matching ``left`` that are children of ``right``."""
    results = await search_direct_children(right, left, ctx)
    ctx.counts.forward = len(results)
    ctx.progress(f"{len(results)} child blocks with matching parents found")
    return results


async def deep_strategy(
    left: ConditionSet, right: ConditionSet, ctx: SearchContext, max_depth: int
) -> list[SearchResult]:
    results = await search_deep(left, right, ctx, max_depth)
    ctx.counts.forward = len(results)
    ctx.progress(f"{len(results)} ancestor blocks with matching descendants found")
    return results


async def flexible_strategy(
    left: ConditionSet, right: ConditionSet, ctx: SearchContext, max_depth: int = 1
) -> list[SearchResult]:
    same_block, hierarchy = await asyncio.gather(
        search_same_block(left, right, ctx),
        search_direct(left, right, ctx),
    )
    ctx.counts.forward = len(hierarchy)
    results = union_same_block_first(same_block, hierarchy)
    ctx.progress(
        f"{len(results)} matches found ({len(same_block)} same block, "
        f"{len(hierarchy)} parent-child)"
    )
    return results


async def deep_flexible_strategy(
    left: ConditionSet, right: ConditionSet, ctx: SearchContext, max_depth: int
) -> list[SearchResult]:
    same_block, hierarchy = await asyncio.gather(
        search_same_block(left, right, ctx),
        search_deep(left, right, ctx, max_depth),
    )
    ctx.counts.forward = len(hierarchy)
    results = union_same_block_first(same_block, hierarchy)
    ctx.progress(
        f"{len(results)} matches found ({len(same_block)} same block, "
        f"{len(hierarchy)} within {max_depth} levels)"
    )
    return results


async def _bidirectional(
    left: ConditionSet,
    right: ConditionSet,
    ctx: SearchContext,
    search: Callable[..., Awaitable[list[SearchResult]]],
) -> list[SearchResult]:
    left_count, right_count = await asyncio.gather(
        count_matches(left, ctx), count_matches(right, ctx)
    )
    ctx.counts.left_count = left_count
    ctx.counts.right_count = right_count
    ctx.progress(f"Left conditions match {left_count} blocks, right conditions {right_count}")

    same_block = await search_same_block(left, right, ctx)
    forward = await search(left, right, ctx)
    reverse = await search(right, left, ctx, match_type="reverse_hierarchy")
    ctx.counts.forward = len(forward)
    ctx.counts.reverse = len(reverse)

    results = merge_bidirectional(same_block, forward, reverse)
    logger.debug(
        "Bidirectional merge: {} same block, {} forward, {} reverse -> {}",
        len(same_block),
        len(forward),
        len(reverse),
        len(results),
    )
    ctx.progress(f"{len(results)} relationships after deduplication")
    return results


async def bidirectional_strategy(
    left: ConditionSet, right: ConditionSet, ctx: SearchContext, max_depth: int = 1
) -> list[SearchResult]:
    return await _bidirectional(left, right, ctx, search_direct)


async def deep_bidirectional_strategy(
    left: ConditionSet, right: ConditionSet, ctx: SearchContext, max_depth: int
) -> list[SearchResult]:
    async def search(
        a: ConditionSet, b: ConditionSet, c: SearchContext, *, match_type: str = "hierarchy"
    ) -> list[SearchResult]:
        return await search_deep(a, b, c, max_depth, match_type=match_type)

    return await _bidirectional(left, right, ctx, search)


def swapped(strategy: Strategy) -> Strategy:
    """Wrap ``strategy`` so it runs with left and right exchanged."""

    async def run(
        left: ConditionSet, right: ConditionSet, ctx: SearchContext, max_depth: int
    ) -> list[SearchResult]:
        return await strategy(right, left, ctx, max_depth)

    run.__name__ = f"swapped_{strategy.__name__}"
    return run
