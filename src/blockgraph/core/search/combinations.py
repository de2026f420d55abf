"""Combination testing for forced bidirectional searches.

When three or four AND-combined terms are forced into a ``<=>`` or
``<<=>>`` search, a single left/right split is often the wrong grouping.
Every balanced split is searched instead and the results unioned.
"""

from dataclasses import replace

from loguru import logger

from blockgraph.core.search.context import HierarchyCounts, SearchContext
from blockgraph.core.search.strategies import Strategy
from blockgraph.models.condition import (
    Combination,
    Condition,
    ConditionSet,
    Operator,
)
from blockgraph.models.node import SearchResult

Split = tuple[tuple[Condition, ...], tuple[Condition, ...]]


def split_conditions(conditions: list[Condition]) -> list[Split]:
    """Enumerate the left/right splits tested for ``conditions``.

    Three conditions give the three one-vs-two splits. Four give the three
    balanced two-vs-two splits followed by the four one-vs-three splits.
    Other counts have no splits.
    """
    count = len(conditions)
    if count == 3:
        return [
            ((conditions[i],), tuple(c for j, c in enumerate(conditions) if j != i))
            for i in range(3)
        ]
    if count != 4:
        return []

    splits: list[Split] = []
    # Pairs containing the first condition enumerate each 2-vs-2 split once.
    for partner in range(1, 4):
        left = (conditions[0], conditions[partner])
        right = tuple(c for j, c in enumerate(conditions) if j not in (0, partner))
        splits.append((left, right))
    for i in range(4):
        splits.append(((conditions[i],), tuple(c for j, c in enumerate(conditions) if j != i)))
    return splits


def should_test_combinations(
    operator: Operator, left: ConditionSet, right: ConditionSet, ctx: SearchContext
) -> bool:
    """Whether a search qualifies for combination testing.

    Requires a forced hierarchical search, a bidirectional operator, AND on
    both sides and three or four positive conditions in total.
    """
    if not ctx.state.force_hierarchical or not operator.is_bidirectional:
        return False
    if left.combination is not Combination.AND or right.combination is not Combination.AND:
        return False
    return len(left.positive) + len(right.positive) in (3, 4)


async def search_with_combinations(
    left: ConditionSet,
    right: ConditionSet,
    ctx: SearchContext,
    strategy: Strategy,
    max_depth: int,
) -> list[SearchResult]:
    """Run ``strategy`` once per split and union the results by uid.

    Negated conditions are added to both sides of every split. Expansion is
    disabled for the split runs; the conditions are already expanded.
    """
    positive = [*left.positive, *right.positive]
    negated = (*left.negated, *right.negated)
    splits = split_conditions(positive)
    logger.info("Testing {} condition groupings", len(splits))
    ctx.progress(f"Testing {len(splits)} combinations of {len(positive)} conditions")

    split_ctx = ctx.with_state(disable_semantic_expansion=True)
    merged: dict[str, SearchResult] = {}
    # Splits run one after another, each with its own counts.
    for split_left, split_right in splits:
        run_ctx = replace(split_ctx, counts=HierarchyCounts())
        results = await strategy(
            ConditionSet(conditions=(*split_left, *negated)),
            ConditionSet(conditions=(*split_right, *negated)),
            run_ctx,
            max_depth,
        )
        for result in results:
            merged.setdefault(result.uid, result)
        ctx.counts.add(run_ctx.counts)
    ctx.progress(f"{len(merged)} results across {len(splits)} combinations")
    return list(merged.values())
