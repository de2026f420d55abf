"""Map hierarchy conditions onto search strategies."""

from dataclasses import dataclass, replace

from loguru import logger

from blockgraph.config import DEFAULT_DEEP_DEPTH, MAX_HIERARCHY_DEPTH
from blockgraph.core.query.compiler import apply_or_to_pattern
from blockgraph.core.query.patterns import conditions_to_pattern
from blockgraph.core.search.combinations import search_with_combinations, should_test_combinations
from blockgraph.core.search.context import HierarchyCounts, SearchContext, SearchState
from blockgraph.core.search.expander import expand_conditions, parse_expansion_suffix
from blockgraph.core.search.expression import parse_hierarchical_expression
from blockgraph.core.search.processors import filter_results, finalize_results
from blockgraph.core.search.strategies import (
    Strategy,
    bidirectional_strategy,
    deep_bidirectional_strategy,
    deep_flexible_strategy,
    deep_strategy,
    direct_strategy,
    flexible_strategy,
    inverse_direct_strategy,
    swapped,
)
from blockgraph.core.tree.navigation import enrich_results
from blockgraph.models.condition import (
    Combination,
    Condition,
    ConditionGroup,
    ConditionSet,
    HierarchyCondition,
    MatchMode,
    Operator,
    TaggedRefCondition,
    TextCondition,
)
from blockgraph.models.node import SearchResult

STRATEGIES: dict[Operator, Strategy] = {
    Operator.DIRECT: direct_strategy,
    Operator.DEEP: deep_strategy,
    Operator.INVERSE_DIRECT: inverse_direct_strategy,
    Operator.INVERSE_DEEP: swapped(deep_strategy),
    Operator.FLEXIBLE: flexible_strategy,
    Operator.INVERSE_FLEXIBLE: swapped(flexible_strategy),
    Operator.DEEP_FLEXIBLE: deep_flexible_strategy,
    Operator.INVERSE_DEEP_FLEXIBLE: swapped(deep_flexible_strategy),
    Operator.BIDIRECTIONAL: bidirectional_strategy,
    Operator.DEEP_BIDIRECTIONAL: deep_bidirectional_strategy,
}


@dataclass(frozen=True)
class HierarchySearchRequest:
    """A search given as a structured condition or as an expression string."""

    hierarchy_condition: HierarchyCondition | None = None
    hierarchical_expression: str | None = None


def resolve_max_depth(
    operator: Operator, requested: int | None, state: SearchState | None = None
) -> int:
    """Depth bound for ``operator``.

    Single-level operators always use 1. Deep operators use the state
    override, then the requested depth, then the default; capped at the
    maximum hierarchy depth.
    """
    if not operator.is_deep:
        return 1
    override = state.max_depth_override if state is not None else None
    depth = override or requested or DEFAULT_DEEP_DEPTH
    return max(1, min(depth, MAX_HIERARCHY_DEPTH))


def _collapse_group(group: ConditionGroup) -> list[Condition]:
    """Conditions equivalent to ``group`` under AND."""
    if group.combination is Combination.AND or len(group.conditions) == 1:
        return list(group.conditions)
    conditions, combination = apply_or_to_pattern(list(group.conditions), group.combination)
    if combination is Combination.AND:
        return conditions
    # A plain OR group becomes one alternation pattern.
    return [conditions_to_pattern(conditions)]


def flatten_groups(
    groups: tuple[ConditionGroup, ...], group_combination: Combination
) -> tuple[ConditionSet, ...]:
    """Flatten condition groups into alternative condition sets.

    A single group keeps its own combination. AND-combined groups become one
    AND set, each OR group collapsed into one pattern. OR-combined groups
    concatenate into one OR set when every group is an OR group (or a single
    condition); otherwise every group is its own alternative and the
    alternatives' results are unioned.
    """
    if len(groups) == 1:
        group = groups[0]
        return (ConditionSet(conditions=group.conditions, combination=group.combination),)

    if group_combination is Combination.AND:
        conditions = tuple(c for g in groups for c in _collapse_group(g))
        return (ConditionSet(conditions=conditions, combination=Combination.AND),)

    if all(g.combination is Combination.OR or len(g.conditions) == 1 for g in groups):
        conditions = tuple(c for g in groups for c in g.conditions)
        return (ConditionSet(conditions=conditions, combination=Combination.OR),)
    return tuple(ConditionSet(conditions=g.conditions, combination=g.combination) for g in groups)


def _check_side(
    conditions: tuple[Condition, ...], groups: tuple[ConditionGroup, ...], side: str
) -> None:
    if conditions and groups:
        msg = f"Cannot use both {side}Conditions and {side}ConditionGroups"
        raise ValueError(msg)


async def normalize_side(
    conditions: tuple[Condition, ...],
    combination: Combination,
    groups: tuple[ConditionGroup, ...],
    group_combination: Combination,
    ctx: SearchContext,
) -> tuple[ConditionSet, ...]:
    """Expand one side's flat or grouped input, then flatten it.

    Expansion runs on the raw conditions, before groups are collapsed and
    before OR sets with negations are rewritten into patterns.

    Returns:
        One condition set, or one per group when OR-combined groups cannot
        be merged into a single set.
    """
    if groups:
        expanded_groups = []
        for group in groups:
            expanded = await expand_conditions(list(group.conditions), ctx)
            expanded_groups.append(replace(group, conditions=tuple(expanded)))
        alternatives = flatten_groups(tuple(expanded_groups), group_combination)
    else:
        expanded = await expand_conditions(list(conditions), ctx)
        alternatives = (ConditionSet(conditions=tuple(expanded), combination=combination),)

    normalized = []
    for side in alternatives:
        rewritten, rewritten_combination = apply_or_to_pattern(
            list(side.conditions), side.combination
        )
        normalized.append(
            ConditionSet(conditions=tuple(rewritten), combination=rewritten_combination)
        )
    return tuple(normalized)


async def _run_strategy(
    operator: Operator,
    left: ConditionSet,
    right: ConditionSet,
    ctx: SearchContext,
    max_depth: int,
) -> list[SearchResult]:
    strategy = STRATEGIES[operator]
    logger.debug("Dispatching {} to {} (max depth {})", operator, strategy.__name__, max_depth)
    if should_test_combinations(operator, left, right, ctx):
        return await search_with_combinations(left, right, ctx, strategy, max_depth)
    return await strategy(left, right, ctx, max_depth)


async def process_hierarchy_condition(
    condition: HierarchyCondition, ctx: SearchContext
) -> list[SearchResult]:
    """Expand, normalize and run one hierarchy condition.

    Unknown operators and empty sides log a warning and yield no results.

    Raises:
        ValueError: When a side mixes flat conditions and groups.
    """
    _check_side(condition.left_conditions, condition.left_groups, "left")
    _check_side(condition.right_conditions, condition.right_groups, "right")

    operator = condition.operator
    if not isinstance(operator, Operator):
        logger.warning("Unsupported hierarchy operator {!r}; returning no results", operator)
        return []
    has_left = condition.left_conditions or condition.left_groups
    has_right = condition.right_conditions or condition.right_groups
    if not has_left or not has_right:
        logger.warning("Hierarchy condition needs conditions on both sides; returning no results")
        return []

    lefts = await normalize_side(
        condition.left_conditions,
        condition.left_combination,
        condition.left_groups,
        condition.left_group_combination,
        ctx,
    )
    rights = await normalize_side(
        condition.right_conditions,
        condition.right_combination,
        condition.right_groups,
        condition.right_group_combination,
        ctx,
    )
    max_depth = resolve_max_depth(operator, condition.max_depth, ctx.state)

    if len(lefts) == 1 and len(rights) == 1:
        return await _run_strategy(operator, lefts[0], rights[0], ctx, max_depth)

    logger.info("Searching {} group alternatives", len(lefts) * len(rights))
    merged: dict[str, SearchResult] = {}
    for left in lefts:
        for right in rights:
            run_ctx = replace(ctx, counts=HierarchyCounts())
            for result in await _run_strategy(operator, left, right, run_ctx, max_depth):
                merged.setdefault(result.uid, result)
            ctx.counts.add(run_ctx.counts)
    return list(merged.values())


def _scoring_conditions(condition: HierarchyCondition) -> list[Condition]:
    """Raw conditions with expansion suffixes stripped, for relevance scoring."""
    grouped = [c for g in (*condition.left_groups, *condition.right_groups) for c in g.conditions]
    scoring = []
    for c in (*condition.left_conditions, *condition.right_conditions, *grouped):
        if isinstance(c, TaggedRefCondition) or (
            isinstance(c, TextCondition) and c.match_mode is not MatchMode.PATTERN
        ):
            text, _, has_suffix = parse_expansion_suffix(c.text)
            if has_suffix:
                c = replace(c, text=text)
        scoring.append(c)
    return scoring


async def find_blocks_with_hierarchy(
    request: HierarchySearchRequest, ctx: SearchContext
) -> list[SearchResult]:
    """Run a hierarchy search end to end.

    Args:
        request: Structured condition or expression string (not both).
        ctx: Executor, options, state and callbacks for this call.

    Returns:
        Filtered, enriched, sorted and limited results.

    Raises:
        ValueError: When both request forms are given, or an expression
            cannot be parsed.
    """
    if request.hierarchical_expression and request.hierarchy_condition:
        msg = "Cannot use both hierarchicalExpression and hierarchyCondition"
        raise ValueError(msg)

    condition = request.hierarchy_condition
    if request.hierarchical_expression:
        condition = parse_hierarchical_expression(request.hierarchical_expression)
        logger.debug("Parsed expression {!r} as {}", request.hierarchical_expression, condition)
    if condition is None:
        logger.warning("No hierarchy condition given; returning no results")
        return []
    if condition.max_depth is None and ctx.options.max_depth is not None:
        condition = replace(condition, max_depth=ctx.options.max_depth)

    results = await process_hierarchy_condition(condition, ctx)
    results = filter_results(results, ctx.options)
    results = await enrich_results(results, ctx)
    results = finalize_results(results, ctx.options, _scoring_conditions(condition))

    ctx.counts.total = len(results)
    ctx.progress(f"{len(results)} hierarchy relationships found")
    return results
