"""Tests for operator dispatch and the end-to-end hierarchy search."""

import asyncio

import pytest

from blockgraph.core.datalog.store import LocalExecutor
from blockgraph.core.search.context import SearchContext, SearchState
from blockgraph.core.search.dispatcher import (
    STRATEGIES,
    HierarchySearchRequest,
    find_blocks_with_hierarchy,
    flatten_groups,
    normalize_side,
    process_hierarchy_condition,
    resolve_max_depth,
)
from blockgraph.models.condition import (
    Combination,
    ConditionGroup,
    ExpansionStrategy,
    HierarchyCondition,
    Operator,
    PatternCondition,
    TextCondition,
)
from blockgraph.models.options import SearchOptions
from tests.unit.fakes import FakeExpander

A, B, C = TextCondition("a"), TextCondition("b"), TextCondition("c")


def _condition(operator: Operator | str | None, left: str, right: str) -> HierarchyCondition:
    return HierarchyCondition(
        operator=operator,
        left_conditions=(TextCondition(left),),
        right_conditions=(TextCondition(right),),
    )


def test_every_operator_has_a_strategy() -> None:
    assert set(STRATEGIES) == set(Operator)


@pytest.mark.parametrize(
    ("operator", "requested", "override", "expected"),
    [
        (Operator.DIRECT, 5, None, 1),
        (Operator.BIDIRECTIONAL, None, 4, 1),
        (Operator.DEEP, None, None, 2),
        (Operator.DEEP_FLEXIBLE, 4, None, 4),
        (Operator.INVERSE_DEEP, 50, None, 10),
        (Operator.DEEP_BIDIRECTIONAL, 3, 7, 7),
    ],
)
def test_resolve_max_depth(
    operator: Operator, requested: int | None, override: int | None, expected: int
) -> None:
    state = SearchState(max_depth_override=override)
    assert resolve_max_depth(operator, requested, state) == expected


def test_flatten_single_group_keeps_its_combination() -> None:
    [flat] = flatten_groups((ConditionGroup((A, B), Combination.OR),), Combination.AND)
    assert flat.conditions == (A, B)
    assert flat.combination is Combination.OR


def test_flatten_and_groups_with_and() -> None:
    groups = (ConditionGroup((A, B)), ConditionGroup((C,)))
    [flat] = flatten_groups(groups, Combination.AND)
    assert flat.conditions == (A, B, C)
    assert flat.combination is Combination.AND


def test_flatten_or_groups_with_or() -> None:
    groups = (ConditionGroup((A, B), Combination.OR), ConditionGroup((C,)))
    [flat] = flatten_groups(groups, Combination.OR)
    assert flat.conditions == (A, B, C)
    assert flat.combination is Combination.OR


def test_flatten_mixed_groups_collapses_or_groups_to_patterns() -> None:
    groups = (ConditionGroup((A, B), Combination.OR), ConditionGroup((C,)))
    [flat] = flatten_groups(groups, Combination.AND)
    assert flat.combination is Combination.AND
    assert isinstance(flat.conditions[0], PatternCondition)
    assert flat.conditions[1] == C


def test_flatten_or_of_and_groups_keeps_each_group_as_an_alternative() -> None:
    groups = (ConditionGroup((A, B)), ConditionGroup((C, A)))
    first, second = flatten_groups(groups, Combination.OR)
    assert first.conditions == (A, B)
    assert second.conditions == (C, A)
    assert first.combination is second.combination is Combination.AND


def test_side_with_flat_and_grouped_input_raises(ctx: SearchContext) -> None:
    condition = HierarchyCondition(
        operator=Operator.DIRECT,
        left_conditions=(A,),
        left_groups=(ConditionGroup((B,)),),
        right_conditions=(C,),
    )
    with pytest.raises(ValueError, match="Cannot use both leftConditions and leftConditionGroups"):
        asyncio.run(process_hierarchy_condition(condition, ctx))


def test_normalize_side_rewrites_mixed_negation_or(ctx: SearchContext) -> None:
    [side] = asyncio.run(
        normalize_side(
            (TextCondition("draft", negate=True), TextCondition("final")),
            Combination.OR,
            (),
            Combination.AND,
            ctx,
        )
    )
    assert side.combination is Combination.AND
    assert isinstance(side.conditions[0], PatternCondition)


def test_or_with_negation_expands_suffixed_terms(executor: LocalExecutor) -> None:
    expander = FakeExpander({"Alpha": ["Alfa"]})
    ctx = SearchContext(executor=executor, generate_expansions=expander)
    condition = HierarchyCondition(
        operator=Operator.DIRECT,
        left_conditions=(
            TextCondition("Alpha*"),
            TextCondition("Gamma"),
            TextCondition("Beta", negate=True),
        ),
        left_combination=Combination.OR,
        right_conditions=(TextCondition("deadline"),),
    )
    results = asyncio.run(process_hierarchy_condition(condition, ctx))
    assert [r.uid for r in results] == ["alpha0001"]
    assert expander.calls == [("Alpha", "fuzzy", None)]


def test_or_with_negation_expands_flagged_terms(executor: LocalExecutor) -> None:
    expander = FakeExpander({"Omega": ["Alpha"]})
    ctx = SearchContext(executor=executor, generate_expansions=expander)
    condition = HierarchyCondition(
        operator=Operator.DIRECT,
        left_conditions=(
            TextCondition("Omega", expansion=ExpansionStrategy.SYNONYMS),
            TextCondition("Beta", negate=True),
        ),
        left_combination=Combination.OR,
        right_conditions=(TextCondition("deadline"),),
    )
    results = asyncio.run(process_hierarchy_condition(condition, ctx))
    assert [r.uid for r in results] == ["alpha0001"]
    assert expander.calls == [("Omega", "synonyms", None)]


def test_or_of_and_groups_unions_each_group(ctx: SearchContext) -> None:
    condition = HierarchyCondition(
        operator=Operator.DEEP,
        left_groups=(
            ConditionGroup((TextCondition("Project"), TextCondition("Alpha"))),
            ConditionGroup((TextCondition("Project"), TextCondition("Beta"))),
        ),
        left_group_combination=Combination.OR,
        right_conditions=(TextCondition("deadline"),),
        max_depth=2,
    )
    results = asyncio.run(process_hierarchy_condition(condition, ctx))
    assert sorted(r.uid for r in results) == ["alpha0001", "beta00001"]
    assert ctx.counts.forward == 2


def test_grouped_conditions_are_expanded(executor: LocalExecutor) -> None:
    expander = FakeExpander({"Projekt": ["Project"]})
    ctx = SearchContext(executor=executor, generate_expansions=expander)
    condition = HierarchyCondition(
        operator=Operator.DEEP,
        left_groups=(
            ConditionGroup((TextCondition("Projekt*"), TextCondition("Alpha"))),
            ConditionGroup((TextCondition("Beta"),)),
        ),
        left_group_combination=Combination.OR,
        right_conditions=(TextCondition("deadline"),),
        max_depth=2,
    )
    results = asyncio.run(process_hierarchy_condition(condition, ctx))
    assert sorted(r.uid for r in results) == ["alpha0001", "beta00001"]
    assert expander.calls == [("Projekt", "fuzzy", None)]


def test_relevance_ignores_expansion_suffixes(ctx: SearchContext) -> None:
    condition = HierarchyCondition(
        operator=Operator.DEEP,
        left_conditions=(TextCondition("Alpha*", weight=3.0), TextCondition("Beta")),
        left_combination=Combination.OR,
        right_conditions=(TextCondition("deadline"),),
        max_depth=2,
    )
    request = HierarchySearchRequest(hierarchy_condition=condition)
    results = asyncio.run(find_blocks_with_hierarchy(request, ctx))
    assert [r.uid for r in results] == ["alpha0001", "beta00001"]


@pytest.mark.parametrize("operator", ["??", None, ">>>"])
def test_unknown_operator_returns_empty(ctx: SearchContext, operator: str | None) -> None:
    assert asyncio.run(process_hierarchy_condition(_condition(operator, "a", "b"), ctx)) == []


def test_empty_side_returns_empty(ctx: SearchContext) -> None:
    condition = HierarchyCondition(operator=Operator.DIRECT, left_conditions=(A,))
    assert asyncio.run(process_hierarchy_condition(condition, ctx)) == []


def test_request_with_both_forms_raises(ctx: SearchContext) -> None:
    request = HierarchySearchRequest(
        hierarchy_condition=_condition(Operator.DIRECT, "a", "b"),
        hierarchical_expression="a > b",
    )
    with pytest.raises(ValueError, match="Cannot use both"):
        asyncio.run(find_blocks_with_hierarchy(request, ctx))


def test_request_without_condition_returns_empty(ctx: SearchContext) -> None:
    assert asyncio.run(find_blocks_with_hierarchy(HierarchySearchRequest(), ctx)) == []


def test_expression_search_end_to_end(executor: LocalExecutor) -> None:
    messages: list[str] = []
    ctx = SearchContext(executor=executor, on_progress=messages.append)
    request = HierarchySearchRequest(hierarchical_expression="Alpha > deadline")
    results = asyncio.run(find_blocks_with_hierarchy(request, ctx))
    assert [r.uid for r in results] == ["alpha0001"]
    assert ctx.counts.total == 1
    assert "1 hierarchy relationships found" in messages


def test_structured_condition_uses_option_max_depth(executor: LocalExecutor) -> None:
    condition = _condition(Operator.DEEP, "Project", "deadline")
    request = HierarchySearchRequest(hierarchy_condition=condition)

    shallow = SearchContext(executor=executor, options=SearchOptions(max_depth=1))
    deep = SearchContext(executor=executor)
    assert {r.uid for r in asyncio.run(find_blocks_with_hierarchy(request, shallow))} == {
        "alpha0001"
    }
    assert {r.uid for r in asyncio.run(find_blocks_with_hierarchy(request, deep))} == {
        "alpha0001",
        "beta00001",
    }


def test_inverse_deep_operator_swaps_sides(ctx: SearchContext) -> None:
    request = HierarchySearchRequest(hierarchical_expression="deadline << Project")
    results = asyncio.run(find_blocks_with_hierarchy(request, ctx))
    assert {r.uid for r in results} == {"alpha0001", "beta00001"}


def test_results_are_filtered_and_enriched(executor: LocalExecutor) -> None:
    options = SearchOptions(include_children=True, include_daily=False)
    ctx = SearchContext(executor=executor, options=options)
    request = HierarchySearchRequest(hierarchical_expression="meeting > budget")
    results = asyncio.run(find_blocks_with_hierarchy(request, ctx))
    assert [r.uid for r in results] == ["meeting01"]
    assert [c.uid for c in results[0].children] == ["budget001"]


def test_forced_search_tests_combinations(executor: LocalExecutor) -> None:
    messages: list[str] = []
    ctx = SearchContext(
        executor=executor,
        state=SearchState(force_hierarchical=True),
        on_progress=messages.append,
    )
    request = HierarchySearchRequest(hierarchical_expression="Project + Alpha <=> deadline")
    results = asyncio.run(find_blocks_with_hierarchy(request, ctx))
    assert [r.uid for r in results] == ["alpha0001"]
    assert "Testing 3 combinations of 3 conditions" in messages
