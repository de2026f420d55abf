"""Tests for semantic condition expansion."""

import asyncio

import pytest

from blockgraph.core.query.patterns import page_ref_alternation
from blockgraph.core.search.context import SearchContext, SearchState
from blockgraph.core.search.expander import (
    cache_key,
    expand_condition,
    expand_conditions,
    parse_expansion_suffix,
)
from blockgraph.models.condition import (
    ExpansionStrategy,
    PatternCondition,
    TaggedRefCondition,
    TextCondition,
)
from tests.unit.fakes import FakeExecutor, FakeExpander


def _ctx(
    expander: FakeExpander | None = None,
    messages: list[str] | None = None,
    **state: object,
) -> SearchContext:
    ctx = SearchContext(
        executor=FakeExecutor(),
        state=SearchState(**state),  # type: ignore[arg-type]
        generate_expansions=expander,
    )
    if messages is not None:
        ctx.on_progress = messages.append
    return ctx


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("car*", ("car", ExpansionStrategy.FUZZY, True)),
        ("car~all", ("car", ExpansionStrategy.ALL, True)),
        ("car~", ("car", None, True)),
        ("car", ("car", None, False)),
        ("*", ("*", None, False)),
    ],
)
def test_parse_expansion_suffix(
    text: str, expected: tuple[str, ExpansionStrategy | None, bool]
) -> None:
    assert parse_expansion_suffix(text) == expected


def test_conditions_without_expansion_request_are_untouched() -> None:
    expander = FakeExpander({"car": ["automobile"]})
    conditions = [TextCondition("car"), TaggedRefCondition("Vehicles")]
    result = asyncio.run(expand_conditions(conditions, _ctx(expander)))
    assert result == conditions
    assert expander.calls == []


def test_fuzzy_suffix_replaces_condition_with_alternation() -> None:
    expander = FakeExpander({"car": ["cars", "automobile"]})
    result = asyncio.run(expand_condition(TextCondition("car*", weight=2.0), _ctx(expander)))
    assert result == [PatternCondition(text="(car|cars|automobile)", weight=2.0)]
    assert expander.calls == [("car", "fuzzy", None)]


def test_tagged_reference_expands_to_page_ref_alternation() -> None:
    expander = FakeExpander({"Cars": ["Vehicles"]})
    condition = TaggedRefCondition("Cars", negate=True, expansion=ExpansionStrategy.SYNONYMS)
    result = asyncio.run(expand_condition(condition, _ctx(expander)))
    assert result == [
        PatternCondition(text=page_ref_alternation(["Cars", "Vehicles"]), negate=True)
    ]


def test_repeated_terms_call_generator_once() -> None:
    expander = FakeExpander({"car": ["automobile"]})
    messages: list[str] = []
    ctx = _ctx(expander, messages, user_query="find cars")
    result = asyncio.run(expand_conditions([TextCondition("car~"), TextCondition("car~")], ctx))

    assert len(expander.calls) == 1
    assert result[0] == result[1]
    key = cache_key("car", ExpansionStrategy.SYNONYMS, "text", "find cars")
    assert ctx.state.expansion_cache == {key: ["automobile"]}
    assert messages.count("Expanding search terms (synonyms)...") == 1


def test_cache_is_shared_with_derived_contexts() -> None:
    expander = FakeExpander({"car": ["automobile"]})
    ctx = _ctx(expander)
    asyncio.run(expand_condition(TextCondition("car*"), ctx))
    derived = ctx.with_state(expansion_level=1)
    asyncio.run(expand_condition(TextCondition("car*"), derived))
    assert len(expander.calls) == 1


def test_generator_failure_keeps_stripped_condition() -> None:
    expander = FakeExpander(fail=True)
    result = asyncio.run(expand_condition(TextCondition("car*"), _ctx(expander)))
    assert result == [TextCondition("car")]


def test_failed_expansion_is_requested_once() -> None:
    expander = FakeExpander(fail=True)
    ctx = _ctx(expander)
    result = asyncio.run(expand_conditions([TextCondition("car*"), TextCondition("car*")], ctx))
    assert result == [TextCondition("car"), TextCondition("car")]
    assert expander.calls == [("car", "fuzzy", None)]


def test_no_alternatives_keeps_stripped_condition() -> None:
    expander = FakeExpander({"car": ["car", " "]})
    result = asyncio.run(expand_condition(TextCondition("car~"), _ctx(expander)))
    assert result == [TextCondition("car")]


def test_missing_generator_keeps_stripped_condition() -> None:
    result = asyncio.run(expand_condition(TextCondition("car~all"), _ctx(None)))
    assert result == [TextCondition("car")]


def test_level_guard_returns_conditions_unchanged() -> None:
    expander = FakeExpander({"car": ["automobile"]})
    conditions = [TextCondition("car*")]
    result = asyncio.run(expand_conditions(conditions, _ctx(expander, expansion_level=5)))
    assert result == conditions
    assert expander.calls == []


def test_disabled_expansion_strips_suffix_without_calling() -> None:
    expander = FakeExpander({"car": ["automobile"]})
    ctx = _ctx(expander, disable_semantic_expansion=True)
    result = asyncio.run(expand_conditions([TextCondition("car*")], ctx))
    assert result == [TextCondition("car")]
    assert expander.calls == []


def test_global_expansion_uses_state_strategy() -> None:
    expander = FakeExpander({"car": ["engine"]})
    ctx = _ctx(
        expander,
        is_expansion_global=True,
        semantic_expansion=ExpansionStrategy.RELATED_CONCEPTS,
    )
    result = asyncio.run(expand_conditions([TextCondition("car")], ctx))
    assert result == [PatternCondition(text="(car|engine)")]
    assert expander.calls == [("car", "related_concepts", None)]


def test_condition_flag_beats_global_strategy() -> None:
    expander = FakeExpander({"car": ["automobile"]})
    ctx = _ctx(expander, is_expansion_global=True)
    condition = TextCondition("car", expansion=ExpansionStrategy.BROADER_TERMS)
    asyncio.run(expand_condition(condition, ctx))
    assert expander.calls == [("car", "broader_terms", None)]


def test_pattern_conditions_are_never_expanded() -> None:
    expander = FakeExpander({"ca.*": ["x"]})
    condition = PatternCondition("ca.*")
    result = asyncio.run(expand_condition(condition, _ctx(expander, is_expansion_global=True)))
    assert result == [condition]
    assert expander.calls == []

