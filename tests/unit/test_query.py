"""Tests for the query AST, condition compiler and pattern helpers."""

import re

from blockgraph.core.datalog.store import LocalExecutor
from blockgraph.core.query.builder import (
    DataPattern,
    FnBinding,
    Not,
    Or,
    Predicate,
    Query,
    QueryFragment,
    Var,
    VariableNamer,
    render_string,
)
from blockgraph.core.query.compiler import apply_or_to_pattern, compile_conditions
from blockgraph.core.query.patterns import (
    case_insensitive,
    conditions_to_pattern,
    contains_pattern,
    escape_regex,
    page_ref_alternation,
    page_ref_pattern,
    sanitize_pattern,
    text_alternation,
)
from blockgraph.core.search.queries import build_content_query
from blockgraph.models.condition import (
    Combination,
    Condition,
    ConditionSet,
    CrossRefCondition,
    MatchMode,
    PatternCondition,
    TaggedRefCondition,
    TextCondition,
)

BLOCK = Var("b")
CONTENT = Var("content")


def _compile(
    conditions: list[Condition], combination: Combination = Combination.AND
) -> QueryFragment:
    return compile_conditions(
        conditions, combination, block_var=BLOCK, content_var=CONTENT, namer=VariableNamer()
    )


# --- builder ---


def test_variable_namer_numbers_each_stem_independently() -> None:
    namer = VariableNamer()
    assert namer.fresh("pattern") == Var("pattern-0")
    assert namer.fresh("ref") == Var("ref-0")
    assert namer.fresh("pattern") == Var("pattern-1")


def test_render_string_escapes_quotes_and_newlines() -> None:
    assert render_string('say "hi"\nnow') == '"say \\"hi\\"\\nnow"'


def test_query_render_lists_find_vars_and_clauses() -> None:
    query = Query(
        find=(Var("uid"),),
        where=(DataPattern(BLOCK, ":block/uid", Var("uid")), Predicate("=", (Var("uid"), "x"))),
    )
    text = query.render()
    assert text.startswith("[:find ?uid\n :where")
    assert "[?b :block/uid ?uid]" in text
    assert '[(= ?uid "x")]' in text


# --- patterns ---


def test_escape_regex_escapes_metacharacters() -> None:
    assert escape_regex("C++ (v2.0)") == r"C\+\+ \(v2\.0\)"


def test_sanitize_pattern_unwraps_slash_literals() -> None:
    assert sanitize_pattern("/foo.*bar/i") == ("foo.*bar", True)
    assert sanitize_pattern("(?i)baz") == ("baz", True)
    assert sanitize_pattern("plain") == ("plain", False)


def test_case_insensitive_adds_exactly_one_flag() -> None:
    assert case_insensitive("(?i)abc") == "(?i)abc"
    assert case_insensitive("/abc/") == "(?i)abc"


def test_contains_pattern_matches_literal_text() -> None:
    pattern = re.compile(contains_pattern("C++"))
    assert pattern.search("learning c++ today")
    assert not pattern.search("learning c today")


def test_page_ref_pattern_matches_all_reference_syntaxes() -> None:
    pattern = re.compile(page_ref_pattern("TODO"))
    assert pattern.search("a [[TODO]] item")
    assert pattern.search("a #TODO item")
    assert pattern.search("TODO:: soon")
    assert not pattern.search("a TODO item")


def test_text_alternation_escapes_each_term() -> None:
    assert text_alternation(["car", "auto.mobile"]) == r"(car|auto\.mobile)"


def test_page_ref_alternation_matches_any_title() -> None:
    pattern = re.compile(page_ref_alternation(["car", "auto"]))
    assert pattern.search("[[auto]]")
    assert pattern.search("#car trip")
    assert not pattern.search("#cartoon")


def test_conditions_to_pattern_combines_condition_kinds() -> None:
    pattern = conditions_to_pattern(
        [TextCondition("final"), TaggedRefCondition("Done"), CrossRefCondition("abc123xyz")]
    )
    compiled = re.compile(pattern.text)
    assert isinstance(pattern, PatternCondition)
    assert compiled.search("the FINAL version")
    assert compiled.search("marked #Done")
    assert compiled.search("see ((abc123xyz))")
    assert not compiled.search("nothing here")


# --- compiler ---


def test_apply_or_to_pattern_rewrites_mixed_negation() -> None:
    draft = TextCondition("draft", negate=True)
    final = TextCondition("final")
    conditions, combination = apply_or_to_pattern([draft, final], Combination.OR)
    assert combination is Combination.AND
    assert isinstance(conditions[0], PatternCondition)
    assert conditions[1] == draft


def test_apply_or_to_pattern_leaves_plain_or_alone() -> None:
    conditions = [TextCondition("a"), TextCondition("b")]
    assert apply_or_to_pattern(conditions, Combination.OR) == (conditions, Combination.OR)


def test_negated_or_negates_only_the_match_clause() -> None:
    fragment = _compile(
        [TextCondition("draft", negate=True), TextCondition("final")], Combination.OR
    )
    assert all(isinstance(b, FnBinding) for b in fragment.bindings)
    assert len(fragment.bindings) == 2
    assert isinstance(fragment.clauses[0], Predicate)
    negated = fragment.clauses[1]
    assert isinstance(negated, Not)
    assert negated.render() == "(not [(re-find ?pattern-1 ?content)])"
    assert fragment.bindings[1].render() == '[(re-pattern "(?i).*draft.*") ?pattern-1]'


def test_negated_or_query_keeps_final_and_drops_draft(executor: LocalExecutor) -> None:
    side = ConditionSet(
        conditions=(TextCondition("draft", negate=True), TextCondition("final")),
        combination=Combination.OR,
    )
    rows = executor.q(build_content_query(side).render())
    assert [row[0] for row in rows] == ["report001"]


def test_plain_or_compiles_to_disjunction() -> None:
    fragment = _compile([TextCondition("a"), TextCondition("b")], Combination.OR)
    assert len(fragment.clauses) == 1
    assert isinstance(fragment.clauses[0], Or)
    assert fragment.clauses[0].render().startswith("(or ")


def test_exact_match_compiles_to_equality() -> None:
    fragment = _compile([TextCondition("Done", match_mode=MatchMode.EXACT)])
    assert fragment.bindings == []
    assert fragment.clauses == [Predicate("=", (CONTENT, "Done"))]


def test_tagged_reference_binds_page_by_title() -> None:
    fragment = _compile([TaggedRefCondition("TODO")])
    ref = Var("ref-page-0")
    assert fragment.bindings == [DataPattern(ref, ":node/title", "TODO")]
    assert fragment.clauses == [DataPattern(BLOCK, ":block/refs", ref)]


def test_cross_reference_binds_block_by_uid() -> None:
    fragment = _compile([CrossRefCondition("abc123xyz", negate=True)])
    ref = Var("ref-block-0")
    assert fragment.bindings == [DataPattern(ref, ":block/uid", "abc123xyz")]
    assert fragment.clauses == [Not((DataPattern(BLOCK, ":block/refs", ref),))]


def test_empty_condition_list_compiles_to_nothing() -> None:
    fragment = _compile([])
    assert fragment.all_clauses() == []


def test_content_query_returns_only_matching_block(executor: LocalExecutor) -> None:
    rows = executor.q(build_content_query(ConditionSet((TextCondition("alpha"),))).render())
    assert len(rows) == 1
    uid, content, page_title, page_uid, created, modified = rows[0]
    assert (uid, content, page_title, page_uid) == (
        "alpha0001",
        "Project Alpha",
        "Projects",
        "projects1",
    )
    assert created == modified == 1001


def test_content_query_matches_tagged_references(executor: LocalExecutor) -> None:
    rows = executor.q(build_content_query(ConditionSet((TaggedRefCondition("TODO"),))).render())
    assert [row[0] for row in rows] == ["beta00001"]
