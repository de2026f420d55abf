"""Tests for the hierarchical expression parser."""

import pytest

from blockgraph.core.search.expression import (
    default_depth,
    parse_hierarchical_expression,
    parse_operand,
    parse_term,
)
from blockgraph.models.condition import (
    Combination,
    CrossRefCondition,
    Operator,
    PatternCondition,
    TaggedRefCondition,
    TextCondition,
)


@pytest.mark.parametrize(
    ("expression", "operator"),
    [
        ("a > b", Operator.DIRECT),
        ("a >> b", Operator.DEEP),
        ("a < b", Operator.INVERSE_DIRECT),
        ("a << b", Operator.INVERSE_DEEP),
        ("a => b", Operator.FLEXIBLE),
        ("a <= b", Operator.INVERSE_FLEXIBLE),
        ("a =>> b", Operator.DEEP_FLEXIBLE),
        ("a <<= b", Operator.INVERSE_DEEP_FLEXIBLE),
        ("a <=> b", Operator.BIDIRECTIONAL),
        ("a <<=>> b", Operator.DEEP_BIDIRECTIONAL),
    ],
)
def test_parse_recognizes_every_operator(expression: str, operator: Operator) -> None:
    condition = parse_hierarchical_expression(expression)
    assert condition.operator is operator
    assert condition.left_conditions == (TextCondition("a"),)
    assert condition.right_conditions == (TextCondition("b"),)


def test_parse_sets_default_depth_per_operator() -> None:
    assert parse_hierarchical_expression("a > b").max_depth == 1
    assert parse_hierarchical_expression("a >> b").max_depth == 3
    assert parse_hierarchical_expression("a <<=>> b").max_depth == 5
    assert default_depth(Operator.INVERSE_DEEP_FLEXIBLE) == 3


def test_parse_combines_terms_per_side() -> None:
    condition = parse_hierarchical_expression("Project + Alpha > deadline | due | -done")
    assert condition.left_combination is Combination.AND
    assert condition.left_conditions == (TextCondition("Project"), TextCondition("Alpha"))
    assert condition.right_combination is Combination.OR
    assert condition.right_conditions == (
        TextCondition("deadline"),
        TextCondition("due"),
        TextCondition("done", negate=True),
    )


def test_parse_ignores_operators_inside_protected_spans() -> None:
    condition = parse_hierarchical_expression('"a > b" + [[x|y]] <=> regex:/c>d/i')
    assert condition.operator is Operator.BIDIRECTIONAL
    assert condition.left_conditions == (TextCondition("a > b"), TaggedRefCondition("x|y"))
    assert condition.right_conditions == (PatternCondition("/c>d/i"),)


def test_parse_strips_wrapping_parentheses() -> None:
    condition = parse_hierarchical_expression("(a + b) > ((c))")
    assert condition.left_conditions == (TextCondition("a"), TextCondition("b"))
    assert condition.right_conditions == (CrossRefCondition("c"),)


def test_parse_without_operator_raises() -> None:
    with pytest.raises(ValueError, match="No hierarchy operator"):
        parse_hierarchical_expression("just words")


def test_parse_operand_rejects_mixed_combinations() -> None:
    with pytest.raises(ValueError, match="Cannot mix"):
        parse_operand("a + b | c")


def test_parse_operand_rejects_empty_side() -> None:
    with pytest.raises(ValueError, match="Empty side"):
        parse_operand("  ")


@pytest.mark.parametrize(
    ("term", "expected"),
    [
        ("ref:Project X", TaggedRefCondition("Project X")),
        ("[[Project X]]", TaggedRefCondition("Project X")),
        ("#todo", TaggedRefCondition("todo")),
        ("#[[long tag]]", TaggedRefCondition("long tag")),
        ("((abc123xyz))", CrossRefCondition("abc123xyz")),
        ("regex:^due", PatternCondition("^due")),
        ("text:#not-a-tag", TextCondition("#not-a-tag")),
        ('-"final draft"', TextCondition("final draft", negate=True)),
        ("-[[Archive]]", TaggedRefCondition("Archive", negate=True)),
        ("car*", TextCondition("car*")),
    ],
)
def test_parse_term(term: str, expected: object) -> None:
    assert parse_term(term) == expected


def test_parse_term_rejects_empty_quotes() -> None:
    with pytest.raises(ValueError, match="Empty search term"):
        parse_term('""')
