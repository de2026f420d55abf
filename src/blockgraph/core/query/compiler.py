"""Compile condition sets into Datalog query fragments."""

from loguru import logger

from blockgraph.core.query.builder import (
    Clause,
    DataPattern,
    FnBinding,
    Not,
    Or,
    Predicate,
    QueryFragment,
    Var,
    VariableNamer,
)
from blockgraph.core.query.patterns import case_insensitive, conditions_to_pattern, contains_pattern
from blockgraph.models.condition import (
    Combination,
    Condition,
    CrossRefCondition,
    MatchMode,
    PatternCondition,
    TaggedRefCondition,
    TextCondition,
)


def apply_or_to_pattern(
    conditions: list[Condition], combination: Combination
) -> tuple[list[Condition], Combination]:
    """Rewrite an OR set that mixes negated and positive conditions.

    The positive conditions collapse into one pattern condition which is then
    ANDed with the negated ones. Other inputs are returned unchanged.
    """
    if combination is not Combination.OR:
        return conditions, combination
    negated = [c for c in conditions if c.negate]
    positive = [c for c in conditions if not c.negate]
    if not negated or not positive:
        return conditions, combination
    logger.debug(
        "Converting {} OR conditions to a pattern alongside {} negations",
        len(positive),
        len(negated),
    )
    return [conditions_to_pattern(positive), *negated], Combination.AND


def compile_condition(
    condition: Condition,
    *,
    block_var: Var,
    content_var: Var,
    namer: VariableNamer,
) -> tuple[list[Clause], Clause]:
    """Compile one condition, ignoring its negation.

    Returns:
        Tuple of (binding clauses, match clause). Bindings resolve pattern
        objects or referenced entities; the match clause tests the block.
    """
    match condition:
        case TextCondition(text=text, match_mode=MatchMode.EXACT):
            return [], Predicate("=", (content_var, text))
        case TextCondition(text=text, match_mode=MatchMode.CONTAINS):
            pattern_var = namer.fresh("pattern")
            binding = FnBinding("re-pattern", (contains_pattern(text),), pattern_var)
            return [binding], Predicate("re-find", (pattern_var, content_var))
        case TextCondition(text=text) | PatternCondition(text=text):
            pattern_var = namer.fresh("pattern")
            binding = FnBinding("re-pattern", (case_insensitive(text),), pattern_var)
            return [binding], Predicate("re-find", (pattern_var, content_var))
        case TaggedRefCondition(text=title):
            ref_var = namer.fresh("ref-page")
            binding = DataPattern(ref_var, ":node/title", title)
            return [binding], DataPattern(block_var, ":block/refs", ref_var)
        case CrossRefCondition(text=uid):
            ref_var = namer.fresh("ref-block")
            binding = DataPattern(ref_var, ":block/uid", uid)
            return [binding], DataPattern(block_var, ":block/refs", ref_var)
    msg = f"Unsupported condition: {condition!r}"
    raise TypeError(msg)


def compile_conditions(
    conditions: list[Condition],
    combination: Combination,
    *,
    block_var: Var,
    content_var: Var,
    namer: VariableNamer,
) -> QueryFragment:
    """Compile a condition set against one block variable.

    Args:
        conditions: Conditions to compile.
        combination: How the conditions combine.
        block_var: Entity variable of the block being tested.
        content_var: Variable bound to that block's ``:block/string``.
        namer: Variable namer shared by the whole query.

    Returns:
        QueryFragment with hoisted bindings and match clauses. Negation only
        ever wraps a match clause, never its binding.
    """
    fragment = QueryFragment()
    if not conditions:
        return fragment

    conditions, combination = apply_or_to_pattern(conditions, combination)

    compiled: list[tuple[Condition, Clause]] = []
    for condition in conditions:
        try:
            bindings, match_clause = compile_condition(
                condition, block_var=block_var, content_var=content_var, namer=namer
            )
        except TypeError:
            logger.warning("Skipping unsupported condition {!r}", condition)
            continue
        fragment.bindings.extend(bindings)
        compiled.append((condition, match_clause))

    if combination is Combination.AND or len(compiled) == 1:
        for condition, match_clause in compiled:
            fragment.clauses.append(Not((match_clause,)) if condition.negate else match_clause)
    else:
        # Bindings stay hoisted above the disjunction; only matches go inside.
        branches = tuple(
            Not((match_clause,)) if condition.negate else match_clause
            for condition, match_clause in compiled
        )
        fragment.clauses.append(Or(branches))
    return fragment
