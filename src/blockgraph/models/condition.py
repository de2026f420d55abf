"""Search conditions and hierarchy conditions.

Conditions form a closed union: every consumer matches on the concrete
class, so adding a kind means touching the compiler, the expander and the
relevance scorer.
"""

from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class MatchMode(StrEnum):
    EXACT = "exact"
    CONTAINS = "contains"
    PATTERN = "pattern"


class Combination(StrEnum):
    AND = "AND"
    OR = "OR"


class ExpansionStrategy(StrEnum):
    FUZZY = "fuzzy"
    SYNONYMS = "synonyms"
    RELATED_CONCEPTS = "related_concepts"
    BROADER_TERMS = "broader_terms"
    CUSTOM = "custom"
    ALL = "all"


class Operator(StrEnum):
    """The ten relational operators between left and right condition sets."""

    DIRECT = ">"
    DEEP = ">>"
    INVERSE_DIRECT = "<"
    INVERSE_DEEP = "<<"
    FLEXIBLE = "=>"
    INVERSE_FLEXIBLE = "<="
    DEEP_FLEXIBLE = "=>>"
    INVERSE_DEEP_FLEXIBLE = "<<="
    BIDIRECTIONAL = "<=>"
    DEEP_BIDIRECTIONAL = "<<=>>"

    @property
    def is_deep(self) -> bool:
        return self in _DEEP_OPERATORS

    @property
    def is_bidirectional(self) -> bool:
        return self in (Operator.BIDIRECTIONAL, Operator.DEEP_BIDIRECTIONAL)


_DEEP_OPERATORS = frozenset(
    {
        Operator.DEEP,
        Operator.INVERSE_DEEP,
        Operator.DEEP_FLEXIBLE,
        Operator.INVERSE_DEEP_FLEXIBLE,
        Operator.DEEP_BIDIRECTIONAL,
    }
)


@dataclass(frozen=True)
class TextCondition:
    """Free-text match against block content."""

    text: str
    match_mode: MatchMode = MatchMode.CONTAINS
    negate: bool = False
    weight: float = 1.0
    expansion: ExpansionStrategy | None = None


@dataclass(frozen=True)
class TaggedRefCondition:
    """Block references a page by title ([[Title]], #Title or Title::)."""

    text: str
    negate: bool = False
    weight: float = 1.0
    expansion: ExpansionStrategy | None = None


@dataclass(frozen=True)
class CrossRefCondition:
    """Block references another block by UID (((uid)))."""

    text: str
    negate: bool = False
    weight: float = 1.0


@dataclass(frozen=True)
class PatternCondition:
    """Raw regular expression matched against block content."""

    text: str
    negate: bool = False
    weight: float = 1.0


Condition = TextCondition | TaggedRefCondition | CrossRefCondition | PatternCondition


@dataclass(frozen=True)
class ConditionSet:
    """A flat, normalized condition list for one side of a hierarchy search."""

    conditions: tuple[Condition, ...]
    combination: Combination = Combination.AND

    @property
    def positive(self) -> tuple[Condition, ...]:
        return tuple(c for c in self.conditions if not c.negate)

    @property
    def negated(self) -> tuple[Condition, ...]:
        return tuple(c for c in self.conditions if c.negate)

    def __bool__(self) -> bool:
        return bool(self.conditions)


@dataclass(frozen=True)
class ConditionGroup:
    """Conditions combined internally with one combination."""

    conditions: tuple[Condition, ...]
    combination: Combination = Combination.AND


@dataclass(frozen=True)
class HierarchyCondition:
    """Operator plus left/right condition sets.

    Each side carries either a flat condition list or condition groups,
    never both.
    """

    operator: Operator | str | None
    left_conditions: tuple[Condition, ...] = ()
    left_combination: Combination = Combination.AND
    right_conditions: tuple[Condition, ...] = ()
    right_combination: Combination = Combination.AND
    left_groups: tuple[ConditionGroup, ...] = ()
    left_group_combination: Combination = Combination.AND
    right_groups: tuple[ConditionGroup, ...] = ()
    right_group_combination: Combination = Combination.AND
    max_depth: int | None = None

    def swapped(self) -> "HierarchyCondition":
        """Return the condition with left and right sides exchanged."""
        return HierarchyCondition(
            operator=self.operator,
            left_conditions=self.right_conditions,
            left_combination=self.right_combination,
            right_conditions=self.left_conditions,
            right_combination=self.left_combination,
            left_groups=self.right_groups,
            left_group_combination=self.right_group_combination,
            right_groups=self.left_groups,
            right_group_combination=self.left_group_combination,
            max_depth=self.max_depth,
        )


# --- Parsing from the wire format (camelCase JSON from the agent layer) ---

_KIND_ALIASES = {
    "text": "text",
    "page_ref": "tagged_reference",
    "tagged_reference": "tagged_reference",
    "block_ref": "cross_reference",
    "cross_reference": "cross_reference",
    "regex": "pattern",
    "pattern": "pattern",
}

_MATCH_ALIASES = {
    "exact": MatchMode.EXACT,
    "contains": MatchMode.CONTAINS,
    "regex": MatchMode.PATTERN,
    "pattern": MatchMode.PATTERN,
}


def _get(data: dict[str, Any], camel: str, snake: str, default: Any = None) -> Any:
    if camel in data:
        return data[camel]
    return data.get(snake, default)


def _parse_expansion(value: Any) -> ExpansionStrategy | None:
    if not value:
        return None
    try:
        return ExpansionStrategy(value)
    except ValueError:
        msg = f"Unknown semantic expansion strategy: {value!r}"
        raise ValueError(msg) from None


def parse_combination(value: Any) -> Combination:
    if value is None:
        return Combination.AND
    try:
        return Combination(str(value).upper())
    except ValueError:
        msg = f"Unknown combination: {value!r}"
        raise ValueError(msg) from None


def condition_from_dict(data: dict[str, Any]) -> Condition:
    """Build a Condition from its wire representation.

    Raises:
        ValueError: On a missing text, unknown kind or unknown match type.
    """
    text = data.get("text")
    if not isinstance(text, str) or not text:
        msg = f"Condition requires a non-empty text: {data!r}"
        raise ValueError(msg)

    raw_kind = data.get("type", data.get("kind", "text"))
    kind = _KIND_ALIASES.get(raw_kind)
    if kind is None:
        msg = f"Unknown condition type: {raw_kind!r}"
        raise ValueError(msg)

    raw_match = _get(data, "matchType", "match_mode", "contains")
    match_mode = _MATCH_ALIASES.get(raw_match)
    if match_mode is None:
        msg = f"Unknown match type: {raw_match!r}"
        raise ValueError(msg)

    negate = bool(data.get("negate", False))
    weight = float(data.get("weight") or 1.0)
    expansion = _parse_expansion(_get(data, "semanticExpansion", "expansion"))

    if kind == "tagged_reference":
        return TaggedRefCondition(text=text, negate=negate, weight=weight, expansion=expansion)
    if kind == "cross_reference":
        return CrossRefCondition(text=text, negate=negate, weight=weight)
    if kind == "pattern" or match_mode is MatchMode.PATTERN:
        return PatternCondition(text=text, negate=negate, weight=weight)
    return TextCondition(
        text=text, match_mode=match_mode, negate=negate, weight=weight, expansion=expansion
    )


def _parse_conditions(raw: Any) -> tuple[Condition, ...]:
    if not raw:
        return ()
    if len(raw) > 10:
        msg = f"At most 10 conditions per side, got {len(raw)}"
        raise ValueError(msg)
    return tuple(condition_from_dict(c) for c in raw)


def _parse_groups(raw: Any) -> tuple[ConditionGroup, ...]:
    if not raw:
        return ()
    if len(raw) > 5:
        msg = f"At most 5 condition groups per side, got {len(raw)}"
        raise ValueError(msg)
    groups = []
    for group in raw:
        conditions = tuple(condition_from_dict(c) for c in group.get("conditions", []))
        if not 1 <= len(conditions) <= 5:
            msg = f"A condition group needs 1-5 conditions, got {len(conditions)}"
            raise ValueError(msg)
        groups.append(
            ConditionGroup(
                conditions=conditions,
                combination=parse_combination(group.get("combination")),
            )
        )
    return tuple(groups)


def hierarchy_condition_from_dict(data: dict[str, Any]) -> HierarchyCondition:
    """Build a HierarchyCondition from its wire representation.

    A missing operator is kept as ``None`` and an unknown one as its raw
    string, so the dispatcher can degrade to an empty result instead of
    failing.
    """
    raw_operator = data.get("operator")
    operator: Operator | str | None = raw_operator or None
    if raw_operator in {op.value for op in Operator}:
        operator = Operator(raw_operator)

    max_depth = _get(data, "maxDepth", "max_depth")
    return HierarchyCondition(
        operator=operator,
        left_conditions=_parse_conditions(_get(data, "leftConditions", "left_conditions")),
        left_combination=parse_combination(_get(data, "leftCombination", "left_combination")),
        right_conditions=_parse_conditions(_get(data, "rightConditions", "right_conditions")),
        right_combination=parse_combination(
            _get(data, "rightCombination", "right_combination")
        ),
        left_groups=_parse_groups(_get(data, "leftConditionGroups", "left_groups")),
        left_group_combination=parse_combination(
            _get(data, "leftGroupCombination", "left_group_combination")
        ),
        right_groups=_parse_groups(_get(data, "rightConditionGroups", "right_groups")),
        right_group_combination=parse_combination(
            _get(data, "rightGroupCombination", "right_group_combination")
        ),
        max_depth=int(max_depth) if max_depth is not None else None,
    )
