"""Parser for compact hierarchical expressions such as ``A + B > C | -D``."""

import re

from blockgraph.models.condition import (
    Combination,
    Condition,
    CrossRefCondition,
    HierarchyCondition,
    Operator,
    PatternCondition,
    TaggedRefCondition,
    TextCondition,
)

# Longer operators first so "<=>" is never read as "<=" or "=>".
OPERATOR_PRECEDENCE: tuple[Operator, ...] = (
    Operator.DEEP_BIDIRECTIONAL,
    Operator.BIDIRECTIONAL,
    Operator.INVERSE_DEEP_FLEXIBLE,
    Operator.DEEP_FLEXIBLE,
    Operator.DEEP,
    Operator.INVERSE_DEEP,
    Operator.FLEXIBLE,
    Operator.INVERSE_FLEXIBLE,
    Operator.DIRECT,
    Operator.INVERSE_DIRECT,
)

_PAGE_LINK = re.compile(r"^\[\[(.+)\]\]$")
_TAG = re.compile(r"^#(?:\[\[(.+)\]\]|(\S+))$")
_BLOCK_REF = re.compile(r"^\(\((.+)\)\)$")


def default_depth(operator: Operator) -> int:
    if operator is Operator.DEEP_BIDIRECTIONAL:
        return 5
    return 3 if operator.is_deep else 1


def _protected_spans(text: str) -> list[tuple[int, int]]:
    """Spans of quoted strings, page links, block refs and regex literals."""
    spans = []
    for pattern in (r'"[^"]*"', r"\[\[.*?\]\]", r"\(\(.*?\)\)", r"regex:/.*?/[a-z]*"):
        spans.extend(m.span() for m in re.finditer(pattern, text))
    return spans


def _find_unprotected(text: str, token: str, start: int = 0) -> int:
    spans = _protected_spans(text)
    index = text.find(token, start)
    while index != -1:
        if not any(lo <= index < hi for lo, hi in spans):
            return index
        index = text.find(token, index + 1)
    return -1


def _split_unprotected(text: str, separator: str) -> list[str]:
    parts = []
    start = 0
    index = _find_unprotected(text, separator)
    while index != -1:
        parts.append(text[start:index])
        start = index + len(separator)
        index = _find_unprotected(text, separator, start)
    parts.append(text[start:])
    return parts


def _wrapped_in_parens(text: str) -> bool:
    """Whether the opening parenthesis at 0 closes at the last character."""
    if not (text.startswith("(") and text.endswith(")")) or _BLOCK_REF.match(text):
        return False
    depth = 0
    for i, ch in enumerate(text):
        depth += {"(": 1, ")": -1}.get(ch, 0)
        if depth == 0:
            return i == len(text) - 1
    return False


def _strip_wrapping(text: str) -> str:
    text = text.strip()
    while _wrapped_in_parens(text):
        text = text[1:-1].strip()
    return text


def parse_term(term: str) -> Condition:
    """Parse one operand term into a condition.

    Supports ``-`` negation, ``ref:``/``[[...]]``/``#tag`` page references,
    ``((uid))`` block references, ``regex:/p/flags`` patterns and a
    ``text:`` prefix. Surrounding quotes are stripped.
    """
    term = term.strip()
    negate = term.startswith("-") and len(term) > 1
    if negate:
        term = term[1:].strip()
    if len(term) >= 2 and term[0] == term[-1] == '"':
        term = term[1:-1]
    if not term:
        msg = "Empty search term in expression"
        raise ValueError(msg)

    if term.startswith("ref:"):
        return TaggedRefCondition(text=term[4:].strip(), negate=negate)
    if term.startswith("regex:"):
        return PatternCondition(text=term[6:].strip(), negate=negate)
    if term.startswith("text:"):
        return TextCondition(text=term[5:].strip(), negate=negate)
    if link := _PAGE_LINK.match(term):
        return TaggedRefCondition(text=link.group(1), negate=negate)
    if tag := _TAG.match(term):
        return TaggedRefCondition(text=tag.group(1) or tag.group(2), negate=negate)
    if block_ref := _BLOCK_REF.match(term):
        return CrossRefCondition(text=block_ref.group(1), negate=negate)
    return TextCondition(text=term, negate=negate)


def parse_operand(operand: str) -> tuple[tuple[Condition, ...], Combination]:
    """Parse one side of an expression into conditions and their combination.

    Raises:
        ValueError: When the side is empty or mixes ``+`` and ``|``.
    """
    operand = _strip_wrapping(operand)
    if not operand:
        msg = "Empty side in hierarchical expression"
        raise ValueError(msg)
    has_and = _find_unprotected(operand, "+") != -1
    has_or = _find_unprotected(operand, "|") != -1
    if has_and and has_or:
        msg = f"Cannot mix '+' and '|' in one side: {operand!r}"
        raise ValueError(msg)
    if has_or:
        terms = _split_unprotected(operand, "|")
        return tuple(parse_term(t) for t in terms), Combination.OR
    terms = _split_unprotected(operand, "+")
    return tuple(parse_term(t) for t in terms), Combination.AND


def parse_hierarchical_expression(expression: str) -> HierarchyCondition:
    """Parse ``left OP right`` into a HierarchyCondition.

    Raises:
        ValueError: When no operator is found or a side cannot be parsed.
    """
    for operator in OPERATOR_PRECEDENCE:
        index = _find_unprotected(expression, operator.value)
        if index == -1:
            continue
        left_conditions, left_combination = parse_operand(expression[:index])
        right_conditions, right_combination = parse_operand(
            expression[index + len(operator.value) :]
        )
        return HierarchyCondition(
            operator=operator,
            left_conditions=left_conditions,
            left_combination=left_combination,
            right_conditions=right_conditions,
            right_combination=right_combination,
            max_depth=default_depth(operator),
        )
    msg = f"No hierarchy operator found in expression: {expression!r}"
    raise ValueError(msg)
