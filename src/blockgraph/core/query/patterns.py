"""Regular-expression helpers shared by the compiler and the expander."""

import re

from loguru import logger

from blockgraph.models.condition import (
    Condition,
    CrossRefCondition,
    MatchMode,
    PatternCondition,
    TaggedRefCondition,
    TextCondition,
)

_SPECIAL_CHARS = re.compile(r"[.*+?^${}()|\[\]\\]")
_SLASH_LITERAL = re.compile(r"^/(.*)/([a-z]*)$", re.DOTALL)
_CASE_FLAG = "(?i)"


def escape_regex(text: str) -> str:
    """Escape regex metacharacters so ``text`` matches literally."""
    return _SPECIAL_CHARS.sub(r"\\\g<0>", text)


def sanitize_pattern(pattern: str) -> tuple[str, bool]:
    """Normalize a user-supplied pattern for the query engine.

    Unwraps ``/body/flags`` literals and strips a leading ``(?i)``.

    Returns:
        Tuple of (bare pattern, whether it asked for case-insensitivity).
    """
    body = pattern.strip()
    case_insensitive = False
    literal = _SLASH_LITERAL.match(body)
    if literal:
        body, flags = literal.group(1), literal.group(2)
        case_insensitive = "i" in flags
    if body.startswith(_CASE_FLAG):
        body = body[len(_CASE_FLAG) :]
        case_insensitive = True
    return body, case_insensitive


def case_insensitive(pattern: str) -> str:
    """Return ``pattern`` with exactly one leading ``(?i)`` flag.

    Matching is case-insensitive throughout, mirroring the host tool's
    search behavior.
    """
    body, _ = sanitize_pattern(pattern)
    return _CASE_FLAG + body


def contains_pattern(text: str) -> str:
    return f"{_CASE_FLAG}.*{escape_regex(text)}.*"


def _page_ref_body(title: str) -> str:
    escaped = escape_regex(title)
    return rf".*(\[\[{escaped}\]\]|#{escaped}|{escaped}::).*"


def page_ref_pattern(title: str) -> str:
    """Pattern matching ``[[title]]``, ``#title`` or ``title::`` in content."""
    return _CASE_FLAG + _page_ref_body(title)


def text_alternation(terms: list[str]) -> str:
    """Alternation of literal terms: ``(a|b|c)``."""
    return "(" + "|".join(escape_regex(t) for t in terms) + ")"


def page_ref_alternation(titles: list[str]) -> str:
    """Page-reference syntaxes for every alternative title."""
    alts = "|".join(escape_regex(t) for t in titles)
    return rf"(?:\[\[(?:{alts})\]\]|#(?:{alts})(?!\w)|(?:{alts})::)"


def _condition_part(condition: Condition) -> str:
    match condition:
        case PatternCondition(text=text):
            return sanitize_pattern(text)[0]
        case TextCondition(text=text, match_mode=MatchMode.PATTERN):
            return sanitize_pattern(text)[0]
        case TextCondition(text=text):
            return f".*{escape_regex(text)}.*"
        case TaggedRefCondition(text=text):
            return _page_ref_body(text)
        case CrossRefCondition(text=text):
            return rf".*\(\({escape_regex(text)}\)\).*"
    logger.warning("Unsupported condition for pattern conversion: {!r}", condition)
    return f".*{escape_regex(condition.text)}.*"


def conditions_to_pattern(conditions: list[Condition]) -> PatternCondition:
    """Collapse OR-combined conditions into one case-insensitive pattern.

    Used when an OR set mixes negated and positive terms: the positive terms
    become a single alternation that can be ANDed with the negated ones.
    """
    parts = [_condition_part(c) for c in conditions]
    return PatternCondition(text=f"{_CASE_FLAG}({'|'.join(parts)})")
