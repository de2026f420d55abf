"""Semantic expansion of search conditions into alternation patterns."""

from dataclasses import replace

from loguru import logger

from blockgraph.config import MAX_EXPANSION_LEVEL
from blockgraph.core.query.patterns import page_ref_alternation, text_alternation
from blockgraph.core.search.context import SearchContext
from blockgraph.models.condition import (
    Condition,
    ExpansionStrategy,
    MatchMode,
    PatternCondition,
    TaggedRefCondition,
    TextCondition,
)

_STRATEGY_LABELS = {
    ExpansionStrategy.FUZZY: "fuzzy variants",
    ExpansionStrategy.SYNONYMS: "synonyms",
    ExpansionStrategy.RELATED_CONCEPTS: "related terms",
    ExpansionStrategy.BROADER_TERMS: "broader terms",
    ExpansionStrategy.CUSTOM: "custom expansion",
    ExpansionStrategy.ALL: "all strategies",
}

# Automatic retry passes run at this level or above.
_RETRY_LEVEL = 2


def parse_expansion_suffix(text: str) -> tuple[str, ExpansionStrategy | None, bool]:
    """Strip an expansion suffix from a condition text.

    ``term*`` asks for fuzzy variants, ``term~all`` for every strategy and
    ``term~`` for the global strategy.

    Returns:
        Tuple of (clean text, suffix strategy, whether a suffix was present).
        The strategy is None for the bare ``~`` suffix.
    """
    if text.endswith("~all") and len(text) > 4:
        return text[:-4].rstrip(), ExpansionStrategy.ALL, True
    if text.endswith("*") and len(text) > 1:
        return text[:-1].rstrip(), ExpansionStrategy.FUZZY, True
    if text.endswith("~") and len(text) > 1:
        return text[:-1].rstrip(), None, True
    return text, None, False


def _effective_strategy(
    condition: TextCondition | TaggedRefCondition,
    suffix_strategy: ExpansionStrategy | None,
    suffix_requested: bool,
    ctx: SearchContext,
) -> ExpansionStrategy | None:
    state = ctx.state
    global_strategy = state.semantic_expansion or ExpansionStrategy.SYNONYMS
    if suffix_strategy is not None:
        return suffix_strategy
    if suffix_requested:
        return global_strategy
    if condition.expansion is not None:
        return condition.expansion
    if state.is_expansion_global or state.expansion_level >= _RETRY_LEVEL:
        return global_strategy
    return None


def _expandable(condition: Condition) -> bool:
    if isinstance(condition, TextCondition):
        return condition.match_mode is not MatchMode.PATTERN
    return isinstance(condition, TaggedRefCondition)


def _level_exceeded(ctx: SearchContext) -> bool:
    level = ctx.state.expansion_level
    if level > MAX_EXPANSION_LEVEL:
        logger.warning(
            "Expansion level {} exceeds {}; leaving conditions unchanged",
            level,
            MAX_EXPANSION_LEVEL,
        )
        return True
    return False


def cache_key(text: str, strategy: ExpansionStrategy, mode: str, user_query: str | None) -> str:
    return f"single|{text}|{strategy}|{mode}|{user_query or ''}"


async def _generate(
    text: str, strategy: ExpansionStrategy, mode: str, ctx: SearchContext
) -> list[str] | None:
    state = ctx.state
    key = cache_key(text, strategy, mode, state.user_query)
    if key in state.expansion_cache:
        return state.expansion_cache[key]
    if ctx.generate_expansions is None:
        logger.debug("No expansion generator configured; keeping {!r}", text)
        return None

    if not state.expansion_notice_shown:
        state.expansion_notice_shown = True
        ctx.progress(f"Expanding search terms ({_STRATEGY_LABELS[strategy]})...")
    try:
        terms = await ctx.generate_expansions(
            text, strategy.value, state.user_query, state.model, state.language
        )
    except Exception as e:
        logger.warning("Semantic expansion failed for {!r} ({}): {}", text, strategy, e)
        # Cached so the failing term is not requested again.
        terms = []
    state.expansion_cache[key] = list(terms)
    return state.expansion_cache[key]


async def expand_condition(condition: Condition, ctx: SearchContext) -> list[Condition]:
    """Expand one condition.

    Text and tagged-reference conditions that request expansion are replaced
    by a single PatternCondition alternating the original term with its
    expansions. Negation and weight carry over. Any failure keeps the
    (suffix-stripped) original.
    """
    state = ctx.state
    if _level_exceeded(ctx) or not _expandable(condition):
        return [condition]

    text, suffix_strategy, suffix_requested = parse_expansion_suffix(condition.text)
    cleaned = replace(condition, text=text) if suffix_requested else condition
    if state.disable_semantic_expansion:
        return [cleaned]

    strategy = _effective_strategy(condition, suffix_strategy, suffix_requested, ctx)
    if strategy is None:
        return [cleaned]

    mode = "page_ref" if isinstance(condition, TaggedRefCondition) else "text"
    terms = await _generate(text, strategy, mode, ctx)
    if not terms:
        return [cleaned]

    alternatives = list(dict.fromkeys(t.strip() for t in [text, *terms] if t and t.strip()))
    if len(alternatives) < 2:
        return [cleaned]

    if mode == "page_ref":
        pattern = page_ref_alternation(alternatives)
    else:
        pattern = text_alternation(alternatives)
    ctx.progress(
        f'Expanded "{text}" ({_STRATEGY_LABELS[strategy]}) → {", ".join(alternatives[1:])}'
    )
    return [PatternCondition(text=pattern, negate=condition.negate, weight=condition.weight)]


async def expand_conditions(conditions: list[Condition], ctx: SearchContext) -> list[Condition]:
    """Expand conditions one at a time so repeated terms hit the cache."""
    state = ctx.state
    if _level_exceeded(ctx):
        return conditions
    wants_expansion = (
        state.is_expansion_global
        or state.expansion_level >= _RETRY_LEVEL
        or any(_requests_expansion(c) for c in conditions)
    )
    if not wants_expansion:
        return conditions

    expanded: list[Condition] = []
    for condition in conditions:
        expanded.extend(await expand_condition(condition, ctx))
    return expanded


def _requests_expansion(condition: Condition) -> bool:
    if not _expandable(condition):
        return False
    return condition.expansion is not None or parse_expansion_suffix(condition.text)[2]

