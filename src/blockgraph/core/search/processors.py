"""Filtering, sorting and limiting of hierarchy search results."""

import re
from collections.abc import Iterable, Sequence
from datetime import datetime

from blockgraph.config import DEFAULT_LIMIT, MAX_LIMIT
from blockgraph.models.condition import Condition, TaggedRefCondition, TextCondition
from blockgraph.models.node import SearchResult
from blockgraph.models.options import DateFilterMode, DateRange, SearchOptions, SortBy

# Daily note pages carry their date as uid: MM-DD-YYYY.
_DAILY_NOTE_UID = re.compile(r"^\d{2}-\d{2}-\d{4}$")


def is_daily_note(page_uid: str | None) -> bool:
    return page_uid is not None and _DAILY_NOTE_UID.match(page_uid) is not None


def _to_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def _in_range(timestamp: int | None, start_ms: int | None, end_ms: int | None) -> bool | None:
    """Whether ``timestamp`` lies in the range; None when there is no timestamp."""
    if not timestamp:
        return None
    if start_ms is not None and timestamp < start_ms:
        return False
    return not (end_ms is not None and timestamp > end_ms)


def filter_by_date_range(
    results: Iterable[SearchResult], date_range: DateRange | None
) -> list[SearchResult]:
    """Keep results whose created/modified time falls within ``date_range``.

    Bounds are inclusive and either may be open. Results without the
    relevant timestamp are kept.
    """
    results = list(results)
    if date_range is None or (date_range.start is None and date_range.end is None):
        return results
    start_ms = _to_ms(date_range.start) if date_range.start else None
    end_ms = _to_ms(date_range.end) if date_range.end else None

    kept = []
    for result in results:
        created = _in_range(result.created, start_ms, end_ms)
        modified = _in_range(result.modified, start_ms, end_ms)
        match date_range.filter_mode:
            case DateFilterMode.CREATED:
                keep = created is not False
            case DateFilterMode.MODIFIED:
                keep = modified is not False
            case _:
                checks = [c for c in (created, modified) if c is not None]
                keep = not checks or any(checks)
        if keep:
            kept.append(result)
    return kept


def deduplicate_by_uid(results: Iterable[SearchResult]) -> list[SearchResult]:
    """Drop repeated uids, keeping the first occurrence."""
    seen: set[str] = set()
    unique = []
    for result in results:
        if result.uid not in seen:
            seen.add(result.uid)
            unique.append(result)
    return unique


def relevance_score(result: SearchResult, conditions: Sequence[Condition]) -> float:
    """Weighted term-match score plus hierarchy bonuses.

    Per positive text or tagged-reference condition: an exact content match
    scores 10, a whole-word match 5 and a substring match 2, each times the
    condition weight. Depth adds 0.5 per level; having both children and
    parents adds 1.
    """
    content = result.content.lower()
    score = 0.0
    for condition in conditions:
        if condition.negate or not isinstance(condition, TextCondition | TaggedRefCondition):
            continue
        term = condition.text.lower().strip()
        if not term:
            continue
        if content.strip() == term:
            score += 10 * condition.weight
        elif re.search(rf"\b{re.escape(term)}\b", content):
            score += 5 * condition.weight
        elif term in content:
            score += 2 * condition.weight
    score += 0.5 * result.hierarchy_depth
    if result.children and result.parents:
        score += 1
    return score


def sort_results(
    results: Iterable[SearchResult],
    sort_by: SortBy,
    conditions: Sequence[Condition] = (),
) -> list[SearchResult]:
    results = list(results)
    match sort_by:
        case SortBy.RECENT:
            return sorted(results, key=lambda r: r.modified or 0, reverse=True)
        case SortBy.PAGE_TITLE:
            return sorted(results, key=lambda r: r.page_title.lower())
        case SortBy.HIERARCHY_DEPTH:
            return sorted(results, key=lambda r: r.hierarchy_depth, reverse=True)
    return sorted(
        results,
        key=lambda r: (relevance_score(r, conditions), r.modified or 0),
        reverse=True,
    )


def limit_results(results: Sequence[SearchResult], limit: int | None = None) -> list[SearchResult]:
    """Cap ``results`` at ``limit`` (default 50, clamped to 1..500)."""
    limit = DEFAULT_LIMIT if limit is None else max(1, min(limit, MAX_LIMIT))
    return list(results[:limit])


def filter_results(results: Iterable[SearchResult], options: SearchOptions) -> list[SearchResult]:
    """Apply every inclusion filter from ``options`` and drop duplicate uids."""
    filtered = deduplicate_by_uid(results)
    if options.exclude_block_uid:
        filtered = [r for r in filtered if r.uid != options.exclude_block_uid]
    if options.limit_to_block_uids:
        allowed = set(options.limit_to_block_uids)
        filtered = [r for r in filtered if r.uid in allowed]
    if options.limit_to_page_uids:
        pages = set(options.limit_to_page_uids)
        filtered = [r for r in filtered if r.page_uid in pages]
    if not options.include_daily:
        filtered = [r for r in filtered if not is_daily_note(r.page_uid)]
    return filter_by_date_range(filtered, options.date_range)


def finalize_results(
    results: Iterable[SearchResult],
    options: SearchOptions,
    conditions: Sequence[Condition] = (),
) -> list[SearchResult]:
    """Sort then limit."""
    ordered = sort_results(results, options.sort_by, conditions)
    return limit_results(ordered, options.effective_limit)
