"""Agent-facing hierarchy search tool.

Accepts the camelCase wire payload used by the agent layer and always
returns ``{success, data, error, metadata}``; failures never propagate.
"""

from collections.abc import Callable
from dataclasses import replace
from typing import Any

from loguru import logger

from blockgraph.core.search.context import HierarchyCounts, SearchContext, SearchState
from blockgraph.core.search.dispatcher import HierarchySearchRequest, find_blocks_with_hierarchy
from blockgraph.models.condition import ExpansionStrategy, hierarchy_condition_from_dict
from blockgraph.models.node import SearchResult
from blockgraph.models.options import DateRange, Purpose, SearchOptions, SortBy
from blockgraph.protocols import ExpansionGenerator, QueryExecutor

TOOL_NAME = "findBlocksWithHierarchy"

# Automatic expansion modes that turn global expansion on from the start.
_ALWAYS_MODES = {
    "always_fuzzy": ExpansionStrategy.FUZZY,
    "always_synonyms": ExpansionStrategy.SYNONYMS,
    "always_all": ExpansionStrategy.ALL,
}
AUTO_UNTIL_RESULT = "auto_until_result"
# Strategies tried in order when a search comes back empty.
ESCALATION: tuple[ExpansionStrategy, ...] = (
    ExpansionStrategy.FUZZY,
    ExpansionStrategy.SYNONYMS,
    ExpansionStrategy.RELATED_CONCEPTS,
    ExpansionStrategy.BROADER_TERMS,
)
_RETRY_LEVEL = 2


def _get(data: dict[str, Any], camel: str, snake: str, default: Any = None) -> Any:
    if camel in data:
        return data[camel]
    return data.get(snake, default)


def request_from_dict(payload: dict[str, Any]) -> HierarchySearchRequest:
    raw_condition = _get(payload, "hierarchyCondition", "hierarchy_condition")
    return HierarchySearchRequest(
        hierarchy_condition=hierarchy_condition_from_dict(raw_condition) if raw_condition else None,
        hierarchical_expression=_get(payload, "hierarchicalExpression", "hierarchical_expression"),
    )


def options_from_dict(payload: dict[str, Any]) -> SearchOptions:
    """Build SearchOptions from the wire payload.

    Raises:
        ValueError: On an unknown sort order, purpose or date format.
    """
    raw_range = _get(payload, "dateRange", "date_range")
    max_depth = _get(payload, "maxDepth", "max_depth")
    defaults = SearchOptions()
    options = SearchOptions(
        limit=int(payload.get("limit") or defaults.limit),
        sort_by=SortBy(_get(payload, "sortBy", "sort_by", defaults.sort_by)),
        max_depth=int(max_depth) if max_depth is not None else None,
        exclude_block_uid=_get(payload, "excludeBlockUid", "exclude_block_uid"),
        date_range=DateRange.from_dict(raw_range) if raw_range else None,
        include_daily=bool(_get(payload, "includeDaily", "include_daily", True)),
        include_children=bool(_get(payload, "includeChildren", "include_children", False)),
        child_depth=int(_get(payload, "childDepth", "child_depth", 1)),
        include_parents=bool(_get(payload, "includeParents", "include_parents", False)),
        parent_depth=int(_get(payload, "parentDepth", "parent_depth", 1)),
        limit_to_block_uids=tuple(_get(payload, "limitToBlockUids", "limit_to_block_uids") or ()),
        limit_to_page_uids=tuple(_get(payload, "limitToPageUids", "limit_to_page_uids") or ()),
        secure_mode=bool(_get(payload, "secureMode", "secure_mode", False)),
        purpose=Purpose(payload.get("purpose") or defaults.purpose),
    )
    if options.secure_mode:
        # Secure mode never returns surrounding blocks.
        options = replace(
            options, include_children=False, child_depth=1, include_parents=False, parent_depth=1
        )
    return options


def result_to_dict(result: SearchResult, *, secure_mode: bool = False) -> dict[str, Any]:
    """JSON-ready dict for a result; secure mode leaves out block content."""
    out: dict[str, Any] = {
        "uid": result.uid,
        "pageTitle": result.page_title,
        "pageUid": result.page_uid,
        "created": result.created,
        "modified": result.modified,
        "hierarchyDepth": result.hierarchy_depth,
        "isPage": result.is_page,
        "matchType": result.match_type,
    }
    if not secure_mode:
        out["content"] = result.content
    if result.child_uid is not None:
        out["childUid"] = result.child_uid
        out["childPageTitle"] = result.child_page_title
        if not secure_mode:
            out["childContent"] = result.child_content
    if result.matched_child_uids:
        out["matchedChildUids"] = list(result.matched_child_uids)
    if result.parent_uid is not None:
        out["parentUid"] = result.parent_uid
        if not secure_mode:
            out["parentContent"] = result.parent_content
    if result.children:
        out["children"] = [result_to_dict(c, secure_mode=secure_mode) for c in result.children]
    if result.parents:
        out["parents"] = [result_to_dict(p, secure_mode=secure_mode) for p in result.parents]
    return out


async def find_blocks_with_hierarchy_tool(
    payload: dict[str, Any],
    *,
    executor: QueryExecutor,
    state: SearchState | None = None,
    generate_expansions: ExpansionGenerator | None = None,
    on_progress: Callable[[str], None] | None = None,
) -> dict[str, Any]:
    """Run a hierarchy search from a wire payload.

    Args:
        payload: ``hierarchyCondition`` or ``hierarchicalExpression`` plus
            options (``limit``, ``sortBy``, ``maxDepth``, ``dateRange``, ...).
        executor: Fact-store query executor.
        state: Caller-owned execution state; a fresh one when omitted.
        generate_expansions: Semantic expansion function.
        on_progress: Progress message callback.

    Returns:
        Dict with ``success``, ``data`` (result dicts), ``error`` and
        ``metadata``.
    """
    state = state or SearchState()
    try:
        request = request_from_dict(payload)
        options = options_from_dict(payload)

        mode = state.automatic_expansion_mode
        if mode in _ALWAYS_MODES:
            state = replace(state, is_expansion_global=True, semantic_expansion=_ALWAYS_MODES[mode])

        ctx = SearchContext(
            executor=executor,
            state=state,
            options=options,
            generate_expansions=generate_expansions,
        )
        if on_progress is not None:
            ctx.on_progress = on_progress

        results = await find_blocks_with_hierarchy(request, ctx)
        applied: ExpansionStrategy | None = None
        if state.is_expansion_global:
            applied = state.semantic_expansion or ExpansionStrategy.SYNONYMS

        if not results and mode == AUTO_UNTIL_RESULT and not state.is_expansion_global:
            for strategy in ESCALATION:
                ctx.progress(f"No results yet; retrying with {strategy.value} expansion")
                retry_ctx = replace(
                    ctx.with_state(
                        is_expansion_global=True,
                        semantic_expansion=strategy,
                        expansion_level=_RETRY_LEVEL,
                    ),
                    counts=HierarchyCounts(),
                )
                results = await find_blocks_with_hierarchy(request, retry_ctx)
                ctx = retry_ctx
                if results:
                    applied = strategy
                    break
    except Exception as e:
        logger.exception("{} failed", TOOL_NAME)
        return {
            "success": False,
            "data": [],
            "error": str(e),
            "metadata": {"toolName": TOOL_NAME},
        }

    return {
        "success": True,
        "data": [result_to_dict(r, secure_mode=options.secure_mode) for r in results],
        "error": None,
        "metadata": {
            "toolName": TOOL_NAME,
            "totalFound": len(results),
            "purpose": options.purpose.value,
            "secureMode": options.secure_mode,
            "expansionApplied": applied.value if applied else None,
            "counts": ctx.counts.as_dict(),
        },
    }
