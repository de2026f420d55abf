"""Query builders shared by the hierarchy search strategies.

Every block a query returns is projected as
``uid, content, page_title, page_uid, created, modified``. Clauses are
ordered bindings first, then the block's content and match clauses, then the
structural joins, which keeps intermediate result sets small.
"""

import inspect
from dataclasses import dataclass
from typing import Any

from loguru import logger

from blockgraph.core.query.builder import (
    Clause,
    DataPattern,
    Query,
    QueryFragment,
    Var,
    VariableNamer,
)
from blockgraph.core.query.compiler import compile_conditions
from blockgraph.models.condition import Combination, ConditionSet
from blockgraph.models.node import SearchResult
from blockgraph.protocols import QueryExecutor

BLOCK_COLUMNS = 6


@dataclass(frozen=True)
class BlockVars:
    """Variables describing one block in a query."""

    block: Var
    uid: Var
    content: Var
    page: Var
    page_title: Var
    page_uid: Var
    created: Var
    modified: Var

    @classmethod
    def fresh(cls, namer: VariableNamer, stem: str) -> "BlockVars":
        return cls(
            block=namer.fresh(stem),
            uid=namer.fresh(f"{stem}-uid"),
            content=namer.fresh(f"{stem}-content"),
            page=namer.fresh(f"{stem}-page"),
            page_title=namer.fresh(f"{stem}-page-title"),
            page_uid=namer.fresh(f"{stem}-page-uid"),
            created=namer.fresh(f"{stem}-created"),
            modified=namer.fresh(f"{stem}-modified"),
        )

    def projection(self) -> tuple[Var, ...]:
        return (
            self.uid,
            self.content,
            self.page_title,
            self.page_uid,
            self.created,
            self.modified,
        )

    def content_clause(self) -> Clause:
        return DataPattern(self.block, ":block/string", self.content)

    def structure_clauses(self) -> list[Clause]:
        return [
            DataPattern(self.block, ":block/uid", self.uid),
            DataPattern(self.block, ":block/page", self.page),
            DataPattern(self.page, ":node/title", self.page_title),
            DataPattern(self.page, ":block/uid", self.page_uid),
            DataPattern(self.block, ":create/time", self.created),
            DataPattern(self.block, ":edit/time", self.modified),
        ]


def compile_side(side: ConditionSet, target: BlockVars, namer: VariableNamer) -> QueryFragment:
    return compile_conditions(
        list(side.conditions),
        side.combination,
        block_var=target.block,
        content_var=target.content,
        namer=namer,
    )


def build_content_query(*sides: ConditionSet) -> Query:
    """Blocks matching every given side on the same block.

    Each side keeps its own combination, so ``(a OR b)`` on one side and
    ``c`` on the other yields blocks matching ``(a OR b) AND c``.
    """
    namer = VariableNamer()
    target = BlockVars.fresh(namer, "b")
    fragment = QueryFragment()
    for side in sides:
        fragment.extend(compile_side(side, target, namer))
    return Query(
        find=target.projection(),
        where=(
            *fragment.bindings,
            target.content_clause(),
            *fragment.clauses,
            *target.structure_clauses(),
        ),
    )


def split_child_side(right: ConditionSet, *, shared_child: bool) -> list[ConditionSet]:
    """Split the child side into per-variable condition sets.

    AND-combined positive conditions each get their own child variable so
    they may be satisfied by different siblings; negated conditions apply
    to every child variable. OR sides, single conditions and ``shared_child``
    use one variable for the whole set.
    """
    positive = right.positive
    if shared_child or right.combination is Combination.OR or len(positive) < 2:
        return [right]
    return [
        ConditionSet(conditions=(condition, *right.negated), combination=Combination.AND)
        for condition in positive
    ]


def build_direct_query(
    left: ConditionSet, right: ConditionSet, *, shared_child: bool = False
) -> Query:
    """Parents matching ``left`` with direct children matching ``right``.

    Rows are the parent's block columns, then the representative child's
    block columns, then the uid of every additional child variable.
    """
    namer = VariableNamer()
    parent = BlockVars.fresh(namer, "parent")
    child_sets = split_child_side(right, shared_child=shared_child)
    children = [BlockVars.fresh(namer, "child") for _ in child_sets]

    fragment = compile_side(left, parent, namer)
    child_fragments = [compile_side(s, c, namer) for s, c in zip(child_sets, children, strict=True)]

    where: list[Clause] = [*fragment.bindings]
    for child_fragment in child_fragments:
        where.extend(child_fragment.bindings)
    where.append(parent.content_clause())
    where.extend(fragment.clauses)
    for child, child_fragment in zip(children, child_fragments, strict=True):
        where.append(DataPattern(parent.block, ":block/children", child.block))
        where.append(child.content_clause())
        where.extend(child_fragment.clauses)
    where.extend(parent.structure_clauses())
    where.extend(children[0].structure_clauses())
    where.extend(DataPattern(c.block, ":block/uid", c.uid) for c in children[1:])

    find = (*parent.projection(), *children[0].projection(), *(c.uid for c in children[1:]))
    return Query(find=find, where=tuple(where))


def build_deep_query(left: ConditionSet, right: ConditionSet, level: int) -> Query:
    """Ancestors matching ``left`` with a descendant exactly ``level`` hops below.

    The descendant side is compiled against a single variable; callers that
    need AND-of-N across different descendants run one query set per
    condition and intersect by ancestor.
    """
    namer = VariableNamer()
    ancestor = BlockVars.fresh(namer, "ancestor")
    descendant = BlockVars.fresh(namer, "descendant")
    fragment = compile_side(left, ancestor, namer)
    descendant_fragment = compile_side(right, descendant, namer)

    hops: list[Clause] = []
    current = ancestor.block
    for _ in range(level - 1):
        hop = namer.fresh("hop")
        hops.append(DataPattern(current, ":block/children", hop))
        current = hop
    hops.append(DataPattern(current, ":block/children", descendant.block))

    where = (
        *fragment.bindings,
        *descendant_fragment.bindings,
        ancestor.content_clause(),
        *fragment.clauses,
        *hops,
        descendant.content_clause(),
        *descendant_fragment.clauses,
        *ancestor.structure_clauses(),
        *descendant.structure_clauses(),
    )
    return Query(find=(*ancestor.projection(), *descendant.projection()), where=where)


def row_to_result(row: tuple[Any, ...] | list[Any], **extra: Any) -> SearchResult:
    """Map the six block columns at the start of ``row`` to a SearchResult."""
    return SearchResult(
        uid=row[0],
        content=row[1],
        page_title=row[2],
        page_uid=row[3],
        created=row[4],
        modified=row[5],
        **extra,
    )


async def run_query(executor: QueryExecutor, query: Query | str) -> list[tuple[Any, ...]]:
    """Execute ``query`` on a sync or async executor.

    ``executor`` may be an object with a ``q`` method or a plain callable.
    """
    text = query.render() if isinstance(query, Query) else query
    logger.debug("Executing query:\n{}", text)
    run = executor.q if hasattr(executor, "q") else executor
    rows = run(text)
    if inspect.isawaitable(rows):
        rows = await rows
    logger.debug("Query returned {} rows", len(rows))
    return [tuple(row) for row in rows]
