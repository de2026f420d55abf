"""In-memory fact index over pages and blocks, and the local query executor."""

import sqlite3
from collections import defaultdict
from collections.abc import Iterable, Iterator
from typing import Any

from loguru import logger

from blockgraph.core.datalog.engine import UNBOUND, run_query
from blockgraph.models.node import Block, Page


class FactIndex:
    """Entity/attribute/value index with reverse (attribute/value) lookup.

    Entities are integer ids. Reference attributes (``block/page``,
    ``block/children``, ``block/parents``, ``block/refs``) hold entity ids;
    the rest hold plain values.
    """

    def __init__(self) -> None:
        self._eav: dict[str, dict[Any, list[Any]]] = defaultdict(lambda: defaultdict(list))
        self._ave: dict[str, dict[Any, list[Any]]] = defaultdict(lambda: defaultdict(list))
        self._uid_to_entity: dict[str, int] = {}
        self._next_entity = 1

    def new_entity(self, uid: str) -> int:
        entity = self._next_entity
        self._next_entity += 1
        self._uid_to_entity[uid] = entity
        self.add(entity, "block/uid", uid)
        return entity

    def entity(self, uid: str) -> int | None:
        return self._uid_to_entity.get(uid)

    def add(self, entity: int, attribute: str, value: Any) -> None:
        self._eav[attribute][entity].append(value)
        self._ave[attribute][value].append(entity)

    def datoms(self, attribute: str, entity: Any, value: Any) -> Iterator[tuple[Any, Any]]:
        """Yield (entity, value) pairs, narrowed by whichever side is known."""
        if attribute not in self._eav:
            return
        if entity is not UNBOUND:
            for v in self._eav[attribute].get(entity, ()):
                if value is UNBOUND or v == value:
                    yield entity, v
        elif value is not UNBOUND:
            for e in self._ave[attribute].get(value, ()):
                yield e, value
        else:
            for e, values in self._eav[attribute].items():
                for v in values:
                    yield e, v

    @classmethod
    def from_graph(cls, pages: Iterable[Page], blocks: Iterable[Block]) -> "FactIndex":
        """Build the index from pages and blocks (blocks parent-first)."""
        index = cls()
        for page in pages:
            entity = index.new_entity(page.uid)
            index.add(entity, "node/title", page.title)
            index.add(entity, "create/time", page.created)
            index.add(entity, "edit/time", page.modified)

        blocks = list(blocks)
        for block in blocks:
            entity = index.new_entity(block.uid)
            index.add(entity, "block/string", block.content)
            index.add(entity, "block/order", block.order)
            index.add(entity, "create/time", block.created)
            index.add(entity, "edit/time", block.modified)

        ancestors: dict[int, list[int]] = {}
        for block in blocks:
            entity = index._uid_to_entity[block.uid]
            page_entity = index.entity(block.page_uid)
            if page_entity is None:
                logger.warning("Block {} points at unknown page {}", block.uid, block.page_uid)
                continue
            index.add(entity, "block/page", page_entity)

            parent_entity = index.entity(block.parent_uid) if block.parent_uid else page_entity
            if parent_entity is None:
                parent_entity = page_entity
            index.add(parent_entity, "block/children", entity)

            lineage = [page_entity]
            if parent_entity != page_entity:
                lineage = [*ancestors.get(parent_entity, [page_entity]), parent_entity]
            ancestors[entity] = lineage
            for ancestor in lineage:
                index.add(entity, "block/parents", ancestor)

            for ref_uid in block.refs:
                ref_entity = index.entity(ref_uid)
                if ref_entity is not None:
                    index.add(entity, "block/refs", ref_entity)
        return index


def load_graph(conn: sqlite3.Connection) -> tuple[list[Page], list[Block]]:
    """Read every page and block from the archive, blocks parent-first."""
    pages = [
        Page(uid=r[0], title=r[1], created=r[2], modified=r[3], block_count=r[4])
        for r in conn.execute(
            "SELECT uid, title, created, modified, block_count FROM pages ORDER BY title"
        )
    ]
    refs: dict[str, list[str]] = defaultdict(list)
    for block_uid, target_uid in conn.execute("SELECT block_uid, target_uid FROM refs"):
        refs[block_uid].append(target_uid)

    blocks = [
        Block(
            uid=r[0],
            page_uid=r[1],
            parent_uid=r[2],
            content=r[3],
            created=r[4],
            modified=r[5],
            order=r[6],
            depth=r[7],
            refs=tuple(refs.get(r[0], ())),
            child_count=r[8],
        )
        for r in conn.execute(
            "SELECT uid, page_uid, parent_uid, content, created, modified, "
            "sort_order, depth, child_count FROM blocks ORDER BY depth, page_uid, sort_order"
        )
    ]
    return pages, blocks


class LocalExecutor:
    """Runs Datalog queries against an in-memory FactIndex."""

    def __init__(self, index: FactIndex) -> None:
        self.index = index

    @classmethod
    def from_graph(cls, pages: Iterable[Page], blocks: Iterable[Block]) -> "LocalExecutor":
        return cls(FactIndex.from_graph(pages, blocks))

    @classmethod
    def from_connection(cls, conn: sqlite3.Connection) -> "LocalExecutor":
        pages, blocks = load_graph(conn)
        logger.debug("Loaded {} pages and {} blocks into the fact index", len(pages), len(blocks))
        return cls.from_graph(pages, blocks)

    def q(self, query: str) -> list[tuple[Any, ...]]:
        return run_query(query, self.index)
