"""Domain models for the block graph."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Page:
    """A page: the root of one block tree."""

    uid: str
    title: str
    created: int = 0
    modified: int = 0
    block_count: int = 0


@dataclass(frozen=True)
class Block:
    """A single block in a page's tree."""

    uid: str
    page_uid: str
    parent_uid: str | None
    content: str
    created: int
    modified: int
    order: int
    depth: int
    refs: tuple[str, ...] = ()
    child_count: int = 0


@dataclass(frozen=True)
class SearchResult:
    """A matched block with hierarchy annotations.

    ``child_*`` fields describe the representative matching child (or
    descendant) of a hierarchy match. ``matched_child_uids`` lists every
    matched child and drives bidirectional deduplication. ``parent_*`` fields
    are set on child-returning inverse results.
    """

    uid: str
    content: str
    page_title: str
    page_uid: str
    created: int | None = None
    modified: int | None = None
    children: tuple["SearchResult", ...] = ()
    parents: tuple["SearchResult", ...] = ()
    hierarchy_depth: int = 0
    is_page: bool = False
    match_type: str = "same_block"
    child_uid: str | None = None
    child_content: str | None = None
    child_page_title: str | None = None
    matched_child_uids: tuple[str, ...] = ()
    parent_uid: str | None = None
    parent_content: str | None = None
