"""Parse JSON graph exports into pages and blocks."""

import hashlib
import re
from collections import deque
from dataclasses import replace
from typing import Any

from blockgraph.models.node import Block, Page

_PAGE_LINK = re.compile(r"\[\[([^\[\]]+)\]\]")
_TAG = re.compile(r"(?:^|(?<=[\s(]))#(?:\[\[([^\[\]]+)\]\]|([\w\-/.]*\w))")
_ATTRIBUTE = re.compile(r"^([^:\n`\[\]]+?)::")
_BLOCK_REF = re.compile(r"\(\(([\w-]{9})\)\)")


def page_uid_for_title(title: str) -> str:
    """Stable 9-character uid for pages that carry none in the export."""
    return hashlib.sha1(title.encode("utf-8")).hexdigest()[:9]


def extract_references(content: str) -> tuple[list[str], list[str]]:
    """Find page titles and block uids referenced from block content.

    Returns:
        Tuple of (page titles, block uids), each in order of first mention.
    """
    titles: list[str] = []
    for match in _PAGE_LINK.finditer(content):
        titles.append(match.group(1))
    for match in _TAG.finditer(content):
        titles.append(match.group(1) or match.group(2))
    attribute = _ATTRIBUTE.match(content)
    if attribute:
        titles.append(attribute.group(1).strip())
    block_uids = [m.group(1) for m in _BLOCK_REF.finditer(content)]
    return list(dict.fromkeys(titles)), list(dict.fromkeys(block_uids))


def _explicit_refs(raw: dict[str, Any]) -> list[str]:
    refs = raw.get("refs", [])
    return [r["uid"] if isinstance(r, dict) else str(r) for r in refs]


def parse_graph_export(data: list[dict[str, Any]]) -> tuple[list[Page], list[Block]]:
    """Parse an exported graph (a list of page dicts with nested children).

    Args:
        data: Raw export data. Pages carry ``title`` and optional ``uid``;
            blocks carry ``uid``, ``string``, timestamps and ``children``.

    Returns:
        Tuple of (pages, blocks). Blocks come parent-first. Pages referenced
        from content but absent from the export are added as empty pages.
    """
    pages: dict[str, Page] = {}
    blocks: list[Block] = []
    block_titles: list[tuple[int, list[str]]] = []

    # BFS so parents precede their children.
    todo: deque[tuple[dict[str, Any], str, str | None, int, int]] = deque()
    for raw_page in data:
        title = raw_page.get("title")
        if not title:
            msg = f"Page without title: {str(raw_page)[:80]!r}"
            raise ValueError(msg)
        uid = raw_page.get("uid") or page_uid_for_title(title)
        children = raw_page.get("children", [])
        pages[title] = Page(
            uid=uid,
            title=title,
            created=raw_page.get("create-time", 0),
            modified=raw_page.get("edit-time", raw_page.get("create-time", 0)),
        )
        for i, child in enumerate(sorted(children, key=lambda c: c.get("order", 0))):
            todo.append((child, uid, None, 1, i))

    block_counts: dict[str, int] = {}
    while todo:
        raw, page_uid, parent_uid, depth, order = todo.popleft()
        uid = raw.get("uid")
        if not uid:
            msg = f"Block without uid on page {page_uid}: {str(raw)[:80]!r}"
            raise ValueError(msg)
        content = raw.get("string", "")
        children = raw.get("children", [])
        created = raw.get("create-time", 0)
        titles, block_uids = extract_references(content)

        block_titles.append((len(blocks), titles))
        blocks.append(
            Block(
                uid=uid,
                page_uid=page_uid,
                parent_uid=parent_uid,
                content=content,
                created=created,
                modified=raw.get("edit-time", created),
                order=order,
                depth=depth,
                refs=tuple(dict.fromkeys([*_explicit_refs(raw), *block_uids])),
                child_count=len(children),
            )
        )
        block_counts[page_uid] = block_counts.get(page_uid, 0) + 1

        for i, child in enumerate(sorted(children, key=lambda c: c.get("order", 0))):
            todo.append((child, page_uid, uid, depth + 1, i))

    # Resolve titles to page uids once every page is known.
    for position, titles in block_titles:
        if not titles:
            continue
        title_uids = []
        for title in titles:
            if title not in pages:
                pages[title] = Page(uid=page_uid_for_title(title), title=title)
            title_uids.append(pages[title].uid)
        block = blocks[position]
        blocks[position] = replace(block, refs=tuple(dict.fromkeys([*block.refs, *title_uids])))

    page_list = [replace(p, block_count=block_counts.get(p.uid, 0)) for p in pages.values()]
    return page_list, blocks
