"""Orchestrate importing JSON graph exports into SQLite."""

import hashlib
import json
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from blockgraph.core.importer.json_reader import parse_graph_export
from blockgraph.models.node import Block, Page


@dataclass(frozen=True)
class ImportStats:
    """Summary of an import operation."""

    files_imported: int
    files_skipped: int
    pages_imported: int
    blocks_imported: int


def _file_hash(path: Path) -> str:
    return hashlib.sha256(path.read_bytes()).hexdigest()


def _should_reimport(conn: sqlite3.Connection, source: str, source_hash: str) -> bool:
    row = conn.execute(
        "SELECT source_hash FROM sync_state WHERE source = ?",
        (source,),
    ).fetchone()
    if row is None:
        return True
    return row[0] != source_hash


def insert_graph(
    conn: sqlite3.Connection, pages: list[Page], blocks: list[Block], *, source: str
) -> None:
    """Insert pages, blocks and their references (no commit)."""
    conn.executemany(
        """INSERT OR REPLACE INTO pages (uid, title, source, created, modified, block_count)
           VALUES (?, ?, ?, ?, ?, ?)""",
        [(p.uid, p.title, source, p.created, p.modified, p.block_count) for p in pages],
    )
    conn.executemany(
        """INSERT OR REPLACE INTO blocks
           (uid, page_uid, parent_uid, content, created, modified,
            sort_order, depth, child_count)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        [
            (
                b.uid, b.page_uid, b.parent_uid, b.content, b.created,
                b.modified, b.order, b.depth, b.child_count,
            )
            for b in blocks
        ],
    )
    conn.executemany(
        "INSERT OR IGNORE INTO refs (block_uid, target_uid) VALUES (?, ?)",
        [(b.uid, ref) for b in blocks for ref in b.refs],
    )


def _clear_source(conn: sqlite3.Connection, source: str) -> None:
    conn.execute(
        "DELETE FROM refs WHERE block_uid IN (SELECT b.uid FROM blocks b "
        "JOIN pages p ON p.uid = b.page_uid WHERE p.source = ?)",
        (source,),
    )
    conn.execute(
        "DELETE FROM blocks WHERE page_uid IN (SELECT uid FROM pages WHERE source = ?)",
        (source,),
    )
    conn.execute("DELETE FROM pages WHERE source = ?", (source,))


def _export_files(source: Path) -> list[Path]:
    if source.is_file():
        return [source]
    return sorted(source.glob("*.json"))


def import_source(
    conn: sqlite3.Connection,
    source: Path,
    *,
    force: bool = False,
) -> ImportStats:
    """Import a JSON graph export (a file, or a directory of .json files).

    Args:
        conn: SQLite connection (schema must already exist).
        source: Export file or directory containing export files.
        force: Re-import even if a source file hasn't changed.

    Returns:
        ImportStats with counts of imported/skipped files.
    """
    if not source.exists():
        msg = f"Export source not found: {source}"
        raise FileNotFoundError(msg)

    files_imported = 0
    files_skipped = 0
    total_pages = 0
    total_blocks = 0

    for json_path in _export_files(source):
        source_key = json_path.name
        source_hash = _file_hash(json_path)
        if not force and not _should_reimport(conn, source_key, source_hash):
            files_skipped += 1
            continue

        try:
            data = json.loads(json_path.read_text(encoding="utf-8"))
            if not isinstance(data, list):
                msg = f"{json_path.name}: expected a list of pages"
                raise ValueError(msg)
            pages, blocks = parse_graph_export(data)

            _clear_source(conn, source_key)
            insert_graph(conn, pages, blocks, source=source_key)

            now_ms = int(time.time() * 1000)
            conn.execute(
                """INSERT OR REPLACE INTO sync_state (source, last_import_at, source_hash)
                   VALUES (?, ?, ?)""",
                (source_key, now_ms, source_hash),
            )
            conn.commit()
        except Exception:
            conn.rollback()
            logger.exception("Failed to import {}", json_path.name)
            continue

        files_imported += 1
        total_pages += len(pages)
        total_blocks += len(blocks)
        logger.debug("Imported {} ({} pages, {} blocks)", json_path.name, len(pages), len(blocks))

    logger.info(
        "Import complete: {} imported, {} skipped, {} pages, {} blocks",
        files_imported, files_skipped, total_pages, total_blocks,
    )
    return ImportStats(
        files_imported=files_imported,
        files_skipped=files_skipped,
        pages_imported=total_pages,
        blocks_imported=total_blocks,
    )
