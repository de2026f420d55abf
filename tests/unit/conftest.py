"""Shared test fixtures."""

import json
import sqlite3
from pathlib import Path
from typing import Any

import pytest

from blockgraph.core.database.schema import create_schema
from blockgraph.core.datalog.store import LocalExecutor
from blockgraph.core.importer.json_reader import parse_graph_export
from blockgraph.core.importer.loader import import_source
from blockgraph.core.search.context import SearchContext


def _block(uid: str, text: str, time: int, *children: dict[str, Any]) -> dict[str, Any]:
    block: dict[str, Any] = {"uid": uid, "string": text, "create-time": time, "edit-time": time}
    if children:
        block["children"] = [{**c, "order": i} for i, c in enumerate(children)]
    return block


GRAPH_EXPORT: list[dict[str, Any]] = [
    {
        "title": "Projects",
        "uid": "projects1",
        "create-time": 1000,
        "edit-time": 2000,
        "children": [
            _block(
                "alpha0001",
                "Project Alpha",
                1001,
                _block("alphadl01", "deadline March", 1002),
                _block("alphaown1", "owner Sam", 1003),
            ),
            _block(
                "beta00001",
                "Project Beta [[TODO]]",
                1004,
                _block(
                    "betakick1",
                    "kickoff notes",
                    1005,
                    _block("betadl001", "deadline in June", 1006),
                ),
            ),
            _block(
                "reports01",
                "Reports",
                1007,
                _block("report001", "final report", 1008),
                _block("report002", "draft report", 1009),
                _block("report003", "draft of the final report", 1010),
            ),
        ],
    },
    {
        "title": "Meetings",
        "uid": "meetings1",
        "create-time": 3000,
        "edit-time": 4000,
        "children": [
            _block(
                "meeting01",
                "Weekly meeting #planning",
                3001,
                _block("budget001", "discussed budget", 3002),
            ),
            _block(
                "budget002",
                "budget review",
                3003,
                _block("meeting02", "follow-up meeting", 3004),
            ),
        ],
    },
    {
        "title": "October 5th, 2026",
        "uid": "10-05-2026",
        "create-time": 5000,
        "edit-time": 6000,
        "children": [
            _block(
                "dailymtg1",
                "meeting with Alex",
                5001,
                _block("dailybud1", "budget numbers", 5002),
            ),
        ],
    },
]


@pytest.fixture
def executor() -> LocalExecutor:
    """Fact index over the sample graph."""
    pages, blocks = parse_graph_export(GRAPH_EXPORT)
    return LocalExecutor.from_graph(pages, blocks)


@pytest.fixture
def ctx(executor: LocalExecutor) -> SearchContext:
    return SearchContext(executor=executor)


@pytest.fixture
def export_dir(tmp_path: Path) -> Path:
    """Directory holding the sample graph as a JSON export."""
    source = tmp_path / "export"
    source.mkdir()
    (source / "graph.json").write_text(json.dumps(GRAPH_EXPORT))
    return source


@pytest.fixture
def populated_db(export_dir: Path) -> sqlite3.Connection:
    """Return an in-memory DB with the sample graph imported."""
    conn = sqlite3.connect(":memory:")
    create_schema(conn)
    import_source(conn, export_dir)
    return conn
