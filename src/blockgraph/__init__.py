"""Hierarchical block search over outliner graphs."""

from blockgraph.api import GraphApi
from blockgraph.core.datalog.store import LocalExecutor
from blockgraph.protocols import ExpansionGenerator, QueryExecutor
from blockgraph.tool import find_blocks_with_hierarchy_tool

__version__ = "0.1.0"

__all__ = [
    "ExpansionGenerator",
    "GraphApi",
    "LocalExecutor",
    "QueryExecutor",
    "find_blocks_with_hierarchy_tool",
]
