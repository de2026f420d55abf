"""Per-call state threaded through hierarchy searches."""

from dataclasses import dataclass, field, replace
from typing import Any

from loguru import logger

from blockgraph.models.condition import ExpansionStrategy
from blockgraph.models.options import SearchOptions
from blockgraph.protocols import ExpansionGenerator, ProgressCallback, QueryExecutor


@dataclass
class SearchState:
    """Caller-owned execution state for one tool invocation.

    ``expansion_cache`` is only ever appended to. Copies made with
    ``SearchContext.with_state`` share the same cache dict, so nested passes
    (combination splits, automatic retries) reuse earlier expansions.
    """

    user_query: str | None = None
    model: str | None = None
    language: str = "English"
    semantic_expansion: ExpansionStrategy | None = None
    is_expansion_global: bool = False
    expansion_level: int = 0
    disable_semantic_expansion: bool = False
    force_hierarchical: bool = False
    max_depth_override: int | None = None
    automatic_expansion_mode: str | None = None
    expansion_cache: dict[str, list[str]] = field(default_factory=dict)
    expansion_notice_shown: bool = False


@dataclass
class HierarchyCounts:
    """Match counts collected while a hierarchy search runs."""

    left_count: int = 0
    right_count: int = 0
    same_block: int = 0
    forward: int = 0
    reverse: int = 0
    total: int = 0

    def add(self, other: "HierarchyCounts") -> None:
        """Accumulate another run's match counts (``total`` is set once at the end)."""
        self.left_count += other.left_count
        self.right_count += other.right_count
        self.same_block += other.same_block
        self.forward += other.forward
        self.reverse += other.reverse

    def as_dict(self) -> dict[str, int]:
        return {
            "leftCount": self.left_count,
            "rightCount": self.right_count,
            "sameBlock": self.same_block,
            "forward": self.forward,
            "reverse": self.reverse,
            "total": self.total,
        }


def _no_progress(message: str) -> None:
    pass


@dataclass
class SearchContext:
    """Collaborators and options for one hierarchy search."""

    executor: QueryExecutor
    state: SearchState = field(default_factory=SearchState)
    options: SearchOptions = field(default_factory=SearchOptions)
    generate_expansions: ExpansionGenerator | None = None
    on_progress: ProgressCallback = _no_progress
    counts: HierarchyCounts = field(default_factory=HierarchyCounts)

    def progress(self, message: str) -> None:
        """Report a progress message; callback errors never reach the search."""
        logger.debug("Progress: {}", message)
        try:
            self.on_progress(message)
        except Exception:
            logger.exception("Progress callback failed")

    def with_state(self, **changes: Any) -> "SearchContext":
        """Return a context sharing collaborators but with updated state fields."""
        return replace(self, state=replace(self.state, **changes))
