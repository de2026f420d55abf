"""Protocols for the collaborators injected into hierarchy searches."""

from collections.abc import Awaitable
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class QueryExecutor(Protocol):
    """Protocol for fact-store query executors.

    Implementations may be synchronous or return an awaitable; callers go
    through ``blockgraph.core.search.queries.run_query`` which handles both.
    """

    def q(self, query: str) -> list[tuple[Any, ...]] | Awaitable[list[tuple[Any, ...]]]:
        """Execute a Datalog query and return positional result tuples."""
        ...


@runtime_checkable
class ExpansionGenerator(Protocol):
    """Protocol for semantic term expansion (usually backed by an LLM)."""

    async def __call__(
        self,
        term: str,
        strategy: str,
        user_query: str | None = None,
        model: str | None = None,
        language: str | None = None,
    ) -> list[str]:
        """Return alternative terms for ``term`` (without the term itself)."""
        ...


@runtime_checkable
class ProgressCallback(Protocol):
    """Protocol for fire-and-forget progress messages."""

    def __call__(self, message: str) -> None:
        """Receive a human-readable progress message."""
        ...
