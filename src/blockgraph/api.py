"""HTTP query executor for a hosted graph backend."""

import os
from typing import Any

import requests
from loguru import logger

from blockgraph.config import API_BASE_URL, API_TIMEOUT, API_TOKEN_FILES


def _read_token() -> tuple[str, str]:
    """Return (token, where it came from)."""
    env_token = os.environ.get("BLOCKGRAPH_API_TOKEN")
    if env_token:
        return env_token.strip(), "BLOCKGRAPH_API_TOKEN"
    for token_path in API_TOKEN_FILES:
        if token_path.is_file():
            return token_path.read_text(encoding="utf-8").strip(), str(token_path)
    msg = f"Cannot find API token, was looking at BLOCKGRAPH_API_TOKEN and {API_TOKEN_FILES!r}"
    raise RuntimeError(msg)


class GraphApi:
    """Executes Datalog queries against a hosted graph's query endpoint."""

    def __init__(
        self,
        graph: str | None = None,
        *,
        token: str | None = None,
        session: requests.Session | None = None,
        base_url: str = API_BASE_URL,
        timeout: float = API_TIMEOUT,
    ) -> None:
        self.graph = graph or os.environ.get("BLOCKGRAPH_GRAPH")
        if not self.graph:
            msg = "No graph name given and BLOCKGRAPH_GRAPH is not set"
            raise RuntimeError(msg)

        token_source = "argument"
        if token is None:
            token, token_source = _read_token()
        self.token = token
        self.sess = session or requests.Session()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        logger.debug("API ready: graph {!r}, token from {!r}", self.graph, token_source)

    @property
    def query_url(self) -> str:
        return f"{self.base_url}/{self.graph}/q"

    def q(self, query: str) -> list[tuple[Any, ...]]:
        """POST ``query`` and return the result rows as tuples.

        Raises:
            RuntimeError: On HTTP errors or a response without ``result``.
        """
        logger.debug("Making request to {}: {}", self.query_url, query[:64])
        r = self.sess.post(
            self.query_url,
            json={"query": query},
            headers={
                "Authorization": f"Bearer {self.token}",
                "Accept": "application/json",
            },
            timeout=self.timeout,
        )
        if not r.ok:
            msg = f"Query failed: HTTP {r.status_code}: {r.text[:200]}"
            raise RuntimeError(msg)
        body: dict[str, Any] = r.json()
        if "result" not in body:
            msg = f"Query failed: unexpected response {str(body)[:200]}"
            raise RuntimeError(msg)
        return [tuple(row) for row in body["result"]]
