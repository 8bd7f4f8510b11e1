"""HTTP client that drives lazy navigation-tree expansion.

Fetches tree levels from ``GET /api/v1/navigation`` and feeds them into a
``NavigationState``.  Several nodes can be expanded at once; each fetch is
scoped to one parent id and merged by id, so completions in any order leave
the same tree.

Usage:
    from utils.nav_client import NavigationClient

    with NavigationClient("http://localhost:8000") as client:
        state = client.load(levels=2)
        client.expand(state, "title-4")
        client.expand_many(state, ["chapter-I", "chapter-II"])
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Iterable

import requests

from utils.http import SessionManager
from utils.nav_state import NavigationState, NodeStatus
from utils.tree import NavNode

logger = logging.getLogger(__name__)


class NavigationFetchError(Exception):
    """A navigation request failed (transport error or non-2xx response)."""


class NavigationClient:
    """Fetches navigation levels from the eCFR Analyzer API."""

    def __init__(self, base_url: str, session_manager: SessionManager | None = None,
                 timeout: float = 30.0, prefix: str = "/api/v1") -> None:
        self.base_url = base_url.rstrip("/")
        self.prefix = prefix
        self.timeout = timeout
        self._sessions = session_manager or SessionManager()

    def close(self) -> None:
        self._sessions.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _get(self, endpoint: str, params: dict[str, Any]) -> Any:
        url = f"{self.base_url}{self.prefix}{endpoint}"
        try:
            resp = self._sessions.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as exc:
            raise NavigationFetchError(f"Request to {url} failed: {exc}") from exc
        if resp.status_code >= 400:
            try:
                body = resp.json()
            except ValueError:
                body = None
            message = body.get("error") if isinstance(body, dict) else None
            raise NavigationFetchError(
                message or f"HTTP error! status: {resp.status_code}"
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise NavigationFetchError(f"Invalid JSON from {url}: {exc}") from exc

    def fetch_tree(self, parent: str | None = None, levels: int = 1) -> list[NavNode]:
        """Fetch *levels* of the tree below *parent* (roots when None)."""
        params: dict[str, Any] = {"levels": levels}
        if parent is not None:
            params["parent"] = parent
        data = self._get("/navigation", params)
        if not isinstance(data, list):
            raise NavigationFetchError("Malformed navigation payload: expected a list")
        try:
            return [NavNode.from_dict(item) for item in data]
        except (KeyError, TypeError, AttributeError) as exc:
            raise NavigationFetchError(f"Malformed navigation node: {exc!r}") from exc

    def fetch_children(self, parent_id: str) -> list[NavNode]:
        """Fetch the direct children of *parent_id*."""
        return self.fetch_tree(parent=parent_id, levels=1)

    def load(self, levels: int = 2) -> NavigationState:
        """Initial load: root nodes, optionally with their direct children."""
        return NavigationState(self.fetch_tree(levels=levels))

    def expand(self, state: NavigationState, node_id: str) -> NodeStatus:
        """Expand *node_id*, fetching its children only if they are not cached.

        A failed fetch is recorded on the state (``state.error(node_id)``)
        and the node returns to collapsed.  Nothing is retried.
        """
        if not state.begin_expand(node_id):
            return state.status(node_id)
        try:
            children = self.fetch_children(node_id)
        except NavigationFetchError as exc:
            state.fail_expand(node_id, str(exc))
        else:
            state.complete_expand(node_id, children)
        return state.status(node_id)

    def expand_many(self, state: NavigationState, node_ids: Iterable[str],
                    max_workers: int = 4) -> dict[str, NodeStatus]:
        """Expand several nodes concurrently; returns the final status per id."""
        node_ids = list(dict.fromkeys(node_ids))
        if not node_ids:
            return {}
        results: dict[str, NodeStatus] = {}
        with ThreadPoolExecutor(max_workers=min(max_workers, len(node_ids)),
                                thread_name_prefix="nav-expand") as pool:
            futures = {pool.submit(self.expand, state, nid): nid for nid in node_ids}
            for future in as_completed(futures):
                results[futures[future]] = future.result()
        return results
