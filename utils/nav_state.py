"""Client-side lazy expansion state for the navigation tree.

A ``NavigationState`` owns the forest a browsing session has loaded so far
and the expansion status of each node.  Children arrive per node (one fetch
keyed by the node id) and are merged with ``replace_children()``, a pure
rewrite that rebuilds only the path down to that node.  Updates for
different nodes therefore commute, and concurrent fetch completions cannot
clobber each other's subtrees.

Per-node state machine::

    collapsed --expand, children absent--> loading --children--> expanded
    collapsed --expand, children cached--> expanded            (no fetch)
    expanded  --collapse--> collapsed                          (children kept)
    loading   --fetch failed--> collapsed + error message
"""

from __future__ import annotations

import enum
import logging
import threading
from dataclasses import replace
from typing import Any, Iterable

from utils.tree import NavNode, find_node, sort_forest

logger = logging.getLogger(__name__)


class NodeStatus(str, enum.Enum):
    COLLAPSED = "collapsed"
    LOADING = "loading"
    EXPANDED = "expanded"


def update_node(
    forest: Iterable[NavNode], node_id: str, **changes: Any,
) -> tuple[NavNode, ...]:
    """Return a new forest with the fields of *node_id* replaced.

    Only the nodes on the path from a root to *node_id* are rebuilt; every
    other subtree is shared with the input.

    Raises:
        KeyError: If *node_id* is not in the forest.
    """
    forest = tuple(forest)
    rewritten, found = _rewrite(forest, node_id, changes)
    if not found:
        raise KeyError(node_id)
    return rewritten


def _rewrite(
    forest: tuple[NavNode, ...], node_id: str, changes: dict[str, Any],
) -> tuple[tuple[NavNode, ...], bool]:
    for i, node in enumerate(forest):
        if node.id == node_id:
            return forest[:i] + (replace(node, **changes),) + forest[i + 1:], True
        if node.children:
            children, found = _rewrite(node.children, node_id, changes)
            if found:
                return forest[:i] + (replace(node, children=children),) + forest[i + 1:], True
    return forest, False


def replace_children(
    forest: Iterable[NavNode], node_id: str, children: Iterable[NavNode],
) -> tuple[NavNode, ...]:
    """Return a new forest where *node_id* has exactly *children* (sorted)."""
    new_children = sort_forest(children)
    return update_node(
        forest, node_id,
        children=new_children,
        has_children=bool(new_children),
    )


class NavigationState:
    """Explicitly owned navigation tree plus per-node expansion status.

    All public methods are safe to call from several threads; each state
    change happens under one lock.
    """

    def __init__(self, forest: Iterable[NavNode] = ()) -> None:
        self._lock = threading.Lock()
        self._forest: tuple[NavNode, ...] = ()
        self._status: dict[str, NodeStatus] = {}
        self._errors: dict[str, str] = {}
        self._loaded: set[str] = set()
        self.load_roots(forest)

    # ── Inspection ────────────────────────────────────────────────────────

    @property
    def forest(self) -> tuple[NavNode, ...]:
        """Current tree snapshot (immutable)."""
        return self._forest

    def node(self, node_id: str) -> NavNode:
        node = find_node(self._forest, node_id)
        if node is None:
            raise KeyError(node_id)
        return node

    def status(self, node_id: str) -> NodeStatus:
        self.node(node_id)
        return self._status.get(node_id, NodeStatus.COLLAPSED)

    def error(self, node_id: str) -> str | None:
        return self._errors.get(node_id)

    def is_loading(self, node_id: str) -> bool:
        return self.status(node_id) is NodeStatus.LOADING

    def expanded_ids(self) -> set[str]:
        return {k for k, v in self._status.items() if v is NodeStatus.EXPANDED}

    # ── Transitions ───────────────────────────────────────────────────────

    def load_roots(self, forest: Iterable[NavNode]) -> None:
        """Replace the whole tree with an initial load.

        Nodes that arrive with children already populated count as cached,
        and nodes flagged ``expanded`` start out expanded.
        """
        forest = sort_forest(forest)
        with self._lock:
            self._forest = forest
            self._status.clear()
            self._errors.clear()
            self._loaded.clear()
            stack = list(forest)
            while stack:
                node = stack.pop()
                if node.children:
                    self._loaded.add(node.id)
                if node.expanded:
                    self._status[node.id] = NodeStatus.EXPANDED
                stack.extend(node.children)

    def _children_cached(self, node: NavNode) -> bool:
        return node.id in self._loaded or bool(node.children) or not node.has_children

    def begin_expand(self, node_id: str) -> bool:
        """Start expanding *node_id*.

        Returns:
            True when the caller must fetch the node's children and then call
            ``complete_expand()`` or ``fail_expand()``; False when the node
            was expanded from cache or a fetch is already in flight.

        Raises:
            KeyError: If *node_id* is not in the tree.
        """
        with self._lock:
            node = find_node(self._forest, node_id)
            if node is None:
                raise KeyError(node_id)
            status = self._status.get(node_id, NodeStatus.COLLAPSED)
            if status is NodeStatus.LOADING:
                return False
            self._errors.pop(node_id, None)
            if self._children_cached(node):
                self._status[node_id] = NodeStatus.EXPANDED
                self._forest = update_node(self._forest, node_id, expanded=True)
                return False
            self._status[node_id] = NodeStatus.LOADING
            return True

    def complete_expand(self, node_id: str, children: Iterable[NavNode]) -> None:
        """Merge fetched *children* under *node_id* and mark it expanded.

        If the node was collapsed while its fetch was in flight the children
        are still cached, but the node stays collapsed.
        """
        with self._lock:
            forest = replace_children(self._forest, node_id, children)
            self._loaded.add(node_id)
            if self._status.get(node_id) is NodeStatus.LOADING:
                self._status[node_id] = NodeStatus.EXPANDED
                forest = update_node(forest, node_id, expanded=True)
            self._forest = forest

    def fail_expand(self, node_id: str, message: str) -> None:
        """Record a failed fetch: stop loading and keep a visible error."""
        with self._lock:
            if find_node(self._forest, node_id) is None:
                raise KeyError(node_id)
            logger.warning("Failed to load children of %r: %s", node_id, message)
            self._status[node_id] = NodeStatus.COLLAPSED
            self._errors[node_id] = message

    def collapse(self, node_id: str) -> None:
        """Collapse *node_id* locally; cached children are kept."""
        with self._lock:
            self._forest = update_node(self._forest, node_id, expanded=False)
            self._status[node_id] = NodeStatus.COLLAPSED

    def toggle(self, node_id: str) -> bool:
        """Collapse an expanded node or start expanding a collapsed one.

        Returns:
            True when a fetch is required (see ``begin_expand``).
        """
        if self.status(node_id) is NodeStatus.EXPANDED:
            self.collapse(node_id)
            return False
        return self.begin_expand(node_id)
