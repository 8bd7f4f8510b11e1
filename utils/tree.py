"""Navigation tree construction from flat parent-pointer node records.

The store keeps the CFR hierarchy as flat ``nodes`` rows, each pointing at
its parent.  ``build_tree()`` turns a batch of those rows into an ordered
forest of ``NavNode`` objects:

    rows -> FlatNode (validated) -> id map -> parent/child linkage
         -> recursive sibling sort -> list[NavNode]

Siblings are ordered by level type (title < chapter < subchapter < part <
subpart < section < appendix < anything else), then by their ``number``
compared numerically where possible, then by name and id so the result
never depends on input order.

Usage:
    from utils.tree import build_tree, tree_to_dicts

    forest = build_tree(rows)
    payload = tree_to_dicts(forest)
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Mapping

from utils.config import KnownValues
from utils.patterns import NUMBER_CHUNKS, PURE_INTEGER

logger = logging.getLogger(__name__)

_LEVEL_RANKS = {name: rank for rank, name in enumerate(KnownValues.LEVEL_TYPES)}
_UNKNOWN_RANK = len(KnownValues.LEVEL_TYPES)

_IN_PROGRESS = 1
_DONE = 2


class MalformedRecordError(ValueError):
    """A store row that cannot be turned into a FlatNode."""


def _text(row: Mapping[str, Any], *keys: str) -> str:
    """Return the first present key of *row* as a string ("" for NULL)."""
    for key in keys:
        if key in row:
            value = row[key]
            if value is None:
                return ""
            if isinstance(value, bool) or not isinstance(value, (str, int)):
                raise MalformedRecordError(
                    f"Field '{key}' has unsupported type {type(value).__name__}"
                )
            return str(value).strip()
    return ""


@dataclass(frozen=True)
class FlatNode:
    """One stored hierarchy row: an id, a parent reference, no children."""

    id: str
    parent: str | None = None
    level_type: str = ""
    number: str = ""
    name: str = ""
    link: str | None = None
    child_count: int | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "FlatNode":
        """Validate a store row (``sqlite3.Row`` or dict) into a FlatNode.

        ``level_type``, ``number`` and the name may be missing or NULL and
        default to "".  A row without a non-empty string ``id`` is rejected.

        Raises:
            MalformedRecordError: If the row has no usable id, or a field
                holds something other than text or an integer.
        """
        data = dict(row)
        node_id = data.get("id")
        if not isinstance(node_id, str) or not node_id.strip():
            raise MalformedRecordError(f"Node row has no usable id: {data!r}")
        parent = data.get("parent")
        if parent is not None and not isinstance(parent, str):
            raise MalformedRecordError(
                f"Node {node_id!r} has a non-text parent reference: {parent!r}"
            )
        child_count = data.get("child_count")
        if child_count is not None and not isinstance(child_count, int):
            raise MalformedRecordError(
                f"Node {node_id!r} has a non-integer child_count: {child_count!r}"
            )
        if parent is not None:
            parent = parent.strip() or None
        link = _text(data, "link")
        return cls(
            id=node_id.strip(),
            parent=parent,
            level_type=_text(data, "level_type", "levelType", "type").lower(),
            number=_text(data, "number"),
            name=_text(data, "node_name", "name"),
            link=link or None,
            child_count=child_count,
        )


@dataclass(frozen=True)
class NavNode:
    """A reconstructed tree node used for navigation.

    Instances are immutable; updates produce new nodes (see
    ``utils.nav_state.replace_children``).
    """

    id: str
    type: str
    number: str
    name: str
    path: str
    expanded: bool = False
    has_children: bool = False
    children: tuple[NavNode, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-ready dict of this node and its subtree."""
        return {
            "id": self.id,
            "type": self.type,
            "number": self.number,
            "name": self.name,
            "path": self.path,
            "expanded": self.expanded,
            "has_children": self.has_children,
            "children": [child.to_dict() for child in self.children],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NavNode":
        """Rebuild a NavNode subtree from its ``to_dict()`` form."""
        children = tuple(cls.from_dict(c) for c in data.get("children") or [])
        return cls(
            id=data["id"],
            type=data.get("type") or "",
            number=data.get("number") or "",
            name=data.get("name") or "",
            path=data.get("path") or "",
            expanded=bool(data.get("expanded", False)),
            has_children=bool(data.get("has_children", bool(children))),
            children=children,
        )


# ── Ordering ──────────────────────────────────────────────────────────────────

def level_rank(level_type: str | None) -> int:
    """Return the sort rank of a level type; unknown or empty sorts last."""
    return _LEVEL_RANKS.get((level_type or "").lower(), _UNKNOWN_RANK)


def number_sort_key(number: str | None) -> tuple:
    """Sort key for a node ``number``.

    Pure integers compare numerically ("21" < "100").  Anything else is split
    into digit and non-digit runs, digits compared as integers and text
    case-insensitively, so "21" < "21-29" < "21a" < "100".  An empty number
    sorts first.
    """
    text = (number or "").strip()
    if PURE_INTEGER.match(text):
        return ((0, int(text), ""),)
    return tuple(
        (0, int(chunk), "") if chunk.isdecimal() else (1, 0, chunk.casefold())
        for chunk in NUMBER_CHUNKS.findall(text)
    )


def sibling_sort_key(node: NavNode) -> tuple:
    """Total ordering key for siblings: level rank, number, name, id."""
    return (
        level_rank(node.type),
        number_sort_key(node.number),
        node.name.casefold(),
        node.id,
    )


def row_sort_key(row: Mapping[str, Any]) -> tuple:
    """Sibling ordering key for a raw ``nodes`` row (same order as NavNodes)."""
    return (
        level_rank(row.get("level_type")),
        number_sort_key(row.get("number")),
        (row.get("node_name") or "").casefold(),
        row.get("id") or "",
    )


def sort_forest(forest: Iterable[NavNode]) -> tuple[NavNode, ...]:
    """Return *forest* re-sorted at every level (nodes are rebuilt, not mutated)."""
    rebuilt = []
    for node in forest:
        if node.children:
            node = NavNode(
                id=node.id, type=node.type, number=node.number, name=node.name,
                path=node.path, expanded=node.expanded,
                has_children=node.has_children,
                children=sort_forest(node.children),
            )
        rebuilt.append(node)
    return tuple(sorted(rebuilt, key=sibling_sort_key))


# ── Construction ──────────────────────────────────────────────────────────────

def parse_flat_nodes(rows: Iterable[Mapping[str, Any] | FlatNode]) -> list[FlatNode]:
    """Validate store rows into FlatNodes, skipping malformed ones.

    Rejected rows are logged at WARNING and left out of the batch.
    """
    nodes: list[FlatNode] = []
    for row in rows:
        if isinstance(row, FlatNode):
            nodes.append(row)
            continue
        try:
            nodes.append(FlatNode.from_row(row))
        except MalformedRecordError as exc:
            logger.warning("Skipping malformed node row: %s", exc)
    return nodes


def _node_path(node: FlatNode, parent_path: str | None) -> str:
    if node.link:
        link = node.link if node.link.startswith("/") else "/" + node.link
        return "/browse" + link
    segment = f"{node.level_type or 'node'}={node.number or node.id}"
    return f"{parent_path or '/browse'}/{segment}"


def _duplicate_key(node: FlatNode) -> tuple:
    """Order duplicate copies of one id so the kept copy ignores input order."""
    return (node.parent or "", node.level_type, node.number, node.name,
            node.link or "", -1 if node.child_count is None else node.child_count)


def build_tree(
    nodes: Iterable[Mapping[str, Any] | FlatNode],
    root_parent: str | None = None,
) -> list[NavNode]:
    """Build an ordered forest from flat parent-pointer records.

    A node is a root when its parent is NULL, equals *root_parent* (the
    parent filter of a lazy per-level fetch), or cannot be found in the
    batch.  The last case is an orphan: it is promoted to root and logged.
    A parent cycle is broken by promoting one of its members, also logged,
    so every valid input node appears exactly once.

    Args:
        nodes: Store rows or FlatNodes.  Malformed rows are skipped.
        root_parent: Parent id the batch was fetched under, if any.

    Returns:
        Root NavNodes in sibling order, each with recursively sorted children.
        Empty input gives an empty list.
    """
    by_id: dict[str, FlatNode] = {}
    for node in parse_flat_nodes(nodes):
        kept = by_id.get(node.id)
        if kept is not None:
            logger.warning("Duplicate node id %r in batch; keeping one copy", node.id)
            if _duplicate_key(kept) <= _duplicate_key(node):
                continue
        by_id[node.id] = node

    parent_of: dict[str, str | None] = {}
    for node_id, node in by_id.items():
        parent = node.parent
        if parent is None or parent == root_parent:
            parent_of[node_id] = None
        elif parent == node_id or parent not in by_id:
            logger.warning(
                "Node %r references missing parent %r; promoting to root",
                node_id, parent,
            )
            parent_of[node_id] = None
        else:
            parent_of[node_id] = parent

    # Walk parent chains in id order so the node that breaks a cycle does
    # not depend on input order.
    state: dict[str, int] = {}
    for start in sorted(by_id):
        trail = []
        current = start
        while current is not None and current not in state:
            state[current] = _IN_PROGRESS
            trail.append(current)
            current = parent_of[current]
        if current is not None and state[current] == _IN_PROGRESS:
            logger.warning("Parent cycle through node %r; promoting to root", current)
            parent_of[current] = None
        for node_id in trail:
            state[node_id] = _DONE

    children_of: dict[str | None, list[str]] = defaultdict(list)
    for node_id, parent in parent_of.items():
        children_of[parent].append(node_id)

    # Paths are derived top-down, NavNodes assembled bottom-up.
    paths: dict[str, str] = {}
    order: list[str] = []
    stack = list(children_of[None])
    while stack:
        node_id = stack.pop()
        order.append(node_id)
        parent = parent_of[node_id]
        paths[node_id] = _node_path(by_id[node_id], paths.get(parent) if parent else None)
        stack.extend(children_of[node_id])

    built: dict[str, NavNode] = {}
    for node_id in reversed(order):
        node = by_id[node_id]
        children = tuple(sorted(
            (built[c] for c in children_of[node_id]), key=sibling_sort_key,
        ))
        built[node_id] = NavNode(
            id=node.id,
            type=node.level_type,
            number=node.number,
            name=node.name,
            path=paths[node_id],
            has_children=bool(children) or bool(node.child_count),
            children=children,
        )

    return sorted((built[r] for r in children_of[None]), key=sibling_sort_key)


# ── Traversal ─────────────────────────────────────────────────────────────────

def iter_tree(forest: Iterable[NavNode], depth: int = 0) -> Iterator[tuple[int, NavNode]]:
    """Yield ``(depth, node)`` pairs in display (pre-)order."""
    for node in forest:
        yield depth, node
        yield from iter_tree(node.children, depth + 1)


def find_node(forest: Iterable[NavNode], node_id: str) -> NavNode | None:
    """Return the node with *node_id* anywhere in *forest*, or None."""
    for _, node in iter_tree(forest):
        if node.id == node_id:
            return node
    return None


def tree_to_dicts(forest: Iterable[NavNode]) -> list[dict[str, Any]]:
    """Serialize a forest to JSON-ready dicts."""
    return [node.to_dict() for node in forest]
