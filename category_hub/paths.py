"""
Breadcrumb paths ("A > B > C") and depths for category trees.

Parent links come from remote payloads and may be dangling or cyclic, so every
walk here carries a visited set and stops after MAX_HOPS parents. Results are
memoized per resolver instance; a resolver lives for one sync or one request
and is then dropped.
"""

import logging
import re
from typing import Callable, Dict, List, Optional

# Traversal guard for parent chains
MAX_HOPS = 50

PATH_SEPARATOR = " > "

_ARROW_SPLIT = re.compile(r"\s*>\s*")
_SLASH_SPLIT = re.compile(r"\s*/\s*")


def join_path(segments: List[str]) -> Optional[str]:
    """Join trimmed, non-empty segments with ' > ', or None when nothing is left."""
    cleaned = [str(s).strip() for s in segments if s is not None and str(s).strip()]
    return PATH_SEPARATOR.join(cleaned) if cleaned else None


def split_path_segments(path) -> List[str]:
    """
    Split a breadcrumb into trimmed segments.

    Accepts both "A > B > C" and "A / B / C". Empty segments are dropped.

    Args:
        path: Breadcrumb string (anything else yields [])

    Returns:
        List of segments
    """
    if not isinstance(path, str):
        return []

    trimmed = path.strip()
    if not trimmed:
        return []

    segments = _ARROW_SPLIT.split(trimmed)
    if len(segments) <= 1:
        segments = _SLASH_SPLIT.split(trimmed)

    return [s.strip() for s in segments if s.strip()]


class PathResolver:
    """
    Compute paths and depths over one tree.

    Args:
        nodes: Mapping of link key -> node. Nodes need `id`, `name` and the
            attribute named by `parent_attr`.
        parent_attr: Node attribute holding the parent's link key
            ("parent_id" for stored trees, "parent_guid" mid-sync).
        fallback: Optional lookup for parents missing from `nodes`
            (e.g. unchanged parents outside the current batch).
    """

    def __init__(
        self,
        nodes: Dict[str, object],
        parent_attr: str = "parent_id",
        fallback: Optional[Callable[[str], Optional[object]]] = None
    ):
        self.nodes = nodes
        self.parent_attr = parent_attr
        self.fallback = fallback
        self._path_cache: Dict[str, Optional[str]] = {}
        self._depth_cache: Dict[str, int] = {}
        self._fallback_cache: Dict[str, Optional[object]] = {}

    def _parent(self, key: str):
        node = self.nodes.get(key)
        if node is not None or self.fallback is None:
            return node

        if key not in self._fallback_cache:
            self._fallback_cache[key] = self.fallback(key)
        return self._fallback_cache[key]

    def _chain(self, node) -> List[object]:
        """Node followed by its ancestors, nearest first."""
        chain = [node]
        visited = {getattr(node, "id", None)}
        current = node
        hops = 0

        while True:
            parent_key = getattr(current, self.parent_attr, None)
            if not parent_key:
                break

            parent = self._parent(parent_key)
            if parent is None:
                # Dangling parent reference
                break

            if parent.id in visited:
                logging.debug(f"Parent cycle detected at category {parent.id}; path truncated")
                break

            if hops >= MAX_HOPS:
                logging.warning(f"Category {node.id} exceeds {MAX_HOPS} parent hops; path truncated")
                break

            visited.add(parent.id)
            chain.append(parent)
            current = parent
            hops += 1

        return chain

    def path(self, node) -> Optional[str]:
        """Breadcrumb from the root down to `node`, or None for nameless chains."""
        if node is None:
            return None

        if node.id in self._path_cache:
            return self._path_cache[node.id]

        names = [getattr(n, "name", None) for n in reversed(self._chain(node))]
        path = join_path(names)
        self._path_cache[node.id] = path
        return path

    def depth(self, node) -> int:
        """Number of nodes on the chain (a root has depth 1)."""
        if node is None:
            return 0

        if node.id not in self._depth_cache:
            self._depth_cache[node.id] = len(self._chain(node))
        return self._depth_cache[node.id]

    def forget(self, node_id: str):
        """Drop memoized results for one node after it was renamed or moved."""
        self._path_cache.pop(node_id, None)
        self._depth_cache.pop(node_id, None)
