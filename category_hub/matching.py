"""
Matching of storefront categories to canonical categories.

A cascade of exact strategies is tried in order (GUID, slug, path, name) and
the first unambiguous hit wins. Confidence values per strategy are fixed
tuning constants kept here so they can be recalibrated in one place.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .models import CanonicalCategoryNode, STATUS_CONFIRMED, STATUS_SUGGESTED
from .paths import PathResolver

# Cascade confidences (tunable)
GUID_CONFIDENCE = 1.0
SLUG_CONFIDENCE = 0.70
PATH_CONFIDENCE = 0.60
NAME_CONFIDENCE = 0.40

STRATEGY_GUID = "guid"
STRATEGY_SLUG = "slug"
STRATEGY_PATH = "path"
STRATEGY_NAME = "name"


@dataclass(frozen=True)
class MatchResult:
    node: CanonicalCategoryNode
    confidence: float
    status: str
    strategy: str


@dataclass
class CanonicalIndex:
    """Lookup tables over the whole canonical tree."""

    by_guid: Dict[str, CanonicalCategoryNode] = field(default_factory=dict)
    by_slug: Dict[str, List[CanonicalCategoryNode]] = field(default_factory=dict)
    by_path: Dict[str, List[CanonicalCategoryNode]] = field(default_factory=dict)
    by_name: Dict[str, List[CanonicalCategoryNode]] = field(default_factory=dict)
    paths: Dict[str, Optional[str]] = field(default_factory=dict)


def _key(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip().lower()
    return text or None


def build_canonical_index(nodes: List[CanonicalCategoryNode]) -> CanonicalIndex:
    """
    Index canonical nodes by GUID, lowercased slug, path and name.

    Args:
        nodes: Every canonical node (the full tree, so paths resolve)

    Returns:
        CanonicalIndex
    """
    index = CanonicalIndex()
    resolver = PathResolver({n.id: n for n in nodes})

    for node in nodes:
        if node.guid:
            index.by_guid[node.guid] = node

        slug = _key(node.slug)
        if slug:
            index.by_slug.setdefault(slug, []).append(node)

        name = _key(node.name)
        if name:
            index.by_name.setdefault(name, []).append(node)

        path = resolver.path(node)
        index.paths[node.id] = path
        if path:
            index.by_path.setdefault(path.lower(), []).append(node)

    return index


def resolve_candidate(candidates: List[CanonicalCategoryNode], shop_node) -> Optional[CanonicalCategoryNode]:
    """
    Pick the single canonical node among tied candidates.

    Ties are broken only by parent GUID, and only when the shop node has one.
    Anything still ambiguous is no match.
    """
    if not candidates:
        return None

    if len(candidates) == 1:
        return candidates[0]

    parent_guid = shop_node.parent_guid
    if parent_guid:
        filtered = [c for c in candidates if c.parent_guid == parent_guid]
        if len(filtered) == 1:
            return filtered[0]

    return None


def match_shop_node(shop_node, index: CanonicalIndex) -> Optional[MatchResult]:
    """
    Run the matching cascade for one storefront node.

    Args:
        shop_node: ShopCategoryNode to match
        index: Canonical index from build_canonical_index()

    Returns:
        MatchResult, or None when every strategy fails or is ambiguous
    """
    guid = shop_node.remote_guid
    if guid and guid in index.by_guid:
        return MatchResult(index.by_guid[guid], GUID_CONFIDENCE, STATUS_CONFIRMED, STRATEGY_GUID)

    cascade = (
        (_key(shop_node.slug), index.by_slug, SLUG_CONFIDENCE, STRATEGY_SLUG),
        (_key(shop_node.path), index.by_path, PATH_CONFIDENCE, STRATEGY_PATH),
        (_key(shop_node.name), index.by_name, NAME_CONFIDENCE, STRATEGY_NAME),
    )

    for key, table, confidence, strategy in cascade:
        if not key:
            continue

        resolved = resolve_candidate(table.get(key, []), shop_node)
        if resolved is not None:
            return MatchResult(resolved, confidence, STATUS_SUGGESTED, strategy)

    return None
