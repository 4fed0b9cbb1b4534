"""
Category tree synchronization.

Ingests one storefront (or master) category snapshot: upserts nodes by GUID,
links parents in a second pass because payload order is arbitrary, refreshes
breadcrumb paths of every touched node and its descendants, then hands the
result to the mapping store.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .config import log_and_status
from .mapping_store import MappingStore
from .models import CanonicalCategoryNode, Shop, ShopCategoryNode, PRESENTATION_FIELDS
from .paths import PathResolver
from .payload import collect_categories
from .repository import CategoryRepository, new_id


def timestamp() -> str:
    return datetime.now().isoformat(timespec="seconds")


def deep_merge(old: Any, new: Any) -> Any:
    """
    Additive merge of nested dicts.

    Keys from `new` win; keys only present in `old` survive. Non-dict values
    (lists included) are replaced wholesale. Values taken from `new` are
    copied, so the result never shares containers with it.
    """
    if not isinstance(old, dict) or not isinstance(new, dict):
        return copy.deepcopy(new)

    merged = dict(old)
    for key, value in new.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def collect_descendants(repo: CategoryRepository, node_ids: List[str]) -> List[ShopCategoryNode]:
    """Every storefront node below the given ones (cycle-safe, by identifier)."""
    children: Dict[str, List[ShopCategoryNode]] = {}
    for node in repo.shop_nodes.values():
        if node.parent_id:
            children.setdefault(node.parent_id, []).append(node)

    found = []
    visited = set(node_ids)
    queue = list(node_ids)
    while queue:
        current = queue.pop(0)
        for child in children.get(current, []):
            if child.id in visited:
                continue
            visited.add(child.id)
            found.append(child)
            queue.append(child.id)
    return found


def refresh_shop_paths(repo: CategoryRepository, shop_id: int, nodes: List[ShopCategoryNode]) -> int:
    """
    Recompute cached paths of `nodes` and all their descendants.

    Returns:
        Number of nodes whose path changed
    """
    resolver = PathResolver({n.id: n for n in repo.list_shop_nodes(shop_id)})
    targets = list(nodes) + collect_descendants(repo, [n.id for n in nodes])

    changed = 0
    now = timestamp()
    for node in targets:
        path = resolver.path(node)
        if node.path != path:
            node.path = path
            node.updated_at = now
            changed += 1
    return changed


@dataclass
class SyncResult:
    """What one synchronization touched."""

    categories: List[Dict[str, Any]] = field(default_factory=list)
    canonical_nodes: List[CanonicalCategoryNode] = field(default_factory=list)
    shop_nodes: List[ShopCategoryNode] = field(default_factory=list)
    mappings_written: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "categories": len(self.categories),
            "canonical_nodes": len(self.canonical_nodes),
            "shop_nodes": len(self.shop_nodes),
            "mappings_written": self.mappings_written,
        }


class TreeSynchronizer:
    """Upserts category snapshots into a CategoryRepository."""

    def __init__(self, repo: CategoryRepository, mapping_store: Optional[MappingStore] = None):
        self.repo = repo
        self.mapping_store = mapping_store or MappingStore(repo)

    def sync(self, payload: Dict[str, Any], shop: Shop, status_fn=None) -> SyncResult:
        """
        Synchronize one snapshot into the shop's tree (and the canonical tree
        when the shop is a master), then auto-link mappings.

        Args:
            payload: Raw snapshot dict (`categories`, `allCategories`, `defaultCategory`)
            shop: Shop the snapshot belongs to
            status_fn: Optional status callback

        Returns:
            SyncResult
        """
        categories = collect_categories(payload)
        if not categories:
            log_and_status(status_fn, f"No categories in snapshot for shop {shop.id}", "warning")
            return SyncResult()

        shop_nodes = self._sync_shop_nodes(categories, shop)
        canonical_nodes = []
        written = 0

        if shop.is_master:
            canonical_nodes = self._sync_canonical_nodes(categories, shop)
            written += self.mapping_store.refresh_canonical_mappings(canonical_nodes)

        written += self.mapping_store.link_shop_nodes(shop, shop_nodes)

        result = SyncResult(categories, canonical_nodes, shop_nodes, written)
        log_and_status(
            status_fn,
            f"Synced shop {shop.id}: {len(categories)} categories, {len(canonical_nodes)} canonical nodes, "
            f"{len(shop_nodes)} shop nodes, {written} mappings written",
            ui_msg=f"✅ Synced {len(categories)} categories for shop '{shop.name}'"
        )
        return result

    def _sync_shop_nodes(self, categories: List[Dict[str, Any]], shop: Shop) -> List[ShopCategoryNode]:
        now = timestamp()
        batch: Dict[str, ShopCategoryNode] = {}

        for record in categories:
            guid = record["guid"]
            existing = self.repo.shop_node_by_guid(shop.id, guid)
            node = existing or ShopCategoryNode(id=new_id(), shop_id=shop.id, remote_guid=guid, name=record["name"])
            before = node.to_dict() if existing else None

            node.remote_id = record["remote_id"]
            node.parent_guid = record["parent_guid"]
            node.name = record["name"]
            node.slug = record["slug"] if record["slug"] is not None else node.slug

            position = record["position"]
            if position is None:
                position = node.position if existing and node.position is not None else 0
            node.position = position

            if "visible" in record:
                node.visible = record["visible"]
            elif not existing or node.visible is None:
                node.visible = True

            for column in PRESENTATION_FIELDS:
                if column in record:
                    setattr(node, column, copy.deepcopy(record[column]))

            node.data = deep_merge(node.data if existing else {}, record["data"])

            if before is None or node.to_dict() != before:
                node.updated_at = now

            self.repo.save_shop_node(node)
            batch[guid] = node

        for node in batch.values():
            parent = None
            if node.parent_guid:
                parent = batch.get(node.parent_guid) or self.repo.shop_node_by_guid(shop.id, node.parent_guid)

            parent_id = parent.id if parent else None
            if node.parent_id != parent_id:
                node.parent_id = parent_id
                node.updated_at = now

        refresh_shop_paths(self.repo, shop.id, list(batch.values()))
        return list(batch.values())

    def _sync_canonical_nodes(self, categories: List[Dict[str, Any]], shop: Shop) -> List[CanonicalCategoryNode]:
        batch: Dict[str, CanonicalCategoryNode] = {}

        for record in categories:
            guid = record["guid"]
            node = self.repo.canonical_by_guid(guid)
            if node is None:
                node = CanonicalCategoryNode(id=new_id(), guid=guid, shop_id=shop.id, name=record["name"])

            node.shop_id = shop.id
            node.parent_guid = record["parent_guid"]
            node.name = record["name"]
            node.slug = record["slug"]
            if record["position"] is not None:
                node.position = record["position"]
            elif node.position is None:
                node.position = 0
            node.data = copy.deepcopy(record["data"])

            self.repo.save_canonical(node)
            batch[guid] = node

        for node in batch.values():
            if not node.parent_guid:
                node.parent_id = None
                continue

            parent = batch.get(node.parent_guid) or self.repo.canonical_by_guid(node.parent_guid)
            if parent is not None:
                node.parent_id = parent.id

        return list(batch.values())
