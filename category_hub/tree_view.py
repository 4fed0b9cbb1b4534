"""
Nested tree read model for UIs: the canonical tree annotated with each node's
mapping into a target shop, next to the target shop's own tree.
"""

from typing import Any, Dict, List, Optional

from .errors import MasterShopNotConfiguredError, ShopNotFoundError
from .mapping_store import MappingStore, canonical_pseudo_mapping, select_best_mapping
from .models import Shop, STATUS_CONFIRMED, STATUS_REJECTED, STATUS_SUGGESTED, PRESENTATION_FIELDS
from .paths import join_path
from .repository import CategoryRepository


def resolve_master_shop(repo: CategoryRepository, master_shop_id: Optional[int] = None) -> Shop:
    """
    The requested master shop, or the lowest-id master when none is given.

    Raises:
        MasterShopNotConfiguredError: Requested shop is not a master, or no master exists
    """
    if master_shop_id:
        shop = repo.get_shop(master_shop_id)
        if shop is None or not shop.is_master:
            raise MasterShopNotConfiguredError("Master shop not found.")
        return shop

    masters = repo.master_shops()
    if not masters:
        raise MasterShopNotConfiguredError("No master shop configured.")
    return masters[0]


def resolve_target_shop(repo: CategoryRepository, target_shop_id: Optional[int]) -> Optional[Shop]:
    """
    Raises:
        ShopNotFoundError: Unknown target shop id
    """
    if not target_shop_id:
        return None

    shop = repo.get_shop(target_shop_id)
    if shop is None:
        raise ShopNotFoundError("Target shop not found.")
    return shop


def _sort_key(node):
    return (node.position or 0, node.name or "")


def _group_by_parent(nodes) -> Dict[Optional[str], List[Any]]:
    grouped: Dict[Optional[str], List[Any]] = {}
    for node in nodes:
        grouped.setdefault(node.parent_id, []).append(node)
    for children in grouped.values():
        children.sort(key=_sort_key)
    return grouped


def _roots(grouped: Dict[Optional[str], List[Any]], ids) -> List[Any]:
    """Nodes without a parent, or whose parent is not part of the tree."""
    roots = []
    for parent_id, children in grouped.items():
        if parent_id is None or parent_id not in ids:
            roots.extend(children)
    return sorted(roots, key=_sort_key)


def summarize_mappings(mappings) -> Dict[str, int]:
    return {
        "total": len(mappings),
        "confirmed": sum(1 for m in mappings if m.status == STATUS_CONFIRMED),
        "suggested": sum(1 for m in mappings if m.status == STATUS_SUGGESTED),
        "rejected": sum(1 for m in mappings if m.status == STATUS_REJECTED),
    }


def build_trees(
    repo: CategoryRepository,
    target_shop_id: Optional[int] = None,
    master_shop_id: Optional[int] = None
) -> Dict[str, Any]:
    """
    Build the canonical and storefront trees for display.

    Args:
        repo: Repository
        target_shop_id: Shop whose mappings annotate the canonical tree
        master_shop_id: Master shop (defaults to the lowest-id master)

    Returns:
        {master_shop, target_shop, canonical, shop, summary, shop_synced_at}
    """
    master_shop = resolve_master_shop(repo, master_shop_id)
    target_shop = resolve_target_shop(repo, target_shop_id)
    store = MappingStore(repo)

    canonical_nodes = repo.list_canonical(master_shop.id)
    shop_nodes = repo.list_shop_nodes(target_shop.id) if target_shop else []
    mappings = repo.list_mappings(target_shop.id) if target_shop else []

    by_canonical: Dict[str, list] = {}
    for mapping in mappings:
        by_canonical.setdefault(mapping.category_node_id, []).append(mapping)

    def canonical_branch(nodes, grouped, parent_path, visited):
        branch = []
        for node in nodes:
            if node.id in visited:
                continue
            visited.add(node.id)

            segments = parent_path + [node.name]
            path = join_path(segments)
            mapping = select_best_mapping(by_canonical.get(node.id, []))

            if mapping is not None:
                mapping_payload = store.mapping_payload(mapping)
            elif target_shop is not None and target_shop.id == node.shop_id:
                mapping_payload = canonical_pseudo_mapping(node, path)
            else:
                mapping_payload = None

            branch.append({
                "id": node.id,
                "guid": node.guid,
                "name": node.name,
                "slug": node.slug,
                "path": path,
                "mapping": mapping_payload,
                "children": canonical_branch(grouped.get(node.id, []), grouped, segments, visited),
            })
        return branch

    def shop_branch(nodes, grouped, parent_path, visited):
        branch = []
        for node in nodes:
            if node.id in visited:
                continue
            visited.add(node.id)

            segments = parent_path + [node.name]
            entry = {
                "id": node.id,
                "remote_guid": node.remote_guid,
                "name": node.name,
                "slug": node.slug,
                "path": join_path(segments),
                "visible": node.visible,
            }
            for column in PRESENTATION_FIELDS:
                entry[column] = getattr(node, column)
            entry["data"] = node.data
            entry["children"] = shop_branch(grouped.get(node.id, []), grouped, segments, visited)
            branch.append(entry)
        return branch

    grouped_canonical = _group_by_parent(canonical_nodes)
    grouped_shop = _group_by_parent(shop_nodes)

    canonical_tree = canonical_branch(
        _roots(grouped_canonical, {n.id for n in canonical_nodes}), grouped_canonical, [], set()
    )
    shop_tree = shop_branch(
        _roots(grouped_shop, {n.id for n in shop_nodes}), grouped_shop, [], set()
    )

    synced = [n.updated_at for n in shop_nodes if n.updated_at]

    return {
        "master_shop": {"id": master_shop.id, "name": master_shop.name},
        "target_shop": {"id": target_shop.id, "name": target_shop.name} if target_shop else None,
        "canonical": canonical_tree,
        "shop": shop_tree,
        "summary": {
            "canonical_count": len(canonical_nodes),
            "shop_count": len(shop_nodes),
            "mappings": summarize_mappings(mappings),
        },
        "shop_synced_at": max(synced) if synced else None,
    }
