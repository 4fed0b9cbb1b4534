"""
Administrative editing of a storefront category tree.

Create, update (including reparenting) and delete nodes by hand. Paths of the
edited node and of everything beneath it are recomputed after each edit.
"""

import logging
from typing import Any, Dict, List, Optional

from .errors import InvalidTreeOperationError
from .models import Shop, ShopCategoryNode, PRESENTATION_FIELDS
from .paths import MAX_HOPS
from .repository import CategoryRepository, new_id
from .tree_sync import collect_descendants, deep_merge, refresh_shop_paths, timestamp


def _resolve_parent(repo: CategoryRepository, shop_id: int, parent_id: Optional[str]) -> Optional[ShopCategoryNode]:
    if not parent_id:
        return None

    parent = repo.get_shop_node(parent_id)
    if parent is None or parent.shop_id != shop_id:
        raise InvalidTreeOperationError("Parent category not found for this shop.")
    return parent


def _next_position(repo: CategoryRepository, shop_id: int, parent: Optional[ShopCategoryNode]) -> int:
    parent_id = parent.id if parent else None
    positions = [
        n.position or 0 for n in repo.list_shop_nodes(shop_id)
        if n.parent_id == parent_id
    ]
    return max(positions, default=0) + 1


def _assert_not_descendant(repo: CategoryRepository, node: ShopCategoryNode, parent: Optional[ShopCategoryNode]):
    """Refuse to move `node` under itself or one of its descendants."""
    current = parent
    hops = 0
    while current is not None and hops < MAX_HOPS:
        if current.id == node.id:
            raise InvalidTreeOperationError("A category cannot be moved under itself.")
        current = repo.get_shop_node(current.parent_id)
        hops += 1


def _recalculate(repo: CategoryRepository, node: ShopCategoryNode):
    """Refresh children's parent GUIDs and the paths of the whole subtree."""
    for current in [node] + collect_descendants(repo, [node.id]):
        for child in repo.shop_children(current.id):
            if child.parent_guid != current.remote_guid:
                child.parent_guid = current.remote_guid
    refresh_shop_paths(repo, node.shop_id, [node])


def create_node(repo: CategoryRepository, shop: Shop, attributes: Dict[str, Any]) -> ShopCategoryNode:
    """
    Create a storefront category.

    Args:
        repo: Repository
        shop: Owning shop
        attributes: name, parent_id, remote_guid, remote_id, slug, position,
            visible, data and any presentation field

    Returns:
        The new node

    Raises:
        InvalidTreeOperationError: Parent unknown or from another shop
    """
    parent = _resolve_parent(repo, shop.id, attributes.get("parent_id"))

    position = attributes.get("position")
    data = attributes.get("data")

    node = ShopCategoryNode(
        id=new_id(),
        shop_id=shop.id,
        remote_guid=attributes.get("remote_guid") or new_id(),
        name=attributes.get("name") or "Unknown",
        remote_id=attributes.get("remote_id"),
        parent_id=parent.id if parent else None,
        parent_guid=parent.remote_guid if parent else None,
        slug=attributes.get("slug"),
        position=int(position) if position is not None else _next_position(repo, shop.id, parent),
        visible=bool(attributes["visible"]) if "visible" in attributes else True,
        data=deep_merge({}, data if isinstance(data, dict) else {}),
        updated_at=timestamp(),
    )
    for column in PRESENTATION_FIELDS:
        setattr(node, column, attributes.get(column))

    repo.save_shop_node(node)
    _recalculate(repo, node)

    logging.info(f"Created category '{node.path}' in shop {shop.id}")
    return node


def update_node(repo: CategoryRepository, node: ShopCategoryNode, attributes: Dict[str, Any]) -> ShopCategoryNode:
    """
    Partially update a storefront category. Only keys present in `attributes`
    are touched; `data` is merged into the stored data.

    Raises:
        InvalidTreeOperationError: New parent unknown, from another shop, or
            inside the node's own subtree
    """
    if "parent_id" in attributes:
        parent = _resolve_parent(repo, node.shop_id, attributes.get("parent_id"))
        _assert_not_descendant(repo, node, parent)
        node.parent_id = parent.id if parent else None
        node.parent_guid = parent.remote_guid if parent else None

    if "name" in attributes:
        node.name = attributes["name"]

    if "slug" in attributes:
        node.slug = attributes["slug"]

    if "position" in attributes:
        node.position = int(attributes["position"] or 0)

    if "data" in attributes:
        data = attributes["data"]
        node.data = deep_merge(node.data or {}, data if isinstance(data, dict) else {})

    if "visible" in attributes:
        node.visible = bool(attributes["visible"])

    for column in PRESENTATION_FIELDS:
        if column in attributes:
            setattr(node, column, attributes[column])

    node.updated_at = timestamp()
    repo.save_shop_node(node)
    _recalculate(repo, node)

    return node


def delete_node_with_children(repo: CategoryRepository, node: ShopCategoryNode) -> List[str]:
    """
    Delete a storefront category and its whole subtree (by identifier).

    Returns:
        Identifiers of the deleted nodes
    """
    ids = [child.id for child in collect_descendants(repo, [node.id])] + [node.id]
    for node_id in ids:
        repo.delete_shop_node(node_id)

    logging.info(f"Deleted {len(ids)} categories from shop {node.shop_id}")
    return ids
