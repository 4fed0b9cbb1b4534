"""
In-memory category repository with JSON persistence.

Holds shops, both category trees, mapping rows and products, indexed by
identifier and natural key. Components read whole batches from here up front
and hand plain lists to the pure matching/path code.
"""

import os
import json
import uuid
import logging
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Tuple

from .models import (
    Shop,
    CanonicalCategoryNode,
    ShopCategoryNode,
    CategoryMapping,
    Product,
)

STORE_VERSION = "1.0"


def new_id() -> str:
    """Random identifier for a freshly inserted record."""
    return str(uuid.uuid4())


class CategoryRepository:
    """All persisted category hub state."""

    def __init__(self):
        self.shops: Dict[int, Shop] = {}
        self.canonical_nodes: Dict[str, CanonicalCategoryNode] = {}
        self.shop_nodes: Dict[str, ShopCategoryNode] = {}
        self.mappings: List[CategoryMapping] = []
        self.products: Dict[str, Product] = {}
        self._canonical_by_guid: Dict[str, str] = {}
        self._shop_node_keys: Dict[Tuple[int, str], str] = {}

    # ------------------------------------------------------------------
    # Shops
    # ------------------------------------------------------------------

    def add_shop(self, shop: Shop) -> Shop:
        self.shops[shop.id] = shop
        return shop

    def get_shop(self, shop_id) -> Optional[Shop]:
        if shop_id is None:
            return None
        try:
            return self.shops.get(int(shop_id))
        except (TypeError, ValueError):
            return None

    def master_shops(self) -> List[Shop]:
        return sorted((s for s in self.shops.values() if s.is_master), key=lambda s: s.id)

    # ------------------------------------------------------------------
    # Canonical tree
    # ------------------------------------------------------------------

    def get_canonical(self, node_id: Optional[str]) -> Optional[CanonicalCategoryNode]:
        return self.canonical_nodes.get(node_id) if node_id else None

    def canonical_by_guid(self, guid: Optional[str]) -> Optional[CanonicalCategoryNode]:
        if not guid:
            return None
        return self.canonical_nodes.get(self._canonical_by_guid.get(guid))

    def save_canonical(self, node: CanonicalCategoryNode) -> CanonicalCategoryNode:
        previous = self.canonical_nodes.get(node.id)
        if previous is not None and previous.guid != node.guid:
            self._canonical_by_guid.pop(previous.guid, None)

        self.canonical_nodes[node.id] = node
        self._canonical_by_guid[node.guid] = node.id
        return node

    def list_canonical(self, shop_id: Optional[int] = None) -> List[CanonicalCategoryNode]:
        nodes = self.canonical_nodes.values()
        if shop_id is not None:
            nodes = [n for n in nodes if n.shop_id == shop_id]
        return list(nodes)

    # ------------------------------------------------------------------
    # Shop trees
    # ------------------------------------------------------------------

    def get_shop_node(self, node_id: Optional[str]) -> Optional[ShopCategoryNode]:
        return self.shop_nodes.get(node_id) if node_id else None

    def shop_node_by_guid(self, shop_id: int, remote_guid: Optional[str]) -> Optional[ShopCategoryNode]:
        if not remote_guid:
            return None
        return self.shop_nodes.get(self._shop_node_keys.get((shop_id, remote_guid)))

    def save_shop_node(self, node: ShopCategoryNode) -> ShopCategoryNode:
        previous = self.shop_nodes.get(node.id)
        if previous is not None:
            old_key = (previous.shop_id, previous.remote_guid)
            if old_key != (node.shop_id, node.remote_guid):
                self._shop_node_keys.pop(old_key, None)

        self.shop_nodes[node.id] = node
        self._shop_node_keys[(node.shop_id, node.remote_guid)] = node.id
        return node

    def delete_shop_node(self, node_id: str):
        node = self.shop_nodes.pop(node_id, None)
        if node is not None:
            self._shop_node_keys.pop((node.shop_id, node.remote_guid), None)

    def list_shop_nodes(self, shop_id: int) -> List[ShopCategoryNode]:
        return [n for n in self.shop_nodes.values() if n.shop_id == shop_id]

    def shop_nodes_with_guid(self, remote_guid: str) -> List[ShopCategoryNode]:
        """Nodes of every shop mirroring the given remote GUID."""
        return [n for n in self.shop_nodes.values() if n.remote_guid == remote_guid]

    def shop_children(self, node_id: str) -> List[ShopCategoryNode]:
        return [n for n in self.shop_nodes.values() if n.parent_id == node_id]

    # ------------------------------------------------------------------
    # Mappings
    # ------------------------------------------------------------------

    def mappings_for(self, category_node_id: str, shop_id: int) -> List[CategoryMapping]:
        return [
            m for m in self.mappings
            if m.category_node_id == category_node_id and m.shop_id == shop_id
        ]

    def list_mappings(self, shop_id: Optional[int] = None) -> List[CategoryMapping]:
        if shop_id is None:
            return list(self.mappings)
        return [m for m in self.mappings if m.shop_id == shop_id]

    def add_mapping(self, mapping: CategoryMapping) -> CategoryMapping:
        self.mappings.append(mapping)
        return mapping

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    def add_product(self, product: Product) -> Product:
        self.products[product.id] = product
        return product

    def iter_products(
        self,
        shop_id: int,
        search: Optional[str] = None,
        chunk_size: int = 100
    ) -> Iterator[Product]:
        """
        Yield the products of one shop ordered by SKU, reading them in chunks.

        Args:
            shop_id: Owning (master) shop
            search: Case-insensitive substring matched against SKU and variant codes
            chunk_size: Number of products materialized per batch

        Yields:
            Product records
        """
        needle = search.strip().lower() if search and search.strip() else None

        def matches(product: Product) -> bool:
            if needle is None:
                return True
            if needle in (product.sku or "").lower():
                return True
            return any(isinstance(code, str) and needle in code.lower() for code in product.variant_codes or [])

        ordered = sorted(
            (p for p in self.products.values() if p.shop_id == shop_id),
            key=lambda p: (p.sku or "", p.id)
        )

        chunk_size = max(1, int(chunk_size))
        for start in range(0, len(ordered), chunk_size):
            for product in ordered[start:start + chunk_size]:
                if matches(product):
                    yield product

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict:
        """Serializable state (without the save timestamp)."""
        return {
            "version": STORE_VERSION,
            "shops": [s.to_dict() for s in sorted(self.shops.values(), key=lambda s: s.id)],
            "canonical_nodes": [n.to_dict() for n in self.canonical_nodes.values()],
            "shop_nodes": [n.to_dict() for n in self.shop_nodes.values()],
            "mappings": [m.to_dict() for m in self.mappings],
            "products": [p.to_dict() for p in self.products.values()],
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "CategoryRepository":
        repo = cls()
        for item in data.get("shops", []):
            repo.add_shop(Shop.from_dict(item))
        for item in data.get("canonical_nodes", []):
            repo.save_canonical(CanonicalCategoryNode.from_dict(item))
        for item in data.get("shop_nodes", []):
            repo.save_shop_node(ShopCategoryNode.from_dict(item))
        for item in data.get("mappings", []):
            repo.add_mapping(CategoryMapping.from_dict(item))
        for item in data.get("products", []):
            repo.add_product(Product.from_dict(item))
        return repo

    def save(self, path: str):
        """Write the whole repository to a JSON file."""
        data = self.to_dict()
        data["saved_at"] = datetime.now().isoformat()

        try:
            directory = os.path.dirname(path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            logging.debug(f"Saved category repository: {path}")
        except IOError as e:
            logging.error(f"Failed to write category repository {path}: {e}")
            raise

    @classmethod
    def load(cls, path: str) -> "CategoryRepository":
        """
        Read a repository snapshot.

        A missing file yields an empty repository; an unreadable or corrupt
        file is logged and also yields an empty repository.
        """
        if not os.path.exists(path):
            logging.info(f"No category repository at {path}, starting fresh")
            return cls()

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logging.warning(f"⚠️  Failed to parse category repository {path}: {e}. Starting fresh.")
            return cls()
        except IOError as e:
            logging.warning(f"⚠️  Failed to read category repository {path}: {e}. Starting fresh.")
            return cls()

        if not isinstance(data, dict):
            logging.warning(f"⚠️  Invalid repository structure in {path}. Starting fresh.")
            return cls()

        repo = cls.from_dict(data)
        logging.info(
            f"📂 Loaded category repository: {len(repo.shops)} shops, "
            f"{len(repo.canonical_nodes)} canonical nodes, {len(repo.shop_nodes)} shop nodes, "
            f"{len(repo.mappings)} mappings, {len(repo.products)} products"
        )
        return repo
