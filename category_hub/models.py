"""
Data model for the category hub.

Shops, the canonical (master) category tree, storefront category mirrors,
canonical-to-shop mappings and the product records checked by the default
category report. Every record round-trips through plain dicts for JSON
persistence.
"""

from dataclasses import dataclass, field, asdict, fields
from typing import Any, Dict, List, Optional


# Mapping statuses
STATUS_PENDING = "pending"
STATUS_SUGGESTED = "suggested"
STATUS_CONFIRMED = "confirmed"
STATUS_REJECTED = "rejected"
STATUS_CANONICAL = "canonical"

MAPPING_STATUSES = (
    STATUS_PENDING,
    STATUS_SUGGESTED,
    STATUS_CONFIRMED,
    STATUS_REJECTED,
    STATUS_CANONICAL,
)

# Mapping sources
SOURCE_AUTO = "auto"
SOURCE_MANUAL = "manual"
SOURCE_AI = "ai"
SOURCE_MASTER = "master"

# Storefront presentation columns carried over between syncs when absent
PRESENTATION_FIELDS = (
    "url",
    "index_name",
    "image",
    "menu_title",
    "title",
    "meta_description",
    "description",
    "second_description",
    "customer_visibility",
    "product_ordering",
    "similar_category_guid",
    "related_category_guid",
)


def _from_dict(cls, data: Dict[str, Any]):
    """Build a dataclass from a dict, ignoring unknown keys."""
    known = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class Shop:
    """One storefront. Exactly the master shops own canonical categories."""

    id: int
    name: str
    is_master: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Shop":
        return _from_dict(cls, data)


@dataclass
class CanonicalCategoryNode:
    """Node of the master taxonomy, identified across syncs by its GUID."""

    id: str
    guid: str
    shop_id: int
    name: str
    slug: Optional[str] = None
    parent_id: Optional[str] = None
    parent_guid: Optional[str] = None
    position: int = 0
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CanonicalCategoryNode":
        return _from_dict(cls, data)


@dataclass
class ShopCategoryNode:
    """Storefront-local mirror of one remote category. Unique per (shop_id, remote_guid)."""

    id: str
    shop_id: int
    remote_guid: str
    name: str
    remote_id: Optional[Any] = None
    parent_id: Optional[str] = None
    parent_guid: Optional[str] = None
    slug: Optional[str] = None
    path: Optional[str] = None
    position: int = 0
    visible: bool = True
    data: Dict[str, Any] = field(default_factory=dict)
    url: Optional[str] = None
    index_name: Optional[str] = None
    image: Optional[Any] = None
    menu_title: Optional[str] = None
    title: Optional[str] = None
    meta_description: Optional[str] = None
    description: Optional[str] = None
    second_description: Optional[str] = None
    customer_visibility: Optional[Any] = None
    product_ordering: Optional[Any] = None
    similar_category_guid: Optional[str] = None
    related_category_guid: Optional[str] = None
    updated_at: Optional[str] = None

    def summary(self) -> Dict[str, Any]:
        """Short form embedded into mapping payloads."""
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "path": self.path,
            "remote_guid": self.remote_guid,
        }

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ShopCategoryNode":
        return _from_dict(cls, data)


@dataclass
class CategoryMapping:
    """Link from one canonical node to its counterpart in one shop."""

    id: str
    category_node_id: str
    shop_id: int
    shop_category_node_id: Optional[str] = None
    status: str = STATUS_PENDING
    confidence: Optional[float] = None
    source: str = SOURCE_AUTO
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CategoryMapping":
        return _from_dict(cls, data)


@dataclass
class Product:
    """
    Master product record with its per-shop storefront overlays.

    `base_payload` is the master snapshot (carries `defaultCategory`);
    `overlays` maps a target shop id (as string) to that storefront's payload.
    """

    id: str
    shop_id: int
    sku: str
    base_payload: Dict[str, Any] = field(default_factory=dict)
    variant_codes: List[str] = field(default_factory=list)
    overlays: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def overlay_for(self, shop_id: int) -> Optional[Dict[str, Any]]:
        return self.overlays.get(str(shop_id))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Product":
        product = _from_dict(cls, data)
        if not isinstance(product.base_payload, dict):
            product.base_payload = {}
        if not isinstance(product.variant_codes, list):
            product.variant_codes = []
        overlays = product.overlays if isinstance(product.overlays, dict) else {}
        product.overlays = {str(k): v for k, v in overlays.items()}
        return product
