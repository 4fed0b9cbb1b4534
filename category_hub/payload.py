"""
Raw storefront payload helpers.

Remote payloads name the same concept under several keys (`friendlyUrl` vs
`url`, `guid` vs `remoteGuid` vs `category.guid`...). The synonym lists live
here as data; extraction walks them in priority order.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple


# Keys holding category records in a product/category snapshot
CATEGORY_LIST_KEY = "categories"
CATEGORY_GROUPS_KEY = "allCategories"
DEFAULT_CATEGORY_KEY = "defaultCategory"

# Storefront presentation columns -> raw payload key
PRESENTATION_KEYS = {
    "url": "url",
    "index_name": "indexName",
    "image": "image",
    "description": "description",
    "second_description": "secondDescription",
    "menu_title": "menuTitle",
    "title": "title",
    "meta_description": "metaTagDescription",
    "customer_visibility": "customerVisibility",
    "product_ordering": "productOrdering",
    "similar_category_guid": "similarProductsCategory",
    "related_category_guid": "relatedProductsCategory",
}

SLUG_KEYS = (("friendlyUrl",), ("url",))

# Category reference synonyms, tried in order
GUID_KEYS = (
    ("guid",),
    ("remoteGuid",),
    ("categoryGuid",),
    ("category", "guid"),
    ("category", "remoteGuid"),
)
PATH_KEYS = (
    ("path",),
    ("fullPath",),
    ("categoryPath",),
    ("category", "path"),
    ("category", "fullPath"),
)
NAME_KEYS = (
    ("name",),
    ("title",),
    ("label",),
    ("category", "name"),
    ("category", "title"),
)

# Keys scanned for category references in a storefront product payload
REFERENCE_KEYS = (
    "allCategories",
    "categories",
    "categoryAssignments",
    "category",
    "secondaryCategories",
    "categoriesAssignments",
    "categoryGuids",
    "categoriesGuids",
    "categoriesPaths",
)


def dig(data: Any, keys: Tuple[str, ...]) -> Any:
    """Follow a tuple of nested keys through dicts; None when any hop is missing."""
    current = data
    for key in keys:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def first_value(data: Any, synonyms: Iterable[Tuple[str, ...]]) -> Optional[Any]:
    """Return the first synonym whose value is neither None nor an empty string."""
    for keys in synonyms:
        value = dig(data, keys)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def first_string(data: Any, synonyms: Iterable[Tuple[str, ...]]) -> Optional[str]:
    value = first_value(data, synonyms)
    return None if value is None else str(value)


def _to_int(value) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def normalize_category(item: Dict[str, Any]) -> Dict[str, Any]:
    """
    Turn one raw category record into the flat shape used by the synchronizer.

    Presentation fields and `visible` are only included when the raw record
    carries their key, so the synchronizer can tell "absent" from "cleared".

    Args:
        item: Raw category dict with at least a `guid`

    Returns:
        Normalized category dict
    """
    record = {
        "guid": str(item["guid"]),
        "parent_guid": item.get("parentGuid") or None,
        "remote_id": item.get("id"),
        "name": str(item["name"]) if item.get("name") is not None else "Unknown",
        "slug": first_string(item, SLUG_KEYS),
        "position": _to_int(item["position"]) if "position" in item else None,
        "data": item,
    }

    if "visible" in item:
        record["visible"] = bool(item["visible"])

    for column, raw_key in PRESENTATION_KEYS.items():
        if raw_key in item:
            record[column] = item[raw_key]

    return record


def collect_categories(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    """
    Flatten every category record of a snapshot into one unique-by-GUID list.

    Looks at `categories`, each group inside `allCategories`, and the
    `defaultCategory` record. Records without a GUID are skipped; the first
    record seen for a GUID wins.

    Args:
        payload: Raw snapshot dict

    Returns:
        List of normalized category dicts in first-seen order
    """
    if not isinstance(payload, dict):
        return []

    raw_items = []

    items = payload.get(CATEGORY_LIST_KEY)
    if isinstance(items, list):
        raw_items.extend(items)

    groups = payload.get(CATEGORY_GROUPS_KEY)
    if isinstance(groups, list):
        for group in groups:
            if isinstance(group, list):
                raw_items.extend(group)

    default_category = payload.get(DEFAULT_CATEGORY_KEY)
    if isinstance(default_category, dict):
        raw_items.append(default_category)

    seen = set()
    categories = []
    for item in raw_items:
        if not isinstance(item, dict) or not item.get("guid"):
            continue

        guid = str(item["guid"])
        if guid in seen:
            continue

        seen.add(guid)
        categories.append(normalize_category(item))

    return categories


def extract_category_guids(payload: Dict[str, Any]) -> List[str]:
    """Unique category GUIDs referenced by a snapshot, in first-seen order."""
    return [c["guid"] for c in collect_categories(payload)]


# ---------------------------------------------------------------------------
# Category references inside storefront product payloads
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CategoryRef:
    """One category reference found in a storefront payload."""

    guid: Optional[str] = None
    name: Optional[str] = None
    path: Optional[str] = None
    id: Optional[str] = None

    @property
    def key(self) -> str:
        return f"{self.guid or ''}|{self.path or ''}".strip().lower()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "guid": self.guid,
            "remote_guid": self.guid,
            "name": self.name,
            "path": self.path,
        }


def looks_like_path(text: str) -> bool:
    return ">" in text or "/" in text


def ref_from_path_string(text: str) -> CategoryRef:
    return CategoryRef(path=text)


def ref_from_guid_string(text: str, shop_nodes_by_guid: Dict[str, Any]) -> CategoryRef:
    node = shop_nodes_by_guid.get(text)
    if node is None:
        return CategoryRef(guid=text)

    path = node.path.strip() if node.path else None
    return CategoryRef(guid=text, name=node.name, path=path, id=node.id)


def ref_from_mapping(item: Dict[str, Any], shop_nodes_by_guid: Dict[str, Any]) -> Optional[CategoryRef]:
    """Reference from an object carrying any of the GUID/path/name synonyms."""
    guid = first_string(item, GUID_KEYS)
    path = first_value(item, PATH_KEYS)
    name = first_string(item, NAME_KEYS)
    node_id = None

    node = shop_nodes_by_guid.get(guid) if guid else None
    if node is not None:
        path = path if path is not None else node.path
        name = name if name is not None else node.name
        node_id = node.id

    path = path.strip() if isinstance(path, str) else None
    if not guid and not path:
        return None

    return CategoryRef(guid=guid, name=name, path=path, id=node_id)


def normalize_reference(entry: Any, shop_nodes_by_guid: Dict[str, Any]) -> Optional[CategoryRef]:
    """
    Normalize one reference of any supported shape.

    Bare strings containing '>' or '/' are paths, other bare strings are GUIDs
    (resolved against the storefront tree), dicts go through the synonym
    tables. Anything else yields None.
    """
    if isinstance(entry, str):
        text = entry.strip()
        if not text:
            return None
        if looks_like_path(text):
            return ref_from_path_string(text)
        return ref_from_guid_string(text, shop_nodes_by_guid)

    if isinstance(entry, dict):
        return ref_from_mapping(entry, shop_nodes_by_guid)

    return None


def collect_category_references(payload: Dict[str, Any], shop_nodes_by_guid: Dict[str, Any]) -> List[CategoryRef]:
    """
    Every category reference embedded in a storefront product payload.

    Args:
        payload: Storefront product payload
        shop_nodes_by_guid: Storefront nodes keyed by remote GUID

    Returns:
        References deduplicated by lowercased "guid|path", first seen wins
    """
    if not isinstance(payload, dict):
        return []

    entries = []
    for key in REFERENCE_KEYS:
        value = payload.get(key)
        if value is None:
            continue
        if isinstance(value, list):
            entries.extend(value)
        else:
            entries.append(value)

    if isinstance(payload.get(DEFAULT_CATEGORY_KEY), dict):
        entries.append(payload[DEFAULT_CATEGORY_KEY])

    refs = {}
    for entry in entries:
        ref = normalize_reference(entry, shop_nodes_by_guid)
        if ref is not None and ref.key not in refs:
            refs[ref.key] = ref

    return list(refs.values())
