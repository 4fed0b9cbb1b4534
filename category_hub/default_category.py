"""
Default category consistency report.

For every master product, compares the storefront's actual default category
with the one its canonical default maps to, and flags products whose default
could be a deeper category already assigned to them. Products are streamed
in chunks; nothing is written.
"""

import math
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence

from .mapping_store import select_best_mapping
from .models import CanonicalCategoryNode, Product, Shop, ShopCategoryNode
from .paths import PathResolver, split_path_segments
from .payload import CategoryRef, DEFAULT_CATEGORY_KEY, collect_category_references, first_string, dig
from .repository import CategoryRepository

MAX_PER_PAGE = 200
DEFAULT_PER_PAGE = 50
DEFAULT_CHUNK_SIZE = 100

REASON_MISSING_MASTER_DEFAULT = "missing_master_default"
REASON_CANONICAL_NOT_FOUND = "canonical_not_found"
REASON_MISSING_TARGET_SNAPSHOT = "missing_target_snapshot"
REASON_MISSING_MAPPING = "missing_mapping"
REASON_MISSING_ACTUAL_DEFAULT = "missing_actual_default"
REASON_MISMATCH = "mismatch"
REASON_DEFAULT_NOT_DEEPEST = "default_not_deepest"

REASONS = (
    REASON_MISSING_MASTER_DEFAULT,
    REASON_CANONICAL_NOT_FOUND,
    REASON_MISSING_TARGET_SNAPSHOT,
    REASON_MISSING_MAPPING,
    REASON_MISSING_ACTUAL_DEFAULT,
    REASON_MISMATCH,
    REASON_DEFAULT_NOT_DEEPEST,
)

_DEFAULT_GUID_KEYS = (
    (DEFAULT_CATEGORY_KEY, "guid"),
    (DEFAULT_CATEGORY_KEY, "remoteGuid"),
)


def _segments_equal(a: List[str], b: List[str]) -> bool:
    return len(a) == len(b) and all(x.lower() == y.lower() for x, y in zip(a, b))


def _prefix_matches(prefix: List[str], segments: List[str]) -> bool:
    if len(segments) < len(prefix):
        return False
    return all(x.lower() == y.lower() for x, y in zip(prefix, segments))


def find_deeper_category(
    default_guid: Optional[str],
    default_path: Optional[str],
    payload: Dict[str, Any],
    shop_nodes_by_guid: Dict[str, ShopCategoryNode]
) -> Optional[CategoryRef]:
    """
    Deepest category reference of `payload` lying strictly below the default.

    Candidates must extend the default's path segment by segment
    (case-insensitive). The deepest wins; ties go to the lexicographically
    smallest path.

    Args:
        default_guid: GUID of the current default (excluded from candidates)
        default_path: Breadcrumb of the current default
        payload: Storefront product payload
        shop_nodes_by_guid: Storefront nodes keyed by remote GUID

    Returns:
        The recommended reference, or None
    """
    default_segments = split_path_segments(default_path)
    if not default_segments:
        return None

    candidates = []
    for ref in collect_category_references(payload, shop_nodes_by_guid):
        if ref.guid and default_guid and ref.guid.lower() == default_guid.lower():
            continue

        segments = split_path_segments(ref.path)
        if not segments:
            continue

        if _segments_equal(default_segments, segments):
            continue

        if len(segments) <= len(default_segments):
            continue

        if not _prefix_matches(default_segments, segments):
            continue

        candidates.append((segments, ref))

    if not candidates:
        return None

    candidates.sort(key=lambda item: (-len(item[0]), item[1].path or ""))
    return candidates[0][1]


@dataclass
class _Context:
    """Everything preloaded once per report."""

    target_shop: Shop
    canonical_by_guid: Dict[str, CanonicalCategoryNode] = field(default_factory=dict)
    canonical_paths: Optional[PathResolver] = None
    shop_nodes_by_guid: Dict[str, ShopCategoryNode] = field(default_factory=dict)
    expected_by_canonical_guid: Dict[str, ShopCategoryNode] = field(default_factory=dict)


class DefaultCategoryValidator:
    """Builds the default category report for one master/target shop pair."""

    def __init__(self, repo: CategoryRepository, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.repo = repo
        self.chunk_size = chunk_size

    def _build_context(self, master_shop: Shop, target_shop: Shop) -> _Context:
        canonical_nodes = self.repo.list_canonical(master_shop.id)
        canonical_by_id = {n.id: n for n in canonical_nodes}

        shop_nodes = self.repo.list_shop_nodes(target_shop.id)
        context = _Context(
            target_shop=target_shop,
            canonical_by_guid={n.guid: n for n in canonical_nodes},
            canonical_paths=PathResolver(canonical_by_id),
            shop_nodes_by_guid={n.remote_guid: n for n in shop_nodes},
        )

        rows: Dict[str, list] = {}
        for mapping in self.repo.list_mappings(target_shop.id):
            if mapping.shop_category_node_id:
                rows.setdefault(mapping.category_node_id, []).append(mapping)

        for category_node_id, mappings in rows.items():
            canonical = canonical_by_id.get(category_node_id)
            best = select_best_mapping(mappings)
            shop_node = self.repo.get_shop_node(best.shop_category_node_id)
            if canonical is None or shop_node is None:
                continue
            context.expected_by_canonical_guid[canonical.guid] = shop_node

        return context

    def evaluate_product(self, product: Product, context: _Context) -> Optional[Dict[str, Any]]:
        """
        Classify one product.

        Returns:
            Issue dict, or None when the product's default is consistent
        """
        base = product.base_payload if isinstance(product.base_payload, dict) else {}
        master_guid = first_string(base, _DEFAULT_GUID_KEYS)
        master_name = dig(base, (DEFAULT_CATEGORY_KEY, "name"))

        reason = None
        recommended = None

        if not master_guid:
            reason = REASON_MISSING_MASTER_DEFAULT

        canonical = context.canonical_by_guid.get(master_guid) if master_guid else None
        canonical_path = context.canonical_paths.path(canonical) if canonical else None

        if reason is None and canonical is None:
            reason = REASON_CANONICAL_NOT_FOUND

        expected_node = context.expected_by_canonical_guid.get(canonical.guid) if canonical else None
        expected = None
        if expected_node is not None:
            expected = {
                "id": expected_node.id,
                "remote_guid": expected_node.remote_guid,
                "name": expected_node.name,
                "path": expected_node.path,
            }

        overlay = product.overlay_for(context.target_shop.id)
        if reason is None and overlay is None:
            reason = REASON_MISSING_TARGET_SNAPSHOT

        overlay_data = overlay if isinstance(overlay, dict) else {}
        actual_guid = first_string(overlay_data, _DEFAULT_GUID_KEYS)
        actual_name = dig(overlay_data, (DEFAULT_CATEGORY_KEY, "name"))
        actual_path = dig(overlay_data, (DEFAULT_CATEGORY_KEY, "path"))
        actual_id = None

        actual_node = context.shop_nodes_by_guid.get(actual_guid) if actual_guid else None
        if actual_node is not None:
            actual_name = actual_node.name
            actual_path = actual_node.path

        if reason is None:
            if expected_node is None:
                reason = REASON_MISSING_MAPPING
            elif not actual_guid:
                reason = REASON_MISSING_ACTUAL_DEFAULT
            elif expected_node.remote_guid != actual_guid:
                reason = REASON_MISMATCH
            else:
                comparison_path = actual_path if actual_path is not None else expected_node.path
                deeper = find_deeper_category(
                    actual_guid, comparison_path, overlay_data, context.shop_nodes_by_guid
                )
                if deeper is None:
                    return None

                reason = REASON_DEFAULT_NOT_DEEPEST
                recommended = deeper.to_dict()

        if actual_node is not None:
            actual_path = actual_node.path or actual_node.name
            actual_id = actual_node.id

        actual = None
        if actual_guid or actual_name or actual_path:
            actual = {
                "id": actual_id,
                "guid": actual_guid,
                "name": actual_name,
                "path": actual_path,
            }

        codes = []
        for code in product.variant_codes or []:
            if isinstance(code, str) and code and code not in codes:
                codes.append(code)

        return {
            "product_id": product.id,
            "sku": product.sku,
            "name": base.get("name"),
            "codes": codes,
            "reason": reason,
            "master_category": {
                "id": canonical.id if canonical else None,
                "guid": canonical.guid if canonical else master_guid,
                "name": canonical.name if canonical else master_name,
                "path": canonical_path,
            },
            "expected_category": expected,
            "actual_category": actual,
            "recommended_category": recommended,
        }

    def iter_issues(
        self,
        master_shop: Shop,
        target_shop: Shop,
        search: Optional[str] = None
    ) -> Iterator[Dict[str, Any]]:
        """Yield every issue of the master shop's products, in SKU order."""
        context = self._build_context(master_shop, target_shop)
        for product in self.repo.iter_products(master_shop.id, search, self.chunk_size):
            issue = self.evaluate_product(product, context)
            if issue is not None:
                yield issue

    def validate(
        self,
        master_shop: Shop,
        target_shop: Shop,
        page: int = 1,
        per_page: int = DEFAULT_PER_PAGE,
        search: Optional[str] = None,
        reasons: Optional[Sequence[str]] = None,
        all: bool = False
    ) -> Dict[str, Any]:
        """
        Paginated default category report.

        Args:
            master_shop: Master shop owning products and canonical tree
            target_shop: Storefront being checked
            page: 1-based page (values below 1 become 1)
            per_page: Page size, clamped to 1..200
            search: Substring filter over SKU and variant codes
            reasons: Only list issues with these reasons (stats still count all)
            all: Return every matching issue without paging

        Returns:
            {data, meta: {page, per_page, total, last_page}, stats}
        """
        page = max(1, int(page or 1))
        per_page = max(1, min(int(per_page or DEFAULT_PER_PAGE), MAX_PER_PAGE))
        wanted = set(reasons) if reasons else None
        offset = (page - 1) * per_page

        results = []
        stats: Dict[str, int] = {}
        total = 0

        for issue in self.iter_issues(master_shop, target_shop, search):
            stats[issue["reason"]] = stats.get(issue["reason"], 0) + 1

            if wanted is not None and issue["reason"] not in wanted:
                continue

            total += 1
            if not all and (total <= offset or len(results) >= per_page):
                continue

            results.append(issue)

        last_page = max(1, math.ceil(total / per_page)) if total else 1

        logging.info(
            f"Default category report for shop {target_shop.id}: {total} issues "
            f"({', '.join(f'{k}={v}' for k, v in sorted(stats.items())) or 'none'})"
        )

        return {
            "data": results,
            "meta": {
                "page": page,
                "per_page": per_page,
                "total": total,
                "last_page": last_page,
            },
            "stats": stats,
        }
