"""
Authoritative canonical -> shop category mappings.

Every automatic or AI write goes through MappingStore.upsert(), which enforces
precedence: manual rows only yield to confirmations, and confirmed rows are
never downgraded. Rejected proposals are expected and only logged at DEBUG.
"""

import logging
from typing import Dict, List, Optional

from .errors import CategoryNotFoundError
from .matching import build_canonical_index, match_shop_node
from .models import (
    CanonicalCategoryNode,
    CategoryMapping,
    Shop,
    ShopCategoryNode,
    MAPPING_STATUSES,
    STATUS_CANONICAL,
    STATUS_CONFIRMED,
    STATUS_PENDING,
    STATUS_REJECTED,
    STATUS_SUGGESTED,
    SOURCE_AUTO,
    SOURCE_MANUAL,
    SOURCE_MASTER,
)
from .paths import PathResolver
from .repository import CategoryRepository, new_id

_STATUS_PRIORITY = {
    STATUS_CONFIRMED: 0,
    STATUS_CANONICAL: 0,
    STATUS_SUGGESTED: 1,
    STATUS_PENDING: 2,
    STATUS_REJECTED: 3,
}


def status_priority(status: str) -> int:
    """Rank used to pick the best of several rows (lower wins)."""
    return _STATUS_PRIORITY.get(status, 4)


def select_best_mapping(mappings: List[CategoryMapping]) -> Optional[CategoryMapping]:
    """Best row by status rank, then higher confidence, then identifier."""
    if not mappings:
        return None

    return min(
        mappings,
        key=lambda m: (status_priority(m.status), -(m.confidence or 0.0), str(m.id))
    )


def canonical_pseudo_mapping(node: CanonicalCategoryNode, path: Optional[str]) -> Dict:
    """Mapping-shaped record for a category that lives natively in the shop."""
    return {
        "id": None,
        "status": STATUS_CANONICAL,
        "confidence": 1.0,
        "source": SOURCE_MASTER,
        "shop_category_node_id": None,
        "shop_category": {
            "id": None,
            "name": node.name,
            "slug": node.slug,
            "path": path,
            "remote_guid": node.guid,
        },
    }


class MappingStore:
    """Precedence-aware access to mapping rows of a CategoryRepository."""

    def __init__(self, repo: CategoryRepository):
        self.repo = repo

    def get(self, category_node_id: str, shop_id: int) -> Optional[CategoryMapping]:
        return select_best_mapping(self.repo.mappings_for(category_node_id, shop_id))

    def upsert(
        self,
        canonical: CanonicalCategoryNode,
        shop_node: ShopCategoryNode,
        status: str,
        confidence: Optional[float],
        source: str
    ) -> Optional[CategoryMapping]:
        """
        Propose a mapping of `canonical` onto `shop_node`.

        Args:
            canonical: Canonical node
            shop_node: Storefront node it should map to
            status: Proposed status
            confidence: Proposed confidence (ignored for confirmations)
            source: "auto", "ai" or "manual"

        Returns:
            The written row, or None when precedence rules refused the proposal
        """
        mapping = self.get(canonical.id, shop_node.shop_id)

        if mapping is not None:
            if mapping.source == SOURCE_MANUAL and status != STATUS_CONFIRMED:
                logging.debug(
                    f"Kept manual mapping {mapping.id} for '{canonical.name}' "
                    f"(refused {status} from {source})"
                )
                return None

            if mapping.status == STATUS_CONFIRMED and status != STATUS_CONFIRMED:
                logging.debug(
                    f"Kept confirmed mapping {mapping.id} for '{canonical.name}' "
                    f"(refused {status} from {source})"
                )
                return None
        else:
            mapping = self.repo.add_mapping(CategoryMapping(
                id=new_id(),
                category_node_id=canonical.id,
                shop_id=shop_node.shop_id,
                source=source,
            ))

        mapping.shop_category_node_id = shop_node.id
        mapping.status = status
        if status == STATUS_CONFIRMED:
            mapping.confidence = 1.0
        else:
            mapping.confidence = round(float(confidence or 0.0), 2)

        if mapping.source != SOURCE_MANUAL:
            mapping.source = source

        return mapping

    def confirm(
        self,
        category_node_id: str,
        shop_category_node_id: str,
        notes: Optional[str] = None
    ) -> CategoryMapping:
        """
        Manually confirm a mapping.

        Raises:
            CategoryNotFoundError: Unknown canonical or storefront node
        """
        canonical = self.repo.get_canonical(category_node_id)
        if canonical is None:
            raise CategoryNotFoundError(f"Canonical category not found: {category_node_id}")

        shop_node = self.repo.get_shop_node(shop_category_node_id)
        if shop_node is None:
            raise CategoryNotFoundError(f"Shop category not found: {shop_category_node_id}")

        mapping = self._get_or_create(canonical.id, shop_node.shop_id)
        mapping.shop_category_node_id = shop_node.id
        mapping.status = STATUS_CONFIRMED
        mapping.confidence = 1.0
        mapping.source = SOURCE_MANUAL
        mapping.notes = notes

        logging.info(f"✅ Confirmed '{canonical.name}' -> '{shop_node.path or shop_node.name}' (shop {shop_node.shop_id})")
        return mapping

    def reject(self, category_node_id: str, shop_id: int, notes: Optional[str] = None) -> CategoryMapping:
        """
        Manually mark a canonical category as having no counterpart in a shop.

        Raises:
            CategoryNotFoundError: Unknown canonical node
        """
        canonical = self.repo.get_canonical(category_node_id)
        if canonical is None:
            raise CategoryNotFoundError(f"Canonical category not found: {category_node_id}")

        mapping = self._get_or_create(canonical.id, shop_id)
        mapping.shop_category_node_id = None
        mapping.status = STATUS_REJECTED
        mapping.confidence = None
        mapping.source = SOURCE_MANUAL
        mapping.notes = notes

        logging.info(f"Rejected mapping of '{canonical.name}' for shop {shop_id}")
        return mapping

    def _get_or_create(self, category_node_id: str, shop_id: int) -> CategoryMapping:
        mapping = self.get(category_node_id, shop_id)
        if mapping is None:
            mapping = self.repo.add_mapping(CategoryMapping(
                id=new_id(),
                category_node_id=category_node_id,
                shop_id=shop_id,
            ))
        return mapping

    def refresh_canonical_mappings(self, canonical_nodes: List[CanonicalCategoryNode]) -> int:
        """
        Confirm every storefront node that mirrors a canonical GUID.

        Returns:
            Number of rows written
        """
        written = 0
        for canonical in canonical_nodes:
            for shop_node in self.repo.shop_nodes_with_guid(canonical.guid):
                if self.upsert(canonical, shop_node, STATUS_CONFIRMED, 1.0, SOURCE_AUTO) is not None:
                    written += 1
        return written

    def link_shop_nodes(self, shop: Shop, shop_nodes: List[ShopCategoryNode]) -> int:
        """
        Auto-link storefront nodes to the canonical tree.

        Returns:
            Number of rows written
        """
        if not shop_nodes:
            return 0

        index = build_canonical_index(self.repo.list_canonical())
        written = 0

        for shop_node in shop_nodes:
            result = match_shop_node(shop_node, index)
            if result is None:
                logging.debug(f"No canonical match for shop {shop.id} category '{shop_node.name}'")
                continue

            mapping = self.upsert(result.node, shop_node, result.status, result.confidence, SOURCE_AUTO)
            if mapping is not None:
                written += 1
                logging.debug(
                    f"Linked '{shop_node.name}' -> '{result.node.name}' "
                    f"via {result.strategy} ({mapping.status}, {mapping.confidence})"
                )

        return written

    def mapping_payload(self, mapping: CategoryMapping) -> Dict:
        """Mapping row with the embedded storefront category summary."""
        shop_node = self.repo.get_shop_node(mapping.shop_category_node_id)
        return {
            "id": mapping.id,
            "status": mapping.status,
            "confidence": mapping.confidence,
            "source": mapping.source,
            "shop_category_node_id": mapping.shop_category_node_id,
            "shop_category": shop_node.summary() if shop_node else None,
        }

    def resolve(self, canonical_guids: List[str], shop: Shop) -> List[Dict]:
        """
        Look up how canonical categories map into one shop.

        Unknown GUIDs are skipped. A category owned by the (master) shop itself
        gets a synthetic "canonical" mapping; one without a row gets None.

        Args:
            canonical_guids: Canonical GUIDs in the order wanted
            shop: Target shop

        Returns:
            List of {guid, name, slug, path, mapping}
        """
        if not canonical_guids:
            return []

        resolver = PathResolver(self.repo.canonical_nodes)
        results = []

        for guid in canonical_guids:
            node = self.repo.canonical_by_guid(guid)
            if node is None:
                continue

            path = resolver.path(node)
            mapping = self.get(node.id, shop.id)

            if mapping is not None:
                payload = self.mapping_payload(mapping)
            elif shop.is_master and node.shop_id == shop.id:
                payload = canonical_pseudo_mapping(node, path)
            else:
                payload = None

            results.append({
                "guid": node.guid,
                "name": node.name,
                "slug": node.slug,
                "path": path,
                "mapping": payload,
            })

        return results

    def stats(self, shop_id: int) -> Dict[str, int]:
        """Mapping row counts per status for one shop."""
        counts = {status: 0 for status in MAPPING_STATUSES if status != STATUS_CANONICAL}
        rows = self.repo.list_mappings(shop_id)
        for mapping in rows:
            counts[mapping.status] = counts.get(mapping.status, 0) + 1
        counts["total"] = len(rows)
        return counts
