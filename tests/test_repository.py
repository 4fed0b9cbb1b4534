"""
Tests for category_hub/repository.py - in-memory store and JSON persistence.
"""

import sys
import json
import logging
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from category_hub.models import (
    CanonicalCategoryNode,
    CategoryMapping,
    Product,
    Shop,
    ShopCategoryNode,
)
from category_hub.repository import CategoryRepository, new_id


# ============================================================================
# INDEX TESTS
# ============================================================================

class TestIndexes:
    """Tests for natural-key lookups."""

    def test_new_id_unique(self):
        """Test identifiers are unique strings."""
        assert new_id() != new_id()
        assert isinstance(new_id(), str)

    def test_get_shop_accepts_strings(self, repo):
        """Test shop ids coming from the CLI as strings."""
        assert repo.get_shop("2").name == "Shop SK"
        assert repo.get_shop("abc") is None
        assert repo.get_shop(None) is None

    def test_master_shops(self, repo):
        """Test only master shops are listed, ordered by id."""
        repo.add_shop(Shop(id=9, name="Other master", is_master=True))
        assert [s.id for s in repo.master_shops()] == [1, 9]

    def test_canonical_guid_index_follows_changes(self):
        """Test re-saving a node under a new GUID moves the index."""
        repo = CategoryRepository()
        repo.save_canonical(CanonicalCategoryNode(id="c1", guid="old", shop_id=1, name="N"))
        repo.save_canonical(CanonicalCategoryNode(id="c1", guid="new", shop_id=1, name="N"))

        assert repo.canonical_by_guid("old") is None
        assert repo.canonical_by_guid("new").id == "c1"

    def test_shop_node_key_is_per_shop(self):
        """Test the same remote GUID lives independently in two shops."""
        repo = CategoryRepository()
        repo.save_shop_node(ShopCategoryNode(id="a", shop_id=1, remote_guid="g", name="A"))
        repo.save_shop_node(ShopCategoryNode(id="b", shop_id=2, remote_guid="g", name="B"))

        assert repo.shop_node_by_guid(1, "g").id == "a"
        assert repo.shop_node_by_guid(2, "g").id == "b"
        assert {n.id for n in repo.shop_nodes_with_guid("g")} == {"a", "b"}

    def test_delete_shop_node(self):
        """Test deleting removes the node and its key."""
        repo = CategoryRepository()
        repo.save_shop_node(ShopCategoryNode(id="a", shop_id=1, remote_guid="g", name="A"))

        repo.delete_shop_node("a")

        assert repo.get_shop_node("a") is None
        assert repo.shop_node_by_guid(1, "g") is None

    def test_mappings_for(self):
        """Test mapping rows are filtered by canonical node and shop."""
        repo = CategoryRepository()
        repo.add_mapping(CategoryMapping(id="m1", category_node_id="c1", shop_id=2))
        repo.add_mapping(CategoryMapping(id="m2", category_node_id="c1", shop_id=3))

        assert [m.id for m in repo.mappings_for("c1", 2)] == ["m1"]
        assert len(repo.list_mappings()) == 2
        assert [m.id for m in repo.list_mappings(3)] == ["m2"]


# ============================================================================
# PRODUCT TESTS
# ============================================================================

class TestIterProducts:
    """Tests for iter_products() method."""

    def _repo(self):
        repo = CategoryRepository()
        for sku, codes in [("C-3", ["c3-red"]), ("A-1", ["a1-blue"]), ("B-2", ["XYZ-9"])]:
            repo.add_product(Product(id=f"p{sku}", shop_id=1, sku=sku, variant_codes=codes))
        repo.add_product(Product(id="other", shop_id=5, sku="A-0"))
        return repo

    def test_ordered_by_sku(self):
        """Test products come in SKU order and only for the shop."""
        skus = [p.sku for p in self._repo().iter_products(1, chunk_size=2)]
        assert skus == ["A-1", "B-2", "C-3"]

    def test_search_matches_sku_and_codes(self):
        """Test search is case-insensitive over SKU and variant codes."""
        repo = self._repo()
        assert [p.sku for p in repo.iter_products(1, search="xyz")] == ["B-2"]
        assert [p.sku for p in repo.iter_products(1, search="a-1")] == ["A-1"]

    def test_blank_search_is_ignored(self):
        """Test whitespace search returns everything."""
        assert len(list(self._repo().iter_products(1, search="  "))) == 3

    def test_overlay_keys_normalized(self):
        """Test overlay keys are strings after loading."""
        product = Product.from_dict({"id": "p", "shop_id": 1, "sku": "S", "overlays": {2: {"x": 1}}})
        assert product.overlay_for(2) == {"x": 1}

    def test_malformed_product_fields_coerced(self):
        """Test wrong-typed payload, codes and overlays load as empty values."""
        product = Product.from_dict({
            "id": "p", "shop_id": 1, "sku": "S",
            "base_payload": ["junk"], "variant_codes": None, "overlays": "nope",
        })

        assert product.base_payload == {}
        assert product.variant_codes == []
        assert product.overlays == {}

    def test_search_skips_odd_codes(self):
        """Test search tolerates missing or non-string variant codes."""
        repo = self._repo()
        repo.add_product(Product(id="odd", shop_id=1, sku="D-4", variant_codes=None))
        repo.add_product(Product(id="odd2", shop_id=1, sku="E-5", variant_codes=[5, None, "e5-x"]))

        assert [p.sku for p in repo.iter_products(1, search="e5")] == ["E-5"]


# ============================================================================
# PERSISTENCE TESTS
# ============================================================================

class TestPersistence:
    """Tests for save() and load()."""

    def test_round_trip(self, synced_repo, temp_dir):
        """Test a saved repository loads back identically."""
        path = temp_dir / "store" / "hub.json"

        synced_repo.save(str(path))
        loaded = CategoryRepository.load(str(path))

        assert loaded.to_dict() == synced_repo.to_dict()
        assert loaded.shop_node_by_guid(2, "g1").name == "Parfémy"

    def test_saved_file_has_timestamp(self, repo, temp_dir):
        """Test the file carries a saved_at stamp and unicode text."""
        path = temp_dir / "hub.json"
        repo.add_shop(Shop(id=3, name="Obchod Žilina"))

        repo.save(str(path))
        content = path.read_text(encoding="utf-8")

        assert "saved_at" in json.loads(content)
        assert "Žilina" in content

    def test_load_missing_file(self, temp_dir):
        """Test a missing file yields an empty repository."""
        repo = CategoryRepository.load(str(temp_dir / "missing.json"))
        assert repo.shops == {}

    def test_load_corrupted_file(self, temp_dir, caplog):
        """Test corrupt JSON is logged and yields an empty repository."""
        path = temp_dir / "hub.json"
        path.write_text("{ not json")

        with caplog.at_level(logging.WARNING):
            repo = CategoryRepository.load(str(path))

        assert repo.canonical_nodes == {}
        assert "Failed to parse category repository" in caplog.text

    def test_load_invalid_structure(self, temp_dir, caplog):
        """Test a JSON list is rejected."""
        path = temp_dir / "hub.json"
        path.write_text("[]")

        with caplog.at_level(logging.WARNING):
            repo = CategoryRepository.load(str(path))

        assert repo.mappings == []
        assert "Invalid repository structure" in caplog.text
