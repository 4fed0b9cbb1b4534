"""
Tests for category_hub/shop_tree.py - manual storefront tree editing.
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from category_hub.errors import InvalidTreeOperationError
from category_hub.shop_tree import create_node, delete_node_with_children, update_node


class TestCreateNode:
    """Tests for create_node() function."""

    def test_create_root(self, repo, target_shop):
        """Test a root category gets a generated GUID and path."""
        node = create_node(repo, target_shop, {"name": "Záhrada"})

        assert node.remote_guid
        assert node.path == "Záhrada"
        assert node.position == 1
        assert node.visible is True
        assert repo.shop_node_by_guid(2, node.remote_guid) is node

    def test_create_child_appends_position(self, synced_repo, target_shop):
        """Test a child is placed after its siblings."""
        parent = synced_repo.shop_node_by_guid(2, "g1")

        node = create_node(synced_repo, target_shop, {
            "name": "Pánske",
            "parent_id": parent.id,
            "meta_description": "Pánske parfumy",
        })

        assert node.parent_guid == "g1"
        assert node.path == "Parfémy > Pánske"
        assert node.position == 2
        assert node.meta_description == "Pánske parfumy"

    def test_parent_from_other_shop(self, synced_repo, target_shop):
        """Test a parent owned by another shop is refused."""
        foreign = synced_repo.shop_node_by_guid(1, "g1")

        with pytest.raises(InvalidTreeOperationError):
            create_node(synced_repo, target_shop, {"name": "X", "parent_id": foreign.id})

    def test_unknown_parent(self, repo, target_shop):
        """Test an unknown parent id is refused."""
        with pytest.raises(InvalidTreeOperationError):
            create_node(repo, target_shop, {"name": "X", "parent_id": "missing"})


class TestUpdateNode:
    """Tests for update_node() function."""

    def test_rename_refreshes_subtree(self, synced_repo):
        """Test renaming updates descendant paths."""
        parent = synced_repo.shop_node_by_guid(2, "g1")

        update_node(synced_repo, parent, {"name": "Vône"})

        assert synced_repo.shop_node_by_guid(2, "s-women").path == "Vône > Dámske"

    def test_reparent(self, synced_repo):
        """Test moving a node under another parent."""
        gifts = synced_repo.shop_node_by_guid(2, "s-gifts")
        beauty = synced_repo.shop_node_by_guid(2, "s-beauty")

        update_node(synced_repo, gifts, {"parent_id": beauty.id})

        assert gifts.parent_guid == "s-beauty"
        assert gifts.path == "Kozmetika > Dárky"

    def test_move_to_root(self, synced_repo):
        """Test clearing the parent makes a root."""
        women = synced_repo.shop_node_by_guid(2, "s-women")

        update_node(synced_repo, women, {"parent_id": None})

        assert women.parent_id is None
        assert women.parent_guid is None
        assert women.path == "Dámske"

    def test_move_under_own_descendant(self, synced_repo):
        """Test cycles through manual edits are refused."""
        parent = synced_repo.shop_node_by_guid(2, "g1")
        child = synced_repo.shop_node_by_guid(2, "s-women")

        with pytest.raises(InvalidTreeOperationError):
            update_node(synced_repo, parent, {"parent_id": child.id})
        with pytest.raises(InvalidTreeOperationError):
            update_node(synced_repo, parent, {"parent_id": parent.id})

    def test_partial_update(self, synced_repo):
        """Test untouched keys keep their values and data is merged."""
        women = synced_repo.shop_node_by_guid(2, "s-women")

        update_node(synced_repo, women, {"data": {"note": "manual"}, "visible": False})

        assert women.slug == "perfumes-women"
        assert women.meta_description == "Dámske parfumy"
        assert women.visible is False
        assert women.data["note"] == "manual"
        assert women.data["guid"] == "s-women"


class TestDeleteNode:
    """Tests for delete_node_with_children() function."""

    def test_deletes_subtree(self, synced_repo):
        """Test the node and all descendants are removed."""
        parent = synced_repo.shop_node_by_guid(2, "g1")
        child_id = synced_repo.shop_node_by_guid(2, "s-women").id

        deleted = delete_node_with_children(synced_repo, parent)

        assert set(deleted) == {parent.id, child_id}
        assert synced_repo.shop_node_by_guid(2, "g1") is None
        assert synced_repo.get_shop_node(child_id) is None
        assert synced_repo.shop_node_by_guid(2, "s-gifts") is not None
