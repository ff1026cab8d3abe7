"""
Unit tests for collection reconciliation.
"""

import pytest

from storefront_sync.merge import are_similar, merge_cart, merge_wishlist


class TestMergeCart:

    def test_identical_collections_are_not_summed(self):
        local = [{"id": "a", "quantity": 2}]
        remote = [{"id": "a", "quantity": 2}]

        assert merge_cart(local, remote) == [{"id": "a", "quantity": 2}]

    def test_disjoint_collections_are_unioned(self):
        merged = merge_cart([{"id": "a", "quantity": 1}], [{"id": "b", "quantity": 3}])

        assert {"id": "a", "quantity": 1} in merged
        assert {"id": "b", "quantity": 3} in merged
        assert len(merged) == 2

    def test_remote_order_comes_first(self):
        merged = merge_cart([{"id": "a", "quantity": 1}], [{"id": "b", "quantity": 3}])
        assert [item["id"] for item in merged] == ["b", "a"]

    def test_overlapping_items_are_summed_when_collections_differ(self):
        merged = merge_cart(
            [{"id": "a", "quantity": 1}, {"id": "c", "quantity": 1}],
            [{"id": "a", "quantity": 2, "name": "Romper"}],
        )
        assert merged == [{"id": "a", "quantity": 3, "name": "Romper"}, {"id": "c", "quantity": 1}]

    def test_same_ids_different_quantities_are_summed(self):
        assert merge_cart([{"id": "a", "quantity": 1}], [{"id": "a", "quantity": 2}]) == [{"id": "a", "quantity": 3}]

    def test_inputs_are_not_mutated(self):
        local = [{"id": "a", "quantity": 1}]
        remote = [{"id": "a", "quantity": 2}]
        merge_cart(local, remote)
        assert local == [{"id": "a", "quantity": 1}]
        assert remote == [{"id": "a", "quantity": 2}]

    @pytest.mark.parametrize("local,remote", [([], []), ([{"id": "a", "quantity": 1}], [])])
    def test_empty_sides(self, local, remote):
        assert merge_cart(local, remote) == local


class TestSimilarity:

    def test_order_does_not_matter(self):
        assert are_similar(
            [{"id": "a", "quantity": 1}, {"id": "b", "quantity": 2}],
            [{"id": "b", "quantity": 2}, {"id": "a", "quantity": 1}],
        )

    def test_quantity_difference(self):
        assert not are_similar([{"id": "a", "quantity": 1}], [{"id": "a", "quantity": 2}])

    def test_missing_quantity_defaults_to_one(self):
        assert are_similar([{"id": "a"}], [{"id": "a", "quantity": 1}])


class TestMergeWishlist:

    def test_union_without_duplicates(self):
        merged = merge_wishlist([{"id": "a"}, {"id": "c"}], [{"id": "b"}, {"id": "a", "name": "remote"}])
        assert merged == [{"id": "b"}, {"id": "a", "name": "remote"}, {"id": "c"}]

    def test_identical_wishlists(self):
        assert merge_wishlist([{"id": "a"}], [{"id": "a"}]) == [{"id": "a"}]
