"""Tests for the cluster partition store."""

import pytest

from CloneForge.errors import InvalidLabel
from CloneForge.partition import Partition


class TestFromLabels:
    """Tests for building a partition from 1-based labels."""

    def test_entities_land_in_label_minus_one(self):
        partition = Partition.from_labels([1, 1, 3])
        assert partition.members(0) == (0, 1)
        assert partition.members(2) == (2,)
        assert partition.is_empty(1)

    def test_cluster_count_is_number_of_distinct_labels(self):
        assert Partition.from_labels([1, 1, 3]).n_clusters == 2
        assert Partition.from_labels([4, 3, 2, 1]).n_clusters == 4
        assert Partition.from_labels([2, 2, 2]).n_clusters == 1

    def test_one_slot_per_entity(self):
        assert len(Partition.from_labels([1, 1, 1, 1])) == 4

    @pytest.mark.parametrize("labels", [[0, 1, 2], [1, 2, 4], [-1, 1, 1]])
    def test_out_of_range_label_raises(self, labels):
        with pytest.raises(InvalidLabel):
            Partition.from_labels(labels)

    def test_invalid_label_is_a_value_error(self):
        with pytest.raises(ValueError):
            Partition.from_labels([5])

    def test_empty_labels(self):
        partition = Partition.from_labels([])
        assert partition.n_clusters == 0
        assert partition.labels().tolist() == []


class TestMerge:
    """Tests for merging two slots."""

    def test_loser_members_appended_in_order(self):
        partition = Partition.from_labels([2, 1, 2, 1])
        partition.merge(0, 1)
        assert partition.members(0) == (1, 3, 0, 2)
        assert partition.is_empty(1)
        assert partition.n_clusters == 1

    def test_emptied_slot_leaves_live_slots(self):
        partition = Partition.from_labels([1, 2, 3])
        partition.merge(0, 2)
        assert partition.live_slots() == [0, 1]
        assert partition.size(0) == 2

    def test_merge_with_self_raises(self):
        partition = Partition.from_labels([1, 2])
        with pytest.raises(ValueError):
            partition.merge(1, 1)

    def test_merge_with_empty_slot_raises(self):
        partition = Partition.from_labels([1, 1, 3])
        with pytest.raises(ValueError):
            partition.merge(0, 1)
        assert partition.n_clusters == 2

    def test_every_entity_kept_exactly_once(self):
        partition = Partition.from_labels([1, 2, 3, 4, 5])
        partition.merge(1, 3)
        partition.merge(0, 4)
        partition.merge(0, 1)
        seen = sorted(e for slot in partition.live_slots() for e in partition.members(slot))
        assert seen == [0, 1, 2, 3, 4]


class TestLabels:
    """Tests for output encoding."""

    def test_labels_are_slot_plus_one(self):
        partition = Partition.from_labels([1, 2, 3])
        partition.merge(0, 2)
        assert partition.labels().tolist() == [1, 2, 1]

    def test_labels_are_not_compacted(self):
        partition = Partition.from_labels([3, 3, 3])
        assert partition.labels().tolist() == [3, 3, 3]

    def test_members_view_does_not_follow_later_merges(self):
        partition = Partition.from_labels([1, 2])
        members = partition.members(0)
        partition.merge(0, 1)
        assert members == (0,)
        assert partition.members(0) == (0, 1)
