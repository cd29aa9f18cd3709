"""Tests for the nested containment list over chunk extents."""

import random

import pytest

from gfix.core.interval_index import IntervalIndex, effective_end, overlaps


def _brute_force(entries, start, end):
    query_end = effective_end(start, end)
    return sorted(chunk_id for s, e, chunk_id in entries if s < query_end and e > start)


class TestOverlap:
    """Test half-open overlap semantics."""

    @pytest.mark.parametrize("interval,query,expected", [
        ((10, 20), (15, 25), True),
        ((10, 20), (20, 30), False),
        ((10, 20), (0, 10), False),
        ((10, 20), (0, 11), True),
        ((10, 10), (10, 11), True),
        ((10, 10), (9, 10), False),
        ((10, 10), (10, 10), True),
        ((5, 30), (12, 12), True),
    ])
    def test_overlaps(self, interval, query, expected):
        """Test overlap including zero-length intervals and queries."""
        assert overlaps(*interval, *query) is expected

    def test_effective_end(self):
        """Test zero-length intervals occupy their start base."""
        assert effective_end(10, 10) == 11
        assert effective_end(10, 20) == 20


class TestIntervalIndex:
    """Test building and querying the index."""

    def test_contained_extents_are_nested(self):
        """Test an extent inside an earlier one becomes its child."""
        index = IntervalIndex.build([(0, 100, 0), (10, 20, 1), (50, 150, 2)])
        nodes = index.to_list()

        assert [node[2] for node in nodes] == [0, 2]
        assert nodes[0][3][0][:3] == [10, 20, 1]
        assert nodes[1][3] is None
        assert len(index) == 3

    def test_lists_are_sorted_by_start_and_end(self):
        """Test starts and ends are non-decreasing in every list."""
        rng = random.Random(3)
        entries = []
        for chunk_id in range(200):
            start = rng.randint(0, 10000)
            entries.append((start, start + rng.randint(1, 3000), chunk_id))
        index = IntervalIndex.build(entries)

        def check(nodes):
            starts = [node[0] for node in nodes]
            ends = [node[1] for node in nodes]
            assert starts == sorted(starts)
            assert ends == sorted(ends)
            for node in nodes:
                if node[3]:
                    check(node[3])

        check(index.to_list())
        assert len(index) == 200

    def test_query_matches_brute_force(self):
        """Test the index returns exactly the overlapping chunks."""
        rng = random.Random(11)
        entries = []
        start = 0
        for chunk_id in range(300):
            start += rng.randint(0, 200)
            entries.append((start, start + rng.randint(1, 5000), chunk_id))
        index = IntervalIndex.build(entries)

        for _ in range(500):
            query_start = rng.randint(-100, 70000)
            query_end = query_start + rng.randint(0, 3000)
            assert index.query(query_start, query_end) == _brute_force(entries, query_start, query_end)

    def test_duplicate_extents(self):
        """Test identical extents are all returned."""
        index = IntervalIndex.build([(0, 10, 0), (0, 10, 1), (0, 10, 2)])
        assert index.query(5, 6) == [0, 1, 2]

    def test_empty_index(self):
        """Test querying an index without chunks."""
        index = IntervalIndex.build([])
        assert index.query(0, 100) == []
        assert len(index) == 0

    def test_serialized_form_round_trip(self):
        """Test an index restored from its list form answers identically."""
        entries = [(0, 100, 0), (10, 20, 1), (50, 150, 2), (140, 141, 3)]
        index = IntervalIndex.build(entries)
        restored = IntervalIndex.from_list(index.to_list())

        for query in [(0, 5), (15, 16), (99, 141), (140, 140), (500, 600)]:
            assert restored.query(*query) == index.query(*query)
