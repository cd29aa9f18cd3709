"""Tests for the external row sorter."""

import random

import pytest

from gfix.core.sorter import ExternalSorter, estimate_row_size, interval_sort_key
from gfix.exceptions import RunCorruptedError, SorterStateError


def _random_rows(count, seed=42):
    """Rows ``[0, start, end, serial]`` with many duplicate keys."""
    rng = random.Random(seed)
    rows = []
    for serial in range(count):
        start = rng.randint(0, 500)
        rows.append([0, start, start + rng.randint(0, 50), serial])
    return rows


class TestSortKey:
    """Test the interval sort key."""

    def test_start_ascending_end_descending(self):
        """Test longer intervals sort first among equal starts."""
        key = interval_sort_key()
        rows = [[0, 100, 200], [0, 150, 170], [0, 100, 300]]
        assert sorted(rows, key=key) == [[0, 100, 300], [0, 100, 200], [0, 150, 170]]

    def test_estimate_row_size(self):
        """Test size estimate equals compact JSON length."""
        assert estimate_row_size([0, 1, 2, "ab"]) == len('[0,1,2,"ab"]')


class TestInMemorySort:
    """Test sorting without spilling."""

    def test_three_feature_scenario(self):
        """Test the canonical three-interval ordering."""
        with ExternalSorter() as sorter:
            for row in ([0, 100, 200], [0, 150, 170], [0, 100, 300]):
                sorter.add(row)
            sorter.finish()
            assert list(sorter) == [[0, 100, 300], [0, 100, 200], [0, 150, 170]]
            assert sorter.runs_spilled == 0

    def test_empty_input(self):
        """Test an empty sorter drains to None immediately."""
        sorter = ExternalSorter()
        sorter.finish()
        assert sorter.get() is None

    def test_ties_keep_arrival_order(self):
        """Test rows with identical keys keep insertion order."""
        rows = [[0, 10, 20, 'first'], [0, 10, 20, 'second'], [0, 10, 20, 'third']]
        with ExternalSorter() as sorter:
            for row in rows:
                sorter.add(row)
            sorter.finish()
            assert list(sorter) == rows

    def test_custom_column_positions(self):
        """Test sorting on non-default start/end positions."""
        with ExternalSorter(start_index=2, end_index=3) as sorter:
            sorter.add(['b', 0, 5, 9])
            sorter.add(['a', 0, 1, 2])
            sorter.finish()
            assert [row[0] for row in sorter] == ['a', 'b']


class TestSpilling:
    """Test sorting with runs spilled to disk."""

    def test_spilled_output_matches_in_memory_sort(self, temp_dir):
        """Test 10,000 rows under a small budget sort identically to memory."""
        rows = _random_rows(10000)
        expected = sorted(rows, key=interval_sort_key())

        with ExternalSorter(memory_budget=50000, tmp_dir=temp_dir) as sorter:
            for row in rows:
                sorter.add(row)
            sorter.finish()
            result = list(sorter)

            assert sorter.runs_spilled >= 2
            assert sorter.bytes_spilled > 0
            assert sorter.rows_added == 10000

        assert result == expected

    def test_output_identical_for_any_budget(self, temp_dir):
        """Test the number of spills does not change the output."""
        rows = _random_rows(2000, seed=7)
        outputs = []
        for budget in (10 ** 9, 20000, 3000):
            with ExternalSorter(memory_budget=budget, tmp_dir=temp_dir) as sorter:
                for row in rows:
                    sorter.add(row)
                sorter.finish()
                outputs.append(list(sorter))

        assert outputs[0] == outputs[1] == outputs[2]

    def test_runs_removed_after_drain(self, temp_dir):
        """Test temporary storage is gone once the merge completes."""
        sorter = ExternalSorter(memory_budget=100, tmp_dir=temp_dir)
        for row in _random_rows(100):
            sorter.add(row)
        assert list(temp_dir.iterdir())

        sorter.finish()
        while sorter.get() is not None:
            pass

        assert list(temp_dir.iterdir()) == []

    def test_runs_removed_on_early_exit(self, temp_dir):
        """Test leaving the context mid-drain removes the runs."""
        with ExternalSorter(memory_budget=100, tmp_dir=temp_dir) as sorter:
            for row in _random_rows(100):
                sorter.add(row)
            sorter.finish()
            sorter.get()

        assert list(temp_dir.iterdir()) == []

    def test_truncated_run_is_detected(self, temp_dir):
        """Test a run missing its footer raises RunCorruptedError."""
        with ExternalSorter(memory_budget=100, tmp_dir=temp_dir) as sorter:
            for row in _random_rows(50):
                sorter.add(row)

            run_file = sorted(temp_dir.glob('gfix-sort-*/run-*.jsonl'))[0]
            lines = run_file.read_text().splitlines()
            run_file.write_text('\n'.join(lines[:-2]) + '\n')

            sorter.finish()
            with pytest.raises(RunCorruptedError):
                list(sorter)

    def test_corrupt_run_line_is_detected(self, temp_dir):
        """Test an undecodable line raises RunCorruptedError."""
        with ExternalSorter(memory_budget=100, tmp_dir=temp_dir) as sorter:
            for row in _random_rows(50):
                sorter.add(row)

            run_file = sorted(temp_dir.glob('gfix-sort-*/run-*.jsonl'))[0]
            run_file.write_text('[0,1,\n' + run_file.read_text())

            sorter.finish()
            with pytest.raises(RunCorruptedError):
                list(sorter)


class TestLifecycle:
    """Test misuse of the add/finish/drain protocol."""

    def test_finish_twice(self):
        """Test finish() may only be called once."""
        sorter = ExternalSorter()
        sorter.finish()
        with pytest.raises(SorterStateError):
            sorter.finish()

    def test_add_after_finish(self):
        """Test adding rows after finish() is rejected."""
        sorter = ExternalSorter()
        sorter.finish()
        with pytest.raises(SorterStateError):
            sorter.add([0, 1, 2])

    def test_get_before_finish(self):
        """Test draining requires finish()."""
        sorter = ExternalSorter()
        sorter.add([0, 1, 2])
        with pytest.raises(SorterStateError):
            sorter.get()

    def test_invalid_budget(self):
        """Test a non-positive memory budget is rejected."""
        with pytest.raises(ValueError):
            ExternalSorter(memory_budget=0)
