"""Memory-bounded external sort for track rows.

Rows are buffered until their estimated serialized size exceeds the
memory budget, then sorted and spilled to a temporary run file. When the
input is finished the runs and the remaining buffer are merged with a
k-way heap merge. Both the in-memory sort and the merge are stable, so
the output is identical no matter how many runs were spilled.
"""

import heapq
import json
import logging
import tempfile
from pathlib import Path
from typing import Any, Callable, Iterator, List, Optional, Tuple

from ..exceptions import RunCorruptedError, SorterStateError, TempStorageError

logger = logging.getLogger(__name__)


DEFAULT_MEMORY_BUDGET = 512 * 1024 * 1024  # 512 MiB

_FOOTER_PREFIX = '#rows '


def interval_sort_key(start_index: int = 1, end_index: int = 2) -> Callable[[List[Any]], Tuple[int, int]]:
    """Sort key for rows: start ascending, then end descending."""
    def key(row: List[Any]) -> Tuple[int, int]:
        return row[start_index], -row[end_index]
    return key


def estimate_row_size(row: List[Any]) -> int:
    """Serialized size of a row in bytes (compact JSON)."""
    return len(json.dumps(row, separators=(',', ':')).encode('utf-8'))


class ExternalSorter:
    """Sorts an unbounded stream of rows by genomic interval.

    Lifecycle: ``add()`` any number of times, ``finish()`` exactly once,
    then drain with ``get()`` until it returns None (or iterate). Use as a
    context manager so temporary runs are removed on every exit path.
    """

    def __init__(self, memory_budget: int = DEFAULT_MEMORY_BUDGET,
                 start_index: int = 1, end_index: int = 2,
                 tmp_dir: Optional[Path] = None):
        """Initialize sorter.

        Args:
            memory_budget: Buffered bytes allowed before a run is spilled
            start_index: Row position of the start coordinate
            end_index: Row position of the end coordinate
            tmp_dir: Parent directory for run files (default: system temp)
        """
        if memory_budget <= 0:
            raise ValueError(f"Memory budget must be positive, got {memory_budget}")

        self.memory_budget = memory_budget
        self.tmp_dir = Path(tmp_dir) if tmp_dir is not None else None
        self._key = interval_sort_key(start_index, end_index)

        self._buffer: List[List[Any]] = []
        self._buffer_bytes = 0

        self._tmp: Optional[tempfile.TemporaryDirectory] = None
        self._runs: List[Tuple[Path, int]] = []
        self._readers: List[Iterator[List[Any]]] = []

        self._finished = False
        self._stream: Optional[Iterator[List[Any]]] = None

        self.rows_added = 0
        self.bytes_spilled = 0

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

    @property
    def runs_spilled(self) -> int:
        return len(self._runs)

    @property
    def finished(self) -> bool:
        return self._finished

    def add(self, row: List[Any]) -> None:
        """Add a row; spills a sorted run when the memory budget is exceeded."""
        if self._finished:
            raise SorterStateError("Cannot add rows after finish()")

        self._buffer.append(row)
        self._buffer_bytes += estimate_row_size(row)
        self.rows_added += 1

        if self._buffer_bytes > self.memory_budget:
            self._spill()

    def finish(self) -> None:
        """Signal that no more rows will be added and prepare the sorted stream."""
        if self._finished:
            raise SorterStateError("finish() called more than once")
        self._finished = True

        self._buffer.sort(key=self._key)

        if not self._runs:
            # Everything fit in memory: serve the buffer directly
            self._stream = iter(self._buffer)
            return

        logger.debug(f"Merging {len(self._runs)} spilled runs with {len(self._buffer):,} in-memory rows")
        self._readers = [self._read_run(path, count) for path, count in self._runs]
        # The in-memory rows arrived last, so they come last among equal keys
        self._stream = heapq.merge(*self._readers, iter(self._buffer), key=self._key)

    def get(self) -> Optional[List[Any]]:
        """Return the next row in sort order, or None when exhausted."""
        if not self._finished:
            raise SorterStateError("Call finish() before draining the sorter")
        if self._stream is None:
            return None

        try:
            return next(self._stream)
        except StopIteration:
            self.close()
            return None

    def __iter__(self) -> Iterator[List[Any]]:
        while True:
            row = self.get()
            if row is None:
                return
            yield row

    def close(self) -> None:
        """Release buffered rows and remove all temporary runs."""
        for reader in self._readers:
            reader.close()
        self._readers = []
        self._stream = None
        self._buffer = []
        self._buffer_bytes = 0

        if self._tmp is not None:
            logger.debug(f"Removing sort runs in {self._tmp.name}")
            self._tmp.cleanup()
            self._tmp = None

    def _run_directory(self) -> Path:
        if self._tmp is None:
            try:
                self._tmp = tempfile.TemporaryDirectory(prefix='gfix-sort-', dir=self.tmp_dir)
            except OSError as e:
                raise TempStorageError(f"Could not create temporary sort storage: {e}") from e
        return Path(self._tmp.name)

    def _spill(self) -> None:
        """Sort the buffer and write it out as a new run."""
        self._buffer.sort(key=self._key)

        run_path = self._run_directory() / f"run-{len(self._runs):05d}.jsonl"
        try:
            with open(run_path, 'w', encoding='utf-8') as f:
                for row in self._buffer:
                    f.write(json.dumps(row, separators=(',', ':')))
                    f.write('\n')
                f.write(f"{_FOOTER_PREFIX}{len(self._buffer)}\n")
        except OSError as e:
            raise TempStorageError(f"Could not write sort run {run_path}: {e}") from e

        self._runs.append((run_path, len(self._buffer)))
        self.bytes_spilled += self._buffer_bytes
        logger.debug(f"Spilled run {len(self._runs)}: {len(self._buffer):,} rows, "
                     f"{self._buffer_bytes / (1024**2):.1f} MB")

        self._buffer = []
        self._buffer_bytes = 0

    @staticmethod
    def _read_run(run_path: Path, expected_rows: int) -> Iterator[List[Any]]:
        """Stream rows back from a run file, checking its footer."""
        count = 0
        try:
            with open(run_path, 'r', encoding='utf-8') as f:
                for line_num, line in enumerate(f, 1):
                    if line.startswith(_FOOTER_PREFIX):
                        if line.strip() != f"{_FOOTER_PREFIX}{expected_rows}" or count != expected_rows:
                            raise RunCorruptedError(
                                f"Sort run {run_path.name} holds {count} rows, expected {expected_rows}"
                            )
                        return
                    try:
                        row = json.loads(line)
                    except json.JSONDecodeError as e:
                        raise RunCorruptedError(
                            f"Sort run {run_path.name} is corrupt at line {line_num}: {e}"
                        ) from e
                    count += 1
                    yield row
        except OSError as e:
            raise RunCorruptedError(f"Could not read sort run {run_path}: {e}") from e

        raise RunCorruptedError(f"Sort run {run_path.name} is truncated after {count} rows")
