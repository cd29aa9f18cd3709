"""Nested containment list over chunk extents.

Each node is ``[start, end, chunk_id, sublist]``. Nodes contained in an
earlier node are nested under it, so within any single list both starts
and ends are strictly increasing. A query binary-searches the first node
whose end lies past the query start, scans forward while node starts lie
before the query end, and descends into the sublists of the hits.
"""

from typing import Any, Iterable, List, Optional, Tuple

import numpy as np


def effective_end(start: int, end: int) -> int:
    """End used for overlap tests; zero-length features occupy their start base."""
    return max(end, start + 1)


def overlaps(start: int, end: int, query_start: int, query_end: int) -> bool:
    """Half-open overlap test that also matches zero-length intervals."""
    return start < effective_end(query_start, query_end) and effective_end(start, end) > query_start


class _Level:
    """One list of the containment hierarchy with its search arrays."""
    __slots__ = ('starts', 'ends', 'ids', 'children')

    def __init__(self, nodes: List[List[Any]]):
        self.starts = np.fromiter((node[0] for node in nodes), dtype=np.int64, count=len(nodes))
        self.ends = np.fromiter((node[1] for node in nodes), dtype=np.int64, count=len(nodes))
        self.ids = [int(node[2]) for node in nodes]
        self.children: List[Optional['_Level']] = [
            _Level(node[3]) if node[3] else None for node in nodes
        ]


class IntervalIndex:
    """Interval index mapping chunk extents to chunk ids."""

    def __init__(self, nodes: Optional[List[List[Any]]] = None):
        """Initialize from serialized nodes (see ``to_list``)."""
        self._nodes = nodes or []
        self._root = _Level(self._nodes)
        self._size = _count(self._nodes)

    def __len__(self) -> int:
        return self._size

    @classmethod
    def build(cls, entries: Iterable[Tuple[int, int, int]]) -> 'IntervalIndex':
        """Build the containment hierarchy.

        Args:
            entries: ``(start, end, chunk_id)`` tuples; ``end`` should
                already be the effective end of the extent

        Returns:
            IntervalIndex over the entries
        """
        ordered = sorted(entries, key=lambda e: (e[0], -e[1], e[2]))

        top: List[List[Any]] = []
        stack: List[List[Any]] = []
        for start, end, chunk_id in ordered:
            node = [int(start), int(end), int(chunk_id), None]

            # Pop ancestors that end before this node, they cannot contain it
            while stack and stack[-1][1] < end:
                stack.pop()

            if stack:
                parent = stack[-1]
                if parent[3] is None:
                    parent[3] = []
                parent[3].append(node)
            else:
                top.append(node)
            stack.append(node)

        return cls(top)

    def query(self, start: int, end: int) -> List[int]:
        """Return ids of all chunks whose extent overlaps ``[start, end)``.

        Args:
            start: Query start (0-based, inclusive)
            end: Query end (exclusive); a zero-length query matches its base

        Returns:
            Sorted list of chunk ids
        """
        hits: List[int] = []
        self._search(self._root, start, effective_end(start, end), hits)
        hits.sort()
        return hits

    def _search(self, level: _Level, start: int, end: int, hits: List[int]) -> None:
        i = int(np.searchsorted(level.ends, start, side='right'))
        n = len(level.ids)
        while i < n and level.starts[i] < end:
            hits.append(level.ids[i])
            child = level.children[i]
            if child is not None:
                self._search(child, start, end, hits)
            i += 1

    def to_list(self) -> List[List[Any]]:
        """Serializable nested-list form."""
        return self._nodes

    @classmethod
    def from_list(cls, nodes: List[List[Any]]) -> 'IntervalIndex':
        """Restore from the nested-list form."""
        return cls(nodes)


def _count(nodes: List[List[Any]]) -> int:
    return sum(1 + _count(node[3] or []) for node in nodes)
