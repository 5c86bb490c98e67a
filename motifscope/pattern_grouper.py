"""PatternGrouper: clusters similar pattern keys and picks a winner per cluster."""

from __future__ import annotations

import logging
from collections.abc import Iterable

import numpy as np

from motifscope.score_models import Pattern, PatternGroup

logger = logging.getLogger(__name__)


def levenshtein(source: str, target: str) -> int:
    """
    Edit distance between two strings (unit-cost insert, delete, substitute).

    Each DP row is computed with NumPy; the insertion chain along a row is
    resolved with a running minimum over ``row[j] - j``.
    """
    if source == target:
        return 0
    if not source:
        return len(target)
    if not target:
        return len(source)

    codes = np.fromiter((ord(symbol) for symbol in target), dtype=np.int64, count=len(target))
    offsets = np.arange(len(target) + 1, dtype=np.int64)
    previous = offsets.copy()
    for i, symbol in enumerate(source, start=1):
        current = np.empty_like(previous)
        current[0] = i
        current[1:] = np.minimum(previous[:-1] + (codes != ord(symbol)), previous[1:] + 1)
        previous = np.minimum.accumulate(current - offsets) + offsets
    return int(previous[-1])


class _DisjointSet:
    """Union-find over pattern indices."""

    def __init__(self, size: int) -> None:
        self.parent = list(range(size))

    def find(self, item: int) -> int:
        root = item
        while self.parent[root] != root:
            root = self.parent[root]
        while self.parent[item] != root:
            self.parent[item], item = root, self.parent[item]
        return root

    def union(self, a: int, b: int) -> None:
        root_a, root_b = self.find(a), self.find(b)
        if root_a != root_b:
            self.parent[max(root_a, root_b)] = min(root_a, root_b)


class PatternGrouper:
    """
    Reduces raw patterns to a short list of presentable groups.

    Two keys are linked when their edit distance is at most ``threshold``
    times the longer key's length. Links are closed transitively with
    union-find, so chains of near-matches end up in one group. Each group's
    winner is its longest key (ties: earliest first occurrence, then key),
    shown truncated to ``display_length`` symbols.
    """

    DEFAULT_THRESHOLD = 0.3
    DEFAULT_DISPLAY_LENGTH = 20

    def __init__(
        self,
        threshold: float = DEFAULT_THRESHOLD,
        display_length: int = DEFAULT_DISPLAY_LENGTH,
    ) -> None:
        """
        Args:
            threshold:      Maximum edit distance as a fraction of the longer key.
            display_length: Maximum number of symbols in a group's display key.

        Raises:
            ValueError: If either value is out of range.
        """
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"threshold must be between 0 and 1, got {threshold}.")
        if display_length < 1:
            raise ValueError(f"display_length must be positive, got {display_length}.")
        self.threshold = threshold
        self.display_length = display_length

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _similar(self, a: str, b: str) -> bool:
        limit = self.threshold * max(len(a), len(b))
        # The length difference is a lower bound on the edit distance.
        if abs(len(a) - len(b)) > limit:
            return False
        return levenshtein(a, b) <= limit

    def _winner(self, members: list[Pattern]) -> Pattern:
        return min(members, key=lambda p: (-p.length, p.first_position, p.key))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def group(self, patterns: dict[str, Pattern] | Iterable[Pattern]) -> list[PatternGroup]:
        """
        Cluster patterns by key similarity.

        Args:
            patterns: Mapping of key to Pattern, or any iterable of Patterns.

        Returns:
            Groups ordered by their winner's first occurrence, then key.
        """
        items = list(patterns.values()) if isinstance(patterns, dict) else list(patterns)
        clusters = _DisjointSet(len(items))
        for i in range(len(items)):
            for j in range(i + 1, len(items)):
                if self._similar(items[i].key, items[j].key):
                    clusters.union(i, j)

        members_by_root: dict[int, list[Pattern]] = {}
        for index, pattern in enumerate(items):
            members_by_root.setdefault(clusters.find(index), []).append(pattern)

        groups: list[PatternGroup] = []
        for members in members_by_root.values():
            winner = self._winner(members)
            positions = sorted({position for member in members for position in member.positions})
            groups.append(
                PatternGroup(
                    winner=winner,
                    display_key=winner.key[:self.display_length],
                    members=tuple(members),
                    positions=tuple(positions),
                )
            )
        groups.sort(key=lambda group: (group.winner.first_position, group.winner.key))

        logger.debug("Grouped %d pattern(s) into %d group(s)", len(items), len(groups))
        return groups
