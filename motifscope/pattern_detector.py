"""PatternDetector: finds repeated contiguous subsequences in symbol sequences."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from motifscope.errors import PatternInputError
from motifscope.score_models import InterleavedScore, Pattern

logger = logging.getLogger(__name__)

STEP_KIND = "step"
DIRECTION_KIND = "direction"


def remove_overlaps(starts: Sequence[int], length: int) -> list[int]:
    """
    Greedily keep occurrences whose windows do not overlap, left-most first.

    Args:
        starts: Occurrence start indices in ascending order.
        length: Window length shared by every occurrence.
    """
    kept: list[int] = []
    for start in starts:
        if not kept or start >= kept[-1] + length:
            kept.append(start)
    return kept


def merge_patterns(*pattern_maps: dict[str, Pattern]) -> dict[str, Pattern]:
    """
    Merge pattern maps, keeping every distinct key.

    Step and direction keys are drawn from disjoint alphabets; if a key
    does appear twice the first map wins.
    """
    merged: dict[str, Pattern] = {}
    for patterns in pattern_maps:
        for key, pattern in patterns.items():
            merged.setdefault(key, pattern)
    return merged


class PatternDetector:
    """
    Sliding-window repeat finder.

    Algorithm overview
    ------------------
    For every window length from ``min_length`` up to ``max_length`` (or the
    sequence length if shorter):

    1. Slide the window across the sequence and group start indices by the
       window's contents (the pattern key).
    2. Drop keys seen fewer than two times.
    3. Remove overlapping occurrences greedily in ascending start order.
    4. Drop keys left with fewer than two occurrences.

    Results are insertion-ordered (by length, then first occurrence), so the
    same input always yields the same mapping.
    """

    DEFAULT_MIN_LENGTH = 3
    DEFAULT_MAX_LENGTH = 26

    def __init__(
        self,
        min_length: int = DEFAULT_MIN_LENGTH,
        max_length: int = DEFAULT_MAX_LENGTH,
    ) -> None:
        """
        Args:
            min_length: Shortest window considered (at least 3).
            max_length: Longest window considered.

        Raises:
            ValueError: If the bounds are out of range.
        """
        if min_length < self.DEFAULT_MIN_LENGTH:
            raise ValueError(
                f"min_length must be at least {self.DEFAULT_MIN_LENGTH}, got {min_length}."
            )
        if max_length < min_length:
            raise ValueError(f"max_length ({max_length}) is smaller than min_length ({min_length}).")
        self.min_length = min_length
        self.max_length = max_length

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _window_lengths(self, sequence: Sequence[str]) -> range:
        if len(sequence) < self.min_length:
            raise PatternInputError(
                f"Sequence of length {len(sequence)} is shorter than the "
                f"minimum window of {self.min_length}."
            )
        return range(self.min_length, min(self.max_length, len(sequence)) + 1)

    def _occurrences(self, sequence: Sequence[str], length: int) -> dict[str, list[int]]:
        occurrences: dict[str, list[int]] = {}
        for start in range(len(sequence) - length + 1):
            key = "".join(sequence[start:start + length])
            occurrences.setdefault(key, []).append(start)
        return occurrences

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def detect(self, sequence: Sequence[str], kind: str = STEP_KIND) -> dict[str, Pattern]:
        """
        Return every repeated, non-overlapping pattern in ``sequence``.

        Args:
            sequence: Symbol sequence (a string, or a list of one-char symbols).
            kind:     Label stored on each Pattern (``"step"`` or ``"direction"``).

        Returns:
            Mapping from pattern key to Pattern. Empty when the sequence is
            shorter than the minimum window.
        """
        try:
            lengths = self._window_lengths(sequence)
        except PatternInputError as exc:
            logger.debug("No %s patterns: %s", kind, exc)
            return {}

        patterns: dict[str, Pattern] = {}
        for length in lengths:
            for key, starts in self._occurrences(sequence, length).items():
                if len(starts) < 2:
                    continue
                kept = remove_overlaps(starts, length)
                if len(kept) < 2:
                    continue
                patterns[key] = Pattern(key=key, length=length, positions=tuple(kept), kind=kind)

        logger.debug("Found %d %s pattern(s) in %d symbols", len(patterns), kind, len(sequence))
        return patterns

    def detect_all(self, interleaved: InterleavedScore) -> tuple[dict[str, Pattern], dict[str, Pattern]]:
        """Run the melodic (step) and contour (direction) passes independently."""
        return (
            self.detect(interleaved.step_sequence, STEP_KIND),
            self.detect(interleaved.direction_sequence, DIRECTION_KIND),
        )
