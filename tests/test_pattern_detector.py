"""Unit tests for PatternDetector (sliding windows + greedy overlap removal)."""

import pytest

from motifscope.pattern_detector import (
    DIRECTION_KIND,
    PatternDetector,
    merge_patterns,
    remove_overlaps,
)
from motifscope.score_models import InterleavedScore, Pattern


def _assert_well_formed(patterns: dict[str, Pattern], total: int) -> None:
    for key, pattern in patterns.items():
        assert pattern.key == key
        assert pattern.length == len(key) >= 3
        assert len(pattern.positions) >= 2
        assert list(pattern.positions) == sorted(pattern.positions)
        for earlier, later in zip(pattern.positions, pattern.positions[1:]):
            assert later >= earlier + pattern.length
        assert pattern.positions[-1] + pattern.length <= total


def test_cdedc_repeats_at_zero_and_five() -> None:
    patterns = PatternDetector(min_length=5, max_length=5).detect("cdedccdedc")
    assert patterns["cdedc"].positions == (0, 5)
    assert patterns["cdedc"].length == 5


def test_full_window_range_contains_shorter_patterns() -> None:
    patterns = PatternDetector().detect("cdedccdedc")
    assert patterns["cde"].positions == (0, 5)
    assert patterns["cdedc"].positions == (0, 5)
    _assert_well_formed(patterns, 10)


def test_overlapping_occurrences_are_removed_left_first() -> None:
    # "aaa" occurs at 0..4 but only 0 and 3 survive non-overlapping removal.
    patterns = PatternDetector().detect("aaaaaa")
    assert patterns["aaa"].positions == (0, 3)
    assert "aaaa" not in patterns
    _assert_well_formed(patterns, 6)


def test_key_dropped_when_overlap_removal_leaves_one() -> None:
    patterns = PatternDetector().detect("abababa")
    assert patterns["aba"].positions == (0, 4)
    assert "abab" not in patterns
    assert "bab" not in patterns


def test_single_occurrence_is_not_a_pattern() -> None:
    assert PatternDetector().detect("abcdefg") == {}


def test_short_sequence_yields_no_patterns() -> None:
    assert PatternDetector().detect("ab") == {}
    assert PatternDetector().detect("") == {}


def test_window_is_capped_at_max_length() -> None:
    sequence = "abcdefghij" * 2
    patterns = PatternDetector(max_length=6).detect(sequence)
    assert max(p.length for p in patterns.values()) == 6


def test_list_sequences_are_joined_into_keys() -> None:
    patterns = PatternDetector().detect(list("cegceg"))
    assert patterns["ceg"].positions == (0, 3)


def test_detection_is_deterministic() -> None:
    sequence = "cdecdegfedcdecde" * 3
    first = PatternDetector().detect(sequence)
    second = PatternDetector().detect(sequence)
    assert list(first) == list(second)
    assert first == second


def test_results_are_ordered_by_length_then_first_occurrence() -> None:
    patterns = PatternDetector().detect("xyzabcxyzabc")
    lengths = [p.length for p in patterns.values()]
    assert lengths == sorted(lengths)
    same_length = [p.first_position for p in patterns.values() if p.length == 3]
    assert same_length == sorted(same_length)


def test_detect_all_runs_step_and_direction_passes() -> None:
    interleaved = InterleavedScore(
        notes=(),
        step_sequence="cdecde",
        pitch_sequence=(60, 62, 64, 60, 62, 64),
        direction_sequence="++-++-",
        measure_count=1,
    )
    steps, directions = PatternDetector().detect_all(interleaved)
    assert steps["cde"].positions == (0, 3)
    assert directions["++-"].positions == (0, 3)
    assert all(p.kind == DIRECTION_KIND for p in directions.values())


def test_merge_patterns_keeps_both_alphabets() -> None:
    steps = {"cde": Pattern("cde", 3, (0, 3))}
    directions = {"++-": Pattern("++-", 3, (1, 4), kind=DIRECTION_KIND)}
    merged = merge_patterns(steps, directions)
    assert list(merged) == ["cde", "++-"]


def test_remove_overlaps() -> None:
    assert remove_overlaps([0, 1, 2, 3, 5, 9], 3) == [0, 3, 9]


@pytest.mark.parametrize(("min_length", "max_length"), [(2, 26), (5, 4)])
def test_invalid_window_bounds_raise(min_length: int, max_length: int) -> None:
    with pytest.raises(ValueError):
        PatternDetector(min_length=min_length, max_length=max_length)
