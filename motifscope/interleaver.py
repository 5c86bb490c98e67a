"""Interleaver: merges per-part note streams into one global sequence."""

from __future__ import annotations

import logging
from dataclasses import replace
from fractions import Fraction

from motifscope.score_models import (
    DIRECTION_DOWN,
    DIRECTION_SAME,
    DIRECTION_UP,
    InterleavedScore,
    Note,
    ScoreModel,
)

logger = logging.getLogger(__name__)


def _voice_key(voice: str) -> tuple[int, int, str]:
    """Numeric voices sort numerically and ahead of named ones."""
    if voice.isdigit():
        return 0, int(voice), ""
    return 1, 0, voice


def direction_symbol(previous: int | None, current: int | None) -> str:
    """Contour symbol for a step from ``previous`` to ``current`` pitch."""
    if previous is None or current is None or previous == current:
        return DIRECTION_SAME
    return DIRECTION_UP if current > previous else DIRECTION_DOWN


class Interleaver:
    """
    Orders the notes of all parts into one sequence, one measure at a time.

    Within a measure notes are ordered by start offset (in beats, so parts
    with different divisions compare correctly), then by part-list order,
    then by voice, then by document order. Chord members share their head's
    offset and follow it.
    """

    def _measure_notes(self, model: ScoreModel, measure_index: int) -> list[Note]:
        keyed: list[tuple[tuple[Fraction, int, tuple[int, int, str], int], Note]] = []
        for part_rank, part in enumerate(model.parts):
            if measure_index >= len(part.measures):
                continue
            for order, note in enumerate(part.measures[measure_index].notes):
                keyed.append(((note.offset_beats, part_rank, _voice_key(note.voice), order), note))
        keyed.sort(key=lambda pair: pair[0])
        return [note for _key, note in keyed]

    def interleave(self, model: ScoreModel) -> InterleavedScore:
        """
        Merge all parts and assign each note its immutable global index.

        Returns:
            InterleavedScore whose step, pitch and direction sequences are
            parallel to its notes.
        """
        notes: list[Note] = []
        for measure_index in range(model.measure_count):
            for note in self._measure_notes(model, measure_index):
                notes.append(replace(note, global_index=len(notes)))

        pitches = tuple(note.pitch_number for note in notes)
        directions = [
            DIRECTION_SAME if index == 0 else direction_symbol(pitches[index - 1], pitch)
            for index, pitch in enumerate(pitches)
        ]

        logger.debug("Interleaved %d note(s) over %d measure(s)", len(notes), model.measure_count)
        return InterleavedScore(
            notes=tuple(notes),
            step_sequence="".join(note.step_symbol for note in notes),
            pitch_sequence=pitches,
            direction_sequence="".join(directions),
            measure_count=model.measure_count,
        )
