"""TimelineBuilder: converts measure-relative ticks into absolute beat time."""

from __future__ import annotations

import logging
from fractions import Fraction
from typing import Final

from motifscope.errors import PipelineWarning, TimingInconsistencyError
from motifscope.score_models import InterleavedScore, ScoreModel, TimelineEntry

logger = logging.getLogger(__name__)

# MusicXML type names that music21 spells differently.
_MUSIC21_TYPE_ALIASES: Final[dict[str, str]] = {"long": "longa"}


def type_to_beats(note_type: str, dots: int = 0) -> Fraction:
    """
    Return the length of a MusicXML note type in quarter-note beats.

    whole=4, half=2, quarter=1, eighth=1/2, 16th=1/4, and so on; each dot adds
    half of the previous value. Only used when a note has no tick duration.

    Raises:
        ValueError: If the type name is unknown.
    """
    from music21 import duration

    name = _MUSIC21_TYPE_ALIASES.get(note_type, note_type)
    try:
        quarter_length = duration.convertTypeToQuarterLength(name, dots=dots)
    except duration.DurationException as exc:
        raise ValueError(f"unknown note type '{note_type}'") from exc
    return Fraction(quarter_length)


class TimelineBuilder:
    """
    Places every interleaved note on one absolute beat timeline.

    A running ``global_time`` starts at 0. Each note of measure *m* is emitted
    at ``global_time + offset`` (chord members share their head's offset and
    therefore its time); after the measure, ``global_time`` advances by the
    measure's resolved duration, taken as the longest of the parts' versions
    of that measure. The result is stable-sorted by time.
    """

    def __init__(self) -> None:
        self.warnings: list[PipelineWarning] = []

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _measure_durations(self, model: ScoreModel) -> list[Fraction]:
        durations: list[Fraction] = []
        for index in range(model.measure_count):
            versions = {
                part.part_id: part.measures[index].duration_beats
                for part in model.parts
                if index < len(part.measures)
            }
            longest = max(versions.values())
            if len(set(versions.values())) > 1:
                detail = ", ".join(f"{part_id}={beats}" for part_id, beats in versions.items())
                warning = PipelineWarning.from_error(TimingInconsistencyError(
                    f"Parts disagree on the measure length ({detail} beats); using {longest}",
                    measure_index=index,
                ))
                logger.warning("%s", warning)
                self.warnings.append(warning)
            durations.append(longest)
        return durations

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build(self, model: ScoreModel, interleaved: InterleavedScore) -> tuple[TimelineEntry, ...]:
        """
        Build the timeline for an interleaved score.

        Args:
            model:       Note model the interleaved sequence was built from.
            interleaved: Interleaved note sequence (ordered by measure).

        Returns:
            TimelineEntry tuple ordered by ``global_time``.
        """
        self.warnings = []
        durations = self._measure_durations(model)
        starts: list[Fraction] = []
        global_time = Fraction(0)
        for duration in durations:
            starts.append(global_time)
            global_time += duration

        entries = [
            TimelineEntry(
                global_time=starts[note.measure_index] + note.offset_beats,
                duration_beats=note.duration_beats,
                note_index=note.global_index,
            )
            for note in interleaved.notes
        ]
        entries.sort(key=lambda entry: entry.global_time)

        logger.debug("Timeline spans %s beat(s) over %d entries", global_time, len(entries))
        return tuple(entries)
