"""Data models produced by the score pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from fractions import Fraction
from typing import Any, Final
from xml.etree.ElementTree import Element

from motifscope.errors import PipelineWarning

# ── Pitch constants ─────────────────────────────────────────────────────────
SEMITONES_PER_OCTAVE: Final[int] = 12
STEP_SEMITONES: Final[dict[str, int]] = {
    "C": 0, "D": 2, "E": 4, "F": 5, "G": 7, "A": 9, "B": 11,
}
REST_STEP: Final[str] = "R"

# ── Contour symbols ─────────────────────────────────────────────────────────
# Disjoint from the step alphabet so step and contour keys never collide.
DIRECTION_UP: Final[str] = "+"
DIRECTION_DOWN: Final[str] = "-"
DIRECTION_SAME: Final[str] = "="


def pitch_to_midi(step: str, octave: int, alter: float = 0.0) -> int:
    """
    Convert a MusicXML pitch to an absolute MIDI note number.

    MIDI octave numbering: C-1 = 0, C0 = 12, C4 (Middle C) = 60. Microtonal
    alterations are rounded to the nearest semitone.
    """
    return (octave + 1) * SEMITONES_PER_OCTAVE + STEP_SEMITONES[step] + round(alter)


@dataclass(frozen=True)
class ValidationReport:
    """Outcome of the upload validation gate."""

    valid: bool
    errors: list[str]
    sha256: str


@dataclass(frozen=True)
class ImportedScore:
    """
    A parsed MusicXML document ready for note extraction.

    Attributes:
        root:       ``score-partwise`` root element (timewise input is regrouped).
        filename:   Declared filename of the upload.
        divisions:  Global ticks-per-quarter default used until a part overrides it.
        part_order: Part ids in part-list order, then undeclared parts.
        part_names: Display name per part id.
        tempo:      First ``<sound tempo>`` in the score, in BPM.
        sha256:     Digest of the raw bytes.
        validation: Report of the content checks that were applied.
    """

    root: Element
    filename: str
    divisions: int
    part_order: tuple[str, ...]
    part_names: dict[str, str]
    tempo: float
    sha256: str
    validation: ValidationReport


@dataclass(frozen=True)
class Note:
    """A single sounding or rested event inside one measure of one part."""

    step: str
    octave: int
    alter: float
    duration_ticks: int
    divisions: int
    offset_ticks: int
    voice: str
    part_id: str
    measure_index: int
    staff: str | None = None
    is_chord_member: bool = False
    is_grace: bool = False
    is_rest: bool = False
    tie_start: bool = False
    tie_stop: bool = False
    beam_group_id: int | None = None
    type: str | None = None
    dots: int = 0
    global_index: int | None = None

    @property
    def pitch_number(self) -> int | None:
        """MIDI note number, or None for rests."""
        if self.is_rest:
            return None
        return pitch_to_midi(self.step, self.octave, self.alter)

    @property
    def step_symbol(self) -> str:
        """Lowercase step letter used in pattern keys (``r`` for rests)."""
        return self.step.lower()

    @property
    def duration_beats(self) -> Fraction:
        return Fraction(self.duration_ticks, self.divisions)

    @property
    def offset_beats(self) -> Fraction:
        return Fraction(self.offset_ticks, self.divisions)

    @property
    def name(self) -> str:
        """Human-readable name, e.g. 'C#4' or 'rest'."""
        if self.is_rest:
            return "rest"
        accidental = "#" * max(0, round(self.alter)) + "b" * max(0, -round(self.alter))
        return f"{self.step}{accidental}{self.octave}"


@dataclass(frozen=True)
class Measure:
    """
    One measure of one part with every note's start offset resolved.

    Attributes:
        part_id:        Owning part.
        index:          0-based position of the measure within the part.
        number:         MusicXML ``number`` attribute.
        divisions:      Ticks per quarter note in force at the end of the measure.
        time_signature: (beats, beat_type) in force, or None if none was declared.
        implicit:       True for pickup measures (``implicit="yes"``).
        notes:          Notes in document order.
        filled_ticks:   High-water mark of the time cursor.
        duration_ticks: Resolved duration after reconciliation.
    """

    part_id: str
    index: int
    number: str
    divisions: int
    time_signature: tuple[int, int] | None
    implicit: bool
    notes: tuple[Note, ...]
    filled_ticks: int
    duration_ticks: int

    @property
    def duration_beats(self) -> Fraction:
        return Fraction(self.duration_ticks, self.divisions)


@dataclass(frozen=True)
class PartModel:
    """All measures of one part."""

    part_id: str
    name: str
    measures: tuple[Measure, ...]


@dataclass(frozen=True)
class ScoreModel:
    """Output of the note model builder: parts in part-list order."""

    parts: tuple[PartModel, ...]
    warnings: tuple[PipelineWarning, ...] = ()

    @property
    def measure_count(self) -> int:
        return max((len(part.measures) for part in self.parts), default=0)


@dataclass(frozen=True)
class InterleavedScore:
    """
    The single time-ordered note sequence plus its parallel symbol sequences.

    ``notes[i].global_index == i`` for every note, and all four sequences
    have the same length.
    """

    notes: tuple[Note, ...]
    step_sequence: str
    pitch_sequence: tuple[int | None, ...]
    direction_sequence: str
    measure_count: int

    def __len__(self) -> int:
        return len(self.notes)

    def notes_between(self, first: int, last: int) -> tuple[Note, ...]:
        """
        Return the notes whose global index lies in ``[first, last]``.

        Raises:
            IndexError: If the range falls outside the sequence or is reversed.
        """
        if first < 0 or last >= len(self.notes) or first > last:
            raise IndexError(
                f"Selection {first}..{last} is outside 0..{len(self.notes) - 1}."
            )
        return self.notes[first:last + 1]


@dataclass(frozen=True)
class TimelineEntry:
    """A note placed on the absolute beat timeline."""

    global_time: Fraction
    duration_beats: Fraction
    note_index: int


@dataclass(frozen=True)
class Pattern:
    """A repeated contiguous subsequence and its non-overlapping occurrences."""

    key: str
    length: int
    positions: tuple[int, ...]
    kind: str = "step"

    @property
    def first_position(self) -> int:
        return self.positions[0]


@dataclass(frozen=True)
class PatternGroup:
    """A cluster of similar patterns with its winning representative."""

    winner: Pattern
    display_key: str
    members: tuple[Pattern, ...]
    positions: tuple[int, ...]


@dataclass(frozen=True)
class PipelineResult:
    """Everything one pipeline run produces for one loaded score."""

    source: ImportedScore
    model: ScoreModel
    interleaved: InterleavedScore
    timeline: tuple[TimelineEntry, ...]
    step_patterns: dict[str, Pattern]
    direction_patterns: dict[str, Pattern]
    groups: tuple[PatternGroup, ...]
    warnings: tuple[PipelineWarning, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable view of the result."""
        return {
            "filename": self.source.filename,
            "sha256": self.source.sha256,
            "divisions": self.source.divisions,
            "tempo": self.source.tempo,
            "parts": [
                {"id": part.part_id, "name": part.name, "measures": len(part.measures)}
                for part in self.model.parts
            ],
            "notes": [
                {**asdict(note), "pitch_number": note.pitch_number}
                for note in self.interleaved.notes
            ],
            "timeline": [
                {
                    "global_time": str(entry.global_time),
                    "duration_beats": str(entry.duration_beats),
                    "note_index": entry.note_index,
                }
                for entry in self.timeline
            ],
            "patterns": [
                asdict(pattern)
                for pattern in [*self.step_patterns.values(), *self.direction_patterns.values()]
            ],
            "groups": [
                {
                    "display_key": group.display_key,
                    "winner": asdict(group.winner),
                    "members": [pattern.key for pattern in group.members],
                    "positions": list(group.positions),
                }
                for group in self.groups
            ],
            "warnings": [asdict(warning) for warning in self.warnings],
        }
