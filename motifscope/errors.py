"""Error taxonomy and warning records shared by every pipeline stage."""

from __future__ import annotations

from dataclasses import dataclass


class MotifscopeError(Exception):
    """Base class for all motifscope errors."""


class ScoreImportError(MotifscopeError):
    """
    The score bytes could not be turned into a MusicXML document.

    Fatal to the load: no model is produced.

    Attributes:
        reason: Short machine-readable cause, e.g. ``"missing-container"``.
    """

    def __init__(self, message: str, reason: str) -> None:
        super().__init__(message)
        self.reason = reason


class MalformedNoteError(MotifscopeError):
    """A single note element is unusable; the note is skipped."""

    def __init__(
        self,
        message: str,
        part_id: str | None = None,
        measure_index: int | None = None,
        note_position: int | None = None,
    ) -> None:
        super().__init__(message)
        self.part_id = part_id
        self.measure_index = measure_index
        self.note_position = note_position


class TimingInconsistencyError(MotifscopeError):
    """A measure's notes do not reconcile with its declared duration."""

    def __init__(
        self,
        message: str,
        part_id: str | None = None,
        measure_index: int | None = None,
    ) -> None:
        super().__init__(message)
        self.part_id = part_id
        self.measure_index = measure_index


class PatternInputError(MotifscopeError):
    """The sequence is shorter than the minimum pattern window."""


class PipelineCancelled(MotifscopeError):
    """A newer load superseded this pipeline run."""


@dataclass(frozen=True)
class PipelineWarning:
    """
    A recoverable problem recorded alongside an otherwise complete result.

    Attributes:
        kind:          Name of the error class that was recovered from.
        message:       Human-readable description.
        part_id:       Part the problem belongs to, if any.
        measure_index: 0-based measure position within the part, if any.
        note_position: Position of the element within its measure, if any.
    """

    kind: str
    message: str
    part_id: str | None = None
    measure_index: int | None = None
    note_position: int | None = None

    @classmethod
    def from_error(cls, error: MotifscopeError) -> "PipelineWarning":
        return cls(
            kind=type(error).__name__,
            message=str(error),
            part_id=getattr(error, "part_id", None),
            measure_index=getattr(error, "measure_index", None),
            note_position=getattr(error, "note_position", None),
        )

    def __str__(self) -> str:
        where = []
        if self.part_id is not None:
            where.append(f"part {self.part_id}")
        if self.measure_index is not None:
            where.append(f"measure {self.measure_index + 1}")
        if self.note_position is not None:
            where.append(f"element {self.note_position}")
        location = f" ({', '.join(where)})" if where else ""
        return f"{self.kind}{location}: {self.message}"
