"""NoteModelBuilder: walks parts and measures and produces resolved Note records."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from fractions import Fraction
from xml.etree.ElementTree import Element

from motifscope.errors import (
    MalformedNoteError,
    MotifscopeError,
    PipelineWarning,
    TimingInconsistencyError,
)
from motifscope.score_models import (
    REST_STEP,
    STEP_SEMITONES,
    ImportedScore,
    Measure,
    Note,
    PartModel,
    ScoreModel,
)
from motifscope.timeline import type_to_beats

logger = logging.getLogger(__name__)

DEFAULT_VOICE = "1"


def _parse_positive_int(text: str | None, what: str) -> int:
    """Parse a strictly positive integer, raising ValueError otherwise."""
    if text is None or not text.strip():
        raise ValueError(f"missing {what}")
    value = int(text.strip())
    if value <= 0:
        raise ValueError(f"non-positive {what} {value}")
    return value


def _parse_time_signature(element: Element) -> tuple[int, int] | None:
    """Read ``<time>``; additive beats such as ``3+2`` are summed."""
    beats_text = element.findtext("beats")
    beat_type_text = element.findtext("beat-type")
    if beats_text is None or beat_type_text is None:
        return None
    try:
        beats = sum(int(part) for part in beats_text.split("+"))
        beat_type = int(beat_type_text)
    except ValueError:
        return None
    if beats <= 0 or beat_type <= 0:
        return None
    return beats, beat_type


@dataclass
class _PartState:
    """Running state carried from one measure of a part to the next."""

    divisions: int
    time_signature: tuple[int, int] | None = None
    open_beams: dict[str, int] = field(default_factory=dict)


@dataclass
class _MeasureCursor:
    """Time cursor for one measure, in ticks of the divisions in force."""

    position: int = 0
    high_water: int = 0
    last_start: int = 0

    def advance(self, ticks: int) -> None:
        self.position += ticks
        self.high_water = max(self.high_water, self.position)

    def rescale(self, old: int, new: int) -> bool:
        """Re-express the cursor in a new divisions unit; False if inexact."""
        exact = True
        for name in ("position", "high_water", "last_start"):
            scaled = Fraction(getattr(self, name) * new, old)
            if scaled.denominator != 1:
                exact = False
            setattr(self, name, round(scaled))
        return exact


class NoteModelBuilder:
    """
    Translates a parsed MusicXML document into per-part, per-measure Notes.

    Timing rules
    ------------
    - A chord member starts at its chord head's offset (grace heads included)
      and does not advance the cursor; grace notes start at the cursor with
      zero duration.
    - ``<forward>`` advances and ``<backup>`` rewinds the cursor without
      emitting notes.
    - A measure's filled length is the cursor's high-water mark. When a time
      signature is in force it must match the declared length; otherwise the
      mismatch is recorded and the measure is resynchronized to the declared
      length so drift never reaches later measures.

    Unusable notes are skipped and recorded as warnings; the build never
    aborts for a single bad element.
    """

    def __init__(self) -> None:
        self._warnings: list[PipelineWarning] = []
        self._beam_counter = 0

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _warn(self, error: MotifscopeError) -> None:
        warning = PipelineWarning.from_error(error)
        logger.warning("%s", warning)
        self._warnings.append(warning)

    def _note_duration(self, element: Element, divisions: int) -> int:
        text = element.findtext("duration")
        if text is not None:
            return _parse_positive_int(text, "duration")

        note_type = element.findtext("type")
        if note_type is None:
            raise ValueError("note has neither a duration nor a type")
        beats = type_to_beats(note_type.strip(), len(element.findall("dot")))
        ticks = beats * divisions
        if ticks.denominator != 1 or ticks <= 0:
            raise ValueError(
                f"type '{note_type}' is not a whole number of ticks at divisions={divisions}"
            )
        return int(ticks)

    def _pitch(self, element: Element) -> tuple[str, int, float]:
        pitch = element.find("pitch")
        if pitch is not None:
            step = (pitch.findtext("step") or "").strip().upper()
            octave_text = pitch.findtext("octave")
            alter_text = pitch.findtext("alter")
        else:
            unpitched = element.find("unpitched")
            if unpitched is None:
                raise ValueError("note has no pitch, unpitched or rest element")
            step = (unpitched.findtext("display-step") or "").strip().upper()
            octave_text = unpitched.findtext("display-octave")
            alter_text = None

        if step not in STEP_SEMITONES:
            raise ValueError(f"invalid step '{step}'")
        if octave_text is None:
            raise ValueError("missing octave")
        octave = int(octave_text.strip())
        alter = float(alter_text.strip()) if alter_text and alter_text.strip() else 0.0
        return step, octave, alter

    def _ties(self, element: Element) -> tuple[bool, bool]:
        types = [tie.get("type") for tie in element.findall("tie")]
        types += [tied.get("type") for tied in element.findall("notations/tied")]
        return "start" in types, "stop" in types

    def _beam_group(self, element: Element, part_id: str, voice: str, state: _PartState) -> int | None:
        beam = None
        for candidate in element.findall("beam"):
            if candidate.get("number", "1") == "1":
                beam = candidate
                break
        if beam is None or beam.text is None:
            return None

        key = f"{part_id}/{voice}"
        value = beam.text.strip()
        if value == "begin" or key not in state.open_beams:
            self._beam_counter += 1
            state.open_beams[key] = self._beam_counter
        group_id = state.open_beams[key]
        if value == "end":
            del state.open_beams[key]
        return group_id

    def _build_note(
        self,
        element: Element,
        part_id: str,
        measure_index: int,
        position: int,
        state: _PartState,
        cursor: _MeasureCursor,
    ) -> Note:
        is_chord_member = element.find("chord") is not None
        is_grace = element.find("grace") is not None
        is_rest = element.find("rest") is not None
        voice = (element.findtext("voice") or DEFAULT_VOICE).strip() or DEFAULT_VOICE

        try:
            duration = 0 if is_grace else self._note_duration(element, state.divisions)
            if is_rest:
                step, octave, alter = REST_STEP, 0, 0.0
            else:
                step, octave, alter = self._pitch(element)
        except ValueError as exc:
            raise MalformedNoteError(
                f"Skipping note: {exc}", part_id, measure_index, position
            ) from exc

        offset = cursor.last_start if is_chord_member else cursor.position
        tie_start, tie_stop = self._ties(element)
        staff = element.findtext("staff")
        return Note(
            step=step,
            octave=octave,
            alter=alter,
            duration_ticks=duration,
            divisions=state.divisions,
            offset_ticks=offset,
            voice=voice,
            part_id=part_id,
            measure_index=measure_index,
            staff=staff.strip() if staff else None,
            is_chord_member=is_chord_member,
            is_grace=is_grace,
            is_rest=is_rest,
            tie_start=tie_start,
            tie_stop=tie_stop,
            beam_group_id=self._beam_group(element, part_id, voice, state),
            type=(element.findtext("type") or "").strip() or None,
            dots=len(element.findall("dot")),
        )

    def _apply_attributes(
        self,
        element: Element,
        part_id: str,
        measure_index: int,
        state: _PartState,
        cursor: _MeasureCursor,
    ) -> None:
        divisions_text = element.findtext("divisions")
        if divisions_text is not None:
            try:
                divisions = _parse_positive_int(divisions_text, "divisions")
            except ValueError as exc:
                self._warn(TimingInconsistencyError(
                    f"Ignoring divisions '{divisions_text}': {exc}", part_id, measure_index
                ))
            else:
                if divisions != state.divisions:
                    if not cursor.rescale(state.divisions, divisions):
                        self._warn(TimingInconsistencyError(
                            f"Divisions change {state.divisions} -> {divisions} "
                            "does not map the time cursor onto whole ticks",
                            part_id,
                            measure_index,
                        ))
                    state.divisions = divisions

        time = element.find("time")
        if time is not None:
            signature = _parse_time_signature(time)
            if signature is not None:
                state.time_signature = signature

    def _shift_cursor(
        self,
        element: Element,
        part_id: str,
        measure_index: int,
        position: int,
        cursor: _MeasureCursor,
    ) -> None:
        kind = element.tag
        try:
            ticks = _parse_positive_int(element.findtext("duration"), f"{kind} duration")
        except ValueError as exc:
            self._warn(MalformedNoteError(
                f"Ignoring <{kind}>: {exc}", part_id, measure_index, position
            ))
            return

        if kind == "forward":
            cursor.advance(ticks)
            return

        if ticks > cursor.position:
            self._warn(TimingInconsistencyError(
                f"<backup> of {ticks} ticks rewinds past the measure start "
                f"(cursor at {cursor.position}); clamping to 0",
                part_id,
                measure_index,
            ))
            cursor.position = 0
        else:
            cursor.position -= ticks

    def _reconcile(
        self,
        part_id: str,
        measure_index: int,
        implicit: bool,
        state: _PartState,
        cursor: _MeasureCursor,
    ) -> int:
        """Return the measure's resolved duration in ticks."""
        if state.time_signature is None or implicit:
            return cursor.high_water

        beats, beat_type = state.time_signature
        declared = Fraction(beats * 4, beat_type) * state.divisions
        if declared.denominator != 1:
            self._warn(TimingInconsistencyError(
                f"Time signature {beats}/{beat_type} is not a whole number of ticks "
                f"at divisions={state.divisions}",
                part_id,
                measure_index,
            ))
            return cursor.high_water

        declared_ticks = int(declared)
        if cursor.high_water != declared_ticks:
            gap = declared_ticks - cursor.high_water
            description = f"gap of {gap}" if gap > 0 else f"overlap of {-gap}"
            self._warn(TimingInconsistencyError(
                f"Notes fill {cursor.high_water} ticks but {beats}/{beat_type} declares "
                f"{declared_ticks} ({description} ticks); resynchronizing",
                part_id,
                measure_index,
            ))
        return declared_ticks

    def _build_measure(
        self,
        element: Element,
        part_id: str,
        measure_index: int,
        state: _PartState,
    ) -> Measure:
        cursor = _MeasureCursor()
        notes: list[Note] = []

        for position, child in enumerate(element):
            if child.tag == "attributes":
                self._apply_attributes(child, part_id, measure_index, state, cursor)
            elif child.tag in ("forward", "backup"):
                self._shift_cursor(child, part_id, measure_index, position, cursor)
            elif child.tag == "note":
                try:
                    note = self._build_note(child, part_id, measure_index, position, state, cursor)
                except MalformedNoteError as exc:
                    self._warn(exc)
                    continue
                notes.append(note)
                if note.is_chord_member:
                    continue
                cursor.last_start = note.offset_ticks
                if not note.is_grace:
                    cursor.advance(note.duration_ticks)

        implicit = element.get("implicit", "no") == "yes"
        return Measure(
            part_id=part_id,
            index=measure_index,
            number=element.get("number", str(measure_index + 1)),
            divisions=state.divisions,
            time_signature=state.time_signature,
            implicit=implicit,
            notes=tuple(notes),
            filled_ticks=cursor.high_water,
            duration_ticks=self._reconcile(part_id, measure_index, implicit, state, cursor),
        )

    def _build_part(self, element: Element, part_id: str, name: str, divisions: int) -> PartModel:
        state = _PartState(divisions=divisions)
        measures = tuple(
            self._build_measure(measure, part_id, index, state)
            for index, measure in enumerate(element.findall("measure"))
        )
        return PartModel(part_id=part_id, name=name, measures=measures)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build(self, imported: ImportedScore) -> ScoreModel:
        """
        Build the note model for every part of an imported score.

        Args:
            imported: Output of :class:`~motifscope.score_importer.ScoreImporter`.

        Returns:
            ScoreModel with parts in part-list order and accumulated warnings.
        """
        self._warnings = []
        self._beam_counter = 0

        elements = {part.get("id", ""): part for part in imported.root.findall("part")}
        parts: list[PartModel] = []
        for part_id in imported.part_order:
            element = elements.get(part_id)
            if element is None:
                logger.warning("Part '%s' is declared but has no music", part_id)
                continue
            parts.append(
                self._build_part(element, part_id, imported.part_names[part_id], imported.divisions)
            )

        note_count = sum(len(m.notes) for part in parts for m in part.measures)
        logger.debug("Built %d note(s) across %d part(s)", note_count, len(parts))
        return ScoreModel(parts=tuple(parts), warnings=tuple(self._warnings))
