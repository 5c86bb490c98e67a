"""TimelineMidiExporter: writes a pipeline timeline as a multi-track MIDI file."""

from __future__ import annotations

from dataclasses import dataclass
from fractions import Fraction

from midiutil import MIDIFile

from motifscope.score_models import PipelineResult

# In midiutil Format 1 MIDI, track 0 is the conductor/tempo track.
# Parts are written to tracks 1..N in part-list order.
TRACK_CONDUCTOR = 0
MIDI_CHANNELS = 16
PERCUSSION_CHANNEL = 9
MIDI_CLOCKS_PER_TICK = 24


@dataclass(frozen=True)
class MidiNoteEvent:
    """One sounding note after tie chains are merged."""

    track: int
    pitch: int
    start_beat: Fraction
    duration_beats: Fraction


def _channel_for(track: int) -> int:
    """Spread parts over the melodic channels, skipping General MIDI drums."""
    channel = (track - 1) % (MIDI_CHANNELS - 1)
    return channel + 1 if channel >= PERCUSSION_CHANNEL else channel


class TimelineMidiExporter:
    """
    Writes the playback timeline to a Standard MIDI File.

    Track layout (Format 1)
    -----------------------
    Track 0 — conductor track (tempo and first time signature, no notes)
    Track n — part n in part-list order

    Timing
    ------
    Timeline beats are quarter notes, which is midiutil's native time unit.
    Tied notes are merged into one event; rests and grace notes are skipped.
    """

    DEFAULT_VELOCITY = 80

    def __init__(self, tempo: float | None = None, velocity: int = DEFAULT_VELOCITY) -> None:
        """
        Args:
            tempo:    Playback tempo in BPM; defaults to the score's own tempo.
            velocity: MIDI note-on velocity for every note.
        """
        self.tempo = tempo
        self.velocity = velocity

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _first_time_signature(self, result: PipelineResult) -> tuple[int, int] | None:
        for part in result.model.parts:
            for measure in part.measures:
                if measure.time_signature is not None:
                    return measure.time_signature
        return None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def collect_events(self, result: PipelineResult) -> list[MidiNoteEvent]:
        """
        Turn timeline entries into MIDI note events, merging tie chains.

        A note with ``tie_stop`` extends the open tied note of the same part,
        voice and pitch instead of sounding again.
        """
        tracks = {part.part_id: index for index, part in enumerate(result.model.parts, start=1)}
        notes = result.interleaved.notes
        events: list[MidiNoteEvent] = []
        open_ties: dict[tuple[str, str, int], int] = {}

        for entry in result.timeline:
            note = notes[entry.note_index]
            pitch = note.pitch_number
            if pitch is None or note.is_grace or not 0 <= pitch <= 127:
                continue

            key = (note.part_id, note.voice, pitch)
            if note.tie_stop and key in open_ties:
                index = open_ties[key]
                previous = events[index]
                events[index] = MidiNoteEvent(
                    track=previous.track,
                    pitch=pitch,
                    start_beat=previous.start_beat,
                    duration_beats=entry.global_time + entry.duration_beats - previous.start_beat,
                )
            else:
                index = len(events)
                events.append(
                    MidiNoteEvent(
                        track=tracks[note.part_id],
                        pitch=pitch,
                        start_beat=entry.global_time,
                        duration_beats=entry.duration_beats,
                    )
                )

            if note.tie_start:
                open_ties[key] = index
            else:
                open_ties.pop(key, None)

        return events

    def export(self, result: PipelineResult, output_path: str) -> None:
        """
        Render a pipeline result to a Standard MIDI File.

        Args:
            result:      Completed pipeline result.
            output_path: Destination file path (e.g. "output.mid").

        Raises:
            OSError: If the output file cannot be opened for writing.
        """
        parts = result.model.parts
        midi = MIDIFile(numTracks=len(parts) + 1, removeDuplicates=False, deinterleave=False)

        tempo = self.tempo if self.tempo is not None else result.source.tempo
        midi.addTempo(TRACK_CONDUCTOR, 0, tempo)
        signature = self._first_time_signature(result)
        if signature is not None:
            beats, beat_type = signature
            midi.addTimeSignature(
                TRACK_CONDUCTOR, 0, beats, beat_type.bit_length() - 1, MIDI_CLOCKS_PER_TICK
            )

        for track, part in enumerate(parts, start=1):
            midi.addTrackName(track, 0, part.name)

        for event in self.collect_events(result):
            midi.addNote(
                track=event.track,
                channel=_channel_for(event.track),
                pitch=event.pitch,
                time=float(event.start_beat),
                duration=float(event.duration_beats),
                volume=self.velocity,
            )

        with open(output_path, "wb") as f:
            midi.writeFile(f)
