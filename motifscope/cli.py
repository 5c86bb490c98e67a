"""motifscope CLI entry point."""

import json
import logging
import sys
from pathlib import Path

import click

from motifscope import __version__
from motifscope.config import load_config
from motifscope.errors import ScoreImportError
from motifscope.midi_exporter import TimelineMidiExporter
from motifscope.pipeline import ScorePipeline
from motifscope.score_importer import validate_score_bytes
from motifscope.score_models import PipelineResult

MAX_LISTED_GROUPS = 10


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _run_pipeline(score_file: str, pipeline: ScorePipeline) -> PipelineResult:
    """Read a score file and run the pipeline, exiting with status 1 on failure."""
    path = Path(score_file)
    try:
        return pipeline.run(path.read_bytes(), path.name)
    except ScoreImportError as exc:
        click.echo(f"  ERROR: Could not import score — {exc}", err=True)
        sys.exit(1)
    except OSError as exc:
        click.echo(f"  ERROR: Could not read score file — {exc}", err=True)
        sys.exit(1)


def _echo_summary(result: PipelineResult) -> None:
    span = result.timeline[-1].global_time + result.timeline[-1].duration_beats if result.timeline else 0

    click.echo(f"      Parts    : {len(result.model.parts)}")
    for part in result.model.parts:
        click.echo(f"        {part.part_id:<6} {part.name}  ({len(part.measures)} measures)")
    click.echo(f"      Notes    : {len(result.interleaved)}")
    click.echo(f"      Timeline : {len(result.timeline)} entries over {float(span):g} beats")
    click.echo(
        f"      Patterns : {len(result.step_patterns)} melodic, "
        f"{len(result.direction_patterns)} contour"
    )

    if result.warnings:
        click.echo(f"      Warnings : {len(result.warnings)}")
        for warning in result.warnings:
            click.echo(f"        {warning}")

    click.echo(f"      Groups   : {len(result.groups)}")
    for group in result.groups[:MAX_LISTED_GROUPS]:
        positions = ", ".join(str(p) for p in group.positions)
        click.echo(f"        {group.display_key:<20}  x{len(group.winner.positions)}  @ {positions}")
    if len(result.groups) > MAX_LISTED_GROUPS:
        click.echo(f"        ... {len(result.groups) - MAX_LISTED_GROUPS} more")


# ── CLI group ──────────────────────────────────────────────────────────────────

@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, prog_name="motifscope")
def main() -> None:
    """motifscope — MusicXML note timeline and recurring pattern finder."""


# ── analyze subcommand ─────────────────────────────────────────────────────────

@main.command()
@click.argument("score_file", type=click.Path(exists=True, dir_okay=False, readable=True))
@click.option(
    "--config",
    "config_path",
    default=None,
    metavar="PATH",
    help="YAML file with pipeline settings. Command-line options take precedence.",
)
@click.option(
    "--min-length",
    type=click.IntRange(3, None),
    default=None,
    help="Shortest pattern window (default 3).",
)
@click.option(
    "--max-length",
    type=click.IntRange(3, None),
    default=None,
    help="Longest pattern window (default 26).",
)
@click.option(
    "--threshold",
    type=click.FloatRange(0.0, 1.0),
    default=None,
    help="Edit distance, as a fraction of key length, under which patterns group (default 0.3).",
)
@click.option(
    "--display-length",
    type=click.IntRange(1, None),
    default=None,
    help="Maximum symbols shown for a group's winning pattern (default 20).",
)
@click.option("--json", "as_json", is_flag=True, help="Print the full result as JSON.")
@click.option("--verbose", "-v", is_flag=True, help="Log pipeline progress.")
def analyze(
    score_file: str,
    config_path: str | None,
    min_length: int | None,
    max_length: int | None,
    threshold: float | None,
    display_length: int | None,
    as_json: bool,
    verbose: bool,
) -> None:
    """
    Build the note timeline and find recurring patterns in a score.

    SCORE_FILE is a .musicxml, .xml or compressed .mxl file.

    \b
    Examples:
      motifscope analyze song.musicxml
      motifscope analyze song.mxl --min-length 4 --threshold 0.2
      motifscope analyze song.mxl --json > song.json
    """
    _configure_logging(verbose)
    try:
        config = load_config(config_path).with_overrides(
            min_pattern_length=min_length,
            max_pattern_length=max_length,
            group_threshold=threshold,
            display_length=display_length,
        )
        pipeline = ScorePipeline(config)
    except ValueError as exc:
        click.echo(f"  ERROR: Invalid configuration — {exc}", err=True)
        sys.exit(1)

    if as_json:
        result = _run_pipeline(score_file, pipeline)
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    click.echo(f"motifscope v{__version__}")
    click.echo(f"  Score  : {score_file}")
    click.echo()
    click.echo("[1/3] Importing score and building note model...")
    result = _run_pipeline(score_file, pipeline)
    click.echo("[2/3] Interleaving parts and building timeline...")
    click.echo("[3/3] Detecting and grouping patterns...")
    _echo_summary(result)


# ── validate subcommand ────────────────────────────────────────────────────────

@main.command()
@click.argument("score_file", type=click.Path(exists=True, dir_okay=False, readable=True))
def validate(score_file: str) -> None:
    """
    Check a score file against the upload rules.

    Exits with status 1 when the file would be rejected.
    """
    path = Path(score_file)
    try:
        data = path.read_bytes()
    except OSError as exc:
        click.echo(f"  ERROR: Could not read score file — {exc}", err=True)
        sys.exit(1)
    report = validate_score_bytes(data, path.name)

    click.echo(f"  File   : {score_file}")
    click.echo(f"  SHA-256: {report.sha256}")
    if report.valid:
        click.echo("  Status : valid")
        return

    click.echo("  Status : rejected")
    for error in report.errors:
        click.echo(f"  ERROR: {error}", err=True)
    sys.exit(1)


# ── midi subcommand ────────────────────────────────────────────────────────────

@main.command()
@click.argument("score_file", type=click.Path(exists=True, dir_okay=False, readable=True))
@click.option(
    "--output",
    "-o",
    default=None,
    metavar="PATH",
    help="Destination MIDI file path. Defaults to the score name with .mid.",
)
@click.option(
    "--tempo",
    type=click.IntRange(20, 300),
    default=None,
    help="Playback tempo in BPM. Defaults to the tempo marked in the score.",
)
def midi(score_file: str, output: str | None, tempo: int | None) -> None:
    """
    Write the score's playback timeline as a MIDI file.

    \b
    Examples:
      motifscope midi song.musicxml
      motifscope midi song.mxl -o song.mid --tempo 90
    """
    resolved_output = output if output is not None else str(Path(score_file).with_suffix(".mid"))
    result = _run_pipeline(score_file, ScorePipeline())

    exporter = TimelineMidiExporter(tempo=tempo)
    try:
        exporter.export(result, resolved_output)
    except OSError as exc:
        click.echo(f"  ERROR: Could not write MIDI file — {exc}", err=True)
        sys.exit(1)

    click.echo(f"Done!  Wrote {len(result.timeline)} timeline entries to '{resolved_output}'.")
