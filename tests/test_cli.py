"""Tests for the motifscope command line interface."""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from motifscope import __version__
from motifscope.cli import main

from score_fixtures import mxl_bytes, note, score_bytes, score_xml

MELODY = [note("C") + note("D") + note("E") + note("D") + note("C")] * 2


@pytest.fixture
def score_file(tmp_path: pytest.TempPathFactory) -> str:
    path = tmp_path / "song.musicxml"  # type: ignore[operator]
    path.write_bytes(score_bytes({"P1": MELODY}, time=(5, 4)))
    return str(path)


def test_version() -> None:
    result = CliRunner().invoke(main, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_analyze_prints_summary(score_file: str) -> None:
    result = CliRunner().invoke(main, ["analyze", score_file])
    assert result.exit_code == 0, result.output
    assert f"motifscope v{__version__}" in result.output
    assert "[3/3] Detecting and grouping patterns..." in result.output
    assert "Notes    : 10" in result.output
    assert "cdedc" in result.output


def test_analyze_json_output(score_file: str) -> None:
    result = CliRunner().invoke(main, ["analyze", score_file, "--json"])
    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["filename"] == "song.musicxml"
    assert len(payload["notes"]) == 10
    assert any(group["winner"]["key"] == "cdedc" for group in payload["groups"])


def test_analyze_options_override_defaults(score_file: str) -> None:
    result = CliRunner().invoke(
        main, ["analyze", score_file, "--json", "--min-length", "5", "--max-length", "5"]
    )
    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert {p["length"] for p in payload["patterns"]} == {5}


def test_analyze_reads_config_file(score_file: str, tmp_path: pytest.TempPathFactory) -> None:
    config = tmp_path / "motifscope.yaml"  # type: ignore[operator]
    config.write_text("min_pattern_length: 5\nmax_pattern_length: 5\n", encoding="utf-8")
    result = CliRunner().invoke(main, ["analyze", score_file, "--json", "--config", str(config)])
    assert result.exit_code == 0, result.output
    assert {p["length"] for p in json.loads(result.output)["patterns"]} == {5}


def test_analyze_rejects_inconsistent_window(score_file: str) -> None:
    result = CliRunner().invoke(main, ["analyze", score_file, "--min-length", "6", "--max-length", "4"])
    assert result.exit_code == 1
    assert "Invalid configuration" in result.output


def test_analyze_reports_mistyped_config_value(score_file: str, tmp_path: pytest.TempPathFactory) -> None:
    config = tmp_path / "motifscope.yaml"  # type: ignore[operator]
    config.write_text("min_pattern_length: five\n", encoding="utf-8")
    result = CliRunner().invoke(main, ["analyze", score_file, "--config", str(config)])
    assert result.exit_code == 1
    assert isinstance(result.exception, SystemExit)
    assert "ERROR: Invalid configuration" in result.output


def test_analyze_reports_import_failure(tmp_path: pytest.TempPathFactory) -> None:
    path = tmp_path / "broken.mxl"  # type: ignore[operator]
    path.write_bytes(b"not a zip archive")
    result = CliRunner().invoke(main, ["analyze", str(path)])
    assert result.exit_code == 1
    assert "ERROR: Could not import score" in result.output


def test_analyze_accepts_compressed_score(tmp_path: pytest.TempPathFactory) -> None:
    path = tmp_path / "song.mxl"  # type: ignore[operator]
    path.write_bytes(mxl_bytes(score_xml({"P1": MELODY}, time=(5, 4))))
    result = CliRunner().invoke(main, ["analyze", str(path)])
    assert result.exit_code == 0, result.output
    assert "Notes    : 10" in result.output


def test_validate_accepts_clean_score(score_file: str) -> None:
    result = CliRunner().invoke(main, ["validate", score_file])
    assert result.exit_code == 0, result.output
    assert "Status : valid" in result.output
    assert "SHA-256" in result.output


def test_validate_rejects_flagged_score(tmp_path: pytest.TempPathFactory) -> None:
    path = tmp_path / "song.musicxml"  # type: ignore[operator]
    document = score_xml({"P1": [note("C", duration=4)]}).replace(
        "<part-list>", '<!-- <script>alert(1)</script> --><part-list>'
    )
    path.write_text(document, encoding="utf-8")
    result = CliRunner().invoke(main, ["validate", str(path)])
    assert result.exit_code == 1
    assert "Status : rejected" in result.output


def test_validate_rejects_unknown_extension(tmp_path: pytest.TempPathFactory) -> None:
    path = tmp_path / "song.txt"  # type: ignore[operator]
    path.write_bytes(score_bytes({"P1": [note("C", duration=4)]}))
    result = CliRunner().invoke(main, ["validate", str(path)])
    assert result.exit_code == 1


def test_validate_reports_unreadable_file(score_file: str, monkeypatch: pytest.MonkeyPatch) -> None:
    def fail_read(self) -> bytes:
        raise PermissionError("permission denied")

    monkeypatch.setattr(Path, "read_bytes", fail_read)
    result = CliRunner().invoke(main, ["validate", score_file])
    assert result.exit_code == 1
    assert isinstance(result.exception, SystemExit)
    assert "ERROR: Could not read score file" in result.output


def test_midi_writes_file(score_file: str, tmp_path: pytest.TempPathFactory) -> None:
    out = tmp_path / "out.mid"  # type: ignore[operator]
    result = CliRunner().invoke(main, ["midi", score_file, "-o", str(out), "--tempo", "90"])
    assert result.exit_code == 0, result.output
    assert "Done!  Wrote 10 timeline entries" in result.output
    assert out.read_bytes().startswith(b"MThd")


def test_midi_defaults_output_next_to_score(score_file: str) -> None:
    result = CliRunner().invoke(main, ["midi", score_file])
    assert result.exit_code == 0, result.output
    assert score_file.replace(".musicxml", ".mid") in result.output
