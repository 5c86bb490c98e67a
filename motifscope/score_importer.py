"""ScoreImporter: decodes MusicXML / compressed MXL bytes into a parsed document."""

from __future__ import annotations

import hashlib
import io
import logging
import re
import xml.etree.ElementTree as ET
import zipfile
from pathlib import PurePosixPath
from typing import Final
from xml.etree.ElementTree import Element

from motifscope.errors import ScoreImportError
from motifscope.score_models import ImportedScore, ValidationReport

logger = logging.getLogger(__name__)

CONTAINER_PATH: Final[str] = "META-INF/container.xml"
COMPRESSED_EXTENSIONS: Final[set[str]] = {".mxl"}
ALLOWED_EXTENSIONS: Final[set[str]] = {".musicxml", ".mxl", ".xml"}
MAX_UPLOAD_BYTES: Final[int] = 25 * 1024 * 1024
DEFAULT_DIVISIONS: Final[int] = 1
DEFAULT_TEMPO: Final[float] = 120.0
SCORE_ROOTS: Final[set[str]] = {"score-partwise", "score-timewise"}

# Markers of executable or entity-expanding content rejected at upload time.
SUSPICIOUS_PATTERNS: Final[list[re.Pattern[str]]] = [
    re.compile(r"<script", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"\son\w+\s*=", re.IGNORECASE),
    re.compile(r"<!ENTITY", re.IGNORECASE),
    re.compile(r"SYSTEM\s+[\"']", re.IGNORECASE),
]


def _local_name(tag: str) -> str:
    """Strip an ``{namespace}`` prefix from an element tag."""
    return tag.rsplit("}", 1)[-1]


def is_compressed(filename: str) -> bool:
    return PurePosixPath(filename).suffix.lower() in COMPRESSED_EXTENSIONS


def compute_sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def find_suspicious_content(text: str) -> str | None:
    """Return the first suspicious marker pattern found in ``text``, if any."""
    for pattern in SUSPICIOUS_PATTERNS:
        if pattern.search(text):
            return pattern.pattern
    return None


def read_compressed_text(data: bytes) -> str:
    """
    Extract the root MusicXML document from an MXL archive.

    Raises:
        ScoreImportError: If the archive, its container descriptor, the
            rootfile reference or the referenced entry is missing or invalid.
    """
    try:
        archive = zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as exc:
        raise ScoreImportError(f"Invalid MXL: not a zip archive ({exc})", "bad-archive") from exc

    with archive:
        names = set(archive.namelist())
        if CONTAINER_PATH not in names:
            raise ScoreImportError(f"Invalid MXL: Missing {CONTAINER_PATH}", "missing-container")

        try:
            container = ET.fromstring(archive.read(CONTAINER_PATH))
        except ET.ParseError as exc:
            raise ScoreImportError(
                f"Invalid MXL: {CONTAINER_PATH} is not well-formed ({exc})", "bad-container"
            ) from exc

        rootfile_path = None
        for element in container.iter():
            if _local_name(element.tag) == "rootfile" and element.get("full-path"):
                rootfile_path = element.get("full-path")
                break
        if rootfile_path is None:
            raise ScoreImportError(
                f"Invalid MXL: Cannot find rootfile in {CONTAINER_PATH}", "missing-rootfile"
            )
        if rootfile_path not in names:
            raise ScoreImportError(
                f"Invalid MXL: Rootfile {rootfile_path} not found in archive", "missing-entry"
            )

        raw = archive.read(rootfile_path)

    return _decode(raw)


def _decode(raw: bytes) -> str:
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ScoreImportError(f"Invalid MusicXML: not UTF-8 text ({exc})", "bad-encoding") from exc


def validate_score_bytes(data: bytes, filename: str) -> ValidationReport:
    """
    Run the upload gate over raw bytes without raising.

    Checks the extension, size, container layout, root element, part-list and
    script-like markers. The report lists every problem found before the
    first fatal one.
    """
    errors: list[str] = []
    digest = compute_sha256(data)

    extension = PurePosixPath(filename).suffix.lower()
    if extension not in ALLOWED_EXTENSIONS:
        errors.append(f"Invalid file type '{extension or filename}'. Only MusicXML files are allowed.")
        return ValidationReport(valid=False, errors=errors, sha256=digest)
    if len(data) > MAX_UPLOAD_BYTES:
        errors.append(f"File too large: {len(data)} bytes (limit {MAX_UPLOAD_BYTES}).")
        return ValidationReport(valid=False, errors=errors, sha256=digest)

    try:
        text = read_compressed_text(data) if is_compressed(filename) else _decode(data)
    except ScoreImportError as exc:
        errors.append(str(exc))
        return ValidationReport(valid=False, errors=errors, sha256=digest)

    has_root = any(f"<{root}" in text for root in SCORE_ROOTS)
    if "<?xml" not in text and not has_root:
        errors.append("Invalid MusicXML: Not a valid XML document")
    elif not has_root:
        errors.append("Invalid MusicXML: Missing score-partwise or score-timewise root element")
    elif "<part-list>" not in text and "<part-list " not in text:
        errors.append("Invalid MusicXML: Missing part-list element")
    elif find_suspicious_content(text) is not None:
        errors.append("Security warning: File contains potentially malicious content")

    return ValidationReport(valid=not errors, errors=errors, sha256=digest)


def timewise_to_partwise(root: Element) -> Element:
    """
    Regroup a ``score-timewise`` document into the ``score-partwise`` layout.

    Header elements (everything except measures) are carried over unchanged.
    """
    partwise = Element("score-partwise", dict(root.attrib))
    parts: dict[str, Element] = {}
    for child in root:
        if child.tag != "measure":
            partwise.append(child)
            continue
        for part in child.findall("part"):
            part_id = part.get("id", "")
            if part_id not in parts:
                parts[part_id] = Element("part", {"id": part_id})
            measure = Element("measure", dict(child.attrib))
            measure.extend(list(part))
            parts[part_id].append(measure)
    partwise.extend(parts.values())
    return partwise


class ScoreImporter:
    """
    Turns raw upload bytes into an :class:`ImportedScore`.

    Every failure surfaces as a :class:`ScoreImportError` with a distinct
    ``reason``; no partial document is ever returned.
    """

    def __init__(self, reject_flagged: bool = True) -> None:
        """
        Args:
            reject_flagged: Refuse documents containing script-like markers.
        """
        self.reject_flagged = reject_flagged

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _read_text(self, data: bytes, filename: str) -> str:
        if is_compressed(filename):
            return read_compressed_text(data)
        return _decode(data)

    def _parse(self, text: str) -> Element:
        try:
            return ET.fromstring(text)
        except ET.ParseError as exc:
            raise ScoreImportError(f"Invalid MusicXML: {exc}", "malformed-xml") from exc

    def _global_divisions(self, root: Element) -> int:
        for element in root.iterfind("part/measure/attributes/divisions"):
            if element.text is None or not element.text.strip():
                continue
            try:
                value = float(element.text)
            except ValueError as exc:
                raise ScoreImportError(
                    f"Invalid divisions value '{element.text}'", "bad-divisions"
                ) from exc
            if not value.is_integer() or value <= 0:
                raise ScoreImportError(
                    f"Non-integer or non-positive divisions '{element.text}' are not supported.",
                    "bad-divisions",
                )
            return int(value)
        return DEFAULT_DIVISIONS

    def _part_order(self, root: Element) -> tuple[tuple[str, ...], dict[str, str]]:
        order: list[str] = []
        names: dict[str, str] = {}
        for score_part in root.iterfind("part-list/score-part"):
            part_id = score_part.get("id")
            if part_id is None or part_id in names:
                continue
            order.append(part_id)
            names[part_id] = (score_part.findtext("part-name") or part_id).strip()
        for part in root.iterfind("part"):
            part_id = part.get("id", "")
            if part_id not in names:
                logger.warning("Part '%s' is not declared in the part-list", part_id)
                order.append(part_id)
                names[part_id] = part_id
        return tuple(order), names

    def _tempo(self, root: Element) -> float:
        for sound in root.iter("sound"):
            value = sound.get("tempo")
            if value is None:
                continue
            try:
                tempo = float(value)
            except ValueError:
                logger.warning("Ignoring unparseable tempo '%s'", value)
                continue
            if tempo > 0:
                return tempo
        return DEFAULT_TEMPO

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def load(self, data: bytes, filename: str) -> ImportedScore:
        """
        Decode and parse score bytes.

        Args:
            data:     Raw file contents.
            filename: Declared name; a ``.mxl`` extension selects archive decoding.

        Raises:
            ScoreImportError: If the bytes cannot be read as a MusicXML score.
        """
        digest = compute_sha256(data)
        text = self._read_text(data, filename)

        marker = find_suspicious_content(text)
        if marker is not None and self.reject_flagged:
            raise ScoreImportError(
                "Security warning: File contains potentially malicious content", "flagged-content"
            )

        root = self._parse(text)
        root_name = _local_name(root.tag)
        if root_name not in SCORE_ROOTS:
            raise ScoreImportError(
                f"Invalid MusicXML: root element is <{root_name}>, "
                "expected score-partwise or score-timewise",
                "bad-root",
            )
        if root.find("part-list") is None:
            raise ScoreImportError("Invalid MusicXML: Missing part-list element", "missing-part-list")
        if root_name == "score-timewise":
            root = timewise_to_partwise(root)

        part_order, part_names = self._part_order(root)
        imported = ImportedScore(
            root=root,
            filename=filename,
            divisions=self._global_divisions(root),
            part_order=part_order,
            part_names=part_names,
            tempo=self._tempo(root),
            sha256=digest,
            validation=ValidationReport(
                valid=marker is None,
                errors=[] if marker is None else [f"Suspicious content matched {marker!r}"],
                sha256=digest,
            ),
        )
        logger.debug(
            "Imported %s: %d part(s), divisions=%d", filename, len(part_order), imported.divisions
        )
        return imported
