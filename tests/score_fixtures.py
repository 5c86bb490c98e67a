"""Small MusicXML builders shared by the test modules."""

from __future__ import annotations

import io
import zipfile

XML_HEADER = '<?xml version="1.0" encoding="UTF-8"?>\n'

CONTAINER_XML = (
    '<?xml version="1.0" encoding="UTF-8"?>'
    "<container><rootfiles>"
    '<rootfile full-path="{path}" media-type="application/vnd.recordare.musicxml+xml"/>'
    "</rootfiles></container>"
)


def note(
    step: str,
    octave: int = 4,
    duration: int | None = 1,
    *,
    voice: str = "1",
    chord: bool = False,
    alter: int | None = None,
    tie: str | None = None,
    beam: str | None = None,
    note_type: str | None = "quarter",
    grace: bool = False,
) -> str:
    parts = ["<note>"]
    if grace:
        parts.append("<grace/>")
    if chord:
        parts.append("<chord/>")
    alter_xml = f"<alter>{alter}</alter>" if alter is not None else ""
    parts.append(f"<pitch><step>{step}</step>{alter_xml}<octave>{octave}</octave></pitch>")
    if duration is not None:
        parts.append(f"<duration>{duration}</duration>")
    if tie is not None:
        parts.append(f'<tie type="{tie}"/>')
    parts.append(f"<voice>{voice}</voice>")
    if note_type is not None:
        parts.append(f"<type>{note_type}</type>")
    if beam is not None:
        parts.append(f'<beam number="1">{beam}</beam>')
    parts.append("</note>")
    return "".join(parts)


def rest(duration: int = 1, voice: str = "1") -> str:
    return f"<note><rest/><duration>{duration}</duration><voice>{voice}</voice></note>"


def backup(duration: int) -> str:
    return f"<backup><duration>{duration}</duration></backup>"


def forward(duration: int) -> str:
    return f"<forward><duration>{duration}</duration></forward>"


def attributes(divisions: int | None = None, time: tuple[int, int] | None = None) -> str:
    inner = ""
    if divisions is not None:
        inner += f"<divisions>{divisions}</divisions>"
    if time is not None:
        inner += f"<time><beats>{time[0]}</beats><beat-type>{time[1]}</beat-type></time>"
    return f"<attributes>{inner}</attributes>"


def score_xml(
    parts: dict[str, list[str]],
    divisions: int = 1,
    time: tuple[int, int] | None = (4, 4),
) -> str:
    """
    Build a score-partwise document.

    Args:
        parts:     Part id -> list of measure bodies (inner XML of each measure).
        divisions: Divisions written into every part's first measure.
        time:      Time signature written into every part's first measure.
    """
    part_list = "".join(
        f'<score-part id="{part_id}"><part-name>{part_id} name</part-name></score-part>'
        for part_id in parts
    )
    body = ""
    for part_id, measures in parts.items():
        body += f'<part id="{part_id}">'
        for index, content in enumerate(measures):
            head = attributes(divisions, time) if index == 0 else ""
            body += f'<measure number="{index + 1}">{head}{content}</measure>'
        body += "</part>"
    return (
        f'{XML_HEADER}<score-partwise version="4.0">'
        f"<part-list>{part_list}</part-list>{body}</score-partwise>"
    )


def score_bytes(*args, **kwargs) -> bytes:
    return score_xml(*args, **kwargs).encode("utf-8")


def mxl_bytes(
    document: str | None,
    *,
    rootfile: str | None = "score.musicxml",
    include_container: bool = True,
    entry_name: str = "score.musicxml",
    container: str | None = None,
) -> bytes:
    """Pack a MusicXML document into an MXL archive, optionally broken."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("mimetype", "application/vnd.recordare.musicxml")
        if include_container:
            if container is not None:
                archive.writestr("META-INF/container.xml", container)
            elif rootfile is None:
                archive.writestr("META-INF/container.xml", "<container><rootfiles/></container>")
            else:
                archive.writestr("META-INF/container.xml", CONTAINER_XML.format(path=rootfile))
        if document is not None:
            archive.writestr(entry_name, document)
    return buffer.getvalue()
