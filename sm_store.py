# -*- coding: utf-8 -*-
########################
# sm_store.py
########################
# Purpose:
# - Assemble and write StepMania .sm files from encoded chart data.
# - Parse .sm text back into header tags, BPM segments and #NOTES blocks for structural checks.
#
# Design notes:
# - Header lines are written in a fixed order; #OFFSET and #BPMS values use 3 decimal digits.
# - Parsing must be tolerant of minor format variance but never silently accept invalid charts.
# - Structural checks only: row width, note symbols, BPM ordering, block fields. No playability rules.
#
########################
# Interfaces:
# Public exceptions:
# - class SimfileError(Exception)
# - class SimfileParseError(SimfileError)
# - class SimfileValidationError(SimfileError)
#
# Public dataclasses:
# - SimfileHeader(title, subtitle, artist, ..., offset_seconds: float, sample_start: float, sample_length: float, selectable: bool)
# - StepChartBlock(step_type: str, description: str, difficulty: str, meter: int, radar_values: str, notes_text: str)
# - ParsedSimfile(tags: dict[str, str], bpm_segments: list[BpmChange], charts: list[StepChartBlock])
#
# Public functions:
# - normalize_difficulty(difficulty: str) -> str
# - difficulty_label(difficulty: str) -> str
# - format_bpm_changes(bpm_changes: Sequence[BpmChange]) -> str
# - build_simfile_text(header: SimfileHeader, bpm_changes: Sequence[BpmChange], charts: Sequence[StepChartBlock]) -> str
# - save_simfile(output_path: pathlib.Path, simfile_text: str) -> None
# - parse_simfile(simfile_text: str) -> ParsedSimfile
# - load_simfile(simfile_path: pathlib.Path) -> ParsedSimfile
# - check_structure(parsed: ParsedSimfile) -> None
#
# Inputs:
# - Header metadata, BPM changes and encoded #NOTES row data for saving.
# - .sm text or path for parsing.
#
# Outputs:
# - .sm text and files on disk.
# - ParsedSimfile for structural checks.
#
########################
# Smoke Tests:
#   - python sm_store.py
########################

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Sequence

from chart_models import LANE_COUNT, BpmChange


class SimfileError(Exception):
    """Base class for .sm read, parse and check failures."""


class SimfileParseError(SimfileError):
    """Raised when .sm text cannot be split into tags, #BPMS and #NOTES blocks."""


class SimfileValidationError(SimfileError):
    """Raised when parsed .sm content breaks a structural rule."""


@dataclass(frozen=True)
class SimfileHeader:
    title: str
    offset_seconds: float
    subtitle: str = ""
    artist: str = ""
    title_translit: str = ""
    subtitle_translit: str = ""
    artist_translit: str = ""
    genre: str = ""
    credit: str = ""
    banner: str = ""
    background: str = ""
    lyrics_path: str = ""
    cd_title: str = ""
    music: str = ""
    sample_start: float = 0.0
    sample_length: float = 0.0
    selectable: bool = True


@dataclass(frozen=True)
class StepChartBlock:
    step_type: str
    description: str
    difficulty: str
    meter: int
    radar_values: str
    notes_text: str


@dataclass(frozen=True)
class ParsedSimfile:
    tags: Dict[str, str]
    bpm_segments: List[BpmChange]
    charts: List[StepChartBlock]


STEP_TYPE_DANCE_SINGLE = "dance-single"
EMPTY_RADAR_VALUES = "0,0,0,0,0"
NOTES_FIELD_INDENT = "     "

_DIFFICULTY_LABELS = {
    "beginner": "Beginner",
    "easy": "Easy",
    "medium": "Medium",
    "hard": "Hard",
    "challenge": "Challenge",
    "edit": "Edit",
}


def normalize_difficulty(difficulty: str) -> str:
    difficulty_key = str(difficulty or "").strip().lower()
    if difficulty_key not in _DIFFICULTY_LABELS:
        raise ValueError(f"Unknown difficulty {difficulty!r}, expected one of {list(_DIFFICULTY_LABELS)}")
    return difficulty_key


def difficulty_label(difficulty: str) -> str:
    return _DIFFICULTY_LABELS[normalize_difficulty(difficulty)]


def format_bpm_changes(bpm_changes: Sequence[BpmChange]) -> str:
    return ",".join(f"{float(change.beat):.3f}={float(change.bpm):.3f}" for change in bpm_changes)


def _header_lines(header: SimfileHeader, bpm_changes: Sequence[BpmChange]) -> List[str]:
    return [
        f"#TITLE:{header.title};",
        f"#SUBTITLE:{header.subtitle};",
        f"#ARTIST:{header.artist};",
        f"#TITLETRANSLIT:{header.title_translit};",
        f"#SUBTITLETRANSLIT:{header.subtitle_translit};",
        f"#ARTISTTRANSLIT:{header.artist_translit};",
        f"#GENRE:{header.genre};",
        f"#CREDIT:{header.credit};",
        f"#BANNER:{header.banner};",
        f"#BACKGROUND:{header.background};",
        f"#LYRICSPATH:{header.lyrics_path};",
        f"#CDTITLE:{header.cd_title};",
        f"#MUSIC:{header.music};",
        f"#OFFSET:{float(header.offset_seconds):.3f};",
        f"#SAMPLESTART:{float(header.sample_start):.3f};",
        f"#SAMPLELENGTH:{float(header.sample_length):.3f};",
        f"#SELECTABLE:{'YES' if header.selectable else 'NO'};",
        f"#BPMS:{format_bpm_changes(bpm_changes)};",
        "#STOPS:;",
        "#FREEZES:;",
        "",
    ]


def _notes_block_lines(chart: StepChartBlock) -> List[str]:
    lines = [
        "#NOTES:",
        f"{NOTES_FIELD_INDENT}{chart.step_type}:",
        f"{NOTES_FIELD_INDENT}{chart.description}:",
        f"{NOTES_FIELD_INDENT}{difficulty_label(chart.difficulty)}:",
        f"{NOTES_FIELD_INDENT}{int(chart.meter)}:",
        f"{NOTES_FIELD_INDENT}{chart.radar_values}:",
    ]
    notes_text = chart.notes_text.rstrip("\n")
    if notes_text:
        lines.append(notes_text)
    lines.append(";")
    return lines


def build_simfile_text(
    header: SimfileHeader,
    bpm_changes: Sequence[BpmChange],
    charts: Sequence[StepChartBlock],
) -> str:
    if not bpm_changes:
        raise SimfileValidationError("At least one BPM change (beat 0) is required")

    lines: List[str] = _header_lines(header, bpm_changes)
    for chart in charts:
        lines.extend(_notes_block_lines(chart))
    return "\n".join(lines) + "\n"


def save_simfile(output_path: Path, simfile_text: str) -> None:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(simfile_text, encoding="utf-8")


_TAG_PATTERN = re.compile(r"(?im)^\s*#([A-Z0-9_]+)\s*:\s*(.*?)\s*;\s*$")
_NOTES_PATTERN = re.compile(r"(?is)#NOTES\s*:\s*(.*?)\s*;")
_NOTES_FIELD_COUNT = 6


def _read_text_utf8(file_path: Path) -> str:
    try:
        return file_path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise SimfileParseError(f"{file_path} is not UTF-8 text") from exc
    except OSError as exc:
        raise SimfileParseError(f"Cannot read {file_path}: {exc}") from exc


def _parse_sm_tags(simfile_text: str) -> Dict[str, str]:
    """Collect single-line #TAG:value; fields. Multi-line tags such as #NOTES are skipped."""
    return {
        match.group(1).strip().upper(): match.group(2).strip()
        for match in _TAG_PATTERN.finditer(simfile_text)
    }


def _parse_bpm_entry(entry_text: str) -> BpmChange:
    beat_text, separator, bpm_text = entry_text.partition("=")
    if not separator:
        raise SimfileParseError(f"#BPMS entry has no '=': {entry_text!r}")
    try:
        return BpmChange(bpm=float(bpm_text), beat=float(beat_text))
    except ValueError as exc:
        raise SimfileParseError(f"#BPMS entry is not numeric: {entry_text!r}") from exc


def _parse_bpm_segments(tags: Dict[str, str]) -> List[BpmChange]:
    bpms_value = tags.get("BPMS", "").strip()
    if not bpms_value:
        raise SimfileParseError("Missing #BPMS value")
    return [_parse_bpm_entry(entry.strip()) for entry in bpms_value.split(",") if entry.strip()]


def _extract_notes_blocks(simfile_text: str) -> List[str]:
    return [match.group(1) or "" for match in _NOTES_PATTERN.finditer(simfile_text)]


def _parse_notes_block(block_body: str) -> StepChartBlock:
    fields = [field.strip() for field in block_body.split(":", _NOTES_FIELD_COUNT - 1)]
    if len(fields) != _NOTES_FIELD_COUNT:
        raise SimfileParseError(f"#NOTES block has {len(fields)} fields, expected {_NOTES_FIELD_COUNT}")

    step_type, description, difficulty, meter_text, radar_values, notes_text = fields
    if not step_type or not difficulty:
        raise SimfileParseError("#NOTES block needs a step type and a difficulty")

    try:
        meter = int(meter_text) if meter_text else 1
    except ValueError as exc:
        raise SimfileParseError(f"#NOTES meter is not an integer: {meter_text!r}") from exc

    try:
        difficulty_key = normalize_difficulty(difficulty)
    except ValueError as exc:
        raise SimfileParseError(str(exc)) from exc

    return StepChartBlock(
        step_type=step_type,
        description=description,
        difficulty=difficulty_key,
        meter=meter,
        radar_values=radar_values,
        notes_text=notes_text,
    )


def parse_simfile(simfile_text: str) -> ParsedSimfile:
    tags = _parse_sm_tags(simfile_text)
    bpm_segments = _parse_bpm_segments(tags)

    blocks = _extract_notes_blocks(simfile_text)
    if not blocks:
        raise SimfileParseError("Simfile has no #NOTES blocks")

    return ParsedSimfile(tags=tags, bpm_segments=bpm_segments, charts=[_parse_notes_block(block) for block in blocks])


def load_simfile(simfile_path: Path) -> ParsedSimfile:
    return parse_simfile(_read_text_utf8(Path(simfile_path)))


def split_measures(notes_text: str) -> List[List[str]]:
    """Split #NOTES row data into measures of rows.

    Whitespace and // comments are allowed. Empty row data yields no measures.
    """
    rows = [line.split("//", 1)[0].strip() for line in notes_text.splitlines()]
    rows = [row for row in rows if row]
    if not rows:
        return []

    measures: List[List[str]] = [[]]
    for row in rows:
        if row == ",":
            measures.append([])
        else:
            measures[-1].append(row)
    return measures


def _check_bpm_segments(bpm_segments: Sequence[BpmChange]) -> None:
    if not bpm_segments:
        raise SimfileValidationError("#BPMS must contain at least one segment")
    if float(bpm_segments[0].beat) != 0.0:
        raise SimfileValidationError(f"#BPMS must start at beat 0, got {bpm_segments[0].beat!r}")

    previous_beat = 0.0
    for segment in bpm_segments:
        if float(segment.bpm) <= 0.0:
            raise SimfileValidationError(f"Invalid BPM value (must be > 0): {segment.bpm!r}")
        if float(segment.beat) < previous_beat:
            raise SimfileValidationError(f"#BPMS beats must be non-decreasing, got {segment.beat!r}")
        previous_beat = float(segment.beat)


def _check_chart_block(chart: StepChartBlock) -> None:
    if chart.step_type.strip().lower() != STEP_TYPE_DANCE_SINGLE:
        raise SimfileValidationError(f"Unsupported step type: {chart.step_type!r}")

    for measure_index, measure_rows in enumerate(split_measures(chart.notes_text)):
        if not measure_rows:
            raise SimfileValidationError(f"Empty measure {measure_index} in {chart.difficulty} chart")
        for row_text in measure_rows:
            if len(row_text) != LANE_COUNT:
                raise SimfileValidationError(f"Row {row_text!r} is {len(row_text)} wide, dance-single needs {LANE_COUNT}")
            unknown_symbols = set(row_text) - {"0", "1"}
            if unknown_symbols:
                raise SimfileValidationError(f"Row {row_text!r} has unsupported symbols {sorted(unknown_symbols)}")


def check_structure(parsed: ParsedSimfile) -> None:
    _check_bpm_segments(parsed.bpm_segments)
    for chart in parsed.charts:
        _check_chart_block(chart)


def _run_unit_tests() -> None:
    header = SimfileHeader(title="Test", offset_seconds=1.25, music="test.mp3")
    bpm_changes = [BpmChange(bpm=60.0, beat=0.0), BpmChange(bpm=90.0, beat=8.5)]
    chart = StepChartBlock(
        step_type=STEP_TYPE_DANCE_SINGLE,
        description="",
        difficulty="easy",
        meter=12,
        radar_values=EMPTY_RADAR_VALUES,
        notes_text="1000\n0000\n0000\n0000\n,\n0000\n0000\n0000\n0000\n",
    )
    simfile_text = build_simfile_text(header, bpm_changes, [chart])
    assert "#OFFSET:1.250;" in simfile_text
    assert "#BPMS:0.000=60.000,8.500=90.000;" in simfile_text

    parsed = parse_simfile(simfile_text)
    check_structure(parsed)
    assert parsed.tags["TITLE"] == "Test"
    assert parsed.bpm_segments == bpm_changes
    assert len(parsed.charts) == 1
    assert parsed.charts[0].difficulty == "easy"
    assert len(split_measures(parsed.charts[0].notes_text)) == 2

    broken = parse_simfile(simfile_text.replace("1000", "10000"))
    try:
        check_structure(broken)
    except SimfileValidationError:
        pass
    else:
        raise AssertionError("Expected SimfileValidationError for a 5-wide row")


if __name__ == "__main__":
    _run_unit_tests()
    print("sm_store.py: ok")
