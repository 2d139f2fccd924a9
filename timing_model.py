# -*- coding: utf-8 -*-
########################
# timing_model.py
########################
# Purpose:
# - Single source of truth for converting song time (seconds) into beat positions.
# - Derives the BPM change list from a speed schedule.
#
# Design notes:
# - No I/O. Keep this module pure and deterministic.
# - Constant-tempo conversion is used to place BPM change anchors.
# - Full-schedule conversion is used for final quantization and is monotonic in time.
# - The BPM change list always starts at beat 0 and never holds two entries at the same beat.
#
########################
# Interfaces:
# Public functions:
# - beat_at_constant_tempo(time_seconds: float, bpm: float) -> float
# - beat_at_time(time_seconds: float, bpm_changes: Sequence[BpmChange]) -> float
#
# Public classes:
# - class BeatTimeline
#   - __init__(*, base_bpm: float, bpm_changes: Optional[Sequence[BpmChange]] = None)
#   - from_speed_schedule(*, base_bpm, adjusted_times, speed_segments) -> BeatTimeline
#   - base_bpm -> float
#   - bpm_changes() -> list[BpmChange]
#   - constant_beat(time_seconds: float) -> float
#   - beat_at(time_seconds: float) -> float
#
# Inputs:
# - Adjusted step timestamps (seconds, offsets already applied).
# - SpeedSegment schedule terminated by the sentinel length.
#
# Outputs:
# - Ordered BpmChange list for #BPMS and beat positions for the chart encoder.
#
########################

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from chart_models import BpmChange, SpeedSegment


logger = logging.getLogger(__name__)

SECONDS_PER_MINUTE = 60.0


def beat_at_constant_tempo(time_seconds: float, bpm: float) -> float:
    return (float(time_seconds) / SECONDS_PER_MINUTE) * float(bpm)


def beat_at_time(time_seconds: float, bpm_changes: Sequence[BpmChange]) -> float:
    """Return the beat position of time_seconds under a piecewise-constant tempo.

    Walks the changes in beat order, converting each change's beat back into
    seconds under the tempo in effect before it. Changes that start after the
    query time are not applied; the remainder is counted at the last active tempo.
    """
    if not bpm_changes:
        raise ValueError("bpm_changes must contain at least the beat 0 entry")

    ordered_changes = sorted(bpm_changes, key=lambda change: float(change.beat))
    target_time = float(time_seconds)

    current_beat = 0.0
    current_time = 0.0
    current_bpm = float(ordered_changes[0].bpm)

    for change in ordered_changes:
        change_time = current_time + ((float(change.beat) - current_beat) / current_bpm) * SECONDS_PER_MINUTE
        if change_time > target_time:
            break
        current_beat = float(change.beat)
        current_time = change_time
        current_bpm = float(change.bpm)

    remaining_seconds = target_time - current_time
    return current_beat + beat_at_constant_tempo(remaining_seconds, current_bpm)


def _normalize_changes(bpm_changes: Sequence[BpmChange], *, base_bpm: float) -> List[BpmChange]:
    # Stable sort keeps insertion order for equal beats; the later entry wins.
    ordered_changes = sorted(bpm_changes, key=lambda change: float(change.beat))
    normalized: List[BpmChange] = []
    for change in ordered_changes:
        entry = BpmChange(bpm=float(change.bpm), beat=float(change.beat))
        if normalized and normalized[-1].beat == entry.beat:
            normalized[-1] = entry
        else:
            normalized.append(entry)

    if not normalized or normalized[0].beat != 0.0:
        normalized.insert(0, BpmChange(bpm=float(base_bpm), beat=0.0))
    return normalized


class BeatTimeline:
    def __init__(self, *, base_bpm: float, bpm_changes: Optional[Sequence[BpmChange]] = None) -> None:
        if float(base_bpm) <= 0.0:
            raise ValueError(f"base_bpm must be > 0, got {base_bpm!r}")
        for change in bpm_changes or []:
            if float(change.bpm) <= 0.0:
                raise ValueError(f"BPM values must be > 0, got {change.bpm!r} at beat {change.beat!r}")
        self._base_bpm = float(base_bpm)
        self._bpm_changes = _normalize_changes(list(bpm_changes or []), base_bpm=self._base_bpm)

    @classmethod
    def from_speed_schedule(
        cls,
        *,
        base_bpm: float,
        adjusted_times: Sequence[float],
        speed_segments: Sequence[SpeedSegment],
    ) -> "BeatTimeline":
        """Derive the BPM change list from a speed schedule.

        Each segment starts at the step where the previous one ended and gets a
        tempo scaled by its multiplier relative to the first segment's multiplier.
        """
        base_value = float(base_bpm)
        changes: List[BpmChange] = [BpmChange(bpm=base_value, beat=0.0)]

        step_count = len(adjusted_times)
        first_multiplier: Optional[float] = None
        step_index = 0

        for segment in speed_segments:
            if segment.is_sentinel or step_index >= step_count:
                break
            if first_multiplier is None:
                first_multiplier = float(segment.speed_multiplier)

            segment_bpm = base_value * (float(segment.speed_multiplier) / first_multiplier)
            # Anchors before the song start fold into the beat 0 entry.
            anchor_beat = max(0.0, beat_at_constant_tempo(adjusted_times[step_index], base_value))
            changes.append(BpmChange(bpm=segment_bpm, beat=anchor_beat))
            logger.debug("BPM change %.3f at beat %.3f (step %d)", segment_bpm, anchor_beat, step_index)

            step_index += min(int(segment.length_in_steps), step_count - step_index)

        return cls(base_bpm=base_value, bpm_changes=changes)

    @property
    def base_bpm(self) -> float:
        return self._base_bpm

    def bpm_changes(self) -> List[BpmChange]:
        return list(self._bpm_changes)

    def constant_beat(self, time_seconds: float) -> float:
        return beat_at_constant_tempo(time_seconds, self._base_bpm)

    def beat_at(self, time_seconds: float) -> float:
        return beat_at_time(time_seconds, self._bpm_changes)


def _run_unit_tests() -> None:
    timeline = BeatTimeline(base_bpm=60.0)
    assert timeline.bpm_changes() == [BpmChange(bpm=60.0, beat=0.0)]
    assert abs(timeline.beat_at(1.5) - 1.5) < 1e-9
    assert abs(timeline.constant_beat(30.0) - 30.0) < 1e-9

    # 60 BPM for 4 beats (4 s), then 120 BPM.
    doubled = BeatTimeline(base_bpm=60.0, bpm_changes=[BpmChange(bpm=60.0, beat=0.0), BpmChange(bpm=120.0, beat=4.0)])
    assert abs(doubled.beat_at(4.0) - 4.0) < 1e-9
    assert abs(doubled.beat_at(5.0) - 6.0) < 1e-9

    derived = BeatTimeline.from_speed_schedule(
        base_bpm=60.0,
        adjusted_times=[1.0, 2.0, 3.0, 4.0],
        speed_segments=[SpeedSegment(2, 1.5), SpeedSegment(2, 3.0), SpeedSegment(-1, 0.0)],
    )
    expected = [(60.0, 0.0), (60.0, 1.0), (120.0, 3.0)]
    actual = [(change.bpm, change.beat) for change in derived.bpm_changes()]
    assert len(actual) == len(expected)
    for (actual_bpm, actual_beat), (expected_bpm, expected_beat) in zip(actual, expected):
        assert abs(actual_bpm - expected_bpm) < 1e-9
        assert abs(actual_beat - expected_beat) < 1e-9

    previous_beat = derived.beat_at(0.0)
    for tenth in range(1, 100):
        current_beat = derived.beat_at(tenth / 10.0)
        assert current_beat >= previous_beat
        previous_beat = current_beat


if __name__ == "__main__":
    _run_unit_tests()
    print("timing_model.py: ok")
