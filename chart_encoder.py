# -*- coding: utf-8 -*-
########################
# chart_encoder.py
########################
# Purpose:
# - Quantize step events onto the 192-per-measure grid and serialize #NOTES row data.
#
# Design notes:
# - No I/O. Pure quantization and serialization.
# - Beats are recomputed against the final BPM schedule before quantizing.
# - Empty rows survive only on 4th/8th/16th/32nd boundaries; every non-empty row survives.
# - A measure without any step is written as exactly four empty rows.
# - Tick collisions are resolved by an explicit CollisionPolicy and counted.
#
########################
# Interfaces:
# Public dataclasses:
# - EncodedChart(notes_text: str, measure_count: int, collision_count: int, dropped_count: int)
#
# Public classes:
# - class ChartEncoder
#   - __init__(*, collision_policy: CollisionPolicy = CollisionPolicy.LAST)
#   - recompute_beats(events: Sequence[StepEvent], bpm_changes: Sequence[BpmChange]) -> list[StepEvent]
#   - quantize(events: Sequence[StepEvent]) -> tuple[dict[int, str], int]
#   - encode_beats(events: Sequence[StepEvent]) -> EncodedChart
#   - encode_with_stats(events: Sequence[StepEvent], bpm_changes: Sequence[BpmChange]) -> EncodedChart
#   - encode(events: Sequence[StepEvent], bpm_changes: Sequence[BpmChange]) -> str
#
# Public functions:
# - tick_for_beat(beat: float) -> int
# - measure_count_for(max_beat: float) -> int
#
########################
# Smoke Tests:
#   - python chart_encoder.py
########################

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

from chart_models import EMPTY_ROW, LANE_COUNT, BpmChange, CollisionPolicy, StepEvent, lanes_of
from timing_model import beat_at_time


logger = logging.getLogger(__name__)

BEATS_PER_MEASURE = 4
ROWS_PER_MEASURE = 192
PADDING_BEATS = 4.0
# 4th, 8th, 16th and 32nd note spacing in 192nd rows.
KEPT_EMPTY_ROW_DIVISORS = (48, 24, 12, 6)
SKELETON_ROW_COUNT = 4


@dataclass(frozen=True)
class EncodedChart:
    notes_text: str
    measure_count: int
    collision_count: int
    dropped_count: int = 0


def tick_for_beat(beat: float) -> int:
    # round() is round-half-to-even, matching the grid's tie rule.
    return int(round(float(beat) * ROWS_PER_MEASURE / BEATS_PER_MEASURE))


def measure_count_for(max_beat: float) -> int:
    padded_beats = float(max_beat) + PADDING_BEATS
    total_beats = int(math.ceil(padded_beats / BEATS_PER_MEASURE)) * BEATS_PER_MEASURE
    return total_beats // BEATS_PER_MEASURE


def _is_kept_empty_row(row_index: int) -> bool:
    return any(row_index % divisor == 0 for divisor in KEPT_EMPTY_ROW_DIVISORS)


def _merge_tokens(existing_token: str, new_token: str) -> str:
    merged_lanes = set(lanes_of(existing_token)) | set(lanes_of(new_token))
    if len(merged_lanes) > 2:
        return existing_token
    return "".join("1" if lane in merged_lanes else "0" for lane in range(LANE_COUNT))


class ChartEncoder:
    def __init__(self, *, collision_policy: CollisionPolicy = CollisionPolicy.LAST) -> None:
        self._collision_policy = CollisionPolicy(collision_policy)

    @property
    def collision_policy(self) -> CollisionPolicy:
        return self._collision_policy

    def recompute_beats(self, events: Sequence[StepEvent], bpm_changes: Sequence[BpmChange]) -> List[StepEvent]:
        return [event.with_beat(beat_at_time(event.time_seconds, bpm_changes)) for event in events]

    def quantize(self, events: Sequence[StepEvent]) -> Tuple[Dict[int, str], int]:
        """Map each event to its absolute tick in list order.

        Returns the tick map and the number of events that landed on an
        already occupied tick.
        """
        tokens_by_tick: Dict[int, str] = {}
        collision_count = 0
        for event in events:
            tick = tick_for_beat(event.beat)
            existing_token = tokens_by_tick.get(tick)
            if existing_token is None:
                tokens_by_tick[tick] = event.token
                continue

            collision_count += 1
            if self._collision_policy is CollisionPolicy.LAST:
                tokens_by_tick[tick] = event.token
            elif self._collision_policy is CollisionPolicy.MERGE:
                tokens_by_tick[tick] = _merge_tokens(existing_token, event.token)

        if collision_count:
            logger.warning(
                "%d step(s) collided on the %d-row grid (policy=%s)",
                collision_count,
                ROWS_PER_MEASURE,
                self._collision_policy.value,
            )
        return tokens_by_tick, collision_count

    def encode_beats(self, events: Sequence[StepEvent]) -> EncodedChart:
        """Serialize events whose beats are already final."""
        if not events:
            return EncodedChart(notes_text="", measure_count=0, collision_count=0)

        measure_count = measure_count_for(max(float(event.beat) for event in events))
        tokens_by_tick, collision_count = self.quantize(events)
        # Rows start at tick 0; earlier steps have no row to land on.
        dropped_count = sum(1 for tick in tokens_by_tick if tick < 0)
        if dropped_count:
            logger.warning("%d step row(s) fall before the first measure and were dropped", dropped_count)

        output_lines: List[str] = []
        for measure_index in range(measure_count):
            measure_lines: List[str] = []
            first_tick = measure_index * ROWS_PER_MEASURE
            for row_index in range(ROWS_PER_MEASURE):
                token = tokens_by_tick.get(first_tick + row_index, EMPTY_ROW)
                if token != EMPTY_ROW or _is_kept_empty_row(row_index):
                    measure_lines.append(token)

            if all(line == EMPTY_ROW for line in measure_lines):
                measure_lines = [EMPTY_ROW] * SKELETON_ROW_COUNT

            output_lines.extend(measure_lines)
            if measure_index != measure_count - 1:
                output_lines.append(",")

        return EncodedChart(
            notes_text="\n".join(output_lines) + "\n",
            measure_count=measure_count,
            collision_count=collision_count,
            dropped_count=dropped_count,
        )

    def encode_with_stats(self, events: Sequence[StepEvent], bpm_changes: Sequence[BpmChange]) -> EncodedChart:
        if not events:
            return EncodedChart(notes_text="", measure_count=0, collision_count=0)
        return self.encode_beats(self.recompute_beats(events, bpm_changes))

    def encode(self, events: Sequence[StepEvent], bpm_changes: Sequence[BpmChange]) -> str:
        return self.encode_with_stats(events, bpm_changes).notes_text


def _measures_of(notes_text: str) -> List[List[str]]:
    measures: List[List[str]] = [[]]
    for line in notes_text.splitlines():
        if line == ",":
            measures.append([])
        else:
            measures[-1].append(line)
    return measures


def _run_unit_tests() -> None:
    schedule = [BpmChange(bpm=60.0, beat=0.0)]
    events = [
        StepEvent(time_seconds=0.0, beat=0.0, token="1000"),
        StepEvent(time_seconds=0.5, beat=0.0, token="0100"),
        StepEvent(time_seconds=1.0, beat=0.0, token="0010"),
    ]
    encoder = ChartEncoder()
    measures = _measures_of(encoder.encode(events, schedule))
    assert len(measures) == 2
    assert measures[1] == [EMPTY_ROW] * 4
    assert len(measures[0]) == 32
    assert measures[0][0] == "1000"
    assert measures[0][4] == "0100"
    assert measures[0][8] == "0010"

    assert encoder.encode([], schedule) == ""

    colliding = [StepEvent(0.0, 0.0, "1000"), StepEvent(0.001, 0.0, "0001")]
    assert ChartEncoder(collision_policy=CollisionPolicy.LAST).encode_beats(colliding).notes_text.startswith("0001")
    assert ChartEncoder(collision_policy=CollisionPolicy.FIRST).encode_beats(colliding).notes_text.startswith("1000")
    assert ChartEncoder(collision_policy=CollisionPolicy.MERGE).encode_beats(colliding).notes_text.startswith("1001")


if __name__ == "__main__":
    _run_unit_tests()
    print("chart_encoder.py: ok")
