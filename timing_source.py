# -*- coding: utf-8 -*-
########################
# timing_source.py
########################
# Purpose:
# - Load captured step timestamps, the speed schedule and the fixed offset constants.
# - Validate timing input at the boundary so the core only ever sees well-formed data.
#
# Design notes:
# - Exactly one UTF-8 JSON file per song.
# - Validation uses pydantic. Errors surface as TimingSourceError naming the file.
# - The speed schedule is stored as two parallel lists (turn lengths, speeds); the
#   turn length -1 terminates it.
#
# Example file:
# {
#   "step_times": [0.0, 0.5, 1.0],
#   "turn_lengths": [16, 16, -1],
#   "speeds": [1.5, 2.0, 2.0],
#   "step_delay": 0.25,
#   "delay": 0.5,
#   "offset": 0.0
# }
#
########################
# Interfaces:
# Public exceptions:
# - class TimingSourceError(Exception)
#
# Public classes:
# - class TimingSource(pydantic.BaseModel)
#   - step_count -> int
#   - adjusted_time(index: int) -> float
#   - adjusted_times() -> list[float]
#   - speed_segments() -> list[SpeedSegment]
#
# Public functions:
# - load_timing_source(timing_path: pathlib.Path) -> TimingSource
# - default_timing_path() -> pathlib.Path
#
########################

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from chart_models import SPEED_SEGMENT_SENTINEL, SpeedSegment


class TimingSourceError(Exception):
    """Raised when a timing file cannot be read or fails validation."""


class TimingSource(BaseModel):
    step_times: List[float] = Field(default_factory=list, description="Raw step timestamps in seconds.")
    turn_lengths: List[int] = Field(
        default_factory=lambda: [SPEED_SEGMENT_SENTINEL],
        description="Steps per speed segment, terminated by -1.",
    )
    speeds: List[float] = Field(default_factory=lambda: [1.0], description="Speed multiplier per segment.")
    step_delay: float = Field(default=0.0, description="Delay added to every step (seconds).")
    delay: float = Field(default=0.0, description="Base delay added to every step (seconds).")
    offset: float = Field(default=0.0, description="Global offset added to every step (seconds).")

    @field_validator("step_times")
    @classmethod
    def validate_step_times(cls, value: List[float]) -> List[float]:
        previous_time = 0.0
        for index, time_value in enumerate(value):
            if time_value < 0.0:
                raise ValueError(f"step_times[{index}] is negative: {time_value!r}")
            if time_value < previous_time:
                raise ValueError(f"step_times must be non-decreasing, step_times[{index}]={time_value!r}")
            previous_time = time_value
        return value

    @field_validator("speeds")
    @classmethod
    def validate_speeds(cls, value: List[float]) -> List[float]:
        for index, speed_value in enumerate(value):
            if speed_value <= 0.0:
                raise ValueError(f"speeds[{index}] must be > 0, got {speed_value!r}")
        return value

    @model_validator(mode="after")
    def validate_turn_lengths(self) -> "TimingSource":
        for index, length_value in enumerate(self.turn_lengths):
            if length_value == SPEED_SEGMENT_SENTINEL:
                break
            if length_value < 0:
                raise ValueError(f"turn_lengths[{index}] must be >= 0 or the -1 terminator, got {length_value!r}")
        return self

    @model_validator(mode="after")
    def validate_first_adjusted_time(self) -> "TimingSource":
        # step_times is non-decreasing, so the first step has the earliest adjusted time.
        if self.step_times and self.step_times[0] + self.total_offset_seconds() < 0.0:
            raise ValueError(
                f"First step lands at {self.step_times[0] + self.total_offset_seconds():.3f}s; "
                "step_times[0] + step_delay + delay + offset must be >= 0"
            )
        return self

    @property
    def step_count(self) -> int:
        return len(self.step_times)

    def total_offset_seconds(self) -> float:
        return float(self.step_delay) + float(self.delay) + float(self.offset)

    def adjusted_time(self, index: int) -> float:
        return float(self.step_times[index]) + self.total_offset_seconds()

    def adjusted_times(self) -> List[float]:
        return [self.adjusted_time(index) for index in range(self.step_count)]

    def speed_segments(self) -> List[SpeedSegment]:
        return [
            SpeedSegment(length_in_steps=int(length_value), speed_multiplier=float(speed_value))
            for length_value, speed_value in zip(self.turn_lengths, self.speeds)
        ]


def default_timing_path() -> Path:
    return Path(__file__).resolve().parent / "timings" / "sample_timings.json"


def _read_json_file_utf8(timing_path: Path) -> Dict[str, Any]:
    try:
        raw_text = timing_path.read_text(encoding="utf-8")
    except OSError as exception:
        raise TimingSourceError(f"Failed to read timing file: {timing_path}. Error: {exception}") from exception

    try:
        parsed = json.loads(raw_text)
    except json.JSONDecodeError as exception:
        raise TimingSourceError(f"Timing file is not valid JSON: {timing_path}. Error: {exception}") from exception

    if not isinstance(parsed, dict):
        raise TimingSourceError(f"Timing file root must be a JSON object: {timing_path}")

    return parsed


def load_timing_source(timing_path: Path) -> TimingSource:
    json_dict = _read_json_file_utf8(Path(timing_path))
    try:
        return TimingSource.model_validate(json_dict)
    except ValidationError as exception:
        raise TimingSourceError(f"Timing validation failed for {timing_path}:\n{exception}") from exception
