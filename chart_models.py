# -*- coding: utf-8 -*-
########################
# chart_models.py
########################
# Purpose:
# - Plain data models shared by the pattern generator, beat timeline and chart encoder.
# - Lane tokens (single arrows and jumps) for dance-single charts.
#
# Design notes:
# - No I/O. Pure data definitions and lookup tables.
# - Tokens are 4-character strings, one character per lane: '1' pressed, '0' not pressed.
# - StepEvent.token never changes after creation; only the beat is recomputed.
#
########################
# Interfaces:
# Public constants:
# - LANE_LEFT, LANE_DOWN, LANE_UP, LANE_RIGHT: int
# - LANE_COUNT: int
# - SINGLE_ARROWS: tuple[str, ...]  # indexed by lane
# - JUMP_PATTERNS: tuple[str, ...]  # six two-lane jumps
# - EMPTY_ROW: str
# - STREAM_ARROWS: dict[int, tuple[int, ...]]
# - CROSSOVER_ARROWS: dict[int, int]
#
# Public enums:
# - class DifficultyPolicy(enum.Enum): RANDOM_SINGLE | FLOWING_SINGLE | FLOWING_WITH_JUMPS
# - class CollisionPolicy(enum.Enum): LAST | FIRST | MERGE
#
# Public dataclasses:
# - StepEvent(time_seconds: float, beat: float, token: str)
# - BpmChange(bpm: float, beat: float)
# - SpeedSegment(length_in_steps: int, speed_multiplier: float)
# - DifficultyTrack(name: str, policy: DifficultyPolicy)
#
# Public functions:
# - lanes_of(token: str) -> list[int]
# - is_jump(token: str) -> bool
#
########################

from __future__ import annotations

from dataclasses import dataclass, replace
import enum
from typing import Dict, List, Tuple


LANE_LEFT = 0
LANE_DOWN = 1
LANE_UP = 2
LANE_RIGHT = 3
LANE_COUNT = 4

SINGLE_ARROWS: Tuple[str, ...] = ("1000", "0100", "0010", "0001")

JUMP_PATTERNS: Tuple[str, ...] = (
    "1100",  # L+D
    "1010",  # L+U
    "1001",  # L+R
    "0110",  # D+U
    "0101",  # D+R
    "0011",  # U+R
)

EMPTY_ROW = "0000"

SPEED_SEGMENT_SENTINEL = -1

# Lanes that continue a stream from the previous lane.
STREAM_ARROWS: Dict[int, Tuple[int, ...]] = {
    LANE_LEFT: (LANE_DOWN, LANE_UP),
    LANE_DOWN: (LANE_LEFT, LANE_UP, LANE_RIGHT),
    LANE_UP: (LANE_LEFT, LANE_DOWN, LANE_RIGHT),
    LANE_RIGHT: (LANE_DOWN, LANE_UP),
}

# Opposite lane for each lane.
CROSSOVER_ARROWS: Dict[int, int] = {
    LANE_LEFT: LANE_RIGHT,
    LANE_DOWN: LANE_UP,
    LANE_UP: LANE_DOWN,
    LANE_RIGHT: LANE_LEFT,
}


class DifficultyPolicy(enum.Enum):
    RANDOM_SINGLE = "random_single"
    FLOWING_SINGLE = "flowing_single"
    FLOWING_WITH_JUMPS = "flowing_with_jumps"


class CollisionPolicy(enum.Enum):
    LAST = "last"
    FIRST = "first"
    MERGE = "merge"


@dataclass(frozen=True)
class StepEvent:
    time_seconds: float
    beat: float
    token: str

    def with_beat(self, beat: float) -> "StepEvent":
        return replace(self, beat=float(beat))


@dataclass(frozen=True)
class BpmChange:
    bpm: float
    beat: float


@dataclass(frozen=True)
class SpeedSegment:
    length_in_steps: int
    speed_multiplier: float

    @property
    def is_sentinel(self) -> bool:
        return int(self.length_in_steps) == SPEED_SEGMENT_SENTINEL


@dataclass(frozen=True)
class DifficultyTrack:
    name: str
    policy: DifficultyPolicy


DEFAULT_TRACKS: Tuple[DifficultyTrack, ...] = (
    DifficultyTrack(name="Easy", policy=DifficultyPolicy.RANDOM_SINGLE),
    DifficultyTrack(name="Medium", policy=DifficultyPolicy.FLOWING_SINGLE),
    DifficultyTrack(name="Hard", policy=DifficultyPolicy.FLOWING_WITH_JUMPS),
)


def lanes_of(token: str) -> List[int]:
    return [lane for lane, symbol in enumerate(str(token)) if symbol == "1"]


def is_jump(token: str) -> bool:
    return len(lanes_of(token)) == 2
