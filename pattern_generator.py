# -*- coding: utf-8 -*-
########################
# pattern_generator.py
########################
# Purpose:
# - Turn a bare step index into a dance-single token (single arrow or jump).
# - Three policies share one entry point: random singles, flowing singles, flowing singles with jumps.
#
# Design notes:
# - One generator per difficulty pass. It owns its random.Random handle and its GeneratorState.
# - next_token must be called once per step index in strictly increasing order.
# - Draw order is part of the determinism contract; do not reorder random calls.
#
########################
# Interfaces:
# Public dataclasses:
# - GeneratorState(last_arrow: Optional[int], second_last_arrow: Optional[int], steps_since_jump: int)
#
# Public classes:
# - class ArrowPatternGenerator
#   - __init__(policy: DifficultyPolicy, *, seed: Optional[int] = None, random_generator: Optional[random.Random] = None)
#   - policy -> DifficultyPolicy
#   - state() -> GeneratorState
#   - next_token(step_index: int) -> str
#
# Public functions:
# - seed_for(base_seed: int, difficulty: str, generator_version: str = GENERATOR_VERSION) -> int
#
########################
# Smoke Tests:
#   - python pattern_generator.py
########################

from __future__ import annotations

import hashlib
import random
from dataclasses import dataclass
from typing import List, Optional

from chart_models import (
    CROSSOVER_ARROWS,
    JUMP_PATTERNS,
    LANE_COUNT,
    SINGLE_ARROWS,
    STREAM_ARROWS,
    DifficultyPolicy,
    is_jump,
    lanes_of,
)


GENERATOR_VERSION = "flow_v1"

STREAM_CHANCE = 0.6
CROSSOVER_CHANCE = 0.2
MAX_JUMP_CHANCE = 0.3
JUMP_CHANCE_PER_STEP = 0.001
JUMP_COOLDOWN_STEPS = 3
JUMP_COOLDOWN_FACTOR = 0.3


@dataclass
class GeneratorState:
    last_arrow: Optional[int] = None
    second_last_arrow: Optional[int] = None
    steps_since_jump: int = 0


def seed_for(base_seed: int, difficulty: str, generator_version: str = GENERATOR_VERSION) -> int:
    payload = f"{int(base_seed)}|{(difficulty or '').strip().lower()}|{generator_version}".encode("utf-8")
    digest = hashlib.sha256(payload).digest()
    return int.from_bytes(digest[:8], byteorder="big", signed=False)


class ArrowPatternGenerator:
    def __init__(
        self,
        policy: DifficultyPolicy,
        *,
        seed: Optional[int] = None,
        random_generator: Optional[random.Random] = None,
    ) -> None:
        if random_generator is not None and seed is not None:
            raise ValueError("Pass either seed or random_generator, not both")
        self._policy = DifficultyPolicy(policy)
        self._random = random_generator if random_generator is not None else random.Random(seed)
        self._state = GeneratorState()
        self._next_step_index = 0

    @property
    def policy(self) -> DifficultyPolicy:
        return self._policy

    def state(self) -> GeneratorState:
        return GeneratorState(
            last_arrow=self._state.last_arrow,
            second_last_arrow=self._state.second_last_arrow,
            steps_since_jump=self._state.steps_since_jump,
        )

    def next_token(self, step_index: int) -> str:
        index = int(step_index)
        if index < self._next_step_index:
            raise ValueError(
                f"Step indices must be strictly increasing: got {index} after {self._next_step_index - 1}"
            )
        self._next_step_index = index + 1

        if self._policy is DifficultyPolicy.RANDOM_SINGLE:
            return SINGLE_ARROWS[self._random.randrange(LANE_COUNT)]

        if self._policy is DifficultyPolicy.FLOWING_SINGLE:
            return self._single_arrow()

        # Jumps become more likely as the song progresses.
        jump_chance = min(MAX_JUMP_CHANCE, index * JUMP_CHANCE_PER_STEP)
        if self._state.steps_since_jump < JUMP_COOLDOWN_STEPS:
            jump_chance *= JUMP_COOLDOWN_FACTOR

        if self._random.random() < jump_chance:
            self._state.steps_since_jump = 0
            return self._jump()

        self._state.steps_since_jump += 1
        return self._single_arrow()

    def _jump(self) -> str:
        last_arrow = self._state.last_arrow
        valid_jumps: List[str] = list(JUMP_PATTERNS)
        if last_arrow is not None:
            valid_jumps = [jump for jump in valid_jumps if jump[last_arrow] != "1"]
        if not valid_jumps:
            valid_jumps = list(JUMP_PATTERNS)

        selected_jump = valid_jumps[self._random.randrange(len(valid_jumps))]

        self._state.last_arrow = None
        self._state.second_last_arrow = None
        return selected_jump

    def _single_arrow(self) -> str:
        last_arrow = self._state.last_arrow
        valid_arrows: List[int] = list(range(LANE_COUNT))

        if last_arrow is not None:
            valid_arrows.remove(last_arrow)
            # Three in a row is already impossible once the last arrow is gone.
            if self._state.second_last_arrow == last_arrow and last_arrow in valid_arrows:
                valid_arrows.remove(last_arrow)

        if last_arrow is not None and len(valid_arrows) > 1:
            stream_arrows = [arrow for arrow in STREAM_ARROWS[last_arrow] if arrow in valid_arrows]
            if stream_arrows and self._random.random() < STREAM_CHANCE:
                valid_arrows = stream_arrows
            elif self._random.random() < CROSSOVER_CHANCE:
                crossover_arrow = CROSSOVER_ARROWS[last_arrow]
                if crossover_arrow in valid_arrows:
                    valid_arrows = [crossover_arrow]

        selected_arrow = valid_arrows[self._random.randrange(len(valid_arrows))]

        self._state.second_last_arrow = last_arrow
        self._state.last_arrow = selected_arrow
        return SINGLE_ARROWS[selected_arrow]


def _generate(policy: DifficultyPolicy, seed: int, count: int) -> List[str]:
    generator = ArrowPatternGenerator(policy, seed=seed)
    return [generator.next_token(step_index) for step_index in range(count)]


def _run_unit_tests() -> None:
    for policy in DifficultyPolicy:
        assert _generate(policy, 1964, 200) == _generate(policy, 1964, 200)

    flowing = _generate(DifficultyPolicy.FLOWING_SINGLE, 7, 500)
    assert all(not is_jump(token) for token in flowing)
    for previous, current in zip(flowing, flowing[1:]):
        assert previous != current

    hard = _generate(DifficultyPolicy.FLOWING_WITH_JUMPS, 11, 1000)
    assert not is_jump(hard[0])
    assert any(is_jump(token) for token in hard)
    for previous, current in zip(hard, hard[1:]):
        if is_jump(current) and not is_jump(previous):
            assert not set(lanes_of(previous)) & set(lanes_of(current))

    try:
        generator = ArrowPatternGenerator(DifficultyPolicy.FLOWING_SINGLE, seed=1)
        generator.next_token(3)
        generator.next_token(3)
    except ValueError:
        pass
    else:
        raise AssertionError("Expected ValueError for repeated step index")


if __name__ == "__main__":
    _run_unit_tests()
    print("pattern_generator.py: ok")
