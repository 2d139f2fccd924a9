from __future__ import annotations

import random
from typing import List

import pytest

import timing_model
from chart_models import BpmChange, SpeedSegment
from timing_model import BeatTimeline, beat_at_constant_tempo, beat_at_time


def _flatten(changes: List[BpmChange]) -> List[float]:
    values: List[float] = []
    for change in changes:
        values.extend([change.bpm, change.beat])
    return values


def test_module_self_check() -> None:
    timing_model._run_unit_tests()


def test_constant_tempo_conversion() -> None:
    assert beat_at_constant_tempo(0.0, 60.0) == 0.0
    assert beat_at_constant_tempo(30.0, 120.0) == pytest.approx(60.0)
    assert beat_at_constant_tempo(0.5, 60.0) == pytest.approx(0.5)


def test_full_schedule_accumulates_through_segments() -> None:
    changes = [BpmChange(bpm=60.0, beat=0.0), BpmChange(bpm=120.0, beat=2.0), BpmChange(bpm=30.0, beat=6.0)]
    # 2 beats take 2 s at 60 BPM, 4 beats take 2 s at 120 BPM.
    assert beat_at_time(1.0, changes) == pytest.approx(1.0)
    assert beat_at_time(2.0, changes) == pytest.approx(2.0)
    assert beat_at_time(3.0, changes) == pytest.approx(4.0)
    assert beat_at_time(4.0, changes) == pytest.approx(6.0)
    assert beat_at_time(6.0, changes) == pytest.approx(7.0)


def test_full_schedule_accepts_unsorted_input() -> None:
    changes = [BpmChange(bpm=120.0, beat=2.0), BpmChange(bpm=60.0, beat=0.0)]
    assert beat_at_time(3.0, changes) == pytest.approx(4.0)


def test_empty_schedule_is_rejected() -> None:
    with pytest.raises(ValueError):
        beat_at_time(1.0, [])


@pytest.mark.parametrize("seed", range(10))
def test_full_schedule_is_monotonic(seed: int) -> None:
    random_generator = random.Random(seed)
    changes = [BpmChange(bpm=random_generator.uniform(30.0, 300.0), beat=0.0)]
    beat_value = 0.0
    for _ in range(8):
        beat_value += random_generator.uniform(0.0, 16.0)
        changes.append(BpmChange(bpm=random_generator.uniform(30.0, 300.0), beat=beat_value))
    timeline = BeatTimeline(base_bpm=changes[0].bpm, bpm_changes=changes)

    times = sorted(random_generator.uniform(0.0, 120.0) for _ in range(300))
    beats = [timeline.beat_at(time_value) for time_value in times]
    for earlier, later in zip(beats, beats[1:]):
        assert earlier <= later


def test_timeline_inserts_base_entry_and_collapses_duplicate_beats() -> None:
    timeline = BeatTimeline(
        base_bpm=60.0,
        bpm_changes=[BpmChange(bpm=90.0, beat=4.0), BpmChange(bpm=100.0, beat=4.0)],
    )
    assert _flatten(timeline.bpm_changes()) == pytest.approx(_flatten([BpmChange(bpm=60.0, beat=0.0), BpmChange(bpm=100.0, beat=4.0)]))


def test_timeline_rejects_non_positive_tempo() -> None:
    with pytest.raises(ValueError):
        BeatTimeline(base_bpm=0.0)
    with pytest.raises(ValueError):
        BeatTimeline(base_bpm=60.0, bpm_changes=[BpmChange(bpm=-1.0, beat=2.0)])


def test_speed_schedule_scales_relative_to_first_multiplier() -> None:
    timeline = BeatTimeline.from_speed_schedule(
        base_bpm=60.0,
        adjusted_times=[2.0, 3.0, 4.0, 5.0, 6.0, 7.0],
        speed_segments=[SpeedSegment(2, 1.5), SpeedSegment(2, 3.0), SpeedSegment(2, 0.75), SpeedSegment(-1, 0.0)],
    )
    assert _flatten(timeline.bpm_changes()) == pytest.approx(_flatten([
        BpmChange(bpm=60.0, beat=0.0),
        BpmChange(bpm=60.0, beat=2.0),
        BpmChange(bpm=120.0, beat=4.0),
        BpmChange(bpm=30.0, beat=6.0),
    ]))


def test_speed_schedule_stops_at_sentinel() -> None:
    timeline = BeatTimeline.from_speed_schedule(
        base_bpm=60.0,
        adjusted_times=[1.0, 2.0, 3.0, 4.0],
        speed_segments=[SpeedSegment(1, 1.0), SpeedSegment(-1, 5.0), SpeedSegment(1, 2.0)],
    )
    assert _flatten(timeline.bpm_changes()) == pytest.approx(_flatten([BpmChange(bpm=60.0, beat=0.0), BpmChange(bpm=60.0, beat=1.0)]))


def test_speed_schedule_stops_when_steps_are_exhausted() -> None:
    timeline = BeatTimeline.from_speed_schedule(
        base_bpm=60.0,
        adjusted_times=[1.0, 2.0, 3.0],
        speed_segments=[SpeedSegment(10, 1.0), SpeedSegment(10, 2.0), SpeedSegment(-1, 0.0)],
    )
    # The first segment is clamped to the three available steps.
    assert _flatten(timeline.bpm_changes()) == pytest.approx(_flatten([BpmChange(bpm=60.0, beat=0.0), BpmChange(bpm=60.0, beat=1.0)]))


def test_speed_schedule_anchor_at_time_zero_replaces_base_entry() -> None:
    timeline = BeatTimeline.from_speed_schedule(
        base_bpm=60.0,
        adjusted_times=[0.0, 1.0],
        speed_segments=[SpeedSegment(1, 2.0), SpeedSegment(1, 4.0), SpeedSegment(-1, 0.0)],
    )
    changes = timeline.bpm_changes()
    assert changes[0].beat == 0.0
    assert len({change.beat for change in changes}) == len(changes)
    assert _flatten(changes) == pytest.approx(_flatten([BpmChange(bpm=60.0, beat=0.0), BpmChange(bpm=120.0, beat=1.0)]))


def test_empty_step_list_keeps_only_base_tempo() -> None:
    timeline = BeatTimeline.from_speed_schedule(
        base_bpm=75.0,
        adjusted_times=[],
        speed_segments=[SpeedSegment(4, 1.5), SpeedSegment(-1, 0.0)],
    )
    assert _flatten(timeline.bpm_changes()) == pytest.approx(_flatten([BpmChange(bpm=75.0, beat=0.0)]))


def test_speed_schedule_anchor_before_song_start_folds_into_beat_zero() -> None:
    timeline = BeatTimeline.from_speed_schedule(
        base_bpm=60.0,
        adjusted_times=[-0.25, 0.25, 0.75, 1.25],
        speed_segments=[SpeedSegment(2, 1.5), SpeedSegment(2, 3.0), SpeedSegment(-1, 0.0)],
    )
    changes = timeline.bpm_changes()
    assert [change.beat for change in changes] == sorted({change.beat for change in changes})
    assert _flatten(changes) == pytest.approx(_flatten([BpmChange(bpm=60.0, beat=0.0), BpmChange(bpm=120.0, beat=0.75)]))
