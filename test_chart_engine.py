from __future__ import annotations

import pytest

import chart_engine
import sm_store
from chart_engine import ChartBuildError, ChartEngine
from chart_models import BpmChange, DifficultyPolicy, DifficultyTrack, is_jump
from config import GenerationConfig, SongMetadataConfig
from pattern_generator import seed_for
from timing_source import TimingSource, default_timing_path, load_timing_source


def _three_step_source() -> TimingSource:
    return TimingSource(step_times=[0.0, 0.5, 1.0], turn_lengths=[-1], speeds=[1.0])


def test_chunk_tests_pass() -> None:
    chart_engine._run_chunk_tests()
    assert chart_engine.main() == 0


def test_three_step_scenario_rows() -> None:
    engine = ChartEngine(
        _three_step_source(),
        GenerationConfig(base_bpm=60.0, seed=1964),
        tracks=[DifficultyTrack("Easy", DifficultyPolicy.RANDOM_SINGLE)],
    )
    result = engine.convert(SongMetadataConfig())
    steps = result.difficulties[0].steps

    measures = sm_store.split_measures(result.difficulties[0].encoded.notes_text)
    assert len(measures) == 2
    # Ticks 0, 24 and 48 land on 32nd-row indices 0, 4 and 8.
    assert len(measures[0]) == 32
    assert [measures[0][0], measures[0][4], measures[0][8]] == [step.token for step in steps]
    assert measures[1] == ["0000"] * 4
    assert "#BPMS:0.000=60.000;" in result.simfile_text


def test_offset_excludes_global_offset() -> None:
    timing_source = TimingSource(step_times=[0.0, 1.0], step_delay=0.25, delay=1.0, offset=2.0)
    result = ChartEngine(timing_source, GenerationConfig()).convert(SongMetadataConfig())
    assert "#OFFSET:1.250;" in result.simfile_text.splitlines()


def test_fixed_seed_is_deterministic() -> None:
    timing_source = load_timing_source(default_timing_path())
    first = ChartEngine(timing_source, GenerationConfig(seed=42)).convert(SongMetadataConfig())
    second = ChartEngine(timing_source, GenerationConfig(seed=42)).convert(SongMetadataConfig())
    assert first.simfile_text == second.simfile_text


def test_parallel_matches_sequential() -> None:
    timing_source = load_timing_source(default_timing_path())
    sequential = ChartEngine(timing_source, GenerationConfig(parallel=False)).convert(SongMetadataConfig())
    parallel = ChartEngine(timing_source, GenerationConfig(parallel=True)).convert(SongMetadataConfig())
    assert parallel.simfile_text == sequential.simfile_text
    assert [result.track.name for result in parallel.difficulties] == ["Easy", "Medium", "Hard"]


def test_shared_seed_by_default_and_derived_seeds_on_request() -> None:
    timing_source = _three_step_source()
    shared = ChartEngine(timing_source, GenerationConfig(seed=5)).convert(SongMetadataConfig())
    assert [result.seed for result in shared.difficulties] == [5, 5, 5]

    derived = ChartEngine(timing_source, GenerationConfig(seed=5, per_difficulty_seeds=True)).convert(SongMetadataConfig())
    assert [result.seed for result in derived.difficulties] == [
        seed_for(5, "Easy"),
        seed_for(5, "Medium"),
        seed_for(5, "Hard"),
    ]


def test_steps_are_sorted_by_time() -> None:
    timing_source = load_timing_source(default_timing_path())
    result = ChartEngine(timing_source, GenerationConfig()).convert(SongMetadataConfig())
    for difficulty_result in result.difficulties:
        times = [step.time_seconds for step in difficulty_result.steps]
        assert times == sorted(times)
        assert len(times) == 64


def test_hard_chart_starts_with_a_single_arrow() -> None:
    timing_source = load_timing_source(default_timing_path())
    result = ChartEngine(timing_source, GenerationConfig()).convert(SongMetadataConfig())
    hard = result.difficulties[2]
    assert hard.track.policy is DifficultyPolicy.FLOWING_WITH_JUMPS
    assert not is_jump(hard.steps[0].token)
    assert all(not is_jump(step.token) for step in result.difficulties[1].steps)


def test_sample_output_passes_structure_check() -> None:
    timing_source = load_timing_source(default_timing_path())
    engine = ChartEngine(timing_source, GenerationConfig())
    result = engine.convert(SongMetadataConfig())

    parsed = sm_store.parse_simfile(result.simfile_text)
    sm_store.check_structure(parsed)
    assert parsed.bpm_segments == [
        BpmChange(bpm=round(change.bpm, 3), beat=round(change.beat, 3)) for change in engine.bpm_changes()
    ]
    assert [chart.difficulty for chart in parsed.charts] == ["easy", "medium", "hard"]


def test_empty_timing_source_gives_header_only_simfile() -> None:
    result = ChartEngine(TimingSource(), GenerationConfig()).convert(SongMetadataConfig())
    assert result.total_steps == 0
    assert result.collision_count == 0
    assert result.simfile_text.count("#NOTES:") == 3
    assert "#BPMS:0.000=60.000;" in result.simfile_text
    parsed = sm_store.parse_simfile(result.simfile_text)
    assert all(chart.notes_text == "" for chart in parsed.charts)


def test_unknown_track_name_is_a_build_error() -> None:
    engine = ChartEngine(
        _three_step_source(),
        GenerationConfig(),
        tracks=[DifficultyTrack("Expert", DifficultyPolicy.RANDOM_SINGLE)],
    )
    with pytest.raises(ChartBuildError):
        engine.convert(SongMetadataConfig())


def test_meters_come_from_generation_config() -> None:
    generation = GenerationConfig(meters={"easy": 2, "medium": 5, "hard": 9})
    result = ChartEngine(_three_step_source(), generation).convert(SongMetadataConfig())
    parsed = sm_store.parse_simfile(result.simfile_text)
    assert [chart.meter for chart in parsed.charts] == [2, 5, 9]


def test_negative_offset_keeps_bpms_ordered_and_every_step() -> None:
    timing_source = TimingSource(
        step_times=[0.25, 0.75, 1.25, 1.75],
        turn_lengths=[2, 2, -1],
        speeds=[1.5, 3.0],
        offset=-0.25,
    )
    result = ChartEngine(timing_source, GenerationConfig()).convert(SongMetadataConfig())

    assert "#BPMS:0.000=60.000,1.000=120.000;" in result.simfile_text
    sm_store.check_structure(sm_store.parse_simfile(result.simfile_text))
    for difficulty_result in result.difficulties:
        assert difficulty_result.encoded.dropped_count == 0
        rows = [row for measure in sm_store.split_measures(difficulty_result.encoded.notes_text) for row in measure]
        assert sum(1 for row in rows if row != "0000") == 4
