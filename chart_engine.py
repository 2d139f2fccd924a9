# -*- coding: utf-8 -*-
########################
# chart_engine.py
########################
# Purpose:
# - Convert a timing source into a complete .sm simfile with Easy, Medium and Hard charts.
# - Wires TimingSource -> BeatTimeline -> ArrowPatternGenerator -> ChartEncoder -> sm_store.
#
########################
# Key Logic:
# - Every difficulty gets a fresh generator with its own random.Random handle.
# - Step events are created with a constant-tempo beat, sorted stably by time,
#   then re-beated against the derived BPM schedule by the encoder.
# - The three difficulty passes are independent and may run on a thread pool.
# - An empty timing source yields a header-only simfile with empty #NOTES row data.
#
########################
# Interfaces:
# Public exceptions:
# - class ChartBuildError(Exception)
#
# Public dataclasses:
# - @dataclass(frozen=True) class DifficultyResult
#   - track: DifficultyTrack
#   - seed: int
#   - steps: list[StepEvent]
#   - encoded: EncodedChart
# - @dataclass(frozen=True) class ConversionResult
#   - simfile_text: str
#   - bpm_changes: list[BpmChange]
#   - difficulties: list[DifficultyResult]
#
# Public classes:
# - class ChartEngine
#   - __init__(timing_source: TimingSource, generation: GenerationConfig, *, tracks=DEFAULT_TRACKS)
#   - timeline() -> BeatTimeline
#   - bpm_changes() -> list[BpmChange]
#   - seed_for_track(track: DifficultyTrack) -> int
#   - generate_steps(policy: DifficultyPolicy, *, seed: int) -> list[StepEvent]
#   - convert(song: SongMetadataConfig) -> ConversionResult
#
# Public functions:
# - header_for(song: SongMetadataConfig, timing_source: TimingSource) -> SimfileHeader
#
########################
# Smoke Tests:
#   - python chart_engine.py
########################

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional, Sequence

import sm_store
from chart_encoder import ChartEncoder, EncodedChart
from chart_models import DEFAULT_TRACKS, BpmChange, DifficultyPolicy, DifficultyTrack, StepEvent
from config import GenerationConfig, SongMetadataConfig
from pattern_generator import ArrowPatternGenerator, seed_for
from timing_model import BeatTimeline
from timing_source import TimingSource


logger = logging.getLogger(__name__)


class ChartBuildError(Exception):
    """Raised when the simfile cannot be assembled from generated charts."""


@dataclass(frozen=True)
class DifficultyResult:
    track: DifficultyTrack
    seed: int
    steps: List[StepEvent]
    encoded: EncodedChart


@dataclass(frozen=True)
class ConversionResult:
    simfile_text: str
    bpm_changes: List[BpmChange]
    difficulties: List[DifficultyResult]

    @property
    def total_steps(self) -> int:
        if not self.difficulties:
            return 0
        return len(self.difficulties[0].steps)

    @property
    def collision_count(self) -> int:
        return sum(result.encoded.collision_count for result in self.difficulties)


def header_for(song: SongMetadataConfig, timing_source: TimingSource) -> sm_store.SimfileHeader:
    # #OFFSET carries the step and base delays; the global offset only shifts step times.
    offset_seconds = float(timing_source.step_delay) + float(timing_source.delay)
    return sm_store.SimfileHeader(
        title=song.title,
        offset_seconds=offset_seconds,
        subtitle=song.subtitle,
        artist=song.artist,
        title_translit=song.title_translit,
        subtitle_translit=song.subtitle_translit,
        artist_translit=song.artist_translit,
        genre=song.genre,
        credit=song.credit,
        banner=song.banner,
        background=song.background,
        lyrics_path=song.lyrics_path,
        cd_title=song.cd_title,
        music=song.music,
        sample_start=float(song.sample_start),
        sample_length=float(song.sample_length),
        selectable=bool(song.selectable),
    )


class ChartEngine:
    def __init__(
        self,
        timing_source: TimingSource,
        generation: GenerationConfig,
        *,
        tracks: Sequence[DifficultyTrack] = DEFAULT_TRACKS,
    ) -> None:
        self._timing_source = timing_source
        self._generation = generation
        self._tracks = list(tracks)
        self._adjusted_times = timing_source.adjusted_times()
        self._timeline: Optional[BeatTimeline] = None

    def timeline(self) -> BeatTimeline:
        if self._timeline is None:
            self._timeline = BeatTimeline.from_speed_schedule(
                base_bpm=float(self._generation.base_bpm),
                adjusted_times=self._adjusted_times,
                speed_segments=self._timing_source.speed_segments(),
            )
        return self._timeline

    def bpm_changes(self) -> List[BpmChange]:
        return self.timeline().bpm_changes()

    def seed_for_track(self, track: DifficultyTrack) -> int:
        base_seed = int(self._generation.seed)
        if self._generation.per_difficulty_seeds:
            return seed_for(base_seed, track.name)
        return base_seed

    def generate_steps(self, policy: DifficultyPolicy, *, seed: int) -> List[StepEvent]:
        timeline = self.timeline()
        generator = ArrowPatternGenerator(policy, seed=seed)

        steps: List[StepEvent] = []
        for step_index, adjusted_time in enumerate(self._adjusted_times):
            steps.append(
                StepEvent(
                    time_seconds=adjusted_time,
                    beat=timeline.constant_beat(adjusted_time),
                    token=generator.next_token(step_index),
                )
            )

        steps.sort(key=lambda step: step.time_seconds)
        return steps

    def _build_difficulty(self, track: DifficultyTrack) -> DifficultyResult:
        seed = self.seed_for_track(track)
        steps = self.generate_steps(track.policy, seed=seed)
        encoder = ChartEncoder(collision_policy=self._generation.collision_policy)
        encoded = encoder.encode_with_stats(steps, self.bpm_changes())
        logger.info(
            "%s: %d steps, %d measures, %d collisions (seed=%d)",
            track.name,
            len(steps),
            encoded.measure_count,
            encoded.collision_count,
            seed,
        )
        return DifficultyResult(track=track, seed=seed, steps=steps, encoded=encoded)

    def _build_difficulties(self) -> List[DifficultyResult]:
        # Derive the shared schedule before any worker touches it.
        self.timeline()
        if self._generation.parallel and len(self._tracks) > 1:
            with ThreadPoolExecutor(max_workers=len(self._tracks), thread_name_prefix="stepchart-difficulty") as executor:
                return list(executor.map(self._build_difficulty, self._tracks))
        return [self._build_difficulty(track) for track in self._tracks]

    def convert(self, song: SongMetadataConfig) -> ConversionResult:
        bpm_changes = self.bpm_changes()
        difficulties = self._build_difficulties()

        charts: List[sm_store.StepChartBlock] = []
        for result in difficulties:
            try:
                difficulty_key = sm_store.normalize_difficulty(result.track.name)
            except ValueError as exc:
                raise ChartBuildError(f"Unsupported difficulty track {result.track.name!r}: {exc}") from exc
            charts.append(
                sm_store.StepChartBlock(
                    step_type=sm_store.STEP_TYPE_DANCE_SINGLE,
                    description="",
                    difficulty=difficulty_key,
                    meter=self._generation.meter_for(difficulty_key),
                    radar_values=sm_store.EMPTY_RADAR_VALUES,
                    notes_text=result.encoded.notes_text,
                )
            )

        simfile_text = sm_store.build_simfile_text(header_for(song, self._timing_source), bpm_changes, charts)
        return ConversionResult(simfile_text=simfile_text, bpm_changes=bpm_changes, difficulties=difficulties)


def _assert(condition: bool, message: str) -> None:
    if not condition:
        raise AssertionError(message)


def _run_chunk_tests() -> None:
    timing_source = TimingSource(
        step_times=[float(index) * 0.5 for index in range(40)],
        turn_lengths=[20, 20, -1],
        speeds=[1.5, 3.0, 3.0],
    )
    generation = GenerationConfig()
    result = ChartEngine(timing_source, generation).convert(SongMetadataConfig())

    _assert(len(result.difficulties) == 3, "Expected three difficulty passes")
    _assert(result.total_steps == 40, "Expected one step per timestamp")
    _assert(result.bpm_changes[0] == BpmChange(bpm=60.0, beat=0.0), "Expected base tempo at beat 0")
    _assert(result.simfile_text.count("#NOTES:") == 3, "Expected three #NOTES blocks")

    parsed = sm_store.parse_simfile(result.simfile_text)
    sm_store.check_structure(parsed)
    _assert([chart.difficulty for chart in parsed.charts] == ["easy", "medium", "hard"], "Unexpected block order")

    again = ChartEngine(timing_source, generation).convert(SongMetadataConfig())
    _assert(again.simfile_text == result.simfile_text, "Expected byte-identical output for a fixed seed")

    empty = ChartEngine(TimingSource(), generation).convert(SongMetadataConfig())
    empty_parsed = sm_store.parse_simfile(empty.simfile_text)
    _assert(all(not chart.notes_text for chart in empty_parsed.charts), "Expected empty row data")


def main() -> int:
    """Chunk test entrypoint."""
    try:
        _run_chunk_tests()
    except Exception as exc:
        print("Chart conversion chunk tests: FAIL")
        print(str(exc))
        return 2

    print("Chart conversion chunk tests: PASS")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
