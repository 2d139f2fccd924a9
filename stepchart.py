"""
stepchart.py

Entrypoint that converts a captured timing file into a StepMania simfile.

Integration
- Loads config (config.py) and the timing source (timing_source.py)
- Runs ChartEngine to build Easy, Medium and Hard charts
- Writes the .sm file and optionally parses it back for structural checks
- Prints a JSON result payload; exit code 0 on success, 2 on failure
"""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import sm_store
from chart_engine import ChartEngine, ConversionResult
from config import AppConfig, load_config
from timing_source import default_timing_path, load_timing_source


logger = logging.getLogger("stepchart")


def _build_argument_parser() -> argparse.ArgumentParser:
    argument_parser = argparse.ArgumentParser(description="Convert step timings into a StepMania simfile")
    argument_parser.add_argument("--timings", type=Path, default=None, help="Timing JSON file (defaults to the bundled sample).")
    argument_parser.add_argument("--output", type=Path, default=None, help="Output .sm path (overrides config).")
    argument_parser.add_argument("--config", type=Path, default=None, help="Config JSON file (overrides lookup).")
    argument_parser.add_argument("--seed", type=int, default=None, help="Random seed (overrides config).")
    argument_parser.add_argument("--check", action="store_true", help="Parse the written file back and check its structure.")
    argument_parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return argument_parser


def _apply_argument_overrides(app_config: AppConfig, parsed_args: argparse.Namespace) -> AppConfig:
    if parsed_args.seed is None:
        return app_config
    generation = app_config.generation.model_copy(update={"seed": int(parsed_args.seed)})
    return app_config.model_copy(update={"generation": generation})


def _result_payload(result: ConversionResult, simfile_path: Path) -> Dict[str, Any]:
    difficulties: List[Dict[str, Any]] = []
    for difficulty_result in result.difficulties:
        difficulties.append(
            {
                "name": difficulty_result.track.name,
                "policy": difficulty_result.track.policy.value,
                "seed": difficulty_result.seed,
                "measures": difficulty_result.encoded.measure_count,
                "collisions": difficulty_result.encoded.collision_count,
            }
        )
    return {
        "ok": True,
        "simfile_path": str(simfile_path),
        "total_steps": result.total_steps,
        "bpm_changes": sm_store.format_bpm_changes(result.bpm_changes),
        "collisions": result.collision_count,
        "difficulties": difficulties,
    }


def run(
    *,
    timing_path: Path,
    app_config: AppConfig,
    output_path: Optional[Path] = None,
    check: bool = False,
) -> Dict[str, Any]:
    timing_source = load_timing_source(timing_path)
    logger.info("Loaded %d steps from %s", timing_source.step_count, timing_path)

    engine = ChartEngine(timing_source, app_config.generation)
    result = engine.convert(app_config.song)

    simfile_path = Path(output_path) if output_path is not None else app_config.output.simfile_path()
    sm_store.save_simfile(simfile_path, result.simfile_text)
    logger.info("Simfile created: %s", simfile_path)

    if check:
        sm_store.check_structure(sm_store.load_simfile(simfile_path))
        logger.info("Structure check passed: %s", simfile_path)

    return _result_payload(result, simfile_path)


def main(argv: Optional[List[str]] = None) -> int:
    parsed_args = _build_argument_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if parsed_args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        app_config, _config_path = load_config(parsed_args.config)
        app_config = _apply_argument_overrides(app_config, parsed_args)
        payload = run(
            timing_path=parsed_args.timings if parsed_args.timings is not None else default_timing_path(),
            app_config=app_config,
            output_path=parsed_args.output,
            check=bool(parsed_args.check),
        )
    except Exception as exception:
        error_payload = {"ok": False, "error": str(exception)}
        print(json.dumps(error_payload, ensure_ascii=False, indent=2))
        return 2

    print(json.dumps(payload, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
