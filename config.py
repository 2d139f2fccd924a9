"""
config.py

Typed configuration loading and validation for Stepchart.

Behavior
- Reads at most one UTF-8 JSON file; every field has a default
- pydantic models validate each section
- STEPCHART_* environment variables override file values
- Never creates directories or writes files

Config file location
- If STEPCHART_CONFIG_PATH is set, that file is used.
- Otherwise Stepchart searches these paths in order and uses the first one that exists:
  1) ./stepchart_config.json (current working directory)
  2) <user config dir>/Stepchart/Stepchart/stepchart_config.json
  3) <user config dir>/Stepchart/Stepchart/config.json
- If none exists, the built-in defaults are used.

Example config file (stepchart_config.json)
{
  "song": {
    "title": "Zorba",
    "artist": "Mikis Theodorakis",
    "music": "Zorba.mp3"
  },
  "generation": {
    "base_bpm": 60.0,
    "seed": 1964,
    "collision_policy": "last",
    "meters": {"easy": 12, "medium": 12, "hard": 12}
  },
  "output": {
    "directory": ".",
    "file_name": "Zorba.sm"
  }
}
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from platformdirs import user_config_dir
from pydantic import BaseModel, Field, ValidationError, field_validator

from chart_models import CollisionPolicy


class SongMetadataConfig(BaseModel):
    title: str = Field(default="Zorba")
    subtitle: str = Field(default="")
    artist: str = Field(default="Mikis Theodorakis")
    title_translit: str = Field(default="")
    subtitle_translit: str = Field(default="")
    artist_translit: str = Field(default="")
    genre: str = Field(default="Folk")
    credit: str = Field(default="Pippin Barr")
    banner: str = Field(default="")
    background: str = Field(default="")
    lyrics_path: str = Field(default="")
    cd_title: str = Field(default="")
    music: str = Field(default="Zorba.mp3", description="Audio file name next to the simfile.")
    sample_start: float = Field(default=70.5, ge=0.0, description="Preview start in seconds.")
    sample_length: float = Field(default=20.0, ge=0.0, description="Preview length in seconds.")
    selectable: bool = Field(default=True)

    @field_validator("title")
    @classmethod
    def validate_title(cls, value: str) -> str:
        trimmed = (value or "").strip()
        return trimmed or "Untitled"


class GenerationConfig(BaseModel):
    base_bpm: float = Field(default=60.0, gt=0.0, description="Tempo of the first speed segment.")
    seed: int = Field(default=1964, description="Seed for every difficulty's random source.")
    per_difficulty_seeds: bool = Field(default=False, description="Derive a distinct seed per difficulty.")
    collision_policy: CollisionPolicy = Field(default=CollisionPolicy.LAST, description="last, first, or merge")
    meters: Dict[str, int] = Field(default_factory=lambda: {"easy": 12, "medium": 12, "hard": 12})
    parallel: bool = Field(default=False, description="Generate difficulties on a thread pool.")

    @field_validator("collision_policy", mode="before")
    @classmethod
    def normalize_collision_policy(cls, value: Any) -> Any:
        if isinstance(value, str):
            normalized = value.strip().lower()
            allowed = {policy.value for policy in CollisionPolicy}
            if normalized not in allowed:
                raise ValueError("collision_policy must be one of: last, first, merge")
            return normalized
        return value

    @field_validator("meters")
    @classmethod
    def normalize_meters(cls, value: Dict[str, int]) -> Dict[str, int]:
        normalized: Dict[str, int] = {}
        for difficulty_name, meter_value in value.items():
            if int(meter_value) < 1:
                raise ValueError(f"meter for {difficulty_name!r} must be >= 1")
            normalized[str(difficulty_name).strip().lower()] = int(meter_value)
        return normalized

    def meter_for(self, difficulty: str) -> int:
        return int(self.meters.get((difficulty or "").strip().lower(), 12))


class OutputConfig(BaseModel):
    directory: str = Field(default=".", description="Directory the simfile is written to.")
    file_name: str = Field(default="Zorba.sm")

    @field_validator("file_name")
    @classmethod
    def validate_file_name(cls, value: str) -> str:
        trimmed = (value or "").strip()
        if not trimmed:
            raise ValueError("file_name must be non-empty")
        if not trimmed.lower().endswith(".sm"):
            trimmed = trimmed + ".sm"
        return trimmed

    def simfile_path(self) -> Path:
        return Path(self.directory).expanduser() / self.file_name


class AppConfig(BaseModel):
    song: SongMetadataConfig = Field(default_factory=SongMetadataConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)


def _default_config_candidates() -> List[Path]:
    config_directory = Path(user_config_dir("Stepchart", "Stepchart"))
    return [
        Path.cwd() / "stepchart_config.json",
        config_directory / "stepchart_config.json",
        config_directory / "config.json",
    ]


def _resolve_config_path() -> Optional[Path]:
    explicit_path_text = os.environ.get("STEPCHART_CONFIG_PATH", "").strip()
    if explicit_path_text:
        return Path(explicit_path_text)

    for candidate_path in _default_config_candidates():
        if candidate_path.exists():
            return candidate_path

    return None


def _read_json_file_utf8(config_path: Path) -> Dict[str, Any]:
    # OSError (missing or unreadable file) propagates unchanged.
    try:
        parsed = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exception:
        raise ValueError(f"Config file {config_path} is not valid JSON: {exception}") from exception

    if not isinstance(parsed, dict):
        raise ValueError(f"Config file {config_path} must hold a JSON object")
    return parsed


def _parse_bool(value_text: str) -> Optional[bool]:
    lowered = value_text.lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    return None


def _parse_number(parser: Callable[[str], Any]) -> Callable[[str], Any]:
    def parse(value_text: str) -> Any:
        try:
            return parser(value_text)
        except ValueError:
            return None

    return parse


# (environment variable, config section, key, parser). A parser returning None leaves the key untouched.
_ENVIRONMENT_OVERRIDES: List[Tuple[str, str, str, Callable[[str], Any]]] = [
    ("STEPCHART_TITLE", "song", "title", str),
    ("STEPCHART_ARTIST", "song", "artist", str),
    ("STEPCHART_BASE_BPM", "generation", "base_bpm", _parse_number(float)),
    ("STEPCHART_SEED", "generation", "seed", _parse_number(int)),
    ("STEPCHART_COLLISION_POLICY", "generation", "collision_policy", str),
    ("STEPCHART_PARALLEL", "generation", "parallel", _parse_bool),
    ("STEPCHART_OUTPUT_DIR", "output", "directory", str),
    ("STEPCHART_OUTPUT_FILE", "output", "file_name", str),
]


def _apply_environment_overrides(config_dict: Dict[str, Any]) -> Dict[str, Any]:
    """
    Apply STEPCHART_* variables on top of the file values.

    Blank variables are ignored, as are numbers and booleans that do not parse.
    """
    updated_config = dict(config_dict)
    for env_name, section_name, key_name, parser in _ENVIRONMENT_OVERRIDES:
        value_text = os.environ.get(env_name, "").strip()
        if not value_text:
            continue
        parsed_value = parser(value_text)
        if parsed_value is None:
            continue

        section = updated_config.get(section_name)
        section = dict(section) if isinstance(section, dict) else {}
        section[key_name] = parsed_value
        updated_config[section_name] = section
    return updated_config


def load_config(config_path: Optional[Path] = None) -> Tuple[AppConfig, Optional[Path]]:
    resolved_path = config_path if config_path is not None else _resolve_config_path()
    json_dict = _read_json_file_utf8(resolved_path) if resolved_path is not None else {}
    json_dict = _apply_environment_overrides(json_dict)

    try:
        config = AppConfig.model_validate(json_dict)
    except ValidationError as exception:
        source_text = str(resolved_path) if resolved_path is not None else "defaults"
        raise ValueError(f"Config validation failed for {source_text}:\n{exception}") from exception

    return config, resolved_path


def to_json(config: AppConfig) -> str:
    return json.dumps(config.model_dump(mode="json"), ensure_ascii=False, indent=2)


def main() -> int:
    try:
        config, resolved_path = load_config()
    except Exception as exception:
        error_payload = {"ok": False, "error": str(exception)}
        print(json.dumps(error_payload, ensure_ascii=False, indent=2))
        return 2

    output_payload = {
        "ok": True,
        "config_path": str(resolved_path) if resolved_path is not None else None,
        "config": json.loads(to_json(config)),
    }
    print(json.dumps(output_payload, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
