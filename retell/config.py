"""
retell.config - YAML config loading, profile merging, validation.

Handles loading retell.yaml from a project directory, applying profile
defaults, and validating phase timings, narration pacing and the
scoring heuristics.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from retell.exceptions import ConfigError

CONFIG_FILENAME = "retell.yaml"


class PhaseDurations(BaseModel):
    """Fixed phase lengths, in seconds."""

    listen_floor_seconds: float = Field(default=30.0, gt=0.0)
    prep_seconds: float = Field(default=5.0, gt=0.0)
    speak_seconds: float = Field(default=40.0, gt=0.0)


class NarrationSettings(BaseModel):
    """Pacing used to size the listening phase."""

    words_per_minute: float = Field(default=150.0, gt=0.0)
    speech_rate: float = Field(default=1.0, gt=0.0)
    sentence_pause_ms: int = Field(default=400, ge=0)
    buffer_ms: int = Field(default=2000, ge=0)
    per_word_floor_ms: int = Field(default=300, ge=0)
    minimum_ms: int = Field(default=5000, ge=0)


class ScoringWeights(BaseModel):
    """Weights for the exact, partial and content-word terms."""

    exact: float = Field(default=0.6, ge=0.0, le=1.0)
    partial: float = Field(default=0.2, ge=0.0, le=1.0)
    content: float = Field(default=0.2, ge=0.0, le=1.0)

    @field_validator("exact", "partial", "content")
    @classmethod
    def validate_weight(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("Weight must be between 0.0 and 1.0")
        return v


class GenerosityCurve(BaseModel):
    """Piecewise-linear remap applied to the weighted base score."""

    low_breakpoint: float = Field(default=0.2, ge=0.0, le=1.0)
    low_factor: float = Field(default=1.2, ge=1.0)
    high_breakpoint: float = Field(default=0.4, ge=0.0, le=1.0)
    high_factor: float = Field(default=1.3, ge=1.0)

    @model_validator(mode="after")
    def validate_breakpoints(self) -> GenerosityCurve:
        if self.high_breakpoint < self.low_breakpoint:
            raise ValueError("high_breakpoint must not be below low_breakpoint")
        return self


class ScoringSettings(BaseModel):
    """Tunable heuristics for keyword extraction and match scoring."""

    extracted_keyword_cap: int = Field(default=20, gt=0)
    partial_credit: float = Field(default=0.5, ge=0.0, le=1.0)
    min_common_substring: int = Field(default=3, ge=1)
    length_bonus_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    length_bonus_factor: float = Field(default=0.2, ge=0.0, le=1.0)
    generic_weights: ScoringWeights = Field(default_factory=ScoringWeights)
    explicit_weights: ScoringWeights = Field(
        default_factory=lambda: ScoringWeights(exact=0.7, partial=0.2, content=0.1)
    )
    curve: GenerosityCurve = Field(default_factory=GenerosityCurve)
    keyword_tie_epsilon: float = Field(default=0.1, ge=0.0)
    position_weight_floor: float = Field(default=0.5, ge=0.0, le=1.0)
    length_weight_cap: float = Field(default=2.0, ge=1.0)
    length_weight_full_at: int = Field(default=10, gt=0)


class RetellConfig(BaseModel):
    """Resolved configuration for a Retell project."""

    project_name: str = "untitled"
    profile: str = "exam"

    stories_path: Path | None = None
    history_path: Path = Path("history.json")

    durations: PhaseDurations = Field(default_factory=PhaseDurations)
    narration: NarrationSettings = Field(default_factory=NarrationSettings)
    scoring: ScoringSettings = Field(default_factory=ScoringSettings)

    config_path: Path | None = None

    @field_validator("profile")
    @classmethod
    def validate_profile(cls, v: str) -> str:
        valid = set(BUILTIN_PROFILES)
        if v not in valid:
            raise ValueError(f"profile must be one of: {sorted(valid)}")
        return v

    def resolve_path(self, path: Path) -> Path:
        """Resolve a configured path against the config file's directory."""
        if path.is_absolute() or self.config_path is None:
            return path
        return self.config_path.parent / path


BUILTIN_PROFILES: dict[str, dict[str, Any]] = {
    "exam": {
        "durations": {
            "listen_floor_seconds": 30.0,
            "prep_seconds": 5.0,
            "speak_seconds": 40.0,
        },
        "narration": {"words_per_minute": 150.0, "speech_rate": 1.0},
    },
    "practice": {
        "durations": {
            "listen_floor_seconds": 30.0,
            "prep_seconds": 15.0,
            "speak_seconds": 60.0,
        },
        "narration": {"words_per_minute": 130.0, "speech_rate": 0.9},
    },
    "drill": {
        "durations": {
            "listen_floor_seconds": 15.0,
            "prep_seconds": 3.0,
            "speak_seconds": 25.0,
        },
        "narration": {"words_per_minute": 165.0, "speech_rate": 1.1},
    },
}

_NESTED_SECTIONS = ("durations", "narration", "scoring")


def load_profile(name: str, profiles_dir: Path | None = None) -> dict[str, Any]:
    """Load a profile by name, checking custom profiles first."""
    if profiles_dir and profiles_dir.exists():
        profile_file = profiles_dir / f"{name}.yaml"
        if profile_file.exists():
            with open(profile_file) as f:
                return yaml.safe_load(f) or {}
    if name in BUILTIN_PROFILES:
        return _deep_copy(BUILTIN_PROFILES[name])
    raise ConfigError(f"Unknown profile: {name}")


def merge_config(project_config: dict[str, Any], profile: dict[str, Any]) -> dict[str, Any]:
    """Merge project config with profile defaults. Project config takes precedence."""
    merged = _deep_copy(profile)
    for key, value in project_config.items():
        if key in _NESTED_SECTIONS and isinstance(value, dict):
            section = merged.setdefault(key, {})
            for sub_key, sub_value in value.items():
                if isinstance(sub_value, dict) and isinstance(section.get(sub_key), dict):
                    section[sub_key].update(sub_value)
                else:
                    section[sub_key] = sub_value
        elif value is not None:
            merged[key] = value
    return merged


def load_config(project_dir: Path) -> RetellConfig:
    """Load and validate configuration from a project directory."""
    config_file = project_dir / CONFIG_FILENAME
    if not config_file.exists():
        raise FileNotFoundError(f"No {CONFIG_FILENAME} found in {project_dir}")
    return load_config_file(config_file)


def load_config_file(config_file: Path) -> RetellConfig:
    """Load and validate a specific config file.

    Raises:
        ConfigError: If the file is not valid YAML or fails validation
    """
    try:
        with open(config_file) as f:
            raw_config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Could not parse {config_file.name}: {e}") from e
    if not isinstance(raw_config, dict):
        raise ConfigError(f"{config_file.name} must contain a mapping")

    profile_name = raw_config.get("profile", "exam")
    profiles_dir = config_file.parent / "profiles"
    profile = load_profile(profile_name, profiles_dir if profiles_dir.exists() else None)

    if "inherits" in profile:
        parent_name = profile.pop("inherits")
        parent = load_profile(parent_name, profiles_dir if profiles_dir.exists() else None)
        profile = merge_config(profile, parent)

    merged = merge_config(raw_config, profile)
    merged["config_path"] = config_file

    try:
        return RetellConfig(**merged)
    except ValidationError as e:
        raise ConfigError(f"Invalid {config_file.name}: {e}") from e


def create_default_config(project_name: str, profile: str = "exam") -> dict[str, Any]:
    """Create a default config for a new project."""
    defaults: dict[str, Any] = {
        "project_name": project_name,
        "profile": profile,
        "stories_path": "stories.json",
        "history_path": "history.json",
    }
    if profile in BUILTIN_PROFILES:
        defaults = merge_config(defaults, BUILTIN_PROFILES[profile])
    return defaults


def write_config(config: dict[str, Any], path: Path) -> None:
    """Write configuration to a YAML file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.dump(config, f, default_flow_style=False, sort_keys=False)


def _deep_copy(data: dict[str, Any]) -> dict[str, Any]:
    return {k: _deep_copy(v) if isinstance(v, dict) else v for k, v in data.items()}
