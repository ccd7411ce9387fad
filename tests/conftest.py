"""
Test configuration and shared fixtures.
"""

from __future__ import annotations

import json
import os
from pathlib import Path

import pytest
import yaml

from retell.config import NarrationSettings, PhaseDurations, RetellConfig
from retell.stories import Story

# Rich consoles read COLUMNS at creation; use a wide terminal so long tmp
# paths in CLI output are not wrapped mid-message under the test runner.
os.environ["COLUMNS"] = "200"


@pytest.fixture
def fox_story() -> Story:
    """A short story with explicit keywords."""
    return Story(
        id=1,
        text="The quick brown fox jumped over the lazy dog.",
        difficulty="easy",
        keywords=("fox", "jumped", "lazy", "dog"),
    )


@pytest.fixture
def plain_story() -> Story:
    """A story without keywords, scored against extracted ones."""
    return Story(
        id=2,
        text=(
            "A fisherman found a golden bottle on the beach. "
            "Inside the bottle was a map of the island. "
            "He followed the map and found an old chest full of coins."
        ),
    )


@pytest.fixture
def sample_story_records() -> list[dict]:
    """Story records as they appear in a JSON story source."""
    return [
        {
            "id": 1,
            "text": "The quick brown fox jumped over the lazy dog.",
            "difficulty": "easy",
            "wordCount": 9,
            "keywords": ["fox", "jumped", "lazy", "dog"],
        },
        {
            "id": 2,
            "text": "A fisherman found a golden bottle on the beach.",
            "difficulty": "medium",
            "keywords": [],
        },
    ]


@pytest.fixture
def stories_file(tmp_path: Path, sample_story_records: list[dict]) -> Path:
    path = tmp_path / "stories.json"
    path.write_text(json.dumps(sample_story_records), encoding="utf-8")
    return path


@pytest.fixture
def fast_config() -> RetellConfig:
    """Config with millisecond-scale phases and negligible narration estimates."""
    return RetellConfig(
        durations=PhaseDurations(
            listen_floor_seconds=0.05,
            prep_seconds=0.05,
            speak_seconds=0.05,
        ),
        narration=NarrationSettings(
            words_per_minute=60000,
            sentence_pause_ms=0,
            buffer_ms=0,
            per_word_floor_ms=0,
            minimum_ms=0,
        ),
    )


@pytest.fixture
def tmp_project(tmp_path: Path, sample_story_records: list[dict]) -> Path:
    """Create a temporary project directory with config and stories."""
    project_dir = tmp_path / "practice"
    project_dir.mkdir()

    config = {"project_name": "practice", "profile": "exam", "stories_path": "stories.json"}
    with open(project_dir / "retell.yaml", "w") as f:
        yaml.dump(config, f)

    with open(project_dir / "stories.json", "w") as f:
        json.dump(sample_story_records, f)

    return project_dir
