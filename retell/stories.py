"""
retell.stories - Story model and story-source loading.

Stories come from JSON (a list, or {"stories": [...]}), YAML, or plain
text. Plain text is read either as numbered stories ("1. ...") or as
blank-line separated paragraphs.
"""

from __future__ import annotations

import json
import random
import re
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from retell.exceptions import NotReadyError, StoryError
from retell.io import read_json, read_text
from retell.logging import logger

Difficulty = Literal["easy", "medium", "hard"]

_NUMBERED_LINE = re.compile(r"^\d+\.")
_NUMBER_PREFIX = re.compile(r"^\d+\.\s*")
_BLANK_LINES = re.compile(r"\n\s*\n+")
_READ_ALOUD_HEADER = re.compile(r"^read aloud", re.IGNORECASE)


class Story(BaseModel):
    """A story to narrate and score against. Immutable once loaded."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int
    text: str
    difficulty: Difficulty | None = None
    word_count: int | None = Field(default=None, alias="wordCount", ge=0)
    keywords: tuple[str, ...] = ()


def parse_numbered_stories(raw: str) -> list[str]:
    """Split text where each story starts on a line beginning with "N."."""
    collected: list[str] = []
    current: list[str] = []
    for line in raw.replace("\r", "").split("\n"):
        stripped = line.strip()
        if _NUMBERED_LINE.match(stripped):
            if current:
                collected.append(" ".join(current).strip())
                current = []
            current.append(_NUMBER_PREFIX.sub("", stripped))
        elif stripped:
            current.append(stripped)
    if current:
        collected.append(" ".join(current).strip())
    return [story for story in collected if story]


def parse_paragraph_stories(raw: str) -> list[str]:
    """Split text on blank lines, dropping any "Read Aloud" header paragraph."""
    parts = [part.strip() for part in _BLANK_LINES.split(raw.replace("\r", ""))]
    return [
        " ".join(part.split()) for part in parts if part and not _READ_ALOUD_HEADER.match(part)
    ]


def parse_text_stories(raw: str, start_id: int = 1) -> list[Story]:
    """Parse a plain-text story file into Story records with sequential ids."""
    has_numbering = any(_NUMBERED_LINE.match(line.strip()) for line in raw.splitlines())
    texts = parse_numbered_stories(raw) if has_numbering else parse_paragraph_stories(raw)
    return [Story(id=start_id + i, text=text) for i, text in enumerate(texts)]


def stories_from_records(records: Any) -> list[Story]:
    """Validate a list of story records (or {"stories": [...]}).

    Raises:
        StoryError: If the records are not a list of valid story objects
    """
    if isinstance(records, dict):
        records = records.get("stories")
    if not isinstance(records, list):
        raise StoryError("Story source must be a list of stories or {'stories': [...]}")

    stories = []
    for index, record in enumerate(records):
        try:
            stories.append(Story.model_validate(record))
        except ValidationError as e:
            raise StoryError(f"Invalid story at index {index}: {e}") from e
    return stories


def load_stories(path: Path) -> list[Story]:
    """Load stories from a JSON, YAML or plain-text file.

    Args:
        path: Story source file

    Returns:
        Stories in file order

    Raises:
        StoryError: If the file is missing, unreadable or malformed
    """
    if not path.exists():
        raise StoryError(f"Story source not found: {path}")

    suffix = path.suffix.lower()
    try:
        if suffix == ".json":
            stories = stories_from_records(read_json(path))
        elif suffix in (".yaml", ".yml"):
            stories = stories_from_records(yaml.safe_load(read_text(path)))
        else:
            stories = parse_text_stories(read_text(path))
    except (json.JSONDecodeError, yaml.YAMLError, UnicodeDecodeError) as e:
        raise StoryError(f"Could not parse {path.name}: {e}") from e

    logger.debug("Loaded %d stories from %s", len(stories), path)
    return stories


def filter_stories(stories: Sequence[Story], difficulty: str | None = None) -> list[Story]:
    """Keep stories of the given difficulty (all stories if None)."""
    if difficulty is None:
        return list(stories)
    return [story for story in stories if story.difficulty == difficulty]


def choose_story(stories: Sequence[Story], rng: random.Random | None = None) -> Story:
    """Pick a story uniformly at random.

    Raises:
        NotReadyError: If the pool is empty
    """
    if not stories:
        raise NotReadyError("No stories available")
    return (rng or random).choice(list(stories))
