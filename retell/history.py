"""
retell.history - Practice history records and their JSON store.

A HistoryStore is a ready-made sink for PhaseController(on_record=...):
each completed run appends one PracticeRecord to a JSON file.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, ValidationError

from retell.exceptions import RetellError
from retell.io import read_json, write_json
from retell.logging import logger

if TYPE_CHECKING:
    from retell.session.controller import SessionOutcome


class PracticeRecord(BaseModel):
    """Summary of one completed practice run."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    story_id: int
    score: int = Field(ge=0, le=100)
    timestamp: datetime = Field(default_factory=datetime.now)
    matched: int = 0
    total_keywords: int = 0

    @classmethod
    def from_outcome(cls, outcome: SessionOutcome) -> PracticeRecord:
        return cls(
            story_id=outcome.story.id,
            score=outcome.score.percentage,
            timestamp=outcome.finished_at,
            matched=len(outcome.score.matched_keywords),
            total_keywords=outcome.score.total_keywords,
        )


class HistoryStore:
    """Practice history persisted as {"records": [...]} in a JSON file."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def __call__(self, record: PracticeRecord) -> None:
        self.append(record)

    def load(self) -> list[PracticeRecord]:
        """Load all records, oldest first. A missing file is an empty history.

        Raises:
            RetellError: If the history file is malformed
        """
        if not self.path.exists():
            return []
        try:
            data = read_json(self.path)
            return [PracticeRecord.model_validate(r) for r in data.get("records", [])]
        except (ValueError, AttributeError, ValidationError) as e:
            raise RetellError(f"Corrupt history file {self.path}: {e}") from e

    def append(self, record: PracticeRecord) -> None:
        records = self.load()
        records.append(record)
        write_json(self.path, {"records": [r.model_dump(mode="json") for r in records]})
        logger.debug("Recorded story %s at %d%%", record.story_id, record.score)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)

    def summary(self) -> dict[str, Any]:
        """Count, average, best and latest score of the stored history."""
        records = self.load()
        if not records:
            return {"count": 0, "average": 0.0, "best": 0, "latest": None}
        scores = [r.score for r in records]
        return {
            "count": len(records),
            "average": round(sum(scores) / len(scores), 1),
            "best": max(scores),
            "latest": records[-1].score,
        }
