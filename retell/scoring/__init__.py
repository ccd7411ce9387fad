"""
retell.scoring - Transcript match scoring.
"""

from __future__ import annotations

from retell.scoring.match import (
    ScoreResult,
    apply_generosity_curve,
    score_against_extracted,
    score_against_keywords,
    score_story,
)

__all__ = [
    "ScoreResult",
    "apply_generosity_curve",
    "score_against_extracted",
    "score_against_keywords",
    "score_story",
]
