"""
retell.text.keywords - Salient keyword extraction.

Used when a story carries no explicit keyword list. Each occurrence of a
normalized token contributes position_weight * length_weight, so words
that appear early and often rank highest, with longer words favored.
"""

from __future__ import annotations

from functools import cmp_to_key

from retell.config import ScoringSettings
from retell.text.normalize import normalize

DEFAULT_SETTINGS = ScoringSettings()


def position_weight(index: int, total: int, floor: float = 0.5) -> float:
    """Linear decay from 1.0 at the first token to `floor` at the last."""
    if total <= 1:
        return 1.0
    return 1.0 - (1.0 - floor) * (index / (total - 1))


def length_weight(length: int, cap: float = 2.0, full_at: int = 10) -> float:
    """Grows linearly with token length, reaching `cap` at `full_at` characters."""
    return min(cap, 1.0 + (cap - 1.0) * length / full_at)


def rank_keywords(
    text: str | None,
    settings: ScoringSettings | None = None,
) -> list[tuple[str, float]]:
    """Rank every distinct normalized token of a text.

    Args:
        text: Source text
        settings: Scoring heuristics (defaults if omitted)

    Returns:
        (token, weighted frequency) pairs, best first. Weights within
        `keyword_tie_epsilon` of each other are ordered by token length
        (longest first) and then alphabetically.
    """
    settings = settings or DEFAULT_SETTINGS
    tokens = normalize(text)
    total = len(tokens)

    weights: dict[str, float] = {}
    for index, token in enumerate(tokens):
        weight = position_weight(index, total, settings.position_weight_floor) * length_weight(
            len(token), settings.length_weight_cap, settings.length_weight_full_at
        )
        weights[token] = weights.get(token, 0.0) + weight

    epsilon = settings.keyword_tie_epsilon

    def compare(a: tuple[str, float], b: tuple[str, float]) -> int:
        if abs(a[1] - b[1]) > epsilon:
            return -1 if a[1] > b[1] else 1
        if len(a[0]) != len(b[0]):
            return len(b[0]) - len(a[0])
        return -1 if a[0] < b[0] else (1 if a[0] > b[0] else 0)

    return sorted(weights.items(), key=cmp_to_key(compare))


def extract_keywords(
    text: str | None,
    max_keywords: int = 12,
    settings: ScoringSettings | None = None,
) -> list[str]:
    """Return the `max_keywords` highest ranked tokens of a text."""
    if max_keywords <= 0:
        return []
    return [token for token, _ in rank_keywords(text, settings)[:max_keywords]]
