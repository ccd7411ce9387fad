"""
retell.scoring.match - Transcript match scoring.

Compares a retelling transcript against a keyword universe and against
the story's content words, then maps the weighted result through a
generosity curve into a 0-100 percentage.

Two entry points share the same core:

- score_against_extracted: keywords derived from the story text, partial
  matches by substring containment only.
- score_against_keywords: an explicit keyword list, partial matches also
  by a shared run of at least `min_common_substring` characters, with
  more weight on exact matches.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, Literal, NamedTuple

from pydantic import BaseModel, Field

from retell.config import GenerosityCurve, ScoringSettings, ScoringWeights
from retell.text.keywords import extract_keywords
from retell.text.normalize import normalize, stem, tokenize

if TYPE_CHECKING:
    from retell.stories import Story

DEFAULT_SETTINGS = ScoringSettings()


class ScoreResult(BaseModel):
    """Outcome of scoring one transcript against one story."""

    percentage: int = Field(ge=0, le=100)
    matched_keywords: list[str] = Field(default_factory=list)
    missing_keywords: list[str] = Field(default_factory=list)
    partial_keywords: list[str] = Field(default_factory=list)
    total_keywords: int = 0
    content_word_overlap: int = 0
    story_content_words: int = 0
    transcript_content_words: int = 0
    keyword_source: Literal["extracted", "explicit"] = "extracted"
    accuracy_rate: float | None = None

    @property
    def exact_keywords(self) -> list[str]:
        partial = set(self.partial_keywords)
        return [k for k in self.matched_keywords if k not in partial]


class Keyword(NamedTuple):
    """A keyword as reported (label) and as matched (stemmed form)."""

    label: str
    form: str


def longest_common_substring(a: str, b: str) -> int:
    """Length of the longest contiguous run shared by two strings."""
    if not a or not b:
        return 0
    best = 0
    previous = [0] * (len(b) + 1)
    for ca in a:
        current = [0] * (len(b) + 1)
        for j, cb in enumerate(b, start=1):
            if ca == cb:
                current[j] = previous[j - 1] + 1
                if current[j] > best:
                    best = current[j]
        previous = current
    return best


def apply_generosity_curve(score: float, curve: GenerosityCurve | None = None) -> float:
    """Remap a base score so that mid-range recall reads more favorably.

    Below the low breakpoint the score is unchanged. Between the
    breakpoints it grows by `low_factor`, and above the high breakpoint by
    `high_factor`. The segments join end to end, so the curve is
    continuous and non-decreasing.
    """
    curve = curve or DEFAULT_SETTINGS.curve
    low, high = curve.low_breakpoint, curve.high_breakpoint
    if score < low:
        return score
    if score < high:
        return low + (score - low) * curve.low_factor
    return low + (high - low) * curve.low_factor + (score - high) * curve.high_factor


def to_percentage(score: float) -> int:
    """Clamp a 0-1 score to [0, 100] and round half up."""
    return int(math.floor(min(100.0, max(0.0, score * 100.0)) + 0.5))


def explicit_universe(keywords: Iterable[str]) -> list[Keyword]:
    """Clean an explicit keyword list into reportable, matchable keywords.

    Labels keep their original casing, trimmed. Blanks and keywords that
    repeat an earlier one ignoring case are dropped. The match form stems
    each word of the lowercased label.
    """
    universe: list[Keyword] = []
    seen: set[str] = set()
    for raw in keywords:
        label = (raw or "").strip()
        key = label.lower()
        if not key or key in seen:
            continue
        form = " ".join(stem(word) for word in tokenize(key))
        if not form:
            continue
        seen.add(key)
        universe.append(Keyword(label, form))
    return universe


def has_explicit_keywords(keywords: Iterable[str] | None) -> bool:
    return bool(explicit_universe(keywords or []))


def _exact_match(keyword: Keyword, tokens: set[str]) -> bool:
    if keyword.form in tokens:
        return True
    parts = keyword.form.split()
    return len(parts) > 1 and all(part in tokens for part in parts)


def _partial_match(
    keyword: Keyword,
    tokens: set[str],
    min_common_substring: int | None,
) -> bool:
    for token in tokens:
        if keyword.form in token or token in keyword.form:
            return True
        if (
            min_common_substring is not None
            and longest_common_substring(keyword.form, token) >= min_common_substring
        ):
            return True
    return False


def classify_keywords(
    universe: Sequence[Keyword],
    tokens: set[str],
    min_common_substring: int | None = None,
) -> tuple[list[Keyword], list[Keyword], list[Keyword]]:
    """Split a keyword universe into exact, partial and missing buckets.

    Every keyword lands in exactly one bucket. Partial matching is only
    tried for keywords without an exact match.

    Args:
        universe: Keywords to classify
        tokens: Normalized transcript token set
        min_common_substring: Also accept a shared run of this many
            characters as a partial match (None: containment only)
    """
    exact: list[Keyword] = []
    partial: list[Keyword] = []
    missing: list[Keyword] = []
    for keyword in universe:
        if _exact_match(keyword, tokens):
            exact.append(keyword)
        elif _partial_match(keyword, tokens, min_common_substring):
            partial.append(keyword)
        else:
            missing.append(keyword)
    return exact, partial, missing


def _score(
    story: str | None,
    transcript: str | None,
    universe: Sequence[Keyword],
    weights: ScoringWeights,
    min_common_substring: int | None,
    settings: ScoringSettings,
    source: Literal["extracted", "explicit"],
) -> ScoreResult:
    story_tokens = normalize(story)
    user_tokens = normalize(transcript)
    story_set = set(story_tokens)
    user_set = set(user_tokens)

    exact, partial, missing = classify_keywords(universe, user_set, min_common_substring)

    size = len(universe)
    exact_score = len(exact) / size if size else 0.0
    partial_score = settings.partial_credit * len(partial) / size if size else 0.0

    overlap = len(story_set & user_set)
    content_score = overlap / len(story_set) if story_set else 0.0

    length_ratio = min(1.0, len(user_tokens) / len(story_tokens)) if story_tokens else 0.0
    length_bonus = max(0.0, length_ratio - settings.length_bonus_threshold) * (
        settings.length_bonus_factor
    )

    base = (
        exact_score * weights.exact
        + partial_score * weights.partial
        + content_score * weights.content
        + length_bonus
    )
    percentage = to_percentage(apply_generosity_curve(base, settings.curve))

    accuracy = None
    if source == "explicit":
        accuracy = round((len(exact) + len(partial)) / size, 3) if size else 0.0

    return ScoreResult(
        percentage=percentage,
        matched_keywords=sorted((k.label for k in exact + partial), key=str.lower),
        missing_keywords=sorted((k.label for k in missing), key=str.lower),
        partial_keywords=sorted((k.label for k in partial), key=str.lower),
        total_keywords=size,
        content_word_overlap=overlap,
        story_content_words=len(story_set),
        transcript_content_words=len(user_set),
        keyword_source=source,
        accuracy_rate=accuracy,
    )


def score_against_extracted(
    story: str | None,
    transcript: str | None,
    settings: ScoringSettings | None = None,
) -> ScoreResult:
    """Score a transcript against keywords extracted from the story text."""
    settings = settings or DEFAULT_SETTINGS
    keywords = extract_keywords(story, settings.extracted_keyword_cap, settings)
    universe = [Keyword(k, k) for k in keywords]
    return _score(
        story,
        transcript,
        universe,
        settings.generic_weights,
        None,
        settings,
        "extracted",
    )


def score_against_keywords(
    story: str | None,
    transcript: str | None,
    keywords: Iterable[str],
    settings: ScoringSettings | None = None,
) -> ScoreResult:
    """Score a transcript against an explicit keyword list."""
    settings = settings or DEFAULT_SETTINGS
    return _score(
        story,
        transcript,
        explicit_universe(keywords),
        settings.explicit_weights,
        settings.min_common_substring,
        settings,
        "explicit",
    )


def score_story(
    story: Story,
    transcript: str | None,
    settings: ScoringSettings | None = None,
) -> ScoreResult:
    """Score against the story's own keywords, or extracted ones if it has none."""
    if has_explicit_keywords(story.keywords):
        return score_against_keywords(story.text, transcript, story.keywords, settings)
    return score_against_extracted(story.text, transcript, settings)
