"""
retell.duration - Narration time estimation.

Sizes the listening phase from the shape of the story text: spoken time
at the configured pace, a pause allowance per sentence and a fixed
buffer, never less than a per-word floor or the global minimum.
"""

from __future__ import annotations

from retell.config import NarrationSettings
from retell.text.normalize import split_sentences


def count_words(text: str | None) -> int:
    """Whitespace-delimited word count."""
    return len((text or "").split())


def estimate_duration_ms(
    text: str | None,
    words_per_minute: float = 150.0,
    speech_rate: float = 1.0,
    settings: NarrationSettings | None = None,
) -> int:
    """Estimate how long narrating a text takes, in milliseconds.

    Args:
        text: Story text
        words_per_minute: Base narration pace
        speech_rate: Narrator rate multiplier (1.0 = normal, 2.0 = twice as fast)
        settings: Pause, buffer and floor allowances (defaults if omitted)

    Returns:
        Estimated duration in whole milliseconds

    Raises:
        ValueError: If words_per_minute or speech_rate is not positive
    """
    if words_per_minute <= 0 or speech_rate <= 0:
        raise ValueError("words_per_minute and speech_rate must be positive")
    settings = settings or NarrationSettings()

    words = count_words(text)
    sentences = len(split_sentences(text))

    base_ms = (words / words_per_minute) * 60_000 / speech_rate
    total_ms = base_ms + sentences * settings.sentence_pause_ms + settings.buffer_ms
    word_floor_ms = words * settings.per_word_floor_ms

    return int(max(total_ms, word_floor_ms, settings.minimum_ms))


def estimate_for_settings(text: str | None, settings: NarrationSettings) -> int:
    """estimate_duration_ms using the pace stored in narration settings."""
    return estimate_duration_ms(text, settings.words_per_minute, settings.speech_rate, settings)
