"""
retell.text - Text normalization and keyword extraction.
"""

from __future__ import annotations

from retell.text.keywords import extract_keywords, rank_keywords
from retell.text.normalize import content_words, normalize, split_sentences, stem

__all__ = [
    "content_words",
    "extract_keywords",
    "normalize",
    "rank_keywords",
    "split_sentences",
    "stem",
]
