"""
retell.text.normalize - Tokenizing, stemming and stopword filtering.

normalize() is the single entry point used by keyword extraction and
scoring. Stemming is a lookup of irregular forms followed by an ordered
list of suffix rules; the first rule whose result is settled wins.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from typing import NamedTuple

STOPWORDS: frozenset[str] = frozenset(
    {
        "a", "an", "the", "and", "or", "but", "if", "then", "than", "that",
        "this", "those", "these", "there", "is", "are", "was", "were", "be",
        "been", "being", "am", "do", "does", "did", "done", "doing", "have",
        "has", "had", "for", "to", "of", "in", "on", "at", "by", "with", "as",
        "from", "it", "its", "into", "out", "about", "over", "after", "he",
        "she", "they", "we", "you", "i", "me", "him", "her", "them", "us",
        "my", "your", "our", "their", "his", "hers", "ours", "theirs", "so",
        "very", "just", "also", "too", "much", "many", "more", "most", "some",
        "any", "all", "few", "several", "such", "up", "down", "before",
        "again", "once", "when", "while", "where", "why", "how", "not", "no",
        "what", "which", "who", "whom", "will", "would", "can", "could",
        "should", "shall", "may", "might", "must", "each", "other", "only",
        "own", "same", "because", "until", "off", "under", "here", "now",
    }
)

# Irregular plurals and past tenses. Every value must itself be a stable stem.
IRREGULAR_FORMS: dict[str, str] = {
    "children": "child",
    "men": "man",
    "women": "woman",
    "people": "person",
    "mice": "mouse",
    "feet": "foot",
    "teeth": "tooth",
    "geese": "goose",
    "wolves": "wolf",
    "knives": "knife",
    "went": "go",
    "gone": "go",
    "goes": "go",
    "does": "do",
    "ran": "run",
    "came": "come",
    "saw": "see",
    "seen": "see",
    "took": "take",
    "taken": "take",
    "gave": "give",
    "given": "give",
    "made": "make",
    "found": "find",
    "knew": "know",
    "known": "know",
    "told": "tell",
    "said": "say",
    "thought": "think",
    "brought": "bring",
    "bought": "buy",
    "caught": "catch",
    "taught": "teach",
    "felt": "feel",
    "left": "leave",
    "kept": "keep",
    "slept": "sleep",
    "met": "meet",
    "sat": "sit",
    "stood": "stand",
    "wrote": "write",
    "written": "write",
    "spoke": "speak",
    "spoken": "speak",
    "rode": "ride",
    "drove": "drive",
    "ate": "eat",
    "eaten": "eat",
    "fell": "fall",
    "fallen": "fall",
    "flew": "fly",
    "grew": "grow",
    "threw": "throw",
    "drew": "draw",
    "began": "begin",
    "begun": "begin",
    "won": "win",
    "lost": "lose",
    "sold": "sell",
    "heard": "hear",
    "held": "hold",
    "paid": "pay",
    "built": "build",
    "sent": "send",
    "spent": "spend",
    "broke": "break",
    "broken": "break",
    "chose": "choose",
    "forgot": "forget",
    "became": "become",
}


class SuffixRule(NamedTuple):
    suffix: str
    replacement: str
    min_stem: int
    unless: tuple[str, ...] = ()


# Ordered: longer and more specific endings first.
SUFFIX_RULES: tuple[SuffixRule, ...] = (
    SuffixRule("inesses", "y", 2),
    SuffixRule("iness", "y", 2),
    SuffixRule("nesses", "", 3),
    SuffixRule("ingly", "", 3),
    SuffixRule("edly", "", 3),
    SuffixRule("ings", "", 3),
    SuffixRule("ments", "", 4),
    SuffixRule("ment", "", 4),
    SuffixRule("ness", "", 3),
    SuffixRule("sses", "ss", 1),
    SuffixRule("shes", "sh", 1),
    SuffixRule("ches", "ch", 1),
    SuffixRule("xes", "x", 1),
    SuffixRule("ies", "y", 2),
    SuffixRule("ied", "y", 2),
    SuffixRule("ing", "", 3),
    SuffixRule("ly", "", 3, ("ily",)),
    SuffixRule("ed", "", 3, ("eed",)),
    SuffixRule("s", "", 3, ("ss", "us", "is")),
)

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")


def _applicable_rules(token: str) -> Iterator[SuffixRule]:
    for rule in SUFFIX_RULES:
        if not token.endswith(rule.suffix):
            continue
        if len(token) - len(rule.suffix) < rule.min_stem:
            continue
        if any(token.endswith(ending) for ending in rule.unless):
            continue
        yield rule


def _is_settled(token: str) -> bool:
    return token not in IRREGULAR_FORMS and next(_applicable_rules(token), None) is None


def stem(token: str) -> str:
    """Reduce a lowercase token to a heuristic base form.

    Irregular forms are looked up first. Otherwise the first matching
    suffix rule is applied once, provided its result is already a settled
    stem. Compound endings such as "-ingly" and "-nesses" have their own
    rules so the first match normally settles. A rule that would still
    leave a strippable ending is skipped rather than chained, which keeps
    stem(stem(t)) == stem(t); such a token may come back unchanged.
    """
    if token in IRREGULAR_FORMS:
        return IRREGULAR_FORMS[token]
    for rule in _applicable_rules(token):
        candidate = token[: len(token) - len(rule.suffix)] + rule.replacement
        if _is_settled(candidate):
            return candidate
    return token


def tokenize(text: str | None) -> list[str]:
    """Lowercase, replace anything outside [a-z0-9] with spaces, and split."""
    return _NON_ALNUM.sub(" ", (text or "").lower()).split()


def normalize(text: str | None) -> list[str]:
    """Tokenize, stem and drop stopwords.

    Args:
        text: Raw text (None is treated as empty)

    Returns:
        Stemmed content tokens in their original order, duplicates kept
    """
    tokens = []
    for raw in tokenize(text):
        token = stem(raw)
        if token and token not in STOPWORDS:
            tokens.append(token)
    return tokens


def content_words(text: str | None) -> set[str]:
    """Distinct normalized tokens of a text."""
    return set(normalize(text))


def split_sentences(text: str | None) -> list[str]:
    """Split text on sentence-ending punctuation followed by whitespace."""
    cleaned = re.sub(r"\s+", " ", text or "").strip()
    if not cleaned:
        return []
    return [part for part in _SENTENCE_END.split(cleaned) if part]
