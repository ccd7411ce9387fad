"""
retell.session.phases - Session phases and their legal transitions.
"""

from __future__ import annotations

from enum import Enum


class Phase(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    PREP = "prep"
    SPEAKING = "speaking"
    EVALUATING = "evaluating"
    RESULT = "result"

    @property
    def label(self) -> str:
        return PHASE_LABELS[self]

    @property
    def in_progress(self) -> bool:
        return self in IN_PROGRESS


PHASE_LABELS: dict[Phase, str] = {
    Phase.IDLE: "Ready",
    Phase.LISTENING: "Listening to story",
    Phase.PREP: "Prepare",
    Phase.SPEAKING: "Speak / retell",
    Phase.EVALUATING: "Evaluating",
    Phase.RESULT: "Result",
}

IN_PROGRESS: frozenset[Phase] = frozenset({Phase.LISTENING, Phase.PREP, Phase.SPEAKING})

TRANSITIONS: dict[Phase, frozenset[Phase]] = {
    Phase.IDLE: frozenset({Phase.LISTENING}),
    Phase.LISTENING: frozenset({Phase.PREP, Phase.IDLE}),
    Phase.PREP: frozenset({Phase.SPEAKING, Phase.IDLE}),
    Phase.SPEAKING: frozenset({Phase.EVALUATING, Phase.IDLE}),
    Phase.EVALUATING: frozenset({Phase.RESULT}),
    Phase.RESULT: frozenset({Phase.IDLE}),
}


def can_transition(current: Phase, target: Phase) -> bool:
    """Whether moving from `current` to `target` is a legal transition."""
    return target in TRANSITIONS[current]
