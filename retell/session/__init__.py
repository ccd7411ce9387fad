"""
retell.session - Timed practice sessions.
"""

from __future__ import annotations

from retell.session.controller import PhaseController, Session, SessionOutcome
from retell.session.phases import Phase

__all__ = ["Phase", "PhaseController", "Session", "SessionOutcome"]
