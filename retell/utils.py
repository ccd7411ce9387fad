"""
retell.utils - Shared utility functions.

Small formatting helpers used by the CLI and the reports.
"""

from __future__ import annotations


def format_duration(seconds: float) -> str:
    """Format seconds as M:SS, or H:MM:SS past the hour.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted string (H:MM:SS if >= 1 hour, otherwise M:SS)
    """
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def get_score_class(percentage: int) -> str:
    """Get CSS/style class for a match percentage.

    Args:
        percentage: Match score (0 to 100)

    Returns:
        "high" (>= 70), "medium" (>= 40) or "low"
    """
    if percentage >= 70:
        return "high"
    elif percentage >= 40:
        return "medium"
    return "low"


def score_style(percentage: int) -> str:
    """Rich markup color for a match percentage."""
    return {"high": "green", "medium": "yellow", "low": "red"}[get_score_class(percentage)]
