"""
retell.reports.history - Practice history report.

Lists every recorded run with its score, plus per-story bests.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any

from retell.history import HistoryStore, PracticeRecord
from retell.reports.generator import ReportGenerator


def best_by_story(records: list[PracticeRecord]) -> list[dict[str, Any]]:
    """Best score and attempt count per story, best first."""
    stats: dict[int, dict[str, Any]] = {}
    for record in records:
        entry = stats.setdefault(
            record.story_id, {"story_id": record.story_id, "best": 0, "attempts": 0}
        )
        entry["best"] = max(entry["best"], record.score)
        entry["attempts"] += 1
    return sorted(stats.values(), key=lambda e: (-e["best"], e["story_id"]))


def generate_history_report(
    store: HistoryStore,
    output_path: Path,
    title: str = "Retell practice history",
    open_browser: bool = False,
) -> Path:
    """Render the practice history to an HTML file.

    Args:
        store: History to report on
        output_path: Destination HTML path
        title: Page title
        open_browser: Whether to open the report afterwards

    Returns:
        Path to generated report
    """
    records = store.load()
    data = {
        "title": title,
        "generated_date": datetime.now().strftime("%Y-%m-%d %H:%M"),
        "summary": store.summary(),
        "records": [
            {
                "timestamp": r.timestamp.strftime("%Y-%m-%d %H:%M"),
                "story_id": r.story_id,
                "score": r.score,
                "keywords": f"{r.matched}/{r.total_keywords}",
            }
            for r in reversed(records)
        ],
        "stories": best_by_story(records),
    }

    generator = ReportGenerator()
    result_path = generator.render("history.html", data, output_path)

    if open_browser:
        generator.open_in_browser(result_path)

    return result_path
