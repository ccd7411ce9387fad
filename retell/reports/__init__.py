"""
retell.reports - HTML report generation.

Generates a self-contained practice history report.
"""

from __future__ import annotations

from retell.reports.generator import ReportGenerator
from retell.reports.history import generate_history_report

__all__ = ["ReportGenerator", "generate_history_report"]
