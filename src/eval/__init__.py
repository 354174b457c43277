"""Program metrics over award records and selection runs."""

from src.eval.metrics import grade_averages, program_metrics, selection_breakdown, status_counts

__all__ = [
    "grade_averages",
    "program_metrics",
    "selection_breakdown",
    "status_counts",
]
