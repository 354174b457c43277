from __future__ import annotations

import concurrent.futures
import logging
from collections import defaultdict
from typing import Sequence

import pandas as pd

from src.normalize.schema import (
    CohortSummary,
    RejectionReason,
    SelectionDecision,
    StudentRecord,
)
from src.rank.policy import SelectionPolicy

logger = logging.getLogger(__name__)

DECISION_COLUMNS = [
    "national_id",
    "first_name",
    "last_name",
    "university_email",
    "faculty",
    "career",
    "semester",
    "average_grade",
    "academic_condition",
    "is_selected",
    "cutoff_grade_used",
    "rejection_reason",
]


def group_cohorts(rows: Sequence[StudentRecord]) -> dict[str, list[int]]:
    """Map each career to the input positions of its students, in first-seen order."""

    cohorts: dict[str, list[int]] = defaultdict(list)
    for index, row in enumerate(rows):
        cohorts[row.career].append(index)
    return dict(cohorts)


def cohort_cutoff(
    cohort: Sequence[StudentRecord], policy: SelectionPolicy
) -> tuple[int, float | None]:
    regular_grades = sorted(
        (student.average_grade for student in cohort if student.is_regular),
        reverse=True,
    )
    cutoff_count = policy.cutoff_count(len(regular_grades))
    if cutoff_count == 0:
        return 0, None
    return cutoff_count, regular_grades[cutoff_count - 1]


def select_cohort(
    cohort: Sequence[StudentRecord], policy: SelectionPolicy | None = None
) -> list[SelectionDecision]:
    effective_policy = policy or SelectionPolicy.baseline()
    _, cutoff_grade = cohort_cutoff(cohort, effective_policy)

    decisions: list[SelectionDecision] = []
    for student in cohort:
        if not student.is_regular:
            decisions.append(
                SelectionDecision(student, False, cutoff_grade, RejectionReason.NOT_REGULAR)
            )
        elif cutoff_grade is not None and student.average_grade >= cutoff_grade:
            decisions.append(SelectionDecision(student, True, cutoff_grade, None))
        else:
            decisions.append(
                SelectionDecision(student, False, cutoff_grade, RejectionReason.BELOW_CUTOFF)
            )
    return decisions


def select(
    rows: Sequence[StudentRecord],
    policy: SelectionPolicy | None = None,
    *,
    max_workers: int | None = None,
) -> list[SelectionDecision]:
    """Decide every row against its own career cohort; output keeps input order."""

    effective_policy = policy or SelectionPolicy.baseline()
    cohorts = group_cohorts(rows)
    decisions: list[SelectionDecision | None] = [None] * len(rows)

    def _run(positions: list[int]) -> tuple[list[int], list[SelectionDecision]]:
        return positions, select_cohort([rows[index] for index in positions], effective_policy)

    if max_workers is not None and max_workers > 1 and len(cohorts) > 1:
        with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as executor:
            results = list(executor.map(_run, cohorts.values()))
    else:
        results = [_run(positions) for positions in cohorts.values()]

    for positions, cohort_decisions in results:
        for index, decision in zip(positions, cohort_decisions):
            decisions[index] = decision

    for summary in summarize_cohorts([d for d in decisions if d is not None], effective_policy):
        logger.info(
            "Cohort=%s total=%d regular=%d cutoff_count=%d cutoff_grade=%s selected=%d",
            summary.career,
            summary.total_count,
            summary.regular_count,
            summary.cutoff_count,
            summary.cutoff_grade,
            summary.selected_count,
        )
    return [decision for decision in decisions if decision is not None]


def summarize_cohorts(
    decisions: Sequence[SelectionDecision], policy: SelectionPolicy | None = None
) -> list[CohortSummary]:
    effective_policy = policy or SelectionPolicy.baseline()
    by_career: dict[str, list[SelectionDecision]] = defaultdict(list)
    for decision in decisions:
        by_career[decision.student.career].append(decision)

    summaries: list[CohortSummary] = []
    for career in sorted(by_career):
        cohort_decisions = by_career[career]
        regular_count = sum(1 for d in cohort_decisions if d.student.is_regular)
        summaries.append(
            CohortSummary(
                career=career,
                faculty=cohort_decisions[0].student.faculty,
                total_count=len(cohort_decisions),
                regular_count=regular_count,
                cutoff_count=effective_policy.cutoff_count(regular_count),
                cutoff_grade=cohort_decisions[0].cutoff_grade_used,
                selected_count=sum(1 for d in cohort_decisions if d.is_selected),
            )
        )
    return summaries


def decisions_to_frame(decisions: Sequence[SelectionDecision]) -> pd.DataFrame:
    if not decisions:
        return pd.DataFrame(columns=DECISION_COLUMNS)

    rows = [
        {
            "national_id": d.student.national_id,
            "first_name": d.student.first_name,
            "last_name": d.student.last_name,
            "university_email": d.student.university_email,
            "faculty": d.student.faculty,
            "career": d.student.career,
            "semester": d.student.semester,
            "average_grade": d.student.average_grade,
            "academic_condition": d.student.academic_condition.value,
            "is_selected": d.is_selected,
            "cutoff_grade_used": d.cutoff_grade_used,
            "rejection_reason": d.rejection_reason.value if d.rejection_reason else None,
        }
        for d in decisions
    ]
    return pd.DataFrame(rows, columns=DECISION_COLUMNS)
