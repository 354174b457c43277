from __future__ import annotations

import pytest

from src.eval.metrics import grade_averages, program_metrics, selection_breakdown, status_counts
from src.normalize.schema import (
    AcademicCondition,
    AwardStatus,
    RejectionReason,
    ScholarshipRecord,
    SelectionDecision,
    StudentRecord,
)
from src.rank.policy import SelectionPolicy


def _record(
    record_id: str,
    status: AwardStatus,
    *,
    grade: float = 9.0,
    faculty: str = "Engineering",
    career: str = "Civil",
) -> ScholarshipRecord:
    return ScholarshipRecord(
        record_id=record_id,
        student_id=record_id,
        period_id="P1",
        career_id=career,
        faculty=faculty,
        average_grade=grade,
        status=status,
    )


def _records() -> list[ScholarshipRecord]:
    return [
        _record("a", AwardStatus.PAID, grade=9.6),
        _record("b", AwardStatus.PAID, grade=9.4, faculty="Medicine", career="Nursing"),
        _record("c", AwardStatus.DOCS_UPLOADED, grade=9.0),
        _record("d", AwardStatus.CHANGES_REQUESTED, grade=8.8, faculty="Medicine", career="Nursing"),
        _record("e", AwardStatus.READY_FOR_PAYMENT, grade=9.2),
        _record("f", AwardStatus.EXCLUDED, grade=6.0),
    ]


def test_status_counts_lists_every_status() -> None:
    counts = status_counts(_records())

    assert set(counts) == {status.value for status in AwardStatus}
    assert counts["PAID"] == 2
    assert counts["CONTRACT_GENERATED"] == 0


def test_program_metrics_ignores_excluded_records() -> None:
    metrics = program_metrics(_records())

    assert metrics["total"] == 5
    assert metrics["paid"] == 2
    assert metrics["budget_used"] == 800.0
    assert metrics["budget_remaining"] == 2_499_200.0
    assert metrics["acceptance_rate"] == 40.0
    assert metrics["critical_cases"] == 1
    assert metrics["status_counts"]["EXCLUDED"] == 0
    assert metrics["work_queues"] == {"pending_docs": 1, "pending_contracts": 0, "ready_to_pay": 1}
    assert [stage["count"] for stage in metrics["funnel"]] == [5, 1, 1, 2]


def test_program_metrics_uses_policy_amounts() -> None:
    policy = SelectionPolicy.from_mapping({"award_amount": 1000, "budget_total": 1500})

    metrics = program_metrics(_records(), policy)

    assert metrics["budget_used"] == 2000.0
    assert metrics["budget_remaining"] == 0.0


def test_program_metrics_on_empty_program() -> None:
    metrics = program_metrics([])

    assert metrics["total"] == 0
    assert metrics["acceptance_rate"] == 0.0
    assert metrics["faculties"] == []


def test_grade_averages_sort_by_mean_descending() -> None:
    averages = grade_averages(_records()[:5], by="faculty")

    assert averages == [
        {"name": "Engineering", "average": 9.27, "count": 3},
        {"name": "Medicine", "average": 9.1, "count": 2},
    ]
    with pytest.raises(ValueError):
        grade_averages(_records(), by="status")


def test_selection_breakdown_counts_reasons() -> None:
    def _decision(selected: bool, reason: RejectionReason | None) -> SelectionDecision:
        student = StudentRecord(
            national_id="1",
            first_name="A",
            last_name="B",
            university_email="a@uce.edu.ec",
            faculty="Engineering",
            career="Civil",
            semester=1,
            average_grade=8.0,
            academic_condition=AcademicCondition.REGULAR,
        )
        return SelectionDecision(student, selected, 8.0, reason)

    breakdown = selection_breakdown(
        [
            _decision(True, None),
            _decision(False, RejectionReason.BELOW_CUTOFF),
            _decision(False, RejectionReason.BELOW_CUTOFF),
            _decision(False, RejectionReason.NOT_REGULAR),
        ]
    )

    assert breakdown["selected"] == 1
    assert breakdown["selection_rate"] == 0.25
    assert breakdown["rejection_reasons"] == {"BELOW_CUTOFF": 2, "NOT_REGULAR": 1}
