from __future__ import annotations

import math
import random

from src.normalize.schema import AcademicCondition, RejectionReason, StudentRecord
from src.rank.cohort_selection import decisions_to_frame, select, select_cohort, summarize_cohorts
from src.rank.policy import SelectionPolicy


def _student(
    national_id: str,
    grade: float,
    *,
    career: str = "Medicine",
    regular: bool = True,
) -> StudentRecord:
    return StudentRecord(
        national_id=national_id,
        first_name="Ana",
        last_name=f"Student {national_id}",
        university_email=f"s{national_id}@uce.edu.ec",
        faculty="Health Sciences",
        career=career,
        semester=5,
        average_grade=grade,
        academic_condition=AcademicCondition.REGULAR if regular else AcademicCondition.NON_REGULAR,
        condition_label="Regular" if regular else "No Regular",
    )


def _twenty_with_tie() -> list[StudentRecord]:
    tail = [8.0, 7.5, 7.0, 6.5, 6.0, 5.5, 5.0]
    grades = [9.0, 8.5, 8.5] + [tail[index % len(tail)] for index in range(17)]
    return [_student(f"{index:03d}", grade) for index, grade in enumerate(grades)]


def test_tie_at_cutoff_selects_every_tied_student() -> None:
    decisions = select(_twenty_with_tie())

    selected = [d for d in decisions if d.is_selected]
    assert len(selected) == 3
    assert sorted(d.student.average_grade for d in selected) == [8.5, 8.5, 9.0]
    assert {d.cutoff_grade_used for d in decisions} == {8.5}

    summary = summarize_cohorts(decisions)[0]
    assert summary.cutoff_count == 2
    assert summary.selected_count == 3
    assert summary.tie_extension == 1


def test_rejected_regular_students_are_below_cutoff() -> None:
    decisions = select(_twenty_with_tie())

    rejected = [d for d in decisions if not d.is_selected]
    assert len(rejected) == 17
    assert all(d.rejection_reason is RejectionReason.BELOW_CUTOFF for d in rejected)
    assert all(d.rejection_reason is None for d in decisions if d.is_selected)


def test_non_regular_students_are_rejected_and_not_counted() -> None:
    regulars = [_student(f"r{index}", 6.0 + index * 0.1) for index in range(10)]
    non_regulars = [_student(f"n{index}", 10.0, regular=False) for index in range(10)]

    decisions = select(non_regulars + regulars)

    by_id = {d.student.national_id: d for d in decisions}
    assert all(
        by_id[f"n{index}"].rejection_reason is RejectionReason.NOT_REGULAR for index in range(10)
    )
    assert all(not by_id[f"n{index}"].is_selected for index in range(10))
    # ceil(10 * 0.10) == 1: only the best regular student.
    assert [d.student.national_id for d in decisions if d.is_selected] == ["r9"]
    assert summarize_cohorts(decisions)[0].regular_count == 10


def test_cohort_without_regular_students_awards_nothing() -> None:
    decisions = select([_student("a", 9.9, regular=False), _student("b", 9.5, regular=False)])

    assert not any(d.is_selected for d in decisions)
    assert all(d.cutoff_grade_used is None for d in decisions)
    assert all(d.rejection_reason is RejectionReason.NOT_REGULAR for d in decisions)


def test_empty_input_returns_no_decisions() -> None:
    assert select([]) == []
    assert select_cohort([]) == []
    assert decisions_to_frame([]).empty


def test_decisions_keep_input_order_across_interleaved_cohorts() -> None:
    rows = [
        _student("1", 7.0, career="Law"),
        _student("2", 9.0, career="Medicine"),
        _student("3", 8.0, career="Law"),
        _student("4", 6.0, career="Medicine"),
    ]

    decisions = select(rows)

    assert [d.student.national_id for d in decisions] == ["1", "2", "3", "4"]
    assert [d.is_selected for d in decisions] == [False, True, True, False]


def test_cohorts_are_ranked_independently() -> None:
    small = [_student("law-top", 7.0, career="Law"), _student("law-low", 6.0, career="Law")]
    large = [_student(f"med-{index}", 9.0 - index * 0.05, career="Medicine") for index in range(40)]

    alone = {d.student.national_id: d for d in select(small)}
    together = {d.student.national_id: d for d in select(small + large)}

    assert together["law-top"] == alone["law-top"]
    assert together["law-low"] == alone["law-low"]
    assert together["law-top"].is_selected


def test_cutoff_count_avoids_float_drift() -> None:
    rows = [_student(f"{index:02d}", 9.0 - index * 0.1) for index in range(30)]

    decisions = select(rows)

    assert sum(d.is_selected for d in decisions) == 3
    assert SelectionPolicy.baseline().cutoff_count(15) == 2
    assert SelectionPolicy.baseline().cutoff_count(0) == 0


def test_selection_properties_hold_for_random_cohorts() -> None:
    rng = random.Random(20260222)
    for _ in range(50):
        size = rng.randint(1, 60)
        rows = [
            _student(
                f"{index:03d}",
                round(rng.uniform(5.0, 10.0) * 4) / 4,
                regular=rng.random() > 0.2,
            )
            for index in range(size)
        ]

        decisions = select(rows)
        regular = [d for d in decisions if d.student.is_regular]
        selected = [d for d in decisions if d.is_selected]

        if regular:
            expected_min = math.ceil(round(len(regular) * 0.10, 9))
            assert len(selected) >= expected_min
            cutoff = decisions[0].cutoff_grade_used
            boundary_ties = sum(1 for d in regular if d.student.average_grade == cutoff)
            if boundary_ties == 1:
                assert len(selected) == expected_min
        else:
            assert selected == []

        for higher in regular:
            for lower in regular:
                if higher.student.average_grade > lower.student.average_grade and lower.is_selected:
                    assert higher.is_selected

        assert select(rows) == decisions
        assert select(list(reversed(rows))) == list(reversed(decisions))


def test_parallel_cohorts_match_sequential_run() -> None:
    rows = [
        _student(f"{career}-{index}", 5.0 + (index * 7 % 50) / 10, career=career)
        for career in ("Law", "Medicine", "Nursing", "Architecture")
        for index in range(25)
    ]

    assert select(rows, max_workers=4) == select(rows)


def test_custom_quota_changes_cutoff_count() -> None:
    policy = SelectionPolicy.from_mapping({"quota_fraction": 0.25})
    rows = [_student(f"{index}", 10.0 - index) for index in range(8)]

    decisions = select(rows, policy)

    assert [d.student.national_id for d in decisions if d.is_selected] == ["0", "1"]


def test_decisions_to_frame_exposes_audit_columns() -> None:
    frame = decisions_to_frame(select(_twenty_with_tie()))

    assert len(frame) == 20
    assert int(frame["is_selected"].sum()) == 3
    assert set(frame["rejection_reason"].dropna()) == {"BELOW_CUTOFF"}
    assert (frame["cutoff_grade_used"] == 8.5).all()
