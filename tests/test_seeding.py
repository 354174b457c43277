from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime

from src.lifecycle.seeding import record_from_decision, seed_records
from src.lifecycle.store import InMemoryRecordStore
from src.normalize.canonical_id import generate_record_id
from src.normalize.schema import (
    AcademicCondition,
    AwardStatus,
    RejectionReason,
    SelectionDecision,
    StudentRecord,
)

PERIOD = "2025-2026-S1"
NOW = datetime(2026, 3, 1, tzinfo=UTC)


def _decision(national_id: str, *, selected: bool, grade: float = 9.0) -> SelectionDecision:
    student = StudentRecord(
        national_id=national_id,
        first_name="Luis",
        last_name="Mena",
        university_email=f"{national_id}@uce.edu.ec",
        faculty="Law School",
        career="Law",
        semester=3,
        average_grade=grade,
        academic_condition=AcademicCondition.REGULAR,
    )
    return SelectionDecision(
        student=student,
        is_selected=selected,
        cutoff_grade_used=9.0,
        rejection_reason=None if selected else RejectionReason.BELOW_CUTOFF,
    )


def test_record_from_decision_uses_stable_identity() -> None:
    record = record_from_decision(_decision("100", selected=True), period_id=PERIOD, now=NOW)

    assert record.record_id == generate_record_id(student_id="100", period_id=PERIOD)
    assert record.status is AwardStatus.SELECTED
    assert record.version == 1
    assert record.updated_at == NOW


def test_seed_records_materializes_selected_and_excluded() -> None:
    store = InMemoryRecordStore()

    report = seed_records(
        [_decision("100", selected=True), _decision("200", selected=False, grade=7.0)],
        period_id=PERIOD,
        store=store,
        now=NOW,
    )

    assert report.to_dict() == {"created": 2, "updated": 0, "unchanged": 0, "preserved": 0}
    assert [record.status for record in store.list(period_id=PERIOD)] == [
        AwardStatus.SELECTED,
        AwardStatus.EXCLUDED,
    ]


def test_reimport_upserts_without_duplicates() -> None:
    store = InMemoryRecordStore()
    seed_records([_decision("100", selected=True)], period_id=PERIOD, store=store, now=NOW)

    same = seed_records([_decision("100", selected=True)], period_id=PERIOD, store=store, now=NOW)
    flipped = seed_records(
        [_decision("100", selected=False, grade=6.5)], period_id=PERIOD, store=store, now=NOW
    )

    assert len(store) == 1
    assert same.unchanged == 1
    assert flipped.updated == 1
    record = store.list()[0]
    assert record.status is AwardStatus.EXCLUDED
    assert record.average_grade == 6.5
    assert record.version == 2


def test_reimport_preserves_records_already_in_progress() -> None:
    store = InMemoryRecordStore()
    seed_records([_decision("100", selected=True)], period_id=PERIOD, store=store, now=NOW)
    current = store.list()[0]
    store.compare_and_swap(replace(current, status=AwardStatus.DOCS_UPLOADED), current.version)

    report = seed_records(
        [_decision("100", selected=False, grade=5.0)], period_id=PERIOD, store=store, now=NOW
    )

    assert report.preserved == 1
    record = store.list()[0]
    assert record.status is AwardStatus.DOCS_UPLOADED
    assert record.average_grade == 9.0


def test_same_student_in_new_period_gets_new_record() -> None:
    store = InMemoryRecordStore()
    seed_records([_decision("100", selected=True)], period_id=PERIOD, store=store, now=NOW)
    seed_records([_decision("100", selected=True)], period_id="2025-2026-S2", store=store, now=NOW)

    assert len(store) == 2
    assert len(store.list(period_id="2025-2026-S2")) == 1
