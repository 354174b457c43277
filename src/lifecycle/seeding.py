from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Any, Sequence

from src.lifecycle.store import InMemoryRecordStore
from src.normalize.canonical_id import generate_record_id
from src.normalize.schema import AwardStatus, ScholarshipRecord, SelectionDecision

logger = logging.getLogger(__name__)

INITIAL_STATES = frozenset({AwardStatus.SELECTED, AwardStatus.EXCLUDED})


@dataclass(slots=True)
class SeedReport:
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    preserved: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "created": self.created,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "preserved": self.preserved,
        }


def initial_status(decision: SelectionDecision) -> AwardStatus:
    return AwardStatus.SELECTED if decision.is_selected else AwardStatus.EXCLUDED


def record_from_decision(
    decision: SelectionDecision, *, period_id: str, now: datetime | None = None
) -> ScholarshipRecord:
    student = decision.student
    return ScholarshipRecord(
        record_id=generate_record_id(student_id=student.national_id, period_id=period_id),
        student_id=student.national_id,
        period_id=period_id,
        career_id=student.career,
        faculty=student.faculty,
        average_grade=student.average_grade,
        status=initial_status(decision),
        updated_at=now or datetime.now(tz=UTC),
    )


def _seed_fields(record: ScholarshipRecord) -> tuple[Any, ...]:
    return (record.status, record.career_id, record.faculty, record.average_grade)


def seed_records(
    decisions: Sequence[SelectionDecision],
    *,
    period_id: str,
    store: InMemoryRecordStore,
    now: datetime | None = None,
) -> SeedReport:
    """Upsert one record per (student, period).

    Records still in their initial state are re-derived from the new decision;
    records that already moved through the lifecycle are left untouched.
    """

    timestamp = now or datetime.now(tz=UTC)
    report = SeedReport()
    for decision in decisions:
        fresh = record_from_decision(decision, period_id=period_id, now=timestamp)
        existing = store.find(fresh.record_id)
        if existing is None:
            store.insert(fresh)
            report.created += 1
            continue

        if existing.status not in INITIAL_STATES:
            report.preserved += 1
            continue

        if _seed_fields(existing) == _seed_fields(fresh):
            report.unchanged += 1
            continue

        store.compare_and_swap(
            replace(
                existing,
                status=fresh.status,
                career_id=fresh.career_id,
                faculty=fresh.faculty,
                average_grade=fresh.average_grade,
                updated_at=timestamp,
            ),
            existing.version,
        )
        report.updated += 1

    logger.info(
        "Seeded period=%s created=%d updated=%d unchanged=%d preserved=%d",
        period_id,
        report.created,
        report.updated,
        report.unchanged,
        report.preserved,
    )
    return report
