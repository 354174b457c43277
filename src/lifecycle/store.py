from __future__ import annotations

import threading
from dataclasses import replace
from typing import Iterable, Protocol

from src.lifecycle.errors import ConcurrentModification, RecordNotFound
from src.normalize.schema import ScholarshipRecord


class RecordStore(Protocol):
    def get(self, record_id: str) -> ScholarshipRecord: ...

    def compare_and_swap(
        self, record: ScholarshipRecord, expected_version: int
    ) -> ScholarshipRecord: ...


class InMemoryRecordStore:
    """Versioned record storage with compare-and-swap writes."""

    def __init__(self, records: Iterable[ScholarshipRecord] = ()) -> None:
        self._records: dict[str, ScholarshipRecord] = {}
        self._lock = threading.Lock()
        for record in records:
            self._records[record.record_id] = record

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def get(self, record_id: str) -> ScholarshipRecord:
        with self._lock:
            record = self._records.get(record_id)
        if record is None:
            raise RecordNotFound(record_id)
        return record

    def find(self, record_id: str) -> ScholarshipRecord | None:
        with self._lock:
            return self._records.get(record_id)

    def list(self, *, period_id: str | None = None) -> list[ScholarshipRecord]:
        with self._lock:
            records = list(self._records.values())
        if period_id is not None:
            records = [record for record in records if record.period_id == period_id]
        return sorted(records, key=lambda item: (item.period_id, item.career_id, item.student_id))

    def insert(self, record: ScholarshipRecord) -> ScholarshipRecord:
        with self._lock:
            if record.record_id in self._records:
                current = self._records[record.record_id]
                raise ConcurrentModification(record.record_id, 0, current.version)
            self._records[record.record_id] = record
            return record

    def compare_and_swap(
        self, record: ScholarshipRecord, expected_version: int
    ) -> ScholarshipRecord:
        with self._lock:
            current = self._records.get(record.record_id)
            if current is None:
                raise RecordNotFound(record.record_id)
            if current.version != expected_version:
                raise ConcurrentModification(record.record_id, expected_version, current.version)
            stored = replace(record, version=expected_version + 1)
            self._records[record.record_id] = stored
            return stored
