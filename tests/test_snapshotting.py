from __future__ import annotations

import json
from datetime import UTC, date, datetime
from pathlib import Path

import pandas as pd

from src.io.snapshotting import (
    build_and_write_snapshot,
    build_delta,
    get_latest_snapshot_path,
    load_evidence_registry,
    load_record_store,
    save_evidence_registry,
    save_record_store,
)
from src.lifecycle.evidence import InMemoryEvidenceRegistry
from src.lifecycle.machine import apply_transition
from src.lifecycle.states import ActorRole, LifecycleAction
from src.lifecycle.store import InMemoryRecordStore
from src.normalize.schema import AwardStatus, DocumentType, ScholarshipRecord


def _decision_row(national_id: str, *, selected: bool, grade: float, career: str = "Law") -> dict:
    return {
        "national_id": national_id,
        "first_name": "Eva",
        "last_name": "Paz",
        "university_email": f"{national_id}@uce.edu.ec",
        "faculty": "Law School",
        "career": career,
        "semester": 4,
        "average_grade": grade,
        "academic_condition": "REGULAR",
        "is_selected": selected,
        "cutoff_grade_used": 9.0,
        "rejection_reason": None if selected else "BELOW_CUTOFF",
    }


def test_build_delta_reports_added_removed_and_tracked_field_changes() -> None:
    prior_df = pd.DataFrame(
        [
            {"record_id": "same", "is_selected": True, "average_grade": 9.0, "career": "Law", "rejection_reason": None},
            {"record_id": "dropped", "is_selected": True, "average_grade": 9.2, "career": "Law", "rejection_reason": None},
        ]
    )
    current_df = pd.DataFrame(
        [
            {"record_id": "same", "is_selected": True, "average_grade": 9.4, "career": "Law", "rejection_reason": None},
            {"record_id": "dropped", "is_selected": False, "average_grade": 8.0, "career": "Law", "rejection_reason": "BELOW_CUTOFF"},
            {"record_id": "new", "is_selected": True, "average_grade": 9.8, "career": "Law", "rejection_reason": None},
        ]
    )

    delta = build_delta(current_df=current_df, prior_df=prior_df)

    assert [entry["record_id"] for entry in delta["added"]] == ["new"]
    assert [entry["record_id"] for entry in delta["removed"]] == ["dropped"]
    changed = {entry["record_id"]: entry["fields_changed"] for entry in delta["changed"]}
    assert changed["same"] == {"average_grade": {"old": 9.0, "new": 9.4}}
    assert changed["dropped"]["is_selected"] == {"old": True, "new": False}
    assert changed["dropped"]["rejection_reason"] == {"old": None, "new": "BELOW_CUTOFF"}


def test_build_delta_without_prior_marks_all_selected_as_added() -> None:
    current_df = pd.DataFrame(
        [
            {"record_id": "a", "is_selected": True, "average_grade": 9.0, "career": "Law", "rejection_reason": None},
            {"record_id": "b", "is_selected": False, "average_grade": 7.0, "career": "Law", "rejection_reason": "BELOW_CUTOFF"},
        ]
    )

    delta = build_delta(current_df, None)

    assert [entry["record_id"] for entry in delta["added"]] == ["a"]
    assert delta["removed"] == []
    assert delta["changed"] == []


def test_build_and_write_snapshot_diffs_against_prior_run(tmp_path: Path) -> None:
    first = pd.DataFrame([_decision_row("1", selected=True, grade=9.5), _decision_row("2", selected=False, grade=8.0)])
    second = pd.DataFrame([_decision_row("1", selected=False, grade=8.0), _decision_row("2", selected=True, grade=9.6)])

    build_and_write_snapshot(first, period_id="P1", processed_dir=tmp_path, run_date=date(2026, 3, 1))
    snapshot_path, changes_path, delta = build_and_write_snapshot(
        second, period_id="P1", processed_dir=tmp_path, run_date="20260302"
    )

    assert snapshot_path.name == "selection_snapshot_20260302.parquet"
    assert get_latest_snapshot_path(tmp_path) == snapshot_path
    assert [entry["national_id"] for entry in delta["added"]] == ["2"]
    assert [entry["national_id"] for entry in delta["removed"]] == ["1"]
    persisted = json.loads(changes_path.read_text(encoding="utf-8"))
    assert len(persisted["changed"]) == 2

    snapshot = pd.read_parquet(snapshot_path)
    assert set(snapshot["period_id"]) == {"P1"}
    assert snapshot["record_id"].is_unique


def test_record_store_round_trips_through_parquet(tmp_path: Path) -> None:
    paid = ScholarshipRecord(
        record_id="rec-1",
        student_id="1712345678",
        period_id="P1",
        career_id="Law",
        faculty="Law School",
        average_grade=9.5,
        status=AwardStatus.PAID,
        bank_account_number="2200112233",
        payment_date=date(2026, 3, 2),
        version=7,
        updated_at=datetime(2026, 3, 2, 10, 0, tzinfo=UTC),
    )
    rejected = ScholarshipRecord(
        record_id="rec-2",
        student_id="0912345678",
        period_id="P1",
        career_id="Law",
        faculty="Law School",
        average_grade=9.1,
        status=AwardStatus.CHANGES_REQUESTED,
        rejection_reason="Blurry scan",
        rejected_evidence_version=1,
        version=3,
    )

    save_record_store(InMemoryRecordStore([paid, rejected]), tmp_path)
    loaded = load_record_store(tmp_path)

    assert len(loaded) == 2
    restored_paid = loaded.get("rec-1")
    assert restored_paid.status is AwardStatus.PAID
    assert restored_paid.payment_date == date(2026, 3, 2)
    assert restored_paid.version == 7
    assert restored_paid.rejection_reason is None
    restored_rejected = loaded.get("rec-2")
    assert restored_rejected.rejection_reason == "Blurry scan"
    assert restored_rejected.rejected_evidence_version == 1
    assert restored_rejected.payment_date is None


def test_load_record_store_without_file_is_empty(tmp_path: Path) -> None:
    assert len(load_record_store(tmp_path)) == 0


def test_evidence_versions_survive_a_restart(tmp_path: Path) -> None:
    registry = InMemoryEvidenceRegistry()
    record = ScholarshipRecord(
        record_id="rec-1",
        student_id="0912345678",
        period_id="P1",
        career_id="Law",
        faculty="Law School",
        average_grade=9.3,
        status=AwardStatus.SELECTED,
    )
    registry.attach("rec-1", DocumentType.BANK_CERT, uri="upload://rec-1/bank_cert/v1.pdf")
    record = apply_transition(
        record, LifecycleAction.SUBMIT_BANK_EVIDENCE, ActorRole.APPLICANT, evidence=registry
    ).record
    record = apply_transition(
        record,
        LifecycleAction.REJECT_DOCS,
        ActorRole.REVIEWER,
        evidence=registry,
        reason="Account holder does not match",
    ).record
    save_record_store(InMemoryRecordStore([record]), tmp_path)
    save_evidence_registry(registry, tmp_path)

    restored = load_record_store(tmp_path).get("rec-1")
    restored_registry = load_evidence_registry(tmp_path)
    assert restored_registry.latest_version("rec-1", DocumentType.BANK_CERT) == 1
    assert restored_registry.documents_for("rec-1")[0].uri == "upload://rec-1/bank_cert/v1.pdf"

    new_upload = restored_registry.attach("rec-1", DocumentType.BANK_CERT)
    resubmitted = apply_transition(
        restored,
        LifecycleAction.RESUBMIT_EVIDENCE,
        ActorRole.APPLICANT,
        evidence=restored_registry,
    ).record

    assert new_upload.version == 2
    assert resubmitted.status is AwardStatus.DOCS_UPLOADED


def test_load_evidence_registry_without_file_is_empty(tmp_path: Path) -> None:
    assert load_evidence_registry(tmp_path).all_documents() == []
