from __future__ import annotations

import json
import re
from dataclasses import asdict
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any
from uuid import uuid4

import pandas as pd

from src.lifecycle.evidence import InMemoryEvidenceRegistry
from src.lifecycle.store import InMemoryRecordStore
from src.normalize.canonical_id import generate_record_id
from src.normalize.schema import AwardStatus, DocumentEvidence, DocumentType, ScholarshipRecord
from src.rank.cohort_selection import DECISION_COLUMNS

SNAPSHOT_PREFIX = "selection_snapshot_"
CHANGES_PREFIX = "selection_changes_"
SNAPSHOT_PATTERN = re.compile(r"^selection_snapshot_(\d{8})\.parquet$")
RECORDS_FILENAME = "scholarship_records.parquet"
EVIDENCE_FILENAME = "document_evidence.parquet"

REQUIRED_COLUMNS = ["record_id", "period_id", *DECISION_COLUMNS]
TRACKED_DIFF_FIELDS = ("is_selected", "average_grade", "career", "rejection_reason")

RECORD_COLUMNS = [
    "record_id",
    "student_id",
    "period_id",
    "career_id",
    "faculty",
    "average_grade",
    "status",
    "rejection_reason",
    "bank_account_number",
    "payment_date",
    "rejected_evidence_version",
    "version",
    "updated_at",
]

EVIDENCE_COLUMNS = ["record_id", "document_type", "version", "uri", "attached_at"]


def _coerce_output_date(run_date: date | str | None) -> date:
    if run_date is None:
        return datetime.now(tz=UTC).date()
    if isinstance(run_date, date):
        return run_date
    return datetime.strptime(run_date, "%Y%m%d").date()


def _snapshot_filename(run_date: date) -> str:
    return f"{SNAPSHOT_PREFIX}{run_date.strftime('%Y%m%d')}.parquet"


def _changes_filename(run_date: date) -> str:
    return f"{CHANGES_PREFIX}{run_date.strftime('%Y%m%d')}.json"


def _jsonable(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, list):
        return [_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if hasattr(value, "tolist") and not isinstance(value, (str, bytes)):
        return _jsonable(value.tolist())
    if isinstance(value, float) and pd.isna(value):
        return None
    if pd.isna(value):
        return None
    if isinstance(value, pd.Timestamp):
        if value.tzinfo is not None:
            return value.tz_convert("UTC").isoformat()
        return value.isoformat()
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


def list_snapshot_files(processed_dir: Path) -> list[Path]:
    snapshots: list[tuple[datetime, Path]] = []
    for candidate in processed_dir.glob(f"{SNAPSHOT_PREFIX}*.parquet"):
        match = SNAPSHOT_PATTERN.match(candidate.name)
        if not match:
            continue
        snapshot_date = datetime.strptime(match.group(1), "%Y%m%d")
        snapshots.append((snapshot_date, candidate))

    snapshots.sort(key=lambda item: item[0])
    return [item[1] for item in snapshots]


def get_latest_snapshot_path(processed_dir: Path) -> Path | None:
    snapshots = list_snapshot_files(processed_dir)
    if not snapshots:
        return None
    return snapshots[-1]


def find_prior_snapshot(processed_dir: Path, target_date: date) -> Path | None:
    target_name = _snapshot_filename(target_date)
    candidates = [path for path in list_snapshot_files(processed_dir) if path.name != target_name]
    return candidates[-1] if candidates else None


def prepare_snapshot_df(decisions_df: pd.DataFrame, *, period_id: str) -> pd.DataFrame:
    snapshot_df = decisions_df.copy()
    snapshot_df["period_id"] = period_id
    snapshot_df["record_id"] = [
        generate_record_id(student_id=national_id, period_id=period_id)
        for national_id in snapshot_df["national_id"]
    ]
    for column in REQUIRED_COLUMNS:
        if column not in snapshot_df.columns:
            snapshot_df[column] = None

    ordered = snapshot_df[REQUIRED_COLUMNS]
    return ordered.sort_values(by=["career", "record_id"], kind="mergesort").reset_index(drop=True)


def write_parquet_atomic(df: pd.DataFrame, output_path: Path) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = output_path.parent / f"{output_path.name}.{uuid4().hex}.tmp"
    try:
        df.to_parquet(temp_path, index=False, engine="pyarrow")
        temp_path.replace(output_path)
    finally:
        if temp_path.exists():
            temp_path.unlink()


def write_json_atomic(payload: dict[str, Any], output_path: Path) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = output_path.parent / f"{output_path.name}.{uuid4().hex}.tmp"
    try:
        temp_path.write_text(
            json.dumps(_jsonable(payload), indent=2, sort_keys=True), encoding="utf-8"
        )
        temp_path.replace(output_path)
    finally:
        if temp_path.exists():
            temp_path.unlink()


def _records_by_id(df: pd.DataFrame) -> dict[str, dict[str, Any]]:
    if df.empty:
        return {}
    keyed = df.set_index("record_id", drop=False).to_dict(orient="index")
    return {str(key): value for key, value in keyed.items()}


def build_delta(current_df: pd.DataFrame, prior_df: pd.DataFrame | None) -> dict[str, Any]:
    """Compare selected students between two import snapshots."""

    prior = prior_df if prior_df is not None else pd.DataFrame(columns=current_df.columns)
    current_records = _records_by_id(current_df)
    prior_records = _records_by_id(prior)

    current_selected = {key for key, row in current_records.items() if bool(row.get("is_selected"))}
    prior_selected = {key for key, row in prior_records.items() if bool(row.get("is_selected"))}

    added_ids = sorted(current_selected - prior_selected)
    removed_ids = sorted(prior_selected - current_selected)
    shared_ids = sorted(set(current_records) & set(prior_records))

    added = [_jsonable(current_records[record_id]) for record_id in added_ids]
    removed = [
        _jsonable(current_records.get(record_id) or prior_records[record_id])
        for record_id in removed_ids
    ]

    changed: list[dict[str, Any]] = []
    for record_id in shared_ids:
        old_record = prior_records[record_id]
        new_record = current_records[record_id]
        fields_changed: dict[str, Any] = {}
        for field in TRACKED_DIFF_FIELDS:
            old_value = _jsonable(old_record.get(field))
            new_value = _jsonable(new_record.get(field))
            if old_value != new_value:
                fields_changed[field] = {"old": old_value, "new": new_value}

        if fields_changed:
            changed.append({"record_id": record_id, "fields_changed": fields_changed})

    return {"added": added, "removed": removed, "changed": changed}


def build_and_write_snapshot(
    decisions_df: pd.DataFrame,
    *,
    period_id: str,
    processed_dir: Path,
    run_date: date | str | None = None,
) -> tuple[Path, Path, dict[str, Any]]:
    snapshot_date = _coerce_output_date(run_date)
    snapshot_df = prepare_snapshot_df(decisions_df, period_id=period_id)

    processed_dir.mkdir(parents=True, exist_ok=True)
    prior_snapshot_path = find_prior_snapshot(processed_dir, snapshot_date)
    prior_df = pd.read_parquet(prior_snapshot_path) if prior_snapshot_path else None

    snapshot_path = processed_dir / _snapshot_filename(snapshot_date)
    changes_path = processed_dir / _changes_filename(snapshot_date)

    delta = build_delta(snapshot_df, prior_df)
    write_parquet_atomic(snapshot_df, snapshot_path)
    write_json_atomic(delta, changes_path)
    return snapshot_path, changes_path, delta


def records_to_frame(records: list[ScholarshipRecord]) -> pd.DataFrame:
    if not records:
        return pd.DataFrame(columns=RECORD_COLUMNS)
    rows = []
    for record in records:
        row = asdict(record)
        row["status"] = record.status.value
        rows.append(row)
    return pd.DataFrame(rows, columns=RECORD_COLUMNS)


def _optional(value: Any) -> Any:
    if value is None:
        return None
    if not isinstance(value, (list, dict)) and pd.isna(value):
        return None
    return value


def records_from_frame(df: pd.DataFrame) -> list[ScholarshipRecord]:
    records: list[ScholarshipRecord] = []
    for row in df.to_dict(orient="records"):
        payment_date = _optional(row.get("payment_date"))
        updated_at = _optional(row.get("updated_at"))
        rejected_version = _optional(row.get("rejected_evidence_version"))
        records.append(
            ScholarshipRecord(
                record_id=str(row["record_id"]),
                student_id=str(row["student_id"]),
                period_id=str(row["period_id"]),
                career_id=str(row["career_id"]),
                faculty=str(row.get("faculty") or ""),
                average_grade=float(row["average_grade"]),
                status=AwardStatus(str(row["status"])),
                rejection_reason=_optional(row.get("rejection_reason")),
                bank_account_number=_optional(row.get("bank_account_number")),
                payment_date=pd.Timestamp(payment_date).date() if payment_date is not None else None,
                rejected_evidence_version=int(rejected_version) if rejected_version is not None else None,
                version=int(row.get("version") or 1),
                updated_at=pd.Timestamp(updated_at).to_pydatetime() if updated_at is not None else None,
            )
        )
    return records


def load_record_store(processed_dir: Path) -> InMemoryRecordStore:
    path = processed_dir / RECORDS_FILENAME
    if not path.exists():
        return InMemoryRecordStore()
    return InMemoryRecordStore(records_from_frame(pd.read_parquet(path)))


def save_record_store(store: InMemoryRecordStore, processed_dir: Path) -> Path:
    path = processed_dir / RECORDS_FILENAME
    write_parquet_atomic(records_to_frame(store.list()), path)
    return path


def evidence_to_frame(documents: list[DocumentEvidence]) -> pd.DataFrame:
    if not documents:
        return pd.DataFrame(columns=EVIDENCE_COLUMNS)
    rows = []
    for evidence in documents:
        row = asdict(evidence)
        row["document_type"] = evidence.document_type.value
        rows.append(row)
    return pd.DataFrame(rows, columns=EVIDENCE_COLUMNS)


def evidence_from_frame(df: pd.DataFrame) -> list[DocumentEvidence]:
    documents: list[DocumentEvidence] = []
    for row in df.to_dict(orient="records"):
        attached_at = _optional(row.get("attached_at"))
        documents.append(
            DocumentEvidence(
                record_id=str(row["record_id"]),
                document_type=DocumentType(str(row["document_type"])),
                version=int(row["version"]),
                uri=_optional(row.get("uri")),
                attached_at=(
                    pd.Timestamp(attached_at).to_pydatetime()
                    if attached_at is not None
                    else datetime.now(tz=UTC)
                ),
            )
        )
    return documents


def load_evidence_registry(processed_dir: Path) -> InMemoryEvidenceRegistry:
    path = processed_dir / EVIDENCE_FILENAME
    if not path.exists():
        return InMemoryEvidenceRegistry()
    return InMemoryEvidenceRegistry(evidence_from_frame(pd.read_parquet(path)))


def save_evidence_registry(registry: InMemoryEvidenceRegistry, processed_dir: Path) -> Path:
    path = processed_dir / EVIDENCE_FILENAME
    write_parquet_atomic(evidence_to_frame(registry.all_documents()), path)
    return path
