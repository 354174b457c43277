from __future__ import annotations

import sys
import tempfile
from pathlib import Path
from typing import Any

import pandas as pd
import streamlit as st

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from app.helpers import (
    action_evidence,
    action_label,
    action_requires_reason,
    attach_uploaded_evidence,
    format_grade,
    progress_fraction,
    reasons_to_text,
)
from src.eval.metrics import program_metrics
from src.io.snapshotting import (
    load_evidence_registry,
    load_record_store,
    records_to_frame,
    save_evidence_registry,
    save_record_store,
)
from src.lifecycle import (
    ActorRole,
    AwardEngineError,
    AwardLifecycleService,
    EventBus,
    InMemoryEvidenceRegistry,
    seed_records,
)
from src.lifecycle.handlers import wire_default_handlers
from src.normalize.roster import load_roster, validate_roster
from src.normalize.schema import AwardStatus, ScholarshipRecord
from src.rank.cohort_selection import decisions_to_frame, select, summarize_cohorts
from src.rank.policy import load_policy

PROCESSED_DIR = ROOT_DIR / "data" / "processed"
POLICY_PATH = PROCESSED_DIR / "selection_policy.json"
AUDIT_PATH = PROCESSED_DIR / "audit_log.jsonl"


def _build_service() -> AwardLifecycleService:
    store = load_record_store(PROCESSED_DIR)
    registry = load_evidence_registry(PROCESSED_DIR)
    bus = EventBus()
    audit = wire_default_handlers(bus, registry=registry, load_record=store.get, audit_path=AUDIT_PATH)
    st.session_state.audit = audit
    st.session_state.registry = registry
    return AwardLifecycleService(store, registry, bus)


def _ensure_session_state() -> None:
    if "service" not in st.session_state:
        st.session_state.service = _build_service()
    st.session_state.setdefault("decisions_df", None)
    st.session_state.setdefault("cohorts", None)
    st.session_state.setdefault("validation", None)


def _import_roster(uploaded: Any, period_id: str) -> None:
    policy = load_policy(POLICY_PATH)
    suffix = Path(uploaded.name).suffix.lower()
    with tempfile.TemporaryDirectory() as tmp_dir:
        roster_path = Path(tmp_dir) / f"roster{suffix}"
        roster_path.write_bytes(uploaded.getvalue())
        roster_df = load_roster(roster_path)

    students, report = validate_roster(roster_df, policy)
    decisions = select(students, policy)
    service: AwardLifecycleService = st.session_state.service
    seed_report = seed_records(decisions, period_id=period_id, store=service.store)
    save_record_store(service.store, PROCESSED_DIR)

    st.session_state.validation = report.to_dict()
    st.session_state.decisions_df = decisions_to_frame(decisions)
    st.session_state.cohorts = pd.DataFrame(
        [
            {
                "career": summary.career,
                "faculty": summary.faculty,
                "regular": summary.regular_count,
                "cutoff_count": summary.cutoff_count,
                "cutoff_grade": format_grade(summary.cutoff_grade),
                "selected": summary.selected_count,
                "tie_extension": summary.tie_extension,
            }
            for summary in summarize_cohorts(decisions, policy)
        ]
    )
    st.success(
        f"Imported {report.accepted_rows} rows ({report.discarded_rows} discarded). "
        f"Records created={seed_report.created} updated={seed_report.updated} "
        f"preserved={seed_report.preserved}"
    )


def _render_record_actions(record: ScholarshipRecord, role: ActorRole) -> None:
    service: AwardLifecycleService = st.session_state.service
    registry: InMemoryEvidenceRegistry = st.session_state.registry
    actions = sorted(service.available_actions(record.record_id, role), key=lambda item: item.value)
    if not actions:
        st.caption("No actions available for this role.")
        return

    reason = ""
    if any(action_requires_reason(action) for action in actions):
        reason = st.text_input("Rejection reason", key=f"reason_{record.record_id}")
    bank_account = ""
    if role is ActorRole.APPLICANT and record.status in (
        AwardStatus.SELECTED,
        AwardStatus.CHANGES_REQUESTED,
    ):
        bank_account = st.text_input("Bank account number", key=f"bank_{record.record_id}")

    evidence_types = {action_evidence(action) for action in actions} - {None}
    evidence_file = None
    if evidence_types:
        evidence_file = st.file_uploader(
            "Document to attach",
            type=["pdf", "png", "jpg", "jpeg"],
            key=f"evidence_{record.record_id}",
        )

    columns = st.columns(len(actions))
    for column, action in zip(columns, actions):
        if not column.button(action_label(action), key=f"{record.record_id}_{action.value}"):
            continue
        attach_uploaded_evidence(
            registry,
            record.record_id,
            action,
            evidence_file.name if evidence_file is not None else None,
        )
        try:
            service.perform(
                record.record_id,
                action,
                role,
                reason=reason or None,
                bank_account_number=bank_account or None,
                expected_version=record.version,
            )
        except AwardEngineError as exc:
            save_evidence_registry(registry, PROCESSED_DIR)
            st.error(str(exc))
        else:
            save_record_store(service.store, PROCESSED_DIR)
            save_evidence_registry(registry, PROCESSED_DIR)
            st.rerun()


def main() -> None:
    st.set_page_config(page_title="Scholarship Award Console", layout="wide")
    st.title("Scholarship Award Console")
    st.caption("Roster -> Cohort selection -> Documents -> Contract -> Payment")

    _ensure_session_state()
    service: AwardLifecycleService = st.session_state.service

    with st.sidebar:
        st.header("Session")
        period_id = st.text_input("Academic period", value="2025-2026-S1")
        role_label = st.selectbox("Acting as", options=[role.value for role in ActorRole])
        role = ActorRole(role_label)

    st.header("Roster Import")
    uploaded = st.file_uploader("Roster file", type=["xlsx", "csv", "json", "parquet"])
    if uploaded is not None and st.button("Run Selection", type="primary"):
        try:
            _import_roster(uploaded, period_id)
        except Exception as exc:
            st.error(f"Import failed: {exc}")

    if st.session_state.validation:
        st.subheader("Validation")
        st.write({k: v for k, v in st.session_state.validation.items() if k != "discarded"})
        discarded = st.session_state.validation.get("discarded") or []
        if discarded:
            st.dataframe(pd.DataFrame(discarded), use_container_width=True)

    cohorts_df: pd.DataFrame | None = st.session_state.cohorts
    if isinstance(cohorts_df, pd.DataFrame):
        st.subheader("Cohorts")
        st.dataframe(cohorts_df, use_container_width=True)

    decisions_df: pd.DataFrame | None = st.session_state.decisions_df
    if isinstance(decisions_df, pd.DataFrame):
        st.subheader("Not Selected")
        reason_filter = st.selectbox("Filter by reason", ["All", "NOT_REGULAR", "BELOW_CUTOFF"])
        rejected = decisions_df[~decisions_df["is_selected"]].copy()
        if reason_filter != "All":
            rejected = rejected[rejected["rejection_reason"] == reason_filter]
        rejected["reason_text"] = rejected["rejection_reason"].apply(reasons_to_text)
        st.dataframe(
            rejected[["national_id", "last_name", "career", "average_grade", "cutoff_grade_used", "reason_text"]],
            use_container_width=True,
        )

    records = service.store.list(period_id=period_id)
    st.header("Program Metrics")
    st.json(program_metrics(records, load_policy(POLICY_PATH)))

    st.header("Scholarship Records")
    status_filter = st.selectbox("Status", ["All", *[status.value for status in AwardStatus]])
    visible = [r for r in records if status_filter == "All" or r.status.value == status_filter]
    st.dataframe(records_to_frame(visible), use_container_width=True)

    for record in visible:
        if record.status is AwardStatus.EXCLUDED:
            continue
        with st.expander(f"{record.student_id} · {record.career_id} · {record.status.value}"):
            st.progress(progress_fraction(record.status))
            st.write(
                {
                    "average_grade": format_grade(record.average_grade),
                    "rejection_reason": record.rejection_reason or "",
                    "bank_account_number": record.bank_account_number or "",
                    "payment_date": str(record.payment_date or ""),
                    "documents": [
                        f"{item.document_type.value} v{item.version}"
                        for item in st.session_state.registry.documents_for(record.record_id)
                    ],
                }
            )
            _render_record_actions(record, role)


if __name__ == "__main__":
    main()
