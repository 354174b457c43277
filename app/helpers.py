from __future__ import annotations

from typing import Any

import pandas as pd

from src.lifecycle.evidence import InMemoryEvidenceRegistry
from src.lifecycle.states import TRANSITIONS, LifecycleAction
from src.normalize.schema import AwardStatus, DocumentEvidence, DocumentType

ACTION_LABELS: dict[LifecycleAction, str] = {
    LifecycleAction.SUBMIT_BANK_EVIDENCE: "Submit bank certificate",
    LifecycleAction.REJECT_DOCS: "Reject documents",
    LifecycleAction.APPROVE_DOCS: "Approve documents",
    LifecycleAction.RESUBMIT_EVIDENCE: "Resubmit bank certificate",
    LifecycleAction.GENERATE_CONTRACT: "Generate contract",
    LifecycleAction.UPLOAD_SIGNED_CONTRACT: "Upload signed contract",
    LifecycleAction.REJECT_SIGNATURE: "Reject signature",
    LifecycleAction.ACCEPT_SIGNATURE: "Accept signature",
    LifecycleAction.REUPLOAD_CONTRACT: "Re-upload signed contract",
    LifecycleAction.RECORD_PAYMENT: "Record payment",
}

STATUS_PROGRESS: dict[AwardStatus, int] = {
    AwardStatus.SELECTED: 0,
    AwardStatus.DOCS_UPLOADED: 1,
    AwardStatus.CHANGES_REQUESTED: 1,
    AwardStatus.APPROVED: 2,
    AwardStatus.CONTRACT_GENERATED: 3,
    AwardStatus.CONTRACT_UPLOADED: 4,
    AwardStatus.CONTRACT_REJECTED: 4,
    AwardStatus.READY_FOR_PAYMENT: 5,
    AwardStatus.PAID: 6,
}


def action_label(action: LifecycleAction) -> str:
    return ACTION_LABELS.get(action, action.value.replace("_", " ").capitalize())


def action_requires_reason(action: LifecycleAction) -> bool:
    return any(item.requires_reason for (_, key), item in TRANSITIONS.items() if key == action)


def action_evidence(action: LifecycleAction) -> DocumentType | None:
    """Document the applicant must attach before the action can succeed."""

    for (_, key), item in TRANSITIONS.items():
        if key == action and item.required_evidence is not None:
            return item.required_evidence
    return None


def attach_uploaded_evidence(
    registry: InMemoryEvidenceRegistry,
    record_id: str,
    action: LifecycleAction,
    uploaded_name: str | None,
) -> DocumentEvidence | None:
    """Attach the uploaded file for `action`; nothing is attached without an upload."""

    document_type = action_evidence(action)
    if document_type is None or not uploaded_name:
        return None
    return registry.attach(
        record_id,
        document_type,
        uri=f"upload://{record_id}/{document_type.value}/{uploaded_name}",
    )


def progress_fraction(status: AwardStatus) -> float:
    if status is AwardStatus.EXCLUDED:
        return 0.0
    return STATUS_PROGRESS[status] / STATUS_PROGRESS[AwardStatus.PAID]


def format_grade(value: Any) -> str:
    coerced = _coerce_float(value)
    if coerced is None:
        return "N/A"
    return f"{coerced:.2f}"


def reasons_to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return ", ".join(str(item) for item in value if str(item).strip())
    if isinstance(value, float) and pd.isna(value):
        return ""
    return str(value)


def _coerce_float(value: Any) -> float | None:
    if value is None:
        return None
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return None
    if pd.isna(numeric):
        return None
    return numeric
