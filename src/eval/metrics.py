from __future__ import annotations

from collections import Counter
from typing import Any, Sequence

import pandas as pd

from src.normalize.schema import AwardStatus, ScholarshipRecord, SelectionDecision
from src.rank.policy import SelectionPolicy

CRITICAL_STATES = (AwardStatus.CHANGES_REQUESTED, AwardStatus.CONTRACT_REJECTED)


def status_counts(records: Sequence[ScholarshipRecord]) -> dict[str, int]:
    counter: Counter[str] = Counter(record.status.value for record in records)
    return {status.value: int(counter.get(status.value, 0)) for status in AwardStatus}


def _awarded(records: Sequence[ScholarshipRecord]) -> list[ScholarshipRecord]:
    return [record for record in records if record.status is not AwardStatus.EXCLUDED]


def grade_averages(records: Sequence[ScholarshipRecord], *, by: str) -> list[dict[str, Any]]:
    if by not in {"faculty", "career_id"}:
        raise ValueError("grade_averages groups by 'faculty' or 'career_id'.")
    if not records:
        return []

    df = pd.DataFrame(
        [{"name": getattr(record, by) or "Unknown", "grade": record.average_grade} for record in records]
    )
    grouped = df.groupby("name", sort=True)["grade"].agg(["mean", "count"]).reset_index()
    grouped = grouped.sort_values(by=["mean", "name"], ascending=[False, True], kind="mergesort")
    return [
        {"name": str(row["name"]), "average": round(float(row["mean"]), 2), "count": int(row["count"])}
        for _, row in grouped.iterrows()
    ]


def program_metrics(
    records: Sequence[ScholarshipRecord], policy: SelectionPolicy | None = None
) -> dict[str, Any]:
    """Dashboard figures over awarded records (EXCLUDED rows are not awards)."""

    effective_policy = policy or SelectionPolicy.baseline()
    awarded = _awarded(records)
    counts = status_counts(awarded)
    total = len(awarded)
    paid = counts[AwardStatus.PAID.value]
    budget_used = paid * effective_policy.award_amount

    funnel = [
        {"stage": "Selected", "count": total},
        {"stage": "Docs uploaded", "count": counts[AwardStatus.DOCS_UPLOADED.value]},
        {
            "stage": "Approved",
            "count": counts[AwardStatus.APPROVED.value] + counts[AwardStatus.READY_FOR_PAYMENT.value],
        },
        {"stage": "Paid", "count": paid},
    ]

    return {
        "total": total,
        "status_counts": counts,
        "paid": paid,
        "budget_used": budget_used,
        "budget_remaining": max(effective_policy.budget_total - budget_used, 0.0),
        "acceptance_rate": round((paid / total) * 100, 1) if total > 0 else 0.0,
        "critical_cases": sum(counts[status.value] for status in CRITICAL_STATES),
        "work_queues": {
            "pending_docs": counts[AwardStatus.DOCS_UPLOADED.value],
            "pending_contracts": counts[AwardStatus.CONTRACT_UPLOADED.value],
            "ready_to_pay": counts[AwardStatus.READY_FOR_PAYMENT.value],
        },
        "funnel": funnel,
        "faculties": grade_averages(awarded, by="faculty"),
        "careers": grade_averages(awarded, by="career_id"),
    }


def selection_breakdown(decisions: Sequence[SelectionDecision]) -> dict[str, Any]:
    reason_counter: Counter[str] = Counter(
        decision.rejection_reason.value for decision in decisions if decision.rejection_reason
    )
    selected = sum(1 for decision in decisions if decision.is_selected)
    total = len(decisions)
    return {
        "total": total,
        "selected": selected,
        "selection_rate": (selected / total) if total else 0.0,
        "rejection_reasons": dict(sorted(reason_counter.items())),
        "careers": len({decision.student.career for decision in decisions}),
    }
