from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import UTC, datetime

from src.lifecycle.errors import IllegalTransition, MissingEvidence, MissingReason
from src.lifecycle.events import LifecycleEvent
from src.lifecycle.evidence import EvidenceQuery
from src.lifecycle.states import (
    REJECTED_EVIDENCE,
    REJECTED_STATES,
    ActorRole,
    LifecycleAction,
    Transition,
    find_transition,
    legal_actions,
)
from src.normalize.schema import ScholarshipRecord


@dataclass(frozen=True, slots=True)
class TransitionResult:
    record: ScholarshipRecord
    event: LifecycleEvent


def _clean_reason(reason: str | None) -> str | None:
    if reason is None:
        return None
    cleaned = reason.strip()
    return cleaned or None


def _check_evidence(
    record: ScholarshipRecord, transition: Transition, evidence: EvidenceQuery
) -> None:
    document_type = transition.required_evidence
    if document_type is None:
        return

    if not transition.requires_new_version:
        if not evidence.has_evidence(record.record_id, document_type):
            raise MissingEvidence(record.record_id, document_type)
        return

    latest = evidence.latest_version(record.record_id, document_type)
    rejected = record.rejected_evidence_version or 0
    if latest is None or latest <= rejected:
        raise MissingEvidence(record.record_id, document_type, newer_than=rejected)


def apply_transition(
    record: ScholarshipRecord,
    action: LifecycleAction,
    actor_role: ActorRole,
    *,
    evidence: EvidenceQuery,
    reason: str | None = None,
    bank_account_number: str | None = None,
    now: datetime | None = None,
) -> TransitionResult:
    """Compute the next record state and its event without mutating anything.

    Guards run in order: transition table, actor role, reason, evidence. The
    returned record keeps the input `version`; the store bumps it on write.
    """

    transition = find_transition(record.status, action)
    if transition is None or transition.actor != actor_role:
        raise IllegalTransition(
            record.status, action, actor_role, legal_actions(record.status, actor_role)
        )

    cleaned_reason = _clean_reason(reason)
    if transition.requires_reason and cleaned_reason is None:
        raise MissingReason(action)

    _check_evidence(record, transition, evidence)

    timestamp = now or datetime.now(tz=UTC)
    changes: dict[str, object] = {"status": transition.target, "updated_at": timestamp}

    if transition.target in REJECTED_STATES:
        changes["rejection_reason"] = cleaned_reason
        pinned_type = REJECTED_EVIDENCE.get(action)
        if pinned_type is not None:
            changes["rejected_evidence_version"] = evidence.latest_version(
                record.record_id, pinned_type
            )
    elif record.status in REJECTED_STATES:
        changes["rejection_reason"] = None
        changes["rejected_evidence_version"] = None

    if action in (LifecycleAction.SUBMIT_BANK_EVIDENCE, LifecycleAction.RESUBMIT_EVIDENCE):
        account = (bank_account_number or "").strip()
        if account:
            changes["bank_account_number"] = account

    if action is LifecycleAction.RECORD_PAYMENT:
        changes["payment_date"] = timestamp.date()

    updated = replace(record, **changes)
    event = LifecycleEvent(
        record_id=record.record_id,
        from_status=record.status,
        to_status=transition.target,
        action=action,
        actor_role=actor_role,
        reason=cleaned_reason if transition.target in REJECTED_STATES else None,
        timestamp=timestamp,
        artifact=transition.artifact,
    )
    return TransitionResult(record=updated, event=event)
