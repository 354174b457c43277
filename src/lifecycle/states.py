from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType
from typing import Mapping, Optional

from src.normalize.schema import AwardStatus, DocumentType


class ActorRole(StrEnum):
    REVIEWER = "REVIEWER"
    APPLICANT = "APPLICANT"


class LifecycleAction(StrEnum):
    SUBMIT_BANK_EVIDENCE = "SUBMIT_BANK_EVIDENCE"
    REJECT_DOCS = "REJECT_DOCS"
    APPROVE_DOCS = "APPROVE_DOCS"
    RESUBMIT_EVIDENCE = "RESUBMIT_EVIDENCE"
    GENERATE_CONTRACT = "GENERATE_CONTRACT"
    UPLOAD_SIGNED_CONTRACT = "UPLOAD_SIGNED_CONTRACT"
    REJECT_SIGNATURE = "REJECT_SIGNATURE"
    ACCEPT_SIGNATURE = "ACCEPT_SIGNATURE"
    REUPLOAD_CONTRACT = "REUPLOAD_CONTRACT"
    RECORD_PAYMENT = "RECORD_PAYMENT"


@dataclass(frozen=True, slots=True)
class Transition:
    source: AwardStatus
    action: LifecycleAction
    actor: ActorRole
    target: AwardStatus
    requires_reason: bool = False
    required_evidence: Optional[DocumentType] = None
    requires_new_version: bool = False
    artifact: Optional[DocumentType] = None


_TRANSITION_LIST = (
    Transition(
        AwardStatus.SELECTED,
        LifecycleAction.SUBMIT_BANK_EVIDENCE,
        ActorRole.APPLICANT,
        AwardStatus.DOCS_UPLOADED,
        required_evidence=DocumentType.BANK_CERT,
    ),
    Transition(
        AwardStatus.DOCS_UPLOADED,
        LifecycleAction.REJECT_DOCS,
        ActorRole.REVIEWER,
        AwardStatus.CHANGES_REQUESTED,
        requires_reason=True,
    ),
    Transition(
        AwardStatus.DOCS_UPLOADED,
        LifecycleAction.APPROVE_DOCS,
        ActorRole.REVIEWER,
        AwardStatus.APPROVED,
    ),
    Transition(
        AwardStatus.CHANGES_REQUESTED,
        LifecycleAction.RESUBMIT_EVIDENCE,
        ActorRole.APPLICANT,
        AwardStatus.DOCS_UPLOADED,
        required_evidence=DocumentType.BANK_CERT,
        requires_new_version=True,
    ),
    Transition(
        AwardStatus.APPROVED,
        LifecycleAction.GENERATE_CONTRACT,
        ActorRole.REVIEWER,
        AwardStatus.CONTRACT_GENERATED,
        artifact=DocumentType.CONTRACT_UNSIGNED,
    ),
    Transition(
        AwardStatus.CONTRACT_GENERATED,
        LifecycleAction.UPLOAD_SIGNED_CONTRACT,
        ActorRole.APPLICANT,
        AwardStatus.CONTRACT_UPLOADED,
        required_evidence=DocumentType.CONTRACT_SIGNED,
    ),
    Transition(
        AwardStatus.CONTRACT_UPLOADED,
        LifecycleAction.REJECT_SIGNATURE,
        ActorRole.REVIEWER,
        AwardStatus.CONTRACT_REJECTED,
        requires_reason=True,
    ),
    Transition(
        AwardStatus.CONTRACT_UPLOADED,
        LifecycleAction.ACCEPT_SIGNATURE,
        ActorRole.REVIEWER,
        AwardStatus.READY_FOR_PAYMENT,
    ),
    Transition(
        AwardStatus.CONTRACT_REJECTED,
        LifecycleAction.REUPLOAD_CONTRACT,
        ActorRole.APPLICANT,
        AwardStatus.CONTRACT_UPLOADED,
        required_evidence=DocumentType.CONTRACT_SIGNED,
        requires_new_version=True,
    ),
    Transition(
        AwardStatus.READY_FOR_PAYMENT,
        LifecycleAction.RECORD_PAYMENT,
        ActorRole.REVIEWER,
        AwardStatus.PAID,
        artifact=DocumentType.PAYMENT_RECEIPT,
    ),
)

TRANSITIONS: Mapping[tuple[AwardStatus, LifecycleAction], Transition] = MappingProxyType(
    {(item.source, item.action): item for item in _TRANSITION_LIST}
)

REJECTED_STATES = frozenset({AwardStatus.CHANGES_REQUESTED, AwardStatus.CONTRACT_REJECTED})
TERMINAL_STATES = frozenset(
    status
    for status in AwardStatus
    if not any(source == status for source, _ in TRANSITIONS)
)

# Evidence whose version a rejection pins, keyed by the rejecting action.
REJECTED_EVIDENCE = MappingProxyType(
    {
        LifecycleAction.REJECT_DOCS: DocumentType.BANK_CERT,
        LifecycleAction.REJECT_SIGNATURE: DocumentType.CONTRACT_SIGNED,
    }
)


def find_transition(status: AwardStatus, action: LifecycleAction) -> Transition | None:
    return TRANSITIONS.get((status, action))


def legal_actions(status: AwardStatus, actor_role: ActorRole) -> frozenset[LifecycleAction]:
    """Actions `actor_role` may perform while a record is in `status`."""

    return frozenset(
        item.action
        for (source, _), item in TRANSITIONS.items()
        if source == status and item.actor == actor_role
    )
