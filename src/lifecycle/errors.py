"""Errors raised by the award lifecycle.

Every error leaves the record untouched; callers recover at the call site.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.lifecycle.states import ActorRole, LifecycleAction
    from src.normalize.schema import AwardStatus, DocumentType


class AwardEngineError(Exception):
    """Base class for award engine errors."""


class RecordNotFound(AwardEngineError):
    def __init__(self, record_id: str) -> None:
        self.record_id = record_id
        super().__init__(f"Scholarship record {record_id} does not exist.")


class IllegalTransition(AwardEngineError):
    """The action is not legal for the record's status or the actor's role."""

    def __init__(
        self,
        status: AwardStatus,
        action: LifecycleAction,
        actor_role: ActorRole,
        allowed_actions: frozenset[LifecycleAction] | None = None,
    ) -> None:
        self.status = status
        self.action = action
        self.actor_role = actor_role
        self.allowed_actions = allowed_actions or frozenset()

        allowed = sorted(item.value for item in self.allowed_actions)
        super().__init__(
            f"{action.value} is not allowed for {actor_role.value} while status is "
            f"{status.value}. Allowed: {allowed}"
        )


class MissingReason(AwardEngineError):
    def __init__(self, action: LifecycleAction) -> None:
        self.action = action
        super().__init__(f"{action.value} requires a non-empty reason.")


class MissingEvidence(AwardEngineError):
    def __init__(
        self,
        record_id: str,
        document_type: DocumentType,
        *,
        newer_than: int | None = None,
    ) -> None:
        self.record_id = record_id
        self.document_type = document_type
        self.newer_than = newer_than
        if newer_than is None:
            detail = f"no {document_type.value} evidence is attached"
        else:
            detail = f"no {document_type.value} evidence newer than version {newer_than} is attached"
        super().__init__(f"Record {record_id}: {detail}.")


class ConcurrentModification(AwardEngineError):
    """The record changed between read and write; re-read and retry."""

    def __init__(self, record_id: str, expected_version: int, actual_version: int) -> None:
        self.record_id = record_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Record {record_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version})."
        )
