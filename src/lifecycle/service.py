from __future__ import annotations

import logging
import threading
from collections import defaultdict
from datetime import datetime
from typing import Callable

from src.lifecycle.errors import ConcurrentModification
from src.lifecycle.events import EventBus
from src.lifecycle.evidence import EvidenceQuery
from src.lifecycle.machine import TransitionResult, apply_transition
from src.lifecycle.states import ActorRole, LifecycleAction, find_transition, legal_actions
from src.lifecycle.store import RecordStore
from src.normalize.schema import AwardStatus, ScholarshipRecord

logger = logging.getLogger(__name__)


class AwardLifecycleService:
    """Runs lifecycle transitions against a store and publishes the events."""

    def __init__(
        self,
        store: RecordStore,
        evidence: EvidenceQuery,
        bus: EventBus | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.evidence = evidence
        self.bus = bus or EventBus()
        self._clock = clock
        self._artifact_locks: defaultdict[tuple[str, AwardStatus], threading.Lock] = defaultdict(
            threading.Lock
        )
        self._locks_guard = threading.Lock()

    def available_actions(
        self, record_id: str, actor_role: ActorRole
    ) -> frozenset[LifecycleAction]:
        return legal_actions(self.store.get(record_id).status, actor_role)

    def _artifact_lock(self, key: tuple[str, AwardStatus]) -> threading.Lock:
        with self._locks_guard:
            return self._artifact_locks[key]

    def _release_artifact_lock(self, key: tuple[str, AwardStatus]) -> None:
        with self._locks_guard:
            self._artifact_locks.pop(key, None)

    def perform(
        self,
        record_id: str,
        action: LifecycleAction,
        actor_role: ActorRole,
        *,
        reason: str | None = None,
        bank_account_number: str | None = None,
        expected_version: int | None = None,
    ) -> ScholarshipRecord:
        record = self.store.get(record_id)
        transition = find_transition(record.status, action)
        if transition is not None and transition.artifact is not None:
            # Contract/receipt generation runs at most once per record. The lock is
            # keyed by the source status and dropped once the record has left it.
            key = (record_id, record.status)
            with self._artifact_lock(key):
                stored = self._perform(
                    self.store.get(record_id),
                    action,
                    actor_role,
                    reason=reason,
                    bank_account_number=bank_account_number,
                    expected_version=expected_version,
                )
            self._release_artifact_lock(key)
            return stored
        return self._perform(
            record,
            action,
            actor_role,
            reason=reason,
            bank_account_number=bank_account_number,
            expected_version=expected_version,
        )

    def _perform(
        self,
        record: ScholarshipRecord,
        action: LifecycleAction,
        actor_role: ActorRole,
        *,
        reason: str | None,
        bank_account_number: str | None,
        expected_version: int | None,
    ) -> ScholarshipRecord:
        if expected_version is not None and expected_version != record.version:
            raise ConcurrentModification(record.record_id, expected_version, record.version)

        result: TransitionResult = apply_transition(
            record,
            action,
            actor_role,
            evidence=self.evidence,
            reason=reason,
            bank_account_number=bank_account_number,
            now=self._clock() if self._clock else None,
        )
        stored = self.store.compare_and_swap(result.record, record.version)
        logger.info(
            "Record=%s %s by %s: %s -> %s",
            stored.record_id,
            action.value,
            actor_role.value,
            result.event.from_status.value,
            result.event.to_status.value,
        )
        self.bus.publish(result.event)
        return stored
