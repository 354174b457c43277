"""Scholarship award lifecycle: transition table, guards and collaborators."""

from __future__ import annotations

from .errors import (
    AwardEngineError,
    ConcurrentModification,
    IllegalTransition,
    MissingEvidence,
    MissingReason,
    RecordNotFound,
)
from .events import EventBus, LifecycleEvent
from .evidence import EvidenceQuery, InMemoryEvidenceRegistry
from .machine import TransitionResult, apply_transition
from .seeding import SeedReport, seed_records
from .service import AwardLifecycleService
from .states import TRANSITIONS, ActorRole, LifecycleAction, legal_actions
from .store import InMemoryRecordStore

__all__ = [
    "TRANSITIONS",
    "ActorRole",
    "AwardEngineError",
    "AwardLifecycleService",
    "ConcurrentModification",
    "EventBus",
    "EvidenceQuery",
    "IllegalTransition",
    "InMemoryEvidenceRegistry",
    "InMemoryRecordStore",
    "LifecycleAction",
    "LifecycleEvent",
    "MissingEvidence",
    "MissingReason",
    "RecordNotFound",
    "SeedReport",
    "TransitionResult",
    "apply_transition",
    "legal_actions",
    "seed_records",
]
