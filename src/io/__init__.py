"""I/O utilities for selection snapshots and persisted award records."""

from src.io.snapshotting import (
    get_latest_snapshot_path,
    load_evidence_registry,
    load_record_store,
    save_evidence_registry,
    save_record_store,
)

__all__ = [
    "get_latest_snapshot_path",
    "load_evidence_registry",
    "load_record_store",
    "save_evidence_registry",
    "save_record_store",
]
