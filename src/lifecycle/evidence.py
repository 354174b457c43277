from __future__ import annotations

import threading
from collections import defaultdict
from datetime import UTC, datetime
from typing import Iterable, Protocol

from src.normalize.schema import DocumentEvidence, DocumentType


class EvidenceQuery(Protocol):
    def has_evidence(self, record_id: str, document_type: DocumentType) -> bool: ...

    def latest_version(self, record_id: str, document_type: DocumentType) -> int | None: ...


class InMemoryEvidenceRegistry:
    """Document storage stand-in: versioned attachments per record and type."""

    def __init__(self, documents: Iterable[DocumentEvidence] = ()) -> None:
        self._documents: dict[tuple[str, DocumentType], list[DocumentEvidence]] = defaultdict(list)
        self._lock = threading.Lock()
        for evidence in sorted(documents, key=lambda item: item.version):
            self._documents[(evidence.record_id, evidence.document_type)].append(evidence)

    def attach(
        self,
        record_id: str,
        document_type: DocumentType,
        *,
        uri: str | None = None,
        attached_at: datetime | None = None,
    ) -> DocumentEvidence:
        with self._lock:
            history = self._documents[(record_id, document_type)]
            evidence = DocumentEvidence(
                record_id=record_id,
                document_type=document_type,
                version=history[-1].version + 1 if history else 1,
                uri=uri,
                attached_at=attached_at or datetime.now(tz=UTC),
            )
            history.append(evidence)
            return evidence

    def has_evidence(self, record_id: str, document_type: DocumentType) -> bool:
        return self.latest_version(record_id, document_type) is not None

    def latest_version(self, record_id: str, document_type: DocumentType) -> int | None:
        with self._lock:
            history = self._documents.get((record_id, document_type))
            if not history:
                return None
            return history[-1].version

    def documents_for(self, record_id: str) -> list[DocumentEvidence]:
        with self._lock:
            found = [
                evidence
                for (owner, _), history in self._documents.items()
                if owner == record_id
                for evidence in history
            ]
        return sorted(found, key=lambda item: (item.document_type.value, item.version))

    def all_documents(self) -> list[DocumentEvidence]:
        with self._lock:
            found = [evidence for history in self._documents.values() for evidence in history]
        return sorted(found, key=lambda item: (item.record_id, item.document_type.value, item.version))
