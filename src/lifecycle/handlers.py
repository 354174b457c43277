"""Event-bus subscribers for audit, notification and artifact side effects."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Protocol

from src.lifecycle.events import EventBus, LifecycleEvent
from src.lifecycle.evidence import InMemoryEvidenceRegistry
from src.normalize.schema import AwardStatus, DocumentType, ScholarshipRecord

logger = logging.getLogger(__name__)


class AuditLogHandler:
    """Keeps every event payload and optionally appends it as JSON lines."""

    def __init__(self, path: Path | None = None) -> None:
        self.path = path
        self.entries: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    def __call__(self, event: LifecycleEvent) -> None:
        payload = event.to_payload()
        with self._lock:
            self.entries.append(payload)
            if self.path is not None:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("a", encoding="utf-8") as handle:
                    handle.write(json.dumps(payload, sort_keys=True) + "\n")


@dataclass(frozen=True, slots=True)
class NotificationMessage:
    record_id: str
    subject: str
    body: str


class NotificationSender(Protocol):
    def send(self, message: NotificationMessage) -> None: ...


class LoggingNotificationSender:
    def send(self, message: NotificationMessage) -> None:
        logger.info("Notification for record=%s: %s", message.record_id, message.subject)


_SUBJECTS: dict[AwardStatus, str] = {
    AwardStatus.DOCS_UPLOADED: "Bank certificate received",
    AwardStatus.CHANGES_REQUESTED: "Action required: your bank documents were rejected",
    AwardStatus.APPROVED: "Your documents were approved",
    AwardStatus.CONTRACT_GENERATED: "Your scholarship contract is ready to sign",
    AwardStatus.CONTRACT_UPLOADED: "Signed contract received",
    AwardStatus.CONTRACT_REJECTED: "Action required: your signed contract was rejected",
    AwardStatus.READY_FOR_PAYMENT: "Your scholarship is ready for payment",
    AwardStatus.PAID: "Your scholarship has been paid",
}


def compose_notification(event: LifecycleEvent) -> NotificationMessage | None:
    subject = _SUBJECTS.get(event.to_status)
    if subject is None:
        return None

    lines = [f"Your scholarship record moved from {event.from_status.value} to {event.to_status.value}."]
    if event.reason:
        lines.append(f"Reason: {event.reason}")
    if event.to_status in (AwardStatus.CHANGES_REQUESTED, AwardStatus.CONTRACT_REJECTED):
        lines.append("Please upload a corrected document from your dashboard.")
    return NotificationMessage(record_id=event.record_id, subject=subject, body="\n".join(lines))


class NotificationHandler:
    def __init__(self, sender: NotificationSender) -> None:
        self.sender = sender

    def __call__(self, event: LifecycleEvent) -> None:
        message = compose_notification(event)
        if message is not None:
            self.sender.send(message)


class ArtifactRenderer(Protocol):
    def render(self, record: ScholarshipRecord, document_type: DocumentType) -> str: ...


class PlaceholderArtifactRenderer:
    """Returns a storage URI; actual PDF rendering is done elsewhere."""

    def __init__(self, base_uri: str = "artifacts://") -> None:
        self.base_uri = base_uri

    def render(self, record: ScholarshipRecord, document_type: DocumentType) -> str:
        return f"{self.base_uri}{record.period_id}/{record.record_id}/{document_type.value.lower()}.pdf"


class ArtifactHandler:
    """Attaches the contract or receipt an event asks for."""

    def __init__(
        self,
        registry: InMemoryEvidenceRegistry,
        renderer: ArtifactRenderer,
        load_record: Callable[[str], ScholarshipRecord],
    ) -> None:
        self.registry = registry
        self.renderer = renderer
        self.load_record = load_record

    def __call__(self, event: LifecycleEvent) -> None:
        if event.artifact is None:
            return
        record = self.load_record(event.record_id)
        uri = self.renderer.render(record, event.artifact)
        evidence = self.registry.attach(
            event.record_id, event.artifact, uri=uri, attached_at=event.timestamp
        )
        logger.info(
            "Attached %s v%d to record=%s", event.artifact.value, evidence.version, event.record_id
        )


def wire_default_handlers(
    bus: EventBus,
    *,
    registry: InMemoryEvidenceRegistry,
    load_record: Callable[[str], ScholarshipRecord],
    audit_path: Path | None = None,
    sender: NotificationSender | None = None,
    renderer: ArtifactRenderer | None = None,
) -> AuditLogHandler:
    audit = AuditLogHandler(audit_path)
    bus.subscribe(audit, name="audit_log")
    bus.subscribe(
        ArtifactHandler(registry, renderer or PlaceholderArtifactRenderer(), load_record),
        name="artifacts",
    )
    bus.subscribe(NotificationHandler(sender or LoggingNotificationSender()), name="notifications")
    return audit
