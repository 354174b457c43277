from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from src.lifecycle.states import ActorRole, LifecycleAction
from src.normalize.schema import AwardStatus, DocumentType

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LifecycleEvent:
    record_id: str
    from_status: AwardStatus
    to_status: AwardStatus
    action: LifecycleAction
    actor_role: ActorRole
    reason: Optional[str]
    timestamp: datetime
    artifact: Optional[DocumentType] = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "record_id": self.record_id,
            "from_status": self.from_status.value,
            "to_status": self.to_status.value,
            "action": self.action.value,
            "actor_role": self.actor_role.value,
            "reason": self.reason,
            "timestamp": self.timestamp.isoformat(),
            "artifact": self.artifact.value if self.artifact else None,
        }


EventHandler = Callable[[LifecycleEvent], None]


class EventBus:
    """Fan-out of committed lifecycle events to side-effecting collaborators."""

    def __init__(self) -> None:
        self._handlers: list[tuple[str, EventHandler]] = []
        self._lock = threading.Lock()

    def subscribe(self, handler: EventHandler, *, name: str | None = None) -> None:
        with self._lock:
            self._handlers.append((name or getattr(handler, "__name__", type(handler).__name__), handler))

    def publish(self, event: LifecycleEvent) -> list[str]:
        """Deliver to every handler; returns names of the handlers that failed."""

        with self._lock:
            handlers = list(self._handlers)

        failed: list[str] = []
        for name, handler in handlers:
            try:
                handler(event)
            except Exception:
                failed.append(name)
                logger.exception(
                    "Handler %s failed for record=%s %s->%s. Continuing with remaining handlers.",
                    name,
                    event.record_id,
                    event.from_status.value,
                    event.to_status.value,
                )
        return failed
