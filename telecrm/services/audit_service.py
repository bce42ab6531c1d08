"""Assignment audit events handed to external logging."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from threading import Lock
from typing import Protocol

from telecrm.core.config import get_config
from telecrm.core.enums import AssignmentEventType
from telecrm.core.logging import LogContext, build_log_event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssignmentEvent:
    lead_id: int
    event_type: AssignmentEventType
    actor_id: int | None
    timestamp: datetime
    employee_id: int | None = None
    previous_employee_id: int | None = None


class AuditSink(Protocol):
    def emit(self, event: AssignmentEvent) -> None: ...


class LoggingAuditSink:
    """Writes each event as a structured log line and keeps a bounded recent trail."""

    def __init__(self, max_entries: int | None = None) -> None:
        size = get_config().AUDIT_TRAIL_SIZE if max_entries is None else max_entries
        self._events: deque[AssignmentEvent] = deque(maxlen=size)
        self._lock = Lock()

    def emit(self, event: AssignmentEvent) -> None:
        with self._lock:
            self._events.append(event)
        payload = build_log_event(
            event=f"lead.{event.event_type.value.lower()}",
            context=LogContext(
                actor_id=str(event.actor_id) if event.actor_id is not None else None,
                lead_id=str(event.lead_id),
            ),
            employee_id=event.employee_id,
            previous_employee_id=event.previous_employee_id,
            occurred_at=event.timestamp.isoformat(),
        )
        logger.info(payload["event"], extra=payload)

    def recent(self, lead_id: int | None = None) -> list[AssignmentEvent]:
        with self._lock:
            events = list(self._events)
        if lead_id is None:
            return events
        return [event for event in events if event.lead_id == lead_id]
