"""Structured logging helpers for engine and task events."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any


@dataclass(frozen=True)
class LogContext:
    """Normalized context fields expected in structured logs."""

    actor_id: str | None = None
    actor_role: str | None = None
    lead_id: str | None = None
    run_id: str | None = None
    trace_id: str | None = None


def build_log_event(event: str, context: LogContext, **fields: Any) -> dict[str, Any]:
    """Build a normalized structured log payload."""
    payload: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event": event,
        "actor_id": context.actor_id,
        "actor_role": context.actor_role,
        "lead_id": context.lead_id,
        "run_id": context.run_id,
        "trace_id": context.trace_id,
    }
    payload.update(fields)
    return payload
