"""Background tasks for stalled-lead redistribution."""

from __future__ import annotations

import logging
import uuid
from typing import Any

from telecrm.auth.rbac import Actor
from telecrm.core.enums import UserRole
from telecrm.core.exceptions import TeleCRMException
from telecrm.core.logging import LogContext, build_log_event
from telecrm.database.db import get_db_session
from telecrm.services.directory_service import DirectoryService
from telecrm.services.reassignment_service import ReassignmentService
from telecrm.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


def _manager_actor(manager_id: int) -> Actor:
    return Actor(id=manager_id, role=UserRole.MANAGER)


def sweep_all_managers(manager_ids: list[int] | None = None) -> dict[str, Any]:
    """Run one redistribution sweep per manager and aggregate the outcome.

    A failure while sweeping one manager is logged and reported; the other
    managers are still swept.
    """
    run_id = f"sweep-{uuid.uuid4().hex}"
    context = LogContext(run_id=run_id, trace_id=uuid.uuid4().hex)
    logger.info("task.start", extra=build_log_event("task.start", context, task="redistribute_stalled_leads"))

    summary: dict[str, Any] = {"run_id": run_id, "reassigned": 0, "managers": [], "failed_managers": []}
    with get_db_session() as session:
        ids = manager_ids if manager_ids is not None else DirectoryService(db=session).list_managers()
        service = ReassignmentService(db=session)
        for manager_id in ids:
            try:
                result = service.sweep(manager_id, _manager_actor(manager_id))
            except TeleCRMException as exc:
                logger.error(
                    "task.sweep.manager_failed",
                    extra=build_log_event("task.sweep.manager_failed", context, manager_id=manager_id, error=str(exc)),
                )
                summary["failed_managers"].append({"manager_id": manager_id, "error": str(exc)})
                continue
            summary["reassigned"] += result.reassigned_count
            summary["managers"].append(result.model_dump(mode="json"))

    logger.info(
        "task.finish",
        extra=build_log_event("task.finish", context, reassigned=summary["reassigned"], managers=len(summary["managers"])),
    )
    return summary


@celery_app.task(name="telecrm.tasks.redistribute_stalled_leads")
def redistribute_stalled_leads() -> dict[str, Any]:
    """Periodic sweep over every active manager."""
    return sweep_all_managers()


@celery_app.task(name="telecrm.tasks.redistribute_for_manager")
def redistribute_for_manager(manager_id: int) -> dict[str, Any]:
    """On-demand sweep for a single manager."""
    return sweep_all_managers([manager_id])
