"""Role-based authorization helpers for lead operations."""

from __future__ import annotations

from collections.abc import Collection
from dataclasses import dataclass

from telecrm.core.enums import UserRole
from telecrm.core.exceptions import AuthorizationError

# Scope strings are kept explicit for operation-level declarations.
ROLE_SCOPES: dict[str, set[str]] = {
    UserRole.ADMIN.value: {
        "*",
    },
    UserRole.MANAGER.value: {
        "leads.create",
        "leads.assign",
        "leads.reassign",
        "leads.status.update",
        "leads.redistribute",
        "leads.read",
    },
    UserRole.EMPLOYEE.value: {
        "leads.read",
        "leads.call.update",
        "leads.status.update",
    },
}


@dataclass(frozen=True)
class Actor:
    """Explicit identity of whoever invokes an engine operation."""

    id: int
    role: UserRole
    manager_id: int | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_manager(self) -> bool:
        return self.role == UserRole.MANAGER


def get_scopes_for_role(role: str) -> set[str]:
    """Return scopes granted to a role."""
    return ROLE_SCOPES.get(str(role).lower(), set())


def has_scopes(role: str, required_scopes: list[str] | set[str] | tuple[str, ...]) -> bool:
    """Check if role includes every required scope."""
    granted = get_scopes_for_role(role)
    if "*" in granted:
        return True
    return set(required_scopes).issubset(granted)


def require_scopes(actor: Actor, required_scopes: list[str] | set[str] | tuple[str, ...]) -> None:
    """Raise when the actor's role lacks required scopes."""
    if has_scopes(role=actor.role.value, required_scopes=required_scopes):
        return
    missing = sorted(set(required_scopes) - get_scopes_for_role(actor.role.value))
    raise AuthorizationError(f"Missing required scopes: {', '.join(missing)}")


def require_admin(actor: Actor) -> None:
    if not actor.is_admin:
        raise AuthorizationError("Operation is admin-only.")


def can_manage_lead(
    manager_id: int,
    created_by_id: int | None,
    assigned_to_id: int | None,
    team: Collection[int],
) -> bool:
    """A manager may act on leads they created or that sit with their team."""
    if created_by_id is not None and created_by_id == manager_id:
        return True
    return assigned_to_id is not None and assigned_to_id in team
