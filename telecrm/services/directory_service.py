"""Directory lookups: users and the manager to employee relation."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select

from telecrm.core.enums import UserRole
from telecrm.core.exceptions import NotFoundError
from telecrm.models import User
from telecrm.services.base_service import BaseService


@dataclass(frozen=True)
class DirectoryUser:
    id: int
    role: UserRole
    manager_id: int | None = None
    name: str = ""
    is_active: bool = True


class DirectoryService(BaseService):
    """Read-only view over users. The engine never writes through it."""

    def get_user(self, user_id: int) -> DirectoryUser:
        with self.store_errors(f"load user {user_id}"):
            user = self.db.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return DirectoryUser(
            id=user.id,
            role=user.role,
            manager_id=user.manager_id,
            name=user.name,
            is_active=user.is_active,
        )

    def find_employees_of_manager(self, manager_id: int) -> list[int]:
        stmt = (
            select(User.id)
            .where(
                User.manager_id == manager_id,
                User.role == UserRole.EMPLOYEE,
                User.is_active.is_(True),
            )
            .order_by(User.id)
        )
        with self.store_errors(f"list employees of manager {manager_id}"):
            return list(self.db.scalars(stmt).all())

    def list_managers(self) -> list[int]:
        stmt = (
            select(User.id)
            .where(User.role == UserRole.MANAGER, User.is_active.is_(True))
            .order_by(User.id)
        )
        with self.store_errors("list managers"):
            return list(self.db.scalars(stmt).all())


class TeamCache:
    """Per-call memo of manager -> employee ids, so a batch hits the directory once per manager."""

    def __init__(self, directory: DirectoryService) -> None:
        self._directory = directory
        self._teams: dict[int, tuple[int, ...]] = {}

    def employees_of(self, manager_id: int) -> tuple[int, ...]:
        if manager_id not in self._teams:
            self._teams[manager_id] = tuple(self._directory.find_employees_of_manager(manager_id))
        return self._teams[manager_id]
