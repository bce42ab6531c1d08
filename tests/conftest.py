from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from telecrm.auth.rbac import Actor
from telecrm.core.config import get_config
from telecrm.core.enums import CallStatus, LeadStatus, UserRole
from telecrm.core.exceptions import StoreFailureError
from telecrm.models import Base, Lead, User
from telecrm.services.assignment_service import AssignmentService
from telecrm.services.lead_service import LeadService
from telecrm.services.lead_store import LeadStore

T0 = datetime(2026, 3, 2, 9, 0, 0)


class FixedClock:
    """Test clock that only moves when told to."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


class RecordingSink:
    def __init__(self) -> None:
        self.events = []

    def emit(self, event) -> None:
        self.events.append(event)


@dataclass
class Org:
    admin: Actor
    manager: Actor
    other_manager: Actor
    employee_a: int
    employee_b: int
    outsider: int


def _build_session_factory(url: str = "sqlite:///:memory:"):
    engine = create_engine(url)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    return TestingSessionLocal


@pytest.fixture
def session_factory(tmp_path):
    return _build_session_factory(f"sqlite:///{tmp_path / 'telecrm_test.db'}")


@pytest.fixture
def session(session_factory):
    s = session_factory()
    yield s
    s.close()


@pytest.fixture
def org(session) -> Org:
    admin = User(id=1, name="Admin", email="admin@example.com", role=UserRole.ADMIN)
    manager = User(id=2, name="Meera", email="meera@example.com", role=UserRole.MANAGER)
    other_manager = User(id=3, name="Omar", email="omar@example.com", role=UserRole.MANAGER)
    session.add_all([admin, manager, other_manager])
    session.flush()
    session.add_all(
        [
            User(id=10, name="Asha", email="asha@example.com", role=UserRole.EMPLOYEE, manager_id=2),
            User(id=11, name="Bilal", email="bilal@example.com", role=UserRole.EMPLOYEE, manager_id=2),
            User(id=20, name="Chen", email="chen@example.com", role=UserRole.EMPLOYEE, manager_id=3),
        ]
    )
    session.commit()
    return Org(
        admin=Actor(id=1, role=UserRole.ADMIN),
        manager=Actor(id=2, role=UserRole.MANAGER),
        other_manager=Actor(id=3, role=UserRole.MANAGER),
        employee_a=10,
        employee_b=11,
        outsider=20,
    )


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def config():
    return replace(get_config(), SAME_EMPLOYEE_RESETS_CALL_STATUS=True, ASSIGNMENT_MAX_RETRIES=3)


@pytest.fixture
def assignment(session, clock, sink, config) -> AssignmentService:
    return AssignmentService(db=session, audit_sink=sink, clock=clock, config=config)


@pytest.fixture
def lead_service(session, assignment, config) -> LeadService:
    return LeadService(db=session, assignment=assignment, config=config)


@pytest.fixture
def make_lead(session, clock):
    counter = {"n": 0}

    def _make(**fields) -> Lead:
        counter["n"] += 1
        defaults = {
            "name": f"Lead {counter['n']}",
            "phone": f"+91-90000{counter['n']:05d}",
            "status": LeadStatus.NEW,
            "call_status": CallStatus.PENDING,
            "created_at": clock(),
            "updated_at": clock(),
        }
        defaults.update(fields)
        lead = Lead(**defaults)
        session.add(lead)
        session.commit()
        return lead

    return _make


@pytest.fixture
def fail_save_for(monkeypatch):
    """Make ``LeadStore.save`` fail with a store error for the given lead ids."""

    def _install(*lead_ids: int) -> None:
        original = LeadStore.save

        def save(self, lead):
            if lead.id in lead_ids:
                raise StoreFailureError(f"Failed to save lead: disk I/O error on lead {lead.id}")
            return original(self, lead)

        monkeypatch.setattr(LeadStore, "save", save)

    return _install
