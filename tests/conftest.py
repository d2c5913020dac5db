"""
Pytest configuration and fixtures.

- In-memory SQLite engine shared by the test session and the app
- A recording notifier in place of the logging one
- User/department factories and bearer-token headers
"""

import itertools
import os
from typing import Dict, Generator

# Set test environment before importing app modules
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET_KEY"] = "test-secret"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from staff_directory.core.roles import MANAGER_ROLES
from staff_directory.core.security import create_user_token, get_password_hash
from staff_directory.db import models, session
from staff_directory.main import app
from staff_directory.services.notifications import get_notifier

PASSWORD = "secret123"


class RecordingNotifier:
    """Keeps every notification as (kind, args) instead of sending it."""

    def __init__(self):
        self.sent = []

    def _record(self, kind, *args):
        self.sent.append((kind, args))

    def account_locked(self, user, recipients, locked_by, reason):
        self._record("account_locked", user.id_card, recipients, locked_by, reason)

    def account_unlocked(self, user, recipients, unlocked_by):
        self._record("account_unlocked", user.id_card, recipients, unlocked_by)

    def verification_code(self, email, name, code):
        self._record("verification_code", email, name, code)

    def password_reset(self, email, name, token):
        self._record("password_reset", email, name, token)

    def password_changed(self, email, name):
        self._record("password_changed", email, name)

    def of_kind(self, kind):
        return [args for k, args in self.sent if k == kind]


# =============================================================================
# DATABASE FIXTURES
# =============================================================================


@pytest.fixture
def engine():
    test_engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    models.Base.metadata.create_all(bind=test_engine)
    yield test_engine
    models.Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def db(engine) -> Generator[Session, None, None]:
    TestingSession = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    db_session = TestingSession()
    yield db_session
    db_session.close()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def client(db, notifier) -> Generator[TestClient, None, None]:
    """Test client whose requests use the test session and notifier."""
    app.dependency_overrides[session.get_db] = lambda: db
    app.dependency_overrides[get_notifier] = lambda: notifier
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# =============================================================================
# DATA FIXTURES
# =============================================================================


@pytest.fixture(scope="session")
def password_hash() -> str:
    return get_password_hash(PASSWORD)


@pytest.fixture
def make_department(db):
    counter = itertools.count(1)

    def _make(name=None, code=None, **fields) -> models.Department:
        n = next(counter)
        department = models.Department(name=name or f"Department {n}", code=code or f"D{n:02d}", **fields)
        db.add(department)
        db.commit()
        db.refresh(department)
        return department

    return _make


@pytest.fixture
def department(make_department) -> models.Department:
    return make_department(name="Operations", code="OPS")


@pytest.fixture
def make_user(db, department, password_hash):
    counter = itertools.count(1)

    def _make(role="STAFF", manager=None, department=department, **fields) -> models.User:
        n = next(counter)
        values = dict(
            id_card=f"KE{100 + n:03d}",
            email=f"user{n}@example.com",
            password_hash=password_hash,
            first_name=f"User{n}",
            last_name="Tester",
            department_id=department.id,
            position="Officer",
            role=role,
            is_admin=role in MANAGER_ROLES,
            is_verified=True,
            reports_to_id=manager.id if manager is not None else None,
        )
        values.update(fields)
        user = models.User(**values)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def super_admin(make_user) -> models.User:
    return make_user(role="SUPER_ADMIN", first_name="Ada", email="ada@example.com")


@pytest.fixture
def line_manager(make_user) -> models.User:
    return make_user(role="LINE_MANAGER", first_name="Cleo", email="cleo@example.com")


@pytest.fixture
def other_manager(make_user) -> models.User:
    return make_user(role="LINE_MANAGER", first_name="Eli", email="eli@example.com")


@pytest.fixture
def staff(make_user, line_manager) -> models.User:
    return make_user(role="STAFF", manager=line_manager, first_name="Bo", email="bo@example.com")


def auth_headers(user: models.User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_user_token(user)}"}


@pytest.fixture
def headers_for():
    return auth_headers
