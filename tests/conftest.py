"""Shared fixtures: in-memory SQLite, seeded users, a ledger workspace without a live scheduler."""
import os

# Must be set before app.config / app.database are imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DRAFT_SYNC_ENABLED"] = "false"
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["PENALTY_ACCESS_CODE"] = "settle-1500"

import pytest
from fastapi.testclient import TestClient

from app.database import Base, SessionLocal, engine
from app.dependencies import get_ledger_workspaces
from app.main import app
from app.models.user import User, UserRole
from app.services.draft_store import DraftStore
from app.services.draft_sync import DraftSyncService
from app.services.workspaces import LedgerWorkspaces


@pytest.fixture(autouse=True)
def tables():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def _user(db, email: str, role: UserRole, rooms: int, company: str | None = None) -> User:
    user = User(
        email=email,
        role=role,
        company_name=company,
        accommodation_type="Hotel" if company else None,
        number_of_rooms=rooms,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def operator(db):
    return _user(db, "frontdesk@seaside.test", UserRole.operator, 10, "Seaside Inn")


@pytest.fixture
def other_operator(db):
    return _user(db, "desk@hillside.test", UserRole.operator, 5, "Hillside Lodge")


@pytest.fixture
def admin(db):
    return _user(db, "admin@tourism.test", UserRole.admin, 0)


@pytest.fixture
def store():
    return DraftStore(SessionLocal)


@pytest.fixture
def sync(store):
    # No scheduler: nothing runs until flush()
    return DraftSyncService(store, None, debounce_seconds=0, retry_base_seconds=0, max_attempts=3, stale_after=2)


@pytest.fixture
def workspaces(store, sync):
    return LedgerWorkspaces(store, sync, max_length_of_stay=365)


@pytest.fixture
def client(workspaces):
    app.dependency_overrides[get_ledger_workspaces] = lambda: workspaces
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()

