"""
Shared fixtures: an in-memory SQLite store, a repository bound to it, and a
FastAPI app wired to the same engine.
"""
from typing import Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from licensa.core.errors import NotificationError
from licensa.core.settings import Settings
from licensa.db.base import Base
from licensa.main import create_app
from licensa.repositories.license_repository import LicenseRepository

ADMIN_PASSWORD = "test-admin-password"


class RecordingNotifier:
    """Notifier double that remembers every event and can be told to fail."""

    def __init__(self, name: str = "recording", fail: bool = False):
        self.name = name
        self.fail = fail
        self.events = []

    def notify(self, event) -> bool:
        self.events.append(event)
        if self.fail:
            raise NotificationError("delivery refused", channel=self.name)
        return True


@pytest.fixture
def engine() -> Iterator[Engine]:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine: Engine) -> Iterator[Session]:
    session = sessionmaker(bind=engine, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def repository(db: Session) -> LicenseRepository:
    return LicenseRepository(db)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        APP_NAME="Licensa Test",
        DATABASE_URL="sqlite://",
        ADMIN_PASSWORD=ADMIN_PASSWORD,
        SESSION_SECRET="test-session-secret",
        NOTIFY_TIMEOUT_SECONDS=1,
    )


@pytest.fixture
def app(settings: Settings, engine: Engine):
    return create_app(settings=settings, engine=engine)


@pytest.fixture
def client(app) -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_client(client: TestClient) -> TestClient:
    client.headers.update({"X-Admin-Token": ADMIN_PASSWORD})
    return client


@pytest.fixture
def recording_notifier():
    return RecordingNotifier
