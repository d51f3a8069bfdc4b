"""Pytest configuration and shared fixtures for ledger tests."""

import os

# Set test database URL BEFORE any imports from src
# This ensures the SessionLocal and engine use an in-memory database
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["LOCALE"] = "en_US"
os.environ["SCHOOL_NAME"] = "Rowdatul Iimaan School"

from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from src.api.app import app  # noqa: E402
from src.api.ledger import get_notifier  # noqa: E402
from src.models import Base, Payer, PayerStatus, PayerType  # noqa: E402
from src.services import get_db  # noqa: E402
from src.services.db import create_ledger_engine  # noqa: E402
from src.services.notification_service import NotificationService  # noqa: E402


class EventRecorder:
    """Notification subscriber that keeps every event it receives."""

    def __init__(self):
        self.events: list[tuple[str, dict]] = []

    def __call__(self, event: str, payload: dict) -> None:
        self.events.append((event, payload))

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def payloads(self, name: str) -> list[dict]:
        return [payload for event, payload in self.events if event == name]


@pytest.fixture
def test_engine():
    """In-memory database with all tables created."""
    engine = create_ledger_engine("sqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(test_engine):
    """Provide a test database session."""
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def notifier(recorder) -> NotificationService:
    return NotificationService([recorder])


@pytest.fixture
def make_payer(db_session):
    """Factory creating committed payers."""

    def _make(
        name: str,
        fee: str | Decimal = "100.00",
        payer_type: PayerType = PayerType.TUITION,
        status: PayerStatus = PayerStatus.ACTIVE,
        **extra,
    ) -> Payer:
        payer = Payer(
            name=name,
            fee_amount=Decimal(fee),
            payer_type=payer_type,
            status=status,
            **extra,
        )
        db_session.add(payer)
        db_session.commit()
        return payer

    return _make


@pytest.fixture
def client(db_session, notifier):
    """Provide a FastAPI test client bound to the test session."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close, let fixture handle cleanup

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()
