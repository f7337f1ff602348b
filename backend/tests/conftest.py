"""Shared test fixtures."""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient
from datetime import date
from decimal import Decimal
import uuid

from recurra.config import settings
from recurra.database import Base, get_db
from recurra.main import app
from recurra.models.transaction import Transaction, TransactionType
from recurra.models.recurring import RecurringDefinition, Frequency
from recurra.repositories import RecurringDefinitionRepository, TransactionRepository


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database for each test using in-memory SQLite."""
    # Use StaticPool to ensure all connections use the same in-memory database
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Create all tables
    Base.metadata.create_all(bind=engine)

    # Create session
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(scope="function")
def client(db_session, monkeypatch):
    """Create a test client with database override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    monkeypatch.setattr(settings, "create_tables_on_startup", False)
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def recurring_repo(db_session):
    return RecurringDefinitionRepository(db_session)


@pytest.fixture
def transaction_repo(db_session):
    return TransactionRepository(db_session)


@pytest.fixture
def make_transaction():
    """Build a transaction record in the shape accepted by detection."""
    def _make(txn_date, amount="-15.99", description="Netflix Subscription", **extra):
        record = {
            "id": str(uuid.uuid4()),
            "date": txn_date.isoformat() if isinstance(txn_date, date) else txn_date,
            "amount": amount,
            "description": description,
            "category": "Entertainment",
            "type": "expense",
        }
        record.update(extra)
        return record
    return _make


@pytest.fixture
def sample_transaction(db_session):
    """Create a sample stored transaction."""
    txn = Transaction(
        id=str(uuid.uuid4()),
        date=date(2024, 1, 15),
        amount=Decimal("-50.00"),
        description="WHOLE FOODS #1234",
        category="Groceries",
        type=TransactionType.expense,
        account_id="acct-1",
    )
    db_session.add(txn)
    db_session.commit()
    db_session.refresh(txn)
    return txn


@pytest.fixture
def sample_definition(db_session):
    """Create an auto-approved monthly definition due on 2024-02-01."""
    definition = RecurringDefinition(
        id=str(uuid.uuid4()),
        name="Netflix",
        description="Netflix Subscription",
        amount=Decimal("15.99"),
        type=TransactionType.expense,
        frequency=Frequency.monthly,
        category="Entertainment",
        account_id="acct-1",
        is_active=True,
        auto_approve=True,
        start_date=date(2024, 1, 1),
        next_run_date=date(2024, 2, 1),
        last_run_date=None,
    )
    db_session.add(definition)
    db_session.commit()
    db_session.refresh(definition)
    return definition


@pytest.fixture
def paused_definition(db_session):
    """Create a paused definition whose next run is in the past."""
    definition = RecurringDefinition(
        id=str(uuid.uuid4()),
        name="Gym Membership",
        description="City Gym",
        amount=Decimal("29.99"),
        type=TransactionType.expense,
        frequency=Frequency.monthly,
        category="Health & Fitness",
        account_id="acct-1",
        is_active=False,
        auto_approve=True,
        start_date=date(2023, 12, 5),
        next_run_date=date(2024, 1, 5),
    )
    db_session.add(definition)
    db_session.commit()
    db_session.refresh(definition)
    return definition
