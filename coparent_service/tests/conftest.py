"""
Pytest configuration and fixtures for coparent_service tests.
"""
import os

# Keep the module-level engine off the development database file
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import Mock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from coparent_service.db.database import Base
from coparent_service.models import expenses, family, obligations  # noqa: F401 register tables
from coparent_service.models.expenses import SplitMethod
from coparent_service.models.family import Child, ParentChild
from coparent_service.schemas.expense_schema import ExpenseCreate
from coparent_service.services.expense_service import create_expense


@pytest.fixture
def db_session():
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def mock_producer():
    """RabbitMQ producer whose publishes always succeed."""
    producer = Mock()
    producer.publish_message.return_value = True
    producer.publish_notification.return_value = True
    producer.publish_expense_approval_email.return_value = True
    return producer


@pytest.fixture
def failing_producer():
    """RabbitMQ producer whose publishes are all rejected."""
    producer = Mock()
    producer.publish_message.return_value = False
    producer.publish_notification.return_value = False
    producer.publish_expense_approval_email.return_value = False
    return producer


@pytest.fixture
def make_expense():
    """Build a detached expense-like object for pure allocation tests."""
    def _make(amount="100.00", paid_by="alice", split_method="50/50", split_amounts=None, split_percentage=None):
        return SimpleNamespace(
            id="exp-1",
            amount=Decimal(amount),
            paid_by=paid_by,
            split_method=split_method,
            split_amounts=split_amounts,
            split_percentage=split_percentage
        )
    return _make


@pytest.fixture
def expense_factory(db_session):
    """Persist expenses through the service so they get their initial audit entry."""
    def _create(
        paid_by="alice",
        amount="100.00",
        split_method=SplitMethod.equal,
        description="Dentist visit",
        category="medical",
        expense_date=date(2024, 5, 10),
        child_ids=(),
        **fields
    ):
        data = ExpenseCreate(
            description=description,
            category=category,
            date=expense_date,
            amount=Decimal(amount),
            split_method=split_method,
            child_ids=list(child_ids),
            **fields
        )
        return create_expense(db_session, data, paid_by)
    return _create


@pytest.fixture
def family_circle(db_session):
    """alice and bob share one child."""
    child = Child(id="kid-1", name="Sam")
    db_session.add(child)
    db_session.add(ParentChild(parent_id="alice", child_id=child.id))
    db_session.add(ParentChild(parent_id="bob", child_id=child.id))
    db_session.commit()
    return {"child_id": child.id, "parents": ["alice", "bob"]}
