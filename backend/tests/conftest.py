"""Pytest configuration and fixtures."""

import os

# Keep the application engine off disk; must run before app imports read settings
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key-with-at-least-32-characters")

import pytest
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Generator

from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.rbac import UserRole
from app.core.security import create_access_token
from app.db.base import Base
from app.db.session import get_db
from app.main import app
# Import all models to ensure they're registered with Base.metadata
from app.models import *
from app.models.order import Order, OrderStatus
from app.models.staff import Shift, ShiftStatus
from app.models.tips import TipDistributionRule
from app.models.user import User
from app.services.event_bus import event_bus

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

SHIFT_DATE = date(2024, 3, 15)

HOURS_WEIGHTED_RULES = {"default": {"method": "hours_weighted", "multiplier": 1}}


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def clean_event_bus():
    """Handlers registered by one test never leak into the next."""
    event_bus.clear()
    yield
    event_bus.clear()


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    # Disable rate limiters during tests to avoid flaky failures
    from app.core.rate_limit import limiter as global_limiter
    global_limiter.enabled = False
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    global_limiter.enabled = True
    app.dependency_overrides.clear()


# ============== Users ==============

def _create_user(db: Session, email: str, first_name: str, role: UserRole) -> User:
    user = User(email=email, first_name=first_name, last_name="Test", role=role, is_active=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def manager(db_session: Session) -> User:
    return _create_user(db_session, "manager@example.com", "Morgan", UserRole.MANAGER)


@pytest.fixture
def server_a(db_session: Session) -> User:
    return _create_user(db_session, "server.a@example.com", "Alex", UserRole.SERVER)


@pytest.fixture
def server_b(db_session: Session) -> User:
    return _create_user(db_session, "server.b@example.com", "Blake", UserRole.SERVER)


@pytest.fixture
def chef(db_session: Session) -> User:
    return _create_user(db_session, "chef@example.com", "Casey", UserRole.CHEF)


def token_for(user: User) -> str:
    return create_access_token(
        data={"sub": str(user.id), "email": user.email, "role": user.role, "name": user.first_name}
    )


def headers_for(user: User) -> dict:
    return {"Authorization": f"Bearer {token_for(user)}"}


@pytest.fixture
def auth_headers_for():
    """Build bearer headers for any user."""
    return headers_for


@pytest.fixture
def manager_headers(manager: User) -> dict:
    return headers_for(manager)


@pytest.fixture
def server_headers(server_a: User) -> dict:
    return headers_for(server_a)


# ============== Data builders ==============

@pytest.fixture
def add_closed_order(db_session: Session):
    """Create a closed order with a tip on a given day."""
    def _add(tip, on: date = SHIFT_DATE, at: time = time(20, 0), total="100.00") -> Order:
        order = Order(
            customer_name="Guest",
            status=OrderStatus.CLOSED.value,
            total_amount=Decimal(total),
            tip_amount=Decimal(str(tip)),
            closed_at=datetime.combine(on, at),
        )
        db_session.add(order)
        db_session.commit()
        return order
    return _add


@pytest.fixture
def add_shift(db_session: Session):
    """Create a completed shift of a number of hours for a user."""
    def _add(user: User, hours, on: date = SHIFT_DATE, start: time = time(12, 0),
             status: str = ShiftStatus.COMPLETED.value) -> Shift:
        start_time = datetime.combine(on, start)
        shift = Shift(
            user_id=user.id,
            start_time=start_time,
            end_time=start_time + timedelta(hours=float(hours)),
            role=user.role,
            hours_worked=Decimal(str(hours)),
            status=status,
        )
        db_session.add(shift)
        db_session.commit()
        return shift
    return _add


@pytest.fixture
def add_rule(db_session: Session):
    """Create an active distribution rule."""
    def _add(rules=None, name: str = "Hours weighted", created_by=None) -> TipDistributionRule:
        rule = TipDistributionRule(
            name=name,
            description=f"{name} split",
            rules=rules if rules is not None else HOURS_WEIGHTED_RULES,
            created_by=created_by,
            is_active=True,
        )
        db_session.add(rule)
        db_session.commit()
        db_session.refresh(rule)
        return rule
    return _add


@pytest.fixture
def hundred_dollar_day(add_closed_order, add_shift, add_rule, server_a, server_b, chef):
    """$60 + $40 in tips; servers A and B work 4h each, chef C works 2h."""
    add_closed_order("60.00")
    add_closed_order("40.00", at=time(21, 30))
    shifts = {
        "a": add_shift(server_a, 4, start=time(11, 0)),
        "b": add_shift(server_b, 4, start=time(12, 0)),
        "c": add_shift(chef, 2, start=time(16, 0)),
    }
    rule = add_rule()
    return {"rule": rule, "shifts": shifts, "users": {"a": server_a, "b": server_b, "c": chef}}
