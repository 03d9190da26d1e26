"""Shared pytest fixtures for Ticketbooth."""

from __future__ import annotations

import hashlib
import hmac
import sys
import time
from datetime import timedelta
from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import scoped_session, sessionmaker
from sqlalchemy.pool import StaticPool

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from ticketbooth import api, database, storage
from ticketbooth.crud import create_event, create_organizer, replace_ticket_types
from ticketbooth.models import Base
from ticketbooth.payments import CheckoutSession, PaymentGateway
from ticketbooth.utils import utcnow


@pytest.fixture(scope="session", autouse=True)
def configure_in_memory_db():
    """Reuse a single in-memory SQLite database for fast, isolated tests."""

    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    session_factory = scoped_session(
        sessionmaker(
            bind=engine,
            autoflush=False,
            autocommit=False,
            future=True,
            expire_on_commit=False,
        )
    )
    database.engine = engine
    database.SessionLocal = session_factory
    storage.engine = engine
    storage.get_session = database.get_session
    api.SessionLocal = session_factory
    Base.metadata.create_all(bind=engine)
    yield
    session_factory.remove()


@pytest.fixture(autouse=True)
def clean_database():
    """Reset all tables between tests to guarantee isolation."""

    Base.metadata.drop_all(bind=database.engine)
    Base.metadata.create_all(bind=database.engine)
    yield


@pytest.fixture()
def session():
    db = database.SessionLocal()
    try:
        yield db
    finally:
        db.rollback()
        db.close()


class FakeGateway(PaymentGateway):
    """Records checkout requests instead of calling Stripe."""

    def __init__(self):
        super().__init__(secret_key="sk_test_fake", currency="usd")
        self.checkouts: list[dict] = []

    def create_checkout(self, **kwargs) -> CheckoutSession:
        self.checkouts.append(kwargs)
        number = len(self.checkouts)
        return CheckoutSession(
            order_id=f"cs_test_{number}",
            checkout_url=f"https://checkout.stripe.test/c/pay/cs_test_{number}",
        )


@pytest.fixture()
def gateway():
    return FakeGateway()


def sign_payload(payload: bytes, secret: str, *, timestamp: int | None = None) -> str:
    """Build a Stripe-Signature header for ``payload``."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def make_organizer(session, name: str = "Harbor Events"):
    organizer = create_organizer(session, name=name)
    session.commit()
    return organizer


def make_event(
    session,
    organizer,
    *,
    title: str = "Summer Social",
    days_from_now: int = 7,
    price: Decimal | int = 0,
):
    event = create_event(
        session,
        organizer=organizer,
        title=title,
        description="Rooftop drinks",
        date=utcnow() + timedelta(days=days_from_now),
        location="Pier 7",
        price=price,
    )
    session.commit()
    return event


def make_ticket_types(session, event, rows: list[dict]):
    created = replace_ticket_types(
        session,
        event_id=event.id,
        organizer_id=event.organizer_id,
        ticket_types=rows,
    )
    session.commit()
    return created
