"""Shared fixtures: in-memory SQLite, dependency overrides, seeded catalog."""

import hashlib
import json
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cloudtickets.auth import create_jwt_token
from cloudtickets.config import Settings, get_settings
from cloudtickets.database import Base, get_db
from cloudtickets.delivery import get_ticket_delivery
from cloudtickets.main import app
from cloudtickets.models import Device, Event, TicketType
from cloudtickets.security import CredentialSigner

TICKET_SECRET = "test-ticket-secret"
EVENTS_SECRET = "test_events_secret"
INTEGRITY_SECRET = "test_integrity_secret"
JWT_SECRET = "test-jwt-secret"
DEVICE_KEY = "gate-1-key"


@pytest.fixture
def settings():
    return Settings(
        DATABASE_URL="sqlite://",
        TICKET_SECRET=TICKET_SECRET,
        JWT_SECRET=JWT_SECRET,
        PAYMENT_PUBLIC_KEY="pub_test_123",
        PAYMENT_INTEGRITY_SECRET=INTEGRITY_SECRET,
        PAYMENT_EVENTS_SECRET=EVENTS_SECRET,
        PAYMENT_REDIRECT_URL="https://shop.example.com/payment-result",
    )


@pytest.fixture
def signer():
    return CredentialSigner(TICKET_SECRET)


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def catalog(db):
    event = Event(name="Festival Cordillera")
    db.add(event)
    db.flush()
    general = TicketType(event_id=event.id, name="General", price_cents=15000, price_display=150.0)
    vip = TicketType(event_id=event.id, name="VIP", price_cents=40000, price_display=400.0)
    db.add_all([general, vip])
    db.commit()
    return {"event": event, "general": general, "vip": vip}


@pytest.fixture
def device(db):
    gate = Device(name="North gate", api_key=DEVICE_KEY, active=True)
    db.add(gate)
    db.commit()
    return gate


class RecordingDelivery:
    def __init__(self):
        self.delivered = []

    def deliver(self, order_id):
        self.delivered.append(order_id)
        return True


@pytest.fixture
def delivery():
    return RecordingDelivery()


@pytest.fixture
def client(db, settings, delivery):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_ticket_delivery] = lambda: delivery
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_headers(user_id=1, role="CLIENT"):
    return {"Authorization": f"Bearer {create_jwt_token(user_id, role, JWT_SECRET)}"}


def device_headers(key=DEVICE_KEY):
    return {"X-API-Key": key}


def signed_event(reference, status="APPROVED", tx_id="1234-1610641025-49201", amount=30000,
                 timestamp=1530291411, secret=EVENTS_SECRET, properties=None):
    """Build a provider event body (bytes) with a correct checksum."""
    properties = properties or ["transaction.id", "transaction.status", "transaction.amount_in_cents"]
    transaction = {
        "id": tx_id,
        "amount_in_cents": amount,
        "reference": reference,
        "customer_email": "ana@example.com",
        "currency": "COP",
        "payment_method_type": "CARD",
        "status": status,
    }
    values = "".join(str(transaction[p.split(".", 1)[1]]) for p in properties)
    checksum = hashlib.sha256(f"{values}{timestamp}{secret}".encode("utf-8")).hexdigest()
    body = {
        "event": "transaction.updated",
        "data": {"transaction": transaction},
        "environment": "test",
        "signature": {"properties": properties, "checksum": checksum},
        "timestamp": timestamp,
        "sent_at": "2018-07-20T16:45:05.000Z",
    }
    return json.dumps(body).encode("utf-8")
