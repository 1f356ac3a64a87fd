"""Pytest configuration for orderhub tests

WHAT: Provides shared fixtures for webhook endpoint and service tests
WHY: Ensures consistent test setup, database isolation, and mock configuration
REFERENCES:
    - orderhub/main.py: FastAPI application
    - orderhub/database.py: Database configuration
    - orderhub/deps.py: Dependency injection (get_notifier)
"""

import pytest
import os
import json
import uuid
from datetime import datetime
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

# Ensure backend is in path
import sys
from pathlib import Path
BACKEND_ROOT = Path(__file__).resolve().parents[2]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

# Set test environment
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.pop("TELEGRAM_BOT_TOKEN", None)
os.environ.pop("SENTRY_DSN", None)


SHOPIFY_SECRET = "wh_" + "a1" * 20
WOOCOMMERCE_SECRET = "wh_" + "b2" * 20
CUSTOM_SECRET = "wh_" + "c3" * 20
INACTIVE_SECRET = "wh_" + "d4" * 20


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def test_db_engine():
    """Create in-memory test database engine."""
    # StaticPool: every connection sees the same in-memory database
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Create all tables
    from orderhub.models import Base
    Base.metadata.create_all(bind=engine)

    yield engine

    # Cleanup
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def test_db_session(test_db_engine) -> Generator[Session, None, None]:
    """Create test database session."""
    SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=test_db_engine
    )

    session = SessionLocal()
    yield session
    session.rollback()
    session.close()


# ============================================================================
# Notification Fixtures
# ============================================================================

class RecordingNotifier:
    """Notifier double that records every notify() call."""

    def __init__(self):
        self.calls = []

    def notify(self, user_id, notification):
        self.calls.append({"user_id": user_id, "notification": notification})
        return self._delivered()

    async def _delivered(self):
        return True


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture(autouse=True)
def spawned(monkeypatch):
    """Replace fire-and-forget spawning in the routers with a recorder.

    The coroutine is closed instead of scheduled; tests assert on the labels
    and on RecordingNotifier.calls.
    """
    labels = []

    def fake_spawn(coro, label="notification"):
        labels.append(label)
        coro.close()

    from orderhub.routers import customer_webhooks, order_webhooks
    monkeypatch.setattr(order_webhooks, "spawn_background", fake_spawn)
    monkeypatch.setattr(customer_webhooks, "spawn_background", fake_spawn)
    return labels


# ============================================================================
# Application & Client Fixtures
# ============================================================================

@pytest.fixture
def app(test_db_session, notifier):
    """Create FastAPI test application."""
    from orderhub.main import create_app
    from orderhub.database import get_db
    from orderhub.deps import get_notifier

    test_app = create_app()

    # Session stays open so fixtures remain usable after a request
    def override_get_db():
        yield test_db_session

    test_app.dependency_overrides[get_db] = override_get_db
    test_app.dependency_overrides[get_notifier] = lambda: notifier

    return test_app


@pytest.fixture
def client(app) -> TestClient:
    """Create TestClient for HTTP testing."""
    return TestClient(app)


# ============================================================================
# Model Fixtures
# ============================================================================

@pytest.fixture
def test_user(test_db_session):
    """Create test tenant."""
    from orderhub.models import User

    user = User(
        id=uuid.uuid4(),
        email="seller@example.com",
        name="Test Seller",
        telegram_chat_id="123456789",
        created_at=datetime.utcnow(),
    )

    test_db_session.add(user)
    test_db_session.commit()
    test_db_session.refresh(user)

    return user


@pytest.fixture
def test_user_b(test_db_session):
    """Create second tenant (for isolation tests)."""
    from orderhub.models import User

    user = User(
        id=uuid.uuid4(),
        email="other-seller@example.com",
        name="Other Seller",
        created_at=datetime.utcnow(),
    )

    test_db_session.add(user)
    test_db_session.commit()
    test_db_session.refresh(user)

    return user


def _make_integration(session, user, *, name, type_, domain, secret, is_active=True):
    from orderhub.models import Integration

    integration = Integration(
        id=uuid.uuid4(),
        user_id=user.id,
        name=name,
        type=type_,
        domain=domain,
        webhook_secret=secret,
        is_active=is_active,
    )
    session.add(integration)
    session.commit()
    session.refresh(integration)
    return integration


@pytest.fixture
def shopify_integration(test_db_session, test_user):
    from orderhub.models import IntegrationTypeEnum

    return _make_integration(
        test_db_session, test_user,
        name="My Store", type_=IntegrationTypeEnum.shopify,
        domain="my-store.myshopify.com", secret=SHOPIFY_SECRET,
    )


@pytest.fixture
def woocommerce_integration(test_db_session, test_user):
    from orderhub.models import IntegrationTypeEnum

    return _make_integration(
        test_db_session, test_user,
        name="Woo Shop", type_=IntegrationTypeEnum.woocommerce,
        domain="shop.example.com", secret=WOOCOMMERCE_SECRET,
    )


@pytest.fixture
def custom_integration(test_db_session, test_user):
    from orderhub.models import IntegrationTypeEnum

    return _make_integration(
        test_db_session, test_user,
        name="Landing Page", type_=IntegrationTypeEnum.custom,
        domain="landing.example.com", secret=CUSTOM_SECRET,
    )


@pytest.fixture
def inactive_integration(test_db_session, test_user):
    from orderhub.models import IntegrationTypeEnum

    return _make_integration(
        test_db_session, test_user,
        name="Paused Store", type_=IntegrationTypeEnum.shopify,
        domain="paused.myshopify.com", secret=INACTIVE_SECRET, is_active=False,
    )


# ============================================================================
# Payload Fixtures
# ============================================================================

@pytest.fixture
def shopify_order_payload():
    """orders/create body as Shopify sends it (trimmed to what we read)."""
    return {
        "id": 9001,
        "email": "j@x.com",
        "created_at": "2026-03-01T10:15:00+01:00",
        "updated_at": "2026-03-01T10:15:00+01:00",
        "total_price": "42.50",
        "currency": "EUR",
        "financial_status": None,
        "fulfillment_status": None,
        "customer": {
            "id": 1,
            "email": "j@x.com",
            "first_name": "Jane",
            "last_name": "Doe",
            "phone": "+39 333 1234567",
            "default_address": {
                "address1": "Via Roma 1",
                "address2": "Scala B",
                "city": "Milano",
                "province": "MI",
                "country": "Italy",
                "zip": "20100",
            },
        },
        "line_items": [
            {
                "id": 1,
                "product_id": 111,
                "variant_id": 222,
                "title": "Widget",
                "name": "Widget - Blue",
                "sku": "W-1",
                "quantity": 2,
                "price": "10.00",
            }
        ],
    }


@pytest.fixture
def woocommerce_order_payload():
    """order.created body as WooCommerce sends it (trimmed to what we read)."""
    return {
        "id": 5150,
        "date_created": "2026-03-02T08:00:00",
        "date_modified": "2026-03-02T08:00:00",
        "total": "59.90",
        "currency": "EUR",
        "status": "processing",
        "billing": {
            "first_name": "Mario",
            "last_name": "Rossi",
            "email": "mario@shop.com",
            "phone": "3331234567",
            "address_1": "Via Verdi 2",
            "address_2": "",
            "city": "Roma",
            "state": "RM",
            "postcode": "00100",
            "country": "IT",
        },
        "line_items": [
            {
                "id": 10,
                "name": "T-Shirt",
                "product_id": 77,
                "sku": "TS-RED-M",
                "quantity": 3,
                "price": 19.96,
                "total": "59.88",
            }
        ],
    }


# ============================================================================
# Helper Fixtures
# ============================================================================

@pytest.fixture
def encode_body():
    """Serialize a payload the way a storefront would (compact JSON bytes)."""
    def _encode(payload) -> bytes:
        return json.dumps(payload, separators=(",", ":")).encode("utf-8")
    return _encode


@pytest.fixture
def sign():
    """Sign raw body bytes with a webhook secret."""
    from orderhub.services.signature import compute_signature

    def _sign(body: bytes, secret: str) -> str:
        return compute_signature(body, secret)
    return _sign
