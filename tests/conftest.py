import hashlib
import hmac
import json
import os
import time
from datetime import datetime, timezone
from typing import Any, Dict, Generator, List, Optional

import pytest
import stripe
from fastapi.testclient import TestClient
from postgrest.exceptions import APIError

# Pas de Redis pendant les tests: le limiter est désactivé avant la construction de l'app
os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")

from storefront.app import app as fastapi_app
from storefront.notifications.service import NotificationDispatcher
from storefront.payments.stripe_client import StripeGateway
from storefront.utils.clients import get_gateway, get_dispatcher
from storefront.utils.security import require_user, require_admin

WEBHOOK_SECRET = "whsec_test_secret"

TEST_USER: Dict[str, Any] = {
    "id": "test-user",
    "email": "test@example.com",
    "name": "Test User",
    "role": "user",
    "token": "fake-token",
}

ADMIN_USER: Dict[str, Any] = {
    "id": "admin-user-id",
    "email": "admin@example.com",
    "name": "Admin User",
    "role": "admin",
    "token": "admin-token",
}

ADDRESS = {"street": "1 Main St", "city": "Springfield", "state": "IL", "zipCode": "62701", "country": "US"}

# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "tests/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)


class FakeStore:
    """
    Base en mémoire remplaçant les repositories 'orders' et 'products'.
    Reproduit les gardes de la base: décrément tout-ou-rien, UNIQUE order_number,
    UPDATE conditionnel is_paid = false / is_delivered = false.
    """

    def __init__(self):
        self.products: Dict[str, Dict[str, Any]] = {}
        self.orders: Dict[str, Dict[str, Any]] = {}
        self.reserve_calls: List[Dict[str, int]] = []
        self.release_calls: List[Dict[str, int]] = []
        self.insert_attempts = 0
        self.mark_paid_calls = 0
        self.forced_collisions = 0
        self.fail_insert: Optional[Exception] = None

    def add_product(self, pid: str, name: str, price: str, stock: int, image: str = "") -> Dict[str, Any]:
        self.products[pid] = {"id": pid, "name": name, "price": price, "stock": stock, "image": image or f"https://img.test/{pid}.png"}
        return self.products[pid]

    def add_order(self, **overrides) -> Dict[str, Any]:
        order_id = overrides.pop("id", f"order-{len(self.orders) + 1}")
        row = {
            "id": order_id,
            "order_number": f"ORD-20240101-{len(self.orders) + 1:08X}",
            "user_id": TEST_USER["id"],
            "order_items": [{"product": "p1", "name": "Widget", "image": "", "price": "15.00", "quantity": 3}],
            "shipping_address": dict(ADDRESS),
            "payment_method": "stripe",
            "items_price": "45.00",
            "tax_price": "3.60",
            "shipping_price": "10.00",
            "total_price": "58.60",
            "is_paid": False,
            "paid_at": None,
            "payment_result": None,
            "status": "pending",
            "is_delivered": False,
            "delivered_at": None,
            "tracking_number": None,
            "notes": None,
            "created_at": "2024-01-01T10:00:00+00:00",
            "updated_at": "2024-01-01T10:00:00+00:00",
        }
        row.update(overrides)
        self.orders[order_id] = row
        return dict(row)

    # products.repository
    def fetch_products_by_ids(self, ids):
        return [dict(self.products[str(i)]) for i in ids if str(i) in self.products]

    def reserve_stock(self, quantities) -> bool:
        self.reserve_calls.append(dict(quantities))
        for pid, qty in quantities.items():
            product = self.products.get(pid)
            if not product or product["stock"] < qty:
                return False
        for pid, qty in quantities.items():
            self.products[pid]["stock"] -= qty
        return True

    def release_stock(self, quantities) -> None:
        self.release_calls.append(dict(quantities))
        for pid, qty in quantities.items():
            if pid in self.products:
                self.products[pid]["stock"] += qty

    # orders.repository
    def insert_order(self, record):
        self.insert_attempts += 1
        if self.fail_insert is not None:
            raise self.fail_insert
        taken = any(o["order_number"] == record["order_number"] for o in self.orders.values())
        if self.forced_collisions > 0 or taken:
            self.forced_collisions = max(0, self.forced_collisions - 1)
            raise APIError({"code": "23505", "message": "duplicate key value violates unique constraint", "details": None, "hint": None})
        now = datetime.now(timezone.utc).isoformat()
        row = {"id": f"order-{len(self.orders) + 1}", "paid_at": None, "payment_result": None, "delivered_at": None,
               "tracking_number": None, "notes": None, "created_at": now, "updated_at": now}
        row.update(json.loads(json.dumps(record)))
        self.orders[row["id"]] = row
        return dict(row)

    def get_order(self, order_id):
        row = self.orders.get(order_id)
        return dict(row) if row else None

    def list_user_orders(self, user_id):
        rows = [dict(o) for o in self.orders.values() if o["user_id"] == user_id]
        return sorted(rows, key=lambda o: o["created_at"], reverse=True)

    def list_all_orders(self, limit=100):
        rows = sorted((dict(o) for o in self.orders.values()), key=lambda o: o["created_at"], reverse=True)
        return rows[:limit]

    def mark_paid_if_unpaid(self, order_id, changes):
        self.mark_paid_calls += 1
        row = self.orders.get(order_id)
        if not row or row["is_paid"]:
            return None
        row.update(changes)
        return dict(row)

    def set_delivered_if_not_delivered(self, order_id, delivered_at):
        row = self.orders.get(order_id)
        if not row or row["is_delivered"]:
            return None
        row.update({"is_delivered": True, "delivered_at": delivered_at})
        return dict(row)

    def update_order(self, order_id, changes):
        row = self.orders.get(order_id)
        if not row:
            return None
        row.update(changes)
        return dict(row)


class FakeGateway(StripeGateway):
    """Stripe simulé pour les appels API; la vérification de signature reste celle du SDK."""

    def __init__(self):
        super().__init__("sk_test_fake", WEBHOOK_SECRET, "usd")
        self.intents: Dict[str, Dict[str, Any]] = {}
        self.created: List[Dict[str, Any]] = []
        self.retrieved: List[str] = []
        self.fail_customer: Optional[Exception] = None
        self.fail_intent: Optional[Exception] = None

    def find_or_create_customer(self, *, email, name="", address=None):
        if self.fail_customer is not None:
            raise self.fail_customer
        return {"id": "cus_test", "email": email, "name": name}

    def create_payment_intent(self, **params):
        if self.fail_intent is not None:
            raise self.fail_intent
        params.setdefault("currency", self.currency)
        pid = f"pi_test_{len(self.intents) + 1}"
        intent = {"id": pid, "client_secret": f"{pid}_secret_abc", "status": "requires_payment_method", **params}
        self.intents[pid] = intent
        self.created.append(params)
        return dict(intent)

    def retrieve_payment_intent(self, payment_intent_id):
        self.retrieved.append(payment_intent_id)
        if payment_intent_id not in self.intents:
            raise stripe.InvalidRequestError(f"No such payment_intent: '{payment_intent_id}'", "intent")
        return dict(self.intents[payment_intent_id])

    def succeed(self, payment_intent_id: str) -> Dict[str, Any]:
        self.intents[payment_intent_id]["status"] = "succeeded"
        return dict(self.intents[payment_intent_id])


class RecordingMailer:
    def __init__(self):
        self.sent: List[Dict[str, Any]] = []
        self.fail: Optional[Exception] = None

    def send(self, to, subject, html, text=None):
        if self.fail is not None:
            raise self.fail
        self.sent.append({"to": to, "subject": subject, "html": html, "text": text})


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """En-tête Stripe-Signature (t=..., v1=HMAC-SHA256(secret, "t.payload"))."""
    ts = int(timestamp if timestamp is not None else time.time())
    signature = hmac.new(secret.encode("utf-8"), f"{ts}.{payload}".encode("utf-8"), hashlib.sha256).hexdigest()
    return f"t={ts},v1={signature}"


def intent_event(event_type: str, intent: Dict[str, Any], event_id: str = "evt_test_1") -> Dict[str, Any]:
    return {"id": event_id, "object": "event", "type": event_type, "data": {"object": intent}}


@pytest.fixture()
def store(monkeypatch) -> FakeStore:
    fake = FakeStore()
    for name in ("fetch_products_by_ids", "reserve_stock", "release_stock"):
        monkeypatch.setattr(f"storefront.products.repository.{name}", getattr(fake, name))
    for name in ("insert_order", "get_order", "list_user_orders", "list_all_orders",
                 "mark_paid_if_unpaid", "set_delivered_if_not_delivered", "update_order"):
        monkeypatch.setattr(f"storefront.orders.repository.{name}", getattr(fake, name))
    return fake

@pytest.fixture()
def user() -> Dict[str, Any]:
    return dict(TEST_USER)

@pytest.fixture()
def admin_user() -> Dict[str, Any]:
    return dict(ADMIN_USER)

@pytest.fixture()
def address() -> Dict[str, str]:
    return dict(ADDRESS)

@pytest.fixture()
def gateway() -> FakeGateway:
    return FakeGateway()

@pytest.fixture()
def mailer() -> RecordingMailer:
    return RecordingMailer()

@pytest.fixture()
def dispatcher(mailer) -> NotificationDispatcher:
    return NotificationDispatcher(mailer)

@pytest.fixture()
def signer():
    return sign_payload

@pytest.fixture()
def make_event():
    return intent_event

@pytest.fixture(scope="session")
def app():
    return fastapi_app

@pytest.fixture()
def client(app, store, gateway, dispatcher) -> Generator[TestClient, None, None]:
    app.dependency_overrides[require_user] = lambda: dict(TEST_USER)
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()

@pytest.fixture()
def admin_client(app, client) -> TestClient:
    app.dependency_overrides[require_admin] = lambda: dict(ADMIN_USER)
    return client
