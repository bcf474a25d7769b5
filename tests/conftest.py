# tests/conftest.py
import os

# before any storefront import: settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["GEMINI_API_KEY"] = ""
os.environ["RAZORPAY_KEY_ID"] = ""
os.environ["RAZORPAY_KEY_SECRET"] = "test_key_secret"
os.environ["RAZORPAY_WEBHOOK_SECRET"] = "test_webhook_secret"
os.environ["ENABLE_MOCK_PAYMENTS"] = "false"

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from storefront.celery_worker import celery_app
from storefront.data.database import Base, SessionLocal, engine
from storefront.data.models import CartItemModel, CartModel, ProductModel, UserModel
from storefront.services.completion_client import CompletionResult, FunctionCall

celery_app.conf.task_always_eager = True

ADDRESS = {
    "full_name": "Jan Kowalski",
    "phone": "+48123456789",
    "line1": "Main Street 1",
    "line2": None,
    "city": "Warsaw",
    "state": "Mazowieckie",
    "postal_code": "00-001",
    "country": "PL",
}


class FakeNotifier:
    def __init__(self):
        self.orders = []
        self.escalations = []

    def send_order_notification(self, user_id, order_id, event):
        self.orders.append((user_id, order_id, event))

    def escalate_to_human(self, user_id, reason):
        self.escalations.append((user_id, reason))


class FakeCompletionClient:
    """Returns scripted results; a callable script gets the call number."""

    def __init__(self, script=None, summary="Earlier the customer asked about keyboards."):
        self.script = script if script is not None else [CompletionResult(text="Hello!")]
        self.summary = summary
        self.calls = []
        self.summaries = []
        self.is_configured = True

    def generate(self, contents, system_instruction=None, tools=None):
        self.calls.append({"contents": list(contents), "system": system_instruction, "tools": tools})
        if callable(self.script):
            return self.script(len(self.calls))
        item = self.script[min(len(self.calls), len(self.script)) - 1]
        if isinstance(item, Exception):
            raise item
        return item

    def summarize(self, transcript):
        self.summaries.append(transcript)
        return self.summary


class FakeLockService:
    def __init__(self, available=True):
        self.available = available
        self.acquired = []
        self.released = []

    def acquire_conversation_lock(self, user_id, token, ttl=120):
        self.acquired.append((user_id, token))
        return self.available

    def release_conversation_lock(self, user_id, token):
        self.released.append((user_id, token))
        return True


def tool_call(name, **args):
    call = FunctionCall(name=name, args=args)
    return CompletionResult(
        function_calls=[call],
        content={"role": "model", "parts": [{"functionCall": {"name": name, "args": args}}]},
    )


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def user(db):
    u = UserModel(email="customer@shop.local", name="Customer", role="USER")
    db.add(u)
    db.commit()
    return u


@pytest.fixture
def other_user(db):
    u = UserModel(email="other@shop.local", name="Other", role="USER")
    db.add(u)
    db.commit()
    return u


@pytest.fixture
def admin(db):
    u = UserModel(email="admin@shop.local", name="Admin", role="ADMIN")
    db.add(u)
    db.commit()
    return u


@pytest.fixture
def make_product(db):
    counter = {"n": 0}

    def _make(price="100.00", discount="10", stock=5, title=None, category="electronics"):
        counter["n"] += 1
        p = ProductModel(
            sku=f"SKU-{counter['n']}",
            title=title or f"Product {counter['n']}",
            description="Test product",
            category=category,
            price=Decimal(price),
            discount_percentage=Decimal(discount),
            stock=stock,
        )
        db.add(p)
        db.commit()
        return p

    return _make


@pytest.fixture
def fill_cart(db):
    def _fill(user, *lines):
        cart = db.query(CartModel).filter_by(user_id=user.id).one_or_none()
        if cart is None:
            cart = CartModel(user_id=user.id, version=1)
            db.add(cart)
            db.flush()
        for product, quantity in lines:
            db.add(CartItemModel(cart_id=cart.id, product_id=product.id, quantity=quantity))
        db.commit()
        return cart

    return _fill


@pytest.fixture
def client():
    from storefront.main import app

    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def auth(user, role=None):
    return {"X-User-Id": str(user.id), "X-User-Role": role or user.role}
