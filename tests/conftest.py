"""Pytest fixtures: throw-away SQLite database, factories and API clients."""

import os
import tempfile

# Settings are read at import time, so the environment is prepared first
_DB_PATH = os.path.join(tempfile.gettempdir(), f"storefront_test_{os.getpid()}.db")
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_PATH}"
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["NOTIFY_WEBHOOK_URL"] = ""
os.environ["PAYMENT_ORACLE"] = "sandbox"
os.environ["TAX_RATE"] = "0.18"
os.environ["SHIPPING_CHARGE"] = "0"
os.environ.pop("FREE_SHIPPING_MIN_SUBTOTAL", None)

from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from main import app  # noqa: E402
from config.database import Base, engine, SessionLocal  # noqa: E402
from common.security import create_access_token  # noqa: E402
from modules.cart.service import cart_service  # noqa: E402
from modules.catalog.service import product_service  # noqa: E402
from modules.checkout.service import checkout_service  # noqa: E402
from modules.coupon.service import coupon_service  # noqa: E402
from modules.customer.service import address_service  # noqa: E402

CUSTOMER_ID = 101
OTHER_CUSTOMER_ID = 202
ADMIN_ID = 900


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    engine.dispose()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


# ==========================================
# Factories
# ==========================================

@pytest.fixture
def make_product(db):
    def _make(name="Cotton T-Shirt", price="500", stock=10, **extra):
        data = {"name": name, "selling_price": Decimal(price), "stock_quantity": stock}
        data.update(extra)
        product = product_service.create(db, data)
        db.commit()
        return product
    return _make


@pytest.fixture
def make_address(db):
    def _make(user_id=CUSTOMER_ID, full_name="Asha Rao"):
        address = address_service.create(db, user_id, {
            "full_name": full_name,
            "phone": "9876543210",
            "address_line1": "12 MG Road",
            "city": "Bengaluru",
            "state": "Karnataka",
            "pincode": "560001",
        })
        db.commit()
        return address
    return _make


@pytest.fixture
def make_coupon(db):
    def _make(code="SAVE10", discount_type="percentage", value=10, **extra):
        data = {"code": code, "discount_type": discount_type, "discount_value": value}
        data.update(extra)
        coupon = coupon_service.create_coupon(db, data)
        db.commit()
        return coupon
    return _make


@pytest.fixture
def place_order(db, make_address):
    """Fill the user's cart and run checkout. `lines` is [(product, qty), ...]."""
    def _place(lines, user_id=CUSTOMER_ID, payment_method="upi", coupon_code=None, address=None):
        for product, qty in lines:
            cart_service.add_item(db, user_id, product.id, qty)
        if coupon_code:
            cart_service.apply_coupon(db, user_id, coupon_code)
        db.commit()
        address = address or make_address(user_id)
        return checkout_service.create_order(db, user_id, address.id, payment_method)
    return _place


# ==========================================
# API clients
# ==========================================

def auth_headers(user_id=CUSTOMER_ID, role="customer"):
    return {"Authorization": f"Bearer {create_access_token(user_id, role=role)}"}


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def customer_headers():
    return auth_headers(CUSTOMER_ID)


@pytest.fixture
def other_headers():
    return auth_headers(OTHER_CUSTOMER_ID)


@pytest.fixture
def admin_headers():
    return auth_headers(ADMIN_ID, role="admin")
