"""Stale checkout reconciliation: backward for `reserving`, forward for `reserved`."""

from datetime import timedelta

import pytest

from common.exceptions import OrderNotFound, CheckoutInProgress
from common.helpers import now_utc
from modules.cart.service import cart_service
from modules.catalog.models import Product
from modules.checkout.service import checkout_service
from modules.coupon.service import coupon_service
from modules.inventory.models import StockReservation
from modules.inventory.service import inventory_service
from modules.order.models import Order, CheckoutState
from modules.order.service import order_service

from .conftest import CUSTOMER_ID


class ProcessCrash(BaseException):
    """Stands in for the process dying mid-saga; not caught by compensation."""


def _stock(db, product_id):
    db.expire_all()
    return db.query(Product).filter(Product.id == product_id).first().stock_quantity


@pytest.fixture
def filled_cart(db, make_product, make_address):
    a = make_product(name="A", stock=5)
    b = make_product(name="B", stock=5)
    cart_service.add_item(db, CUSTOMER_ID, a.id, 2)
    cart_service.add_item(db, CUSTOMER_ID, b.id, 1)
    db.commit()
    return a, b, make_address()


class TestRecovery:
    def test_crash_while_reserving_rolls_back(self, db, filled_cart, monkeypatch):
        a, b, address = filled_cart
        original = inventory_service.reserve

        def crash_on_b(session, product_id, quantity, order_id=None):
            if product_id == b.id:
                raise ProcessCrash()
            return original(session, product_id, quantity, order_id=order_id)

        monkeypatch.setattr(inventory_service, "reserve", crash_on_b)
        with pytest.raises(ProcessCrash):
            checkout_service.create_order(db, CUSTOMER_ID, address.id, "upi")
        db.rollback()
        monkeypatch.undo()

        stuck = db.query(Order).one()
        assert stuck.checkout_state == CheckoutState.RESERVING.value
        assert _stock(db, a.id) == 3

        result = checkout_service.recover_stale_checkouts(db, older_than_minutes=0)

        assert result == {"rolled_back": 1, "completed": 0}
        assert db.query(Order).count() == 0
        assert _stock(db, a.id) == 5
        assert len(cart_service.get_cart(db, CUSTOMER_ID).items) == 2

    def test_crash_before_cart_clear_rolls_forward(self, db, filled_cart, make_coupon, monkeypatch):
        a, b, address = filled_cart
        make_coupon(code="SAVE10")
        cart_service.apply_coupon(db, CUSTOMER_ID, "SAVE10")
        db.commit()

        def crash(*args, **kwargs):
            raise ProcessCrash()

        monkeypatch.setattr(checkout_service, "_complete", crash)
        with pytest.raises(ProcessCrash):
            checkout_service.create_order(db, CUSTOMER_ID, address.id, "upi")
        db.rollback()
        monkeypatch.undo()

        stuck = db.query(Order).one()
        assert stuck.checkout_state == CheckoutState.RESERVED.value
        # Hidden from the customer until reconciled
        with pytest.raises(OrderNotFound):
            order_service.get_user_order(db, CUSTOMER_ID, stuck.id)
        assert len(cart_service.get_cart(db, CUSTOMER_ID).items) == 2

        result = checkout_service.recover_stale_checkouts(db, older_than_minutes=0)

        assert result == {"rolled_back": 0, "completed": 1}
        db.expire_all()
        order = db.query(Order).one()
        assert order.checkout_state == CheckoutState.COMPLETED.value
        assert cart_service.get_cart(db, CUSTOMER_ID).items == []
        assert (_stock(db, a.id), _stock(db, b.id)) == (3, 4)
        assert coupon_service.get_by_code(db, "SAVE10").current_usage_count == 1

    def test_fresh_checkouts_are_left_alone(self, db, filled_cart, monkeypatch):
        a, b, address = filled_cart

        def crash(*args, **kwargs):
            raise ProcessCrash()

        monkeypatch.setattr(checkout_service, "_complete", crash)
        with pytest.raises(ProcessCrash):
            checkout_service.create_order(db, CUSTOMER_ID, address.id, "upi")
        db.rollback()
        monkeypatch.undo()

        result = checkout_service.recover_stale_checkouts(db, older_than_minutes=10)
        assert result == {"rolled_back": 0, "completed": 0}
        assert db.query(Order).one().checkout_state == CheckoutState.RESERVED.value

    def test_completed_orders_untouched(self, db, make_product, place_order):
        p = make_product(stock=3)
        place_order([(p, 1)])
        assert checkout_service.recover_stale_checkouts(db, older_than_minutes=0) == \
            {"rolled_back": 0, "completed": 0}
        assert _stock(db, p.id) == 2


class TestRetry:
    def _crash_in(self, monkeypatch, db, address, target, name, replacement=None):
        def crash(*args, **kwargs):
            raise ProcessCrash()

        monkeypatch.setattr(target, name, replacement or crash)
        with pytest.raises(ProcessCrash):
            checkout_service.create_order(db, CUSTOMER_ID, address.id, "upi")
        db.rollback()
        monkeypatch.undo()
        return db.query(Order).one()

    def test_retry_after_crash_before_cart_clear_returns_same_order(self, db, filled_cart, monkeypatch):
        a, b, address = filled_cart
        stuck = self._crash_in(monkeypatch, db, address, checkout_service, "_complete")
        assert stuck.checkout_state == CheckoutState.RESERVED.value

        order = checkout_service.create_order(db, CUSTOMER_ID, address.id, "upi")
        assert order.id == stuck.id
        assert order.checkout_state == CheckoutState.COMPLETED.value

        assert checkout_service.recover_stale_checkouts(db, older_than_minutes=0) == \
            {"rolled_back": 0, "completed": 0}
        db.expire_all()
        assert db.query(Order).count() == 1
        assert (_stock(db, a.id), _stock(db, b.id)) == (3, 4)
        assert cart_service.get_cart(db, CUSTOMER_ID).items == []

    def test_retry_while_reserving_is_refused_until_stale(self, db, filled_cart, monkeypatch):
        a, b, address = filled_cart
        original = inventory_service.reserve

        def crash_on_b(session, product_id, quantity, order_id=None):
            if product_id == b.id:
                raise ProcessCrash()
            return original(session, product_id, quantity, order_id=order_id)

        stuck = self._crash_in(monkeypatch, db, address, inventory_service, "reserve", crash_on_b)
        assert stuck.checkout_state == CheckoutState.RESERVING.value

        with pytest.raises(CheckoutInProgress) as exc:
            checkout_service.create_order(db, CUSTOMER_ID, address.id, "upi")
        assert exc.value.context["order_id"] == stuck.id
        assert _stock(db, a.id) == 3

        stuck.created_at = now_utc() - timedelta(minutes=30)
        db.commit()

        order = checkout_service.create_order(db, CUSTOMER_ID, address.id, "upi")
        assert order.checkout_state == CheckoutState.COMPLETED.value
        db.expire_all()
        assert db.query(Order).count() == 1
        assert (_stock(db, a.id), _stock(db, b.id)) == (3, 4)
        recovered = db.query(StockReservation).filter(StockReservation.release_reason == "checkout_recovered").all()
        assert [(r.product_id, r.quantity) for r in recovered] == [(a.id, 2)]

    def test_double_submit_cannot_create_second_order(self, db, filled_cart, monkeypatch):
        a, b, address = filled_cart
        stuck = self._crash_in(monkeypatch, db, address, checkout_service, "_complete")

        # A concurrent submit that looked before the first order was written
        monkeypatch.setattr(checkout_service, "_reconcile_open_checkout", lambda *args, **kwargs: None)
        with pytest.raises(CheckoutInProgress):
            checkout_service.create_order(db, CUSTOMER_ID, address.id, "upi")

        db.expire_all()
        assert [o.id for o in db.query(Order).all()] == [stuck.id]
        assert (_stock(db, a.id), _stock(db, b.id)) == (3, 4)
        assert len(cart_service.get_cart(db, CUSTOMER_ID).items) == 2

    def test_rolled_back_checkout_returns_coupon_use(self, db, filled_cart, make_coupon, monkeypatch):
        a, b, address = filled_cart
        make_coupon(code="ONCE", max_usage_count=1)
        cart_service.apply_coupon(db, CUSTOMER_ID, "ONCE")
        db.commit()
        original = inventory_service.reserve

        def crash_on_b(session, product_id, quantity, order_id=None):
            if product_id == b.id:
                raise ProcessCrash()
            return original(session, product_id, quantity, order_id=order_id)

        self._crash_in(monkeypatch, db, address, inventory_service, "reserve", crash_on_b)
        assert coupon_service.get_by_code(db, "ONCE").current_usage_count == 1

        checkout_service.recover_stale_checkouts(db, older_than_minutes=0)

        db.expire_all()
        assert coupon_service.get_by_code(db, "ONCE").current_usage_count == 0
        assert _stock(db, a.id) == 5
