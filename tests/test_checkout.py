"""Checkout orchestrator: check-all, reserve-all-or-roll-back, snapshots."""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest

from common.exceptions import (
    EmptyCart, AddressNotFound, InsufficientStock, CouponLimitReached, ProductUnavailable,
)
from config.database import SessionLocal
from modules.cart.service import cart_service
from modules.catalog.models import Product
from modules.catalog.service import product_service
from modules.checkout.service import checkout_service
from modules.coupon.service import coupon_service
from modules.customer.models import CustomerAddress
from modules.customer.service import address_service
from modules.inventory.models import StockReservation
from modules.inventory.service import inventory_service
from modules.notification.models import Notification
from modules.order.models import Order, CheckoutState, OrderStatus

from .conftest import CUSTOMER_ID, OTHER_CUSTOMER_ID


def _stock(db, product_id):
    db.expire_all()
    return db.query(Product).filter(Product.id == product_id).first().stock_quantity


class TestCreateOrder:
    def test_happy_path(self, db, make_product, place_order):
        p = make_product(price="500", stock=5)
        order = place_order([(p, 2)])

        assert order.order_number.startswith("ORD")
        assert order.status == OrderStatus.PENDING.value
        assert order.checkout_state == CheckoutState.COMPLETED.value
        assert order.subtotal == Decimal("1000.00")
        assert order.tax == Decimal("180.00")
        assert order.total == Decimal("1180.00")
        assert order.delivery_address["city"] == "Bengaluru"
        assert [h.status for h in order.status_history] == ["pending"]

        assert _stock(db, p.id) == 3
        assert cart_service.get_cart(db, CUSTOMER_ID).items == []
        assert len(inventory_service.get_open_reservations(db, order.id)) == 1

    def test_coupon_snapshot_and_usage(self, db, make_product, make_coupon, place_order):
        make_coupon(code="SAVE10", value=10)
        p = make_product(price="500")
        order = place_order([(p, 2)], coupon_code="SAVE10")
        assert order.coupon_code == "SAVE10"
        assert order.discount == Decimal("100.00")
        assert order.total == Decimal("1080.00")

    def test_empty_cart(self, db, make_address):
        address = make_address()
        with pytest.raises(EmptyCart):
            checkout_service.create_order(db, CUSTOMER_ID, address.id, "upi")

    def test_address_of_another_user(self, db, make_product, make_address):
        p = make_product()
        cart_service.add_item(db, CUSTOMER_ID, p.id, 1)
        db.commit()
        foreign = make_address(user_id=OTHER_CUSTOMER_ID)
        with pytest.raises(AddressNotFound):
            checkout_service.create_order(db, CUSTOMER_ID, foreign.id, "upi")
        assert db.query(Order).count() == 0

    def test_check_phase_failure_touches_nothing(self, db, make_product, make_address):
        a = make_product(name="A", stock=5)
        b = make_product(name="B", stock=2)
        cart_service.add_item(db, CUSTOMER_ID, a.id, 1)
        cart_service.add_item(db, CUSTOMER_ID, b.id, 2)
        db.commit()
        # Someone else buys B in the meantime
        inventory_service.reserve(db, b.id, 1)
        db.commit()

        address = make_address()
        with pytest.raises(InsufficientStock) as exc:
            checkout_service.create_order(db, CUSTOMER_ID, address.id, "upi")
        assert exc.value.context["product_id"] == b.id
        assert db.query(Order).count() == 0
        assert _stock(db, a.id) == 5
        assert len(cart_service.get_cart(db, CUSTOMER_ID).items) == 2

    def test_variant_lines_share_product_stock(self, db, make_product, make_address):
        p = make_product(name="Tee", stock=6)
        cart_service.add_item(db, CUSTOMER_ID, p.id, 2, {"name": "Size", "option": "S"})
        cart_service.add_item(db, CUSTOMER_ID, p.id, 2, {"name": "Size", "option": "M"})
        db.commit()
        # Stock drops to 3 after the lines were added
        inventory_service.reserve(db, p.id, 3)
        db.commit()

        address = make_address()
        with pytest.raises(InsufficientStock) as exc:
            checkout_service.create_order(db, CUSTOMER_ID, address.id, "upi")
        assert (exc.value.context["requested"], exc.value.context["available"]) == (4, 3)
        assert db.query(Order).count() == 0
        assert db.query(StockReservation).filter(StockReservation.order_id.isnot(None)).count() == 0
        assert _stock(db, p.id) == 3

    def test_inactive_product_in_cart(self, db, make_product, make_address):
        a = make_product(name="A", stock=5)
        b = make_product(name="B", stock=5)
        cart_service.add_item(db, CUSTOMER_ID, a.id, 1)
        cart_service.add_item(db, CUSTOMER_ID, b.id, 1)
        db.commit()
        product_service.update(db, b.id, {"is_active": False})
        db.commit()

        address = make_address()
        with pytest.raises(ProductUnavailable) as exc:
            checkout_service.create_order(db, CUSTOMER_ID, address.id, "upi")
        assert exc.value.context["product_id"] == b.id
        assert db.query(Order).count() == 0
        assert _stock(db, a.id) == 5

    def test_coupon_claim_lost_to_concurrent_checkout(
        self, db, make_product, make_coupon, place_order, make_address, monkeypatch,
    ):
        make_coupon(code="LAST", max_usage_count=1)
        p = make_product(price="100", stock=10)
        cart_service.add_item(db, CUSTOMER_ID, p.id, 1)
        cart_service.apply_coupon(db, CUSTOMER_ID, "LAST")
        db.commit()
        place_order([(p, 1)], user_id=OTHER_CUSTOMER_ID, coupon_code="LAST")

        # Eligibility was read before the other checkout took the last use
        monkeypatch.setattr(coupon_service, "can_user_use", lambda *args, **kwargs: None)
        address = make_address()
        with pytest.raises(CouponLimitReached):
            checkout_service.create_order(db, CUSTOMER_ID, address.id, "upi")

        assert db.query(Order).filter(Order.user_id == CUSTOMER_ID).count() == 0
        assert _stock(db, p.id) == 9
        assert coupon_service.get_by_code(db, "LAST").current_usage_count == 1

    def test_coupon_rechecked_at_checkout(self, db, make_product, make_coupon, place_order, make_address):
        make_coupon(code="LAST", max_usage_count=1)
        p = make_product(price="100", stock=10)
        cart_service.add_item(db, CUSTOMER_ID, p.id, 1)
        cart_service.apply_coupon(db, CUSTOMER_ID, "LAST")
        db.commit()

        # Another customer uses up the coupon first
        place_order([(p, 1)], user_id=OTHER_CUSTOMER_ID, coupon_code="LAST")

        address = make_address()
        with pytest.raises(CouponLimitReached):
            checkout_service.create_order(db, CUSTOMER_ID, address.id, "upi")
        assert db.query(Order).filter(Order.user_id == CUSTOMER_ID).count() == 0
        assert _stock(db, p.id) == 9

    def test_order_placed_notification(self, db, make_product, place_order):
        p = make_product()
        order = place_order([(p, 1)])
        note = db.query(Notification).filter(Notification.user_id == CUSTOMER_ID).one()
        assert note.event == "order_placed"
        assert note.reference_id == str(order.id)

    def test_notification_failure_does_not_fail_checkout(self, db, make_product, place_order, monkeypatch):
        from modules.notification.service import notification_service

        def broken_factory():
            raise RuntimeError("notification store down")

        p = make_product(stock=2)
        monkeypatch.setattr(notification_service, "session_factory", broken_factory)
        order = place_order([(p, 1)])

        assert order.checkout_state == CheckoutState.COMPLETED.value
        assert _stock(db, p.id) == 1
        assert db.query(Notification).count() == 0


class TestRollback:
    def test_failed_reservation_midway_compensates(self, db, make_product, make_address, monkeypatch):
        a = make_product(name="A", stock=5)
        b = make_product(name="B", stock=1)
        cart_service.add_item(db, CUSTOMER_ID, a.id, 2)
        cart_service.add_item(db, CUSTOMER_ID, b.id, 1)
        db.commit()
        address = make_address()

        original = inventory_service.reserve

        def racing_reserve(session, product_id, quantity, order_id=None):
            if product_id == b.id:
                # A concurrent buyer wins the last unit of B between check and reserve
                other = SessionLocal()
                try:
                    original(other, b.id, 1)
                    other.commit()
                finally:
                    other.close()
            return original(session, product_id, quantity, order_id=order_id)

        monkeypatch.setattr(inventory_service, "reserve", racing_reserve)

        with pytest.raises(InsufficientStock) as exc:
            checkout_service.create_order(db, CUSTOMER_ID, address.id, "upi")

        assert exc.value.context["product_id"] == b.id
        assert db.query(Order).count() == 0
        assert _stock(db, a.id) == 5
        released = db.query(StockReservation).filter(StockReservation.product_id == a.id).one()
        assert released.released_at is not None
        assert released.release_reason == "checkout_failed"
        assert len(cart_service.get_cart(db, CUSTOMER_ID).items) == 2

    def test_concurrent_checkouts_for_last_unit(self, db, make_product, make_address):
        p = make_product(price="250", stock=1)
        buyers = list(range(1000, 1008))
        for user_id in buyers:
            cart_service.add_item(db, user_id, p.id, 1)
            address_service.create(db, user_id, {
                "full_name": f"Buyer {user_id}", "phone": "9000000000",
                "address_line1": "1 Main St", "city": "Pune", "state": "MH", "pincode": "411001",
            })
        db.commit()
        address_ids = {a.user_id: a.id for a in db.query(CustomerAddress).all()}

        def checkout(user_id):
            session = SessionLocal()
            try:
                checkout_service.create_order(session, user_id, address_ids[user_id], "card")
                return True
            except InsufficientStock:
                return False
            finally:
                session.close()

        with ThreadPoolExecutor(max_workers=len(buyers)) as pool:
            results = list(pool.map(checkout, buyers))

        assert results.count(True) == 1
        assert _stock(db, p.id) == 0
        assert db.query(Order).count() == 1
        open_reservations = db.query(StockReservation).filter(StockReservation.released_at.is_(None)).all()
        assert len(open_reservations) == 1


class TestSnapshots:
    def test_order_unchanged_after_product_edit_and_delete(self, db, make_product, place_order):
        p = make_product(name="Linen Shirt", price="799", stock=3, image_url="/img/linen.jpg")
        order = place_order([(p, 1)])
        order_id = order.id
        items_before = [
            (it.product_id, it.product_name, it.product_image, it.quantity, it.unit_price, it.tax, it.line_subtotal)
            for it in order.items
        ]
        pricing_before = dict(order.pricing)

        product_service.update(db, p.id, {"name": "Renamed", "selling_price": "1", "image_url": None})
        db.commit()
        product_service.delete(db, p.id)
        db.commit()
        db.expire_all()

        order = db.query(Order).filter(Order.id == order_id).one()
        items_after = [
            (it.product_id, it.product_name, it.product_image, it.quantity, it.unit_price, it.tax, it.line_subtotal)
            for it in order.items
        ]
        assert items_after == items_before
        assert order.pricing == pricing_before

    def test_pricing_columns_are_frozen(self, db, make_product, place_order):
        p = make_product()
        order = place_order([(p, 1)])
        with pytest.raises(ValueError):
            order.total = Decimal("1.00")

    def test_order_lines_are_frozen(self, db, make_product, place_order):
        p = make_product()
        order = place_order([(p, 1)])
        order.items[0].quantity = 99
        with pytest.raises(ValueError):
            db.flush()
        db.rollback()
