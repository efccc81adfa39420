"""
Checkout Orchestrator
======================
Turns a cart into an order as a saga of independently committed steps:

  0. settle the user's unfinished checkout, if any (CheckoutInProgress)
  1. load cart (EmptyCart) and address (AddressNotFound)
  2. check every product against the ledger, quantities summed across
     lines (ProductUnavailable / InsufficientStock, nothing touched)
  3. price the cart with its applied coupon, re-checking eligibility
  4. persist the order with frozen snapshots and claim the coupon use
                                              -> checkout_state=reserving
  5. reserve every line, one commit per grant -> checkout_state=reserved
     on any failure: release what was granted, give back the coupon use,
     delete the order, re-raise
  6. clear the cart and record coupon usage   -> checkout_state=completed
  7. emit order_placed

A crash between steps leaves an order in `reserving` or `reserved`;
the user's next checkout or recover_stale_checkouts() rolls it back or
forward. A user never has more than one unfinished checkout.
"""

import logging
from datetime import timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from common.helpers import now_utc, as_utc, generate_order_number
from common.exceptions import (
    EmptyCart, InsufficientStock, CouponInvalid, CouponError, CheckoutInProgress,
)
from config.settings import CHECKOUT_STALE_MINUTES
from modules.cart.models import Cart
from modules.cart.service import cart_service
from modules.catalog.service import product_service
from modules.coupon.service import coupon_service
from modules.customer.service import address_service
from modules.inventory.service import inventory_service
from modules.notification.models import NotificationEvent
from modules.notification.service import notification_service
from modules.order.models import (
    Order, OrderItem, OrderStatus, OrderStatusHistory, PaymentMethod, PaymentStatus, CheckoutState,
)
from modules.pricing.calculator import PricedLine, compute_totals, line_tax

logger = logging.getLogger("storefront.checkout")


class CheckoutService:

    # ==========================================
    # Create order
    # ==========================================

    def create_order(
        self,
        db: Session,
        user_id: int,
        address_id: int,
        payment_method,
        customer_notes: Optional[str] = None,
        background_tasks=None,
    ) -> Order:
        payment_method = PaymentMethod(payment_method)

        # A retry after a crash finishes or clears the earlier attempt first
        recovered = self._reconcile_open_checkout(db, user_id, background_tasks)
        if recovered is not None:
            return recovered

        cart = cart_service.get_cart(db, user_id)
        if not cart or not cart.items:
            raise EmptyCart()
        address = address_service.get_address(db, user_id, address_id)

        # Check all lines before anything is written, summed per product
        products, needed = {}, {}
        for item in cart.items:
            products[item.product_id] = product_service.get_active(db, item.product_id)
            needed[item.product_id] = needed.get(item.product_id, 0) + item.quantity
        for product_id, quantity in needed.items():
            if not inventory_service.check_available(db, product_id, quantity):
                raise InsufficientStock(
                    product_id=product_id,
                    product_name=products[product_id].name,
                    requested=quantity,
                    available=inventory_service.available_quantity(db, product_id),
                )

        terms = cart_service.coupon_terms(cart)
        if terms:
            coupon = coupon_service.get_by_code(db, terms.code)
            if not coupon:
                raise CouponInvalid("Applied coupon no longer exists")
            coupon_service.can_user_use(
                db, coupon, user_id, cart_service.totals_for(cart, with_coupon=False).subtotal,
            )

        lines = [PricedLine(unit_price=Decimal(it.unit_price), quantity=it.quantity) for it in cart.items]
        totals = compute_totals(lines, terms)

        order = Order(
            order_number=self._unique_order_number(db),
            user_id=user_id,
            status=OrderStatus.PENDING.value,
            checkout_state=CheckoutState.RESERVING.value,
            delivery_address=address.snapshot(),
            subtotal=totals.subtotal,
            discount=totals.discount,
            shipping_charge=totals.shipping,
            tax=totals.tax,
            total=totals.total,
            coupon_code=terms.code if terms else None,
            coupon_discount_type=terms.discount_type if terms else None,
            coupon_value=terms.value if terms else None,
            payment_method=payment_method.value,
            payment_status=PaymentStatus.PENDING.value,
            customer_notes=customer_notes,
            created_at=now_utc(),
        )
        for item, line in zip(cart.items, lines):
            order.items.append(OrderItem(
                product_id=item.product_id,
                product_name=item.product.name,
                product_image=item.product.image_url,
                variant_name=item.variant_name,
                variant_option=item.variant_option,
                quantity=item.quantity,
                unit_price=line.unit_price,
                tax=line_tax(line.unit_price, line.quantity),
                line_subtotal=line.line_subtotal,
            ))
        order.status_history.append(OrderStatusHistory(
            status=OrderStatus.PENDING.value,
            comment="Order placed",
            actor_id=user_id,
            actor_role="customer",
        ))
        db.add(order)
        try:
            db.flush()
        except IntegrityError:
            db.rollback()
            in_flight = self._open_checkout(db, user_id)
            if in_flight is not None:
                raise CheckoutInProgress(in_flight.id)
            raise

        # The coupon use is claimed in the same commit as the order
        if terms:
            try:
                coupon_service.claim(db, terms.code, user_id)
            except CouponError:
                db.rollback()
                raise
        db.commit()

        order_id = order.id
        wanted = [(it.product_id, it.quantity) for it in order.items]
        logger.info(f"Order {order.order_number} (#{order_id}) created, reserving {len(wanted)} line(s)")

        try:
            for product_id, quantity in wanted:
                inventory_service.reserve(db, product_id, quantity, order_id=order_id)
                db.commit()
        except Exception:
            db.rollback()
            self._roll_back(db, order_id, reason="checkout_failed")
            raise

        order.checkout_state = CheckoutState.RESERVED.value
        db.commit()

        self._complete(db, order, cart)
        db.commit()

        self._emit_placed(order, background_tasks)
        return order

    # ==========================================
    # Recovery
    # ==========================================

    def recover_stale_checkouts(self, db: Session, older_than_minutes: int = CHECKOUT_STALE_MINUTES) -> dict:
        """
        Reconcile checkouts that stopped mid-saga:
          reserving -> release granted reservations and delete the order
          reserved  -> clear cart, record coupon usage, mark completed
        """
        cutoff = now_utc() - timedelta(minutes=older_than_minutes)
        stale = (
            db.query(Order)
            .filter(
                Order.checkout_state != CheckoutState.COMPLETED.value,
                Order.created_at <= cutoff,
            )
            .order_by(Order.id)
            .all()
        )

        result = {"rolled_back": 0, "completed": 0}
        for order in stale:
            if order.checkout_state == CheckoutState.RESERVING.value:
                self._roll_back(db, order.id, reason="checkout_recovered")
                result["rolled_back"] += 1
            else:
                cart = cart_service.get_cart(db, order.user_id)
                self._complete(db, order, cart)
                db.commit()
                self._emit_placed(order)
                result["completed"] += 1

        if stale:
            logger.info(f"Checkout recovery: {result}")
        return result

    # ==========================================
    # Private helpers
    # ==========================================

    def _roll_back(self, db: Session, order_id: int, reason: str):
        """Compensation: return every granted reservation and the coupon use, then drop the order."""
        try:
            released = inventory_service.release_for_order(db, order_id, reason)
            order = db.query(Order).filter(Order.id == order_id).first()
            if order:
                if order.coupon_code:
                    coupon_service.release_claim(db, order.coupon_code)
                db.delete(order)
            db.commit()
            logger.info(f"Order #{order_id} rolled back ({reason}), {released} reservation(s) released")
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Rollback of order #{order_id} failed, left for recovery: {e}")
            raise

    def _complete(self, db: Session, order: Order, cart: Optional[Cart]):
        if cart is not None:
            cart_service.clear_cart(db, cart)
        if order.coupon_code:
            coupon_service.record_usage(db, order.coupon_code, order.user_id, order.id, order.discount)
        order.checkout_state = CheckoutState.COMPLETED.value
        db.flush()
        logger.info(f"Order {order.order_number} placed: total={order.total}")

    def _emit_placed(self, order: Order, background_tasks=None):
        notification_service.notify(
            order.user_id,
            NotificationEvent.ORDER_PLACED,
            title="Order placed",
            body=f"Your order {order.order_number} has been placed. Total: {order.total}",
            reference_id=order.id,
            metadata={"order_number": order.order_number, "total": str(order.total)},
            background_tasks=background_tasks,
        )

    def _open_checkout(self, db: Session, user_id: int) -> Optional[Order]:
        return (
            db.query(Order)
            .filter(
                Order.user_id == user_id,
                Order.checkout_state != CheckoutState.COMPLETED.value,
            )
            .first()
        )

    def _reconcile_open_checkout(self, db: Session, user_id: int, background_tasks=None) -> Optional[Order]:
        """
        Settle the user's unfinished checkout before a new one starts:
          reserved           -> roll forward, returned as the result
          reserving (stale)  -> roll back, checkout proceeds
          reserving (fresh)  -> CheckoutInProgress
        """
        order = self._open_checkout(db, user_id)
        if order is None:
            return None

        if order.checkout_state == CheckoutState.RESERVED.value:
            self._complete(db, order, cart_service.get_cart(db, user_id))
            db.commit()
            self._emit_placed(order, background_tasks)
            logger.info(f"Order {order.order_number} completed on retry")
            return order

        cutoff = now_utc() - timedelta(minutes=CHECKOUT_STALE_MINUTES)
        if as_utc(order.created_at) > cutoff:
            raise CheckoutInProgress(order.id)
        self._roll_back(db, order.id, reason="checkout_recovered")
        return None

    def _unique_order_number(self, db: Session) -> str:
        while True:
            number = generate_order_number()
            if not db.query(Order.id).filter(Order.order_number == number).first():
                return number


# Singleton
checkout_service = CheckoutService()
