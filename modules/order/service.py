"""
Order Module - Service Layer
===============================
Order lookup and listing, the status state machine, user cancellation,
return requests and admin-driven transitions.

Every transition goes through _apply_transition(), which appends exactly one
status history entry and hands stock back to the ledger when the target
status releases it. Callers commit.
"""

import logging
from datetime import timedelta
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session
from sqlalchemy import desc, or_

from common.helpers import now_utc, as_utc
from common.exceptions import (
    OrderNotFound, InvalidStatusTransition, ReturnWindowExpired, Unauthorized,
)
from config.settings import RETURN_WINDOW_DAYS
from modules.inventory.service import inventory_service
from modules.order.models import (
    Order, OrderStatusHistory, OrderStatus, PaymentMethod, PaymentStatus,
    CheckoutState, ReturnStatus, TRANSITIONS, USER_CANCELLABLE,
    RELEASING_STATUSES, LIFECYCLE_RANK, MILESTONE_FIELDS,
)

logger = logging.getLogger("storefront.order")

# Forward fulfilment path; forced jumps may skip states along it
FULFILMENT_PATH = (
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
    OrderStatus.RETURN_REQUESTED,
)
RETURN_SIDE = frozenset({OrderStatus.RETURN_REQUESTED, OrderStatus.RETURNED, OrderStatus.REFUNDED})
TRACKING_FIELDS = ("carrier", "tracking_number", "tracking_url", "estimated_delivery")


class OrderService:

    # ==========================================
    # Query
    # ==========================================

    def get_order(self, db: Session, order_id: int, lock: bool = False) -> Order:
        q = db.query(Order).filter(Order.id == order_id)
        if lock:
            q = q.with_for_update()
        order = q.first()
        if not order:
            raise OrderNotFound(order_id)
        return order

    def get_user_order(self, db: Session, user_id: int, order_id: int, lock: bool = False) -> Order:
        """
        Order owned by `user_id`. Orders whose checkout has not completed are
        reported as missing; another user's order raises Unauthorized.
        """
        order = self.get_order(db, order_id, lock=lock)
        if order.user_id != user_id:
            raise Unauthorized("This order does not belong to you")
        if order.checkout_state != CheckoutState.COMPLETED.value:
            raise OrderNotFound(order_id)
        return order

    def list_user_orders(
        self,
        db: Session,
        user_id: int,
        page: int = 1,
        limit: int = 10,
        status: Optional[str] = None,
    ) -> Tuple[List[Order], int]:
        q = db.query(Order).filter(
            Order.user_id == user_id,
            Order.checkout_state == CheckoutState.COMPLETED.value,
        )
        if status:
            q = q.filter(Order.status == status)
        return self._paginate(q, page, limit)

    def list_all_orders(
        self,
        db: Session,
        page: int = 1,
        limit: int = 20,
        status: Optional[str] = None,
        search: Optional[str] = None,
    ) -> Tuple[List[Order], int]:
        """Admin listing. `search` matches order number or recipient name."""
        q = db.query(Order).filter(Order.checkout_state == CheckoutState.COMPLETED.value)
        if status:
            q = q.filter(Order.status == status)
        if search:
            term = f"%{search.strip()}%"
            q = q.filter(or_(
                Order.order_number.ilike(term),
                Order.delivery_address["full_name"].as_string().ilike(term),
            ))
        return self._paginate(q, page, limit)

    def get_history(self, db: Session, order_id: int) -> List[OrderStatusHistory]:
        return (
            db.query(OrderStatusHistory)
            .filter(OrderStatusHistory.order_id == order_id)
            .order_by(OrderStatusHistory.id)
            .all()
        )

    # ==========================================
    # Customer actions
    # ==========================================

    def cancel(
        self,
        db: Session,
        user_id: int,
        order_id: int,
        reason: str,
        comment: Optional[str] = None,
    ) -> Order:
        """Customer cancellation, allowed only while pending or confirmed."""
        order = self.get_user_order(db, user_id, order_id, lock=True)
        current = order.status_enum
        if current not in USER_CANCELLABLE:
            raise InvalidStatusTransition(
                current.value, OrderStatus.CANCELLED.value,
                f"Order can no longer be cancelled (status: {current.value})",
            )

        order.cancellation_reason = reason
        order.cancellation_comment = comment
        order.cancelled_by = user_id
        self._apply_transition(
            db, order, OrderStatus.CANCELLED,
            actor_id=user_id, actor_role="customer",
            comment=f"Cancelled by customer: {reason}",
        )
        return order

    def request_return(
        self,
        db: Session,
        user_id: int,
        order_id: int,
        reason: str,
        comment: Optional[str] = None,
        images: Optional[List[str]] = None,
    ) -> Order:
        """Return request, allowed from delivered within RETURN_WINDOW_DAYS of delivery."""
        order = self.get_user_order(db, user_id, order_id, lock=True)
        current = order.status_enum
        if current != OrderStatus.DELIVERED:
            raise InvalidStatusTransition(
                current.value, OrderStatus.RETURN_REQUESTED.value,
                "Only delivered orders can be returned",
            )

        delivered_at = as_utc(order.delivered_at)
        if delivered_at is None or now_utc() - delivered_at > timedelta(days=RETURN_WINDOW_DAYS):
            raise ReturnWindowExpired(RETURN_WINDOW_DAYS)

        order.return_reason = reason
        order.return_comment = comment
        order.return_images = list(images or [])
        order.return_requested_at = now_utc()
        order.return_status = ReturnStatus.PENDING.value
        self._apply_transition(
            db, order, OrderStatus.RETURN_REQUESTED,
            actor_id=user_id, actor_role="customer",
            comment=f"Return requested: {reason}",
        )
        return order

    # ==========================================
    # Admin actions
    # ==========================================

    def admin_update_status(
        self,
        db: Session,
        order_id: int,
        target,
        actor_id: int,
        comment: Optional[str] = None,
        force: bool = False,
        tracking: Optional[dict] = None,
        admin_notes: Optional[str] = None,
    ) -> Order:
        """
        Admin transition. Table transitions are always allowed; cancellation is
        allowed from any status before delivery; with force=True an admin may jump
        forward along the lifecycle, and the skipped states are recorded in the
        single history entry written for the jump.
        """
        order = self.get_order(db, order_id, lock=True)
        target = OrderStatus(target)
        current = order.status_enum

        if order.checkout_state != CheckoutState.COMPLETED.value:
            raise InvalidStatusTransition(current.value, target.value, "Checkout has not completed")
        if order.is_terminal:
            raise InvalidStatusTransition(current.value, target.value, f"Order is already {current.value}")
        if target == current:
            raise InvalidStatusTransition(current.value, target.value, f"Order is already {current.value}")
        if target == OrderStatus.CANCELLED and LIFECYCLE_RANK[current] >= LIFECYCLE_RANK[OrderStatus.DELIVERED]:
            raise InvalidStatusTransition(current.value, target.value, "Delivered orders cannot be cancelled")

        skipped = []
        if target in TRANSITIONS[current] or target == OrderStatus.CANCELLED:
            pass
        elif force:
            skipped = self._forced_path(current, target)
        else:
            raise InvalidStatusTransition(current.value, target.value)

        if tracking:
            for key in TRACKING_FIELDS:
                if tracking.get(key) is not None:
                    setattr(order, key, tracking[key])
        if admin_notes:
            order.admin_notes = admin_notes

        if target == OrderStatus.CANCELLED:
            order.cancellation_reason = order.cancellation_reason or (comment or "Cancelled by admin")
            order.cancelled_by = actor_id

        note = comment or f"Status changed to {target.value}"
        if skipped:
            note = f"{note} (skipped: {', '.join(s.value for s in skipped)})"
        self._apply_transition(
            db, order, target,
            actor_id=actor_id, actor_role="admin",
            comment=note, skipped=skipped,
        )
        return order

    # ==========================================
    # Private helpers
    # ==========================================

    def _forced_path(self, current: OrderStatus, target: OrderStatus) -> List[OrderStatus]:
        """States skipped by a forced forward jump; raises if the jump is not forward."""
        if target in RETURN_SIDE and LIFECYCLE_RANK[current] < LIFECYCLE_RANK[OrderStatus.DELIVERED]:
            raise InvalidStatusTransition(
                current.value, target.value, "Returns require a delivered order",
            )
        if LIFECYCLE_RANK[target] <= LIFECYCLE_RANK[current]:
            raise InvalidStatusTransition(current.value, target.value)
        return [
            s for s in FULFILMENT_PATH
            if LIFECYCLE_RANK[current] < LIFECYCLE_RANK[s] < LIFECYCLE_RANK[target]
        ]

    def _apply_transition(
        self,
        db: Session,
        order: Order,
        target: OrderStatus,
        actor_id: Optional[int],
        actor_role: str,
        comment: str,
        skipped: Optional[List[OrderStatus]] = None,
    ):
        previous = order.status_enum
        now = now_utc()

        for status in list(skipped or []) + [target]:
            field = MILESTONE_FIELDS.get(status)
            if field and getattr(order, field) is None:
                setattr(order, field, now)

        if target == OrderStatus.DELIVERED:
            if previous == OrderStatus.RETURN_REQUESTED:
                order.return_status = ReturnStatus.REJECTED.value
                order.return_resolved_at = now
            elif order.payment_method == PaymentMethod.COD.value \
                    and order.payment_status != PaymentStatus.COMPLETED.value:
                # Cash is collected on delivery
                order.payment_status = PaymentStatus.COMPLETED.value
                order.paid_at = now
        elif target == OrderStatus.RETURNED:
            order.return_status = ReturnStatus.COMPLETED.value
            order.return_resolved_at = now
        elif target == OrderStatus.REFUNDED:
            order.return_status = ReturnStatus.COMPLETED.value
            order.return_resolved_at = now
            order.payment_status = PaymentStatus.REFUNDED.value
            order.refund_amount = order.total

        order.status = target.value
        order.status_history.append(OrderStatusHistory(
            status=target.value,
            comment=comment,
            actor_id=actor_id,
            actor_role=actor_role,
            created_at=now,
        ))

        reason = RELEASING_STATUSES.get(target)
        if reason:
            inventory_service.release_for_order(db, order.id, reason)

        db.flush()
        logger.info(
            f"Order {order.order_number}: {previous.value} -> {target.value} "
            f"by {actor_role} #{actor_id}"
        )

    def _paginate(self, q, page: int, limit: int) -> Tuple[List[Order], int]:
        page = max(1, page or 1)
        limit = min(max(1, limit or 10), 100)
        total = q.count()
        items = q.order_by(desc(Order.created_at), desc(Order.id)).offset((page - 1) * limit).limit(limit).all()
        return items, total


# Singleton
order_service = OrderService()
