"""
Order Module - Models
======================
Order with frozen line, address and pricing snapshots, plus a mutable
status timeline.

Once an order row exists, its lines and pricing columns never change; only
status, history, payment status, cancellation and return fields move.
"""

import enum

from sqlalchemy import (
    Column, Integer, String, Numeric, Text, JSON,
    ForeignKey, DateTime, Index, event, inspect, text,
)
from sqlalchemy.orm import relationship, validates
from sqlalchemy.sql import func

from common.helpers import now_utc
from config.database import Base


# ==========================================
# Enums
# ==========================================

class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURN_REQUESTED = "return_requested"
    RETURNED = "returned"
    REFUNDED = "refunded"


class PaymentMethod(str, enum.Enum):
    UPI = "upi"
    CARD = "card"
    NETBANKING = "netbanking"
    WALLET = "wallet"
    COD = "cod"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class CheckoutState(str, enum.Enum):
    RESERVING = "reserving"    # order row written, stock being reserved
    RESERVED = "reserved"      # all stock held, cart not yet cleared
    COMPLETED = "completed"


class ReturnStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


# ==========================================
# Transition table
# ==========================================

TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED},
    OrderStatus.SHIPPED: {OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED},
    OrderStatus.OUT_FOR_DELIVERY: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: {OrderStatus.RETURN_REQUESTED},
    OrderStatus.RETURN_REQUESTED: {OrderStatus.RETURNED, OrderStatus.REFUNDED, OrderStatus.DELIVERED},
    OrderStatus.RETURNED: set(),
    OrderStatus.REFUNDED: set(),
    OrderStatus.CANCELLED: set(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in TRANSITIONS.items() if not targets)
USER_CANCELLABLE = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED})

# Transitions that hand stock back to the ledger
RELEASING_STATUSES = {
    OrderStatus.CANCELLED: "cancelled",
    OrderStatus.RETURNED: "returned",
    OrderStatus.REFUNDED: "returned",
}

# Position along the fulfilment path, used for forced forward jumps
LIFECYCLE_RANK = {
    OrderStatus.PENDING: 0,
    OrderStatus.CONFIRMED: 1,
    OrderStatus.PROCESSING: 2,
    OrderStatus.SHIPPED: 3,
    OrderStatus.OUT_FOR_DELIVERY: 4,
    OrderStatus.DELIVERED: 5,
    OrderStatus.RETURN_REQUESTED: 6,
    OrderStatus.RETURNED: 7,
    OrderStatus.REFUNDED: 7,
}

# Milestone timestamp column per status
MILESTONE_FIELDS = {
    OrderStatus.CONFIRMED: "confirmed_at",
    OrderStatus.SHIPPED: "shipped_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.CANCELLED: "cancelled_at",
    OrderStatus.RETURNED: "returned_at",
    OrderStatus.REFUNDED: "refunded_at",
}

FROZEN_PRICING_FIELDS = ("subtotal", "discount", "shipping_charge", "tax", "total")


# ==========================================
# Order
# ==========================================

class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(20), unique=True, nullable=False, index=True)
    user_id = Column(Integer, nullable=False, index=True)

    status = Column(String, default=OrderStatus.PENDING.value, nullable=False, index=True)
    checkout_state = Column(String, default=CheckoutState.RESERVING.value, nullable=False, index=True)

    # Snapshots (frozen at checkout)
    delivery_address = Column(JSON, nullable=False)
    subtotal = Column(Numeric(12, 2), nullable=False)
    discount = Column(Numeric(12, 2), nullable=False)
    shipping_charge = Column(Numeric(12, 2), nullable=False)
    tax = Column(Numeric(12, 2), nullable=False)
    total = Column(Numeric(12, 2), nullable=False)

    # Coupon applied
    coupon_code = Column(String(50), nullable=True)
    coupon_discount_type = Column(String, nullable=True)
    coupon_value = Column(Numeric(12, 2), nullable=True)

    # Payment
    payment_method = Column(String, nullable=False)
    payment_status = Column(String, default=PaymentStatus.PENDING.value, nullable=False, index=True)
    payment_transaction_id = Column(String, nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    refund_amount = Column(Numeric(12, 2), nullable=True)

    # Tracking
    carrier = Column(String, nullable=True)
    tracking_number = Column(String, nullable=True)
    tracking_url = Column(String, nullable=True)
    estimated_delivery = Column(DateTime(timezone=True), nullable=True)

    # Milestones
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    shipped_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    returned_at = Column(DateTime(timezone=True), nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)

    # Cancellation
    cancellation_reason = Column(String, nullable=True)
    cancellation_comment = Column(Text, nullable=True)
    cancelled_by = Column(Integer, nullable=True)

    # Return request
    return_reason = Column(String, nullable=True)
    return_comment = Column(Text, nullable=True)
    return_images = Column(JSON, nullable=True)
    return_requested_at = Column(DateTime(timezone=True), nullable=True)
    return_status = Column(String, nullable=True)
    return_resolved_at = Column(DateTime(timezone=True), nullable=True)

    # Notes
    customer_notes = Column(Text, nullable=True)
    admin_notes = Column(Text, nullable=True)

    # Relationships
    items = relationship(
        "OrderItem", back_populates="order",
        cascade="all, delete-orphan", order_by="OrderItem.id",
    )
    status_history = relationship(
        "OrderStatusHistory", back_populates="order",
        cascade="all, delete-orphan", order_by="OrderStatusHistory.id",
    )

    __table_args__ = (
        # At most one unfinished checkout per user
        Index(
            "ux_orders_user_open_checkout", "user_id",
            unique=True,
            sqlite_where=text("checkout_state != 'completed'"),
            postgresql_where=text("checkout_state != 'completed'"),
        ),
    )

    @validates(*FROZEN_PRICING_FIELDS)
    def _freeze_pricing(self, key, value):
        current = getattr(self, key) if inspect(self).persistent else self.__dict__.get(key)
        if current is not None and current != value:
            raise ValueError(f"Order pricing snapshot is immutable ({key})")
        return value

    @property
    def status_enum(self) -> OrderStatus:
        return OrderStatus(self.status)

    @property
    def is_terminal(self) -> bool:
        return self.status_enum in TERMINAL_STATUSES

    @property
    def pricing(self) -> dict:
        return {key: getattr(self, key) for key in FROZEN_PRICING_FIELDS}

    @property
    def invoice_number(self) -> str:
        return f"INV{self.order_number}"


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    # Informational only, no FK: deleting a product must not rewrite order lines
    product_id = Column(Integer, nullable=True, index=True)

    # Snapshot at time of purchase
    product_name = Column(String, nullable=False)
    product_image = Column(String, nullable=True)
    variant_name = Column(String, nullable=True)
    variant_option = Column(String, nullable=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    tax = Column(Numeric(12, 2), nullable=False)
    line_subtotal = Column(Numeric(12, 2), nullable=False)

    order = relationship("Order", back_populates="items")


@event.listens_for(OrderItem, "before_update")
def _order_lines_are_frozen(mapper, connection, target):
    raise ValueError("Order line snapshots are immutable")


class OrderStatusHistory(Base):
    __tablename__ = "order_status_history"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String, nullable=False)
    comment = Column(Text, nullable=True)
    actor_id = Column(Integer, nullable=True)
    actor_role = Column(String, nullable=True)   # customer / admin / system
    created_at = Column(DateTime(timezone=True), default=now_utc, nullable=False)

    order = relationship("Order", back_populates="status_history")
