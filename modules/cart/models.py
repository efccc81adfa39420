"""
Cart Module - Models
=====================
One cart per user with price-at-add-time lines, an optional coupon snapshot,
and stored totals that are recomputed on every mutation.
"""

from decimal import Decimal

from sqlalchemy import (
    Column, Integer, String, Numeric, ForeignKey, DateTime,
    CheckConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from config.database import Base


class Cart(Base):
    __tablename__ = "carts"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, unique=True, nullable=False, index=True)

    # Applied coupon snapshot
    coupon_code = Column(String(50), nullable=True)
    coupon_discount_type = Column(String, nullable=True)
    coupon_value = Column(Numeric(12, 2), nullable=True)
    coupon_max_discount = Column(Numeric(12, 2), nullable=True)

    # Derived totals (never set directly, see CartService._recalculate)
    subtotal = Column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    discount = Column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    shipping_charge = Column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    tax = Column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    total = Column(Numeric(12, 2), default=Decimal("0"), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    items = relationship(
        "CartItem", back_populates="cart",
        cascade="all, delete-orphan", order_by="CartItem.id",
    )

    @property
    def has_coupon(self) -> bool:
        return bool(self.coupon_code)

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)


class CartItem(Base):
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True)
    cart_id = Column(Integer, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    quantity = Column(Integer, default=1, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)   # selling price when added

    # Optional variant, e.g. name="Size", option="XL"
    variant_name = Column(String, nullable=True)
    variant_option = Column(String, nullable=True)

    added_at = Column(DateTime(timezone=True), server_default=func.now())

    cart = relationship("Cart", back_populates="items")
    product = relationship("Product")

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_cart_qty"),
    )

    @property
    def variant(self):
        if not self.variant_name and not self.variant_option:
            return None
        return {"name": self.variant_name, "option": self.variant_option}

    def same_variant(self, variant) -> bool:
        variant = variant or {}
        return (
            (self.variant_name or None) == (variant.get("name") or None)
            and (self.variant_option or None) == (variant.get("option") or None)
        )
