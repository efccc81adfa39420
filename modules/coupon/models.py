"""
Coupon Module - Models
========================
Discount coupons and their usage audit trail.

Features:
  - Percentage or fixed amount
  - Optional cap for percentage coupons
  - Minimum order value
  - Usage limits (total + per-user)
  - Validity window (start_date / end_date)
"""

import enum
from sqlalchemy import (
    Column, Integer, String, Boolean, Text, Numeric,
    DateTime, ForeignKey, Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from config.database import Base


# ==========================================
# Enums
# ==========================================

class DiscountType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


# ==========================================
# Coupon
# ==========================================

class Coupon(Base):
    __tablename__ = "coupons"

    id = Column(Integer, primary_key=True)
    code = Column(String(50), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=False, default="")

    # Discount
    discount_type = Column(String, default=DiscountType.PERCENTAGE.value, nullable=False)
    discount_value = Column(Numeric(12, 2), nullable=False)   # percent (e.g. 10) or fixed amount
    max_discount = Column(Numeric(12, 2), nullable=True)      # cap for percentage coupons

    # Constraints
    min_order_value = Column(Numeric(12, 2), default=0, nullable=False)

    # Usage limits
    max_usage_count = Column(Integer, nullable=True)           # total usage limit
    max_usage_per_user = Column(Integer, default=1, nullable=False)
    current_usage_count = Column(Integer, default=0, nullable=False)  # claimed by placed or in-flight orders
    total_discount_given = Column(Numeric(14, 2), default=0, nullable=False)

    # Validity
    start_date = Column(DateTime(timezone=True), nullable=True)
    end_date = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    usages = relationship("CouponUsage", back_populates="coupon", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_coupon_code_active", "code", "is_active"),
    )

    @property
    def discount_display(self) -> str:
        if self.discount_type == DiscountType.PERCENTAGE:
            s = f"{self.discount_value.normalize():f}%"
            if self.max_discount:
                s += f" (max {self.max_discount})"
            return s
        return f"{self.discount_value} off"


# ==========================================
# CouponUsage (audit trail)
# ==========================================

class CouponUsage(Base):
    __tablename__ = "coupon_usages"

    id = Column(Integer, primary_key=True)
    coupon_id = Column(Integer, ForeignKey("coupons.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, nullable=False)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="SET NULL"), nullable=True, unique=True)
    discount_amount = Column(Numeric(12, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    coupon = relationship("Coupon", back_populates="usages")

    __table_args__ = (
        Index("ix_usage_coupon_user", "coupon_id", "user_id"),
    )
