"""
Inventory Module - Models
==========================
StockReservation: durable record of one granted stock decrement, tied to an
order line. A reservation is released at most once (released_at is set by a
conditional update).
"""

from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, CheckConstraint, Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from config.database import Base


class StockReservation(Base):
    __tablename__ = "stock_reservations"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="SET NULL"), nullable=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)
    quantity = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    released_at = Column(DateTime(timezone=True), nullable=True)
    release_reason = Column(String, nullable=True)   # cancelled / returned / checkout_failed / checkout_recovered

    product = relationship("Product")

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_reservation_qty"),
        Index("ix_reservation_order_open", "order_id", "released_at"),
    )
