"""
Catalog Module - Models
========================
Product with pricing, inventory counters and engagement stats.
Stock columns are mutated only through the inventory ledger.
"""

from sqlalchemy import (
    Column, Integer, String, Numeric, Boolean,
    DateTime, CheckConstraint,
)
from sqlalchemy.sql import func
from config.database import Base


# ==========================================
# 📦 Product
# ==========================================

class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    image_url = Column(String, nullable=True)

    # Pricing
    original_price = Column(Numeric(12, 2), nullable=False)
    selling_price = Column(Numeric(12, 2), nullable=False)

    # Inventory (ledger-owned)
    stock_quantity = Column(Integer, default=0, nullable=False)
    is_unlimited = Column(Boolean, default=False, nullable=False)

    # Stats
    sold_count = Column(Integer, default=0, nullable=False)
    view_count = Column(Integer, default=0, nullable=False)
    wishlist_count = Column(Integer, default=0, nullable=False)

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="ck_product_stock_non_negative"),
    )

    def __repr__(self):
        return f"<Product {self.name} (stock={self.stock_quantity})>"
