"""
Catalog Module - Service Layer
================================
Product lookup and editing. Stock is never written here after creation;
use the inventory ledger for reserve/release.
"""

from typing import Optional

from sqlalchemy.orm import Session

from common.helpers import to_money
from common.exceptions import ProductUnavailable
from modules.catalog.models import Product

# Fields an editor may change on a live product
EDITABLE_FIELDS = ("name", "image_url", "original_price", "selling_price", "is_active", "is_unlimited")


class ProductService:

    def get(self, db: Session, product_id: int) -> Optional[Product]:
        return db.query(Product).filter(Product.id == product_id).first()

    def get_active(self, db: Session, product_id: int) -> Product:
        """Return an active product or raise ProductUnavailable."""
        product = self.get(db, product_id)
        if not product or not product.is_active:
            raise ProductUnavailable(product_id)
        return product

    def create(self, db: Session, data: dict) -> Product:
        selling = to_money(data["selling_price"])
        product = Product(
            name=data["name"],
            image_url=data.get("image_url"),
            original_price=to_money(data.get("original_price", selling)),
            selling_price=selling,
            stock_quantity=int(data.get("stock_quantity", 0)),
            is_unlimited=bool(data.get("is_unlimited", False)),
            is_active=bool(data.get("is_active", True)),
        )
        if product.stock_quantity < 0:
            raise ValueError("stock_quantity must be >= 0")
        db.add(product)
        db.flush()
        return product

    def update(self, db: Session, product_id: int, data: dict) -> Product:
        product = self.get(db, product_id)
        if not product:
            raise ProductUnavailable(product_id)
        for key in EDITABLE_FIELDS:
            if key not in data:
                continue
            val = data[key]
            if key in ("original_price", "selling_price"):
                val = to_money(val)
            setattr(product, key, val)
        db.flush()
        return product

    def delete(self, db: Session, product_id: int) -> bool:
        product = self.get(db, product_id)
        if not product:
            return False
        db.delete(product)
        db.flush()
        return True


# Singleton
product_service = ProductService()
