"""
Inventory Module - Service Layer (Ledger)
==========================================
Per-product stock ledger: availability checks and atomic reserve/release.

reserve() is a single conditional UPDATE guarded by
``stock_quantity >= requested``; it never reads stock and writes it back in
two steps. Contention is per product row, no global lock is taken.
The caller owns the transaction (flush only, no commit).
"""

import logging
from typing import List, Optional

from sqlalchemy import case, or_
from sqlalchemy.orm import Session
from sqlalchemy.orm.util import identity_key

from common.helpers import now_utc
from common.exceptions import InsufficientStock
from modules.catalog.models import Product
from modules.inventory.models import StockReservation

logger = logging.getLogger("storefront.inventory")


class InventoryService:

    # ==========================================
    # Query
    # ==========================================

    def check_available(self, db: Session, product_id: int, quantity: int) -> bool:
        """True if the product is unlimited or has at least `quantity` on hand."""
        product = db.query(Product).filter(Product.id == product_id).first()
        if not product or not product.is_active:
            return False
        return product.is_unlimited or product.stock_quantity >= quantity

    def available_quantity(self, db: Session, product_id: int) -> Optional[int]:
        """On-hand quantity, or None for unlimited products."""
        product = db.query(Product).filter(Product.id == product_id).first()
        if not product or not product.is_active:
            return 0
        return None if product.is_unlimited else product.stock_quantity

    def get_open_reservations(self, db: Session, order_id: int) -> List[StockReservation]:
        return (
            db.query(StockReservation)
            .filter(
                StockReservation.order_id == order_id,
                StockReservation.released_at.is_(None),
            )
            .order_by(StockReservation.id)
            .all()
        )

    # ==========================================
    # Reserve (compare-and-decrement)
    # ==========================================

    def reserve(
        self,
        db: Session,
        product_id: int,
        quantity: int,
        order_id: Optional[int] = None,
    ) -> StockReservation:
        """
        Atomically decrement stock by `quantity` if enough is on hand and bump
        the sold counter. Records a StockReservation for later release.
        Raises InsufficientStock (stock untouched) otherwise.
        """
        if quantity < 1:
            raise ValueError("quantity must be >= 1")

        count = (
            db.query(Product)
            .filter(
                Product.id == product_id,
                Product.is_active.is_(True),
                or_(Product.is_unlimited.is_(True), Product.stock_quantity >= quantity),
            )
            .update({
                Product.stock_quantity: case(
                    (Product.is_unlimited.is_(True), Product.stock_quantity),
                    else_=Product.stock_quantity - quantity,
                ),
                Product.sold_count: Product.sold_count + quantity,
            }, synchronize_session=False)
        )
        self._expire_product(db, product_id)

        if count != 1:
            available = self.available_quantity(db, product_id)
            product = db.query(Product).filter(Product.id == product_id).first()
            logger.info(
                f"Reserve refused: product #{product_id} requested={quantity} available={available}"
            )
            raise InsufficientStock(
                product_id=product_id,
                product_name=product.name if product else "",
                requested=quantity,
                available=available,
            )

        reservation = StockReservation(order_id=order_id, product_id=product_id, quantity=quantity)
        db.add(reservation)
        db.flush()
        logger.info(f"Reserved {quantity} of product #{product_id} (order #{order_id})")
        return reservation

    # ==========================================
    # Release
    # ==========================================

    def release(self, db: Session, product_id: int, quantity: int):
        """Atomically add `quantity` back to on-hand stock (no-op for unlimited products)."""
        db.query(Product).filter(
            Product.id == product_id,
            Product.is_unlimited.is_(False),
        ).update({
            Product.stock_quantity: Product.stock_quantity + quantity,
        }, synchronize_session=False)
        self._expire_product(db, product_id)
        db.flush()
        logger.info(f"Released {quantity} of product #{product_id}")

    def release_reservation(self, db: Session, reservation: StockReservation, reason: str) -> bool:
        """
        Release one reservation at most once. The released_at guard is a
        conditional update, so concurrent callers cannot both restock.
        Returns True if this call performed the release.
        """
        claimed = db.query(StockReservation).filter(
            StockReservation.id == reservation.id,
            StockReservation.released_at.is_(None),
        ).update({
            StockReservation.released_at: now_utc(),
            StockReservation.release_reason: reason,
        }, synchronize_session=False)
        db.expire(reservation)

        if claimed != 1:
            return False
        if reservation.product_id is not None:
            self.release(db, reservation.product_id, reservation.quantity)
        return True

    def release_for_order(self, db: Session, order_id: int, reason: str) -> int:
        """Release every open reservation of an order. Returns number released."""
        released = 0
        for reservation in self.get_open_reservations(db, order_id):
            if self.release_reservation(db, reservation, reason):
                released += 1
        if released:
            logger.info(f"Order #{order_id}: released {released} reservation(s) ({reason})")
        return released

    # ==========================================
    # Private helpers
    # ==========================================

    def _expire_product(self, db: Session, product_id: int):
        """Drop cached column values of a product touched by a bulk UPDATE."""
        cached = db.identity_map.get(identity_key(Product, product_id))
        if cached is not None:
            db.expire(cached)


# Singleton
inventory_service = InventoryService()
