"""
Cart Module - Service Layer
==============================
Cart management: get/create, add/update/remove items, coupon, totals.
Every mutation recomputes the stored totals before it returns, so totals are
never stale relative to items. Callers commit.
"""

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from common.exceptions import (
    InsufficientStock, CartItemNotFound, InvalidQuantity, EmptyCart,
)
from modules.cart.models import Cart, CartItem
from modules.catalog.service import product_service
from modules.coupon.service import coupon_service
from modules.inventory.service import inventory_service
from modules.pricing.calculator import PricedLine, CouponTerms, Totals, compute_totals

logger = logging.getLogger("storefront.cart")


class CartService:

    def get_cart(self, db: Session, user_id: int) -> Optional[Cart]:
        return db.query(Cart).filter(Cart.user_id == user_id).first()

    def get_or_create_cart(self, db: Session, user_id: int) -> Cart:
        """Get existing cart or create new one for user."""
        cart = self.get_cart(db, user_id)
        if not cart:
            cart = Cart(user_id=user_id)
            db.add(cart)
            db.flush()
        return cart

    # ==========================================
    # Items
    # ==========================================

    def add_item(
        self,
        db: Session,
        user_id: int,
        product_id: int,
        quantity: int = 1,
        variant: Optional[dict] = None,
    ) -> Cart:
        """Add a product line, merging into an existing line with the same variant."""
        if quantity is None or quantity < 1:
            raise InvalidQuantity(quantity)

        product = product_service.get_active(db, product_id)
        cart = self.get_or_create_cart(db, user_id)

        existing = next(
            (it for it in cart.items if it.product_id == product_id and it.same_variant(variant)),
            None,
        )
        wanted = quantity + (existing.quantity if existing else 0)
        # Stock is shared by every variant line of the product
        self._ensure_available(db, product_id, self._product_quantity(cart, product_id) + quantity, product.name)

        if existing:
            existing.quantity = wanted
        else:
            variant = variant or {}
            cart.items.append(CartItem(
                product_id=product.id,
                quantity=quantity,
                unit_price=product.selling_price,
                variant_name=variant.get("name"),
                variant_option=variant.get("option"),
            ))

        self._recalculate(db, cart)
        logger.info(f"User #{user_id}: +{quantity} of product #{product_id} (line qty {wanted})")
        return cart

    def update_quantity(self, db: Session, user_id: int, item_id: int, quantity: int) -> Cart:
        if quantity is None or quantity < 1:
            raise InvalidQuantity(quantity)

        cart = self.get_or_create_cart(db, user_id)
        item = self._find_item(cart, item_id)
        self._ensure_available(
            db, item.product_id,
            self._product_quantity(cart, item.product_id, exclude=item) + quantity,
            item.product.name if item.product else "",
        )

        item.quantity = quantity
        self._recalculate(db, cart)
        return cart

    def remove_item(self, db: Session, user_id: int, item_id: int) -> Cart:
        cart = self.get_or_create_cart(db, user_id)
        cart.items = [it for it in cart.items if it.id != item_id]
        self._recalculate(db, cart)
        return cart

    def clear(self, db: Session, user_id: int) -> Cart:
        """Empty the cart and drop its coupon. The cart row itself is kept."""
        cart = self.get_or_create_cart(db, user_id)
        self.clear_cart(db, cart)
        return cart

    def clear_cart(self, db: Session, cart: Cart):
        cart.items = []
        self._set_coupon(cart, None)
        self._recalculate(db, cart)

    # ==========================================
    # Coupon
    # ==========================================

    def apply_coupon(self, db: Session, user_id: int, code: str) -> Cart:
        cart = self.get_or_create_cart(db, user_id)
        if not cart.items:
            raise EmptyCart()

        # Eligibility is judged on the pre-coupon subtotal
        subtotal = self.totals_for(cart, with_coupon=False).subtotal
        coupon = coupon_service.validate(db, code, user_id, subtotal)

        self._set_coupon(cart, coupon_service.terms(coupon))
        self._recalculate(db, cart)
        logger.info(f"User #{user_id}: coupon {coupon.code} applied (discount {cart.discount})")
        return cart

    def remove_coupon(self, db: Session, user_id: int) -> Cart:
        cart = self.get_or_create_cart(db, user_id)
        self._set_coupon(cart, None)
        self._recalculate(db, cart)
        return cart

    # ==========================================
    # Totals
    # ==========================================

    def coupon_terms(self, cart: Cart) -> Optional[CouponTerms]:
        if not cart.coupon_code:
            return None
        return CouponTerms(
            code=cart.coupon_code,
            discount_type=cart.coupon_discount_type,
            value=Decimal(cart.coupon_value),
            max_discount=Decimal(cart.coupon_max_discount) if cart.coupon_max_discount is not None else None,
        )

    def totals_for(self, cart: Cart, with_coupon: bool = True) -> Totals:
        """Compute totals from scratch for the cart's current lines."""
        lines = [PricedLine(unit_price=Decimal(it.unit_price), quantity=it.quantity) for it in cart.items]
        return compute_totals(lines, self.coupon_terms(cart) if with_coupon else None)

    # ==========================================
    # Private helpers
    # ==========================================

    def _recalculate(self, db: Session, cart: Cart):
        totals = self.totals_for(cart)
        cart.subtotal = totals.subtotal
        cart.discount = totals.discount
        cart.shipping_charge = totals.shipping
        cart.tax = totals.tax
        cart.total = totals.total
        db.flush()

    def _set_coupon(self, cart: Cart, terms: Optional[CouponTerms]):
        cart.coupon_code = terms.code if terms else None
        cart.coupon_discount_type = terms.discount_type if terms else None
        cart.coupon_value = terms.value if terms else None
        cart.coupon_max_discount = terms.max_discount if terms else None

    def _find_item(self, cart: Cart, item_id: int) -> CartItem:
        for item in cart.items:
            if item.id == item_id:
                return item
        raise CartItemNotFound(item_id)

    def _product_quantity(self, cart: Cart, product_id: int, exclude: Optional[CartItem] = None) -> int:
        """Quantity of a product across all cart lines, optionally skipping one line."""
        return sum(it.quantity for it in cart.items if it.product_id == product_id and it is not exclude)

    def _ensure_available(self, db: Session, product_id: int, quantity: int, name: str = ""):
        if not inventory_service.check_available(db, product_id, quantity):
            raise InsufficientStock(
                product_id=product_id,
                product_name=name,
                requested=quantity,
                available=inventory_service.available_quantity(db, product_id),
            )


# Singleton
cart_service = CartService()
