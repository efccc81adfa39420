"""
Cart Routes
=============
JSON API over the cart aggregate. Every mutation commits and returns the
recomputed cart.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from config.database import get_db
from modules.auth.deps import get_current_user_id
from modules.cart.schemas import (
    AddItemRequest, UpdateQuantityRequest, ApplyCouponRequest, serialize_cart,
)
from modules.cart.service import cart_service

router = APIRouter(prefix="/cart", tags=["cart"])


# ==========================================
# View
# ==========================================

@router.get("")
async def view_cart(
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    cart = cart_service.get_or_create_cart(db, user_id)
    db.commit()
    return {"success": True, "cart": serialize_cart(cart)}


# ==========================================
# Items
# ==========================================

@router.post("/add")
async def add_to_cart(
    body: AddItemRequest,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    variant = body.variant.model_dump() if body.variant else None
    cart = cart_service.add_item(db, user_id, body.product_id, body.quantity, variant)
    db.commit()
    return {"success": True, "message": "Item added to cart", "cart": serialize_cart(cart)}


@router.patch("/update/{item_id}")
async def update_cart_item(
    item_id: int,
    body: UpdateQuantityRequest,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    cart = cart_service.update_quantity(db, user_id, item_id, body.quantity)
    db.commit()
    return {"success": True, "message": "Cart updated", "cart": serialize_cart(cart)}


@router.delete("/remove/{item_id}")
async def remove_cart_item(
    item_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    cart = cart_service.remove_item(db, user_id, item_id)
    db.commit()
    return {"success": True, "message": "Item removed", "cart": serialize_cart(cart)}


@router.delete("/clear")
async def clear_cart(
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    cart = cart_service.clear(db, user_id)
    db.commit()
    return {"success": True, "message": "Cart cleared", "cart": serialize_cart(cart)}


# ==========================================
# Coupon
# ==========================================

@router.post("/apply-coupon")
async def apply_coupon(
    body: ApplyCouponRequest,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    cart = cart_service.apply_coupon(db, user_id, body.code)
    db.commit()
    return {"success": True, "message": "Coupon applied", "cart": serialize_cart(cart)}


@router.delete("/remove-coupon")
async def remove_coupon(
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    cart = cart_service.remove_coupon(db, user_id)
    db.commit()
    return {"success": True, "message": "Coupon removed", "cart": serialize_cart(cart)}
