"""
Cart Module - Schemas
======================
Request bodies and the cart response shape.
"""

from typing import Optional

from pydantic import BaseModel, Field

from common.helpers import money_str
from modules.cart.models import Cart


class VariantIn(BaseModel):
    name: Optional[str] = Field(None, max_length=50)
    option: Optional[str] = Field(None, max_length=50)


class AddItemRequest(BaseModel):
    product_id: int = Field(..., gt=0)
    quantity: int = 1
    variant: Optional[VariantIn] = None


class UpdateQuantityRequest(BaseModel):
    quantity: int


class ApplyCouponRequest(BaseModel):
    code: str = Field(..., max_length=50)


def serialize_cart(cart: Cart) -> dict:
    items = []
    for it in cart.items:
        items.append({
            "id": it.id,
            "product_id": it.product_id,
            "product_name": it.product.name if it.product else None,
            "product_image": it.product.image_url if it.product else None,
            "quantity": it.quantity,
            "unit_price": money_str(it.unit_price),
            "line_subtotal": money_str(it.unit_price * it.quantity),
            "variant": it.variant,
        })
    return {
        "id": cart.id,
        "items": items,
        "item_count": cart.item_count,
        "coupon": {
            "code": cart.coupon_code,
            "discount_type": cart.coupon_discount_type,
            "value": money_str(cart.coupon_value),
            "max_discount": money_str(cart.coupon_max_discount),
        } if cart.has_coupon else None,
        "subtotal": money_str(cart.subtotal),
        "discount": money_str(cart.discount),
        "shipping_charge": money_str(cart.shipping_charge),
        "tax": money_str(cart.tax),
        "total": money_str(cart.total),
    }
