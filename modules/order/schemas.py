"""
Order Module - Schemas
=======================
Request bodies and response serializers for orders, tracking and invoices.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from common.helpers import money_str, iso
from modules.order.models import Order, OrderStatus, PaymentMethod


# ==========================================
# Requests
# ==========================================

class CreateOrderRequest(BaseModel):
    address_id: int = Field(..., gt=0)
    payment_method: PaymentMethod
    customer_notes: Optional[str] = Field(None, max_length=500)


class CancelOrderRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=200)
    comment: Optional[str] = Field(None, max_length=1000)


class ReturnRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=200)
    comment: Optional[str] = Field(None, max_length=1000)
    images: List[str] = Field(default_factory=list, max_length=5)


class TrackingIn(BaseModel):
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    estimated_delivery: Optional[datetime] = None


class AdminStatusUpdate(BaseModel):
    status: OrderStatus
    comment: Optional[str] = Field(None, max_length=1000)
    force: bool = False
    tracking: Optional[TrackingIn] = None
    admin_notes: Optional[str] = Field(None, max_length=1000)


class PaymentVerifyRequest(BaseModel):
    payment_ref: str = Field(..., min_length=1, max_length=100)


# ==========================================
# Serializers
# ==========================================

def serialize_item(item) -> dict:
    return {
        "id": item.id,
        "product_id": item.product_id,
        "product_name": item.product_name,
        "product_image": item.product_image,
        "variant": {"name": item.variant_name, "option": item.variant_option}
        if item.variant_name or item.variant_option else None,
        "quantity": item.quantity,
        "unit_price": money_str(item.unit_price),
        "tax": money_str(item.tax),
        "line_subtotal": money_str(item.line_subtotal),
    }


def serialize_pricing(order: Order) -> dict:
    return {key: money_str(value) for key, value in order.pricing.items()}


def serialize_history(order: Order) -> List[dict]:
    return [
        {
            "status": h.status,
            "comment": h.comment,
            "actor_id": h.actor_id,
            "actor_role": h.actor_role,
            "timestamp": iso(h.created_at),
        }
        for h in order.status_history
    ]


def serialize_order(order: Order, detail: bool = True) -> dict:
    data = {
        "id": order.id,
        "order_number": order.order_number,
        "status": order.status,
        "pricing": serialize_pricing(order),
        "payment": {
            "method": order.payment_method,
            "status": order.payment_status,
            "transaction_id": order.payment_transaction_id,
            "paid_at": iso(order.paid_at),
            "refunded_at": iso(order.refunded_at),
            "refund_amount": money_str(order.refund_amount),
        },
        "item_count": len(order.items),
        "created_at": iso(order.created_at),
    }
    if not detail:
        return data

    data.update({
        "user_id": order.user_id,
        "items": [serialize_item(it) for it in order.items],
        "delivery_address": order.delivery_address,
        "coupon": {
            "code": order.coupon_code,
            "discount_type": order.coupon_discount_type,
            "value": money_str(order.coupon_value),
        } if order.coupon_code else None,
        "tracking": serialize_tracking_fields(order),
        "timestamps": {
            "confirmed_at": iso(order.confirmed_at),
            "shipped_at": iso(order.shipped_at),
            "delivered_at": iso(order.delivered_at),
            "cancelled_at": iso(order.cancelled_at),
            "returned_at": iso(order.returned_at),
        },
        "cancellation": {
            "reason": order.cancellation_reason,
            "comment": order.cancellation_comment,
            "cancelled_by": order.cancelled_by,
        } if order.cancelled_at else None,
        "return_request": {
            "reason": order.return_reason,
            "comment": order.return_comment,
            "images": order.return_images or [],
            "requested_at": iso(order.return_requested_at),
            "status": order.return_status,
            "resolved_at": iso(order.return_resolved_at),
        } if order.return_requested_at else None,
        "customer_notes": order.customer_notes,
        "status_history": serialize_history(order),
    })
    return data


def serialize_tracking_fields(order: Order) -> dict:
    return {
        "carrier": order.carrier,
        "tracking_number": order.tracking_number,
        "tracking_url": order.tracking_url,
        "estimated_delivery": iso(order.estimated_delivery),
    }


def serialize_tracking(order: Order) -> dict:
    return {
        "order_number": order.order_number,
        "status": order.status,
        **serialize_tracking_fields(order),
        "status_history": serialize_history(order),
    }


def serialize_invoice(order: Order) -> dict:
    return {
        "invoice_number": order.invoice_number,
        "invoice_date": iso(order.created_at),
        "order_number": order.order_number,
        "billing_address": order.delivery_address,
        "items": [serialize_item(it) for it in order.items],
        "pricing": serialize_pricing(order),
        "payment_method": order.payment_method,
        "payment_status": order.payment_status,
    }
