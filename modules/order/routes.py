"""
Order Routes
==============
Customer: create (checkout), list, detail, cancel, return, track, invoice,
payment verification.
Admin: status update (always audited), list with search, detail.

Admin paths are declared before /orders/{order_id} so they are not shadowed.
"""

import math
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from config.database import get_db
from common.exceptions import PaymentVerificationFailed
from modules.auth.deps import get_current_user_id, require_admin
from modules.checkout.service import checkout_service
from modules.notification.models import NotificationEvent
from modules.notification.service import notification_service
from modules.order.models import OrderStatus, PaymentStatus
from modules.order.schemas import (
    CreateOrderRequest, CancelOrderRequest, ReturnRequest, AdminStatusUpdate,
    PaymentVerifyRequest, serialize_order, serialize_tracking, serialize_invoice,
)
from modules.order.service import order_service
from modules.payment.service import payment_service

router = APIRouter(prefix="/orders", tags=["orders"])


def _page(items, total: int, page: int, limit: int) -> dict:
    return {
        "orders": [serialize_order(o, detail=False) for o in items],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if limit else 0,
        },
    }


# ==========================================
# Checkout
# ==========================================

@router.post("/create", status_code=201)
async def create_order(
    body: CreateOrderRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    order = checkout_service.create_order(
        db, user_id,
        address_id=body.address_id,
        payment_method=body.payment_method,
        customer_notes=body.customer_notes,
        background_tasks=background_tasks,
    )
    return {"success": True, "message": "Order placed", "order": serialize_order(order)}


@router.get("/my-orders")
async def my_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[OrderStatus] = Query(None),
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    items, total = order_service.list_user_orders(
        db, user_id, page=page, limit=limit, status=status.value if status else None,
    )
    return {"success": True, **_page(items, total, page, limit)}


# ==========================================
# Admin
# ==========================================

@router.get("/admin/all")
async def admin_list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[OrderStatus] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    db: Session = Depends(get_db),
    admin_id: int = Depends(require_admin),
):
    items, total = order_service.list_all_orders(
        db, page=page, limit=limit, status=status.value if status else None, search=search,
    )
    return {"success": True, **_page(items, total, page, limit)}


@router.get("/admin/{order_id}")
async def admin_order_detail(
    order_id: int,
    db: Session = Depends(get_db),
    admin_id: int = Depends(require_admin),
):
    order = order_service.get_order(db, order_id)
    data = serialize_order(order)
    data["admin_notes"] = order.admin_notes
    data["checkout_state"] = order.checkout_state
    return {"success": True, "order": data}


@router.patch("/admin/{order_id}/status")
async def admin_update_status(
    order_id: int,
    body: AdminStatusUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    admin_id: int = Depends(require_admin),
):
    order = order_service.admin_update_status(
        db, order_id, body.status,
        actor_id=admin_id,
        comment=body.comment,
        force=body.force,
        tracking=body.tracking.model_dump() if body.tracking else None,
        admin_notes=body.admin_notes,
    )
    db.commit()

    event = NotificationEvent.ORDER_CANCELLED if body.status == OrderStatus.CANCELLED \
        else NotificationEvent.ORDER_STATUS_CHANGED
    notification_service.notify(
        order.user_id, event,
        title=f"Order {order.order_number} {order.status.replace('_', ' ')}",
        body=body.comment or f"Your order is now {order.status.replace('_', ' ')}",
        reference_id=order.id,
        metadata={"status": order.status},
        background_tasks=background_tasks,
    )
    return {"success": True, "message": "Order status updated", "order": serialize_order(order)}


# ==========================================
# Customer: single order
# ==========================================

@router.get("/{order_id}")
async def order_detail(
    order_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    order = order_service.get_user_order(db, user_id, order_id)
    return {"success": True, "order": serialize_order(order)}


@router.patch("/{order_id}/cancel")
async def cancel_order(
    order_id: int,
    body: CancelOrderRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    order = order_service.cancel(db, user_id, order_id, body.reason, body.comment)
    db.commit()

    notification_service.notify(
        user_id, NotificationEvent.ORDER_CANCELLED,
        title=f"Order {order.order_number} cancelled",
        body=f"Your order has been cancelled. Reason: {body.reason}",
        reference_id=order.id,
        background_tasks=background_tasks,
    )
    return {"success": True, "message": "Order cancelled", "order": serialize_order(order)}


@router.post("/{order_id}/return")
async def request_return(
    order_id: int,
    body: ReturnRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    order = order_service.request_return(
        db, user_id, order_id, body.reason, comment=body.comment, images=body.images,
    )
    db.commit()

    notification_service.notify(
        user_id, NotificationEvent.RETURN_REQUESTED,
        title=f"Return requested for {order.order_number}",
        body="We have received your return request.",
        reference_id=order.id,
        background_tasks=background_tasks,
    )
    return {"success": True, "message": "Return request submitted", "order": serialize_order(order)}


@router.get("/{order_id}/track")
async def track_order(
    order_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    order = order_service.get_user_order(db, user_id, order_id)
    return {"success": True, "tracking": serialize_tracking(order)}


@router.get("/{order_id}/invoice")
async def order_invoice(
    order_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    order = order_service.get_user_order(db, user_id, order_id)
    return {"success": True, "invoice": serialize_invoice(order)}


@router.post("/{order_id}/payment/verify")
async def verify_payment(
    order_id: int,
    body: PaymentVerifyRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    order = payment_service.verify_order_payment(db, user_id, order_id, body.payment_ref)
    db.commit()

    paid = order.payment_status in (PaymentStatus.COMPLETED.value, PaymentStatus.REFUNDED.value)
    notification_service.notify(
        user_id,
        NotificationEvent.PAYMENT_SUCCESS if paid else NotificationEvent.PAYMENT_FAILED,
        title=f"Payment {'received' if paid else 'failed'} for {order.order_number}",
        body=f"Reference: {body.payment_ref}",
        reference_id=order.id,
        background_tasks=background_tasks if paid else None,
    )
    if not paid:
        raise PaymentVerificationFailed("Payment could not be verified", {"order_id": order.id})
    return {"success": True, "message": "Payment verified", "order": serialize_order(order)}
