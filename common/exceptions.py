"""
Storefront Core - Custom Exceptions
====================================
Business-level exceptions that can be caught and converted to HTTP responses.
Every error carries enough context for the caller to retry.
"""

from typing import Any, Dict, Optional


class StorefrontError(Exception):
    """Base exception for all business logic errors."""
    status_code = 400
    code = "error"

    def __init__(self, message: str = "Something went wrong.", context: Optional[Dict[str, Any]] = None):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "code": self.code, "message": self.message, **self.context}


# ==========================================
# Catalog / Inventory
# ==========================================

class ProductUnavailable(StorefrontError):
    """Raised when a product does not exist or is inactive."""
    status_code = 404
    code = "product_unavailable"

    def __init__(self, product_id=None):
        super().__init__("Product not found or inactive", {"product_id": product_id})


class InsufficientStock(StorefrontError):
    """Raised when product inventory is not enough."""
    status_code = 409
    code = "insufficient_stock"

    def __init__(self, product_id=None, product_name: str = "", requested: int = 0, available: Optional[int] = None):
        msg = f"Insufficient stock: {product_name}" if product_name else "Insufficient stock"
        super().__init__(msg, {
            "product_id": product_id,
            "requested": requested,
            "available": available,
        })


# ==========================================
# Cart
# ==========================================

class EmptyCart(StorefrontError):
    code = "empty_cart"

    def __init__(self):
        super().__init__("Cart is empty")


class CartItemNotFound(StorefrontError):
    status_code = 404
    code = "cart_item_not_found"

    def __init__(self, item_id=None):
        super().__init__("Cart item not found", {"item_id": item_id})


class InvalidQuantity(StorefrontError):
    code = "invalid_quantity"

    def __init__(self, quantity=None):
        super().__init__("Quantity must be at least 1", {"quantity": quantity})


class AddressNotFound(StorefrontError):
    status_code = 404
    code = "address_not_found"

    def __init__(self, address_id=None):
        super().__init__("Delivery address not found", {"address_id": address_id})


# ==========================================
# Coupon
# ==========================================

class CouponError(StorefrontError):
    """Base for coupon eligibility failures."""
    code = "coupon_error"


class CouponInvalid(CouponError):
    code = "coupon_invalid"


class CouponMinNotMet(CouponError):
    code = "coupon_min_not_met"

    def __init__(self, min_subtotal):
        super().__init__(
            f"Minimum order value of {min_subtotal} required",
            {"min_subtotal": str(min_subtotal)},
        )


class CouponLimitReached(CouponError):
    code = "coupon_limit_reached"


# ==========================================
# Order
# ==========================================

class OrderNotFound(StorefrontError):
    status_code = 404
    code = "order_not_found"

    def __init__(self, order_id=None):
        super().__init__("Order not found", {"order_id": order_id})


class InvalidStatusTransition(StorefrontError):
    status_code = 409
    code = "invalid_status_transition"

    def __init__(self, current: str, target: str, message: str = ""):
        super().__init__(
            message or f"Order cannot move from {current} to {target}",
            {"current_status": current, "target_status": target},
        )


class ReturnWindowExpired(StorefrontError):
    code = "return_window_expired"

    def __init__(self, days: int):
        super().__init__(f"Return window has expired ({days} days from delivery)", {"window_days": days})


class Unauthorized(StorefrontError):
    """Raised when the caller does not own the requested resource."""
    status_code = 403
    code = "unauthorized"

    def __init__(self, message: str = "You are not allowed to access this resource"):
        super().__init__(message)


class PaymentVerificationFailed(StorefrontError):
    status_code = 402
    code = "payment_verification_failed"


class CheckoutInProgress(StorefrontError):
    """Raised when the user already has a checkout that has not finished."""
    status_code = 409
    code = "checkout_in_progress"

    def __init__(self, order_id=None):
        super().__init__("Another checkout is still in progress, retry shortly", {"order_id": order_id})
