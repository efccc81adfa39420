"""
Coupon Service
================
Lookup, eligibility, atomic claims and usage recording.

Eligibility chain (can_user_use):
  1. Active
  2. Date range (start_date / end_date)
  3. Total usage limit
  4. Minimum order value
  5. Per-user usage limit
"""

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from common.helpers import now_utc, as_utc, to_money
from common.exceptions import CouponInvalid, CouponMinNotMet, CouponLimitReached
from modules.coupon.models import Coupon, CouponUsage, DiscountType
from modules.pricing.calculator import CouponTerms

logger = logging.getLogger("storefront.coupon")


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


class CouponService:

    # ------------------------------------------
    # Lookup
    # ------------------------------------------

    def get_by_code(self, db: Session, code: str) -> Optional[Coupon]:
        return db.query(Coupon).filter(Coupon.code == normalize_code(code)).first()

    def terms(self, coupon: Coupon) -> CouponTerms:
        return CouponTerms(
            code=coupon.code,
            discount_type=coupon.discount_type,
            value=Decimal(coupon.discount_value),
            max_discount=Decimal(coupon.max_discount) if coupon.max_discount is not None else None,
        )

    # ------------------------------------------
    # Eligibility (raises CouponError subclasses)
    # ------------------------------------------

    def can_user_use(self, db: Session, coupon: Coupon, user_id: int, subtotal) -> None:
        if not coupon.is_active:
            raise CouponInvalid("Coupon is inactive")

        now = now_utc()
        if coupon.start_date and now < as_utc(coupon.start_date):
            raise CouponInvalid("Coupon not yet active")
        if coupon.end_date and now > as_utc(coupon.end_date):
            raise CouponInvalid("Coupon has expired")

        if coupon.max_usage_count and coupon.current_usage_count >= coupon.max_usage_count:
            raise CouponLimitReached("Coupon usage limit reached")

        if to_money(subtotal) < to_money(coupon.min_order_value):
            raise CouponMinNotMet(to_money(coupon.min_order_value))

        if self._user_uses(db, coupon.id, user_id) >= coupon.max_usage_per_user:
            raise CouponLimitReached("You have already used this coupon")

    def validate(self, db: Session, code: str, user_id: int, subtotal) -> Coupon:
        """Find the coupon by code and run the eligibility chain."""
        if not normalize_code(code):
            raise CouponInvalid("Coupon code is required")
        coupon = self.get_by_code(db, code)
        if not coupon:
            raise CouponInvalid("Invalid coupon code")
        self.can_user_use(db, coupon, user_id, subtotal)
        return coupon

    # ------------------------------------------
    # Claim (when the order is persisted)
    # ------------------------------------------

    def claim(self, db: Session, code: str, user_id: int) -> Coupon:
        """
        Take one use of the coupon for an order being placed. The total limit
        is enforced by a conditional UPDATE, so concurrent checkouts cannot
        overshoot it. Caller owns the transaction.
        """
        coupon = self.get_by_code(db, code)
        if not coupon:
            raise CouponInvalid("Applied coupon no longer exists")
        if self._user_uses(db, coupon.id, user_id) >= coupon.max_usage_per_user:
            raise CouponLimitReached("You have already used this coupon")

        claimed = db.query(Coupon).filter(
            Coupon.id == coupon.id,
            or_(
                Coupon.max_usage_count.is_(None),
                Coupon.current_usage_count < Coupon.max_usage_count,
            ),
        ).update({
            Coupon.current_usage_count: Coupon.current_usage_count + 1,
        }, synchronize_session=False)
        db.expire(coupon)

        if claimed != 1:
            raise CouponLimitReached("Coupon usage limit reached")
        return coupon

    def release_claim(self, db: Session, code: str) -> bool:
        """Give back a use taken by claim() for an order that was rolled back."""
        coupon = self.get_by_code(db, code)
        if not coupon:
            return False
        released = db.query(Coupon).filter(
            Coupon.id == coupon.id,
            Coupon.current_usage_count > 0,
        ).update({
            Coupon.current_usage_count: Coupon.current_usage_count - 1,
        }, synchronize_session=False)
        db.expire(coupon)
        return released == 1

    # ------------------------------------------
    # Usage (after successful checkout only)
    # ------------------------------------------

    def record_usage(self, db: Session, code: str, user_id: int, order_id: int, discount_amount) -> bool:
        """
        Record the usage row for a placed order and add its discount to the
        totals. The use itself was counted by claim(). Idempotent per order
        so a retried or recovered checkout never double-counts.
        """
        coupon = self.get_by_code(db, code)
        if not coupon:
            logger.warning(f"Usage for unknown coupon {code!r} (order #{order_id}) skipped")
            return False

        exists = db.query(CouponUsage.id).filter(CouponUsage.order_id == order_id).first()
        if exists:
            return False

        amount = to_money(discount_amount)
        db.add(CouponUsage(
            coupon_id=coupon.id,
            user_id=user_id,
            order_id=order_id,
            discount_amount=amount,
        ))
        db.query(Coupon).filter(Coupon.id == coupon.id).update({
            Coupon.total_discount_given: Coupon.total_discount_given + amount,
        }, synchronize_session=False)
        db.flush()
        db.expire(coupon)
        logger.info(f"Coupon {coupon.code} used on order #{order_id} ({amount})")
        return True

    # ------------------------------------------
    # Admin / seeding
    # ------------------------------------------

    def create_coupon(self, db: Session, data: dict) -> Coupon:
        discount_type = data.get("discount_type", DiscountType.PERCENTAGE.value)
        if discount_type == "flat":
            discount_type = DiscountType.FIXED.value
        coupon = Coupon(
            code=normalize_code(data["code"]),
            description=data.get("description", ""),
            discount_type=DiscountType(discount_type).value,
            discount_value=to_money(data["discount_value"]),
            max_discount=to_money(data["max_discount"]) if data.get("max_discount") else None,
            min_order_value=to_money(data.get("min_order_value", 0)),
            max_usage_count=int(data["max_usage_count"]) if data.get("max_usage_count") else None,
            max_usage_per_user=int(data.get("max_usage_per_user", 1)),
            start_date=data.get("start_date"),
            end_date=data.get("end_date"),
            is_active=bool(data.get("is_active", True)),
        )
        db.add(coupon)
        db.flush()
        return coupon

    def _user_uses(self, db: Session, coupon_id: int, user_id: int) -> int:
        return (
            db.query(CouponUsage)
            .filter(CouponUsage.coupon_id == coupon_id, CouponUsage.user_id == user_id)
            .count()
        )


# Singleton
coupon_service = CouponService()
