"""
Payment Service
=================
Records the payment outcome reported by the configured oracle.
Active oracle is selected via the PAYMENT_ORACLE setting.
"""

import logging

from sqlalchemy.orm import Session

from common.helpers import now_utc
from common.exceptions import PaymentVerificationFailed
from config.settings import PAYMENT_ORACLE
from modules.order.models import Order, PaymentMethod, PaymentStatus
from modules.order.service import order_service

# Import oracle modules to trigger register_oracle() calls
from modules.payment.gateways import get_oracle, get_all_oracle_names, VerifyRequest
import modules.payment.gateways.sandbox  # noqa: F401
import modules.payment.gateways.http     # noqa: F401

logger = logging.getLogger("storefront.payment")


class PaymentService:

    def __init__(self, oracle_name: str = PAYMENT_ORACLE):
        self.oracle_name = oracle_name

    def get_active_oracle(self):
        oracle = get_oracle(self.oracle_name)
        if not oracle:
            raise PaymentVerificationFailed(
                f"Payment oracle {self.oracle_name!r} is not available",
                {"available": get_all_oracle_names()},
            )
        return oracle

    def verify_order_payment(self, db: Session, user_id: int, order_id: int, payment_ref: str) -> Order:
        """
        Ask the oracle whether `payment_ref` paid for the order and record the
        answer. A completed payment is never downgraded. The caller commits;
        a failed verification leaves payment_status=failed on the order.
        """
        order = order_service.get_user_order(db, user_id, order_id)

        if order.payment_method == PaymentMethod.COD.value:
            raise PaymentVerificationFailed("Cash on delivery orders are settled on delivery")
        if order.payment_status in (PaymentStatus.COMPLETED.value, PaymentStatus.REFUNDED.value):
            return order
        if not payment_ref or not payment_ref.strip():
            raise PaymentVerificationFailed("Payment reference is required")

        verified = self.get_active_oracle().verify_payment(VerifyRequest(
            order_id=order.id,
            order_number=order.order_number,
            payment_ref=payment_ref.strip(),
            amount=str(order.total),
        ))

        if verified:
            order.payment_status = PaymentStatus.COMPLETED.value
            order.payment_transaction_id = payment_ref.strip()
            order.paid_at = now_utc()
        else:
            order.payment_status = PaymentStatus.FAILED.value
        db.flush()

        logger.info(f"Order {order.order_number}: payment ref={payment_ref} verified={verified}")
        return order


payment_service = PaymentService()
