"""
HTTP Oracle
============
REST/JSON. POSTs {orderId, orderNumber, paymentRef, amount} to
PAYMENT_VERIFY_URL and expects {"verified": true|false}.
"""

import httpx
import logging

from config.settings import PAYMENT_VERIFY_URL, PAYMENT_API_KEY
from modules.payment.gateways import BasePaymentOracle, VerifyRequest, register_oracle

logger = logging.getLogger("storefront.gateway.http")


class HttpPaymentOracle(BasePaymentOracle):
    name = "http"

    def __init__(self, verify_url: str = PAYMENT_VERIFY_URL, api_key: str = PAYMENT_API_KEY):
        self.verify_url = verify_url
        self.api_key = api_key

    def verify_payment(self, req: VerifyRequest) -> bool:
        if not self.verify_url:
            logger.error("PAYMENT_VERIFY_URL is not configured")
            return False
        try:
            resp = httpx.post(self.verify_url, json={
                "orderId": req.order_id,
                "orderNumber": req.order_number,
                "paymentRef": req.payment_ref,
                "amount": req.amount,
            }, headers={"X-API-Key": self.api_key} if self.api_key else None, timeout=15)
            data = resp.json()
            logger.info(f"Verify [{req.order_number}]: {resp.status_code} {data}")
            return resp.status_code == 200 and data.get("verified") is True
        except httpx.TimeoutException:
            logger.warning(f"Verify [{req.order_number}] timed out")
            return False
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Verify [{req.order_number}] failed: {e}")
            return False


register_oracle(HttpPaymentOracle())
