"""
Sandbox Oracle
===============
Local/dev oracle: any reference except those starting with "FAIL" verifies.
"""

import logging

from modules.payment.gateways import BasePaymentOracle, VerifyRequest, register_oracle

logger = logging.getLogger("storefront.gateway.sandbox")


class SandboxOracle(BasePaymentOracle):
    name = "sandbox"

    def verify_payment(self, req: VerifyRequest) -> bool:
        ok = bool(req.payment_ref) and not req.payment_ref.upper().startswith("FAIL")
        logger.info(f"Sandbox verify [{req.order_number}] ref={req.payment_ref}: {ok}")
        return ok


register_oracle(SandboxOracle())
