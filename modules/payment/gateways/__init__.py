"""
Payment Oracle Abstraction
============================
Signature checks belong to the gateway; this core only asks
"did payment <ref> for order <n> go through?" and records the answer.
Registry pattern for oracle lookup by name.
"""

import logging
from typing import Dict, Optional, List
from dataclasses import dataclass

logger = logging.getLogger("storefront.gateway")


@dataclass
class VerifyRequest:
    """Input for verify_payment()."""
    order_id: int
    order_number: str
    payment_ref: str
    amount: str             # decimal string, e.g. "1180.00"


class BasePaymentOracle:
    """Abstract oracle interface."""
    name: str = ""

    def verify_payment(self, req: VerifyRequest) -> bool:
        raise NotImplementedError


# ── Registry ──

_ORACLES: Dict[str, BasePaymentOracle] = {}


def register_oracle(oracle: BasePaymentOracle):
    _ORACLES[oracle.name] = oracle


def get_oracle(name: str) -> Optional[BasePaymentOracle]:
    return _ORACLES.get(name)


def get_all_oracle_names() -> List[str]:
    return list(_ORACLES.keys())
