"""
Checkout Routes
=================
Admin trigger for the stale-checkout reconciliation job.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from config.database import get_db
from config.settings import CHECKOUT_STALE_MINUTES
from modules.auth.deps import require_admin
from modules.checkout.service import checkout_service

router = APIRouter(prefix="/checkout", tags=["checkout"])


@router.post("/recover")
async def recover_checkouts(
    older_than_minutes: int = Query(CHECKOUT_STALE_MINUTES, ge=0),
    db: Session = Depends(get_db),
    admin_id: int = Depends(require_admin),
):
    result = checkout_service.recover_stale_checkouts(db, older_than_minutes)
    return {"success": True, **result}
