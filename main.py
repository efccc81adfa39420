"""
Storefront Core - Application Entry Point
===========================================
FastAPI app initialization, middleware, and router registration.
"""

import logging
import time as _time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from apscheduler.schedulers.background import BackgroundScheduler

from config import settings
from config.database import SessionLocal, Base, engine
from common.exceptions import StorefrontError
from common.log_config import setup_logging

setup_logging()
logger = logging.getLogger("storefront.http")
scheduler_logger = logging.getLogger("storefront.scheduler")


# ==========================================
# Import ALL models so Alembic/Base can see them
# ==========================================
from modules.catalog.models import Product  # noqa: F401, E402
from modules.customer.models import CustomerAddress  # noqa: F401, E402
from modules.cart.models import Cart, CartItem  # noqa: F401, E402
from modules.order.models import Order, OrderItem, OrderStatusHistory  # noqa: F401, E402
from modules.inventory.models import StockReservation  # noqa: F401, E402
from modules.coupon.models import Coupon, CouponUsage  # noqa: F401, E402
from modules.notification.models import Notification  # noqa: F401, E402

# ==========================================
# Import routers
# ==========================================
from modules.cart.routes import router as cart_router  # noqa: E402
from modules.order.routes import router as order_router  # noqa: E402
from modules.checkout.routes import router as checkout_router  # noqa: E402


# ==========================================
# Background Scheduler: Stale Checkout Recovery
# ==========================================
def _recover_stale_checkouts():
    """Background job: reconcile checkouts that stopped mid-saga."""
    db = SessionLocal()
    try:
        from modules.checkout.service import checkout_service
        result = checkout_service.recover_stale_checkouts(db, settings.CHECKOUT_STALE_MINUTES)
        if any(result.values()):
            scheduler_logger.info(f"Checkout recovery: {result}")
    except Exception as e:
        db.rollback()
        scheduler_logger.error(f"Checkout recovery error: {e}")
    finally:
        db.close()


scheduler = BackgroundScheduler()


@asynccontextmanager
async def lifespan(app):
    # Auto-create any missing tables (safe for existing tables)
    Base.metadata.create_all(bind=engine)

    if settings.SCHEDULER_ENABLED:
        scheduler.add_job(
            _recover_stale_checkouts, 'interval',
            seconds=settings.RECOVERY_INTERVAL_SECONDS, id='checkout_recovery',
        )
        scheduler.start()
        scheduler_logger.info(
            f"Background scheduler started (checkout recovery: {settings.RECOVERY_INTERVAL_SECONDS}s)"
        )
    yield
    if scheduler.running:
        scheduler.shutdown()
        scheduler_logger.info("Background scheduler stopped")


# ==========================================
# Create App
# ==========================================
app = FastAPI(
    title="Storefront Core",
    description="Cart, checkout, order lifecycle and inventory consistency",
    version="1.0.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url=None,
    lifespan=lifespan,
)


# ==========================================
# Exception handler: business errors -> JSON
# ==========================================
@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError):
    logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}")
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


# ==========================================
# Middleware: Request Log
# ==========================================
_SKIP_PATHS = ("/health", "/favicon.ico")


@app.middleware("http")
async def request_logger(request: Request, call_next):
    path = request.url.path
    if any(path.startswith(p) for p in _SKIP_PATHS):
        return await call_next(request)

    start = _time.time()
    response = await call_next(request)
    elapsed_ms = int((_time.time() - start) * 1000)
    logger.info(f"{request.method} {path} {response.status_code} {elapsed_ms}ms")
    return response


# ==========================================
# Register Routers
# ==========================================
app.include_router(cart_router)
app.include_router(order_router)
app.include_router(checkout_router)


# ==========================================
# Health check
# ==========================================
@app.get("/health")
async def health():
    return {"status": "ok", "version": "1.0.0"}
