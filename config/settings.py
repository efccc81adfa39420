"""
Storefront Core - Centralized Configuration
============================================
All environment variables and constants are loaded here.
No other module should call os.getenv() directly.
"""

import os
import sys
from decimal import Decimal
from dotenv import load_dotenv

load_dotenv()


# ==========================================
# 🗄️ Database
# ==========================================
DATABASE_URL = os.getenv("DATABASE_URL")

if not DATABASE_URL:
    DB_USER = os.getenv("DB_USER")
    DB_PASSWORD = os.getenv("DB_PASSWORD")
    DB_HOST = os.getenv("DB_HOST", "localhost")
    DB_PORT = os.getenv("DB_PORT", "5432")
    DB_NAME = os.getenv("DB_NAME")

    if not all([DB_USER, DB_PASSWORD, DB_HOST, DB_NAME]):
        print("[ERROR] Critical: Database config missing in .env (DATABASE_URL or DB_USER, DB_PASSWORD, DB_HOST, DB_NAME)")
        sys.exit(1)

    DATABASE_URL = f"postgresql://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}"


# ==========================================
# 🔐 Security
# ==========================================
SECRET_KEY = os.getenv("SECRET_KEY")

if not SECRET_KEY:
    print("[ERROR] Critical: SECRET_KEY missing in .env")
    sys.exit(1)

ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24  # 1 day


# ==========================================
# 💰 Pricing
# ==========================================
TAX_RATE = Decimal(os.getenv("TAX_RATE", "0.18"))
SHIPPING_CHARGE = Decimal(os.getenv("SHIPPING_CHARGE", "0"))
FREE_SHIPPING_MIN_SUBTOTAL = (
    Decimal(os.environ["FREE_SHIPPING_MIN_SUBTOTAL"])
    if os.getenv("FREE_SHIPPING_MIN_SUBTOTAL") else None
)


# ==========================================
# 📦 Orders
# ==========================================
RETURN_WINDOW_DAYS = int(os.getenv("RETURN_WINDOW_DAYS", "7"))

# Checkout reconciliation
CHECKOUT_STALE_MINUTES = int(os.getenv("CHECKOUT_STALE_MINUTES", "10"))
RECOVERY_INTERVAL_SECONDS = int(os.getenv("RECOVERY_INTERVAL_SECONDS", "60"))
SCHEDULER_ENABLED = os.getenv("SCHEDULER_ENABLED", "true").lower() == "true"


# ==========================================
# 💳 Payment Oracle
# ==========================================
PAYMENT_ORACLE = os.getenv("PAYMENT_ORACLE", "sandbox")
PAYMENT_VERIFY_URL = os.getenv("PAYMENT_VERIFY_URL", "")
PAYMENT_API_KEY = os.getenv("PAYMENT_API_KEY", "")


# ==========================================
# 🔔 Notifications
# ==========================================
NOTIFY_WEBHOOK_URL = os.getenv("NOTIFY_WEBHOOK_URL", "")


# ==========================================
# 🔧 App
# ==========================================
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
