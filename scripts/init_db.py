"""
Storefront Core - Database Initialization
===========================================
Creates all tables if they don't exist, optionally seeding demo data.
Safe to run multiple times (CREATE IF NOT EXISTS).

Usage:
    python scripts/init_db.py
    python scripts/init_db.py --seed   # Add demo products, coupon, address and tokens
    python scripts/init_db.py --drop   # Drop and recreate all tables
"""

import sys
import os
from decimal import Decimal

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config.database import Base, engine, SessionLocal
from common.security import create_access_token

# Import ALL models so Base.metadata knows about them
from modules.catalog.models import Product  # noqa
from modules.customer.models import CustomerAddress  # noqa
from modules.cart.models import Cart, CartItem  # noqa
from modules.order.models import Order, OrderItem, OrderStatusHistory  # noqa
from modules.inventory.models import StockReservation  # noqa
from modules.coupon.models import Coupon, CouponUsage  # noqa
from modules.notification.models import Notification  # noqa
from modules.catalog.service import product_service
from modules.coupon.service import coupon_service
from modules.customer.service import address_service

DEMO_CUSTOMER_ID = 1
DEMO_ADMIN_ID = 999

DEMO_PRODUCTS = [
    {"name": "Cotton T-Shirt", "original_price": Decimal("699"), "selling_price": Decimal("500"), "stock_quantity": 25},
    {"name": "Denim Jacket", "original_price": Decimal("2499"), "selling_price": Decimal("1999"), "stock_quantity": 3},
    {"name": "Gift Card", "original_price": Decimal("1000"), "selling_price": Decimal("1000"), "is_unlimited": True},
]


def init_db(drop_first=False):
    if drop_first:
        print("Dropping all tables...")
        Base.metadata.drop_all(bind=engine)
        print("Done.")

    print("Creating all tables...")
    Base.metadata.create_all(bind=engine)

    # List created tables
    from sqlalchemy import inspect
    inspector = inspect(engine)
    tables = inspector.get_table_names()
    print(f"\nTables in database ({len(tables)}):")
    for t in sorted(tables):
        print(f"  - {t}")
    print("\nDatabase initialized successfully!")


def seed_demo():
    db = SessionLocal()
    try:
        if db.query(Product).count():
            print("Products already exist, skipping seed.")
            return
        for data in DEMO_PRODUCTS:
            p = product_service.create(db, data)
            print(f"  + product #{p.id} {p.name}")
        coupon = coupon_service.create_coupon(db, {
            "code": "WELCOME10", "description": "10% off", "discount_type": "percentage",
            "discount_value": 10, "max_discount": 500,
        })
        address_service.create(db, DEMO_CUSTOMER_ID, {
            "full_name": "Demo Customer", "phone": "9876543210",
            "address_line1": "12 MG Road", "city": "Bengaluru", "state": "Karnataka",
            "pincode": "560001", "is_default": True,
        })
        db.commit()
        print(f"  + coupon {coupon.code} ({coupon.discount_display}), address for customer #{DEMO_CUSTOMER_ID}")
        print(f"\nCustomer token: {create_access_token(DEMO_CUSTOMER_ID)}")
        print(f"Admin token:    {create_access_token(DEMO_ADMIN_ID, role='admin')}")
    finally:
        db.close()


if __name__ == "__main__":
    drop = "--drop" in sys.argv
    if drop:
        confirm = input("This will DROP all tables. Type 'yes': ")
        if confirm.strip().lower() != "yes":
            print("Aborted.")
            sys.exit(0)
    init_db(drop_first=drop)
    if "--seed" in sys.argv:
        seed_demo()
