"""
Seed a demo business owner and a small product catalog.

Product CRUD lives outside this service, so this is how a fresh database
gets products to put on invoices.

Usage:
    python -m scripts.seed_demo_business
"""

import asyncio
import sys
from pathlib import Path
from decimal import Decimal

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select
from app.database import async_session_factory, init_db
from app.core.security import get_password_hash
from app.models.user import User
from app.models.product import Product


DEMO_EMAIL = "owner@demo-traders.in"
DEMO_PASSWORD = "Demo@12345"

BUSINESS = {
    "full_name": "Asha Menon",
    "business_name": "Demo Traders",
    "business_address": "12 MG Road, Kochi, Kerala 682016",
    "business_gstin": "32ABCDE1234F1Z5",
    "business_contact": "+91 98470 00000",
    "bank_details": "Demo Bank, A/C 000123456789, IFSC DEMO0000123",
}

PRODUCTS = [
    {"name": "Basmati Rice 5kg", "unit": "bag", "hsn_code": "1006", "quantity": Decimal("40"),
     "buying_price": Decimal("520"), "selling_price": Decimal("610"), "mrp": Decimal("650"), "tax_rate": Decimal("5")},
    {"name": "Sunflower Oil 1L", "unit": "btl", "hsn_code": "1512", "quantity": Decimal("60"),
     "buying_price": Decimal("118"), "selling_price": Decimal("139"), "mrp": Decimal("150"), "tax_rate": Decimal("5")},
    {"name": "Steel Tiffin Box", "unit": "pcs", "hsn_code": "7323", "quantity": Decimal("3"),
     "buying_price": Decimal("240"), "selling_price": Decimal("320"), "mrp": Decimal("349"), "tax_rate": Decimal("12")},
    {"name": "LED Bulb 9W", "unit": "pcs", "hsn_code": "8539", "quantity": Decimal("100"),
     "buying_price": Decimal("55"), "selling_price": Decimal("79"), "mrp": Decimal("99"), "tax_rate": Decimal("18")},
]


async def seed():
    await init_db()

    async with async_session_factory() as db:
        result = await db.execute(select(User).where(User.email == DEMO_EMAIL))
        user = result.scalar_one_or_none()
        if user:
            print(f"Demo business already exists: {DEMO_EMAIL}")
            return

        user = User(email=DEMO_EMAIL, password_hash=get_password_hash(DEMO_PASSWORD), **BUSINESS)
        db.add(user)
        await db.flush()

        for data in PRODUCTS:
            db.add(Product(user_id=user.id, **data))

        await db.commit()
        print(f"Created {BUSINESS['business_name']} ({DEMO_EMAIL} / {DEMO_PASSWORD}) with {len(PRODUCTS)} products")


if __name__ == "__main__":
    asyncio.run(seed())
