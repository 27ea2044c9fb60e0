import os
import tempfile
import uuid
from decimal import Decimal

TEST_DB_PATH = os.path.join(tempfile.gettempdir(), f"billing_test_{os.getpid()}.db")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{TEST_DB_PATH}"
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("AUTO_CREATE_TABLES", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.core.security import create_access_token
from app.database import Base, engine, async_session_factory, register_models
from app.models.product import Product
from app.models.user import User
from app.services.invoice_service import BusinessIdentity

register_models()


@pytest_asyncio.fixture
async def db():
    """Fresh schema and a session per test."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    async with async_session_factory() as session:
        yield session

    await engine.dispose()


@pytest_asyncio.fixture
async def business_user(db) -> User:
    user = User(
        email="owner@example.in",
        password_hash="not-a-real-hash",
        full_name="Ravi Kumar",
        business_name="Kumar Stores",
        business_address="4 Market Street, Chennai",
        business_gstin="33ABCDE1234F1Z5",
        business_contact="9876543210",
    )
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
def business(business_user) -> BusinessIdentity:
    return BusinessIdentity.from_user(business_user)


@pytest.fixture
def make_product(db, business_user):
    async def _make(name="Widget", quantity="0", **kwargs) -> Product:
        product = Product(
            user_id=kwargs.pop("user_id", business_user.id),
            name=name,
            quantity=Decimal(quantity),
            buying_price=kwargs.pop("buying_price", Decimal("80")),
            selling_price=kwargs.pop("selling_price", Decimal("100")),
            **kwargs,
        )
        db.add(product)
        await db.commit()
        return product

    return _make


@pytest_asyncio.fixture
async def client(db, business_user):
    """API client authenticated as the business user."""
    from app.main import app

    token = create_access_token(subject=business_user.id)
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"Authorization": f"Bearer {token}"},
    ) as ac:
        yield ac


def party(name="Acme Supplies"):
    return {
        "name": name,
        "address": "22 Industrial Area, Coimbatore",
        "contact": "0422-2200000",
    }


def random_id() -> str:
    return str(uuid.uuid4())


@pytest.fixture
def insert_invoice(db, business_user):
    """Store an invoice row directly, bypassing the sequence (legacy/imported data)."""
    from datetime import date
    from app.models.billing import Invoice

    async def _insert(invoice_number: str, invoice_type: str = "SELLING", **kwargs):
        invoice = Invoice(
            invoice_number=invoice_number,
            invoice_type=invoice_type,
            invoice_date=kwargs.pop("invoice_date", date(2026, 4, 1)),
            user_id=business_user.id,
            sender_name="Legacy",
            sender_address="Legacy",
            sender_contact="0",
            receiver_name="Legacy",
            receiver_address="Legacy",
            receiver_contact="0",
            subtotal=Decimal("0"),
            total_amount=Decimal("0"),
            amount_in_words="Zero Rupees Only",
            **kwargs,
        )
        db.add(invoice)
        await db.commit()
        return invoice

    return _insert


@pytest.fixture
def owner_id(business_user) -> uuid.UUID:
    return business_user.id


@pytest.fixture
def settle(db, owner_id, business):
    """Settle an invoice through the service; returns the SettlementResult."""
    from app.schemas.billing import InvoiceCreate
    from app.services.invoice_service import InvoiceSettlementService

    async def _settle(invoice_type, items, sync=False, **kwargs):
        data = InvoiceCreate(
            invoice_type=invoice_type,
            counterparty=kwargs.pop("counterparty", party()),
            items=items,
            sync_inventory=sync,
            **kwargs,
        )
        return await InvoiceSettlementService(db).create_invoice(data, owner_id, business)

    return _settle
