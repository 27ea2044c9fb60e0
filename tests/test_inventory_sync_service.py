from decimal import Decimal

import pytest
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import InvoiceStateError, NotFoundError
from app.models.billing import Invoice, InventorySyncEntry
from app.models.product import Product
from app.services.inventory_sync_service import InventorySyncService, ItemSyncStatus


class InterferingSession:
    """
    Wraps a session and lets a simulated concurrent writer act right before
    UPDATEs on the products table.
    """

    def __init__(self, session, on_product_update):
        self._session = session
        self._on_product_update = on_product_update
        self.product_updates = 0

    def __getattr__(self, name):
        return getattr(self._session, name)

    async def execute(self, statement, *args, **kwargs):
        if getattr(statement, "is_update", False) and statement.table.name == "products":
            self.product_updates += 1
            await self._on_product_update(self._session, self.product_updates)
        return await self._session.execute(statement, *args, **kwargs)


def line(product, quantity, rate="100", **kwargs):
    return {"product_id": str(product.id), "quantity": quantity, "rate": rate, **kwargs}


async def sync(db, invoice_id, owner_id):
    return await InventorySyncService(db).sync_invoice(invoice_id, owner_id)


async def test_buying_invoice_adds_stock(db, make_product, settle, owner_id):
    product = await make_product("Rice", quantity="5")
    settled = await settle("BUYING", [line(product, "10")])

    result = await sync(db, settled.invoice.id, owner_id)

    await db.refresh(product)
    assert result.success is True
    assert product.quantity == Decimal("15")
    assert product.version == 3  # stock swap + pricing update
    item = result.items[0]
    assert item.status == ItemSyncStatus.APPLIED
    assert item.quantity_before == Decimal("5")
    assert item.quantity_after == Decimal("15")
    assert item.warning is None

    invoice = await db.get(Invoice, settled.invoice.id, populate_existing=True)
    assert invoice.inventory_sync_status == "SYNCED"
    assert invoice.inventory_synced_at is not None
    assert invoice.inventory_sync_result["success"] is True


async def test_selling_invoice_can_oversell_with_warning(db, make_product, settle, owner_id):
    product = await make_product("Oil", quantity="3")
    settled = await settle("SELLING", [line(product, "10")])

    result = await sync(db, settled.invoice.id, owner_id)

    await db.refresh(product)
    assert result.success is True
    assert product.quantity == Decimal("-7")
    assert result.items[0].status == ItemSyncStatus.APPLIED
    assert result.items[0].warning == "only 3 units were in stock"
    assert result.warnings == ["only 3 units were in stock"]


async def test_second_sync_is_a_no_op(db, make_product, settle, owner_id):
    product = await make_product("Oil", quantity="20")
    settled = await settle("SELLING", [line(product, "4")])

    first = await sync(db, settled.invoice.id, owner_id)
    second = await sync(db, settled.invoice.id, owner_id)

    await db.refresh(product)
    assert first.success and not first.already_synced
    assert second.success and second.already_synced
    assert second.items == []
    assert product.quantity == Decimal("16")

    entries = (await db.execute(select(InventorySyncEntry))).scalars().all()
    assert len(entries) == 1
    assert entries[0].quantity_delta == Decimal("-4")


async def test_missing_product_fails_only_that_item(db, make_product, settle, owner_id):
    gone = await make_product("Discontinued", quantity="10")
    kept = await make_product("Kept", quantity="10")
    settled = await settle("SELLING", [line(gone, "1"), line(kept, "2")])

    await db.delete(gone)
    await db.commit()

    result = await sync(db, settled.invoice.id, owner_id)

    await db.refresh(kept)
    assert result.success is False
    assert [i.status for i in result.items] == [ItemSyncStatus.NOT_FOUND, ItemSyncStatus.APPLIED]
    assert result.items[0].product_name == "Discontinued"
    assert kept.quantity == Decimal("8")

    invoice = await db.get(Invoice, settled.invoice.id, populate_existing=True)
    assert invoice.inventory_sync_status == "UNSYNCED"

    # A retry leaves the already applied item alone
    retry = await sync(db, settled.invoice.id, owner_id)
    await db.refresh(kept)
    assert [i.status for i in retry.items] == [ItemSyncStatus.NOT_FOUND, ItemSyncStatus.ALREADY_APPLIED]
    assert kept.quantity == Decimal("8")


async def test_block_policy_refuses_oversell(db, make_product, settle, owner_id):
    product = await make_product("Tiffin", quantity="3")
    settled = await settle("SELLING", [line(product, "5")])

    service = InventorySyncService(db)
    service.block_oversell = True
    result = await service.sync_invoice(settled.invoice.id, owner_id)

    await db.refresh(product)
    assert result.success is False
    assert result.items[0].status == ItemSyncStatus.INSUFFICIENT_STOCK
    assert "only 3 units were in stock" in result.items[0].message
    assert product.quantity == Decimal("3")


async def test_lost_race_is_retried(db, make_product, settle, owner_id):
    product = await make_product("Bulb", quantity="50")
    settled = await settle("SELLING", [line(product, "5")])

    async def concurrent_sale(session, n):
        if n == 1:
            await session.execute(
                update(Product)
                .where(Product.id == product.id)
                .values(quantity=Product.quantity - 1, version=Product.version + 1)
            )

    racing = InterferingSession(db, concurrent_sale)
    result = await InventorySyncService(racing).sync_invoice(settled.invoice.id, owner_id)

    await db.refresh(product)
    assert result.success is True
    assert result.items[0].quantity_before == Decimal("49")
    assert product.quantity == Decimal("44")


async def test_exhausted_retries_report_conflict(db, make_product, settle, owner_id):
    product = await make_product("Bulb", quantity="50")
    settled = await settle("SELLING", [line(product, "5")])

    async def always_first(session, n):
        await session.execute(
            update(Product).where(Product.id == product.id).values(version=Product.version + 1)
        )

    service = InventorySyncService(InterferingSession(db, always_first))
    result = await service.sync_invoice(settled.invoice.id, owner_id)

    await db.refresh(product)
    assert result.success is False
    assert result.items[0].status == ItemSyncStatus.CONFLICT
    assert product.quantity == Decimal("50")


async def test_buying_sync_updates_product_pricing(db, make_product, settle, owner_id):
    product = await make_product("Rice", quantity="0", buying_price=Decimal("500"))
    settled = await settle("BUYING", [line(
        product, "10", rate="520",
        pricing_update={"mrp": "650", "selling_price": "610", "wholesale_price": "580"},
    )])

    result = await sync(db, settled.invoice.id, owner_id)

    await db.refresh(product)
    assert result.items[0].pricing_updated is True
    assert product.buying_price == Decimal("520")
    assert product.mrp == Decimal("650")
    assert product.selling_price == Decimal("610")
    assert product.wholesale_price == Decimal("580")

    invoice = await db.get(Invoice, settled.invoice.id, populate_existing=True)
    assert invoice.inventory_sync_result["items"][0]["pricing_updated"] is True


async def test_pricing_failure_does_not_fail_sync(db, make_product, settle, owner_id):
    product = await make_product("Rice", quantity="5", buying_price=Decimal("500"))
    settled = await settle("BUYING", [line(product, "10", rate="520", pricing_update={"mrp": "650"})])
    invoice_id = settled.invoice.id

    async def break_pricing(session, n):
        if n == 2:
            raise SQLAlchemyError("simulated pricing failure")

    result = await InventorySyncService(InterferingSession(db, break_pricing)).sync_invoice(
        invoice_id, owner_id
    )

    await db.refresh(product)
    assert result.success is True
    assert result.items[0].pricing_updated is False
    assert product.quantity == Decimal("15")
    assert product.buying_price == Decimal("500")
    assert product.mrp is None

    invoice = await db.get(Invoice, invoice_id, populate_existing=True)
    assert invoice.inventory_sync_status == "SYNCED"
    assert invoice.inventory_sync_result["items"][0]["pricing_updated"] is False


async def test_cancelled_invoice_cannot_be_synced(db, make_product, settle, owner_id):
    product = await make_product("Oil", quantity="5")
    settled = await settle("SELLING", [line(product, "1")])
    invoice = await db.get(Invoice, settled.invoice.id)
    invoice.status = "CANCELLED"
    await db.commit()

    with pytest.raises(InvoiceStateError):
        await sync(db, settled.invoice.id, owner_id)


async def test_unknown_invoice(db, owner_id):
    import uuid

    with pytest.raises(NotFoundError):
        await sync(db, uuid.uuid4(), owner_id)
