"""
Inventory Sync Service

Applies a settled invoice to product stock exactly once:

- BUYING adds each item's quantity to its product, SELLING subtracts it.
- Every product update is a compare-and-swap on ``Product.version``; a lost
  race re-reads the product and retries, up to INVENTORY_SYNC_MAX_RETRIES.
- Each applied item writes an ``InventorySyncEntry`` whose unique
  ``invoice_item_id`` makes a second application impossible, so a retry after
  a partial failure only touches the items that did not apply.
- Overselling is allowed with a per-item warning unless OVERSELL_POLICY=BLOCK.
- The invoice is marked SYNCED only when every item has applied.
- BUYING invoices then push MRP/selling/wholesale price and the buying rate
  onto the product master. That step commits separately and its failure is
  logged and reported, never raised.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import settings
from app.core.exceptions import (
    ConflictError,
    InvoiceStateError,
    NotFoundError,
    persistence_error,
)
from app.models.billing import (
    Invoice,
    InvoiceItem,
    InvoiceStatus,
    InvoiceType,
    InventorySyncEntry,
    InventorySyncStatus,
    ItemSyncStatus,
)
from app.models.product import Product

logger = logging.getLogger(__name__)


FAILED_STATUSES = {
    ItemSyncStatus.NOT_FOUND,
    ItemSyncStatus.CONFLICT,
    ItemSyncStatus.INSUFFICIENT_STOCK,
}


def format_quantity(value: Decimal) -> str:
    """3.000 -> '3', 2.500 -> '2.5'."""
    text = format(value.normalize(), "f")
    return "0" if text in ("-0", "") else text


def _decimal_str(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)


@dataclass
class ItemSyncResult:
    """Result of applying one invoice item to stock."""
    serial_number: int
    invoice_item_id: uuid.UUID
    product_id: Optional[uuid.UUID]
    product_name: str
    status: ItemSyncStatus
    quantity_delta: Optional[Decimal] = None
    quantity_before: Optional[Decimal] = None
    quantity_after: Optional[Decimal] = None
    message: Optional[str] = None
    warning: Optional[str] = None
    pricing_updated: Optional[bool] = None

    @property
    def failed(self) -> bool:
        return self.status in FAILED_STATUSES

    def to_dict(self) -> dict:
        return {
            "serial_number": self.serial_number,
            "invoice_item_id": str(self.invoice_item_id),
            "product_id": str(self.product_id) if self.product_id else None,
            "product_name": self.product_name,
            "status": self.status.value,
            "quantity_delta": _decimal_str(self.quantity_delta),
            "quantity_before": _decimal_str(self.quantity_before),
            "quantity_after": _decimal_str(self.quantity_after),
            "message": self.message,
            "warning": self.warning,
            "pricing_updated": self.pricing_updated,
        }


@dataclass
class InventorySyncResult:
    """Result of one sync attempt for an invoice."""
    invoice_id: uuid.UUID
    success: bool
    message: str
    already_synced: bool = False
    items: List[ItemSyncResult] = field(default_factory=list)

    @property
    def warnings(self) -> List[str]:
        return [i.warning for i in self.items if i.warning]

    @property
    def failed_items(self) -> List[ItemSyncResult]:
        return [i for i in self.items if i.failed]

    @classmethod
    def aborted(cls, invoice_id: uuid.UUID, message: str) -> "InventorySyncResult":
        """Sync that could not run at all (conflict, database error)."""
        return cls(invoice_id=invoice_id, success=False, message=message)

    def to_dict(self) -> dict:
        return {
            "invoice_id": str(self.invoice_id),
            "success": self.success,
            "already_synced": self.already_synced,
            "message": self.message,
            "items": [i.to_dict() for i in self.items],
        }


class InventorySyncService:
    """Applies invoice quantities to product stock at most once."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.max_retries = max(1, settings.INVENTORY_SYNC_MAX_RETRIES)
        self.block_oversell = settings.OVERSELL_POLICY == "BLOCK"

    async def sync_invoice(
        self,
        invoice_id: uuid.UUID,
        user_id: Optional[uuid.UUID] = None,
    ) -> InventorySyncResult:
        """
        Apply the invoice's items to stock and commit.

        Already-synced invoices return a successful no-op result. Missing
        products, exhausted compare-and-swap retries and blocked oversells are
        per-item failures; the rest of the items still apply and the invoice
        stays UNSYNCED.

        Raises:
            NotFoundError: invoice does not exist (or is not owned by user_id)
            InvoiceStateError: invoice is cancelled
            ConflictError: another request synced the same items concurrently
            PersistenceError: database failure while applying or committing;
                PersistenceTimeoutError when the database timed out
        """
        try:
            invoice = await self._get_invoice_for_update(invoice_id, user_id)

            if invoice.inventory_sync_status == InventorySyncStatus.SYNCED.value:
                logger.info(f"Invoice {invoice.invoice_number} already synced, skipping")
                return InventorySyncResult(
                    invoice_id=invoice.id,
                    success=True,
                    already_synced=True,
                    message="Inventory already synced for this invoice",
                )

            if invoice.status == InvoiceStatus.CANCELLED.value:
                raise InvoiceStateError(
                    f"Invoice {invoice.invoice_number} is cancelled; inventory cannot be synced"
                )

            applied = await self._applied_item_ids(invoice.id)
            results: List[ItemSyncResult] = []

            for item in invoice.items:
                if item.id in applied:
                    results.append(ItemSyncResult(
                        serial_number=item.serial_number,
                        invoice_item_id=item.id,
                        product_id=item.product_id,
                        product_name=item.product_name,
                        status=ItemSyncStatus.ALREADY_APPLIED,
                        message="Applied by an earlier sync",
                    ))
                    continue
                results.append(await self._apply_item(invoice, item))
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError(
                f"Inventory for invoice {invoice_id} was synced by a concurrent request; retry to see the outcome"
            )
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Inventory sync failed for invoice {invoice_id}: {e}")
            raise persistence_error(e, "apply inventory")

        failed = [r for r in results if r.failed]
        now = datetime.now(timezone.utc)
        if failed:
            message = f"{len(failed)} of {len(results)} items could not be synced"
            for r in failed:
                logger.warning(
                    f"Inventory sync {invoice.invoice_number} item {r.serial_number} "
                    f"({r.product_name}): {r.status.value} {r.message}"
                )
        else:
            message = "Inventory synced"
            invoice.inventory_sync_status = InventorySyncStatus.SYNCED.value
            invoice.inventory_synced_at = now

        result = InventorySyncResult(
            invoice_id=invoice.id,
            success=not failed,
            message=message,
            items=results,
        )
        invoice.inventory_sync_result = result.to_dict()

        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError(
                f"Inventory for invoice {invoice_id} was synced by a concurrent request; retry to see the outcome"
            )
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Inventory sync commit failed for invoice {invoice_id}: {e}")
            raise persistence_error(e, "commit inventory sync")

        logger.info(
            f"Inventory sync {invoice.invoice_number}: success={result.success} "
            f"applied={sum(1 for r in results if r.status == ItemSyncStatus.APPLIED)} "
            f"failed={len(failed)} warnings={len(result.warnings)}"
        )

        if invoice.invoice_type == InvoiceType.BUYING.value:
            await self._propagate_pricing(invoice, result)

        return result

    async def _get_invoice_for_update(
        self,
        invoice_id: uuid.UUID,
        user_id: Optional[uuid.UUID],
    ) -> Invoice:
        query = (
            select(Invoice)
            .options(selectinload(Invoice.items))
            .where(Invoice.id == invoice_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        if user_id is not None:
            query = query.where(Invoice.user_id == user_id)
        result = await self.db.execute(query)
        invoice = result.scalar_one_or_none()
        if not invoice:
            raise NotFoundError(f"Invoice {invoice_id} not found")
        return invoice

    async def _applied_item_ids(self, invoice_id: uuid.UUID) -> set:
        result = await self.db.execute(
            select(InventorySyncEntry.invoice_item_id)
            .where(InventorySyncEntry.invoice_id == invoice_id)
        )
        return set(result.scalars().all())

    async def _apply_item(self, invoice: Invoice, item: InvoiceItem) -> ItemSyncResult:
        """Compare-and-swap the product quantity for one item."""
        outcome = ItemSyncResult(
            serial_number=item.serial_number,
            invoice_item_id=item.id,
            product_id=item.product_id,
            product_name=item.product_name,
            status=ItemSyncStatus.NOT_FOUND,
        )
        selling = invoice.invoice_type == InvoiceType.SELLING.value
        delta = -item.quantity if selling else item.quantity
        outcome.quantity_delta = delta

        if item.product_id is None:
            outcome.message = "Product no longer exists"
            return outcome

        for attempt in range(1, self.max_retries + 1):
            row = (await self.db.execute(
                select(Product.quantity, Product.version)
                .where(Product.id == item.product_id)
            )).one_or_none()

            if row is None:
                outcome.status = ItemSyncStatus.NOT_FOUND
                outcome.message = "Product no longer exists"
                return outcome

            before = row.quantity
            after = before + delta

            if selling and after < 0 and self.block_oversell:
                outcome.status = ItemSyncStatus.INSUFFICIENT_STOCK
                outcome.quantity_before = before
                outcome.message = (
                    f"Insufficient stock: {format_quantity(item.quantity)} requested, "
                    f"only {format_quantity(before)} units were in stock"
                )
                return outcome

            swapped = await self.db.execute(
                update(Product)
                .where(Product.id == item.product_id, Product.version == row.version)
                .values(
                    quantity=after,
                    version=row.version + 1,
                    updated_at=datetime.now(timezone.utc),
                )
                .execution_options(synchronize_session=False)
            )
            if swapped.rowcount == 1:
                self.db.add(InventorySyncEntry(
                    invoice_id=invoice.id,
                    invoice_item_id=item.id,
                    product_id=item.product_id,
                    quantity_delta=delta,
                    quantity_before=before,
                    quantity_after=after,
                ))
                outcome.status = ItemSyncStatus.APPLIED
                outcome.quantity_before = before
                outcome.quantity_after = after
                if selling and after < 0:
                    outcome.warning = f"only {format_quantity(before)} units were in stock"
                return outcome

            logger.info(
                f"Stock of product {item.product_id} changed concurrently "
                f"(attempt {attempt}/{self.max_retries}), retrying"
            )

        outcome.status = ItemSyncStatus.CONFLICT
        outcome.message = f"Stock kept changing concurrently; gave up after {self.max_retries} attempts"
        return outcome

    async def _propagate_pricing(self, invoice: Invoice, result: InventorySyncResult) -> None:
        """Copy purchase pricing onto the product master. Best-effort."""
        items = {item.id: item for item in invoice.items}
        targets = [
            r for r in result.items
            if r.status == ItemSyncStatus.APPLIED and r.product_id is not None
        ]
        if not targets:
            return

        invoice_id = invoice.id
        invoice_number = invoice.invoice_number
        try:
            for r in targets:
                item = items[r.invoice_item_id]
                values = {"buying_price": item.rate}
                if item.update_mrp is not None:
                    values["mrp"] = item.update_mrp
                if item.update_selling_price is not None:
                    values["selling_price"] = item.update_selling_price
                if item.update_wholesale_price is not None:
                    values["wholesale_price"] = item.update_wholesale_price
                await self.db.execute(
                    update(Product)
                    .where(Product.id == r.product_id)
                    .values(**values, version=Product.version + 1)
                    .execution_options(synchronize_session=False)
                )
                r.pricing_updated = True
            invoice.inventory_sync_result = result.to_dict()
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            for r in targets:
                r.pricing_updated = False
            logger.warning(f"Pricing update from invoice {invoice_number} failed: {e}")
            await self._store_result(invoice_id, invoice_number, result)

    async def _store_result(self, invoice_id: uuid.UUID, invoice_number: str, result: InventorySyncResult) -> None:
        """Overwrite the stored sync result. Best-effort."""
        try:
            await self.db.execute(
                update(Invoice)
                .where(Invoice.id == invoice_id)
                .values(inventory_sync_result=result.to_dict())
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.warning(f"Could not record sync result for invoice {invoice_number}: {e}")
