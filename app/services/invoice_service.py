"""
Invoice Settlement Service

Turns a validated invoice request into a persisted GST invoice:

1. Places the business (from the logged-in user) and the counterparty on
   the correct sides: BUYING -> counterparty is sender, business receives;
   SELLING -> business sends, counterparty receives.
2. Checks every referenced product exists before anything is written.
3. Recomputes every line amount, the tax breakdown and the amount in words.
4. Allocates the next BIL-/SIL- number and saves invoice + items in one
   transaction, retrying on a number collision.
5. Optionally syncs inventory after the commit. A failed sync is reported
   in the result and never undoes the invoice.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from math import ceil
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import settings
from app.core.enum_utils import get_enum_value
from app.core.exceptions import (
    BillingError,
    ConflictError,
    InvoiceStateError,
    InvoiceValidationError,
    NotFoundError,
    persistence_error,
)
from app.models.billing import (
    Invoice,
    InvoiceItem,
    InvoiceStatus,
    InvoiceType,
    InventorySyncEntry,
)
from app.models.product import Product
from app.models.user import User
from app.schemas.billing import InvoiceCreate, InvoiceUpdate, InvoiceItemCreate, PartyIdentity
from app.services.amount_in_words import rupees_in_words
from app.services.billing_calculator import TaxBreakdown, calculate_line_amount, compute_tax_breakdown
from app.services.inventory_sync_service import InventorySyncResult, InventorySyncService
from app.services.invoice_number_service import InvoiceNumberService

logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS = {
    InvoiceStatus.DRAFT.value: {InvoiceStatus.FINALIZED.value, InvoiceStatus.CANCELLED.value},
    InvoiceStatus.FINALIZED.value: {InvoiceStatus.PAID.value, InvoiceStatus.CANCELLED.value},
    InvoiceStatus.PAID.value: set(),
    InvoiceStatus.CANCELLED.value: set(),
}

EDITABLE_STATUSES = {InvoiceStatus.DRAFT.value, InvoiceStatus.FINALIZED.value}


@dataclass(frozen=True)
class BusinessIdentity:
    """The logged-in business as it appears on its own invoices."""
    name: str
    address: str
    contact: str
    gstin: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "BusinessIdentity":
        return cls(
            name=user.business_name,
            address=user.business_address,
            contact=user.business_contact,
            gstin=user.business_gstin,
        )


@dataclass
class SettlementResult:
    invoice: Invoice
    inventory_sync: Optional[InventorySyncResult] = None


def resolve_parties(invoice_type: str, counterparty: PartyIdentity, business: BusinessIdentity) -> dict:
    """Sender/receiver columns for the invoice type."""
    missing = [f for f in ("name", "address", "contact") if not getattr(business, f)]
    if missing:
        raise InvoiceValidationError(
            "Business profile is incomplete",
            details=[{"field": f"business_{f}", "message": "required"} for f in missing],
        )

    external = {
        "name": counterparty.name,
        "address": counterparty.address,
        "gstin": counterparty.gstin,
        "contact": counterparty.contact,
    }
    own = {
        "name": business.name,
        "address": business.address,
        "gstin": business.gstin,
        "contact": business.contact,
    }
    if invoice_type == InvoiceType.BUYING.value:
        sender, receiver = external, own
    else:
        sender, receiver = own, external

    parties = {f"sender_{k}": v for k, v in sender.items()}
    parties.update({f"receiver_{k}": v for k, v in receiver.items()})
    return parties


def check_pricing_updates(invoice_type: str, items: List[InvoiceItemCreate]) -> None:
    """Product price updates ride only on purchases."""
    if invoice_type == InvoiceType.BUYING.value:
        return
    for index, item in enumerate(items):
        if item.pricing_update is not None:
            raise InvoiceValidationError(
                "pricing_update is only accepted on BUYING invoices",
                field=f"items.{index}.pricing_update",
            )


class InvoiceSettlementService:
    """Creates, edits and moves invoices through their lifecycle."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.sequencer = InvoiceNumberService(db)
        self.inventory = InventorySyncService(db)

    # ==================== Settlement ====================

    async def create_invoice(
        self,
        data: InvoiceCreate,
        user_id: uuid.UUID,
        business: BusinessIdentity,
    ) -> SettlementResult:
        """
        Settle a new invoice and optionally sync inventory.

        Raises:
            InvoiceValidationError: incomplete business profile, bad amounts
            NotFoundError: an item references an unknown product
            ConflictError: no unique invoice number after retries
            PersistenceError: the invoice could not be saved
        """
        invoice_type = get_enum_value(data.invoice_type)
        check_pricing_updates(invoice_type, data.items)
        parties = resolve_parties(invoice_type, data.counterparty, business)
        products = await self._load_products(data.items, user_id)
        lines = self._build_lines(data.items, products)
        breakdown, words = self._settle_amounts(data)

        max_attempts = max(1, settings.INVOICE_NUMBER_MAX_RETRIES)
        invoice_id = None
        for attempt in range(1, max_attempts + 1):
            try:
                if attempt > 1:
                    await self.sequencer.resync(invoice_type)
                number = await self.sequencer.next_number(invoice_type)

                invoice = Invoice(
                    invoice_number=number,
                    invoice_type=invoice_type,
                    invoice_date=data.invoice_date or date.today(),
                    status=InvoiceStatus.DRAFT.value,
                    user_id=user_id,
                    notes=data.notes,
                    **parties,
                )
                self._apply_breakdown(invoice, breakdown, words)
                invoice.items = [InvoiceItem(**line) for line in lines]
                self.db.add(invoice)
                await self.db.flush()
                invoice_id = invoice.id
                await self.db.commit()
                break
            except IntegrityError as e:
                await self.db.rollback()
                logger.warning(
                    f"Invoice number collision for {invoice_type} "
                    f"(attempt {attempt}/{max_attempts}): {e.orig}"
                )
                if attempt == max_attempts:
                    raise ConflictError("Could not allocate a unique invoice number; please retry")
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error(f"Failed to save {invoice_type} invoice: {e}")
                raise persistence_error(e, "save the invoice")

        logger.info(f"Settled invoice {number} ({invoice_type}) total={breakdown.total}")

        sync_result = None
        if data.sync_inventory:
            try:
                sync_result = await self.inventory.sync_invoice(invoice_id, user_id)
            except BillingError as e:
                logger.error(f"Inventory sync after settling {number} failed: {e.message}")
                sync_result = InventorySyncResult.aborted(invoice_id, e.message)

        invoice = await self.get_invoice(invoice_id, user_id)
        return SettlementResult(invoice=invoice, inventory_sync=sync_result)

    async def update_invoice(
        self,
        invoice_id: uuid.UUID,
        data: InvoiceUpdate,
        user_id: uuid.UUID,
        business: BusinessIdentity,
    ) -> Invoice:
        """
        Corrective edit: replace parties, items, rates and notes and re-settle.

        Once inventory has been applied for any item, the product and
        quantity of every line are frozen; only price/text changes pass.
        """
        invoice = await self._get_owned_invoice(invoice_id, user_id, for_update=True)
        if invoice.status not in EDITABLE_STATUSES:
            raise InvoiceStateError(f"{invoice.status.title()} invoices cannot be edited")

        check_pricing_updates(invoice.invoice_type, data.items)
        parties = resolve_parties(invoice.invoice_type, data.counterparty, business)
        products = await self._load_products(data.items, user_id)
        lines = self._build_lines(data.items, products)
        breakdown, words = self._settle_amounts(data)

        if invoice.is_synced or await self._has_sync_entries(invoice.id):
            current = [(item.product_id, item.quantity) for item in invoice.items]
            proposed = [(line["product_id"], line["quantity"]) for line in lines]
            if current != proposed:
                raise InvoiceStateError(
                    "Inventory was already updated from this invoice; "
                    "products and quantities can only be changed with a compensating invoice"
                )
            for item, line in zip(invoice.items, lines):
                for key, value in line.items():
                    setattr(item, key, value)
        else:
            invoice.items.clear()
            await self.db.flush()
            invoice.items.extend(InvoiceItem(**line) for line in lines)

        for key, value in parties.items():
            setattr(invoice, key, value)
        if data.invoice_date:
            invoice.invoice_date = data.invoice_date
        invoice.notes = data.notes
        self._apply_breakdown(invoice, breakdown, words)

        await self._commit(f"update invoice {invoice.invoice_number}")
        logger.info(f"Re-settled invoice {invoice.invoice_number} total={breakdown.total}")
        return await self.get_invoice(invoice_id, user_id)

    async def sync_inventory(self, invoice_id: uuid.UUID, user_id: uuid.UUID) -> InventorySyncResult:
        return await self.inventory.sync_invoice(invoice_id, user_id)

    # ==================== Lifecycle ====================

    async def transition_status(
        self,
        invoice_id: uuid.UUID,
        new_status,
        user_id: uuid.UUID,
        reason: Optional[str] = None,
    ) -> Invoice:
        """DRAFT -> FINALIZED -> PAID, or DRAFT/FINALIZED -> CANCELLED."""
        target = get_enum_value(new_status)
        invoice = await self._get_owned_invoice(invoice_id, user_id, for_update=True)
        current = invoice.status

        if target == current:
            return invoice
        if target not in ALLOWED_TRANSITIONS.get(current, set()):
            raise InvoiceStateError(f"Cannot change invoice status from {current} to {target}")

        now = datetime.now(timezone.utc)
        if target == InvoiceStatus.FINALIZED.value:
            invoice.finalized_at = now
        elif target == InvoiceStatus.PAID.value:
            invoice.paid_at = now
        elif target == InvoiceStatus.CANCELLED.value:
            if invoice.is_synced or await self._has_sync_entries(invoice.id):
                raise InvoiceStateError(
                    "Inventory was already updated from this invoice; issue a compensating invoice instead"
                )
            invoice.cancelled_at = now
            invoice.cancellation_reason = reason
        invoice.status = target

        await self._commit(f"change status of invoice {invoice.invoice_number}")
        logger.info(f"Invoice {invoice.invoice_number}: {current} -> {target}")
        return invoice

    async def delete_invoice(self, invoice_id: uuid.UUID, user_id: uuid.UUID) -> None:
        invoice = await self._get_owned_invoice(invoice_id, user_id, for_update=True)
        if invoice.status == InvoiceStatus.PAID.value:
            raise InvoiceStateError("Paid invoices cannot be deleted")
        if invoice.is_synced or await self._has_sync_entries(invoice.id):
            raise InvoiceStateError(
                "Inventory was already updated from this invoice; issue a compensating invoice instead"
            )
        number = invoice.invoice_number
        await self.db.delete(invoice)
        await self._commit(f"delete invoice {number}")
        logger.info(f"Deleted invoice {number}")

    # ==================== Queries ====================

    async def get_invoice(self, invoice_id: uuid.UUID, user_id: uuid.UUID) -> Invoice:
        return await self._get_owned_invoice(invoice_id, user_id)

    async def list_invoices(
        self,
        user_id: uuid.UUID,
        invoice_type: Optional[str] = None,
        status: Optional[str] = None,
        page: int = 1,
        size: int = 20,
    ) -> Tuple[List[Invoice], int, int]:
        """Newest first. Returns (invoices, total, pages)."""
        query = select(Invoice).where(Invoice.user_id == user_id)
        count_query = select(func.count(Invoice.id)).where(Invoice.user_id == user_id)

        if invoice_type:
            query = query.where(Invoice.invoice_type == get_enum_value(invoice_type))
            count_query = count_query.where(Invoice.invoice_type == get_enum_value(invoice_type))
        if status:
            query = query.where(Invoice.status == get_enum_value(status))
            count_query = count_query.where(Invoice.status == get_enum_value(status))

        total = await self.db.scalar(count_query) or 0

        query = (
            query.order_by(Invoice.invoice_date.desc(), Invoice.created_at.desc())
            .offset((page - 1) * size)
            .limit(size)
        )
        result = await self.db.execute(query)
        invoices = list(result.scalars().all())
        return invoices, total, ceil(total / size) if size else 0

    # ==================== Helpers ====================

    async def _get_owned_invoice(
        self,
        invoice_id: uuid.UUID,
        user_id: uuid.UUID,
        for_update: bool = False,
    ) -> Invoice:
        query = (
            select(Invoice)
            .options(selectinload(Invoice.items))
            .where(Invoice.id == invoice_id, Invoice.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        invoice = result.scalar_one_or_none()
        if not invoice:
            raise NotFoundError(f"Invoice {invoice_id} not found")
        return invoice

    async def _load_products(
        self,
        items: List[InvoiceItemCreate],
        user_id: uuid.UUID,
    ) -> Dict[uuid.UUID, Product]:
        wanted = {item.product_id for item in items}
        result = await self.db.execute(
            select(Product).where(Product.id.in_(wanted), Product.user_id == user_id)
        )
        products = {p.id: p for p in result.scalars().all()}

        missing = [str(pid) for pid in wanted if pid not in products]
        if missing:
            raise NotFoundError(
                f"{len(missing)} product(s) not found",
                details=[{"field": "items.product_id", "product_id": pid} for pid in sorted(missing)],
            )
        return products

    @staticmethod
    def _build_lines(items: List[InvoiceItemCreate], products: Dict[uuid.UUID, Product]) -> List[dict]:
        """Item column values, serial numbers 1..n in request order."""
        lines = []
        for serial, item in enumerate(items, start=1):
            product = products[item.product_id]
            pricing = item.pricing_update
            lines.append({
                "serial_number": serial,
                "product_id": product.id,
                "product_name": item.product_name or product.name,
                "hsn_code": item.hsn_code or product.hsn_code,
                "quantity": item.quantity,
                "rate": item.rate,
                "discount_percent": item.discount_percent,
                "amount": calculate_line_amount(item.quantity, item.rate, item.discount_percent),
                "update_mrp": pricing.mrp if pricing else None,
                "update_selling_price": pricing.selling_price if pricing else None,
                "update_wholesale_price": pricing.wholesale_price if pricing else None,
            })
        return lines

    @staticmethod
    def _settle_amounts(data: InvoiceUpdate) -> Tuple[TaxBreakdown, str]:
        breakdown = compute_tax_breakdown(data.items, data.cgst_rate, data.sgst_rate, data.igst_rate)
        try:
            words = rupees_in_words(int(breakdown.total))
        except ValueError as e:
            raise InvoiceValidationError(str(e), field="total_amount")
        return breakdown, words

    @staticmethod
    def _apply_breakdown(invoice: Invoice, breakdown: TaxBreakdown, words: str) -> None:
        invoice.cgst_rate = breakdown.cgst_rate
        invoice.sgst_rate = breakdown.sgst_rate
        invoice.igst_rate = breakdown.igst_rate
        invoice.subtotal = breakdown.subtotal
        invoice.cgst_amount = breakdown.cgst_amount
        invoice.sgst_amount = breakdown.sgst_amount
        invoice.igst_amount = breakdown.igst_amount
        invoice.total_tax = breakdown.total_tax
        invoice.round_off = breakdown.round_off
        invoice.total_amount = breakdown.total
        invoice.amount_in_words = words

    async def _has_sync_entries(self, invoice_id: uuid.UUID) -> bool:
        count = await self.db.scalar(
            select(func.count(InventorySyncEntry.id)).where(InventorySyncEntry.invoice_id == invoice_id)
        )
        return bool(count)

    async def _commit(self, action: str) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to {action}: {e}")
            raise persistence_error(e, action)
