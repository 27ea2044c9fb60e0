import uuid
from decimal import Decimal

from sqlalchemy import select, func, case
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.billing import Invoice, InvoiceStatus, InvoiceType, InventorySyncStatus
from app.models.product import Product
from app.schemas.billing import DashboardSummary


class DashboardService:
    """Headline numbers for the business owner's dashboard."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_summary(self, user_id: uuid.UUID) -> DashboardSummary:
        product_row = (await self.db.execute(
            select(
                func.count(Product.id),
                func.coalesce(
                    func.sum(case((Product.quantity < settings.LOW_STOCK_THRESHOLD, 1), else_=0)), 0
                ),
            ).where(Product.user_id == user_id, Product.is_active == True)  # noqa: E712
        )).one()

        paid = Invoice.status == InvoiceStatus.PAID.value
        selling = Invoice.invoice_type == InvoiceType.SELLING.value
        buying = Invoice.invoice_type == InvoiceType.BUYING.value
        active = Invoice.status != InvoiceStatus.CANCELLED.value

        invoice_row = (await self.db.execute(
            select(
                func.coalesce(func.sum(case((buying, 1), else_=0)), 0),
                func.coalesce(func.sum(case((selling, 1), else_=0)), 0),
                func.coalesce(func.sum(case((
                    active & (Invoice.inventory_sync_status == InventorySyncStatus.UNSYNCED.value), 1
                ), else_=0)), 0),
                func.coalesce(func.sum(case((paid & selling, Invoice.total_amount), else_=0)), 0),
                func.coalesce(func.sum(case((paid & buying, Invoice.total_amount), else_=0)), 0),
            ).where(Invoice.user_id == user_id)
        )).one()

        return DashboardSummary(
            total_products=product_row[0],
            low_stock_products=int(product_row[1]),
            buying_invoices=int(invoice_row[0]),
            selling_invoices=int(invoice_row[1]),
            unsynced_invoices=int(invoice_row[2]),
            amount_received=Decimal(str(invoice_row[3])),
            amount_spent=Decimal(str(invoice_row[4])),
        )
