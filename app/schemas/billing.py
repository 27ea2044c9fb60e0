"""Invoice settlement request/response schemas."""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from app.models.billing import InvoiceType, InvoiceStatus, ItemSyncStatus
from app.schemas.base import BaseCreateSchema, BaseResponseSchema


# ==================== Input ====================

class PartyIdentity(BaseCreateSchema):
    """Counterparty on the invoice: supplier on BUYING, customer on SELLING."""
    name: str = Field(..., min_length=1, max_length=200)
    address: str = Field(..., min_length=1)
    gstin: Optional[str] = Field(None, min_length=15, max_length=15, description="15-character GSTIN")
    contact: str = Field(..., min_length=1, max_length=50)


class ProductPricingUpdate(BaseCreateSchema):
    """New product master prices carried by a purchase line."""
    mrp: Optional[Decimal] = Field(None, ge=0, max_digits=14, decimal_places=2)
    selling_price: Optional[Decimal] = Field(None, ge=0, max_digits=14, decimal_places=2)
    wholesale_price: Optional[Decimal] = Field(None, ge=0, max_digits=14, decimal_places=2)

    @model_validator(mode="after")
    def at_least_one_price(self):
        if self.mrp is None and self.selling_price is None and self.wholesale_price is None:
            raise ValueError("pricing_update needs at least one of mrp, selling_price, wholesale_price")
        return self


class InvoiceItemCreate(BaseCreateSchema):
    """One invoice line. The amount is always computed server-side."""
    product_id: UUID
    product_name: Optional[str] = Field(
        None, max_length=255, description="Defaults to the catalog name"
    )
    # Scale matches the stored columns
    quantity: Decimal = Field(..., ge=0, max_digits=14, decimal_places=3)
    rate: Decimal = Field(..., ge=0, max_digits=14, decimal_places=2)
    discount_percent: Decimal = Field(Decimal("0"), ge=0, le=100, decimal_places=2)
    hsn_code: Optional[str] = Field(None, min_length=4, max_length=8)
    pricing_update: Optional[ProductPricingUpdate] = None


class TaxRatesMixin(BaseCreateSchema):
    cgst_rate: Decimal = Field(Decimal("0"), ge=0, le=100, decimal_places=2)
    sgst_rate: Decimal = Field(Decimal("0"), ge=0, le=100, decimal_places=2)
    igst_rate: Decimal = Field(Decimal("0"), ge=0, le=100, decimal_places=2)


class InvoiceUpdate(TaxRatesMixin):
    """
    Corrective edit. Replaces the counterparty, items, rates and notes and
    re-runs settlement. Invoice number and type never change.
    """
    invoice_date: Optional[date] = None
    counterparty: PartyIdentity
    items: List[InvoiceItemCreate] = Field(..., min_length=1)
    notes: Optional[str] = None


class InvoiceCreate(InvoiceUpdate):
    """Settle a new invoice."""
    invoice_type: InvoiceType
    sync_inventory: bool = Field(True, description="Apply the items to stock after saving")

    @model_validator(mode="after")
    def pricing_only_on_purchases(self):
        if self.invoice_type != InvoiceType.BUYING and any(i.pricing_update for i in self.items):
            raise ValueError("pricing_update is only accepted on BUYING invoices")
        return self


class InvoiceStatusUpdate(BaseCreateSchema):
    status: InvoiceStatus
    reason: Optional[str] = Field(None, max_length=500)


# ==================== Output ====================

class InvoiceItemResponse(BaseResponseSchema):
    id: UUID
    serial_number: int
    product_id: Optional[UUID] = None
    product_name: str
    hsn_code: Optional[str] = None
    quantity: Decimal
    rate: Decimal
    discount_percent: Decimal
    amount: Decimal
    update_mrp: Optional[Decimal] = None
    update_selling_price: Optional[Decimal] = None
    update_wholesale_price: Optional[Decimal] = None


class InvoiceResponse(BaseResponseSchema):
    id: UUID
    invoice_number: str
    invoice_type: str
    invoice_date: date
    status: str

    sender_name: str
    sender_address: str
    sender_gstin: Optional[str] = None
    sender_contact: str
    receiver_name: str
    receiver_address: str
    receiver_gstin: Optional[str] = None
    receiver_contact: str

    cgst_rate: Decimal
    sgst_rate: Decimal
    igst_rate: Decimal
    subtotal: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    igst_amount: Decimal
    total_tax: Decimal
    round_off: Decimal
    total_amount: Decimal
    amount_in_words: str
    notes: Optional[str] = None

    inventory_sync_status: str
    inventory_synced_at: Optional[datetime] = None
    inventory_sync_result: Optional[dict] = None

    finalized_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    items: List[InvoiceItemResponse] = []


class InvoiceBrief(BaseResponseSchema):
    """Brief invoice info for lists."""
    id: UUID
    invoice_number: str
    invoice_type: str
    invoice_date: date
    status: str
    sender_name: str
    receiver_name: str
    total_amount: Decimal
    inventory_sync_status: str


class InvoiceListResponse(BaseModel):
    """Response for listing invoices."""
    items: List[InvoiceBrief]
    total: int
    page: int
    size: int
    pages: int


class ItemSyncResponse(BaseResponseSchema):
    serial_number: int
    invoice_item_id: UUID
    product_id: Optional[UUID] = None
    product_name: str
    status: ItemSyncStatus
    quantity_delta: Optional[Decimal] = None
    quantity_before: Optional[Decimal] = None
    quantity_after: Optional[Decimal] = None
    message: Optional[str] = None
    warning: Optional[str] = None
    pricing_updated: Optional[bool] = None


class InventorySyncResponse(BaseResponseSchema):
    invoice_id: UUID
    success: bool
    already_synced: bool = False
    message: str
    items: List[ItemSyncResponse] = []


class SettlementResponse(BaseModel):
    """Created invoice plus the outcome of the inventory sync, if requested."""
    invoice: InvoiceResponse
    inventory_sync: Optional[InventorySyncResponse] = None


class DashboardSummary(BaseModel):
    total_products: int
    low_stock_products: int
    buying_invoices: int
    selling_invoices: int
    unsynced_invoices: int
    amount_received: Decimal = Field(..., description="Total of PAID selling invoices")
    amount_spent: Decimal = Field(..., description="Total of PAID buying invoices")
