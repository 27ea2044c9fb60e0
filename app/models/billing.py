"""Invoice settlement models.

Supports:
- BUYING (purchase) and SELLING (sales) GST invoices
- Per-type sequential invoice numbers (BIL-001, SIL-001)
- At-most-once inventory sync, tracked per item
"""
import uuid
from datetime import datetime, date, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional, List
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, Integer, Text, Date
from sqlalchemy import UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.db_types import UUIDType, JSONType, MoneyType, QuantityType, PercentType
from app.core.enum_utils import enum_comment

if TYPE_CHECKING:
    from app.models.product import Product
    from app.models.user import User


class InvoiceType(str, Enum):
    """Invoice type enumeration."""
    BUYING = "BUYING"    # Purchase from a supplier, stock comes in
    SELLING = "SELLING"  # Sale to a customer, stock goes out


class InvoiceStatus(str, Enum):
    """Invoice status enumeration."""
    DRAFT = "DRAFT"
    FINALIZED = "FINALIZED"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class InventorySyncStatus(str, Enum):
    """Inventory sync state. SYNCED is terminal."""
    UNSYNCED = "UNSYNCED"
    SYNCED = "SYNCED"


class ItemSyncStatus(str, Enum):
    """Outcome of applying one invoice item to stock."""
    APPLIED = "APPLIED"
    ALREADY_APPLIED = "ALREADY_APPLIED"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"


INVOICE_PREFIXES = {
    InvoiceType.BUYING.value: "BIL",
    InvoiceType.SELLING.value: "SIL",
}


class Invoice(Base):
    """
    GST invoice settled by a business user.

    Money fields are always computed server-side from the items and the
    three tax rates. The business side (receiver on BUYING, sender on SELLING)
    is copied from the owning user at settlement time.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        UniqueConstraint("invoice_type", "invoice_number", name="uq_invoice_type_number"),
        Index("ix_invoices_user_type_status", "user_id", "invoice_type", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )

    invoice_number: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    invoice_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment=enum_comment(InvoiceType)
    )
    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        default=InvoiceStatus.DRAFT.value,
        nullable=False,
        comment=enum_comment(InvoiceStatus)
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Sender
    sender_name: Mapped[str] = mapped_column(String(200), nullable=False)
    sender_address: Mapped[str] = mapped_column(Text, nullable=False)
    sender_gstin: Mapped[Optional[str]] = mapped_column(String(15), nullable=True)
    sender_contact: Mapped[str] = mapped_column(String(50), nullable=False)

    # Receiver
    receiver_name: Mapped[str] = mapped_column(String(200), nullable=False)
    receiver_address: Mapped[str] = mapped_column(Text, nullable=False)
    receiver_gstin: Mapped[Optional[str]] = mapped_column(String(15), nullable=True)
    receiver_contact: Mapped[str] = mapped_column(String(50), nullable=False)

    # Rates
    cgst_rate: Mapped[Decimal] = mapped_column(PercentType, default=Decimal("0"), nullable=False)
    sgst_rate: Mapped[Decimal] = mapped_column(PercentType, default=Decimal("0"), nullable=False)
    igst_rate: Mapped[Decimal] = mapped_column(PercentType, default=Decimal("0"), nullable=False)

    # Amounts
    subtotal: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    cgst_amount: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)
    sgst_amount: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)
    igst_amount: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)
    total_tax: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)
    round_off: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    amount_in_words: Mapped[str] = mapped_column(String(500), nullable=False)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Inventory sync
    inventory_sync_status: Mapped[str] = mapped_column(
        String(20),
        default=InventorySyncStatus.UNSYNCED.value,
        nullable=False,
        comment=enum_comment(InventorySyncStatus)
    )
    inventory_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    inventory_sync_result: Mapped[Optional[dict]] = mapped_column(
        JSONType,
        nullable=True,
        comment="Outcome of the last sync attempt"
    )

    # Status history
    finalized_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    owner: Mapped["User"] = relationship("User", back_populates="invoices")
    items: Mapped[List["InvoiceItem"]] = relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.serial_number"
    )

    @property
    def is_synced(self) -> bool:
        return self.inventory_sync_status == InventorySyncStatus.SYNCED.value

    def __repr__(self) -> str:
        return f"<Invoice(number='{self.invoice_number}', total={self.total_amount})>"


class InvoiceItem(Base):
    """Invoice line item. Product name is captured so old invoices survive catalog changes."""
    __tablename__ = "invoice_items"
    __table_args__ = (
        UniqueConstraint("invoice_id", "serial_number", name="uq_invoice_item_serial"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    invoice_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    serial_number: Mapped[int] = mapped_column(Integer, nullable=False)

    product_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("products.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    hsn_code: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)

    quantity: Mapped[Decimal] = mapped_column(QuantityType, nullable=False)
    rate: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    discount_percent: Mapped[Decimal] = mapped_column(PercentType, default=Decimal("0"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    # Pricing pushed to the product master on BUYING sync
    update_mrp: Mapped[Optional[Decimal]] = mapped_column(MoneyType, nullable=True)
    update_selling_price: Mapped[Optional[Decimal]] = mapped_column(MoneyType, nullable=True)
    update_wholesale_price: Mapped[Optional[Decimal]] = mapped_column(MoneyType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    invoice: Mapped["Invoice"] = relationship("Invoice", back_populates="items")
    product: Mapped[Optional["Product"]] = relationship("Product")


class InvoiceNumberSequence(Base):
    """
    Invoice number sequence, one row per invoice type.
    Locked FOR UPDATE while a number is allocated.
    """
    __tablename__ = "invoice_number_sequences"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )

    series_code: Mapped[str] = mapped_column(
        String(20),
        unique=True,
        nullable=False,
        comment=enum_comment(InvoiceType)
    )
    prefix: Mapped[str] = mapped_column(String(10), nullable=False, comment="BIL or SIL")
    current_number: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    padding: Mapped[int] = mapped_column(Integer, default=3, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def format_number(self, number: int) -> str:
        return f"{self.prefix}-{str(number).zfill(self.padding)}"

    def __repr__(self) -> str:
        return f"<InvoiceNumberSequence(series='{self.series_code}', current={self.current_number})>"


class InventorySyncEntry(Base):
    """
    Stock ledger row written when one invoice item is applied to inventory.
    The unique invoice_item_id makes each item's effect at-most-once.
    """
    __tablename__ = "inventory_sync_entries"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    invoice_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    invoice_item_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("invoice_items.id", ondelete="CASCADE"),
        unique=True,
        nullable=False
    )
    product_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("products.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    quantity_delta: Mapped[Decimal] = mapped_column(QuantityType, nullable=False, comment="+ in, - out")
    quantity_before: Mapped[Decimal] = mapped_column(QuantityType, nullable=False)
    quantity_after: Mapped[Decimal] = mapped_column(QuantityType, nullable=False)

    applied_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<InventorySyncEntry(item={self.invoice_item_id}, delta={self.quantity_delta})>"
