import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional
from decimal import Decimal

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Text, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.db_types import UUIDType, MoneyType, QuantityType, PercentType

if TYPE_CHECKING:
    from app.models.user import User


class Product(Base):
    """
    Catalog product with on-hand stock.

    ``quantity`` changes only through inventory sync of a settled invoice and
    every change bumps ``version``, which sync uses as its compare-and-swap guard.
    Quantity may go negative after an oversell.
    """
    __tablename__ = "products"
    __table_args__ = (
        Index('ix_product_user_active', 'user_id', 'is_active'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=True,
        index=True
    )

    # Basic Info
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    unit: Mapped[str] = mapped_column(String(20), default="pcs", nullable=False)
    barcode: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)
    supplier: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    hsn_code: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)

    # Stock
    quantity: Mapped[Decimal] = mapped_column(QuantityType, default=Decimal("0"), nullable=False)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # Pricing
    buying_price: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)
    selling_price: Mapped[Decimal] = mapped_column(MoneyType, default=Decimal("0"), nullable=False)
    wholesale_price: Mapped[Optional[Decimal]] = mapped_column(MoneyType, nullable=True)
    mrp: Mapped[Optional[Decimal]] = mapped_column(MoneyType, nullable=True, comment="Maximum Retail Price")
    discount_percentage: Mapped[Decimal] = mapped_column(PercentType, default=Decimal("0"), nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(PercentType, default=Decimal("18"), nullable=False, comment="GST rate %")

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

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

    owner: Mapped[Optional["User"]] = relationship("User", back_populates="products")

    def __repr__(self) -> str:
        return f"<Product(name='{self.name}', quantity={self.quantity})>"
