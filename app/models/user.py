import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import String, Boolean, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.db_types import UUIDType

if TYPE_CHECKING:
    from app.models.product import Product
    from app.models.billing import Invoice


class User(Base):
    """
    Business owner account.

    The business identity fields are copied onto the business side of every
    invoice the user settles (receiver on BUYING, sender on SELLING).
    """
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )

    # Login
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Business identity
    business_name: Mapped[str] = mapped_column(String(200), nullable=False)
    business_address: Mapped[str] = mapped_column(Text, nullable=False)
    business_gstin: Mapped[Optional[str]] = mapped_column(String(15), nullable=True)
    business_contact: Mapped[str] = mapped_column(String(50), nullable=False)
    bank_details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

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
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    products: Mapped[List["Product"]] = relationship("Product", back_populates="owner")
    invoices: Mapped[List["Invoice"]] = relationship("Invoice", back_populates="owner")

    def __repr__(self) -> str:
        return f"<User(email='{self.email}', business='{self.business_name}')>"
