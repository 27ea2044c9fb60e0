"""
Invoice Number Sequencer

Allocates BIL-001, BIL-002, ... for BUYING and SIL-001, ... for SELLING.

One ``invoice_number_sequences`` row per invoice type holds the counter.
It is read with SELECT FOR UPDATE and bumped with a single
UPDATE ... SET current_number = current_number + 1 RETURNING, so concurrent
settlements of the same type serialize on that row. The allocation is part
of the caller's transaction: if the invoice insert is rolled back, so is the
increment, and the number is handed out again.

On first use the counter is seeded from the highest invoice number already
stored for the type. ``(invoice_type, invoice_number)`` is also unique, and
the settlement service retries after ``resync()`` if it ever collides.

USAGE:
    sequencer = InvoiceNumberService(db)
    number = await sequencer.next_number("SELLING")   # "SIL-042"
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.enum_utils import get_enum_value
from app.core.exceptions import InvoiceValidationError
from app.models.billing import Invoice, InvoiceNumberSequence, INVOICE_PREFIXES

logger = logging.getLogger(__name__)


def parse_invoice_number(invoice_number: str) -> int:
    """Numeric suffix of ``PREFIX-NNN``. Raises ValueError if there is none."""
    _, sep, suffix = invoice_number.rpartition("-")
    if not sep or not suffix.isdigit():
        raise ValueError(f"Unrecognised invoice number: {invoice_number!r}")
    return int(suffix)


class InvoiceNumberService:
    """Transactional per-type invoice counter."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def _series(invoice_type) -> str:
        series = get_enum_value(invoice_type)
        if series not in INVOICE_PREFIXES:
            raise InvoiceValidationError(f"Invalid invoice type: {series}", field="invoice_type")
        return series

    async def next_number(self, invoice_type) -> str:
        """Increment the counter for the type and return the formatted number."""
        sequence = await self._get_or_create_sequence(self._series(invoice_type))
        result = await self.db.execute(
            update(InvoiceNumberSequence)
            .where(InvoiceNumberSequence.id == sequence.id)
            .values(
                current_number=InvoiceNumberSequence.current_number + 1,
                updated_at=datetime.now(timezone.utc),
            )
            .returning(InvoiceNumberSequence.current_number)
            .execution_options(synchronize_session=False)
        )
        return sequence.format_number(result.scalar_one())

    async def preview_next_number(self, invoice_type) -> str:
        """Next number without consuming it. Not a reservation."""
        series = self._series(invoice_type)
        result = await self.db.execute(
            select(InvoiceNumberSequence)
            .where(InvoiceNumberSequence.series_code == series)
            .execution_options(populate_existing=True)
        )
        sequence = result.scalar_one_or_none()
        current = sequence.current_number if sequence else await self._highest_existing_number(series)
        return f"{INVOICE_PREFIXES[series]}-{str(current + 1).zfill(settings.INVOICE_NUMBER_PADDING)}"

    async def resync(self, invoice_type) -> int:
        """
        Move the counter up to the highest stored invoice number.

        Called after a unique-number collision, e.g. when invoices were
        imported without going through the sequence.
        """
        series = self._series(invoice_type)
        sequence = await self._get_or_create_sequence(series)
        highest = await self._highest_existing_number(series)
        if highest > sequence.current_number:
            logger.warning(
                f"Invoice sequence {series} behind stored invoices "
                f"({sequence.current_number} < {highest}), resyncing"
            )
            sequence.current_number = highest
            await self.db.flush()
        return sequence.current_number

    async def _get_or_create_sequence(self, series: str) -> InvoiceNumberSequence:
        """Sequence row for the series, locked for update. Created and seeded on first use."""
        sequence = await self._locked_sequence(series)
        if sequence:
            return sequence

        seed = await self._highest_existing_number(series)
        logger.info(f"Creating invoice sequence {series} starting after {seed}")
        sequence = InvoiceNumberSequence(
            series_code=series,
            prefix=INVOICE_PREFIXES[series],
            current_number=seed,
            padding=settings.INVOICE_NUMBER_PADDING,
        )
        self.db.add(sequence)
        await self.db.flush()

        # Re-fetch with lock
        return await self._locked_sequence(series)

    async def _locked_sequence(self, series: str) -> Optional[InvoiceNumberSequence]:
        result = await self.db.execute(
            select(InvoiceNumberSequence)
            .where(InvoiceNumberSequence.series_code == series)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _highest_existing_number(self, series: str) -> int:
        """
        Numeric suffix of the highest stored invoice number for the type.

        Longer numbers sort first so SIL-1000 beats SIL-999. If the suffix
        cannot be parsed, falls back to the invoice count.
        """
        result = await self.db.execute(
            select(Invoice.invoice_number)
            .where(Invoice.invoice_type == series)
            .order_by(func.length(Invoice.invoice_number).desc(), Invoice.invoice_number.desc())
            .limit(1)
        )
        highest = result.scalar_one_or_none()
        if highest is None:
            return 0

        try:
            return parse_invoice_number(highest)
        except ValueError:
            count = await self.db.scalar(
                select(func.count(Invoice.id)).where(Invoice.invoice_type == series)
            )
            logger.warning(
                f"Could not parse invoice number {highest!r} for {series}; "
                f"continuing from invoice count {count}"
            )
            return count or 0
