from typing import Optional
import uuid

from fastapi import APIRouter, Query, Response, status

from app.api.deps import DB, CurrentBusiness
from app.core.exceptions import PartialSyncFailure
from app.models.billing import InvoiceType, InvoiceStatus
from app.schemas.billing import (
    InvoiceCreate,
    InvoiceUpdate,
    InvoiceStatusUpdate,
    InvoiceResponse,
    InvoiceBrief,
    InvoiceListResponse,
    InventorySyncResponse,
    SettlementResponse,
)
from app.services.invoice_service import InvoiceSettlementService


router = APIRouter()


@router.post(
    "",
    response_model=SettlementResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_invoice(
    data: InvoiceCreate,
    db: DB,
    business: CurrentBusiness,
):
    """
    Settle a new BUYING or SELLING invoice.

    Amounts, taxes, round-off and the amount in words are computed here;
    the business's own name, address, GSTIN and contact come from the
    logged-in account. With `sync_inventory` (default) the stock update
    runs after the invoice is saved and its outcome is returned alongside.
    """
    service = InvoiceSettlementService(db)
    result = await service.create_invoice(data, business.user_id, business.identity)
    return SettlementResponse(
        invoice=InvoiceResponse.model_validate(result.invoice),
        inventory_sync=(
            InventorySyncResponse.model_validate(result.inventory_sync)
            if result.inventory_sync else None
        ),
    )


@router.get("", response_model=InvoiceListResponse)
async def list_invoices(
    db: DB,
    business: CurrentBusiness,
    invoice_type: Optional[InvoiceType] = None,
    invoice_status: Optional[InvoiceStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
):
    """List invoices, newest first."""
    service = InvoiceSettlementService(db)
    invoices, total, pages = await service.list_invoices(
        business.user_id,
        invoice_type=invoice_type,
        status=invoice_status,
        page=page,
        size=size,
    )
    return InvoiceListResponse(
        items=[InvoiceBrief.model_validate(inv) for inv in invoices],
        total=total,
        page=page,
        size=size,
        pages=pages,
    )


@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: uuid.UUID,
    db: DB,
    business: CurrentBusiness,
):
    """Get invoice with items in serial order."""
    service = InvoiceSettlementService(db)
    return await service.get_invoice(invoice_id, business.user_id)


@router.put("/{invoice_id}", response_model=InvoiceResponse)
async def update_invoice(
    invoice_id: uuid.UUID,
    data: InvoiceUpdate,
    db: DB,
    business: CurrentBusiness,
):
    """Corrective edit of a DRAFT or FINALIZED invoice. Totals are recomputed."""
    service = InvoiceSettlementService(db)
    return await service.update_invoice(invoice_id, data, business.user_id, business.identity)


@router.post("/{invoice_id}/status", response_model=InvoiceResponse)
async def change_invoice_status(
    invoice_id: uuid.UUID,
    data: InvoiceStatusUpdate,
    db: DB,
    business: CurrentBusiness,
):
    """Finalize, mark paid or cancel an invoice."""
    service = InvoiceSettlementService(db)
    return await service.transition_status(
        invoice_id, data.status, business.user_id, reason=data.reason
    )


@router.put("/{invoice_id}/update-inventory", response_model=InventorySyncResponse)
async def update_inventory(
    invoice_id: uuid.UUID,
    db: DB,
    business: CurrentBusiness,
):
    """
    Apply the invoice to stock.

    Safe to retry: items already applied are skipped and an already
    synced invoice is a no-op. Returns 409 with per-item detail when
    some items could not be applied.
    """
    service = InvoiceSettlementService(db)
    result = await service.sync_inventory(invoice_id, business.user_id)
    if not result.success:
        raise PartialSyncFailure(result.message, result)
    return InventorySyncResponse.model_validate(result)


@router.delete("/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_invoice(
    invoice_id: uuid.UUID,
    db: DB,
    business: CurrentBusiness,
):
    """Delete an invoice whose stock has not been touched."""
    service = InvoiceSettlementService(db)
    await service.delete_invoice(invoice_id, business.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
