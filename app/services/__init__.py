# Services module
from app.services.auth_service import AuthService
from app.services.invoice_number_service import InvoiceNumberService
from app.services.inventory_sync_service import InventorySyncService
from app.services.invoice_service import InvoiceSettlementService
from app.services.dashboard_service import DashboardService

__all__ = [
    "AuthService",
    "InvoiceNumberService",
    "InventorySyncService",
    "InvoiceSettlementService",
    "DashboardService",
]
