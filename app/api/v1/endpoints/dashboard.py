from fastapi import APIRouter

from app.api.deps import DB, CurrentBusiness
from app.schemas.billing import DashboardSummary
from app.services.dashboard_service import DashboardService


router = APIRouter()


@router.get("/summary", response_model=DashboardSummary)
async def get_dashboard_summary(
    db: DB,
    business: CurrentBusiness,
):
    """Product, stock and invoice totals for the logged-in business."""
    return await DashboardService(db).get_summary(business.user_id)
