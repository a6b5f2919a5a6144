"""
Report API Routes
"""
from typing import Optional

from fastapi import APIRouter, Depends

from haulage.api.dependencies.repository import get_repository
from haulage.db.repository import FleetRepository
from haulage.domain.services.report_service import ReportService

router = APIRouter()


@router.get(
    "/revenue",
    summary="Estimated revenue",
    description=(
        "Estimated revenue of the trips in a period, priced from the site material rates. "
        "Trips without an exact rate match are counted but contribute nothing."
    ),
)
async def get_revenue(
    period: str = "30d",
    value: Optional[str] = None,
    repository: FleetRepository = Depends(get_repository)
):
    """Revenue summary and daily trend"""
    report = await ReportService(repository).revenue_report(period, value)
    return report.to_dict()


@router.get(
    "/rate-conflicts",
    summary="Conflicting rates",
    description="Routes priced differently in the rate list (same material, from and to).",
)
async def get_rate_conflicts(
    repository: FleetRepository = Depends(get_repository)
):
    conflicts = await ReportService(repository).rate_conflicts()
    return {"count": len(conflicts), "conflicts": [c.to_dict() for c in conflicts]}


@router.get(
    "/trip-mismatches",
    summary="Trips with a likely wrong origin",
    description="Trips with no exact rate whose material and destination match a priced route.",
)
async def get_trip_mismatches(
    repository: FleetRepository = Depends(get_repository)
):
    report = await ReportService(repository).trip_mismatches()
    return report.to_dict()
