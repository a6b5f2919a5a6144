"""
Report Service - revenue estimates and price list diagnostics for the admin dashboard.
"""
import calendar
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any, Optional

from haulage.core.exceptions import ValidationException
from haulage.core.logging import get_logger, log_operation
from haulage.db.repository import FleetRepository
from haulage.domain.services.rate_audit_service import MismatchReport, PriceConflict, find_price_conflicts, find_trip_mismatches
from haulage.domain.services.rate_resolver import DailyRevenue, RevenueSummary, estimate_revenue, revenue_trend

logger = get_logger(__name__)


class Period(str, Enum):
    TODAY = "today"
    LAST_7_DAYS = "7d"
    LAST_30_DAYS = "30d"
    LAST_6_MONTHS = "6m"
    LAST_YEAR = "1y"
    DATE = "date"
    MONTH = "month"
    YEAR = "year"


def _shift_months(day: date, months: int) -> date:
    month_index = day.year * 12 + day.month - 1 - months
    year, month = divmod(month_index, 12)
    month += 1
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))


def _day_bounds(first: date, last: date) -> tuple[datetime, datetime]:
    return datetime.combine(first, time.min), datetime.combine(last, time.max)


def _parse(value: Optional[str], fmt: str, period: Period) -> datetime:
    if not value:
        raise ValidationException(f"Period '{period.value}' needs a value", field="value")
    try:
        return datetime.strptime(value.strip(), fmt)
    except ValueError:
        raise ValidationException(
            f"Invalid value for period '{period.value}': {value}",
            field="value",
            details={"expected_format": fmt},
        )


def resolve_period(
    period: str,
    value: Optional[str] = None,
    today: Optional[date] = None,
) -> tuple[datetime, datetime]:
    """Inclusive (start, end) datetimes for a dashboard period filter.

    Rolling periods end today; ``date`` takes YYYY-MM-DD, ``month`` takes
    YYYY-MM and ``year`` takes YYYY.
    """
    try:
        kind = Period(period)
    except ValueError:
        raise ValidationException(
            f"Unknown period: {period}",
            field="period",
            details={"allowed": [p.value for p in Period]},
        )
    today = today or date.today()

    if kind is Period.TODAY:
        return _day_bounds(today, today)
    if kind is Period.LAST_7_DAYS:
        return _day_bounds(today - timedelta(days=7), today)
    if kind is Period.LAST_30_DAYS:
        return _day_bounds(today - timedelta(days=30), today)
    if kind is Period.LAST_6_MONTHS:
        return _day_bounds(_shift_months(today, 6), today)
    if kind is Period.LAST_YEAR:
        return _day_bounds(_shift_months(today, 12), today)
    if kind is Period.DATE:
        day = _parse(value, "%Y-%m-%d", kind).date()
        return _day_bounds(day, day)
    if kind is Period.MONTH:
        first = _parse(value, "%Y-%m", kind).date()
        last = first.replace(day=calendar.monthrange(first.year, first.month)[1])
        return _day_bounds(first, last)

    first = _parse(value, "%Y", kind).date()
    return _day_bounds(first, first.replace(month=12, day=31))


@dataclass
class RevenueReport:
    start: datetime
    end: datetime
    summary: RevenueSummary
    trend: list[DailyRevenue]

    def to_dict(self) -> dict[str, Any]:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            **self.summary.to_dict(),
            "trend": [{"date": point.day.isoformat(), "amount": float(point.amount)} for point in self.trend],
        }


class ReportService:
    """Read-only reports over the price list and trip log"""

    def __init__(self, repository: FleetRepository):
        self.repository = repository

    @log_operation("revenue_report")
    async def revenue_report(
        self,
        period: str = Period.LAST_30_DAYS.value,
        value: Optional[str] = None,
        today: Optional[date] = None,
    ) -> RevenueReport:
        start, end = resolve_period(period, value, today)
        rates = await self.repository.list_rates()
        trips = await self.repository.list_trips(start, end)

        summary = estimate_revenue(rates, trips)
        if summary.matched_count < summary.total_count:
            logger.info(
                "Trips without a matching rate",
                extra_data={
                    "unmatched_count": summary.total_count - summary.matched_count,
                    "period": period,
                }
            )
        return RevenueReport(start=start, end=end, summary=summary, trend=revenue_trend(rates, trips))

    @log_operation("rate_conflicts")
    async def rate_conflicts(self) -> list[PriceConflict]:
        return find_price_conflicts(await self.repository.list_rates())

    @log_operation("trip_mismatches")
    async def trip_mismatches(self) -> MismatchReport:
        rates = await self.repository.list_rates()
        trips = await self.repository.list_trips()
        return find_trip_mismatches(rates, trips)
