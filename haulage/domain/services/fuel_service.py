"""
Fuel Service - diesel purchase log per vehicle
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from haulage.core.exceptions import InvalidAmountError, NotFoundException
from haulage.core.logging import get_logger
from haulage.db.models import DieselRecord
from haulage.db.repository import FleetRepository
from haulage.domain.money import ZERO, parse_amount, to_decimal
from haulage.domain.results import OperationResult, run_operation
from haulage.domain.services.ledger_service import DateLike, as_datetime

logger = get_logger(__name__)


@dataclass
class DieselEntry:
    """Values for a new or edited diesel record"""
    vehicle_id: int
    liters: Any
    price_per_liter: Any
    total_amount: Any = None
    date: DateLike = None
    driver_id: Optional[int] = None
    odometer: Optional[int] = None
    receipt_url: Optional[str] = None


@dataclass
class VehicleFuel:
    vehicle_id: int
    plate_number: Optional[str]
    liters: Decimal = ZERO
    cost: Decimal = ZERO


@dataclass
class FuelStats:
    total_liters: Decimal = ZERO
    total_cost: Decimal = ZERO
    vehicles: list[VehicleFuel] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_liters": float(self.total_liters),
            "total_cost": float(self.total_cost),
            "vehicles": [
                {
                    "vehicle_id": v.vehicle_id,
                    "plate_number": v.plate_number,
                    "liters": float(v.liters),
                    "cost": float(v.cost),
                }
                for v in self.vehicles
            ],
        }


# Column ranges: liters Numeric(10, 2), price_per_liter Numeric(10, 3)
MAX_LITERS = Decimal("1e8")
MAX_PRICE_PER_LITER = Decimal("1e7")


def _positive(field_name: str, value: Any, limit: Decimal) -> Decimal:
    try:
        parsed = to_decimal(value)
    except ArithmeticError:
        raise InvalidAmountError(field_name, value)
    if parsed is None or not parsed.is_finite() or parsed <= ZERO:
        raise InvalidAmountError(field_name, value)
    if parsed >= limit:
        raise InvalidAmountError(field_name, value, reason=f"must be less than {limit:,.0f}")
    return parsed


def _apply(record: DieselRecord, entry: DieselEntry) -> DieselRecord:
    liters = _positive("liters", entry.liters, MAX_LITERS)
    price = _positive("price_per_liter", entry.price_per_liter, MAX_PRICE_PER_LITER)
    # An explicit receipt total wins over liters x price
    if entry.total_amount is None:
        total = parse_amount("total_amount", liters * price)
    else:
        total = parse_amount("total_amount", entry.total_amount)

    record.vehicle_id = entry.vehicle_id
    record.driver_id = entry.driver_id
    record.date = as_datetime(entry.date)
    record.liters = liters
    record.price_per_liter = price
    record.total_amount = total
    record.odometer = entry.odometer
    record.receipt_url = entry.receipt_url or None
    return record


class FuelService:
    """Diesel records and totals"""

    def __init__(self, repository: FleetRepository):
        self.repository = repository

    async def _get(self, record_id: int) -> DieselRecord:
        record = await self.repository.get_diesel_record(record_id)
        if record is None:
            raise NotFoundException("Diesel record", record_id)
        return record

    async def add_record(self, entry: DieselEntry) -> OperationResult[DieselRecord]:
        async def _add() -> DieselRecord:
            record = _apply(DieselRecord(created_at=datetime.utcnow()), entry)
            async with self.repository.transaction("add_diesel_record"):
                record = await self.repository.add_diesel_record(record)
            logger.info(
                "Diesel record added",
                extra_data={"record_id": record.id, "vehicle_id": record.vehicle_id, "liters": str(record.liters)}
            )
            return record

        return await run_operation("add_diesel_record", _add)

    async def update_record(self, record_id: int, entry: DieselEntry) -> OperationResult[DieselRecord]:
        async def _update() -> DieselRecord:
            async with self.repository.transaction("update_diesel_record"):
                record = _apply(await self._get(record_id), entry)
                await self.repository.add_diesel_record(record)
            return record

        return await run_operation("update_diesel_record", _update)

    async def delete_record(self, record_id: int) -> OperationResult[int]:
        async def _delete() -> int:
            async with self.repository.transaction("delete_diesel_record"):
                await self.repository.delete_diesel_record(await self._get(record_id))
            return record_id

        return await run_operation("delete_diesel_record", _delete)

    async def list_records(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        vehicle_id: Optional[int] = None,
    ) -> list[DieselRecord]:
        return await self.repository.list_diesel_records(start, end, vehicle_id)

    async def fuel_stats(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> FuelStats:
        stats = FuelStats()
        per_vehicle: dict[int, VehicleFuel] = {}
        for record in await self.repository.list_diesel_records(start, end):
            liters = to_decimal(record.liters) or ZERO
            cost = to_decimal(record.total_amount) or ZERO
            stats.total_liters += liters
            stats.total_cost += cost

            vehicle = per_vehicle.get(record.vehicle_id)
            if vehicle is None:
                plate = record.vehicle.plate_number if record.vehicle is not None else None
                vehicle = per_vehicle[record.vehicle_id] = VehicleFuel(record.vehicle_id, plate)
            vehicle.liters += liters
            vehicle.cost += cost

        stats.vehicles = sorted(per_vehicle.values(), key=lambda v: v.cost, reverse=True)
        return stats
