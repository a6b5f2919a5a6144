"""
Fuel API Routes
"""
from datetime import datetime
from decimal import Decimal
from typing import List

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from haulage.api.dependencies.repository import get_repository, render
from haulage.db.repository import FleetRepository
from haulage.domain.services.fuel_service import DieselEntry, FuelService

router = APIRouter()


class DieselBody(BaseModel):
    vehicle_id: int
    liters: Decimal
    price_per_liter: Decimal
    total_amount: Decimal | None = None
    date: datetime | None = None
    driver_id: int | None = None
    odometer: int | None = None
    receipt_url: str | None = None

    def to_entry(self) -> DieselEntry:
        return DieselEntry(**self.model_dump())


class DieselResponse(BaseModel):
    id: int
    vehicle_id: int
    driver_id: int | None
    date: datetime
    liters: float
    price_per_liter: float
    total_amount: float
    odometer: int | None
    receipt_url: str | None

    class Config:
        from_attributes = True


def diesel_json(record) -> dict:
    return DieselResponse.model_validate(record).model_dump(mode="json")


@router.get(
    "",
    response_model=List[DieselResponse],
    summary="Diesel records",
    description="Newest first, optionally filtered by date range and vehicle.",
)
async def list_records(
    start: datetime | None = None,
    end: datetime | None = None,
    vehicle_id: int | None = None,
    repository: FleetRepository = Depends(get_repository)
):
    return await FuelService(repository).list_records(start, end, vehicle_id)


@router.get(
    "/stats",
    summary="Fuel totals",
    description="Total liters and cost, overall and per vehicle.",
)
async def get_stats(
    start: datetime | None = None,
    end: datetime | None = None,
    repository: FleetRepository = Depends(get_repository)
):
    stats = await FuelService(repository).fuel_stats(start, end)
    return stats.to_dict()


@router.post("", summary="Add a diesel record")
async def add_record(
    body: DieselBody,
    repository: FleetRepository = Depends(get_repository)
):
    result = await FuelService(repository).add_record(body.to_entry())
    return render(result, diesel_json, success_status=status.HTTP_201_CREATED)


@router.put("/{record_id}", summary="Edit a diesel record")
async def update_record(
    record_id: int,
    body: DieselBody,
    repository: FleetRepository = Depends(get_repository)
):
    result = await FuelService(repository).update_record(record_id, body.to_entry())
    return render(result, diesel_json)


@router.delete("/{record_id}", summary="Delete a diesel record")
async def delete_record(
    record_id: int,
    repository: FleetRepository = Depends(get_repository)
):
    result = await FuelService(repository).delete_record(record_id)
    return render(result, lambda deleted_id: {"id": deleted_id})
