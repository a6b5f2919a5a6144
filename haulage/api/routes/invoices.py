"""
Invoice API Routes
"""
from datetime import datetime
from decimal import Decimal
from typing import List

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from haulage.api.dependencies.repository import get_repository, render
from haulage.api.routes.payments import PaymentBody, PaymentResponse, payment_json
from haulage.db.repository import FleetRepository
from haulage.domain.services.invoice_service import InvoiceService
from haulage.domain.services.ledger_service import LedgerService

router = APIRouter()


class InvoiceCreate(BaseModel):
    contractor_id: int
    trip_ids: list[int] = Field(default_factory=list)
    material_name: str
    from_location: str
    to_location: str
    letterhead: str | None = None
    date: datetime | None = None


class InvoiceReception(BaseModel):
    is_received: bool = True
    received_date: datetime | None = None
    received_copy_url: str | None = None


class InvoiceTotalUpdate(BaseModel):
    total_amount: Decimal


class InvoiceResponse(BaseModel):
    id: int
    invoice_no: str
    contractor_id: int
    date: datetime
    total_amount: float
    paid_amount: float
    status: str
    letterhead: str
    is_received: bool
    received_date: datetime | None = None
    received_copy_url: str | None = None

    class Config:
        from_attributes = True


class TripResponse(BaseModel):
    id: int
    date: datetime
    material_type: str | None
    from_location: str
    to_location: str
    vehicle_id: int | None
    driver_id: int | None
    invoice_id: int | None

    class Config:
        from_attributes = True


def invoice_json(invoice) -> dict:
    return InvoiceResponse.model_validate(invoice).model_dump(mode="json")


@router.post(
    "",
    summary="Issue an invoice",
    description=(
        "Invoices the selected uninvoiced trips on a route priced for the contractor. "
        "The total includes VAT; the invoice number continues the contractor's sequence."
    ),
)
async def create_invoice(
    body: InvoiceCreate,
    repository: FleetRepository = Depends(get_repository)
):
    result = await InvoiceService(repository).create_invoice(
        contractor_id=body.contractor_id,
        trip_ids=body.trip_ids,
        material_name=body.material_name,
        origin=body.from_location,
        destination=body.to_location,
        letterhead=body.letterhead,
        issued_on=body.date,
    )
    return render(result, invoice_json, success_status=status.HTTP_201_CREATED)


@router.get(
    "",
    response_model=List[InvoiceResponse],
    summary="List invoices",
    description="Newest first. `received=true|false` narrows to received or outstanding copies.",
)
async def list_invoices(
    received: bool | None = None,
    repository: FleetRepository = Depends(get_repository)
):
    return await InvoiceService(repository).list_invoices(received)


@router.get(
    "/uninvoiced-trips",
    response_model=List[TripResponse],
    summary="Trips not yet invoiced",
    description="Newest first, optionally narrowed to a material and route.",
)
async def list_uninvoiced_trips(
    material: str | None = None,
    from_location: str | None = None,
    to_location: str | None = None,
    repository: FleetRepository = Depends(get_repository)
):
    return await InvoiceService(repository).list_uninvoiced_trips(material, from_location, to_location)


@router.get(
    "/routes/{contractor_id}",
    summary="Priced materials and routes of a contractor",
)
async def get_contractor_routes(
    contractor_id: int,
    repository: FleetRepository = Depends(get_repository)
):
    routes = await InvoiceService(repository).contractor_routes(contractor_id)
    return routes.to_dict()


@router.get(
    "/{invoice_id}/balance",
    summary="Invoice balance",
    description="Total, paid, remaining and status of an invoice.",
)
async def get_invoice_balance(
    invoice_id: int,
    repository: FleetRepository = Depends(get_repository)
):
    result = await LedgerService(repository).get_invoice_balance(invoice_id)
    return render(result, lambda balance: balance.to_dict())


@router.put(
    "/{invoice_id}/total",
    summary="Correct an invoice total",
)
async def update_invoice_total(
    invoice_id: int,
    body: InvoiceTotalUpdate,
    repository: FleetRepository = Depends(get_repository)
):
    result = await InvoiceService(repository).update_invoice_total(invoice_id, body.total_amount)
    return render(result, invoice_json)


@router.put(
    "/{invoice_id}/received",
    summary="Invoice reception",
    description=(
        "With a received copy URL, marks the invoice received on the given date. "
        "Without one, only sets the received flag."
    ),
)
async def update_invoice_reception(
    invoice_id: int,
    body: InvoiceReception,
    repository: FleetRepository = Depends(get_repository)
):
    service = InvoiceService(repository)
    if body.is_received and body.received_copy_url:
        result = await service.mark_received(invoice_id, body.received_date, body.received_copy_url)
    else:
        result = await service.set_received(invoice_id, body.is_received)
    return render(result, invoice_json)


@router.delete(
    "/{invoice_id}",
    summary="Delete an invoice",
    description="Deletes the invoice and its payments; its trips become uninvoiced. Statements are unchanged.",
)
async def delete_invoice(
    invoice_id: int,
    repository: FleetRepository = Depends(get_repository)
):
    result = await InvoiceService(repository).delete_invoice(invoice_id)
    return render(result, lambda deleted_id: {"id": deleted_id})


@router.get(
    "/{invoice_id}/payments",
    response_model=List[PaymentResponse],
    summary="Payments of an invoice",
    description="Newest first.",
)
async def list_invoice_payments(
    invoice_id: int,
    repository: FleetRepository = Depends(get_repository)
):
    return await LedgerService(repository).list_invoice_payments(invoice_id)


@router.post(
    "/{invoice_id}/payments",
    summary="Record a payment",
    description="Adds a payment and recomputes the invoice's paid amount and status.",
)
async def record_payment(
    invoice_id: int,
    body: PaymentBody,
    repository: FleetRepository = Depends(get_repository)
):
    result = await LedgerService(repository).record_payment(
        invoice_id,
        body.amount,
        date=body.date,
        payment_type=body.type,
        cheque_no=body.cheque_no,
        bank_name=body.bank_name,
        cheque_image_url=body.cheque_image_url,
        note=body.note,
    )
    return render(result, payment_json, success_status=status.HTTP_201_CREATED)
