"""
Payment API Routes
"""
from datetime import datetime
from decimal import Decimal
from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from haulage.api.dependencies.repository import get_repository, render
from haulage.db.models import PaymentType
from haulage.db.repository import FleetRepository
from haulage.domain.services.ledger_service import LedgerService, PaymentUpdate

router = APIRouter()


class PaymentBody(BaseModel):
    """Fields of a new or edited payment"""
    amount: Decimal
    date: datetime | None = None
    type: str = PaymentType.PARTIAL.value
    cheque_no: str | None = None
    bank_name: str | None = None
    cheque_image_url: str | None = None
    note: str | None = None


class PaymentResponse(BaseModel):
    id: int
    invoice_id: int
    date: datetime
    type: str
    amount: float
    cheque_no: str | None
    bank_name: str | None
    cheque_image_url: str | None
    note: str | None

    class Config:
        from_attributes = True


def payment_json(payment) -> dict:
    return PaymentResponse.model_validate(payment).model_dump(mode="json")


@router.get(
    "",
    response_model=List[PaymentResponse],
    summary="All payments",
    description="Every payment, newest first.",
)
async def list_payments(
    repository: FleetRepository = Depends(get_repository)
):
    return await LedgerService(repository).list_payments()


@router.put(
    "/{payment_id}",
    summary="Edit a payment",
    description="Overwrites the payment and recomputes the invoice's paid amount and status.",
)
async def update_payment(
    payment_id: int,
    body: PaymentBody,
    repository: FleetRepository = Depends(get_repository)
):
    result = await LedgerService(repository).update_payment(payment_id, PaymentUpdate(
        amount=body.amount,
        date=body.date,
        payment_type=body.type,
        cheque_no=body.cheque_no,
        bank_name=body.bank_name,
        cheque_image_url=body.cheque_image_url,
        note=body.note,
    ))
    return render(result, payment_json)


@router.delete(
    "/{payment_id}",
    summary="Delete a payment",
    description="Removes the payment and recomputes the invoice. Existing statements are unchanged.",
)
async def delete_payment(
    payment_id: int,
    repository: FleetRepository = Depends(get_repository)
):
    result = await LedgerService(repository).delete_payment(payment_id)
    return render(result, lambda balance: balance.to_dict())
