"""
Ledger Service - invoice payments and derived invoice state.

``Invoice.paid_amount`` is a cache of the sum of the invoice's payments. It is
never adjusted incrementally: every mutation locks the invoice row, writes the
payment change, then re-reads the sum from storage and derives the status, all
inside one transaction.

Statements are snapshots and are deliberately left alone here; see
``statement_service``.
"""
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Optional, Union

from haulage.core.config import settings
from haulage.core.exceptions import (
    InvoiceNotFoundError,
    PaymentNotFoundError,
    ValidationException,
)
from haulage.core.logging import get_logger, log_operation
from haulage.db.models import Invoice, InvoiceStatus, Payment, PaymentType
from haulage.db.repository import FleetRepository
from haulage.domain.money import ZERO, parse_amount, quantize_money
from haulage.domain.results import OperationResult, run_operation

logger = get_logger(__name__)

DateLike = Union[date, datetime, None]


@dataclass
class PaymentUpdate:
    """Replacement values for an existing payment"""
    amount: Any
    date: DateLike = None
    payment_type: Union[PaymentType, str] = PaymentType.PARTIAL
    cheque_no: Optional[str] = None
    bank_name: Optional[str] = None
    cheque_image_url: Optional[str] = None
    note: Optional[str] = None


@dataclass
class InvoiceBalance:
    invoice_id: int
    total: Decimal
    paid: Decimal
    remaining: Decimal
    status: InvoiceStatus

    def to_dict(self) -> dict[str, Any]:
        return {
            "invoice_id": self.invoice_id,
            "total": float(self.total),
            "paid": float(self.paid),
            "remaining": float(self.remaining),
            "status": self.status.value,
        }


def derive_status(total: Any, paid: Any, tolerance: Optional[Decimal] = None) -> InvoiceStatus:
    """Unpaid at zero, Paid once paid reaches total (less tolerance), Partially Paid between."""
    if tolerance is None:
        tolerance = settings.INVOICE_PAID_TOLERANCE
    total = quantize_money(total)
    paid = quantize_money(paid)

    if paid <= ZERO:
        return InvoiceStatus.UNPAID
    if paid >= total - tolerance:
        return InvoiceStatus.PAID
    return InvoiceStatus.PARTIALLY_PAID


def balance_of(invoice: Invoice) -> InvoiceBalance:
    total = quantize_money(invoice.total_amount)
    paid = quantize_money(invoice.paid_amount)
    return InvoiceBalance(
        invoice_id=invoice.id,
        total=total,
        paid=paid,
        remaining=total - paid,
        status=derive_status(total, paid),
    )


def full_payment_amount(invoice: Invoice) -> Decimal:
    """Amount that settles the invoice; the "Full Payment" prefill."""
    return balance_of(invoice).remaining


def _payment_type(value: Union[PaymentType, str, None]) -> PaymentType:
    if value is None:
        return PaymentType.PARTIAL
    try:
        return PaymentType(value)
    except ValueError:
        raise ValidationException(
            f"Unknown payment type: {value}",
            field="payment_type",
            details={"allowed": [t.value for t in PaymentType]},
        )


def as_datetime(value: DateLike) -> datetime:
    """Dates from forms arrive as plain days; stored values are datetimes."""
    if value is None:
        return datetime.utcnow()
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


class LedgerService:
    """Payments against invoices"""

    def __init__(self, repository: FleetRepository):
        self.repository = repository

    # ==================== Internal ====================

    async def _locked_invoice(self, invoice_id: int) -> Invoice:
        invoice = await self.repository.get_invoice(invoice_id, for_update=True)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id)
        return invoice

    async def _recompute(self, invoice: Invoice) -> InvoiceBalance:
        paid = quantize_money(await self.repository.sum_payments(invoice.id))
        invoice.paid_amount = paid
        invoice.status = derive_status(invoice.total_amount, paid).value
        invoice.updated_at = datetime.utcnow()
        return balance_of(invoice)

    # ==================== Mutations ====================

    async def record_payment(
        self,
        invoice_id: int,
        amount: Any,
        date: DateLike = None,
        payment_type: Union[PaymentType, str] = PaymentType.PARTIAL,
        cheque_no: Optional[str] = None,
        bank_name: Optional[str] = None,
        cheque_image_url: Optional[str] = None,
        note: Optional[str] = None,
    ) -> OperationResult[Payment]:
        async def _record() -> Payment:
            value = parse_amount("amount", amount)
            kind = _payment_type(payment_type)

            async with self.repository.transaction("record_payment"):
                invoice = await self._locked_invoice(invoice_id)
                payment = await self.repository.add_payment(Payment(
                    invoice_id=invoice.id,
                    date=as_datetime(date),
                    type=kind.value,
                    amount=value,
                    cheque_no=cheque_no or None,
                    bank_name=bank_name or None,
                    cheque_image_url=cheque_image_url or None,
                    note=note or None,
                ))
                balance = await self._recompute(invoice)

            logger.info(
                "Payment recorded",
                extra_data={
                    "invoice_id": invoice_id,
                    "payment_id": payment.id,
                    "amount": str(value),
                    "status": balance.status.value,
                }
            )
            return payment

        return await run_operation("record_payment", _record)

    async def update_payment(self, payment_id: int, changes: PaymentUpdate) -> OperationResult[Payment]:
        async def _update() -> Payment:
            value = parse_amount("amount", changes.amount)
            kind = _payment_type(changes.payment_type)

            async with self.repository.transaction("update_payment"):
                payment = await self.repository.get_payment(payment_id)
                if payment is None:
                    raise PaymentNotFoundError(payment_id)
                invoice = await self._locked_invoice(payment.invoice_id)

                payment.amount = value
                payment.type = kind.value
                if changes.date is not None:
                    payment.date = as_datetime(changes.date)
                payment.cheque_no = changes.cheque_no or None
                payment.bank_name = changes.bank_name or None
                payment.cheque_image_url = changes.cheque_image_url or None
                payment.note = changes.note or None

                await self.repository.add_payment(payment)
                balance = await self._recompute(invoice)

            logger.info(
                "Payment updated",
                extra_data={
                    "invoice_id": payment.invoice_id,
                    "payment_id": payment_id,
                    "amount": str(value),
                    "status": balance.status.value,
                }
            )
            return payment

        return await run_operation("update_payment", _update)

    async def delete_payment(self, payment_id: int) -> OperationResult[InvoiceBalance]:
        async def _delete() -> InvoiceBalance:
            async with self.repository.transaction("delete_payment"):
                payment = await self.repository.get_payment(payment_id)
                if payment is None:
                    raise PaymentNotFoundError(payment_id)
                invoice = await self._locked_invoice(payment.invoice_id)

                await self.repository.delete_payment(payment)
                balance = await self._recompute(invoice)

            logger.info(
                "Payment deleted",
                extra_data={
                    "invoice_id": invoice.id,
                    "payment_id": payment_id,
                    "status": balance.status.value,
                }
            )
            return balance

        return await run_operation("delete_payment", _delete)

    async def recompute_paid_amount(self, invoice_id: int) -> OperationResult[InvoiceBalance]:
        """Rebuild the cached paid amount and status from the payments. Idempotent."""
        async def _recompute() -> InvoiceBalance:
            async with self.repository.transaction("recompute_paid_amount"):
                invoice = await self._locked_invoice(invoice_id)
                return await self._recompute(invoice)

        return await run_operation("recompute_paid_amount", _recompute)

    # ==================== Queries ====================

    async def get_invoice_balance(self, invoice_id: int) -> OperationResult[InvoiceBalance]:
        async def _balance() -> InvoiceBalance:
            invoice = await self.repository.get_invoice(invoice_id)
            if invoice is None:
                raise InvoiceNotFoundError(invoice_id)
            return balance_of(invoice)

        return await run_operation("get_invoice_balance", _balance)

    @log_operation("list_invoice_payments")
    async def list_invoice_payments(self, invoice_id: int) -> list[Payment]:
        """Payments of one invoice, newest first"""
        invoice = await self.repository.get_invoice(invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id)
        return await self.repository.list_invoice_payments(invoice_id)

    @log_operation("list_payments")
    async def list_payments(self) -> list[Payment]:
        return await self.repository.list_payments()
