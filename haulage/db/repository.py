"""
Fleet Repository - data access used by the domain services.

Services depend on the ``FleetRepository`` protocol only; the SQLAlchemy
implementation below is what the API wires in. Every read eager-loads the
relationships the services touch, since lazy loads are not available under
asyncio.

Note: joinedload is never combined with ``with_for_update()``. On
PostgreSQL the lock would then cover every joined table, not just the row.
"""
from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from typing import AsyncIterator, Iterable, Optional, Protocol, Sequence

from sqlalchemy import select, func, update, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from haulage.core.exceptions import PersistenceException
from haulage.db.models import (
    Contractor,
    DieselRecord,
    Invoice,
    Payment,
    Site,
    SiteMaterialRate,
    Statement,
    Trip,
)
from haulage.domain.money import ZERO, to_decimal


class FleetRepository(Protocol):
    """Data access needed by the ledger, statement, invoice, report and fuel services"""

    def transaction(self, operation: str) -> "AsyncIterator[None]": ...

    # Price list and trips
    async def list_rates(self) -> list[SiteMaterialRate]: ...
    async def list_contractor_rates(self, contractor_id: int) -> list[SiteMaterialRate]: ...
    async def list_trips(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> list[Trip]: ...
    async def get_trips(self, trip_ids: Sequence[int]) -> list[Trip]: ...
    async def list_uninvoiced_trips(self) -> list[Trip]: ...
    async def link_trips(self, trips: Iterable[Trip], invoice_id: int) -> None: ...
    async def unlink_invoice_trips(self, invoice_id: int) -> None: ...

    # Contractors and invoices
    async def get_contractor(self, contractor_id: int) -> Optional[Contractor]: ...
    async def get_invoice(self, invoice_id: int, for_update: bool = False) -> Optional[Invoice]: ...
    async def get_latest_invoice(self, contractor_id: int) -> Optional[Invoice]: ...
    async def list_contractor_invoices(self, contractor_id: int) -> list[Invoice]: ...
    async def list_invoices(self, received: Optional[bool] = None) -> list[Invoice]: ...
    async def add_invoice(self, invoice: Invoice) -> Invoice: ...
    async def delete_invoice(self, invoice: Invoice) -> None: ...

    # Payments
    async def get_payment(self, payment_id: int) -> Optional[Payment]: ...
    async def add_payment(self, payment: Payment) -> Payment: ...
    async def delete_payment(self, payment: Payment) -> None: ...
    async def sum_payments(self, invoice_id: int) -> Decimal: ...
    async def list_invoice_payments(self, invoice_id: int) -> list[Payment]: ...
    async def list_payments(self) -> list[Payment]: ...
    async def list_contractor_payments(self, contractor_id: int) -> list[Payment]: ...

    # Statements
    async def add_statement(self, statement: Statement) -> Statement: ...
    async def get_statement(self, statement_id: int) -> Optional[Statement]: ...
    async def list_statements(self, contractor_id: Optional[int] = None) -> list[Statement]: ...
    async def delete_statement(self, statement: Statement) -> None: ...

    # Fuel
    async def add_diesel_record(self, record: DieselRecord) -> DieselRecord: ...
    async def get_diesel_record(self, record_id: int) -> Optional[DieselRecord]: ...
    async def delete_diesel_record(self, record: DieselRecord) -> None: ...
    async def list_diesel_records(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        vehicle_id: Optional[int] = None,
    ) -> list[DieselRecord]: ...


def _rate_options():
    return [joinedload(SiteMaterialRate.site).joinedload(Site.contractor)]


class SqlAlchemyFleetRepository:
    """FleetRepository over an AsyncSession"""

    def __init__(self, db: AsyncSession):
        self.db = db

    @asynccontextmanager
    async def transaction(self, operation: str) -> AsyncIterator[None]:
        """Commit on success, roll back on any error.

        SQLAlchemy errors surface as PersistenceException with the original
        error chained as the cause.
        """
        try:
            yield
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise PersistenceException(operation) from exc
        except BaseException:
            await self.db.rollback()
            raise

    async def _scalars(self, query, operation: str) -> list:
        try:
            result = await self.db.execute(query)
        except SQLAlchemyError as exc:
            raise PersistenceException(operation) from exc
        return list(result.unique().scalars().all())

    async def _scalar(self, query, operation: str):
        try:
            result = await self.db.execute(query)
        except SQLAlchemyError as exc:
            raise PersistenceException(operation) from exc
        return result.unique().scalar_one_or_none()

    async def _flush(self, operation: str) -> None:
        try:
            await self.db.flush()
        except SQLAlchemyError as exc:
            raise PersistenceException(operation) from exc

    # ==================== Price list and trips ====================

    async def list_rates(self) -> list[SiteMaterialRate]:
        return await self._scalars(
            select(SiteMaterialRate).options(*_rate_options()).order_by(SiteMaterialRate.id),
            "list_rates",
        )

    async def list_contractor_rates(self, contractor_id: int) -> list[SiteMaterialRate]:
        return await self._scalars(
            select(SiteMaterialRate)
            .join(Site, SiteMaterialRate.site_id == Site.id)
            .where(Site.contractor_id == contractor_id)
            .options(*_rate_options())
            .order_by(SiteMaterialRate.id),
            "list_contractor_rates",
        )

    async def list_trips(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> list[Trip]:
        query = select(Trip).options(joinedload(Trip.vehicle)).order_by(Trip.date, Trip.id)
        if start is not None:
            query = query.where(Trip.date >= start)
        if end is not None:
            query = query.where(Trip.date <= end)
        return await self._scalars(query, "list_trips")

    async def get_trips(self, trip_ids: Sequence[int]) -> list[Trip]:
        if not trip_ids:
            return []
        return await self._scalars(
            select(Trip).where(Trip.id.in_(list(trip_ids))).options(joinedload(Trip.vehicle)).order_by(Trip.id),
            "get_trips",
        )

    async def list_uninvoiced_trips(self) -> list[Trip]:
        return await self._scalars(
            select(Trip)
            .where(Trip.invoice_id.is_(None))
            .options(joinedload(Trip.vehicle), joinedload(Trip.driver))
            .order_by(Trip.date.desc(), Trip.id.desc()),
            "list_uninvoiced_trips",
        )

    async def link_trips(self, trips: Iterable[Trip], invoice_id: int) -> None:
        for trip in trips:
            trip.invoice_id = invoice_id
        await self._flush("link_trips")

    async def unlink_invoice_trips(self, invoice_id: int) -> None:
        try:
            await self.db.execute(
                update(Trip).where(Trip.invoice_id == invoice_id).values(invoice_id=None)
            )
        except SQLAlchemyError as exc:
            raise PersistenceException("unlink_invoice_trips") from exc

    # ==================== Contractors and invoices ====================

    async def get_contractor(self, contractor_id: int) -> Optional[Contractor]:
        return await self._scalar(select(Contractor).where(Contractor.id == contractor_id), "get_contractor")

    async def get_invoice(self, invoice_id: int, for_update: bool = False) -> Optional[Invoice]:
        query = select(Invoice).where(Invoice.id == invoice_id)
        if for_update:
            # Refresh an instance already in the identity map with the locked row
            query = query.with_for_update().execution_options(populate_existing=True)
        else:
            query = query.options(joinedload(Invoice.contractor))
        return await self._scalar(query, "get_invoice")

    async def get_latest_invoice(self, contractor_id: int) -> Optional[Invoice]:
        return await self._scalar(
            select(Invoice)
            .where(Invoice.contractor_id == contractor_id)
            .order_by(Invoice.id.desc())
            .limit(1),
            "get_latest_invoice",
        )

    async def list_contractor_invoices(self, contractor_id: int) -> list[Invoice]:
        return await self._scalars(
            select(Invoice)
            .where(Invoice.contractor_id == contractor_id)
            .order_by(Invoice.date, Invoice.id),
            "list_contractor_invoices",
        )

    async def list_invoices(self, received: Optional[bool] = None) -> list[Invoice]:
        query = (
            select(Invoice)
            .options(joinedload(Invoice.contractor))
            .order_by(Invoice.date.desc(), Invoice.id.desc())
        )
        if received is not None:
            query = query.where(Invoice.is_received == received)
        return await self._scalars(query, "list_invoices")

    async def add_invoice(self, invoice: Invoice) -> Invoice:
        self.db.add(invoice)
        await self._flush("add_invoice")
        return invoice

    async def delete_invoice(self, invoice: Invoice) -> None:
        try:
            await self.db.execute(delete(Payment).where(Payment.invoice_id == invoice.id))
            await self.db.execute(delete(Invoice).where(Invoice.id == invoice.id))
        except SQLAlchemyError as exc:
            raise PersistenceException("delete_invoice") from exc

    # ==================== Payments ====================

    async def get_payment(self, payment_id: int) -> Optional[Payment]:
        return await self._scalar(
            select(Payment).where(Payment.id == payment_id).options(joinedload(Payment.invoice)),
            "get_payment",
        )

    async def add_payment(self, payment: Payment) -> Payment:
        self.db.add(payment)
        await self._flush("add_payment")
        return payment

    async def delete_payment(self, payment: Payment) -> None:
        try:
            await self.db.delete(payment)
            await self.db.flush()
        except SQLAlchemyError as exc:
            raise PersistenceException("delete_payment") from exc

    async def sum_payments(self, invoice_id: int) -> Decimal:
        try:
            result = await self.db.execute(
                select(func.coalesce(func.sum(Payment.amount), 0)).where(Payment.invoice_id == invoice_id)
            )
        except SQLAlchemyError as exc:
            raise PersistenceException("sum_payments") from exc
        return to_decimal(result.scalar_one()) or ZERO

    async def list_invoice_payments(self, invoice_id: int) -> list[Payment]:
        return await self._scalars(
            select(Payment)
            .where(Payment.invoice_id == invoice_id)
            .order_by(Payment.date.desc(), Payment.id.desc()),
            "list_invoice_payments",
        )

    async def list_payments(self) -> list[Payment]:
        return await self._scalars(
            select(Payment)
            .options(joinedload(Payment.invoice).joinedload(Invoice.contractor))
            .order_by(Payment.date.desc(), Payment.id.desc()),
            "list_payments",
        )

    async def list_contractor_payments(self, contractor_id: int) -> list[Payment]:
        return await self._scalars(
            select(Payment)
            .join(Invoice, Payment.invoice_id == Invoice.id)
            .where(Invoice.contractor_id == contractor_id)
            .options(joinedload(Payment.invoice))
            .order_by(Payment.date, Payment.id),
            "list_contractor_payments",
        )

    # ==================== Statements ====================

    async def add_statement(self, statement: Statement) -> Statement:
        self.db.add(statement)
        await self._flush("add_statement")
        return statement

    async def get_statement(self, statement_id: int) -> Optional[Statement]:
        return await self._scalar(select(Statement).where(Statement.id == statement_id), "get_statement")

    async def list_statements(self, contractor_id: Optional[int] = None) -> list[Statement]:
        query = select(Statement).order_by(Statement.created_at.desc(), Statement.id.desc())
        if contractor_id is not None:
            query = query.where(Statement.contractor_id == contractor_id)
        return await self._scalars(query, "list_statements")

    async def delete_statement(self, statement: Statement) -> None:
        try:
            await self.db.delete(statement)
            await self.db.flush()
        except SQLAlchemyError as exc:
            raise PersistenceException("delete_statement") from exc

    # ==================== Fuel ====================

    async def add_diesel_record(self, record: DieselRecord) -> DieselRecord:
        self.db.add(record)
        await self._flush("add_diesel_record")
        return record

    async def get_diesel_record(self, record_id: int) -> Optional[DieselRecord]:
        return await self._scalar(
            select(DieselRecord).where(DieselRecord.id == record_id).options(joinedload(DieselRecord.vehicle)),
            "get_diesel_record",
        )

    async def delete_diesel_record(self, record: DieselRecord) -> None:
        try:
            await self.db.delete(record)
            await self.db.flush()
        except SQLAlchemyError as exc:
            raise PersistenceException("delete_diesel_record") from exc

    async def list_diesel_records(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        vehicle_id: Optional[int] = None,
    ) -> list[DieselRecord]:
        query = (
            select(DieselRecord)
            .options(joinedload(DieselRecord.vehicle), joinedload(DieselRecord.driver))
            .order_by(DieselRecord.date.desc(), DieselRecord.id.desc())
        )
        if start is not None:
            query = query.where(DieselRecord.date >= start)
        if end is not None:
            query = query.where(DieselRecord.date <= end)
        if vehicle_id is not None:
            query = query.where(DieselRecord.vehicle_id == vehicle_id)
        return await self._scalars(query, "list_diesel_records")
