"""
Invoice Service - issuing invoices for trips on a priced route.
"""
import re
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Sequence

from haulage.core.config import settings
from haulage.core.exceptions import (
    ContractorNotFoundError,
    InvoiceNotFoundError,
    RouteNotPricedError,
    TripAlreadyInvoicedError,
    ValidationException,
)
from haulage.core.logging import get_logger, log_operation
from haulage.db.models import Invoice, InvoiceStatus, SiteMaterialRate, Trip
from haulage.db.repository import FleetRepository
from haulage.domain.money import ZERO, parse_amount, quantize_money
from haulage.domain.results import OperationResult, run_operation
from haulage.domain.services.ledger_service import DateLike, as_datetime, balance_of, derive_status
from haulage.domain.services.rate_resolver import normalize_key, price_for, rate_key, trip_capacity, trip_key

logger = get_logger(__name__)

# Invoice numbers use English month names whatever the server locale
MONTHS = ("JAN", "FEB", "MAR", "APR", "MAY", "JUN", "JUL", "AUG", "SEP", "OCT", "NOV", "DEC")

_TRAILING_NUMBER = re.compile(r"(\d+)\s*$")


@dataclass
class ContractorRoutes:
    materials: list[str] = field(default_factory=list)
    routes: list[tuple[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "materials": self.materials,
            "routes": [{"from": origin, "to": destination} for origin, destination in self.routes],
        }


def next_sequence(last_invoice_no: Optional[str]) -> int:
    """Trailing number of the previous invoice number plus one; 1 when absent."""
    if not last_invoice_no:
        return 1
    match = _TRAILING_NUMBER.search(last_invoice_no.rsplit("/", 1)[-1])
    if not match:
        return 1
    return int(match.group(1)) + 1


def format_invoice_number(issued_on: datetime, abbreviation: Optional[str], sequence: int) -> str:
    """``<PREFIX>/<MON>/<YY>/<ABBR>/<NNN>``"""
    abbr = (abbreviation or "").strip() or settings.DEFAULT_CONTRACTOR_ABBREVIATION
    return "/".join([
        settings.INVOICE_NUMBER_PREFIX,
        MONTHS[issued_on.month - 1],
        f"{issued_on.year % 100:02d}",
        abbr,
        f"{sequence:03d}",
    ])


def gross_amount(net: Decimal, vat_rate: Optional[Decimal] = None) -> Decimal:
    """Net plus VAT, rounded half-up to the cent"""
    if vat_rate is None:
        vat_rate = settings.VAT_RATE
    return quantize_money(net + net * vat_rate)


def find_route_rate(
    rates: Sequence[SiteMaterialRate],
    material: str,
    origin: str,
    destination: str,
) -> Optional[SiteMaterialRate]:
    """First rate (price list order) matching the normalized route"""
    wanted = normalize_key(material, origin, destination)
    for rate in rates:
        if rate_key(rate) == wanted:
            return rate
    return None


class InvoiceService:
    """Issues and removes invoices"""

    def __init__(self, repository: FleetRepository):
        self.repository = repository

    async def create_invoice(
        self,
        contractor_id: int,
        trip_ids: Sequence[int],
        material_name: str,
        origin: str,
        destination: str,
        letterhead: Optional[str] = None,
        issued_on: DateLike = None,
    ) -> OperationResult[Invoice]:
        async def _create() -> Invoice:
            unique_ids = list(dict.fromkeys(trip_ids))
            if not unique_ids:
                raise ValidationException("No trips selected", field="trip_ids")

            contractor = await self.repository.get_contractor(contractor_id)
            if contractor is None:
                raise ContractorNotFoundError(contractor_id)

            rates = await self.repository.list_contractor_rates(contractor_id)
            rate = find_route_rate(rates, material_name, origin, destination)
            if rate is None:
                raise RouteNotPricedError(contractor_id, material_name, origin, destination)

            issued = as_datetime(issued_on)

            async with self.repository.transaction("create_invoice"):
                trips = await self.repository.get_trips(unique_ids)
                self._check_trips(unique_ids, trips)

                net = sum((price_for(rate, trip_capacity(trip)) for trip in trips), ZERO)
                total = gross_amount(net)

                latest = await self.repository.get_latest_invoice(contractor_id)
                invoice_no = format_invoice_number(
                    issued,
                    contractor.abbreviation,
                    next_sequence(latest.invoice_no if latest is not None else None),
                )
                invoice = await self.repository.add_invoice(Invoice(
                    invoice_no=invoice_no,
                    contractor_id=contractor_id,
                    date=issued,
                    total_amount=total,
                    paid_amount=ZERO,
                    status=InvoiceStatus.UNPAID.value,
                    letterhead=letterhead or settings.DEFAULT_LETTERHEAD,
                    is_received=False,
                    created_at=datetime.utcnow(),
                ))
                await self.repository.link_trips(trips, invoice.id)

            logger.info(
                "Invoice created",
                extra_data={
                    "invoice_id": invoice.id,
                    "invoice_no": invoice_no,
                    "contractor_id": contractor_id,
                    "trip_count": len(trips),
                    "net_amount": str(net),
                    "total_amount": str(total),
                }
            )
            return invoice

        return await run_operation("create_invoice", _create)

    @staticmethod
    def _check_trips(trip_ids: list[int], trips: Sequence[Trip]) -> None:
        found = {trip.id for trip in trips}
        missing = [trip_id for trip_id in trip_ids if trip_id not in found]
        if missing:
            raise ValidationException(
                f"Trips not found: {', '.join(str(i) for i in missing)}",
                field="trip_ids",
                details={"missing": missing},
            )
        invoiced = sorted(trip.id for trip in trips if trip.invoice_id is not None)
        if invoiced:
            raise TripAlreadyInvoicedError(invoiced)

    async def delete_invoice(self, invoice_id: int) -> OperationResult[int]:
        """Removes the invoice and its payments; its trips become uninvoiced again."""
        async def _delete() -> int:
            async with self.repository.transaction("delete_invoice"):
                invoice = await self.repository.get_invoice(invoice_id, for_update=True)
                if invoice is None:
                    raise InvoiceNotFoundError(invoice_id)
                await self.repository.unlink_invoice_trips(invoice_id)
                await self.repository.delete_invoice(invoice)

            logger.info("Invoice deleted", extra_data={"invoice_id": invoice_id})
            return invoice_id

        return await run_operation("delete_invoice", _delete)

    async def update_invoice_total(self, invoice_id: int, total_amount: Any) -> OperationResult[Invoice]:
        async def _update() -> Invoice:
            total = parse_amount("total_amount", total_amount, allow_zero=True)

            async with self.repository.transaction("update_invoice_total"):
                invoice = await self.repository.get_invoice(invoice_id, for_update=True)
                if invoice is None:
                    raise InvoiceNotFoundError(invoice_id)
                paid = quantize_money(await self.repository.sum_payments(invoice_id))
                invoice.total_amount = total
                invoice.paid_amount = paid
                invoice.status = derive_status(invoice.total_amount, paid).value
                invoice.updated_at = datetime.utcnow()

            logger.info(
                "Invoice total updated",
                extra_data={
                    "invoice_id": invoice_id,
                    "total_amount": str(invoice.total_amount),
                    "status": balance_of(invoice).status.value,
                }
            )
            return invoice

        return await run_operation("update_invoice_total", _update)

    # ==================== Reception ====================

    async def mark_received(
        self,
        invoice_id: int,
        received_on: DateLike,
        copy_url: Optional[str],
    ) -> OperationResult[Invoice]:
        """Record that the contractor received the invoice, with the stamped copy."""
        async def _mark() -> Invoice:
            url = (copy_url or "").strip()
            if not url:
                raise ValidationException(
                    "A copy of the received invoice is required",
                    field="received_copy_url",
                )

            async with self.repository.transaction("mark_invoice_received"):
                invoice = await self.repository.get_invoice(invoice_id, for_update=True)
                if invoice is None:
                    raise InvoiceNotFoundError(invoice_id)
                invoice.is_received = True
                invoice.received_date = as_datetime(received_on)
                invoice.received_copy_url = url
                invoice.updated_at = datetime.utcnow()

            logger.info(
                "Invoice marked received",
                extra_data={"invoice_id": invoice_id, "received_date": invoice.received_date.isoformat()}
            )
            return invoice

        return await run_operation("mark_invoice_received", _mark)

    async def set_received(self, invoice_id: int, received: bool) -> OperationResult[Invoice]:
        """Flip the received flag only; a recorded date and copy are kept."""
        async def _set() -> Invoice:
            async with self.repository.transaction("set_invoice_received"):
                invoice = await self.repository.get_invoice(invoice_id, for_update=True)
                if invoice is None:
                    raise InvoiceNotFoundError(invoice_id)
                invoice.is_received = bool(received)
                invoice.updated_at = datetime.utcnow()

            logger.info("Invoice received flag set", extra_data={"invoice_id": invoice_id, "is_received": bool(received)})
            return invoice

        return await run_operation("set_invoice_received", _set)

    async def list_invoices(self, received: Optional[bool] = None) -> list[Invoice]:
        """Newest first; ``received`` narrows to received or outstanding copies"""
        return await self.repository.list_invoices(received)

    @log_operation("list_uninvoiced_trips")
    async def list_uninvoiced_trips(
        self,
        material_name: Optional[str] = None,
        origin: Optional[str] = None,
        destination: Optional[str] = None,
    ) -> list[Trip]:
        """Trips not yet on an invoice, newest first, optionally narrowed to a route"""
        trips = await self.repository.list_uninvoiced_trips()
        wanted = normalize_key(material_name, origin, destination)
        return [
            trip for trip in trips
            if all(not part or part == actual for part, actual in zip(wanted, trip_key(trip)))
        ]

    async def contractor_routes(self, contractor_id: int) -> ContractorRoutes:
        contractor = await self.repository.get_contractor(contractor_id)
        if contractor is None:
            raise ContractorNotFoundError(contractor_id)

        routes = ContractorRoutes()
        for rate in await self.repository.list_contractor_rates(contractor_id):
            if rate.name not in routes.materials:
                routes.materials.append(rate.name)
            route = (rate.location_from, rate.location_to)
            if route not in routes.routes:
                routes.routes.append(route)
        return routes
