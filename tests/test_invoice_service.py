"""
Tests for issuing and removing invoices.
"""
from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import select

from haulage.core.exceptions import ErrorCode
from haulage.db.models import Invoice, Payment, Trip
from haulage.domain.services.invoice_service import (
    InvoiceService,
    format_invoice_number,
    gross_amount,
    next_sequence,
)
from haulage.domain.services.ledger_service import LedgerService
from haulage.domain.services.statement_service import StatementService
from tests.fakes import InMemoryFleetRepository, make_contractor, make_invoice, make_rate, make_trip


# ============================================================================
# Numbering and VAT
# ============================================================================

@pytest.mark.unit
@pytest.mark.parametrize("last, expected", [
    (None, 1),
    ("", 1),
    ("RVT/MAR/24/ANC/007", 8),
    ("RVT/MAR/24/ANC/099", 100),
    ("RVT/MAR/24/ANC/draft", 1),
    ("12", 13),
])
def test_next_sequence(last, expected):
    assert next_sequence(last) == expected


@pytest.mark.unit
def test_format_invoice_number():
    assert format_invoice_number(datetime(2024, 3, 15), "ANC", 7) == "RVT/MAR/24/ANC/007"
    assert format_invoice_number(datetime(2025, 12, 1), None, 1000) == "RVT/DEC/25/GEN/1000"
    assert format_invoice_number(datetime(2025, 1, 1), "  ", 2) == "RVT/JAN/25/GEN/002"


@pytest.mark.unit
def test_gross_amount_adds_vat_and_rounds_half_up():
    assert gross_amount(Decimal("1000")) == Decimal("1050.00")
    assert gross_amount(Decimal("0.10")) == Decimal("0.11")  # 0.105 rounds up
    assert gross_amount(Decimal("100"), vat_rate=Decimal("0")) == Decimal("100.00")


# ============================================================================
# create_invoice
# ============================================================================

@pytest.fixture
def repo():
    return InMemoryFleetRepository()


@pytest.mark.unit
async def test_create_invoice_prices_trips_with_vat(repo):
    contractor = make_contractor(repo)
    make_rate(repo, contractor, price="20", unit="Per Ton")
    trips = [make_trip(repo, capacity="15"), make_trip(repo, capacity="10 tons")]

    result = await InvoiceService(repo).create_invoice(
        contractor.id, [t.id for t in trips], "sand", " pit 1", "SITE A",
        issued_on=datetime(2024, 3, 15),
    )

    assert result.success
    invoice = result.data
    assert invoice.total_amount == Decimal("525.00")  # (300 + 200) * 1.05
    assert invoice.invoice_no == "RVT/MAR/24/ANC/001"
    assert invoice.status == "Unpaid"
    assert invoice.letterhead == "RVT"
    assert all(t.invoice_id == invoice.id for t in trips)


@pytest.mark.unit
async def test_invoice_numbers_continue_contractor_sequence(repo):
    contractor = make_contractor(repo)
    make_invoice(repo, contractor, invoice_no="RVT/FEB/24/ANC/041")
    make_rate(repo, contractor)
    trip = make_trip(repo)

    result = await InvoiceService(repo).create_invoice(
        contractor.id, [trip.id], "Sand", "Pit 1", "Site A", issued_on=datetime(2024, 3, 2),
    )

    assert result.data.invoice_no == "RVT/MAR/24/ANC/042"


@pytest.mark.unit
async def test_route_must_be_priced_for_the_contractor(repo):
    contractor = make_contractor(repo)
    other = make_contractor(repo, name="Emirates Build", abbreviation="EB")
    make_rate(repo, other)
    trip = make_trip(repo)

    result = await InvoiceService(repo).create_invoice(contractor.id, [trip.id], "Sand", "Pit 1", "Site A")

    assert result.success is False
    assert result.error_code == ErrorCode.ROUTE_NOT_PRICED.value
    assert repo.invoices == []
    assert trip.invoice_id is None


@pytest.mark.unit
async def test_already_invoiced_trips_are_rejected(repo):
    contractor = make_contractor(repo)
    make_rate(repo, contractor)
    trip = make_trip(repo)
    service = InvoiceService(repo)
    await service.create_invoice(contractor.id, [trip.id], "Sand", "Pit 1", "Site A")

    result = await service.create_invoice(contractor.id, [trip.id], "Sand", "Pit 1", "Site A")

    assert result.success is False
    assert result.error_code == ErrorCode.TRIP_ALREADY_INVOICED.value
    assert result.status_code == 409
    assert len(repo.invoices) == 1


@pytest.mark.unit
async def test_empty_or_missing_trips_are_rejected(repo):
    contractor = make_contractor(repo)
    make_rate(repo, contractor)
    service = InvoiceService(repo)

    empty = await service.create_invoice(contractor.id, [], "Sand", "Pit 1", "Site A")
    missing = await service.create_invoice(contractor.id, [404], "Sand", "Pit 1", "Site A")

    assert empty.error_code == ErrorCode.VALIDATION_ERROR.value
    assert missing.error_code == ErrorCode.VALIDATION_ERROR.value
    assert repo.invoices == []


@pytest.mark.unit
async def test_unknown_contractor_is_not_found(repo):
    result = await InvoiceService(repo).create_invoice(9, [1], "Sand", "Pit 1", "Site A")

    assert result.error_code == ErrorCode.CONTRACTOR_NOT_FOUND.value


# ============================================================================
# delete / update / queries
# ============================================================================

@pytest.mark.unit
async def test_delete_invoice_frees_trips_and_keeps_statements(repo):
    contractor = make_contractor(repo)
    make_rate(repo, contractor)
    trip = make_trip(repo)
    invoice = (await InvoiceService(repo).create_invoice(contractor.id, [trip.id], "Sand", "Pit 1", "Site A")).data
    await LedgerService(repo).record_payment(invoice.id, "100")
    statement = (await StatementService(repo).generate_statement(contractor.id, [f"inv-{invoice.id}"])).data
    snapshot = statement.details

    result = await InvoiceService(repo).delete_invoice(invoice.id)

    assert result.success
    assert repo.invoices == []
    assert repo.payments == []
    assert trip.invoice_id is None
    assert repo.statements[0].details == snapshot


@pytest.mark.unit
async def test_update_invoice_total_rederives_status(repo):
    invoice = make_invoice(repo, make_contractor(repo), total_amount="1000")
    await LedgerService(repo).record_payment(invoice.id, "500")

    result = await InvoiceService(repo).update_invoice_total(invoice.id, "500.004")

    assert result.success
    assert invoice.total_amount == Decimal("500.00")
    assert invoice.status == "Paid"


@pytest.mark.unit
@pytest.mark.parametrize("total", ["-1", "1e30", "abc"])
async def test_update_invoice_total_rejects_invalid_amounts(repo, total):
    invoice = make_invoice(repo, make_contractor(repo))

    result = await InvoiceService(repo).update_invoice_total(invoice.id, total)

    assert result.success is False
    assert result.error_code == ErrorCode.INVALID_AMOUNT.value
    assert invoice.total_amount == Decimal("1000")


@pytest.mark.unit
async def test_list_uninvoiced_trips_filters_by_route(repo):
    make_trip(repo, date=datetime(2024, 3, 1))
    newer = make_trip(repo, date=datetime(2024, 3, 2))
    make_trip(repo, to_location="Site B")

    trips = await InvoiceService(repo).list_uninvoiced_trips("SAND", "pit 1", "site a")

    assert [t.id for t in trips] == [newer.id, 1]


@pytest.mark.unit
async def test_contractor_routes(repo):
    contractor = make_contractor(repo)
    make_rate(repo, contractor)
    make_rate(repo, contractor, name="Gravel")
    make_rate(repo, contractor, location_to="Site B")

    routes = await InvoiceService(repo).contractor_routes(contractor.id)

    assert routes.to_dict() == {
        "materials": ["Sand", "Gravel"],
        "routes": [{"from": "Pit 1", "to": "Site A"}, {"from": "Pit 1", "to": "Site B"}],
    }


# ============================================================================
# Reception
# ============================================================================

@pytest.mark.unit
async def test_mark_received_records_date_and_copy(repo):
    invoice = make_invoice(repo, make_contractor(repo))

    result = await InvoiceService(repo).mark_received(
        invoice.id, datetime(2024, 3, 20), " https://files.example/inv-1.pdf ",
    )

    assert result.success
    assert invoice.is_received is True
    assert invoice.received_date == datetime(2024, 3, 20)
    assert invoice.received_copy_url == "https://files.example/inv-1.pdf"
    assert repo.locked_invoice_ids == [invoice.id]


@pytest.mark.unit
@pytest.mark.parametrize("copy_url", [None, "", "   "])
async def test_mark_received_requires_a_copy(repo, copy_url):
    invoice = make_invoice(repo, make_contractor(repo))

    result = await InvoiceService(repo).mark_received(invoice.id, datetime(2024, 3, 20), copy_url)

    assert result.success is False
    assert result.error_code == ErrorCode.VALIDATION_ERROR.value
    assert invoice.is_received is False


@pytest.mark.unit
async def test_set_received_only_flips_the_flag(repo):
    invoice = make_invoice(repo, make_contractor(repo))
    service = InvoiceService(repo)
    await service.mark_received(invoice.id, datetime(2024, 3, 20), "https://files.example/inv-1.pdf")

    result = await service.set_received(invoice.id, False)

    assert result.success
    assert invoice.is_received is False
    assert invoice.received_date == datetime(2024, 3, 20)
    assert invoice.received_copy_url == "https://files.example/inv-1.pdf"


@pytest.mark.unit
async def test_reception_of_missing_invoice(repo):
    service = InvoiceService(repo)

    marked = await service.mark_received(42, None, "https://files.example/x.pdf")
    flagged = await service.set_received(42, True)

    assert marked.error_code == ErrorCode.INVOICE_NOT_FOUND.value
    assert flagged.status_code == 404


@pytest.mark.unit
async def test_list_invoices_filters_by_reception(repo):
    contractor = make_contractor(repo)
    older = make_invoice(repo, contractor, date=datetime(2024, 3, 1))
    newer = make_invoice(repo, contractor, date=datetime(2024, 3, 9))
    received = make_invoice(repo, contractor, date=datetime(2024, 3, 5))
    service = InvoiceService(repo)
    await service.set_received(received.id, True)

    assert [i.id for i in await service.list_invoices()] == [newer.id, received.id, older.id]
    assert [i.id for i in await service.list_invoices(received=True)] == [received.id]
    assert [i.id for i in await service.list_invoices(received=False)] == [newer.id, older.id]


@pytest.mark.integration
async def test_create_and_delete_invoice_against_database(
    repository, db_session, priced_contractor, vehicle_factory, trip_factory
):
    vehicle = await vehicle_factory(capacity="20")
    trips = [await trip_factory(vehicle_id=vehicle.id) for _ in range(2)]
    service = InvoiceService(repository)

    created = await service.create_invoice(
        priced_contractor.id, [t.id for t in trips], "Sand", "Pit 1", "Site A",
        issued_on=datetime(2024, 4, 1),
    )

    assert created.success
    assert created.data.total_amount == Decimal("1050.00")
    assert created.data.invoice_no == "RVT/APR/24/ANC/001"
    linked = (await db_session.execute(select(Trip).where(Trip.invoice_id == created.data.id))).scalars().all()
    assert len(linked) == 2

    await LedgerService(repository).record_payment(created.data.id, "50")
    deleted = await service.delete_invoice(created.data.id)

    assert deleted.success
    assert (await db_session.execute(select(Invoice))).scalars().all() == []
    assert (await db_session.execute(select(Payment))).scalars().all() == []
    assert len(await service.list_uninvoiced_trips()) == 2
