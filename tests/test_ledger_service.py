"""
Tests for LedgerService: payments and derived invoice state.

Unit tests drive the service through the in-memory repository; integration
tests use the SQLAlchemy repository over in-memory SQLite.
"""
from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy import select, update

from haulage.core.exceptions import ErrorCode
from haulage.db.models import Invoice, InvoiceStatus, Payment, PaymentType
from haulage.domain.services.ledger_service import (
    LedgerService,
    PaymentUpdate,
    derive_status,
    full_payment_amount,
)
from haulage.domain.services.statement_service import StatementService
from tests.fakes import InMemoryFleetRepository, make_contractor, make_invoice


@pytest.fixture
def repo():
    return InMemoryFleetRepository()


@pytest.fixture
def invoice(repo):
    return make_invoice(repo, make_contractor(repo), total_amount="1000")


# ============================================================================
# Status derivation
# ============================================================================

@pytest.mark.unit
@pytest.mark.parametrize("paid, expected", [
    ("0", InvoiceStatus.UNPAID),
    ("0.01", InvoiceStatus.PARTIALLY_PAID),
    ("999.99", InvoiceStatus.PARTIALLY_PAID),
    ("1000", InvoiceStatus.PAID),
    ("1200", InvoiceStatus.PAID),
])
def test_derive_status(paid, expected):
    assert derive_status(Decimal("1000"), Decimal(paid)) is expected


@pytest.mark.unit
def test_derive_status_with_tolerance():
    assert derive_status(Decimal("1000"), Decimal("999.50"), tolerance=Decimal("1.00")) is InvoiceStatus.PAID


# ============================================================================
# Record / update / delete
# ============================================================================

@pytest.mark.unit
async def test_paid_amount_is_recomputed_from_remaining_payments(repo, invoice):
    ledger = LedgerService(repo)

    payment_a = await ledger.record_payment(invoice.id, Decimal("400"))
    assert payment_a.success
    assert invoice.paid_amount == Decimal("400.00")
    assert invoice.status == InvoiceStatus.PARTIALLY_PAID.value

    payment_b = await ledger.record_payment(invoice.id, Decimal("300"))
    assert payment_b.success
    assert invoice.paid_amount == Decimal("700.00")

    deleted = await ledger.delete_payment(payment_a.data.id)
    assert deleted.success
    assert invoice.paid_amount == Decimal("300.00")
    assert deleted.data.remaining == Decimal("700.00")
    assert deleted.data.status is InvoiceStatus.PARTIALLY_PAID


@pytest.mark.unit
async def test_mutations_lock_the_invoice_and_commit_once(repo, invoice):
    ledger = LedgerService(repo)

    await ledger.record_payment(invoice.id, "250")

    assert repo.locked_invoice_ids == [invoice.id]
    assert repo.commits == 1


@pytest.mark.unit
async def test_paying_in_full_marks_invoice_paid(repo, invoice):
    ledger = LedgerService(repo)
    await ledger.record_payment(invoice.id, "600")

    amount = full_payment_amount(invoice)
    result = await ledger.record_payment(invoice.id, amount, payment_type=PaymentType.FULL_PAYMENT)

    assert amount == Decimal("400.00")
    assert result.success
    assert result.data.type == "Full Payment"
    assert invoice.status == InvoiceStatus.PAID.value


@pytest.mark.unit
async def test_update_payment_overwrites_fields_and_recomputes(repo, invoice):
    ledger = LedgerService(repo)
    recorded = await ledger.record_payment(invoice.id, "400", cheque_no="111")

    result = await ledger.update_payment(recorded.data.id, PaymentUpdate(
        amount="1000",
        date=date(2024, 3, 9),
        payment_type="Full Payment",
        cheque_no="222",
        bank_name="Emirates NBD",
    ))

    assert result.success
    payment = result.data
    assert payment.amount == Decimal("1000.00")
    assert payment.cheque_no == "222"
    assert payment.bank_name == "Emirates NBD"
    assert payment.date == datetime(2024, 3, 9)
    assert invoice.paid_amount == Decimal("1000.00")
    assert invoice.status == InvoiceStatus.PAID.value


@pytest.mark.unit
async def test_deleting_last_payment_returns_invoice_to_unpaid(repo, invoice):
    ledger = LedgerService(repo)
    recorded = await ledger.record_payment(invoice.id, "1000")

    result = await ledger.delete_payment(recorded.data.id)

    assert result.success
    assert invoice.paid_amount == Decimal("0.00")
    assert invoice.status == InvoiceStatus.UNPAID.value


@pytest.mark.unit
async def test_recompute_is_idempotent(repo, invoice):
    ledger = LedgerService(repo)
    await ledger.record_payment(invoice.id, "123.45")
    await ledger.record_payment(invoice.id, "76.55")
    invoice.paid_amount = Decimal("9999")  # drifted cache

    first = await ledger.recompute_paid_amount(invoice.id)
    second = await ledger.recompute_paid_amount(invoice.id)

    assert first.data == second.data
    assert first.data.paid == Decimal("200.00")
    assert invoice.paid_amount == Decimal("200.00")


@pytest.mark.unit
async def test_get_invoice_balance(repo, invoice):
    ledger = LedgerService(repo)
    await ledger.record_payment(invoice.id, "250")

    result = await ledger.get_invoice_balance(invoice.id)

    assert result.success
    assert result.data.to_dict() == {
        "invoice_id": invoice.id,
        "total": 1000.0,
        "paid": 250.0,
        "remaining": 750.0,
        "status": "Partially Paid",
    }


# ============================================================================
# Validation and not-found results
# ============================================================================

@pytest.mark.unit
@pytest.mark.parametrize("amount", [0, -5, "0.001", "abc", None, "NaN"])
async def test_non_positive_amount_is_rejected(repo, invoice, amount):
    result = await LedgerService(repo).record_payment(invoice.id, amount)

    assert result.success is False
    assert result.error_code == ErrorCode.INVALID_AMOUNT.value
    assert result.status_code == 400
    assert repo.payments == []
    assert invoice.paid_amount == Decimal("0.00")


@pytest.mark.unit
@pytest.mark.parametrize("amount", ["1e30", "10000000000", Decimal("1e999999999"), "Infinity"])
async def test_out_of_range_amount_is_rejected(repo, invoice, amount):
    result = await LedgerService(repo).record_payment(invoice.id, amount)

    assert result.success is False
    assert result.error_code == ErrorCode.INVALID_AMOUNT.value
    assert repo.payments == []


@pytest.mark.unit
async def test_largest_storable_amount_is_accepted(repo, invoice):
    result = await LedgerService(repo).record_payment(invoice.id, "9999999999.99")

    assert result.success
    assert invoice.status == InvoiceStatus.PAID.value


@pytest.mark.unit
async def test_update_with_non_positive_amount_is_rejected(repo, invoice):
    ledger = LedgerService(repo)
    recorded = await ledger.record_payment(invoice.id, "400")

    result = await ledger.update_payment(recorded.data.id, PaymentUpdate(amount="-1"))

    assert result.success is False
    assert result.error_code == ErrorCode.INVALID_AMOUNT.value
    assert recorded.data.amount == Decimal("400.00")


@pytest.mark.unit
async def test_unknown_payment_type_is_rejected(repo, invoice):
    result = await LedgerService(repo).record_payment(invoice.id, "10", payment_type="Barter")

    assert result.success is False
    assert result.error_code == ErrorCode.VALIDATION_ERROR.value


@pytest.mark.unit
async def test_missing_invoice_is_not_found(repo):
    result = await LedgerService(repo).record_payment(404, "10")

    assert result.success is False
    assert result.error_code == ErrorCode.INVOICE_NOT_FOUND.value
    assert result.status_code == 404
    assert result.to_dict() == {
        "success": False,
        "error": "Invoice not found: 404",
        "error_code": ErrorCode.INVOICE_NOT_FOUND.value,
    }


@pytest.mark.unit
async def test_missing_payment_is_not_found(repo):
    ledger = LedgerService(repo)

    updated = await ledger.update_payment(77, PaymentUpdate(amount="10"))
    deleted = await ledger.delete_payment(77)

    assert updated.error_code == ErrorCode.PAYMENT_NOT_FOUND.value
    assert deleted.error_code == ErrorCode.PAYMENT_NOT_FOUND.value


@pytest.mark.unit
async def test_storage_failure_returns_generic_error(repo, invoice):
    repo.fail_on.add("add_payment")

    result = await LedgerService(repo).record_payment(invoice.id, "100")

    assert result.success is False
    assert result.error_code == ErrorCode.PERSISTENCE_ERROR.value
    assert result.status_code == 500
    assert "database is locked" not in result.error
    assert repo.rollbacks == 1


# ============================================================================
# Statements are snapshots
# ============================================================================

@pytest.mark.unit
async def test_payment_changes_do_not_touch_generated_statements(repo, invoice):
    ledger = LedgerService(repo)
    recorded = await ledger.record_payment(invoice.id, "400", date=date(2024, 3, 3))
    generated = await StatementService(repo).generate_statement(
        invoice.contractor_id,
        [f"inv-{invoice.id}", f"pay-{recorded.data.id}"],
    )
    before = generated.data.details

    await ledger.update_payment(recorded.data.id, PaymentUpdate(amount="900"))
    await ledger.delete_payment(recorded.data.id)

    assert repo.statements[0].details == before


# ============================================================================
# Integration (SQLAlchemy repository)
# ============================================================================

@pytest.mark.integration
async def test_ledger_scenario_against_database(
    repository, db_session, contractor_factory, invoice_factory
):
    contractor = await contractor_factory()
    invoice = await invoice_factory(contractor.id, total_amount="1000")
    ledger = LedgerService(repository)

    payment_a = await ledger.record_payment(invoice.id, "400")
    await ledger.record_payment(invoice.id, "300")
    assert (await ledger.get_invoice_balance(invoice.id)).data.paid == Decimal("700.00")

    result = await ledger.delete_payment(payment_a.data.id)

    assert result.success
    stored = (await db_session.execute(select(Invoice).where(Invoice.id == invoice.id))).scalar_one()
    assert stored.paid_amount == Decimal("300.00")
    assert stored.status == InvoiceStatus.PARTIALLY_PAID.value
    remaining = (await db_session.execute(select(Payment))).scalars().all()
    assert [p.amount for p in remaining] == [Decimal("300.00")]


@pytest.mark.integration
async def test_list_invoice_payments_newest_first(repository, contractor_factory, invoice_factory):
    contractor = await contractor_factory()
    invoice = await invoice_factory(contractor.id)
    ledger = LedgerService(repository)
    await ledger.record_payment(invoice.id, "100", date=date(2024, 3, 2))
    await ledger.record_payment(invoice.id, "200", date=date(2024, 3, 9))

    payments = await ledger.list_invoice_payments(invoice.id)

    assert [p.amount for p in payments] == [Decimal("200.00"), Decimal("100.00")]
    assert len(await ledger.list_payments()) == 2


@pytest.mark.integration
async def test_missing_invoice_against_database(repository):
    result = await LedgerService(repository).record_payment(999, "10")

    assert result.success is False
    assert result.error_code == ErrorCode.INVOICE_NOT_FOUND.value


@pytest.mark.integration
async def test_locked_invoice_is_reread_before_status_is_derived(
    repository, db_session, contractor_factory, invoice_factory
):
    contractor = await contractor_factory()
    invoice = await invoice_factory(contractor.id, total_amount="1000")
    ledger = LedgerService(repository)
    payment = await ledger.record_payment(invoice.id, "1000")
    assert invoice.status == InvoiceStatus.PAID.value

    # A concurrent writer raises the total; the session's copy is left stale
    await db_session.execute(
        update(Invoice).where(Invoice.id == invoice.id).values(total_amount=Decimal("2000.00")),
        execution_options={"synchronize_session": False},
    )
    await db_session.commit()
    assert invoice.total_amount == Decimal("1000.00")

    result = await ledger.update_payment(payment.data.id, PaymentUpdate(amount="1000"))

    assert result.success
    stored = (await db_session.execute(select(Invoice).where(Invoice.id == invoice.id))).scalar_one()
    assert stored.total_amount == Decimal("2000.00")
    assert stored.paid_amount == Decimal("1000.00")
    assert stored.status == InvoiceStatus.PARTIALLY_PAID.value
