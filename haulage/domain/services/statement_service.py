"""
Statement Service - statement-of-account snapshots for a contractor.

A statement is built from a user-selected subset of the contractor's
invoices (credits) and payments (debits), ordered by date, with a running
balance per line. The result is serialized into ``Statement.details`` and
never rewritten afterwards: later invoice or payment changes do not touch
statements that were already generated.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Iterable, Optional, Sequence

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel

from haulage.core.config import settings
from haulage.core.exceptions import (
    ContractorNotFoundError,
    EmptyStatementSelectionError,
    StatementNotFoundError,
    UnknownStatementItemError,
)
from haulage.core.logging import get_logger, log_operation
from haulage.db.models import Invoice, Payment, Statement
from haulage.db.repository import FleetRepository
from haulage.domain.money import ZERO, quantize_money
from haulage.domain.results import OperationResult, run_operation
from haulage.domain.services.ledger_service import DateLike, as_datetime

logger = get_logger(__name__)

INVOICE = "invoice"
PAYMENT = "payment"
PLACEHOLDER = "-"


# ==================== Items ====================

@dataclass
class StatementItem:
    """One selectable invoice (credit) or payment (debit)"""
    id: str
    kind: str
    source_id: int
    date: datetime
    description: str
    credit: Decimal = ZERO
    debit: Decimal = ZERO
    created_at: Optional[datetime] = None

    @property
    def sort_key(self) -> tuple:
        # Same day: invoices before payments, then creation time, then id
        return (
            self.date.date(),
            0 if self.kind == INVOICE else 1,
            self.created_at or self.date,
            self.source_id,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.kind,
            "date": self.date.strftime(settings.STATEMENT_DATE_FORMAT),
            "description": self.description,
            "credit": float(self.credit),
            "debit": float(self.debit),
        }


def payment_description(payment: Payment) -> str:
    if payment.cheque_no:
        return f"Cheque #{payment.cheque_no}"
    return f"Payment ({payment.type})"


def invoice_item(invoice: Invoice) -> StatementItem:
    return StatementItem(
        id=f"inv-{invoice.id}",
        kind=INVOICE,
        source_id=invoice.id,
        date=as_datetime(invoice.date),
        description=invoice.invoice_no,
        credit=quantize_money(invoice.total_amount),
        created_at=invoice.created_at,
    )


def payment_item(payment: Payment) -> StatementItem:
    return StatementItem(
        id=f"pay-{payment.id}",
        kind=PAYMENT,
        source_id=payment.id,
        date=as_datetime(payment.date),
        description=payment_description(payment),
        debit=quantize_money(payment.amount),
        created_at=payment.created_at,
    )


def collect_statement_items(
    invoices: Iterable[Invoice],
    payments: Iterable[Payment],
) -> list[StatementItem]:
    """Invoices and payments as statement items, in statement order."""
    items = [invoice_item(invoice) for invoice in invoices]
    items.extend(payment_item(payment) for payment in payments)
    items.sort(key=lambda item: item.sort_key)
    return items


def select_items(
    items: Sequence[StatementItem],
    selected_ids: Iterable[str],
    contractor_id: int,
) -> list[StatementItem]:
    """Keep the selected items in their original order.

    Raises EmptyStatementSelectionError for an empty selection and
    UnknownStatementItemError for ids that are not among ``items``.
    """
    wanted = {item_id for item_id in selected_ids}
    if not wanted:
        raise EmptyStatementSelectionError(contractor_id)

    known = {item.id for item in items}
    unknown = sorted(wanted - known)
    if unknown:
        raise UnknownStatementItemError(contractor_id, unknown)

    return [item for item in items if item.id in wanted]


# ==================== Lines ====================

@dataclass
class StatementLine:
    date: str
    description: str
    credit: Decimal
    debit: Decimal
    balance: Decimal


def build_statement_lines(items: Iterable[StatementItem]) -> list[StatementLine]:
    """Running balance: each line carries the balance after its own credit/debit."""
    balance = ZERO
    lines = []
    for item in items:
        balance += item.credit - item.debit
        lines.append(StatementLine(
            date=item.date.strftime(settings.STATEMENT_DATE_FORMAT),
            description=item.description,
            credit=item.credit,
            debit=item.debit,
            balance=balance,
        ))
    return lines


# ==================== Document ====================

Money = Annotated[
    Decimal,
    BeforeValidator(quantize_money),
    PlainSerializer(float, return_type=float, when_used="json"),
]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StatementLineModel(_CamelModel):
    date: str
    description: str
    credit: Money = ZERO
    debit: Money = ZERO
    balance: Money = ZERO


class StatementDocument(_CamelModel):
    """Serialized form stored in ``Statement.details``"""
    contractor_name: str
    date: str
    lpo_no: str = PLACEHOLDER
    site: str = PLACEHOLDER
    items: list[StatementLineModel] = Field(default_factory=list)

    @property
    def closing_balance(self) -> Decimal:
        return self.items[-1].balance if self.items else ZERO

    @property
    def total_credit(self) -> Decimal:
        return sum((line.credit for line in self.items), ZERO)

    @property
    def total_debit(self) -> Decimal:
        return sum((line.debit for line in self.items), ZERO)

    def dumps(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def loads(cls, raw: str) -> "StatementDocument":
        return cls.model_validate_json(raw)

    @classmethod
    def from_lines(
        cls,
        contractor_name: str,
        generated_on: datetime,
        lines: Iterable[StatementLine],
        lpo_no: Optional[str] = None,
        site: Optional[str] = None,
    ) -> "StatementDocument":
        return cls(
            contractor_name=contractor_name,
            date=generated_on.strftime(settings.STATEMENT_DATE_FORMAT),
            lpo_no=(lpo_no or "").strip() or PLACEHOLDER,
            site=(site or "").strip() or PLACEHOLDER,
            items=[
                StatementLineModel(
                    date=line.date,
                    description=line.description,
                    credit=line.credit,
                    debit=line.debit,
                    balance=line.balance,
                )
                for line in lines
            ],
        )


# ==================== Service ====================

class StatementService:
    """Generates and stores statement snapshots"""

    def __init__(self, repository: FleetRepository):
        self.repository = repository

    async def _contractor_items(self, contractor_id: int) -> tuple[Any, list[StatementItem]]:
        contractor = await self.repository.get_contractor(contractor_id)
        if contractor is None:
            raise ContractorNotFoundError(contractor_id)
        invoices = await self.repository.list_contractor_invoices(contractor_id)
        payments = await self.repository.list_contractor_payments(contractor_id)
        return contractor, collect_statement_items(invoices, payments)

    async def generate_statement(
        self,
        contractor_id: int,
        selected_item_ids: Sequence[str],
        lpo_no: Optional[str] = None,
        site: Optional[str] = None,
        letterhead: Optional[str] = None,
        name: Optional[str] = None,
        statement_type: Optional[str] = None,
        generated_on: DateLike = None,
    ) -> OperationResult[Statement]:
        async def _generate() -> Statement:
            if not selected_item_ids:
                raise EmptyStatementSelectionError(contractor_id)

            issued = as_datetime(generated_on)
            contractor, items = await self._contractor_items(contractor_id)
            lines = build_statement_lines(select_items(items, selected_item_ids, contractor_id))
            document = StatementDocument.from_lines(contractor.name, issued, lines, lpo_no=lpo_no, site=site)

            async with self.repository.transaction("generate_statement"):
                statement = await self.repository.add_statement(Statement(
                    contractor_id=contractor_id,
                    name=name or f"Statement - {contractor.name}",
                    type=statement_type or settings.STATEMENT_TYPE,
                    details=document.dumps(),
                    letterhead=letterhead or settings.DEFAULT_LETTERHEAD,
                    date=issued,
                    created_at=datetime.utcnow(),
                ))

            logger.info(
                "Statement generated",
                extra_data={
                    "statement_id": statement.id,
                    "contractor_id": contractor_id,
                    "line_count": len(lines),
                    "closing_balance": str(document.closing_balance),
                }
            )
            return statement

        return await run_operation("generate_statement", _generate)

    @log_operation("get_available_items")
    async def get_available_items(
        self,
        contractor_id: int,
        exclude_ids: Iterable[str] = (),
    ) -> list[StatementItem]:
        """Everything the contractor could be billed for on a new statement"""
        _, items = await self._contractor_items(contractor_id)
        excluded = set(exclude_ids)
        return [item for item in items if item.id not in excluded]

    async def get_statement(self, statement_id: int) -> Statement:
        statement = await self.repository.get_statement(statement_id)
        if statement is None:
            raise StatementNotFoundError(statement_id)
        return statement

    async def list_statements(self, contractor_id: Optional[int] = None) -> list[Statement]:
        return await self.repository.list_statements(contractor_id)

    async def delete_statement(self, statement_id: int) -> OperationResult[int]:
        async def _delete() -> int:
            async with self.repository.transaction("delete_statement"):
                statement = await self.get_statement(statement_id)
                await self.repository.delete_statement(statement)
            logger.info("Statement deleted", extra_data={"statement_id": statement_id})
            return statement_id

        return await run_operation("delete_statement", _delete)

    @staticmethod
    def load_document(statement: Statement) -> StatementDocument:
        return StatementDocument.loads(statement.details)
