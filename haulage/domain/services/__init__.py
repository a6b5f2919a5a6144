"""
Domain Services
"""
from haulage.domain.services.ledger_service import LedgerService
from haulage.domain.services.statement_service import StatementService
from haulage.domain.services.invoice_service import InvoiceService
from haulage.domain.services.report_service import ReportService
from haulage.domain.services.fuel_service import FuelService

__all__ = [
    "LedgerService",
    "StatementService",
    "InvoiceService",
    "ReportService",
    "FuelService",
]
