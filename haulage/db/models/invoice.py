"""
Invoice and Payment Models
"""
import enum
from decimal import Decimal
from datetime import datetime
from sqlalchemy import Boolean, Column, Integer, String, Numeric, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship

from haulage.db.database import Base


class InvoiceStatus(str, enum.Enum):
    UNPAID = "Unpaid"
    PARTIALLY_PAID = "Partially Paid"
    PAID = "Paid"


class PaymentType(str, enum.Enum):
    FULL_PAYMENT = "Full Payment"
    PARTIAL = "Partial"


class Invoice(Base):
    """Billable grouping of trips for a contractor"""

    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)
    invoice_no = Column(String(60), unique=True, nullable=False, index=True)
    contractor_id = Column(Integer, ForeignKey("contractors.id"), nullable=False, index=True)
    date = Column(DateTime, nullable=False, default=datetime.utcnow)

    total_amount = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    # Cache of sum(payments.amount); always recomputed by LedgerService
    paid_amount = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    status = Column(String(20), nullable=False, default=InvoiceStatus.UNPAID.value)
    letterhead = Column(String(20), nullable=False, default="RVT")

    # Contractor acknowledged receipt; the stamped copy is kept as an upload URL
    is_received = Column(Boolean, nullable=False, default=False)
    received_date = Column(DateTime, nullable=True)
    received_copy_url = Column(String(500), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    contractor = relationship("Contractor")
    trips = relationship("Trip", back_populates="invoice")
    payments = relationship(
        "Payment",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="Payment.date.desc()",
    )

    @property
    def remaining_amount(self) -> Decimal:
        return Decimal(self.total_amount or 0) - Decimal(self.paid_amount or 0)


class Payment(Base):
    """Receipt applied against an invoice"""

    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=False, index=True)
    date = Column(DateTime, nullable=False, default=datetime.utcnow)
    type = Column(String(20), nullable=False, default=PaymentType.PARTIAL.value)
    amount = Column(Numeric(12, 2), nullable=False)

    cheque_no = Column(String(60), nullable=True)
    bank_name = Column(String(120), nullable=True)
    cheque_image_url = Column(String(500), nullable=True)
    note = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    invoice = relationship("Invoice", back_populates="payments")
