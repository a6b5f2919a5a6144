"""
Database Models
"""
from haulage.db.models.contractor import Contractor, Site
from haulage.db.models.site_material_rate import SiteMaterialRate, RateUnit
from haulage.db.models.fleet import Vehicle, Driver
from haulage.db.models.trip import Trip
from haulage.db.models.invoice import Invoice, InvoiceStatus, Payment, PaymentType
from haulage.db.models.statement import Statement
from haulage.db.models.diesel_record import DieselRecord

__all__ = [
    "Contractor",
    "Site",
    "SiteMaterialRate",
    "RateUnit",
    "Vehicle",
    "Driver",
    "Trip",
    "Invoice",
    "InvoiceStatus",
    "Payment",
    "PaymentType",
    "Statement",
    "DieselRecord",
]
