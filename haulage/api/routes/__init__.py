"""
API Routes
"""
from fastapi import APIRouter

from haulage.api.routes.reports import router as reports_router
from haulage.api.routes.invoices import router as invoices_router
from haulage.api.routes.payments import router as payments_router
from haulage.api.routes.statements import router as statements_router
from haulage.api.routes.fuel import router as fuel_router

router = APIRouter()

router.include_router(reports_router, prefix="/reports", tags=["Reports"])
router.include_router(invoices_router, prefix="/invoices", tags=["Invoices"])
router.include_router(payments_router, prefix="/payments", tags=["Payments"])
router.include_router(statements_router, prefix="/statements", tags=["Statements"])
router.include_router(fuel_router, prefix="/fuel", tags=["Fuel"])
