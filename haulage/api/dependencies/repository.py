"""
FastAPI dependencies shared by the routers

Usage:
    @router.get("/{invoice_id}/balance")
    async def get_balance(
        invoice_id: int,
        repository: FleetRepository = Depends(get_repository),
    ):
        result = await LedgerService(repository).get_invoice_balance(invoice_id)
        return render(result, ...)
"""
from typing import Any, Callable, Optional

from fastapi import Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from haulage.core.logging import get_correlation_id
from haulage.db.database import get_db
from haulage.db.repository import FleetRepository, SqlAlchemyFleetRepository
from haulage.domain.results import OperationResult


async def get_repository(db: AsyncSession = Depends(get_db)) -> FleetRepository:
    return SqlAlchemyFleetRepository(db)


def render(
    result: OperationResult,
    serialize: Optional[Callable[[Any], Any]] = None,
    success_status: int = status.HTTP_200_OK,
) -> JSONResponse:
    """Render an OperationResult as ``{success, data}`` or ``{success, error, error_code}``"""
    if not result.success:
        return JSONResponse(
            status_code=result.status_code,
            content=result.to_dict(),
            headers={"X-Correlation-ID": get_correlation_id()},
        )
    data = serialize(result.data) if serialize is not None and result.data is not None else None
    return JSONResponse(status_code=success_status, content=result.to_dict(data))
