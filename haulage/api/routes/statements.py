"""
Statement API Routes
"""
from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import Response
from pydantic import BaseModel, Field

from haulage.api.dependencies.repository import get_repository, render
from haulage.db.repository import FleetRepository
from haulage.domain.services.export_service import generate_statement_excel
from haulage.domain.services.statement_service import StatementService

router = APIRouter()

_XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class StatementCreate(BaseModel):
    contractor_id: int
    selected_item_ids: list[str] = Field(default_factory=list)
    lpo_no: str | None = None
    site: str | None = None
    letterhead: str | None = None
    name: str | None = None
    type: str | None = None
    date: datetime | None = None


class StatementResponse(BaseModel):
    id: int
    contractor_id: int | None
    name: str
    type: str
    letterhead: str
    date: datetime
    created_at: datetime | None

    class Config:
        from_attributes = True


def statement_json(statement) -> dict:
    return StatementResponse.model_validate(statement).model_dump(mode="json")


@router.post(
    "",
    summary="Generate a statement",
    description=(
        "Builds a statement of account from the selected invoices (inv-<id>) and "
        "payments (pay-<id>) of a contractor and stores it as a snapshot."
    ),
)
async def generate_statement(
    body: StatementCreate,
    repository: FleetRepository = Depends(get_repository)
):
    result = await StatementService(repository).generate_statement(
        contractor_id=body.contractor_id,
        selected_item_ids=body.selected_item_ids,
        lpo_no=body.lpo_no,
        site=body.site,
        letterhead=body.letterhead,
        name=body.name,
        statement_type=body.type,
        generated_on=body.date,
    )
    return render(result, statement_json, success_status=status.HTTP_201_CREATED)


@router.get(
    "",
    response_model=List[StatementResponse],
    summary="Stored statements",
    description="Newest first, optionally for one contractor.",
)
async def list_statements(
    contractor_id: int | None = None,
    repository: FleetRepository = Depends(get_repository)
):
    return await StatementService(repository).list_statements(contractor_id)


@router.get(
    "/available-items/{contractor_id}",
    summary="Invoices and payments available for a statement",
)
async def get_available_items(
    contractor_id: int,
    exclude: list[str] = Query(default=[]),
    repository: FleetRepository = Depends(get_repository)
):
    items = await StatementService(repository).get_available_items(contractor_id, exclude)
    return [item.to_dict() for item in items]


@router.get(
    "/{statement_id}",
    summary="A stored statement with its lines",
)
async def get_statement(
    statement_id: int,
    repository: FleetRepository = Depends(get_repository)
):
    service = StatementService(repository)
    statement = await service.get_statement(statement_id)
    return {
        **statement_json(statement),
        "document": service.load_document(statement).model_dump(mode="json", by_alias=True),
    }


@router.get(
    "/{statement_id}/export",
    summary="Download a statement as Excel",
)
async def export_statement(
    statement_id: int,
    repository: FleetRepository = Depends(get_repository)
):
    service = StatementService(repository)
    statement = await service.get_statement(statement_id)
    content = generate_statement_excel(service.load_document(statement), statement.letterhead, statement.type)
    return Response(
        content=content,
        media_type=_XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="statement-{statement_id}.xlsx"'},
    )


@router.delete(
    "/{statement_id}",
    summary="Delete a statement",
)
async def delete_statement(
    statement_id: int,
    repository: FleetRepository = Depends(get_repository)
):
    result = await StatementService(repository).delete_statement(statement_id)
    return render(result, lambda deleted_id: {"id": deleted_id})
