"""Display label and color tables for dashboard clients."""

from fastapi import APIRouter, HTTPException

from src.dashboard.api.responses import respond
from src.domain.labels import TABLES, as_options
from src.domain.ports import ServiceResult

router = APIRouter(prefix="/api/labels", tags=["labels"])


@router.get("")
async def get_all_labels():
    """Every label table as ``{table: [{value, label, color}]}``."""
    return respond(ServiceResult.success_result({name: as_options(table) for name, table in TABLES.items()}))


@router.get("/{table_name}")
async def get_labels(table_name: str):
    table = TABLES.get(table_name)
    if table is None:
        raise HTTPException(status_code=404, detail=f"Unknown label table: {table_name}")
    return respond(ServiceResult.success_result(as_options(table)))
