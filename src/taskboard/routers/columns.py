from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, status

from ..dependencies import get_session
from ..schemas import ColumnCreate, ColumnOut
from ..session import BoardSession

router = APIRouter(
    prefix="/api/v1/columns",
    tags=["columns"],
)


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[ColumnOut],
    summary="List Columns",
    description="List the board columns ordered by their order field.",
    responses={200: {"description": "Columns retrieved successfully"}},
)
async def list_columns(session: BoardSession = Depends(get_session)) -> List[ColumnOut]:
    await session.settle()
    return [ColumnOut.from_doc(c) for c in session.columns.columns]


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=ColumnOut,
    status_code=status.HTTP_201_CREATED,
    summary="Add Column",
    description="Append a column to the right of the board.",
    responses={
        201: {"description": "Column created successfully"},
        422: {"description": "Empty title"},
        503: {"description": "The store rejected the write"},
    },
)
async def add_column(payload: ColumnCreate, session: BoardSession = Depends(get_session)) -> ColumnOut:
    column = await session.engine.add_column(payload.title)
    await session.settle()
    return ColumnOut.from_doc(column)


# PUBLIC_INTERFACE
@router.delete(
    "/{column_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Column",
    description=(
        'Delete a column. Its tasks are moved to "To Do" first. '
        "The reserved columns To Do, In Progress and Done cannot be deleted."
    ),
    responses={
        204: {"description": "Column deleted"},
        403: {"description": "Reserved column"},
        404: {"description": "Column not found"},
        503: {"description": "Relocating tasks or deleting the column failed; the column is kept"},
    },
)
async def delete_column(column_id: str, session: BoardSession = Depends(get_session)) -> None:
    await session.engine.delete_column(column_id)
    await session.settle()
