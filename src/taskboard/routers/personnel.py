from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, status

from ..dependencies import get_session
from ..schemas import PersonnelCreate, PersonnelOut
from ..session import BoardSession

router = APIRouter(
    prefix="/api/v1/personnel",
    tags=["personnel"],
)


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[PersonnelOut],
    summary="List Personnel",
    description="List the people tasks can be assigned to.",
    responses={200: {"description": "Personnel retrieved successfully"}},
)
async def list_personnel(session: BoardSession = Depends(get_session)) -> List[PersonnelOut]:
    await session.settle()
    return [PersonnelOut.model_validate(p) for p in session.personnel.personnel]


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=PersonnelOut,
    status_code=status.HTTP_201_CREATED,
    summary="Add Personnel",
    description="Add a person to the assignable list.",
    responses={
        201: {"description": "Person added"},
        422: {"description": "Empty name"},
        503: {"description": "The store rejected the write"},
    },
)
async def add_personnel(payload: PersonnelCreate, session: BoardSession = Depends(get_session)) -> PersonnelOut:
    person = await session.engine.add_personnel(payload.name)
    await session.settle()
    return PersonnelOut.model_validate(person)


# PUBLIC_INTERFACE
@router.delete(
    "/{person_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Personnel",
    description=(
        "Remove a person. Tasks assigned to them keep the name and show it as \"Unknown\"."
    ),
    responses={204: {"description": "Person removed"}},
)
async def delete_personnel(person_id: str, session: BoardSession = Depends(get_session)) -> None:
    await session.engine.delete_personnel(person_id)
    await session.settle()
