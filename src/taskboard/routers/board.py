from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends

from ..dependencies import get_session
from ..schemas import BoardOut, NotificationOut
from ..session import BoardSession

router = APIRouter(
    prefix="/api/v1/board",
    tags=["board"],
)


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=BoardOut,
    summary="Get Board",
    description=(
        "Return the board projection: columns ordered left to right, each with the tasks "
        "it currently holds in arrival order. Tasks whose column no longer exists are shown "
        'under "To Do".'
    ),
    responses={200: {"description": "Board retrieved successfully"}},
)
async def get_board(session: BoardSession = Depends(get_session)) -> BoardOut:
    await session.settle()
    return BoardOut.from_projection(session.projection, session.personnel.names)


# PUBLIC_INTERFACE
@router.get(
    "/notifications",
    response_model=List[NotificationOut],
    summary="List Notifications",
    description="Recent recoverable errors (failed remote writes), oldest first.",
    responses={200: {"description": "Notifications retrieved successfully"}},
)
async def list_notifications(session: BoardSession = Depends(get_session)) -> List[NotificationOut]:
    return [
        NotificationOut(level=n.level, message=n.message, createdAt=n.created_at)
        for n in session.engine.notifications
    ]
