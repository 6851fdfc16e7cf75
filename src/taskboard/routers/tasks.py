from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, status

from ..dependencies import get_session
from ..errors import NotFoundError
from ..schemas import MoveTask, TaskCreate, TaskOut, TaskUpdate
from ..session import BoardSession

router = APIRouter(
    prefix="/api/v1/tasks",
    tags=["tasks"],
)


def _render(session: BoardSession, task_id: str) -> TaskOut:
    task = session.tasks.get(task_id)
    if task is None:
        raise NotFoundError(f"Task {task_id} not found")
    return TaskOut.from_doc(task, session.personnel.names)


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[TaskOut],
    summary="List Tasks",
    description="List every task of the board in arrival order.",
    responses={200: {"description": "Tasks retrieved successfully"}},
)
async def list_tasks(session: BoardSession = Depends(get_session)) -> List[TaskOut]:
    await session.settle()
    names = session.personnel.names
    return [TaskOut.from_doc(t, names) for t in session.tasks.tasks]


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=TaskOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Task",
    description='Create a task in the "To Do" column and return it.',
    responses={
        201: {"description": "Task created successfully"},
        422: {"description": "Validation error"},
        503: {"description": "The store rejected the write"},
    },
)
async def create_task(payload: TaskCreate, session: BoardSession = Depends(get_session)) -> TaskOut:
    task = await session.engine.add_task(payload)
    await session.settle()
    return TaskOut.from_doc(task, session.personnel.names)


# PUBLIC_INTERFACE
@router.get(
    "/{task_id}",
    response_model=TaskOut,
    summary="Get Task",
    description="Retrieve a task by id.",
    responses={200: {"description": "Task found"}, 404: {"description": "Task not found"}},
)
async def get_task(task_id: str, session: BoardSession = Depends(get_session)) -> TaskOut:
    await session.settle()
    return _render(session, task_id)


# PUBLIC_INTERFACE
@router.put(
    "/{task_id}",
    response_model=TaskOut,
    summary="Update Task",
    description=(
        "Replace the editable fields of a task (title, description, dates, assignee, checklist). "
        "The column is left alone; use the move endpoint for that."
    ),
    responses={
        200: {"description": "Task updated"},
        404: {"description": "Task not found"},
        422: {"description": "Validation error"},
        503: {"description": "The store rejected the write"},
    },
)
async def update_task(task_id: str, payload: TaskUpdate, session: BoardSession = Depends(get_session)) -> TaskOut:
    await session.engine.update_task(task_id, payload)
    await session.settle()
    return _render(session, task_id)


# PUBLIC_INTERFACE
@router.delete(
    "/{task_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Task",
    description="Delete a task by id.",
    responses={204: {"description": "Task deleted"}, 404: {"description": "Task not found"}},
)
async def delete_task(task_id: str, session: BoardSession = Depends(get_session)) -> None:
    if session.tasks.get(task_id) is None:
        raise NotFoundError(f"Task {task_id} not found")
    await session.engine.delete_task(task_id)
    await session.settle()


# PUBLIC_INTERFACE
@router.post(
    "/{task_id}/move",
    response_model=TaskOut,
    summary="Move Task",
    description=(
        "Drag a task onto another column. Moving a task onto the column it is already in "
        "changes nothing."
    ),
    responses={
        200: {"description": "Task in its target column"},
        404: {"description": "Task or column not found"},
        503: {"description": "The store rejected the write"},
    },
)
async def move_task(task_id: str, payload: MoveTask, session: BoardSession = Depends(get_session)) -> TaskOut:
    await session.engine.move_task(task_id, payload.column_id)
    await session.settle()
    return _render(session, task_id)


# PUBLIC_INTERFACE
@router.post(
    "/{task_id}/checklist/{item_id}/toggle",
    response_model=TaskOut,
    summary="Toggle Checklist Item",
    description="Flip the completed flag of one checklist item.",
    responses={
        200: {"description": "Checklist item toggled"},
        404: {"description": "Task or checklist item not found"},
        503: {"description": "The store rejected the write"},
    },
)
async def toggle_checklist_item(
    task_id: str, item_id: str, session: BoardSession = Depends(get_session)
) -> TaskOut:
    await session.engine.toggle_checklist_item(task_id, item_id)
    await session.settle()
    return _render(session, task_id)
