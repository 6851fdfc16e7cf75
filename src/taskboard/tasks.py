from __future__ import annotations

import logging
from typing import Callable, List, Optional

from .columns import ColumnStore
from .context import TASKS_COLLECTION, BoardContext
from .errors import BoardError, NotFoundError, ValidationError
from .models import ChecklistItemDoc, TaskDoc
from .repositories import Snapshot, Subscription
from .schemas import TaskCreate, TaskUpdate
from .utils import utc_now_iso

logger = logging.getLogger(__name__)

DEFAULT_DESCRIPTION = "No description provided."


def _to_task(doc: dict) -> TaskDoc:
    checklist = doc.get("checklist") or []
    return {
        "id": str(doc["id"]),
        "title": str(doc.get("title") or ""),
        "description": doc.get("description") or "",
        "startDate": doc.get("startDate"),
        "endDate": doc.get("endDate"),
        "assignedTo": doc.get("assignedTo"),
        "checklist": [
            {"id": str(item.get("id")), "text": item.get("text", ""), "completed": bool(item.get("completed"))}
            for item in checklist
        ],
        "status": doc.get("status"),
        "createdAt": doc.get("createdAt"),
    }


def _editable_fields(data: TaskCreate) -> dict:
    """Validated, document-shaped fields of a create/update payload (no status)."""
    if not data.title.strip():
        raise ValidationError("Task title cannot be empty.")
    if any(not item.text.strip() for item in data.checklist):
        raise ValidationError("Checklist item text cannot be empty.")
    return {
        "title": data.title.strip(),
        "description": data.description or DEFAULT_DESCRIPTION,
        "startDate": data.start_date.isoformat() if data.start_date else None,
        "endDate": data.end_date.isoformat() if data.end_date else None,
        "assignedTo": data.assigned_to or None,
        "checklist": [item.model_dump() for item in data.checklist],
    }


def toggle_item(checklist: List[ChecklistItemDoc], item_id: str) -> List[ChecklistItemDoc]:
    """Copy of `checklist` with exactly the item `item_id` flipped."""
    if not any(item["id"] == item_id for item in checklist):
        raise NotFoundError(f"Checklist item {item_id} not found")
    return [
        {**item, "completed": not item["completed"]} if item["id"] == item_id else dict(item)  # type: ignore[misc]
        for item in checklist
    ]


class TaskStore:
    """
    Owns the user's tasks. The loaded set is replaced wholesale by every
    snapshot and keeps arrival order.
    """

    def __init__(self, context: BoardContext, columns: ColumnStore) -> None:
        self._context = context
        self._columns = columns
        self._tasks: List[TaskDoc] = []
        self._subscription: Optional[Subscription] = None
        self._listeners: List[Callable[[], None]] = []
        self._error_listeners: List[Callable[[BoardError], None]] = []
        self.loaded = False

    @property
    def tasks(self) -> List[TaskDoc]:
        return [_to_task(t) for t in self._tasks]  # copies

    def add_listener(self, callback: Callable[[], None]) -> None:
        self._listeners.append(callback)

    def add_error_listener(self, callback: Callable[[BoardError], None]) -> None:
        """Call `callback` when the subscription cannot be read."""
        self._error_listeners.append(callback)

    def get(self, task_id: str) -> Optional[TaskDoc]:
        for task in self._tasks:
            if task["id"] == task_id:
                return _to_task(task)
        return None

    def _require(self, task_id: str) -> TaskDoc:
        task = self.get(task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found")
        return task

    # PUBLIC_INTERFACE
    async def open(self) -> None:
        """Subscribe to tasks once the column store is ready."""
        await self._columns.wait_ready()
        path = self._context.collection_path(TASKS_COLLECTION)
        self._subscription = self._context.store.subscribe(path, self._on_snapshot, on_error=self._on_error)

    async def close(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
        self._tasks = []
        self.loaded = False

    def _on_snapshot(self, snapshot: Snapshot) -> None:
        self._tasks = [_to_task(d) for d in snapshot.docs]
        self.loaded = True
        for callback in list(self._listeners):
            callback()

    def _on_error(self, exc: BoardError) -> None:
        if self._error_listeners:
            for callback in list(self._error_listeners):
                callback(exc)
        else:
            logger.error("Error fetching tasks: %s", exc)

    # PUBLIC_INTERFACE
    async def add_task(self, data: TaskCreate) -> TaskDoc:
        """Create a task in the "To Do" column."""
        fields = _editable_fields(data)
        path = self._context.collection_path(TASKS_COLLECTION)
        record = {**fields, "status": self._columns.todo_column_id, "createdAt": utc_now_iso()}
        task_id = await self._context.store.create(path, record)
        return _to_task({"id": task_id, **record})

    # PUBLIC_INTERFACE
    async def update_task(self, task_id: str, data: TaskUpdate) -> TaskDoc:
        """
        Merge-write every editable field of a task.

        status is never written here so an edit started before a concurrent
        move cannot put the task back into its old column.
        """
        fields = _editable_fields(data)
        path = self._context.collection_path(TASKS_COLLECTION)
        current = self._require(task_id)
        await self._context.store.merge(path, task_id, fields)
        return _to_task({**current, **fields})

    # PUBLIC_INTERFACE
    async def delete_task(self, task_id: str) -> None:
        path = self._context.collection_path(TASKS_COLLECTION)
        await self._context.store.delete(path, task_id)

    # PUBLIC_INTERFACE
    async def toggle_checklist_item(
        self,
        task_id: str,
        item_id: str,
        checklist: Optional[List[ChecklistItemDoc]] = None,
    ) -> List[ChecklistItemDoc]:
        """
        Flip one checklist item and write back the whole checklist array.

        `checklist` is the list to flip from, defaulting to the loaded task's;
        callers holding newer optimistic state pass theirs. Returns the new
        checklist.
        """
        task = self._require(task_id)
        toggled = toggle_item(task["checklist"] if checklist is None else checklist, item_id)
        path = self._context.collection_path(TASKS_COLLECTION)
        await self._context.store.merge(path, task_id, {"checklist": toggled})
        return toggled

    # PUBLIC_INTERFACE
    async def move_task(self, task_id: str, column_id: str) -> bool:
        """
        Point a task at another column. Returns False (and writes nothing)
        when the task already belongs to it.
        """
        task = self._require(task_id)
        if self._columns.get(column_id) is None:
            raise NotFoundError(f"Column {column_id} not found")
        if task["status"] == column_id:
            return False
        path = self._context.collection_path(TASKS_COLLECTION)
        await self._context.store.merge(path, task_id, {"status": column_id})
        return True
