"""
Mutation engine: the write path of the board.

Every user action goes through here. Moves and checklist toggles are applied
to the projection before the remote write is issued; everything else waits
for the next snapshot. Remote failures are logged, recorded as notifications
and re-raised; what happens to an already-applied optimistic change is decided
by the rollback policy.
"""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Deque, List, Optional, TypeVar

from .columns import ColumnStore
from .errors import BoardError, NotFoundError, RemoteError
from .models import ColumnDoc, PersonnelDoc, TaskDoc
from .personnel import PersonnelStore
from .projection import BoardProjection, build_projection
from .schemas import TaskCreate, TaskUpdate
from .tasks import TaskStore, toggle_item
from .utils import utc_now_iso

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DragState(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    DROPPED = "dropped"


class RollbackPolicy(str, Enum):
    """
    What to do with an optimistic change whose remote write failed.

    RECONCILE keeps it on screen until the next authoritative snapshot;
    ROLLBACK rebuilds the projection from the stores immediately.
    """

    RECONCILE = "reconcile"
    ROLLBACK = "rollback"


@dataclass(frozen=True)
class Notification:
    level: str
    message: str
    created_at: str


ErrorListener = Callable[[Notification, BaseException], None]


# PUBLIC_INTERFACE
class MutationEngine:
    """
    Holds the board projection and applies user actions to it and to the stores.

    The projection is rebuilt from the column and task stores whenever either
    reports a change.
    """

    def __init__(
        self,
        columns: ColumnStore,
        tasks: TaskStore,
        personnel: PersonnelStore,
        rollback_policy: RollbackPolicy = RollbackPolicy.RECONCILE,
        max_notifications: int = 50,
    ) -> None:
        self._columns = columns
        self._tasks = tasks
        self._personnel = personnel
        self.rollback_policy = RollbackPolicy(rollback_policy)
        self._projection = BoardProjection()
        self._projection_listeners: List[Callable[[BoardProjection], None]] = []
        self._error_listeners: List[ErrorListener] = []
        self.notifications: Deque[Notification] = deque(maxlen=max_notifications)

        self.state = DragState.IDLE
        self.dragged_task_id: Optional[str] = None
        self.drag_source_id: Optional[str] = None
        self.drop_target_id: Optional[str] = None

        columns.add_listener(self.rebuild)
        tasks.add_listener(self.rebuild)
        columns.add_error_listener(lambda exc: self._report("Error fetching columns.", exc))
        tasks.add_error_listener(lambda exc: self._report("Error fetching tasks.", exc))
        personnel.add_error_listener(lambda exc: self._report("Error fetching personnel.", exc))

    @property
    def projection(self) -> BoardProjection:
        return self._projection

    def on_projection_change(self, callback: Callable[[BoardProjection], None]) -> None:
        self._projection_listeners.append(callback)

    def on_error(self, callback: ErrorListener) -> None:
        """Register a listener for reported remote failures."""
        self._error_listeners.append(callback)

    def rebuild(self) -> BoardProjection:
        """Recompute the projection from the loaded columns and tasks."""
        self._set_projection(build_projection(self._columns.columns, self._tasks.tasks))
        return self._projection

    def _set_projection(self, projection: BoardProjection) -> None:
        self._projection = projection
        for callback in list(self._projection_listeners):
            callback(projection)

    def _report(self, message: str, exc: BaseException) -> Notification:
        logger.error("%s: %s", message, exc)
        notification = Notification(level="error", message=message, created_at=utc_now_iso())
        self.notifications.append(notification)
        for callback in list(self._error_listeners):
            try:
                callback(notification, exc)
            except Exception:
                logger.exception("Error listener failed")
        return notification

    async def _guard(self, message: str, operation: Awaitable[T]) -> T:
        try:
            return await operation
        except RemoteError as exc:
            self._report(message, exc)
            raise

    def _after_failed_optimistic_write(self) -> None:
        if self.rollback_policy is RollbackPolicy.ROLLBACK:
            self.rebuild()

    # ── Drag and drop ────────────────────────────────────────────────────────

    # PUBLIC_INTERFACE
    def start_drag(self, task_id: str) -> str:
        """Begin dragging a task; returns the id of the column it is dragged from."""
        source = self._projection.column_of(task_id)
        if source is None:
            raise NotFoundError(f"Task {task_id} is not on the board")
        self.state = DragState.DRAGGING
        self.dragged_task_id = task_id
        self.drag_source_id = source
        self.drop_target_id = None
        return source

    # PUBLIC_INTERFACE
    def cancel_drag(self) -> None:
        """The gesture ended outside any column: forget it, nothing is written."""
        self._reset_drag()

    def _reset_drag(self) -> None:
        self.state = DragState.IDLE
        self.dragged_task_id = None
        self.drag_source_id = None
        self.drop_target_id = None

    # PUBLIC_INTERFACE
    async def drop(self, target_column_id: str) -> bool:
        """
        Finish the current drag on a column.

        Dropping on the source column does nothing. Otherwise the task is moved
        in the projection right away and the move is then written to the store.
        Returns True when a move was issued.
        """
        if self.state is not DragState.DRAGGING or self.dragged_task_id is None:
            return False
        task_id, source_id = self.dragged_task_id, self.drag_source_id or ""
        self.state = DragState.DROPPED
        self.drop_target_id = target_column_id
        if source_id == target_column_id:
            self._reset_drag()
            return False
        if self._projection.get(target_column_id) is None:
            self._reset_drag()
            raise NotFoundError(f"Column {target_column_id} not found")

        optimistic = self._projection.copy()
        optimistic.move(task_id, source_id, target_column_id)
        self._set_projection(optimistic)
        # A new drag may start while the write is pending
        self._reset_drag()

        try:
            await self._tasks.move_task(task_id, target_column_id)
        except RemoteError as exc:
            self._report("Failed to update task status. Please try again.", exc)
            self._after_failed_optimistic_write()
            raise
        except BoardError:
            self.rebuild()
            raise
        return True

    # PUBLIC_INTERFACE
    async def move_task(self, task_id: str, target_column_id: str) -> bool:
        """A complete drag gesture: start on the task, drop on the target column."""
        self.start_drag(task_id)
        return await self.drop(target_column_id)

    # ── Tasks ────────────────────────────────────────────────────────────────

    async def add_task(self, data: TaskCreate) -> TaskDoc:
        return await self._guard("Failed to add task.", self._tasks.add_task(data))

    async def update_task(self, task_id: str, data: TaskUpdate) -> TaskDoc:
        return await self._guard("Failed to update task.", self._tasks.update_task(task_id, data))

    async def delete_task(self, task_id: str) -> None:
        await self._guard("Failed to delete task.", self._tasks.delete_task(task_id))

    # PUBLIC_INTERFACE
    async def toggle_checklist_item(self, task_id: str, item_id: str):
        """Flip a checklist item on screen, then write the whole checklist."""
        shown = self._projection.find_task(task_id)
        if shown is None:
            raise NotFoundError(f"Task {task_id} is not on the board")
        checklist = toggle_item(shown["checklist"], item_id)

        optimistic = self._projection.copy()
        optimistic.replace_task({**shown, "checklist": checklist})  # type: ignore[typeddict-item]
        self._set_projection(optimistic)

        try:
            return await self._tasks.toggle_checklist_item(task_id, item_id, shown["checklist"])
        except RemoteError as exc:
            self._report("Failed to update checklist item. Please try again.", exc)
            self._after_failed_optimistic_write()
            raise

    # ── Columns ──────────────────────────────────────────────────────────────

    async def add_column(self, title: str) -> ColumnDoc:
        return await self._guard("Failed to add column.", self._columns.add_column(title))

    async def delete_column(self, column_id: str) -> int:
        """Delete a column, relocating its tasks; returns how many were moved."""
        return await self._guard(
            "Failed to delete column.",
            self._columns.delete_column(column_id, self._tasks.tasks),
        )

    # ── Personnel ────────────────────────────────────────────────────────────

    async def add_personnel(self, name: str) -> PersonnelDoc:
        return await self._guard("Failed to add personnel.", self._personnel.add_personnel(name))

    async def delete_personnel(self, person_id: str) -> None:
        await self._guard("Failed to delete personnel.", self._personnel.delete_personnel(person_id))
