"""
Column store: the ordered list of board columns for the signed-in user.

The three reserved columns are created on the first snapshot of a session if
they are missing, and can never be deleted. Deleting any other column first
relocates its tasks to "To Do".
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Iterable, List, Optional

from .context import COLUMNS_COLLECTION, TASKS_COLLECTION, BoardContext
from .errors import BoardError, NotFoundError, ProtectedEntityError, ValidationError
from .models import ColumnDoc, TaskDoc
from .repositories import Snapshot, Subscription, WriteOp
from .utils import sort_documents, utc_now_iso

logger = logging.getLogger(__name__)

TODO_TITLE = "To Do"
RESERVED_COLUMN_TITLES = (TODO_TITLE, "In Progress", "Done")


def is_reserved(title: str) -> bool:
    return title in RESERVED_COLUMN_TITLES


def _to_column(doc: dict) -> ColumnDoc:
    return {
        "id": str(doc["id"]),
        "title": str(doc.get("title") or ""),
        "order": int(doc.get("order") or 0),
        "createdAt": doc.get("createdAt"),
    }


class ColumnStore:
    """Owns the user's columns, kept current by a snapshot subscription."""

    def __init__(self, context: BoardContext) -> None:
        self._context = context
        self._columns: List[ColumnDoc] = []
        self._subscription: Optional[Subscription] = None
        self._bootstrap_task: Optional[asyncio.Task] = None
        self._bootstrapped = False
        self._ready = asyncio.Event()
        self._listeners: List[Callable[[], None]] = []
        self._error_listeners: List[Callable[[BoardError], None]] = []
        # Highest order handed out by add_column; only moves up until close
        self._last_assigned_order = -1

    @property
    def columns(self) -> List[ColumnDoc]:
        """Columns sorted by order, left to right."""
        return [dict(c) for c in self._columns]  # type: ignore[misc]

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    def add_listener(self, callback: Callable[[], None]) -> None:
        """Call `callback` after every change of the loaded column set."""
        self._listeners.append(callback)

    def add_error_listener(self, callback: Callable[[BoardError], None]) -> None:
        """Call `callback` when the subscription cannot be read."""
        self._error_listeners.append(callback)

    def get(self, column_id: str) -> Optional[ColumnDoc]:
        for col in self._columns:
            if col["id"] == column_id:
                return dict(col)  # type: ignore[return-value]
        return None

    def find_by_title(self, title: str) -> Optional[ColumnDoc]:
        for col in self._columns:
            if col["title"] == title:
                return dict(col)  # type: ignore[return-value]
        return None

    @property
    def todo_column_id(self) -> Optional[str]:
        todo = self.find_by_title(TODO_TITLE)
        return todo["id"] if todo else None

    # PUBLIC_INTERFACE
    async def open(self) -> None:
        """Subscribe to the column collection. Bootstrapping starts on the first snapshot."""
        self._ready.clear()
        self._bootstrapped = False
        path = self._context.collection_path(COLUMNS_COLLECTION)
        self._subscription = self._context.store.subscribe(
            path, self._on_snapshot, order_by="order", on_error=self._on_error
        )

    async def wait_ready(self) -> None:
        """Wait until the first snapshot arrived and default columns are ensured."""
        await self._ready.wait()

    async def close(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
        if self._bootstrap_task is not None and not self._bootstrap_task.done():
            self._bootstrap_task.cancel()
        self._bootstrap_task = None
        self._columns = []
        self._last_assigned_order = -1

    def _on_snapshot(self, snapshot: Snapshot) -> None:
        self._set_columns(snapshot.docs)
        if not self._bootstrapped:
            self._bootstrapped = True
            self._bootstrap_task = asyncio.get_running_loop().create_task(self._bootstrap())

    def _on_error(self, exc: BoardError) -> None:
        if self._error_listeners:
            for callback in list(self._error_listeners):
                callback(exc)
        else:
            logger.error("Error fetching columns: %s", exc)
        # Unblock the task store even though the board stays empty
        self._ready.set()

    async def _bootstrap(self) -> None:
        try:
            await self.ensure_default_columns()
        except BoardError as exc:
            logger.error("Failed to create default columns: %s", exc)
        finally:
            self._ready.set()

    def _set_columns(self, docs: Iterable[dict]) -> None:
        self._columns = sort_documents([_to_column(d) for d in docs], "order")  # type: ignore[arg-type]
        for callback in list(self._listeners):
            callback()

    # PUBLIC_INTERFACE
    async def ensure_default_columns(self) -> List[ColumnDoc]:
        """
        Create whichever reserved columns are missing, then re-read the full set.

        A missing reserved column takes its fixed index (0, 1, 2) as order
        unless another column already uses it, in which case it goes after
        the current maximum. Returns the resulting columns.
        """
        path = self._context.collection_path(COLUMNS_COLLECTION)
        titles = {c["title"] for c in self._columns}
        used_orders = {c["order"] for c in self._columns}

        to_create = []
        for index, title in enumerate(RESERVED_COLUMN_TITLES):
            if title in titles:
                continue
            order = index if index not in used_orders else max(used_orders) + 1
            used_orders.add(order)
            to_create.append({"title": title, "order": order, "createdAt": utc_now_iso()})

        if not to_create:
            return self.columns

        logger.info("Creating missing default columns: %s", ", ".join(c["title"] for c in to_create))
        await self._context.store.batch([WriteOp.create(path, c) for c in to_create])
        docs = await self._context.store.read(path, order_by="order")
        self._set_columns(docs)
        return self.columns

    # PUBLIC_INTERFACE
    async def add_column(self, title: str) -> ColumnDoc:
        """Append a column after the right-most one."""
        title = (title or "").strip()
        if not title:
            raise ValidationError("Column title cannot be empty.")
        path = self._context.collection_path(COLUMNS_COLLECTION)

        highest = max((c["order"] for c in self._columns), default=-1)
        order = max(highest, self._last_assigned_order) + 1
        self._last_assigned_order = order
        record = {"title": title, "order": order, "createdAt": utc_now_iso()}
        column_id = await self._context.store.create(path, record)
        return {"id": column_id, **record}  # type: ignore[return-value]

    # PUBLIC_INTERFACE
    async def delete_column(self, column_id: str, tasks: Iterable[TaskDoc]) -> int:
        """
        Delete a non-reserved column after moving its tasks to "To Do".

        `tasks` is the currently loaded task set; those whose status is this
        column are relocated with one merge-write each, all awaited before the
        column document is deleted. Returns the number of relocated tasks.
        """
        column = self.get(column_id)
        if column is None:
            raise NotFoundError(f"Column {column_id} not found")
        if is_reserved(column["title"]):
            raise ProtectedEntityError(f'The core column "{column["title"]}" cannot be deleted.')
        columns_path = self._context.collection_path(COLUMNS_COLLECTION)
        tasks_path = self._context.collection_path(TASKS_COLLECTION)

        moved = 0
        todo_id = self.todo_column_id
        if todo_id is not None:
            writes = [
                WriteOp.merge(tasks_path, task["id"], {"status": todo_id})
                for task in tasks
                if task.get("status") == column_id
            ]
            if writes:
                await self._context.store.batch(writes)
            moved = len(writes)
            logger.info('Moved %d tasks to "%s" column.', moved, TODO_TITLE)
        else:
            logger.warning('"%s" column not found. Tasks from deleted column might become unassigned.', TODO_TITLE)

        await self._context.store.delete(columns_path, column_id)
        logger.info('Column "%s" deleted.', column["title"])
        return moved
