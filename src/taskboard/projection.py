"""
Board projection: the per-column view derived from columns and tasks.

The projection is never persisted and never patched from the stores; it is
rebuilt in full from the two loaded collections whenever either changes. The
only in-place edits are the optimistic ones the mutation engine applies while
a write is in flight.
"""
from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from .columns import TODO_TITLE
from .models import ColumnDoc, TaskDoc
from .utils import sort_documents

UNKNOWN_ASSIGNEE = "Unknown"


@dataclass
class ProjectedColumn:
    column: ColumnDoc
    tasks: List[TaskDoc] = field(default_factory=list)

    @property
    def id(self) -> str:
        return self.column["id"]

    @property
    def title(self) -> str:
        return self.column["title"]

    @property
    def order(self) -> int:
        return self.column["order"]


class BoardProjection:
    """Columns left to right, each with its tasks in arrival order."""

    def __init__(self, columns: Optional[List[ProjectedColumn]] = None) -> None:
        self.columns: List[ProjectedColumn] = list(columns or [])

    def __iter__(self):
        return iter(self.columns)

    def __len__(self) -> int:
        return len(self.columns)

    def __getitem__(self, column_id: str) -> ProjectedColumn:
        col = self.get(column_id)
        if col is None:
            raise KeyError(column_id)
        return col

    def get(self, column_id: str) -> Optional[ProjectedColumn]:
        for col in self.columns:
            if col.id == column_id:
                return col
        return None

    def find_by_title(self, title: str) -> Optional[ProjectedColumn]:
        for col in self.columns:
            if col.title == title:
                return col
        return None

    def column_of(self, task_id: str) -> Optional[str]:
        """Id of the column the task is shown in, or None when it is not shown."""
        for col in self.columns:
            if any(t["id"] == task_id for t in col.tasks):
                return col.id
        return None

    def find_task(self, task_id: str) -> Optional[TaskDoc]:
        for col in self.columns:
            for task in col.tasks:
                if task["id"] == task_id:
                    return task
        return None

    def task_ids(self, column_id: str) -> List[str]:
        return [t["id"] for t in self[column_id].tasks]

    def layout(self) -> Dict[str, List[str]]:
        """column id -> task ids, handy for comparing projections."""
        return {col.id: [t["id"] for t in col.tasks] for col in self.columns}

    def copy(self) -> "BoardProjection":
        return BoardProjection(
            [ProjectedColumn(dict(c.column), copy.deepcopy(c.tasks)) for c in self.columns]  # type: ignore[arg-type]
        )

    def move(self, task_id: str, source_id: str, target_id: str) -> bool:
        """
        Splice a task out of the source column and append it to the target
        with its status pointed at the target. Returns False if either column
        or the task is missing, leaving the projection untouched.
        """
        source = self.get(source_id)
        target = self.get(target_id)
        if source is None or target is None:
            return False
        for index, task in enumerate(source.tasks):
            if task["id"] == task_id:
                moved = source.tasks.pop(index)
                target.tasks.append({**moved, "status": target_id})  # type: ignore[typeddict-item]
                return True
        return False

    def replace_task(self, task: TaskDoc) -> bool:
        for col in self.columns:
            for index, existing in enumerate(col.tasks):
                if existing["id"] == task["id"]:
                    col.tasks[index] = task
                    return True
        return False


def fallback_column(columns: List[ColumnDoc]) -> Optional[ColumnDoc]:
    """Where tasks with an unknown status go: "To Do", else the left-most column."""
    for col in columns:
        if col["title"] == TODO_TITLE:
            return col
    if not columns:
        return None
    return min(columns, key=lambda c: c["order"])


# PUBLIC_INTERFACE
def build_projection(columns: Iterable[ColumnDoc], tasks: Iterable[TaskDoc]) -> BoardProjection:
    """
    Group tasks under their columns.

    A task whose status names no loaded column is shown in the fallback column;
    with no columns at all it is left out (a column is never invented).
    """
    ordered: List[ColumnDoc] = sort_documents(columns, "order")  # type: ignore[arg-type, assignment]
    projected = [ProjectedColumn(dict(c)) for c in ordered]  # type: ignore[arg-type]
    by_id = {p.id: p for p in projected}
    fallback = fallback_column(ordered)

    for task in tasks:
        target = by_id.get(task.get("status") or "")
        if target is None and fallback is not None:
            target = by_id[fallback["id"]]
        if target is not None:
            target.tasks.append(task)
    return BoardProjection(projected)


# PUBLIC_INTERFACE
def assignee_label(task: TaskDoc, personnel_names: Set[str]) -> Optional[str]:
    """
    Display name for a task's assignee: the name itself when it matches
    current personnel, "Unknown" when it does not, None when unassigned.
    """
    name = task.get("assignedTo")
    if not name:
        return None
    return name if name in personnel_names else UNKNOWN_ASSIGNEE
