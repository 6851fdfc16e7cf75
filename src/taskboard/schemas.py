from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional, Set, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .columns import is_reserved
from .models import ColumnDoc, TaskDoc
from .projection import BoardProjection, assignee_label
from .utils import generate_id

# Shared type for incoming dates which can be a date, datetime, or ISO8601 string
DateInput = Union[date, datetime, str]


def _parse_date(value: Optional[DateInput]) -> Optional[date]:
    """
    Internal helper to normalize startDate/endDate input into a date.
    - Empty strings and None become None (the field is cleared).
    - Datetimes are truncated to their date.
    - Strings are parsed as ISO dates, or ISO datetimes as a fallback.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return value.date()

    if isinstance(value, date):
        return value

    if isinstance(value, str):
        s = value.strip()
        if not s:
            return None
        try:
            return date.fromisoformat(s)
        except ValueError:
            try:
                return datetime.fromisoformat(s).date()
            except ValueError as e:
                raise ValueError(
                    "Invalid date format. Use an ISO8601 date (e.g., '2025-01-31')."
                ) from e

    raise ValueError("Invalid type for date; expected date, datetime, or ISO8601 string.")


def _strip_or_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    s = value.strip()
    return s or None


# PUBLIC_INTERFACE
class ChecklistItem(BaseModel):
    """
    A checklist entry embedded in a task.
    """

    id: str = Field(default_factory=generate_id, description="Identifier unique within the task")
    text: str = Field(..., description="Item label", max_length=500)
    completed: bool = Field(default=False, description="Completion flag")

    @field_validator("text")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return v.strip()


# PUBLIC_INTERFACE
class TaskCreate(BaseModel):
    """
    Schema for creating a new task.

    Empty titles are rejected by the task store rather than here, so the core
    raises the same ValidationError for API and library callers.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "title": "Write spec",
                "description": "Draft the board sync design",
                "startDate": "2025-02-01",
                "endDate": "2025-02-07",
                "assignedTo": "Ada",
                "checklist": [{"text": "Outline", "completed": False}],
            }
        },
    )

    title: str = Field(..., description="Short title for the task", max_length=200)
    description: Optional[str] = Field(default=None, description="Optional detailed description")
    start_date: Optional[date] = Field(default=None, alias="startDate", description="Start date (ISO8601)")
    end_date: Optional[date] = Field(default=None, alias="endDate", description="End date (ISO8601)")
    assigned_to: Optional[str] = Field(default=None, alias="assignedTo", description="Personnel name")
    checklist: List[ChecklistItem] = Field(default_factory=list, description="Ordered checklist")

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        return v.strip()

    @field_validator("description", "assigned_to")
    @classmethod
    def strip_optional(cls, v: Optional[str]) -> Optional[str]:
        return _strip_or_none(v)

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def parse_dates(cls, v: Optional[DateInput]) -> Optional[date]:
        """
        Normalize startDate/endDate from str/date/datetime to date.
        """
        return _parse_date(v)


# PUBLIC_INTERFACE
class TaskUpdate(TaskCreate):
    """
    Schema for editing a task. The whole editable record is sent; the column a
    task sits in is never part of an edit and can only change through a move.
    """


# PUBLIC_INTERFACE
class TaskOut(BaseModel):
    """
    Schema returned by the API for a task.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., description="Task id")
    title: str = Field(..., description="Short title")
    description: str = Field(default="", description="Description")
    start_date: Optional[date] = Field(default=None, alias="startDate")
    end_date: Optional[date] = Field(default=None, alias="endDate")
    assigned_to: Optional[str] = Field(default=None, alias="assignedTo")
    assignee_label: Optional[str] = Field(
        default=None,
        alias="assigneeLabel",
        description="assignedTo when it names current personnel, 'Unknown' when it does not",
    )
    checklist: List[ChecklistItem] = Field(default_factory=list)
    status: Optional[str] = Field(default=None, description="Id of the column holding the task")
    created_at: Optional[str] = Field(default=None, alias="createdAt")

    @classmethod
    def from_doc(cls, task: TaskDoc, personnel_names: Optional[Set[str]] = None) -> "TaskOut":
        """Render a task document; the assignee label needs the current personnel names."""
        return cls.model_validate(
            {**task, "assigneeLabel": assignee_label(task, personnel_names or set())}
        )


# PUBLIC_INTERFACE
class ColumnCreate(BaseModel):
    """Schema for adding a column."""

    model_config = ConfigDict(json_schema_extra={"example": {"title": "Review"}})

    title: str = Field(..., description="Column title", max_length=100)

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        return v.strip()


# PUBLIC_INTERFACE
class ColumnOut(BaseModel):
    """Schema returned by the API for a column."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    order: int
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    reserved: bool = Field(default=False, description="True for To Do / In Progress / Done")

    @classmethod
    def from_doc(cls, column: ColumnDoc) -> "ColumnOut":
        return cls.model_validate({**column, "reserved": is_reserved(column["title"])})


# PUBLIC_INTERFACE
class BoardColumnOut(ColumnOut):
    """A column of the board projection with the tasks it currently holds."""

    tasks: List[TaskOut] = Field(default_factory=list)


# PUBLIC_INTERFACE
class BoardOut(BaseModel):
    """The full board projection, columns left to right."""

    columns: List[BoardColumnOut]

    @classmethod
    def from_projection(cls, projection: BoardProjection, personnel_names: Set[str]) -> "BoardOut":
        return cls(
            columns=[
                BoardColumnOut.model_validate(
                    {
                        **col.column,
                        "reserved": is_reserved(col.title),
                        "tasks": [TaskOut.from_doc(t, personnel_names) for t in col.tasks],
                    }
                )
                for col in projection
            ]
        )


# PUBLIC_INTERFACE
class PersonnelCreate(BaseModel):
    """Schema for adding a person."""

    model_config = ConfigDict(json_schema_extra={"example": {"name": "Ada"}})

    name: str = Field(..., description="Display name", max_length=100)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return v.strip()


# PUBLIC_INTERFACE
class PersonnelOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    created_at: Optional[str] = Field(default=None, alias="createdAt")


# PUBLIC_INTERFACE
class MoveTask(BaseModel):
    """Target column of a drag-and-drop move."""

    model_config = ConfigDict(populate_by_name=True)

    column_id: str = Field(..., alias="columnId", description="Id of the target column")


# PUBLIC_INTERFACE
class NotificationOut(BaseModel):
    """A recoverable error reported to the user."""

    model_config = ConfigDict(populate_by_name=True)

    level: str
    message: str
    created_at: str = Field(..., alias="createdAt")
