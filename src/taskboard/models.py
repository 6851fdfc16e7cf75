from __future__ import annotations

from typing import List, Optional, TypedDict


# PUBLIC_INTERFACE
class ChecklistItemDoc(TypedDict):
    """
    A checklist entry embedded in a task document.

    Fields:
    - id: Identifier unique within the parent task
    - text: Item label
    - completed: Completion flag
    """

    id: str
    text: str
    completed: bool


# PUBLIC_INTERFACE
class ColumnDoc(TypedDict):
    """
    A board column as stored in the ``boardColumns`` collection.

    Fields:
    - id: Document id generated by the store
    - title: Display title; "To Do", "In Progress" and "Done" are reserved
    - order: Left-to-right sort key (unique, gaps allowed)
    - createdAt: ISO-8601 creation timestamp
    """

    id: str
    title: str
    order: int
    createdAt: Optional[str]


# PUBLIC_INTERFACE
class TaskDoc(TypedDict):
    """
    A task as stored in the ``tasks`` collection.

    Fields:
    - id: Document id generated by the store
    - title: Short title (never empty)
    - description: Free text, defaulted to a placeholder
    - startDate / endDate: Optional ISO dates (YYYY-MM-DD)
    - assignedTo: Optional personnel name (weak, by-name reference)
    - checklist: Ordered embedded checklist items
    - status: Id of the column the task belongs to
    - createdAt: ISO-8601 creation timestamp
    """

    id: str
    title: str
    description: str
    startDate: Optional[str]
    endDate: Optional[str]
    assignedTo: Optional[str]
    checklist: List[ChecklistItemDoc]
    status: Optional[str]
    createdAt: Optional[str]


# PUBLIC_INTERFACE
class PersonnelDoc(TypedDict):
    """A person tasks can be assigned to, stored in the ``personnel`` collection."""

    id: str
    name: str
    createdAt: Optional[str]
