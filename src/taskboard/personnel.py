from __future__ import annotations

import logging
from typing import Callable, List, Optional, Set

from .context import PERSONNEL_COLLECTION, BoardContext
from .errors import BoardError, ValidationError
from .models import PersonnelDoc
from .repositories import Snapshot, Subscription
from .utils import utc_now_iso

logger = logging.getLogger(__name__)


class PersonnelStore:
    """People tasks can be assigned to. Loads independently of the board."""

    def __init__(self, context: BoardContext) -> None:
        self._context = context
        self._personnel: List[PersonnelDoc] = []
        self._subscription: Optional[Subscription] = None
        self._listeners: List[Callable[[], None]] = []
        self._error_listeners: List[Callable[[BoardError], None]] = []
        self.loaded = False

    @property
    def personnel(self) -> List[PersonnelDoc]:
        return [dict(p) for p in self._personnel]  # type: ignore[misc]

    @property
    def names(self) -> Set[str]:
        return {p["name"] for p in self._personnel}

    def add_listener(self, callback: Callable[[], None]) -> None:
        self._listeners.append(callback)

    def add_error_listener(self, callback: Callable[[BoardError], None]) -> None:
        """Call `callback` when the subscription cannot be read."""
        self._error_listeners.append(callback)

    async def open(self) -> None:
        path = self._context.collection_path(PERSONNEL_COLLECTION)
        self._subscription = self._context.store.subscribe(path, self._on_snapshot, on_error=self._on_error)

    async def close(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
        self._personnel = []
        self.loaded = False

    def _on_snapshot(self, snapshot: Snapshot) -> None:
        self._personnel = [
            {"id": str(d["id"]), "name": str(d.get("name") or ""), "createdAt": d.get("createdAt")}
            for d in snapshot.docs
        ]
        self.loaded = True
        for callback in list(self._listeners):
            callback()

    def _on_error(self, exc: BoardError) -> None:
        if self._error_listeners:
            for callback in list(self._error_listeners):
                callback(exc)
        else:
            logger.error("Error fetching personnel: %s", exc)

    # PUBLIC_INTERFACE
    async def add_personnel(self, name: str) -> PersonnelDoc:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Personnel name cannot be empty.")
        path = self._context.collection_path(PERSONNEL_COLLECTION)
        record = {"name": name, "createdAt": utc_now_iso()}
        person_id = await self._context.store.create(path, record)
        return {"id": person_id, **record}  # type: ignore[return-value]

    # PUBLIC_INTERFACE
    async def delete_personnel(self, person_id: str) -> None:
        """Delete a person. Tasks assigned to them keep the stale name."""
        path = self._context.collection_path(PERSONNEL_COLLECTION)
        await self._context.store.delete(path, person_id)
