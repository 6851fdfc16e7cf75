from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .auth import IdentityProvider, LocalIdentityProvider
from .columns import ColumnStore
from .context import BoardContext
from .engine import MutationEngine, RollbackPolicy
from .personnel import PersonnelStore
from .repositories import DocumentStore, InMemoryDocumentStore
from .tasks import TaskStore

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
class BoardSession:
    """
    One client's view of a board.

    open() resolves the identity, subscribes to columns (bootstrapping the
    reserved ones), subscribes to personnel straight away and to tasks once
    the columns are ready. When the identity changes the stores are
    re-opened for the new user.
    """

    def __init__(
        self,
        context: BoardContext,
        rollback_policy: RollbackPolicy = RollbackPolicy.RECONCILE,
    ) -> None:
        self.context = context
        self.columns = ColumnStore(context)
        self.tasks = TaskStore(context, self.columns)
        self.personnel = PersonnelStore(context)
        self.engine = MutationEngine(self.columns, self.tasks, self.personnel, rollback_policy=rollback_policy)
        self._unsubscribe_identity = None
        self._restart_task: Optional[asyncio.Task] = None
        self._user_id: Optional[str] = None

    @classmethod
    def in_memory(
        cls,
        store: Optional[DocumentStore] = None,
        identity: Optional[IdentityProvider] = None,
        app_id: str = "default-kanban-app",
        rollback_policy: RollbackPolicy = RollbackPolicy.RECONCILE,
    ) -> "BoardSession":
        """Session on a local store and anonymous identity unless given others."""
        context = BoardContext(store or InMemoryDocumentStore(), identity or LocalIdentityProvider(), app_id)
        return cls(context, rollback_policy=rollback_policy)

    @property
    def user_id(self) -> Optional[str]:
        return self.context.user_id

    @property
    def projection(self):
        return self.engine.projection

    # PUBLIC_INTERFACE
    async def open(self) -> None:
        self._user_id = await self.context.open()
        await self._open_stores()
        self._unsubscribe_identity = self.context.identity.on_identity_change(self._on_identity_change)

    async def _open_stores(self) -> None:
        await self.columns.open()
        await self.personnel.open()
        await self.tasks.open()
        await self.settle()

    async def _close_stores(self) -> None:
        await self.tasks.close()
        await self.personnel.close()
        await self.columns.close()
        self.engine.cancel_drag()
        self.engine.rebuild()

    # PUBLIC_INTERFACE
    async def close(self) -> None:
        if self._unsubscribe_identity is not None:
            self._unsubscribe_identity()
            self._unsubscribe_identity = None
        if self._restart_task is not None and not self._restart_task.done():
            self._restart_task.cancel()
        await self._close_stores()
        await self.context.close()

    # PUBLIC_INTERFACE
    async def settle(self) -> None:
        """Wait until every pending snapshot has been applied to the stores and projection."""
        restart = self._restart_task
        if restart is not None and not restart.done() and restart is not asyncio.current_task():
            await restart
        await self.context.store.idle()

    def _on_identity_change(self, user_id: Optional[str]) -> None:
        if user_id == self._user_id:
            return
        self._user_id = user_id
        logger.info("Identity changed to %s, reloading board", user_id)
        if self._restart_task is not None and not self._restart_task.done():
            self._restart_task.cancel()
        self._restart_task = asyncio.get_running_loop().create_task(self._restart(user_id))

    async def _restart(self, user_id: Optional[str]) -> None:
        await self._close_stores()
        if user_id is not None:
            await self._open_stores()
