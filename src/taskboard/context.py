from __future__ import annotations

from .auth import IdentityProvider
from .errors import AuthError
from .repositories import DocumentStore

COLUMNS_COLLECTION = "boardColumns"
TASKS_COLLECTION = "tasks"
PERSONNEL_COLLECTION = "personnel"


# PUBLIC_INTERFACE
class BoardContext:
    """
    Connection handles shared by the stores of one board session.

    Constructed explicitly and passed to every store so tests can swap in
    their own DocumentStore or IdentityProvider. open() resolves the identity;
    close() releases the store.
    """

    def __init__(self, store: DocumentStore, identity: IdentityProvider, app_id: str = "default-kanban-app") -> None:
        self.store = store
        self.identity = identity
        self.app_id = app_id
        self.is_open = False

    async def open(self) -> str:
        """Open the store and resolve the identity. Returns the user id."""
        await self.store.open()
        user_id = await self.identity.sign_in()
        self.is_open = True
        return user_id

    async def close(self) -> None:
        if not self.is_open:
            return
        self.is_open = False
        await self.store.close()

    @property
    def user_id(self):
        return self.identity.current_user_id()

    def require_user_id(self) -> str:
        """Return the resolved user id or raise AuthError."""
        user_id = self.identity.current_user_id()
        if not user_id:
            raise AuthError("User not authenticated")
        return user_id

    def collection_path(self, collection: str) -> str:
        """Per-user path of a collection, e.g. artifacts/<app>/users/<uid>/tasks."""
        return f"artifacts/{self.app_id}/users/{self.require_user_id()}/{collection}"
