import asyncio
import os
from typing import Optional

import pytest
from fastapi.testclient import TestClient

# Ensure we default to memory backend for tests to avoid filesystem dependencies
os.environ.setdefault("PERSISTENCE_BACKEND", "memory")

from taskboard.auth import LocalIdentityProvider  # noqa: E402
from taskboard.errors import RemoteWriteError  # noqa: E402
from taskboard.main import create_app  # noqa: E402
from taskboard.repositories import InMemoryDocumentStore  # noqa: E402
from taskboard.session import BoardSession  # noqa: E402
from taskboard.settings import Settings  # noqa: E402


class FlakyDocumentStore(InMemoryDocumentStore):
    """
    In-memory store whose writes can be made to fail, or to hang until a gate
    is opened so the state in between can be inspected.
    """

    def __init__(self) -> None:
        super().__init__()
        self.fail_creates = False
        self.fail_merges = False
        self.fail_deletes = False
        self.gate: Optional[asyncio.Event] = None
        self.merge_calls = 0

    async def create(self, path, record):
        if self.fail_creates:
            raise RemoteWriteError(f"create in {path} rejected")
        return await super().create(path, record)

    async def merge(self, path, doc_id, partial):
        self.merge_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_merges:
            raise RemoteWriteError(f"merge of {path}/{doc_id} rejected")
        await super().merge(path, doc_id, partial)

    async def delete(self, path, doc_id):
        if self.fail_deletes:
            raise RemoteWriteError(f"delete of {path}/{doc_id} rejected")
        await super().delete(path, doc_id)


async def open_session(store=None, user_id="tester", **kwargs) -> BoardSession:
    """Open a session on `store` and wait for the board to load."""
    session = BoardSession.in_memory(
        store=store if store is not None else InMemoryDocumentStore(),
        identity=LocalIdentityProvider(user_id),
        **kwargs,
    )
    await session.open()
    await session.settle()
    return session


@pytest.fixture
def client():
    app = create_app(Settings(board_user_id="api-user"))
    with TestClient(app) as c:
        yield c


@pytest.fixture
def flaky_store():
    return FlakyDocumentStore()


@pytest.fixture
def flaky_client(flaky_store):
    def _session_factory(settings):
        return BoardSession.in_memory(
            store=flaky_store,
            identity=LocalIdentityProvider(settings.board_user_id),
            app_id=settings.app_id,
        )

    app = create_app(Settings(board_user_id="api-user"), session_factory=_session_factory)
    with TestClient(app) as c:
        yield c
