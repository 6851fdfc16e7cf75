from __future__ import annotations

import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

from .errors import RemoteReadError, RemoteWriteError
from .settings import Settings, get_settings
from .utils import generate_id, sort_documents

logger = logging.getLogger(__name__)

Document = Dict[str, Any]


@dataclass(frozen=True)
class Snapshot:
    """
    The full contents of a collection at delivery time.

    Every document carries its store-generated id under the "id" key.
    """

    path: str
    docs: List[Document]

    def __iter__(self) -> Iterator[Document]:
        return iter(self.docs)

    def __len__(self) -> int:
        return len(self.docs)


SnapshotCallback = Callable[[Snapshot], None]
ErrorCallback = Callable[[RemoteReadError], None]


# PUBLIC_INTERFACE
class Subscription:
    """
    Cancellable handle returned by DocumentStore.subscribe().

    The callback receives the latest snapshot of the collection once right
    after subscribing and again after every write to it. Deliveries are
    queued on the running event loop and coalesced, so a slow consumer only
    ever sees the newest state.
    """

    def __init__(
        self,
        store: "DocumentStore",
        path: str,
        callback: SnapshotCallback,
        order_by: Optional[str] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self.path = path
        self.order_by = order_by
        self._store = store
        self._callback = callback
        self._on_error = on_error
        self._dirty = False
        self._task: Optional[asyncio.Task] = None
        self.active = True

    def cancel(self) -> None:
        """Stop receiving snapshots. Safe to call more than once."""
        if not self.active:
            return
        self.active = False
        self._store._remove_subscription(self)
        if self._task is not None and not self._task.done():
            self._task.cancel()


@dataclass(frozen=True)
class WriteOp:
    """One independent write inside a DocumentStore.batch() call."""

    kind: str  # create | merge | delete
    path: str
    doc_id: Optional[str] = None
    data: Optional[Document] = None

    @classmethod
    def create(cls, path: str, data: Document) -> "WriteOp":
        return cls("create", path, None, data)

    @classmethod
    def merge(cls, path: str, doc_id: str, data: Document) -> "WriteOp":
        return cls("merge", path, doc_id, data)

    @classmethod
    def delete(cls, path: str, doc_id: str) -> "WriteOp":
        return cls("delete", path, doc_id)


# PUBLIC_INTERFACE
class DocumentStore(ABC):
    """
    Abstract contract for the remote per-user document store.

    Concrete backends implement read/create/merge/delete; subscription
    bookkeeping, snapshot delivery and batching are shared here.
    """

    def __init__(self) -> None:
        self._subscriptions: Dict[str, List[Subscription]] = {}

    async def open(self) -> None:
        """Acquire backend resources. No-op by default."""

    async def close(self) -> None:
        """Cancel every subscription and release backend resources."""
        for subs in list(self._subscriptions.values()):
            for sub in list(subs):
                sub.cancel()
        self._subscriptions.clear()

    @abstractmethod
    async def read(self, path: str, order_by: Optional[str] = None) -> List[Document]:
        """Return all documents of a collection, optionally sorted ascending by a field."""

    @abstractmethod
    async def create(self, path: str, record: Document) -> str:
        """Insert a new document and return its generated id."""

    @abstractmethod
    async def merge(self, path: str, doc_id: str, partial: Document) -> None:
        """Shallow-merge fields into a document, creating it if absent."""

    @abstractmethod
    async def delete(self, path: str, doc_id: str) -> None:
        """Delete a document. Deleting a missing document is not an error."""

    async def batch(self, writes: Sequence[WriteOp]) -> List[Any]:
        """
        Issue independent writes concurrently and wait for all of them.

        This is not a transaction: every write is attempted, successful ones
        stay applied, and RemoteWriteError is raised afterwards if any failed.
        Returns the per-write results (generated ids for creates, None otherwise).
        """
        results = await asyncio.gather(*(self._apply(op) for op in writes), return_exceptions=True)
        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            raise RemoteWriteError(
                f"{len(failures)} of {len(writes)} batched writes failed: {failures[0]}"
            ) from failures[0]
        return results

    async def _apply(self, op: WriteOp) -> Any:
        if op.kind == "create":
            return await self.create(op.path, op.data or {})
        if op.kind == "merge":
            return await self.merge(op.path, op.doc_id or "", op.data or {})
        if op.kind == "delete":
            return await self.delete(op.path, op.doc_id or "")
        raise ValueError(f"Unknown write kind: {op.kind}")

    # PUBLIC_INTERFACE
    def subscribe(
        self,
        path: str,
        callback: SnapshotCallback,
        order_by: Optional[str] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        """
        Register a snapshot listener on a collection.

        Must be called from within a running event loop. The initial snapshot
        is delivered on a later loop iteration, never synchronously.
        """
        sub = Subscription(self, path, callback, order_by=order_by, on_error=on_error)
        self._subscriptions.setdefault(path, []).append(sub)
        self._schedule(sub)
        return sub

    async def idle(self) -> None:
        """Wait until every queued snapshot delivery has run."""
        while True:
            running = [
                s._task
                for subs in self._subscriptions.values()
                for s in subs
                if s._task is not None and not s._task.done()
            ]
            if not running:
                return
            await asyncio.gather(*running, return_exceptions=True)

    def _notify(self, path: str) -> None:
        for sub in list(self._subscriptions.get(path, [])):
            self._schedule(sub)

    def _schedule(self, sub: Subscription) -> None:
        sub._dirty = True
        if sub._task is None or sub._task.done():
            sub._task = asyncio.get_running_loop().create_task(self._deliver(sub))

    async def _deliver(self, sub: Subscription) -> None:
        while sub.active and sub._dirty:
            sub._dirty = False
            try:
                docs = await self.read(sub.path, order_by=sub.order_by)
            except RemoteReadError as exc:
                if sub._on_error is not None:
                    sub._on_error(exc)
                else:
                    logger.error("Snapshot read for %s failed: %s", sub.path, exc)
                return
            if not sub.active:
                return
            try:
                sub._callback(Snapshot(sub.path, docs))
            except Exception:
                # One broken listener must not stop delivery to the others
                logger.exception("Snapshot listener for %s failed", sub.path)

    def _remove_subscription(self, sub: Subscription) -> None:
        subs = self._subscriptions.get(sub.path, [])
        if sub in subs:
            subs.remove(sub)


def _without_id(record: Document) -> Document:
    data = copy.deepcopy(record)
    data.pop("id", None)
    return data


class InMemoryDocumentStore(DocumentStore):
    """
    Process-local document store, the default backend and the fallback when no
    remote backend is configured. Documents keep insertion (arrival) order.
    """

    def __init__(self) -> None:
        super().__init__()
        self._collections: Dict[str, Dict[str, Document]] = {}

    async def read(self, path: str, order_by: Optional[str] = None) -> List[Document]:
        docs = [
            {"id": doc_id, **copy.deepcopy(data)}
            for doc_id, data in self._collections.get(path, {}).items()
        ]
        return sort_documents(docs, order_by) if order_by else docs

    async def create(self, path: str, record: Document) -> str:
        doc_id = generate_id()
        self._collections.setdefault(path, {})[doc_id] = _without_id(record)
        self._notify(path)
        return doc_id

    async def merge(self, path: str, doc_id: str, partial: Document) -> None:
        existing = self._collections.setdefault(path, {}).setdefault(doc_id, {})
        existing.update(_without_id(partial))
        self._notify(path)

    async def delete(self, path: str, doc_id: str) -> None:
        if self._collections.get(path, {}).pop(doc_id, None) is not None:
            self._notify(path)


# PUBLIC_INTERFACE
def get_document_store(settings: Optional[Settings] = None) -> DocumentStore:
    """
    Factory to return the configured document store based on settings.
    - memory: InMemoryDocumentStore
    - sqlite: SQLiteDocumentStore
    """
    settings = settings or get_settings()
    if settings.persistence_backend == "sqlite":
        from .db import SQLiteDocumentStore

        return SQLiteDocumentStore(settings.sqlite_db_path)
    return InMemoryDocumentStore()
