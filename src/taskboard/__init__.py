"""
Task board sync engine.

A per-user Kanban board (columns, tasks, personnel) kept in sync with a
document store. The core is usable on its own through BoardSession; the
FastAPI service lives in taskboard.main.
"""

from .context import BoardContext
from .engine import MutationEngine, RollbackPolicy
from .errors import (
    AuthError,
    BoardError,
    NotFoundError,
    ProtectedEntityError,
    RemoteError,
    RemoteReadError,
    RemoteWriteError,
    ValidationError,
)
from .repositories import DocumentStore, InMemoryDocumentStore
from .session import BoardSession

__all__ = [
    "AuthError",
    "BoardContext",
    "BoardError",
    "BoardSession",
    "DocumentStore",
    "InMemoryDocumentStore",
    "MutationEngine",
    "NotFoundError",
    "ProtectedEntityError",
    "RemoteError",
    "RemoteReadError",
    "RemoteWriteError",
    "RollbackPolicy",
    "ValidationError",
]
