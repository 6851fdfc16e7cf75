from __future__ import annotations

import asyncio
import json
import os
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Generator, List, Optional

from .errors import RemoteReadError, RemoteWriteError
from .repositories import Document, DocumentStore, _without_id
from .utils import generate_id, sort_documents, utc_now_iso


@dataclass(frozen=True)
class _Cols:
    table: str = "documents"
    seq: str = "seq"
    collection: str = "collection"
    doc_id: str = "doc_id"
    data: str = "data"
    created_at: str = "created_at"
    updated_at: str = "updated_at"


_COLS = _Cols()


class SQLiteDocumentStore(DocumentStore):
    """
    SQLite-backed document store. Each document is one JSON row keyed by
    (collection path, document id); the autoincrement sequence preserves
    arrival order. Blocking calls run in worker threads.
    """

    def __init__(self, db_path: str) -> None:
        super().__init__()
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._init_db()

    @contextmanager
    def _conn(self) -> Generator[sqlite3.Connection, None, None]:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_COLS.table} (
                    {_COLS.seq} INTEGER PRIMARY KEY AUTOINCREMENT,
                    {_COLS.collection} TEXT NOT NULL,
                    {_COLS.doc_id} TEXT NOT NULL,
                    {_COLS.data} TEXT NOT NULL,
                    {_COLS.created_at} TEXT NOT NULL,
                    {_COLS.updated_at} TEXT NOT NULL,
                    UNIQUE ({_COLS.collection}, {_COLS.doc_id})
                )
                """
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_COLS.table}_collection ON {_COLS.table}({_COLS.collection})"
            )

    def _read_sync(self, path: str) -> List[Document]:
        with self._conn() as conn:
            rows = conn.execute(
                f"SELECT {_COLS.doc_id}, {_COLS.data} FROM {_COLS.table} "
                f"WHERE {_COLS.collection} = ? ORDER BY {_COLS.seq} ASC",
                (path,),
            ).fetchall()
        return [{"id": row[_COLS.doc_id], **json.loads(row[_COLS.data])} for row in rows]

    def _insert_sync(self, path: str, doc_id: str, data: Document) -> None:
        now = utc_now_iso()
        with self._conn() as conn:
            conn.execute(
                f"""
                INSERT INTO {_COLS.table} ({_COLS.collection}, {_COLS.doc_id}, {_COLS.data},
                    {_COLS.created_at}, {_COLS.updated_at})
                VALUES (?, ?, ?, ?, ?)
                """,
                (path, doc_id, json.dumps(data), now, now),
            )

    def _merge_sync(self, path: str, doc_id: str, partial: Document) -> None:
        with self._conn() as conn:
            row = conn.execute(
                f"SELECT {_COLS.data} FROM {_COLS.table} WHERE {_COLS.collection} = ? AND {_COLS.doc_id} = ?",
                (path, doc_id),
            ).fetchone()
            now = utc_now_iso()
            if row is None:
                conn.execute(
                    f"""
                    INSERT INTO {_COLS.table} ({_COLS.collection}, {_COLS.doc_id}, {_COLS.data},
                        {_COLS.created_at}, {_COLS.updated_at})
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (path, doc_id, json.dumps(partial), now, now),
                )
                return
            current = json.loads(row[_COLS.data])
            current.update(partial)
            conn.execute(
                f"""
                UPDATE {_COLS.table}
                SET {_COLS.data} = ?, {_COLS.updated_at} = ?
                WHERE {_COLS.collection} = ? AND {_COLS.doc_id} = ?
                """,
                (json.dumps(current), now, path, doc_id),
            )

    def _delete_sync(self, path: str, doc_id: str) -> bool:
        with self._conn() as conn:
            cur = conn.execute(
                f"DELETE FROM {_COLS.table} WHERE {_COLS.collection} = ? AND {_COLS.doc_id} = ?",
                (path, doc_id),
            )
            return cur.rowcount > 0

    async def read(self, path: str, order_by: Optional[str] = None) -> List[Document]:
        try:
            docs = await asyncio.to_thread(self._read_sync, path)
        except sqlite3.Error as e:
            raise RemoteReadError(f"Failed to read {path}: {e}") from e
        return sort_documents(docs, order_by) if order_by else docs

    async def create(self, path: str, record: Document) -> str:
        doc_id = generate_id()
        try:
            await asyncio.to_thread(self._insert_sync, path, doc_id, _without_id(record))
        except sqlite3.Error as e:
            raise RemoteWriteError(f"Failed to create document in {path}: {e}") from e
        self._notify(path)
        return doc_id

    async def merge(self, path: str, doc_id: str, partial: Document) -> None:
        try:
            await asyncio.to_thread(self._merge_sync, path, doc_id, _without_id(partial))
        except sqlite3.Error as e:
            raise RemoteWriteError(f"Failed to merge {path}/{doc_id}: {e}") from e
        self._notify(path)

    async def delete(self, path: str, doc_id: str) -> None:
        try:
            deleted = await asyncio.to_thread(self._delete_sync, path, doc_id)
        except sqlite3.Error as e:
            raise RemoteWriteError(f"Failed to delete {path}/{doc_id}: {e}") from e
        if deleted:
            self._notify(path)
