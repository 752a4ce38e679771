"""Async SQLite wrapper using stdlib sqlite3 + anyio.

Runs all blocking sqlite3 calls in a worker thread via ``anyio.to_thread``.

The connection is opened with ``autocommit=True`` so sqlite3 never opens
transactions on its own: ``begin()``, ``commit()``, ``rollback()`` and
the savepoint methods issue the SQL explicitly, which keeps the
database's transaction depth counter the only owner of transaction
state. ``check_same_thread=False`` is required because the thread pool
may run consecutive calls on different threads.
"""

import sqlite3
from collections.abc import Callable, Mapping, Sequence
from typing import Any

import anyio

type Params = Mapping[str, Any] | Sequence[Any]


def _run_sync(func: Callable[..., Any], *args: Any) -> Any:
    return anyio.to_thread.run_sync(func, *args)  # type: ignore[union-attr]


class AsyncCursor:
    """Async wrapper around ``sqlite3.Cursor``."""

    __slots__ = ("_cursor",)

    def __init__(self, cursor: sqlite3.Cursor) -> None:
        self._cursor = cursor

    @property
    def description(self) -> Any:
        return self._cursor.description

    @property
    def rowcount(self) -> int:
        return self._cursor.rowcount

    @property
    def lastrowid(self) -> int | None:
        return self._cursor.lastrowid

    async def fetchall(self) -> list[Any]:
        return await _run_sync(self._cursor.fetchall)

    async def fetchone(self) -> Any:
        return await _run_sync(self._cursor.fetchone)


class AsyncConnection:
    """Async wrapper around ``sqlite3.Connection``."""

    __slots__ = ("_conn",)

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    @property
    def in_transaction(self) -> bool:
        return self._conn.in_transaction

    async def execute(self, sql: str, params: Params = ()) -> AsyncCursor:
        cursor = await _run_sync(lambda: self._conn.execute(sql, params))
        return AsyncCursor(cursor)

    async def executescript(self, sql: str) -> None:
        await _run_sync(lambda: self._conn.executescript(sql))

    async def begin(self) -> None:
        await self.execute("BEGIN")

    async def commit(self) -> None:
        await self.execute("COMMIT")

    async def rollback(self) -> None:
        await self.execute("ROLLBACK")

    async def savepoint(self, name: str) -> None:
        await self.execute(f"SAVEPOINT {name}")

    async def rollback_to(self, name: str) -> None:
        await self.execute(f"ROLLBACK TO SAVEPOINT {name}")

    async def release(self, name: str) -> None:
        await self.execute(f"RELEASE SAVEPOINT {name}")

    async def close(self) -> None:
        await _run_sync(self._conn.close)


async def connect(path: str) -> AsyncConnection:
    """Open an async SQLite connection with foreign keys enabled."""
    conn = await _run_sync(lambda: sqlite3.connect(path, autocommit=True, check_same_thread=False))
    wrapped = AsyncConnection(conn)
    await wrapped.execute("PRAGMA foreign_keys=ON")
    return wrapped
