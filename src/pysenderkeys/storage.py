from __future__ import annotations

import asyncio
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, TypeVar

from .constants import SCHEMA_VERSION, SESSIONS_TABLE
from .exceptions import StorageError

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class EncryptedRecord:
    user_id: str
    ciphertext: bytes
    nonce: bytes
    updated_at: str  # ISO-8601, UTC


class RecordStore(Protocol):
    async def get(self, user_id: str) -> EncryptedRecord | None: ...

    async def put(self, record: EncryptedRecord) -> None: ...

    async def delete(self, user_id: str) -> None: ...

    async def clear(self) -> None: ...

    async def close(self) -> None: ...


# Each entry upgrades the schema from version N to N+1.
_MIGRATIONS: tuple[str, ...] = (
    f"""
    CREATE TABLE IF NOT EXISTS {SESSIONS_TABLE} (
        user_id    TEXT PRIMARY KEY,
        ciphertext BLOB NOT NULL,
        nonce      BLOB NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
)


class SqliteRecordStore:
    """
    One encrypted session record per user in a local SQLite database.

    - blocking sqlite calls run in a worker thread (`asyncio.to_thread`)
    - an `asyncio.Lock` serializes access to the single connection
    - every write is its own transaction: it lands in full or not at all
    """

    def __init__(self, path: str | Path) -> None:
        self._path = str(path) if str(path) == ":memory:" else str(Path(path).expanduser())
        self._conn: sqlite3.Connection | None = None
        self._lock = asyncio.Lock()

    @property
    def path(self) -> str:
        return self._path

    async def open(self) -> None:
        async with self._lock:
            if self._conn is None:
                self._conn = await self._run(self._connect)

    async def get(self, user_id: str) -> EncryptedRecord | None:
        row = await self._call(
            lambda c: c.execute(
                f"SELECT user_id, ciphertext, nonce, updated_at FROM {SESSIONS_TABLE} "
                "WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        )
        if row is None:
            return None
        return EncryptedRecord(
            user_id=str(row[0]),
            ciphertext=bytes(row[1]),
            nonce=bytes(row[2]),
            updated_at=str(row[3]),
        )

    async def put(self, record: EncryptedRecord) -> None:
        def _put(c: sqlite3.Connection) -> None:
            with c:
                c.execute(
                    f"INSERT INTO {SESSIONS_TABLE} (user_id, ciphertext, nonce, updated_at) "
                    "VALUES (?, ?, ?, ?) "
                    "ON CONFLICT(user_id) DO UPDATE SET "
                    "ciphertext = excluded.ciphertext, nonce = excluded.nonce, "
                    "updated_at = excluded.updated_at",
                    (record.user_id, record.ciphertext, record.nonce, record.updated_at),
                )

        await self._call(_put)

    async def delete(self, user_id: str) -> None:
        def _delete(c: sqlite3.Connection) -> None:
            with c:
                c.execute(f"DELETE FROM {SESSIONS_TABLE} WHERE user_id = ?", (user_id,))

        await self._call(_delete)

    async def clear(self) -> None:
        def _clear(c: sqlite3.Connection) -> None:
            with c:
                c.execute(f"DELETE FROM {SESSIONS_TABLE}")

        await self._call(_clear)

    async def close(self) -> None:
        async with self._lock:
            if self._conn is not None:
                conn, self._conn = self._conn, None
                await self._run(conn.close)

    async def _call(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        async with self._lock:
            if self._conn is None:
                self._conn = await self._run(self._connect)
            conn = self._conn
            return await self._run(fn, conn)

    async def _run(self, fn: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.to_thread(fn, *args)
        except (sqlite3.Error, OSError) as e:
            raise StorageError(f"sqlite record store {self._path}: {e}") from e

    def _connect(self) -> sqlite3.Connection:
        if self._path != ":memory:":
            Path(self._path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self._path, check_same_thread=False)
        try:
            _upgrade_schema(conn)
        except BaseException:
            conn.close()
            raise
        return conn


def _upgrade_schema(conn: sqlite3.Connection) -> None:
    (current,) = conn.execute("PRAGMA user_version").fetchone()
    if current > SCHEMA_VERSION:
        raise sqlite3.DatabaseError(
            f"database schema version {current} is newer than supported {SCHEMA_VERSION}"
        )
    with conn:
        for version in range(int(current), SCHEMA_VERSION):
            conn.execute(_MIGRATIONS[version])
        conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
