"""
Store gateway for watchlist domains and channel settings.

The engine only depends on the DomainStore protocol. Every write method
returns True when at least one row was affected, so callers can tell a
no-op from an applied change. SQLiteDomainStore is the bundled
implementation; its blocking calls run in the default executor.
"""

import asyncio
import json
import sqlite3
import threading
from abc import abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, Optional, Protocol, TypeVar, Union, runtime_checkable

from .enums import DomainStatus
from .exceptions import StorageError
from .models import DomainRecord, SettingsRow, parse_timestamp


T = TypeVar("T")

SCHEMA = """
CREATE TABLE IF NOT EXISTS domains (
    id INTEGER PRIMARY KEY,
    domain_name TEXT NOT NULL UNIQUE COLLATE NOCASE,
    status TEXT NOT NULL DEFAULT 'not_checked'
        CHECK (status IN ('not_checked', 'available', 'registered', 'error')),
    expires TEXT DEFAULT NULL,
    raw_domain_data TEXT DEFAULT NULL,
    raw_ns_data TEXT DEFAULT NULL,
    raw_ssl_data TEXT DEFAULT NULL,
    error_message TEXT DEFAULT NULL,
    check_count INTEGER DEFAULT 0,
    last_domain_checked TEXT DEFAULT NULL,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);
CREATE INDEX IF NOT EXISTS idx_domains_status ON domains(status);

CREATE TABLE IF NOT EXISTS settings (
    kind TEXT PRIMARY KEY,
    settings_json TEXT NOT NULL,
    enabled INTEGER NOT NULL DEFAULT 0,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);
"""


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@runtime_checkable
class DomainStore(Protocol):
    """Query contract the watcher needs from its storage engine."""

    @abstractmethod
    async def select_all(self) -> list[DomainRecord]:
        ...

    @abstractmethod
    async def select_by_id(self, domain_id: int) -> Optional[DomainRecord]:
        ...

    @abstractmethod
    async def select_where(self, statuses: Iterable[DomainStatus]) -> list[DomainRecord]:
        ...

    @abstractmethod
    async def insert_if_not_exists(self, name: str) -> bool:
        ...

    @abstractmethod
    async def delete_by_id(self, domain_id: int) -> bool:
        ...

    @abstractmethod
    async def update_status(
        self,
        domain_id: int,
        status: DomainStatus,
        expires: Optional[datetime],
        raw_data: Optional[dict],
    ) -> bool:
        ...

    @abstractmethod
    async def update_error(self, domain_id: int, message: str) -> bool:
        ...

    @abstractmethod
    async def update_ns(self, domain_id: int, raw_data: dict) -> bool:
        ...

    @abstractmethod
    async def update_ssl(self, domain_id: int, raw_data: dict) -> bool:
        ...

    @abstractmethod
    async def select_settings(self, kind: str) -> Optional[SettingsRow]:
        ...

    @abstractmethod
    async def upsert_settings(self, kind: str, settings_json: str, enabled: bool) -> bool:
        ...

    @abstractmethod
    async def update_settings_enabled(self, kind: str, enabled: bool) -> bool:
        ...


def _dump_json(value: Optional[dict]) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False, default=str)


def _load_json(value: Optional[str]) -> Optional[dict]:
    if not value:
        return None
    try:
        loaded = json.loads(value)
    except json.JSONDecodeError:
        return None
    return loaded if isinstance(loaded, dict) else {"value": loaded}


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat()


def _row_to_record(row: sqlite3.Row) -> DomainRecord:
    try:
        status = DomainStatus(row["status"])
    except ValueError:
        status = DomainStatus.ERROR
    return DomainRecord(
        id=row["id"],
        name=row["domain_name"],
        status=status,
        expires=parse_timestamp(row["expires"]),
        last_checked=parse_timestamp(row["last_domain_checked"]),
        raw_data=_load_json(row["raw_domain_data"]),
        raw_ns_data=_load_json(row["raw_ns_data"]),
        raw_ssl_data=_load_json(row["raw_ssl_data"]),
        error_message=row["error_message"],
        check_count=row["check_count"] or 0,
        created_at=parse_timestamp(row["created_at"]),
    )


class SQLiteDomainStore:
    """
    DomainStore backed by a single SQLite database.

    One connection is shared across executor threads and serialized with a
    lock. Each write is its own transaction, so a failed update for one
    domain never rolls back another domain's write.
    """

    def __init__(
        self,
        database_path: Union[str, Path],
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """
        Open (and if needed create) the database.

        Args:
            database_path: File path, or ":memory:" for a private in-memory database
            clock: Source of the timestamps written on each check

        Raises:
            StorageError: If the database cannot be opened or initialized
        """
        self._path = str(database_path)
        self._clock = clock
        self._lock = threading.Lock()
        try:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self._path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.executescript(SCHEMA)
            self._conn.commit()
        except (sqlite3.Error, OSError) as e:
            raise StorageError(
                code="open_failed",
                message=f"Failed to open database: {e}",
                details={"database_path": self._path},
            ) from e

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    async def _run(self, operation: str, func: Callable[[sqlite3.Connection], T]) -> T:
        def locked() -> T:
            with self._lock:
                try:
                    result = func(self._conn)
                    self._conn.commit()
                    return result
                except sqlite3.Error as e:
                    self._conn.rollback()
                    raise StorageError(
                        code="query_failed",
                        message=f"{operation} failed: {e}",
                        details={"operation": operation},
                    ) from e

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, locked)

    async def _execute(self, operation: str, sql: str, params: tuple = ()) -> bool:
        def run(conn: sqlite3.Connection) -> bool:
            return conn.execute(sql, params).rowcount > 0

        return await self._run(operation, run)

    async def select_all(self) -> list[DomainRecord]:
        def run(conn: sqlite3.Connection) -> list[DomainRecord]:
            rows = conn.execute("SELECT * FROM domains ORDER BY domain_name").fetchall()
            return [_row_to_record(row) for row in rows]

        return await self._run("select_all", run)

    async def select_by_id(self, domain_id: int) -> Optional[DomainRecord]:
        def run(conn: sqlite3.Connection) -> Optional[DomainRecord]:
            row = conn.execute("SELECT * FROM domains WHERE id = ?", (domain_id,)).fetchone()
            return _row_to_record(row) if row else None

        return await self._run("select_by_id", run)

    async def select_where(self, statuses: Iterable[DomainStatus]) -> list[DomainRecord]:
        values = [status.value for status in statuses]
        if not values:
            return []
        placeholders = ", ".join("?" for _ in values)

        def run(conn: sqlite3.Connection) -> list[DomainRecord]:
            rows = conn.execute(
                f"SELECT * FROM domains WHERE status IN ({placeholders}) ORDER BY domain_name",
                tuple(values),
            ).fetchall()
            return [_row_to_record(row) for row in rows]

        return await self._run("select_where", run)

    async def insert_if_not_exists(self, name: str) -> bool:
        return await self._execute(
            "insert_if_not_exists",
            "INSERT OR IGNORE INTO domains (domain_name, created_at) VALUES (?, ?)",
            (name, _iso(self._clock())),
        )

    async def delete_by_id(self, domain_id: int) -> bool:
        return await self._execute(
            "delete_by_id", "DELETE FROM domains WHERE id = ?", (domain_id,)
        )

    async def update_status(
        self,
        domain_id: int,
        status: DomainStatus,
        expires: Optional[datetime],
        raw_data: Optional[dict],
    ) -> bool:
        now = _iso(self._clock())
        return await self._execute(
            "update_status",
            """
            UPDATE domains
            SET status = ?, expires = ?, raw_domain_data = ?, error_message = NULL,
                check_count = check_count + 1, last_domain_checked = ?, updated_at = ?
            WHERE id = ?
            """,
            (status.value, _iso(expires), _dump_json(raw_data), now, now, domain_id),
        )

    async def update_error(self, domain_id: int, message: str) -> bool:
        now = _iso(self._clock())
        return await self._execute(
            "update_error",
            """
            UPDATE domains
            SET status = 'error', error_message = ?,
                check_count = check_count + 1, last_domain_checked = ?, updated_at = ?
            WHERE id = ?
            """,
            (message, now, now, domain_id),
        )

    async def update_ns(self, domain_id: int, raw_data: dict) -> bool:
        return await self._execute(
            "update_ns",
            "UPDATE domains SET raw_ns_data = ?, updated_at = ? WHERE id = ?",
            (_dump_json(raw_data), _iso(self._clock()), domain_id),
        )

    async def update_ssl(self, domain_id: int, raw_data: dict) -> bool:
        return await self._execute(
            "update_ssl",
            "UPDATE domains SET raw_ssl_data = ?, updated_at = ? WHERE id = ?",
            (_dump_json(raw_data), _iso(self._clock()), domain_id),
        )

    async def select_settings(self, kind: str) -> Optional[SettingsRow]:
        def run(conn: sqlite3.Connection) -> Optional[SettingsRow]:
            row = conn.execute("SELECT * FROM settings WHERE kind = ?", (kind,)).fetchone()
            if row is None:
                return None
            return SettingsRow(
                kind=row["kind"],
                settings_json=row["settings_json"],
                enabled=bool(row["enabled"]),
                updated_at=parse_timestamp(row["updated_at"]),
            )

        return await self._run("select_settings", run)

    async def upsert_settings(self, kind: str, settings_json: str, enabled: bool) -> bool:
        return await self._execute(
            "upsert_settings",
            """
            INSERT INTO settings (kind, settings_json, enabled, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(kind) DO UPDATE SET
                settings_json = excluded.settings_json,
                enabled = excluded.enabled,
                updated_at = excluded.updated_at
            """,
            (kind, settings_json, int(enabled), _iso(self._clock())),
        )

    async def update_settings_enabled(self, kind: str, enabled: bool) -> bool:
        return await self._execute(
            "update_settings_enabled",
            "UPDATE settings SET enabled = ?, updated_at = ? WHERE kind = ?",
            (int(enabled), _iso(self._clock()), kind),
        )

