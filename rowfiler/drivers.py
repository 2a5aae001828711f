"""Client-library drivers that open connections and run single statements."""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
import math
import sqlite3
import threading
from decimal import Decimal
from typing import Any, Coroutine, Mapping, Protocol, runtime_checkable

import asyncpg

from .models import DataSource, Row, StatementResult

LOG = logging.getLogger(__name__)


@runtime_checkable
class PreparedStatement(Protocol):
    """Statement compiled against a connection, ready to run once."""

    sql: str

    def execute(self) -> StatementResult:
        """Run the statement and return its rows and status."""


@runtime_checkable
class Connection(Protocol):
    """Physical connection handle exposed by a driver."""

    @property
    def closed(self) -> bool:
        """Whether the handle has been closed."""

    def prepare(self, sql: str) -> PreparedStatement:
        """Compile the statement; raise if the server rejects it."""

    def quote(self, value: Any) -> str:
        """Render a value as an SQL literal."""

    def close(self) -> None:
        """Disconnect the handle."""


@runtime_checkable
class Driver(Protocol):
    """Protocol implemented by client-library drivers."""

    def connect(self, source: DataSource) -> Connection:
        """Open a new physical connection for the data source."""


def bool_literal(value: bool) -> str:
    """Booleans render as the quoted digits ``'1'`` and ``'0'``."""

    return "'1'" if value else "'0'"


def bare_number(value: Any) -> str | None:
    """Unquoted text for ints and finite floats/Decimals; ``None`` otherwise."""

    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float) and math.isfinite(value):
        return repr(value)
    if isinstance(value, Decimal) and value.is_finite():
        return str(value)
    return None


def _as_text(value: Any) -> str:
    if isinstance(value, (dt.date, dt.time)):
        return value.isoformat()
    return str(value)


def _rowcount_from_status(status: str, default: int) -> int:
    # asyncpg status strings look like "UPDATE 3" or "INSERT 0 1".
    tail = status.rsplit(" ", 1)[-1] if status else ""
    try:
        return int(tail)
    except ValueError:
        return default


class AsyncpgStatement:
    """Prepared asyncpg statement driven from synchronous code."""

    def __init__(self, connection: "AsyncpgConnection", statement: Any, sql: str) -> None:
        self._connection = connection
        self._statement = statement
        self.sql = sql

    def execute(self) -> StatementResult:
        return self._connection._run(self._execute())

    async def _execute(self) -> StatementResult:
        records = await self._statement.fetch()
        status = self._statement.get_statusmsg() or "OK"
        rows = tuple(_record_to_row(record) for record in records)
        return StatementResult(
            sql=self.sql,
            rows=rows,
            rowcount=_rowcount_from_status(status, len(rows)),
            status=status,
        )


class AsyncpgConnection:
    """Synchronous facade over an ``asyncpg.Connection``."""

    def __init__(self, driver: "AsyncpgDriver", conn: Any) -> None:
        self._driver = driver
        self._conn = conn
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def prepare(self, sql: str) -> AsyncpgStatement:
        statement = self._run(self._conn.prepare(sql))
        return AsyncpgStatement(self, statement, sql)

    def quote(self, value: Any) -> str:
        """Quote on the server with ``quote_literal``; it emits ``E'...'`` for backslashes."""

        if isinstance(value, bool):
            return bool_literal(value)
        number = bare_number(value)
        if number is not None:
            return number
        if isinstance(value, (bytes, bytearray, memoryview)):
            return self._run(self._conn.fetchval("SELECT quote_literal($1::bytea)", bytes(value)))
        return self._run(self._conn.fetchval("SELECT quote_literal($1::text)", _as_text(value)))

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._run(self._conn.close())

    def _run(self, coro: Coroutine[Any, Any, Any]) -> Any:
        return self._driver._run(coro)


class AsyncpgDriver:
    """Driver that talks to PostgreSQL via asyncpg on a background event loop."""

    def __init__(self, *, connect_timeout: float = 5.0) -> None:
        self._connect_timeout = connect_timeout
        self._loop: asyncio.AbstractEventLoop | None = None
        self._loop_thread: threading.Thread | None = None
        self._lock = threading.Lock()

    def connect(self, source: DataSource) -> AsyncpgConnection:
        conn = self._run(asyncpg.connect(**self._connect_kwargs(source)))
        LOG.info("Opened asyncpg connection", extra={"datasource": source.identifier})
        return AsyncpgConnection(self, conn)

    def shutdown(self) -> None:
        """Stop the background event loop (testing helper)."""

        with self._lock:
            loop, thread = self._loop, self._loop_thread
            self._loop = None
            self._loop_thread = None
        if loop is None or not loop.is_running():
            return
        loop.call_soon_threadsafe(loop.stop)
        if thread is not None:
            thread.join(timeout=1)

    def _connect_kwargs(self, source: DataSource) -> dict[str, object]:
        kwargs: dict[str, object] = {"host": source.host, "database": source.database}
        if source.username:
            kwargs["user"] = source.username
        if source.password:
            kwargs["password"] = source.password
        kwargs.update(source.options)
        kwargs.setdefault("timeout", self._connect_timeout)
        return kwargs

    def _ensure_loop(self) -> asyncio.AbstractEventLoop:
        with self._lock:
            if self._loop is None:
                self._loop = asyncio.new_event_loop()
                self._loop_thread = threading.Thread(
                    target=self._loop.run_forever,
                    name="rowfiler-asyncpg-driver",
                    daemon=True,
                )
                self._loop_thread.start()
            return self._loop

    def _run(self, coro: Coroutine[Any, Any, Any]) -> Any:
        future = asyncio.run_coroutine_threadsafe(coro, self._ensure_loop())
        return future.result()


class SqliteStatement:
    """Statement compiled by SQLite; executes on the owning connection."""

    def __init__(self, conn: sqlite3.Connection, sql: str) -> None:
        self._conn = conn
        self.sql = sql

    def execute(self) -> StatementResult:
        cursor = self._conn.execute(self.sql)
        try:
            if cursor.description:
                columns = [column[0] for column in cursor.description]
                rows = tuple(dict(zip(columns, values)) for values in cursor.fetchall())
                return StatementResult(sql=self.sql, rows=rows, rowcount=len(rows), status=f"SELECT {len(rows)}")
            verb = self.sql.lstrip().split(None, 1)[0].upper()
            return StatementResult(sql=self.sql, rowcount=cursor.rowcount, status=f"{verb} {cursor.rowcount}")
        finally:
            cursor.close()


class SqliteConnection:
    """Connection handle backed by the standard library sqlite3 module."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def prepare(self, sql: str) -> SqliteStatement:
        # EXPLAIN compiles the statement without running it.
        self._conn.execute(f"EXPLAIN {sql}").close()
        return SqliteStatement(self._conn, sql)

    def quote(self, value: Any) -> str:
        """Quote with SQLite's own ``quote()`` function on a bound parameter."""

        if isinstance(value, bool):
            return bool_literal(value)
        if isinstance(value, (bytearray, memoryview)):
            value = bytes(value)
        elif isinstance(value, Decimal) and value.is_finite():
            return str(value)
        elif not isinstance(value, (int, float, str, bytes)):
            value = _as_text(value)
        cursor = self._conn.execute("SELECT quote(?)", (value,))
        try:
            return cursor.fetchone()[0]
        finally:
            cursor.close()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._conn.close()


class SqliteDriver:
    """Driver for SQLite files; the database name is the file path."""

    def connect(self, source: DataSource) -> SqliteConnection:
        kwargs: dict[str, Any] = {"isolation_level": None, "check_same_thread": False}
        kwargs.update(source.options)
        conn = sqlite3.connect(source.database, **kwargs)
        LOG.info("Opened sqlite connection", extra={"datasource": source.identifier})
        return SqliteConnection(conn)


class DriverRegistry:
    """Maps driver names (case-insensitive) onto driver instances."""

    def __init__(self, drivers: Mapping[str, Driver] | None = None) -> None:
        self._drivers: dict[str, Driver] = {}
        for name, driver in (drivers or {}).items():
            self.register(name, driver)

    def register(self, name: str, driver: Driver) -> None:
        self._drivers[name.lower()] = driver

    def get(self, name: str) -> Driver:
        try:
            return self._drivers[name.lower()]
        except KeyError:
            raise ValueError(f"Unknown driver '{name}'.") from None

    def names(self) -> tuple[str, ...]:
        return tuple(sorted(self._drivers))

    def connect(self, source: DataSource) -> Connection:
        return self.get(source.driver).connect(source)


_default_registry: DriverRegistry | None = None
_default_registry_lock = threading.Lock()


def default_registry() -> DriverRegistry:
    """Registry with the bundled asyncpg and sqlite drivers."""

    global _default_registry
    with _default_registry_lock:
        if _default_registry is None:
            postgres = AsyncpgDriver()
            _default_registry = DriverRegistry(
                {
                    "postgres": postgres,
                    "postgresql": postgres,
                    "pg": postgres,
                    "sqlite": SqliteDriver(),
                }
            )
        return _default_registry


def _record_to_row(record: Any) -> Row:
    if hasattr(record, "items"):
        return dict(record.items())
    return dict(record)


__all__ = [
    "AsyncpgConnection",
    "AsyncpgDriver",
    "AsyncpgStatement",
    "Connection",
    "Driver",
    "DriverRegistry",
    "PreparedStatement",
    "SqliteConnection",
    "SqliteDriver",
    "SqliteStatement",
    "bare_number",
    "bool_literal",
    "default_registry",
]
