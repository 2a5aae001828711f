"""Record accessor: loads and stores fields of one row addressed by a predicate."""

from __future__ import annotations

import logging
import threading
from types import TracebackType
from typing import Any, Mapping, NoReturn

from .config import FilerConfig
from .drivers import Connection
from .errors import (
    ConnectionFailedError,
    ErrorHandler,
    FilerError,
    MissingParametersError,
    SqlExecutionError,
    SqlSyntaxError,
    log_error_report,
)
from .models import DataSource, StatementResult
from .pool import ConnectionPool, default_pool

LOG = logging.getLogger(__name__)


class RecordAccessor:
    """Reads and writes named fields of the single row selected by ``where``.

    The accessor owns one connection for its whole life: a reference into the
    shared pool when ``share`` is set, a private connection otherwise. Call
    :meth:`release_connection` (or use the accessor as a context manager) when
    done; the call is idempotent.
    """

    def __init__(
        self,
        config: FilerConfig | None = None,
        *,
        pool: ConnectionPool | None = None,
        error_handler: ErrorHandler | None = None,
        **fields: Any,
    ) -> None:
        if config is None:
            config = FilerConfig(**fields)
        elif fields:
            config = FilerConfig.model_validate({**config.model_dump(), **fields})
        self._config = config
        self._pool = pool or default_pool()
        self._error_handler: ErrorHandler = error_handler or log_error_report
        self._handle: Connection | None = None
        self._released = False
        self._release_lock = threading.Lock()

        missing = config.missing_parameters()
        if missing:
            self._fail(
                MissingParametersError(
                    f"Missing parameters creating {type(self).__name__}: {', '.join(missing)}"
                )
            )
        self._source: DataSource = config.to_datasource()
        self._register_connection()

    @property
    def config(self) -> FilerConfig:
        return self._config

    @property
    def datasource(self) -> str:
        """Identifier of the form ``driver:database@host``."""

        return self._source.identifier

    @property
    def username(self) -> str | None:
        return self._config.username

    @property
    def table(self) -> str | None:
        return self._config.table

    @property
    def where(self) -> Mapping[str, Any] | None:
        return self._config.where

    @property
    def shared(self) -> bool:
        return self._config.share

    @property
    def released(self) -> bool:
        return self._released

    @property
    def handle(self) -> Connection | None:
        return self._handle

    def load(self, *fields: str) -> dict[str, Any]:
        """Fetch ``fields`` from the selected row; empty when nothing matches."""

        table = self._config.table
        if not (table and self._config.where and fields):
            return {}
        sql = f"SELECT {','.join(fields)} FROM {table} WHERE {self.make_where_statement()}"
        row = self.do_sql(sql).first()
        if row is None:
            return {}
        return dict(row)

    def store(self, values: Mapping[str, Any] | None = None, /, **fields: Any) -> bool:
        """Update the selected row with the given column values.

        Returns ``True`` once the UPDATE ran, whether or not a row matched.
        """

        table = self._config.table
        assignments = {**(values or {}), **fields}
        if not (table and self._config.where and assignments):
            return False
        changes = ",".join(f"{name}={self.quote(value)}" for name, value in assignments.items())
        self.do_sql(f"UPDATE {table} SET {changes} WHERE {self.make_where_statement()}")
        return True

    def make_where_statement(self) -> str:
        """Render the predicate as ``col=value AND ...``; empty when unset."""

        where = self._config.where
        if not where:
            return ""
        return " AND ".join(f"{column}={self.quote(value)}" for column, value in where.items())

    def quote(self, value: Any) -> str:
        """Quote ``value`` with the driver's rules; ``None`` and ``""`` become ``''``."""

        if value is None or (isinstance(value, str) and value == ""):
            return "''"
        handle = self._handle
        if handle is None:
            self._fail(SqlExecutionError("Connection already released; cannot quote values"))
        try:
            return handle.quote(value)
        except Exception as exc:
            self._fail(SqlExecutionError(f"Cannot quote value {value!r}: {exc}"), exc)

    def do_sql(self, sql: str) -> StatementResult:
        """Prepare and execute ``sql`` on the accessor's connection."""

        handle = self._handle
        if handle is None:
            self._fail(SqlExecutionError(f"Error while executing sql ({sql}): connection released", sql=sql))
        LOG.debug("Executing statement", extra={"datasource": self.datasource, "sql": sql})
        try:
            statement = handle.prepare(sql)
        except Exception as exc:
            self._fail(SqlSyntaxError(f"Syntax Error in Sql Expression ({sql}): {exc}", sql=sql), exc)
        if statement is None:
            self._fail(SqlExecutionError(f"Error while executing sql ({sql})", sql=sql))
        try:
            result = statement.execute()
        except Exception as exc:
            self._fail(SqlExecutionError(f"Error while executing sql ({sql}): {exc}", sql=sql), exc)
        if not result:
            self._fail(SqlExecutionError(f"Error while executing sql ({sql})", sql=sql))
        return result

    def release_connection(self) -> None:
        """Hand the connection back; safe to call any number of times."""

        with self._release_lock:
            if self._released:
                return
            self._released = True
            handle, self._handle = self._handle, None
        if handle is None:
            return
        if self._config.share:
            self._pool.release(self._source.identifier, self._source.username)
        else:
            self._pool.release_private(handle)

    def __enter__(self) -> RecordAccessor:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release_connection()

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(datasource={self.datasource!r}, table={self._config.table!r}, "
            f"shared={self._config.share}, released={self._released})"
        )

    def _register_connection(self) -> None:
        try:
            if self._config.share:
                self._handle = self._pool.acquire(self._source)
            else:
                self._handle = self._pool.acquire_private(self._source)
        except ConnectionFailedError as exc:
            self._fail(exc)
        LOG.debug(
            "Accessor registered connection",
            extra={"datasource": self.datasource, "shared": self._config.share},
        )

    def _fail(self, error: FilerError, cause: BaseException | None = None) -> NoReturn:
        self._error_handler(error.report())
        if cause is not None:
            raise error from cause
        raise error


__all__ = ["RecordAccessor"]
