"""Fake driver shared by the pool and accessor tests."""

from __future__ import annotations

import threading
import time
from typing import Any

import pytest

from rowfiler.drivers import DriverRegistry, bare_number, bool_literal
from rowfiler.models import DataSource, StatementResult
from rowfiler.pool import ConnectionPool


class FakeStatement:
    def __init__(self, connection: "FakeConnection", sql: str) -> None:
        self._connection = connection
        self.sql = sql

    def execute(self) -> StatementResult:
        self._connection.executed.append(self.sql)
        if self._connection.fail_execute:
            raise RuntimeError("execution exploded")
        rows = tuple(self._connection.rows)
        return StatementResult(sql=self.sql, rows=rows, rowcount=len(rows), status="OK")


class FakeConnection:
    def __init__(self, source: DataSource) -> None:
        self.source = source
        self.closed = False
        self.prepared: list[str] = []
        self.executed: list[str] = []
        self.rows: list[dict[str, Any]] = []
        self.fail_prepare = False
        self.fail_execute = False
        self.fail_quote = False
        self.quoted: list[Any] = []

    def prepare(self, sql: str) -> FakeStatement:
        self.prepared.append(sql)
        if self.fail_prepare:
            raise RuntimeError("syntax error at or near")
        return FakeStatement(self, sql)

    def quote(self, value: Any) -> str:
        self.quoted.append(value)
        if self.fail_quote:
            raise OverflowError("value out of range")
        if isinstance(value, bool):
            return bool_literal(value)
        number = bare_number(value)
        if number is not None:
            return number
        return "'{}'".format(str(value).replace("'", "''"))

    def close(self) -> None:
        self.closed = True


class FakeDriver:
    def __init__(self, *, delay: float = 0.0) -> None:
        self.connections: list[FakeConnection] = []
        self.fail = False
        self.delay = delay
        self._lock = threading.Lock()

    def connect(self, source: DataSource) -> FakeConnection:
        if self.delay:
            time.sleep(self.delay)
        if self.fail:
            raise RuntimeError("connection refused")
        connection = FakeConnection(source)
        with self._lock:
            self.connections.append(connection)
        return connection


@pytest.fixture
def fake_driver() -> FakeDriver:
    return FakeDriver()


@pytest.fixture
def pool(fake_driver: FakeDriver) -> ConnectionPool:
    return ConnectionPool(DriverRegistry({"fake": fake_driver}))
