"""Shared dataclasses used across the pool, drivers and accessor modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

Row = Mapping[str, Any]


@dataclass(frozen=True, slots=True)
class DataSource:
    """Runtime representation of a data source plus the credentials used on it."""

    driver: str
    host: str
    database: str
    username: str | None = None
    password: str | None = field(default=None, repr=False)
    options: Mapping[str, Any] = field(default_factory=dict)

    @property
    def identifier(self) -> str:
        """Identifier shared by every accessor pointing at the same database."""

        return f"{self.driver}:{self.database}@{self.host}"

    @property
    def key(self) -> tuple[str, str]:
        """Pool key: the identifier plus the username (empty when anonymous)."""

        return self.identifier, self.username or ""


@dataclass(frozen=True, slots=True)
class StatementResult:
    """Normalized output of an executed statement."""

    sql: str
    rows: tuple[Row, ...] = ()
    rowcount: int = 0
    status: str = "OK"

    def first(self) -> Row | None:
        if not self.rows:
            return None
        return self.rows[0]


__all__ = ["DataSource", "Row", "StatementResult"]
