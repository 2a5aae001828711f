"""Error taxonomy and the reporting hook used by record accessors."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

LOG = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    """Symbolic error kinds surfaced to error handlers."""

    MISSING_PARAMETERS = "errParams"
    CONNECTION_FAILED = "dbhFail"
    SYNTAX_ERROR = "sqlSyntax"
    EXECUTION_ERROR = "sqlExecute"


@dataclass(frozen=True, slots=True)
class ErrorReport:
    """Structured message handed to the error handler before raising."""

    kind: ErrorKind
    detail: str
    fatal: bool = False
    sql: str | None = None

    @property
    def severity(self) -> str:
        return "fatal" if self.fatal else "error"

    @property
    def message(self) -> str:
        return f"{self.severity}: {self.kind.value}: {self.detail}"


class ErrorHandler(Protocol):
    """Callable notified synchronously about every hard failure."""

    def __call__(self, report: ErrorReport) -> None: ...


class FilerError(RuntimeError):
    """Base class for failures raised by the data-access layer."""

    kind: ErrorKind = ErrorKind.EXECUTION_ERROR
    fatal: bool = False

    def __init__(self, detail: str, *, sql: str | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.sql = sql

    def report(self) -> ErrorReport:
        """Build the report describing this error."""

        return ErrorReport(kind=self.kind, detail=self.detail, fatal=self.fatal, sql=self.sql)


class MissingParametersError(FilerError):
    """Raised when driver, database or host are not configured."""

    kind = ErrorKind.MISSING_PARAMETERS
    fatal = True


class ConnectionFailedError(FilerError):
    """Raised when the client library cannot open a connection."""

    kind = ErrorKind.CONNECTION_FAILED
    fatal = True


class SqlSyntaxError(FilerError):
    """Raised when a statement cannot be prepared."""

    kind = ErrorKind.SYNTAX_ERROR


class SqlExecutionError(FilerError):
    """Raised when a prepared statement fails to execute."""

    kind = ErrorKind.EXECUTION_ERROR


def log_error_report(report: ErrorReport) -> None:
    """Default error handler: log the report and let the caller raise."""

    extra = {"kind": report.kind.value, "sql": report.sql}
    if report.fatal:
        LOG.critical(report.message, extra=extra)
    else:
        LOG.error(report.message, extra=extra)


__all__ = [
    "ConnectionFailedError",
    "ErrorHandler",
    "ErrorKind",
    "ErrorReport",
    "FilerError",
    "MissingParametersError",
    "SqlExecutionError",
    "SqlSyntaxError",
    "log_error_report",
]
