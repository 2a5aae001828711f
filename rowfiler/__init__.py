"""Single-row data access with shared, refcounted connections."""

from __future__ import annotations

__version__ = "0.1.0"

from .accessor import RecordAccessor
from .config import FilerConfig
from .errors import (
    ConnectionFailedError,
    ErrorKind,
    ErrorReport,
    FilerError,
    MissingParametersError,
    SqlExecutionError,
    SqlSyntaxError,
)
from .models import DataSource
from .pool import ConnectionPool, default_pool

__all__ = [
    "ConnectionFailedError",
    "ConnectionPool",
    "DataSource",
    "ErrorKind",
    "ErrorReport",
    "FilerConfig",
    "FilerError",
    "MissingParametersError",
    "RecordAccessor",
    "SqlExecutionError",
    "SqlSyntaxError",
    "__version__",
    "default_pool",
]
