"""Configuration models and TOML loading helpers."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import tomllib

from pydantic import BaseModel, ConfigDict, Field

from .models import DataSource

CONFIG_FILE = Path.home() / ".config" / "rowfiler" / "config.toml"


class DataSourceConfig(BaseModel):
    """Named data source stored in config.toml."""

    name: str
    driver: str
    host: str
    database: str
    username: str | None = None
    password: str | None = None
    options: dict[str, Any] = Field(default_factory=dict)
    share: bool = False

    def to_datasource(self) -> DataSource:
        return DataSource(
            driver=self.driver,
            host=self.host,
            database=self.database,
            username=self.username,
            password=self.password,
            options=dict(self.options),
        )


class FilerConfig(BaseModel):
    """Settings for one record accessor; immutable once built."""

    model_config = ConfigDict(frozen=True)

    driver: str | None = None
    host: str | None = None
    database: str | None = None
    username: str | None = None
    password: str | None = Field(default=None, repr=False)
    options: dict[str, Any] = Field(default_factory=dict)
    table: str | None = None
    where: dict[str, Any] | None = None
    share: bool = False

    @classmethod
    def from_source(
        cls,
        source: DataSourceConfig,
        *,
        table: str | None = None,
        where: dict[str, Any] | None = None,
    ) -> FilerConfig:
        """Build accessor settings for a row of ``table`` on a configured source."""

        return cls(
            driver=source.driver,
            host=source.host,
            database=source.database,
            username=source.username,
            password=source.password,
            options=dict(source.options),
            table=table,
            where=where,
            share=source.share,
        )

    def missing_parameters(self) -> tuple[str, ...]:
        """Names of the mandatory connection fields left empty."""

        return tuple(name for name in ("driver", "database", "host") if not getattr(self, name))

    def to_datasource(self) -> DataSource:
        missing = self.missing_parameters()
        if missing:
            raise ValueError(f"Missing parameters: {', '.join(missing)}")
        return DataSource(
            driver=self.driver,  # type: ignore[arg-type]
            host=self.host,  # type: ignore[arg-type]
            database=self.database,  # type: ignore[arg-type]
            username=self.username,
            password=self.password,
            options=dict(self.options),
        )


class AppConfig(BaseModel):
    """Shape of the configuration file."""

    sources: list[DataSourceConfig] = Field(default_factory=list)
    default_source: str | None = None

    def source(self, name: str | None = None) -> DataSourceConfig:
        """Return the named source, or the default one when ``name`` is omitted."""

        wanted = name or self.default_source
        if wanted is None and self.sources:
            return self.sources[0]
        for source in self.sources:
            if source.name == wanted:
                return source
        raise ValueError(f"Data source '{wanted}' not found.")


def load_config() -> AppConfig:
    """Load configuration from disk; fall back to defaults if missing."""

    try:
        data = _read_config_file()
    except FileNotFoundError:
        return AppConfig()
    except (tomllib.TOMLDecodeError, OSError):
        return AppConfig()
    return AppConfig(**data)


def _read_config_file() -> dict[str, object]:
    with CONFIG_FILE.open("rb") as handle:
        raw = tomllib.load(handle)
    data: dict[str, object] = {}
    default_source = raw.get("default_source")
    if isinstance(default_source, str):
        data["default_source"] = default_source
    sources = raw.get("sources")
    if isinstance(sources, list):
        parsed_sources: list[dict[str, object]] = []
        for source in sources:
            if not isinstance(source, dict):
                continue
            parsed: dict[str, object] = {}
            for key in ("name", "driver", "host", "database", "username", "password"):
                value = source.get(key)
                if isinstance(value, str):
                    parsed[key] = value
            share = source.get("share")
            if isinstance(share, bool):
                parsed["share"] = share
            options = source.get("options")
            if isinstance(options, dict):
                parsed["options"] = dict(options)
            if all(parsed.get(key) for key in ("name", "driver", "host", "database")):
                parsed_sources.append(parsed)
        data["sources"] = parsed_sources
    return data


__all__ = [
    "AppConfig",
    "CONFIG_FILE",
    "DataSourceConfig",
    "FilerConfig",
    "load_config",
]
