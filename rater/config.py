from __future__ import annotations

import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .catalog import Catalog, ConfigurationError
from .logging_config import logger

DEFAULT_CONFIG_PATH = "rater.toml"

LimitTriple = tuple[StrictStr, StrictInt, StrictInt]


class Settings(BaseSettings):
    app_name: str = "rater"
    address: str = "127.0.0.1"
    port: int = Field(default=1999, ge=0, le=65535)
    control_address: str = "127.0.0.1"
    control_port: int = Field(default=2000, ge=0, le=65535)
    control_enabled: bool = True
    max_age: int = Field(default=90, gt=0)
    expiration_timer: int = Field(default=180, gt=0)
    store_backend: Literal["memory", "sql"] = "memory"
    db_url: str = "sqlite+aiosqlite://"
    log_level: str = "INFO"
    log_file: str | None = None
    class_name_max_length: int = Field(default=49, gt=0)
    max_line_length: int = Field(default=1000, gt=0)
    line_too_long_code: int = Field(default=1, ge=0, le=9)
    count_scope: Literal["value", "class"] = "value"
    store_timeout_seconds: float = Field(default=2.0, gt=0)
    read_timeout_seconds: float = Field(default=10.0, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="RATER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


class LimitsFile(BaseModel):
    """Shape of a parsed configuration file.

    ``limits`` keeps the file's table order, which is also the order keys are
    matched in.
    """

    model_config = ConfigDict(extra="forbid")

    settings: dict[str, Any] = Field(default_factory=dict)
    limits: dict[str, list[LimitTriple]]

    @field_validator("limits")
    @classmethod
    def _limits_not_empty(cls, value: dict[str, list[LimitTriple]]) -> dict[str, list[LimitTriple]]:
        if not value:
            raise ValueError("limits table is empty")
        return value


@dataclass(frozen=True)
class ServiceConfig:
    settings: Settings
    catalog: Catalog


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Config file not found: {path}") from exc
    except OSError as exc:
        raise ConfigurationError(f"Config file unreadable: {path}: {exc}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(f"Config error in {path}: {exc}") from exc


def parse_service_config(data: dict[str, Any], source: str = "<memory>") -> ServiceConfig:
    if "limits" not in data:
        raise ConfigurationError(f"Config error in {source}: missing limits table")
    settings_table = data.get("settings")
    unknown = sorted(set(settings_table) - set(Settings.model_fields)) if isinstance(settings_table, dict) else []
    if unknown:
        raise ConfigurationError(f"Config error in {source}: unknown settings: {', '.join(unknown)}")
    try:
        parsed = LimitsFile.model_validate(data)
        settings = Settings(**parsed.settings)
    except ValidationError as exc:
        raise ConfigurationError(f"Config error in {source}: {exc}") from exc

    catalog = Catalog.from_definitions(
        parsed.limits.items(),
        max_name_length=settings.class_name_max_length,
    )
    widest = catalog.max_window()
    if widest > settings.max_age:
        logger.warning(
            "config.max_age_below_window",
            max_age=settings.max_age,
            max_window=widest,
        )
    logger.info(
        "config.loaded",
        source=source,
        classes=len(catalog),
        expiration_timer=settings.expiration_timer,
        max_age=settings.max_age,
        store_backend=settings.store_backend,
    )
    return ServiceConfig(settings=settings, catalog=catalog)


def load_service_config(path: str | Path = DEFAULT_CONFIG_PATH) -> ServiceConfig:
    config_path = Path(path)
    return parse_service_config(_read_toml(config_path), source=str(config_path))
