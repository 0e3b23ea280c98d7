"""Session library configuration loading and validation."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, ClassVar, Dict, Literal

import yaml
from pydantic import Field, NonNegativeInt, PositiveInt
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CONFIG_LOCATIONS: tuple[Path, ...] = (
    Path("./config/sessionport.yaml"),
    Path("./config/sessionport.yml"),
)


class SessionSettings(BaseSettings):
    """Process-wide defaults applied to every session manager and port."""

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_prefix="SESSIONPORT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    session_timeout_ms: PositiveInt = Field(
        default=60_000,
        description="How long a pending exchange waits for a reply before timing out.",
    )
    session_max_life_ms: PositiveInt = Field(
        default=600_000,
        description="Idle time after which a session that was never ended is evicted.",
    )
    session_id_name: str = Field(
        default="sid",
        min_length=1,
        description="Envelope field carrying the session id.",
    )
    max_session_count: PositiveInt = Field(
        default=65535,
        description="Upper bound of simultaneously live sessions per port (and of the id space).",
    )
    retry_count: NonNegativeInt = Field(
        default=0,
        description="Additional send attempts after a timeout or sender failure.",
    )
    retry_interval_ms: NonNegativeInt = Field(
        default=1000,
        description="Delay between retry attempts.",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Log level used by configure_logging().",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        if isinstance(value, str):
            return value.upper()
        return value

    config_path: Path | None = Field(
        default=None,
        exclude=True,
        description="Config file the settings were loaded from, if any.",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[SessionSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            _config_file_source,
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )


def _config_file_source(settings_cls: type[SessionSettings] | None = None) -> Dict[str, Any]:
    """Values from the first YAML config file found, or nothing."""

    explicit = os.getenv("SESSIONPORT_CONFIG_FILE")
    candidates = [Path(explicit).expanduser()] if explicit else []
    candidates.extend(DEFAULT_CONFIG_LOCATIONS)
    path = next((candidate for candidate in candidates if candidate.is_file()), None)
    if path is None:
        return {}
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise RuntimeError(f"Failed to read session config file {path}") from exc
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid session config file {path}") from exc
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValueError(f"Session config file {path} must contain a mapping at top level.")
    raw.setdefault("config_path", path)
    return raw


@lru_cache()
def get_settings() -> SessionSettings:
    """Return memoized session settings."""

    return SessionSettings()
