"""Settings read from the process environment and an optional .env file."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping, Optional, Tuple

from dotenv import load_dotenv
from loguru import logger
from pydantic import BaseModel, ConfigDict

try:
    load_dotenv()
except Exception as e:  # pragma: no cover
    logger.warning(f"Failed to load .env file: {e}")


_TRUE_VALUES = {"1", "true", "yes", "on"}


def _as_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in _TRUE_VALUES


def _as_int(key: str, value: Optional[str], default: int) -> int:
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {value!r}") from None


def _as_list(value: Optional[str]) -> Tuple[str, ...]:
    if not value:
        return ()
    return tuple(part.strip() for part in value.split(",") if part.strip())


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    database_url: Optional[str] = None
    default_roles: Tuple[str, ...] = ()
    sql_echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10

    @classmethod
    def from_env(
        cls,
        env: Optional[Mapping[str, str]] = None,
        env_file: Optional[Path] = None,
    ) -> "Settings":
        """Build settings from `env` (defaults to os.environ).

        When `env_file` is given it is loaded into os.environ first; values
        already set in the environment win.
        """
        if env_file is not None:
            if not Path(env_file).exists():
                raise FileNotFoundError(f"{env_file} not found")
            load_dotenv(env_file)

        source = os.environ if env is None else env
        return cls(
            database_url=source.get("DATABASE_URL") or None,
            default_roles=_as_list(source.get("AUTHZ_DEFAULT_ROLES")),
            sql_echo=_as_bool(source.get("AUTHZ_SQL_ECHO")),
            pool_size=_as_int("AUTHZ_POOL_SIZE", source.get("AUTHZ_POOL_SIZE"), 5),
            max_overflow=_as_int(
                "AUTHZ_MAX_OVERFLOW", source.get("AUTHZ_MAX_OVERFLOW"), 10
            ),
        )


_settings: Optional[Settings] = None


def get_settings(reset: bool = False) -> Settings:
    """Return cached settings, re-reading the environment when `reset` is set."""
    global _settings
    if _settings is None or reset:
        _settings = Settings.from_env()
    return _settings
