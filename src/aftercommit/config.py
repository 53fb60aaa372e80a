"""
Centralized configuration for the commit-callback dispatcher.

- Pure Python (dataclasses + stdlib).
- Loads from OS env (AFTER_COMMIT_* variables).
- Validation in __post_init__.
- Immutable singleton via functools.lru_cache; call get_settings.cache_clear()
  after changing the environment.
"""

from __future__ import annotations

import functools
import logging
import os
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------
_TRUE = {"1", "true", "t", "yes", "y", "on"}
_FALSE = {"0", "false", "f", "no", "n", "off", ""}


def _get_env_str(key: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(key, default)


def _get_env_bool(key: str, default: bool = False) -> bool:
    v = os.getenv(key)
    if v is None:
        return default
    v = v.strip().lower()
    if v in _TRUE:
        return True
    if v in _FALSE:
        return False
    raise ValueError(f"Env var {key} must be a boolean, got {v!r}")


def _mask_url(value: str) -> str:
    parsed = urlparse(value)
    if parsed.password:
        return value.replace(parsed.password, "***")
    return value


# ------------------------------------------------------------------------------
# Settings dataclass (immutable)
# ------------------------------------------------------------------------------
@dataclass(frozen=True)
class Settings:
    # Dispatch behaviour
    emulation_enabled: bool = True
    real_transactions: bool = False
    raise_in_callbacks: bool = True

    # Harness database
    database_url: str = "sqlite://"

    # Observability
    log_level: str = "INFO"
    json_logs: bool = False
    metrics_enabled: bool = False

    def __post_init__(self) -> None:
        if not self.database_url or "://" not in self.database_url:
            raise ValueError("AFTER_COMMIT_DATABASE_URL must be a SQLAlchemy URL")

        if not re.fullmatch(r"(?i)DEBUG|INFO|WARNING|ERROR|CRITICAL", self.log_level.strip()):
            raise ValueError("AFTER_COMMIT_LOG_LEVEL must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL")
        object.__setattr__(self, "log_level", self.log_level.strip().upper())

    # Safe dict (for debug prints without credentials)
    def safe_dict(self) -> dict:
        return {
            "emulation_enabled": self.emulation_enabled,
            "real_transactions": self.real_transactions,
            "raise_in_callbacks": self.raise_in_callbacks,
            "database_url": _mask_url(self.database_url),
            "log_level": self.log_level,
            "json_logs": self.json_logs,
            "metrics_enabled": self.metrics_enabled,
        }


# ------------------------------------------------------------------------------
# Loader (singleton)
# ------------------------------------------------------------------------------
_logger = logging.getLogger(__name__)


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    settings = Settings(
        emulation_enabled=_get_env_bool("AFTER_COMMIT_ENABLED", True),
        real_transactions=_get_env_bool("AFTER_COMMIT_REAL", False),
        raise_in_callbacks=_get_env_bool("AFTER_COMMIT_RAISE_IN_CALLBACKS", True),
        database_url=_get_env_str("AFTER_COMMIT_DATABASE_URL", "sqlite://") or "sqlite://",
        log_level=_get_env_str("AFTER_COMMIT_LOG_LEVEL", "INFO") or "INFO",
        json_logs=_get_env_bool("AFTER_COMMIT_JSON_LOGS", False),
        metrics_enabled=_get_env_bool("AFTER_COMMIT_METRICS", False),
    )

    _logger.debug("Settings loaded", extra={"settings": settings.safe_dict()})
    return settings
