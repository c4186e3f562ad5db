"""Catalog exchange configuration loader.

Settings come from three layers, later layers winning:

1. built-in defaults (``ExchangeSettings`` field defaults),
2. the ``exchange:`` section of a YAML config file,
3. ``EXCHANGE_*`` environment variables (``.env`` is loaded by the server).

An override only applies when it is present and neither ``None`` nor an
empty string, so a blank entry in YAML or the environment keeps the default.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from catalog_exchange.core.errors import ConfigError

logger = logging.getLogger("catalog_exchange.config")

ENV_PREFIX = "EXCHANGE_"
DEFAULT_SETTINGS_PATH = "settings/exchange"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class ExchangeSettings:
    """Read-only exchange settings, loaded once per process."""

    username: str = ""
    password: str = ""
    zip: bool = False
    file_size_limit: int = 9 * 1024 * 1024  # 9 MB
    session_duration_seconds: int = 60 * 60
    session_id_cookie_name: str = "sessionId"
    csrf_protection: bool = False
    csrf_token_name: str = "csrfToken"
    sessions_storage_path: str = DEFAULT_SETTINGS_PATH + "/exchange1cSessions"

    # Storage namespaces
    catalog_bucket: str = "1c-exchange-catalog"
    catalog_files_bucket: str = "1c-exchange-files"
    report_bucket: str = "1c-exchange-report"
    blob_root: str = "data/blobs"

    # Backends
    db_url: str = ""
    io_timeout_seconds: float = 30.0

    # Logging
    log_level: str = "INFO"
    log_dir: Optional[str] = None

    # Transport
    cookie_secure: bool = False


_FIELD_TYPES: dict[str, str] = {f.name: str(f.type) for f in fields(ExchangeSettings)}


def _coerce(name: str, value: Any) -> Any:
    """Convert a raw YAML/env value to the type declared on the settings field."""
    declared = _FIELD_TYPES[name]
    if declared == "bool":
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE_VALUES:
            return True
        if text in _FALSE_VALUES:
            return False
        raise ConfigError(f"Setting {name!r} expects a boolean, got {value!r}")
    if declared in ("int", "float"):
        if isinstance(value, bool):
            raise ConfigError(f"Setting {name!r} expects a number, got {value!r}")
        try:
            return int(value) if declared == "int" else float(value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Setting {name!r} expects a number, got {value!r}") from exc
    return str(value)


def merge_settings(base: ExchangeSettings, overrides: Mapping[str, Any]) -> ExchangeSettings:
    """Return a copy of ``base`` with every present, non-empty override applied.

    Args:
        base: Settings to start from (usually the defaults).
        overrides: Raw values keyed by settings field name.

    Returns:
        A new ExchangeSettings instance.

    Raises:
        ConfigError: If an override cannot be coerced to the field type.
    """
    changes: dict[str, Any] = {}
    for name, value in overrides.items():
        if name not in _FIELD_TYPES:
            logger.warning("Ignoring unknown exchange setting: %s", name)
            continue
        if value is None or value == "":
            continue
        changes[name] = _coerce(name, value)
    return dataclasses.replace(base, **changes)


def default_settings(settings_path: str = DEFAULT_SETTINGS_PATH) -> ExchangeSettings:
    """Defaults with the sessions collection placed under ``settings_path``."""
    return ExchangeSettings(sessions_storage_path=settings_path.rstrip("/") + "/exchange1cSessions")


def _read_yaml_section(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        logger.warning("Config file not found: %s", config_path)
        return {}
    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Config file {config_path} is not valid YAML: {exc}") from exc
    section = data.get("exchange", {}) if isinstance(data, dict) else {}
    if not isinstance(section, dict):
        raise ConfigError(f"'exchange' section in {config_path} must be a mapping")
    return section


def _read_env(env: Mapping[str, str]) -> dict[str, str]:
    return {
        key[len(ENV_PREFIX):].lower(): value
        for key, value in env.items()
        if key.startswith(ENV_PREFIX) and key[len(ENV_PREFIX):].lower() in _FIELD_TYPES
    }


def validate_settings(settings: ExchangeSettings) -> ExchangeSettings:
    """Check required settings; raise ConfigError if the service cannot run."""
    if not settings.username or not settings.password:
        raise ConfigError("Exchange settings 'username' and/or 'password' not set")
    if settings.session_duration_seconds <= 0:
        raise ConfigError("Exchange setting 'session_duration_seconds' must be positive")
    if settings.file_size_limit <= 0:
        raise ConfigError("Exchange setting 'file_size_limit' must be positive")
    if settings.io_timeout_seconds <= 0:
        raise ConfigError("Exchange setting 'io_timeout_seconds' must be positive")
    return settings


def load_settings(
    config_path: str | Path = "config/exchange.yaml",
    env: Optional[Mapping[str, str]] = None,
    settings_path: str = DEFAULT_SETTINGS_PATH,
) -> ExchangeSettings:
    """Load, merge and validate exchange settings.

    Args:
        config_path: YAML file with an ``exchange:`` section.
        env: Environment mapping; defaults to ``os.environ``.
        settings_path: Prefix for the default sessions collection.

    Returns:
        Validated, frozen settings.

    Raises:
        ConfigError: If required settings are missing or a value is invalid.
    """
    environ = os.environ if env is None else env
    settings = default_settings(settings_path)
    settings = merge_settings(settings, _read_yaml_section(Path(config_path)))
    settings = merge_settings(settings, _read_env(environ))
    validate_settings(settings)
    logger.info(
        "Exchange settings loaded (csrf_protection=%s, session_duration=%ss, zip=%s)",
        settings.csrf_protection,
        settings.session_duration_seconds,
        settings.zip,
    )
    return settings
