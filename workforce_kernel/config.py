"""
Scheduler settings (``workforce_kernel.config``).

Responsibility
--------------
Single place that reads configuration for the PO recalculation stack.
Values come from, in increasing priority:

1. ``SchedulerSettings`` defaults,
2. an optional YAML file (top-level mapping, keys as field names),
3. ``WORKFORCE_*`` environment variables (``WORKFORCE_TIMEZONE``,
   ``WORKFORCE_REQUEST_TIMEOUT_SECONDS``, ...; the database URL also
   honours plain ``DATABASE_URL``).

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown key, bad type, bad timezone or out-of-range number
  -> ``ConfigurationError``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from workforce_kernel.exceptions import ConfigurationError

_ENV_PREFIX = "WORKFORCE_"


@dataclass(frozen=True)
class SchedulerSettings:
    """Runtime knobs for recalculation and its triggers."""

    database_url: str | None = None
    timezone: str = "UTC"  # Canonical zone for "today" and local midnight
    request_timeout_seconds: float = 10.0  # Bound on each store request
    max_concurrency: int = 1  # Owners recalculated at once; 1 = sequential
    run_on_login: bool = True
    nightly_enabled: bool = True
    interval_hours: int = 24  # Period after the first midnight run

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def validate(self) -> SchedulerSettings:
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise ConfigurationError("timezone", self.timezone, "unknown timezone") from None
        if self.request_timeout_seconds <= 0:
            raise ConfigurationError(
                "request_timeout_seconds", self.request_timeout_seconds, "must be positive",
            )
        if self.max_concurrency < 1:
            raise ConfigurationError("max_concurrency", self.max_concurrency, "must be >= 1")
        if self.interval_hours < 1:
            raise ConfigurationError("interval_hours", self.interval_hours, "must be >= 1")
        return self


_FIELD_TYPES: dict[str, type] = {
    "database_url": str,
    "timezone": str,
    "request_timeout_seconds": float,
    "max_concurrency": int,
    "run_on_login": bool,
    "nightly_enabled": bool,
    "interval_hours": int,
}

_TRUE_STRINGS = frozenset({"1", "true", "yes", "on"})
_FALSE_STRINGS = frozenset({"0", "false", "no", "off"})


def _coerce(name: str, value: Any) -> Any:
    """Convert a raw YAML / env value to the field's type."""
    target = _FIELD_TYPES[name]
    if value is None:
        if name == "database_url":
            return None
        raise ConfigurationError(name, value, "may not be null")

    if target is bool:
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
        raise ConfigurationError(name, value, "expected a boolean")

    if target is int:
        if isinstance(value, bool):
            raise ConfigurationError(name, value, "expected an integer")
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ConfigurationError(name, value, "expected an integer") from None

    if target is float:
        if isinstance(value, bool):
            raise ConfigurationError(name, value, "expected a number")
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ConfigurationError(name, value, "expected a number") from None

    return str(value)


def _from_mapping(base: SchedulerSettings, data: Mapping[str, Any]) -> SchedulerSettings:
    known = {f.name for f in fields(SchedulerSettings)}
    updates: dict[str, Any] = {}
    for key, value in data.items():
        if key not in known:
            raise ConfigurationError(key, value, "unknown setting")
        updates[key] = _coerce(key, value)
    return replace(base, **updates)


def load_settings_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML settings file into a plain dict."""
    with open(path, encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), type(data).__name__, "expected a mapping")
    return data


def load_settings(
    path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
) -> SchedulerSettings:
    """Build validated settings from defaults, an optional file and the environment."""
    environ = os.environ if env is None else env
    settings = SchedulerSettings()

    if path is not None:
        settings = _from_mapping(settings, load_settings_file(path))

    overrides: dict[str, Any] = {}
    if "DATABASE_URL" in environ:
        overrides["database_url"] = environ["DATABASE_URL"]
    for name in _FIELD_TYPES:
        env_key = f"{_ENV_PREFIX}{name.upper()}"
        if env_key in environ:
            overrides[name] = environ[env_key]
    if overrides:
        settings = _from_mapping(settings, overrides)

    return settings.validate()
