"""
powa-ops Configuration
Runtime settings for the snapshot collector, their bounds and reload rules.

Settings are resolved from defaults, an optional postgresql.conf-style file
and POWA_* environment variables. The result is an immutable RuntimeConfig;
a reload builds a new one and swaps it in as a whole.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Callable, Mapping, Optional

from powa_ops.framework.exceptions import ConfigError

logger = logging.getLogger("powa_ops.config")

INT_MAX = 2147483647

# Snapshot frequency floor (milliseconds)
MIN_FREQUENCY_MS = 5000

DEFAULT_FREQUENCY_MS = 300000       # 5 minutes
DEFAULT_COALESCE = 100
DEFAULT_RETENTION_MINUTES = 24 * 60  # 1 day
DEFAULT_DATABASE = "powa"

# Cooldown before the supervisor restarts a worker that exited non-zero
WORKER_RESTART_SECONDS = 10

APPLICATION_NAME = "POWA collector"

CONFIG_FILE_ENV = "POWA_CONFIG_FILE"
CONNINFO_ENV = "POWA_CONNINFO"

# Database the HTTP API connects to first
HOME_DATABASE_ENV = "POWA_HOME_DATABASE"
DEFAULT_HOME_DATABASE = "postgres"


class GucContext(Enum):
    POSTMASTER = "postmaster"  # Only read at start
    SIGHUP = "sighup"
    SUSET = "superuser"


class GucUnit(Enum):
    MS = "ms"
    MIN = "min"


# Conversion factors to microseconds, as accepted by PostgreSQL time units
_TIME_UNITS_US = {
    "us": 1,
    "ms": 1000,
    "s": 1000 * 1000,
    "min": 60 * 1000 * 1000,
    "h": 60 * 60 * 1000 * 1000,
    "d": 24 * 60 * 60 * 1000 * 1000,
}

_BASE_UNIT_US = {
    GucUnit.MS: _TIME_UNITS_US["ms"],
    GucUnit.MIN: _TIME_UNITS_US["min"],
}


@dataclass(frozen=True)
class GucOption:
    """Definition of one collector setting."""
    name: str
    field_name: str
    description: str
    default: object
    context: GucContext = GucContext.SUSET
    min_value: Optional[int] = None
    max_value: Optional[int] = None
    unit: Optional[GucUnit] = None
    is_string: bool = False

    @property
    def env_var(self) -> str:
        return self.name.upper().replace(".", "_")

    def parse(self, raw: str) -> object:
        """Parse and bounds-check a raw value. Raises ConfigError."""
        if self.is_string:
            if self.field_name == "database" and not raw:
                raise ConfigError(f"invalid value for parameter \"{self.name}\": \"\"")
            return raw
        value = _parse_integer(self, raw)
        if (self.min_value is not None and value < self.min_value) or \
                (self.max_value is not None and value > self.max_value):
            raise ConfigError(
                f"{value} is outside the valid range for parameter \"{self.name}\" "
                f"({self.min_value} .. {self.max_value})"
            )
        return value


def _parse_integer(option: GucOption, raw: str) -> int:
    match = re.fullmatch(r"\s*([-+]?\d+)\s*([a-z]*)\s*", raw)
    if not match:
        raise ConfigError(f"invalid value for parameter \"{option.name}\": \"{raw}\"")
    number, unit = int(match.group(1)), match.group(2)
    if not unit:
        return number
    if option.unit is None or unit not in _TIME_UNITS_US:
        raise ConfigError(f"invalid unit \"{unit}\" for parameter \"{option.name}\"")
    return round(number * _TIME_UNITS_US[unit] / _BASE_UNIT_US[option.unit])


OPTIONS = (
    GucOption("powa.frequency", "frequency_ms",
              "Defines the frequency in seconds of the snapshots",
              DEFAULT_FREQUENCY_MS, min_value=-1, max_value=INT_MAX // 1000,
              unit=GucUnit.MS),
    GucOption("powa.coalesce", "coalesce",
              "Defines the amount of records to group together in the table (more compact)",
              DEFAULT_COALESCE, min_value=5, max_value=INT_MAX),
    GucOption("powa.retention", "retention_minutes",
              "Automatically purge data older than N minutes",
              DEFAULT_RETENTION_MINUTES, min_value=0, max_value=INT_MAX // 60,
              unit=GucUnit.MIN),
    GucOption("powa.database", "database",
              "Defines the database of the workload repository",
              DEFAULT_DATABASE, context=GucContext.POSTMASTER, is_string=True),
    GucOption("powa.ignored_users", "ignored_users",
              "Defines a coma-separated list of users to ignore when taking activity snapshot",
              None, context=GucContext.SIGHUP, is_string=True),
)

OPTIONS_BY_NAME = {opt.name: opt for opt in OPTIONS}


@dataclass(frozen=True)
class RuntimeConfig:
    """Consistent set of collector settings, read once per tick."""
    frequency_ms: int = DEFAULT_FREQUENCY_MS
    coalesce: int = DEFAULT_COALESCE
    retention_minutes: int = DEFAULT_RETENTION_MINUTES
    database: str = DEFAULT_DATABASE
    ignored_users: Optional[str] = None
    min_frequency_ms: int = field(default=MIN_FREQUENCY_MS, compare=False)

    @property
    def is_deactivated(self) -> bool:
        return self.frequency_ms < 0

    @property
    def frequency_too_small(self) -> bool:
        return 0 < self.frequency_ms < self.min_frequency_ms

    @property
    def ignored_user_list(self) -> list[str]:
        if not self.ignored_users:
            return []
        return [u.strip() for u in self.ignored_users.split(",") if u.strip()]

    def session_settings(self) -> dict[str, str]:
        """Settings pushed to the session so the snapshot procedure can read them."""
        return {
            "powa.frequency": str(self.frequency_ms),
            "powa.coalesce": str(self.coalesce),
            "powa.retention": str(self.retention_minutes),
            "powa.ignored_users": self.ignored_users or "",
        }

    def to_dict(self) -> dict:
        return asdict(self)


# postgresql.conf line: name [=] value [# comment]
_CONF_LINE = re.compile(
    r"^\s*(?P<name>[A-Za-z_][\w.]*)\s*=?\s*"
    r"(?P<value>'(?:[^']|'')*'|[^\s#']+)?\s*(?:#.*)?$"
)


def parse_conf_file(path: str) -> dict[str, str]:
    """Read name/value pairs from a postgresql.conf-style file."""
    values: dict[str, str] = {}
    with open(path, "r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue
            match = _CONF_LINE.match(line)
            if not match or match.group("value") is None:
                raise ConfigError(f"syntax error in file \"{path}\" line {lineno}")
            value = match.group("value")
            if value.startswith("'"):
                value = value[1:-1].replace("''", "'")
            values[match.group("name")] = value
    return values


def load_runtime_config(
    path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
    previous: Optional[RuntimeConfig] = None,
) -> RuntimeConfig:
    """
    Build a RuntimeConfig from the settings file and POWA_* variables.

    Invalid values are logged and ignored: the option keeps its previous
    value (or its default when there is no previous config).
    """
    environ = os.environ if environ is None else environ
    base = previous or RuntimeConfig()
    raw: dict[str, str] = {}

    if path:
        for name, value in parse_conf_file(path).items():
            if name in OPTIONS_BY_NAME:
                raw[name] = value
            elif name.startswith("powa."):
                logger.warning(f"unrecognized configuration parameter \"{name}\" in {path}")

    for option in OPTIONS:
        if option.env_var in environ:
            raw[option.name] = environ[option.env_var]

    changes = {}
    for option in OPTIONS:
        if option.name not in raw:
            # Settings removed from the file fall back to their default
            if previous is not None:
                changes[option.field_name] = option.default
            continue
        try:
            changes[option.field_name] = option.parse(raw[option.name])
        except ConfigError as e:
            logger.warning(f"{e}; keeping {getattr(base, option.field_name)!r}")
    return replace(base, **changes)


class SettingsHolder:
    """
    Process-wide holder of the current RuntimeConfig.

    Readers get a complete snapshot through `current`; `reload()` builds a
    new snapshot and swaps it in with a single assignment.
    """

    def __init__(self, loader: Callable[[Optional[RuntimeConfig]], RuntimeConfig]):
        self._loader = loader
        self._current = loader(None)

    @classmethod
    def from_sources(cls, path: Optional[str] = None,
                     environ: Optional[Mapping[str, str]] = None) -> "SettingsHolder":
        path = path or (environ if environ is not None else os.environ).get(CONFIG_FILE_ENV)
        return cls(lambda previous: load_runtime_config(path, environ, previous))

    @property
    def current(self) -> RuntimeConfig:
        return self._current

    def reload(self) -> RuntimeConfig:
        """Re-read persisted settings; start-only options keep their value."""
        old = self._current
        try:
            new = self._loader(old)
        except (ConfigError, OSError) as e:
            logger.warning(f"configuration file not applied, keeping current settings: {e}")
            return old
        for option in OPTIONS:
            if option.context != GucContext.POSTMASTER:
                continue
            if getattr(new, option.field_name) != getattr(old, option.field_name):
                logger.warning(
                    f"parameter \"{option.name}\" cannot be changed without restarting the collector"
                )
                new = replace(new, **{option.field_name: getattr(old, option.field_name)})
        self._current = new
        if new != old:
            logger.info(f"Configuration reloaded: {new}")
        return new
