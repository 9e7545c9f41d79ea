"""
Pool Configuration

Dataclass configuration for Redis pools and per-call execution options,
plus loading of pool definitions from YAML files with environment variable
expansion.
"""

import logging
import os
import re
from collections.abc import Mapping
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import yaml

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

SUPPORTED_SCHEMES = ("redis", "rediss", "unix")

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


@dataclass(frozen=True)
class PoolConfig:
    """Redis pool configuration"""

    name: str
    url: str
    pool_size: int = 10

    # Default lease timeout for executor calls (seconds)
    lease_timeout: float = 5.0

    # Health and lifecycle
    idle_timeout: float = 10.0  # probe workers idle this long; 0 disables
    health_check_timeout: float = 5.0
    health_check_on_lease: bool = False

    # Connection
    connect_timeout: float = 10.0
    socket_timeout: float | None = None
    decode_responses: bool = True

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PoolConfig":
        """Create a config from a mapping, rejecting unknown keys"""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown pool options: {', '.join(sorted(unknown))}")
        for required in ("name", "url"):
            if not data.get(required):
                raise ConfigurationError(f"Pool option '{required}' is required")
        return cls(**{key: _coerce(key, value) for key, value in data.items()})

    def with_overrides(self, **overrides: Any) -> "PoolConfig":
        """Copy of this config with some fields replaced"""
        return replace(self, **overrides)

    def validate(self) -> None:
        """Validate the configuration, raising ConfigurationError"""
        if not isinstance(self.name, str) or not self.name:
            raise ConfigurationError("Pool name is required")
        validate_url(self.url)
        if isinstance(self.pool_size, bool) or not isinstance(self.pool_size, int):
            raise ConfigurationError(f"Pool size must be an integer, got {self.pool_size!r}")
        if self.pool_size < 0:
            raise ConfigurationError(f"Pool size must not be negative: {self.pool_size}")
        for option in ("lease_timeout", "idle_timeout", "health_check_timeout", "connect_timeout"):
            value = getattr(self, option)
            if not isinstance(value, (int, float)) or value < 0:
                raise ConfigurationError(f"Invalid {option}: {value!r}")
        if self.socket_timeout is not None and self.socket_timeout <= 0:
            raise ConfigurationError(f"Invalid socket_timeout: {self.socket_timeout!r}")

    def to_dict(self, redact: bool = True) -> dict[str, Any]:
        data = asdict(self)
        if redact:
            data["url"] = redact_url(self.url)
        return data


@dataclass(frozen=True)
class ExecuteOptions:
    """Per-call options for command execution"""

    lease_timeout: float | None = None  # None uses the pool default
    retry_count: int = 0
    retry_delay: float = 0.0
    retry_backoff_factor: float = 2.0

    def __post_init__(self):
        if isinstance(self.retry_count, bool) or not isinstance(self.retry_count, int) or self.retry_count < 0:
            raise ConfigurationError(f"retry_count must be a non-negative integer, got {self.retry_count!r}")
        if self.lease_timeout is not None and self.lease_timeout < 0:
            raise ConfigurationError(f"lease_timeout must not be negative, got {self.lease_timeout!r}")
        if self.retry_delay < 0:
            raise ConfigurationError(f"retry_delay must not be negative, got {self.retry_delay!r}")

    def merged(self, **overrides: Any) -> "ExecuteOptions":
        """Copy with the given keyword overrides applied"""
        if not overrides:
            return self
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ConfigurationError(f"Unknown execute options: {', '.join(sorted(unknown))}")
        return replace(self, **overrides)

    def backoff(self, attempt: int) -> float:
        """Delay before retry number `attempt` (1-based)"""
        return self.retry_delay * (self.retry_backoff_factor ** (attempt - 1))


_INT_OPTIONS = frozenset({"pool_size"})
_FLOAT_OPTIONS = frozenset({
    "lease_timeout", "idle_timeout", "health_check_timeout", "connect_timeout", "socket_timeout",
})
_BOOL_OPTIONS = frozenset({"health_check_on_lease", "decode_responses"})


def _coerce(key: str, value: Any) -> Any:
    # Values expanded from environment variables arrive as strings
    if not isinstance(value, str):
        return value
    try:
        if key in _INT_OPTIONS:
            return int(value)
        if key in _FLOAT_OPTIONS:
            return float(value) if value else None
    except ValueError as e:
        raise ConfigurationError(f"Invalid value for {key}: {value!r}", e) from e
    if key in _BOOL_OPTIONS:
        return value.strip().lower() in ("1", "true", "yes", "on")
    return value


def validate_url(url: Any) -> None:
    """Check that a Redis URL names a usable endpoint"""
    if not isinstance(url, str) or not url:
        raise ConfigurationError("Redis URL is required")
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError as e:
        raise ConfigurationError(f"Invalid Redis URL: {redact_url(url)}", e) from e

    if parts.scheme not in SUPPORTED_SCHEMES:
        raise ConfigurationError(
            f"Redis URL must use one of {', '.join(SUPPORTED_SCHEMES)}: {redact_url(url)}"
        )
    if parts.scheme == "unix":
        if not parts.path:
            raise ConfigurationError(f"Unix socket URL has no path: {redact_url(url)}")
        return
    if not parts.hostname:
        raise ConfigurationError(f"Redis URL has no host: {redact_url(url)}")
    if port is not None and port <= 0:
        raise ConfigurationError(f"Invalid port in Redis URL: {redact_url(url)}")
    db = parts.path.lstrip("/")
    if db and not db.isdigit():
        raise ConfigurationError(f"Invalid database number in Redis URL: {redact_url(url)}")


def redact_url(url: str) -> str:
    """Hide the password part of a URL for logging"""
    try:
        parts = urlsplit(url)
    except ValueError:
        return "<invalid url>"
    if parts.password is None:
        return url
    netloc = parts.netloc.rsplit("@", 1)[-1]
    user = parts.username or ""
    return parts._replace(netloc=f"{user}:***@{netloc}").geturl()


def expand_env_vars(obj: Any) -> Any:
    """Recursively expand ${VAR} and ${VAR:-default} references"""
    if isinstance(obj, dict):
        return {key: expand_env_vars(value) for key, value in obj.items()}
    if isinstance(obj, list):
        return [expand_env_vars(item) for item in obj]
    if isinstance(obj, str):
        return _ENV_VAR_PATTERN.sub(_replace_env_var, obj)
    return obj


def _replace_env_var(match: re.Match) -> str:
    var_expr = match.group(1)
    if ":-" in var_expr:
        var_name, default_value = var_expr.split(":-", 1)
        return os.environ.get(var_name, default_value)
    return os.environ.get(var_expr, "")


def load_pool_configs(path: str | Path) -> list[PoolConfig]:
    """Load pool definitions from a YAML file.

    The file holds a top-level ``pools`` key, either a list of pool mappings
    or a mapping of pool name to options::

        pools:
          cache:
            url: ${REDIS_URL:-redis://localhost:6379/0}
            pool_size: 5
    """
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as file:
            raw = yaml.safe_load(file) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Error parsing YAML file {path}: {e}", e) from e
    except OSError as e:
        raise ConfigurationError(f"Error reading file {path}: {e}", e) from e

    if not isinstance(raw, dict):
        raise ConfigurationError(f"Expected a mapping at the top of {path}")

    pools = expand_env_vars(raw.get("pools", {}))
    if isinstance(pools, dict):
        entries = []
        for name, options in pools.items():
            options = dict(options or {})
            options.setdefault("name", name)
            entries.append(options)
    elif isinstance(pools, list):
        entries = pools
    else:
        raise ConfigurationError(f"'pools' in {path} must be a list or a mapping")

    configs = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise ConfigurationError(f"Pool entry in {path} must be a mapping, got {entry!r}")
        config = PoolConfig.from_dict(entry)
        config.validate()
        configs.append(config)

    names = [config.name for config in configs]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise ConfigurationError(f"Duplicate pool names in {path}: {', '.join(duplicates)}")

    logger.debug(f"Loaded {len(configs)} pool configurations from {path}")
    return configs
