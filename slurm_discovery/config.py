"""Frozen dataclasses for configuration and YAML loader with env-var interpolation."""

from __future__ import annotations

import os
import re
import types
import typing
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigError

_ENV_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")

DEFAULT_REST_PORT = 6820


def _interpolate_env(value: str) -> str:
    """Replace ${ENV_VAR} and ${ENV_VAR:-default} placeholders with environment values."""

    def _replace(match: re.Match) -> str:
        env_key = match.group(1)
        env_val = os.environ.get(env_key)
        if env_val is None:
            if match.group(2) is not None:
                return match.group(2)
            raise ConfigError(f"Environment variable '{env_key}' is not set")
        return env_val

    return _ENV_PATTERN.sub(_replace, value)


def _walk_and_interpolate(obj: Any) -> Any:
    """Recursively interpolate env vars in strings throughout a nested structure."""
    if isinstance(obj, str):
        return _interpolate_env(obj)
    if isinstance(obj, dict):
        return {k: _walk_and_interpolate(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_walk_and_interpolate(v) for v in obj]
    return obj


@dataclass(frozen=True)
class DiscoveryConfig:
    enabled: bool = True
    enable_endpoint: bool = True
    enable_token: bool = True
    timeout_seconds: float = 10.0  # shared deadline for one discovery attempt
    default_port: int = DEFAULT_REST_PORT
    scontrol_path: str = "scontrol"
    cache_seconds: float = 300.0
    http_timeout_seconds: float = 5.0  # per-request, nested inside the deadline
    verify_ssl: bool = True
    scan_local_subnets: bool = False  # probes neighbouring hosts, opt-in only
    max_hosts_per_subnet: int = 5


@dataclass(frozen=True)
class TokenConfig:
    scontrol_path: str = "scontrol"
    timeout_seconds: float = 10.0
    lifespan_seconds: int = 3600


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    format: str = "json"  # "json" or "text"


@dataclass(frozen=True)
class AppConfig:
    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    token: TokenConfig = field(default_factory=TokenConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _get_dataclass_type(ft: Any) -> type | None:
    """Return the underlying dataclass type from a type annotation (handles Optional/X|None)."""
    if isinstance(ft, type) and hasattr(ft, "__dataclass_fields__"):
        return ft
    if isinstance(ft, types.UnionType):
        args = [a for a in ft.__args__ if a is not type(None)]
        if len(args) == 1 and isinstance(args[0], type) and hasattr(args[0], "__dataclass_fields__"):
            return args[0]
    origin = getattr(ft, "__origin__", None)
    if origin is typing.Union:
        args = [a for a in ft.__args__ if a is not type(None)]
        if len(args) == 1 and isinstance(args[0], type) and hasattr(args[0], "__dataclass_fields__"):
            return args[0]
    return None


def _build_nested(cls: type, data: dict[str, Any]) -> Any:
    """Construct a frozen dataclass, recursively building nested dataclass fields."""
    if not isinstance(data, dict):
        return data
    field_types = typing.get_type_hints(cls)
    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        if key not in field_types:
            continue
        dc_type = _get_dataclass_type(field_types[key])
        if dc_type is not None:
            if value is None:
                continue
            if not isinstance(value, dict):
                raise ConfigError(f"'{key}' must be a mapping")
            kwargs[key] = _build_nested(dc_type, value)
        else:
            kwargs[key] = value
    return cls(**kwargs)


def load_config(path: str | Path) -> AppConfig:
    """Load and validate configuration from a YAML file."""
    path = Path(path)
    if not path.is_file():
        raise ConfigError(f"Configuration file not found: {path}")

    with open(path) as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError("Configuration file must be a YAML mapping")

    raw = _walk_and_interpolate(raw)
    config = _build_nested(AppConfig, raw)
    _validate(config)
    return config


def _validate(config: AppConfig) -> None:
    """Validate configuration values."""
    disc = config.discovery

    if not isinstance(disc.timeout_seconds, (int, float)) or disc.timeout_seconds <= 0:
        raise ConfigError("discovery.timeout_seconds must be > 0")

    if not isinstance(disc.cache_seconds, (int, float)) or disc.cache_seconds < 0:
        raise ConfigError("discovery.cache_seconds must be >= 0")

    if not isinstance(disc.default_port, int) or not 1 <= disc.default_port <= 65535:
        raise ConfigError("discovery.default_port must be between 1 and 65535")

    if not isinstance(disc.http_timeout_seconds, (int, float)) or disc.http_timeout_seconds <= 0:
        raise ConfigError("discovery.http_timeout_seconds must be > 0")

    if not isinstance(disc.max_hosts_per_subnet, int) or disc.max_hosts_per_subnet < 0:
        raise ConfigError("discovery.max_hosts_per_subnet must be >= 0")

    if not disc.scontrol_path:
        raise ConfigError("discovery.scontrol_path must not be empty")

    if not isinstance(config.token.lifespan_seconds, int) or config.token.lifespan_seconds <= 0:
        raise ConfigError("token.lifespan_seconds must be a positive integer")

    if not isinstance(config.token.timeout_seconds, (int, float)) or config.token.timeout_seconds <= 0:
        raise ConfigError("token.timeout_seconds must be > 0")

    if config.logging.format not in ("json", "text"):
        raise ConfigError("logging.format must be 'json' or 'text'")
