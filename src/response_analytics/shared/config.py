from __future__ import annotations

import os
import re
import typing as t
from pathlib import Path

import yaml


class ConfigurationError(Exception):
    """Raised when there's an error loading configuration."""

    pass


ENV_VAR_PATTERN = re.compile(r'\$\{([^}]+)\}')


def _interpolate_env_vars(value: t.Any) -> t.Any:
    """Interpolate ${VAR} and ${VAR:-default} in config values."""
    if isinstance(value, str):

        def replacer(match: re.Match) -> str:
            var_expr = match.group(1)
            if ':-' in var_expr:
                var_name, default = var_expr.split(':-', 1)
                return os.environ.get(var_name.strip(), default)
            # Unknown variables are left as written so validation can flag them.
            return os.environ.get(var_expr.strip(), match.group(0))

        return ENV_VAR_PATTERN.sub(replacer, value)
    elif isinstance(value, dict):
        return {k: _interpolate_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_interpolate_env_vars(item) for item in value]
    return value


def load_config(
    path: str | Path, overrides: dict[str, t.Any] | None = None
) -> dict[str, t.Any]:
    """Load YAML config with env var interpolation and optional overrides.

    Args:
        path: Path to YAML file
        overrides: Dict with dot-notation keys to override config values

    Returns:
        Configuration dictionary

    Examples:
        >>> cfg = load_config("config/response_latency.yaml")
        >>> cfg = load_config(
        ...     "config/response_latency.yaml",
        ...     overrides={"engine": "database", "window.end": "10:00:00"},
        ... )
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f'Config file not found: {path}')

    try:
        with open(path) as f:
            cfg = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f'Invalid YAML in {path}: {e}') from e

    if not isinstance(cfg, dict):
        raise ConfigurationError(
            f'Config root must be a mapping, got {type(cfg).__name__}: {path}'
        )

    cfg = _interpolate_env_vars(cfg)

    if overrides:
        for key, value in overrides.items():
            _set_nested(cfg, key, value)

    return cfg


def _set_nested(d: dict, key_str: str, value: t.Any) -> None:
    """Set a value in a nested dict using dot notation."""
    keys = key_str.split('.')
    for key in keys[:-1]:
        d = d.setdefault(key, {})
    d[keys[-1]] = value
