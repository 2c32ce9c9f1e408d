# src/contextgate/config/__init__.py
"""
Configuration loading for the ContextGate library.

Settings are layered, later sources winning key by key:

1. the packaged ``default_config.toml``
2. an optional user TOML file
3. environment variables named ``<PREFIX>_<SECTION>__<KEY>`` (a ``.env``
   file is loaded first with python-dotenv)
4. an overrides dictionary

The merged dictionary is validated into a :class:`ContextGateConfig`.
"""

import copy
import importlib.resources
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from dotenv import load_dotenv
from pydantic import ValidationError

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore[no-redef]

from ..exceptions import ConfigError
from .models import (
    AdmissionConfig,
    ContextGateConfig,
    ContextStoreConfig,
    MonitoringConfig,
    ReaperConfig,
    SelectorConfig,
)

logger = logging.getLogger(__name__)

DEFAULT_ENV_PREFIX = "CONTEXTGATE"


def load_default_config() -> Dict[str, Any]:
    """Read the packaged default_config.toml into a dictionary."""
    resource = importlib.resources.files("contextgate.config").joinpath("default_config.toml")
    with resource.open("rb") as f:
        return tomllib.load(f)


def deep_merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``base`` with ``override`` merged in, recursing into nested tables."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def env_overrides(prefix: str, environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """
    Collect ``<PREFIX>_<SECTION>__<KEY>`` variables into a nested dictionary.

    Values stay strings; pydantic coerces them when the merged config is
    validated. ``CONTEXTGATE_MONITORING__THRESHOLDS__ERROR_RATE=0.1`` becomes
    ``{"monitoring": {"thresholds": {"error_rate": "0.1"}}}``.
    """
    environ = os.environ if environ is None else environ
    marker = f"{prefix.upper()}_"
    result: Dict[str, Any] = {}
    for name, value in environ.items():
        if not name.upper().startswith(marker):
            continue
        path = [part.lower() for part in name[len(marker):].split("__") if part]
        if len(path) < 2:
            continue
        node = result
        for part in path[:-1]:
            node = node.setdefault(part, {})
        node[path[-1]] = value
    return result


def load_config(
    config_file_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    env_prefix: Optional[str] = DEFAULT_ENV_PREFIX,
    environ: Optional[Mapping[str, str]] = None,
    dotenv_path: Optional[Union[str, Path]] = None,
) -> ContextGateConfig:
    """
    Load and validate the ContextGate configuration.

    Args:
        config_file_path: Optional TOML file layered over the defaults.
        overrides: Dictionary applied last (same shape as the TOML file).
        env_prefix: Prefix for environment overrides; None disables them.
        environ: Environment mapping to read instead of ``os.environ``.
        dotenv_path: Explicit ``.env`` file; by default python-dotenv searches
            upward from the working directory. Ignored when ``environ`` is given.

    Returns:
        The validated configuration.

    Raises:
        ConfigError: If a file cannot be read or a value fails validation.
    """
    try:
        merged = load_default_config()
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Failed to read packaged default configuration: {e}")

    if config_file_path is not None:
        path = Path(config_file_path).expanduser()
        try:
            with path.open("rb") as f:
                merged = deep_merge(merged, tomllib.load(f))
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise ConfigError(f"Failed to read configuration file '{path}': {e}")
        logger.debug(f"Loaded configuration file: {path}")

    if env_prefix:
        if environ is None:
            load_dotenv(dotenv_path=dotenv_path, override=False)
        merged = deep_merge(merged, env_overrides(env_prefix, environ))

    if overrides:
        merged = deep_merge(merged, overrides)

    try:
        return ContextGateConfig.model_validate(merged)
    except ValidationError as e:
        raise ConfigError(f"Invalid ContextGate configuration: {e}")


__all__ = [
    "AdmissionConfig",
    "ContextGateConfig",
    "ContextStoreConfig",
    "MonitoringConfig",
    "ReaperConfig",
    "SelectorConfig",
    "deep_merge",
    "env_overrides",
    "load_config",
    "load_default_config",
]
