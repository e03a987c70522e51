# File: stroutliers/config.py
# Location: stroutliers/stroutliers/config.py

"""
Configuration management module.

This module handles loading configuration from a JSON file.
All default values reside in config.json, which is included in
the installed package directory. A user configuration file is merged
over those defaults; values given on the command line or through the
scheduler environment are merged over the result by ``merge_overrides``.
"""

import json
import os
from typing import Any, Dict, Mapping, Optional

from .pipeline_core.error_handling import ConfigMissing

DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(__file__), "config.json")

REQUIRED_KEYS = ("results_dir", "log_dir")

# Environment variables consulted when a key is not set in the config file.
ENV_FALLBACKS = {
    "results_dir": "STR_RES_DIR",
    "log_dir": "LOG_DIR",
    "outliers_runner": "STRLING_OUTLIERS",
}


def _read_json(config_file: str) -> Dict[str, Any]:
    if not os.path.exists(config_file):
        raise ConfigMissing(f"Config not found: {config_file}", details={"path": config_file})

    with open(config_file, "r", encoding="utf-8") as f:
        try:
            return json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigMissing(f"Error parsing JSON configuration {config_file}: {e}")


def load_config(config_file: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration from a JSON file.

    The package-installed 'config.json' supplies every default. If
    ``config_file`` is given, its keys are merged over the defaults.

    Parameters
    ----------
    config_file : str, optional
        Path to a configuration file in JSON format.

    Returns
    -------
    dict
        Configuration dictionary.

    Raises
    ------
    ConfigMissing
        If a configuration file does not exist or cannot be parsed.
    """
    config = _read_json(DEFAULT_CONFIG_PATH)
    if config_file:
        user_config = _read_json(config_file)
        if not isinstance(user_config, dict):
            raise ConfigMissing(f"Configuration in {config_file} must be a JSON object")
        for key, value in user_config.items():
            if isinstance(value, dict) and isinstance(config.get(key), dict):
                config[key] = {**config[key], **value}
            else:
                config[key] = value
    return config


def merge_overrides(
    config: Dict[str, Any],
    overrides: Mapping[str, Any],
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    """
    Apply command-line overrides and environment fallbacks.

    Precedence: non-None ``overrides`` > config file > environment >
    packaged defaults. An environment variable fills a key that is unset or
    still holds its packaged default value.

    Parameters
    ----------
    config : dict
        Configuration returned by ``load_config``
    overrides : Mapping
        Values from the command line; ``None`` entries are ignored
    environ : Mapping, optional
        Environment to consult (default: ``os.environ``)

    Returns
    -------
    dict
        A new merged configuration dictionary
    """
    environ = os.environ if environ is None else environ
    defaults = _read_json(DEFAULT_CONFIG_PATH)
    merged = dict(config)

    for key, var in ENV_FALLBACKS.items():
        if not environ.get(var):
            continue
        if not merged.get(key) or merged[key] == defaults.get(key):
            merged[key] = environ[var]

    for key, value in overrides.items():
        if value is not None:
            merged[key] = value

    return merged


def validate_config(config: Dict[str, Any]) -> None:
    """
    Check that every required key is present.

    Raises
    ------
    ConfigMissing
        Listing the missing keys.
    """
    missing = [key for key in REQUIRED_KEYS if not config.get(key)]
    if missing:
        raise ConfigMissing(
            f"Missing required configuration: {', '.join(missing)}", details={"missing": missing}
        )
    if int(config.get("min_existing_size", 0)) < 0:
        raise ConfigMissing("min_existing_size must not be negative")
