"""
Configuration Management Module

Handles loading, validating, and updating application configuration from config.json
Supports merging user settings with defaults
"""

import json
from pathlib import Path
from typing import Optional
import logging

logger = logging.getLogger("zkledger")


DEFAULT_CONFIG = {
    "encryption": {
        "kdf_iterations": 100000,
    },
    "anomaly": {
        "amount_z_threshold": 2.5,
        "category_z_threshold": 2.0,
        "frequency_ratio_threshold": 2.0,
        "spike_ratio_threshold": 1.5,
        "min_amount_history": 5,
        "min_large_tx_history": 10,
        "min_batch_size": 10,
    },
    "storage": {
        "db_file": None,  # None -> constants.DB_FILE
        "salt_file": None,  # None -> constants.SALT_FILE
    },
    "logging": {
        "level": "INFO",
    },
}


def load_config(config_file: Optional[Path] = None):
    """
    Load configuration from config.json with sensible defaults

    Args:
        config_file: Override path; defaults to constants.CONFIG_FILE

    Returns:
        dict: Configuration dictionary
    """
    if config_file is None:
        from .constants import CONFIG_FILE
        config_file = CONFIG_FILE

    defaults = json.loads(json.dumps(DEFAULT_CONFIG))

    if not config_file.exists():
        _save_config(config_file, defaults)
        return defaults

    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            config = json.load(f)

        if not isinstance(config, dict):
            logger.error("Config file must contain a JSON object. Using defaults.")
            return defaults

        # Merge with defaults to ensure all keys exist
        merged = _deep_merge(defaults, config)

        # Save merged config back if anything was added
        if merged != config:
            _save_config(config_file, merged)

        return merged
    except json.JSONDecodeError as e:
        logger.error(f"Config file corrupted: {e}. Using defaults.")
        return defaults
    except OSError as e:
        logger.error(f"Error loading config: {e}. Using defaults.")
        return defaults


def _deep_merge(defaults: dict, override: dict) -> dict:
    """
    Deep merge override config into defaults, preserving new defaults

    Args:
        defaults: Default configuration
        override: User-provided configuration

    Returns:
        dict: Merged configuration
    """
    result = defaults.copy()
    for key, value in override.items():
        if key in defaults and isinstance(defaults[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(defaults[key], value)
        else:
            result[key] = value
    return result


def _save_config(config_file: Path, config: dict):
    """
    Save configuration to file

    Args:
        config_file: Path to config file
        config: Configuration dictionary
    """
    try:
        config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(config_file, 'w', encoding='utf-8') as f:
            json.dump(config, f, indent=4)
    except OSError as e:
        logger.error(f"Failed to save config: {e}")


def update_config(section: str, key: str, value, config_file: Optional[Path] = None):
    """
    Update a single setting and persist it

    Args:
        section: Top-level section name (e.g. 'anomaly')
        key: Setting name within the section
        value: New value
    """
    if config_file is None:
        from .constants import CONFIG_FILE
        config_file = CONFIG_FILE

    config = load_config(config_file)
    if section not in config or not isinstance(config[section], dict):
        raise KeyError(f"Unknown config section: {section}")
    config[section][key] = value
    _save_config(config_file, config)
    return config


def resolve_path(configured, fallback: Path) -> Path:
    """Return the configured path if set, else the static default."""
    if configured:
        return Path(configured)
    return fallback
