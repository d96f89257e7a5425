#!/usr/bin/env python3
"""
config_loader.py

Loads the connector configuration from YAML and lets environment variables override
individual keys.

Usage:
    from azure_access_connector.common import config_loader
    config = config_loader.load_config()  # CONFIG_PATH or config/connector_config.yml

Environment overrides arrive as strings, so validate_config() coerces the boolean
and integer settings back to their types and rejects contradictory credential
settings.

Author: [Your Name]
Date: [Current Date]
"""

import copy
import os
from typing import Any, Dict, Optional

import yaml

from azure_access_connector.connectors.errors import ConfigurationError

DEFAULT_CONFIG_PATH = "config/connector_config.yml"

DEFAULTS: Dict[str, Any] = {
    "azure_tenant_id": "",
    "azure_client_id": "",
    "azure_client_secret": "",
    "use_cli_credentials": False,
    "mailbox_settings": False,
    "skip_ad_groups": False,
    "small_page_heuristic": True,
    "small_page_threshold": 50,
    "page_size": 100,
    "max_workers": 4,
    "output_path": "sync_output.json",
    "logging": {},
}

BOOL_KEYS = ("use_cli_credentials", "mailbox_settings", "skip_ad_groups", "small_page_heuristic")
INT_KEYS = ("small_page_threshold", "page_size", "max_workers")
POSITIVE_INT_KEYS = ("page_size", "max_workers")

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off", "")


def load_yaml_config(file_path: str) -> dict:
    """
    Loads configuration from a YAML file.

    Raises:
        FileNotFoundError: If the configuration file is not found.
        ConfigurationError: If the file is not valid YAML or not a mapping.
    """
    if not os.path.exists(file_path):
        raise FileNotFoundError(f"Configuration file not found: {file_path}")

    with open(file_path, "r") as file:
        try:
            config = yaml.safe_load(file)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Error parsing YAML configuration file {file_path}: {e}") from e
    if config is None:
        return {}
    if not isinstance(config, dict):
        raise ConfigurationError(f"Configuration file {file_path} must contain a mapping")
    return config


def merge_env_config(config: dict) -> dict:
    """
    Override configuration values with environment variables named after the key in
    uppercase (AZURE_TENANT_ID, SKIP_AD_GROUPS, ...). Nested dictionaries are merged
    recursively.
    """
    for key, value in config.items():
        env_var = key.upper()
        if isinstance(value, dict):
            config[key] = merge_env_config(value)
        elif env_var in os.environ:
            config[key] = os.environ[env_var]
    return config


def _to_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ConfigurationError(f"{key} must be a boolean, got {value!r}")


def _to_int(key: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"{key} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{key} must be an integer, got {value!r}")


def validate_config(config: dict) -> dict:
    """
    Coerce typed settings and check credential options.

    Returns:
        dict: The same configuration with booleans and integers coerced.

    Raises:
        ConfigurationError: On an invalid value or on use_cli_credentials combined
            with azure_client_id / azure_client_secret.
    """
    for key in BOOL_KEYS:
        config[key] = _to_bool(key, config.get(key, DEFAULTS[key]))
    for key in INT_KEYS:
        config[key] = _to_int(key, config.get(key, DEFAULTS[key]))
    for key in POSITIVE_INT_KEYS:
        if config[key] < 1:
            raise ConfigurationError(f"{key} must be at least 1, got {config[key]}")
    if not isinstance(config.get("logging"), dict):
        config["logging"] = {}
    if config["small_page_threshold"] < 0:
        raise ConfigurationError("small_page_threshold must not be negative")

    if config["use_cli_credentials"] and (config.get("azure_client_id") or config.get("azure_client_secret")):
        raise ConfigurationError(
            "use_cli_credentials cannot be combined with azure_client_id or azure_client_secret")
    if bool(config.get("azure_client_id")) != bool(config.get("azure_client_secret")):
        raise ConfigurationError("azure_client_id and azure_client_secret must be set together")
    return config


def load_config(file_path: Optional[str] = None) -> dict:
    """
    Load the connector configuration: defaults, then the YAML file, then environment
    overrides, then validation.

    Parameters:
        file_path (str): Optional path; CONFIG_PATH or config/connector_config.yml otherwise.
    """
    if file_path is None:
        file_path = os.getenv("CONFIG_PATH", DEFAULT_CONFIG_PATH)
    config = copy.deepcopy(DEFAULTS)
    config.update(load_yaml_config(file_path))
    config = merge_env_config(config)
    return validate_config(config)


def get_config_value(config: dict, key: str, default=None):
    return config.get(key, default)
