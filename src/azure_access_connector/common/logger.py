#!/usr/bin/env python3
"""
logger.py

Centralized logging set-up for the Azure Access Connector.

get_logger() returns a named logger writing to stdout and to a rotating file, both
through CustomLogFormatter. Defaults come from the environment:

    LOG_LEVEL         (default INFO)
    LOG_FILE          (default azure_access_connector.log)
    LOG_FORMAT        (default: CustomLogFormatter's format)
    LOG_DATE_FORMAT   (default %Y-%m-%d %H:%M:%S)
    LOG_MAX_BYTES     (default 10 MB)
    LOG_BACKUP_COUNT  (default 5)

configure_logging() applies the "logging" section of the connector config on top of
those defaults to every component logger of the connector.

Author: [Your Name]
Date: [Current Date]
"""

import logging
import logging.handlers
import os
import sys
from typing import Any, Dict, Iterable, Optional

from azure_access_connector.common.log_formatter import CustomLogFormatter

COMPONENT_LOGGERS = [
    "SyncDriver",
    "Connector",
    "Credentials",
    "GraphClient",
    "ArmClient",
    "ResourceCache",
    "RoleAssignmentIndex",
    "PrincipalTypeResolver",
    "GrantExpansionPolicy",
    "MultiPhaseGrantsOrchestrator",
    "UserBuilder",
    "GroupBuilder",
    "EnterpriseApplicationBuilder",
    "ManagedIdentityBuilder",
    "TenantBuilder",
    "SubscriptionBuilder",
    "ResourceGroupBuilder",
    "RoleBuilder",
    "StorageAccountBuilder",
    "ContainerBuilder",
]


def _settings(overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    settings = {
        "level": os.getenv("LOG_LEVEL", "INFO"),
        "file": os.getenv("LOG_FILE", "azure_access_connector.log"),
        "format": os.getenv("LOG_FORMAT") or None,
        "date_format": os.getenv("LOG_DATE_FORMAT") or None,
        "max_bytes": int(os.getenv("LOG_MAX_BYTES", 10 * 1024 * 1024)),
        "backup_count": int(os.getenv("LOG_BACKUP_COUNT", 5)),
        "extra_fields": {},
    }
    for key, value in (overrides or {}).items():
        if value is not None and key in settings:
            settings[key] = value
    return settings


def get_logger(logger_name: str, settings: Optional[Dict[str, Any]] = None) -> logging.Logger:
    """
    Create and return a logger with the specified name, logging to stdout and to a
    rotating file.

    Parameters:
        logger_name (str): The name for the logger.
        settings (dict): Optional overrides of the environment defaults (keys: level,
            file, format, date_format, max_bytes, backup_count, extra_fields).

    Returns:
        logging.Logger: A configured logger instance. A logger that already has
        handlers is returned unchanged.
    """
    logger = logging.getLogger(logger_name)
    if logger.handlers:
        return logger

    settings = _settings(settings)
    level = getattr(logging, str(settings["level"]).upper(), logging.INFO)
    logger.setLevel(level)

    formatter = CustomLogFormatter(fmt=settings["format"], datefmt=settings["date_format"],
                                   extra_fields=settings["extra_fields"])

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if settings["file"]:
        file_handler = logging.handlers.RotatingFileHandler(
            filename=settings["file"],
            maxBytes=int(settings["max_bytes"]),
            backupCount=int(settings["backup_count"]),
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    # Component loggers must not also reach the root logger.
    logger.propagate = False
    return logger


def configure_logging(config: Dict[str, Any], names: Iterable[str] = COMPONENT_LOGGERS) -> None:
    """
    Configure every component logger from the "logging" section of the connector config.

    Parameters:
        config (dict): Full connector configuration.
        names (iterable): Logger names to configure.
    """
    settings = dict(config.get("logging") or {})
    for name in names:
        get_logger(name, settings)


if __name__ == "__main__":
    demo_logger = get_logger("SyncDriver", {"file": "", "level": "DEBUG", "extra_fields": {"sync_id": "demo"}})
    demo_logger.debug("Debug: This is a debug message.")
    demo_logger.info("Info: This is an info message.")
    demo_logger.warning("Warning: This is a warning message.")
