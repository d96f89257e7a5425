#!/usr/bin/env python3
"""
log_formatter.py

Log formatter for the Azure Access Connector. Every record carries the hostname and
the fixed extra fields of the run (for example the sync_id), so that log lines from
parallel resource-type workers can be correlated in an aggregator.

Author: [Your Name]
Date: [Current Date]
"""

import logging
import socket
from typing import Any, Dict, Optional

DEFAULT_FORMAT = ("%(asctime)s - %(hostname)s - Thread:%(threadName)s - %(name)s"
                  " - %(levelname)s - %(message)s")
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class CustomLogFormatter(logging.Formatter):
    """
    Formatter that injects "hostname" and any extra_fields into each record.

    Parameters:
        fmt (str): Format string; DEFAULT_FORMAT when None.
        datefmt (str): Date format; DEFAULT_DATE_FORMAT when None.
        extra_fields (dict): Attributes set on every record, e.g. {"sync_id": "..."}.
            A field already present on the record (passed through `extra=`) wins.
    """

    def __init__(self, fmt: Optional[str] = None, datefmt: Optional[str] = None, style: str = "%",
                 extra_fields: Optional[Dict[str, Any]] = None):
        super().__init__(fmt=fmt or DEFAULT_FORMAT, datefmt=datefmt or DEFAULT_DATE_FORMAT, style=style)
        self.extra_fields = dict(extra_fields or {})
        self.hostname = socket.gethostname()

    def format(self, record: logging.LogRecord) -> str:
        record.hostname = self.hostname
        for key, value in self.extra_fields.items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return super().format(record)
