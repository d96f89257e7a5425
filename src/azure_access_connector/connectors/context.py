#!/usr/bin/env python3
"""
context.py

Cancellation-aware context passed to every List/Grants entry point.

Author: [Your Name]
Date: [Current Date]
"""

import threading
from typing import Optional

from azure_access_connector.connectors.errors import SyncCancelledError


class SyncContext:
    """
    Carries the cancellation signal for one sync run.

    The sync driver shares one SyncContext across worker threads; calling cancel()
    makes every subsequent raise_if_cancelled() raise SyncCancelledError.
    """

    def __init__(self, cancel_event: Optional[threading.Event] = None):
        self._cancel_event = cancel_event or threading.Event()

    def cancel(self) -> None:
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._cancel_event.is_set():
            raise SyncCancelledError("sync was cancelled")
