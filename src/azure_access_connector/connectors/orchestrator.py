#!/usr/bin/env python3
"""
orchestrator.py

MultiPhaseGrantsOrchestrator drives the phase stack of a PageCursor: exactly one
phase-page per invocation.

Protocol:
  - Empty incoming cursor: push every phase of the resource in reverse execution
    order, so the first phase ends up on top.
  - Empty stack after decoding: drained; return no records and an empty cursor.
  - Otherwise fetch one page for the active phase:
      * upstream offers another page -> keep the phase, store the new token;
      * upstream is exhausted         -> pop the phase.
    Translate the page and return it together with the re-encoded cursor.
  - NotFoundError on a lenient phase counts as an empty, exhausted page (objects
    deleted between List and Grants are expected). A phase built with
    not_found_is_empty=False lets it propagate instead.
  - Small-page heuristic: when enabled, a page of at most `small_page_threshold`
    records is treated as the last one even if the upstream offered a continuation.
    Phases whose page sizes are not monotonic opt out with short_page_exit=False.

The orchestrator works on a copy of the decoded cursor and only encodes it after
the page has been fetched and fully translated, so cancellation or an error never
yields a half-updated cursor; retrying with the same input cursor is safe.

Author: [Your Name]
Date: [Current Date]
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence, Tuple

from azure_access_connector.connectors.context import SyncContext
from azure_access_connector.connectors.errors import ConnectorError, MalformedCursorError, NotFoundError
from azure_access_connector.connectors.pagination import PageCursor

logger = logging.getLogger("MultiPhaseGrantsOrchestrator")

DEFAULT_SMALL_PAGE_THRESHOLD = 50


@dataclass
class PhasePage:
    """One upstream page: raw records plus the continuation token (None when exhausted)."""

    records: List[Any] = field(default_factory=list)
    next_token: Optional[str] = None


def _identity(records: List[Any]) -> List[Any]:
    return list(records)


@dataclass
class Phase:
    """
    One named step of a multi-phase enumeration.

    Attributes:
        tag (str): Phase name stored in the cursor.
        fetch (callable): continuation_token -> PhasePage.
        translate (callable): records of one page -> output items. May raise to abort the page.
        initial_token (str): Token to start the phase with (e.g. a prebuilt URL).
        not_found_is_empty (bool): Treat NotFoundError as an empty, exhausted page.
        short_page_exit (bool): Whether the small-page heuristic applies to this phase.
    """

    tag: str
    fetch: Callable[[Optional[str]], PhasePage]
    translate: Callable[[List[Any]], List[Any]] = _identity
    initial_token: Optional[str] = None
    not_found_is_empty: bool = True
    short_page_exit: bool = True


class MultiPhaseGrantsOrchestrator:
    """
    Parameters:
        small_page_heuristic (bool): Enable the small-page short circuit.
        small_page_threshold (int): Pages with at most this many records end the phase.
        label (str): Used in log messages (usually the builder name).
    """

    def __init__(self, small_page_heuristic: bool = True,
                 small_page_threshold: int = DEFAULT_SMALL_PAGE_THRESHOLD, label: str = ""):
        self.small_page_heuristic = small_page_heuristic
        self.small_page_threshold = small_page_threshold
        self.label = label

    def run(self, phases: Sequence[Phase], cursor: Optional[str],
            ctx: Optional[SyncContext] = None) -> Tuple[List[Any], str]:
        """
        Process one phase-page.

        Parameters:
            phases (list): Phases in execution order.
            cursor (str): Opaque cursor from the previous call ("" to start).
            ctx (SyncContext): Cancellation context.

        Returns:
            (items, next_cursor): next_cursor is "" once every phase is drained.

        Raises:
            MalformedCursorError: Undecodable cursor or an unknown phase tag.
            SyncCancelledError: The context was cancelled.
            Any error raised by a phase's fetch or translate callable.
        """
        ctx = ctx or SyncContext()
        page_cursor = PageCursor.decode(cursor).copy()

        if page_cursor.is_empty():
            if cursor:
                # A non-empty cursor with no phases left is already drained.
                return [], ""
            for phase in reversed(phases):
                page_cursor.push_phase(phase.tag, phase.initial_token)

        state = page_cursor.current_phase()
        if state is None:
            return [], ""

        by_tag = {phase.tag: phase for phase in phases}
        phase = by_tag.get(state.phase_tag)
        if phase is None:
            raise MalformedCursorError(f"unknown cursor phase {state.phase_tag!r} for {self.label}")

        ctx.raise_if_cancelled()
        try:
            try:
                page = phase.fetch(state.continuation_token)
            except NotFoundError as e:
                if not phase.not_found_is_empty:
                    raise
                logger.warning("%s: phase %s returned not found, treating as empty: %s", self.label, phase.tag, e)
                page = PhasePage()
            ctx.raise_if_cancelled()
            items = phase.translate(page.records)
        except ConnectorError as e:
            if e.phase is None:
                e.phase = phase.tag
            raise

        next_token = page.next_token
        if (next_token and self.small_page_heuristic and phase.short_page_exit
                and len(page.records) <= self.small_page_threshold):
            logger.debug("%s: phase %s returned %d records, dropping continuation token",
                         self.label, phase.tag, len(page.records))
            next_token = None

        if next_token:
            page_cursor.replace_current_continuation(next_token)
        else:
            page_cursor.pop_phase()
            logger.debug("%s: phase %s drained, %d phase(s) remaining", self.label, phase.tag, len(page_cursor))

        return items, page_cursor.encode()
