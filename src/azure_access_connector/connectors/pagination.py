#!/usr/bin/env python3
"""
pagination.py

PageCursor: the opaque, serializable phase stack that lets a List/Grants call
resume exactly where the previous call left off.

The cursor is a LIFO stack of PhaseState entries. The active phase is always the top
of the stack, so a multi-phase enumeration is set up by pushing its phases in the
reverse of the order they should run. The stack is serialized to a versioned JSON
document; an empty stack serializes to the empty string, which callers treat as
"start from the beginning".

Usage:
    cursor = PageCursor.decode(incoming_token)
    if cursor.is_empty():
        cursor.push_phase("members")
        cursor.push_phase("owners")
    state = cursor.current_phase()
    ...
    outgoing_token = cursor.encode()

Author: [Your Name]
Date: [Current Date]
"""

import json
from dataclasses import dataclass
from typing import List, Optional

from azure_access_connector.connectors.errors import MalformedCursorError

CURSOR_VERSION = 1


@dataclass(frozen=True)
class PhaseState:
    """
    One entry of the cursor stack.

    Attributes:
        phase_tag (str): Name of the phase (e.g. "owners", "members", "role-assignment").
        continuation_token (str): Upstream next link or application level marker; None
            means "first page of this phase".
        correlation_id (str): Optional identifier the phase needs to resume (e.g. the
            object ID the phase is enumerating).
    """

    phase_tag: str
    continuation_token: Optional[str] = None
    correlation_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {"tag": self.phase_tag, "token": self.continuation_token, "id": self.correlation_id}


def _optional_str(value, field_name: str) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    raise MalformedCursorError(f"cursor field {field_name!r} must be a string")


class PageCursor:
    """
    LIFO stack of PhaseState entries.

    A PageCursor is owned by exactly one call; it is never shared between
    concurrent List/Grants invocations.
    """

    def __init__(self, phases: Optional[List[PhaseState]] = None):
        # Bottom of the stack first, active phase last.
        self._phases = list(phases or [])

    @classmethod
    def decode(cls, opaque: Optional[str]) -> "PageCursor":
        """
        Parse an opaque cursor string.

        Parameters:
            opaque (str): Cursor returned by a previous call, or an empty/None value.

        Returns:
            PageCursor: The decoded stack. Empty input yields an empty stack.

        Raises:
            MalformedCursorError: If the string is not a cursor of a supported version.
        """
        if not opaque:
            return cls()

        try:
            document = json.loads(opaque)
        except (TypeError, ValueError) as e:
            raise MalformedCursorError(f"cursor is not valid JSON: {e}") from e

        if not isinstance(document, dict):
            raise MalformedCursorError("cursor must be a JSON object")
        version = document.get("v")
        if isinstance(version, bool) or version != CURSOR_VERSION:
            raise MalformedCursorError(f"unsupported cursor version: {version!r}")

        raw_phases = document.get("phases")
        if not isinstance(raw_phases, list):
            raise MalformedCursorError("cursor is missing its phase list")

        phases = []
        for raw in raw_phases:
            if not isinstance(raw, dict):
                raise MalformedCursorError("cursor phase entries must be JSON objects")
            tag = raw.get("tag")
            if not isinstance(tag, str) or not tag:
                raise MalformedCursorError("cursor phase is missing its tag")
            phases.append(PhaseState(
                phase_tag=tag,
                continuation_token=_optional_str(raw.get("token"), "token"),
                correlation_id=_optional_str(raw.get("id"), "id"),
            ))
        return cls(phases)

    def encode(self) -> str:
        """Serialize the stack; the exact inverse of decode()."""
        if not self._phases:
            return ""
        document = {"v": CURSOR_VERSION, "phases": [p.to_dict() for p in self._phases]}
        return json.dumps(document, separators=(",", ":"))

    def push_phase(self, phase_tag: str, continuation_token: Optional[str] = None,
                   correlation_id: Optional[str] = None) -> None:
        """Push a phase on top of the stack; it becomes the active phase."""
        self._phases.append(PhaseState(phase_tag, continuation_token, correlation_id))

    def current_phase(self) -> Optional[PhaseState]:
        """Return the active phase without removing it, or None when no work remains."""
        if not self._phases:
            return None
        return self._phases[-1]

    def replace_current_continuation(self, continuation_token: Optional[str]) -> None:
        """Update the continuation token of the active phase in place."""
        if not self._phases:
            raise IndexError("replace_current_continuation on an empty cursor")
        top = self._phases[-1]
        self._phases[-1] = PhaseState(top.phase_tag, continuation_token, top.correlation_id)

    def pop_phase(self) -> Optional[PhaseState]:
        """Remove and return the active phase, or None if the stack is empty."""
        if not self._phases:
            return None
        return self._phases.pop()

    def is_empty(self) -> bool:
        return not self._phases

    def copy(self) -> "PageCursor":
        return PageCursor(self._phases)

    @property
    def phases(self) -> List[PhaseState]:
        return list(self._phases)

    def __len__(self) -> int:
        return len(self._phases)

    def __eq__(self, other) -> bool:
        if not isinstance(other, PageCursor):
            return NotImplemented
        return self._phases == other._phases

    def __repr__(self) -> str:
        return f"PageCursor({self._phases!r})"


if __name__ == "__main__":
    # Demonstrate the owners-then-members set up used by the group builder.
    demo = PageCursor()
    demo.push_phase("members")
    demo.push_phase("owners")
    demo.replace_current_continuation("https://graph.microsoft.com/beta/groups/g1/owners?$skiptoken=abc")
    token = demo.encode()
    print("Encoded cursor:", token)
    print("Decoded cursor:", PageCursor.decode(token))
