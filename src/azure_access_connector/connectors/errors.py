#!/usr/bin/env python3
"""
errors.py

Exception taxonomy shared by the Azure Access Connector.

Hard errors (malformed cursors, malformed upstream records, cache build failures,
unrecognized owner types) propagate to the sync driver and fail the run.
Soft conditions (unsupported service principal subtypes, unknown membership types
on membership lists) are never raised; they are logged once and counted by the
GrantExpansionPolicy instead.

Author: [Your Name]
Date: [Current Date]
"""

from typing import Optional


class ConnectorError(Exception):
    """
    Base class for every error raised by the connector.

    Attributes:
        phase (str): Cursor phase that was active when the error was raised, if any.
    """

    phase = None


class ConfigurationError(ConnectorError):
    """The loaded configuration is missing keys or combines exclusive options."""


class MalformedCursorError(ConnectorError):
    """
    The caller supplied a cursor that cannot be decoded.

    The caller should restart pagination for the resource from an empty cursor.
    """


class SyncCancelledError(ConnectorError):
    """The sync context was cancelled while a page was being processed."""


class UpstreamError(ConnectorError):
    """
    Generic failure returned by Microsoft Graph or Azure Resource Manager.

    Attributes:
        status_code (int): HTTP status code, if one was received.
        url (str): The request URL or ARM operation that failed.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, url: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class NotFoundError(UpstreamError):
    """The requested object does not exist (HTTP 404)."""


class UnauthorizedError(UpstreamError):
    """The credential was rejected or lacks the required permission (HTTP 401/403)."""


class RateLimitedError(UpstreamError):
    """
    The upstream throttled the request (HTTP 429 or 504).

    The connector never sleeps on this error; it carries the server suggested
    delay so the external caller can decide when to retry.
    """

    def __init__(self, message: str, retry_after: int = 0, status_code: Optional[int] = None,
                 url: Optional[str] = None):
        super().__init__(message, status_code=status_code, url=url)
        self.retry_after = retry_after


class MalformedUpstreamRecordError(ConnectorError):
    """An upstream record is missing a required field or has an unparseable ID."""


class UnknownMembershipTypeError(ConnectorError):
    """An owners list contained an object whose type could not be classified."""


class CacheBuildError(ConnectorError):
    """A cache producer failed part way through; nothing was cached for the key."""


class ProvisioningError(ConnectorError):
    """A grant or revoke request was rejected before reaching the upstream."""


class SyncFailedError(ConnectorError):
    """
    A hard error aborted the sync of one resource type.

    Attributes:
        resource_type (str): The resource type being synced.
        phase (str): The active cursor phase, if known.
    """

    def __init__(self, resource_type: str, cause: Exception, phase: Optional[str] = None):
        super().__init__(f"sync of {resource_type} failed in phase {phase or 'list'}: {cause}")
        self.resource_type = resource_type
        self.phase = phase
        self.cause = cause
