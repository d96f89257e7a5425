#!/usr/bin/env python3
"""
cache.py

Per-sync memoization of expensive single-object lookups.

ResourceCache is a lock protected key/value store with a get_or_set() that only
commits a value when its producer succeeds, so a failed upstream call never
poisons the cache. RoleAssignmentIndex builds on it: per Azure scope it drains
the full role assignment pager once and keeps a role-definition -> assignments
map for O(1) lookups afterwards.

Neither cache is persisted; both live exactly as long as the sync run that
created them.

Author: [Your Name]
Date: [Current Date]
"""

import logging
import threading
from typing import Any, Callable, Dict, Hashable, List, Optional

from azure_access_connector.connectors.errors import CacheBuildError, RateLimitedError
from azure_access_connector.connectors.models import RoleAssignmentRecord, role_definition_guid

logger = logging.getLogger("ResourceCache")

_MISSING = object()


class ResourceCache:
    """
    Thread-safe get-or-set cache.

    A single per-instance lock is held across read-check/compute/write, so two
    threads asking for the same uncached key trigger one producer call.
    """

    def __init__(self, name: str = "default"):
        self.name = name
        self._values: Dict[Hashable, Any] = {}
        self._lock = threading.RLock()

    def get(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            return self._values.get(key, default)

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._values[key] = value

    def get_or_set(self, key: Hashable, producer: Callable[[], Any]) -> Any:
        """
        Return the cached value for key, invoking producer on a miss.

        Parameters:
            key: Cache key (object ID, scope, ...).
            producer (callable): Zero argument callable computing the value.

        Returns:
            The cached or freshly produced value.

        Raises:
            Whatever producer raises; nothing is cached in that case.
        """
        with self._lock:
            value = self._values.get(key, _MISSING)
            if value is not _MISSING:
                return value
            value = producer()
            self._values[key] = value
            logger.debug("Cache %s: stored %s", self.name, key)
            return value

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._values.pop(key, None)

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._values

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)


def subscription_scope(subscription_id: str) -> str:
    return f"/subscriptions/{subscription_id}"


class RoleAssignmentIndex:
    """
    Role assignments per ARM scope, keyed by role definition GUID.

    Each entry maps a role definition GUID to every assignment of that role seen at
    the scope, in upstream order; the first assignment is the representative one.

    Parameters:
        arm_client: Object exposing iter_role_assignments(subscription_id, scope).
        cache (ResourceCache): Backing store; a private one is created if omitted.
    """

    def __init__(self, arm_client, cache: Optional[ResourceCache] = None):
        self.arm_client = arm_client
        self._cache = cache or ResourceCache("role-assignments")

    def _build(self, subscription_id: str, scope: str) -> Dict[str, List[RoleAssignmentRecord]]:
        index: Dict[str, List[RoleAssignmentRecord]] = {}
        count = 0
        try:
            for assignment in self.arm_client.iter_role_assignments(subscription_id, scope):
                role_guid = role_definition_guid(assignment.role_definition_id)
                index.setdefault(role_guid, []).append(assignment)
                count += 1
        except RateLimitedError:
            raise
        except Exception as e:
            raise CacheBuildError(f"failed to build role assignment index for {scope}: {e}") from e
        logger.info("Indexed %d role assignments across %d roles for %s", count, len(index), scope)
        return index

    def index_for(self, subscription_id: str, scope: Optional[str] = None) -> Dict[str, List[RoleAssignmentRecord]]:
        scope = scope or subscription_scope(subscription_id)
        return self._cache.get_or_set(("role-assignments", scope),
                                      lambda: self._build(subscription_id, scope))

    def assignments_for_role(self, subscription_id: str, role_guid: str,
                             scope: Optional[str] = None) -> List[RoleAssignmentRecord]:
        return list(self.index_for(subscription_id, scope).get(role_guid, []))

    def representative(self, subscription_id: str, role_guid: str,
                       scope: Optional[str] = None) -> Optional[RoleAssignmentRecord]:
        assignments = self.index_for(subscription_id, scope).get(role_guid)
        return assignments[0] if assignments else None

    def role_guids(self, subscription_id: str, scope: Optional[str] = None) -> List[str]:
        return sorted(self.index_for(subscription_id, scope))

    def find_assignment(self, subscription_id: str, role_guid: str, principal_id: str,
                        scope: Optional[str] = None,
                        assigned_at: Optional[str] = None) -> Optional[RoleAssignmentRecord]:
        """
        First assignment of the role to the principal in the index entry for scope.
        With assigned_at, only an assignment made exactly at that scope matches;
        the entry also lists assignments made at parent and child scopes.
        """
        index_scope = scope or subscription_scope(subscription_id)
        for assignment in self.assignments_for_role(subscription_id, role_guid, scope):
            if assignment.principal_id != principal_id:
                continue
            if assigned_at and (assignment.scope or index_scope).lower() != assigned_at.lower():
                continue
            return assignment
        return None

    def invalidate(self, subscription_id: str, scope: Optional[str] = None) -> None:
        self._cache.invalidate(("role-assignments", scope or subscription_scope(subscription_id)))
