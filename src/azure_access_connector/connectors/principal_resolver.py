#!/usr/bin/env python3
"""
principal_resolver.py

Resolves a bare directory object ID (as returned by ARM role assignments) into a
typed principal by querying Microsoft Graph endpoints in a fixed order:

    directoryObjects -> users -> groups -> servicePrincipals

The first endpoint answering with a recognized "@odata.type" wins. For service
principals the "servicePrincipalType" field disambiguates Application from
ManagedIdentity; when the generic endpoint omits it, the lookup continues to the
servicePrincipals endpoint, which always returns it.

Each lookup is exactly one request. Retries belong to the GraphClient; a
rate limit aborts the lookup and propagates to the caller.

Author: [Your Name]
Date: [Current Date]
"""

import logging
from typing import Optional

from azure_access_connector.connectors.cache import ResourceCache
from azure_access_connector.connectors.errors import RateLimitedError, SyncCancelledError, UpstreamError
from azure_access_connector.connectors.graph_client import GRAPH_SCOPES
from azure_access_connector.connectors.grant_policy import (
    ODATA_TYPE_GROUP,
    ODATA_TYPE_SERVICE_PRINCIPAL,
    ODATA_TYPE_USER,
)
from azure_access_connector.connectors.models import UNKNOWN_PRINCIPAL, PrincipalKind, ResolvedPrincipal

logger = logging.getLogger("PrincipalTypeResolver")

LOOKUP_ENDPOINTS = ("directoryObjects", "users", "groups", "servicePrincipals")

_KINDS = {
    ODATA_TYPE_USER: PrincipalKind.USER,
    ODATA_TYPE_GROUP: PrincipalKind.GROUP,
    ODATA_TYPE_SERVICE_PRINCIPAL: PrincipalKind.SERVICE_PRINCIPAL,
}


class PrincipalTypeResolver:
    def __init__(self, graph_client, cache: Optional[ResourceCache] = None):
        self.graph_client = graph_client
        self.cache = cache

    def _lookup(self, endpoint: str, object_id: str) -> Optional[dict]:
        url = self.graph_client.build_url(endpoint, object_id)
        try:
            return self.graph_client.query(GRAPH_SCOPES, "GET", url)
        except (RateLimitedError, SyncCancelledError):
            raise
        except UpstreamError as e:
            logger.debug("Lookup %s for %s failed: %s", endpoint, object_id, e)
            return None

    def _resolve_uncached(self, object_id: str) -> ResolvedPrincipal:
        partial = None
        for endpoint in LOOKUP_ENDPOINTS:
            body = self._lookup(endpoint, object_id)
            if not body:
                continue
            kind = _KINDS.get(body.get("@odata.type") or "")
            if kind is None:
                continue
            if kind is not PrincipalKind.SERVICE_PRINCIPAL:
                return ResolvedPrincipal(kind)
            sp_type = body.get("servicePrincipalType")
            if sp_type:
                return ResolvedPrincipal(kind, sp_type)
            partial = ResolvedPrincipal(kind)
        if partial is not None:
            return partial
        logger.info("Could not resolve the type of directory object %s", object_id)
        return UNKNOWN_PRINCIPAL

    def resolve(self, object_id: str) -> ResolvedPrincipal:
        """
        Determine the principal type of object_id.

        Parameters:
            object_id (str): Entra object ID.

        Returns:
            ResolvedPrincipal: UNKNOWN_PRINCIPAL when no lookup could classify it.
        """
        key = ("principal-type", object_id)
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                return cached
        resolved = self._resolve_uncached(object_id)
        if self.cache is not None and not resolved.is_unknown:
            self.cache.set(key, resolved)
        return resolved
