#!/usr/bin/env python3
"""
managed_identity_builder.py

Lists managed identities, i.e. service principals whose servicePrincipalType is
ManagedIdentity. They appear as principals on group memberships and role
assignments but carry no entitlements of their own.

Author: [Your Name]
Date: [Current Date]
"""

from typing import Any, Dict, List, Optional, Tuple

from azure_access_connector.connectors.base import ResourceBuilder
from azure_access_connector.connectors.context import SyncContext
from azure_access_connector.connectors.models import Resource, ResourceId, ResourceType

MANAGED_IDENTITY_SELECT = [
    "id",
    "appId",
    "displayName",
    "accountEnabled",
    "alternativeNames",
    "servicePrincipalType",
]


def managed_identity_resource_id(sp: Dict[str, Any]) -> Optional[str]:
    """
    User-assigned identities list their ARM resource ID in alternativeNames; the
    system-assigned ones list the ID of the resource they are attached to.
    """
    for name in sp.get("alternativeNames") or []:
        if name.lower().startswith("/subscriptions/"):
            return name
    return None


class ManagedIdentityBuilder(ResourceBuilder):
    resource_type = ResourceType.MANAGED_IDENTITY

    def _identity_resource(self, sp: Dict[str, Any], parent_id: Optional[ResourceId]) -> Resource:
        profile = {
            "id": sp["id"],
            "app_id": sp.get("appId"),
            "display_name": sp.get("displayName"),
            "account_enabled": sp.get("accountEnabled", False),
        }
        azure_id = managed_identity_resource_id(sp)
        if azure_id:
            profile["azure_resource_id"] = azure_id
        return Resource(
            id=ResourceId(ResourceType.MANAGED_IDENTITY, sp["id"]),
            display_name=sp.get("displayName") or sp["id"],
            parent_id=parent_id,
            profile=profile,
        )

    def list(self, parent_id: Optional[ResourceId], cursor: str = "",
             ctx: Optional[SyncContext] = None) -> Tuple[List[Resource], str]:
        first_url = self.graph_client.build_url("servicePrincipals", params={
            "$select": ",".join(MANAGED_IDENTITY_SELECT),
            "$filter": "servicePrincipalType eq 'ManagedIdentity'",
            "$top": "999",
        })
        phase = self.graph_phase(
            "servicePrincipals", first_url,
            lambda records: [self._identity_resource(sp, parent_id) for sp in records],
        )
        return self.list_page(phase, cursor, ctx)
