#!/usr/bin/env python3
"""
resource_group_builder.py

Resource groups of a subscription. Their ID is "{name}:{subscriptionId}".

Grants are the RBAC role assignments visible at the resource group scope, each
rendered as an "assignment" grant to the role resource "{roleGuid}:{subscriptionId}".

Author: [Your Name]
Date: [Current Date]
"""

from typing import Any, Dict, List, Optional, Tuple

from azure_access_connector.connectors.base import ResourceBuilder
from azure_access_connector.connectors.context import SyncContext
from azure_access_connector.connectors.errors import MalformedUpstreamRecordError
from azure_access_connector.connectors.grant_policy import ASSIGNMENT_SLUG
from azure_access_connector.connectors.models import (
    Entitlement,
    EntitlementPurpose,
    GrantRecord,
    Resource,
    ResourceId,
    ResourceType,
    RoleAssignmentRecord,
)

ROLE_ASSIGNMENT_PHASE = "role-assignment"


def resource_group_resource_id(name: str, subscription_id: str) -> str:
    return f"{name}:{subscription_id}"


def split_resource_group_id(resource: str) -> Tuple[str, str]:
    """"{name}:{subscriptionId}" -> (name, subscriptionId)."""
    name, sep, subscription_id = resource.rpartition(":")
    if not sep or not name or not subscription_id:
        raise MalformedUpstreamRecordError(f"invalid resource group ID: {resource!r}")
    return name, subscription_id


def resource_group_scope(name: str, subscription_id: str) -> str:
    return f"/subscriptions/{subscription_id}/resourceGroups/{name}"


class ResourceGroupBuilder(ResourceBuilder):
    resource_type = ResourceType.RESOURCE_GROUP

    def _resource_group_resource(self, group: Dict[str, Any], subscription_id: str,
                                 parent_id: Optional[ResourceId]) -> Resource:
        name = group.get("name") or ""
        return Resource(
            id=ResourceId(ResourceType.RESOURCE_GROUP, resource_group_resource_id(name, subscription_id)),
            display_name=name,
            parent_id=parent_id,
            profile={
                "id": group.get("id"),
                "name": name,
                "location": group.get("location"),
                "managed_by": group.get("managed_by"),
                "provisioning_state": (group.get("properties") or {}).get("provisioning_state"),
                "tags": group.get("tags") or {},
            },
        )

    def list(self, parent_id: Optional[ResourceId], cursor: str = "",
             ctx: Optional[SyncContext] = None) -> Tuple[List[Resource], str]:
        if parent_id is None or parent_id.resource_type is not ResourceType.SUBSCRIPTION:
            return [], ""
        subscription_id = parent_id.resource
        phase = self.arm_phase(
            "resourceGroups",
            lambda token: self.arm_client.list_resource_groups_page(subscription_id, token),
            lambda groups: [self._resource_group_resource(g, subscription_id, parent_id) for g in groups],
        )
        return self.list_page(phase, cursor, ctx)

    def entitlements(self, resource: Resource) -> List[Entitlement]:
        return [
            Entitlement(
                resource_id=resource.id,
                slug=ASSIGNMENT_SLUG,
                display_name=f"Access to {resource.display_name}",
                description=f"Role assignments on resource group {resource.display_name}",
                purpose=EntitlementPurpose.PERMISSION,
                grantable_to=(ResourceType.ROLE,),
            ),
        ]

    def grants(self, resource: Resource, cursor: str = "",
               ctx: Optional[SyncContext] = None) -> Tuple[List[GrantRecord], str]:
        name, subscription_id = split_resource_group_id(resource.id.resource)
        scope = resource_group_scope(name, subscription_id)

        def translate(assignments: List[RoleAssignmentRecord]) -> List[GrantRecord]:
            # A malformed role definition ID aborts the whole page.
            return [self.policy.role_assignment_grant(resource.id, a, subscription_id) for a in assignments]

        phase = self.arm_phase(
            ROLE_ASSIGNMENT_PHASE,
            lambda token: self.arm_client.list_role_assignments_page(subscription_id, scope, token),
            translate,
        )
        return self.orchestrator.run([phase], cursor, ctx)
