#!/usr/bin/env python3
"""
role_builder.py

Azure RBAC role definitions, one resource per (role, subscription) pair with ID
"{roleGuid}:{subscriptionId}".

The "assigned" grants come from the shared RoleAssignmentIndex, which drains the
subscription's role assignments once per sync. Assignments carry a bare principal
object ID, so the principal type is determined by PrincipalTypeResolver. Principals
that cannot be classified are skipped.

Provisioning creates or deletes a role assignment at the subscription scope and is
limited to users.

Author: [Your Name]
Date: [Current Date]
"""

from typing import Any, Dict, List, Optional, Tuple

from azure_access_connector.connectors.base import ResourceBuilder
from azure_access_connector.connectors.cache import subscription_scope
from azure_access_connector.connectors.context import SyncContext
from azure_access_connector.connectors.errors import ProvisioningError
from azure_access_connector.connectors.grant_policy import ASSIGNED_SLUG, OWNERS_SLUG
from azure_access_connector.connectors.models import (
    Entitlement,
    EntitlementPurpose,
    GrantRecord,
    Resource,
    ResourceId,
    ResourceType,
    RoleAssignmentRecord,
    RoleDefinitionRecord,
    role_resource_id,
    split_role_resource_id,
)


def role_definition_id(subscription_id: str, role_guid: str) -> str:
    return (f"/subscriptions/{subscription_id}/providers/Microsoft.Authorization"
            f"/roleDefinitions/{role_guid}")


class RoleBuilder(ResourceBuilder):
    resource_type = ResourceType.ROLE

    @property
    def role_index(self):
        return self.connector.role_index

    def _role_resource(self, definition: RoleDefinitionRecord, subscription_id: str,
                       parent_id: Optional[ResourceId]) -> Resource:
        profile: Dict[str, Any] = {
            "role_definition_id": definition.id,
            "role_name": definition.role_name,
            "description": definition.description,
            "role_type": definition.role_type,
            "subscription_id": subscription_id,
        }
        return Resource(
            id=ResourceId(ResourceType.ROLE, role_resource_id(definition.name, subscription_id)),
            display_name=definition.role_name or definition.name,
            parent_id=parent_id,
            profile=profile,
        )

    def list(self, parent_id: Optional[ResourceId], cursor: str = "",
             ctx: Optional[SyncContext] = None) -> Tuple[List[Resource], str]:
        if parent_id is None or parent_id.resource_type is not ResourceType.SUBSCRIPTION:
            return [], ""
        subscription_id = parent_id.resource
        phase = self.arm_phase(
            "roleDefinitions",
            lambda token: self.arm_client.list_role_definitions_page(subscription_id, token),
            lambda definitions: [self._role_resource(d, subscription_id, parent_id) for d in definitions],
        )
        return self.list_page(phase, cursor, ctx)

    def entitlements(self, resource: Resource) -> List[Entitlement]:
        return [
            Entitlement(
                resource_id=resource.id,
                slug=OWNERS_SLUG,
                display_name=f"{resource.display_name} Role Owner",
                description=f"Owner of {resource.display_name} role",
                purpose=EntitlementPurpose.PERMISSION,
                grantable_to=(ResourceType.USER,),
            ),
            Entitlement(
                resource_id=resource.id,
                slug=ASSIGNED_SLUG,
                display_name=f"{resource.display_name} Role Member",
                description=f"Member of {resource.display_name} role",
                purpose=EntitlementPurpose.ASSIGNMENT,
                grantable_to=(ResourceType.USER, ResourceType.GROUP),
            ),
        ]

    def grants(self, resource: Resource, cursor: str = "",
               ctx: Optional[SyncContext] = None) -> Tuple[List[GrantRecord], str]:
        role_guid, subscription_id = split_role_resource_id(resource.id.resource)

        def translate(assignments: List[RoleAssignmentRecord]) -> List[GrantRecord]:
            grants = []
            for assignment in assignments:
                resolved = self.connector.principal_resolver.resolve(assignment.principal_id)
                grant = self.policy.resolved_grant(resource.id, ASSIGNED_SLUG, assignment.principal_id,
                                                   resolved, grant_id=assignment.id)
                if grant is not None:
                    grants.append(grant)
            return grants

        phase = self.marker_phase(
            ASSIGNED_SLUG,
            lambda: self.role_index.assignments_for_role(subscription_id, role_guid),
            translate,
        )
        return self.orchestrator.run([phase], cursor, ctx)

    def _check_principal(self, principal_id: ResourceId) -> None:
        if principal_id.resource_type is not ResourceType.USER:
            self.logger.warning(f"Only users can be granted role membership (got {principal_id})")
            raise ProvisioningError("only users can be granted role membership")

    def grant(self, principal: Resource, entitlement: Entitlement) -> None:
        self._check_principal(principal.id)
        role_guid, subscription_id = split_role_resource_id(entitlement.resource_id.resource)
        scope = subscription_scope(subscription_id)
        created = self.arm_client.create_role_assignment(
            subscription_id, scope, role_definition_id(subscription_id, role_guid), principal.id.resource)
        self.role_index.invalidate(subscription_id)
        if created is not None:
            self.logger.info("Role assignment %s created for %s at %s", created.name, principal.id, scope)

    def revoke(self, grant: GrantRecord) -> None:
        self._check_principal(grant.principal)
        role_guid, subscription_id = split_role_resource_id(grant.resource_id.resource)
        scope = subscription_scope(subscription_id)
        assignment = self.role_index.find_assignment(subscription_id, role_guid, grant.principal_id, assigned_at=scope)
        if assignment is None:
            raise ProvisioningError(
                f"no assignment of role {role_guid} to {grant.principal_id} at {scope}")
        self.arm_client.delete_role_assignment(subscription_id, scope, assignment.name)
        self.role_index.invalidate(subscription_id)
        self.logger.info("Role assignment %s revoked from %s", assignment.name, grant.principal)
