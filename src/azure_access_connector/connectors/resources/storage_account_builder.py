#!/usr/bin/env python3
"""
storage_account_builder.py

Storage accounts of a subscription, keyed by the five part connector ID
"{subscription}:{resourceGroup}:{namespace}:{type}:{name}".

Grants run two phases:
  1. role-assignment: every RBAC role assignment visible at the account scope,
     rendered as an "assignment" grant to "{roleGuid}:{subscriptionId}".
  2. per-role-action: every distinct role assigned at the scope, with its role
     definition permissions mapped onto read / write / delete. One expandable grant
     is emitted per (action, role).

Role definitions are fetched once per sync through the shared ResourceCache; the
distinct roles come from the scope's RoleAssignmentIndex entry.

Author: [Your Name]
Date: [Current Date]
"""

from typing import Any, Dict, List, Optional, Tuple

from azure_access_connector.connectors.base import ResourceBuilder
from azure_access_connector.connectors.context import SyncContext
from azure_access_connector.connectors.grant_policy import ASSIGNMENT_SLUG
from azure_access_connector.connectors.models import (
    AzureResourcePath,
    Entitlement,
    EntitlementPurpose,
    GrantRecord,
    Resource,
    ResourceId,
    ResourceType,
    RoleAssignmentRecord,
    RoleDefinitionRecord,
    role_resource_id,
)
from azure_access_connector.connectors.rolemapper import STORAGE_ACCOUNT_PERMISSIONS, RoleActionMapper

ROLE_ASSIGNMENT_PHASE = "role-assignment"
PER_ROLE_ACTION_PHASE = "per-role-action"


class RoleScopedStorageBuilder(ResourceBuilder):
    """
    Shared entitlements and grants for storage resources whose access is expressed
    through RBAC role assignments at their ARM scope.
    """

    mapper: RoleActionMapper = None
    kind_label = ""

    def scope_of(self, resource: Resource) -> Tuple[str, str]:
        """Return (subscription_id, ARM scope) for a listed resource."""
        raise NotImplementedError

    def role_definition(self, role_definition_id: str) -> RoleDefinitionRecord:
        return self.connector.resource_cache.get_or_set(
            ("role-definition", role_definition_id.lower()),
            lambda: self.arm_client.get_role_definition(role_definition_id),
        )

    def entitlements(self, resource: Resource) -> List[Entitlement]:
        name = resource.display_name
        rv = [
            Entitlement(
                resource_id=resource.id,
                slug=ASSIGNMENT_SLUG,
                display_name=f"Access to {name}",
                description=f"Access to {name}",
                purpose=EntitlementPurpose.PERMISSION,
                grantable_to=(ResourceType.ROLE,),
            ),
        ]
        for action in self.mapper.values():
            rv.append(Entitlement(
                resource_id=resource.id,
                slug=action,
                display_name=f"{name} {self.kind_label} {action}",
                description=f"Can {action} {self.kind_label} {name}",
                purpose=EntitlementPurpose.PERMISSION,
                grantable_to=(ResourceType.ROLE,),
            ))
        return rv

    def _role_action_grants(self, resource: Resource, subscription_id: str, scope: str,
                            role_guids: List[str]) -> List[GrantRecord]:
        grants = []
        for role_guid in role_guids:
            assignment = self.connector.role_index.representative(subscription_id, role_guid, scope)
            if assignment is None:
                continue
            definition = self.role_definition(assignment.role_definition_id)
            role_resource = role_resource_id(role_guid, subscription_id)
            for action in self.mapper.map_permissions(definition.permissions):
                grants.append(self.policy.role_action_grant(resource.id, action, role_resource))
        return grants

    def grants(self, resource: Resource, cursor: str = "",
               ctx: Optional[SyncContext] = None) -> Tuple[List[GrantRecord], str]:
        subscription_id, scope = self.scope_of(resource)

        def translate_assignments(assignments: List[RoleAssignmentRecord]) -> List[GrantRecord]:
            return [self.policy.role_assignment_grant(resource.id, a, subscription_id) for a in assignments]

        phases = [
            self.arm_phase(
                ROLE_ASSIGNMENT_PHASE,
                lambda token: self.arm_client.list_role_assignments_page(subscription_id, scope, token),
                translate_assignments,
            ),
            self.marker_phase(
                PER_ROLE_ACTION_PHASE,
                lambda: self.connector.role_index.role_guids(subscription_id, scope),
                lambda role_guids: self._role_action_grants(resource, subscription_id, scope, role_guids),
            ),
        ]
        return self.orchestrator.run(phases, cursor, ctx)


class StorageAccountBuilder(RoleScopedStorageBuilder):
    resource_type = ResourceType.STORAGE_ACCOUNT
    mapper = STORAGE_ACCOUNT_PERMISSIONS
    kind_label = "storage account"

    def scope_of(self, resource: Resource) -> Tuple[str, str]:
        path = AzureResourcePath.from_connector_id(resource.id.resource)
        return path.subscription_id, path.azure_id()

    def _account_resource(self, account: Dict[str, Any], parent_id: Optional[ResourceId]) -> Resource:
        path = AzureResourcePath.from_azure_id(account.get("id") or "")
        sku = account.get("sku") or {}
        return Resource(
            id=ResourceId(ResourceType.STORAGE_ACCOUNT, path.connector_id()),
            display_name=account.get("name") or path.resource_name,
            parent_id=parent_id,
            profile={
                "id": account.get("id"),
                "name": account.get("name"),
                "resource_group": path.resource_group,
                "location": account.get("location"),
                "kind": account.get("kind"),
                "sku": sku.get("name"),
            },
        )

    def list(self, parent_id: Optional[ResourceId], cursor: str = "",
             ctx: Optional[SyncContext] = None) -> Tuple[List[Resource], str]:
        if parent_id is None or parent_id.resource_type is not ResourceType.SUBSCRIPTION:
            return [], ""
        subscription_id = parent_id.resource
        phase = self.arm_phase(
            "storageAccounts",
            lambda token: self.arm_client.list_storage_accounts_page(subscription_id, token),
            lambda accounts: [self._account_resource(a, parent_id) for a in accounts],
        )
        return self.list_page(phase, cursor, ctx)
