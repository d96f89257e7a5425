#!/usr/bin/env python3
"""
grant_policy.py

GrantExpansionPolicy: translates one upstream membership / assignment record into
zero or one GrantRecord.

Classification is priority ordered:
  1. "#microsoft.graph.group"  -> Group principal, expandable via "group:{id}:members".
  2. "#microsoft.graph.user"   -> User principal, not expandable.
  3. "#microsoft.graph.servicePrincipal" -> branch on servicePrincipalType:
        Application     -> enterprise_application
        ManagedIdentity -> managed_identity
        anything else   -> dropped, logged once per subtype.
  4. Any other type -> dropped and logged once per type on membership lists,
     UnknownMembershipTypeError on ownership lists. Application owners accept
     only users and service principals.
  5. Azure RBAC role assignments -> "assignment" grant to the role resource
     "{roleGuid}:{subscriptionId}", expandable via the role's owners/assigned.

Each builder owns its own policy instance, so the "logged once" bookkeeping is
scoped to that builder for the sync run.

Author: [Your Name]
Date: [Current Date]
"""

import collections
import logging
from typing import Any, Dict, Optional

from azure_access_connector.connectors.errors import UnknownMembershipTypeError
from azure_access_connector.connectors.models import (
    ExpansionHint,
    GrantRecord,
    PrincipalKind,
    ResolvedPrincipal,
    ResourceId,
    ResourceType,
    RoleAssignmentRecord,
    role_definition_guid,
    role_resource_id,
)

ODATA_TYPE_GROUP = "#microsoft.graph.group"
ODATA_TYPE_USER = "#microsoft.graph.user"
ODATA_TYPE_SERVICE_PRINCIPAL = "#microsoft.graph.servicePrincipal"

SP_TYPE_APPLICATION = "Application"
SP_TYPE_MANAGED_IDENTITY = "ManagedIdentity"
SP_TYPE_LEGACY = "Legacy"
SP_TYPE_SOCIAL_IDP = "SocialIdp"

ASSIGNMENT_SLUG = "assignment"
OWNERS_SLUG = "owners"
MEMBERS_SLUG = "members"
ASSIGNED_SLUG = "assigned"

_SERVICE_PRINCIPAL_TYPES = {
    SP_TYPE_APPLICATION: ResourceType.ENTERPRISE_APPLICATION,
    SP_TYPE_MANAGED_IDENTITY: ResourceType.MANAGED_IDENTITY,
}


def group_members_hint(group_id: str, shallow: bool = False, user_only: bool = False) -> ExpansionHint:
    return ExpansionHint(
        entitlement_ids=(f"{ResourceType.GROUP.value}:{group_id}:{MEMBERS_SLUG}",),
        resource_type_ids=(ResourceType.USER.value,) if user_only else (),
        shallow=shallow,
    )


def role_holders_hint(role_resource: str) -> ExpansionHint:
    prefix = f"{ResourceType.ROLE.value}:{role_resource}"
    return ExpansionHint(
        entitlement_ids=(f"{prefix}:{OWNERS_SLUG}", f"{prefix}:{ASSIGNED_SLUG}"),
        shallow=True,
    )


class GrantExpansionPolicy:
    """
    Maps upstream records to typed grants for one builder.

    Attributes:
        dropped (collections.Counter): Count of dropped records keyed by
            ("service_principal_type" | "membership_type", value). The sync driver
            aggregates these into its summary.
    """

    def __init__(self, owner: str, logger: Optional[logging.Logger] = None):
        self.owner = owner
        self.logger = logger or logging.getLogger("GrantExpansionPolicy")
        self._logged_service_principal_types = set()
        self._logged_membership_types = set()
        self.dropped = collections.Counter()

    def _drop_service_principal(self, sp_type: str, object_id: str, record: Dict[str, Any]) -> None:
        self.dropped[("service_principal_type", sp_type)] += 1
        if sp_type in self._logged_service_principal_types:
            return
        self._logged_service_principal_types.add(sp_type)
        self.logger.warning(
            "%s: unsupported servicePrincipalType %r on membership of %s (record id=%s)",
            self.owner, sp_type, object_id, record.get("id"),
        )

    def drop_membership_type(self, odata_type: str, object_id: str, record: Dict[str, Any]) -> None:
        self.dropped[("membership_type", odata_type)] += 1
        if odata_type in self._logged_membership_types:
            return
        self._logged_membership_types.add(odata_type)
        self.logger.warning(
            "%s: unsupported membership type %r on %s (record id=%s)",
            self.owner, odata_type, object_id, record.get("id"),
        )

    def classify_service_principal(self, sp_type: Optional[str], object_id: str,
                                   record: Optional[Dict[str, Any]] = None) -> Optional[ResourceType]:
        """Return the principal resource type for a service principal subtype, or None if dropped."""
        resource_type = _SERVICE_PRINCIPAL_TYPES.get(sp_type or "")
        if resource_type is None:
            # Legacy, SocialIdp, empty and unknown subtypes all land here.
            self._drop_service_principal(sp_type or "", object_id, record or {})
        return resource_type

    def membership_grant(self, resource_id: ResourceId, slug: str, record: Dict[str, Any],
                         strict_types: bool = False, accept_groups: bool = True) -> Optional[GrantRecord]:
        """
        Translate one Graph membership record ("@odata.type", "id", "servicePrincipalType").

        Parameters:
            resource_id (ResourceId): The resource carrying the entitlement.
            slug (str): Entitlement slug ("members", "owners", ...).
            record (dict): The upstream membership record.
            strict_types (bool): Ownership lists: unknown types raise instead of being dropped.
            accept_groups (bool): When False a group member counts as an unknown type
                (application owners).

        Returns:
            GrantRecord or None when the record is dropped.

        Raises:
            UnknownMembershipTypeError: For an unrecognized type when strict_types is set.
        """
        odata_type = record.get("@odata.type") or ""
        member_id = record.get("id") or ""
        object_id = resource_id.resource
        expansion = None

        if odata_type == ODATA_TYPE_GROUP and accept_groups:
            principal_type = ResourceType.GROUP
            expansion = group_members_hint(member_id)
        elif odata_type == ODATA_TYPE_USER:
            principal_type = ResourceType.USER
        elif odata_type == ODATA_TYPE_SERVICE_PRINCIPAL:
            principal_type = self.classify_service_principal(record.get("servicePrincipalType"), object_id, record)
            if principal_type is None:
                return None
        else:
            if strict_types:
                raise UnknownMembershipTypeError(
                    f"unknown membership type {odata_type!r} for {slug} of {resource_id} (id={member_id})"
                )
            self.drop_membership_type(odata_type, object_id, record)
            return None

        principal = ResourceId(principal_type, member_id)
        return GrantRecord(
            resource_id=resource_id,
            entitlement_slug=slug,
            principal=principal,
            grant_id=f"{resource_id}:{slug}:{principal}",
            expansion=expansion,
        )

    def resolved_grant(self, resource_id: ResourceId, slug: str, principal_id: str,
                       resolved: ResolvedPrincipal, grant_id: str = "") -> Optional[GrantRecord]:
        """
        Build a grant for a principal whose type came from PrincipalTypeResolver.

        Unknown principals yield None; the caller skips them.
        """
        expansion = None
        if resolved.kind is PrincipalKind.USER:
            principal_type = ResourceType.USER
        elif resolved.kind is PrincipalKind.GROUP:
            principal_type = ResourceType.GROUP
            expansion = group_members_hint(principal_id)
        elif resolved.kind is PrincipalKind.SERVICE_PRINCIPAL:
            principal_type = self.classify_service_principal(
                resolved.service_principal_type, resource_id.resource, {"id": principal_id})
            if principal_type is None:
                return None
        else:
            self.logger.debug("%s: skipping unresolvable principal %s on %s", self.owner, principal_id, resource_id)
            return None

        principal = ResourceId(principal_type, principal_id)
        return GrantRecord(
            resource_id=resource_id,
            entitlement_slug=slug,
            principal=principal,
            grant_id=grant_id or f"{resource_id}:{slug}:{principal}",
            expansion=expansion,
        )

    def role_assignment_grant(self, resource_id: ResourceId, assignment: RoleAssignmentRecord,
                              subscription_id: str) -> GrantRecord:
        """
        Build the "assignment" grant for an Azure RBAC role assignment.

        Raises:
            MalformedUpstreamRecordError: If the role definition ID is missing or malformed.
        """
        role_guid = role_definition_guid(assignment.role_definition_id)
        role_resource = role_resource_id(role_guid, subscription_id)
        return GrantRecord(
            resource_id=resource_id,
            entitlement_slug=ASSIGNMENT_SLUG,
            principal=ResourceId(ResourceType.ROLE, role_resource),
            grant_id=assignment.id or assignment.name,
            expansion=role_holders_hint(role_resource),
        )

    def role_action_grant(self, resource_id: ResourceId, action: str, role_resource: str) -> GrantRecord:
        """Grant of a mapped storage action (read/write/delete) to a role resource."""
        principal = ResourceId(ResourceType.ROLE, role_resource)
        return GrantRecord(
            resource_id=resource_id,
            entitlement_slug=action,
            principal=principal,
            grant_id=f"{resource_id}:{action}:{principal}",
            expansion=role_holders_hint(role_resource),
        )
