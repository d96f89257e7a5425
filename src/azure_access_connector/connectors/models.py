#!/usr/bin/env python3
"""
models.py

Normalized resource / entitlement / grant model produced by the resource builders,
plus the small record types returned by the Graph and ARM transports.

Author: [Your Name]
Date: [Current Date]
"""

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from azure_access_connector.connectors.errors import MalformedUpstreamRecordError

DEFAULT_APP_ROLE_ID = "00000000-0000-0000-0000-000000000000"


class ResourceType(str, enum.Enum):
    """Closed set of resource types synced by the connector."""

    USER = "user"
    GROUP = "group"
    ENTERPRISE_APPLICATION = "enterprise_application"
    MANAGED_IDENTITY = "managed_identity"
    TENANT = "tenant"
    SUBSCRIPTION = "subscription"
    RESOURCE_GROUP = "resource_group"
    ROLE = "role"
    STORAGE_ACCOUNT = "storage_account"
    CONTAINER = "container"


class EntitlementPurpose(str, enum.Enum):
    ASSIGNMENT = "assignment"
    PERMISSION = "permission"


class PrincipalKind(enum.Enum):
    """Tagged variant returned by principal type resolution."""

    USER = "user"
    GROUP = "group"
    SERVICE_PRINCIPAL = "service_principal"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ResolvedPrincipal:
    """
    Result of resolving a bare directory object ID.

    service_principal_type is only meaningful for SERVICE_PRINCIPAL and holds the
    raw Graph servicePrincipalType value ("Application", "ManagedIdentity", ...).
    """

    kind: PrincipalKind
    service_principal_type: Optional[str] = None

    @property
    def is_unknown(self) -> bool:
        return self.kind is PrincipalKind.UNKNOWN


UNKNOWN_PRINCIPAL = ResolvedPrincipal(PrincipalKind.UNKNOWN)


@dataclass(frozen=True)
class ResourceId:
    resource_type: ResourceType
    resource: str

    def __str__(self) -> str:
        return f"{self.resource_type.value}:{self.resource}"


@dataclass
class Resource:
    id: ResourceId
    display_name: str
    parent_id: Optional[ResourceId] = None
    profile: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resourceType": self.id.resource_type.value,
            "id": self.id.resource,
            "displayName": self.display_name,
            "parent": str(self.parent_id) if self.parent_id else None,
            "profile": self.profile,
        }


def entitlement_id(resource_id: ResourceId, slug: str) -> str:
    return f"{resource_id.resource_type.value}:{resource_id.resource}:{slug}"


@dataclass
class Entitlement:
    resource_id: ResourceId
    slug: str
    display_name: str = ""
    description: str = ""
    purpose: EntitlementPurpose = EntitlementPurpose.ASSIGNMENT
    grantable_to: Tuple[ResourceType, ...] = ()

    @property
    def id(self) -> str:
        return entitlement_id(self.resource_id, self.slug)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "resource": str(self.resource_id),
            "slug": self.slug,
            "displayName": self.display_name,
            "description": self.description,
            "purpose": self.purpose.value,
            "grantableTo": [t.value for t in self.grantable_to],
        }


@dataclass(frozen=True)
class ExpansionHint:
    """Entitlements the caller should expand to resolve who a grant really reaches."""

    entitlement_ids: Tuple[str, ...]
    resource_type_ids: Tuple[str, ...] = ()
    shallow: bool = False


@dataclass(frozen=True)
class GrantRecord:
    """One principal-to-entitlement edge. Immutable once built."""

    resource_id: ResourceId
    entitlement_slug: str
    principal: ResourceId
    grant_id: str = ""
    expansion: Optional[ExpansionHint] = None

    @property
    def entitlement_id(self) -> str:
        return entitlement_id(self.resource_id, self.entitlement_slug)

    @property
    def principal_type(self) -> ResourceType:
        return self.principal.resource_type

    @property
    def principal_id(self) -> str:
        return self.principal.resource

    @property
    def expandable(self) -> bool:
        return self.expansion is not None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.grant_id,
            "entitlement": self.entitlement_id,
            "principalType": self.principal_type.value,
            "principalId": self.principal_id,
            "expandable": self.expandable,
        }
        if self.expansion is not None:
            data["expansion"] = {
                "entitlementIds": list(self.expansion.entitlement_ids),
                "resourceTypeIds": list(self.expansion.resource_type_ids),
                "shallow": self.expansion.shallow,
            }
        return data


# Transport records


@dataclass(frozen=True)
class RoleAssignmentRecord:
    id: str
    name: str
    scope: str
    role_definition_id: str
    principal_id: str
    principal_type: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RoleAssignmentRecord":
        """Build from an SDK model's as_dict() output (snake_case keys)."""
        props = data.get("properties") or data
        return cls(
            id=data.get("id") or "",
            name=data.get("name") or "",
            scope=props.get("scope") or "",
            role_definition_id=props.get("role_definition_id") or "",
            principal_id=props.get("principal_id") or "",
            principal_type=props.get("principal_type"),
        )


@dataclass(frozen=True)
class RoleDefinitionRecord:
    id: str
    name: str
    role_name: str = ""
    description: str = ""
    role_type: str = ""
    permissions: Tuple[Dict[str, List[str]], ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RoleDefinitionRecord":
        props = data.get("properties") or data
        permissions = tuple(
            {
                "actions": list(p.get("actions") or []),
                "not_actions": list(p.get("not_actions") or []),
            }
            for p in (props.get("permissions") or [])
        )
        return cls(
            id=data.get("id") or "",
            name=data.get("name") or "",
            role_name=props.get("role_name") or "",
            description=props.get("description") or "",
            role_type=props.get("role_type") or "",
            permissions=permissions,
        )


def role_definition_guid(role_definition_id: str) -> str:
    """
    Strip a role definition URL down to its trailing GUID.

    "/subscriptions/abc/providers/Microsoft.Authorization/roleDefinitions/xyz" -> "xyz"

    Raises:
        MalformedUpstreamRecordError: if the ID is empty or does not have the expected
            seven "/" separated segments.
    """
    if not role_definition_id:
        raise MalformedUpstreamRecordError("role assignment is missing its role definition ID")
    parts = role_definition_id.split("/")
    if len(parts) != 7 or not parts[-1]:
        raise MalformedUpstreamRecordError(f"invalid role definition ID: {role_definition_id!r}")
    return parts[-1]


def role_resource_id(role_guid: str, subscription_id: str) -> str:
    return f"{role_guid}:{subscription_id}"


def split_role_resource_id(resource: str) -> Tuple[str, str]:
    """Inverse of role_resource_id: "{roleGuid}:{subscriptionId}" -> (roleGuid, subscriptionId)."""
    parts = resource.split(":")
    if len(parts) != 2 or not all(parts):
        raise MalformedUpstreamRecordError(f"invalid role resource ID: {resource!r}")
    return parts[0], parts[1]


@dataclass(frozen=True)
class AzureResourcePath:
    """
    An ARM resource ID of the form
    /subscriptions/{s}/resourceGroups/{g}/providers/{namespace}/{type}/{name}
    and its five part connector ID "s:g:namespace:type:name".
    """

    subscription_id: str
    resource_group: str
    provider_namespace: str
    resource_type: str
    resource_name: str

    @classmethod
    def from_azure_id(cls, azure_id: str) -> "AzureResourcePath":
        parts = azure_id.split("/")
        if (len(parts) != 9 or parts[0] != "" or parts[1].lower() != "subscriptions"
                or parts[3].lower() != "resourcegroups" or parts[5].lower() != "providers"):
            raise MalformedUpstreamRecordError(f"invalid Azure resource ID: {azure_id!r}")
        return cls(parts[2], parts[4], parts[6], parts[7], parts[8])

    @classmethod
    def from_connector_id(cls, connector_id: str) -> "AzureResourcePath":
        parts = connector_id.split(":")
        if len(parts) != 5:
            raise MalformedUpstreamRecordError(f"invalid connector resource ID: {connector_id!r}")
        return cls(*parts)

    def azure_id(self) -> str:
        return (f"/subscriptions/{self.subscription_id}/resourceGroups/{self.resource_group}"
                f"/providers/{self.provider_namespace}/{self.resource_type}/{self.resource_name}")

    def connector_id(self) -> str:
        return ":".join([self.subscription_id, self.resource_group, self.provider_namespace,
                         self.resource_type, self.resource_name])
