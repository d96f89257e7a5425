#!/usr/bin/env python3
"""
group_builder.py

Entra ID groups: listing, the "owners" / "members" entitlements, grants and
membership provisioning.

Grants run two phases per group, owners first and members second. Both use the
Graph beta endpoints because v1.0 does not list service principals as group
members. Owners lists are strict about types: an unclassifiable owner fails the
page. A group deleted since it was listed yields empty phases.
Nested groups become expandable grants pointing at "group:{id}:members".

Author: [Your Name]
Date: [Current Date]
"""

from typing import Any, Dict, List, Optional, Tuple

from azure_access_connector.connectors.base import ResourceBuilder
from azure_access_connector.connectors.context import SyncContext
from azure_access_connector.connectors.errors import NotFoundError, ProvisioningError, UpstreamError
from azure_access_connector.connectors.graph_client import GRAPH_HOST, GRAPH_SCOPES
from azure_access_connector.connectors.grant_policy import MEMBERS_SLUG, OWNERS_SLUG
from azure_access_connector.connectors.models import (
    Entitlement,
    EntitlementPurpose,
    GrantRecord,
    Resource,
    ResourceId,
    ResourceType,
)

GROUP_SELECT = [
    "id",
    "displayName",
    "description",
    "groupTypes",
    "mail",
    "mailEnabled",
    "securityEnabled",
    "securityIdentifier",
    "classification",
    "onPremisesSyncEnabled",
    "onPremisesSecurityIdentifier",
]

MEMBERSHIP_SELECT = "id,servicePrincipalType"
ALREADY_EXISTS_MESSAGE = "added object references already exist"


def group_type_value(group: Dict[str, Any]) -> str:
    group_types = group.get("groupTypes") or []
    if "Unified" in group_types:
        return "microsoft_365"
    if group.get("mailEnabled") and group.get("securityEnabled"):
        return "mail_enabled_security"
    if group.get("securityEnabled"):
        return "security"
    if group.get("mailEnabled"):
        return "distribution"
    return ""


def membership_type_value(group: Dict[str, Any]) -> str:
    return "dynamic" if "DynamicMembership" in (group.get("groupTypes") or []) else "assigned"


def directory_object_ref(object_id: str) -> Dict[str, str]:
    return {"@odata.id": f"{GRAPH_HOST}/v1.0/directoryObjects/{object_id}"}


class GroupBuilder(ResourceBuilder):
    resource_type = ResourceType.GROUP

    def _on_prem_filter(self, params: Dict[str, str]) -> Dict[str, str]:
        if self.config.get("skip_ad_groups"):
            params["$filter"] = "(onPremisesSyncEnabled ne true)"
            # Graph answers 400 for this filter without $count.
            params["$count"] = "true"
        return params

    def _group_resource(self, group: Dict[str, Any], parent_id: Optional[ResourceId]) -> Resource:
        profile = {
            "object_id": group["id"],
            "group_type": group_type_value(group),
            "membership_type": membership_type_value(group),
            "mail_enabled": group.get("mailEnabled", False),
            "security_enabled": group.get("securityEnabled", False),
            "security_identifier": group.get("securityIdentifier"),
        }
        for key, profile_key in (("mail", "mail"), ("classification", "classification"),
                                 ("onPremisesSecurityIdentifier", "on_premises_security_identifier")):
            if group.get(key):
                profile[profile_key] = group[key]
        if group.get("onPremisesSyncEnabled"):
            profile["on_premises_sync_enabled"] = True
        return Resource(
            id=ResourceId(ResourceType.GROUP, group["id"]),
            display_name=group.get("displayName") or group["id"],
            parent_id=parent_id,
            profile=profile,
        )

    def list(self, parent_id: Optional[ResourceId], cursor: str = "",
             ctx: Optional[SyncContext] = None) -> Tuple[List[Resource], str]:
        params = self._on_prem_filter({"$select": ",".join(GROUP_SELECT), "$top": "999"})
        first_url = self.graph_client.build_url("groups", params=params)
        phase = self.graph_phase(
            "groups", first_url,
            lambda groups: [self._group_resource(g, parent_id) for g in groups],
        )
        return self.list_page(phase, cursor, ctx)

    def entitlements(self, resource: Resource) -> List[Entitlement]:
        return [
            Entitlement(
                resource_id=resource.id,
                slug=OWNERS_SLUG,
                display_name=f"{resource.display_name} Group Owner",
                description=f"Owner of {resource.display_name} group",
                purpose=EntitlementPurpose.PERMISSION,
                grantable_to=(ResourceType.USER,),
            ),
            Entitlement(
                resource_id=resource.id,
                slug=MEMBERS_SLUG,
                display_name=f"{resource.display_name} Group Member",
                description=f"Member of {resource.display_name} group",
                purpose=EntitlementPurpose.ASSIGNMENT,
                grantable_to=(ResourceType.USER, ResourceType.GROUP),
            ),
        ]

    def grants(self, resource: Resource, cursor: str = "",
               ctx: Optional[SyncContext] = None) -> Tuple[List[GrantRecord], str]:
        group_id = resource.id.resource
        owners_url = self.graph_client.build_url(
            "groups", group_id, OWNERS_SLUG, params={"$select": MEMBERSHIP_SELECT}, beta=True)
        members_url = self.graph_client.build_url(
            "groups", group_id, MEMBERS_SLUG,
            params=self._on_prem_filter({"$select": MEMBERSHIP_SELECT, "$top": "999"}), beta=True)

        def translate(slug: str, strict_types: bool):
            def _translate(records: List[Dict[str, Any]]) -> List[GrantRecord]:
                grants = []
                for record in records:
                    grant = self.policy.membership_grant(resource.id, slug, record, strict_types=strict_types)
                    if grant is not None:
                        grants.append(grant)
                return grants
            return _translate

        phases = [
            self.graph_phase(OWNERS_SLUG, owners_url, translate(OWNERS_SLUG, True)),
            self.graph_phase(MEMBERS_SLUG, members_url, translate(MEMBERS_SLUG, False)),
        ]
        return self.orchestrator.run(phases, cursor, ctx)

    def _check_principal(self, principal_id: ResourceId) -> None:
        if principal_id.resource_type is not ResourceType.USER:
            self.logger.warning(f"Only users can be granted group entitlements (got {principal_id})")
            raise ProvisioningError("only users can be granted group entitlements")

    def _check_slug(self, slug: str) -> None:
        if slug not in (OWNERS_SLUG, MEMBERS_SLUG):
            raise ProvisioningError(f"unsupported group entitlement {slug!r}")

    def grant(self, principal: Resource, entitlement: Entitlement) -> None:
        self._check_principal(principal.id)
        self._check_slug(entitlement.slug)
        url = self.graph_client.build_url("groups", entitlement.resource_id.resource, entitlement.slug, "$ref")
        try:
            self.graph_client.query(GRAPH_SCOPES, "POST", url, directory_object_ref(principal.id.resource))
        except UpstreamError as e:
            if ALREADY_EXISTS_MESSAGE in str(e):
                self.logger.info("Group membership already exists, treating as successful")
                return
            raise
        self.logger.info(f"Granted {entitlement.id} to {principal.id}")

    def revoke(self, grant: GrantRecord) -> None:
        self._check_principal(grant.principal)
        self._check_slug(grant.entitlement_slug)
        url = self.graph_client.build_url(
            "groups", grant.resource_id.resource, grant.entitlement_slug, grant.principal_id, "$ref")
        try:
            self.graph_client.query(GRAPH_SCOPES, "DELETE", url)
        except NotFoundError:
            self.logger.info("Group membership to revoke not found; the end state is already achieved")
            return
        self.logger.info(f"Revoked {grant.entitlement_id} from {grant.principal}")
