#!/usr/bin/env python3
"""
enterprise_application_builder.py

Enterprise applications (service principals of type Application owned by this tenant).

Each listed service principal is stored in the shared ResourceCache so entitlements
and the app role assignment grants can be produced without refetching it. Grants run
two phases, owners and then assignment. Owners must be users or service
principals; any other owner type fails the page, while an application deleted since
it was listed yields an empty owners page. Assignment grants are read from the
cached appRoleAssignedTo collection. Group assignees become expandable grants, and
service principal assignees are classified through PrincipalTypeResolver.

Author: [Your Name]
Date: [Current Date]
"""

from typing import Any, Dict, List, Optional, Tuple

from azure_access_connector.connectors.base import ResourceBuilder
from azure_access_connector.connectors.context import SyncContext
from azure_access_connector.connectors.errors import ProvisioningError
from azure_access_connector.connectors.graph_client import GRAPH_SCOPES
from azure_access_connector.connectors.grant_policy import ASSIGNMENT_SLUG, OWNERS_SLUG, group_members_hint
from azure_access_connector.connectors.models import (
    DEFAULT_APP_ROLE_ID,
    Entitlement,
    EntitlementPurpose,
    GrantRecord,
    Resource,
    ResourceId,
    ResourceType,
)
from azure_access_connector.connectors.resources.group_builder import directory_object_ref

SERVICE_PRINCIPAL_SELECT = [
    "accountEnabled",
    "appDisplayName",
    "appRoles",
    "appId",
    "appOwnerOrganizationId",
    "description",
    "displayName",
    "homepage",
    "id",
    "info",
    "servicePrincipalType",
    "tags",
]


def assignment_slug(app_role_id: str) -> str:
    return f"{ASSIGNMENT_SLUG}:{app_role_id}"


def parse_app_role_id(slug: str) -> Optional[str]:
    """"assignment:{appRoleId}" -> appRoleId; None for any other slug."""
    prefix = f"{ASSIGNMENT_SLUG}:"
    if slug.startswith(prefix) and len(slug) > len(prefix):
        return slug[len(prefix):]
    return None


class EnterpriseApplicationBuilder(ResourceBuilder):
    resource_type = ResourceType.ENTERPRISE_APPLICATION

    @property
    def cache(self):
        return self.connector.resource_cache

    def _fetch_service_principal(self, sp_id: str) -> Dict[str, Any]:
        url = self.graph_client.build_url("servicePrincipals", sp_id, params={
            "$select": ",".join(SERVICE_PRINCIPAL_SELECT),
            "$expand": "appRoleAssignedTo",
        }, beta=True)
        return self.graph_client.query(GRAPH_SCOPES, "GET", url) or {}

    def service_principal(self, sp_id: str) -> Dict[str, Any]:
        return self.cache.get_or_set(("service-principal", sp_id), lambda: self._fetch_service_principal(sp_id))

    def _application_resource(self, sp: Dict[str, Any], parent_id: Optional[ResourceId]) -> Resource:
        profile = {
            "id": sp["id"],
            "app_id": sp.get("appId"),
            "display_name": sp.get("displayName"),
            "app_display_name": sp.get("appDisplayName"),
            "description": sp.get("description"),
            "homepage": sp.get("homepage"),
            "account_enabled": sp.get("accountEnabled", False),
            "tags": sp.get("tags") or [],
        }
        return Resource(
            id=ResourceId(ResourceType.ENTERPRISE_APPLICATION, sp["id"]),
            display_name=sp.get("displayName") or sp["id"],
            parent_id=parent_id,
            profile=profile,
        )

    def list(self, parent_id: Optional[ResourceId], cursor: str = "",
             ctx: Optional[SyncContext] = None) -> Tuple[List[Resource], str]:
        first_url = self.graph_client.build_url("servicePrincipals", params={
            "$select": ",".join(SERVICE_PRINCIPAL_SELECT),
            "$expand": "appRoleAssignedTo",
            "$filter": "servicePrincipalType eq 'Application'",
            "$top": "999",
        }, beta=True)
        organization_ids = set(self.connector.organization_ids())

        def translate(service_principals: List[Dict[str, Any]]) -> List[Resource]:
            resources = []
            for sp in service_principals:
                if sp.get("appOwnerOrganizationId") not in organization_ids:
                    continue
                self.cache.set(("service-principal", sp["id"]), sp)
                resources.append(self._application_resource(sp, parent_id))
            return resources

        return self.list_page(self.graph_phase("servicePrincipals", first_url, translate), cursor, ctx)

    def entitlements(self, resource: Resource) -> List[Entitlement]:
        name = resource.display_name
        grantable = (ResourceType.USER, ResourceType.GROUP)
        rv = [
            Entitlement(
                resource_id=resource.id,
                slug=OWNERS_SLUG,
                display_name=f"{name} Application Owner",
                description=f"Owner of {name} Application",
                purpose=EntitlementPurpose.PERMISSION,
                grantable_to=(ResourceType.USER,),
            ),
            # Default app role: assigned to the app without a specific role.
            Entitlement(
                resource_id=resource.id,
                slug=assignment_slug(DEFAULT_APP_ROLE_ID),
                display_name=f"{name} Application Assignment",
                description=f"Assigned to {name} Application",
                purpose=EntitlementPurpose.ASSIGNMENT,
                grantable_to=grantable,
            ),
        ]
        sp = self.service_principal(resource.id.resource)
        for app_role in sp.get("appRoles") or []:
            if "User" not in (app_role.get("allowedMemberTypes") or []):
                continue
            rv.append(Entitlement(
                resource_id=resource.id,
                slug=assignment_slug(app_role["id"]),
                display_name=f"{app_role.get('displayName')} Role Assignment",
                description=f"Assigned to {name} Application with {app_role.get('description')} Role",
                purpose=EntitlementPurpose.ASSIGNMENT,
                grantable_to=grantable,
            ))
        return rv

    def _assignment_grant(self, resource: Resource, assignment: Dict[str, Any]) -> Optional[GrantRecord]:
        principal_id = assignment.get("principalId") or ""
        principal_type = assignment.get("principalType") or ""
        expansion = None
        if principal_type == "User":
            resource_type = ResourceType.USER
        elif principal_type == "Group":
            resource_type = ResourceType.GROUP
            expansion = group_members_hint(principal_id, shallow=True, user_only=True)
        elif principal_type == "ServicePrincipal":
            resolved = self.connector.principal_resolver.resolve(principal_id)
            resource_type = self.policy.classify_service_principal(
                resolved.service_principal_type, resource.id.resource, assignment)
            if resource_type is None:
                return None
        else:
            self.policy.drop_membership_type(principal_type, resource.id.resource, assignment)
            return None

        return GrantRecord(
            resource_id=resource.id,
            entitlement_slug=assignment_slug(assignment.get("appRoleId") or DEFAULT_APP_ROLE_ID),
            principal=ResourceId(resource_type, principal_id),
            grant_id=assignment.get("id") or "",
            expansion=expansion,
        )

    def grants(self, resource: Resource, cursor: str = "",
               ctx: Optional[SyncContext] = None) -> Tuple[List[GrantRecord], str]:
        sp_id = resource.id.resource
        params = {"$select": "id,servicePrincipalType"}
        if self.config.get("skip_ad_groups"):
            params["$filter"] = "(onPremisesSyncEnabled ne true)"
            params["$count"] = "true"
        owners_url = self.graph_client.build_url("servicePrincipals", sp_id, OWNERS_SLUG, params=params, beta=True)

        def translate_owners(records: List[Dict[str, Any]]) -> List[GrantRecord]:
            grants = []
            for record in records:
                grant = self.policy.membership_grant(
                    resource.id, OWNERS_SLUG, record, strict_types=True, accept_groups=False)
                if grant is not None:
                    grants.append(grant)
            return grants

        def translate_assignments(records: List[Dict[str, Any]]) -> List[GrantRecord]:
            grants = []
            for record in records:
                grant = self._assignment_grant(resource, record)
                if grant is not None:
                    grants.append(grant)
            return grants

        owners = self.graph_phase(OWNERS_SLUG, owners_url, translate_owners)
        assignments = self.marker_phase(
            ASSIGNMENT_SLUG,
            lambda: list(self.service_principal(sp_id).get("appRoleAssignedTo") or []),
            translate_assignments,
        )
        return self.orchestrator.run([owners, assignments], cursor, ctx)

    def grant(self, principal: Resource, entitlement: Entitlement) -> None:
        if principal.id.resource_type is not ResourceType.USER:
            self.logger.warning(f"Only users can be granted enterprise app entitlements (got {principal.id})")
            raise ProvisioningError("only users can be granted enterprise app entitlements")

        sp_id = entitlement.resource_id.resource
        if entitlement.slug == OWNERS_SLUG:
            url = self.graph_client.build_url("servicePrincipals", sp_id, OWNERS_SLUG, "$ref")
            body = directory_object_ref(principal.id.resource)
        else:
            app_role_id = parse_app_role_id(entitlement.slug)
            if app_role_id is None:
                raise ProvisioningError(f"unsupported enterprise application entitlement {entitlement.id!r}")
            url = self.graph_client.build_url("servicePrincipals", sp_id, "appRoleAssignedTo", beta=True)
            body = {"appRoleId": app_role_id, "principalId": principal.id.resource, "resourceId": sp_id}
        self.graph_client.query(GRAPH_SCOPES, "POST", url, body)
        self.cache.invalidate(("service-principal", sp_id))
        self.logger.info(f"Granted {entitlement.id} to {principal.id}")

    def revoke(self, grant: GrantRecord) -> None:
        sp_id = grant.resource_id.resource
        if grant.entitlement_slug == OWNERS_SLUG:
            url = self.graph_client.build_url("servicePrincipals", sp_id, OWNERS_SLUG, grant.principal_id, "$ref")
        elif parse_app_role_id(grant.entitlement_slug) is not None:
            url = self.graph_client.build_url("servicePrincipals", sp_id, "appRoleAssignedTo", grant.grant_id)
        else:
            self.logger.warning(f"Cannot revoke unsupported entitlement {grant.entitlement_id}")
            raise ProvisioningError(f"unsupported enterprise application entitlement {grant.entitlement_id!r}")
        self.graph_client.query(GRAPH_SCOPES, "DELETE", url)
        self.cache.invalidate(("service-principal", sp_id))
        self.logger.info(f"Revoked {grant.entitlement_id} from {grant.principal}")
