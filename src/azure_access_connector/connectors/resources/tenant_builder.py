#!/usr/bin/env python3
"""
tenant_builder.py

Lists the Azure tenants visible to the connector credential.

Author: [Your Name]
Date: [Current Date]
"""

from typing import Any, Dict, List, Optional, Tuple

from azure_access_connector.connectors.base import ResourceBuilder
from azure_access_connector.connectors.context import SyncContext
from azure_access_connector.connectors.models import Resource, ResourceId, ResourceType


class TenantBuilder(ResourceBuilder):
    resource_type = ResourceType.TENANT

    def _tenant_resource(self, tenant: Dict[str, Any], parent_id: Optional[ResourceId]) -> Resource:
        tenant_id = tenant.get("tenant_id") or ""
        return Resource(
            id=ResourceId(ResourceType.TENANT, tenant_id),
            display_name=tenant.get("display_name") or tenant_id,
            parent_id=parent_id,
            profile={
                "tenant_id": tenant_id,
                "default_domain": tenant.get("default_domain"),
                "country_code": tenant.get("country_code"),
                "tenant_category": tenant.get("tenant_category"),
            },
        )

    def list(self, parent_id: Optional[ResourceId], cursor: str = "",
             ctx: Optional[SyncContext] = None) -> Tuple[List[Resource], str]:
        phase = self.arm_phase(
            "tenants", self.arm_client.list_tenants_page,
            lambda tenants: [self._tenant_resource(t, parent_id) for t in tenants],
        )
        return self.list_page(phase, cursor, ctx)
