#!/usr/bin/env python3
"""
connector.py

The Connector ties together the transport clients, the per-sync caches and the
resource builders.

Key Features:
    - One ResourceCache, RoleAssignmentIndex and PrincipalTypeResolver shared by every
      builder for the lifetime of the sync run.
    - validate() exercises the Graph credentials by reading the tenant organizations.
    - resource_builders() returns the builders in dependency order: identities first,
      then the ARM hierarchy (tenants, subscriptions, resource groups, roles, storage
      accounts, containers).
    - from_config() selects the azure-identity credential and builds both clients.

Author: [Your Name]
Date: [Current Date]
"""

import logging
import threading
from typing import Any, Dict, List, Optional

from azure_access_connector.connectors.arm_client import ArmClient
from azure_access_connector.connectors.base import ResourceBuilder
from azure_access_connector.connectors.cache import ResourceCache, RoleAssignmentIndex
from azure_access_connector.connectors.credentials import build_credential
from azure_access_connector.connectors.errors import ConfigurationError
from azure_access_connector.connectors.graph_client import GraphClient
from azure_access_connector.connectors.principal_resolver import PrincipalTypeResolver
from azure_access_connector.connectors.resources import (
    ContainerBuilder,
    EnterpriseApplicationBuilder,
    GroupBuilder,
    ManagedIdentityBuilder,
    ResourceGroupBuilder,
    RoleBuilder,
    StorageAccountBuilder,
    SubscriptionBuilder,
    TenantBuilder,
    UserBuilder,
)

CONNECTOR_NAME = "azure-access-connector"

BUILDER_CLASSES = [
    UserBuilder,
    GroupBuilder,
    EnterpriseApplicationBuilder,
    ManagedIdentityBuilder,
    TenantBuilder,
    SubscriptionBuilder,
    ResourceGroupBuilder,
    RoleBuilder,
    StorageAccountBuilder,
    ContainerBuilder,
]


class Connector:
    """
    Parameters:
        config (dict): Validated connector configuration.
        graph_client: GraphClient (or a compatible fake in tests).
        arm_client: ArmClient (or a compatible fake in tests).
    """

    def __init__(self, config: Dict[str, Any], graph_client, arm_client):
        self.config = config
        self.graph_client = graph_client
        self.arm_client = arm_client
        self.logger = logging.getLogger("Connector")
        self.resource_cache = ResourceCache("sync")
        self.role_index = RoleAssignmentIndex(arm_client, self.resource_cache)
        self.principal_resolver = PrincipalTypeResolver(graph_client, self.resource_cache)
        self._organization_ids: Optional[List[str]] = None
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "Connector":
        credential = build_credential(config)
        return cls(config, GraphClient(config, credential=credential), ArmClient(credential))

    def organization_ids(self) -> List[str]:
        """Organization IDs of the tenant, fetched once per sync."""
        with self._lock:
            if self._organization_ids is None:
                self._organization_ids = self.graph_client.organization_ids()
                self.logger.debug(f"Tenant organization IDs: {self._organization_ids}")
            return list(self._organization_ids)

    def validate(self) -> None:
        """
        Raises:
            UnauthorizedError: If Graph rejects the configured credentials.
            ConfigurationError: If the tenant exposes no organization.
        """
        if not self.organization_ids():
            raise ConfigurationError("Graph returned no organization for the configured tenant")
        self.logger.info("Connector credentials validated")

    def metadata(self) -> Dict[str, Any]:
        return {
            "name": CONNECTOR_NAME,
            "description": "Syncs Entra ID identities and Azure RBAC access",
            "resource_types": [cls.resource_type.value for cls in BUILDER_CLASSES],
            "tenant_id": self.config.get("azure_tenant_id"),
        }

    def resource_builders(self) -> List[ResourceBuilder]:
        return [builder_class(self) for builder_class in BUILDER_CLASSES]
