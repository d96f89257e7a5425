#!/usr/bin/env python3
"""
container_builder.py

Blob containers of a storage account. A container's ID is the parent account's
connector ID followed by ":{containerName}". Entitlements and grants follow the
storage account rules, evaluated at the container scope with the container action
prefix.

Author: [Your Name]
Date: [Current Date]
"""

from typing import Any, Dict, List, Optional, Tuple

from azure_access_connector.connectors.context import SyncContext
from azure_access_connector.connectors.errors import MalformedUpstreamRecordError
from azure_access_connector.connectors.models import AzureResourcePath, Resource, ResourceId, ResourceType
from azure_access_connector.connectors.resources.storage_account_builder import RoleScopedStorageBuilder
from azure_access_connector.connectors.rolemapper import CONTAINER_PERMISSIONS


def split_container_id(resource: str) -> Tuple[AzureResourcePath, str]:
    """"{accountConnectorId}:{container}" -> (account path, container name)."""
    account_id, sep, container = resource.rpartition(":")
    if not sep or not container:
        raise MalformedUpstreamRecordError(f"invalid container ID: {resource!r}")
    return AzureResourcePath.from_connector_id(account_id), container


def container_scope(account: AzureResourcePath, container: str) -> str:
    return f"{account.azure_id()}/blobServices/default/containers/{container}"


class ContainerBuilder(RoleScopedStorageBuilder):
    resource_type = ResourceType.CONTAINER
    mapper = CONTAINER_PERMISSIONS
    kind_label = "container"

    def scope_of(self, resource: Resource) -> Tuple[str, str]:
        account, container = split_container_id(resource.id.resource)
        return account.subscription_id, container_scope(account, container)

    def _container_resource(self, container: Dict[str, Any], account: AzureResourcePath,
                            parent_id: ResourceId) -> Resource:
        name = container.get("name") or ""
        return Resource(
            id=ResourceId(ResourceType.CONTAINER, f"{account.connector_id()}:{name}"),
            display_name=name,
            parent_id=parent_id,
            profile={
                "name": name,
                "storage_account": account.resource_name,
                "last_modified": container.get("last_modified"),
                "public_access": container.get("public_access"),
                "has_immutability_policy": container.get("has_immutability_policy"),
                "has_legal_hold": container.get("has_legal_hold"),
            },
        )

    def list(self, parent_id: Optional[ResourceId], cursor: str = "",
             ctx: Optional[SyncContext] = None) -> Tuple[List[Resource], str]:
        if parent_id is None or parent_id.resource_type is not ResourceType.STORAGE_ACCOUNT:
            return [], ""
        account = AzureResourcePath.from_connector_id(parent_id.resource)
        phase = self.arm_phase(
            "containers",
            lambda token: self.arm_client.list_containers_page(account.resource_name, token),
            lambda containers: [self._container_resource(c, account, parent_id) for c in containers],
        )
        return self.list_page(phase, cursor, ctx)
