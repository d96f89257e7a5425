from azure_access_connector.connectors.resources.container_builder import ContainerBuilder
from azure_access_connector.connectors.resources.enterprise_application_builder import EnterpriseApplicationBuilder
from azure_access_connector.connectors.resources.group_builder import GroupBuilder
from azure_access_connector.connectors.resources.managed_identity_builder import ManagedIdentityBuilder
from azure_access_connector.connectors.resources.resource_group_builder import ResourceGroupBuilder
from azure_access_connector.connectors.resources.role_builder import RoleBuilder
from azure_access_connector.connectors.resources.storage_account_builder import StorageAccountBuilder
from azure_access_connector.connectors.resources.subscription_builder import SubscriptionBuilder
from azure_access_connector.connectors.resources.tenant_builder import TenantBuilder
from azure_access_connector.connectors.resources.user_builder import UserBuilder

__all__ = [
    "ContainerBuilder",
    "EnterpriseApplicationBuilder",
    "GroupBuilder",
    "ManagedIdentityBuilder",
    "ResourceGroupBuilder",
    "RoleBuilder",
    "StorageAccountBuilder",
    "SubscriptionBuilder",
    "TenantBuilder",
    "UserBuilder",
]
