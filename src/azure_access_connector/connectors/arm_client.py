#!/usr/bin/env python3
"""
arm_client.py

Azure Resource Manager transport for the Azure Access Connector.

Wraps the Azure management SDKs (authorization, resource, subscription, storage) and the
blob data plane SDK behind a small page-at-a-time API. Every list operation returns
one ArmPage per call, resumed through the vendor pager's continuation token, so the
connector's cursor can carry ARM pagination across calls.

Azure SDK exceptions are translated into the connector's error taxonomy:
  - ResourceNotFoundError -> NotFoundError
  - ClientAuthenticationError / 401 / 403 -> UnauthorizedError
  - 429 / 504 -> RateLimitedError (Retry-After from the response headers)
  - any other HttpResponseError -> UpstreamError

Authentication uses an azure-identity credential (see credentials.py).

Author: [Your Name]
Date: [Current Date]
"""

import contextlib
import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional

from azure.core.exceptions import (
    ClientAuthenticationError,
    HttpResponseError,
    ResourceExistsError,
    ResourceNotFoundError,
)
from azure.mgmt.authorization import AuthorizationManagementClient
from azure.mgmt.resource import ResourceManagementClient
from azure.mgmt.storage import StorageManagementClient
from azure.mgmt.subscription import SubscriptionClient
from azure.storage.blob import BlobServiceClient

from azure_access_connector.connectors.errors import (
    NotFoundError,
    RateLimitedError,
    UnauthorizedError,
    UpstreamError,
)
from azure_access_connector.connectors.models import RoleAssignmentRecord, RoleDefinitionRecord

logger = logging.getLogger("ArmClient")


@dataclass
class ArmPage:
    records: List[Any] = field(default_factory=list)
    continuation_token: Optional[str] = None


def _retry_after(error: HttpResponseError) -> int:
    response = getattr(error, "response", None)
    headers = getattr(response, "headers", None) or {}
    try:
        return int(headers.get("Retry-After", 0))
    except (TypeError, ValueError):
        return 0


@contextlib.contextmanager
def translate_errors(operation: str):
    """Re-raise Azure SDK exceptions raised inside the block as connector errors."""
    try:
        yield
    except ResourceNotFoundError as e:
        raise NotFoundError(f"{operation}: {e.message}", status_code=404, url=operation) from e
    except ClientAuthenticationError as e:
        raise UnauthorizedError(f"{operation}: {e.message}", status_code=e.status_code, url=operation) from e
    except HttpResponseError as e:
        status = e.status_code
        if status in (429, 504):
            raise RateLimitedError(f"{operation}: {e.message}", retry_after=_retry_after(e),
                                   status_code=status, url=operation) from e
        if status in (401, 403):
            raise UnauthorizedError(f"{operation}: {e.message}", status_code=status, url=operation) from e
        raise UpstreamError(f"{operation}: {e.message}", status_code=status, url=operation) from e


def _as_dict(item: Any) -> Dict[str, Any]:
    if isinstance(item, dict):
        return item
    return item.as_dict()


class ArmClient:
    """
    Page-at-a-time access to the ARM APIs the builders need.

    Parameters:
        credential: azure-identity TokenCredential shared by every SDK client.
    """

    def __init__(self, credential):
        self.credential = credential
        self._lock = threading.Lock()
        self._authorization_clients: Dict[str, AuthorizationManagementClient] = {}
        self._resource_clients: Dict[str, ResourceManagementClient] = {}
        self._storage_clients: Dict[str, StorageManagementClient] = {}
        self._subscription_client: Optional[SubscriptionClient] = None

    def _client(self, registry: Dict[str, Any], subscription_id: str, factory: Callable):
        with self._lock:
            if subscription_id not in registry:
                registry[subscription_id] = factory(self.credential, subscription_id)
            return registry[subscription_id]

    def authorization(self, subscription_id: str) -> AuthorizationManagementClient:
        return self._client(self._authorization_clients, subscription_id, AuthorizationManagementClient)

    def resources(self, subscription_id: str) -> ResourceManagementClient:
        return self._client(self._resource_clients, subscription_id, ResourceManagementClient)

    def storage(self, subscription_id: str) -> StorageManagementClient:
        return self._client(self._storage_clients, subscription_id, StorageManagementClient)

    def subscriptions(self) -> SubscriptionClient:
        with self._lock:
            if self._subscription_client is None:
                self._subscription_client = SubscriptionClient(self.credential)
            return self._subscription_client

    def _page(self, operation: str, item_paged, token: Optional[str], convert: Callable = _as_dict) -> ArmPage:
        """Fetch exactly one page from an azure.core ItemPaged."""
        with translate_errors(operation):
            pages = item_paged.by_page(continuation_token=token or None)
            try:
                page = next(pages)
            except StopIteration:
                return ArmPage()
            records = [convert(item) for item in page]
            return ArmPage(records, pages.continuation_token or None)

    def list_subscriptions_page(self, token: Optional[str] = None) -> ArmPage:
        return self._page("subscriptions.list", self.subscriptions().subscriptions.list(), token)

    def list_tenants_page(self, token: Optional[str] = None) -> ArmPage:
        return self._page("tenants.list", self.subscriptions().tenants.list(), token)

    def list_resource_groups_page(self, subscription_id: str, token: Optional[str] = None) -> ArmPage:
        return self._page(f"resource_groups.list({subscription_id})",
                          self.resources(subscription_id).resource_groups.list(), token)

    def list_storage_accounts_page(self, subscription_id: str, token: Optional[str] = None) -> ArmPage:
        return self._page(f"storage_accounts.list({subscription_id})",
                          self.storage(subscription_id).storage_accounts.list(), token)

    def list_containers_page(self, account_name: str, token: Optional[str] = None) -> ArmPage:
        service = BlobServiceClient(account_url=f"https://{account_name}.blob.core.windows.net",
                                    credential=self.credential)

        def convert(container) -> Dict[str, Any]:
            return {
                "name": container.name,
                "last_modified": container.last_modified.isoformat() if container.last_modified else None,
                "public_access": container.public_access,
                "has_immutability_policy": container.has_immutability_policy,
                "has_legal_hold": container.has_legal_hold,
            }

        return self._page(f"list_containers({account_name})", service.list_containers(), token, convert)

    def list_role_definitions_page(self, subscription_id: str, token: Optional[str] = None) -> ArmPage:
        scope = f"/subscriptions/{subscription_id}"
        return self._page(f"role_definitions.list({scope})",
                          self.authorization(subscription_id).role_definitions.list(scope), token,
                          lambda item: RoleDefinitionRecord.from_dict(_as_dict(item)))

    def list_role_assignments_page(self, subscription_id: str, scope: str, token: Optional[str] = None) -> ArmPage:
        return self._page(f"role_assignments.list_for_scope({scope})",
                          self.authorization(subscription_id).role_assignments.list_for_scope(scope), token,
                          lambda item: RoleAssignmentRecord.from_dict(_as_dict(item)))

    def iter_role_assignments(self, subscription_id: str, scope: Optional[str] = None) -> Iterator[RoleAssignmentRecord]:
        """Drain every role assignment visible at scope (the subscription when omitted)."""
        scope = scope or f"/subscriptions/{subscription_id}"
        token = None
        while True:
            page = self.list_role_assignments_page(subscription_id, scope, token)
            yield from page.records
            token = page.continuation_token
            if not token:
                return

    def get_role_definition(self, role_definition_id: str) -> RoleDefinitionRecord:
        parts = role_definition_id.split("/")
        subscription_id = parts[2] if len(parts) > 2 and parts[1].lower() == "subscriptions" else ""
        with translate_errors(f"role_definitions.get_by_id({role_definition_id})"):
            definition = self.authorization(subscription_id).role_definitions.get_by_id(role_definition_id)
        return RoleDefinitionRecord.from_dict(_as_dict(definition))

    def create_role_assignment(self, subscription_id: str, scope: str, role_definition_id: str,
                               principal_id: str) -> Optional[RoleAssignmentRecord]:
        """
        Create an RBAC role assignment; returns None if an identical one already exists.
        """
        name = str(uuid.uuid4())
        parameters = {"role_definition_id": role_definition_id, "principal_id": principal_id}
        with translate_errors(f"role_assignments.create({scope})"):
            try:
                created = self.authorization(subscription_id).role_assignments.create(scope, name, parameters)
            except ResourceExistsError:
                logger.info("Role assignment of %s to %s at %s already exists", role_definition_id, principal_id, scope)
                return None
        return RoleAssignmentRecord.from_dict(_as_dict(created))

    def delete_role_assignment(self, subscription_id: str, scope: str, name: str) -> None:
        with translate_errors(f"role_assignments.delete({scope}, {name})"):
            self.authorization(subscription_id).role_assignments.delete(scope, name)
