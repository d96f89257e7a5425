#!/usr/bin/env python3
"""
fakes.py

In-memory stand-ins for the Graph and ARM transports used by the unit tests.

FakeGraphClient keeps the real URL building of GraphClient and answers query()
from a dictionary keyed by URL (or by (method, URL)). FakeArmClient serves
pre-baked ArmPage sequences keyed by operation and continuation token.

Author: [Your Name]
Date: [Current Date]
"""

from typing import Any, Dict, List, Optional
from unittest import mock

from azure_access_connector.connectors.arm_client import ArmPage
from azure_access_connector.connectors.connector import Connector
from azure_access_connector.connectors.graph_client import GraphClient
from azure_access_connector.connectors.models import RoleAssignmentRecord, RoleDefinitionRecord

ROLE_DEFINITION_TEMPLATE = "/subscriptions/{sub}/providers/Microsoft.Authorization/roleDefinitions/{role}"

TEST_CONFIG = {
    "azure_tenant_id": "tenant-1",
    "small_page_heuristic": True,
    "small_page_threshold": 50,
    "page_size": 100,
    "max_workers": 2,
}


def graph_page(records: List[Dict[str, Any]], next_link: Optional[str] = None) -> Dict[str, Any]:
    page = {"value": records}
    if next_link:
        page["@odata.nextLink"] = next_link
    return page


def member(object_id: str, odata_type: str, sp_type: Optional[str] = None) -> Dict[str, Any]:
    record = {"@odata.type": odata_type, "id": object_id}
    if sp_type is not None:
        record["servicePrincipalType"] = sp_type
    return record


def users(count: int, prefix: str = "u") -> List[Dict[str, Any]]:
    return [member(f"{prefix}{i}", "#microsoft.graph.user") for i in range(count)]


def assignment(assignment_id: str, role: str, principal: str, sub: str = "sub1",
               scope: Optional[str] = None) -> RoleAssignmentRecord:
    return RoleAssignmentRecord(
        id=f"/subscriptions/{sub}/providers/Microsoft.Authorization/roleAssignments/{assignment_id}",
        name=assignment_id,
        scope=scope or f"/subscriptions/{sub}",
        role_definition_id=ROLE_DEFINITION_TEMPLATE.format(sub=sub, role=role),
        principal_id=principal,
    )


class FakeGraphClient(GraphClient):
    def __init__(self, responses: Optional[Dict[Any, Any]] = None):
        super().__init__({}, session=mock.Mock())
        self.responses = dict(responses or {})
        self.calls = []

    def query(self, scopes, method, url, body=None):
        self.calls.append((method, url, body))
        if (method, url) in self.responses:
            response = self.responses[(method, url)]
        else:
            response = self.responses.get(url)
        if isinstance(response, Exception):
            raise response
        return response

    def urls(self, method: str = "GET") -> List[str]:
        return [url for m, url, _ in self.calls if m == method]


class FakeArmClient:
    """
    pages: {operation key: {token or None: ArmPage}}; role_assignments:
    {scope: [RoleAssignmentRecord]}; role_definitions: {role definition id: RoleDefinitionRecord}.
    """

    def __init__(self, pages=None, role_assignments=None, role_definitions=None):
        self.pages = pages or {}
        self.role_assignments = role_assignments or {}
        self.role_definitions = role_definitions or {}
        self.iter_calls = []
        self.definition_calls = []
        self.created = []
        self.deleted = []
        self.fail_iteration = None

    def _serve(self, key, token):
        entry = self.pages.get(key, {})
        page = entry.get(token)
        if isinstance(page, Exception):
            raise page
        return page or ArmPage()

    def list_subscriptions_page(self, token=None):
        return self._serve("subscriptions", token)

    def list_tenants_page(self, token=None):
        return self._serve("tenants", token)

    def list_resource_groups_page(self, subscription_id, token=None):
        return self._serve(("resource_groups", subscription_id), token)

    def list_storage_accounts_page(self, subscription_id, token=None):
        return self._serve(("storage_accounts", subscription_id), token)

    def list_containers_page(self, account_name, token=None):
        return self._serve(("containers", account_name), token)

    def list_role_definitions_page(self, subscription_id, token=None):
        return self._serve(("role_definitions", subscription_id), token)

    def list_role_assignments_page(self, subscription_id, scope, token=None):
        return self._serve(("role_assignments", scope), token)

    def iter_role_assignments(self, subscription_id, scope=None):
        scope = scope or f"/subscriptions/{subscription_id}"
        self.iter_calls.append(scope)
        for i, record in enumerate(self.role_assignments.get(scope, [])):
            if self.fail_iteration is not None and i == self.fail_iteration:
                raise RuntimeError("pager failed mid-drain")
            yield record

    def get_role_definition(self, role_definition_id):
        self.definition_calls.append(role_definition_id)
        return self.role_definitions[role_definition_id]

    def create_role_assignment(self, subscription_id, scope, role_definition_id, principal_id):
        self.created.append((subscription_id, scope, role_definition_id, principal_id))
        return RoleAssignmentRecord(id="new", name="new", scope=scope,
                                    role_definition_id=role_definition_id, principal_id=principal_id)

    def delete_role_assignment(self, subscription_id, scope, name):
        self.deleted.append((subscription_id, scope, name))


def role_definition(sub: str, role: str, actions: List[str], not_actions: Optional[List[str]] = None,
                    role_name: str = "") -> RoleDefinitionRecord:
    return RoleDefinitionRecord(
        id=ROLE_DEFINITION_TEMPLATE.format(sub=sub, role=role),
        name=role,
        role_name=role_name or role,
        permissions=({"actions": actions, "not_actions": not_actions or []},),
    )


def make_connector(graph=None, arm=None, **overrides) -> Connector:
    config = dict(TEST_CONFIG)
    config.update(overrides)
    return Connector(config, graph or FakeGraphClient(), arm or FakeArmClient())
