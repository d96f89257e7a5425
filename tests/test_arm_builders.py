#!/usr/bin/env python3
"""
test_arm_builders.py

Unit tests for the Azure Resource Manager builders: tenants, subscriptions, resource
groups, roles, storage accounts and blob containers, run against FakeArmClient.

Author: [Your Name]
Date: [Current Date]
"""

import unittest

from azure_access_connector.connectors.arm_client import ArmPage
from azure_access_connector.connectors.errors import MalformedUpstreamRecordError, ProvisioningError
from azure_access_connector.connectors.models import (
    Entitlement,
    GrantRecord,
    Resource,
    ResourceId,
    ResourceType,
)
from azure_access_connector.connectors.pagination import PageCursor
from azure_access_connector.connectors.resources import (
    ContainerBuilder,
    ResourceGroupBuilder,
    RoleBuilder,
    StorageAccountBuilder,
    SubscriptionBuilder,
    TenantBuilder,
)
from azure_access_connector.connectors.resources.container_builder import container_scope, split_container_id
from azure_access_connector.connectors.resources.resource_group_builder import split_resource_group_id
from tests.fakes import FakeArmClient, FakeGraphClient, assignment, make_connector, role_definition

SUBSCRIPTION = ResourceId(ResourceType.SUBSCRIPTION, "sub1")
ACCOUNT_AZURE_ID = "/subscriptions/sub1/resourceGroups/rg1/providers/Microsoft.Storage/storageAccounts/acct1"
ACCOUNT = Resource(id=ResourceId(ResourceType.STORAGE_ACCOUNT, "sub1:rg1:Microsoft.Storage:storageAccounts:acct1"),
                   display_name="acct1")
CONTAINER = Resource(id=ResourceId(ResourceType.CONTAINER, f"{ACCOUNT.id.resource}:logs"), display_name="logs")
ALICE = Resource(id=ResourceId(ResourceType.USER, "alice"), display_name="Alice")


class TestHierarchyBuilders(unittest.TestCase):
    def test_tenants_and_subscriptions(self):
        arm = FakeArmClient(pages={
            "tenants": {None: ArmPage([{"tenant_id": "t1", "display_name": "Contoso", "default_domain": "contoso.com"}])},
            "subscriptions": {
                None: ArmPage([{"subscription_id": "sub1", "display_name": "Prod"}], "page-2"),
                "page-2": ArmPage([{"subscription_id": "sub2", "state": "Enabled"}]),
            },
        })
        connector = make_connector(arm=arm)

        tenants, cursor = TenantBuilder(connector).list(None)
        self.assertEqual(cursor, "")
        self.assertEqual(tenants[0].display_name, "Contoso")
        self.assertEqual(tenants[0].profile["default_domain"], "contoso.com")

        builder = SubscriptionBuilder(connector)
        first, cursor = builder.list(None)
        self.assertEqual([s.id.resource for s in first], ["sub1"])
        # A one-record ARM page still continues.
        self.assertEqual(PageCursor.decode(cursor).current_phase().continuation_token, "page-2")
        second, cursor = builder.list(None, cursor)
        self.assertEqual(cursor, "")
        self.assertEqual(second[0].display_name, "sub2")

    def test_resource_group_list_requires_subscription_parent(self):
        builder = ResourceGroupBuilder(make_connector())
        self.assertEqual(builder.list(None), ([], ""))

    def test_resource_group_list_and_grants(self):
        scope = "/subscriptions/sub1/resourceGroups/rg1"
        arm = FakeArmClient(pages={
            ("resource_groups", "sub1"): {None: ArmPage([{"name": "rg1", "location": "westeurope"}])},
            ("role_assignments", scope): {None: ArmPage([assignment("a1", "r-reader", "p1", scope=scope)])},
        })
        builder = ResourceGroupBuilder(make_connector(arm=arm))

        groups, _ = builder.list(SUBSCRIPTION)
        self.assertEqual(groups[0].id.resource, "rg1:sub1")
        self.assertEqual(groups[0].parent_id, SUBSCRIPTION)

        grants, cursor = builder.grants(groups[0])
        self.assertEqual(cursor, "")
        self.assertEqual(grants[0].entitlement_slug, "assignment")
        self.assertEqual(grants[0].principal, ResourceId(ResourceType.ROLE, "r-reader:sub1"))
        self.assertEqual(grants[0].expansion.entitlement_ids,
                         ("role:r-reader:sub1:owners", "role:r-reader:sub1:assigned"))

    def test_split_resource_group_id(self):
        self.assertEqual(split_resource_group_id("my:rg:sub1"), ("my:rg", "sub1"))
        with self.assertRaises(MalformedUpstreamRecordError):
            split_resource_group_id("rg1")


class TestRoleBuilder(unittest.TestCase):
    def setUp(self):
        self.arm = FakeArmClient(
            pages={("role_definitions", "sub1"): {None: ArmPage([role_definition("sub1", "r-reader", [], role_name="Reader")])}},
            role_assignments={"/subscriptions/sub1": [
                assignment("a1", "r-reader", "user-1"),
                assignment("a2", "r-reader", "group-1"),
                assignment("a3", "r-reader", "ghost"),
                assignment("a4", "r-owner", "user-1"),
            ]},
        )
        self.graph = FakeGraphClient()
        build_url = self.graph.build_url
        self.graph.responses[build_url("directoryObjects", "user-1")] = {"@odata.type": "#microsoft.graph.user"}
        self.graph.responses[build_url("directoryObjects", "group-1")] = {"@odata.type": "#microsoft.graph.group"}
        self.connector = make_connector(graph=self.graph, arm=self.arm)
        self.builder = RoleBuilder(self.connector)
        self.role = Resource(id=ResourceId(ResourceType.ROLE, "r-reader:sub1"), display_name="Reader")

    def test_list(self):
        roles, cursor = self.builder.list(SUBSCRIPTION)
        self.assertEqual(cursor, "")
        self.assertEqual(roles[0].id.resource, "r-reader:sub1")
        self.assertEqual(roles[0].display_name, "Reader")

    def test_assigned_grants(self):
        grants, cursor = self.builder.grants(self.role)
        self.assertEqual(cursor, "")
        self.assertEqual([g.principal for g in grants], [
            ResourceId(ResourceType.USER, "user-1"),
            ResourceId(ResourceType.GROUP, "group-1"),
        ])
        self.assertTrue(grants[1].expandable)
        self.assertEqual(grants[0].grant_id,
                         "/subscriptions/sub1/providers/Microsoft.Authorization/roleAssignments/a1")
        self.assertEqual(self.arm.iter_calls, ["/subscriptions/sub1"])

    def test_assigned_grants_page_by_marker(self):
        builder = RoleBuilder(make_connector(graph=self.graph, arm=self.arm, page_size=1))
        grants, cursor = builder.grants(self.role)
        self.assertEqual(len(grants), 1)
        self.assertEqual(PageCursor.decode(cursor).current_phase().continuation_token, "1")
        builder.grants(self.role, cursor)
        self.assertEqual(self.arm.iter_calls, ["/subscriptions/sub1"])

    def test_grant_creates_assignment_and_invalidates(self):
        self.builder.grants(self.role)
        entitlement = Entitlement(resource_id=self.role.id, slug="assigned")
        self.builder.grant(ALICE, entitlement)
        self.assertEqual(self.arm.created, [(
            "sub1", "/subscriptions/sub1",
            "/subscriptions/sub1/providers/Microsoft.Authorization/roleDefinitions/r-reader", "alice")])
        self.builder.grants(self.role)
        self.assertEqual(len(self.arm.iter_calls), 2)

    def test_grant_rejects_groups(self):
        group = Resource(id=ResourceId(ResourceType.GROUP, "group-1"), display_name="Group")
        with self.assertRaises(ProvisioningError):
            self.builder.grant(group, Entitlement(resource_id=self.role.id, slug="assigned"))

    def test_revoke(self):
        grant = GrantRecord(resource_id=self.role.id, entitlement_slug="assigned",
                            principal=ResourceId(ResourceType.USER, "user-1"))
        self.builder.revoke(grant)
        self.assertEqual(self.arm.deleted, [("sub1", "/subscriptions/sub1", "a1")])

    def test_revoke_without_assignment(self):
        grant = GrantRecord(resource_id=self.role.id, entitlement_slug="assigned",
                            principal=ResourceId(ResourceType.USER, "nobody"))
        with self.assertRaises(ProvisioningError):
            self.builder.revoke(grant)

    def test_revoke_skips_resource_group_assignments(self):
        self.arm.role_assignments["/subscriptions/sub1"].insert(
            0, assignment("rg-a1", "r-reader", "user-1", scope="/subscriptions/sub1/resourceGroups/rg1"))
        grant = GrantRecord(resource_id=self.role.id, entitlement_slug="assigned",
                            principal=ResourceId(ResourceType.USER, "user-1"))
        self.builder.revoke(grant)
        self.assertEqual(self.arm.deleted, [("sub1", "/subscriptions/sub1", "a1")])

    def test_revoke_with_only_a_resource_group_assignment(self):
        self.arm.role_assignments["/subscriptions/sub1"].append(
            assignment("rg-a2", "r-reader", "user-2", scope="/subscriptions/sub1/resourceGroups/rg1"))
        grant = GrantRecord(resource_id=self.role.id, entitlement_slug="assigned",
                            principal=ResourceId(ResourceType.USER, "user-2"))
        with self.assertRaises(ProvisioningError):
            self.builder.revoke(grant)
        self.assertEqual(self.arm.deleted, [])


class TestStorageBuilders(unittest.TestCase):
    def setUp(self):
        scope = ACCOUNT_AZURE_ID
        records = [
            assignment("a1", "r-contrib", "p1", scope=scope),
            assignment("a2", "r-reader", "p2", scope=scope),
            assignment("a3", "r-contrib", "p3", scope=scope),
        ]
        self.arm = FakeArmClient(
            pages={("role_assignments", scope): {None: ArmPage(records)}},
            role_assignments={scope: records},
            role_definitions={
                "/subscriptions/sub1/providers/Microsoft.Authorization/roleDefinitions/r-contrib": role_definition(
                    "sub1", "r-contrib", ["Microsoft.Storage/storageAccounts/*"],
                    ["Microsoft.Storage/storageAccounts/delete"]),
                "/subscriptions/sub1/providers/Microsoft.Authorization/roleDefinitions/r-reader": role_definition(
                    "sub1", "r-reader", ["Microsoft.Storage/storageAccounts/read"]),
            },
        )
        self.builder = StorageAccountBuilder(make_connector(arm=self.arm))

    def test_list_uses_five_part_id(self):
        arm = FakeArmClient(pages={("storage_accounts", "sub1"): {None: ArmPage([
            {"id": ACCOUNT_AZURE_ID, "name": "acct1", "kind": "StorageV2", "sku": {"name": "Standard_LRS"}}])}})
        accounts, _ = StorageAccountBuilder(make_connector(arm=arm)).list(SUBSCRIPTION)
        self.assertEqual(accounts[0].id, ACCOUNT.id)
        self.assertEqual(accounts[0].profile["sku"], "Standard_LRS")

    def test_entitlements(self):
        slugs = [e.slug for e in self.builder.entitlements(ACCOUNT)]
        self.assertEqual(slugs, ["assignment", "read", "write", "delete"])

    def test_role_assignment_then_per_role_action(self):
        grants, cursor = self.builder.grants(ACCOUNT)
        self.assertEqual([g.entitlement_slug for g in grants], ["assignment"] * 3)

        grants, cursor = self.builder.grants(ACCOUNT, cursor)
        self.assertEqual(cursor, "")
        self.assertEqual([(g.entitlement_slug, g.principal_id) for g in grants], [
            ("read", "r-contrib:sub1"),
            ("write", "r-contrib:sub1"),
            ("read", "r-reader:sub1"),
        ])
        self.assertTrue(all(g.expandable for g in grants))
        self.assertEqual(len(self.arm.definition_calls), 2)

    def test_role_definitions_fetched_once_per_sync(self):
        cursor = PageCursor()
        cursor.push_phase("per-role-action")
        self.builder.grants(ACCOUNT, cursor.encode())
        self.builder.grants(ACCOUNT, cursor.encode())
        self.assertEqual(len(self.arm.definition_calls), 2)
        self.assertEqual(self.arm.iter_calls, [ACCOUNT_AZURE_ID])


class TestContainerBuilder(unittest.TestCase):
    def test_container_id_and_scope(self):
        account, name = split_container_id(CONTAINER.id.resource)
        self.assertEqual(name, "logs")
        self.assertEqual(container_scope(account, name),
                         f"{ACCOUNT_AZURE_ID}/blobServices/default/containers/logs")
        with self.assertRaises(MalformedUpstreamRecordError):
            split_container_id("logs")

    def test_list_under_storage_account(self):
        arm = FakeArmClient(pages={("containers", "acct1"): {None: ArmPage([{"name": "logs", "public_access": None}])}})
        builder = ContainerBuilder(make_connector(arm=arm))
        self.assertEqual(builder.list(SUBSCRIPTION), ([], ""))
        containers, _ = builder.list(ACCOUNT.id)
        self.assertEqual(containers[0].id, CONTAINER.id)

    def test_grants_use_container_actions(self):
        scope = f"{ACCOUNT_AZURE_ID}/blobServices/default/containers/logs"
        records = [assignment("a1", "r-blob", "p1", scope=scope)]
        arm = FakeArmClient(
            pages={("role_assignments", scope): {None: ArmPage(records)}},
            role_assignments={scope: records},
            role_definitions={
                "/subscriptions/sub1/providers/Microsoft.Authorization/roleDefinitions/r-blob": role_definition(
                    "sub1", "r-blob", ["Microsoft.Storage/storageAccounts/blobServices/containers/read"]),
            },
        )
        builder = ContainerBuilder(make_connector(arm=arm))
        _, cursor = builder.grants(CONTAINER)
        grants, cursor = builder.grants(CONTAINER, cursor)
        self.assertEqual(cursor, "")
        self.assertEqual([(g.entitlement_slug, g.principal_id) for g in grants], [("read", "r-blob:sub1")])


if __name__ == "__main__":
    unittest.main()
