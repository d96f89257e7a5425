#!/usr/bin/env python3
"""
test_models.py

Unit tests for identifiers and records of the resource model.

Author: [Your Name]
Date: [Current Date]
"""

import unittest

from azure_access_connector.connectors.errors import MalformedUpstreamRecordError
from azure_access_connector.connectors.models import (
    AzureResourcePath,
    RoleAssignmentRecord,
    RoleDefinitionRecord,
    role_definition_guid,
    role_resource_id,
    split_role_resource_id,
)

STORAGE_ID = "/subscriptions/abc/resourceGroups/rg1/providers/Microsoft.Storage/storageAccounts/sa1"


class TestAzureResourcePath(unittest.TestCase):
    def test_round_trip(self):
        path = AzureResourcePath.from_azure_id(STORAGE_ID)
        self.assertEqual(path.connector_id(), "abc:rg1:Microsoft.Storage:storageAccounts:sa1")
        self.assertEqual(AzureResourcePath.from_connector_id(path.connector_id()).azure_id(), STORAGE_ID)

    def test_invalid_ids(self):
        for azure_id in ("", "/subscriptions/abc", "/subscriptions/abc/resourceGroups/rg1/providers/x/y"):
            with self.subTest(azure_id=azure_id):
                with self.assertRaises(MalformedUpstreamRecordError):
                    AzureResourcePath.from_azure_id(azure_id)
        with self.assertRaises(MalformedUpstreamRecordError):
            AzureResourcePath.from_connector_id("abc:rg1")


class TestRoleIdentifiers(unittest.TestCase):
    def test_role_definition_guid(self):
        guid = role_definition_guid("/subscriptions/abc/providers/Microsoft.Authorization/roleDefinitions/xyz")
        self.assertEqual(role_resource_id(guid, "abc"), "xyz:abc")

    def test_split_role_resource_id(self):
        self.assertEqual(split_role_resource_id("xyz:abc"), ("xyz", "abc"))
        with self.assertRaises(MalformedUpstreamRecordError):
            split_role_resource_id("xyz")


class TestTransportRecords(unittest.TestCase):
    def test_role_assignment_from_nested_properties(self):
        record = RoleAssignmentRecord.from_dict({
            "id": "/subscriptions/abc/providers/Microsoft.Authorization/roleAssignments/a1",
            "name": "a1",
            "properties": {"scope": "/subscriptions/abc", "role_definition_id": "rd", "principal_id": "p1",
                           "principal_type": "User"},
        })
        self.assertEqual((record.scope, record.role_definition_id, record.principal_id, record.principal_type),
                         ("/subscriptions/abc", "rd", "p1", "User"))

    def test_role_definition_from_flat_dict(self):
        record = RoleDefinitionRecord.from_dict({
            "id": "rd", "name": "xyz", "role_name": "Reader",
            "permissions": [{"actions": ["*/read"], "not_actions": []}],
        })
        self.assertEqual(record.role_name, "Reader")
        self.assertEqual(record.permissions, ({"actions": ["*/read"], "not_actions": []},))


if __name__ == "__main__":
    unittest.main()
