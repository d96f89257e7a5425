#!/usr/bin/env python3
"""
test_connector.py

Unit tests for credential selection, the Connector wiring and the asynchronous
builder wrappers.

Author: [Your Name]
Date: [Current Date]
"""

import asyncio
import unittest
from unittest import mock

from azure_access_connector.connectors import credentials
from azure_access_connector.connectors.connector import BUILDER_CLASSES, Connector
from azure_access_connector.connectors.errors import ConfigurationError
from azure_access_connector.connectors.models import Resource, ResourceId, ResourceType
from azure_access_connector.connectors.resources import GroupBuilder
from tests.fakes import FakeGraphClient, graph_page, make_connector, users


class TestBuildCredential(unittest.TestCase):
    @mock.patch.object(credentials, "AzureCliCredential")
    def test_cli_credentials(self, cli_credential):
        self.assertIs(credentials.build_credential({"use_cli_credentials": True, "azure_tenant_id": "t1"}),
                      cli_credential.return_value)
        cli_credential.assert_called_once_with(tenant_id="t1")

    @mock.patch.object(credentials, "ClientSecretCredential")
    def test_client_secret(self, secret_credential):
        config = {"azure_tenant_id": "t1", "azure_client_id": "c1", "azure_client_secret": "s1"}
        self.assertIs(credentials.build_credential(config), secret_credential.return_value)
        secret_credential.assert_called_once_with(tenant_id="t1", client_id="c1", client_secret="s1")

    def test_client_secret_requires_tenant(self):
        with self.assertRaises(ConfigurationError):
            credentials.build_credential({"azure_client_id": "c1", "azure_client_secret": "s1"})

    @mock.patch.object(credentials, "DefaultAzureCredential")
    def test_default_credential(self, default_credential):
        self.assertIs(credentials.build_credential({}), default_credential.return_value)


class TestConnector(unittest.TestCase):
    def test_validate_requires_an_organization(self):
        with self.assertRaises(ConfigurationError):
            make_connector().validate()

    def test_organization_ids_are_fetched_once(self):
        graph = FakeGraphClient()
        graph.responses[graph.build_url("organization")] = {"value": [{"id": "org1"}]}
        connector = make_connector(graph=graph)
        connector.validate()
        self.assertEqual(connector.organization_ids(), ["org1"])
        self.assertEqual(len(graph.calls), 1)

    def test_builders_share_caches(self):
        connector = make_connector()
        builders = connector.resource_builders()
        self.assertEqual([type(b) for b in builders], BUILDER_CLASSES)
        self.assertTrue(all(b.connector.resource_cache is connector.resource_cache for b in builders))
        self.assertEqual(len({id(b.policy) for b in builders}), len(builders))

    def test_metadata(self):
        metadata = make_connector().metadata()
        self.assertEqual(metadata["tenant_id"], "tenant-1")
        self.assertEqual(metadata["resource_types"][0], "user")
        self.assertEqual(metadata["resource_types"][-1], "container")

    @mock.patch("azure_access_connector.connectors.connector.ArmClient")
    @mock.patch("azure_access_connector.connectors.connector.build_credential")
    def test_from_config(self, build_credential, arm_client):
        connector = Connector.from_config({"azure_tenant_id": "t1"})
        arm_client.assert_called_once_with(build_credential.return_value)
        self.assertIs(connector.graph_client.credential, build_credential.return_value)


class TestAsyncWrappers(unittest.TestCase):
    def test_async_grants_returns_the_page(self):
        graph = FakeGraphClient()
        builder = GroupBuilder(make_connector(graph=graph))
        owners_url = graph.build_url("groups", "g1", "owners", params={"$select": "id,servicePrincipalType"}, beta=True)
        graph.responses[owners_url] = graph_page(users(1))
        group = Resource(id=ResourceId(ResourceType.GROUP, "g1"), display_name="Engineering")

        grants, cursor = asyncio.run(builder.async_grants(group))
        self.assertEqual([g.principal_id for g in grants], ["u0"])
        self.assertTrue(cursor)

    def test_async_list(self):
        builder = GroupBuilder(make_connector())
        self.assertEqual(asyncio.run(builder.async_list(None)), ([], ""))


if __name__ == "__main__":
    unittest.main()
