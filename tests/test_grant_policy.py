#!/usr/bin/env python3
"""
test_grant_policy.py

Unit tests for GrantExpansionPolicy: membership classification, the owners/members
asymmetry, logged-once dropping and RBAC role assignment grants.

Author: [Your Name]
Date: [Current Date]
"""

import logging
import unittest

from azure_access_connector.connectors.errors import MalformedUpstreamRecordError, UnknownMembershipTypeError
from azure_access_connector.connectors.grant_policy import GrantExpansionPolicy
from azure_access_connector.connectors.models import (
    UNKNOWN_PRINCIPAL,
    PrincipalKind,
    ResolvedPrincipal,
    ResourceId,
    ResourceType,
    RoleAssignmentRecord,
)

GROUP_X = ResourceId(ResourceType.GROUP, "groupX")


def rbac_assignment(role_definition_id):
    return RoleAssignmentRecord(id="/subscriptions/abc/providers/Microsoft.Authorization/roleAssignments/a1",
                                name="a1", scope="/subscriptions/abc", role_definition_id=role_definition_id,
                                principal_id="p1")


class TestGrantExpansionPolicy(unittest.TestCase):
    def setUp(self):
        self.logger = logging.getLogger("TestGrantExpansionPolicy")
        self.policy = GrantExpansionPolicy("TestBuilder", self.logger)

    def test_group_member_is_expandable(self):
        grant = self.policy.membership_grant(GROUP_X, "members", {"id": "g1", "@odata.type": "#microsoft.graph.group"})
        self.assertTrue(grant.expandable)
        self.assertEqual(grant.principal_type, ResourceType.GROUP)
        self.assertEqual(grant.expansion.entitlement_ids, ("group:g1:members",))
        self.assertEqual(grant.entitlement_id, "group:groupX:members")

    def test_user_member_is_not_expandable(self):
        grant = self.policy.membership_grant(GROUP_X, "members", {"id": "u1", "@odata.type": "#microsoft.graph.user"})
        self.assertFalse(grant.expandable)
        self.assertEqual(grant.principal, ResourceId(ResourceType.USER, "u1"))

    def test_service_principal_subtypes(self):
        cases = {
            "Application": ResourceType.ENTERPRISE_APPLICATION,
            "ManagedIdentity": ResourceType.MANAGED_IDENTITY,
        }
        for sp_type, expected in cases.items():
            with self.subTest(sp_type=sp_type):
                grant = self.policy.membership_grant(GROUP_X, "members", {
                    "id": "sp1", "@odata.type": "#microsoft.graph.servicePrincipal", "servicePrincipalType": sp_type})
                self.assertEqual(grant.principal_type, expected)

    def test_social_idp_is_dropped_and_logged_once(self):
        record = {"id": "sp1", "@odata.type": "#microsoft.graph.servicePrincipal", "servicePrincipalType": "SocialIdp"}
        with self.assertLogs(self.logger, level="WARNING") as logs:
            for _ in range(3):
                self.assertIsNone(self.policy.membership_grant(GROUP_X, "members", record))
        self.assertEqual(len(logs.records), 1)
        self.assertEqual(self.policy.dropped[("service_principal_type", "SocialIdp")], 3)

    def test_each_subtype_is_logged_separately(self):
        with self.assertLogs(self.logger, level="WARNING") as logs:
            for sp_type in ("Legacy", "SocialIdp", "", "Legacy"):
                self.policy.membership_grant(GROUP_X, "members", {
                    "id": "sp", "@odata.type": "#microsoft.graph.servicePrincipal", "servicePrincipalType": sp_type})
        self.assertEqual(len(logs.records), 3)

    def test_logged_once_state_is_per_policy(self):
        record = {"id": "sp1", "@odata.type": "#microsoft.graph.servicePrincipal", "servicePrincipalType": "Legacy"}
        self.policy.membership_grant(GROUP_X, "members", record)
        other = GrantExpansionPolicy("OtherBuilder", self.logger)
        with self.assertLogs(self.logger, level="WARNING") as logs:
            other.membership_grant(GROUP_X, "members", record)
        self.assertEqual(len(logs.records), 1)

    def test_unknown_type_is_soft_on_members_and_hard_on_owners(self):
        record = {"id": "d1", "@odata.type": "#microsoft.graph.device"}
        with self.assertLogs(self.logger, level="WARNING"):
            self.assertIsNone(self.policy.membership_grant(GROUP_X, "members", record))
        self.assertEqual(self.policy.dropped[("membership_type", "#microsoft.graph.device")], 1)
        with self.assertRaises(UnknownMembershipTypeError):
            self.policy.membership_grant(GROUP_X, "owners", record, strict_types=True)

    def test_unsupported_subtype_is_soft_even_on_owners(self):
        record = {"id": "sp1", "@odata.type": "#microsoft.graph.servicePrincipal", "servicePrincipalType": "Legacy"}
        with self.assertLogs(self.logger, level="WARNING"):
            self.assertIsNone(self.policy.membership_grant(GROUP_X, "owners", record, strict_types=True))

    def test_group_is_unknown_when_groups_are_not_accepted(self):
        record = {"id": "g9", "@odata.type": "#microsoft.graph.group"}
        with self.assertRaises(UnknownMembershipTypeError):
            self.policy.membership_grant(GROUP_X, "owners", record, strict_types=True, accept_groups=False)
        self.assertEqual(self.policy.membership_grant(GROUP_X, "owners", record).principal_id, "g9")

    def test_role_assignment_grant(self):
        resource = ResourceId(ResourceType.RESOURCE_GROUP, "rg1:abc")
        grant = self.policy.role_assignment_grant(
            resource, rbac_assignment("/subscriptions/abc/providers/Microsoft.Authorization/roleDefinitions/xyz"), "abc")
        self.assertEqual(grant.principal_id, "xyz:abc")
        self.assertEqual(grant.principal_type, ResourceType.ROLE)
        self.assertEqual(grant.entitlement_slug, "assignment")
        self.assertEqual(grant.expansion.entitlement_ids, ("role:xyz:abc:owners", "role:xyz:abc:assigned"))
        self.assertTrue(grant.expansion.shallow)

    def test_malformed_role_definition_is_a_hard_error(self):
        resource = ResourceId(ResourceType.RESOURCE_GROUP, "rg1:abc")
        for role_definition_id in ("", "/providers/Microsoft.Authorization/roleDefinitions/xyz",
                                   "/subscriptions/abc/providers/Microsoft.Authorization/roleDefinitions/"):
            with self.subTest(role_definition_id=role_definition_id):
                with self.assertRaises(MalformedUpstreamRecordError):
                    self.policy.role_assignment_grant(resource, rbac_assignment(role_definition_id), "abc")

    def test_resolved_grant(self):
        role = ResourceId(ResourceType.ROLE, "r1:abc")
        group = self.policy.resolved_grant(role, "assigned", "g1", ResolvedPrincipal(PrincipalKind.GROUP))
        self.assertEqual(group.expansion.entitlement_ids, ("group:g1:members",))
        app = self.policy.resolved_grant(role, "assigned", "sp1",
                                         ResolvedPrincipal(PrincipalKind.SERVICE_PRINCIPAL, "Application"))
        self.assertEqual(app.principal_type, ResourceType.ENTERPRISE_APPLICATION)
        self.assertIsNone(self.policy.resolved_grant(role, "assigned", "x", UNKNOWN_PRINCIPAL))

    def test_role_action_grant(self):
        account = ResourceId(ResourceType.STORAGE_ACCOUNT, "abc:rg:Microsoft.Storage:storageAccounts:sa")
        grant = self.policy.role_action_grant(account, "read", "r1:abc")
        self.assertEqual(grant.entitlement_id, "storage_account:abc:rg:Microsoft.Storage:storageAccounts:sa:read")
        self.assertEqual(grant.principal, ResourceId(ResourceType.ROLE, "r1:abc"))
        self.assertTrue(grant.expandable)


if __name__ == "__main__":
    unittest.main()
