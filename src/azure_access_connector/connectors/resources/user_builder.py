#!/usr/bin/env python3
"""
user_builder.py

Lists Entra ID users through Microsoft Graph. Users carry no entitlements of their own.

When mailbox_settings is enabled, each user's mailboxSettings.userPurpose is fetched to
tell human accounts from room/equipment/shared mailboxes.

Author: [Your Name]
Date: [Current Date]
"""

from typing import Any, Dict, List, Optional, Tuple

from azure_access_connector.connectors.base import ResourceBuilder
from azure_access_connector.connectors.context import SyncContext
from azure_access_connector.connectors.errors import RateLimitedError, UpstreamError
from azure_access_connector.connectors.graph_client import GRAPH_SCOPES
from azure_access_connector.connectors.models import Resource, ResourceId, ResourceType

USER_SELECT = [
    "id",
    "displayName",
    "mail",
    "userPrincipalName",
    "jobTitle",
    "accountEnabled",
    "employeeType",
    "employeeHireDate",
    "employeeId",
    "department",
]

SERVICE_PURPOSES = ("room", "equipment", "shared")


def primary_email(user: Dict[str, Any]) -> str:
    email = user.get("mail") or ""
    upn = user.get("userPrincipalName") or ""
    if not email and "@" in upn:
        email = upn
    return email


class UserBuilder(ResourceBuilder):
    resource_type = ResourceType.USER

    def _user_resource(self, user: Dict[str, Any], parent_id: Optional[ResourceId],
                       account_type: str = "human") -> Resource:
        manager = user.get("manager") or {}
        profile = {
            "id": user.get("id"),
            "mail": primary_email(user),
            "displayName": user.get("displayName"),
            "jobTitle": user.get("jobTitle"),
            "userPrincipalName": user.get("userPrincipalName"),
            "accountEnabled": user.get("accountEnabled", False),
            "employeeId": user.get("employeeId"),
            "department": user.get("department"),
            "status": "enabled" if user.get("accountEnabled") else "disabled",
            "accountType": account_type,
        }
        if manager:
            profile["managerId"] = manager.get("id")
            profile["managerEmail"] = manager.get("mail")
        return Resource(
            id=ResourceId(ResourceType.USER, user["id"]),
            display_name=user.get("displayName") or user["id"],
            parent_id=parent_id,
            profile=profile,
        )

    def _account_type(self, user_id: str) -> str:
        url = self.graph_client.build_url("users", user_id, "mailboxSettings", params={"$select": "userPurpose"})
        try:
            settings = self.graph_client.query(GRAPH_SCOPES, "GET", url) or {}
        except RateLimitedError:
            raise
        except UpstreamError as e:
            self.logger.warning(f"Error fetching mailboxSettings for user {user_id}: {e}")
            return "human"
        purpose = (settings.get("userPurpose") or "user").lower()
        return "service" if purpose in SERVICE_PURPOSES else "human"

    def list(self, parent_id: Optional[ResourceId], cursor: str = "",
             ctx: Optional[SyncContext] = None) -> Tuple[List[Resource], str]:
        first_url = self.graph_client.build_url("users", params={
            "$select": ",".join(USER_SELECT),
            "$expand": "manager($select=id,employeeId,mail,displayName)",
            "$top": "999",
        })

        def translate(users: List[Dict[str, Any]]) -> List[Resource]:
            resources = []
            for user in users:
                account_type = "human"
                if self.config.get("mailbox_settings"):
                    account_type = self._account_type(user["id"])
                resources.append(self._user_resource(user, parent_id, account_type))
            return resources

        return self.list_page(self.graph_phase("users", first_url, translate), cursor, ctx)
