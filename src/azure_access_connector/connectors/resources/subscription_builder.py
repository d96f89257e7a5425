#!/usr/bin/env python3
"""
subscription_builder.py

Lists Azure subscriptions. Subscriptions are the parents of resource groups, role
definitions and storage accounts in the sync walk.

Author: [Your Name]
Date: [Current Date]
"""

from typing import Any, Dict, List, Optional, Tuple

from azure_access_connector.connectors.base import ResourceBuilder
from azure_access_connector.connectors.context import SyncContext
from azure_access_connector.connectors.models import Resource, ResourceId, ResourceType


class SubscriptionBuilder(ResourceBuilder):
    resource_type = ResourceType.SUBSCRIPTION

    def _subscription_resource(self, subscription: Dict[str, Any], parent_id: Optional[ResourceId]) -> Resource:
        subscription_id = subscription.get("subscription_id") or ""
        return Resource(
            id=ResourceId(ResourceType.SUBSCRIPTION, subscription_id),
            display_name=subscription.get("display_name") or subscription_id,
            parent_id=parent_id,
            profile={
                "subscription_id": subscription_id,
                "tenant_id": subscription.get("tenant_id"),
                "state": subscription.get("state"),
            },
        )

    def list(self, parent_id: Optional[ResourceId], cursor: str = "",
             ctx: Optional[SyncContext] = None) -> Tuple[List[Resource], str]:
        def translate(subscriptions: List[Dict[str, Any]]) -> List[Resource]:
            resources = [self._subscription_resource(s, parent_id) for s in subscriptions]
            self.logger.debug(f"Translated {len(resources)} subscriptions")
            return resources

        phase = self.arm_phase("subscriptions", self.arm_client.list_subscriptions_page, translate)
        return self.list_page(phase, cursor, ctx)
