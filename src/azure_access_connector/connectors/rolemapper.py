#!/usr/bin/env python3
"""
rolemapper.py

Maps Azure RBAC role definition permissions (Actions / NotActions) onto the small
set of actions the connector exposes as entitlements on storage accounts and blob
containers ("read", "write", "delete").

Author: [Your Name]
Date: [Current Date]
"""

from typing import Dict, Iterable, List, Optional


class RoleActionMapper:
    """
    Parameters:
        prefix (str): Provider operation prefix, e.g. "Microsoft.Storage/storageAccounts/".
        values (list): Action names exposed under that prefix.
    """

    def __init__(self, prefix: str, values: Iterable[str]):
        self.prefix = prefix
        self._role_to_value: Dict[str, str] = {prefix + value: value for value in values}

    def _all_actions(self) -> List[str]:
        return list(self._role_to_value.values())

    def role_action(self, action: str) -> Optional[List[str]]:
        """
        Map one RBAC operation string to the exposed actions it covers.

        Returns:
            list: The covered actions; [] when the operation is outside this prefix;
            None when it is under the prefix but not an exposed action (e.g. listKeys).
        """
        if action == "*":
            return self._all_actions()

        if action.startswith("*/"):
            value = action[len("*/"):]
            return [value] if value in self._role_to_value.values() else []

        if not action.startswith(self.prefix):
            return []

        if action[len(self.prefix):] == "*":
            return self._all_actions()

        if action in self._role_to_value:
            return [self._role_to_value[action]]
        return None

    def map_permissions(self, permissions: Iterable[Dict[str, List[str]]]) -> List[str]:
        """
        Compute the exposed actions granted by a role definition's permission blocks.
        NotActions are subtracted from Actions across all blocks.
        """
        actions = set()
        not_actions = set()
        for permission in permissions:
            for action in permission.get("actions") or []:
                actions.update(self.role_action(action) or [])
            for action in permission.get("not_actions") or []:
                not_actions.update(self.role_action(action) or [])
        return sorted(actions - not_actions)

    def actions(self) -> Dict[str, str]:
        return dict(self._role_to_value)

    def values(self) -> List[str]:
        return self._all_actions()


STORAGE_ACCOUNT_PERMISSIONS = RoleActionMapper(
    "Microsoft.Storage/storageAccounts/",
    ["read", "write", "delete"],
)

CONTAINER_PERMISSIONS = RoleActionMapper(
    "Microsoft.Storage/storageAccounts/blobServices/containers/",
    ["read", "write", "delete"],
)


if __name__ == "__main__":
    demo_permissions = [{"actions": ["Microsoft.Storage/storageAccounts/*"],
                         "not_actions": ["Microsoft.Storage/storageAccounts/delete"]}]
    print("Storage account actions:", STORAGE_ACCOUNT_PERMISSIONS.map_permissions(demo_permissions))
