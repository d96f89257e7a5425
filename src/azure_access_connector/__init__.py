"""Azure Access Connector: Entra ID and Azure RBAC access sync."""

__version__ = "1.0.0"
