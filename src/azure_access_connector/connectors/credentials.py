#!/usr/bin/env python3
"""
credentials.py

Selects the azure-identity credential used for ARM (and for Graph when no client
secret is configured):

  - use_cli_credentials          -> AzureCliCredential
  - azure_client_id + secret     -> ClientSecretCredential
  - otherwise                    -> DefaultAzureCredential

Author: [Your Name]
Date: [Current Date]
"""

import logging
from typing import Any, Dict

from azure.identity import AzureCliCredential, ClientSecretCredential, DefaultAzureCredential

from azure_access_connector.connectors.errors import ConfigurationError

logger = logging.getLogger("Credentials")


def build_credential(config: Dict[str, Any]):
    tenant_id = config.get("azure_tenant_id") or None
    client_id = config.get("azure_client_id")
    client_secret = config.get("azure_client_secret")

    if config.get("use_cli_credentials"):
        logger.info("Using Azure CLI credentials")
        return AzureCliCredential(tenant_id=tenant_id)

    if client_id and client_secret:
        if not tenant_id:
            raise ConfigurationError("azure_tenant_id is required with azure_client_id/azure_client_secret")
        logger.info("Using client secret credentials for client %s", client_id)
        return ClientSecretCredential(tenant_id=tenant_id, client_id=client_id, client_secret=client_secret)

    logger.info("Using DefaultAzureCredential")
    return DefaultAzureCredential()
