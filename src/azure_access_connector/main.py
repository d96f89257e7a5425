#!/usr/bin/env python3
"""
main.py

Entry point of the Azure Access Connector. One sync run performs the following steps:
  1. Loads the configuration from YAML (overridable through environment variables).
  2. Sets up logging for every connector component.
  3. Builds the Connector (credentials, Graph and ARM clients, per-sync caches) and
     validates the credentials.
  4. Lists every resource type, walking the parent relations
     (subscriptions -> resource groups / roles / storage accounts -> containers).
  5. Collects entitlements and drains grants for every resource.
  6. Writes resources, entitlements, grants and a summary to a JSON document.

Different resource types are synced in parallel on a ThreadPoolExecutor; the pages
of a single resource are always requested sequentially.

Author: [Your Name]
Date: [Current Date]
"""

import argparse
import collections
import json
import logging
import sys
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional, Tuple

from azure_access_connector.common import config_loader
from azure_access_connector.common.logger import configure_logging
from azure_access_connector.connectors.base import ResourceBuilder
from azure_access_connector.connectors.connector import Connector
from azure_access_connector.connectors.context import SyncContext
from azure_access_connector.connectors.errors import ConnectorError, SyncCancelledError, SyncFailedError
from azure_access_connector.connectors.models import Resource, ResourceId, ResourceType

logger = logging.getLogger("SyncDriver")

# Resource types listed together; a wave only starts once its parents are listed.
LIST_WAVES = [
    [ResourceType.USER, ResourceType.GROUP, ResourceType.ENTERPRISE_APPLICATION,
     ResourceType.MANAGED_IDENTITY, ResourceType.TENANT, ResourceType.SUBSCRIPTION],
    [ResourceType.RESOURCE_GROUP, ResourceType.ROLE, ResourceType.STORAGE_ACCOUNT],
    [ResourceType.CONTAINER],
]

PARENT_TYPES = {
    ResourceType.RESOURCE_GROUP: ResourceType.SUBSCRIPTION,
    ResourceType.ROLE: ResourceType.SUBSCRIPTION,
    ResourceType.STORAGE_ACCOUNT: ResourceType.SUBSCRIPTION,
    ResourceType.CONTAINER: ResourceType.STORAGE_ACCOUNT,
}


def drain(call: Callable[[str], Tuple[List[Any], str]]) -> List[Any]:
    """Call a paged operation with the returned cursor until it comes back empty."""
    items: List[Any] = []
    cursor = ""
    while True:
        page, cursor = call(cursor)
        items.extend(page)
        if not cursor:
            return items


class SyncDriver:
    """
    Runs one full sync through the connector's resource builders.

    Parameters:
        connector (Connector): The connector to sync.
        config (dict): Validated configuration (max_workers).
        ctx (SyncContext): Cancellation context shared with every builder call.
    """

    def __init__(self, connector: Connector, config: Dict[str, Any], ctx: Optional[SyncContext] = None):
        self.connector = connector
        self.config = config
        self.ctx = ctx or SyncContext()
        self.max_workers = int(config_loader.get_config_value(config, "max_workers", 4))
        self.builders: Dict[ResourceType, ResourceBuilder] = {
            builder.resource_type: builder for builder in connector.resource_builders()
        }
        self.resources: Dict[ResourceType, List[Resource]] = collections.OrderedDict()

    def _parents(self, resource_type: ResourceType) -> List[Optional[ResourceId]]:
        parent_type = PARENT_TYPES.get(resource_type)
        if parent_type is None:
            return [None]
        return [r.id for r in self.resources.get(parent_type, [])]

    def _guarded(self, resource_type: ResourceType, work: Callable[[], Any]) -> Any:
        try:
            return work()
        except SyncCancelledError:
            raise
        except ConnectorError as e:
            self.ctx.cancel()
            logger.error("Sync of %s failed in phase %s: %s", resource_type.value, e.phase or "list", e)
            raise SyncFailedError(resource_type.value, e, e.phase) from e
        except Exception:
            self.ctx.cancel()
            raise

    def _list_type(self, resource_type: ResourceType) -> List[Resource]:
        builder = self.builders[resource_type]
        resources: List[Resource] = []
        for parent_id in self._parents(resource_type):
            resources.extend(drain(lambda cursor: builder.list(parent_id, cursor, self.ctx)))
        logger.info(f"Listed {len(resources)} {resource_type.value} resources")
        return resources

    def _access_for_type(self, resource_type: ResourceType) -> Tuple[list, list]:
        builder = self.builders[resource_type]
        entitlements, grants = [], []
        for resource in self.resources.get(resource_type, []):
            entitlements.extend(builder.entitlements(resource))
            grants.extend(drain(lambda cursor: builder.grants(resource, cursor, self.ctx)))
        logger.info(f"Collected {len(entitlements)} entitlements and {len(grants)} grants "
                    f"for {resource_type.value}")
        return entitlements, grants

    def _run_parallel(self, resource_types: List[ResourceType], work: Callable[[ResourceType], Any]) -> Dict[ResourceType, Any]:
        """
        Run work(resource_type) for each type on the pool. The first hard failure
        cancels the context and is re-raised once every worker has returned.
        """
        results: Dict[ResourceType, Any] = {}
        failure: Optional[SyncFailedError] = None
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {rt: executor.submit(self._guarded, rt, lambda rt=rt: work(rt)) for rt in resource_types}
            for resource_type, future in futures.items():
                try:
                    results[resource_type] = future.result()
                except SyncFailedError as e:
                    failure = failure or e
                except SyncCancelledError:
                    if failure is None and not self.ctx.cancelled:
                        raise
        if failure is not None:
            raise failure
        self.ctx.raise_if_cancelled()
        return results

    def soft_drops(self) -> Dict[str, Dict[str, int]]:
        """Aggregated drop counts per builder, e.g. {"GroupBuilder": {"service_principal_type:SocialIdp": 3}}."""
        drops: Dict[str, Dict[str, int]] = {}
        for builder in self.builders.values():
            if builder.policy.dropped:
                drops[builder.__class__.__name__] = {
                    f"{kind}:{value}": count for (kind, value), count in sorted(builder.policy.dropped.items())
                }
        return drops

    def run(self) -> Dict[str, Any]:
        """
        Run the sync and return the output document.

        Raises:
            SyncFailedError: A resource type failed with a hard error.
            SyncCancelledError: The context was cancelled from outside.
        """
        start_time = time.time()
        for wave in LIST_WAVES:
            wave_types = [rt for rt in wave if rt in self.builders]
            self.resources.update(self._run_parallel(wave_types, self._list_type))

        access = self._run_parallel(list(self.resources), self._access_for_type)

        resources = [r for rt in self.resources for r in self.resources[rt]]
        entitlements = [e for rt in access for e in access[rt][0]]
        grants = [g for rt in access for g in access[rt][1]]
        summary = {
            "resources": {rt.value: len(items) for rt, items in self.resources.items()},
            "entitlements": len(entitlements),
            "grants": len(grants),
            "soft_drops": self.soft_drops(),
            "elapsed_seconds": round(time.time() - start_time, 2),
        }
        logger.info(f"Sync finished: {len(resources)} resources, {len(entitlements)} entitlements, "
                    f"{len(grants)} grants in {summary['elapsed_seconds']} seconds")
        if summary["soft_drops"]:
            logger.warning("Records dropped during sync: %s", summary["soft_drops"])
        return {
            "metadata": self.connector.metadata(),
            "resources": [r.to_dict() for r in resources],
            "entitlements": [e.to_dict() for e in entitlements],
            "grants": [g.to_dict() for g in grants],
            "summary": summary,
        }


def write_output(document: Dict[str, Any], output_path: str) -> None:
    with open(output_path, "w") as file:
        json.dump(document, file, indent=2, sort_keys=False)
    logger.info(f"Sync output written to {output_path}")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="azure-access-connector",
        description="Sync Entra ID identities and Azure RBAC access into a JSON document.",
    )
    parser.add_argument("--config", help="Path to the YAML configuration file "
                                         "(default: CONFIG_PATH or config/connector_config.yml)")
    parser.add_argument("--output", help="Path of the JSON output file (overrides output_path)")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        config = config_loader.load_config(args.config)
    except (FileNotFoundError, ConnectorError) as e:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        logger.error(f"Failed to load configuration: {e}")
        return 1

    sync_id = uuid.uuid4().hex
    config["logging"].setdefault("extra_fields", {})["sync_id"] = sync_id
    configure_logging(config)
    logger.info(f"Starting sync {sync_id}")

    output_path = args.output or config_loader.get_config_value(config, "output_path", "sync_output.json")
    try:
        connector = Connector.from_config(config)
        connector.validate()
        document = SyncDriver(connector, config).run()
    except SyncFailedError as e:
        logger.error(f"Sync {sync_id} failed for resource type {e.resource_type} (phase {e.phase or 'list'}): {e.cause}")
        return 1
    except ConnectorError as e:
        logger.error(f"Sync {sync_id} failed: {e}")
        return 1
    except Exception:
        logger.exception(f"Sync {sync_id} failed with an unexpected error")
        return 1

    document["summary"]["sync_id"] = sync_id
    write_output(document, output_path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
