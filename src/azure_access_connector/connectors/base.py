#!/usr/bin/env python3
"""
base.py

Defines the ResourceBuilder abstract base class shared by every resource type synced
by the Azure Access Connector. Each builder inherits from this class and implements
list(); builders that expose entitlements, grants or provisioning override the
corresponding methods.

Key Features:
    - A common interface: list(), entitlements(), grants(), grant() and revoke().
    - One GrantExpansionPolicy per builder instance, so "logged once" warnings are
      scoped to the builder for the sync run.
    - A MultiPhaseGrantsOrchestrator configured from the connector settings
      (small_page_heuristic / small_page_threshold).
    - Asynchronous wrappers async_list() / async_grants() for use from asyncio.
    - Helpers for Graph collection phases (next-link pagination).

Author: [Your Name]
Date: [Current Date]
"""

import asyncio
import functools
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from azure_access_connector.connectors.context import SyncContext
from azure_access_connector.connectors.errors import MalformedCursorError
from azure_access_connector.connectors.grant_policy import GrantExpansionPolicy
from azure_access_connector.connectors.models import Entitlement, GrantRecord, Resource, ResourceId, ResourceType
from azure_access_connector.connectors.orchestrator import DEFAULT_SMALL_PAGE_THRESHOLD, MultiPhaseGrantsOrchestrator, Phase, PhasePage


class ResourceBuilder(ABC):
    """
    Abstract base class for resource builders.

    Attributes:
        connector: The owning Connector (graph_client, arm_client, caches, settings).
        logger (logging.Logger): Logger named after the builder class.
        policy (GrantExpansionPolicy): Grant translation policy owned by this builder.
        orchestrator (MultiPhaseGrantsOrchestrator): Drives the cursor phase stack.
    """

    resource_type: ResourceType = None

    def __init__(self, connector):
        self.connector = connector
        self.config: Dict[str, Any] = getattr(connector, "config", {}) or {}
        self.logger = logging.getLogger(self.__class__.__name__)
        self.policy = GrantExpansionPolicy(self.__class__.__name__, self.logger)
        self.orchestrator = MultiPhaseGrantsOrchestrator(
            small_page_heuristic=self.config.get("small_page_heuristic", True),
            small_page_threshold=self.config.get("small_page_threshold", DEFAULT_SMALL_PAGE_THRESHOLD),
            label=self.__class__.__name__,
        )

    @property
    def graph_client(self):
        return self.connector.graph_client

    @property
    def arm_client(self):
        return self.connector.arm_client

    @abstractmethod
    def list(self, parent_id: Optional[ResourceId], cursor: str = "",
             ctx: Optional[SyncContext] = None) -> Tuple[List[Resource], str]:
        """
        Return one page of resources and the cursor for the next page ("" when done).
        """
        raise NotImplementedError("list() must be implemented by the subclass.")

    def entitlements(self, resource: Resource) -> List[Entitlement]:
        return []

    def grants(self, resource: Resource, cursor: str = "",
               ctx: Optional[SyncContext] = None) -> Tuple[List[GrantRecord], str]:
        """Return one page of grants and the cursor for the next page ("" when done)."""
        return [], ""

    def grant(self, principal: Resource, entitlement: Entitlement) -> None:
        raise NotImplementedError(f"{self.__class__.__name__} does not support provisioning.")

    def revoke(self, grant: GrantRecord) -> None:
        raise NotImplementedError(f"{self.__class__.__name__} does not support provisioning.")

    async def async_list(self, parent_id: Optional[ResourceId], cursor: str = "",
                         ctx: Optional[SyncContext] = None) -> Tuple[List[Resource], str]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(self.list, parent_id, cursor, ctx))

    async def async_grants(self, resource: Resource, cursor: str = "",
                           ctx: Optional[SyncContext] = None) -> Tuple[List[GrantRecord], str]:
        """
        Asynchronous wrapper for grants(). Cancelling the awaiting task leaves the
        caller holding its original cursor.
        """
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(self.grants, resource, cursor, ctx))

    def graph_phase(self, tag: str, first_url: str, translate=None, not_found_is_empty: bool = True) -> Phase:
        """
        A phase backed by a Graph collection: the continuation token is the next link,
        the first page is first_url.
        """

        def fetch(token: Optional[str]) -> PhasePage:
            page = self.graph_client.fetch_page(token or first_url)
            return PhasePage(page.records, page.next_link)

        return Phase(tag=tag, fetch=fetch, translate=translate or (lambda records: list(records)),
                     not_found_is_empty=not_found_is_empty)

    def arm_phase(self, tag: str, fetch_page, translate=None, not_found_is_empty: bool = True) -> Phase:
        """
        A phase backed by an ARM pager; fetch_page(token) must return an ArmPage.
        ARM page sizes vary, so the small-page heuristic never applies.
        """

        def fetch(token: Optional[str]) -> PhasePage:
            page = fetch_page(token)
            return PhasePage(page.records, page.continuation_token)

        return Phase(tag=tag, fetch=fetch, translate=translate or (lambda records: list(records)),
                     not_found_is_empty=not_found_is_empty, short_page_exit=False)

    def marker_phase(self, tag: str, load_all, translate, page_size: Optional[int] = None) -> Phase:
        """
        A phase over an in-memory list (usually served from a cache) paged by an
        application-level offset marker.
        """
        size = int(page_size or self.config.get("page_size", 100))

        def fetch(token: Optional[str]) -> PhasePage:
            records = load_all()
            try:
                offset = int(token) if token else 0
            except ValueError:
                raise MalformedCursorError(f"invalid page marker {token!r} for phase {tag}")
            chunk = records[offset:offset + size]
            next_offset = offset + size
            return PhasePage(chunk, str(next_offset) if next_offset < len(records) else None)

        return Phase(tag=tag, fetch=fetch, translate=translate, short_page_exit=False)

    def list_page(self, phase: Phase, cursor: str, ctx: Optional[SyncContext]) -> Tuple[List[Resource], str]:
        """Run a single-phase List through the orchestrator."""
        return self.orchestrator.run([phase], cursor, ctx)
