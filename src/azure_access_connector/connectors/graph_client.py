#!/usr/bin/env python3
"""
graph_client.py

Microsoft Graph transport for the Azure Access Connector.

It provides:
  - Token acquisition through the MSAL client credentials flow with a per-tenant token
    cache, or through an azure-identity credential when no client secret is configured.
  - Single logical requests with retry and exponential backoff for transient failures
    (connection errors, timeouts, 500/502/503).
  - Translation of HTTP failures into the connector's typed errors: 404 -> NotFoundError,
    429/504 -> RateLimitedError (with Retry-After), 401/403 -> UnauthorizedError,
    anything else -> UpstreamError. Rate limits are never slept on here.
  - The same taxonomy for the failures around a response: credential errors become
    UnauthorizedError, other transport errors and undecodable bodies UpstreamError.
  - Page fetching for Graph collections ("value" + "@odata.nextLink").

Every request carries "ConsistencyLevel: eventual", which Graph requires for the
$count/$filter combinations used when skipping on-premises groups.

Author: [Your Name]
Date: [Current Date]
"""

import datetime
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urlencode

import msal
import requests
from azure.core.exceptions import AzureError, ClientAuthenticationError

from azure_access_connector.connectors.errors import (
    NotFoundError,
    RateLimitedError,
    UnauthorizedError,
    UpstreamError,
)

logger = logging.getLogger("GraphClient")

GRAPH_HOST = "https://graph.microsoft.com"
GRAPH_SCOPES = ["https://graph.microsoft.com/.default"]

_TRANSIENT_STATUS_CODES = (500, 502, 503)

# Module-level token cache: { (tenant_id, client_id): {"access_token": str, "expires_at": datetime.datetime} }
_token_cache = {}


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def get_graph_token(tenant_config: Dict[str, Any], scopes: Optional[List[str]] = None) -> str:
    """
    Obtains an access token for Microsoft Graph using the client credentials flow.
    Tokens are cached per tenant and client until shortly before they expire.

    Parameters:
        tenant_config (dict): Configuration including azure_tenant_id, azure_client_id
            and azure_client_secret.
        scopes (list): Scopes to request (default: Graph ".default").

    Returns:
        str: The acquired access token.
    """
    tenant_id = tenant_config["azure_tenant_id"]
    client_id = tenant_config["azure_client_id"]
    cache_key = (tenant_id, client_id)
    now = _utcnow()

    token_info = _token_cache.get(cache_key)
    if token_info and now < token_info["expires_at"]:
        logger.debug(f"Using cached Graph token for tenant {tenant_id}")
        return token_info["access_token"]

    app = msal.ConfidentialClientApplication(
        client_id,
        authority=f"https://login.microsoftonline.com/{tenant_id}",
        client_credential=tenant_config["azure_client_secret"],
    )
    try:
        result = app.acquire_token_for_client(scopes=scopes or GRAPH_SCOPES)
    except requests.RequestException as e:
        raise UpstreamError(f"Token request for tenant {tenant_id} failed: {e}") from e
    if "access_token" not in result:
        error = result.get("error_description") or result.get("error")
        raise UnauthorizedError(f"Failed to obtain Graph token for tenant {tenant_id}: {error}")

    expires_at = now + datetime.timedelta(seconds=int(result.get("expires_in", 3600)) - 60)
    _token_cache[cache_key] = {"access_token": result["access_token"], "expires_at": expires_at}
    logger.debug(f"Graph token acquired for tenant {tenant_id}, expires at {expires_at.isoformat()}")
    return result["access_token"]


def _retry_after(response: requests.Response) -> int:
    try:
        return int(response.headers.get("Retry-After", 0))
    except (TypeError, ValueError):
        return 0


def raise_for_status(response: requests.Response, method: str, url: str) -> None:
    """Translate a non-2xx Graph response into the connector's error taxonomy."""
    status = response.status_code
    if status < 400:
        return
    detail = response.text[:500] if response.text else ""
    message = f"{method} {url} failed with {status}: {detail}"
    if status == 404:
        raise NotFoundError(message, status_code=status, url=url)
    if status in (429, 504):
        raise RateLimitedError(message, retry_after=_retry_after(response), status_code=status, url=url)
    if status in (401, 403):
        raise UnauthorizedError(message, status_code=status, url=url)
    raise UpstreamError(message, status_code=status, url=url)


@dataclass
class GraphPage:
    records: List[Dict[str, Any]] = field(default_factory=list)
    next_link: Optional[str] = None


class GraphClient:
    """
    Thin Microsoft Graph client.

    Expected configuration keys:
      - azure_tenant_id, azure_client_id, azure_client_secret: used for the MSAL flow.
      - graph_timeout: Request timeout in seconds (default: 30).
      - graph_max_attempts: Attempts for transient failures (default: 3).
      - graph_base_delay: Base backoff delay in seconds (default: 1.0).
    """

    def __init__(self, config: Dict[str, Any], credential=None, session: Optional[requests.Session] = None):
        self.config = config
        self.credential = credential
        self.session = session or requests.Session()
        self.timeout = float(config.get("graph_timeout", 30))
        self.max_attempts = int(config.get("graph_max_attempts", 3))
        self.base_delay = float(config.get("graph_base_delay", 1.0))

    def get_token(self, scopes: List[str]) -> str:
        if self.config.get("azure_client_secret") and self.config.get("azure_client_id"):
            return get_graph_token(self.config, scopes)
        if self.credential is None:
            raise UnauthorizedError("No Graph credential configured")
        try:
            return self.credential.get_token(*scopes).token
        except ClientAuthenticationError as e:
            raise UnauthorizedError(f"Failed to obtain Graph token: {e}") from e
        except AzureError as e:
            raise UpstreamError(f"Graph credential failed: {e}") from e

    def build_url(self, *path: str, params: Optional[Dict[str, str]] = None, beta: bool = False) -> str:
        """
        Build a Graph URL such as https://graph.microsoft.com/beta/groups/{id}/members?$top=999.
        """
        version = "beta" if beta else "v1.0"
        segments = "/".join(quote(p.strip("/"), safe="$") for p in path)
        url = f"{GRAPH_HOST}/{version}/{segments}"
        if params:
            url = f"{url}?{urlencode(params, safe='$(),=', quote_via=quote)}"
        return url

    def query(self, scopes: List[str], method: str, url: str, body: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        """
        Performs one logical Graph request.

        Parameters:
            scopes (list): Token scopes.
            method (str): HTTP method.
            url (str): Absolute Graph URL.
            body (dict): Optional JSON body.

        Returns:
            dict: Decoded JSON response, or None for empty (204) responses.

        Raises:
            NotFoundError, RateLimitedError, UnauthorizedError, UpstreamError
        """
        headers = {
            "Authorization": f"Bearer {self.get_token(scopes)}",
            "Content-Type": "application/json",
            "Accept": "application/json",
            "ConsistencyLevel": "eventual",
        }
        attempt = 0
        while True:
            attempt += 1
            try:
                response = self.session.request(method, url, headers=headers, json=body, timeout=self.timeout)
            except (requests.ConnectionError, requests.Timeout) as e:
                if attempt >= self.max_attempts:
                    raise UpstreamError(f"{method} {url} failed after {attempt} attempts: {e}", url=url) from e
                self._backoff(method, url, attempt, e)
                continue
            except requests.RequestException as e:
                raise UpstreamError(f"{method} {url} failed: {e}", url=url) from e

            if response.status_code in _TRANSIENT_STATUS_CODES and attempt < self.max_attempts:
                self._backoff(method, url, attempt, f"HTTP {response.status_code}")
                continue

            raise_for_status(response, method, url)
            if response.status_code == 204 or not response.content:
                return None
            try:
                return response.json()
            except ValueError as e:
                raise UpstreamError(f"{method} {url} returned a non-JSON body",
                                    status_code=response.status_code, url=url) from e

    def _backoff(self, method: str, url: str, attempt: int, reason) -> None:
        delay = self.base_delay * (2 ** (attempt - 1))
        logger.warning(f"Request {method} {url} failed on attempt {attempt}: {reason}. Retrying in {delay} seconds...")
        time.sleep(delay)

    def fetch_page(self, url: str, scopes: Optional[List[str]] = None) -> GraphPage:
        """Fetch one page of a Graph collection."""
        data = self.query(scopes or GRAPH_SCOPES, "GET", url) or {}
        return GraphPage(records=data.get("value", []), next_link=data.get("@odata.nextLink") or None)

    def organization_ids(self) -> List[str]:
        data = self.query(GRAPH_SCOPES, "GET", self.build_url("organization")) or {}
        return [org["id"] for org in data.get("value", []) if org.get("id")]
