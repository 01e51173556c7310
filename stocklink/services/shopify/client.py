# stocklink.services.shopify.client

import json
import logging
import asyncio
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from stocklink.core.config import get_settings
from stocklink.core.exceptions import ShopifyAPIError, ShopifyGraphQLError

logger = logging.getLogger(__name__)


def numeric_id(gid: str) -> str:
    """'gid://shopify/Location/123' -> '123'. Plain ids pass through."""
    return str(gid).rsplit("/", 1)[-1]


class ShopifyClient:
    """
    Async client for the Shopify Admin API.

    GraphQL for reads (bulk operations and their status), REST for the
    inventory write-back (`inventory_levels/set.json`), which takes the numeric
    location and inventory item ids.

    GraphQL calls track the cost extension Shopify returns and back off before
    a call that would dip into the safety buffer.
    """

    def __init__(
        self,
        shop_domain: str,
        access_token: str,
        api_version: Optional[str] = None,
        timeout: Optional[float] = None,
        safety_buffer_percentage: float = 0.25,
        sleep=asyncio.sleep,
    ):
        settings = get_settings()
        if not shop_domain or not access_token:
            raise ValueError("A Shopify shop domain and admin API access token are required")

        self.shop_domain = shop_domain
        self.access_token = access_token
        self.api_version = api_version or settings.SHOPIFY_API_VERSION
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS
        self._sleep = sleep

        self.base_url = f"https://{self.shop_domain}/admin/api/{self.api_version}"
        self.graphql_url = f"{self.base_url}/graphql.json"
        self.headers = {
            "X-Shopify-Access-Token": self.access_token,
            "Content-Type": "application/json",
        }

        # Updated from the cost extension after the first call
        self.safety_buffer_percentage = safety_buffer_percentage
        self.max_available_points = 1000.0
        self.currently_available_points = self.max_available_points
        self.restore_rate = 50.0

        logger.info(f"ShopifyClient initialized for {self.shop_domain} (API version {self.api_version})")

    # --- Meta/Infrastructure ---

    @property
    def safety_buffer_points(self) -> float:
        return self.max_available_points * self.safety_buffer_percentage

    def _update_throttle_status(self, extensions: Optional[Dict]):
        if extensions and "cost" in extensions:
            throttle = extensions["cost"].get("throttleStatus", {})
            self.max_available_points = float(throttle.get("maximumAvailable", self.max_available_points))
            self.currently_available_points = float(throttle.get("currentlyAvailable", self.currently_available_points))
            self.restore_rate = float(throttle.get("restoreRate", self.restore_rate))

    async def _wait_for_capacity(self, estimated_cost: int):
        required = estimated_cost + self.safety_buffer_points
        if self.currently_available_points >= required:
            return
        points_needed = required - self.currently_available_points
        wait_time = (points_needed / self.restore_rate if self.restore_rate > 0 else 10) + 0.5
        logger.info(
            f"Shopify rate limit approaching ({self.currently_available_points:.0f} points left), "
            f"waiting {wait_time:.2f}s"
        )
        await self._sleep(wait_time)
        self.currently_available_points = min(
            self.max_available_points,
            self.currently_available_points + self.restore_rate * wait_time,
        )

    async def execute(self, query: str, variables: Optional[Dict] = None, estimated_cost: int = 10) -> Dict[str, Any]:
        """
        Run a GraphQL query and return its `data`.

        Raises:
            ShopifyGraphQLError: the response carries top level errors
            ShopifyAPIError: HTTP or network failure
        """
        await self._wait_for_capacity(estimated_cost)

        payload: Dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables

        response_data = await self._request("POST", self.graphql_url, json=payload)

        self._update_throttle_status(response_data.get("extensions"))
        if response_data.get("errors"):
            raise ShopifyGraphQLError(response_data["errors"])
        return response_data.get("data") or {}

    async def _request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        logger.debug(f"Making {method} request to {url}")
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(method, url, headers=self.headers, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"Shopify request timed out: {e}")
            raise ShopifyAPIError(f"Request timed out: {e}") from e
        except httpx.RequestError as e:
            logger.error(f"Shopify network error: {e}")
            raise ShopifyAPIError(f"Network error: {e}") from e

        if response.status_code == 429:
            # Force the next GraphQL call through the capacity wait
            self.currently_available_points = 0
            retry_after = response.headers.get("Retry-After")
            logger.warning(f"Shopify returned 429 Too Many Requests (Retry-After: {retry_after})")

        if response.status_code not in (200, 201, 202, 204):
            logger.error(f"Shopify API error {response.status_code}: {response.text}")
            raise ShopifyAPIError(
                f"Request failed with status {response.status_code}: {response.text}",
                status_code=response.status_code,
            )

        if response.status_code == 204:
            return {}
        try:
            return response.json()
        except json.JSONDecodeError as e:
            raise ShopifyAPIError(f"Failed to decode JSON response: {response.text[:200]}") from e

    # --- Bulk operations ---

    async def run_bulk_query(self, bulk_query: str) -> Dict[str, Any]:
        """Submit a bulkOperationRunQuery mutation; returns the mutation payload."""
        mutation = """
        mutation bulkOperationRunQuery($query: String!) {
          bulkOperationRunQuery(query: $query) {
            bulkOperation { id status }
            userErrors { field message }
          }
        }
        """
        data = await self.execute(mutation, {"query": bulk_query})
        return data.get("bulkOperationRunQuery") or {}

    async def get_bulk_operation(self, operation_id: str) -> Optional[Dict[str, Any]]:
        query = """
        query bulkOperation($id: ID!) {
          node(id: $id) {
            ... on BulkOperation {
              id
              status
              errorCode
              objectCount
              url
              partialDataUrl
            }
          }
        }
        """
        data = await self.execute(query, {"id": operation_id}, estimated_cost=1)
        return data.get("node")

    async def stream_bulk_result(self, url: str) -> AsyncIterator[str]:
        """Yield the lines of a bulk export result file without loading it whole."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                async with client.stream("GET", url) as response:
                    if response.status_code != 200:
                        await response.aread()
                        raise ShopifyAPIError(
                            f"Failed to download bulk result ({response.status_code})",
                            status_code=response.status_code,
                        )
                    async for line in response.aiter_lines():
                        yield line
        except httpx.RequestError as e:
            logger.error(f"Network error downloading bulk result: {e}")
            raise ShopifyAPIError(f"Network error downloading bulk result: {e}") from e

    # --- Inventory write-back (REST) ---

    async def set_inventory_level(self, location_id: str, inventory_item_id: str, available: int) -> Dict[str, Any]:
        payload = {
            "location_id": int(numeric_id(location_id)),
            "inventory_item_id": int(numeric_id(inventory_item_id)),
            "available": available,
        }
        logger.debug(f"Setting Shopify inventory: {payload}")
        return await self._request("POST", f"{self.base_url}/inventory_levels/set.json", json=payload)
