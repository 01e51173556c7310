# stocklink.services.etsy.client

import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from stocklink.core.config import get_settings
from stocklink.core.exceptions import EtsyAPIError
from stocklink.schemas.etsy import EtsyListing, EtsyListingInventory, EtsyListingsPage, EtsyShop

logger = logging.getLogger(__name__)


def user_id_from_token(access_token: str) -> str:
    """Etsy access tokens are prefixed with the numeric id of the user they belong to."""
    return access_token.split(".", 1)[0]


class EtsyClient:
    """
    Async client for the Etsy Open API v3.

    Every call carries the app key (`x-api-key`) and the shop owner's OAuth
    token. Documentation: https://developers.etsy.com/documentation/
    """

    BASE_URL = "https://openapi.etsy.com/v3/application"

    def __init__(self, client_id: str, access_token: str, timeout: Optional[float] = None):
        if not client_id or not access_token:
            raise ValueError("An Etsy client id and access token are required")
        self.client_id = client_id
        self.access_token = access_token
        self.timeout = timeout or get_settings().HTTP_TIMEOUT_SECONDS

    def _get_headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.client_id,
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict] = None,
        params: Optional[Dict] = None,
    ) -> Dict[str, Any]:
        """
        Make a request to the Etsy API

        Raises:
            EtsyAPIError: If the API request fails
        """
        url = f"{self.BASE_URL}/{endpoint.lstrip('/')}"
        logger.debug(f"Making {method} request to {url}")
        if params:
            logger.debug(f"Params: {params}")
        if data:
            logger.debug(f"Data: {json.dumps(data)[:500]}...")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(
                    method=method,
                    url=url,
                    headers=self._get_headers(),
                    json=data,
                    params=params,
                )
        except httpx.TimeoutException as e:
            logger.error(f"Etsy request timed out: {e}")
            raise EtsyAPIError(f"Request timed out: {e}") from e
        except httpx.RequestError as e:
            logger.error(f"Etsy network error: {e}")
            raise EtsyAPIError(f"Network error: {e}") from e

        if response.status_code not in (200, 201, 202, 204):
            logger.error(f"Etsy API error {response.status_code}: {response.text}")
            raise EtsyAPIError(
                f"Request failed with status {response.status_code}: {response.text}",
                status_code=response.status_code,
            )

        if response.status_code == 204:
            return {}
        try:
            return response.json()
        except json.JSONDecodeError as e:
            raise EtsyAPIError(f"Failed to decode JSON response: {response.text[:200]}") from e

    async def get_user_shop(self, user_id: Optional[str] = None) -> EtsyShop:
        user_id = user_id or user_id_from_token(self.access_token)
        data = await self._make_request("GET", f"/users/{user_id}/shops")
        return EtsyShop.model_validate(data)

    async def get_shop_listings(self, shop_id: int, limit: int = 100, offset: int = 0) -> EtsyListingsPage:
        data = await self._make_request(
            "GET",
            f"/shops/{shop_id}/listings",
            params={"limit": limit, "offset": offset},
        )
        return EtsyListingsPage.model_validate(data)

    async def get_all_listings(self, shop_id: int, page_size: int = 100) -> List[EtsyListing]:
        """Page through every listing of the shop."""
        listings: List[EtsyListing] = []
        offset = 0
        while True:
            page = await self.get_shop_listings(shop_id, limit=page_size, offset=offset)
            listings.extend(page.results)
            offset += len(page.results)
            logger.debug(f"Fetched {offset}/{page.count} Etsy listings")
            if not page.results or offset >= page.count:
                break
        logger.info(f"Fetched {len(listings)} Etsy listings for shop {shop_id}")
        return listings

    async def get_listing_inventory(self, listing_id: int) -> EtsyListingInventory:
        data = await self._make_request("GET", f"/listings/{listing_id}/inventory")
        return EtsyListingInventory.model_validate(data)

    async def update_listing_inventory(self, listing_id: int, payload: Dict[str, Any]) -> Dict[str, Any]:
        logger.info(f"Updating Etsy inventory for listing {listing_id}")
        return await self._make_request("PUT", f"/listings/{listing_id}/inventory", data=payload)
