# stocklink.services.etsy.auth
"""
Etsy OAuth2 token handling.

The first token for a shop is obtained with the authorization code and PKCE
verifier captured during onboarding; every later token comes from the
refresh token. Tokens are persisted on the Shop record and refreshed once
fewer than ETSY_TOKEN_REFRESH_MARGIN_MINUTES remain.
"""
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict

import httpx
from pydantic import ValidationError

from stocklink.core.exceptions import PersistenceError, TokenError
from stocklink.models.shop import Shop
from stocklink.models.stock_record import utc_now
from stocklink.schemas.etsy import EtsyTokenResponse
from stocklink.services.shop_service import ShopService

logger = logging.getLogger(__name__)

TOKEN_URL = "https://api.etsy.com/v3/public/oauth/token"


class EtsyAuthManager:

    def __init__(
        self,
        shop_service: ShopService,
        client_id: str,
        redirect_uri: str = "",
        refresh_margin_minutes: int = 10,
        timeout: float = 30.0,
        now: Callable[[], datetime] = utc_now,
    ):
        self.shop_service = shop_service
        self.client_id = client_id
        self.redirect_uri = redirect_uri
        self.refresh_margin = timedelta(minutes=refresh_margin_minutes)
        self.timeout = timeout
        self._now = now

    def needs_refresh(self, shop: Shop) -> bool:
        if not shop.etsy_access_token or not shop.etsy_token_expires:
            return True
        return shop.etsy_token_expires - self.refresh_margin <= self._now()

    def _grant_payload(self, shop: Shop) -> Dict[str, str]:
        if shop.etsy_onboarded and shop.etsy_refresh_token:
            return {
                "grant_type": "refresh_token",
                "client_id": self.client_id,
                "refresh_token": shop.etsy_refresh_token,
            }
        if shop.etsy_code_reference and shop.etsy_code_verifier:
            return {
                "grant_type": "authorization_code",
                "client_id": self.client_id,
                "redirect_uri": self.redirect_uri,
                "code": shop.etsy_code_reference,
                "code_verifier": shop.etsy_code_verifier,
            }
        raise TokenError(f"Shop {shop.shop_domain} has neither an Etsy refresh token nor an authorization code")

    async def get_access_token(self, shop: Shop) -> str:
        """Return a usable Etsy access token for the shop, refreshing it when close to expiry."""
        if not self.needs_refresh(shop):
            logger.debug(f"Using stored Etsy token for {shop.shop_domain} (expires {shop.etsy_token_expires})")
            return shop.etsy_access_token

        if not self.client_id:
            raise TokenError("ETSY_CLIENT_ID is not configured")

        payload = self._grant_payload(shop)
        logger.info(f"Requesting Etsy token for {shop.shop_domain} ({payload['grant_type']})")
        token = await self._request_token(payload)

        expires = self._now() + timedelta(seconds=token.expires_in)
        try:
            await self.shop_service.save_etsy_token(shop, token.access_token, token.refresh_token, expires)
        except PersistenceError as e:
            raise TokenError(f"Could not persist Etsy token for {shop.shop_domain}: {e}") from e
        return token.access_token

    async def _request_token(self, payload: Dict[str, str]) -> EtsyTokenResponse:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                # httpx form-encodes `data`
                response = await client.post(TOKEN_URL, data=payload)
        except httpx.RequestError as e:
            logger.error(f"Network error requesting Etsy token: {e}")
            raise TokenError(f"Network error requesting Etsy token: {e}") from e

        if response.status_code != 200:
            logger.error(f"Etsy token request failed ({response.status_code})")
            logger.debug(response.text)
            raise TokenError(f"Etsy token request failed with status {response.status_code}")

        try:
            return EtsyTokenResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise TokenError(f"Unexpected Etsy token response: {e}") from e

