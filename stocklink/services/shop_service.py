# stocklink/services/shop_service.py
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from stocklink.core.exceptions import PersistenceError, TokenError
from stocklink.models.shop import Shop

logger = logging.getLogger(__name__)


class ShopService:
    """Reads and updates the per-shop connection state (tokens, Etsy shop)."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_shop(self, shop_domain: str) -> Optional[Shop]:
        try:
            result = await self.session.execute(select(Shop).where(Shop.shop_domain == shop_domain))
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load shop {shop_domain}: {e}")
            raise PersistenceError(f"Failed to load shop {shop_domain}: {e}") from e

    async def save_etsy_token(
        self,
        shop: Shop,
        access_token: str,
        refresh_token: str,
        expires: datetime,
    ) -> Shop:
        shop.etsy_access_token = access_token
        shop.etsy_refresh_token = refresh_token
        shop.etsy_token_expires = expires
        # The authorization code is single use; later tokens come from the refresh token
        shop.etsy_onboarded = True
        shop.etsy_code_reference = None
        shop.etsy_code_verifier = None
        await self._commit(f"Failed to save Etsy token for {shop.shop_domain}")
        logger.info(f"Saved Etsy token for {shop.shop_domain} (expires {expires})")
        return shop

    async def save_etsy_shop(self, shop: Shop, etsy_shop_id: int, etsy_shop_name: str) -> Shop:
        shop.etsy_shop_id = etsy_shop_id
        shop.etsy_shop_name = etsy_shop_name
        await self._commit(f"Failed to save Etsy shop for {shop.shop_domain}")
        logger.info(f"Linked Etsy shop {etsy_shop_name} ({etsy_shop_id}) to {shop.shop_domain}")
        return shop

    async def _commit(self, message: str) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"{message}: {e}")
            raise PersistenceError(f"{message}: {e}") from e


def resolve_shopify_token(shop: Optional[Shop], fallback: Optional[str]) -> str:
    """Shopify admin token for a shop: the stored one, else the configured fallback."""
    token = (shop.shopify_access_token if shop else None) or fallback
    if not token:
        raise TokenError("No Shopify access token for shop")
    return token
