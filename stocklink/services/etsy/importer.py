# stocklink.services.etsy.importer
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Set

from stocklink.core.enums import Platform, RecordKind
from stocklink.core.exceptions import EtsyAPIError, PersistenceError
from stocklink.models.shop import Shop
from stocklink.schemas.etsy import EtsyListing, EtsyListingInventory, EtsyProduct
from stocklink.schemas.stock import StockRecordUpdate
from stocklink.services.etsy.client import EtsyClient
from stocklink.services.shop_service import ShopService
from stocklink.services.stock_store import StockRecordStore

logger = logging.getLogger(__name__)

ETSY_PRODUCT_KEY_PREFIX = "etsy-product:"


@dataclass
class EtsySnapshot:
    """Listing inventories read during a run, kept for that run's write-back."""
    shop_id: Optional[int] = None
    listings: Dict[int, EtsyListing] = field(default_factory=dict)
    inventories: Dict[int, EtsyListingInventory] = field(default_factory=dict)
    product_keys: Dict[int, str] = field(default_factory=dict)  # product id -> record key


class EtsyImporter:
    """
    Reads the whole Etsy shop and records each product's quantity.

    Products are matched to records by SKU (after any operator SKU link),
    then by Etsy product id. Unmatched products get their own record.
    """

    def __init__(
        self,
        client: EtsyClient,
        store: StockRecordStore,
        shop_service: ShopService,
        shop: Shop,
        sku_links: Optional[Dict[int, str]] = None,
        page_size: int = 100,
    ):
        self.client = client
        self.store = store
        self.shop_service = shop_service
        self.shop = shop
        self.sku_links = sku_links or {}
        self.page_size = page_size
        self.seeded_keys: Set[str] = set()
        self.snapshot = EtsySnapshot()

    async def resolve_shop_id(self) -> int:
        if self.shop.etsy_shop_id:
            return self.shop.etsy_shop_id
        etsy_shop = await self.client.get_user_shop()
        await self.shop_service.save_etsy_shop(self.shop, etsy_shop.shop_id, etsy_shop.shop_name)
        return etsy_shop.shop_id

    async def import_listings(self) -> Dict[str, Any]:
        stats = {
            "listings": 0,
            "products": 0,
            "accepted": 0,
            "skipped": 0,
            "errors": 0,
            "created": 0,
            "seeded": 0,
        }

        shop_id = await self.resolve_shop_id()
        self.snapshot.shop_id = shop_id
        listings = await self.client.get_all_listings(shop_id, page_size=self.page_size)
        stats["listings"] = len(listings)

        for listing in listings:
            try:
                inventory = await self.client.get_listing_inventory(listing.listing_id)
            except EtsyAPIError as e:
                stats["errors"] += 1
                logger.error(f"Skipping Etsy listing {listing.listing_id}, inventory unavailable: {e}")
                continue

            self.snapshot.listings[listing.listing_id] = listing
            self.snapshot.inventories[listing.listing_id] = inventory

            for product in inventory.products:
                stats["products"] += 1
                if product.is_deleted:
                    stats["skipped"] += 1
                    continue
                try:
                    await self._ingest_product(shop_id, listing, product, stats)
                except PersistenceError as e:
                    stats["errors"] += 1
                    logger.error(f"Failed to store Etsy product {product.product_id}: {e}")
                    continue
                stats["accepted"] += 1

        logger.info(f"Ingested Etsy snapshot: {stats}")
        return stats

    async def match_key(self, product: EtsyProduct, sku: Optional[str]) -> str:
        if sku:
            # A Shopify record with the SKU wins over an earlier Etsy-only one
            record = await self.store.find_one(sku=sku, shopify_initialized=True)
            if record is None:
                record = await self.store.find_one(sku=sku)
            if record is not None:
                return record.key
        record = await self.store.find_one(etsy_product_id=product.product_id)
        if record is not None:
            return record.key
        return f"{ETSY_PRODUCT_KEY_PREFIX}{product.product_id}"

    async def _ingest_product(
        self,
        shop_id: int,
        listing: EtsyListing,
        product: EtsyProduct,
        stats: Dict[str, int],
    ) -> None:
        sku = self.sku_links.get(product.product_id) or product.sku or None
        key = await self.match_key(product, sku)
        existing = await self.store.get(key)

        update = StockRecordUpdate(
            kind=RecordKind.ETSY_PRODUCT,
            platform=Platform.ETSY,
            key=key,
            quantity=product.quantity,
            sku=sku if existing is None else None,
            etsy_product_id=product.product_id,
            etsy_listing_id=listing.listing_id,
            etsy_shop_id=shop_id,
            etsy_title=listing.title or None,
            etsy_variation=product.variation_description or None,
        )
        _, seeded = await self.store.record_observation(
            key, Platform.ETSY, update.quantity, update.record_fields()
        )
        self.snapshot.product_keys[product.product_id] = key
        if existing is None:
            stats["created"] += 1
        if seeded:
            stats["seeded"] += 1
            self.seeded_keys.add(key)
