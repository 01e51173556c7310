# stocklink.services.shopify.importer
import json
import logging
from typing import Any, AsyncIterator, Dict, Optional, Set

from pydantic import ValidationError

from stocklink.core.enums import Platform, RecordKind
from stocklink.core.exceptions import PersistenceError, SnapshotParseError
from stocklink.schemas.shopify import (
    INVENTORY_LEVEL_GID_PREFIX,
    PRODUCT_VARIANT_GID_PREFIX,
    InventoryLevelLine,
    ProductVariantLine,
)
from stocklink.schemas.stock import StockRecordUpdate
from stocklink.services.shopify.bulk import INVENTORY_LEVELS_QUERY, PRODUCT_VARIANTS_QUERY, BulkJobPoller
from stocklink.services.shopify.client import ShopifyClient
from stocklink.services.stock_store import StockRecordStore

logger = logging.getLogger(__name__)


def _new_stats() -> Dict[str, int]:
    return {
        "lines": 0,
        "accepted": 0,
        "ignored": 0,
        "malformed": 0,
        "errors": 0,
        "created": 0,
        "seeded": 0,
    }


class SnapshotIngester:
    """
    Turns a bulk export result into store updates, one line at a time.

    Lines are classified by the GID type of their `id`. Parent rows
    (InventoryItem, Product) only give the tree its shape and are skipped.
    """

    def __init__(self, client: ShopifyClient, store: StockRecordStore, location_gid: Optional[str] = None):
        self.client = client
        self.store = store
        self.location_gid = location_gid
        self.seeded_keys: Set[str] = set()

    def parse_line(self, line: str, record_kind: RecordKind) -> Optional[StockRecordUpdate]:
        """
        Normalize one JSONL line.

        Returns None for lines that are valid but not part of this snapshot.
        Raises SnapshotParseError for lines that cannot be understood.
        """
        try:
            raw = json.loads(line)
        except json.JSONDecodeError as e:
            raise SnapshotParseError(f"Invalid JSON: {e}") from e
        if not isinstance(raw, dict) or not isinstance(raw.get("id"), str):
            raise SnapshotParseError("Line has no string id")

        gid = raw["id"]
        try:
            if gid.startswith(INVENTORY_LEVEL_GID_PREFIX):
                if record_kind != RecordKind.INVENTORY_LEVEL:
                    return None
                return self._inventory_level_update(InventoryLevelLine.model_validate(raw))
            if gid.startswith(PRODUCT_VARIANT_GID_PREFIX):
                if record_kind != RecordKind.PRODUCT_VARIANT:
                    return None
                return self._product_variant_update(ProductVariantLine.model_validate(raw))
        except ValidationError as e:
            raise SnapshotParseError(f"Invalid {gid}: {e.error_count()} validation errors") from e
        return None

    def _inventory_level_update(self, level: InventoryLevelLine) -> Optional[StockRecordUpdate]:
        if not level.location_id:
            return None
        if self.location_gid and level.location_id != self.location_gid:
            return None
        quantity = level.available_quantity
        if quantity is None:
            raise SnapshotParseError(f"{level.id} has no available quantity")
        return StockRecordUpdate(
            kind=RecordKind.INVENTORY_LEVEL,
            platform=Platform.SHOPIFY,
            key=level.parent_id,
            quantity=quantity,
            shopify_location_id=level.location_id,
        )

    def _product_variant_update(self, variant: ProductVariantLine) -> Optional[StockRecordUpdate]:
        if not variant.is_platform_managed:
            return None
        product = variant.product
        return StockRecordUpdate(
            kind=RecordKind.PRODUCT_VARIANT,
            platform=Platform.SHOPIFY,
            key=variant.inventory_item.id,
            sku=variant.sku or None,
            shopify_variant_id=variant.id,
            shopify_variant_name=variant.display_name,
            shopify_parent_id=(product.id if product else None) or variant.parent_id,
            shopify_parent_title=product.title if product and product.title else None,
        )

    async def ingest(self, result_url: Optional[str], record_kind: RecordKind) -> Dict[str, int]:
        stats = _new_stats()
        if not result_url:
            logger.info(f"Empty {record_kind.value} snapshot, nothing to ingest")
            return stats
        await self.ingest_lines(self.client.stream_bulk_result(result_url), record_kind, stats)
        return stats

    async def ingest_lines(
        self,
        lines: AsyncIterator[str],
        record_kind: RecordKind,
        stats: Optional[Dict[str, int]] = None,
    ) -> Dict[str, int]:
        stats = stats if stats is not None else _new_stats()

        async for line in lines:
            if not line.strip():
                continue
            stats["lines"] += 1
            try:
                update = self.parse_line(line, record_kind)
            except SnapshotParseError as e:
                stats["malformed"] += 1
                logger.warning(f"Skipping malformed {record_kind.value} line {stats['lines']}: {e}")
                continue

            if update is None:
                stats["ignored"] += 1
                continue

            try:
                await self.apply_update(update, stats)
            except PersistenceError as e:
                stats["errors"] += 1
                logger.error(f"Failed to store {update.key}: {e}")
                continue
            stats["accepted"] += 1

        logger.info(f"Ingested {record_kind.value} snapshot: {stats}")
        return stats

    async def apply_update(self, update: StockRecordUpdate, stats: Dict[str, int]) -> None:
        if update.quantity is None:
            # Descriptor only; leaves quantities and baselines alone
            _, created = await self.store.upsert_merge(update.key, update.record_fields())
            if created:
                stats["created"] += 1
            return

        existed = await self.store.get(update.key) is not None
        _, seeded = await self.store.record_observation(
            update.key, update.platform, update.quantity, update.record_fields()
        )
        if not existed:
            stats["created"] += 1
        if seeded:
            stats["seeded"] += 1
            self.seeded_keys.add(update.key)


class ShopifyImporter:
    """Pulls both Shopify snapshots into the store through bulk exports."""

    def __init__(
        self,
        client: ShopifyClient,
        store: StockRecordStore,
        poller: Optional[BulkJobPoller] = None,
        location_gid: Optional[str] = None,
    ):
        self.client = client
        self.store = store
        self.poller = poller or BulkJobPoller(client)
        self.ingester = SnapshotIngester(client, store, location_gid=location_gid)

    @property
    def seeded_keys(self) -> Set[str]:
        return self.ingester.seeded_keys

    async def import_inventory_levels(self) -> Dict[str, Any]:
        """Stock quantities per inventory item at the synced location."""
        logger.info("Starting Shopify inventory level export")
        result_url = await self.poller.run(INVENTORY_LEVELS_QUERY)
        return await self.ingester.ingest(result_url, RecordKind.INVENTORY_LEVEL)

    async def import_product_variants(self) -> Dict[str, Any]:
        """SKUs and names for every Shopify-managed variant."""
        logger.info("Starting Shopify product variant export")
        result_url = await self.poller.run(PRODUCT_VARIANTS_QUERY)
        return await self.ingester.ingest(result_url, RecordKind.PRODUCT_VARIANT)
