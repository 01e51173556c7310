# stocklink/services/stock_mutator.py
"""
Writes reconciled quantities back to the platforms.

`StockMutator` turns deltas and overrides into target quantities, hands them
to the platform's `StockWriter` and records the resulting baselines. Writers
never raise for a single item; they report per-key failures so one bad item
does not stop the batch.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Set

from stocklink.core.enums import Platform
from stocklink.core.exceptions import EtsyAPIError, PersistenceError, ShopifyAPIError
from stocklink.models.stock_record import StockRecord
from stocklink.schemas.etsy import EtsyListingInventory
from stocklink.schemas.stock import ApplyFailure, ApplyResult
from stocklink.services.etsy.client import EtsyClient
from stocklink.services.etsy.importer import EtsySnapshot
from stocklink.services.shopify.client import ShopifyClient
from stocklink.services.stock_store import StockRecordStore

logger = logging.getLogger(__name__)


class StockWriter(ABC):
    platform: Platform

    @abstractmethod
    async def write(self, records: Dict[str, StockRecord], targets: Dict[str, int]) -> Dict[str, Optional[str]]:
        """Write target quantities. Returns key -> failure reason (None on success)."""
        pass

    def completed_sku_links(self) -> Set[int]:
        """Etsy product ids whose linked SKU has been written."""
        return set()


class ShopifyStockWriter(StockWriter):
    platform = Platform.SHOPIFY

    def __init__(self, client: ShopifyClient, default_location_gid: Optional[str] = None):
        self.client = client
        self.default_location_gid = default_location_gid

    async def write(self, records: Dict[str, StockRecord], targets: Dict[str, int]) -> Dict[str, Optional[str]]:
        outcome: Dict[str, Optional[str]] = {}
        for key, quantity in targets.items():
            record = records[key]
            location = record.shopify_location_id or self.default_location_gid
            if not record.shopify_initialized or not location:
                outcome[key] = "no Shopify inventory level for this record"
                continue
            try:
                await self.client.set_inventory_level(location, key, quantity)
                outcome[key] = None
                logger.info(f"Set Shopify stock for {key} ({record.sku}) to {quantity}")
            except ShopifyAPIError as e:
                outcome[key] = str(e)
                logger.error(f"Failed to set Shopify stock for {key}: {e}")
        return outcome


def build_inventory_update(
    inventory: EtsyListingInventory,
    quantities: Dict[int, int],
    skus: Dict[int, str],
) -> Dict[str, Any]:
    """
    Payload for updateListingInventory.

    Etsy replaces the whole product array, so every live product is sent back
    as read, with only the quantities and SKUs given here changed. Read-only
    fields (product_id, offering_id, is_deleted) are dropped and prices are sent
    as decimals.
    """
    products = []
    for product in inventory.products:
        if product.is_deleted:
            continue
        offerings = []
        for index, offering in enumerate(o for o in product.offerings if not o.is_deleted):
            quantity = offering.quantity
            if index == 0 and product.product_id in quantities:
                quantity = quantities[product.product_id]
            offerings.append({
                "price": offering.price.decimal,
                "quantity": quantity,
                "is_enabled": offering.is_enabled,
            })
        property_values = []
        for pv in product.property_values:
            value = {
                "property_id": pv.property_id,
                "property_name": pv.property_name,
                "value_ids": pv.value_ids,
                "values": pv.values,
            }
            if pv.scale_id is not None:
                value["scale_id"] = pv.scale_id
            property_values.append(value)
        products.append({
            "sku": skus.get(product.product_id, product.sku or ""),
            "offerings": offerings,
            "property_values": property_values,
        })
    return {
        "products": products,
        "price_on_property": inventory.price_on_property,
        "quantity_on_property": inventory.quantity_on_property,
        "sku_on_property": inventory.sku_on_property,
    }


class EtsyStockWriter(StockWriter):
    """One inventory PUT per listing; listings with a pending SKU link are written even without stock changes."""
    platform = Platform.ETSY

    def __init__(self, client: EtsyClient, snapshot: EtsySnapshot, sku_links: Optional[Dict[int, str]] = None):
        self.client = client
        self.snapshot = snapshot
        self.sku_links = sku_links or {}
        self._linked: Set[int] = set()

    def completed_sku_links(self) -> Set[int]:
        return set(self._linked)

    def _listings_with_pending_links(self) -> Set[int]:
        pending = set()
        for listing_id, inventory in self.snapshot.inventories.items():
            for product in inventory.products:
                if product.product_id in self.sku_links and product.product_id not in self._linked:
                    pending.add(listing_id)
        return pending

    async def write(self, records: Dict[str, StockRecord], targets: Dict[str, int]) -> Dict[str, Optional[str]]:
        outcome: Dict[str, Optional[str]] = {}
        by_listing: Dict[int, Dict[str, int]] = {}

        for key, quantity in targets.items():
            record = records[key]
            listing_id = record.etsy_listing_id
            if not record.etsy_initialized or record.etsy_product_id is None or listing_id is None:
                outcome[key] = "no Etsy product for this record"
                continue
            if listing_id not in self.snapshot.inventories:
                outcome[key] = f"inventory of listing {listing_id} was not read this run"
                continue
            by_listing.setdefault(listing_id, {})[key] = quantity

        for listing_id in self._listings_with_pending_links():
            by_listing.setdefault(listing_id, {})

        for listing_id, listing_targets in by_listing.items():
            inventory = self.snapshot.inventories[listing_id]
            quantities = {records[key].etsy_product_id: qty for key, qty in listing_targets.items()}
            listing_products = {p.product_id for p in inventory.products}
            skus = {pid: sku for pid, sku in self.sku_links.items() if pid in listing_products}

            payload = build_inventory_update(inventory, quantities, skus)
            try:
                await self.client.update_listing_inventory(listing_id, payload)
            except EtsyAPIError as e:
                logger.error(f"Failed to update Etsy listing {listing_id}: {e}")
                for key in listing_targets:
                    outcome[key] = str(e)
                continue

            logger.info(f"Updated Etsy listing {listing_id}: {len(quantities)} quantities, {len(skus)} SKU links")
            self._linked.update(skus)
            for key in listing_targets:
                outcome[key] = None
        return outcome


class StockMutator:

    def __init__(
        self,
        store: StockRecordStore,
        writers: Dict[Platform, StockWriter],
        advance_baseline_on_failure: bool = True,
    ):
        self.store = store
        self.writers = writers
        self.advance_baseline_on_failure = advance_baseline_on_failure

    async def apply_deltas(
        self,
        platform: Platform,
        delta_map: Dict[str, int],
        override_map: Optional[Dict[str, int]] = None,
    ) -> ApplyResult:
        """
        Apply deltas (changes seen on the other platform) and overrides to `platform`.

        The written quantity is the override when there is one, otherwise
        max(0, current + delta). Per-item failures are collected in the result.
        """
        override_map = override_map or {}
        writer = self.writers[platform]
        result = ApplyResult(platform=platform)

        records: Dict[str, StockRecord] = {}
        targets: Dict[str, int] = {}
        overridden: Set[str] = set()

        for key, delta in delta_map.items():
            record = await self._load(key, result)
            if record is None:
                continue
            records[key] = record
            if key in override_map:
                targets[key] = max(0, override_map[key])
                overridden.add(key)
                continue
            current = record.current(platform)
            if current is None:
                result.failures.append(ApplyFailure(key, f"no {platform.slug} quantity observed"))
                continue
            targets[key] = max(0, current + delta)
            logger.debug(f"{platform.value} {key}: {current} {delta:+d} -> {targets[key]}")

        # Overrides with no delta this run are forced as well
        for key, quantity in override_map.items():
            if key in delta_map:
                continue
            record = await self._load(key, result)
            if record is None:
                continue
            records[key] = record
            targets[key] = max(0, quantity)
            overridden.add(key)

        result.attempted = len(targets) + len(result.failures)
        outcome = await writer.write(records, targets)

        for key, quantity in targets.items():
            error = outcome.get(key)
            if error:
                result.failures.append(ApplyFailure(key, error))
                if not self.advance_baseline_on_failure:
                    continue
            else:
                result.succeeded += 1
                result.applied[key] = quantity
            try:
                await self._record_write(
                    key,
                    platform,
                    quantity,
                    is_override=key in overridden,
                    succeeded=not error,
                    initialized=records[key].initialized(platform),
                )
            except PersistenceError as e:
                logger.error(f"Wrote {key} to {platform.value} but could not store the new baseline: {e}")

        await self._clear_sku_links(writer)

        logger.info(f"Applied stock to {platform.value}: {result.summary()}")
        return result

    async def _load(self, key: str, result: ApplyResult) -> Optional[StockRecord]:
        try:
            record = await self.store.get(key)
        except PersistenceError as e:
            logger.error(f"Could not load {key}: {e}")
            result.failures.append(ApplyFailure(key, str(e)))
            return None
        if record is None:
            result.failures.append(ApplyFailure(key, "record not found"))
        return record

    async def _record_write(
        self, key: str, platform: Platform, quantity: int, is_override: bool, succeeded: bool, initialized: bool = True
    ):
        if initialized:
            await self.store.set_baseline(key, platform, quantity)
        if is_override:
            if succeeded:
                await self.store.complete_override(key, platform)
        else:
            # The source change has now been propagated
            await self.store.acknowledge(key, platform.opposite)

    async def _clear_sku_links(self, writer: StockWriter) -> None:
        linked = writer.completed_sku_links()
        if not linked:
            return
        try:
            pending = await self.store.get_all_where(link_sku_requested=True)
        except PersistenceError as e:
            logger.error(f"Could not load SKU link requests: {e}")
            return
        for record in pending:
            if record.etsy_product_id in linked:
                try:
                    await self.store.upsert_merge(record.key, {"link_sku_requested": False})
                except PersistenceError as e:
                    logger.error(f"Could not clear SKU link request on {record.key}: {e}")
