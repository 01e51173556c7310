# stocklink/services/override_service.py
import logging

from stocklink.schemas.stock import OverrideInstruction, OverrideSet
from stocklink.services.stock_store import StockRecordStore

logger = logging.getLogger(__name__)


class OverrideResolver:
    """Collects operator instructions (forced quantities and SKU links) before a run."""

    def __init__(self, store: StockRecordStore):
        self.store = store

    async def load(self) -> OverrideSet:
        overrides = OverrideSet()

        for record in await self.store.get_all_where(override_requested=True):
            targets = record.override_targets()
            if not targets:
                logger.warning(f"Override requested for {record.key} without a value, ignoring")
                continue
            for platform in targets:
                if not record.initialized(platform):
                    # Held until the item is first observed there
                    logger.warning(f"Override for {record.key} on {platform.value} deferred: item not seen on that platform")
                    continue
                overrides.instructions.append(
                    OverrideInstruction(
                        key=record.key,
                        platform=platform,
                        quantity=max(0, record.override_value),
                        sku=record.sku,
                    )
                )

        for record in await self.store.get_all_where(link_sku_requested=True):
            if record.etsy_product_id is None or not record.sku:
                logger.warning(f"SKU link requested for {record.key} without product id or SKU, ignoring")
                continue
            overrides.sku_links[record.etsy_product_id] = record.sku

        logger.info(
            f"Loaded {len(overrides.instructions)} override instructions "
            f"and {len(overrides.sku_links)} SKU links"
        )
        return overrides
