# stocklink/services/reconciliation_service.py
"""
Delta computation between the two platforms.

Each side of a record holds the quantity seen this run (`current`) and the
baseline the last run left behind (`previous`). A change observed on one
platform is the delta to apply to the other one. Changes that cannot be
propagated (key seen for the first time, counterpart never observed,
operator override) are absorbed into the baseline instead, so they are never
replayed by a later run.
"""
import logging
from typing import Iterable, Optional, Set

from stocklink.core.enums import Platform
from stocklink.core.exceptions import PersistenceError
from stocklink.models.stock_record import StockRecord
from stocklink.schemas.stock import KeyDelta, OverrideSet, ReconciliationDelta, SideState
from stocklink.services.stock_store import StockRecordStore

logger = logging.getLogger(__name__)


def side_state(record: StockRecord, platform: Platform) -> SideState:
    return SideState(
        current=record.current(platform),
        previous=record.previous(platform),
        initialized=record.initialized(platform),
    )


def _pending(side: SideState) -> bool:
    return bool(side.change)


def compute_key_delta(
    key: str,
    shopify: SideState,
    etsy: SideState,
    *,
    is_new: bool = False,
    overridden_platforms: Iterable[Platform] = (),
) -> KeyDelta:
    """
    Work out what a single key should propagate.

    The rules apply in order: a key seeded this run emits nothing, an
    override suppresses every ordinary delta for the key, and otherwise a
    change is only emitted when both sides have been observed at least once.
    """
    sides = {Platform.SHOPIFY: shopify, Platform.ETSY: etsy}
    overridden = tuple(p for p in (Platform.SHOPIFY, Platform.ETSY) if p in set(overridden_platforms))

    if is_new:
        absorbed = tuple(p for p, side in sides.items() if _pending(side))
        return KeyDelta(
            key=key,
            is_new_key=True,
            override_applied=bool(overridden),
            absorbed=tuple(dict.fromkeys(absorbed + overridden)),
        )

    if overridden:
        # The non-overridden side keeps its pending change for a later run
        return KeyDelta(key=key, override_applied=True, absorbed=overridden)

    if not (shopify.initialized and etsy.initialized):
        absorbed = tuple(p for p, side in sides.items() if _pending(side))
        return KeyDelta(key=key, absorbed=absorbed)

    return KeyDelta(
        key=key,
        etsy_delta=shopify.change or None,
        shopify_delta=etsy.change or None,
    )


class DeltaReconciler:
    """Runs compute_key_delta over the store and persists absorbed baselines."""

    def __init__(self, store: StockRecordStore):
        self.store = store

    async def reconcile(
        self,
        record: StockRecord,
        *,
        is_new: bool = False,
        overridden_platforms: Iterable[Platform] = (),
    ) -> KeyDelta:
        key_delta = compute_key_delta(
            record.key,
            side_state(record, Platform.SHOPIFY),
            side_state(record, Platform.ETSY),
            is_new=is_new,
            overridden_platforms=overridden_platforms,
        )
        for platform in key_delta.absorbed:
            await self.store.acknowledge(record.key, platform)
        return key_delta

    async def reconcile_all(
        self,
        seeded_keys: Optional[Set[str]] = None,
        overrides: Optional[OverrideSet] = None,
    ) -> ReconciliationDelta:
        seeded_keys = seeded_keys or set()
        overrides = overrides or OverrideSet()
        delta = ReconciliationDelta(
            shopify_overrides=overrides.for_platform(Platform.SHOPIFY),
            etsy_overrides=overrides.for_platform(Platform.ETSY),
        )

        records = await self.store.get_all()
        for record in records:
            try:
                key_delta = await self.reconcile(
                    record,
                    is_new=record.key in seeded_keys,
                    overridden_platforms=overrides.platforms_for(record.key),
                )
            except PersistenceError as e:
                # The change stays pending and is retried next run
                logger.error(f"Skipping {record.key} this run, could not store its baseline: {e}")
                delta.failed_keys.add(record.key)
                delta.shopify_overrides.pop(record.key, None)
                delta.etsy_overrides.pop(record.key, None)
                continue

            if key_delta.is_new_key:
                delta.new_keys.add(record.key)
            if key_delta.override_applied:
                delta.override_keys.add(record.key)
            elif key_delta.absorbed and not key_delta.is_new_key:
                delta.skipped_keys.add(record.key)

            if key_delta.shopify_delta is not None:
                delta.shopify_deltas[record.key] = key_delta.shopify_delta
            if key_delta.etsy_delta is not None:
                delta.etsy_deltas[record.key] = key_delta.etsy_delta

        logger.info(
            f"Reconciled {len(records)} records: {len(delta.etsy_deltas)} changes for Etsy, "
            f"{len(delta.shopify_deltas)} for Shopify, {len(delta.new_keys)} new, "
            f"{len(delta.override_keys)} overridden, {len(delta.skipped_keys)} absorbed, {len(delta.failed_keys)} failed"
        )
        return delta
