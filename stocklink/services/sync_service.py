# stocklink/services/sync_service.py
"""
One complete sync pass for a shop.

Stages run strictly in order: overrides, Shopify snapshots, Etsy snapshot,
reconciliation, then write-back to Etsy and Shopify. A failing stage ends the
run; nothing after it runs, so stock changes not yet propagated stay pending
for the next run.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Dict, List, Optional, Set

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stocklink.core.config import Settings, get_settings
from stocklink.core.enums import Platform, SyncStage
from stocklink.core.exceptions import BaseServiceError, SyncStageError, TokenError
from stocklink.database import create_engine, create_session_factory, session_scope
from stocklink.models.shop import Shop
from stocklink.models.stock_record import utc_now
from stocklink.schemas.stock import ApplyResult, OverrideSet, ReconciliationDelta, SyncRunResult
from stocklink.services.etsy.auth import EtsyAuthManager
from stocklink.services.etsy.client import EtsyClient
from stocklink.services.etsy.importer import EtsyImporter
from stocklink.services.override_service import OverrideResolver
from stocklink.services.reconciliation_service import DeltaReconciler
from stocklink.services.shop_service import ShopService, resolve_shopify_token
from stocklink.services.shopify.bulk import BulkJobPoller
from stocklink.services.shopify.client import ShopifyClient
from stocklink.services.shopify.importer import ShopifyImporter
from stocklink.services.stock_mutator import EtsyStockWriter, ShopifyStockWriter, StockMutator
from stocklink.services.stock_store import SQLAlchemyStockRecordStore, StockRecordStore

logger = logging.getLogger(__name__)


@dataclass
class SyncContext:
    """Everything a run needs, built once per run."""
    shop_domain: str
    settings: Settings
    store: StockRecordStore
    shop_service: ShopService
    sleep: Any = asyncio.sleep
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    shop: Optional[Shop] = None
    shopify_client: Optional[ShopifyClient] = None
    etsy_client: Optional[EtsyClient] = None
    overrides: OverrideSet = field(default_factory=OverrideSet)
    seeded_keys: Set[str] = field(default_factory=set)
    stages: Dict[str, Dict[str, int]] = field(default_factory=dict)
    apply_results: List[ApplyResult] = field(default_factory=list)


class SyncRunner:

    def __init__(self, ctx: SyncContext):
        self.ctx = ctx

    async def _stage(self, stage: SyncStage, work: Awaitable):
        logger.info(f"[{self.ctx.run_id[:8]}] {stage.value}")
        try:
            return await work
        except BaseServiceError as e:
            logger.error(f"[{self.ctx.run_id[:8]}] {stage.value} failed: {e}")
            raise SyncStageError(stage, e) from e

    async def load_overrides(self) -> OverrideSet:
        overrides = await OverrideResolver(self.ctx.store).load()
        self.ctx.overrides = overrides
        self.ctx.stages[SyncStage.LOAD_OVERRIDES.value] = {
            "overrides": len(overrides.instructions),
            "sku_links": len(overrides.sku_links),
        }
        return overrides

    async def connect_shopify(self) -> ShopifyClient:
        ctx = self.ctx
        ctx.shop = await ctx.shop_service.get_shop(ctx.shop_domain)
        if ctx.shopify_client is None:
            token = resolve_shopify_token(ctx.shop, ctx.settings.SHOPIFY_ADMIN_API_ACCESS_TOKEN)
            ctx.shopify_client = ShopifyClient(
                shop_domain=ctx.shop_domain,
                access_token=token,
                api_version=ctx.settings.SHOPIFY_API_VERSION,
                timeout=ctx.settings.HTTP_TIMEOUT_SECONDS,
                sleep=ctx.sleep,
            )
        return ctx.shopify_client

    async def connect_etsy(self) -> EtsyClient:
        ctx = self.ctx
        if ctx.etsy_client is not None:
            return ctx.etsy_client
        if ctx.shop is None:
            raise TokenError(f"Shop {ctx.shop_domain} is not registered; cannot obtain an Etsy token")
        auth = EtsyAuthManager(
            ctx.shop_service,
            client_id=ctx.settings.ETSY_CLIENT_ID,
            redirect_uri=ctx.settings.ETSY_REDIRECT_URI,
            refresh_margin_minutes=ctx.settings.ETSY_TOKEN_REFRESH_MARGIN_MINUTES,
            timeout=ctx.settings.HTTP_TIMEOUT_SECONDS,
        )
        token = await auth.get_access_token(ctx.shop)
        ctx.etsy_client = EtsyClient(ctx.settings.ETSY_CLIENT_ID, token, timeout=ctx.settings.HTTP_TIMEOUT_SECONDS)
        return ctx.etsy_client

    async def run(self) -> SyncRunResult:
        ctx = self.ctx
        settings = ctx.settings
        result = SyncRunResult(run_id=ctx.run_id, shop_domain=ctx.shop_domain, started_at=utc_now())
        logger.info(f"Starting sync run {ctx.run_id} for {ctx.shop_domain}")

        try:
            await self._stage(SyncStage.LOAD_OVERRIDES, self.load_overrides())

            shopify_client = await self._stage(SyncStage.SHOPIFY_TOKEN, self.connect_shopify())
            poller = BulkJobPoller(
                shopify_client,
                max_attempts=settings.BULK_POLL_MAX_ATTEMPTS,
                interval=settings.BULK_POLL_INTERVAL_SECONDS,
                sleep=ctx.sleep,
            )
            shopify_importer = ShopifyImporter(
                shopify_client, ctx.store, poller=poller, location_gid=settings.SHOPIFY_LOCATION_GID
            )
            ctx.stages[SyncStage.SHOPIFY_INVENTORY_LEVELS.value] = await self._stage(
                SyncStage.SHOPIFY_INVENTORY_LEVELS, shopify_importer.import_inventory_levels()
            )
            ctx.stages[SyncStage.SHOPIFY_PRODUCT_VARIANTS.value] = await self._stage(
                SyncStage.SHOPIFY_PRODUCT_VARIANTS, shopify_importer.import_product_variants()
            )
            ctx.seeded_keys |= shopify_importer.seeded_keys

            etsy_client = await self._stage(SyncStage.ETSY_TOKEN, self.connect_etsy())
            etsy_importer = EtsyImporter(
                etsy_client,
                ctx.store,
                ctx.shop_service,
                ctx.shop,
                sku_links=ctx.overrides.sku_links,
                page_size=settings.ETSY_LISTINGS_PAGE_SIZE,
            )
            ctx.stages[SyncStage.ETSY_LISTINGS.value] = await self._stage(
                SyncStage.ETSY_LISTINGS, etsy_importer.import_listings()
            )
            ctx.seeded_keys |= etsy_importer.seeded_keys

            delta: ReconciliationDelta = await self._stage(
                SyncStage.RECONCILE,
                DeltaReconciler(ctx.store).reconcile_all(ctx.seeded_keys, ctx.overrides),
            )
            ctx.stages[SyncStage.RECONCILE.value] = {
                "etsy_deltas": len(delta.etsy_deltas),
                "shopify_deltas": len(delta.shopify_deltas),
                "new_keys": len(delta.new_keys),
                "override_keys": len(delta.override_keys),
                "absorbed": len(delta.skipped_keys),
                "failed": len(delta.failed_keys),
            }

            mutator = StockMutator(
                ctx.store,
                writers={
                    Platform.SHOPIFY: ShopifyStockWriter(shopify_client, settings.SHOPIFY_LOCATION_GID),
                    Platform.ETSY: EtsyStockWriter(etsy_client, etsy_importer.snapshot, ctx.overrides.sku_links),
                },
                advance_baseline_on_failure=settings.ADVANCE_BASELINE_ON_FAILED_WRITE,
            )
            for stage, platform in ((SyncStage.APPLY_ETSY, Platform.ETSY), (SyncStage.APPLY_SHOPIFY, Platform.SHOPIFY)):
                applied = await self._stage(
                    stage,
                    mutator.apply_deltas(platform, delta.deltas_for(platform), delta.overrides_for(platform)),
                )
                ctx.apply_results.append(applied)
                ctx.stages[stage.value] = {
                    "attempted": applied.attempted,
                    "succeeded": applied.succeeded,
                    "failed": len(applied.failures),
                }

        except SyncStageError as e:
            result.failed_stage = e.stage.value
            result.error = str(e.cause)
            logger.error(f"Sync run {ctx.run_id} stopped at {e.stage.value}: {e.cause}")

        result.stages = ctx.stages
        result.applied = [r.summary() for r in ctx.apply_results]
        result.success = result.failed_stage is None and not any(r.is_systemic_failure for r in ctx.apply_results)
        result.finished_at = utc_now()
        logger.info(
            f"Sync run {ctx.run_id} for {ctx.shop_domain} finished "
            f"({'success' if result.success else 'FAILED'}): {result.stages}"
        )
        return result


async def run_sync_once(
    shop_domain: str,
    settings: Optional[Settings] = None,
    session_factory: Optional[async_sessionmaker] = None,
    sleep=asyncio.sleep,
) -> SyncRunResult:
    """Run a single sync pass for the shop and report what happened."""
    settings = settings or get_settings()
    engine = None
    if session_factory is None:
        engine = create_engine(settings.DATABASE_URL)
        session_factory = create_session_factory(engine)

    try:
        async with session_scope(session_factory) as session:
            ctx = build_context(shop_domain, settings, session, sleep=sleep)
            return await SyncRunner(ctx).run()
    finally:
        if engine is not None:
            await engine.dispose()


def build_context(shop_domain: str, settings: Settings, session: AsyncSession, sleep=asyncio.sleep) -> SyncContext:
    return SyncContext(
        shop_domain=shop_domain,
        settings=settings,
        store=SQLAlchemyStockRecordStore(session, shop_domain),
        shop_service=ShopService(session),
        sleep=sleep,
    )
