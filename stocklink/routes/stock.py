# stocklink/routes/stock.py
"""
Operator endpoints: inspect stock records and queue instructions (forced
quantities, SKU links) that the next sync run picks up.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from stocklink.core.config import Settings, get_settings
from stocklink.core.exceptions import PersistenceError
from stocklink.core.security import get_current_username
from stocklink.database import get_session
from stocklink.schemas.stock import LinkSkuRequest, OverrideRequest, StockRecordRead
from stocklink.services.stock_store import SQLAlchemyStockRecordStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/stock", tags=["stock"])


def get_store(
    shop: Optional[str] = Query(None, description="Shopify shop domain (defaults to SHOPIFY_SHOP_URL)"),
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
) -> SQLAlchemyStockRecordStore:
    shop_domain = shop or settings.SHOPIFY_SHOP_URL
    if not shop_domain:
        raise HTTPException(status_code=400, detail="shop is required")
    return SQLAlchemyStockRecordStore(session, shop_domain)


@router.get("", response_model=List[StockRecordRead])
async def list_stock(
    pending_only: bool = False,
    store: SQLAlchemyStockRecordStore = Depends(get_store),
):
    """All stock records for the shop, or only those with a queued instruction."""
    try:
        if pending_only:
            records = {r.key: r for r in await store.get_all_where(override_requested=True)}
            records.update({r.key: r for r in await store.get_all_where(link_sku_requested=True)})
            return list(records.values())
        return await store.get_all()
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.post("/{key:path}/override", response_model=StockRecordRead)
async def request_override(
    key: str,
    body: OverrideRequest,
    store: SQLAlchemyStockRecordStore = Depends(get_store),
    username: str = Depends(get_current_username),
):
    """Force the record's stock to a quantity on one platform, or both when none is given."""
    record = await store.get(key)
    if record is None:
        raise HTTPException(status_code=404, detail=f"No stock record {key}")

    # An empty platform means both; None would be skipped by the partial update
    platform = body.platform.value if body.platform else ""
    try:
        record, _ = await store.upsert_merge(key, {
            "override_requested": True,
            "override_value": body.quantity,
            "override_platform": platform,
        })
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e))

    logger.info(f"{username} requested override {key} -> {body.quantity} ({platform or 'both platforms'})")
    return record


@router.post("/{key:path}/link-sku", response_model=StockRecordRead)
async def request_sku_link(
    key: str,
    body: LinkSkuRequest,
    store: SQLAlchemyStockRecordStore = Depends(get_store),
    username: str = Depends(get_current_username),
):
    """Bind an Etsy product to this record's SKU; the SKU is written to Etsy on the next run."""
    record = await store.get(key)
    if record is None:
        raise HTTPException(status_code=404, detail=f"No stock record {key}")

    sku = body.sku or record.sku
    if not sku:
        raise HTTPException(status_code=400, detail="Record has no SKU; provide one")

    try:
        record, _ = await store.upsert_merge(key, {
            "sku": sku,
            "etsy_product_id": body.etsy_product_id,
            "link_sku_requested": True,
        })
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e))

    logger.info(f"{username} linked Etsy product {body.etsy_product_id} to SKU {sku}")
    return record
