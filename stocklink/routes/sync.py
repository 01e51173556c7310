# stocklink/routes/sync.py
import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import async_sessionmaker

from stocklink.core.config import Settings, get_settings
from stocklink.core.security import get_current_username
from stocklink.database import get_session_factory
from stocklink.services.sync_service import run_sync_once

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/sync", tags=["sync"])

_sync_lock = asyncio.Lock()


async def run_sync_background(shop_domain: str, settings: Settings, session_factory: async_sessionmaker, app_state):
    async with _sync_lock:
        try:
            result = await run_sync_once(shop_domain, settings=settings, session_factory=session_factory)
        except Exception:
            logger.exception(f"Background sync for {shop_domain} crashed")
            raise
        app_state.last_sync_result = result


@router.post("/run", status_code=202)
async def queue_sync_run(
    request: Request,
    background_tasks: BackgroundTasks,
    shop: Optional[str] = None,
    settings: Settings = Depends(get_settings),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    username: str = Depends(get_current_username),
):
    """Queue a sync run without blocking the request."""
    shop_domain = shop or settings.SHOPIFY_SHOP_URL
    if not shop_domain:
        raise HTTPException(status_code=400, detail="shop is required")
    if _sync_lock.locked():
        raise HTTPException(status_code=409, detail="A sync run is already in progress")

    background_tasks.add_task(run_sync_background, shop_domain, settings, session_factory, request.app.state)
    logger.info(f"{username} queued a sync run for {shop_domain}")
    return {"status": "queued", "shop": shop_domain}


@router.get("/last")
async def last_sync_result(request: Request, username: str = Depends(get_current_username)):
    result = getattr(request.app.state, "last_sync_result", None)
    if result is None:
        raise HTTPException(status_code=404, detail="No sync run has completed yet")
    return result
