# repricer/routes/erp.py
"""
HTTP triggers for the ERP jobs plus the one-time OAuth/token setup endpoints.

Job triggers (keepalive, price-update) are protected by the cron bearer secret
when CRON_SECRET is configured.
"""

import logging
import secrets
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from repricer.core.config import Settings, get_settings
from repricer.core.enums import ExecutionReason
from repricer.core.security import require_cron_secret
from repricer.dependencies import get_db
from repricer.schemas.erp import TokenPair
from repricer.schemas.pricing import PlatformSyncLogRead, PlatformSyncRequest
from repricer.services.erp.client import ErpClient
from repricer.services.erp.token_store import TokenStore
from repricer.services.keepalive_service import KeepAliveService
from repricer.services.platform_sync_service import PlatformSyncService
from repricer.services.price_update_service import PriceUpdateService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/erp", tags=["erp"])


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/keepalive", dependencies=[require_cron_secret()])
async def keepalive(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Exercise the stored ERP token so it does not expire."""
    service = KeepAliveService(db, ErpClient(db, settings=settings))
    result = await service.run()
    if not result["success"]:
        return JSONResponse(status_code=500, content=result)
    return result


@router.get("/price-update", dependencies=[require_cron_secret()])
@router.post("/price-update", dependencies=[require_cron_secret()])
async def price_update(
    manual: bool = Query(default=False, description="Record the run as manual instead of scheduled"),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Run the daily repricing flow for today."""
    reason = ExecutionReason.MANUAL if manual else ExecutionReason.SCHEDULED
    result = await PriceUpdateService(db, settings=settings).run(reason=reason)

    payload = result.model_dump(mode="json")
    payload["timestamp"] = _now()
    if not result.success:
        return JSONResponse(status_code=500, content=payload)
    return payload


@router.get("/platform-sync")
async def platform_sync_status(
    limit: int = Query(default=10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Most recent marketplace sync batches."""
    try:
        service = PlatformSyncService(db, ErpClient(db, settings=settings), settings=settings)
        status = await service.get_sync_status(limit=limit)
    except Exception as e:
        logger.error(f"Error loading platform sync status: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

    last_sync = status["last_sync"]
    return {
        "success": True,
        "data": {
            "last_sync": PlatformSyncLogRead.from_orm_model(last_sync).model_dump(mode="json") if last_sync else None,
            "recent_syncs": [
                PlatformSyncLogRead.from_orm_model(entry).model_dump(mode="json")
                for entry in status["recent_syncs"]
            ],
        },
    }


@router.post("/platform-sync", dependencies=[require_cron_secret()])
async def platform_sync(
    payload: PlatformSyncRequest,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Push the supplied prices to the marketplace price columns."""
    if not payload.products:
        raise HTTPException(status_code=400, detail="No products to sync")

    logger.info(f"Manual platform sync requested for {len(payload.products)} products")
    service = PlatformSyncService(db, ErpClient(db, settings=settings), settings=settings)
    try:
        result = await service.sync_prices(payload.products)
    except Exception as e:
        logger.exception("Manual platform sync failed")
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})

    return result.model_dump(mode="json")


@router.get("/auth")
async def start_authorization(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Redirect the operator to the ERP authorization page."""
    try:
        return RedirectResponse(url=ErpClient(db, settings=settings).authorization_url())
    except ValueError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/callback")
async def oauth_callback(
    access_token: Optional[str] = None,
    refresh_token: Optional[str] = None,
    error: Optional[str] = None,
    health: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Store the token pair delivered by the ERP after authorization."""
    if health:
        return {"ok": True, "message": "Callback endpoint is healthy", "timestamp": _now()}

    if error:
        raise HTTPException(status_code=400, detail=f"OAuth Error: {error}")

    if not access_token or not refresh_token:
        raise HTTPException(status_code=400, detail="Missing tokens in callback")

    try:
        await TokenStore(db).save(
            TokenPair(access_token=access_token, refresh_token=refresh_token),
            client_id=settings.ERP_CLIENT_ID,
            client_secret=settings.ERP_CLIENT_SECRET,
        )
    except Exception as e:
        logger.exception("Failed to save tokens from callback")
        raise HTTPException(status_code=500, detail=f"Failed to save tokens to database: {str(e)}")

    return {"success": True, "message": "Tokens saved successfully", "timestamp": _now()}


@router.post("/setup-tokens")
async def setup_tokens(
    authorization: Optional[str] = Header(default=None),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Seed the token row from ERP_INITIAL_* settings. Does nothing if tokens exist."""
    expected = settings.CRON_SECRET
    supplied = authorization or ""
    if not expected or not secrets.compare_digest(supplied.encode("utf8"), f"Bearer {expected}".encode("utf8")):
        raise HTTPException(status_code=401, detail="Unauthorized")

    if not settings.ERP_INITIAL_ACCESS_TOKEN or not settings.ERP_INITIAL_REFRESH_TOKEN:
        raise HTTPException(
            status_code=500,
            detail="ERP_INITIAL_ACCESS_TOKEN and ERP_INITIAL_REFRESH_TOKEN are required",
        )

    store = TokenStore(db)
    if await store.exists():
        return {"success": False, "message": "Tokens already exist in database"}

    await store.save(
        TokenPair(
            access_token=settings.ERP_INITIAL_ACCESS_TOKEN,
            refresh_token=settings.ERP_INITIAL_REFRESH_TOKEN,
        ),
        client_id=settings.ERP_CLIENT_ID,
        client_secret=settings.ERP_CLIENT_SECRET,
    )
    logger.info("Initial ERP tokens saved to database")
    return {"success": True, "message": "Initial tokens saved successfully", "timestamp": _now()}


@router.get("/toggle-update")
async def toggle_update_status(settings: Settings = Depends(get_settings)):
    """Report whether the daily price update is enabled (PRICE_UPDATE_ENABLED)."""
    enabled = settings.PRICE_UPDATE_ENABLED
    return {
        "success": True,
        "enabled": enabled,
        "message": f"Price update is currently {'enabled' if enabled else 'disabled'}",
        "timestamp": _now(),
    }
