# repricer/services/keepalive_service.py
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from repricer.core.enums import KeepAliveStatus
from repricer.models.keepalive_log import KeepAliveLog
from repricer.schemas.erp import KeepAliveResult
from repricer.services.erp.client import ErpClient

logger = logging.getLogger(__name__)


class KeepAliveService:
    """
    Scheduled token keepalive.

    Exercises the ERP token on a fixed interval so it never expires during
    quiet periods, and records every attempt. The consecutive failure count
    is informational (alerting); it does not change any state.
    """

    FAILURE_SCAN_LIMIT = 50

    def __init__(self, db: AsyncSession, client: ErpClient):
        self.db = db
        self.client = client

    async def run(self) -> Dict[str, Any]:
        logger.info("=== KEEPALIVE STARTING ===")
        started = time.monotonic()

        try:
            result = await self.client.keep_alive()
        except Exception as e:
            # keep_alive() reports failures itself; this only guards the log write below
            logger.exception("Unexpected keepalive error")
            result = KeepAliveResult(success=False, refreshed=False, message=str(e) or "Unknown error")

        duration = round(time.monotonic() - started, 3)

        try:
            await self._record(result, duration)
            consecutive_failures = await self.consecutive_failures()
        except Exception as e:
            logger.exception(f"Failed to record keepalive result: {e}")
            consecutive_failures = None
            try:
                await self.db.rollback()
            except Exception as rollback_error:
                logger.error(f"Rollback after keepalive log failure failed: {rollback_error}")

        if result.success:
            logger.info(f"KeepAlive completed: {result.message} ({duration}s)")
        else:
            logger.error(f"KeepAlive failed: {result.message} (consecutive failures: {consecutive_failures})")

        return {
            "success": result.success,
            "refreshed": result.refreshed,
            "message": result.message,
            "duration": duration,
            "consecutive_failures": consecutive_failures,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    async def _record(self, result: KeepAliveResult, duration: float) -> None:
        self.db.add(
            KeepAliveLog(
                status=(KeepAliveStatus.SUCCESS if result.success else KeepAliveStatus.FAILED).value,
                refreshed=result.refreshed,
                message=result.message,
                duration_seconds=duration,
                created_at=datetime.now(timezone.utc),
            )
        )
        await self.db.commit()

    async def consecutive_failures(self, scan_limit: Optional[int] = None) -> int:
        """Count FAILED entries, newest first, up to the most recent SUCCESS."""
        result = await self.db.execute(
            select(KeepAliveLog.status)
            .order_by(KeepAliveLog.id.desc())
            .limit(scan_limit or self.FAILURE_SCAN_LIMIT)
        )
        count = 0
        for status in result.scalars():
            if status != KeepAliveStatus.FAILED.value:
                break
            count += 1
        return count
