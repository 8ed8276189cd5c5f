# repricer/services/platform_sync_service.py
"""
Marketplace price sync.

Pushes already-committed ERP prices into the marketplace price columns of the
goods master through the bulk CSV upload, in fixed-size batches. A failed
batch never stops its siblings, and every batch outcome is written to the
platform sync log.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from repricer.core.config import Settings, get_settings
from repricer.core.enums import ErrorKind, SyncStatus
from repricer.core.exceptions import ApiError, SyncBatchError
from repricer.models.platform_sync_log import PlatformSyncLog
from repricer.schemas.pricing import SyncBatchResult, SyncProduct, SyncResult
from repricer.services.erp.client import ErpClient, build_goods_csv

logger = logging.getLogger(__name__)

MAX_MARKETPLACE_COLUMNS = 3


def chunk(items: Sequence[Any], size: int) -> List[Sequence[Any]]:
    """Split a sequence into consecutive slices of at most `size` items."""
    if size < 1:
        raise ValueError("Batch size must be at least 1")
    return [items[i:i + size] for i in range(0, len(items), size)]


class PlatformSyncService:

    def __init__(
        self,
        db: AsyncSession,
        client: ErpClient,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.client = client
        self.settings = settings or get_settings()
        self.marketplace_columns = list(self.settings.MARKETPLACE_PRICE_COLUMNS)[:MAX_MARKETPLACE_COLUMNS]

    def build_batch_csv(self, products: Sequence[SyncProduct]) -> str:
        """One row per product: code, main price, then the same price in each marketplace column."""
        columns = [*ErpClient.PRICE_CSV_COLUMNS, *self.marketplace_columns]
        rows = [
            [product.goods_id, product.new_price, *([product.new_price] * len(self.marketplace_columns))]
            for product in products
        ]
        return build_goods_csv(columns, rows)

    async def _submit_batch(self, products: Sequence[SyncProduct]) -> int:
        """
        Upload one batch, retrying rate-limit/size errors with linear backoff.

        Returns:
            int: Number of retries that were needed

        Raises:
            SyncBatchError: Non-retryable error, or retries exhausted
        """
        csv_data = self.build_batch_csv(products)
        retries = 0

        while True:
            try:
                await self.client.upload_goods_csv(csv_data)
                return retries
            except ApiError as e:
                kind = e.kind if e.kind != ErrorKind.API else self.client.classify(e.code, e.message)
                if kind != ErrorKind.RATE_LIMITED:
                    raise SyncBatchError(str(e), retries=retries, code=e.code) from e
                if retries >= self.settings.SYNC_MAX_RETRIES:
                    raise SyncBatchError(
                        f"Retries exhausted after {retries} attempts: {e}", retries=retries, code=e.code
                    ) from e

                retries += 1
                delay = retries * self.settings.SYNC_RETRY_BACKOFF_SECONDS
                logger.warning(f"Batch rejected ({e.code}), retry {retries}/{self.settings.SYNC_MAX_RETRIES} in {delay}s")
                await asyncio.sleep(delay)

    async def _log_batch(
        self,
        products: Sequence[SyncProduct],
        result: SyncBatchResult,
        total_batches: int,
    ) -> None:
        entry = PlatformSyncLog(
            synced_at=datetime.now(timezone.utc),
            product_count=len(products),
            status=(SyncStatus.SUCCESS if result.success else SyncStatus.ERROR).value,
            details={
                "batch": result.batch,
                "total_batches": total_batches,
                "retries": result.retries,
                "goods_ids": [product.goods_id for product in products],
                "marketplace_columns": self.marketplace_columns,
            },
            error_message=result.error,
        )
        self.db.add(entry)
        await self.db.commit()

    async def sync_prices(self, products: Sequence[SyncProduct]) -> SyncResult:
        """
        Push new prices to every marketplace column.

        Returns:
            SyncResult: success is True when at least one batch was accepted
        """
        products = list(products)
        total = len(products)
        if total == 0:
            return SyncResult(
                success=False,
                message="No products to sync",
                total_products=0,
                processed_products=0,
                total_batches=0,
                successful_batches=0,
            )

        batches = chunk(products, self.settings.SYNC_BATCH_SIZE)
        details: List[SyncBatchResult] = []
        processed = 0

        logger.info(f"Starting marketplace sync: {total} products in {len(batches)} batches")

        for index, batch in enumerate(batches, start=1):
            try:
                retries = await self._submit_batch(batch)
                result = SyncBatchResult(batch=index, product_count=len(batch), success=True, retries=retries)
                processed += len(batch)
                logger.info(f"Batch {index}/{len(batches)} synced ({len(batch)} products)")
            except SyncBatchError as e:
                result = SyncBatchResult(
                    batch=index, product_count=len(batch), success=False, retries=e.retries, error=str(e)
                )
                logger.error(f"Batch {index}/{len(batches)} failed: {e}")
            except Exception as e:
                # Anything else (token refresh failure, DB hiccup) only fails this batch
                logger.exception(f"Batch {index}/{len(batches)} failed unexpectedly")
                await self.db.rollback()
                result = SyncBatchResult(batch=index, product_count=len(batch), success=False, error=str(e))

            details.append(result)
            await self._log_batch(batch, result, len(batches))

            if index < len(batches):
                await asyncio.sleep(self.settings.SYNC_BATCH_DELAY_SECONDS)

        successful_batches = sum(1 for d in details if d.success)
        message = (
            f"Synced {processed}/{total} products "
            f"({successful_batches}/{len(batches)} batches succeeded)"
        )
        logger.info(message)

        return SyncResult(
            success=successful_batches > 0,
            message=message,
            total_products=total,
            processed_products=processed,
            total_batches=len(batches),
            successful_batches=successful_batches,
            details=details,
        )

    async def get_sync_status(self, limit: int = 10) -> Dict[str, Any]:
        """Most recent sync log entries, newest first."""
        result = await self.db.execute(
            select(PlatformSyncLog).order_by(PlatformSyncLog.id.desc()).limit(limit)
        )
        recent = list(result.scalars().all())
        return {
            "last_sync": recent[0] if recent else None,
            "recent_syncs": recent,
        }
