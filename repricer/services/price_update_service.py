# repricer/services/price_update_service.py
"""
Daily precious-metal price update.

Run flow:
    keepalive (best effort) -> enabled check -> business day check
    -> fetch spot prices -> save price history -> previous business day baseline
    -> change ratios -> materiality gate -> page through catalog and update prices
    -> marketplace sync (best effort) -> execution log

Every run ends in exactly one execution-log upsert for the day, whether it
succeeded, was skipped or failed.
"""

import asyncio
import logging
import time
from datetime import date
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple, Union

from sqlalchemy.ext.asyncio import AsyncSession

from repricer.core.config import Settings, get_settings
from repricer.core.enums import ExecutionReason, ExecutionStatus, MetalType
from repricer.core.exceptions import ApiError, NoBaselineError
from repricer.schemas.erp import ErpProduct
from repricer.schemas.pricing import PriceUpdateResult, ProductUpdateResult, SyncProduct, SyncResult
from repricer.services.business_calendar import is_business_day, today
from repricer.services.erp.client import ErpClient
from repricer.services.execution_log import ExecutionLogService
from repricer.services.platform_sync_service import PlatformSyncService
from repricer.services.price_feed import PriceFeedFetcher
from repricer.services.price_history import PriceHistoryService
from repricer.services.pricing import (
    ProductFilter,
    calculate_change_ratio,
    compute_new_price,
    is_material_change,
)

logger = logging.getLogger(__name__)

SKIP_DISABLED = "price update disabled"
SKIP_NOT_BUSINESS_DAY = "not a business day"
SKIP_NEGLIGIBLE_CHANGE = "negligible change"


def _as_float(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


class PriceUpdateService:
    """Runs one daily repricing pass. Build a fresh instance per run."""

    def __init__(
        self,
        db: AsyncSession,
        client: Optional[ErpClient] = None,
        price_feed: Optional[PriceFeedFetcher] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.client = client or ErpClient(db, settings=self.settings)
        self.price_feed = price_feed or PriceFeedFetcher(settings=self.settings)
        self.history = PriceHistoryService(db, settings=self.settings)
        self.execution_log = ExecutionLogService(db)
        self.sync_service = PlatformSyncService(db, self.client, settings=self.settings)
        self.product_filter = ProductFilter(
            prefixes=self.settings.ELIGIBLE_NAME_PREFIXES,
            gold_markers=self.settings.GOLD_MARKERS,
            platinum_markers=self.settings.PLATINUM_MARKERS,
        )

    async def run(
        self,
        reason: Union[ExecutionReason, str] = ExecutionReason.SCHEDULED,
        day: Optional[date] = None,
    ) -> PriceUpdateResult:
        """
        Execute the daily flow. Never raises; failures are logged and returned.

        Args:
            reason: Why the run happened (scheduled or manual), stored in the log
            day: Calendar day to run for (defaults to today in the business timezone)
        """
        started = time.monotonic()
        day = day or today(self.settings.BUSINESS_TIMEZONE)
        reason = ExecutionReason(reason).value
        gold_ratio: Optional[Decimal] = None
        platinum_ratio: Optional[Decimal] = None

        logger.info(f"=== PRICE UPDATE STARTING ({day}, {reason}) ===")

        try:
            await self._keep_alive()

            if not self.settings.PRICE_UPDATE_ENABLED:
                return await self._skip(day, reason, SKIP_DISABLED, started)

            if not is_business_day(day, self.settings.HOLIDAYS):
                return await self._skip(day, reason, SKIP_NOT_BUSINESS_DAY, started)

            current = await self.price_feed.fetch_current_prices()
            await self.history.save(day, current)
            logger.info(f"Current prices: gold={current.gold}/g, platinum={current.platinum}/g")

            previous = await self.history.get_previous_business_day_price(day)
            if previous is None:
                raise NoBaselineError(
                    f"No previous business day price found within {self.settings.BASELINE_LOOKBACK_DAYS} days"
                )

            gold_ratio = calculate_change_ratio(current.gold, previous.gold)
            if current.platinum is not None and previous.platinum is not None:
                platinum_ratio = calculate_change_ratio(current.platinum, previous.platinum)
            else:
                logger.warning("Platinum price unavailable for today or the baseline day; platinum products skipped")

            logger.info(
                f"Change ratios: gold={gold_ratio:.6%}, "
                f"platinum={'n/a' if platinum_ratio is None else format(platinum_ratio, '.6%')}"
            )

            if not is_material_change(gold_ratio, platinum_ratio, self.settings.MATERIALITY_THRESHOLD):
                return await self._skip(
                    day, reason, SKIP_NEGLIGIBLE_CHANGE, started, gold_ratio=gold_ratio, platinum_ratio=platinum_ratio
                )

            results, catalog_error = await self.update_product_prices(gold_ratio, platinum_ratio)
            updated = [r for r in results if r.success]
            failed = [r for r in results if not r.success]

            sync_result = None
            if updated and self.settings.PLATFORM_SYNC_ENABLED:
                sync_result = await self._sync_marketplaces(updated)

            status = ExecutionStatus.SUCCESS if updated else ExecutionStatus.FAILED
            errors = []
            if catalog_error:
                errors.append(catalog_error)
            if failed:
                errors.append(f"{len(failed)} product updates failed")
            elif not updated:
                errors.append("No products were updated")
            error_message = "; ".join(errors) or None

            duration = self._elapsed(started)
            await self.execution_log.record(
                day,
                status,
                reason,
                updated_products=len(updated),
                failed_products=len(failed),
                gold_ratio=_as_float(gold_ratio),
                platinum_ratio=_as_float(platinum_ratio),
                error_message=error_message,
                duration_seconds=duration,
            )

            logger.info(f"Price update complete: updated={len(updated)}, failed={len(failed)}")

            return PriceUpdateResult(
                success=True,
                status=status,
                message="Price update complete",
                error=error_message,
                gold_ratio=_as_float(gold_ratio),
                platinum_ratio=_as_float(platinum_ratio),
                total_products=len(results),
                updated_products=len(updated),
                failed_products=len(failed),
                duration_seconds=duration,
                sync=sync_result,
            )

        except Exception as e:
            error_message = str(e) or e.__class__.__name__
            logger.exception(f"Price update failed: {error_message}")

            duration = self._elapsed(started)
            try:
                await self.db.rollback()
                await self.execution_log.record(
                    day,
                    ExecutionStatus.FAILED,
                    reason,
                    gold_ratio=_as_float(gold_ratio),
                    platinum_ratio=_as_float(platinum_ratio),
                    error_message=error_message,
                    duration_seconds=duration,
                )
            except Exception as log_error:
                logger.error(f"Failed to write execution log: {log_error}")

            return PriceUpdateResult(
                success=False,
                status=ExecutionStatus.FAILED,
                message="Price update failed",
                error=error_message,
                gold_ratio=_as_float(gold_ratio),
                platinum_ratio=_as_float(platinum_ratio),
                duration_seconds=duration,
            )

    async def update_product_prices(
        self,
        gold_ratio: Decimal,
        platinum_ratio: Optional[Decimal],
    ) -> Tuple[List[ProductUpdateResult], Optional[str]]:
        """
        Walk the whole catalog page by page and reprice every eligible product.

        A failing first page raises (nothing has been touched yet). A failing
        later page stops the walk; products already repriced stay repriced and
        are returned together with the page error.

        Returns:
            Tuple of the per-product results and the catalog error, if paging stopped early
        """
        results: List[ProductUpdateResult] = []
        page_size = self.settings.CATALOG_PAGE_SIZE
        offset = 0

        while True:
            try:
                page = await self.client.get_products(limit=page_size, offset=offset)
            except ApiError as e:
                if offset == 0:
                    raise
                logger.error(f"Catalog page offset={offset} failed, stopping after {len(results)} results: {e}")
                return results, f"Catalog fetch stopped at offset {offset}: {e}"

            if page.exhausted:
                break

            logger.info(
                f"Processing catalog page offset={offset} "
                f"({page.row_count} rows, {len(page.products)} products)"
            )
            for product in page.products:
                result = await self._update_product(product, gold_ratio, platinum_ratio)
                if result is not None:
                    results.append(result)

            offset += page_size

        return results, None

    async def _update_product(
        self,
        product: ErpProduct,
        gold_ratio: Decimal,
        platinum_ratio: Optional[Decimal],
    ) -> Optional[ProductUpdateResult]:
        """Returns None when the product is not eligible or its price would not change."""
        metal_type = self.product_filter.get_metal_type(product.goods_name)
        if metal_type is None or product.selling_price is None:
            return None

        ratio = gold_ratio if metal_type == MetalType.GOLD else platinum_ratio
        if ratio is None:
            return None

        old_price = product.selling_price
        new_price = compute_new_price(old_price, ratio)
        if new_price == old_price:
            return None

        logger.info(f"Updating {product.goods_id}: {old_price} -> {new_price} ({metal_type.value})")
        try:
            await self.client.update_product_price(product.goods_id, new_price)
            result = ProductUpdateResult(
                goods_id=product.goods_id,
                goods_name=product.goods_name,
                old_price=old_price,
                new_price=new_price,
                metal_type=metal_type,
                success=True,
            )
        except ApiError as e:
            logger.error(f"Failed to update {product.goods_id}: {e}")
            result = ProductUpdateResult(
                goods_id=product.goods_id,
                goods_name=product.goods_name,
                old_price=old_price,
                new_price=new_price,
                metal_type=metal_type,
                success=False,
                error=str(e),
            )

        # Upstream rate limit
        await asyncio.sleep(self.settings.PRODUCT_UPDATE_DELAY_SECONDS)
        return result

    async def _keep_alive(self) -> None:
        try:
            result = await self.client.keep_alive()
            if not result.success:
                logger.warning(f"Keepalive before price update failed: {result.message}")
        except Exception as e:
            logger.warning(f"Keepalive before price update errored: {e}")

    async def _sync_marketplaces(self, updated: Sequence[ProductUpdateResult]) -> Optional[SyncResult]:
        """Marketplace sync never changes the run outcome: ERP prices are already committed."""
        products = [
            SyncProduct(
                goods_id=r.goods_id,
                goods_name=r.goods_name,
                new_price=r.new_price,
                metal_type=r.metal_type,
            )
            for r in updated
        ]
        try:
            return await self.sync_service.sync_prices(products)
        except Exception as e:
            logger.exception(f"Marketplace sync failed: {e}")
            try:
                await self.db.rollback()
            except Exception as rollback_error:
                logger.error(f"Rollback after marketplace sync failure failed: {rollback_error}")
            return None

    async def _skip(
        self,
        day: date,
        reason: str,
        skipped_reason: str,
        started: float,
        gold_ratio: Optional[Decimal] = None,
        platinum_ratio: Optional[Decimal] = None,
    ) -> PriceUpdateResult:
        duration = self._elapsed(started)
        await self.execution_log.record(
            day,
            ExecutionStatus.SKIPPED,
            reason,
            gold_ratio=_as_float(gold_ratio),
            platinum_ratio=_as_float(platinum_ratio),
            skipped_reason=skipped_reason,
            duration_seconds=duration,
        )
        logger.info(f"Price update skipped for {day}: {skipped_reason}")
        return PriceUpdateResult(
            success=True,
            status=ExecutionStatus.SKIPPED,
            message=f"Skipped: {skipped_reason}",
            skipped=True,
            skipped_reason=skipped_reason,
            gold_ratio=_as_float(gold_ratio),
            platinum_ratio=_as_float(platinum_ratio),
            duration_seconds=duration,
        )

    @staticmethod
    def _elapsed(started: float) -> float:
        return round(time.monotonic() - started, 3)
