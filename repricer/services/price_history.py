# repricer/services/price_history.py
import logging
from datetime import date
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from repricer.core.config import Settings, get_settings
from repricer.database import dialect_insert
from repricer.models.price_history import PriceHistory
from repricer.schemas.pricing import SpotPrices
from repricer.services.business_calendar import days_back

logger = logging.getLogger(__name__)


class PriceHistoryService:
    """Daily spot price log and previous-business-day baseline lookup."""

    def __init__(self, db: AsyncSession, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    async def save(self, day: date, prices: SpotPrices, source: Optional[str] = None) -> None:
        """Create or overwrite the entry for `day`."""
        values = {
            "date": day,
            "gold_price": prices.gold,
            "platinum_price": prices.platinum,
            "source": source or self.settings.PRICE_FEED_SOURCE,
        }
        stmt = dialect_insert(self.db, PriceHistory).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["date"],
            set_={
                "gold_price": stmt.excluded.gold_price,
                "platinum_price": stmt.excluded.platinum_price,
                "source": stmt.excluded.source,
                "updated_at": func.now(),
            },
        )
        await self.db.execute(stmt)
        await self.db.commit()
        logger.info(f"Saved price history for {day}: gold={prices.gold}, platinum={prices.platinum}")

    async def get(self, day: date) -> Optional[PriceHistory]:
        return await self.db.scalar(
            select(PriceHistory)
            .where(PriceHistory.date == day)
            .execution_options(populate_existing=True)
        )

    async def get_previous_business_day_price(
        self,
        day: date,
        lookback_days: Optional[int] = None,
    ) -> Optional[SpotPrices]:
        """
        Walk back one day at a time from the day before `day` and return the
        first recorded prices, or None if nothing is found within the window.
        """
        lookback_days = lookback_days or self.settings.BASELINE_LOOKBACK_DAYS
        for candidate in days_back(day, lookback_days):
            entry = await self.get(candidate)
            if entry is not None:
                logger.info(f"Baseline prices found for {candidate}")
                return SpotPrices(gold=entry.gold_price, platinum=entry.platinum_price)
        logger.warning(f"No price history within {lookback_days} days before {day}")
        return None

    async def recent(self, limit: int = 30) -> List[PriceHistory]:
        result = await self.db.execute(
            select(PriceHistory).order_by(PriceHistory.date.desc()).limit(limit)
        )
        return list(result.scalars().all())
