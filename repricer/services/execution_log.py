# repricer/services/execution_log.py
import logging
from datetime import date
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from repricer.core.enums import ExecutionStatus
from repricer.database import dialect_insert
from repricer.models.execution_log import ExecutionLog

logger = logging.getLogger(__name__)


class ExecutionLogService:
    """
    One summary row per calendar day for the price-update run.

    Writes are upserts keyed by date, so manual re-runs overwrite the day's
    record instead of adding a second one.
    """

    FIELDS = (
        "status",
        "updated_products",
        "failed_products",
        "gold_ratio",
        "platinum_ratio",
        "execution_reason",
        "error_message",
        "skipped_reason",
        "duration_seconds",
    )

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        day: date,
        status: ExecutionStatus,
        execution_reason: str,
        updated_products: int = 0,
        failed_products: int = 0,
        gold_ratio: Optional[float] = None,
        platinum_ratio: Optional[float] = None,
        error_message: Optional[str] = None,
        skipped_reason: Optional[str] = None,
        duration_seconds: Optional[float] = None,
    ) -> None:
        values = {
            "date": day,
            "status": ExecutionStatus(status).value,
            "updated_products": updated_products,
            "failed_products": failed_products,
            "gold_ratio": gold_ratio,
            "platinum_ratio": platinum_ratio,
            "execution_reason": execution_reason,
            "error_message": error_message,
            "skipped_reason": skipped_reason,
            "duration_seconds": duration_seconds,
        }
        stmt = dialect_insert(self.db, ExecutionLog).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["date"],
            set_={
                **{field: getattr(stmt.excluded, field) for field in self.FIELDS},
                "updated_at": func.now(),
            },
        )
        await self.db.execute(stmt)
        await self.db.commit()

        logger.info(f"Execution log {day}: {values['status']} (updated={updated_products}, failed={failed_products})")

    async def get(self, day: date) -> Optional[ExecutionLog]:
        return await self.db.scalar(
            select(ExecutionLog)
            .where(ExecutionLog.date == day)
            .execution_options(populate_existing=True)
        )

    async def recent(self, limit: int = 30) -> List[ExecutionLog]:
        result = await self.db.execute(
            select(ExecutionLog).order_by(ExecutionLog.date.desc()).limit(limit)
        )
        return list(result.scalars().all())

    async def last_successful(self) -> Optional[ExecutionLog]:
        return await self.db.scalar(
            select(ExecutionLog)
            .where(ExecutionLog.status == ExecutionStatus.SUCCESS.value, ExecutionLog.updated_products > 0)
            .order_by(ExecutionLog.date.desc())
            .limit(1)
        )
