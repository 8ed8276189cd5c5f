# repricer/models/platform_sync_log.py
from sqlalchemy import JSON, Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from repricer.database import Base


class PlatformSyncLog(Base):
    """
    Append-only audit trail of marketplace price pushes, one row per batch.
    """
    __tablename__ = "platform_sync_logs"

    id = Column(Integer, primary_key=True, index=True)
    synced_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    product_count = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, index=True)  # success, error

    # e.g. {"batch": 2, "total_batches": 3, "retries": 1, "goods_ids": [...]}
    details = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)

    def __repr__(self):
        return f"<PlatformSyncLog(id={self.id}, products={self.product_count}, status='{self.status}')>"
