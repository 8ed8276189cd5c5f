# repricer/models/execution_log.py
from sqlalchemy import Column, Date, DateTime, Float, Integer, String, Text
from sqlalchemy.sql import func

from repricer.database import Base


class ExecutionLog(Base):
    """
    Outcome of the daily price-update run.

    One row per calendar day; re-runs on the same day overwrite it.
    """
    __tablename__ = "execution_logs"

    id = Column(Integer, primary_key=True)
    date = Column(Date, nullable=False, unique=True, index=True)
    status = Column(String(20), nullable=False, index=True)  # SUCCESS, FAILED, SKIPPED
    updated_products = Column(Integer, nullable=False, default=0)
    failed_products = Column(Integer, nullable=False, default=0)
    gold_ratio = Column(Float, nullable=True)
    platinum_ratio = Column(Float, nullable=True)
    execution_reason = Column(String(50), nullable=False)
    error_message = Column(Text, nullable=True)
    skipped_reason = Column(String(255), nullable=True)
    duration_seconds = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<ExecutionLog(date={self.date}, status='{self.status}', updated={self.updated_products})>"
