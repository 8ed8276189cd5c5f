# repricer/models/price_history.py
from sqlalchemy import Column, Date, DateTime, Integer, Numeric, String
from sqlalchemy.sql import func

from repricer.database import Base


class PriceHistory(Base):
    """
    Daily spot prices (JPY per gram), one row per calendar day.

    Doubles as the baseline lookup for the previous business day.
    """
    __tablename__ = "price_history"

    id = Column(Integer, primary_key=True)
    date = Column(Date, nullable=False, unique=True, index=True)
    gold_price = Column(Numeric(12, 2), nullable=False)
    platinum_price = Column(Numeric(12, 2), nullable=True)  # Null when the feed had no platinum row
    source = Column(String(50), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<PriceHistory(date={self.date}, gold={self.gold_price}, platinum={self.platinum_price})>"
