# repricer/models/keepalive_log.py
from sqlalchemy import Boolean, Column, DateTime, Float, Integer, String, Text
from sqlalchemy.sql import func

from repricer.database import Base


class KeepAliveLog(Base):
    """Records each token keepalive attempt."""
    __tablename__ = "keepalive_logs"

    id = Column(Integer, primary_key=True)
    status = Column(String(20), nullable=False, index=True)  # SUCCESS, FAILED
    refreshed = Column(Boolean, nullable=False, default=False)
    message = Column(Text, nullable=True)
    duration_seconds = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<KeepAliveLog(id={self.id}, status='{self.status}', refreshed={self.refreshed})>"
