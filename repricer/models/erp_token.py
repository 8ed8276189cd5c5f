# repricer/models/erp_token.py
from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from repricer.database import Base


class ErpToken(Base):
    """
    The single active ERP token pair.

    Exactly one row (id = SINGLETON_ID) is kept. It is created on first
    authentication and overwritten in place on every rotation.
    """
    __tablename__ = "erp_tokens"

    SINGLETON_ID = 1

    id = Column(Integer, primary_key=True)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=False)
    client_id = Column(String(255), nullable=True)
    client_secret = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<ErpToken(id={self.id}, updated_at={self.updated_at})>"
