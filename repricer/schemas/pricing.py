"""
Schemas for the price-update run and marketplace sync.
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import Field

from repricer.core.enums import ExecutionStatus, MetalType
from repricer.schemas.base import BaseSchema


class SpotPrices(BaseSchema):
    """Spot prices in JPY per gram. Platinum is None when the feed omitted it."""
    gold: Decimal
    platinum: Optional[Decimal] = None


class ProductUpdateResult(BaseSchema):
    goods_id: str
    goods_name: str
    old_price: Decimal
    new_price: int
    metal_type: Optional[MetalType] = None
    success: bool
    error: Optional[str] = None


class SyncProduct(BaseSchema):
    goods_id: str
    goods_name: str = ""
    new_price: int = Field(gt=0)
    metal_type: Optional[MetalType] = None


class PlatformSyncRequest(BaseSchema):
    products: List[SyncProduct] = Field(default_factory=list)


class SyncBatchResult(BaseSchema):
    batch: int
    product_count: int
    success: bool
    retries: int = 0
    error: Optional[str] = None


class SyncResult(BaseSchema):
    success: bool
    message: str
    total_products: int
    processed_products: int
    total_batches: int
    successful_batches: int
    details: List[SyncBatchResult] = Field(default_factory=list)


class PriceUpdateResult(BaseSchema):
    """Payload returned by every price-update run, whatever the outcome."""
    success: bool
    status: ExecutionStatus
    message: str
    skipped: bool = False
    skipped_reason: Optional[str] = None
    error: Optional[str] = None
    gold_ratio: Optional[float] = None
    platinum_ratio: Optional[float] = None
    total_products: int = 0
    updated_products: int = 0
    failed_products: int = 0
    duration_seconds: float = 0.0
    sync: Optional[SyncResult] = None


class PlatformSyncLogRead(BaseSchema):
    id: int
    synced_at: datetime
    product_count: int
    status: str
    details: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
