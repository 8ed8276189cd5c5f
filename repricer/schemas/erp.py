"""
Schemas for data exchanged with the ERP API.
"""
from decimal import Decimal, InvalidOperation
from typing import Annotated, Any, List, Optional

from pydantic import BeforeValidator, Field

from repricer.schemas.base import BaseSchema


def _to_decimal_or_none(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, Decimal):
        return value
    text = str(value).replace(",", "").strip()
    if not text:
        return None
    try:
        result = Decimal(text)
    except InvalidOperation:
        return None
    return result if result.is_finite() else None


def _to_int_or_none(value: Any) -> Optional[int]:
    number = _to_decimal_or_none(value)
    return int(number) if number is not None else None


def _to_str_or_none(value: Any) -> Optional[str]:
    return None if value is None else str(value)


LooseDecimal = Annotated[Optional[Decimal], BeforeValidator(_to_decimal_or_none)]
LooseInt = Annotated[Optional[int], BeforeValidator(_to_int_or_none)]
LooseStr = Annotated[Optional[str], BeforeValidator(_to_str_or_none)]


class TokenPair(BaseSchema):
    access_token: str
    refresh_token: str


class ErpResponse(BaseSchema):
    """Envelope returned by every ERP endpoint."""
    result: LooseStr = None
    code: LooseStr = None
    message: LooseStr = None
    data: Optional[Any] = None
    count: LooseInt = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return self.result == "success"

    @property
    def rotated_tokens(self) -> Optional[TokenPair]:
        if self.access_token and self.refresh_token:
            return TokenPair(access_token=self.access_token, refresh_token=self.refresh_token)
        return None


class ErpProduct(BaseSchema):
    """Read-only snapshot of a catalog row from the goods search endpoint."""
    goods_id: Annotated[str, BeforeValidator(str)]
    goods_name: str = ""
    selling_price: LooseDecimal = Field(default=None, alias="goods_selling_price")
    cost_price: LooseDecimal = Field(default=None, alias="goods_cost_price")
    stock_quantity: LooseInt = None

    @classmethod
    def from_rows(cls, rows: List[dict]) -> List["ErpProduct"]:
        products = []
        for row in rows or []:
            if not row.get("goods_id"):
                continue
            products.append(cls.model_validate({**row, "goods_name": row.get("goods_name") or ""}))
        return products


class ProductPage(BaseSchema):
    """One page of the goods search. row_count counts raw rows, including ones without a goods_id."""
    products: List[ErpProduct] = Field(default_factory=list)
    row_count: int = 0

    @property
    def exhausted(self) -> bool:
        return self.row_count == 0


class KeepAliveResult(BaseSchema):
    success: bool
    refreshed: bool
    message: str
