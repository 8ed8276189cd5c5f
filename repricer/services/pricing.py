"""
Repricing rules for precious-metal products.

Prices move with the day-over-day change of the metal's spot price and are
always rounded UP to the next 10 yen.
"""

from decimal import ROUND_CEILING, Decimal
from typing import Iterable, Optional, Sequence, Union

from repricer.core.config import get_settings
from repricer.core.enums import MetalType

Number = Union[int, float, Decimal]


def _to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() keeps float inputs at their shortest repr instead of binary noise
    return Decimal(str(value))


def calculate_change_ratio(current: Number, previous: Number) -> Decimal:
    """(current - previous) / previous, or 0 when there is no previous price."""
    current = _to_decimal(current)
    previous = _to_decimal(previous)
    if previous == 0:
        return Decimal(0)
    return (current - previous) / previous


def round_up_to_ten(price: Number) -> int:
    """
    Round up to the nearest 10 yen, whichever way the price moved.

    Examples:
        105263.15 -> 105270
        100000 -> 100000
    """
    tens = (_to_decimal(price) / 10).to_integral_value(rounding=ROUND_CEILING)
    return int(tens * 10)


def compute_new_price(old_price: Number, ratio: Number) -> int:
    """Apply the change ratio to the current price and round up to 10 yen."""
    return round_up_to_ten(_to_decimal(old_price) * (1 + _to_decimal(ratio)))


def is_material_change(
    gold_ratio: Number,
    platinum_ratio: Optional[Number],
    threshold: Optional[float] = None,
) -> bool:
    """
    True if either metal moved by at least the threshold.
    An unavailable platinum ratio (None) never counts as a change.
    """
    if threshold is None:
        threshold = get_settings().MATERIALITY_THRESHOLD
    limit = _to_decimal(threshold)
    if abs(_to_decimal(gold_ratio)) >= limit:
        return True
    return platinum_ratio is not None and abs(_to_decimal(platinum_ratio)) >= limit


class ProductFilter:
    """
    Product eligibility by name.

    A product is repriced when its name starts with one of the grade prefixes
    (e.g. 【新品】, 【中古A】) and contains a metal marker (K18, K24, Pt).
    """

    def __init__(
        self,
        prefixes: Optional[Sequence[str]] = None,
        gold_markers: Optional[Sequence[str]] = None,
        platinum_markers: Optional[Sequence[str]] = None,
    ):
        settings = get_settings()
        self.prefixes = tuple(prefixes if prefixes is not None else settings.ELIGIBLE_NAME_PREFIXES)
        self.gold_markers = tuple(gold_markers if gold_markers is not None else settings.GOLD_MARKERS)
        self.platinum_markers = tuple(
            platinum_markers if platinum_markers is not None else settings.PLATINUM_MARKERS
        )

    @staticmethod
    def _contains_any(name: str, markers: Iterable[str]) -> bool:
        return any(marker in name for marker in markers)

    def should_update_product(self, name: str) -> bool:
        if not name or not name.startswith(self.prefixes):
            return False
        return self._contains_any(name, self.platinum_markers + self.gold_markers)

    def get_metal_type(self, name: str) -> Optional[MetalType]:
        """Platinum markers are checked before gold markers."""
        if not self.should_update_product(name):
            return None
        if self._contains_any(name, self.platinum_markers):
            return MetalType.PLATINUM
        if self._contains_any(name, self.gold_markers):
            return MetalType.GOLD
        return None


def should_update_product(name: str) -> bool:
    return ProductFilter().should_update_product(name)


def get_metal_type(name: str) -> Optional[MetalType]:
    return ProductFilter().get_metal_type(name)
