"""
Spot price feed for gold and platinum.

Scrapes the retail (tax included) JPY/gram price from the bullion dealer's
public price page. Rows look like:

    <tr class="gold"> ... <td class="retail_tax">19,230 yen</td> ... </tr>
"""

import logging
import re
from decimal import Decimal
from typing import Optional

import httpx
from bs4 import BeautifulSoup

from repricer.core.config import Settings, get_settings
from repricer.core.exceptions import PriceFeedError, PriceParseError
from repricer.schemas.pricing import SpotPrices

logger = logging.getLogger(__name__)

PRICE_PATTERN = re.compile(r"(\d{1,3}(?:,\d{3})+|\d+)(?:\.\d+)?")


def parse_price_text(text: str) -> Optional[Decimal]:
    """Extract a comma-grouped number such as '19,230 yen'."""
    match = PRICE_PATTERN.search(text or "")
    if not match:
        return None
    return Decimal(match.group(0).replace(",", ""))


def parse_spot_prices(html: str) -> SpotPrices:
    """
    Parse gold and platinum prices from the feed page.

    Raises:
        PriceParseError: The gold row or its price cell is missing
    """
    soup = BeautifulSoup(html, "html.parser")

    def _row_price(row_class: str) -> Optional[Decimal]:
        row = soup.find("tr", class_=row_class)
        if row is None:
            return None
        cell = row.find("td", class_="retail_tax")
        if cell is None:
            return None
        return parse_price_text(cell.get_text(strip=True))

    gold = _row_price("gold")
    platinum = _row_price("pt")

    logger.info(f"Price extraction: gold={gold if gold is not None else 'not found'}, "
                f"platinum={platinum if platinum is not None else 'not found'}")

    if gold is None:
        raise PriceParseError("Gold price not found in price feed")
    if platinum is None:
        logger.warning("Platinum price not found in price feed; platinum repricing will be skipped")

    return SpotPrices(gold=gold, platinum=platinum)


class PriceFeedFetcher:
    """Fetches today's spot prices. No retries: the caller decides whether to abort the run."""

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings or get_settings()
        self._transport = transport

    async def fetch_current_prices(self) -> SpotPrices:
        """
        Returns:
            SpotPrices: gold (always present) and platinum (None if missing)

        Raises:
            PriceFeedError: The page could not be fetched
            PriceParseError: The page has no gold price
        """
        headers = {"User-Agent": self.settings.PRICE_FEED_USER_AGENT}
        try:
            async with httpx.AsyncClient(
                timeout=self.settings.HTTP_TIMEOUT_SECONDS,
                transport=self._transport,
                follow_redirects=True,
            ) as client:
                response = await client.get(self.settings.PRICE_FEED_URL, headers=headers)
        except httpx.RequestError as e:
            logger.error(f"Price feed request failed: {str(e)}")
            raise PriceFeedError(f"Failed to fetch price feed: {str(e)}")

        if response.status_code != 200:
            logger.error(f"Price feed returned HTTP {response.status_code}")
            raise PriceFeedError(f"Price feed returned HTTP {response.status_code}")

        return parse_spot_prices(response.text)
