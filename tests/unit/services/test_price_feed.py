# Spot price feed unit tests
from decimal import Decimal

import httpx
import pytest

from repricer.core.exceptions import PriceFeedError, PriceParseError
from repricer.services.price_feed import PriceFeedFetcher, parse_price_text, parse_spot_prices

FEED_HTML = """
<html><body>
<table id="metal_price">
  <tr class="gold"><th>GOLD</th><td class="retail_tax">20,000 yen</td><td class="purchase_tax">19,800 yen</td></tr>
  <tr class="pt"><th>PLATINUM</th><td class="retail_tax">5,120 yen</td><td class="purchase_tax">4,950 yen</td></tr>
  <tr class="silver"><th>SILVER</th><td class="retail_tax">250.80 yen</td></tr>
</table>
</body></html>
"""

FEED_HTML_NO_PLATINUM = """
<table><tr class="gold"><td class="retail_tax">20,000 yen</td></tr></table>
"""


"""
1. Parsing Tests
"""

@pytest.mark.parametrize("text, expected", [
    ("19,230 yen", Decimal("19230")),
    ("1,234.56円", Decimal("1234.56")),
    ("250 yen", Decimal("250")),
    ("-", None),
    ("", None),
])
def test_parse_price_text(text, expected):
    assert parse_price_text(text) == expected


def test_parse_spot_prices():
    prices = parse_spot_prices(FEED_HTML)
    assert prices.gold == Decimal("20000")
    assert prices.platinum == Decimal("5120")


def test_missing_platinum_is_none():
    prices = parse_spot_prices(FEED_HTML_NO_PLATINUM)
    assert prices.gold == Decimal("20000")
    assert prices.platinum is None


def test_missing_gold_raises():
    with pytest.raises(PriceParseError):
        parse_spot_prices('<table><tr class="pt"><td class="retail_tax">5,120 yen</td></tr></table>')


"""
2. Fetcher Tests
"""

async def test_fetch_current_prices(settings):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text=FEED_HTML)

    fetcher = PriceFeedFetcher(settings=settings, transport=httpx.MockTransport(handler))
    prices = await fetcher.fetch_current_prices()

    assert prices.gold == Decimal("20000")
    assert str(seen[0].url) == settings.PRICE_FEED_URL
    assert seen[0].headers["User-Agent"] == settings.PRICE_FEED_USER_AGENT


async def test_fetch_http_error_raises(settings):
    fetcher = PriceFeedFetcher(
        settings=settings,
        transport=httpx.MockTransport(lambda request: httpx.Response(503, text="maintenance")),
    )
    with pytest.raises(PriceFeedError, match="503"):
        await fetcher.fetch_current_prices()


async def test_fetch_network_error_raises(settings):
    def handler(request):
        raise httpx.ConnectError("connection refused")

    fetcher = PriceFeedFetcher(settings=settings, transport=httpx.MockTransport(handler))
    with pytest.raises(PriceFeedError, match="connection refused"):
        await fetcher.fetch_current_prices()
