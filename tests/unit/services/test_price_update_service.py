# Daily price update flow tests
from datetime import date
from decimal import Decimal

import httpx
import pytest
from sqlalchemy import func, select

from repricer.core.enums import ExecutionStatus
from repricer.models.execution_log import ExecutionLog
from repricer.models.platform_sync_log import PlatformSyncLog
from repricer.schemas.pricing import SpotPrices
from repricer.services.erp.client import ErpClient
from repricer.services.execution_log import ExecutionLogService
from repricer.services.price_feed import PriceFeedFetcher
from repricer.services.price_history import PriceHistoryService
from repricer.services.price_update_service import PriceUpdateService

LOGIN = ErpClient.LOGIN_USER_INFO_ENDPOINT
SEARCH = ErpClient.GOODS_SEARCH_ENDPOINT
UPLOAD = ErpClient.GOODS_UPLOAD_ENDPOINT
OK = {"result": "success"}

WEDNESDAY = date(2025, 11, 5)
TUESDAY = date(2025, 11, 4)

CATALOG = [
    {"goods_id": "G-1", "goods_name": "【新品】K18 喜平ネックレス", "goods_selling_price": "100000"},
    {"goods_id": "P-1", "goods_name": "【中古A】Pt900 リング", "goods_selling_price": "50000"},
    {"goods_id": "S-1", "goods_name": "シルバー925 リング", "goods_selling_price": "5000"},
    {"goods_id": "G-2", "goods_name": "【中古B】K24 インゴット", "goods_selling_price": ""},
]


def feed_html(gold, platinum=None):
    rows = f'<tr class="gold"><td class="retail_tax">{gold:,} yen</td></tr>'
    if platinum is not None:
        rows += f'<tr class="pt"><td class="retail_tax">{platinum:,} yen</td></tr>'
    return f"<table>{rows}</table>"


class FakeFeed:
    def __init__(self, html=None, status_code=200):
        self.html = html
        self.status_code = status_code
        self.requests = 0

    def handler(self, request):
        self.requests += 1
        return httpx.Response(self.status_code, text=self.html or "")


def catalog_pages(rows, page_size):
    def search(request, form):
        offset = int(form["offset"])
        return httpx.Response(200, json={"result": "success", "data": rows[offset:offset + page_size]})
    return search


@pytest.fixture
def build_service(db_session, settings, fake_erp, stored_tokens):
    def _build(feed, settings_override=None):
        active_settings = settings.model_copy(update=settings_override or {})
        client = ErpClient(db_session, settings=active_settings, transport=fake_erp.transport)
        fetcher = PriceFeedFetcher(settings=active_settings, transport=httpx.MockTransport(feed.handler))
        return PriceUpdateService(db_session, client=client, price_feed=fetcher, settings=active_settings)
    return _build


@pytest.fixture
def erp_catalog(fake_erp, settings):
    fake_erp.on(LOGIN, OK)
    fake_erp.on(SEARCH, catalog_pages(CATALOG, settings.CATALOG_PAGE_SIZE))
    fake_erp.on(UPLOAD, OK)
    return fake_erp


async def save_history(db_session, settings, day, gold, platinum=None):
    await PriceHistoryService(db_session, settings=settings).save(
        day, SpotPrices(gold=Decimal(gold), platinum=Decimal(platinum) if platinum is not None else None)
    )


def price_uploads(fake_erp):
    """Single-product price updates (the marketplace sync batches carry extra columns)."""
    return [form["data"] for form in fake_erp.calls(UPLOAD) if form["data"].startswith("syohin_code,baika_tnk\n")]


"""
1. End-to-end Tests
"""

async def test_gold_rise_reprices_gold_products(db_session, settings, build_service, erp_catalog):
    await save_history(db_session, settings, TUESDAY, 19000, 5000)
    service = build_service(FakeFeed(feed_html(20000, 5000)))

    result = await service.run(day=WEDNESDAY)

    assert result.success is True
    assert result.status == ExecutionStatus.SUCCESS
    assert result.updated_products == 1
    assert result.failed_products == 0
    assert result.gold_ratio == pytest.approx(1000 / 19000)
    assert result.platinum_ratio == 0

    # 100000 * 20000 / 19000 = 105263.16 -> 105270; platinum is unchanged
    assert price_uploads(erp_catalog) == ["syohin_code,baika_tnk\nG-1,105270"]

    log = await ExecutionLogService(db_session).get(WEDNESDAY)
    assert log.status == "SUCCESS"
    assert log.updated_products == 1
    assert log.execution_reason == "scheduled"

    assert result.sync.success is True
    sync_logs = (await db_session.execute(select(PlatformSyncLog))).scalars().all()
    assert len(sync_logs) == 1
    assert sync_logs[0].details["goods_ids"] == ["G-1"]

    history = await PriceHistoryService(db_session, settings=settings).get(WEDNESDAY)
    assert history.gold_price == Decimal("20000")


async def test_negligible_change_is_skipped(db_session, settings, build_service, erp_catalog):
    await save_history(db_session, settings, TUESDAY, 20000, 100000)
    service = build_service(FakeFeed(feed_html(20001, 100003)))

    result = await service.run(day=WEDNESDAY)

    assert result.status == ExecutionStatus.SKIPPED
    assert result.skipped_reason == "negligible change"
    assert result.updated_products == 0
    assert erp_catalog.calls(SEARCH) == []
    assert erp_catalog.calls(UPLOAD) == []

    log = await ExecutionLogService(db_session).get(WEDNESDAY)
    assert log.status == "SKIPPED"
    assert log.skipped_reason == "negligible change"


async def test_platinum_products_use_platinum_ratio(db_session, settings, build_service, erp_catalog):
    await save_history(db_session, settings, TUESDAY, 20000, 5000)
    service = build_service(FakeFeed(feed_html(20000, 4500)))

    result = await service.run(day=WEDNESDAY)

    assert result.status == ExecutionStatus.SUCCESS
    assert price_uploads(erp_catalog) == ["syohin_code,baika_tnk\nP-1,45000"]


async def test_missing_platinum_skips_platinum_products(db_session, settings, build_service, erp_catalog):
    await save_history(db_session, settings, TUESDAY, 19000, 5000)
    service = build_service(FakeFeed(feed_html(20000)))

    result = await service.run(day=WEDNESDAY)

    assert result.status == ExecutionStatus.SUCCESS
    assert result.platinum_ratio is None
    assert price_uploads(erp_catalog) == ["syohin_code,baika_tnk\nG-1,105270"]

    history = await PriceHistoryService(db_session, settings=settings).get(WEDNESDAY)
    assert history.platinum_price is None


"""
2. Skip Tests
"""

async def test_weekend_is_skipped_before_fetching(db_session, settings, build_service, erp_catalog):
    feed = FakeFeed(feed_html(20000, 5000))

    result = await build_service(feed).run(day=date(2025, 1, 4))

    assert result.status == ExecutionStatus.SKIPPED
    assert result.skipped_reason == "not a business day"
    assert feed.requests == 0

    log = await ExecutionLogService(db_session).get(date(2025, 1, 4))
    assert log.status == "SKIPPED"


async def test_holiday_is_skipped(db_session, settings, build_service, erp_catalog):
    result = await build_service(FakeFeed(feed_html(20000))).run(day=date(2025, 11, 3))

    assert result.skipped_reason == "not a business day"


async def test_disabled_run_is_skipped(db_session, settings, build_service, erp_catalog):
    feed = FakeFeed(feed_html(20000, 5000))

    result = await build_service(feed, {"PRICE_UPDATE_ENABLED": False}).run(day=WEDNESDAY)

    assert result.status == ExecutionStatus.SKIPPED
    assert result.skipped_reason == "price update disabled"
    assert feed.requests == 0


"""
3. Failure Tests
"""

async def test_no_baseline_fails(db_session, settings, build_service, erp_catalog):
    result = await build_service(FakeFeed(feed_html(20000, 5000))).run(day=WEDNESDAY)

    assert result.success is False
    assert result.status == ExecutionStatus.FAILED
    assert "No previous business day price" in result.error
    assert erp_catalog.calls(SEARCH) == []

    log = await ExecutionLogService(db_session).get(WEDNESDAY)
    assert log.status == "FAILED"
    assert "No previous business day price" in log.error_message

    # today's prices are still recorded for tomorrow's baseline
    assert await PriceHistoryService(db_session, settings=settings).get(WEDNESDAY) is not None


async def test_feed_failure_writes_no_history(db_session, settings, build_service, erp_catalog):
    await save_history(db_session, settings, TUESDAY, 19000, 5000)

    result = await build_service(FakeFeed(status_code=503)).run(day=WEDNESDAY)

    assert result.status == ExecutionStatus.FAILED
    assert await PriceHistoryService(db_session, settings=settings).get(WEDNESDAY) is None
    log = await ExecutionLogService(db_session).get(WEDNESDAY)
    assert log.status == "FAILED"


async def test_missing_gold_price_fails(db_session, settings, build_service, erp_catalog):
    await save_history(db_session, settings, TUESDAY, 19000, 5000)

    result = await build_service(FakeFeed("<html>maintenance</html>")).run(day=WEDNESDAY)

    assert result.status == ExecutionStatus.FAILED
    assert result.error == "Gold price not found in price feed"


async def test_catalog_failure_aborts_run(db_session, settings, build_service, fake_erp):
    await save_history(db_session, settings, TUESDAY, 19000, 5000)
    fake_erp.on(LOGIN, OK)
    fake_erp.on(SEARCH, {"result": "error", "code": "001002", "message": "Search failed"})

    result = await build_service(FakeFeed(feed_html(20000, 5000))).run(day=WEDNESDAY)

    assert result.status == ExecutionStatus.FAILED
    assert "Search failed" in result.error


async def test_product_failure_is_counted_not_fatal(db_session, settings, build_service, fake_erp):
    await save_history(db_session, settings, TUESDAY, 19000, 4000)
    fake_erp.on(LOGIN, OK)
    fake_erp.on(SEARCH, catalog_pages(CATALOG, settings.CATALOG_PAGE_SIZE))

    def upload(request, form):
        if form["data"].endswith("P-1,62500"):
            return httpx.Response(200, json={"result": "error", "code": "001001", "message": "Locked product"})
        return httpx.Response(200, json=OK)

    fake_erp.on(UPLOAD, upload)

    result = await build_service(FakeFeed(feed_html(20000, 5000))).run(day=WEDNESDAY)

    assert result.status == ExecutionStatus.SUCCESS
    assert result.updated_products == 1
    assert result.failed_products == 1

    log = await ExecutionLogService(db_session).get(WEDNESDAY)
    assert log.failed_products == 1
    assert log.error_message == "1 product updates failed"


async def test_nothing_updated_is_failed(db_session, settings, build_service, fake_erp):
    await save_history(db_session, settings, TUESDAY, 19000, 5000)
    fake_erp.on(LOGIN, OK)
    fake_erp.on(SEARCH, {"result": "success", "data": []})

    result = await build_service(FakeFeed(feed_html(20000, 5000))).run(day=WEDNESDAY)

    assert result.status == ExecutionStatus.FAILED
    assert result.updated_products == 0


"""
4. Pagination and Re-run Tests
"""

async def test_catalog_is_paged_until_empty(db_session, settings, build_service, fake_erp):
    await save_history(db_session, settings, TUESDAY, 19000, 5000)
    fake_erp.on(LOGIN, OK)
    fake_erp.on(SEARCH, catalog_pages(CATALOG, 3))
    fake_erp.on(UPLOAD, OK)

    result = await build_service(FakeFeed(feed_html(20000, 5000)), {"CATALOG_PAGE_SIZE": 3}).run(day=WEDNESDAY)

    assert result.updated_products == 1
    assert [form["offset"] for form in fake_erp.calls(SEARCH)] == ["0", "3", "6"]
    assert all(form["limit"] == "3" for form in fake_erp.calls(SEARCH))


async def test_sync_disabled(db_session, settings, build_service, erp_catalog):
    await save_history(db_session, settings, TUESDAY, 19000, 5000)

    result = await build_service(FakeFeed(feed_html(20000, 5000)), {"PLATFORM_SYNC_ENABLED": False}).run(day=WEDNESDAY)

    assert result.status == ExecutionStatus.SUCCESS
    assert result.sync is None
    assert len(erp_catalog.calls(UPLOAD)) == 1


async def test_manual_rerun_overwrites_execution_log(db_session, settings, build_service, erp_catalog):
    await save_history(db_session, settings, TUESDAY, 19000, 5000)
    feed = FakeFeed(feed_html(20000, 5000))

    await build_service(feed).run(day=WEDNESDAY)
    await build_service(feed).run(reason="manual", day=WEDNESDAY)

    count = await db_session.scalar(select(func.count()).select_from(ExecutionLog))
    log = await ExecutionLogService(db_session).get(WEDNESDAY)
    assert count == 1
    assert log.execution_reason == "manual"


async def test_later_catalog_page_failure_keeps_earlier_updates(db_session, settings, build_service, fake_erp):
    await save_history(db_session, settings, TUESDAY, 19000, 5000)
    fake_erp.on(LOGIN, OK)
    fake_erp.on(
        SEARCH,
        {"result": "success", "data": CATALOG[:1]},
        {"result": "error", "code": "001002", "message": "Search failed"},
    )
    fake_erp.on(UPLOAD, OK)

    result = await build_service(FakeFeed(feed_html(20000, 5000)), {"CATALOG_PAGE_SIZE": 1}).run(day=WEDNESDAY)

    assert result.success is True
    assert result.status == ExecutionStatus.SUCCESS
    assert result.updated_products == 1
    assert "Search failed" in result.error
    assert [form["offset"] for form in fake_erp.calls(SEARCH)] == ["0", "1"]
    assert price_uploads(fake_erp) == ["syohin_code,baika_tnk\nG-1,105270"]

    log = await ExecutionLogService(db_session).get(WEDNESDAY)
    assert log.updated_products == 1
    assert "Catalog fetch stopped at offset 1" in log.error_message

    # products repriced before the failing page still reach the marketplaces
    sync_logs = (await db_session.execute(select(PlatformSyncLog))).scalars().all()
    assert len(sync_logs) == 1
    assert sync_logs[0].details["goods_ids"] == ["G-1"]


async def test_page_of_rows_without_ids_does_not_end_catalog(db_session, settings, build_service, fake_erp):
    await save_history(db_session, settings, TUESDAY, 19000, 5000)
    rows = [{"goods_id": "", "goods_name": "draft"}, {"goods_name": "draft"}, *CATALOG]
    fake_erp.on(LOGIN, OK)
    fake_erp.on(SEARCH, catalog_pages(rows, 2))
    fake_erp.on(UPLOAD, OK)

    result = await build_service(FakeFeed(feed_html(20000, 5000)), {"CATALOG_PAGE_SIZE": 2}).run(day=WEDNESDAY)

    assert result.updated_products == 1
    assert [form["offset"] for form in fake_erp.calls(SEARCH)] == ["0", "2", "4", "6"]


"""
5. Database Failure Tests
"""

async def test_failed_rollback_still_returns_payload(db_session, settings, build_service, erp_catalog, mocker):
    mocker.patch.object(db_session, "rollback", mocker.AsyncMock(side_effect=RuntimeError("connection lost")))

    result = await build_service(FakeFeed(feed_html(20000, 5000))).run(day=WEDNESDAY)

    assert result.success is False
    assert result.status == ExecutionStatus.FAILED
    assert "No previous business day price" in result.error


async def test_sync_crash_with_failed_rollback_keeps_run_successful(db_session, settings, build_service, erp_catalog, mocker):
    await save_history(db_session, settings, TUESDAY, 19000, 5000)
    service = build_service(FakeFeed(feed_html(20000, 5000)))
    mocker.patch.object(service.sync_service, "sync_prices", mocker.AsyncMock(side_effect=RuntimeError("db gone")))
    mocker.patch.object(db_session, "rollback", mocker.AsyncMock(side_effect=RuntimeError("connection lost")))

    result = await service.run(day=WEDNESDAY)

    assert result.status == ExecutionStatus.SUCCESS
    assert result.updated_products == 1
    assert result.sync is None

    log = await ExecutionLogService(db_session).get(WEDNESDAY)
    assert log.status == "SUCCESS"
