# repricer/core/config.py

import os
from datetime import date
from functools import lru_cache
from typing import Annotated, List, Optional

from pydantic import BeforeValidator, ConfigDict
from pydantic_settings import BaseSettings, NoDecode


def _parse_str_list(value):
    if value in (None, "", []):
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    if isinstance(value, (list, tuple, set)):
        return [str(item).strip() for item in value if str(item).strip()]
    return []


def _parse_date_list(value):
    return [item if isinstance(item, date) else date.fromisoformat(item) for item in _parse_str_list(value)]


StrList = Annotated[List[str], NoDecode, BeforeValidator(_parse_str_list)]
DateList = Annotated[List[date], NoDecode, BeforeValidator(_parse_date_list)]

# Japanese national holidays (including substitute holidays). Refresh yearly.
DEFAULT_HOLIDAYS = (
    "2025-01-01,2025-01-13,2025-02-11,2025-02-24,2025-03-20,2025-04-29,"
    "2025-05-05,2025-05-06,2025-07-21,2025-08-11,2025-09-15,2025-09-23,"
    "2025-10-13,2025-11-03,2025-11-24,"
    "2026-01-01,2026-01-12,2026-02-11,2026-02-23,2026-03-20,2026-04-29,"
    "2026-05-04,2026-05-05,2026-05-06,2026-07-20,2026-08-11,2026-09-21,"
    "2026-09-22,2026-09-23,2026-10-12,2026-11-03,2026-11-23"
)


class Settings(BaseSettings):
    """
    Application settings.
    Loads values from environment variables (.env file)
    """
    # Database settings
    DATABASE_URL: str = ""

    # Security
    CRON_SECRET: str = ""

    # ERP API / OAuth
    ERP_API_BASE_URL: str = "https://api.next-engine.org"
    ERP_OAUTH_BASE_URL: str = "https://base.next-engine.org"
    ERP_TOKEN_ENDPOINT: str = "/api_v1_oauth2_token"
    ERP_CLIENT_ID: str = ""
    ERP_CLIENT_SECRET: str = ""
    ERP_OAUTH_STATE: str = "erp_auth_state"
    ERP_INITIAL_ACCESS_TOKEN: str = ""
    ERP_INITIAL_REFRESH_TOKEN: str = ""
    ERP_MAX_ATTEMPTS: int = 2
    BASE_URL: str = ""  # Public URL of this service, used for the OAuth redirect

    # Upstream error classification
    TOKEN_ERROR_CODES: StrList = ["002004"]
    TOKEN_ERROR_MESSAGE_MARKERS: StrList = ["access_token", "が不正です"]
    SYNC_RETRYABLE_ERROR_CODES: StrList = ["003001", "003002"]

    # HTTP
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # Price feed
    PRICE_FEED_URL: str = "https://gold.tanaka.co.jp/commodity/souba/english/index.php"
    PRICE_FEED_USER_AGENT: str = "Mozilla/5.0 (compatible; ERP Precious Metal Repricer)"
    PRICE_FEED_SOURCE: str = "tanaka"

    # Repricing rules
    PRICE_UPDATE_ENABLED: bool = True
    HOLIDAYS: DateList = DEFAULT_HOLIDAYS
    ELIGIBLE_NAME_PREFIXES: StrList = ["【新品】", "【新品仕上げ中古】", "【中古A】", "【中古B】", "【中古C】"]
    GOLD_MARKERS: StrList = ["K18", "K24"]
    PLATINUM_MARKERS: StrList = ["Pt"]
    MATERIALITY_THRESHOLD: float = 0.0001
    BASELINE_LOOKBACK_DAYS: int = 7
    CATALOG_PAGE_SIZE: int = 200
    PRODUCT_UPDATE_DELAY_SECONDS: float = 0.1
    BUSINESS_TIMEZONE: str = "Asia/Tokyo"

    # Marketplace sync
    PLATFORM_SYNC_ENABLED: bool = True
    MARKETPLACE_PRICE_COLUMNS: StrList = ["rakuten_baika_tnk", "yahoo_baika_tnk", "amazon_baika_tnk"]
    SYNC_BATCH_SIZE: int = 50
    SYNC_MAX_RETRIES: int = 3
    SYNC_RETRY_BACKOFF_SECONDS: float = 2.0
    SYNC_BATCH_DELAY_SECONDS: float = 1.0

    # Scheduler
    SCHEDULER_ENABLED: bool = False
    KEEPALIVE_INTERVAL_HOURS: int = 12
    PRICE_UPDATE_CRON: str = "0 10 * * mon-fri"

    # Logging
    LOG_LEVEL: str = "INFO"

    model_config = ConfigDict(
        env_file=os.environ.get('ENV_FILE', '.env') if os.path.exists('.env') else None,
        case_sensitive=True,
        extra="ignore",
        validate_default=True,
    )

    @property
    def token_endpoint_url(self) -> str:
        return f"{self.ERP_API_BASE_URL.rstrip('/')}{self.ERP_TOKEN_ENDPOINT}"

    @property
    def authorize_url(self) -> str:
        return f"{self.ERP_OAUTH_BASE_URL.rstrip('/')}/apps/oauth2/authorize"

    @property
    def redirect_uri(self) -> Optional[str]:
        if not self.BASE_URL:
            return None
        return f"{self.BASE_URL.rstrip('/')}/api/erp/callback"


@lru_cache()
def get_settings():
    """Cached settings to avoid loading .env file for every request"""
    return Settings()
