import csv
import io
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence
from urllib.parse import urlencode

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from repricer.core.config import Settings, get_settings
from repricer.core.enums import ErrorKind
from repricer.core.exceptions import ApiError, AuthError, TokenRefreshError, classify_error
from repricer.core.logging_config import mask_token
from repricer.schemas.erp import ErpProduct, ErpResponse, KeepAliveResult, ProductPage, TokenPair
from repricer.services.erp.token_store import TokenStore

logger = logging.getLogger(__name__)


def build_goods_csv(columns: Sequence[str], rows: Iterable[Sequence[Any]]) -> str:
    """Render the goods master upload CSV (header row + data rows, LF line endings)."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(columns)
    for row in rows:
        writer.writerow(row)
    return buffer.getvalue().rstrip("\n")


class ErpClient:
    """
    Purpose: Asynchronous client for the ERP back-office API.

    Functionality:
        - Attaches the stored access/refresh token pair to every form-encoded POST.
        - Persists rotated token pairs returned by any response (rolling refresh).
        - Refreshes the pair once and retries when the ERP rejects the access token.
        - Catalog helpers: goods search (paged), single price update, bulk CSV upload.
        - keep_alive(): cheapest authenticated call, used purely to keep tokens fresh.

    A client is built per run with that run's database session. Token state
    lives in the database, never on the instance.
    """

    LOGIN_USER_INFO_ENDPOINT = "/api_v1_login_user/info"
    GOODS_SEARCH_ENDPOINT = "/api_v1_master_goods/search"
    GOODS_UPLOAD_ENDPOINT = "/api_v1_master_goods/upload"
    PRODUCT_FIELDS = "goods_id,goods_name,goods_selling_price,goods_cost_price,stock_quantity"
    PRICE_CSV_COLUMNS = ("syohin_code", "baika_tnk")

    def __init__(
        self,
        db: AsyncSession,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            db: Session used by the token store
            settings: Optional settings override (defaults to cached settings)
            transport: Optional httpx transport, used by tests to fake the ERP
        """
        self.settings = settings or get_settings()
        self.token_store = TokenStore(db)
        self.base_url = self.settings.ERP_API_BASE_URL.rstrip("/")
        self.max_attempts = max(2, self.settings.ERP_MAX_ATTEMPTS)
        self.timeout = self.settings.HTTP_TIMEOUT_SECONDS
        self.refresh_count = 0
        self._transport = transport

    def _http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    def classify(self, code: Optional[str], message: Optional[str]) -> ErrorKind:
        return classify_error(
            code,
            message,
            token_error_codes=self.settings.TOKEN_ERROR_CODES,
            token_message_markers=self.settings.TOKEN_ERROR_MESSAGE_MARKERS,
            retryable_codes=self.settings.SYNC_RETRYABLE_ERROR_CODES,
        )

    async def _post_form(self, url: str, data: Dict[str, str]) -> Dict:
        """
        POST form data and decode the JSON body.

        Raises:
            ApiError: On network failure, timeout, non-2xx status or a non-JSON body
        """
        try:
            async with self._http_client() as client:
                response = await client.post(url, data=data)
        except httpx.TimeoutException as e:
            logger.error(f"Timeout calling {url}: {str(e)}")
            raise ApiError(f"Request timed out: {str(e)}")
        except httpx.RequestError as e:
            logger.error(f"Network error calling {url}: {str(e)}")
            raise ApiError(f"Network error: {str(e)}")

        if not 200 <= response.status_code < 300:
            logger.error(f"ERP HTTP error {response.status_code}: {response.text[:500]}")
            raise ApiError(f"HTTP {response.status_code}: {response.reason_phrase}", code=str(response.status_code))

        try:
            return response.json()
        except ValueError:
            raise ApiError(f"Invalid JSON response: {response.text[:200]}")

    async def call(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> ErpResponse:
        """
        Call an ERP endpoint with the stored token pair.

        Args:
            endpoint: API path, e.g. "/api_v1_master_goods/search"
            params: Endpoint parameters; values are sent as strings

        Returns:
            ErpResponse: The successful response envelope

        Raises:
            AuthError: No stored tokens, or the token stayed invalid after refreshing
            TokenRefreshError: The refresh itself failed
            ApiError: Any other failure once attempts are exhausted
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        params = {key: str(value) for key, value in (params or {}).items()}
        last_error: Optional[ApiError] = None

        for attempt in range(1, self.max_attempts + 1):
            # Re-read every attempt: a refresh (ours or another run's) may have rotated the pair.
            tokens = await self.token_store.get()
            if tokens is None:
                raise AuthError("No tokens found. Please authenticate first.")

            payload = {
                "access_token": tokens.access_token,
                "refresh_token": tokens.refresh_token,
                **params,
            }

            try:
                raw = await self._post_form(url, payload)
            except ApiError as e:
                logger.warning(f"ERP call {endpoint} attempt {attempt}/{self.max_attempts} failed: {e}")
                last_error = e
                continue

            response = ErpResponse.model_validate(raw)
            logger.debug(f"ERP response {endpoint}: result={response.result} code={response.code}")

            rotated = response.rotated_tokens
            if rotated:
                await self.token_store.save(rotated)

            if response.is_success:
                return response

            kind = self.classify(response.code, response.message)
            if kind == ErrorKind.AUTH:
                last_error = AuthError(response.message or "Access token rejected", code=response.code, response=raw)
                if attempt < self.max_attempts:
                    logger.info(f"Access token rejected ({response.code}: {response.message}), refreshing...")
                    await self.refresh((rotated or tokens).refresh_token)
                continue

            raise ApiError(
                response.message or f"API Error: {response.code}",
                code=response.code,
                response=raw,
                kind=kind,
            )

        raise last_error or ApiError("All API call attempts failed")

    async def refresh(self, refresh_token: str) -> TokenPair:
        """
        Exchange the refresh token for a new pair and persist it.

        Raises:
            TokenRefreshError: Non-2xx response, network failure or missing tokens
        """
        data = {
            "grant_type": "refresh_token",
            "client_id": self.settings.ERP_CLIENT_ID,
            "client_secret": self.settings.ERP_CLIENT_SECRET,
            "refresh_token": refresh_token,
        }
        logger.info(f"Refreshing ERP access token (refresh={mask_token(refresh_token)})")

        try:
            async with self._http_client() as client:
                response = await client.post(self.settings.token_endpoint_url, data=data)
        except httpx.RequestError as e:
            logger.error(f"Network error refreshing token: {str(e)}")
            raise TokenRefreshError(f"Network error refreshing token: {str(e)}")

        if not 200 <= response.status_code < 300:
            logger.error(f"Token refresh failed: {response.status_code} {response.text[:500]}")
            raise TokenRefreshError(f"Token refresh failed: {response.status_code}")

        try:
            body = response.json()
        except ValueError:
            raise TokenRefreshError("Invalid token response")

        if not body.get("access_token") or not body.get("refresh_token"):
            raise TokenRefreshError("Invalid token response: missing access_token or refresh_token")

        tokens = TokenPair(access_token=body["access_token"], refresh_token=body["refresh_token"])
        await self.token_store.save(tokens)
        self.refresh_count += 1

        logger.info("Successfully refreshed ERP access token")
        return tokens

    async def keep_alive(self) -> KeepAliveResult:
        """
        Exercise the token with the cheapest authenticated call.
        Never raises: failures are reported in the result.
        """
        refreshes_before = self.refresh_count
        try:
            response = await self.call(self.LOGIN_USER_INFO_ENDPOINT)
            refreshed = response.rotated_tokens is not None or self.refresh_count > refreshes_before
            return KeepAliveResult(success=True, refreshed=refreshed, message="Token is healthy")
        except Exception as e:
            logger.error(f"Keep alive failed: {str(e)}")
            first_error = e

        try:
            tokens = await self.token_store.get()
            if tokens and tokens.refresh_token:
                logger.info("Attempting manual token refresh...")
                await self.refresh(tokens.refresh_token)
                await self.call(self.LOGIN_USER_INFO_ENDPOINT)
                return KeepAliveResult(success=True, refreshed=True, message="Token refreshed and healthy")
        except Exception as e:
            logger.error(f"Manual token refresh failed: {str(e)}")

        return KeepAliveResult(success=False, refreshed=False, message=str(first_error) or "Unknown error")

    async def get_products(self, limit: int = 200, offset: int = 0) -> ProductPage:
        """Fetch one page of the goods master. The catalog is exhausted when the page holds no rows at all."""
        response = await self.call(
            self.GOODS_SEARCH_ENDPOINT,
            {"fields": self.PRODUCT_FIELDS, "limit": limit, "offset": offset},
        )
        rows = response.data or []
        return ProductPage(products=ErpProduct.from_rows(rows), row_count=len(rows))

    async def update_product_price(self, goods_id: str, price: int) -> ErpResponse:
        """Set the main selling price of one product."""
        csv_data = build_goods_csv(self.PRICE_CSV_COLUMNS, [(goods_id, price)])
        return await self.upload_goods_csv(csv_data)

    async def upload_goods_csv(self, csv_data: str) -> ErpResponse:
        """Submit a goods master CSV through the bulk upload endpoint."""
        return await self.call(self.GOODS_UPLOAD_ENDPOINT, {"data_type": "csv", "data": csv_data})

    def authorization_url(self) -> str:
        """Generate the URL that starts the OAuth authorization flow"""
        if not self.settings.ERP_CLIENT_ID or not self.settings.redirect_uri:
            raise ValueError("ERP_CLIENT_ID and BASE_URL are required for authorization URL generation")

        auth_params = {
            "client_id": self.settings.ERP_CLIENT_ID,
            "redirect_uri": self.settings.redirect_uri,
            "response_type": "code",
            "state": self.settings.ERP_OAUTH_STATE,
        }
        return f"{self.settings.authorize_url}?{urlencode(auth_params)}"
