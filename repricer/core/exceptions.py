from typing import Iterable, Optional

from repricer.core.enums import ErrorKind


class RepricerError(Exception):
    """Base exception for all repricer errors."""
    pass


class ApiError(RepricerError):
    """Raised when an ERP API call fails (transport or application level)."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        response: Optional[dict] = None,
        kind: ErrorKind = ErrorKind.API,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.response = response
        self.kind = kind

    def __str__(self):
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message


class AuthError(ApiError):
    """Raised when the access token is rejected and could not be recovered."""

    def __init__(self, message: str, code: Optional[str] = None, response: Optional[dict] = None):
        super().__init__(message, code=code, response=response, kind=ErrorKind.AUTH)


class TokenRefreshError(RepricerError):
    """Raised when the token endpoint rejects a refresh or returns incomplete data."""
    pass


class PriceFeedError(RepricerError):
    """Raised when the spot price page cannot be fetched."""
    pass


class PriceParseError(PriceFeedError):
    """Raised when the mandatory gold price is missing from the feed."""
    pass


class NoBaselineError(RepricerError):
    """Raised when no previous business day price exists within the lookback window."""
    pass


class SyncBatchError(RepricerError):
    """Raised when a marketplace batch fails or exhausts its retries."""

    def __init__(self, message: str, retries: int = 0, code: Optional[str] = None):
        super().__init__(message)
        self.retries = retries
        self.code = code


def classify_error(
    code: Optional[str],
    message: Optional[str],
    token_error_codes: Iterable[str] = (),
    token_message_markers: Iterable[str] = (),
    retryable_codes: Iterable[str] = (),
) -> ErrorKind:
    """
    Map a raw upstream error code/message to an ErrorKind.

    Token errors take precedence over rate limiting.
    """
    code = str(code) if code is not None else None
    message = message or ""

    if code and code in set(token_error_codes):
        return ErrorKind.AUTH
    if any(marker and marker in message for marker in token_message_markers):
        return ErrorKind.AUTH
    if code and code in set(retryable_codes):
        return ErrorKind.RATE_LIMITED
    return ErrorKind.API
