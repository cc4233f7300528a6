"""HTTP client for the daily prices API.

One logical request is ``fetch(ticker, start, end)``; every status the
server can answer with is classified into a typed :class:`FetchResult`:

* ``200`` with a non-empty array   -> ``SUCCESS``
* ``200`` with an empty array      -> ``NO_DATA``
* ``429`` / ``5xx`` / transport errors -> retried, then ``FAILED``
* anything else, or a malformed body -> ``FAILED`` without retrying

The API token travels in the ``Authorization`` header and is never logged.
"""

from __future__ import annotations

from datetime import date
from typing import Any

import httpx
from loguru import logger

from tickersync.core.config.settings import ApiConfig
from tickersync.core.exceptions import ErrorCode, FetchFailed, TransientFetchError
from tickersync.core.logging.logger import mask_secret
from tickersync.core.models.outcome import FetchResult
from tickersync.core.models.record import parse_records
from tickersync.core.models.ticker import Ticker
from tickersync.core.patterns.retry import AsyncSleep, ExponentialBackoffRetry, RetryConfig

USER_AGENT = "tickersync/0.1.0"


def _retry_after(response: httpx.Response) -> float | None:
    raw = response.headers.get("Retry-After")
    if raw is None:
        return None
    try:
        return max(0.0, float(raw))
    except ValueError:
        return None


def _is_transient_status(status_code: int) -> bool:
    return status_code == 429 or 500 <= status_code < 600


class FetchClient:
    """Fetches daily price records with retry and structured error classification."""

    def __init__(
        self,
        api_key: str,
        config: ApiConfig | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        sleep: AsyncSleep | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("api_key must not be empty")
        mask_secret(api_key)
        self.config = config or ApiConfig()
        self._headers = {
            "Authorization": f"Token {api_key}",
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }
        self._client = http_client
        self._owns_client = http_client is None
        self._sleep = sleep
        self.retry_config = RetryConfig(
            max_retries=self.config.max_retries,
            base_delay=self.config.base_delay,
            max_delay=self.config.max_delay,
        )

    async def __aenter__(self) -> FetchClient:
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.timeout, connect=self.config.connect_timeout),
                follow_redirects=True,
            )
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def prices_url(self, symbol: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/{symbol}/prices"

    def metadata_url(self, symbol: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/{symbol}"

    def fundamentals_url(self, symbol: str) -> str:
        return f"{self.config.fundamentals_url.rstrip('/')}/{symbol}/daily"

    async def _get_json(self, url: str, params: dict[str, str] | None, symbol: str) -> Any:
        """Issue a single attempt and classify the response."""
        client = self._ensure_client()
        try:
            response = await client.get(url, params=params, headers=self._headers)
        except httpx.TransportError as exc:
            raise TransientFetchError(f"Transport error for {symbol}: {exc.__class__.__name__}", symbol) from exc

        status = response.status_code
        if _is_transient_status(status):
            raise TransientFetchError(
                f"HTTP {status} for {symbol}",
                symbol,
                status_code=status,
                retry_after=_retry_after(response),
            )
        if status != 200:
            raise FetchFailed(f"HTTP {status} for {symbol}", symbol, status_code=status)
        try:
            return response.json()
        except ValueError as exc:
            raise FetchFailed(
                f"Response for {symbol} is not valid JSON",
                symbol,
                status_code=status,
                error_code=ErrorCode.MALFORMED_PAYLOAD,
            ) from exc

    async def _get_with_retry(self, url: str, params: dict[str, str] | None, symbol: str) -> tuple[Any, int]:
        retry = ExponentialBackoffRetry(self.retry_config, sleep=self._sleep)
        try:
            payload = await retry.execute(self._get_json, url, params, symbol)
        except TransientFetchError as exc:
            raise FetchFailed(
                f"Giving up on {symbol} after {retry.attempt_count} attempts: {exc.message}",
                symbol,
                status_code=exc.status_code,
                error_code=exc.error_code,
                details={"attempts": retry.attempt_count},
            ) from exc
        return payload, retry.attempt_count

    async def fetch(self, ticker: Ticker | str, start_date: date, end_date: date) -> FetchResult:
        """Fetch ``[start_date, end_date]`` for one ticker.

        Never raises for per-ticker conditions; failures are reported in the
        returned :class:`FetchResult`.
        """
        symbol = ticker.symbol if isinstance(ticker, Ticker) else ticker
        params = {"startDate": start_date.isoformat(), "endDate": end_date.isoformat()}
        attempts = 1
        try:
            payload, attempts = await self._get_with_retry(self.prices_url(symbol), params, symbol)
        except FetchFailed as exc:
            return FetchResult.failed(exc, attempts=exc.details.get("attempts", attempts))

        if not isinstance(payload, list):
            error = FetchFailed(
                f"Expected a JSON array for {symbol}, got {type(payload).__name__}",
                symbol,
                status_code=200,
                error_code=ErrorCode.MALFORMED_PAYLOAD,
            )
            return FetchResult.failed(error, attempts=attempts)
        if not payload:
            return FetchResult.no_data(attempts=attempts)
        try:
            records = parse_records(payload)
        except (TypeError, ValueError, AttributeError) as exc:
            error = FetchFailed(
                f"Malformed record for {symbol}: {exc}",
                symbol,
                status_code=200,
                error_code=ErrorCode.MALFORMED_PAYLOAD,
            )
            return FetchResult.failed(error, attempts=attempts)
        logger.debug("Fetched {} records for {} ({} ~ {})", len(records), symbol, start_date, end_date)
        return FetchResult.success(records, attempts=attempts)

    async def fetch_metadata(self, symbol: str) -> dict[str, Any]:
        """Return the ticker's metadata object (``startDate``, ``endDate``, ...).

        Raises:
            FetchFailed: when the metadata cannot be retrieved
        """
        payload, _ = await self._get_with_retry(self.metadata_url(symbol), None, symbol)
        if not isinstance(payload, dict):
            raise FetchFailed(
                f"Expected a JSON object for {symbol} metadata",
                symbol,
                status_code=200,
                error_code=ErrorCode.MALFORMED_PAYLOAD,
            )
        return payload

    async def fetch_daily_fundamentals(
        self,
        symbol: str,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[dict[str, Any]]:
        """Daily fundamentals (``marketCap``, ``peRatio``, ...) as returned by the API.

        Uses the same retry policy and error classification as :meth:`fetch`.

        Raises:
            FetchFailed: the request failed or the body is not a JSON array
        """
        params: dict[str, str] = {}
        if start_date is not None:
            params["startDate"] = start_date.isoformat()
        if end_date is not None:
            params["endDate"] = end_date.isoformat()
        payload, _ = await self._get_with_retry(self.fundamentals_url(symbol), params or None, symbol)
        if not isinstance(payload, list):
            raise FetchFailed(
                f"Expected a JSON array of fundamentals for {symbol}",
                symbol,
                status_code=200,
                error_code=ErrorCode.MALFORMED_PAYLOAD,
            )
        logger.debug("Fetched {} daily fundamentals rows for {}", len(payload), symbol)
        return payload


__all__ = ["FetchClient", "USER_AGENT"]
