"""Async JSON API client with retry logic."""

from __future__ import annotations

import asyncio
import logging
import random
from types import TracebackType
from typing import Any, Optional

import aiohttp

from ..exceptions import ApiResponseError

logger = logging.getLogger(__name__)


class AsyncApiClient:
    """
    Async JSON-over-HTTP client with retry logic.

    Features:
    - Exponential backoff retry for throttling and transient failures
    - Bearer token authentication
    - Timeout controls

    Throughput ceilings are not enforced here: callers gate each logical
    operation through a MinIntervalRateLimiter before calling in. Retries
    happen inside one gated call.

    Example:
        client = AsyncApiClient("https://api.example.com", token="...")

        async with client:
            data = await client.request_json("GET", "/resources", params={"page_size": 50})
    """

    # Status codes that warrant a retry
    RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

    # Exceptions that warrant a retry
    RETRYABLE_EXCEPTIONS = (
        aiohttp.ClientConnectionError,
        asyncio.TimeoutError,
        ConnectionError,
    )

    def __init__(
        self,
        base_url: str,
        *,
        token: Optional[str] = None,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
        user_agent: Optional[str] = None,
        proxy: Optional[str] = None,
        connect_timeout: float = 10.0,
        read_timeout: float = 30.0,
    ) -> None:
        """
        Initialize the API client.

        Args:
            base_url: Scheme and host (plus optional prefix) of the API
            token: Bearer token sent with every request
            max_retries: Maximum retry attempts for failed requests
            retry_base_delay: Base delay for exponential backoff (seconds)
            user_agent: Custom User-Agent string
            proxy: Proxy URL
            connect_timeout: Connection timeout in seconds
            read_timeout: Socket read timeout in seconds
        """
        self._base_url = base_url.rstrip("/")
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._proxy = proxy
        self._timeout = aiohttp.ClientTimeout(sock_connect=connect_timeout, sock_read=read_timeout)

        self._headers = {
            "Accept": "application/json",
            "User-Agent": user_agent or "tagstream/1.0",
        }
        if token:
            self._headers["Authorization"] = f"Bearer {token}"

        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> AsyncApiClient:
        """Enter async context and create session."""
        connector = aiohttp.TCPConnector(
            limit=100,  # Total connection limit
            ttl_dns_cache=300,  # DNS cache TTL
        )
        self._session = aiohttp.ClientSession(
            connector=connector,
            headers=self._headers,
            timeout=self._timeout,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit async context and close session."""
        if self._session:
            await self._session.close()
            self._session = None

    def url_for(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"

    def _calculate_retry_delay(self, attempt: int, retry_after: Optional[str] = None) -> float:
        """
        Calculate delay for exponential backoff with jitter.

        A numeric Retry-After header takes precedence.
        """
        if retry_after and retry_after.isdigit():
            return float(retry_after)
        # Exponential backoff: base * (2 ^ attempt) + random jitter
        delay: float = self._retry_base_delay * (2**attempt)
        jitter: float = random.uniform(0, 1)
        return delay + jitter

    async def request_json(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, Any]] = None,
        json: Optional[Any] = None,
    ) -> Any:
        """
        Perform a request and decode the JSON body, with retry logic.

        Args:
            method: HTTP method
            path: Path relative to the base URL
            params: Query parameters (None values are dropped)
            json: JSON request body

        Returns:
            Decoded JSON body (None for an empty body)

        Raises:
            ApiResponseError: On a non-retryable status, or a retryable one
                after retries are exhausted
            aiohttp.ClientError: On network errors after retries exhausted
        """
        if self._session is None:
            raise RuntimeError("Client not initialized. Use 'async with' context manager.")

        url = self.url_for(path)
        query = {k: str(v) for k, v in (params or {}).items() if v is not None}

        for attempt in range(self._max_retries + 1):
            try:
                async with self._session.request(
                    method,
                    url,
                    params=query or None,
                    json=json,
                    proxy=self._proxy,
                ) as response:
                    if response.status in self.RETRYABLE_STATUS_CODES and attempt < self._max_retries:
                        delay = self._calculate_retry_delay(attempt, response.headers.get("Retry-After"))
                        logger.warning(
                            f"Got {response.status} for {method} {url}, retrying in {delay:.1f}s "
                            f"(attempt {attempt + 1}/{self._max_retries + 1})"
                        )
                        await asyncio.sleep(delay)
                        continue

                    if response.status >= 400:
                        body = await response.text()
                        raise ApiResponseError(response.status, url, body[:200])

                    if response.content_length == 0:
                        return None
                    return await response.json(content_type=None)

            except self.RETRYABLE_EXCEPTIONS as e:
                if attempt < self._max_retries:
                    delay = self._calculate_retry_delay(attempt)
                    logger.warning(
                        f"Error calling {method} {url}: {e}, retrying in {delay:.1f}s "
                        f"(attempt {attempt + 1}/{self._max_retries + 1})"
                    )
                    await asyncio.sleep(delay)
                else:
                    logger.error(f"{method} {url} failed after {self._max_retries + 1} attempts: {e}")
                    raise

        raise RuntimeError(f"Unexpected retry loop exit for {method} {url}")
