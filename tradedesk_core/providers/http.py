"""
Vendor HTTP Client
==================
Thin httpx wrapper shared by the REST quote providers and AI backends.
"""

from typing import Any, Dict, Optional

import httpx
import structlog

from tradedesk_core.exceptions import (
    RateLimitExceededError,
    UpstreamCallError,
    UpstreamTimeoutError,
)

logger = structlog.get_logger(__name__)


class VendorHttpClient:
    """
    Async JSON client for one external vendor.

    Features:
    - Connection pooling (via httpx.AsyncClient).
    - Standardized exception mapping.

    Retries are left to the caller's rate limiter so every attempt is
    counted by the circuit breaker.
    """

    def __init__(
        self,
        base_url: str,
        service_name: str,
        timeout: float = 10.0,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.service_name = service_name
        self.timeout = timeout

        default_headers = {
            "User-Agent": "tradedesk-core",
            "Accept": "application/json",
        }
        default_headers.update(headers or {})

        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers=default_headers,
            transport=transport,
        )

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self.client.aclose()

    def _map_exception(self, exc: Exception) -> Exception:
        """Map httpx exceptions to orchestration-layer exceptions."""
        if isinstance(exc, httpx.TimeoutException):
            return UpstreamTimeoutError(
                "Request timed out",
                service=self.service_name,
                provider=self.service_name,
            )
        if isinstance(exc, httpx.HTTPStatusError):
            status = exc.response.status_code
            text = exc.response.text
            if status == 429:
                return RateLimitExceededError(
                    "Vendor rate limit exceeded",
                    service=self.service_name,
                    retry_after=_parse_retry_after(exc.response),
                    details=text,
                )
            return UpstreamCallError(
                f"HTTP {status} Error",
                service=self.service_name,
                status_code=status,
                provider=self.service_name,
                details=text,
            )
        if isinstance(exc, httpx.HTTPError):
            return UpstreamCallError(
                f"Failed to connect: {exc}",
                service=self.service_name,
                provider=self.service_name,
            )
        return UpstreamCallError(f"Unexpected error: {exc}", service=self.service_name)

    async def request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Execute a request and return the decoded JSON body."""
        try:
            response = await self.client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise self._map_exception(e) from e

        try:
            return response.json()
        except ValueError as e:
            logger.warning("invalid_json_response", service=self.service_name, path=path)
            raise UpstreamCallError(
                "Invalid JSON in response",
                service=self.service_name,
                status_code=response.status_code,
                provider=self.service_name,
            ) from e

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(
        self,
        path: str,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        return await self.request("POST", path, json=json, headers=headers)


def _parse_retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None
