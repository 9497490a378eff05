"""Quote provider base class with shared HTTP handling"""

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

import httpx
import structlog

from src.chains.networks import Network
from src.monitoring import metrics
from src.quotes.models import QuoteResponse

logger = structlog.get_logger()

# First attempt immediately, then back off; only 5xx and transport errors are retried
RETRY_DELAYS_MS = (0, 250, 750)

RATE_LIMITED_STATUS = 429

# Raised while reading amounts and fields out of a decoded body of the wrong shape
MALFORMED_RESPONSE_ERRORS = (AttributeError, KeyError, TypeError, ValueError)


class QuoteProvider(ABC):
    """
    Base class for aggregator adapters.

    fetch_price returns an indicative quote; fetch_quote returns an
    executable one built for a taker. Both report failures as a
    QuoteResponse rather than raising, so scanners can classify them.
    """

    name: str = "quote"

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._client = client
        self._owns_client = client is None
        self._logger = logger.bind(component="quote_provider", provider=self.name)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_seconds)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @abstractmethod
    def supports(self, network: Network) -> bool:
        """Whether the provider can quote on a network"""

    @abstractmethod
    async def fetch_price(
        self,
        network: Network,
        sell_token: str,
        buy_token: str,
        sell_amount: int,
        taker: Optional[str] = None,
        included_sources: Optional[List[str]] = None,
        excluded_sources: Optional[List[str]] = None,
        slippage_bps: Optional[int] = None,
    ) -> QuoteResponse:
        """Indicative price for an exact-in swap"""

    @abstractmethod
    async def fetch_quote(
        self,
        network: Network,
        sell_token: str,
        buy_token: str,
        sell_amount: int,
        taker: str,
        included_sources: Optional[List[str]] = None,
        excluded_sources: Optional[List[str]] = None,
        slippage_bps: Optional[int] = None,
    ) -> QuoteResponse:
        """Executable quote whose transaction the taker can sign"""

    async def _request(
        self,
        method: str,
        path: str,
        network: Network,
        kind: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Tuple[Optional[Dict[str, Any]], QuoteResponse]:
        """
        Send one request with the shared retry policy.

        Returns the decoded JSON body on success (with an empty response), or
        None and a QuoteResponse carrying the last status code and a
        caller-safe error message.
        """
        client = await self._get_client()
        url = f"{self.base_url}{path}"
        last_error: Optional[str] = None
        last_status: Optional[int] = None
        start_time = time.time()

        for attempt, delay_ms in enumerate(RETRY_DELAYS_MS):
            if delay_ms:
                await asyncio.sleep(delay_ms / 1000)

            try:
                response = await client.request(method, url, params=params, json=json, headers=headers)
            except httpx.HTTPError as e:
                last_error = f"{self.name} request failed: {type(e).__name__}"
                last_status = None
                self._logger.warning(
                    "quote_request_transport_error",
                    network=network.value,
                    kind=kind,
                    attempt=attempt + 1,
                    error=str(e),
                )
                continue

            last_status = response.status_code

            if response.status_code >= 500:
                last_error = f"{self.name} API error {response.status_code}"
                self._logger.warning(
                    "quote_request_server_error",
                    network=network.value,
                    kind=kind,
                    attempt=attempt + 1,
                    status=response.status_code,
                )
                continue

            metrics.quote_latency.labels(provider=self.name, network=network.value).observe(
                time.time() - start_time
            )

            if response.status_code == RATE_LIMITED_STATUS:
                metrics.quote_rate_limited_total.labels(provider=self.name, network=network.value).inc()
                self._record(network, kind, "rate_limited")
                self._logger.warning("quote_rate_limited", network=network.value, kind=kind)
                return None, QuoteResponse(
                    status_code=response.status_code,
                    rate_limited=True,
                    error=f"{self.name} API rate limited",
                )

            if response.status_code >= 400:
                # Response bodies are truncated; they never contain our credentials
                body = response.text[:300]
                self._record(network, kind, "no_route" if response.status_code in (400, 404) else "error")
                self._logger.info(
                    "quote_request_rejected",
                    network=network.value,
                    kind=kind,
                    status=response.status_code,
                    body=body,
                )
                return None, QuoteResponse(
                    status_code=response.status_code,
                    error=f"{self.name} API error {response.status_code}: {body}",
                )

            try:
                payload = response.json()
            except ValueError:
                self._record(network, kind, "error")
                return None, QuoteResponse(status_code=response.status_code, error=f"{self.name} returned invalid JSON")

            return payload, QuoteResponse(status_code=response.status_code)

        self._record(network, kind, "error")
        self._logger.error(
            "quote_request_failed_all_retries",
            network=network.value,
            kind=kind,
            status=last_status,
            error=last_error,
        )
        return None, QuoteResponse(status_code=last_status, error=last_error or f"{self.name} request failed")

    def _record(self, network: Network, kind: str, outcome: str) -> None:
        metrics.quote_requests_total.labels(
            provider=self.name, network=network.value, kind=kind, outcome=outcome
        ).inc()

    def _malformed(self, network: Network, kind: str, status_code: int, error: Exception) -> QuoteResponse:
        """Report a 2xx body whose shape or amounts could not be read"""
        self._record(network, kind, "malformed")
        self._logger.warning(
            "quote_response_malformed",
            network=network.value,
            kind=kind,
            status=status_code,
            error_type=type(error).__name__,
        )
        return QuoteResponse(
            status_code=status_code,
            error=f"{self.name} returned a malformed response: {type(error).__name__}",
        )
