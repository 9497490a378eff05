"""Base chain connector with RPC failover and circuit breaker"""

import asyncio
import inspect
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Type

import structlog

from src.config.models import ChainConfig
from src.monitoring import metrics

logger = structlog.get_logger()


class CircuitState(Enum):
    """Circuit breaker states"""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failures detected, stop calling
    HALF_OPEN = "half_open"  # Testing recovery


@dataclass
class CircuitBreaker:
    """Circuit breaker for one RPC endpoint"""

    failure_threshold: int = 5
    timeout_seconds: int = 60
    failure_count: int = 0
    state: CircuitState = CircuitState.CLOSED
    last_failure_time: float = 0.0

    def record_success(self) -> None:
        self.failure_count = 0
        if self.state == CircuitState.HALF_OPEN:
            self.state = CircuitState.CLOSED
            logger.info("circuit_breaker_closed", state=self.state.value)

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.failure_count >= self.failure_threshold and self.state != CircuitState.OPEN:
            self.state = CircuitState.OPEN
            logger.warning(
                "circuit_breaker_opened",
                state=self.state.value,
                failure_count=self.failure_count,
            )

    def can_attempt(self) -> bool:
        if self.state == CircuitState.CLOSED:
            return True

        if self.state == CircuitState.OPEN:
            if time.time() - self.last_failure_time >= self.timeout_seconds:
                self.state = CircuitState.HALF_OPEN
                logger.info("circuit_breaker_half_open", state=self.state.value)
                return True
            return False

        # HALF_OPEN allows one trial request
        return True


@dataclass
class SubmittedTx:
    """A confirmed on-chain transaction"""

    tx_ref: str
    gas_spent_native: int
    block_number: Optional[int] = None


class ChainConnector(ABC):
    """
    Base class for chain connectors.

    Endpoints are tried in order (dedicated RPC first, public fallback last).
    Read calls go through _retry_with_failover; transaction submission is
    never retried because a resent transaction could execute twice.
    """

    def __init__(self, config: ChainConfig):
        if not config.rpc_urls:
            raise ValueError(f"No RPC endpoints configured for {config.name}")

        self.config = config
        self.network = config.network
        self.chain_name = config.name
        self.rpc_urls = list(config.rpc_urls)
        self.current_rpc_index = 0
        self.confirmation_timeout_seconds = config.confirmation_timeout_seconds
        self._circuit_breakers: Dict[str, CircuitBreaker] = {
            url: CircuitBreaker() for url in self.rpc_urls
        }
        self._logger = logger.bind(component="chain_connector", chain=self.chain_name)
        self._connect()

    @property
    def current_rpc_url(self) -> str:
        return self.rpc_urls[self.current_rpc_index]

    @abstractmethod
    def _connect(self) -> None:
        """Build the RPC client for the current endpoint"""

    @abstractmethod
    def _transient_errors(self) -> Tuple[Type[BaseException], ...]:
        """Exception types that warrant a retry on another endpoint"""

    def _failover(self) -> bool:
        """Move to the next endpoint whose circuit breaker allows a call"""
        original_index = self.current_rpc_index

        for _ in range(len(self.rpc_urls) - 1):
            self.current_rpc_index = (self.current_rpc_index + 1) % len(self.rpc_urls)
            rpc_url = self.current_rpc_url

            if not self._circuit_breakers[rpc_url].can_attempt():
                self._logger.debug("rpc_circuit_breaker_open", rpc_url=rpc_url)
                continue

            self._connect()
            self._logger.info(
                "rpc_failover_success",
                from_index=original_index,
                to_index=self.current_rpc_index,
                rpc_url=rpc_url,
            )
            return True

        self.current_rpc_index = original_index
        self._logger.error("rpc_failover_exhausted", attempted_endpoints=len(self.rpc_urls))
        return False

    async def _retry_with_failover(
        self, operation: str, func, *args, max_retries: int = 3, **kwargs
    ) -> Any:
        """Run a read operation with retry, exponential backoff and endpoint failover"""
        last_error: Optional[BaseException] = None
        transient = self._transient_errors()

        for attempt in range(max_retries):
            start_time = time.time()
            current_rpc_url = self.current_rpc_url
            circuit_breaker = self._circuit_breakers[current_rpc_url]

            if not circuit_breaker.can_attempt():
                self._logger.debug(
                    "rpc_circuit_breaker_blocking",
                    operation=operation,
                    rpc_url=current_rpc_url,
                )
                if not self._failover():
                    raise ConnectionError(f"All RPC endpoints unavailable for {self.chain_name}")
                continue

            try:
                result = func(*args, **kwargs)
                if inspect.isawaitable(result):
                    result = await result

                metrics.chain_rpc_latency.labels(
                    chain=self.chain_name,
                    endpoint=current_rpc_url,
                    method=operation,
                ).observe(time.time() - start_time)
                circuit_breaker.record_success()
                return result

            except transient as e:
                last_error = e
                circuit_breaker.record_failure()
                metrics.chain_rpc_errors.labels(
                    chain=self.chain_name,
                    error_type=type(e).__name__,
                ).inc()

                self._logger.warning(
                    "rpc_operation_failed",
                    operation=operation,
                    attempt=attempt + 1,
                    max_retries=max_retries,
                    error=str(e),
                    rpc_url=current_rpc_url,
                )

                if attempt < max_retries - 1:
                    self._failover()
                    await asyncio.sleep(2**attempt)

        self._logger.error(
            "rpc_operation_failed_all_retries",
            operation=operation,
            max_retries=max_retries,
            error=str(last_error),
        )
        if last_error is None:
            raise ConnectionError(f"RPC operation {operation} failed on {self.chain_name}")
        raise last_error

    @abstractmethod
    async def get_native_balance(self, owner: str) -> int:
        """Native balance in base units (wei, lamports)"""

    @abstractmethod
    async def get_balance(self, token: str, owner: str) -> int:
        """Token balance in base units; native token addresses use the native balance"""

    @abstractmethod
    async def ensure_allowance(
        self, signer, token: str, spender: Optional[str], amount: int
    ) -> Optional[SubmittedTx]:
        """Approve spender when the current allowance is short; returns the approval tx if one was sent"""

    @abstractmethod
    async def submit_swap(self, signer, quote) -> SubmittedTx:
        """Sign, send and wait for a swap built from an executable quote"""
