"""Background scheduler for strategy scans, auto-execution and fee payer upkeep"""

import asyncio
from typing import Awaitable, Callable, List, Optional

import structlog

from src.detectors.route_scanner import RouteScanner
from src.execution.auto_executor import AutoExecutor
from src.wallets.funding import FeePayerFunder

logger = structlog.get_logger()

ERROR_BACKOFF_SECONDS = 30.0


class ArbitrageScheduler:
    """
    Runs the strategy scan and the auto-executor on fixed intervals, plus
    fee payer maintenance when a funder is given.

    Each job has its own loop, so a slow scan never delays an execution pass.
    A failing pass is logged and retried after a back-off.
    """

    def __init__(
        self,
        route_scanner: RouteScanner,
        auto_executor: AutoExecutor,
        scan_interval_seconds: float = 300.0,
        execute_interval_seconds: float = 60.0,
        fee_payer_funder: Optional[FeePayerFunder] = None,
        maintenance_interval_seconds: float = 900.0,
    ):
        """
        Initialize the scheduler.

        Args:
            route_scanner: Scanner whose strategy scan opens approved runs
            auto_executor: Executor that consumes approved runs
            scan_interval_seconds: Seconds between strategy scans
            execute_interval_seconds: Seconds between auto-execution passes
            fee_payer_funder: Refreshes and tops up fee payers; no upkeep loop when None
            maintenance_interval_seconds: Seconds between fee payer upkeep passes
        """
        self.route_scanner = route_scanner
        self.auto_executor = auto_executor
        self.scan_interval_seconds = scan_interval_seconds
        self.execute_interval_seconds = execute_interval_seconds
        self.fee_payer_funder = fee_payer_funder
        self.maintenance_interval_seconds = maintenance_interval_seconds
        self._logger = logger.bind(component="arbitrage_scheduler")
        self._running = False
        self._tasks: List[asyncio.Task] = []

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the job loops"""
        if self._running:
            self._logger.warning("arbitrage_scheduler_already_running")
            return

        self._running = True
        self._tasks = [
            asyncio.create_task(
                self._run_loop("strategy_scan", self.route_scanner.scan_strategies, self.scan_interval_seconds)
            ),
            asyncio.create_task(
                self._run_loop("auto_execute", self.auto_executor.run_once, self.execute_interval_seconds)
            ),
        ]
        if self.fee_payer_funder is not None:
            self._tasks.append(
                asyncio.create_task(
                    self._run_loop(
                        "fee_payer_maintenance",
                        self.fee_payer_funder.maintain,
                        self.maintenance_interval_seconds,
                    )
                )
            )
        self._logger.info(
            "arbitrage_scheduler_started",
            scan_interval_seconds=self.scan_interval_seconds,
            execute_interval_seconds=self.execute_interval_seconds,
            fee_payer_maintenance=self.fee_payer_funder is not None,
        )

    async def stop(self) -> None:
        """Stop the job loops"""
        if not self._running:
            return

        self._running = False
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        self._logger.info("arbitrage_scheduler_stopped")

    async def _run_loop(
        self, job: str, func: Callable[[], Awaitable[object]], interval_seconds: float
    ) -> None:
        while self._running:
            try:
                await func()
                await asyncio.sleep(interval_seconds)
            except asyncio.CancelledError:
                break
            except Exception as e:
                self._logger.error(
                    "arbitrage_scheduler_job_error",
                    job=job,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                await asyncio.sleep(ERROR_BACKOFF_SECONDS)
