"""Auto-executor: executes approved runs left open by strategy scans"""

from dataclasses import dataclass, field
from typing import List

import structlog

from src.database.manager import DatabaseManager
from src.database.models import Run, RunStatus
from src.errors import ArbitrageError
from src.execution.orchestrator import ArbitrageOrchestrator, ExecutionOutcome
from src.risk.gate import SYSTEM_PRINCIPAL, auto_execution_rejection

logger = structlog.get_logger()

MAX_RUNS_PER_PASS = 10
MAX_RUN_AGE_SECONDS = 600


@dataclass
class AutoExecutionReport:
    """Summary of one auto-execution pass"""

    skipped_reason: str = ""
    executed: List[ExecutionOutcome] = field(default_factory=list)
    failed: List[dict] = field(default_factory=list)
    skipped: List[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "skipped_reason": self.skipped_reason or None,
            "executed": [outcome.to_dict() for outcome in self.executed],
            "failed": self.failed,
            "skipped": self.skipped,
        }


class AutoExecutor:
    """
    Picks up approved SIMULATED runs and executes each with the system principal.

    Runs older than max_run_age_seconds are never picked up. A run whose
    estimate misses its strategy's auto-execution floors is closed as
    SIMULATED instead of executed.
    """

    def __init__(
        self,
        database_manager: DatabaseManager,
        orchestrator: ArbitrageOrchestrator,
        max_runs: int = MAX_RUNS_PER_PASS,
        max_run_age_seconds: int = MAX_RUN_AGE_SECONDS,
    ):
        self.db = database_manager
        self.orchestrator = orchestrator
        self.max_runs = max_runs
        self.max_run_age_seconds = max_run_age_seconds
        self._logger = logger.bind(component="auto_executor")

    async def run_once(self) -> AutoExecutionReport:
        system_settings = await self.db.get_system_settings()
        if not system_settings.auto_arbitrage_enabled:
            return self._skip("auto arbitrage disabled")
        if system_settings.safe_mode_enabled:
            return self._skip("safe mode enabled")
        if system_settings.arb_execution_locked:
            return self._skip(f"execution locked: {system_settings.arb_execution_locked_reason}")

        runs = await self.db.get_open_approved_runs(self.max_runs, self.max_run_age_seconds)
        report = AutoExecutionReport()
        self._logger.info("auto_execution_pass_started", candidates=len(runs))

        for run in runs:
            try:
                if await self._below_floors(run, report):
                    continue
                outcome = await self.orchestrator.execute_pending_run(run, SYSTEM_PRINCIPAL)
                report.executed.append(outcome)
            except ArbitrageError as e:
                # The orchestrator already recorded the run; only this run stops
                report.failed.append({"run_id": run.id, "error": e.message, "type": type(e).__name__})
                self._logger.warning(
                    "auto_execution_run_failed",
                    run_id=run.id,
                    strategy_id=run.strategy_id,
                    error_type=type(e).__name__,
                    error=e.message,
                )
            except Exception as e:
                report.failed.append({"run_id": run.id, "error": str(e), "type": type(e).__name__})
                self._logger.error(
                    "auto_execution_run_error",
                    run_id=run.id,
                    strategy_id=run.strategy_id,
                    error_type=type(e).__name__,
                    error=str(e),
                )

        self._logger.info(
            "auto_execution_pass_completed",
            executed=len(report.executed),
            failed=len(report.failed),
            skipped=len(report.skipped),
        )
        return report

    async def _below_floors(self, run: Run, report: AutoExecutionReport) -> bool:
        strategy = await self.db.get_strategy(run.strategy_id)
        if strategy is None:
            # The orchestrator records missing strategies itself
            return False

        reason = auto_execution_rejection(run, strategy)
        if reason is None:
            return False

        await self.db.finalize_run(
            run.id,
            RunStatus.SIMULATED,
            approved_for_auto_execution=False,
            error_message=f"Not auto-executed: {reason}",
        )
        report.skipped.append({"run_id": run.id, "strategy_id": run.strategy_id, "reason": reason})
        self._logger.info(
            "auto_execution_run_below_floor",
            run_id=run.id,
            strategy_id=run.strategy_id,
            reason=reason,
        )
        return True

    def _skip(self, reason: str) -> AutoExecutionReport:
        self._logger.info("auto_execution_skipped", reason=reason)
        return AutoExecutionReport(skipped_reason=reason)
