"""Execution orchestration"""

from src.execution.auto_executor import AutoExecutionReport, AutoExecutor
from src.execution.orchestrator import ArbitrageOrchestrator, ExecutionOutcome, ExecutionState

__all__ = [
    "ArbitrageOrchestrator",
    "AutoExecutionReport",
    "AutoExecutor",
    "ExecutionOutcome",
    "ExecutionState",
]
