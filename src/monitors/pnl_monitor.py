"""PnL anomaly monitor: compares realized against expected results and auto-locks execution"""

from dataclasses import dataclass
from typing import List, Optional

import structlog

from src.chains.networks import get_network_info
from src.config.models import PnlMonitorConfig
from src.database.manager import DatabaseManager
from src.database.models import Alert, AlertFilters, AlertSeverity, Run, RunStatus
from src.errors import StaleSettingsError
from src.monitoring import metrics

logger = structlog.get_logger()

NEGATIVE_REALIZED_PROFIT = "NEGATIVE_REALIZED_PROFIT"
PNL_RATIO_LOW = "PNL_RATIO_LOW"
GAS_COST_OVERRUN = "GAS_COST_OVERRUN"
EXECUTION_AUTO_LOCKED = "EXECUTION_AUTO_LOCKED"

CRITICAL_GAS_RATIO = 2.0


@dataclass
class PnlEvaluation:
    """Alerts for one run and whether the monitor engaged the lock"""

    run_id: int
    pnl_ratio: float
    gas_ratio: float
    alerts: List[Alert]
    locked: bool = False
    already_evaluated: bool = False


class PnlMonitor:
    """
    Evaluates every executed run and engages the global execution lock after
    repeated discrepancies inside a rolling window.

    Evaluation is idempotent per run: a run that already has alerts is not
    evaluated again.
    """

    def __init__(self, config: PnlMonitorConfig, database_manager: DatabaseManager):
        self.config = config
        self.db = database_manager
        self._logger = logger.bind(component="pnl_monitor")

    @staticmethod
    def ratios(run: Run) -> tuple:
        realized = run.actual_profit_lamports or 0
        expected = run.estimated_profit_lamports or 0
        actual_gas = run.actual_gas_spent_native or 0
        estimated_gas = run.estimated_gas_cost_native or 0
        pnl_ratio = realized / max(expected, 1)
        gas_ratio = actual_gas / max(estimated_gas, 1)
        return pnl_ratio, gas_ratio

    def build_alerts(self, run: Run) -> List[Alert]:
        """Alerts the run deserves, without persisting them"""
        pnl_ratio, gas_ratio = self.ratios(run)
        realized = run.actual_profit_lamports or 0
        chain = get_network_info(run.network).chain_type.value
        alerts: List[Alert] = []

        def _alert(alert_type: str, severity: AlertSeverity, reason: str) -> Alert:
            return Alert(
                chain=chain,
                network=run.network,
                alert_type=alert_type,
                severity=severity,
                run_id=run.id,
                expected_net_profit=run.estimated_profit_lamports,
                realized_profit=run.actual_profit_lamports,
                gas_spent=run.actual_gas_spent_native,
                details={
                    "pnlRatio": round(pnl_ratio, 4),
                    "gasRatio": round(gas_ratio, 4),
                    "reason": reason,
                },
            )

        if realized < 0:
            alerts.append(
                _alert(
                    NEGATIVE_REALIZED_PROFIT,
                    AlertSeverity.CRITICAL,
                    f"Realized profit {realized} is negative",
                )
            )
        elif pnl_ratio < self.config.min_ratio:
            severity = (
                AlertSeverity.CRITICAL
                if pnl_ratio < self.config.min_ratio / 2
                else AlertSeverity.WARNING
            )
            alerts.append(
                _alert(
                    PNL_RATIO_LOW,
                    severity,
                    f"Realized/expected ratio {pnl_ratio:.2f} below minimum {self.config.min_ratio}",
                )
            )

        if gas_ratio > self.config.max_gas_multiplier:
            severity = AlertSeverity.CRITICAL if gas_ratio > CRITICAL_GAS_RATIO else AlertSeverity.WARNING
            alerts.append(
                _alert(
                    GAS_COST_OVERRUN,
                    severity,
                    f"Gas multiplier {gas_ratio:.2f}x exceeds max {self.config.max_gas_multiplier}x",
                )
            )

        return alerts

    async def evaluate(self, run: Optional[Run]) -> Optional[PnlEvaluation]:
        """
        Evaluate an executed run, persist its alerts and auto-lock when the
        window threshold is reached.

        Returns None for runs that are not EXECUTED.
        """
        if run is None or run.id is None or run.status != RunStatus.EXECUTED:
            return None

        pnl_ratio, gas_ratio = self.ratios(run)
        existing = await self.db.get_alerts(AlertFilters(include_acknowledged=True, run_id=run.id))
        if existing:
            self._logger.debug("pnl_run_already_evaluated", run_id=run.id, alerts=len(existing))
            return PnlEvaluation(
                run_id=run.id,
                pnl_ratio=pnl_ratio,
                gas_ratio=gas_ratio,
                alerts=existing,
                already_evaluated=True,
            )

        alerts = self.build_alerts(run)
        for alert in alerts:
            alert.id = await self.db.create_alert(alert)
            metrics.alerts_raised_total.labels(
                alert_type=alert.alert_type, severity=alert.severity.value
            ).inc()
            self._logger.warning(
                "pnl_alert_raised",
                run_id=run.id,
                alert_type=alert.alert_type,
                severity=alert.severity.value,
                reason=alert.details["reason"],
            )

        evaluation = PnlEvaluation(
            run_id=run.id, pnl_ratio=pnl_ratio, gas_ratio=gas_ratio, alerts=alerts
        )
        if alerts:
            evaluation.locked = await self.check_and_auto_lock(run)
        else:
            self._logger.info(
                "pnl_run_within_bounds", run_id=run.id, pnl_ratio=pnl_ratio, gas_ratio=gas_ratio
            )
        return evaluation

    async def check_and_auto_lock(self, run: Optional[Run] = None) -> bool:
        """Engage the lock once enough open alerts fall inside the window; returns True if it did"""
        window = self.config.fail_window_minutes
        recent = await self.db.count_recent_alerts(window)
        if recent < self.config.fail_max_consecutive:
            return False

        reason = f"Auto-locked: {recent} PnL alerts in {window} minutes"
        for attempt in range(2):
            current = await self.db.get_system_settings()
            if current.arb_execution_locked:
                # Keep the earlier reason
                self._logger.info(
                    "auto_lock_already_engaged", reason=current.arb_execution_locked_reason
                )
                return False
            try:
                await self.db.set_execution_lock(True, reason, current.version)
                break
            except StaleSettingsError:
                if attempt == 1:
                    raise
                self._logger.warning("auto_lock_version_conflict", version=current.version)

        self._logger.critical("execution_auto_locked", recent_alerts=recent, window_minutes=window)
        network = run.network if run is not None else "ALL"
        chain = get_network_info(run.network).chain_type.value if run is not None else "ALL"
        await self.db.create_alert(
            Alert(
                chain=chain,
                network=network,
                alert_type=EXECUTION_AUTO_LOCKED,
                severity=AlertSeverity.CRITICAL,
                run_id=run.id if run is not None else None,
                details={
                    "recentAlerts": recent,
                    "windowMinutes": window,
                    "threshold": self.config.fail_max_consecutive,
                    "reason": reason,
                },
            )
        )
        metrics.alerts_raised_total.labels(
            alert_type=EXECUTION_AUTO_LOCKED, severity=AlertSeverity.CRITICAL.value
        ).inc()
        return True
