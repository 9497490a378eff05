"""Database manager with connection pooling and retry logic"""

import asyncio
import json
import time
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import asyncpg
import structlog

from src.database.models import (
    Alert,
    AlertFilters,
    AlertSeverity,
    DailyRiskLimit,
    FeePayerKey,
    OpsEvent,
    Run,
    RunFilters,
    RunStatus,
    RunType,
    Strategy,
    SystemSettings,
)
from src.database.schema import get_schema_sql
from src.errors import StaleSettingsError
from src.monitoring import metrics

logger = structlog.get_logger()

# Columns finalize_run may set; anything else is a programming error
_RUN_RESULT_COLUMNS = {
    "estimated_gross_profit",
    "estimated_profit_lamports",
    "estimated_gas_cost_native",
    "estimated_gas_cost",
    "slippage_buffer",
    "profit_bps",
    "actual_profit_lamports",
    "actual_gas_spent_native",
    "tx_signature",
    "leg2_tx_signature",
    "used_flash_loan",
    "flash_loan_provider",
    "flash_loan_amount",
    "flash_loan_fee",
    "approved_for_auto_execution",
    "requires_manual_reconciliation",
    "error_message",
    "details",
}

_NUMERIC_RUN_COLUMNS = {
    "estimated_gross_profit",
    "estimated_profit_lamports",
    "estimated_gas_cost_native",
    "estimated_gas_cost",
    "slippage_buffer",
    "actual_profit_lamports",
    "actual_gas_spent_native",
    "flash_loan_amount",
    "flash_loan_fee",
}


def _num(value: Optional[int]) -> Optional[Decimal]:
    return Decimal(value) if value is not None else None


def _int(value: Any) -> Optional[int]:
    return int(value) if value is not None else None


def _json(value: Any) -> Dict[str, Any]:
    if value is None:
        return {}
    if isinstance(value, str):
        return json.loads(value)
    return dict(value)


def _strategy_from_row(row) -> Strategy:
    return Strategy(
        id=row["id"],
        name=row["name"],
        chain_type=row["chain_type"],
        network=row["network"],
        dex_a=row["dex_a"],
        dex_b=row["dex_b"],
        token_in_mint=row["token_in_mint"],
        token_out_mint=row["token_out_mint"],
        token_in_decimals=row["token_in_decimals"],
        is_enabled=row["is_enabled"],
        is_auto_enabled=row["is_auto_enabled"],
        is_for_fee_payer_refill=row["is_for_fee_payer_refill"],
        is_for_ops_refill=row["is_for_ops_refill"],
        min_expected_profit_native=_int(row["min_expected_profit_native"]),
        min_profit_to_gas_ratio=row["min_profit_to_gas_ratio"],
        min_profit_lamports=_int(row["min_profit_lamports"]),
        min_profit_bps=row["min_profit_bps"],
        max_trade_value_native=_int(row["max_trade_value_native"]),
        max_trades_per_day=row["max_trades_per_day"],
        max_daily_loss_native=_int(row["max_daily_loss_native"]),
        use_flash_loan=row["use_flash_loan"],
        flash_loan_provider=row["flash_loan_provider"],
        flash_loan_token=row["flash_loan_token"],
        flash_loan_amount_native=_int(row["flash_loan_amount_native"]),
        created_at=row["created_at"],
    )


def _run_from_row(row) -> Run:
    return Run(
        id=row["id"],
        strategy_id=row["strategy_id"],
        run_type=RunType(row["run_type"]),
        purpose=row["purpose"],
        network=row["network"],
        status=RunStatus(row["status"]),
        started_at=row["started_at"],
        finished_at=row["finished_at"],
        notional_in=_int(row["notional_in"]),
        estimated_gross_profit=_int(row["estimated_gross_profit"]),
        estimated_profit_lamports=_int(row["estimated_profit_lamports"]),
        estimated_gas_cost_native=_int(row["estimated_gas_cost_native"]),
        estimated_gas_cost=_int(row["estimated_gas_cost"]),
        slippage_buffer=_int(row["slippage_buffer"]),
        profit_bps=row["profit_bps"],
        actual_profit_lamports=_int(row["actual_profit_lamports"]),
        actual_gas_spent_native=_int(row["actual_gas_spent_native"]),
        tx_signature=row["tx_signature"],
        leg2_tx_signature=row["leg2_tx_signature"],
        used_flash_loan=row["used_flash_loan"],
        flash_loan_provider=row["flash_loan_provider"],
        flash_loan_amount=_int(row["flash_loan_amount"]),
        flash_loan_fee=_int(row["flash_loan_fee"]),
        approved_for_auto_execution=row["approved_for_auto_execution"],
        requires_manual_reconciliation=row["requires_manual_reconciliation"],
        error_message=row["error_message"],
        details=_json(row["details"]),
    )


def _alert_from_row(row) -> Alert:
    return Alert(
        id=row["id"],
        chain=row["chain"],
        network=row["network"],
        run_id=row["run_id"],
        alert_type=row["alert_type"],
        severity=AlertSeverity(row["severity"]),
        expected_net_profit=_int(row["expected_net_profit"]),
        realized_profit=_int(row["realized_profit"]),
        gas_spent=_int(row["gas_spent"]),
        details=_json(row["details_json"]),
        created_at=row["created_at"],
        acknowledged_at=row["acknowledged_at"],
        acknowledged_by=row["acknowledged_by"],
    )


def _settings_from_row(row) -> SystemSettings:
    return SystemSettings(
        version=row["version"],
        arb_execution_locked=row["arb_execution_locked"],
        arb_execution_locked_reason=row["arb_execution_locked_reason"],
        arb_execution_locked_at=row["arb_execution_locked_at"],
        is_mainnet_mode=row["is_mainnet_mode"],
        auto_arbitrage_enabled=row["auto_arbitrage_enabled"],
        auto_flash_loan_enabled=row["auto_flash_loan_enabled"],
        safe_mode_enabled=row["safe_mode_enabled"],
        max_global_daily_trades=row["max_global_daily_trades"],
        max_global_daily_loss_native=_int(row["max_global_daily_loss_native"]),
        solana_min_fee_payer_balance_lamports=row["solana_min_fee_payer_balance_lamports"],
        solana_fee_payer_top_up_lamports=row["solana_fee_payer_top_up_lamports"],
        updated_at=row["updated_at"],
    )


def _fee_payer_from_row(row) -> FeePayerKey:
    return FeePayerKey(
        id=row["id"],
        public_key=row["public_key"],
        encrypted_secret_key=row["encrypted_secret_key"],
        is_active=row["is_active"],
        usage_count=row["usage_count"],
        last_used_at=row["last_used_at"],
        leased_until=row["leased_until"],
        balance_lamports=_int(row["balance_lamports"]),
        balance_updated_at=row["balance_updated_at"],
    )


class DatabaseManager:
    """
    Manages PostgreSQL database connections and ledger operations with connection pooling.

    Features:
    - Connection pooling (min 5, max 20 connections)
    - Automatic retry logic for transient failures (3 attempts with exponential backoff)
    - Parameterized queries only
    - Runs are inserted once and finalized once; events and alerts are insert-only
    - Versioned writes to the system settings row
    """

    def __init__(self, database_url: str, min_pool_size: int = 5, max_pool_size: int = 20):
        """
        Initialize database manager.

        Args:
            database_url: PostgreSQL connection URL
            min_pool_size: Minimum number of connections in pool
            max_pool_size: Maximum number of connections in pool
        """
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self.pool: Optional[asyncpg.Pool] = None
        self._logger = logger.bind(component="database_manager")

    async def connect(self) -> None:
        """Establish connection pool to database"""
        try:
            self.pool = await asyncpg.create_pool(
                self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=60,
            )
            self._logger.info(
                "database_connected",
                min_pool_size=self.min_pool_size,
                max_pool_size=self.max_pool_size,
            )
        except (asyncpg.PostgresError, OSError) as e:
            self._logger.error("database_connection_failed", error=str(e))
            raise

    async def disconnect(self) -> None:
        """Close connection pool"""
        if self.pool:
            await self.pool.close()
            self._logger.info("database_disconnected")

    async def initialize_schema(self) -> None:
        """Initialize database schema"""
        if not self.pool:
            raise RuntimeError("Database pool not initialized. Call connect() first.")

        schema_sql = get_schema_sql()
        async with self.pool.acquire() as conn:
            await conn.execute(schema_sql)
            self._logger.info("database_schema_initialized")

    async def _retry_operation(self, operation, *args, **kwargs):
        """
        Retry database operation with exponential backoff.

        Args:
            operation: Async function to retry
            *args: Positional arguments for operation
            **kwargs: Keyword arguments for operation

        Returns:
            Result of operation

        Raises:
            Exception: If all retry attempts fail
        """
        max_attempts = 3
        base_delay = 0.5  # seconds
        name = getattr(operation, "__name__", "operation")

        for attempt in range(1, max_attempts + 1):
            start_time = time.time()
            try:
                result = await operation(*args, **kwargs)
                metrics.db_query_latency.labels(operation=name).observe(time.time() - start_time)
                return result
            except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
                metrics.db_errors.labels(operation=name, error_type=type(e).__name__).inc()
                if attempt == max_attempts:
                    self._logger.error(
                        "database_operation_failed",
                        operation=name,
                        attempts=attempt,
                        error=str(e),
                    )
                    raise

                delay = base_delay * (2 ** (attempt - 1))
                self._logger.warning(
                    "database_operation_retry",
                    operation=name,
                    attempt=attempt,
                    delay=delay,
                    error=str(e),
                )
                await asyncio.sleep(delay)

    # Strategies

    async def get_strategy(self, strategy_id: int) -> Optional[Strategy]:
        if not self.pool:
            raise RuntimeError("Database pool not initialized")

        async def _get_strategy():
            async with self.pool.acquire() as conn:
                return await conn.fetchrow(
                    "SELECT * FROM arbitrage_strategies WHERE id = $1", strategy_id
                )

        row = await self._retry_operation(_get_strategy)
        return _strategy_from_row(row) if row else None

    async def get_enabled_strategies(self, chain_type: Optional[str] = None) -> List[Strategy]:
        """Enabled strategies, optionally for one chain family"""
        if not self.pool:
            raise RuntimeError("Database pool not initialized")

        query = "SELECT * FROM arbitrage_strategies WHERE is_enabled = TRUE"
        params: List[Any] = []
        if chain_type is not None:
            query += " AND chain_type = $1"
            params.append(chain_type)
        query += " ORDER BY id"

        async def _get_enabled_strategies():
            async with self.pool.acquire() as conn:
                return await conn.fetch(query, *params)

        rows = await self._retry_operation(_get_enabled_strategies)
        return [_strategy_from_row(row) for row in rows]

    async def find_strategy(
        self, network: str, dex_a: str, dex_b: str, token_in: str, token_out: str
    ) -> Optional[Strategy]:
        """Identical route lookup used before auto-creating a strategy"""
        if not self.pool:
            raise RuntimeError("Database pool not initialized")

        async def _find_strategy():
            async with self.pool.acquire() as conn:
                return await conn.fetchrow(
                    """
                    SELECT * FROM arbitrage_strategies
                    WHERE network = $1 AND dex_a = $2 AND dex_b = $3
                      AND LOWER(token_in_mint) = LOWER($4)
                      AND LOWER(token_out_mint) = LOWER($5)
                    LIMIT 1
                    """,
                    network,
                    dex_a,
                    dex_b,
                    token_in,
                    token_out,
                )

        row = await self._retry_operation(_find_strategy)
        return _strategy_from_row(row) if row else None

    async def create_strategy(self, strategy: Strategy) -> int:
        if not self.pool:
            raise RuntimeError("Database pool not initialized")

        async def _save():
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    INSERT INTO arbitrage_strategies (
                        name, chain_type, network, dex_a, dex_b, token_in_mint, token_out_mint,
                        token_in_decimals, is_enabled, is_auto_enabled, min_expected_profit_native,
                        min_profit_lamports, min_profit_bps, max_trade_value_native,
                        max_trades_per_day, max_daily_loss_native, use_flash_loan,
                        flash_loan_provider, flash_loan_token, flash_loan_amount_native,
                        min_profit_to_gas_ratio
                    ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14,
                              $15, $16, $17, $18, $19, $20, $21)
                    RETURNING id
                    """,
                    strategy.name,
                    strategy.chain_type,
                    strategy.network,
                    strategy.dex_a,
                    strategy.dex_b,
                    strategy.token_in_mint,
                    strategy.token_out_mint,
                    strategy.token_in_decimals,
                    strategy.is_enabled,
                    strategy.is_auto_enabled,
                    _num(strategy.min_expected_profit_native),
                    _num(strategy.min_profit_lamports),
                    strategy.min_profit_bps,
                    _num(strategy.max_trade_value_native),
                    strategy.max_trades_per_day,
                    _num(strategy.max_daily_loss_native),
                    strategy.use_flash_loan,
                    strategy.flash_loan_provider,
                    strategy.flash_loan_token,
                    _num(strategy.flash_loan_amount_native),
                    strategy.min_profit_to_gas_ratio,
                )
                return row["id"]

        strategy_id = await self._retry_operation(_save)
        self._logger.info(
            "strategy_created",
            strategy_id=strategy_id,
            name=strategy.name,
            is_enabled=strategy.is_enabled,
        )
        return strategy_id

    # Runs

    async def create_run(self, run: Run) -> int:
        """Insert a run; finished_at stays NULL unless the run is already final"""
        if not self.pool:
            raise RuntimeError("Database pool not initialized")

        async def _save():
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    INSERT INTO arbitrage_runs (
                        strategy_id, run_type, purpose, network, status, finished_at,
                        notional_in, estimated_gross_profit, estimated_profit_lamports,
                        estimated_gas_cost_native, estimated_gas_cost, slippage_buffer,
                        profit_bps, used_flash_loan, flash_loan_provider, flash_loan_amount,
                        flash_loan_fee, approved_for_auto_execution, error_message, details
                    ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14,
                              $15, $16, $17, $18, $19, $20::jsonb)
                    RETURNING id, started_at
                    """,
                    run.strategy_id,
                    run.run_type.value,
                    run.purpose,
                    run.network,
                    run.status.value,
                    run.finished_at,
                    _num(run.notional_in),
                    _num(run.estimated_gross_profit),
                    _num(run.estimated_profit_lamports),
                    _num(run.estimated_gas_cost_native),
                    _num(run.estimated_gas_cost),
                    _num(run.slippage_buffer),
                    run.profit_bps,
                    run.used_flash_loan,
                    run.flash_loan_provider,
                    _num(run.flash_loan_amount),
                    _num(run.flash_loan_fee),
                    run.approved_for_auto_execution,
                    run.error_message,
                    json.dumps(run.details),
                )
                return row["id"]

        run_id = await self._retry_operation(_save)
        self._logger.info(
            "run_created",
            run_id=run_id,
            strategy_id=run.strategy_id,
            status=run.status.value,
            run_type=run.run_type.value,
        )
        return run_id

    async def finalize_run(self, run_id: int, status: RunStatus, **fields: Any) -> None:
        """
        Set the terminal status and result fields of an open run.

        Raises:
            RuntimeError: If the run does not exist or was already finalized
        """
        if not self.pool:
            raise RuntimeError("Database pool not initialized")

        unknown = set(fields) - _RUN_RESULT_COLUMNS
        if unknown:
            raise ValueError(f"Unknown run fields: {sorted(unknown)}")

        assignments = ["status = $2", "finished_at = $3"]
        params: List[Any] = [run_id, status.value, datetime.now(timezone.utc)]
        for column, value in fields.items():
            params.append(value)
            placeholder = f"${len(params)}"
            if column in _NUMERIC_RUN_COLUMNS:
                params[-1] = _num(value)
            elif column == "details":
                params[-1] = json.dumps(value or {})
                placeholder += "::jsonb"
            assignments.append(f"{column} = {placeholder}")

        query = (
            f"UPDATE arbitrage_runs SET {', '.join(assignments)} "
            "WHERE id = $1 AND finished_at IS NULL"
        )

        async def _finalize_run():
            async with self.pool.acquire() as conn:
                return await conn.execute(query, *params)

        result = await self._retry_operation(_finalize_run)
        if result == "UPDATE 0":
            raise RuntimeError(f"Run {run_id} not found or already finalized")

        self._logger.info("run_finalized", run_id=run_id, status=status.value)

    async def get_run(self, run_id: int) -> Optional[Run]:
        if not self.pool:
            raise RuntimeError("Database pool not initialized")

        async def _get_run():
            async with self.pool.acquire() as conn:
                return await conn.fetchrow("SELECT * FROM arbitrage_runs WHERE id = $1", run_id)

        row = await self._retry_operation(_get_run)
        return _run_from_row(row) if row else None

    async def get_open_approved_runs(self, limit: int = 10, max_age_seconds: int = 600) -> List[Run]:
        """
        Open SIMULATED runs approved for auto-execution whose strategy is
        enabled twice over. Runs started more than max_age_seconds ago carry
        stale quotes and are left out.
        """
        if not self.pool:
            raise RuntimeError("Database pool not initialized")

        cutoff = datetime.now(timezone.utc) - timedelta(seconds=max_age_seconds)

        async def _get_open_approved_runs():
            async with self.pool.acquire() as conn:
                return await conn.fetch(
                    """
                    SELECT r.* FROM arbitrage_runs r
                    JOIN arbitrage_strategies s ON s.id = r.strategy_id
                    WHERE r.status = 'SIMULATED'
                      AND r.finished_at IS NULL
                      AND r.approved_for_auto_execution = TRUE
                      AND s.is_enabled = TRUE
                      AND s.is_auto_enabled = TRUE
                      AND r.started_at >= $2
                    ORDER BY r.started_at ASC
                    LIMIT $1
                    """,
                    limit,
                    cutoff,
                )

        rows = await self._retry_operation(_get_open_approved_runs)
        return [_run_from_row(row) for row in rows]

    async def supersede_open_scan_runs(self, strategy_id: int, reason: str) -> int:
        """
        Close a strategy's open scan runs so a newer scan replaces them.

        Returns:
            Number of runs closed
        """
        if not self.pool:
            raise RuntimeError("Database pool not initialized")

        async def _supersede_open_scan_runs():
            async with self.pool.acquire() as conn:
                return await conn.execute(
                    """
                    UPDATE arbitrage_runs
                    SET finished_at = NOW(),
                        approved_for_auto_execution = FALSE,
                        error_message = $2
                    WHERE strategy_id = $1
                      AND run_type = 'SCAN'
                      AND status = 'SIMULATED'
                      AND finished_at IS NULL
                    """,
                    strategy_id,
                    reason,
                )

        result = await self._retry_operation(_supersede_open_scan_runs)
        closed = int(result.split()[-1]) if result else 0
        if closed:
            self._logger.info("scan_runs_superseded", strategy_id=strategy_id, count=closed)
        return closed

    async def get_runs(self, filters: RunFilters) -> List[Run]:
        """
        Query runs with filters.

        Args:
            filters: RunFilters object

        Returns:
            List of Run objects, newest first
        """
        if not self.pool:
            raise RuntimeError("Database pool not initialized")

        query = "SELECT * FROM arbitrage_runs WHERE 1=1"
        params: List[Any] = []
        param_count = 1

        if filters.strategy_id is not None:
            query += f" AND strategy_id = ${param_count}"
            params.append(filters.strategy_id)
            param_count += 1

        if filters.status is not None:
            query += f" AND status = ${param_count}"
            params.append(filters.status.value)
            param_count += 1

        query += " ORDER BY started_at DESC"
        query += f" LIMIT ${param_count} OFFSET ${param_count + 1}"
        params.extend([filters.limit, filters.offset])

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, *params)

        return [_run_from_row(row) for row in rows]

    # Events

    async def record_event(self, event: OpsEvent) -> int:
        if not self.pool:
            raise RuntimeError("Database pool not initialized")

        async def _save():
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    INSERT INTO ops_arbitrage_events (
                        run_id, strategy_id, chain, network, mode, status, route, notional_in,
                        expected_net_profit, realized_profit, leg1_gas_native, leg2_gas_native,
                        gas_spent_native, tx_hashes, error_message, details
                    ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14,
                              $15, $16::jsonb)
                    RETURNING id
                    """,
                    event.run_id,
                    event.strategy_id,
                    event.chain,
                    event.network,
                    event.mode,
                    event.status.value,
                    event.route,
                    _num(event.notional_in),
                    _num(event.expected_net_profit),
                    _num(event.realized_profit),
                    _num(event.leg1_gas_native),
                    _num(event.leg2_gas_native),
                    _num(event.gas_spent_native),
                    event.tx_hashes,
                    event.error_message,
                    json.dumps(event.details),
                )
                return row["id"]

        event_id = await self._retry_operation(_save)
        self._logger.debug(
            "event_recorded",
            event_id=event_id,
            run_id=event.run_id,
            status=event.status.value,
            mode=event.mode,
        )
        return event_id

    # Alerts

    async def create_alert(self, alert: Alert) -> int:
        if not self.pool:
            raise RuntimeError("Database pool not initialized")

        async def _save():
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    INSERT INTO ops_arbitrage_alerts (
                        chain, network, run_id, alert_type, severity, expected_net_profit,
                        realized_profit, gas_spent, details_json
                    ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9::jsonb)
                    RETURNING id
                    """,
                    alert.chain,
                    alert.network,
                    alert.run_id,
                    alert.alert_type,
                    alert.severity.value,
                    _num(alert.expected_net_profit),
                    _num(alert.realized_profit),
                    _num(alert.gas_spent),
                    json.dumps(alert.details),
                )
                return row["id"]

        alert_id = await self._retry_operation(_save)
        self._logger.warning(
            "alert_created",
            alert_id=alert_id,
            run_id=alert.run_id,
            alert_type=alert.alert_type,
            severity=alert.severity.value,
        )
        return alert_id

    async def get_alerts(self, filters: AlertFilters) -> List[Alert]:
        if not self.pool:
            raise RuntimeError("Database pool not initialized")

        query = "SELECT * FROM ops_arbitrage_alerts WHERE 1=1"
        params: List[Any] = []
        param_count = 1

        if not filters.include_acknowledged:
            query += " AND acknowledged_at IS NULL"

        if filters.run_id is not None:
            query += f" AND run_id = ${param_count}"
            params.append(filters.run_id)
            param_count += 1

        query += " ORDER BY created_at DESC, id DESC"
        query += f" LIMIT ${param_count} OFFSET ${param_count + 1}"
        params.extend([filters.limit, filters.offset])

        async def _get_alerts():
            async with self.pool.acquire() as conn:
                return await conn.fetch(query, *params)

        rows = await self._retry_operation(_get_alerts)
        return [_alert_from_row(row) for row in rows]

    async def count_recent_alerts(self, window_minutes: int) -> int:
        """Unacknowledged warning and critical alerts inside the rolling window"""
        if not self.pool:
            raise RuntimeError("Database pool not initialized")

        async def _count_recent_alerts():
            async with self.pool.acquire() as conn:
                return await conn.fetchval(
                    """
                    SELECT COUNT(*) FROM ops_arbitrage_alerts
                    WHERE acknowledged_at IS NULL
                      AND severity IN ('warning', 'critical')
                      AND alert_type <> 'EXECUTION_AUTO_LOCKED'
                      AND created_at >= NOW() - make_interval(mins => $1)
                    """,
                    window_minutes,
                )

        return int(await self._retry_operation(_count_recent_alerts))

    async def acknowledge_alert(self, alert_id: int, acknowledged_by: str) -> bool:
        """Set acknowledged_at once; returns False when missing or already acknowledged"""
        if not self.pool:
            raise RuntimeError("Database pool not initialized")

        async def _acknowledge_alert():
            async with self.pool.acquire() as conn:
                return await conn.execute(
                    """
                    UPDATE ops_arbitrage_alerts
                    SET acknowledged_at = NOW(), acknowledged_by = $2
                    WHERE id = $1 AND acknowledged_at IS NULL
                    """,
                    alert_id,
                    acknowledged_by,
                )

        result = await self._retry_operation(_acknowledge_alert)
        acknowledged = result != "UPDATE 0"
        if acknowledged:
            self._logger.info("alert_acknowledged", alert_id=alert_id, acknowledged_by=acknowledged_by)
        return acknowledged

    # System settings

    async def get_system_settings(self) -> SystemSettings:
        if not self.pool:
            raise RuntimeError("Database pool not initialized")

        async def _get_system_settings():
            async with self.pool.acquire() as conn:
                return await conn.fetchrow("SELECT * FROM system_settings WHERE id = 1")

        row = await self._retry_operation(_get_system_settings)
        if row is None:
            raise RuntimeError("system_settings row missing; run initialize_schema()")
        return _settings_from_row(row)

    async def set_execution_lock(
        self, locked: bool, reason: Optional[str], expected_version: int
    ) -> SystemSettings:
        """
        Versioned write of the execution lock.

        Raises:
            StaleSettingsError: If the row changed since expected_version was read
        """
        if not self.pool:
            raise RuntimeError("Database pool not initialized")

        async def _set_execution_lock():
            async with self.pool.acquire() as conn:
                return await conn.fetchrow(
                    """
                    UPDATE system_settings
                    SET arb_execution_locked = $1,
                        arb_execution_locked_reason = $2,
                        arb_execution_locked_at = CASE WHEN $1 THEN NOW() ELSE NULL END,
                        version = version + 1,
                        updated_at = NOW()
                    WHERE id = 1 AND version = $3
                    RETURNING *
                    """,
                    locked,
                    reason if locked else None,
                    expected_version,
                )

        row = await self._retry_operation(_set_execution_lock)
        if row is None:
            raise StaleSettingsError(
                f"System settings changed since version {expected_version}; reload and retry"
            )

        settings = _settings_from_row(row)
        metrics.execution_lock_engaged.set(1 if settings.arb_execution_locked else 0)
        self._logger.warning(
            "execution_lock_updated",
            locked=settings.arb_execution_locked,
            reason=settings.arb_execution_locked_reason,
            version=settings.version,
        )
        return settings

    # Daily risk limits

    async def get_daily_risk(self, strategy_id: int, chain: str, day: date) -> DailyRiskLimit:
        if not self.pool:
            raise RuntimeError("Database pool not initialized")

        async def _get_daily_risk():
            async with self.pool.acquire() as conn:
                return await conn.fetchrow(
                    """
                    SELECT trade_count, total_pnl, total_loss FROM daily_risk_limits
                    WHERE strategy_id = $1 AND chain = $2 AND day = $3
                    """,
                    strategy_id,
                    chain,
                    day,
                )

        row = await self._retry_operation(_get_daily_risk)
        if row is None:
            return DailyRiskLimit(strategy_id=strategy_id, chain=chain, day=day)
        return DailyRiskLimit(
            strategy_id=strategy_id,
            chain=chain,
            day=day,
            trade_count=row["trade_count"],
            total_pnl=int(row["total_pnl"]),
            total_loss=int(row["total_loss"]),
        )

    async def get_global_daily_risk(self, day: date) -> Tuple[int, int]:
        """(trade_count, total_loss) across all strategies for a day"""
        if not self.pool:
            raise RuntimeError("Database pool not initialized")

        async def _get_global_daily_risk():
            async with self.pool.acquire() as conn:
                return await conn.fetchrow(
                    """
                    SELECT COALESCE(SUM(trade_count), 0) AS trade_count,
                           COALESCE(SUM(total_loss), 0) AS total_loss
                    FROM daily_risk_limits WHERE day = $1
                    """,
                    day,
                )

        row = await self._retry_operation(_get_global_daily_risk)
        return int(row["trade_count"]), int(row["total_loss"])

    async def increment_daily_risk(self, strategy_id: int, chain: str, day: date, pnl: int) -> None:
        """Count one trade and add its PnL; losses accumulate as a positive amount"""
        if not self.pool:
            raise RuntimeError("Database pool not initialized")

        loss = -pnl if pnl < 0 else 0

        async def _increment_daily_risk():
            async with self.pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO daily_risk_limits (strategy_id, chain, day, trade_count, total_pnl, total_loss)
                    VALUES ($1, $2, $3, 1, $4, $5)
                    ON CONFLICT (strategy_id, chain, day) DO UPDATE SET
                        trade_count = daily_risk_limits.trade_count + 1,
                        total_pnl = daily_risk_limits.total_pnl + EXCLUDED.total_pnl,
                        total_loss = daily_risk_limits.total_loss + EXCLUDED.total_loss
                    """,
                    strategy_id,
                    chain,
                    day,
                    Decimal(pnl),
                    Decimal(loss),
                )

        await self._retry_operation(_increment_daily_risk)

    # Fee payers

    async def lease_fee_payer(
        self,
        lease_seconds: int,
        least_used_first: bool = True,
        min_balance_lamports: Optional[int] = None,
    ) -> Optional[FeePayerKey]:
        """
        Atomically lease a free fee payer, the least used one by default.

        SKIP LOCKED lets concurrent leases pick different rows instead of waiting.
        Payers whose last refreshed balance is below min_balance_lamports are
        skipped; a payer never refreshed is still eligible.
        """
        if not self.pool:
            raise RuntimeError("Database pool not initialized")

        order_by = (
            "usage_count ASC, last_used_at ASC NULLS FIRST" if least_used_first else "id ASC"
        )

        async def _lease_fee_payer():
            async with self.pool.acquire() as conn:
                return await conn.fetchrow(
                    f"""
                    UPDATE fee_payer_keys
                    SET leased_until = NOW() + make_interval(secs => $1),
                        usage_count = usage_count + 1,
                        last_used_at = NOW()
                    WHERE id = (
                        SELECT id FROM fee_payer_keys
                        WHERE is_active = TRUE
                          AND (leased_until IS NULL OR leased_until < NOW())
                          AND ($2::numeric IS NULL OR balance_lamports IS NULL
                               OR balance_lamports >= $2::numeric)
                        ORDER BY {order_by}
                        LIMIT 1
                        FOR UPDATE SKIP LOCKED
                    )
                    RETURNING *
                    """,
                    float(lease_seconds),
                    _num(min_balance_lamports),
                )

        row = await self._retry_operation(_lease_fee_payer)
        return _fee_payer_from_row(row) if row else None

    async def release_fee_payer(self, fee_payer_id: int) -> None:
        if not self.pool:
            raise RuntimeError("Database pool not initialized")

        async def _release_fee_payer():
            async with self.pool.acquire() as conn:
                await conn.execute(
                    "UPDATE fee_payer_keys SET leased_until = NULL WHERE id = $1", fee_payer_id
                )

        await self._retry_operation(_release_fee_payer)

    async def count_active_fee_payers(self) -> int:
        if not self.pool:
            raise RuntimeError("Database pool not initialized")

        async def _count_active_fee_payers():
            async with self.pool.acquire() as conn:
                return await conn.fetchval(
                    "SELECT COUNT(*) FROM fee_payer_keys WHERE is_active = TRUE"
                )

        return int(await self._retry_operation(_count_active_fee_payers))

    async def get_fee_payers(self, active_only: bool = True) -> List[FeePayerKey]:
        if not self.pool:
            raise RuntimeError("Database pool not initialized")

        query = "SELECT * FROM fee_payer_keys"
        if active_only:
            query += " WHERE is_active = TRUE"
        query += " ORDER BY id ASC"

        async def _get_fee_payers():
            async with self.pool.acquire() as conn:
                return await conn.fetch(query)

        rows = await self._retry_operation(_get_fee_payers)
        return [_fee_payer_from_row(row) for row in rows]

    async def update_fee_payer_balance(self, fee_payer_id: int, balance_lamports: int) -> None:
        if not self.pool:
            raise RuntimeError("Database pool not initialized")

        async def _update_fee_payer_balance():
            async with self.pool.acquire() as conn:
                await conn.execute(
                    """
                    UPDATE fee_payer_keys
                    SET balance_lamports = $2, balance_updated_at = NOW()
                    WHERE id = $1
                    """,
                    fee_payer_id,
                    _num(balance_lamports),
                )

        await self._retry_operation(_update_fee_payer_balance)

    async def record_fee_payer_top_up(
        self, public_key: str, amount_lamports: int, tx_signature: str
    ) -> int:
        """Insert one top-up transfer; rows are never updated"""
        if not self.pool:
            raise RuntimeError("Database pool not initialized")

        async def _save():
            async with self.pool.acquire() as conn:
                return await conn.fetchval(
                    """
                    INSERT INTO fee_payer_topups (fee_payer_public_key, amount_lamports, tx_signature)
                    VALUES ($1, $2, $3)
                    RETURNING id
                    """,
                    public_key,
                    _num(amount_lamports),
                    tx_signature,
                )

        top_up_id = await self._retry_operation(_save)
        self._logger.info(
            "fee_payer_top_up_recorded",
            top_up_id=top_up_id,
            public_key=public_key,
            amount_lamports=amount_lamports,
            tx_signature=tx_signature,
        )
        return top_up_id

    # Authentication

    async def get_token_principal(self, token_hash: str) -> Optional[Tuple[str, List[str]]]:
        """(user_id, roles) for a live API token hash"""
        if not self.pool:
            raise RuntimeError("Database pool not initialized")

        async def _get_token_principal():
            async with self.pool.acquire() as conn:
                token_row = await conn.fetchrow(
                    "SELECT user_id FROM api_tokens WHERE token_hash = $1 AND revoked_at IS NULL",
                    token_hash,
                )
                if token_row is None:
                    return None
                role_rows = await conn.fetch(
                    "SELECT role FROM user_roles WHERE user_id = $1", token_row["user_id"]
                )
                return token_row["user_id"], [r["role"] for r in role_rows]

        return await self._retry_operation(_get_token_principal)

    async def get_pool_size(self) -> int:
        """Get current connection pool size"""
        if not self.pool:
            return 0
        return self.pool.get_size()

    async def get_pool_free_size(self) -> int:
        """Get number of free connections in pool"""
        if not self.pool:
            return 0
        return self.pool.get_idle_size()
