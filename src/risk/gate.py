"""Pre-execution risk gate"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import List, Optional

import structlog

from src.chains.connector import ChainConnector
from src.chains.networks import ChainType, NetworkInfo
from src.config.models import Settings
from src.database.manager import DatabaseManager
from src.database.models import DailyRiskLimit, Run, Strategy, SystemSettings
from src.detectors.profit_calculator import calculate_scan_gas
from src.errors import (
    ArbitrageError,
    AuthorizationError,
    ConfigurationError,
    ExecutionDisabledError,
    ExecutionLockedError,
    InsufficientFundsError,
    RiskLimitExceededError,
)
from src.monitoring import metrics

logger = structlog.get_logger()

ADMIN_ROLE = "admin"

# Two Jupiter swaps at the base fee plus generous prioritization
SOLANA_GAS_RESERVE_LAMPORTS = 10_000_000


@dataclass(frozen=True)
class Principal:
    """Authenticated caller"""

    user_id: str
    roles: List[str] = field(default_factory=list)

    @property
    def is_admin(self) -> bool:
        return ADMIN_ROLE in self.roles


SYSTEM_PRINCIPAL = Principal(user_id="system:auto-executor", roles=[ADMIN_ROLE])

DEFAULT_MIN_PROFIT_TO_GAS_RATIO = Decimal(1)


@dataclass
class GateResult:
    """Snapshot of what the gate read when it passed"""

    settings: SystemSettings
    day: date
    daily_risk: Optional[DailyRiskLimit] = None
    global_trade_count: int = 0
    global_loss: int = 0
    gas_buffer_native: int = 0
    native_balance: Optional[int] = None
    input_balance: Optional[int] = None


class RiskGate:
    """
    Ordered, short-circuiting checks run before any execution call.

    check() covers authorization, environment flags, the global lock and the
    daily caps, and touches only the database. check_balances() is the last
    step and needs the signer's address, so callers run it after leasing one.
    """

    def __init__(self, settings: Settings, db_manager: DatabaseManager):
        self.settings = settings
        self.db_manager = db_manager
        self._logger = logger.bind(component="risk_gate")

    async def check(
        self,
        principal: Principal,
        strategy: Strategy,
        network_info: NetworkInfo,
        simulate_only: bool = False,
    ) -> GateResult:
        """
        Run steps 1-4 of the gate

        A simulate-only request moves no funds, so only authorization applies.

        Raises:
            AuthorizationError, ExecutionDisabledError, ExecutionLockedError,
            RiskLimitExceededError, ConfigurationError
        """
        return await self._guarded(
            strategy, network_info, self._check(principal, strategy, network_info, simulate_only)
        )

    async def check_balances(
        self,
        result: GateResult,
        connector: ChainConnector,
        network_info: NetworkInfo,
        owner: str,
        strategy: Strategy,
        notional_in: int,
        input_is_native: bool = False,
        use_flash_loan: bool = False,
    ) -> GateResult:
        """
        Check that the signer covers the gas buffer and the notional

        Raises:
            InsufficientFundsError: If the native or input balance is short
        """
        await self._guarded(
            strategy,
            network_info,
            self._check_balances(
                connector,
                network_info,
                owner,
                strategy,
                notional_in,
                input_is_native,
                use_flash_loan,
                result,
            ),
        )
        self._logger.info(
            "risk_gate_passed",
            strategy_id=strategy.id,
            network=network_info.name,
            native_balance=result.native_balance,
            gas_buffer=result.gas_buffer_native,
        )
        return result

    async def _guarded(self, strategy: Strategy, network_info: NetworkInfo, step):
        try:
            return await step
        except ArbitrageError as e:
            metrics.execution_rejections_total.labels(reason=type(e).__name__).inc()
            self._logger.warning(
                "risk_gate_rejected",
                strategy_id=strategy.id,
                network=network_info.name,
                reason=type(e).__name__,
                error=e.message,
            )
            raise

    async def _check(
        self,
        principal: Principal,
        strategy: Strategy,
        network_info: NetworkInfo,
        simulate_only: bool,
    ) -> GateResult:
        if not principal.is_admin:
            raise AuthorizationError("Admin role required")

        system_settings = await self.db_manager.get_system_settings()
        result = GateResult(settings=system_settings, day=datetime.now(timezone.utc).date())
        if simulate_only:
            return result

        self._check_environment(network_info, system_settings)

        if system_settings.arb_execution_locked:
            raise ExecutionLockedError(system_settings.arb_execution_locked_reason)

        await self._check_daily_caps(strategy, network_info, system_settings, result)
        return result

    def _check_environment(self, network_info: NetworkInfo, system_settings: SystemSettings) -> None:
        if not self.settings.arb_execution_enabled:
            raise ExecutionDisabledError("Execution is disabled (ARB_EXECUTION_ENABLED is not set)")

        if network_info.is_testnet:
            return

        if not self.settings.is_mainnet_env:
            raise ExecutionDisabledError(
                f"Mainnet execution on {network_info.name} requires ARB_ENV=mainnet"
            )
        if not system_settings.is_mainnet_mode:
            raise ExecutionDisabledError(
                f"Mainnet execution on {network_info.name} requires mainnet mode to be enabled"
            )

    async def _check_daily_caps(
        self,
        strategy: Strategy,
        network_info: NetworkInfo,
        system_settings: SystemSettings,
        result: GateResult,
    ) -> None:
        # Absent caps fail closed
        if strategy.max_trades_per_day is None or strategy.max_daily_loss_native is None:
            raise ConfigurationError(
                f"Strategy {strategy.id} has no max_trades_per_day or max_daily_loss_native"
            )
        if (
            system_settings.max_global_daily_trades is None
            or system_settings.max_global_daily_loss_native is None
        ):
            raise ConfigurationError("Global daily trade and loss caps are not configured")

        daily = await self.db_manager.get_daily_risk(strategy.id, network_info.name, result.day)
        global_trades, global_loss = await self.db_manager.get_global_daily_risk(result.day)
        result.daily_risk = daily
        result.global_trade_count = global_trades
        result.global_loss = global_loss

        if daily.trade_count >= strategy.max_trades_per_day:
            raise RiskLimitExceededError(
                f"Strategy daily trade cap reached ({daily.trade_count}/{strategy.max_trades_per_day})"
            )
        if daily.total_loss >= strategy.max_daily_loss_native:
            raise RiskLimitExceededError(
                f"Strategy daily loss cap reached ({daily.total_loss}/{strategy.max_daily_loss_native})"
            )
        if global_trades >= system_settings.max_global_daily_trades:
            raise RiskLimitExceededError(
                f"Global daily trade cap reached ({global_trades}/{system_settings.max_global_daily_trades})"
            )
        if global_loss >= system_settings.max_global_daily_loss_native:
            raise RiskLimitExceededError(
                f"Global daily loss cap reached ({global_loss}/{system_settings.max_global_daily_loss_native})"
            )

    async def _gas_buffer(self, connector: ChainConnector, network_info: NetworkInfo) -> int:
        if network_info.chain_type == ChainType.EVM:
            gas_price = await connector.get_gas_price()
            base = calculate_scan_gas(2) * gas_price
        elif network_info.chain_type == ChainType.SOLANA:
            base = SOLANA_GAS_RESERVE_LAMPORTS
        else:
            raise ConfigurationError(f"No gas model for chain type {network_info.chain_type}")
        return int(Decimal(base) * self.settings.gas_buffer_multiplier)

    async def _check_balances(
        self,
        connector: ChainConnector,
        network_info: NetworkInfo,
        owner: str,
        strategy: Strategy,
        notional_in: int,
        input_is_native: bool,
        use_flash_loan: bool,
        result: GateResult,
    ) -> None:
        gas_buffer = await self._gas_buffer(connector, network_info)
        native_balance = await connector.get_native_balance(owner)
        result.gas_buffer_native = gas_buffer
        result.native_balance = native_balance

        required_native = gas_buffer
        if input_is_native and not use_flash_loan:
            required_native += notional_in
        if native_balance < required_native:
            raise InsufficientFundsError(
                f"Native balance {native_balance} below required {required_native} "
                f"({network_info.native_symbol})",
                required=required_native,
                available=native_balance,
            )

        if input_is_native or use_flash_loan:
            return

        input_balance = await connector.get_balance(strategy.token_in_mint, owner)
        result.input_balance = input_balance
        if input_balance < notional_in:
            raise InsufficientFundsError(
                f"Input token balance {input_balance} below notional {notional_in}",
                required=notional_in,
                available=input_balance,
            )


def auto_execution_rejection(run: Run, strategy: Strategy) -> Optional[str]:
    """
    Why an approved scan run should not be auto-executed, or None if it may be.

    Both floors compare input-token base units: the estimated net profit must
    reach the strategy's minimum expected profit, and the profit must cover
    the estimated gas cost by the strategy's ratio (1 when unset).
    """
    profit = run.estimated_profit_lamports
    if profit is None:
        return "Run carries no profit estimate"

    floor = strategy.min_expected_profit_native
    if floor is not None and profit < floor:
        return f"Estimated profit {profit} below minimum expected profit {floor}"

    ratio = strategy.min_profit_to_gas_ratio
    if ratio is None:
        ratio = DEFAULT_MIN_PROFIT_TO_GAS_RATIO
    gas_cost = run.estimated_gas_cost or 0
    if gas_cost > 0 and Decimal(profit) < Decimal(gas_cost) * Decimal(ratio):
        return f"Profit-to-gas ratio {Decimal(profit) / Decimal(gas_cost):.2f} below {ratio}"
    return None
