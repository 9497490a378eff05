"""Execution orchestrator: gates, quotes, profit check and on-chain execution of one strategy"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

import structlog

from src.chains.catalog import flash_loan_fee, parse_flash_loan_provider
from src.chains.connector import ChainConnector, SubmittedTx
from src.chains.evm_connector import encode_swap_legs
from src.chains.factory import ConnectorRegistry
from src.chains.networks import ChainType, Network, NetworkInfo, get_network_info, resolve_network
from src.config.models import Settings
from src.database.manager import DatabaseManager
from src.database.models import EventStatus, OpsEvent, Run, RunStatus, RunType, Strategy
from src.detectors.profit_calculator import (
    DEFAULT_SCAN_GAS_PRICE_GWEI,
    LegEstimate,
    ProfitBreakdown,
    ProfitThresholds,
)
from src.detectors.route_scanner import StrategyRoute, prepare_strategy_route, strategy_purpose
from src.errors import (
    ArbitrageError,
    BelowThresholdError,
    ConfigurationError,
    ExecutionDisabledError,
    PartialExecutionError,
    QuoteUnavailableError,
    StrategyNotFoundError,
    TransactionFailedError,
)
from src.monitoring import metrics
from src.monitors.pnl_monitor import PnlMonitor
from src.quotes.models import SwapQuote
from src.quotes.provider import QuoteProvider
from src.quotes.registry import QuoteProviderRegistry
from src.risk.gate import SYSTEM_PRINCIPAL, GateResult, Principal, RiskGate
from src.wallets.provider import WalletProvider

logger = structlog.get_logger()

# Leg 2 is re-quoted when leg 1 delivered more than 1% off its quote
REQUOTE_TOLERANCE_DIVISOR = 100

SOLANA_FALLBACK_GAS_PRICE = 1

MODE_ATOMIC = "ATOMIC"
MODE_MULTI_LEG = "MULTI_LEG"


class ExecutionState(Enum):
    PENDING_GATES = "PENDING_GATES"
    REJECTED = "REJECTED"
    QUOTED = "QUOTED"
    PROFIT_CHECKED = "PROFIT_CHECKED"
    BELOW_THRESHOLD = "BELOW_THRESHOLD"
    SIMULATED = "SIMULATED"
    EXECUTING = "EXECUTING"
    EXECUTED = "EXECUTED"
    FAILED = "FAILED"


@dataclass
class ExecutionOutcome:
    """Result returned to callers for a simulated or executed run"""

    run_id: int
    strategy_id: int
    network: str
    state: ExecutionState
    mode: str
    notional_in: int
    expected_net_profit: int
    profit_bps: int
    realized_profit: Optional[int] = None
    gas_spent_native: Optional[int] = None
    tx_refs: List[str] = field(default_factory=list)
    approved_for_auto_execution: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "strategy_id": self.strategy_id,
            "network": self.network,
            "state": self.state.value,
            "mode": self.mode,
            "notional_in": str(self.notional_in),
            "expected_net_profit": str(self.expected_net_profit),
            "profit_bps": self.profit_bps,
            "realized_profit": str(self.realized_profit) if self.realized_profit is not None else None,
            "gas_spent_native": (
                str(self.gas_spent_native) if self.gas_spent_native is not None else None
            ),
            "tx_refs": self.tx_refs,
            "approved_for_auto_execution": self.approved_for_auto_execution,
        }


@dataclass
class _Attempt:
    """Mutable bookkeeping for one execution attempt"""

    strategy: Strategy
    network: Network
    network_info: NetworkInfo
    mode: str
    run_type: RunType
    notional_in: int = 0
    run_id: Optional[int] = None
    state: ExecutionState = ExecutionState.PENDING_GATES
    finalized: bool = False
    estimates: Dict[str, Any] = field(default_factory=dict)
    flash_loan: Dict[str, Any] = field(default_factory=dict)
    route: Optional[StrategyRoute] = None
    risk_day: Optional[date] = None


@dataclass
class _ExecutionResult:
    tx_ref: str
    leg2_tx_ref: Optional[str]
    realized_profit: int
    gas_spent_native: int
    leg1_gas_native: int = 0
    leg2_gas_native: Optional[int] = None
    requoted: bool = False


class ArbitrageOrchestrator:
    """
    Runs one strategy through the execution state machine:

    PENDING_GATES -> QUOTED -> PROFIT_CHECKED -> EXECUTING -> EXECUTED | FAILED

    with REJECTED, BELOW_THRESHOLD and SIMULATED as the early terminals.
    Every attempt opens exactly one run and finalizes it exactly once. Failures
    after the first on-chain leg are never retried.
    """

    def __init__(
        self,
        settings: Settings,
        db_manager: DatabaseManager,
        connectors: ConnectorRegistry,
        quote_providers: QuoteProviderRegistry,
        wallets: WalletProvider,
        risk_gate: RiskGate,
        pnl_monitor: PnlMonitor,
    ):
        self.settings = settings
        self.db = db_manager
        self.connectors = connectors
        self.quote_providers = quote_providers
        self.wallets = wallets
        self.risk_gate = risk_gate
        self.pnl_monitor = pnl_monitor
        self._logger = logger.bind(component="arbitrage_orchestrator")

    async def execute_strategy(
        self,
        principal: Principal,
        strategy_id: int,
        notional: Optional[int] = None,
        simulate_only: bool = False,
        run_type: RunType = RunType.MANUAL,
    ) -> ExecutionOutcome:
        """
        Gate, quote, check and execute one strategy.

        Args:
            principal: Caller; must hold the admin role
            strategy_id: Strategy to run
            notional: Input amount in base units (defaults to the strategy's configuration)
            simulate_only: Stop after the profit check; no funds move
            run_type: MANUAL for admin calls, AUTO for the auto-executor

        Raises:
            StrategyNotFoundError: If the strategy is missing or disabled
            ArbitrageError: Any gate, quote, threshold or execution failure, after the run is recorded
        """
        strategy = await self.db.get_strategy(strategy_id)
        if strategy is None or not strategy.is_enabled:
            error = StrategyNotFoundError(f"Strategy {strategy_id} not found or disabled")
            await self._record_rejection(strategy_id, strategy, run_type, error.message)
            raise error
        return await self._execute(principal, strategy, notional, simulate_only, run_type)

    async def execute_pending_run(
        self, run: Run, principal: Principal = SYSTEM_PRINCIPAL
    ) -> ExecutionOutcome:
        """Execute an approved SIMULATED run from a strategy scan, finalizing that run"""
        strategy = await self.db.get_strategy(run.strategy_id)
        if strategy is None or not strategy.is_enabled:
            error = StrategyNotFoundError(f"Strategy {run.strategy_id} not found or disabled")
            await self.db.finalize_run(run.id, RunStatus.FAILED, error_message=error.message)
            raise error
        return await self._execute(
            principal, strategy, run.notional_in, False, RunType.AUTO, pending_run=run
        )

    async def _execute(
        self,
        principal: Principal,
        strategy: Strategy,
        notional: Optional[int],
        simulate_only: bool,
        run_type: RunType,
        pending_run: Optional[Run] = None,
    ) -> ExecutionOutcome:
        system_settings = await self.db.get_system_settings()
        try:
            network = resolve_network(strategy.network, system_settings.is_mainnet_mode)
        except ConfigurationError as e:
            if pending_run is not None:
                await self.db.finalize_run(pending_run.id, RunStatus.FAILED, error_message=e.message)
            else:
                await self._record_rejection(strategy.id, strategy, run_type, e.message)
            raise
        network_info = get_network_info(network)

        receiver = None
        if network_info.chain_type == ChainType.EVM:
            receiver = self.settings.get_flash_receiver(network)
        atomic = strategy.use_flash_loan and receiver is not None
        if atomic and notional is None and strategy.flash_loan_amount_native:
            notional = strategy.flash_loan_amount_native

        attempt = _Attempt(
            strategy=strategy,
            network=network,
            network_info=network_info,
            mode=MODE_ATOMIC if atomic else MODE_MULTI_LEG,
            run_type=run_type,
        )

        route: Optional[StrategyRoute] = None
        route_error: Optional[ConfigurationError] = None
        try:
            route = prepare_strategy_route(self.settings, strategy, network, notional)
            attempt.notional_in = route.notional_in
            attempt.route = route
        except ConfigurationError as e:
            route_error = e

        if atomic:
            provider = parse_flash_loan_provider(strategy.flash_loan_provider)
            attempt.flash_loan = {
                "used_flash_loan": True,
                "flash_loan_provider": provider.value,
                "flash_loan_amount": attempt.notional_in,
                "flash_loan_fee": flash_loan_fee(provider, attempt.notional_in),
            }

        if pending_run is not None:
            attempt.run_id = pending_run.id
            if pending_run.network != network.value:
                route_error = ConfigurationError(
                    f"Run {pending_run.id} was scanned on {pending_run.network} "
                    f"but the strategy now resolves to {network.value}"
                )
        else:
            attempt.run_id = await self.db.create_run(
                Run(
                    strategy_id=strategy.id,
                    network=network.value,
                    status=RunStatus.SIMULATED,
                    run_type=run_type,
                    purpose=strategy_purpose(strategy),
                    notional_in=attempt.notional_in or None,
                    used_flash_loan=atomic,
                    details={"mode": attempt.mode, "simulateOnly": simulate_only},
                )
            )

        self._logger.info(
            "execution_started",
            run_id=attempt.run_id,
            strategy_id=strategy.id,
            network=network.value,
            mode=attempt.mode,
            run_type=run_type.value,
            simulate_only=simulate_only,
            principal=principal.user_id,
        )

        try:
            if route_error is not None:
                raise route_error
            gate_result = await self.risk_gate.check(
                principal, strategy, network_info, simulate_only=simulate_only
            )
            attempt.risk_day = gate_result.day
            thresholds = ProfitThresholds(strategy.min_profit_lamports, strategy.min_profit_bps)
            if (
                atomic
                and run_type == RunType.AUTO
                and not simulate_only
                and not gate_result.settings.auto_flash_loan_enabled
            ):
                raise ExecutionDisabledError("Automatic flash loan execution is disabled")
            if (
                atomic
                and strategy.flash_loan_token
                and strategy.flash_loan_token.lower() != strategy.token_in_mint.lower()
            ):
                raise ConfigurationError("Flash loan token must be the strategy input token")

            connector = self.connectors.get(network)
            async with self.wallets.signer(network) as signer:
                if not simulate_only:
                    await self.risk_gate.check_balances(
                        gate_result,
                        connector,
                        network_info,
                        signer.address,
                        strategy,
                        attempt.notional_in,
                        input_is_native=route.input_is_native,
                        use_flash_loan=atomic,
                    )
                return await self._quote_and_execute(
                    attempt, route, thresholds, gate_result, connector, signer, receiver, simulate_only
                )
        except (BelowThresholdError, PartialExecutionError):
            raise
        except ArbitrageError as e:
            broadcast = attempt.state == ExecutionState.EXECUTING and isinstance(
                e, TransactionFailedError
            )
            gas_spent = getattr(e, "gas_spent_native", None)
            if not attempt.finalized:
                await self._fail(
                    attempt, e.message, tx_ref=getattr(e, "tx_ref", None), gas_spent_native=gas_spent
                )
            if broadcast and (e.tx_ref or gas_spent):
                await self._count_failed_trade(attempt, gas_spent or 0)
            raise
        except Exception as e:
            if not attempt.finalized:
                await self._fail(attempt, f"Unexpected error: {type(e).__name__}: {e}")
            raise

    async def _quote_and_execute(
        self,
        attempt: _Attempt,
        route: StrategyRoute,
        thresholds: ProfitThresholds,
        gate_result: GateResult,
        connector: ChainConnector,
        signer,
        receiver: Optional[str],
        simulate_only: bool,
    ) -> ExecutionOutcome:
        strategy = attempt.strategy
        provider = self.quote_providers.get(attempt.network)
        atomic = attempt.mode == MODE_ATOMIC
        taker = receiver if atomic else signer.address

        leg1 = await self._fetch_leg(
            provider, attempt.network, strategy.token_in_mint, strategy.token_out_mint,
            attempt.notional_in, taker, strategy.dex_a, 1, simulate_only,
        )
        leg2 = await self._fetch_leg(
            provider, attempt.network, strategy.token_out_mint, strategy.token_in_mint,
            leg1.buy_amount, taker, strategy.dex_b, 2, simulate_only,
        )
        self._transition(attempt, ExecutionState.QUOTED)

        breakdown = self._calculate(attempt, route, [leg1, leg2])
        self._transition(attempt, ExecutionState.PROFIT_CHECKED)

        try:
            route.calculator.ensure_profitable(breakdown, thresholds)
        except BelowThresholdError as e:
            self._transition(attempt, ExecutionState.BELOW_THRESHOLD)
            await self._finalize(attempt, RunStatus.SIMULATED, error_message=e.message)
            await self._record_event(attempt, EventStatus.ABORTED, error_message=e.message)
            raise

        if simulate_only:
            approved = breakdown.net_profit > 0
            self._transition(attempt, ExecutionState.SIMULATED)
            await self._finalize(attempt, RunStatus.SIMULATED, approved_for_auto_execution=approved)
            await self._record_event(attempt, EventStatus.SIMULATED)
            return self._outcome(attempt, breakdown, approved=approved)

        self._transition(attempt, ExecutionState.EXECUTING)
        if atomic:
            result = await self._execute_atomic(attempt, connector, signer, receiver, leg1, leg2)
        else:
            result = await self._execute_multi_leg(
                attempt, provider, connector, signer, leg1, leg2, breakdown
            )

        self._transition(attempt, ExecutionState.EXECUTED)
        await self._finalize(
            attempt,
            RunStatus.EXECUTED,
            actual_profit_lamports=result.realized_profit,
            actual_gas_spent_native=result.gas_spent_native,
            tx_signature=result.tx_ref,
            leg2_tx_signature=result.leg2_tx_ref,
            details={"mode": attempt.mode, "requotedLeg2": result.requoted},
        )
        tx_refs = [ref for ref in (result.tx_ref, result.leg2_tx_ref) if ref]
        await self._record_event(
            attempt,
            EventStatus.EXECUTED,
            realized_profit=result.realized_profit,
            leg1_gas_native=result.leg1_gas_native,
            leg2_gas_native=result.leg2_gas_native,
            gas_spent_native=result.gas_spent_native,
            tx_hashes=tx_refs,
        )
        await self.db.increment_daily_risk(
            strategy.id, attempt.network.value, attempt.risk_day, result.realized_profit
        )
        if result.realized_profit > 0:
            metrics.realized_profit_base_units.labels(network=attempt.network.value).inc(
                result.realized_profit
            )

        self._logger.info(
            "execution_completed",
            run_id=attempt.run_id,
            strategy_id=strategy.id,
            mode=attempt.mode,
            expected_net_profit=breakdown.net_profit,
            realized_profit=result.realized_profit,
            gas_spent_native=result.gas_spent_native,
            tx_refs=tx_refs,
        )

        try:
            await self.pnl_monitor.evaluate(await self.db.get_run(attempt.run_id))
        except Exception as e:
            # Run is already EXECUTED; monitor errors are only logged
            self._logger.error("pnl_evaluation_failed", run_id=attempt.run_id, error=str(e))

        return self._outcome(
            attempt,
            breakdown,
            realized_profit=result.realized_profit,
            gas_spent_native=result.gas_spent_native,
            tx_refs=tx_refs,
        )

    async def _fetch_leg(
        self,
        provider: QuoteProvider,
        network: Network,
        sell_token: str,
        buy_token: str,
        amount: int,
        taker: str,
        source: str,
        leg: int,
        indicative: bool,
    ) -> SwapQuote:
        """
        Raises:
            QuoteUnavailableError: If the provider returns no usable quote
        """
        if indicative:
            response = await provider.fetch_price(
                network, sell_token, buy_token, amount, taker=taker, included_sources=[source],
                slippage_bps=self.settings.slippage_bps,
            )
        else:
            response = await provider.fetch_quote(
                network, sell_token, buy_token, amount, taker, included_sources=[source],
                slippage_bps=self.settings.slippage_bps,
            )

        if not response.ok:
            detail = "rate limited" if response.rate_limited else (response.error or "no quote")
            raise QuoteUnavailableError(
                f"Leg {leg} quote failed via {source}: {detail}", rate_limited=response.rate_limited
            )
        if not indicative and not response.quote.executable:
            raise QuoteUnavailableError(f"Leg {leg} quote via {source} is not executable")
        return response.quote

    def _calculate(
        self, attempt: _Attempt, route: StrategyRoute, quotes: List[SwapQuote]
    ) -> ProfitBreakdown:
        if attempt.network_info.chain_type == ChainType.EVM:
            fallback_gas_price = DEFAULT_SCAN_GAS_PRICE_GWEI * 10**9
        else:
            fallback_gas_price = SOLANA_FALLBACK_GAS_PRICE
        legs = [
            LegEstimate(q.buy_amount, q.gas_estimate, q.gas_price or fallback_gas_price) for q in quotes
        ]
        breakdown = route.calculator.calculate(
            attempt.notional_in,
            legs,
            self.settings.slippage_bps,
            flash_loan_fee=attempt.flash_loan.get("flash_loan_fee", 0),
        )
        attempt.estimates = {
            "estimated_gross_profit": breakdown.gross_profit,
            "estimated_profit_lamports": breakdown.net_profit,
            "estimated_gas_cost_native": breakdown.gas_cost_native,
            "estimated_gas_cost": breakdown.gas_cost_in_input_token,
            "slippage_buffer": breakdown.slippage_buffer,
            "profit_bps": breakdown.profit_bps,
        }
        return breakdown

    async def _execute_atomic(
        self,
        attempt: _Attempt,
        connector: ChainConnector,
        signer,
        receiver: str,
        leg1: SwapQuote,
        leg2: SwapQuote,
    ) -> _ExecutionResult:
        """Borrow, swap both legs and repay inside one receiver transaction"""
        if not leg1.to or not leg2.to or leg1.to.lower() != leg2.to.lower():
            raise ConfigurationError("Atomic execution needs both legs routed through the same router")
        router = leg1.to
        asset = attempt.strategy.token_in_mint
        gas_spent = 0

        if not await connector.is_router_whitelisted(receiver, router):
            self._logger.info("router_whitelist_required", run_id=attempt.run_id, router=router)
            whitelist_tx = await connector.whitelist_router(signer, receiver, router)
            gas_spent += whitelist_tx.gas_spent_native

        balance_before = await connector.get_balance(asset, receiver)
        try:
            tx = await connector.execute_flash_arbitrage(
                signer,
                receiver,
                asset,
                attempt.notional_in,
                router,
                encode_swap_legs(leg1.data, leg2.data),
            )
        except TransactionFailedError as e:
            e.gas_spent_native = gas_spent + (e.gas_spent_native or 0)
            raise
        balance_after = await connector.get_balance(asset, receiver)
        gas_spent += tx.gas_spent_native

        return _ExecutionResult(
            tx_ref=tx.tx_ref,
            leg2_tx_ref=None,
            realized_profit=balance_after - balance_before,
            gas_spent_native=gas_spent,
            leg1_gas_native=tx.gas_spent_native,
        )

    async def _execute_multi_leg(
        self,
        attempt: _Attempt,
        provider: QuoteProvider,
        connector: ChainConnector,
        signer,
        leg1: SwapQuote,
        leg2: SwapQuote,
        breakdown: ProfitBreakdown,
    ) -> _ExecutionResult:
        """
        Two dependent transactions. Leg 2 only starts after leg 1 confirmed;
        a failure after that point leaves the intermediate asset in the wallet.

        Raises:
            PartialExecutionError: If anything fails after leg 1 confirmed
        """
        strategy = attempt.strategy
        owner = signer.address
        token_in, token_mid = strategy.token_in_mint, strategy.token_out_mint

        pre_in = await connector.get_balance(token_in, owner)
        pre_mid = await connector.get_balance(token_mid, owner)
        pre_native = await connector.get_native_balance(owner)

        gas_spent = 0
        approval = await connector.ensure_allowance(
            signer, token_in, leg1.allowance_target, attempt.notional_in
        )
        if approval is not None:
            gas_spent += approval.gas_spent_native

        try:
            leg1_tx = await connector.submit_swap(signer, leg1)
        except TransactionFailedError as e:
            e.gas_spent_native = gas_spent + (e.gas_spent_native or 0)
            raise
        gas_spent += leg1_tx.gas_spent_native
        self._logger.info("leg1_confirmed", run_id=attempt.run_id, tx_ref=leg1_tx.tx_ref)

        requoted = False
        leg2_ref: Optional[str] = None
        try:
            received = await connector.get_balance(token_mid, owner) - pre_mid
            if received <= 0:
                raise TransactionFailedError(
                    "Leg 1 confirmed but no intermediate balance arrived", tx_ref=leg1_tx.tx_ref
                )

            leg2_quote = leg2
            diverged = (
                abs(received - leg1.buy_amount) * REQUOTE_TOLERANCE_DIVISOR > leg1.buy_amount
            )
            if diverged or received < leg2.sell_amount:
                self._logger.info(
                    "leg2_requote",
                    run_id=attempt.run_id,
                    quoted=leg1.buy_amount,
                    received=received,
                )
                leg2_quote = await self._fetch_leg(
                    provider, attempt.network, token_mid, token_in, received, owner,
                    strategy.dex_b, 2, False,
                )
                requoted = True

            approval = await connector.ensure_allowance(
                signer, token_mid, leg2_quote.allowance_target, leg2_quote.sell_amount
            )
            if approval is not None:
                gas_spent += approval.gas_spent_native

            try:
                leg2_tx: SubmittedTx = await connector.submit_swap(signer, leg2_quote)
            except TransactionFailedError as e:
                leg2_ref = e.tx_ref
                raise
            leg2_ref = leg2_tx.tx_ref
            gas_spent += leg2_tx.gas_spent_native

            post_in = await connector.get_balance(token_in, owner)
            post_native = await connector.get_native_balance(owner)
        except Exception as e:
            if isinstance(e, TransactionFailedError) and e.gas_spent_native:
                # A reverted leg 2 approval or swap still burned gas
                gas_spent += e.gas_spent_native
            tx_refs = [ref for ref in (leg1_tx.tx_ref, leg2_ref) if ref]
            message = f"Leg 2 failed after leg 1 {leg1_tx.tx_ref} confirmed: {e}"
            self._transition(attempt, ExecutionState.FAILED)
            await self._finalize(
                attempt,
                RunStatus.FAILED,
                tx_signature=leg1_tx.tx_ref,
                leg2_tx_signature=leg2_ref,
                requires_manual_reconciliation=True,
                actual_gas_spent_native=gas_spent,
                error_message=message,
            )
            await self._record_event(
                attempt,
                EventStatus.FAILED,
                leg1_gas_native=leg1_tx.gas_spent_native,
                gas_spent_native=gas_spent,
                tx_hashes=tx_refs,
                error_message=message,
                details={"requiresManualReconciliation": True},
            )
            self._logger.critical(
                "partial_execution",
                run_id=attempt.run_id,
                strategy_id=strategy.id,
                leg1_tx=leg1_tx.tx_ref,
                leg2_tx=leg2_ref,
                error=str(e),
            )
            await self._count_failed_trade(attempt, gas_spent)
            raise PartialExecutionError(message, completed_tx_ref=leg1_tx.tx_ref, run_id=attempt.run_id) from e

        self._logger.debug(
            "multi_leg_balances",
            run_id=attempt.run_id,
            pre_in=pre_in,
            post_in=post_in,
            native_delta=post_native - pre_native,
        )
        return _ExecutionResult(
            tx_ref=leg1_tx.tx_ref,
            leg2_tx_ref=leg2_tx.tx_ref,
            realized_profit=post_in - pre_in,
            gas_spent_native=gas_spent,
            leg1_gas_native=leg1_tx.gas_spent_native,
            leg2_gas_native=leg2_tx.gas_spent_native,
            requoted=requoted,
        )

    def _transition(self, attempt: _Attempt, state: ExecutionState) -> None:
        self._logger.info(
            "execution_state_changed",
            run_id=attempt.run_id,
            strategy_id=attempt.strategy.id,
            from_state=attempt.state.value,
            to_state=state.value,
        )
        attempt.state = state

    async def _finalize(self, attempt: _Attempt, status: RunStatus, **fields: Any) -> None:
        values = dict(attempt.estimates)
        values.update(attempt.flash_loan)
        values.update(fields)
        await self.db.finalize_run(attempt.run_id, status, **values)
        attempt.finalized = True
        metrics.execution_attempts_total.labels(
            network=attempt.network.value, mode=attempt.mode, status=status.value
        ).inc()

    async def _fail(
        self,
        attempt: _Attempt,
        message: str,
        tx_ref: Optional[str] = None,
        gas_spent_native: Optional[int] = None,
    ) -> None:
        """Finalize FAILED; a failure before any quote is recorded as a rejection"""
        rejected = attempt.state == ExecutionState.PENDING_GATES
        self._transition(attempt, ExecutionState.REJECTED if rejected else ExecutionState.FAILED)
        await self._finalize(
            attempt,
            RunStatus.FAILED,
            error_message=message,
            tx_signature=tx_ref,
            actual_gas_spent_native=gas_spent_native,
        )
        await self._record_event(
            attempt,
            EventStatus.REJECTED if rejected else EventStatus.FAILED,
            error_message=message,
            gas_spent_native=gas_spent_native,
            tx_hashes=[tx_ref] if tx_ref else [],
        )

    async def _count_failed_trade(self, attempt: _Attempt, gas_spent_native: int) -> None:
        """
        Count a broadcast that did not complete toward the daily limits.

        The burned gas, in input-token units, is booked as the loss. A storage
        error is logged; the original failure keeps propagating.
        """
        loss = attempt.route.calculator.gas_to_input_token(gas_spent_native)
        try:
            await self.db.increment_daily_risk(
                attempt.strategy.id, attempt.network.value, attempt.risk_day, -loss
            )
        except Exception as e:
            self._logger.error(
                "daily_risk_update_failed", run_id=attempt.run_id, loss=loss, error=str(e)
            )

    async def _record_rejection(
        self,
        strategy_id: int,
        strategy: Optional[Strategy],
        run_type: RunType,
        message: str,
    ) -> None:
        """Persist a rejection that happened before an attempt could open a run"""
        run_id = None
        chain = network = "UNKNOWN"
        route = None
        if strategy is not None:
            chain, network = strategy.chain_type, strategy.network
            route = f"{strategy.dex_a} -> {strategy.dex_b}"
            run_id = await self.db.create_run(
                Run(
                    strategy_id=strategy.id,
                    network=network,
                    status=RunStatus.FAILED,
                    run_type=run_type,
                    purpose=strategy_purpose(strategy),
                    finished_at=datetime.now(timezone.utc),
                    error_message=message,
                )
            )
        await self.db.record_event(
            OpsEvent(
                chain=chain,
                network=network,
                status=EventStatus.REJECTED,
                mode=MODE_MULTI_LEG,
                run_id=run_id,
                strategy_id=strategy.id if strategy is not None else None,
                route=route,
                error_message=message,
                details={"runType": run_type.value, "requestedStrategyId": strategy_id},
            )
        )
        self._logger.warning(
            "execution_rejected", strategy_id=strategy_id, run_id=run_id, error=message
        )

    async def _record_event(self, attempt: _Attempt, status: EventStatus, **fields: Any) -> None:
        details = {"mode": attempt.mode, "runType": attempt.run_type.value}
        details.update(fields.pop("details", {}))
        await self.db.record_event(
            OpsEvent(
                chain=attempt.network_info.chain_type.value,
                network=attempt.network.value,
                status=status,
                mode=attempt.mode,
                run_id=attempt.run_id,
                strategy_id=attempt.strategy.id,
                route=f"{attempt.strategy.dex_a} -> {attempt.strategy.dex_b}",
                notional_in=attempt.notional_in or None,
                expected_net_profit=attempt.estimates.get("estimated_profit_lamports"),
                details=details,
                **fields,
            )
        )

    def _outcome(
        self,
        attempt: _Attempt,
        breakdown: ProfitBreakdown,
        approved: bool = False,
        realized_profit: Optional[int] = None,
        gas_spent_native: Optional[int] = None,
        tx_refs: Optional[List[str]] = None,
    ) -> ExecutionOutcome:
        return ExecutionOutcome(
            run_id=attempt.run_id,
            strategy_id=attempt.strategy.id,
            network=attempt.network.value,
            state=attempt.state,
            mode=attempt.mode,
            notional_in=attempt.notional_in,
            expected_net_profit=breakdown.net_profit,
            profit_bps=breakdown.profit_bps,
            realized_profit=realized_profit,
            gas_spent_native=gas_spent_native,
            tx_refs=tx_refs or [],
            approved_for_auto_execution=approved,
        )
