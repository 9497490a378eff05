"""Tests for the execution orchestrator state machine"""

from contextlib import asynccontextmanager
from datetime import date
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.chains.connector import SubmittedTx
from src.chains.networks import Network
from src.database.models import EventStatus, Run, RunStatus, RunType
from src.errors import (
    BelowThresholdError,
    ConfigurationError,
    ExecutionDisabledError,
    ExecutionLockedError,
    InsufficientFundsError,
    PartialExecutionError,
    QuoteUnavailableError,
    StrategyNotFoundError,
    TransactionFailedError,
)
from src.execution.orchestrator import ArbitrageOrchestrator, ExecutionState
from src.quotes.models import QuoteResponse, SwapQuote
from src.risk.gate import GateResult, Principal

from tests.factories import AMOY_USDC, AMOY_WETH, make_settings, make_strategy, make_system_settings

ADMIN = Principal(user_id="admin-1", roles=["admin"])
OWNER = "0x2c7536E3605D9C16a7a3D7b1898e529396a65c23"
ROUTER = "0x0000000000001fF3684f28c67538d4D072C22734"
RECEIVER = "0x9999999999999999999999999999999999999999"
GAS_PRICE = 100 * 10**9
NOTIONAL = 100_000_000
WETH_OUT = 40_000_000_000_000
DAY = date(2026, 1, 1)


def _quote(sell_token, buy_token, sell_amount, buy_amount, executable=True, to=ROUTER):
    return SwapQuote(
        provider="0x",
        network=Network.POLYGON_AMOY,
        sell_token=sell_token,
        buy_token=buy_token,
        sell_amount=sell_amount,
        buy_amount=buy_amount,
        gas_estimate=250_000,
        gas_price=GAS_PRICE,
        to=to if executable else None,
        data="0xabcd" if executable else None,
        allowance_target=ROUTER,
    )


def _leg_quotes(final_output=100_250_000, executable=True, leg2_to=ROUTER):
    return [
        QuoteResponse(quote=_quote(AMOY_USDC, AMOY_WETH, NOTIONAL, WETH_OUT, executable)),
        QuoteResponse(
            quote=_quote(AMOY_WETH, AMOY_USDC, WETH_OUT, final_output, executable, to=leg2_to)
        ),
    ]


class FakeWallets:
    """Signer provider that counts leases"""

    def __init__(self):
        self.leases = []

    @asynccontextmanager
    async def signer(self, network):
        self.leases.append(network)
        yield SimpleNamespace(address=OWNER)


@pytest.fixture
def db_manager():
    manager = AsyncMock()
    manager.get_strategy.return_value = make_strategy()
    manager.get_system_settings.return_value = make_system_settings()
    manager.create_run.return_value = 11
    manager.get_run.return_value = Run(
        strategy_id=1, network="POLYGON_AMOY", status=RunStatus.EXECUTED, run_type=RunType.MANUAL, id=11
    )
    return manager


@pytest.fixture
def connector():
    connector = AsyncMock()
    connector.ensure_allowance.return_value = None
    connector.get_native_balance.return_value = 10**18
    return connector


@pytest.fixture
def quote_provider():
    return AsyncMock()


@pytest.fixture
def risk_gate():
    gate = AsyncMock()
    result = GateResult(settings=make_system_settings(), day=DAY)
    gate.check.return_value = result
    gate.check_balances.return_value = result
    return gate


@pytest.fixture
def wallets():
    return FakeWallets()


@pytest.fixture
def pnl_monitor():
    return AsyncMock()


def _orchestrator(db_manager, connector, quote_provider, risk_gate, wallets, pnl_monitor, **settings):
    connectors = MagicMock()
    connectors.get.return_value = connector
    quote_providers = MagicMock()
    quote_providers.get.return_value = quote_provider
    settings.setdefault("slippage_bps", 10)
    return ArbitrageOrchestrator(
        make_settings(**settings),
        db_manager,
        connectors,
        quote_providers,
        wallets,
        risk_gate,
        pnl_monitor,
    )


@pytest.fixture
def orchestrator(db_manager, connector, quote_provider, risk_gate, wallets, pnl_monitor):
    return _orchestrator(db_manager, connector, quote_provider, risk_gate, wallets, pnl_monitor)


def _event_statuses(db_manager):
    return [c.args[0].status for c in db_manager.record_event.call_args_list]


class TestRejections:
    """Failures before any quote"""

    @pytest.mark.asyncio
    async def test_missing_strategy_leaves_rejection_event(self, orchestrator, db_manager):
        db_manager.get_strategy.return_value = None

        with pytest.raises(StrategyNotFoundError):
            await orchestrator.execute_strategy(ADMIN, 99)

        db_manager.create_run.assert_not_called()
        event = db_manager.record_event.call_args.args[0]
        assert event.status == EventStatus.REJECTED
        assert event.strategy_id is None
        assert event.network == "UNKNOWN"
        assert event.details["requestedStrategyId"] == 99
        assert "Strategy 99 not found" in event.error_message

    @pytest.mark.asyncio
    async def test_disabled_strategy_records_failed_run(self, orchestrator, db_manager, risk_gate):
        db_manager.get_strategy.return_value = make_strategy(is_enabled=False)

        with pytest.raises(StrategyNotFoundError):
            await orchestrator.execute_strategy(ADMIN, 1)

        run = db_manager.create_run.call_args.args[0]
        assert run.status == RunStatus.FAILED
        assert run.finished_at is not None
        assert "not found or disabled" in run.error_message
        event = db_manager.record_event.call_args.args[0]
        assert event.status == EventStatus.REJECTED
        assert event.run_id == 11
        assert event.strategy_id == 1
        risk_gate.check.assert_not_called()

    @pytest.mark.asyncio
    async def test_unresolvable_network_records_failed_run(self, orchestrator, db_manager, risk_gate):
        db_manager.get_strategy.return_value = make_strategy(network="NOT_A_NETWORK")

        with pytest.raises(ConfigurationError) as exc_info:
            await orchestrator.execute_strategy(ADMIN, 1)

        run = db_manager.create_run.call_args.args[0]
        assert run.status == RunStatus.FAILED
        assert run.network == "NOT_A_NETWORK"
        assert run.error_message == exc_info.value.message
        assert _event_statuses(db_manager) == [EventStatus.REJECTED]
        db_manager.finalize_run.assert_not_called()
        risk_gate.check.assert_not_called()

    @pytest.mark.asyncio
    async def test_lock_records_rejection_without_touching_chain(
        self, orchestrator, db_manager, connector, quote_provider, risk_gate, wallets
    ):
        risk_gate.check.side_effect = ExecutionLockedError("Auto-locked: 2 PnL alerts in 30 minutes")

        with pytest.raises(ExecutionLockedError):
            await orchestrator.execute_strategy(ADMIN, 1)

        db_manager.create_run.assert_awaited_once()
        run_id, status = db_manager.finalize_run.call_args.args
        assert run_id == 11
        assert status == RunStatus.FAILED
        assert "Auto-locked" in db_manager.finalize_run.call_args.kwargs["error_message"]
        assert _event_statuses(db_manager) == [EventStatus.REJECTED]
        assert wallets.leases == []
        quote_provider.fetch_quote.assert_not_called()
        connector.submit_swap.assert_not_called()

    @pytest.mark.asyncio
    async def test_insufficient_balance_is_rejection(self, orchestrator, db_manager, risk_gate):
        risk_gate.check_balances.side_effect = InsufficientFundsError(
            "Insufficient input token balance", required=NOTIONAL, available=1
        )

        with pytest.raises(InsufficientFundsError):
            await orchestrator.execute_strategy(ADMIN, 1)

        assert db_manager.finalize_run.call_args.args[1] == RunStatus.FAILED
        assert _event_statuses(db_manager) == [EventStatus.REJECTED]

    @pytest.mark.asyncio
    async def test_pending_run_on_other_network_is_failed(self, orchestrator, db_manager, risk_gate):
        run = Run(
            strategy_id=1,
            network="POLYGON",
            status=RunStatus.SIMULATED,
            run_type=RunType.AUTO,
            id=5,
            notional_in=NOTIONAL,
            approved_for_auto_execution=True,
        )

        with pytest.raises(ConfigurationError):
            await orchestrator.execute_pending_run(run)

        db_manager.create_run.assert_not_called()
        risk_gate.check.assert_not_called()
        assert db_manager.finalize_run.call_args.args == (5, RunStatus.FAILED)


class TestSimulation:
    """Quote and profit check without execution"""

    @pytest.mark.asyncio
    async def test_simulate_only_approves_profitable_route(
        self, orchestrator, db_manager, connector, quote_provider, risk_gate
    ):
        quote_provider.fetch_price.side_effect = _leg_quotes()

        outcome = await orchestrator.execute_strategy(ADMIN, 1, simulate_only=True)

        assert outcome.state == ExecutionState.SIMULATED
        assert outcome.expected_net_profit == 130_000
        assert outcome.profit_bps == 13
        assert outcome.approved_for_auto_execution is True
        args, kwargs = db_manager.finalize_run.call_args
        assert args == (11, RunStatus.SIMULATED)
        assert kwargs["approved_for_auto_execution"] is True
        assert kwargs["estimated_gas_cost"] == 20_000
        assert kwargs["slippage_buffer"] == 100_000
        assert _event_statuses(db_manager) == [EventStatus.SIMULATED]
        assert risk_gate.check.call_args.kwargs["simulate_only"] is True
        risk_gate.check_balances.assert_not_called()
        quote_provider.fetch_quote.assert_not_called()
        connector.submit_swap.assert_not_called()

    @pytest.mark.asyncio
    async def test_legs_are_chained_through_intermediate_amount(self, orchestrator, quote_provider):
        quote_provider.fetch_price.side_effect = _leg_quotes()

        await orchestrator.execute_strategy(ADMIN, 1, simulate_only=True)

        leg1, leg2 = quote_provider.fetch_price.call_args_list
        assert leg1.args[1:4] == (AMOY_USDC, AMOY_WETH, NOTIONAL)
        assert leg1.kwargs["included_sources"] == ["Uniswap_V3"]
        assert leg2.args[1:4] == (AMOY_WETH, AMOY_USDC, WETH_OUT)
        assert leg2.kwargs["included_sources"] == ["QuickSwap"]

    @pytest.mark.asyncio
    async def test_below_threshold_is_simulated_and_aborted(
        self, orchestrator, db_manager, connector, quote_provider
    ):
        quote_provider.fetch_quote.side_effect = _leg_quotes(final_output=100_050_000)

        with pytest.raises(BelowThresholdError) as exc_info:
            await orchestrator.execute_strategy(ADMIN, 1)

        assert exc_info.value.net_profit == -70_000
        db_manager.finalize_run.assert_awaited_once()
        assert db_manager.finalize_run.call_args.args == (11, RunStatus.SIMULATED)
        assert _event_statuses(db_manager) == [EventStatus.ABORTED]
        connector.submit_swap.assert_not_called()
        db_manager.increment_daily_risk.assert_not_called()

    @pytest.mark.asyncio
    async def test_unusable_quote_fails_run(self, orchestrator, db_manager, quote_provider):
        quote_provider.fetch_quote.return_value = QuoteResponse(status_code=429, rate_limited=True)

        with pytest.raises(QuoteUnavailableError) as exc_info:
            await orchestrator.execute_strategy(ADMIN, 1)

        assert exc_info.value.rate_limited
        assert db_manager.finalize_run.call_args.args[1] == RunStatus.FAILED


class TestMultiLegExecution:
    """Two dependent swaps from the ops wallet"""

    @pytest.mark.asyncio
    async def test_executes_and_records_realized_profit(
        self, orchestrator, db_manager, connector, quote_provider, pnl_monitor, wallets
    ):
        quote_provider.fetch_quote.side_effect = _leg_quotes()
        # pre input, pre intermediate, intermediate after leg 1, input after leg 2
        connector.get_balance.side_effect = [200_000_000, 0, WETH_OUT, 200_120_000]
        connector.submit_swap.side_effect = [
            SubmittedTx(tx_ref="0xleg1", gas_spent_native=10**15),
            SubmittedTx(tx_ref="0xleg2", gas_spent_native=10**15),
        ]

        outcome = await orchestrator.execute_strategy(ADMIN, 1)

        assert outcome.state == ExecutionState.EXECUTED
        assert outcome.mode == "MULTI_LEG"
        assert outcome.realized_profit == 120_000
        assert outcome.tx_refs == ["0xleg1", "0xleg2"]
        args, kwargs = db_manager.finalize_run.call_args
        assert args == (11, RunStatus.EXECUTED)
        assert kwargs["actual_profit_lamports"] == 120_000
        assert kwargs["actual_gas_spent_native"] == 2 * 10**15
        assert kwargs["tx_signature"] == "0xleg1"
        assert kwargs["leg2_tx_signature"] == "0xleg2"
        assert kwargs["details"]["requotedLeg2"] is False
        assert _event_statuses(db_manager) == [EventStatus.EXECUTED]
        db_manager.increment_daily_risk.assert_awaited_once_with(1, "POLYGON_AMOY", DAY, 120_000)
        pnl_monitor.evaluate.assert_awaited_once_with(db_manager.get_run.return_value)
        assert wallets.leases == [Network.POLYGON_AMOY]
        assert quote_provider.fetch_quote.call_args_list[0].args[4] == OWNER

    @pytest.mark.asyncio
    async def test_leg2_requoted_when_fill_diverges(self, orchestrator, db_manager, connector, quote_provider):
        received = WETH_OUT * 95 // 100
        requote = QuoteResponse(quote=_quote(AMOY_WETH, AMOY_USDC, received, 95_300_000))
        quote_provider.fetch_quote.side_effect = _leg_quotes() + [requote]
        connector.get_balance.side_effect = [200_000_000, 0, received, 195_300_000]
        connector.submit_swap.side_effect = [
            SubmittedTx(tx_ref="0xleg1", gas_spent_native=10**15),
            SubmittedTx(tx_ref="0xleg2", gas_spent_native=10**15),
        ]

        outcome = await orchestrator.execute_strategy(ADMIN, 1)

        assert quote_provider.fetch_quote.await_count == 3
        assert quote_provider.fetch_quote.call_args.args[3] == received
        assert connector.submit_swap.call_args.args[1] is requote.quote
        assert outcome.realized_profit == -4_700_000
        assert db_manager.finalize_run.call_args.kwargs["details"]["requotedLeg2"] is True

    @pytest.mark.asyncio
    async def test_leg2_failure_is_partial_and_not_retried(
        self, orchestrator, db_manager, connector, quote_provider, pnl_monitor
    ):
        quote_provider.fetch_quote.side_effect = _leg_quotes()
        connector.get_balance.side_effect = [200_000_000, 0, WETH_OUT]
        connector.submit_swap.side_effect = [
            SubmittedTx(tx_ref="0xleg1", gas_spent_native=10**15),
            TransactionFailedError(
                "Transaction 0xleg2 reverted", tx_ref="0xleg2", gas_spent_native=10**15
            ),
        ]

        with pytest.raises(PartialExecutionError) as exc_info:
            await orchestrator.execute_strategy(ADMIN, 1)

        assert exc_info.value.completed_tx_ref == "0xleg1"
        assert exc_info.value.run_id == 11
        assert connector.submit_swap.await_count == 2
        db_manager.finalize_run.assert_awaited_once()
        args, kwargs = db_manager.finalize_run.call_args
        assert args == (11, RunStatus.FAILED)
        assert kwargs["tx_signature"] == "0xleg1"
        assert kwargs["leg2_tx_signature"] == "0xleg2"
        assert kwargs["requires_manual_reconciliation"] is True
        assert kwargs["actual_gas_spent_native"] == 2 * 10**15
        assert _event_statuses(db_manager) == [EventStatus.FAILED]
        assert db_manager.record_event.call_args.args[0].tx_hashes == ["0xleg1", "0xleg2"]
        # Both legs burned gas: 2 * 10**15 wei at 40 cents per POL is 800 USDC units
        db_manager.increment_daily_risk.assert_awaited_once_with(1, "POLYGON_AMOY", DAY, -800)
        pnl_monitor.evaluate.assert_not_called()

    @pytest.mark.asyncio
    async def test_leg2_requote_failure_is_partial(self, orchestrator, db_manager, connector, quote_provider):
        received = WETH_OUT * 95 // 100
        quote_provider.fetch_quote.side_effect = _leg_quotes() + [
            QuoteResponse(status_code=400, error="No liquidity")
        ]
        connector.get_balance.side_effect = [200_000_000, 0, received]
        connector.submit_swap.return_value = SubmittedTx(tx_ref="0xleg1", gas_spent_native=10**15)

        with pytest.raises(PartialExecutionError) as exc_info:
            await orchestrator.execute_strategy(ADMIN, 1)

        assert "Leg 2 quote failed via QuickSwap: No liquidity" in exc_info.value.message
        connector.submit_swap.assert_awaited_once()
        args, kwargs = db_manager.finalize_run.call_args
        assert args == (11, RunStatus.FAILED)
        assert kwargs["tx_signature"] == "0xleg1"
        assert kwargs["leg2_tx_signature"] is None
        assert kwargs["requires_manual_reconciliation"] is True
        assert db_manager.record_event.call_args.args[0].tx_hashes == ["0xleg1"]
        db_manager.increment_daily_risk.assert_awaited_once_with(1, "POLYGON_AMOY", DAY, -400)

    @pytest.mark.asyncio
    async def test_missing_intermediate_balance_is_partial(self, orchestrator, db_manager, connector, quote_provider):
        quote_provider.fetch_quote.side_effect = _leg_quotes()
        connector.get_balance.side_effect = [200_000_000, 0, 0]
        connector.submit_swap.return_value = SubmittedTx(tx_ref="0xleg1", gas_spent_native=10**15)

        with pytest.raises(PartialExecutionError):
            await orchestrator.execute_strategy(ADMIN, 1)

        connector.submit_swap.assert_awaited_once()
        assert db_manager.finalize_run.call_args.kwargs["requires_manual_reconciliation"] is True

    @pytest.mark.asyncio
    async def test_leg1_failure_is_plain_failure(self, orchestrator, db_manager, connector, quote_provider):
        quote_provider.fetch_quote.side_effect = _leg_quotes()
        connector.get_balance.side_effect = [200_000_000, 0]
        connector.submit_swap.side_effect = TransactionFailedError(
            "Transaction 0xleg1 reverted", tx_ref="0xleg1", gas_spent_native=10**15
        )

        with pytest.raises(TransactionFailedError):
            await orchestrator.execute_strategy(ADMIN, 1)

        args, kwargs = db_manager.finalize_run.call_args
        assert args == (11, RunStatus.FAILED)
        assert kwargs["tx_signature"] == "0xleg1"
        assert kwargs["actual_gas_spent_native"] == 10**15
        assert _event_statuses(db_manager) == [EventStatus.FAILED]
        db_manager.increment_daily_risk.assert_awaited_once_with(1, "POLYGON_AMOY", DAY, -400)

    @pytest.mark.asyncio
    async def test_rejected_submission_counts_no_trade(self, orchestrator, db_manager, connector, quote_provider):
        quote_provider.fetch_quote.side_effect = _leg_quotes()
        connector.get_balance.side_effect = [200_000_000, 0]
        connector.submit_swap.side_effect = TransactionFailedError("swap transaction rejected: nonce too low")

        with pytest.raises(TransactionFailedError):
            await orchestrator.execute_strategy(ADMIN, 1)

        assert db_manager.finalize_run.call_args.args == (11, RunStatus.FAILED)
        db_manager.increment_daily_risk.assert_not_called()

    @pytest.mark.asyncio
    async def test_quoted_route_executes_end_to_end(
        self, orchestrator, db_manager, connector, quote_provider
    ):
        quote_provider.fetch_quote.side_effect = _leg_quotes(final_output=100_250_000)
        # 100 USDC in, 100.25 USDC back after both legs
        connector.get_balance.side_effect = [NOTIONAL, 0, WETH_OUT, 100_250_000]
        connector.submit_swap.side_effect = [
            SubmittedTx(tx_ref="0xleg1", gas_spent_native=10**15),
            SubmittedTx(tx_ref="0xleg2", gas_spent_native=10**15),
        ]

        outcome = await orchestrator.execute_strategy(ADMIN, 1)

        assert outcome.state == ExecutionState.EXECUTED
        assert outcome.notional_in == NOTIONAL
        assert outcome.expected_net_profit == 130_000
        assert outcome.realized_profit == 250_000
        leg1_sell, leg2_sell = (c.args[1].sell_amount for c in connector.submit_swap.call_args_list)
        assert (leg1_sell, leg2_sell) == (NOTIONAL, WETH_OUT)
        kwargs = db_manager.finalize_run.call_args.kwargs
        assert kwargs["estimated_gross_profit"] == 250_000
        assert kwargs["estimated_profit_lamports"] == 130_000
        assert kwargs["actual_profit_lamports"] == 250_000
        db_manager.increment_daily_risk.assert_awaited_once_with(1, "POLYGON_AMOY", DAY, 250_000)

    @pytest.mark.asyncio
    async def test_pnl_monitor_errors_do_not_fail_executed_run(
        self, orchestrator, db_manager, connector, quote_provider, pnl_monitor
    ):
        quote_provider.fetch_quote.side_effect = _leg_quotes()
        connector.get_balance.side_effect = [200_000_000, 0, WETH_OUT, 200_120_000]
        connector.submit_swap.side_effect = [
            SubmittedTx(tx_ref="0xleg1", gas_spent_native=10**15),
            SubmittedTx(tx_ref="0xleg2", gas_spent_native=10**15),
        ]
        pnl_monitor.evaluate.side_effect = RuntimeError("database unavailable")

        outcome = await orchestrator.execute_strategy(ADMIN, 1)

        assert outcome.state == ExecutionState.EXECUTED
        db_manager.finalize_run.assert_awaited_once()


class TestAtomicExecution:
    """Flash loan through the receiver contract"""

    @pytest.fixture
    def atomic(self, db_manager, connector, quote_provider, risk_gate, wallets, pnl_monitor):
        db_manager.get_strategy.return_value = make_strategy(
            use_flash_loan=True, flash_loan_provider="BALANCER"
        )
        return _orchestrator(
            db_manager,
            connector,
            quote_provider,
            risk_gate,
            wallets,
            pnl_monitor,
            flash_receiver_addresses={"POLYGON_AMOY": RECEIVER},
        )

    @pytest.mark.asyncio
    async def test_realized_profit_is_receiver_balance_delta(self, atomic, db_manager, connector, quote_provider):
        quote_provider.fetch_quote.side_effect = _leg_quotes()
        connector.is_router_whitelisted.return_value = True
        connector.get_balance.side_effect = [1_000, 91_000]
        connector.execute_flash_arbitrage.return_value = SubmittedTx(tx_ref="0xflash", gas_spent_native=10**15)

        outcome = await atomic.execute_strategy(ADMIN, 1)

        assert outcome.mode == "ATOMIC"
        assert outcome.realized_profit == 90_000
        assert outcome.tx_refs == ["0xflash"]
        assert quote_provider.fetch_quote.call_args_list[0].args[4] == RECEIVER
        connector.whitelist_router.assert_not_called()
        connector.submit_swap.assert_not_called()
        kwargs = db_manager.finalize_run.call_args.kwargs
        assert kwargs["used_flash_loan"] is True
        assert kwargs["flash_loan_provider"] == "BALANCER"
        assert kwargs["flash_loan_fee"] == 0
        assert kwargs["leg2_tx_signature"] is None

    @pytest.mark.asyncio
    async def test_router_whitelisted_on_first_use(self, atomic, connector, quote_provider):
        quote_provider.fetch_quote.side_effect = _leg_quotes()
        connector.is_router_whitelisted.return_value = False
        connector.whitelist_router.return_value = SubmittedTx(tx_ref="0xwl", gas_spent_native=10**14)
        connector.get_balance.side_effect = [0, 90_000]
        connector.execute_flash_arbitrage.return_value = SubmittedTx(tx_ref="0xflash", gas_spent_native=10**15)

        outcome = await atomic.execute_strategy(ADMIN, 1)

        connector.whitelist_router.assert_awaited_once()
        assert outcome.gas_spent_native == 10**15 + 10**14

    @pytest.mark.asyncio
    async def test_reverted_flash_loan_counts_burned_gas(self, atomic, db_manager, connector, quote_provider):
        quote_provider.fetch_quote.side_effect = _leg_quotes()
        connector.is_router_whitelisted.return_value = False
        connector.whitelist_router.return_value = SubmittedTx(tx_ref="0xwl", gas_spent_native=10**14)
        connector.get_balance.return_value = 1_000
        connector.execute_flash_arbitrage.side_effect = TransactionFailedError(
            "flash_arbitrage transaction reverted", tx_ref="0xflash", gas_spent_native=10**15
        )

        with pytest.raises(TransactionFailedError):
            await atomic.execute_strategy(ADMIN, 1)

        args, kwargs = db_manager.finalize_run.call_args
        assert args == (11, RunStatus.FAILED)
        assert kwargs["tx_signature"] == "0xflash"
        assert kwargs["actual_gas_spent_native"] == 11 * 10**14
        db_manager.increment_daily_risk.assert_awaited_once_with(1, "POLYGON_AMOY", DAY, -440)

    @pytest.mark.asyncio
    async def test_legs_on_different_routers_fail(self, atomic, db_manager, connector, quote_provider):
        quote_provider.fetch_quote.side_effect = _leg_quotes(leg2_to=RECEIVER)

        with pytest.raises(ConfigurationError):
            await atomic.execute_strategy(ADMIN, 1)

        connector.execute_flash_arbitrage.assert_not_called()
        assert _event_statuses(db_manager) == [EventStatus.FAILED]

    @pytest.mark.asyncio
    async def test_flash_loan_token_must_match_input(self, atomic, db_manager, quote_provider):
        db_manager.get_strategy.return_value = make_strategy(
            use_flash_loan=True, flash_loan_token=AMOY_WETH
        )

        with pytest.raises(ConfigurationError):
            await atomic.execute_strategy(ADMIN, 1)

        quote_provider.fetch_quote.assert_not_called()

    @pytest.mark.asyncio
    async def test_auto_run_needs_auto_flash_loan_flag(self, atomic, quote_provider):
        with pytest.raises(ExecutionDisabledError):
            await atomic.execute_strategy(ADMIN, 1, run_type=RunType.AUTO)

        quote_provider.fetch_quote.assert_not_called()

    @pytest.mark.asyncio
    async def test_flash_loan_without_receiver_falls_back_to_multi_leg(self, orchestrator, db_manager, quote_provider):
        db_manager.get_strategy.return_value = make_strategy(use_flash_loan=True)
        quote_provider.fetch_price.side_effect = _leg_quotes()

        outcome = await orchestrator.execute_strategy(ADMIN, 1, simulate_only=True)

        assert outcome.mode == "MULTI_LEG"
