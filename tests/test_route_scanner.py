"""Unit tests for discovery and strategy scans"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.chains.networks import Network
from src.database.models import EventStatus, RunStatus, RunType
from src.detectors.profit_calculator import RouteClassification
from src.detectors.route_scanner import (
    SCAN_SPEED_PRESETS,
    SUPERSEDED_REASON,
    RouteScanner,
    ScanMode,
    ScanPacing,
    ScanSpeed,
    resolve_pacing,
)
from src.errors import ConfigurationError, QuoteUnavailableError
from src.quotes.models import QuoteResponse, SwapQuote

from tests.factories import make_settings, make_strategy, make_system_settings

FAST_PACING = ScanPacing(delay_ms=0, batch_pause_ms=0, batch_size=5)


def _quote(buy_amount, network=Network.POLYGON, gas_estimate=150_000, gas_price=None, sources=None):
    return QuoteResponse(
        quote=SwapQuote(
            provider="0x",
            network=network,
            sell_token="sell",
            buy_token="buy",
            sell_amount=1,
            buy_amount=buy_amount,
            gas_estimate=gas_estimate,
            gas_price=gas_price,
            sources=sources or [],
        ),
        status_code=200,
    )


RATE_LIMITED = QuoteResponse(status_code=429, rate_limited=True, error="0x API rate limited")


@pytest.fixture
def provider():
    return MagicMock(fetch_price=AsyncMock())


@pytest.fixture
def db_manager():
    manager = AsyncMock()
    manager.create_run.return_value = 501
    manager.find_strategy.return_value = None
    manager.create_strategy.return_value = 42
    manager.get_system_settings.return_value = make_system_settings()
    return manager


@pytest.fixture
def sleep():
    return AsyncMock()


def _scanner(provider, db_manager, sleep, **settings_overrides):
    registry = MagicMock()
    registry.get.return_value = provider
    return RouteScanner(make_settings(**settings_overrides), db_manager, registry, sleep=sleep)


class TestPacing:
    """Scan speed presets"""

    def test_presets(self):
        assert resolve_pacing("Conservative") == SCAN_SPEED_PRESETS[ScanSpeed.CONSERVATIVE]
        assert resolve_pacing(None) == SCAN_SPEED_PRESETS[ScanSpeed.MODERATE]
        assert resolve_pacing(FAST_PACING) is FAST_PACING

    def test_unknown_preset(self):
        with pytest.raises(ValueError):
            resolve_pacing("ludicrous")

    def test_invalid_pacing(self):
        with pytest.raises(ValueError):
            ScanPacing(delay_ms=-1, batch_pause_ms=0, batch_size=1)
        with pytest.raises(ValueError):
            ScanPacing(delay_ms=0, batch_pause_ms=0, batch_size=0)


class TestDiscoveryScan:
    """Source-matrix and triangular scans"""

    @pytest.mark.asyncio
    async def test_aborts_after_rate_limit_threshold(self, provider, db_manager, sleep):
        """429s on combinations 3 and 4 stop the scan before combination 5"""
        provider.fetch_price.side_effect = [
            _quote(400_000_000_000_000_000),
            _quote(1_010_000_000),
            _quote(400_000_000_000_000_000),
            _quote(1_000_500_000),
            RATE_LIMITED,
            RATE_LIMITED,
        ]
        scanner = _scanner(provider, db_manager, sleep)

        report = await scanner.run_discovery_scan(
            mode="SOURCE_MATRIX", max_combinations=20, speed=FAST_PACING
        )

        assert report.aborted_due_to_rate_limit is True
        assert report.total_scanned == 4
        assert report.rate_limit_count == 2
        assert report.profitable == 1
        assert report.not_profitable == 1
        assert report.failed == 2
        assert provider.fetch_price.await_count == 6
        assert db_manager.record_event.await_count == 4

        best = report.top_results[0]
        assert best.classification == RouteClassification.PROFITABLE
        assert best.sources == ["Uniswap_V3", "QuickSwap"]
        # 10,000,000 gross, 6,000 scan gas, 3,000,000 slippage buffer at 30 bps
        assert best.net_profit == 6_994_000
        assert best.profit_bps == 69

        failed = [r for r in report.top_results if r.classification == RouteClassification.FAILED]
        assert all("rate limited" in r.reason for r in failed)

    @pytest.mark.asyncio
    async def test_results_sorted_by_net_profit(self, provider, db_manager, sleep):
        provider.fetch_price.side_effect = [
            _quote(400), _quote(1_000_500_000),
            _quote(400), _quote(1_020_000_000),
            _quote(400), _quote(1_010_000_000),
        ]
        scanner = _scanner(provider, db_manager, sleep)

        report = await scanner.run_discovery_scan(max_combinations=3, speed=FAST_PACING)

        assert [r.net_profit for r in report.top_results] == sorted(
            (r.net_profit for r in report.top_results), reverse=True
        )
        assert report.top_results[0].sources == ["Uniswap_V3", "SushiSwap"]
        assert report.aborted_due_to_rate_limit is False

    @pytest.mark.asyncio
    async def test_quotes_use_one_source_per_leg(self, provider, db_manager, sleep):
        provider.fetch_price.side_effect = [_quote(400), _quote(1_000_000_000)]
        scanner = _scanner(provider, db_manager, sleep)

        await scanner.run_discovery_scan(
            included_sources=["Curve", "QuickSwap"], max_combinations=1, speed=FAST_PACING
        )

        first, second = provider.fetch_price.await_args_list
        assert first.kwargs["included_sources"] == ["Curve"]
        assert second.kwargs["included_sources"] == ["QuickSwap"]
        assert first.args[0] == Network.POLYGON
        assert second.args[3] == 400

    @pytest.mark.asyncio
    async def test_triangular_scan_quotes_three_legs(self, provider, db_manager, sleep):
        provider.fetch_price.side_effect = [_quote(400), _quote(900), _quote(1_001_000_000)]
        scanner = _scanner(provider, db_manager, sleep)

        report = await scanner.run_discovery_scan(
            mode=ScanMode.TRIANGULAR, max_combinations=1, speed=FAST_PACING
        )

        result = report.top_results[0]
        assert result.token_path == ["USDC_E", "WETH", "WMATIC", "USDC_E"]
        assert result.leg_outputs == [400, 900, 1_001_000_000]
        assert provider.fetch_price.await_count == 3

    @pytest.mark.asyncio
    async def test_failed_leg_stops_combination(self, provider, db_manager, sleep):
        provider.fetch_price.side_effect = [QuoteResponse(status_code=400, error="No liquidity available")]
        scanner = _scanner(provider, db_manager, sleep)

        report = await scanner.run_discovery_scan(max_combinations=1, speed=FAST_PACING)

        assert report.failed == 1
        assert "Leg1 quote failed for Uniswap_V3" in report.top_results[0].reason
        event = db_manager.record_event.await_args.args[0]
        assert event.status == EventStatus.FAILED

    @pytest.mark.asyncio
    async def test_batch_pause_between_batches(self, provider, db_manager, sleep):
        provider.fetch_price.side_effect = [_quote(400), _quote(1_000_000_000)] * 3
        scanner = _scanner(provider, db_manager, sleep)

        await scanner.run_discovery_scan(
            max_combinations=3, speed=ScanPacing(delay_ms=0, batch_pause_ms=4000, batch_size=2)
        )

        sleep.assert_awaited_once_with(4.0)

    @pytest.mark.asyncio
    async def test_max_combinations_capped(self, provider, db_manager, sleep):
        provider.fetch_price.return_value = _quote(1_000_000_000)
        scanner = _scanner(provider, db_manager, sleep)

        report = await scanner.run_discovery_scan(
            included_sources=["A", "B", "C", "D", "E", "F", "G", "H"],
            max_combinations=500,
            speed=FAST_PACING,
        )

        assert report.total_scanned == 50

    @pytest.mark.asyncio
    async def test_notional_capped_at_max(self, provider, db_manager, sleep):
        provider.fetch_price.side_effect = [_quote(400), _quote(1_000_000_000)]
        scanner = _scanner(provider, db_manager, sleep)

        report = await scanner.run_discovery_scan(
            notional="1000000", max_combinations=1, speed=FAST_PACING
        )

        assert report.notional_in == 50_000 * 10**6

    @pytest.mark.asyncio
    async def test_unknown_pair(self, provider, db_manager, sleep):
        scanner = _scanner(provider, db_manager, sleep)

        with pytest.raises(ConfigurationError):
            await scanner.run_discovery_scan(token_pair="DOGE_SHIB")

    @pytest.mark.asyncio
    async def test_auto_created_strategies_are_disabled(self, provider, db_manager, sleep):
        provider.fetch_price.side_effect = [_quote(400), _quote(1_010_000_000)]
        scanner = _scanner(provider, db_manager, sleep)

        report = await scanner.run_discovery_scan(
            max_combinations=1, speed=FAST_PACING, auto_create_strategies=True
        )

        assert report.created_strategy_ids == [42]
        created = db_manager.create_strategy.await_args.args[0]
        assert created.is_enabled is False
        assert created.is_auto_enabled is False
        assert created.dex_a == "Uniswap_V3"
        assert created.dex_b == "QuickSwap"

    @pytest.mark.asyncio
    async def test_existing_strategy_not_duplicated(self, provider, db_manager, sleep):
        db_manager.find_strategy.return_value = make_strategy(id=7)
        provider.fetch_price.side_effect = [_quote(400), _quote(1_010_000_000)]
        scanner = _scanner(provider, db_manager, sleep)

        report = await scanner.run_discovery_scan(
            max_combinations=1, speed=FAST_PACING, auto_create_strategies=True
        )

        assert report.created_strategy_ids == []
        db_manager.create_strategy.assert_not_called()


class TestStrategyScan:
    """Scans of configured strategies"""

    def _legs(self):
        return [
            _quote(40_000_000_000_000_000, Network.POLYGON_AMOY, 250_000, 100 * 10**9),
            _quote(100_250_000, Network.POLYGON_AMOY, 250_000, 100 * 10**9),
        ]

    @pytest.mark.asyncio
    async def test_profitable_auto_strategy_leaves_open_approved_run(self, provider, db_manager, sleep):
        db_manager.get_enabled_strategies.return_value = [make_strategy(is_auto_enabled=True)]
        provider.fetch_price.side_effect = self._legs()
        scanner = _scanner(provider, db_manager, sleep, slippage_bps=10)

        results = await scanner.scan_strategies()

        assert len(results) == 1
        assert results[0].classification == RouteClassification.PROFITABLE
        assert results[0].net_profit == 130_000
        assert results[0].approved_for_auto_execution is True

        run = db_manager.create_run.await_args.args[0]
        assert run.status == RunStatus.SIMULATED
        assert run.run_type == RunType.SCAN
        assert run.approved_for_auto_execution is True
        assert run.finished_at is None
        assert run.estimated_profit_lamports == 130_000
        assert run.notional_in == 100_000_000

    @pytest.mark.asyncio
    async def test_profitable_manual_strategy_is_finalized(self, provider, db_manager, sleep):
        db_manager.get_enabled_strategies.return_value = [make_strategy(is_auto_enabled=False)]
        provider.fetch_price.side_effect = self._legs()
        scanner = _scanner(provider, db_manager, sleep, slippage_bps=10)

        results = await scanner.scan_strategies()

        run = db_manager.create_run.await_args.args[0]
        assert results[0].approved_for_auto_execution is False
        assert run.finished_at is not None

    @pytest.mark.asyncio
    async def test_mainnet_strategy_quoted_on_testnet(self, provider, db_manager, sleep):
        db_manager.get_enabled_strategies.return_value = [make_strategy(network="POLYGON")]
        provider.fetch_price.side_effect = self._legs()
        scanner = _scanner(provider, db_manager, sleep)

        results = await scanner.scan_strategies()

        assert results[0].network == "POLYGON_AMOY"
        assert provider.fetch_price.await_args_list[0].args[0] == Network.POLYGON_AMOY

    @pytest.mark.asyncio
    async def test_no_route_records_failed_run(self, provider, db_manager, sleep):
        db_manager.get_enabled_strategies.return_value = [make_strategy()]
        provider.fetch_price.side_effect = [RATE_LIMITED]
        scanner = _scanner(provider, db_manager, sleep)

        results = await scanner.scan_strategies("evm")

        assert results[0].classification == RouteClassification.FAILED
        assert results[0].error == "No route for leg A via Uniswap_V3: rate limited"
        db_manager.get_enabled_strategies.assert_awaited_once_with("EVM")

    @pytest.mark.asyncio
    async def test_invalid_address_recorded_without_quoting(self, provider, db_manager, sleep):
        db_manager.get_enabled_strategies.return_value = [make_strategy(token_out_mint="0xnope")]
        scanner = _scanner(provider, db_manager, sleep)

        results = await scanner.scan_strategies()

        assert results[0].error.startswith("Validation failed: Invalid token_out_mint address")
        provider.fetch_price.assert_not_called()
        run = db_manager.create_run.await_args.args[0]
        assert run.finished_at is not None

    @pytest.mark.asyncio
    async def test_missing_thresholds_recorded_as_invalid(self, provider, db_manager, sleep):
        db_manager.get_enabled_strategies.return_value = [make_strategy(min_profit_bps=None)]
        scanner = _scanner(provider, db_manager, sleep)

        results = await scanner.scan_strategies()

        assert results[0].classification == RouteClassification.FAILED
        assert "bps threshold" in results[0].error

    @pytest.mark.asyncio
    async def test_newer_scan_supersedes_open_runs(self, provider, db_manager, sleep):
        db_manager.get_enabled_strategies.return_value = [make_strategy(id=7, is_auto_enabled=True)]
        provider.fetch_price.side_effect = self._legs()
        scanner = _scanner(provider, db_manager, sleep, slippage_bps=10)

        await scanner.scan_strategies()

        db_manager.supersede_open_scan_runs.assert_awaited_once_with(7, SUPERSEDED_REASON)
        db_manager.create_run.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_provider_error_records_failed_run(self, provider, db_manager, sleep):
        db_manager.get_enabled_strategies.return_value = [make_strategy(), make_strategy(id=2)]
        provider.fetch_price.side_effect = [QuoteUnavailableError("0x returned no body")] + self._legs()
        scanner = _scanner(provider, db_manager, sleep, slippage_bps=10)

        results = await scanner.scan_strategies()

        assert len(results) == 2
        assert results[0].error == "No route for leg A via Uniswap_V3: 0x returned no body"
        assert results[1].classification == RouteClassification.PROFITABLE
        first_run = db_manager.create_run.await_args_list[0].args[0]
        assert first_run.finished_at is not None
