"""Unit tests for profit calculator"""

import pytest

from src.chains.networks import Network
from src.detectors.profit_calculator import (
    LegEstimate,
    ProfitCalculator,
    ProfitThresholds,
    RouteClassification,
    calculate_scan_gas,
    scan_leg_estimates,
)
from src.errors import BelowThresholdError, ConfigurationError


@pytest.fixture
def usdc_calculator():
    """USDC-input calculator on Polygon Amoy (6 decimals, POL at 40 cents)"""
    return ProfitCalculator(Network.POLYGON_AMOY, input_decimals=6)


@pytest.fixture
def native_calculator():
    return ProfitCalculator(Network.SOLANA_DEVNET, input_decimals=9, input_is_native=True)


class TestGasConversion:
    """Test gas conversion into input-token units"""

    def test_native_input_is_one_to_one(self, native_calculator):
        assert native_calculator.gas_to_input_token(5000) == 5000

    def test_wei_to_usdc_uses_fixed_price(self, usdc_calculator):
        # 0.05 POL at $0.40 is $0.02, 20,000 USDC base units
        assert usdc_calculator.gas_to_input_token(5 * 10**16) == 20000

    def test_input_with_more_decimals_than_native(self):
        # Solana native has 9 decimals; an 18-decimal input scales up
        calculator = ProfitCalculator(Network.SOLANA_MAINNET, input_decimals=18)

        # 1 SOL at $150 is 150 * 10**18 units of an 18-decimal dollar token
        assert calculator.gas_to_input_token(10**9) == 150 * 10**18


class TestCalculate:
    """Test route profit calculation"""

    def test_end_to_end_scenario(self, usdc_calculator):
        """100,000,000 in, 100,250,000 out, 20,000 gas and 100,000 slippage buffer"""
        legs = [
            LegEstimate(output_amount=40_000_000_000_000_000, gas_estimate=250_000, gas_price=100 * 10**9),
            LegEstimate(output_amount=100_250_000, gas_estimate=250_000, gas_price=100 * 10**9),
        ]

        breakdown = usdc_calculator.calculate(100_000_000, legs, slippage_bps=10)

        assert breakdown.gross_profit == 250_000
        assert breakdown.gas_cost_native == 5 * 10**16
        assert breakdown.gas_cost_in_input_token == 20_000
        assert breakdown.slippage_buffer == 100_000
        assert breakdown.net_profit == 130_000
        assert breakdown.profit_bps == 13

        thresholds = ProfitThresholds(min_net_profit=100_000, min_profit_bps=5)
        assert ProfitCalculator.classify(breakdown, thresholds) == RouteClassification.PROFITABLE

    def test_flash_loan_fee_reduces_net_profit(self, native_calculator):
        legs = [LegEstimate(output_amount=1_010_000, gas_estimate=1, gas_price=1000)]

        breakdown = native_calculator.calculate(1_000_000, legs, slippage_bps=0, flash_loan_fee=900)

        assert breakdown.net_profit == 10_000 - 1000 - 900
        assert breakdown.flash_loan_fee == 900

    def test_losing_route_has_negative_bps(self, native_calculator):
        legs = [LegEstimate(output_amount=990_000, gas_estimate=0, gas_price=0)]

        breakdown = native_calculator.calculate(1_000_000, legs, slippage_bps=0)

        assert breakdown.net_profit == -10_000
        assert breakdown.profit_bps == -100

    def test_zero_notional_has_zero_bps(self, native_calculator):
        breakdown = native_calculator.calculate(0, [LegEstimate(0, 0, 0)], slippage_bps=30)

        assert breakdown.profit_bps == 0

    def test_requires_a_leg(self, native_calculator):
        with pytest.raises(ValueError):
            native_calculator.calculate(1_000_000, [], slippage_bps=30)

    def test_profit_pct_is_display_only(self, native_calculator):
        breakdown = native_calculator.calculate(
            1_000_000, [LegEstimate(1_012_500, 0, 0)], slippage_bps=0
        )

        assert breakdown.profit_bps == 125
        assert breakdown.profit_pct == 1.25


class TestThresholds:
    """Both gates must pass"""

    @pytest.fixture
    def thresholds(self):
        return ProfitThresholds(min_net_profit=100_000, min_profit_bps=5)

    def test_small_notional_passes_both_gates(self, native_calculator, thresholds):
        breakdown = native_calculator.calculate(
            1_000_000, [LegEstimate(1_100_000, 0, 0)], slippage_bps=0
        )

        assert breakdown.profit_bps == 1000
        assert ProfitCalculator.classify(breakdown, thresholds) == RouteClassification.PROFITABLE

    def test_large_absolute_profit_fails_bps_gate(self, native_calculator, thresholds):
        breakdown = native_calculator.calculate(
            1_000_000_000, [LegEstimate(1_000_100_000, 0, 0)], slippage_bps=0
        )

        assert breakdown.net_profit == 100_000
        assert breakdown.profit_bps == 1
        assert ProfitCalculator.classify(breakdown, thresholds) == RouteClassification.NOT_PROFITABLE
        with pytest.raises(BelowThresholdError) as exc_info:
            native_calculator.ensure_profitable(breakdown, thresholds)
        assert "bps" in exc_info.value.message
        assert exc_info.value.net_profit == 100_000

    def test_net_profit_gate_reported_first(self, native_calculator, thresholds):
        breakdown = native_calculator.calculate(
            1_000, [LegEstimate(1_500, 0, 0)], slippage_bps=0
        )

        with pytest.raises(BelowThresholdError) as exc_info:
            native_calculator.ensure_profitable(breakdown, thresholds)
        assert "Net profit 500 below minimum 100000" in exc_info.value.message

    def test_missing_threshold_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            ProfitThresholds(min_net_profit=None, min_profit_bps=5)
        with pytest.raises(ConfigurationError):
            ProfitThresholds(min_net_profit=100_000, min_profit_bps=None)

    def test_zero_threshold_is_allowed(self):
        thresholds = ProfitThresholds(min_net_profit=0, min_profit_bps=0)

        assert thresholds.min_net_profit == 0


class TestScanGas:
    """Test flat gas assumptions for discovery scans"""

    def test_flat_gas_per_leg(self):
        assert calculate_scan_gas(2) == 300_000
        assert calculate_scan_gas(3) == 450_000

    def test_scan_leg_estimates(self):
        legs = scan_leg_estimates([10, 20], gas_price_gwei=30)

        assert [leg.output_amount for leg in legs] == [10, 20]
        assert all(leg.gas_estimate == 150_000 for leg in legs)
        assert legs[0].gas_cost_native == 150_000 * 30 * 10**9
