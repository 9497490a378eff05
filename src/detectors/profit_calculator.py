"""Profit calculator for multi-leg arbitrage routes

All token amounts are integer base units. Gas is converted into input-token
units with a fixed per-network native price, not a live oracle price.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Union

import structlog

from src.chains.networks import Network, get_network_info
from src.errors import BelowThresholdError, ConfigurationError

logger = structlog.get_logger()

BPS_DENOMINATOR = 10000

SCAN_GAS_PER_LEG = 150000
DEFAULT_SCAN_GAS_PRICE_GWEI = 50


class RouteClassification(Enum):
    PROFITABLE = "PROFITABLE"
    NOT_PROFITABLE = "NOT_PROFITABLE"
    FAILED = "FAILED"


@dataclass
class LegEstimate:
    """Quoted output and gas for one leg"""

    output_amount: int
    gas_estimate: int
    gas_price: int

    @property
    def gas_cost_native(self) -> int:
        return self.gas_estimate * self.gas_price


@dataclass(frozen=True)
class ProfitThresholds:
    """Both gates must pass; an unset threshold is a configuration error"""

    min_net_profit: Optional[int]
    min_profit_bps: Optional[int]

    def __post_init__(self):
        if self.min_net_profit is None:
            raise ConfigurationError("Minimum net profit threshold is not configured")
        if self.min_profit_bps is None:
            raise ConfigurationError("Minimum profit bps threshold is not configured")


@dataclass
class ProfitBreakdown:
    """Result of one route calculation"""

    notional_in: int
    final_output: int
    gross_profit: int
    gas_cost_native: int
    gas_cost_in_input_token: int
    slippage_buffer: int
    net_profit: int
    profit_bps: int
    flash_loan_fee: int = 0

    @property
    def profit_pct(self) -> float:
        """Display only"""
        return self.profit_bps / 100


class ProfitCalculator:
    """Calculates net profit of a route in input-token base units"""

    def __init__(
        self,
        network: Union[str, Network],
        input_decimals: int,
        input_is_native: bool = False,
    ):
        """
        Initialize profit calculator

        Args:
            network: Network the route runs on; selects the native price approximation
            input_decimals: Decimals of the route's input token
            input_is_native: Input is the native asset or its wrapped form
        """
        self.network_info = get_network_info(network)
        self.input_decimals = input_decimals
        self.input_is_native = input_is_native

    def gas_to_input_token(self, gas_cost_native: int) -> int:
        """
        Convert a native gas cost into input-token base units.

        Uses the network's fixed native price in cents; a native input converts 1:1.
        """
        if self.input_is_native:
            return gas_cost_native

        scale_exponent = self.network_info.native_decimals - self.input_decimals
        numerator = gas_cost_native * self.network_info.native_price_cents
        if scale_exponent >= 0:
            return numerator // (100 * 10**scale_exponent)
        return numerator * 10 ** (-scale_exponent) // 100

    def calculate(
        self,
        notional_in: int,
        legs: Sequence[LegEstimate],
        slippage_bps: int,
        flash_loan_fee: int = 0,
    ) -> ProfitBreakdown:
        """
        Calculate gross and net profit for a route

        Args:
            notional_in: Input amount of the first leg
            legs: Leg estimates in route order; the last leg returns the input token
            slippage_bps: Slippage buffer applied to the notional
            flash_loan_fee: Fee owed on a borrowed notional, in input-token units

        Returns:
            ProfitBreakdown with integer amounts
        """
        if not legs:
            raise ValueError("A route needs at least one leg")
        if notional_in < 0:
            raise ValueError(f"Notional must be non-negative: {notional_in}")

        final_output = legs[-1].output_amount
        gross_profit = final_output - notional_in
        gas_cost_native = sum(leg.gas_cost_native for leg in legs)
        gas_cost_in_input = self.gas_to_input_token(gas_cost_native)
        slippage_buffer = notional_in * slippage_bps // BPS_DENOMINATOR
        net_profit = gross_profit - gas_cost_in_input - slippage_buffer - flash_loan_fee
        profit_bps = net_profit * BPS_DENOMINATOR // notional_in if notional_in else 0

        breakdown = ProfitBreakdown(
            notional_in=notional_in,
            final_output=final_output,
            gross_profit=gross_profit,
            gas_cost_native=gas_cost_native,
            gas_cost_in_input_token=gas_cost_in_input,
            slippage_buffer=slippage_buffer,
            net_profit=net_profit,
            profit_bps=profit_bps,
            flash_loan_fee=flash_loan_fee,
        )

        logger.debug(
            "route_profit_calculated",
            network=self.network_info.name,
            notional_in=notional_in,
            gross_profit=gross_profit,
            gas_cost_in_input=gas_cost_in_input,
            slippage_buffer=slippage_buffer,
            net_profit=net_profit,
            profit_bps=profit_bps,
        )
        return breakdown

    @staticmethod
    def classify(breakdown: ProfitBreakdown, thresholds: ProfitThresholds) -> RouteClassification:
        if (
            breakdown.net_profit >= thresholds.min_net_profit
            and breakdown.profit_bps >= thresholds.min_profit_bps
        ):
            return RouteClassification.PROFITABLE
        return RouteClassification.NOT_PROFITABLE

    def ensure_profitable(self, breakdown: ProfitBreakdown, thresholds: ProfitThresholds) -> None:
        """
        Raises:
            BelowThresholdError: If either gate fails
        """
        if self.classify(breakdown, thresholds) == RouteClassification.PROFITABLE:
            return

        if breakdown.net_profit < thresholds.min_net_profit:
            reason = (
                f"Net profit {breakdown.net_profit} below minimum {thresholds.min_net_profit}"
            )
        else:
            reason = f"Profit {breakdown.profit_bps} bps below minimum {thresholds.min_profit_bps} bps"
        raise BelowThresholdError(reason, net_profit=breakdown.net_profit, profit_bps=breakdown.profit_bps)


def calculate_scan_gas(leg_count: int) -> int:
    """Flat gas units assumed by discovery scans: 300k for two legs, 450k for three"""
    return SCAN_GAS_PER_LEG * leg_count


def scan_leg_estimates(
    outputs: Sequence[int], gas_price_gwei: int = DEFAULT_SCAN_GAS_PRICE_GWEI
) -> List[LegEstimate]:
    """Leg estimates for indicative price quotes, which carry no reliable gas figure"""
    gas_price_wei = gas_price_gwei * 10**9
    return [LegEstimate(output, SCAN_GAS_PER_LEG, gas_price_wei) for output in outputs]
