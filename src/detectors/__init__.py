"""Route profitability and discovery scans

The scanner lives in src.detectors.route_scanner and is imported from there,
since it depends on src.config.
"""

from src.detectors.profit_calculator import (
    LegEstimate,
    ProfitBreakdown,
    ProfitCalculator,
    ProfitThresholds,
    RouteClassification,
    calculate_scan_gas,
    scan_leg_estimates,
)

__all__ = [
    "LegEstimate",
    "ProfitBreakdown",
    "ProfitCalculator",
    "ProfitThresholds",
    "RouteClassification",
    "calculate_scan_gas",
    "scan_leg_estimates",
]
