"""Liquidity sources, scan routes and flash loan providers"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

from src.chains.networks import Network
from src.chains.tokens import TOKENS, Token

# 0x liquidity source names available on Polygon
LIQUIDITY_SOURCES: List[str] = [
    "Uniswap_V3",
    "QuickSwap",
    "QuickSwap_V3",
    "SushiSwap",
    "Curve",
    "Balancer_V2",
    "DODO_V2",
    "KyberSwap_Elastic",
    "Aave_V3",
]

DEFAULT_SCAN_SOURCES: List[str] = ["Uniswap_V3", "QuickSwap", "SushiSwap", "Curve", "Balancer_V2"]

_POLYGON = TOKENS[Network.POLYGON]

TOKEN_PAIRS: Dict[str, Tuple[Token, Token]] = {
    "USDC_WETH": (_POLYGON["USDC_E"], _POLYGON["WETH"]),
    "USDC_WMATIC": (_POLYGON["USDC_E"], _POLYGON["WMATIC"]),
}

TRIANGULAR_PATHS: Dict[str, List[Token]] = {
    "USDC_WETH_WMATIC": [_POLYGON["USDC_E"], _POLYGON["WETH"], _POLYGON["WMATIC"], _POLYGON["USDC_E"]],
}


class FlashLoanProvider(Enum):
    AAVE_V3 = "AAVE_V3"
    BALANCER = "BALANCER"


@dataclass(frozen=True)
class FlashLoanProviderInfo:
    provider: FlashLoanProvider
    fee_bps: int


FLASH_LOAN_PROVIDERS: Dict[FlashLoanProvider, FlashLoanProviderInfo] = {
    FlashLoanProvider.AAVE_V3: FlashLoanProviderInfo(
        provider=FlashLoanProvider.AAVE_V3,
        fee_bps=5,
    ),
    FlashLoanProvider.BALANCER: FlashLoanProviderInfo(
        provider=FlashLoanProvider.BALANCER,
        fee_bps=0,
    ),
}


def parse_flash_loan_provider(value: Optional[str]) -> FlashLoanProvider:
    """
    Accept provider names as stored on strategies (e.g. "AAVE_V3_POLYGON").

    Unknown or missing names fall back to AAVE_V3, the provider with a non-zero
    fee, so estimates never understate the cost.
    """
    if not value:
        return FlashLoanProvider.AAVE_V3
    normalized = value.strip().upper()
    if normalized.startswith("BALANCER"):
        return FlashLoanProvider.BALANCER
    return FlashLoanProvider.AAVE_V3


def flash_loan_fee(provider: FlashLoanProvider, amount: int) -> int:
    """Flash loan fee in the borrowed asset's base units"""
    return amount * FLASH_LOAN_PROVIDERS[provider].fee_bps // 10000
