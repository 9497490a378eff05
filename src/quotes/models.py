"""Normalized quote models shared by all quote providers"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

from src.chains.networks import Network


@dataclass
class SwapQuote:
    """
    One provider-normalized swap quote.

    Amounts are integer base units. A quote is executable when it carries
    transaction data: EVM calldata for `to`, or a base64 serialized Solana
    transaction.
    """

    provider: str
    network: Network
    sell_token: str
    buy_token: str
    sell_amount: int
    buy_amount: int
    gas_estimate: int
    min_buy_amount: Optional[int] = None
    gas_price: Optional[int] = None
    price_impact_pct: Optional[Decimal] = None
    sources: List[str] = field(default_factory=list)
    to: Optional[str] = None
    data: Optional[str] = None
    value: int = 0
    allowance_target: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def executable(self) -> bool:
        return bool(self.data)

    @property
    def estimated_gas_cost(self) -> Optional[int]:
        """Gas cost in native base units when the provider reported a gas price"""
        if self.gas_price is None:
            return None
        return self.gas_estimate * self.gas_price


@dataclass
class QuoteResponse:
    """Outcome of one quote request, including failures the scanner must count"""

    quote: Optional[SwapQuote] = None
    status_code: Optional[int] = None
    rate_limited: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.quote is not None
