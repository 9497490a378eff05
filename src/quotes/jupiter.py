"""Jupiter v6 adapter for Solana swaps"""

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import httpx

from src.chains.networks import ChainType, Network, get_network_info
from src.quotes.models import QuoteResponse, SwapQuote
from src.quotes.provider import MALFORMED_RESPONSE_ERRORS, QuoteProvider

DEFAULT_SLIPPAGE_BPS = 100
DEFAULT_MAX_ACCOUNTS = 64

# Base fee plus compute budget for one swap, in lamports
COMPUTE_BUDGET_LAMPORTS = 5000


class JupiterQuoteProvider(QuoteProvider):
    """Quotes Solana swaps through the Jupiter aggregator"""

    name = "jupiter"

    def __init__(
        self,
        base_url: str = "https://quote-api.jup.ag/v6",
        timeout_seconds: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
        max_accounts: int = DEFAULT_MAX_ACCOUNTS,
    ):
        super().__init__(base_url, timeout_seconds, client)
        self.max_accounts = max_accounts

    def supports(self, network: Network) -> bool:
        return get_network_info(network).chain_type == ChainType.SOLANA

    async def fetch_price(
        self,
        network: Network,
        sell_token: str,
        buy_token: str,
        sell_amount: int,
        taker: Optional[str] = None,
        included_sources: Optional[List[str]] = None,
        excluded_sources: Optional[List[str]] = None,
        slippage_bps: Optional[int] = None,
    ) -> QuoteResponse:
        if not self.supports(network):
            return QuoteResponse(error=f"Jupiter does not support {network.value}")
        if sell_amount <= 0:
            return QuoteResponse(error=f"Invalid sell amount: {sell_amount}")

        params: Dict[str, Any] = {
            "inputMint": sell_token,
            "outputMint": buy_token,
            "amount": str(sell_amount),
            "slippageBps": str(slippage_bps or DEFAULT_SLIPPAGE_BPS),
            "swapMode": "ExactIn",
            "maxAccounts": str(self.max_accounts),
        }
        if included_sources:
            params["dexes"] = ",".join(included_sources)
        if excluded_sources:
            params["excludeDexes"] = ",".join(excluded_sources)

        payload, response = await self._request("GET", "/quote", network, "price", params=params)
        if payload is None:
            # Jupiter answers 400 when no route exists
            if response.status_code == 400:
                response.error = "No route found"
            return response

        try:
            quote = self._normalize(payload, network, sell_token, buy_token, sell_amount)
        except MALFORMED_RESPONSE_ERRORS as e:
            return self._malformed(network, "price", response.status_code, e)
        if quote is None:
            self._record(network, "price", "no_liquidity")
            return QuoteResponse(status_code=response.status_code, error="No route found")

        self._record(network, "price", "ok")
        return QuoteResponse(quote=quote, status_code=response.status_code)

    async def fetch_quote(
        self,
        network: Network,
        sell_token: str,
        buy_token: str,
        sell_amount: int,
        taker: str,
        included_sources: Optional[List[str]] = None,
        excluded_sources: Optional[List[str]] = None,
        slippage_bps: Optional[int] = None,
    ) -> QuoteResponse:
        if not taker:
            return QuoteResponse(error="Executable Jupiter quotes require a user public key")

        priced = await self.fetch_price(
            network, sell_token, buy_token, sell_amount,
            included_sources=included_sources,
            excluded_sources=excluded_sources,
            slippage_bps=slippage_bps,
        )
        if priced.quote is None:
            return priced
        return await self.build_swap_transaction(priced.quote, taker)

    async def build_swap_transaction(self, quote: SwapQuote, user_public_key: str) -> QuoteResponse:
        """Attach Jupiter's serialized swap transaction to a priced quote"""
        body = {
            "quoteResponse": quote.raw,
            "userPublicKey": user_public_key,
            "wrapAndUnwrapSol": True,
            "dynamicComputeUnitLimit": True,
            "prioritizationFeeLamports": "auto",
        }
        payload, response = await self._request("POST", "/swap", quote.network, "quote", json=body)
        if payload is None:
            return response

        try:
            swap_transaction = payload.get("swapTransaction")
            priority_fee = payload.get("prioritizationFeeLamports")
            priority_lamports = int(priority_fee) if priority_fee else 0
        except MALFORMED_RESPONSE_ERRORS as e:
            return self._malformed(quote.network, "quote", response.status_code, e)
        if not swap_transaction or not isinstance(swap_transaction, str):
            self._record(quote.network, "quote", "error")
            return QuoteResponse(status_code=response.status_code, error="Jupiter returned no swap transaction")

        quote.data = swap_transaction
        if priority_lamports:
            quote.gas_estimate = COMPUTE_BUDGET_LAMPORTS + priority_lamports
        self._record(quote.network, "quote", "ok")
        return QuoteResponse(quote=quote, status_code=response.status_code)

    def _normalize(
        self,
        payload: Dict[str, Any],
        network: Network,
        sell_token: str,
        buy_token: str,
        sell_amount: int,
    ) -> Optional[SwapQuote]:
        out_amount = int(payload.get("outAmount") or 0)
        if out_amount <= 0:
            return None

        sources: List[str] = []
        for step in payload.get("routePlan") or []:
            label = (step.get("swapInfo") or {}).get("label")
            if label and label not in sources:
                sources.append(label)

        threshold = payload.get("otherAmountThreshold")
        return SwapQuote(
            provider=self.name,
            network=network,
            sell_token=payload.get("inputMint") or sell_token,
            buy_token=payload.get("outputMint") or buy_token,
            sell_amount=int(payload.get("inAmount") or sell_amount),
            buy_amount=out_amount,
            min_buy_amount=int(threshold) if threshold else None,
            # Solana fees are flat lamports, so the estimate is the cost itself
            gas_estimate=COMPUTE_BUDGET_LAMPORTS,
            gas_price=1,
            price_impact_pct=_to_decimal(payload.get("priceImpactPct")),
            sources=sources,
            raw=payload,
        )


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None
